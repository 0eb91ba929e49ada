"""Sentinel Hub spectral index provider using the Statistics API."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from collections.abc import Callable
from datetime import date, datetime
from typing import Any, Final

import httpx
from django.conf import settings
from django.utils import timezone

from ..exceptions import DataUnavailable
from ..metrics import (
    greenspace_upstream_latency_seconds,
    greenspace_upstream_requests_total,
)
from .base import SpectralIndexProvider
from .tokens import AccessToken, TokenCache
from .types import Cell, SampleSet, StrategyName

logger = logging.getLogger(__name__)


DEFAULT_TIMEOUT: Final[float] = float(
    getattr(settings, "GREENSPACE_REQUEST_TIMEOUT_SECONDS", 20)
)
DEFAULT_MAX_CLOUD: Final[int] = int(
    getattr(settings, "GREENSPACE_MAX_CLOUD", 30)
)
SAMPLE_GRID: Final[int] = int(getattr(settings, "GREENSPACE_SAMPLE_GRID", 15))
HISTOGRAM_BINS: Final[int] = 40
# First year with global Sentinel-2 L2A coverage.
MIN_COVERAGE_YEAR: Final[int] = 2017
TROPICS_LAT: Final[float] = 15.0

EXTRA_INDICES: Final[tuple[str, ...]] = ("evi", "gndvi", "bsi", "msavi2")

INDEX_EVALSCRIPT: Final[str] = """
//VERSION=3
function setup() {
  return {
    input: [{bands: ["B02", "B03", "B04", "B08", "B11", "SCL", "dataMask"]}],
    output: [
      { id: "ndvi", bands: 1, sampleType: "FLOAT32" },
      { id: "evi", bands: 1, sampleType: "FLOAT32" },
      { id: "gndvi", bands: 1, sampleType: "FLOAT32" },
      { id: "bsi", bands: 1, sampleType: "FLOAT32" },
      { id: "msavi2", bands: 1, sampleType: "FLOAT32" },
      { id: "dataMask", bands: 1 }
    ]
  };
}

const MASKED_SCL = [3, 8, 9, 10, 11]; // cloud/shadow/snow

function evaluatePixel(s) {
  const ndvi = (s.B08 - s.B04) / (s.B08 + s.B04);
  const evi = 2.5 * (s.B08 - s.B04) / (s.B08 + 6 * s.B04 - 7.5 * s.B02 + 1);
  const gndvi = (s.B08 - s.B03) / (s.B08 + s.B03);
  const bsi = ((s.B11 + s.B04) - (s.B08 + s.B02)) /
              ((s.B11 + s.B04) + (s.B08 + s.B02));
  const msavi2 = (2 * s.B08 + 1 -
    Math.sqrt(Math.pow(2 * s.B08 + 1, 2) - 8 * (s.B08 - s.B04))) / 2;
  const clear = MASKED_SCL.indexOf(s.SCL) === -1;
  const mask = s.dataMask === 1 && clear && isFinite(ndvi) ? 1 : 0;
  return {
    ndvi: [ndvi], evi: [evi], gndvi: [gndvi], bsi: [bsi], msavi2: [msavi2],
    dataMask: [mask]
  };
}
"""


def seasonal_window(lat: float, year: int) -> tuple[date, date]:
    """Peak growing-season window for a latitude.

    The tropics use the full calendar year; the southern window straddles
    the new year and ends in `year`.
    """

    if abs(lat) < TROPICS_LAT:
        return date(year, 1, 1), date(year, 12, 31)
    if lat >= 0:
        return date(year, 5, 1), date(year, 9, 30)
    return date(year - 1, 11, 1), date(year, 3, 31)


def clamp_year(year: int, lat: float, today: date) -> int:
    """Latest year not after `year` whose seasonal window has fully elapsed."""

    latest = today.year
    while (
        latest > MIN_COVERAGE_YEAR
        and seasonal_window(lat, latest)[1] >= today
    ):
        latest -= 1
    return min(year, latest)


class SentinelHubProvider(SpectralIndexProvider):
    """Fetch per-cell index distributions from Sentinel Hub."""

    name: StrategyName = "sentinelhub"

    def __init__(
        self,
        *,
        client_id: str | None = None,
        client_secret: str | None = None,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
        max_cloud: int | None = None,
        sample_grid: int = SAMPLE_GRID,
        today: Callable[[], date] | None = None,
        token_cache: TokenCache | None = None,
        max_attempts: int = 3,
        backoff_seconds: float = 0.5,
    ) -> None:
        self.client_id = client_id or os.getenv("SENTINELHUB_CLIENT_ID")
        self.client_secret = client_secret or os.getenv(
            "SENTINELHUB_CLIENT_SECRET"
        )
        if not self.client_id or not self.client_secret:
            raise ValueError("Sentinel Hub client credentials are required")

        self.base_url = base_url or os.getenv(
            "SENTINELHUB_BASE_URL", "https://services.sentinel-hub.com"
        )
        self.token_url = f"{self.base_url}/oauth/token"
        self.statistics_url = f"{self.base_url}/api/v1/statistics"
        self.timeout_seconds = timeout_seconds or DEFAULT_TIMEOUT
        self.max_cloud = DEFAULT_MAX_CLOUD if max_cloud is None else max_cloud
        self.sample_grid = sample_grid
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self._today = today or timezone.localdate
        self.tokens = token_cache or TokenCache(self._fetch_token)

    async def get_index_samples(self, cell: Cell, year: int) -> SampleSet:
        if year < MIN_COVERAGE_YEAR:
            raise DataUnavailable(
                f"No global Sentinel-2 L2A coverage before "
                f"{MIN_COVERAGE_YEAR} (requested {year})",
                cell_index=cell.index,
            )
        lat = cell.centroid_lat
        target_year = clamp_year(year, lat, self._today())
        start, end = seasonal_window(lat, target_year)
        if target_year != year:
            logger.debug(
                "greenspace.sentinelhub.year_clamped requested=%s used=%s",
                year,
                target_year,
            )

        payload = self._build_statistics_payload(
            cell=cell, start=start, end=end
        )
        try:
            response = await self._post_statistics(payload)
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise DataUnavailable(
                f"Sentinel Hub statistics request failed: {exc}",
                cell_index=cell.index,
            ) from exc

        samples = self._parse_statistics_response(data)
        if not samples.values:
            raise DataUnavailable(
                f"No clear pixels for cell {cell.index} in {start}..{end}",
                cell_index=cell.index,
            )
        return samples

    async def _post_statistics(
        self, payload: dict[str, Any]
    ) -> httpx.Response:
        """POST a Statistics request, refreshing a rejected token once."""

        for attempt in (1, 2):
            token = await self.tokens.get_or_refresh()
            headers = {
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            }
            try:
                return await self._request_with_retry(
                    "POST",
                    self.statistics_url,
                    json=payload,
                    headers=headers,
                )
            except httpx.HTTPStatusError as exc:
                if exc.response.status_code != 401 or attempt == 2:
                    raise
                logger.warning(
                    "greenspace.sentinelhub.token_rejected refreshing"
                )
                self.tokens.invalidate()
        raise RuntimeError("Unknown upstream error")

    async def _fetch_token(self) -> AccessToken:
        data = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        headers = {"Content-Type": "application/x-www-form-urlencoded"}
        response = await self._request_with_retry(
            "POST",
            self.token_url,
            data=data,
            headers=headers,
        )
        token_data = response.json()
        return AccessToken(
            value=str(token_data.get("access_token") or ""),
            expires_in=float(token_data.get("expires_in", 3600)),
        )

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        *,
        json: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        attempt = 0
        last_error: Exception | None = None
        while attempt < self.max_attempts:
            attempt += 1
            started = time.monotonic()
            try:
                async with httpx.AsyncClient(
                    timeout=self.timeout_seconds
                ) as client:
                    response = await client.request(
                        method,
                        url,
                        json=json,
                        data=data,
                        headers=headers,
                    )
                greenspace_upstream_latency_seconds.labels(
                    engine=self.name
                ).observe(time.monotonic() - started)
                response.raise_for_status()
                greenspace_upstream_requests_total.labels(
                    engine=self.name, outcome="success"
                ).inc()
                return response
            except httpx.HTTPStatusError as exc:
                last_error = exc
                greenspace_upstream_requests_total.labels(
                    engine=self.name, outcome="error"
                ).inc()
                if (
                    exc.response.status_code >= 500
                    or exc.response.status_code == 429
                ) and attempt < self.max_attempts:
                    await asyncio.sleep(self.backoff_seconds * attempt)
                    continue
                raise
            except httpx.RequestError as exc:
                last_error = exc
                greenspace_upstream_requests_total.labels(
                    engine=self.name, outcome="network"
                ).inc()
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.backoff_seconds * attempt)
                    continue
                raise
        if last_error:
            raise last_error
        raise RuntimeError("Unknown upstream error")

    def _build_statistics_payload(
        self, *, cell: Cell, start: date, end: date
    ) -> dict[str, Any]:
        window_days = (end - start).days + 1
        payload: dict[str, Any] = {
            "input": {
                "bounds": {
                    "bbox": [cell.west, cell.south, cell.east, cell.north],
                    "properties": {
                        "crs": "http://www.opengis.net/def/crs/OGC/1.3/CRS84"
                    },
                },
                "data": [
                    {
                        "type": "sentinel-2-l2a",
                        "dataFilter": {
                            "maxCloudCoverage": self.max_cloud,
                            "mosaickingOrder": "leastCC",
                        },
                    }
                ],
            },
            "aggregation": {
                "timeRange": {
                    "from": datetime.combine(
                        start, datetime.min.time()
                    ).isoformat()
                    + "Z",
                    "to": datetime.combine(
                        end, datetime.max.time()
                    ).isoformat()
                    + "Z",
                },
                "aggregationInterval": {
                    "of": f"P{window_days}D",
                    "lastIntervalBehavior": "SHORTEN",
                },
                "width": self.sample_grid,
                "height": self.sample_grid,
                "evalscript": INDEX_EVALSCRIPT,
            },
            "calculations": {
                "ndvi": {
                    "histograms": {
                        "default": {
                            "nBins": HISTOGRAM_BINS,
                            "lowEdge": -1.0,
                            "highEdge": 1.0,
                        }
                    }
                },
                "default": {},
            },
        }
        logger.debug(
            "greenspace.sentinelhub.request payload=%s", json.dumps(payload)
        )
        return payload

    def _parse_statistics_response(self, data: dict[str, Any]) -> SampleSet:
        """Expand the NDVI histogram into samples and average extra indices.

        Each histogram bin contributes `count` samples at its midpoint.
        """

        values: list[float] = []
        extra_sums: dict[str, float] = {}
        extra_counts: dict[str, int] = {}
        for item in data.get("data", []) or []:
            if not isinstance(item, dict) or item.get("error"):
                continue
            outputs = item.get("outputs") or {}
            band = _first_band(outputs.get("ndvi"))
            for bin_ in (band.get("histogram") or {}).get("bins", []) or []:
                try:
                    low = float(bin_["lowEdge"])
                    high = float(bin_["highEdge"])
                    count = int(bin_.get("count", 0))
                except (KeyError, TypeError, ValueError):
                    continue
                if count > 0:
                    values.extend([(low + high) / 2] * count)

            for index_name in EXTRA_INDICES:
                stats = _first_band(outputs.get(index_name)).get("stats") or {}
                try:
                    mean = float(stats["mean"])
                except (KeyError, TypeError, ValueError):
                    continue
                extra_sums[index_name] = extra_sums.get(index_name, 0.0) + mean
                extra_counts[index_name] = extra_counts.get(index_name, 0) + 1

        extras = {
            name: extra_sums[name] / extra_counts[name] for name in extra_sums
        }
        return SampleSet(
            values=tuple(values), source="sentinelhub", extras=extras
        )

    def __repr__(self) -> str:  # pragma: no cover - convenience only
        return (
            "SentinelHubProvider("
            f"client_id={self.client_id}, base_url={self.base_url}, "
            f"timeout={self.timeout_seconds}"
            ")"
        )


def _first_band(output: Any) -> dict[str, Any]:
    if not isinstance(output, dict):
        return {}
    bands = output.get("bands") or {}
    if not isinstance(bands, dict) or not bands:
        return {}
    band = bands.get("B0") or next(iter(bands.values()))
    return band if isinstance(band, dict) else {}
