from __future__ import annotations

from typing import Any, cast

from django.conf import settings
from django.utils import timezone
from drf_spectacular.utils import extend_schema_field
from rest_framework import serializers

from .boundary import boundary_from_centroid, parse_boundary
from .engines.types import CityInfo, TrendResult, YearRange
from .exceptions import InvalidBoundary
from .orchestrator import trend_change, trend_direction

CENTROID_BUFFER_DEG = float(
    getattr(settings, "GREENSPACE_CENTROID_BUFFER_DEG", 0.1)
)
# Sentinel-2A launched mid-2015.
MIN_YEAR = 2015


class CityRequestSerializer(serializers.Serializer):
    name = serializers.CharField(required=False, allow_blank=True)
    formatted_address = serializers.CharField(required=False, allow_blank=True)
    country = serializers.CharField(
        required=False, allow_blank=True, default=""
    )
    region = serializers.CharField(
        required=False, allow_blank=True, default=""
    )
    latitude = serializers.FloatField(
        required=False, allow_null=True, min_value=-90, max_value=90
    )
    longitude = serializers.FloatField(
        required=False, allow_null=True, min_value=-180, max_value=180
    )

    def validate(self, attrs: dict[str, Any]) -> dict[str, Any]:
        name = (attrs.get("name") or "").strip()
        if not name:
            address = cast(str, attrs.get("formatted_address") or "")
            name = address.split(",")[0].strip()
        if not name:
            raise serializers.ValidationError(
                "City name or formatted_address is required."
            )
        return {
            "name": name,
            "country": attrs.get("country", ""),
            "region": attrs.get("region", ""),
            "latitude": attrs.get("latitude"),
            "longitude": attrs.get("longitude"),
        }


class YearRangeSerializer(serializers.Serializer):
    start_year = serializers.IntegerField(min_value=MIN_YEAR)
    end_year = serializers.IntegerField(min_value=MIN_YEAR)

    def validate(self, attrs: dict[str, Any]) -> dict[str, Any]:
        start, end = attrs["start_year"], attrs["end_year"]
        if start > end:
            raise serializers.ValidationError(
                "start_year must be on or before end_year."
            )
        current = timezone.localdate().year
        if end > current:
            raise serializers.ValidationError(
                f"end_year cannot be after {current}."
            )
        return attrs


class AnalysisRequestSerializer(serializers.Serializer):
    boundary = serializers.JSONField(required=False, allow_null=True)
    city = CityRequestSerializer()
    year_range = YearRangeSerializer(required=False, allow_null=True)

    def validate(self, attrs: dict[str, Any]) -> dict[str, Any]:
        city = CityInfo(**attrs["city"])
        geojson = attrs.get("boundary")
        try:
            if geojson:
                boundary = parse_boundary(geojson)
            elif city.latitude is not None and city.longitude is not None:
                boundary = boundary_from_centroid(
                    city.latitude, city.longitude, CENTROID_BUFFER_DEG
                )
            else:
                raise InvalidBoundary(
                    "Provide a boundary polygon or the city coordinates."
                )
        except InvalidBoundary as exc:
            raise serializers.ValidationError(
                {"boundary": [str(exc)]}
            ) from exc

        if city.latitude is None or city.longitude is None:
            city = CityInfo(
                name=city.name,
                country=city.country,
                region=city.region,
                latitude=boundary.centroid_lat,
                longitude=boundary.centroid_lon,
            )

        year_range = attrs.get("year_range")
        return {
            "boundary": boundary,
            "city": city,
            "year_range": YearRange(**year_range) if year_range else None,
        }


class CityInfoSerializer(serializers.Serializer):
    name = serializers.CharField()
    country = serializers.CharField()
    region = serializers.CharField()
    latitude = serializers.FloatField(allow_null=True)
    longitude = serializers.FloatField(allow_null=True)


class CellResultSerializer(serializers.Serializer):
    """One grid cell of the current-year overlay."""

    index = serializers.IntegerField(source="cell.index")
    west = serializers.FloatField(source="cell.west")
    south = serializers.FloatField(source="cell.south")
    east = serializers.FloatField(source="cell.east")
    north = serializers.FloatField(source="cell.north")
    latitude = serializers.FloatField(source="cell.centroid_lat")
    longitude = serializers.FloatField(source="cell.centroid_lon")
    vegetation_fraction = serializers.FloatField()
    mean_index = serializers.FloatField()
    sample_count = serializers.IntegerField()
    vegetated_count = serializers.IntegerField()
    threshold = serializers.FloatField()
    source = serializers.CharField(allow_null=True)


class YearResultSerializer(serializers.Serializer):
    year = serializers.IntegerField()
    coverage_percentage = serializers.FloatField()
    vegetated_area_km2 = serializers.FloatField()
    confidence = serializers.FloatField()
    analyzed_cells = serializers.IntegerField()
    total_cells = serializers.IntegerField()
    failed_cells = serializers.IntegerField()
    estimated_cells = serializers.IntegerField()
    total_samples = serializers.IntegerField()
    vegetated_samples = serializers.IntegerField()
    # Only the current year keeps its cells; historical years carry none.
    cell_results = CellResultSerializer(many=True)


class TrendSerializer(serializers.Serializer):
    change_percentage = serializers.FloatField()
    direction = serializers.CharField()


class TrendResultSerializer(serializers.Serializer):
    score = serializers.FloatField()
    total_area_km2 = serializers.FloatField()
    current = YearResultSerializer()
    historical_series = YearResultSerializer(many=True)
    trend = serializers.SerializerMethodField()
    city = CityInfoSerializer(allow_null=True)

    @extend_schema_field(TrendSerializer)
    def get_trend(self, obj: TrendResult) -> dict[str, Any]:
        change = trend_change([*obj.historical_series, obj.current])
        return {
            "change_percentage": round(change, 2),
            "direction": trend_direction(change),
        }


def serialize_city(city: CityInfo | None) -> dict[str, Any] | None:
    if city is None:
        return None
    return dict(CityInfoSerializer(city).data)


def serialize_trend(result: TrendResult) -> dict[str, Any]:
    return dict(TrendResultSerializer(result).data)
