from __future__ import annotations

import logging
import math

from django.conf import settings
from shapely.errors import ShapelyError
from shapely.geometry import box
from shapely.prepared import prep

from .engines.types import Boundary, Cell, Grid
from .exceptions import IntersectionCheckFailure

logger = logging.getLogger(__name__)

DEFAULT_CELL_BUDGET = int(getattr(settings, "GREENSPACE_CELL_BUDGET", 200))
MIN_EDGE_DEG = float(getattr(settings, "GREENSPACE_GRID_MIN_EDGE_DEG", 0.003))
MAX_EDGE_DEG = float(getattr(settings, "GREENSPACE_GRID_MAX_EDGE_DEG", 0.05))
GROWTH_FACTOR = float(getattr(settings, "GREENSPACE_GRID_GROWTH_FACTOR", 1.5))

_EPSILON = 1e-12


def tile_count(width: float, height: float, edge: float) -> int:
    return math.ceil(width / edge) * math.ceil(height / edge)


def choose_edge(
    width: float,
    height: float,
    cell_budget: int,
    *,
    min_edge: float = MIN_EDGE_DEG,
    max_edge: float = MAX_EDGE_DEG,
    growth: float = GROWTH_FACTOR,
) -> float:
    """Smallest edge on the growth ladder whose tiling fits the budget."""

    edge = min_edge
    while tile_count(width, height, edge) > cell_budget and edge < max_edge:
        edge = min(edge * growth, max_edge)
    return edge


def _tile(boundary: Boundary, edge: float) -> list[tuple[float, ...]]:
    west, south, east, north = boundary.bbox
    cols = math.ceil(boundary.bbox.width / edge)
    rows = math.ceil(boundary.bbox.height / edge)
    tiles: list[tuple[float, ...]] = []
    for col in range(cols):
        cell_west = west + col * edge
        cell_east = min(west + (col + 1) * edge, east)
        for row in range(rows):
            cell_south = south + row * edge
            cell_north = min(south + (row + 1) * edge, north)
            # float slivers from ceil() on an exact multiple
            too_thin = cell_east - cell_west < _EPSILON
            too_short = cell_north - cell_south < _EPSILON
            if too_thin or too_short:
                continue
            tiles.append((cell_west, cell_south, cell_east, cell_north))
    return tiles


def _intersects(prepared: object, tile: tuple[float, ...]) -> bool:
    try:
        hit = prepared.intersects(box(*tile))  # type: ignore[attr-defined]
        return bool(hit)
    except (ShapelyError, ValueError) as exc:
        raise IntersectionCheckFailure(str(exc)) from exc


def build_grid(
    boundary: Boundary, cell_budget: int = DEFAULT_CELL_BUDGET
) -> Grid:
    """Partition the boundary's bounding box into cells touching the boundary.

    The result never exceeds `cell_budget` cells and is identical for
    identical inputs.
    """

    budget = max(1, int(cell_budget))
    edge = choose_edge(boundary.bbox.width, boundary.bbox.height, budget)
    tiles = _tile(boundary, edge)

    prepared = prep(boundary.geometry)
    kept: list[tuple[float, ...]] = []
    for tile in tiles:
        try:
            if _intersects(prepared, tile):
                kept.append(tile)
        except IntersectionCheckFailure as exc:
            logger.warning(
                "greenspace.grid.intersection_failed tile=%s err=%s",
                tile,
                exc,
            )
            kept.append(tile)

    intersecting = len(kept)
    if intersecting > budget:
        stride = intersecting // budget
        kept = [kept[i * stride] for i in range(budget)]
        logger.info(
            "greenspace.grid.subsampled from=%s to=%s stride=%s",
            intersecting,
            len(kept),
            stride,
        )

    cells = tuple(
        Cell(index=i, west=t[0], south=t[1], east=t[2], north=t[3])
        for i, t in enumerate(kept)
    )
    logger.info(
        "greenspace.grid.built edge=%.5f candidates=%s intersecting=%s "
        "cells=%s",
        edge,
        len(tiles),
        intersecting,
        len(cells),
    )
    return Grid(
        cells=cells,
        edge_deg=edge,
        candidate_count=len(tiles),
        intersecting_count=intersecting,
    )
