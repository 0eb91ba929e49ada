"""Ordered region rule tables.

Each table is a list of `RegionRule` evaluated top to bottom; the first rule
whose predicate matches a `(lat, lon)` centroid supplies the value. Tables are
plain data so they can be inspected and tested apart from the code that
consumes them.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")

Predicate = Callable[[float, float], bool]


@dataclass(frozen=True)
class Box:
    """Lat/lon rectangle, bounds exclusive."""

    south: float
    north: float
    west: float
    east: float

    def contains(self, lat: float, lon: float) -> bool:
        return self.south < lat < self.north and self.west < lon < self.east


@dataclass(frozen=True)
class RegionRule(Generic[T]):
    name: str
    predicate: Predicate
    value: T

    def matches(self, lat: float, lon: float) -> bool:
        return self.predicate(lat, lon)


def within(*boxes: Box) -> Predicate:
    def predicate(lat: float, lon: float) -> bool:
        return any(b.contains(lat, lon) for b in boxes)

    return predicate


def abs_lat_below(limit: float) -> Predicate:
    return lambda lat, lon: abs(lat) < limit


def first_match(
    rules: Sequence[RegionRule[T]], lat: float, lon: float, default: T
) -> tuple[str, T]:
    for rule in rules:
        if rule.matches(lat, lon):
            return rule.name, rule.value
    return "default", default


# Named areas shared by the threshold and estimation tables.
AMAZON = Box(-15.0, 8.0, -80.0, -44.0)
CONGO = Box(-10.0, 6.0, 9.0, 31.0)
SOUTHEAST_ASIA = Box(-11.0, 20.0, 92.0, 155.0)
SOUTH_PACIFIC = Box(-25.0, -10.0, -160.0, -140.0)

PACIFIC_NORTHWEST = Box(42.0, 60.0, -135.0, -121.0)
VALDIVIAN = Box(-48.0, -37.0, -76.0, -71.0)
NEW_ZEALAND_WEST = Box(-47.0, -40.0, 166.0, 172.0)
TASMANIA = Box(-44.0, -40.0, 144.0, 149.0)

SOUTHEAST_US = Box(25.0, 36.0, -98.0, -75.0)
SOUTHERN_CHINA = Box(20.0, 32.0, 104.0, 122.0)
SOUTHEAST_BRAZIL = Box(-33.0, -18.0, -55.0, -39.0)
EAST_AUSTRALIA = Box(-34.0, -20.0, 145.0, 154.0)

MEDITERRANEAN_BASIN = Box(35.0, 45.0, -10.0, 37.0)
CALIFORNIA_COAST = Box(32.0, 40.0, -124.0, -117.0)
CENTRAL_CHILE = Box(-38.0, -30.0, -74.0, -70.0)
CAPE = Box(-35.0, -33.0, 17.0, 21.0)
SOUTHWEST_AUSTRALIA = Box(-36.0, -30.0, 114.0, 120.0)

GREAT_PLAINS = Box(30.0, 50.0, -105.0, -95.0)
PAMPAS = Box(-40.0, -30.0, -65.0, -57.0)
EURASIAN_STEPPE = Box(42.0, 52.0, 35.0, 90.0)
SAHEL = Box(10.0, 16.0, -17.0, 38.0)

SAHARA = Box(16.0, 32.0, -17.0, 35.0)
ARABIAN = Box(12.0, 33.0, 35.0, 60.0)
IRANIAN_PLATEAU = Box(27.0, 36.0, 50.0, 62.0)
THAR = Box(24.0, 30.0, 69.0, 76.0)
ATACAMA = Box(-30.0, -17.0, -72.0, -68.0)
NORTH_AMERICAN_DESERTS = Box(25.0, 40.0, -120.0, -103.0)
GOBI = Box(38.0, 46.0, 90.0, 112.0)
KALAHARI_NAMIB = Box(-30.0, -17.0, 12.0, 25.0)
AUSTRALIAN_OUTBACK = Box(-32.0, -19.0, 118.0, 142.0)

TORONTO = Box(43.5, 43.9, -79.9, -78.7)
MANHATTAN = Box(40.68, 40.88, -74.03, -73.9)
CENTRAL_LONDON = Box(51.45, 51.56, -0.2, 0.0)
PARIS = Box(48.81, 48.91, 2.25, 2.42)
TOKYO = Box(35.6, 35.76, 139.65, 139.85)
HONG_KONG = Box(22.26, 22.35, 114.1, 114.25)
SINGAPORE = Box(1.26, 1.36, 103.8, 103.9)
MUMBAI = Box(18.9, 19.15, 72.8, 72.95)
CAIRO = Box(29.98, 30.12, 31.18, 31.32)
MEXICO_CITY = Box(19.35, 19.5, -99.2, -99.05)
SAO_PAULO = Box(-23.65, -23.5, -46.72, -46.58)

DENSE_URBAN = (
    TORONTO,
    MANHATTAN,
    CENTRAL_LONDON,
    PARIS,
    TOKYO,
    HONG_KONG,
    SINGAPORE,
    MUMBAI,
    CAIRO,
    MEXICO_CITY,
    SAO_PAULO,
)

DEFAULT_THRESHOLD = 0.20
URBAN_THRESHOLD_FACTOR = 0.5

THRESHOLD_RULES: list[RegionRule[float]] = [
    RegionRule(
        "tropical_rainforest",
        within(AMAZON, CONGO, SOUTHEAST_ASIA, SOUTH_PACIFIC),
        0.35,
    ),
    RegionRule(
        "temperate_rainforest",
        within(PACIFIC_NORTHWEST, VALDIVIAN, NEW_ZEALAND_WEST, TASMANIA),
        0.30,
    ),
    RegionRule(
        "subtropical",
        within(SOUTHEAST_US, SOUTHERN_CHINA, SOUTHEAST_BRAZIL, EAST_AUSTRALIA),
        0.25,
    ),
    RegionRule(
        "mediterranean",
        within(
            MEDITERRANEAN_BASIN,
            CALIFORNIA_COAST,
            CENTRAL_CHILE,
            CAPE,
            SOUTHWEST_AUSTRALIA,
        ),
        0.18,
    ),
    RegionRule(
        "grassland",
        within(GREAT_PLAINS, PAMPAS, EURASIAN_STEPPE, SAHEL),
        0.15,
    ),
    RegionRule(
        "arid",
        within(
            SAHARA,
            ARABIAN,
            IRANIAN_PLATEAU,
            THAR,
            ATACAMA,
            NORTH_AMERICAN_DESERTS,
            GOBI,
            KALAHARI_NAMIB,
            AUSTRALIAN_OUTBACK,
        ),
        0.10,
    ),
    RegionRule("boreal", lambda lat, lon: lat >= 50.0, 0.22),
]

URBAN_RULES: list[RegionRule[float]] = [
    RegionRule("dense_urban", within(*DENSE_URBAN), URBAN_THRESHOLD_FACTOR),
]


@dataclass(frozen=True)
class Baseline:
    """Estimated index distribution centre and spread for an area."""

    mean: float
    variability: float


def _toronto_parks(lat: float, lon: float) -> bool:
    return TORONTO.contains(lat, lon) and (
        lon < -79.45 or (lat > 43.70 and lon > -79.35)
    )


# Named-region estimates take precedence over the latitude bands below.
BASELINE_REGION_RULES: list[RegionRule[Baseline]] = [
    RegionRule(
        "toronto_downtown",
        within(Box(43.63, 43.70, -79.40, -79.35)),
        Baseline(0.15, 0.10),
    ),
    RegionRule(
        "toronto_residential",
        within(Box(43.65, 43.75, -79.9, -78.7)),
        Baseline(0.35, 0.20),
    ),
    RegionRule("toronto_parks", _toronto_parks, Baseline(0.55, 0.25)),
    RegionRule(
        "toronto_waterfront",
        within(Box(43.5, 43.64, -79.9, -78.7)),
        Baseline(0.25, 0.30),
    ),
    RegionRule("toronto", within(TORONTO), Baseline(0.40, 0.20)),
    RegionRule("manhattan", within(MANHATTAN), Baseline(0.20, 0.15)),
    RegionRule("singapore", within(SINGAPORE), Baseline(0.45, 0.25)),
    RegionRule("cairo", within(CAIRO), Baseline(0.10, 0.08)),
    RegionRule("sahara", within(SAHARA), Baseline(0.08, 0.08)),
    RegionRule("arabian", within(ARABIAN), Baseline(0.07, 0.06)),
    RegionRule("atacama", within(ATACAMA), Baseline(0.05, 0.05)),
    RegionRule("gobi", within(GOBI), Baseline(0.10, 0.08)),
    RegionRule(
        "north_american_deserts",
        within(NORTH_AMERICAN_DESERTS),
        Baseline(0.12, 0.10),
    ),
    RegionRule("kalahari_namib", within(KALAHARI_NAMIB), Baseline(0.15, 0.10)),
    RegionRule(
        "australian_outback", within(AUSTRALIAN_OUTBACK), Baseline(0.15, 0.10)
    ),
    RegionRule("amazon", within(AMAZON), Baseline(0.78, 0.20)),
    RegionRule("congo", within(CONGO), Baseline(0.75, 0.20)),
    RegionRule("southeast_asia", within(SOUTHEAST_ASIA), Baseline(0.70, 0.25)),
]

BASELINE_BAND_RULES: list[RegionRule[Baseline]] = [
    RegionRule("equatorial", abs_lat_below(10.0), Baseline(0.62, 0.30)),
    RegionRule("tropical", abs_lat_below(23.5), Baseline(0.50, 0.30)),
    RegionRule("subtropical", abs_lat_below(35.0), Baseline(0.36, 0.30)),
    RegionRule("temperate", abs_lat_below(50.0), Baseline(0.42, 0.30)),
    RegionRule("boreal", abs_lat_below(60.0), Baseline(0.40, 0.25)),
]

POLAR_BASELINE = Baseline(0.15, 0.20)

DEFAULT_IMPERVIOUS_PROBABILITY = 0.25
URBAN_IMPERVIOUS_PROBABILITY = 0.40


def resolve_baseline(lat: float, lon: float) -> tuple[str, Baseline]:
    for rules in (BASELINE_REGION_RULES, BASELINE_BAND_RULES):
        for rule in rules:
            if rule.matches(lat, lon):
                return rule.name, rule.value
    return "polar", POLAR_BASELINE


def is_dense_urban(lat: float, lon: float) -> bool:
    return any(b.contains(lat, lon) for b in DENSE_URBAN)
