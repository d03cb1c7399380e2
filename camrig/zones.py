"""Named floor regions and point membership.

The host viewer reports which rooms contain the current viewpoint. A
``ZoneMap`` plays that role when camrig runs without a host: each zone is a
floor polygon in (x, z) with an optional vertical extent, and membership is
plain containment.
"""

from __future__ import annotations

from dataclasses import dataclass

from shapely.geometry import Point as ShapelyPoint
from shapely.geometry import Polygon as ShapelyPolygon

from .types import Point3


@dataclass
class Zone:
    zone_id: str
    outline: list[tuple[float, float]]
    min_y: float = float("-inf")
    max_y: float = float("inf")

    def __post_init__(self) -> None:
        self._poly = (
            ShapelyPolygon(self.outline) if len(self.outline) >= 3 else None
        )

    def contains(self, position: Point3) -> bool:
        x, y, z = position
        if not (self.min_y <= y <= self.max_y):
            return False
        if self._poly is None:
            return False
        return bool(self._poly.covers(ShapelyPoint(x, z)))

    @staticmethod
    def from_dict(d: dict) -> Zone:
        return Zone(
            zone_id=d["id"],
            outline=[(float(p[0]), float(p[1])) for p in d["outline"]],
            min_y=d.get("min_y", float("-inf")),
            max_y=d.get("max_y", float("inf")),
        )

    def to_dict(self) -> dict:
        d: dict = {"id": self.zone_id, "outline": [list(p) for p in self.outline]}
        if self.min_y != float("-inf"):
            d["min_y"] = self.min_y
        if self.max_y != float("inf"):
            d["max_y"] = self.max_y
        return d


class ZoneMap:
    def __init__(self, zones: list[Zone] | None = None) -> None:
        self.zones = list(zones or [])

    def zones_at(self, position: Point3) -> frozenset[str]:
        return frozenset(z.zone_id for z in self.zones if z.contains(position))

    def primary_zone_at(self, position: Point3) -> str | None:
        """First zone (in declaration order) containing ``position``."""
        for z in self.zones:
            if z.contains(position):
                return z.zone_id
        return None

    @staticmethod
    def from_list(items: list[dict] | None) -> ZoneMap:
        return ZoneMap([Zone.from_dict(d) for d in items or []])

    def to_list(self) -> list[dict]:
        return [z.to_dict() for z in self.zones]
