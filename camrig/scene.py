"""Scene query capability: asynchronous ray casts against the environment.

The host 3D viewer owns the real geometry; camrig only needs a single
coroutine from it::

    async def raycast(origin, direction, max_distance) -> RaycastHit

which may raise (or be missing entirely) when the host cannot answer.
Consumers never let that escape: ``safe_raycast`` folds failures into
``None`` and each caller decides what a failure means (plane fallback for
footprints, fail-open for line of sight).

``BoxScene`` is a self-contained implementation over axis-aligned boxes,
used by the simulator and the tests. It runs the slab test for every box in
one vectorized numpy pass, the same batching style the layout visibility
sweep uses for ray/segment intersections.
"""

from __future__ import annotations

import asyncio
import math
from typing import Protocol

import numpy as np

from .log import get_logger
from .types import MISS, Point3, RaycastHit

logger = get_logger(__name__)


class SceneQueryError(RuntimeError):
    """The host could not answer a scene query."""


class SceneQuery(Protocol):
    async def raycast(
        self, origin: Point3, direction: Point3, max_distance: float
    ) -> RaycastHit: ...


async def safe_raycast(
    scene: SceneQuery | None,
    origin: np.ndarray | Point3,
    direction: np.ndarray | Point3,
    max_distance: float,
) -> RaycastHit | None:
    """Cast a ray, returning ``None`` if the scene is missing or fails."""
    if scene is None:
        return None
    o = tuple(float(c) for c in origin)
    d = tuple(float(c) for c in direction)
    try:
        return await scene.raycast(o, d, max_distance)  # type: ignore[arg-type]
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.debug("raycast failed from %s: %s", o, e)
        return None


class NullScene:
    """A scene with nothing in it."""

    def __init__(self) -> None:
        self.calls = 0

    async def raycast(
        self, origin: Point3, direction: Point3, max_distance: float
    ) -> RaycastHit:
        self.calls += 1
        return MISS


class BoxScene:
    """Axis-aligned boxes, each given as ``(min_corner, max_corner)``.

    A ray starting inside a box does not hit that box.
    """

    def __init__(
        self,
        boxes: list[tuple[Point3, Point3]] | None = None,
        delay: float = 0.0,
    ) -> None:
        boxes = boxes or []
        if boxes:
            arr = np.array(boxes, dtype=np.float64)  # (B, 2, 3)
            self._mins = np.minimum(arr[:, 0, :], arr[:, 1, :])
            self._maxs = np.maximum(arr[:, 0, :], arr[:, 1, :])
        else:
            self._mins = np.zeros((0, 3), dtype=np.float64)
            self._maxs = np.zeros((0, 3), dtype=np.float64)
        self.delay = delay
        self.calls = 0

    def __len__(self) -> int:
        return len(self._mins)

    def boxes(self) -> list[tuple[Point3, Point3]]:
        return [
            (tuple(lo.tolist()), tuple(hi.tolist()))  # type: ignore[misc]
            for lo, hi in zip(self._mins, self._maxs)
        ]

    @staticmethod
    def from_dict(d: dict | None) -> BoxScene:
        if not d:
            return BoxScene()
        return BoxScene(
            boxes=[
                (tuple(b["min"]), tuple(b["max"]))  # type: ignore[misc]
                for b in d.get("boxes", [])
            ],
        )

    def to_dict(self) -> dict:
        return {
            "boxes": [
                {"min": list(lo), "max": list(hi)} for lo, hi in self.boxes()
            ]
        }

    def intersect(
        self, origin: Point3, direction: Point3, max_distance: float
    ) -> RaycastHit:
        """Synchronous nearest-hit query."""
        if len(self) == 0 or max_distance < 0:
            return MISS
        o = np.asarray(origin, dtype=np.float64)
        d = np.asarray(direction, dtype=np.float64)
        norm = math.sqrt(float(d @ d))
        if norm < 1e-12:
            return MISS
        d = d / norm

        lo = self._mins
        hi = self._maxs
        with np.errstate(divide="ignore", invalid="ignore"):
            t1 = (lo - o) / d
            t2 = (hi - o) / d
        tmin = np.minimum(t1, t2)
        tmax = np.maximum(t1, t2)

        # Rays parallel to a slab either always or never overlap it
        parallel = np.abs(d) < 1e-12
        inside = (o >= lo) & (o <= hi)
        tmin = np.where(parallel, np.where(inside, -np.inf, np.inf), tmin)
        tmax = np.where(parallel, np.where(inside, np.inf, -np.inf), tmax)

        t_enter = tmin.max(axis=1)
        t_exit = tmax.min(axis=1)
        valid = (t_enter <= t_exit) & (t_enter >= 0) & (t_enter <= max_distance)
        if not np.any(valid):
            return MISS
        t = float(np.min(np.where(valid, t_enter, np.inf)))
        p = o + d * t
        return RaycastHit(
            hit=True,
            point=(float(p[0]), float(p[1]), float(p[2])),
            distance=t,
        )

    async def raycast(
        self, origin: Point3, direction: Point3, max_distance: float
    ) -> RaycastHit:
        self.calls += 1
        if self.delay > 0:
            await asyncio.sleep(self.delay)
        return self.intersect(origin, direction, max_distance)
