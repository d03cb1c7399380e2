"""Depth-aware footprint projection.

The footprint is where a camera's view actually lands. A U×V lattice is
spread across the frustum: each row interpolates between the left and right
edges of the near rectangle (and, independently, of the far rectangle), so
sample ``i`` of the near lattice pairs with sample ``i`` of the far lattice.
Each pair defines a segment through the frustum volume.

Every segment is ray-cast against the scene, from its near end toward its
far end and bounded by its length. A hit gives the projected point, which
lets the footprint wrap over furniture and walls. Without a hit (or when
the query fails) the segment is intersected with a horizontal reference
plane at ``floor_y``. If any segment cannot reach the plane either, the
footprint for this refresh is undefined and the whole mesh is hidden; a
partial mesh would leave floating fragments.

Resolved points are triangulated two triangles per lattice cell in mount
space (world minus rig position), lifted slightly to avoid z-fighting with
the surface they rest on.

All U·V raycasts of a refresh are issued together; the refresh as a whole is
the unit of work. Mutual exclusion and discarding stale results are the
owning rig's job (see ``Rig.refresh_footprint``).
"""

from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass

import numpy as np
from shapely.geometry import Polygon as ShapelyPolygon
from shapely.ops import unary_union

from .frustum import Frustum
from .geometry import head_to_world, lerp_rows, world_to_mount
from .log import get_logger
from .scene import SceneQuery, safe_raycast
from .types import ProjectorGrid, RigTransform

logger = get_logger(__name__)

FOOTPRINT_LIFT = 0.003
MIN_SEGMENT_LENGTH = 1e-9


@dataclass
class FootprintMesh:
    """Triangle soup in mount space, ``(tris * 3, 3)`` float32."""

    positions: np.ndarray
    grid: ProjectorGrid
    released: bool = False

    @property
    def triangle_count(self) -> int:
        return len(self.positions) // 3

    def triangles(self) -> np.ndarray:
        return self.positions.reshape(-1, 3, 3)

    def coverage_area(self) -> float:
        """Top-down (x, z) area covered by the mesh."""
        polys = []
        for tri in self.triangles():
            poly = ShapelyPolygon([(float(p[0]), float(p[2])) for p in tri])
            if poly.is_valid and poly.area > 0:
                polys.append(poly)
        if not polys:
            return 0.0
        return float(unary_union(polys).area)

    def release(self) -> None:
        self.positions = np.zeros((0, 3), dtype=np.float32)
        self.released = True


def sample_lattice(
    frustum: Frustum, grid: ProjectorGrid
) -> tuple[np.ndarray, np.ndarray]:
    """Return matching ``(u*v, 3)`` near and far lattices in head space.

    Row-major: sample ``yi * u + xi`` is column ``xi`` of row ``yi``.
    """
    grid = grid.clamped()
    ty = np.linspace(0.0, 1.0, grid.v)
    tx = np.linspace(0.0, 1.0, grid.u)

    def lattice(rect: np.ndarray) -> np.ndarray:
        left = lerp_rows(rect[0], rect[3], ty)  # (v, 3)
        right = lerp_rows(rect[1], rect[2], ty)
        pts = (
            left[:, None, :]
            + (right - left)[:, None, :] * tx[None, :, None]
        )
        return pts.reshape(-1, 3)

    return lattice(frustum.near_rect), lattice(frustum.far_rect)


def plane_intersection(
    near: np.ndarray, far: np.ndarray, plane_y: float
) -> np.ndarray | None:
    """Point where segment near->far crosses ``y = plane_y``, if it does."""
    dy = float(far[1] - near[1])
    if dy == 0.0:
        return None
    t = (plane_y - float(near[1])) / dy
    if not math.isfinite(t) or t < 0.0 or t > 1.0:
        return None
    return near + (far - near) * t


def triangulate(points: np.ndarray, grid: ProjectorGrid) -> np.ndarray:
    """Two triangles per lattice cell: (p00, p10, p11), (p00, p11, p01)."""
    u, v = grid.u, grid.v
    lattice = points.reshape(v, u, 3)
    p00 = lattice[:-1, :-1]
    p10 = lattice[:-1, 1:]
    p01 = lattice[1:, :-1]
    p11 = lattice[1:, 1:]
    cells = np.stack([p00, p10, p11, p00, p11, p01], axis=2)  # (v-1, u-1, 6, 3)
    out = cells.reshape(-1, 3).astype(np.float32)
    out[:, 1] += FOOTPRINT_LIFT
    return out


async def _resolve_sample(
    scene: SceneQuery | None,
    near: np.ndarray,
    far: np.ndarray,
    floor_y: float,
) -> np.ndarray | None:
    seg = far - near
    length = math.sqrt(float(seg @ seg))
    if length < MIN_SEGMENT_LENGTH:
        return None
    hit = await safe_raycast(scene, near, seg / length, length)
    if hit is not None and hit.hit and hit.point is not None:
        return np.asarray(hit.point, dtype=np.float64)
    return plane_intersection(near, far, floor_y)


async def project_footprint(
    frustum: Frustum,
    transform: RigTransform,
    grid: ProjectorGrid,
    scene: SceneQuery | None,
    floor_y: float,
) -> FootprintMesh | None:
    """Project the frustum onto the scene; ``None`` means hide the footprint."""
    grid = grid.clamped()
    near_local, far_local = sample_lattice(frustum, grid)
    near_world = head_to_world(transform, near_local)
    far_world = head_to_world(transform, far_local)

    resolved = await asyncio.gather(
        *(
            _resolve_sample(scene, near_world[i], far_world[i], floor_y)
            for i in range(len(near_world))
        )
    )
    if any(p is None for p in resolved):
        logger.debug("footprint undefined: a sample misses plane y=%s", floor_y)
        return None

    world = np.array(resolved, dtype=np.float64)
    return FootprintMesh(
        positions=triangulate(world_to_mount(transform, world), grid),
        grid=grid,
    )
