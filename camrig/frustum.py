"""Truncated view frustum construction.

``build_frustum`` turns optical parameters into the solid that represents
what a camera can see between its near and far distances:

  * eight corners, four on the near plane and four on the far plane, in the
    camera head's local space with forward along -Z;
  * twelve renderable edges: four longitudinal "rays" from each near corner
    to the matching far corner, plus the near and far perimeters;
  * a triangle soup of the four side walls and a small near cap. The far
    end is left open.

The near rectangle is shrunk by ``near_aperture_scale`` so the solid appears
to emerge from an aperture inside the housing bezel. The far rectangle is
never scaled, so the visible cone at range is unaffected.

Inputs come from a live control surface, so nothing here raises: the
optical config is clamped first and degenerate edges are simply dropped.
Every call allocates new arrays; a rig replaces its frustum wholesale and
calls ``release()`` on the old one.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

import numpy as np

from .types import OpticalConfig, RigStyle

MIN_EDGE_LENGTH = 1e-6


@dataclass(frozen=True)
class FrustumDims:
    half_w: float
    half_h: float
    dist: float


def vertical_fov_rad(hfov_deg: float, aspect: float) -> float:
    h = math.radians(hfov_deg)
    return 2.0 * math.atan(math.tan(h / 2.0) / aspect)


def frustum_dims(hfov_deg: float, aspect: float, dist: float) -> FrustumDims:
    h = math.radians(hfov_deg)
    v = vertical_fov_rad(hfov_deg, aspect)
    return FrustumDims(
        half_w=math.tan(h / 2.0) * dist,
        half_h=math.tan(v / 2.0) * dist,
        dist=dist,
    )


def _rect(half_w: float, half_h: float, z: float) -> np.ndarray:
    return np.array(
        [
            (-half_w, -half_h, z),
            (half_w, -half_h, z),
            (half_w, half_h, z),
            (-half_w, half_h, z),
        ],
        dtype=np.float64,
    )


@dataclass
class Edge:
    start: np.ndarray
    end: np.ndarray
    radius: float

    @property
    def length(self) -> float:
        d = self.end - self.start
        return float(math.sqrt(float(d @ d)))


@dataclass(frozen=True)
class CameraProjection:
    """Parameters for keeping a host perspective camera in step."""

    vfov_deg: float
    aspect: float
    near: float
    far: float


@dataclass
class Frustum:
    optical: OpticalConfig
    near_rect: np.ndarray  # (4, 3)
    far_rect: np.ndarray  # (4, 3)
    edges: list[Edge] = field(default_factory=list)
    faces: np.ndarray = field(
        default_factory=lambda: np.zeros((0, 3), dtype=np.float32)
    )
    released: bool = False

    @property
    def triangle_count(self) -> int:
        return len(self.faces) // 3

    def far_centroid(self) -> np.ndarray:
        return self.far_rect.mean(axis=0)

    def near_size(self) -> tuple[float, float]:
        return _rect_size(self.near_rect)

    def far_size(self) -> tuple[float, float]:
        return _rect_size(self.far_rect)

    def camera_projection(self) -> CameraProjection:
        return CameraProjection(
            vfov_deg=math.degrees(
                vertical_fov_rad(self.optical.hfov_deg, self.optical.aspect)
            ),
            aspect=self.optical.aspect,
            near=self.optical.near,
            far=self.optical.far,
        )

    def release(self) -> None:
        """Drop geometry buffers. The frustum must not be drawn afterwards."""
        self.edges = []
        self.faces = np.zeros((0, 3), dtype=np.float32)
        self.released = True


def _rect_size(rect: np.ndarray) -> tuple[float, float]:
    return (
        float(rect[1][0] - rect[0][0]),
        float(rect[2][1] - rect[1][1]),
    )


def _edges(
    near_rect: np.ndarray, far_rect: np.ndarray, style: RigStyle
) -> list[Edge]:
    candidates: list[Edge] = []
    for i in range(4):
        candidates.append(Edge(near_rect[i], far_rect[i], style.edge_radius))
    for rect in (near_rect, far_rect):
        for i in range(4):
            j = (i + 1) % 4
            candidates.append(Edge(rect[i], rect[j], style.base_edge_radius))
    return [e for e in candidates if e.length > MIN_EDGE_LENGTH]


def _faces(near_rect: np.ndarray, far_rect: np.ndarray) -> np.ndarray:
    n0, n1, n2, n3 = near_rect
    f0, f1, f2, f3 = far_rect
    tris: list[np.ndarray] = []
    for a, b, c, d in (
        (n0, n1, f1, f0),
        (n1, n2, f2, f1),
        (n2, n3, f3, f2),
        (n3, n0, f0, f3),
    ):
        tris.extend((a, b, c, a, c, d))
    # Aperture cap
    tris.extend((n0, n1, n2, n0, n2, n3))
    return np.array(tris, dtype=np.float32)


def build_frustum(
    cfg: OpticalConfig, style: RigStyle | None = None
) -> Frustum:
    """Build a truncated frustum with a shrunk near rectangle."""
    style = style or RigStyle()
    optical = cfg.clamped()

    n = frustum_dims(optical.hfov_deg, optical.aspect, optical.near)
    f = frustum_dims(optical.hfov_deg, optical.aspect, optical.far)
    s = optical.near_aperture_scale

    near_rect = _rect(n.half_w * s, n.half_h * s, -optical.near)
    far_rect = _rect(f.half_w, f.half_h, -optical.far)

    return Frustum(
        optical=optical,
        near_rect=near_rect,
        far_rect=far_rect,
        edges=_edges(near_rect, far_rect, style),
        faces=_faces(near_rect, far_rect),
    )
