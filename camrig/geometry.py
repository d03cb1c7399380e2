"""Rig-space transforms.

A rig is a two-level pivot: the mount sits at ``position`` with no rotation,
the pan pivot yaws about +Y, and the tilt pivot pitches about +X by
``-tilt`` so positive tilt looks down. Frustum geometry lives in tilt-pivot
space (forward is -Z); footprint meshes live in mount space so they stay
put while the head pans.
"""

from __future__ import annotations

import math

import numpy as np

from .types import Point3, RigTransform


def rotation_y(angle_rad: float) -> np.ndarray:
    c = math.cos(angle_rad)
    s = math.sin(angle_rad)
    return np.array(
        [[c, 0.0, s], [0.0, 1.0, 0.0], [-s, 0.0, c]], dtype=np.float64
    )


def rotation_x(angle_rad: float) -> np.ndarray:
    c = math.cos(angle_rad)
    s = math.sin(angle_rad)
    return np.array(
        [[1.0, 0.0, 0.0], [0.0, c, -s], [0.0, s, c]], dtype=np.float64
    )


def head_rotation(transform: RigTransform) -> np.ndarray:
    """Rotation taking tilt-pivot space to mount space."""
    return rotation_y(math.radians(transform.yaw_deg)) @ rotation_x(
        -math.radians(transform.tilt_deg)
    )


def head_to_world(transform: RigTransform, points: np.ndarray) -> np.ndarray:
    """Transform ``(N, 3)`` head-space points to world space."""
    rot = head_rotation(transform)
    return points @ rot.T + np.asarray(transform.position, dtype=np.float64)


def world_to_mount(transform: RigTransform, points: np.ndarray) -> np.ndarray:
    return points - np.asarray(transform.position, dtype=np.float64)


def forward_vector(transform: RigTransform) -> np.ndarray:
    return head_rotation(transform) @ np.array([0.0, 0.0, -1.0])


def distance(a: Point3 | np.ndarray, b: Point3 | np.ndarray) -> float:
    d = np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64)
    return float(math.sqrt(float(d @ d)))


def lerp_rows(a: np.ndarray, b: np.ndarray, t: np.ndarray) -> np.ndarray:
    """Interpolate ``a -> b`` at each parameter in ``t``; returns ``(len(t), 3)``."""
    return a[None, :] + (b - a)[None, :] * t[:, None]
