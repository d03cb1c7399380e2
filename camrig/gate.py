"""Visibility gating: should a rig be drawn for the current viewer?

Four independent signals are fused into one decision per rig. The gates run
in order and the first one that decides ends the evaluation:

  mode       Overview modes (floorplan, dollhouse) always show rigs when the
             policy allows it; other modes outside ``allowed_modes`` hide.
  zone       The rig is bound to a zone id and only shows while the viewer
             is in that zone. A strong "current sweep zone" signal, when
             present, overrides the weaker "zones containing the viewer"
             set. Outdoor rigs are zone-exempt.
  distance   Beyond ``max_distance`` the rig hides. Between ``fade_start``
             and ``max_distance`` a fade factor dims it linearly. The bound
             itself is inclusive.
  line of    A ray from the viewer toward the rig's target point. A hit
  sight      strictly nearer than the target (less ``los_epsilon``) means
             something is in the way.

Only the last gate touches the scene. If that query fails the rig stays
visible: losing the capability must not hide rigs permanently.

Evaluations are asynchronous and may finish out of order. ``GateState``
tags each dispatch with a sequence number and only accepts the result of
the most recent one.
"""

from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass

import numpy as np

from .log import get_logger
from .scene import SceneQuery
from .types import (
    HIDDEN,
    SHOWN,
    GatePolicy,
    GateResult,
    Point3,
    VisibilitySignals,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class GateSubject:
    """What the gate needs to know about a rig, captured at dispatch."""

    world_position: Point3
    target_point: Point3
    zone_id: str | None = None
    zone_exempt: bool = False


def mode_gate(mode: str, policy: GatePolicy) -> GateResult | None:
    """Decide from the viewer mode alone, or ``None`` to continue."""
    if mode in policy.overview_modes:
        return SHOWN if policy.show_in_overview else HIDDEN
    if mode not in policy.allowed_modes:
        return HIDDEN
    return None


def zone_matches(
    subject: GateSubject, signals: VisibilitySignals, policy: GatePolicy
) -> bool:
    if not policy.use_zone_gate or subject.zone_exempt:
        return True
    if subject.zone_id is None:
        return False
    if policy.use_sweep_gate and signals.sweep_zone_id is not None:
        return signals.sweep_zone_id == subject.zone_id
    return subject.zone_id in signals.zones


def fade_factor(dist: float, fade_start: float, max_distance: float) -> float:
    if dist <= fade_start:
        return 1.0
    if dist >= max_distance or max_distance <= fade_start:
        return 0.0
    return (max_distance - dist) / (max_distance - fade_start)


async def line_of_sight_clear(
    viewer: Point3,
    target: Point3,
    scene: SceneQuery | None,
    epsilon: float,
) -> bool:
    """True unless the scene reports a hit strictly before the target."""
    seg = np.asarray(target, dtype=np.float64) - np.asarray(
        viewer, dtype=np.float64
    )
    length = math.sqrt(float(seg @ seg))
    if length < 1e-9 or scene is None:
        return True
    direction = seg / length
    try:
        hit = await scene.raycast(
            viewer,
            (float(direction[0]), float(direction[1]), float(direction[2])),
            max(0.0, length - epsilon),
        )
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.debug("line-of-sight query failed, treating as clear: %s", e)
        return True
    if hit is None or not hit.hit:
        return True
    hit_dist = hit.distance if hit.distance is not None else length
    return not (hit_dist < length - epsilon)


async def evaluate_visibility(
    subject: GateSubject,
    signals: VisibilitySignals,
    policy: GatePolicy,
    scene: SceneQuery | None,
) -> GateResult:
    decided = mode_gate(signals.mode, policy)
    if decided is not None:
        return decided

    if not zone_matches(subject, signals, policy):
        return HIDDEN

    viewer = signals.viewer_position
    if viewer is None:
        return SHOWN

    fade = 1.0
    if policy.use_distance_gate:
        d = np.asarray(subject.world_position, dtype=np.float64) - np.asarray(
            viewer, dtype=np.float64
        )
        dist = math.sqrt(float(d @ d))
        if dist > policy.max_distance:
            return HIDDEN
        fade = fade_factor(
            dist, policy.effective_fade_start(), policy.max_distance
        )

    if policy.use_los:
        clear = await line_of_sight_clear(
            viewer, subject.target_point, scene, policy.los_epsilon
        )
        if not clear:
            return HIDDEN

    return GateResult(visible=True, fade=fade)


class GateState:
    """Latest applied gate result for one rig, with stale-result rejection."""

    def __init__(self, initial: GateResult = SHOWN) -> None:
        self.result = initial
        self._latest_seq = 0
        self.applied_seq = 0

    @property
    def latest_seq(self) -> int:
        return self._latest_seq

    def dispatch(self) -> int:
        self._latest_seq += 1
        return self._latest_seq

    def apply(self, seq: int, result: GateResult) -> bool:
        """Apply ``result`` if ``seq`` is still the newest dispatch."""
        if seq != self._latest_seq:
            logger.debug(
                "discarding stale gate result %d (latest %d)",
                seq,
                self._latest_seq,
            )
            return False
        self.result = result
        self.applied_seq = seq
        return True
