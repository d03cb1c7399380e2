"""A single camera rig and everything it owns.

A rig owns its frustum, its footprint mesh and its gate state. Nothing else
mutates them. Geometry is never edited in place: a rebuild produces a new
object, the rig swaps its reference and releases the old one.

Two counters guard the asynchronous work:

  * ``generation`` increments on every parameter edit and frustum rebuild.
    A footprint refresh remembers the generation it started under and
    throws its result away if the rig changed while the raycasts were in
    flight.
  * the gate's sequence number (see ``GateState``) does the same for
    visibility evaluations.

``busy`` keeps a second footprint refresh from starting while one is still
running.
"""

from __future__ import annotations

import math

from .footprint import FootprintMesh, project_footprint
from .frustum import Frustum, build_frustum
from .gate import GateState, GateSubject, evaluate_visibility
from .geometry import head_to_world
from .log import get_logger
from .scene import SceneQuery
from .types import (
    KIND_INDOOR,
    KIND_OUTDOOR,
    LOS_TARGET_FAR_CENTROID,
    GateResult,
    Point3,
    RigConfig,
    RigTransform,
    VisibilitySignals,
)

logger = get_logger(__name__)

# Ranges offered by the settings panel.
PARAM_LIMITS: dict[str, tuple[float, float]] = {
    "hfov_deg": (10.0, 120.0),
    "near": (0.02, 1.0),
    "far": (5.0, 120.0),
    "near_aperture_scale": (0.05, 1.0),
    "sweep_deg": (10.0, 170.0),
    "base_yaw_deg": (-180.0, 180.0),
    "tilt_deg": (0.0, 85.0),
    "yaw_speed_deg": (0.0, 90.0),
    "height": (-100.0, 100.0),
    "floor_y": (-100.0, 100.0),
}

OPTICAL_PARAMS = frozenset({"hfov_deg", "near", "far", "near_aperture_scale"})
MOTION_PARAMS = frozenset(
    {"sweep_deg", "base_yaw_deg", "tilt_deg", "yaw_speed_deg"}
)


class Rig:
    def __init__(self, config: RigConfig) -> None:
        self._initial = config.copy()
        self.config = config.copy()
        self.frustum: Frustum = build_frustum(
            self.config.optical, self.config.style
        )
        self.footprint: FootprintMesh | None = None
        self.footprint_visible = False
        self.gate = GateState()
        self.generation = 0
        self.dirty = True
        self.busy = False
        self.visibility_stale = True
        self.phase = 0.0
        self.yaw_deg = self.config.motion.base_yaw_deg
        self._apply_sweep()

    def __repr__(self) -> str:
        return f"Rig({self.rig_id!r}, kind={self.kind!r})"

    @property
    def rig_id(self) -> str:
        return self.config.rig_id

    @property
    def kind(self) -> str:
        return self.config.kind

    @property
    def is_indoor(self) -> bool:
        return self.config.kind == KIND_INDOOR

    @property
    def zone_exempt(self) -> bool:
        return self.config.kind == KIND_OUTDOOR

    @property
    def gate_result(self) -> GateResult:
        return self.gate.result

    @property
    def show_footprint(self) -> bool:
        return (
            self.gate.result.visible
            and self.footprint_visible
            and self.footprint is not None
        )

    # -- motion --

    def _apply_sweep(self) -> None:
        m = self.config.motion
        if self.is_indoor:
            self.yaw_deg = m.base_yaw_deg + math.sin(self.phase) * (
                m.sweep_deg * 0.5
            )
        else:
            self.yaw_deg = m.base_yaw_deg

    def advance(self, dt: float) -> None:
        """Advance the pan sweep by ``dt`` seconds (indoor rigs only)."""
        if not self.is_indoor:
            return
        self.phase += math.radians(self.config.motion.yaw_speed_deg) * dt
        self._apply_sweep()

    def transform(self) -> RigTransform:
        return RigTransform(
            position=self.config.position,
            yaw_deg=self.yaw_deg,
            tilt_deg=self.config.motion.tilt_deg,
        )

    def world_position(self) -> Point3:
        return self.config.position

    def gate_subject(self) -> GateSubject:
        if self.config.policy.los_target == LOS_TARGET_FAR_CENTROID:
            centroid = head_to_world(
                self.transform(), self.frustum.far_centroid()[None, :]
            )[0]
            target: Point3 = (
                float(centroid[0]),
                float(centroid[1]),
                float(centroid[2]),
            )
        else:
            target = self.world_position()
        return GateSubject(
            world_position=self.world_position(),
            target_point=target,
            zone_id=self.config.zone_id,
            zone_exempt=self.zone_exempt,
        )

    # -- control surface --

    def invalidate(self) -> None:
        self.generation += 1
        self.dirty = True
        self.visibility_stale = True

    def set_param(self, name: str, value: float) -> float:
        """Set one panel parameter, clamped to its range; returns the value used.

        Raises KeyError for names the panel does not offer.
        """
        lo, hi = PARAM_LIMITS[name]
        v = max(lo, min(hi, float(value)))
        if name in OPTICAL_PARAMS:
            setattr(self.config.optical, name, v)
        elif name in MOTION_PARAMS:
            setattr(self.config.motion, name, v)
        elif name == "height":
            x, _, z = self.config.position
            self.config.position = (x, v, z)
        elif name == "floor_y":
            self.config.floor_y = v
        if name in OPTICAL_PARAMS:
            self.rebuild_frustum()
        else:
            self.invalidate()
            self._apply_sweep()
        logger.debug("%s: %s = %s", self.rig_id, name, v)
        return v

    def reset(self) -> None:
        """Restore the configuration the rig was created with."""
        self.config = self._initial.copy()
        self.phase = 0.0
        self._apply_sweep()
        self.rebuild_frustum()

    def rebuild_frustum(self) -> None:
        """Build a new frustum from the current optics; in-flight footprints go stale."""
        self.invalidate()
        old = self.frustum
        self.frustum = build_frustum(self.config.optical, self.config.style)
        old.release()

    def _swap_footprint(self, mesh: FootprintMesh | None) -> None:
        old = self.footprint
        self.footprint = mesh
        self.footprint_visible = mesh is not None
        if old is not None and old is not mesh:
            old.release()

    def needs_footprint(self) -> bool:
        """Indoor rigs move every frame; outdoor rigs only after an edit."""
        return self.is_indoor or self.dirty

    # -- asynchronous refreshes --

    async def refresh_footprint(self, scene: SceneQuery | None) -> bool:
        """Recompute the footprint; returns True if the result was applied."""
        if self.busy:
            return False
        self.busy = True
        generation = self.generation
        try:
            mesh = await project_footprint(
                self.frustum,
                self.transform(),
                self.config.grid,
                scene,
                self.config.floor_y,
            )
        finally:
            self.busy = False

        if generation != self.generation:
            logger.debug(
                "%s: discarding footprint from generation %d (now %d)",
                self.rig_id,
                generation,
                self.generation,
            )
            if mesh is not None:
                mesh.release()
            return False
        if not self.gate.result.visible:
            logger.debug("%s: discarding footprint for hidden rig", self.rig_id)
            if mesh is not None:
                mesh.release()
            return False

        self._swap_footprint(mesh)
        self.dirty = False
        return True

    async def refresh_visibility(
        self, signals: VisibilitySignals, scene: SceneQuery | None
    ) -> bool:
        """Re-run the gate; returns True if this evaluation was applied."""
        seq = self.gate.dispatch()
        self.visibility_stale = False
        result = await evaluate_visibility(
            self.gate_subject(), signals, self.config.policy, scene
        )
        return self.gate.apply(seq, result)

    def release(self) -> None:
        self.frustum.release()
        self._swap_footprint(None)
