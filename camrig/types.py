"""Data types matching the camrig site JSON schema."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace

Point3 = tuple[float, float, float]

MODE_INSIDE = "mode.inside"
MODE_OUTSIDE = "mode.outside"
MODE_DOLLHOUSE = "mode.dollhouse"
MODE_FLOORPLAN = "mode.floorplan"
MODE_TRANSITIONING = "mode.transitioning"

KIND_INDOOR = "indoor"
KIND_OUTDOOR = "outdoor"

LOS_TARGET_BODY = "body"
LOS_TARGET_FAR_CENTROID = "far_centroid"

MIN_NEAR = 0.01
MIN_DEPTH = 0.01


def _clamp(v: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, v))


def _point(d: list | tuple | None, default: Point3) -> Point3:
    if d is None:
        return default
    x, y, z = d
    return (float(x), float(y), float(z))


@dataclass
class OpticalConfig:
    hfov_deg: float = 32.0
    aspect: float = 16 / 9
    near: float = 0.12
    far: float = 19.0
    near_aperture_scale: float = 0.22

    def clamped(self) -> OpticalConfig:
        """Copy with every field forced into a renderable range."""
        near = max(MIN_NEAR, self.near) if math.isfinite(self.near) else MIN_NEAR
        far = self.far if math.isfinite(self.far) else near + MIN_DEPTH
        scale = self.near_aperture_scale
        if not math.isfinite(scale):
            scale = 1.0
        hfov = self.hfov_deg if math.isfinite(self.hfov_deg) else 32.0
        aspect = self.aspect if math.isfinite(self.aspect) else 16 / 9
        return OpticalConfig(
            hfov_deg=_clamp(hfov, 0.1, 179.9),
            aspect=max(1e-3, aspect),
            near=near,
            far=max(near + MIN_DEPTH, far),
            near_aperture_scale=_clamp(scale, 0.05, 1.0),
        )

    @staticmethod
    def from_dict(d: dict | None) -> OpticalConfig:
        if not d:
            return OpticalConfig()
        default = OpticalConfig()
        return OpticalConfig(
            hfov_deg=d.get("hfov_deg", default.hfov_deg),
            aspect=d.get("aspect", default.aspect),
            near=d.get("near", default.near),
            far=d.get("far", default.far),
            near_aperture_scale=d.get(
                "near_aperture_scale", default.near_aperture_scale
            ),
        )

    def to_dict(self) -> dict:
        return {
            "hfov_deg": self.hfov_deg,
            "aspect": self.aspect,
            "near": self.near,
            "far": self.far,
            "near_aperture_scale": self.near_aperture_scale,
        }


@dataclass
class MotionConfig:
    sweep_deg: float = 122.0
    base_yaw_deg: float = 93.0
    tilt_deg: float = 10.0
    yaw_speed_deg: float = 14.0

    @staticmethod
    def from_dict(d: dict | None) -> MotionConfig:
        if not d:
            return MotionConfig()
        default = MotionConfig()
        return MotionConfig(
            sweep_deg=d.get("sweep_deg", default.sweep_deg),
            base_yaw_deg=d.get("base_yaw_deg", default.base_yaw_deg),
            tilt_deg=d.get("tilt_deg", default.tilt_deg),
            yaw_speed_deg=d.get("yaw_speed_deg", default.yaw_speed_deg),
        )

    def to_dict(self) -> dict:
        return {
            "sweep_deg": self.sweep_deg,
            "base_yaw_deg": self.base_yaw_deg,
            "tilt_deg": self.tilt_deg,
            "yaw_speed_deg": self.yaw_speed_deg,
        }


@dataclass
class ProjectorGrid:
    u: int = 20
    v: int = 12

    def clamped(self) -> ProjectorGrid:
        u = self.u if math.isfinite(self.u) else 20
        v = self.v if math.isfinite(self.v) else 12
        return ProjectorGrid(u=max(2, int(u)), v=max(2, int(v)))

    @property
    def sample_count(self) -> int:
        return self.u * self.v

    @property
    def triangle_count(self) -> int:
        return (self.u - 1) * (self.v - 1) * 2

    @staticmethod
    def from_dict(d: dict | None) -> ProjectorGrid:
        if not d:
            return ProjectorGrid()
        return ProjectorGrid(u=d.get("u", 20), v=d.get("v", 12))

    def to_dict(self) -> dict:
        return {"u": self.u, "v": self.v}


@dataclass
class RigTransform:
    """Mount position plus pan (yaw) and downward tilt, in degrees."""

    position: Point3 = (0.0, 0.0, 0.0)
    yaw_deg: float = 0.0
    tilt_deg: float = 0.0


@dataclass
class RigStyle:
    fov_color: int = 0x00FF00
    fill_opacity: float = 0.08
    edge_radius: float = 0.016
    base_edge_radius: float = 0.010
    footprint_opacity: float = 0.18

    @staticmethod
    def from_dict(d: dict | None) -> RigStyle:
        if not d:
            return RigStyle()
        default = RigStyle()
        return RigStyle(
            fov_color=d.get("fov_color", default.fov_color),
            fill_opacity=d.get("fill_opacity", default.fill_opacity),
            edge_radius=d.get("edge_radius", default.edge_radius),
            base_edge_radius=d.get(
                "base_edge_radius", default.base_edge_radius
            ),
            footprint_opacity=d.get(
                "footprint_opacity", default.footprint_opacity
            ),
        )

    def to_dict(self) -> dict:
        return {
            "fov_color": self.fov_color,
            "fill_opacity": self.fill_opacity,
            "edge_radius": self.edge_radius,
            "base_edge_radius": self.base_edge_radius,
            "footprint_opacity": self.footprint_opacity,
        }


@dataclass
class GatePolicy:
    """Which visibility gates are active and how line of sight is aimed."""

    show_in_overview: bool = True
    overview_modes: frozenset[str] = frozenset(
        {MODE_FLOORPLAN, MODE_DOLLHOUSE}
    )
    allowed_modes: frozenset[str] = frozenset({MODE_INSIDE})
    use_zone_gate: bool = True
    use_sweep_gate: bool = True
    use_distance_gate: bool = True
    max_distance: float = 18.0
    fade_start: float | None = None
    use_los: bool = True
    los_target: str = LOS_TARGET_BODY
    los_epsilon: float = 0.05

    def effective_fade_start(self) -> float:
        if self.fade_start is not None:
            return min(self.fade_start, self.max_distance)
        return max(0.0, self.max_distance - 8.0)

    @staticmethod
    def from_dict(d: dict | None) -> GatePolicy:
        if not d:
            return GatePolicy()
        default = GatePolicy()
        return GatePolicy(
            show_in_overview=d.get(
                "show_in_overview", default.show_in_overview
            ),
            overview_modes=frozenset(
                d.get("overview_modes", default.overview_modes)
            ),
            allowed_modes=frozenset(
                d.get("allowed_modes", default.allowed_modes)
            ),
            use_zone_gate=d.get("use_zone_gate", default.use_zone_gate),
            use_sweep_gate=d.get("use_sweep_gate", default.use_sweep_gate),
            use_distance_gate=d.get(
                "use_distance_gate", default.use_distance_gate
            ),
            max_distance=d.get("max_distance", default.max_distance),
            fade_start=d.get("fade_start"),
            use_los=d.get("use_los", default.use_los),
            los_target=d.get("los_target", default.los_target),
            los_epsilon=d.get("los_epsilon", default.los_epsilon),
        )

    def to_dict(self) -> dict:
        d: dict = {
            "show_in_overview": self.show_in_overview,
            "overview_modes": sorted(self.overview_modes),
            "allowed_modes": sorted(self.allowed_modes),
            "use_zone_gate": self.use_zone_gate,
            "use_sweep_gate": self.use_sweep_gate,
            "use_distance_gate": self.use_distance_gate,
            "max_distance": self.max_distance,
            "use_los": self.use_los,
            "los_target": self.los_target,
            "los_epsilon": self.los_epsilon,
        }
        if self.fade_start is not None:
            d["fade_start"] = self.fade_start
        return d


@dataclass
class RigConfig:
    rig_id: str
    kind: str = KIND_OUTDOOR
    position: Point3 = (0.0, 0.0, 0.0)
    optical: OpticalConfig = field(default_factory=OpticalConfig)
    motion: MotionConfig = field(default_factory=MotionConfig)
    grid: ProjectorGrid = field(default_factory=ProjectorGrid)
    floor_y: float = 0.4
    zone_id: str | None = None
    style: RigStyle = field(default_factory=RigStyle)
    policy: GatePolicy = field(default_factory=GatePolicy)

    def copy(self) -> RigConfig:
        return replace(
            self,
            optical=replace(self.optical),
            motion=replace(self.motion),
            grid=replace(self.grid),
            style=replace(self.style),
            policy=replace(self.policy),
        )

    @staticmethod
    def from_dict(d: dict) -> RigConfig:
        return RigConfig(
            rig_id=d["id"],
            kind=d.get("kind", KIND_OUTDOOR),
            position=_point(d.get("position"), (0.0, 0.0, 0.0)),
            optical=OpticalConfig.from_dict(d.get("optical")),
            motion=MotionConfig.from_dict(d.get("motion")),
            grid=ProjectorGrid.from_dict(d.get("projector_grid")),
            floor_y=d.get("floor_y", 0.4),
            zone_id=d.get("zone_id"),
            style=RigStyle.from_dict(d.get("style")),
            policy=GatePolicy.from_dict(d.get("policy")),
        )

    def to_dict(self) -> dict:
        d: dict = {
            "id": self.rig_id,
            "kind": self.kind,
            "position": list(self.position),
            "optical": self.optical.to_dict(),
            "motion": self.motion.to_dict(),
            "projector_grid": self.grid.to_dict(),
            "floor_y": self.floor_y,
            "style": self.style.to_dict(),
            "policy": self.policy.to_dict(),
        }
        if self.zone_id is not None:
            d["zone_id"] = self.zone_id
        return d


@dataclass(frozen=True)
class VisibilitySignals:
    """Latest snapshot of what the viewer is doing."""

    mode: str = MODE_INSIDE
    zones: frozenset[str] = frozenset()
    viewer_position: Point3 | None = None
    sweep_zone_id: str | None = None


@dataclass(frozen=True)
class GateResult:
    visible: bool
    fade: float = 1.0


HIDDEN = GateResult(visible=False, fade=0.0)
SHOWN = GateResult(visible=True, fade=1.0)


@dataclass(frozen=True)
class RaycastHit:
    hit: bool
    point: Point3 | None = None
    distance: float | None = None


MISS = RaycastHit(hit=False)
