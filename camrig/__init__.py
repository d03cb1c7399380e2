"""Security-camera rig frustums, footprints and visibility gating."""

from .frustum import Frustum, build_frustum
from .gate import GateState, GateSubject, evaluate_visibility
from .registry import RigRegistry
from .rig import Rig
from .types import (
    GatePolicy,
    GateResult,
    OpticalConfig,
    ProjectorGrid,
    RigConfig,
    VisibilitySignals,
)

__all__ = [
    "Frustum",
    "GatePolicy",
    "GateResult",
    "GateState",
    "GateSubject",
    "OpticalConfig",
    "ProjectorGrid",
    "Rig",
    "RigConfig",
    "RigRegistry",
    "VisibilitySignals",
    "build_frustum",
    "evaluate_visibility",
]
