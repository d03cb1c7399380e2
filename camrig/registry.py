"""The set of live rigs.

The registry is an explicit object handed to whatever needs it (the
animator, a settings UI, a renderer). Adding and removing rigs are
operations on it; removal releases the rig's geometry.
"""

from __future__ import annotations

from typing import Iterator

from .log import get_logger
from .rig import Rig
from .types import RigConfig

logger = get_logger(__name__)


class RigRegistry:
    def __init__(self) -> None:
        self._rigs: dict[str, Rig] = {}

    def __len__(self) -> int:
        return len(self._rigs)

    def __iter__(self) -> Iterator[Rig]:
        return iter(list(self._rigs.values()))

    def __contains__(self, rig_id: object) -> bool:
        return rig_id in self._rigs

    def add_rig(self, config: RigConfig) -> Rig:
        """Create and register a rig. An existing rig with the same id is replaced."""
        if config.rig_id in self._rigs:
            logger.warning("replacing existing rig %s", config.rig_id)
            self.remove_rig(config.rig_id)
        rig = Rig(config)
        self._rigs[config.rig_id] = rig
        logger.info("added %s rig %s", rig.kind, rig.rig_id)
        return rig

    def remove_rig(self, rig_id: str) -> bool:
        rig = self._rigs.pop(rig_id, None)
        if rig is None:
            return False
        # Any refresh still in flight sees a new generation and discards.
        rig.invalidate()
        rig.release()
        logger.info("removed rig %s", rig_id)
        return True

    def get(self, rig_id: str) -> Rig | None:
        return self._rigs.get(rig_id)

    def rigs(self) -> list[Rig]:
        return list(self._rigs.values())

    def indoor(self) -> list[Rig]:
        return [r for r in self._rigs.values() if r.is_indoor]

    def outdoor(self) -> list[Rig]:
        return [r for r in self._rigs.values() if not r.is_indoor]

    def set_param(self, rig_id: str, name: str, value: float) -> float:
        """Control-surface entry point; raises KeyError for unknown rigs or names."""
        return self._rigs[rig_id].set_param(name, value)

    def reset(self, rig_id: str) -> None:
        self._rigs[rig_id].reset()
