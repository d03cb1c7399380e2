"""Latest-value store for viewer signals.

The host pushes mode changes, zone membership and pose updates whenever it
likes; the gate only ever reads the most recent ``VisibilitySignals``
snapshot and never waits for a fresh one. Listeners are told which kind of
signal changed so the scheduler can react immediately to mode and zone
changes but throttle the far more frequent pose updates.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Callable, Iterable

from .log import get_logger
from .types import MODE_INSIDE, Point3, VisibilitySignals

logger = get_logger(__name__)

SIGNAL_MODE = "mode"
SIGNAL_ZONES = "zones"
SIGNAL_SWEEP = "sweep"
SIGNAL_POSE = "pose"

Listener = Callable[[str], None]


class SignalHub:
    def __init__(self, initial: VisibilitySignals | None = None) -> None:
        self._current = initial or VisibilitySignals(mode=MODE_INSIDE)
        self._listeners: list[Listener] = []

    def current(self) -> VisibilitySignals:
        return self._current

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, kind: str, snapshot: VisibilitySignals) -> None:
        if snapshot == self._current:
            return
        self._current = snapshot
        for listener in list(self._listeners):
            listener(kind)

    def update_mode(self, mode: str) -> None:
        self._publish(SIGNAL_MODE, replace(self._current, mode=mode))

    def update_zones(self, zone_ids: Iterable[str] | None) -> None:
        zones = frozenset(zone_ids or ())
        logger.debug("zone membership: %s", sorted(zones))
        self._publish(SIGNAL_ZONES, replace(self._current, zones=zones))

    def update_sweep_zone(self, zone_id: str | None) -> None:
        self._publish(
            SIGNAL_SWEEP, replace(self._current, sweep_zone_id=zone_id)
        )

    def update_position(self, position: Point3 | None) -> None:
        pos = None
        if position is not None:
            pos = (float(position[0]), float(position[1]), float(position[2]))
        self._publish(SIGNAL_POSE, replace(self._current, viewer_position=pos))
