"""Cooperative per-frame scheduling for all rigs.

One tick per frame advances every indoor rig's pan sweep and then decides,
per rig, whether to start a footprint refresh or a visibility evaluation.
It never waits for them: each refresh becomes an asyncio task and the tick
returns immediately, so a slow grid of raycasts cannot stall the frame
loop.

Independent throttles bound the raycast volume:

  footprint_interval   per rig; indoor rigs refresh at this cadence
                       forever, outdoor rigs only while dirty
  visibility_interval  periodic fallback re-check of every rig
  pose_interval        re-check after viewer movement, coalesced

Mode, zone and sweep-zone changes re-evaluate straight away.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Coroutine

from .log import get_logger
from .registry import RigRegistry
from .rig import Rig
from .scene import SceneQuery
from .signals import SIGNAL_POSE, SignalHub

logger = get_logger(__name__)


@dataclass
class SchedulerTiming:
    frame_interval: float = 1.0 / 60.0
    footprint_interval: float = 0.1
    visibility_interval: float = 0.24
    pose_interval: float = 0.15


class Throttle:
    """Lets an action through at most once per ``interval`` seconds."""

    def __init__(self, interval: float) -> None:
        self.interval = interval
        self._last: float | None = None

    def ready(self, now: float) -> bool:
        if self._last is None or now - self._last >= self.interval:
            self._last = now
            return True
        return False

    def reset(self) -> None:
        self._last = None


class RigAnimator:
    def __init__(
        self,
        registry: RigRegistry,
        scene: SceneQuery | None,
        signals: SignalHub,
        timing: SchedulerTiming | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.registry = registry
        self.scene = scene
        self.signals = signals
        self.timing = timing or SchedulerTiming()
        self._clock = clock
        self._last_tick: float | None = None
        self._footprint_throttles: dict[str, Throttle] = {}
        self._visibility_throttle = Throttle(self.timing.visibility_interval)
        self._pose_throttle = Throttle(self.timing.pose_interval)
        self._pose_pending = False
        self._tasks: set[asyncio.Task] = set()
        self.frames = 0
        self._unsubscribe = signals.subscribe(self._on_signal)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def _on_signal(self, kind: str) -> None:
        if kind == SIGNAL_POSE:
            self._pose_pending = True
            return
        for rig in self.registry:
            rig.visibility_stale = True
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # Picked up by the next tick.
            return
        for rig in self.registry:
            self._dispatch_visibility(rig)

    def _spawn(self, coro: Coroutine) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("rig refresh failed", exc_info=exc)

    def _dispatch_visibility(self, rig: Rig) -> None:
        self._spawn(rig.refresh_visibility(self.signals.current(), self.scene))

    def _footprint_throttle(self, rig: Rig) -> Throttle:
        throttle = self._footprint_throttles.get(rig.rig_id)
        if throttle is None:
            throttle = Throttle(self.timing.footprint_interval)
            self._footprint_throttles[rig.rig_id] = throttle
        return throttle

    def tick(self, now: float) -> None:
        """Run one frame. Must be called from inside a running event loop."""
        dt = 0.0 if self._last_tick is None else max(0.0, now - self._last_tick)
        self._last_tick = now
        self.frames += 1

        rigs = self.registry.rigs()
        live_ids = {r.rig_id for r in rigs}
        for rig_id in list(self._footprint_throttles):
            if rig_id not in live_ids:
                del self._footprint_throttles[rig_id]

        for rig in rigs:
            rig.advance(dt)

        pose_due = self._pose_pending and self._pose_throttle.ready(now)
        if pose_due:
            self._pose_pending = False
        periodic = self._visibility_throttle.ready(now)

        for rig in rigs:
            if periodic or pose_due or rig.visibility_stale:
                self._dispatch_visibility(rig)
            if (
                rig.needs_footprint()
                and not rig.busy
                and rig.gate_result.visible
                and self._footprint_throttle(rig).ready(now)
            ):
                self._spawn(rig.refresh_footprint(self.scene))

    async def run(
        self, duration: float | None = None, frames: int | None = None
    ) -> None:
        """Tick until ``duration`` seconds or ``frames`` frames have passed."""
        start = self._clock()
        count = 0
        while True:
            if duration is not None and self._clock() - start >= duration:
                break
            if frames is not None and count >= frames:
                break
            try:
                self.tick(self._clock())
            except Exception:
                logger.exception("tick failed")
            count += 1
            await asyncio.sleep(self.timing.frame_interval)

    async def drain(self) -> None:
        """Wait for every in-flight refresh to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        self._unsubscribe()
        for task in list(self._tasks):
            task.cancel()
        await self.drain()
