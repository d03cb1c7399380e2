"""Tests for per-frame scheduling and throttling."""

import asyncio
import logging

from camrig.animator import RigAnimator, SchedulerTiming, Throttle
from camrig.registry import RigRegistry
from camrig.scene import NullScene
from camrig.signals import SignalHub
from camrig.types import (
    KIND_INDOOR,
    KIND_OUTDOOR,
    MODE_INSIDE,
    MODE_TRANSITIONING,
    MotionConfig,
    OpticalConfig,
    ProjectorGrid,
    RigConfig,
    VisibilitySignals,
)


def _cfg(rig_id="cam", kind=KIND_INDOOR, **kw):
    base = dict(
        rig_id=rig_id,
        kind=kind,
        position=(0.0, 4.0, 0.0),
        optical=OpticalConfig(
            hfov_deg=60, aspect=1.0, near=0.5, far=10.0, near_aperture_scale=1.0
        ),
        motion=MotionConfig(tilt_deg=90.0),
        grid=ProjectorGrid(3, 2),
        zone_id="room",
    )
    base.update(kw)
    return RigConfig(**base)


def _setup(*configs, zones=("room",), timing=None):
    registry = RigRegistry()
    for cfg in configs:
        registry.add_rig(cfg)
    hub = SignalHub(VisibilitySignals(mode=MODE_INSIDE, zones=frozenset(zones)))
    scene = NullScene()
    animator = RigAnimator(registry, scene, hub, timing or SchedulerTiming())
    return registry, hub, scene, animator


async def _tick(animator, now):
    animator.tick(now)
    await animator.drain()


class TestThrottle:
    def test_first_call_passes(self):
        assert Throttle(1.0).ready(123.0)

    def test_interval(self):
        t = Throttle(0.5)
        assert t.ready(0.0)
        assert not t.ready(0.49)
        assert t.ready(0.5)
        assert not t.ready(0.7)

    def test_reset(self):
        t = Throttle(10.0)
        t.ready(0.0)
        t.reset()
        assert t.ready(1.0)


class TestFootprintScheduling:
    def test_indoor_refreshes_at_cadence(self):
        registry, _, scene, animator = _setup(_cfg())

        async def main():
            await _tick(animator, 0.0)
            assert scene.calls == 6
            await _tick(animator, 0.05)
            assert scene.calls == 6
            await _tick(animator, 0.1)
            assert scene.calls == 12

        asyncio.run(main())
        assert registry.get("cam").footprint is not None

    def test_outdoor_refreshes_only_when_dirty(self):
        registry, _, scene, animator = _setup(_cfg(kind=KIND_OUTDOOR))

        async def main():
            await _tick(animator, 0.0)
            await _tick(animator, 1.0)
            await _tick(animator, 2.0)
            assert scene.calls == 6
            registry.set_param("cam", "far", 12.0)
            await _tick(animator, 3.0)
            assert scene.calls == 12

        asyncio.run(main())

    def test_hidden_rig_gets_no_footprint(self):
        registry, _, scene, animator = _setup(_cfg(), zones=())

        async def main():
            await _tick(animator, 0.0)
            await _tick(animator, 1.0)
            await _tick(animator, 2.0)

        asyncio.run(main())
        rig = registry.get("cam")
        assert not rig.gate_result.visible
        assert rig.footprint is None
        # Only the very first tick, before the gate result landed
        assert scene.calls == 6

    def test_no_overlapping_refreshes(self):
        registry, _, scene, animator = _setup(_cfg())

        async def main():
            animator.tick(0.0)
            animator.tick(0.2)
            await animator.drain()

        asyncio.run(main())
        assert scene.calls == 6


class TestVisibilityScheduling:
    def test_mode_change_dispatches_immediately(self):
        registry, hub, _, animator = _setup(_cfg())

        async def main():
            await _tick(animator, 0.0)
            assert registry.get("cam").gate_result.visible
            hub.update_mode(MODE_TRANSITIONING)
            assert animator.pending == 1
            await animator.drain()

        asyncio.run(main())
        assert not registry.get("cam").gate_result.visible

    def test_signal_outside_loop_marks_stale(self):
        registry, hub, _, animator = _setup(_cfg())
        rig = registry.get("cam")
        rig.visibility_stale = False
        hub.update_zones(["elsewhere"])
        assert rig.visibility_stale
        assert animator.pending == 0

    def test_pose_updates_are_throttled(self):
        timing = SchedulerTiming(visibility_interval=100.0, pose_interval=0.15)
        registry, hub, _, animator = _setup(
            _cfg(kind=KIND_OUTDOOR), timing=timing
        )
        rig = registry.get("cam")

        async def main():
            await _tick(animator, 0.0)
            assert rig.gate_result.visible

            hub.update_position((100.0, 0.0, 0.0))
            await _tick(animator, 0.05)
            assert not rig.gate_result.visible

            hub.update_position((0.0, 4.0, 1.0))
            await _tick(animator, 0.1)
            assert not rig.gate_result.visible

            await _tick(animator, 0.25)
            assert rig.gate_result.visible

        asyncio.run(main())

    def test_periodic_recheck(self):
        timing = SchedulerTiming(visibility_interval=0.24)
        registry, _, _, animator = _setup(_cfg(kind=KIND_OUTDOOR), timing=timing)
        rig = registry.get("cam")

        async def main():
            await _tick(animator, 0.0)
            seq = rig.gate.latest_seq
            await _tick(animator, 0.1)
            assert rig.gate.latest_seq == seq
            await _tick(animator, 0.3)
            assert rig.gate.latest_seq == seq + 1

        asyncio.run(main())


class TestLifecycle:
    def test_failed_refresh_is_logged(self, caplog):
        registry, _, _, animator = _setup(_cfg())
        rig = registry.get("cam")

        async def broken(scene):
            raise RuntimeError("boom")

        rig.refresh_footprint = broken
        camrig_logger = logging.getLogger("camrig")
        camrig_logger.addHandler(caplog.handler)
        try:
            with caplog.at_level(logging.ERROR, logger="camrig"):
                asyncio.run(_tick(animator, 0.0))
        finally:
            camrig_logger.removeHandler(caplog.handler)
        assert "rig refresh failed" in caplog.text
        assert animator.pending == 0

    def test_run_frames(self):
        clock = [0.0]

        def now():
            clock[0] += 0.01
            return clock[0]

        registry = RigRegistry()
        registry.add_rig(_cfg())
        animator = RigAnimator(
            registry,
            NullScene(),
            SignalHub(),
            SchedulerTiming(frame_interval=0.0),
            clock=now,
        )

        async def main():
            await animator.run(frames=3)
            await animator.close()

        asyncio.run(main())
        assert animator.frames == 3
        assert animator.pending == 0

    def test_run_duration(self):
        clock = [0.0]

        def now():
            clock[0] += 0.1
            return clock[0]

        animator = RigAnimator(
            RigRegistry(),
            NullScene(),
            SignalHub(),
            SchedulerTiming(frame_interval=0.0),
            clock=now,
        )
        asyncio.run(animator.run(duration=0.55))
        assert 0 < animator.frames < 10

    def test_close_unsubscribes(self):
        registry, hub, _, animator = _setup(_cfg())

        async def main():
            await animator.close()
            hub.update_mode(MODE_TRANSITIONING)
            assert animator.pending == 0

        asyncio.run(main())

    def test_removed_rig_stops_refreshing(self):
        registry, _, scene, animator = _setup(_cfg())

        async def main():
            await _tick(animator, 0.0)
            registry.remove_rig("cam")
            await _tick(animator, 1.0)

        asyncio.run(main())
        assert scene.calls == 6
