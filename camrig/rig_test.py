"""Tests for rig motion, parameter edits and guarded refreshes."""

import asyncio

import numpy as np
import pytest

from camrig.rig import Rig
from camrig.scene import BoxScene, NullScene
from camrig.types import (
    HIDDEN,
    KIND_INDOOR,
    KIND_OUTDOOR,
    MODE_INSIDE,
    GatePolicy,
    MotionConfig,
    OpticalConfig,
    ProjectorGrid,
    RigConfig,
    VisibilitySignals,
)


def _config(kind=KIND_OUTDOOR, **kw):
    # Looking straight down from 4 m so every ray reaches the floor plane.
    base = dict(
        rig_id="cam",
        kind=kind,
        position=(0.0, 4.0, 0.0),
        optical=OpticalConfig(
            hfov_deg=60, aspect=1.0, near=0.5, far=10.0, near_aperture_scale=1.0
        ),
        motion=MotionConfig(
            sweep_deg=120, base_yaw_deg=0.0, tilt_deg=90.0, yaw_speed_deg=30
        ),
        grid=ProjectorGrid(3, 2),
        floor_y=0.4,
        zone_id="room",
    )
    base.update(kw)
    return RigConfig(**base)


class TestMotion:
    def test_indoor_sweep(self):
        rig = Rig(
            _config(
                kind=KIND_INDOOR,
                motion=MotionConfig(
                    sweep_deg=120, base_yaw_deg=90, tilt_deg=10, yaw_speed_deg=30
                ),
            )
        )
        assert rig.yaw_deg == 90
        rig.advance(3.0)
        assert abs(rig.yaw_deg - 150.0) < 1e-9

    def test_sweep_stays_within_bounds(self):
        rig = Rig(_config(kind=KIND_INDOOR))
        for _ in range(200):
            rig.advance(0.37)
            assert -60.0 - 1e-9 <= rig.yaw_deg <= 60.0 + 1e-9

    def test_outdoor_does_not_move(self):
        rig = Rig(_config(kind=KIND_OUTDOOR))
        rig.advance(5.0)
        assert rig.yaw_deg == 0.0
        assert rig.phase == 0.0

    def test_transform(self):
        t = Rig(_config()).transform()
        assert t.position == (0.0, 4.0, 0.0)
        assert t.tilt_deg == 90.0


class TestGateSubject:
    def test_body_target(self):
        subject = Rig(_config()).gate_subject()
        assert subject.target_point == (0.0, 4.0, 0.0)
        assert subject.zone_id == "room"
        assert subject.zone_exempt

    def test_far_centroid_target(self):
        rig = Rig(_config(policy=GatePolicy(los_target="far_centroid")))
        target = rig.gate_subject().target_point
        assert np.allclose(target, (0.0, -6.0, 0.0), atol=1e-9)

    def test_indoor_not_exempt(self):
        assert not Rig(_config(kind=KIND_INDOOR)).gate_subject().zone_exempt


class TestSetParam:
    def test_clamps_and_returns(self):
        rig = Rig(_config())
        assert rig.set_param("hfov_deg", 500) == 120.0
        assert rig.config.optical.hfov_deg == 120.0
        assert rig.set_param("tilt_deg", -3) == 0.0

    def test_unknown_name(self):
        with pytest.raises(KeyError):
            Rig(_config()).set_param("zoom", 2.0)

    def test_invalidates(self):
        rig = Rig(_config())
        rig.dirty = False
        rig.visibility_stale = False
        rig.set_param("sweep_deg", 40)
        assert rig.generation == 1
        assert rig.dirty
        assert rig.visibility_stale

    def test_optical_rebuilds_frustum(self):
        rig = Rig(_config())
        old = rig.frustum
        rig.set_param("far", 20.0)
        assert rig.frustum is not old
        assert rig.generation == 1
        assert old.released
        assert np.allclose(rig.frustum.far_rect[:, 2], -20.0)

    def test_motion_keeps_frustum(self):
        rig = Rig(_config())
        old = rig.frustum
        rig.set_param("base_yaw_deg", 45)
        assert rig.frustum is old
        assert rig.yaw_deg == 45.0

    def test_height(self):
        rig = Rig(_config())
        rig.set_param("height", 7.5)
        assert rig.config.position == (0.0, 7.5, 0.0)

    def test_does_not_touch_caller_config(self):
        cfg = _config()
        Rig(cfg).set_param("far", 30.0)
        assert cfg.optical.far == 10.0

    def test_reset(self):
        rig = Rig(_config())
        rig.set_param("far", 30.0)
        rig.set_param("height", 1.0)
        rig.reset()
        assert rig.config.optical.far == 10.0
        assert rig.config.position == (0.0, 4.0, 0.0)
        assert np.allclose(rig.frustum.far_rect[:, 2], -10.0)
        assert rig.generation == 3


class TestRefreshFootprint:
    def test_applies_mesh(self):
        rig = Rig(_config())
        assert asyncio.run(rig.refresh_footprint(NullScene()))
        assert rig.footprint is not None
        assert rig.footprint.triangle_count == 4
        assert rig.show_footprint
        assert not rig.dirty

    def test_outdoor_needs_footprint_only_when_dirty(self):
        rig = Rig(_config())
        assert rig.needs_footprint()
        asyncio.run(rig.refresh_footprint(NullScene()))
        assert not rig.needs_footprint()
        rig.set_param("near", 0.3)
        assert rig.needs_footprint()

    def test_indoor_always_needs_footprint(self):
        rig = Rig(_config(kind=KIND_INDOOR))
        asyncio.run(rig.refresh_footprint(NullScene()))
        assert rig.needs_footprint()

    def test_plane_out_of_range_hides_footprint(self):
        rig = Rig(_config(floor_y=10.0))
        assert asyncio.run(rig.refresh_footprint(NullScene()))
        assert rig.footprint is None
        assert not rig.show_footprint
        assert not rig.dirty

    def test_replaced_mesh_released(self):
        rig = Rig(_config())
        asyncio.run(rig.refresh_footprint(NullScene()))
        first = rig.footprint
        rig.set_param("floor_y", 0.0)
        asyncio.run(rig.refresh_footprint(NullScene()))
        assert rig.footprint is not first
        assert first.released

    def test_busy_guard(self):
        rig = Rig(_config())
        scene = BoxScene(delay=0.01)

        async def main():
            first = asyncio.create_task(rig.refresh_footprint(scene))
            await asyncio.sleep(0)
            assert rig.busy
            second = await rig.refresh_footprint(scene)
            return await first, second

        applied, skipped = asyncio.run(main())
        assert applied
        assert not skipped
        assert not rig.busy
        assert scene.calls == 6

    def test_edit_during_refresh_discards(self):
        rig = Rig(_config())
        scene = BoxScene(delay=0.01)

        async def main():
            task = asyncio.create_task(rig.refresh_footprint(scene))
            await asyncio.sleep(0)
            rig.set_param("floor_y", 0.0)
            return await task

        assert not asyncio.run(main())
        assert rig.footprint is None
        assert rig.dirty
        assert not rig.busy

    def test_rebuild_during_refresh_discards(self):
        rig = Rig(_config())
        scene = BoxScene(delay=0.02)

        async def main():
            task = asyncio.create_task(rig.refresh_footprint(scene))
            await asyncio.sleep(0)
            rig.config.optical.hfov_deg = 90.0
            rig.rebuild_frustum()
            return await task

        assert not asyncio.run(main())
        assert rig.footprint is None
        assert rig.dirty
        assert rig.needs_footprint()

    def test_rebuild_bumps_generation(self):
        rig = Rig(_config())
        rig.dirty = False
        rig.rebuild_frustum()
        assert rig.generation == 1
        assert rig.dirty
        assert rig.visibility_stale

    def test_hidden_rig_discards(self):
        rig = Rig(_config())
        rig.gate.apply(rig.gate.dispatch(), HIDDEN)
        assert not asyncio.run(rig.refresh_footprint(NullScene()))
        assert rig.footprint is None


class TestRefreshVisibility:
    def test_applies(self):
        rig = Rig(_config(kind=KIND_INDOOR))
        signals = VisibilitySignals(mode=MODE_INSIDE, zones=frozenset({"kitchen"}))
        assert asyncio.run(rig.refresh_visibility(signals, None))
        assert not rig.gate_result.visible
        assert not rig.visibility_stale

    def test_hidden_hides_footprint(self):
        rig = Rig(_config(kind=KIND_INDOOR))
        asyncio.run(rig.refresh_footprint(NullScene()))
        assert rig.show_footprint
        signals = VisibilitySignals(mode=MODE_INSIDE, zones=frozenset())
        asyncio.run(rig.refresh_visibility(signals, None))
        assert not rig.show_footprint


def test_release():
    rig = Rig(_config())
    asyncio.run(rig.refresh_footprint(NullScene()))
    mesh = rig.footprint
    rig.release()
    assert rig.frustum.released
    assert mesh.released
    assert rig.footprint is None
