#!/usr/bin/env python3
"""Headless walkthrough simulation.

Loads a site, walks a viewer along the site's path, feeds mode / zone / pose
signals to the hub each frame and lets the animator drive every rig. Time is
simulated (frames advance a fixed step) so a run is fast and repeatable.

Usage:
    camrig-sim                           # bundled cafeteria site, 10 s
    camrig-sim -s sites/custom.json -d 30
    camrig-sim --png out.png             # also write a top-down preview
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import math
from pathlib import Path

from .animator import RigAnimator, SchedulerTiming
from .config_io import Site, load_site, site_path
from .log import get_logger, setup_logging
from .preview import TopDownRenderer, save_preview_png
from .registry import RigRegistry
from .signals import SignalHub
from .types import Point3, VisibilitySignals

logger = get_logger(__name__)


def viewer_at(path: list[Point3], t: float) -> Point3 | None:
    """Position along a polyline at fraction ``t`` of its total length."""
    if not path:
        return None
    if len(path) == 1:
        return path[0]
    lengths = [math.dist(a, b) for a, b in zip(path, path[1:])]
    total = sum(lengths)
    if total <= 0:
        return path[0]
    target = max(0.0, min(1.0, t)) * total
    for (a, b), seg in zip(zip(path, path[1:]), lengths):
        if target <= seg and seg > 0:
            f = target / seg
            return (
                a[0] + (b[0] - a[0]) * f,
                a[1] + (b[1] - a[1]) * f,
                a[2] + (b[2] - a[2]) * f,
            )
        target -= seg
    return path[-1]


def _bounds(site: Site) -> tuple[float, float, float, float]:
    xs: list[float] = []
    zs: list[float] = []
    for lo, hi in site.scene.boxes():
        xs += [lo[0], hi[0]]
        zs += [lo[2], hi[2]]
    for zone in site.zones.zones:
        xs += [p[0] for p in zone.outline]
        zs += [p[1] for p in zone.outline]
    for rig in site.rigs:
        xs.append(rig.position[0])
        zs.append(rig.position[2])
    if not xs:
        return (-10.0, -10.0, 10.0, 10.0)
    return (min(xs) - 2, min(zs) - 2, max(xs) + 2, max(zs) + 2)


async def simulate(
    site: Site,
    duration: float,
    fps: float = 60.0,
    timing: SchedulerTiming | None = None,
) -> tuple[RigRegistry, SignalHub, RigAnimator]:
    registry = RigRegistry()
    for cfg in site.rigs:
        registry.add_rig(cfg)
    hub = SignalHub(VisibilitySignals(mode=site.mode))
    frame_dt = 1.0 / fps
    timing = timing or SchedulerTiming(frame_interval=frame_dt)

    clock_now = [0.0]
    animator = RigAnimator(
        registry, site.scene, hub, timing, clock=lambda: clock_now[0]
    )

    n_frames = max(1, int(duration * fps))
    for frame in range(n_frames):
        now = frame * frame_dt
        clock_now[0] = now
        pos = viewer_at(site.viewer_path, now / duration if duration else 1.0)
        if pos is not None:
            hub.update_zones(site.zones.zones_at(pos))
            hub.update_sweep_zone(site.zones.primary_zone_at(pos))
            hub.update_position(pos)
        try:
            animator.tick(now)
        except Exception:
            logger.exception("tick failed")
        await asyncio.sleep(0)

    await animator.drain()
    return registry, hub, animator


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Simulate camera rigs along a viewer walkthrough"
    )
    parser.add_argument(
        "-s",
        "--site",
        default="cafeteria",
        help="Bundled site name or path to a site JSON (default: cafeteria)",
    )
    parser.add_argument(
        "-d",
        "--duration",
        type=float,
        default=10.0,
        help="Simulated seconds (default: 10)",
    )
    parser.add_argument(
        "--fps", type=float, default=60.0, help="Frames per second (default: 60)"
    )
    parser.add_argument(
        "--png", default=None, help="Write a top-down preview PNG here"
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    parser.add_argument("--log-file", default=None)
    args = parser.parse_args()

    setup_logging(getattr(logging, args.log_level), args.log_file)

    path = Path(args.site)
    if not path.suffix:
        path = site_path(args.site)
    site = load_site(path)

    print(f"Site: {site.name} ({len(site.rigs)} rigs, {len(site.scene)} boxes)")
    print(f"Duration: {args.duration:.1f}s at {args.fps:.0f} fps")
    print()

    registry, hub, animator = asyncio.run(
        simulate(site, args.duration, args.fps)
    )

    for rig in registry:
        result = rig.gate_result
        area = rig.footprint.coverage_area() if rig.footprint else 0.0
        tris = rig.footprint.triangle_count if rig.footprint else 0
        print(
            f"  {rig.rig_id:<16} {rig.kind:<8}"
            f" visible={str(result.visible):<5} fade={result.fade:.2f}"
            f" yaw={rig.yaw_deg:7.1f}"
            f" footprint={tris} tris / {area:.1f} m^2"
        )
    print()
    print(f"Frames: {animator.frames}, raycasts: {site.scene.calls}")

    if args.png:
        renderer = TopDownRenderer(_bounds(site), ppu=12.0)
        img = renderer.render(
            registry,
            scene=site.scene,
            zones=site.zones,
            viewer=hub.current().viewer_position,
        )
        save_preview_png(img, args.png, site)
        print(f"Preview: {args.png}")


if __name__ == "__main__":
    main()
