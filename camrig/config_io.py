"""Load and save site descriptions from/to JSON files.

A site bundles everything a headless run needs: rig configurations (the
indoor rig and any outdoor rigs whose tags were already resolved), named
zones, an axis-aligned box scene standing in for the host's geometry, and an
optional viewer path for the simulator. Rig entries use the field names of
``RigConfig.to_dict``; anything omitted takes the dataclass default.

Used by:
  - ``sim.py``: builds a registry and scene from a site file.
  - ``preview.py``: embeds the site in preview PNGs (``load_site_png`` reads
    it back).
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path

from PIL import Image

from .scene import BoxScene
from .types import KIND_INDOOR, MODE_INSIDE, Point3, RigConfig
from .zones import ZoneMap

# Bundled sites ship inside the package as package data
_SITES_DIR = Path(__file__).parent / "sites"

# tEXt chunk key for a site embedded in a preview PNG
SITE_PNG_KEY = "camrig_site"


@dataclass
class Site:
    name: str
    rigs: list[RigConfig] = field(default_factory=list)
    zones: ZoneMap = field(default_factory=ZoneMap)
    scene: BoxScene = field(default_factory=BoxScene)
    viewer_path: list[Point3] = field(default_factory=list)
    mode: str = MODE_INSIDE

    @staticmethod
    def from_dict(d: dict) -> Site:
        if "rigs" not in d:
            raise ValueError("site has no 'rigs' list")
        try:
            rigs = [RigConfig.from_dict(r) for r in d["rigs"]]
        except KeyError as e:
            raise ValueError(f"rig entry missing field {e}") from e
        seen: set[str] = set()
        for r in rigs:
            if r.rig_id in seen:
                raise ValueError(f"duplicate rig id: {r.rig_id}")
            seen.add(r.rig_id)
        indoor = [r for r in rigs if r.kind == KIND_INDOOR]
        if len(indoor) > 1:
            raise ValueError(
                f"at most one indoor rig is supported, got {len(indoor)}"
            )
        return Site(
            name=d.get("name", "site"),
            rigs=rigs,
            zones=ZoneMap.from_list(d.get("zones")),
            scene=BoxScene.from_dict(d.get("scene")),
            viewer_path=[
                (float(p[0]), float(p[1]), float(p[2]))
                for p in d.get("viewer_path", [])
            ],
            mode=d.get("mode", MODE_INSIDE),
        )

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "mode": self.mode,
            "rigs": [r.to_dict() for r in self.rigs],
            "zones": self.zones.to_list(),
            "scene": self.scene.to_dict(),
            "viewer_path": [list(p) for p in self.viewer_path],
        }


def site_path(name: str) -> Path:
    """Return the path to a bundled site JSON file.

    Args:
        name: Site name without extension (e.g. "cafeteria").
    """
    return _SITES_DIR / f"{name}.json"


def _parse_site(text: str, source: Path | str) -> Site:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"{source}: not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"{source}: expected a JSON object")
    return Site.from_dict(data)


def load_site(path: Path | str) -> Site:
    """Load a site JSON file. Raises ValueError if it is malformed."""
    with open(path) as f:
        return _parse_site(f.read(), path)


def load_site_png(path: Path | str) -> Site:
    """Load the site a preview PNG was rendered from.

    ``preview.save_preview_png`` stores the site JSON in a tEXt chunk under
    ``SITE_PNG_KEY``; a PNG without one raises ValueError.
    """
    with Image.open(path) as img:
        img.load()
        embedded = img.info.get(SITE_PNG_KEY)
    if not isinstance(embedded, str):
        raise ValueError(f"{path}: no embedded site ({SITE_PNG_KEY} chunk)")
    return _parse_site(embedded, path)


def save_site(site: Site, path: Path | str) -> None:
    """Write a site to a JSON file, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(site.to_dict(), f, indent=2)
        f.write("\n")
