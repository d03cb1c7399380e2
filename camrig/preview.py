"""Top-down Pillow preview of rigs, footprints and the scene.

Not a replacement for the host viewer; it exists so a headless run can be
inspected. World (x, z) maps to image (px, py) with +z pointing down the
image. The rendered PNG can carry the site JSON in a tEXt chunk so a
snapshot is also a loadable site.
"""

from __future__ import annotations

import json

import numpy as np
from PIL import Image, ImageDraw
from PIL.PngImagePlugin import PngInfo

from .config_io import SITE_PNG_KEY, Site
from .geometry import head_to_world
from .registry import RigRegistry
from .scene import BoxScene
from .types import Point3
from .zones import ZoneMap

BACKGROUND = (24, 26, 30)
ZONE_OUTLINE = (90, 110, 160)
BOX_FILL = (70, 70, 78)
BOX_OUTLINE = (120, 120, 130)
RIG_VISIBLE = (245, 158, 11)
RIG_HIDDEN = (100, 100, 100)
VIEWER_COLOR = (80, 180, 255)


def _rgb(color: int) -> tuple[int, int, int]:
    return ((color >> 16) & 0xFF, (color >> 8) & 0xFF, color & 0xFF)


class TopDownRenderer:
    """Renders a registry snapshot to a Pillow image."""

    def __init__(
        self,
        bounds: tuple[float, float, float, float],
        ppu: float = 10.0,
        line_scale: float = 1,
    ) -> None:
        self.min_x, self.min_z, self.max_x, self.max_z = bounds
        self.ppu = ppu
        self.line_scale = line_scale

    def _lw(self, base_width: float) -> int:
        return max(1, round(base_width * self.line_scale))

    def _to_px(self, x: float, z: float) -> tuple[float, float]:
        return ((x - self.min_x) * self.ppu, (z - self.min_z) * self.ppu)

    def size(self) -> tuple[int, int]:
        w = max(1, int((self.max_x - self.min_x) * self.ppu))
        h = max(1, int((self.max_z - self.min_z) * self.ppu))
        return w, h

    def render(
        self,
        registry: RigRegistry,
        scene: BoxScene | None = None,
        zones: ZoneMap | None = None,
        viewer: Point3 | None = None,
    ) -> Image.Image:
        w, h = self.size()
        img = Image.new("RGB", (w, h), BACKGROUND)
        draw = ImageDraw.Draw(img)

        if zones is not None:
            for zone in zones.zones:
                if len(zone.outline) < 3:
                    continue
                pts = [self._to_px(x, z) for x, z in zone.outline]
                draw.polygon(pts, outline=ZONE_OUTLINE, width=self._lw(2))

        if scene is not None:
            for lo, hi in scene.boxes():
                # The ground slab would cover everything
                if hi[1] <= 0.0:
                    continue
                draw.rectangle(
                    [self._to_px(lo[0], lo[2]), self._to_px(hi[0], hi[2])],
                    fill=BOX_FILL,
                    outline=BOX_OUTLINE,
                )

        # Footprints go on a translucent overlay
        overlay = Image.new("RGBA", (w, h), (0, 0, 0, 0))
        odraw = ImageDraw.Draw(overlay)
        for rig in registry:
            if not rig.show_footprint or rig.footprint is None:
                continue
            r, g, b = _rgb(rig.config.style.fov_color)
            alpha = int(255 * rig.config.style.footprint_opacity * rig.gate_result.fade)
            origin = np.asarray(rig.config.position, dtype=np.float64)
            for tri in rig.footprint.triangles():
                world = tri.astype(np.float64) + origin
                odraw.polygon(
                    [self._to_px(p[0], p[2]) for p in world],
                    fill=(r, g, b, max(alpha, 24)),
                )
        img = Image.alpha_composite(img.convert("RGBA"), overlay).convert("RGB")
        draw = ImageDraw.Draw(img)

        for rig in registry:
            visible = rig.gate_result.visible
            transform = rig.transform()
            if visible and not rig.frustum.released:
                color = _rgb(rig.config.style.fov_color)
                for edge in rig.frustum.edges:
                    a, b = head_to_world(
                        transform, np.stack([edge.start, edge.end])
                    )
                    draw.line(
                        [self._to_px(a[0], a[2]), self._to_px(b[0], b[2])],
                        fill=color,
                        width=self._lw(1),
                    )
            px, py = self._to_px(rig.config.position[0], rig.config.position[2])
            r = self._lw(4)
            draw.ellipse(
                [px - r, py - r, px + r, py + r],
                fill=RIG_VISIBLE if visible else RIG_HIDDEN,
            )

        if viewer is not None:
            px, py = self._to_px(viewer[0], viewer[2])
            r = self._lw(3)
            draw.ellipse([px - r, py - r, px + r, py + r], fill=VIEWER_COLOR)

        return img


def save_preview_png(
    img: Image.Image, path: str, site: Site | None = None
) -> None:
    """Save a preview, optionally embedding ``site`` as a tEXt chunk.

    ``config_io.load_site_png`` reads the site back.
    """
    info = PngInfo()
    if site is not None:
        info.add_text(SITE_PNG_KEY, json.dumps(site.to_dict()))
    img.save(path, pnginfo=info)
