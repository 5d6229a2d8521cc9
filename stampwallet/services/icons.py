"""
Stamp icon library.

Icons ship as SVG pairs described by manifest.json:

    {"icons": [{"id": "coffee", "filledFile": "coffee.svg", "strokeFile": "coffee-outline.svg"}]}

The stroke file is optional. Unknown ids resolve to the first icon in the
manifest so a stale design never breaks rendering.
"""

import io
import json
import logging
import re
import threading
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from PIL import Image

from stampwallet.domain.errors import IconNotFoundError, IconRenderError

# Optional import for SVG rendering (needs the native cairo library)
try:
    import cairosvg
    CAIROSVG_AVAILABLE = True
except (ImportError, OSError):
    CAIROSVG_AVAILABLE = False

logger = logging.getLogger(__name__)

MANIFEST_FILE = "manifest.json"


@dataclass(frozen=True)
class IconArtwork:
    """SVG sources for one icon."""
    icon_id: str
    filled_svg: str
    stroke_svg: Optional[str] = None

    @property
    def has_stroke(self) -> bool:
        return self.stroke_svg is not None


class LRUCache:
    """Small thread-safe LRU map."""

    def __init__(self, max_size: int):
        self.max_size = max(1, max_size)
        self._items: OrderedDict = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key):
        with self._lock:
            if key not in self._items:
                return None
            self._items.move_to_end(key)
            return self._items[key]

    def put(self, key, value) -> None:
        with self._lock:
            self._items[key] = value
            self._items.move_to_end(key)
            while len(self._items) > self.max_size:
                self._items.popitem(last=False)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


def tint_svg(svg_content: str, color: tuple[int, int, int]) -> str:
    """Replace every fill/stroke color in an SVG with `color`, keeping `none`."""
    hex_color = f"#{color[0]:02x}{color[1]:02x}{color[2]:02x}"

    for attr in ("fill", "stroke"):
        svg_content = svg_content.replace(f'{attr}="currentColor"', f'{attr}="{hex_color}"')
        svg_content = re.sub(rf'{attr}="#[0-9a-fA-F]{{3,6}}"', f'{attr}="{hex_color}"', svg_content)
        # Style-based colors
        svg_content = re.sub(rf'{attr}:(?!\s*none)[^;"}}]*', f'{attr}:{hex_color}', svg_content)

    return svg_content


class IconLibrary:
    """Loads icon artwork from a directory and rasterizes it on demand."""

    def __init__(self, icons_dir: Path | str, cache_size: int = 64, default_icon_id: Optional[str] = None):
        self.icons_dir = Path(icons_dir)
        self.default_icon_id = default_icon_id
        self._manifest: Optional[list[dict]] = None
        self._manifest_lock = threading.Lock()
        self._artwork = LRUCache(cache_size)
        self._rasters = LRUCache(cache_size * 4)

    def _load_manifest(self) -> list[dict]:
        with self._manifest_lock:
            if self._manifest is None:
                manifest_path = self.icons_dir / MANIFEST_FILE
                try:
                    data = json.loads(manifest_path.read_text())
                except (OSError, ValueError) as e:
                    raise IconNotFoundError(f"Icon manifest unreadable at {manifest_path}: {e}") from e

                icons = [entry for entry in data.get("icons", []) if entry.get("id") and entry.get("filledFile")]
                if not icons:
                    raise IconNotFoundError(f"Icon manifest at {manifest_path} lists no icons")
                self._manifest = icons
            return self._manifest

    def icon_ids(self) -> list[str]:
        return [entry["id"] for entry in self._load_manifest()]

    def _resolve_entry(self, icon_id: str) -> dict:
        icons = self._load_manifest()
        by_id = {entry["id"]: entry for entry in icons}
        if icon_id in by_id:
            return by_id[icon_id]
        fallback = by_id.get(self.default_icon_id) or icons[0]
        logger.warning(f"Unknown icon '{icon_id}', using '{fallback['id']}'")
        return fallback

    def get(self, icon_id: str) -> IconArtwork:
        """Return artwork for `icon_id`, falling back to the default icon, then the first manifest icon."""
        cached = self._artwork.get(icon_id)
        if cached is not None:
            return cached

        entry = self._resolve_entry(icon_id)
        filled_path = self.icons_dir / entry["filledFile"]
        try:
            filled_svg = filled_path.read_text()
        except OSError as e:
            raise IconNotFoundError(f"Icon file missing: {filled_path}") from e

        stroke_svg = None
        if entry.get("strokeFile"):
            stroke_path = self.icons_dir / entry["strokeFile"]
            try:
                stroke_svg = stroke_path.read_text()
            except OSError:
                logger.warning(f"Stroke variant missing for icon '{entry['id']}': {stroke_path}")

        artwork = IconArtwork(icon_id=entry["id"], filled_svg=filled_svg, stroke_svg=stroke_svg)
        self._artwork.put(icon_id, artwork)
        return artwork

    def rasterize(
        self,
        artwork: IconArtwork,
        color: tuple[int, int, int],
        size: int,
        stroke: bool = False,
    ) -> Image.Image:
        """Render one variant of an icon as an RGBA square of `size` pixels."""
        if not CAIROSVG_AVAILABLE:
            raise IconRenderError("cairosvg is not available")

        use_stroke = stroke and artwork.has_stroke
        cache_key = (artwork.icon_id, use_stroke, color, size)
        cached = self._rasters.get(cache_key)
        if cached is not None:
            return cached

        svg_content = tint_svg(artwork.stroke_svg if use_stroke else artwork.filled_svg, color)
        try:
            png_bytes = cairosvg.svg2png(
                bytestring=svg_content.encode(),
                output_width=size,
                output_height=size,
            )
            icon_img = Image.open(io.BytesIO(png_bytes)).convert("RGBA")
        except Exception as e:
            raise IconRenderError(f"Failed to rasterize icon '{artwork.icon_id}': {e}") from e

        self._rasters.put(cache_key, icon_img)
        return icon_img


_library: Optional[IconLibrary] = None
_library_lock = threading.Lock()


def get_icon_library() -> IconLibrary:
    """Shared icon library built from settings."""
    global _library
    with _library_lock:
        if _library is None:
            from stampwallet.core.config import settings
            _library = IconLibrary(
                settings.icons_path,
                cache_size=settings.icon_cache_size,
                default_icon_id=settings.default_icon_id,
            )
        return _library
