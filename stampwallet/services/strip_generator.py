"""
Stamp visual generator for wallet passes.

Draws earned/unearned stamp glyphs onto a background using the grid from
the layout engine. Rendering never raises: any failure produces a solid
image of the exact canvas size so a pass can always be served.
"""

import hashlib
import io
import logging
from dataclasses import dataclass, replace
from typing import Optional, Protocol

from PIL import Image, ImageDraw

from stampwallet.services.icons import IconLibrary
from stampwallet.services.image_fetcher import SafeImageFetcher
from stampwallet.services.layout import (
    MAX_STAMPS,
    CanvasProfile,
    LayoutPlan,
    compute_layout,
    get_profile,
)

logger = logging.getLogger(__name__)

DEFAULT_BACKGROUND = (139, 90, 43)  # Coffee brown
DEFAULT_FOREGROUND = (255, 255, 255)

GLYPH_RATIO = 0.9

# Glyph opacities
EARNED_OPACITY = 1.0
UNEARNED_STROKE_OPACITY = 0.5
UNEARNED_FILLED_OPACITY = 0.3  # no stroke variant, dim the filled artwork
LOGO_UNEARNED_OPACITY = 0.5

# Segmented bar opacities
SECTION_EARNED_OPACITY = 0.5
SECTION_UNEARNED_OPACITY = 0.12
DIVIDER_OPACITY = 0.2


def parse_color(value: str | None, default: tuple[int, int, int] = DEFAULT_BACKGROUND) -> tuple[int, int, int]:
    """Parse 'rgb(r,g,b)', '#RGB' or '#RRGGBB' to an RGB tuple."""
    if not value:
        return default

    value = value.strip()
    try:
        if value.startswith("rgb(") and value.endswith(")"):
            parts = [int(v.strip()) for v in value[4:-1].split(",")]
            if len(parts) == 3:
                return tuple(max(0, min(255, v)) for v in parts)  # type: ignore
        elif value.startswith("#"):
            hex_color = value[1:]
            if len(hex_color) == 3:
                hex_color = "".join(c * 2 for c in hex_color)
            if len(hex_color) == 6:
                return tuple(int(hex_color[i : i + 2], 16) for i in (0, 2, 4))  # type: ignore
    except ValueError:
        pass

    return default


def with_opacity(img: Image.Image, opacity: float) -> Image.Image:
    """Return a copy of an RGBA image with its alpha scaled by `opacity`."""
    img = img.convert("RGBA")
    if opacity >= 1.0:
        return img
    alpha = img.getchannel("A").point(lambda a: int(a * opacity))
    img.putalpha(alpha)
    return img


def resize_cover(img: Image.Image, target_width: int, target_height: int) -> Image.Image:
    """Resize image to cover target dimensions, cropping the overflow (centered)."""
    scale = max(target_width / img.width, target_height / img.height)
    new_width = max(target_width, round(img.width * scale))
    new_height = max(target_height, round(img.height * scale))
    img = img.resize((new_width, new_height), Image.Resampling.LANCZOS)

    left = (new_width - target_width) // 2
    top = (new_height - target_height) // 2
    return img.crop((left, top, left + target_width, top + target_height))


def resize_contain(img: Image.Image, size: int) -> Image.Image:
    """Fit image inside a transparent `size` square, keeping aspect ratio."""
    img = img.convert("RGBA")
    scale = min(size / img.width, size / img.height)
    fitted = img.resize(
        (max(1, round(img.width * scale)), max(1, round(img.height * scale))),
        Image.Resampling.LANCZOS,
    )
    canvas = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    canvas.paste(fitted, ((size - fitted.width) // 2, (size - fitted.height) // 2), fitted)
    return canvas


def content_tag(png_bytes: bytes) -> str:
    """Stable identifier of rendered image content."""
    return hashlib.sha256(png_bytes).hexdigest()[:32]


def _as_count(value, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class StampVisual:
    """Everything needed to render one stamp visual."""
    icon_id: str
    earned_count: int
    required_count: int
    background_color: str = "rgb(139, 90, 43)"
    foreground_color: str = "rgb(255, 255, 255)"
    profile: str = "strip"
    display_mode: str = "svg"  # "svg" or "logo"
    logo_url: Optional[str] = None
    background_url: Optional[str] = None

    def normalized(self) -> "StampVisual":
        """Clamp counts: required into [1, MAX_STAMPS], earned into [0, required].

        Missing or non-numeric counts read as 0 earned and 1 required.
        """
        required = max(1, min(_as_count(self.required_count, 1), MAX_STAMPS))
        earned = max(0, min(_as_count(self.earned_count, 0), required))
        return replace(self, required_count=required, earned_count=earned)

    def cache_key(self, scale: int = 1) -> str:
        visual = self.normalized()
        parts = [
            visual.profile,
            str(scale),
            visual.display_mode,
            visual.icon_id,
            str(visual.earned_count),
            str(visual.required_count),
            visual.background_color,
            visual.foreground_color,
            visual.logo_url or "",
            visual.background_url or "",
        ]
        return hashlib.sha256("|".join(parts).encode()).hexdigest()


@dataclass(frozen=True)
class GlyphSet:
    earned: Image.Image
    unearned: Image.Image


class GlyphSource(Protocol):
    def glyphs(self, size: int) -> GlyphSet:
        ...


class SvgGlyphSource:
    """Stamp glyphs from the icon library, tinted with the foreground color."""

    def __init__(self, library: IconLibrary, icon_id: str, color: tuple[int, int, int]):
        self.library = library
        self.color = color
        self.artwork = library.get(icon_id)

    def glyphs(self, size: int) -> GlyphSet:
        earned = self.library.rasterize(self.artwork, self.color, size)
        if self.artwork.has_stroke:
            outline = self.library.rasterize(self.artwork, self.color, size, stroke=True)
            unearned = with_opacity(outline, UNEARNED_STROKE_OPACITY)
        else:
            unearned = with_opacity(earned, UNEARNED_FILLED_OPACITY)
        return GlyphSet(earned=earned, unearned=unearned)


class LogoGlyphSource:
    """Stamp glyphs from a business logo."""

    def __init__(self, logo: Image.Image):
        self.logo = logo

    def glyphs(self, size: int) -> GlyphSet:
        earned = resize_contain(self.logo, size)
        return GlyphSet(earned=earned, unearned=with_opacity(earned, LOGO_UNEARNED_OPACITY))


@dataclass(frozen=True)
class RenderResult:
    image: bytes
    content_tag: str
    width: int
    height: int
    fallback: bool = False


def scaled_profile(profile: CanvasProfile, scale: int) -> CanvasProfile:
    if scale == 1:
        return profile
    return replace(
        profile,
        width=profile.width * scale,
        height=profile.height * scale,
        horizontal_padding=profile.horizontal_padding * scale,
        vertical_padding=profile.vertical_padding * scale,
        max_cell_size=profile.max_cell_size * scale,
        safety_margin=profile.safety_margin * scale,
    )


def _to_png(img: Image.Image) -> bytes:
    buffer = io.BytesIO()
    img.save(buffer, format="PNG", optimize=True)
    return buffer.getvalue()


class StampImageGenerator:
    """Renders stamp progress images for strip, thumbnail and hero canvases."""

    def __init__(
        self,
        icon_library: IconLibrary,
        image_fetcher: SafeImageFetcher | None = None,
        segmented_threshold: int | None = None,
    ):
        self.icon_library = icon_library
        self.image_fetcher = image_fetcher
        self.segmented_threshold = segmented_threshold

    def _profile_for(self, visual: StampVisual) -> CanvasProfile:
        profile = get_profile(visual.profile)
        if self.segmented_threshold is not None and profile.segmented_threshold is not None:
            profile = replace(profile, segmented_threshold=self.segmented_threshold)
        return profile

    def _create_background(self, visual: StampVisual, width: int, height: int) -> Image.Image:
        """Business background image (cover-fit) or a solid color."""
        if visual.background_url and self.image_fetcher:
            background = self.image_fetcher.fetch_image(visual.background_url)
            if background is not None:
                return resize_cover(background.convert("RGBA"), width, height)
            logger.info(f"Background unavailable, using solid color: {visual.background_url}")

        color = parse_color(visual.background_color, DEFAULT_BACKGROUND)
        return Image.new("RGBA", (width, height), color + (255,))

    def _glyph_source(self, visual: StampVisual) -> GlyphSource:
        if visual.display_mode == "logo" and visual.logo_url and self.image_fetcher:
            logo = self.image_fetcher.fetch_image(visual.logo_url)
            if logo is not None:
                return LogoGlyphSource(logo)
            logger.info(f"Logo unavailable, using icon '{visual.icon_id}'")

        color = parse_color(visual.foreground_color, DEFAULT_FOREGROUND)
        return SvgGlyphSource(self.icon_library, visual.icon_id, color)

    def compose(
        self,
        background: Image.Image,
        plan: LayoutPlan,
        glyph_source: GlyphSource,
        earned_count: int,
        required_count: int,
    ) -> Image.Image:
        """Paste one glyph per cell, earned glyphs first in row-major order."""
        img = background.convert("RGBA")
        glyph_size = max(1, int(plan.cell_size * GLYPH_RATIO))
        inset = (plan.cell_size - glyph_size) // 2
        glyphs = glyph_source.glyphs(glyph_size)

        for index in range(required_count):
            x, y = plan.cell_origin(index)
            glyph = glyphs.earned if index < earned_count else glyphs.unearned
            img.alpha_composite(glyph, (x + inset, y + inset))

        return img

    def compose_segmented(
        self,
        background: Image.Image,
        glyph_source: GlyphSource,
        earned_count: int,
        required_count: int,
        color: tuple[int, int, int],
    ) -> Image.Image:
        """
        Draw progress as horizontal sections behind one large stamp glyph.

        Used on small canvases where a full grid would shrink stamps past
        legibility. Sections are stacked top to bottom, one per required
        stamp, with earned sections drawn stronger.
        """
        img = background.convert("RGBA")
        width, height = img.size
        section_height = height / required_count

        overlay = Image.new("RGBA", (width, height), (0, 0, 0, 0))
        draw = ImageDraw.Draw(overlay)
        for index in range(required_count):
            top = round(index * section_height)
            bottom = round((index + 1) * section_height) - 1
            opacity = SECTION_EARNED_OPACITY if index < earned_count else SECTION_UNEARNED_OPACITY
            draw.rectangle([0, top, width - 1, bottom], fill=color + (int(255 * opacity),))
        img.alpha_composite(overlay)

        dividers = Image.new("RGBA", (width, height), (0, 0, 0, 0))
        draw = ImageDraw.Draw(dividers)
        for index in range(1, required_count):
            y = round(index * section_height)
            draw.line([(0, y), (width - 1, y)], fill=color + (int(255 * DIVIDER_OPACITY),), width=1)
        img.alpha_composite(dividers)

        icon_size = max(1, int(min(width, height) * GLYPH_RATIO))
        glyph = glyph_source.glyphs(icon_size).earned
        img.alpha_composite(glyph, ((width - icon_size) // 2, (height - icon_size) // 2))
        return img

    def _render_image(self, visual: StampVisual, profile: CanvasProfile) -> Image.Image:
        background = self._create_background(visual, profile.width, profile.height)
        glyph_source = self._glyph_source(visual)

        if profile.uses_segmented_bar(visual.required_count):
            color = parse_color(visual.foreground_color, DEFAULT_FOREGROUND)
            return self.compose_segmented(
                background, glyph_source, visual.earned_count, visual.required_count, color
            )

        plan = compute_layout(visual.required_count, profile)
        return self.compose(background, plan, glyph_source, visual.earned_count, visual.required_count)

    def render_fallback(self, visual: StampVisual, scale: int = 1) -> RenderResult:
        """Solid background of the exact canvas size."""
        profile = scaled_profile(get_profile(visual.profile), scale)
        color = parse_color(visual.background_color, DEFAULT_BACKGROUND)
        png = _to_png(Image.new("RGB", (profile.width, profile.height), color))
        return RenderResult(
            image=png,
            content_tag=content_tag(png),
            width=profile.width,
            height=profile.height,
            fallback=True,
        )

    def render(self, visual: StampVisual, scale: int = 1) -> RenderResult:
        """
        Render a stamp visual as PNG.

        Args:
            visual: What to draw (counts are clamped)
            scale: Pixel multiplier for @2x assets

        Returns:
            RenderResult with PNG bytes of exactly the profile size times
            `scale`; a solid fallback if anything in the pipeline fails
        """
        try:
            visual = visual.normalized()
            profile = scaled_profile(self._profile_for(visual), scale)
            img = self._render_image(visual, profile)
            png = _to_png(img.convert("RGB"))
        except Exception as e:
            logger.error(f"Stamp render failed for icon '{visual.icon_id}' on {visual.profile}: {e}")
            return self.render_fallback(visual, scale)

        return RenderResult(
            image=png,
            content_tag=content_tag(png),
            width=profile.width,
            height=profile.height,
        )


def create_stamp_image_generator() -> StampImageGenerator:
    """Factory function to create StampImageGenerator from settings."""
    from stampwallet.core.config import settings
    from stampwallet.services.icons import get_icon_library
    from stampwallet.services.image_fetcher import create_image_fetcher

    return StampImageGenerator(
        icon_library=get_icon_library(),
        image_fetcher=create_image_fetcher(),
        segmented_threshold=settings.segmented_threshold,
    )
