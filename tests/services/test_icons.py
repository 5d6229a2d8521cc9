from __future__ import annotations

import json

import pytest

from stampwallet.core.config import settings
from stampwallet.domain.errors import IconNotFoundError
from stampwallet.services import icons
from stampwallet.services.icons import IconLibrary, LRUCache, tint_svg

SVG = '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 10 10"><rect width="10" height="10" fill="currentColor"/></svg>'


def _write_icons(tmp_path, entries: list[dict], files: dict[str, str]) -> None:
    (tmp_path / "manifest.json").write_text(json.dumps({"icons": entries}))
    for name, content in files.items():
        (tmp_path / name).write_text(content)


def test_unknown_icon_falls_back_to_first_manifest_entry(tmp_path) -> None:
    _write_icons(
        tmp_path,
        [{"id": "star", "filledFile": "star.svg"}, {"id": "heart", "filledFile": "heart.svg"}],
        {"star.svg": SVG, "heart.svg": SVG},
    )
    library = IconLibrary(tmp_path)

    assert library.get("heart").icon_id == "heart"
    assert library.get("rocket").icon_id == "star"


def test_unknown_icon_prefers_configured_default(tmp_path) -> None:
    _write_icons(
        tmp_path,
        [{"id": "star", "filledFile": "star.svg"}, {"id": "heart", "filledFile": "heart.svg"}],
        {"star.svg": SVG, "heart.svg": SVG},
    )

    assert IconLibrary(tmp_path, default_icon_id="heart").get("rocket").icon_id == "heart"
    assert IconLibrary(tmp_path, default_icon_id="missing").get("rocket").icon_id == "star"


def test_stroke_variant_is_optional(tmp_path) -> None:
    _write_icons(
        tmp_path,
        [
            {"id": "cup", "filledFile": "cup.svg", "strokeFile": "cup-outline.svg"},
            {"id": "gift", "filledFile": "gift.svg"},
            {"id": "leaf", "filledFile": "leaf.svg", "strokeFile": "missing.svg"},
        ],
        {"cup.svg": SVG, "cup-outline.svg": SVG, "gift.svg": SVG, "leaf.svg": SVG},
    )
    library = IconLibrary(tmp_path)

    assert library.get("cup").has_stroke is True
    assert library.get("gift").has_stroke is False
    assert library.get("leaf").has_stroke is False


def test_missing_manifest_raises(tmp_path) -> None:
    with pytest.raises(IconNotFoundError):
        IconLibrary(tmp_path).get("coffee")


def test_missing_filled_file_raises(tmp_path) -> None:
    _write_icons(tmp_path, [{"id": "cup", "filledFile": "cup.svg"}], {})

    with pytest.raises(IconNotFoundError):
        IconLibrary(tmp_path).get("cup")


def test_artwork_is_memoized(tmp_path) -> None:
    _write_icons(tmp_path, [{"id": "cup", "filledFile": "cup.svg"}], {"cup.svg": SVG})
    library = IconLibrary(tmp_path)

    first = library.get("cup")
    (tmp_path / "cup.svg").write_text("<svg/>")

    assert library.get("cup") is first


def test_lru_cache_evicts_least_recently_used() -> None:
    cache = LRUCache(2)
    cache.put("a", 1)
    cache.put("b", 2)
    cache.get("a")
    cache.put("c", 3)

    assert cache.get("a") == 1
    assert cache.get("b") is None
    assert cache.get("c") == 3
    assert len(cache) == 2


def test_tint_replaces_colors_but_keeps_none() -> None:
    svg = (
        '<path fill="currentColor"/><path fill="#000"/><path stroke="currentColor" fill="none"/>'
        '<path style="fill:#123456;stroke:none"/>'
    )

    tinted = tint_svg(svg, (255, 0, 0))

    assert 'fill="currentColor"' not in tinted
    assert tinted.count('fill="#ff0000"') == 2
    assert 'stroke="#ff0000"' in tinted
    assert 'fill="none"' in tinted
    assert "fill:#ff0000" in tinted
    assert "stroke:none" in tinted


def test_packaged_icons_are_listed() -> None:
    library = IconLibrary(settings.icons_path)

    assert library.icon_ids()[0] == "coffee"
    assert library.get("coffee").has_stroke is True


@pytest.mark.skipif(not icons.CAIROSVG_AVAILABLE, reason="cairo not installed")
def test_rasterize_tints_and_sizes(tmp_path) -> None:
    _write_icons(tmp_path, [{"id": "cup", "filledFile": "cup.svg"}], {"cup.svg": SVG})
    library = IconLibrary(tmp_path)

    img = library.rasterize(library.get("cup"), (0, 128, 255), 24)

    assert img.size == (24, 24)
    assert img.mode == "RGBA"
    assert img.getpixel((12, 12)) == (0, 128, 255, 255)
