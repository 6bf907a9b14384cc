"""
Tests for the core watermark components.

Run with: python -m pytest tests/test_core.py -v
"""

import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import numpy as np
import pytest
from PIL import Image

from lightmark.core.codec import ImageCodec, ImageFormat
from lightmark.core.compositor import (
    NativeAlphaCompositor, OpaqueMergeCompositor, prepare_canvas, select_compositor
)
from lightmark.core.errors import (
    EncodeError, ErrorKind, FontUnavailableError, InvalidImageError,
    UnsupportedFormatError
)
from lightmark.core.position import Anchor, Position, calculate_position
from lightmark.core.surface import Surface
from lightmark.core.text import TextLayout, parse_color, points_to_pixels


FONT_CANDIDATES = [
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/TTF/DejaVuSans.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
    "/Library/Fonts/Arial.ttf",
    "/System/Library/Fonts/Supplemental/Arial.ttf",
    "C:/Windows/Fonts/arial.ttf",
]


def find_test_font():
    """Return the first installed TrueType font from the candidate list."""
    for candidate in FONT_CANDIDATES:
        if Path(candidate).is_file():
            return candidate
    return None


TEST_FONT = find_test_font()
requires_font = pytest.mark.skipif(TEST_FONT is None, reason="no TrueType font installed")


def gradient_array(width: int, height: int, alpha: bool = False) -> np.ndarray:
    """Build a deterministic gradient pixel array."""
    xs = np.linspace(0, 255, width, dtype=np.float64)
    ys = np.linspace(0, 255, height, dtype=np.float64)
    arr = np.zeros((height, width, 4 if alpha else 3), dtype=np.uint8)
    arr[..., 0] = xs[None, :].astype(np.uint8)
    arr[..., 1] = ys[:, None].astype(np.uint8)
    arr[..., 2] = 128
    if alpha:
        arr[..., 3] = ((xs[None, :] + ys[:, None]) / 2).astype(np.uint8)
    return arr


def opaque_gradient(width: int, height: int) -> np.ndarray:
    """Gradient RGBA array with full alpha."""
    rgb = gradient_array(width, height)
    return np.dstack([rgb, np.full((height, width), 255, dtype=np.uint8)])


def solid_surface(width, height, rgba, alpha_significant=True) -> Surface:
    return Surface.blank(width, height, fill=rgba, alpha_significant=alpha_significant)


def save_image(arr: np.ndarray, path: Path, fmt: str) -> Path:
    Image.fromarray(arr).save(path, format=fmt)
    return path


# ===== Position Calculator =====

@pytest.mark.parametrize("anchor, expected", [
    ("top-left", (50, 50)),
    ("top-center", (400, 50)),
    ("top-right", (750, 50)),
    ("middle-left", (50, 425)),
    ("middle-center", (400, 425)),
    ("middle-right", (750, 425)),
    ("bottom-left", (50, 800)),
    ("bottom-center", (400, 800)),
    ("bottom-right", (750, 800)),
])
def test_grid_anchors(anchor, expected):
    """900x900 canvas, 100x50 mark, margin 50."""
    assert calculate_position(anchor, 900, 900, 100, 50, 50) == expected


def test_middle_center_ignores_margin():
    assert calculate_position(Anchor.MIDDLE_CENTER, 900, 900, 100, 50, 0) == \
        calculate_position(Anchor.MIDDLE_CENTER, 900, 900, 100, 50, 200)


def test_unknown_anchor_falls_back_to_bottom_right():
    assert Anchor.parse("nowhere") is Anchor.BOTTOM_RIGHT
    assert calculate_position("nowhere", 900, 900, 100, 50, 50) == Position(750, 800)


def test_position_truncates_to_int():
    # 1000 / 3 + (1000 / 3 - 101) / 2 = 449.5
    x, _ = calculate_position(Anchor.TOP_CENTER, 1000, 1000, 101, 10, 0)
    assert x == 449
    assert isinstance(x, int)


# ===== Surface =====

def test_surface_close_releases_pixels():
    surface = solid_surface(4, 3, (1, 2, 3, 4))
    assert surface.size == (4, 3)

    with surface:
        assert not surface.closed
    assert surface.closed

    with pytest.raises(ValueError):
        _ = surface.pixels


def test_surface_rejects_bad_shape():
    with pytest.raises(ValueError):
        Surface(np.zeros((3, 3, 3), dtype=np.uint8))


def test_opaque_surface_from_image_has_full_alpha():
    img = Image.fromarray(gradient_array(8, 8, alpha=True))
    surface = Surface.from_image(img, alpha_significant=False)
    assert (surface.pixels[..., 3] == 255).all()


# ===== Codec Adapter =====

def test_format_from_mime():
    assert ImageFormat.from_mime("image/jpeg") is ImageFormat.JPEG
    assert ImageFormat.from_mime("IMAGE/PNG") is ImageFormat.PNG
    assert ImageFormat.from_mime("image/gif") is ImageFormat.GIF

    with pytest.raises(UnsupportedFormatError) as exc:
        ImageFormat.from_mime("image/webp")
    assert exc.value.kind is ErrorKind.UNSUPPORTED_FORMAT


def test_png_round_trip_is_lossless(tmp_path):
    codec = ImageCodec()
    original = gradient_array(64, 48, alpha=True)
    original[0, 0] = (10, 20, 30, 0)
    src = save_image(original, tmp_path / "src.png", "PNG")

    with codec.decode(src, ImageFormat.PNG) as surface:
        assert surface.alpha_significant
        assert np.array_equal(surface.pixels, original)
        out = codec.encode(surface, tmp_path / "out.png", ImageFormat.PNG)

    with codec.decode(out, ImageFormat.PNG) as again:
        assert np.array_equal(again.pixels, original)


def test_jpeg_decode_is_opaque(tmp_path):
    codec = ImageCodec()
    src = save_image(gradient_array(32, 32), tmp_path / "src.jpg", "JPEG")

    info = codec.probe(src)
    assert info.format is ImageFormat.JPEG
    assert info.dimensions == "32x32"

    with codec.decode(src, ImageFormat.JPEG) as surface:
        assert not surface.alpha_significant
        assert (surface.pixels[..., 3] == 255).all()


def test_mpo_camera_jpeg_is_read_as_jpeg(tmp_path):
    codec = ImageCodec()
    src = tmp_path / "camera.jpg"
    Image.fromarray(gradient_array(40, 30)).save(src, format="MPO", save_all=True)
    with Image.open(src) as img:
        assert img.format == "MPO"

    info = codec.probe(src)
    assert info.format is ImageFormat.JPEG
    assert info.dimensions == "40x30"

    with codec.decode(src, ImageFormat.JPEG) as surface:
        assert surface.size == (40, 30)
        assert not surface.alpha_significant


def test_format_from_pil_names():
    assert ImageFormat.from_pil("JPEG") is ImageFormat.JPEG
    assert ImageFormat.from_pil("MPO") is ImageFormat.JPEG
    assert ImageFormat.from_pil("png") is ImageFormat.PNG
    with pytest.raises(UnsupportedFormatError):
        ImageFormat.from_pil("BMP")
    with pytest.raises(UnsupportedFormatError):
        ImageFormat.from_pil(None)


def test_oversized_image_is_invalid(tmp_path, monkeypatch):
    codec = ImageCodec()
    src = save_image(gradient_array(300, 300), tmp_path / "huge.png", "PNG")
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 30000)

    with pytest.raises(InvalidImageError) as exc:
        codec.probe(src)
    assert exc.value.kind is ErrorKind.INVALID_IMAGE
    with pytest.raises(InvalidImageError):
        codec.decode(src, ImageFormat.PNG)


def test_decode_missing_file(tmp_path):
    with pytest.raises(InvalidImageError):
        ImageCodec().decode(tmp_path / "missing.png", ImageFormat.PNG)


def test_decode_corrupt_file(tmp_path):
    bad = tmp_path / "bad.png"
    bad.write_bytes(b"definitely not a png")

    with pytest.raises(InvalidImageError):
        ImageCodec().decode(bad, ImageFormat.PNG)
    with pytest.raises(InvalidImageError):
        ImageCodec().probe(bad)


def test_decode_rejects_mismatched_declared_format(tmp_path):
    src = save_image(gradient_array(16, 16), tmp_path / "photo.png", "PNG")
    with pytest.raises(InvalidImageError):
        ImageCodec().decode(src, ImageFormat.JPEG)


def test_probe_rejects_unsupported_format(tmp_path):
    src = save_image(gradient_array(16, 16), tmp_path / "photo.bmp", "BMP")
    with pytest.raises(UnsupportedFormatError):
        ImageCodec().probe(src)


def test_encode_failure_leaves_no_files(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory")

    with solid_surface(8, 8, (0, 0, 0, 255)) as surface:
        with pytest.raises(EncodeError) as exc:
            ImageCodec().encode(surface, blocker / "out.png", ImageFormat.PNG)
    assert exc.value.kind is ErrorKind.ENCODE_FAILURE
    assert sorted(p.name for p in tmp_path.iterdir()) == ["blocker"]


def test_gif_encode_and_decode(tmp_path):
    codec = ImageCodec()
    with solid_surface(20, 10, (255, 0, 0, 255), alpha_significant=False) as surface:
        out = codec.encode(surface, tmp_path / "out.gif", ImageFormat.GIF)

    assert codec.probe(out).format is ImageFormat.GIF
    with codec.decode(out, ImageFormat.GIF) as decoded:
        assert decoded.size == (20, 10)
        assert tuple(decoded.pixels[5, 5]) == (255, 0, 0, 255)


# ===== Alpha Compositor =====

def test_native_alpha_opacity_zero_is_noop():
    dest = Surface(gradient_array(30, 30, alpha=True))
    before = dest.pixels.copy()
    overlay = solid_surface(10, 10, (255, 0, 0, 255))

    NativeAlphaCompositor().composite(dest, overlay, Position(5, 5), 0)
    assert np.array_equal(dest.pixels, before)


def test_opaque_merge_opacity_zero_is_noop():
    dest = Surface(gradient_array(30, 30, alpha=True))
    before = dest.pixels.copy()
    overlay = solid_surface(10, 10, (255, 0, 0, 255), alpha_significant=False)

    OpaqueMergeCompositor().composite(dest, overlay, Position(5, 5), 0)
    assert np.array_equal(dest.pixels, before)


@pytest.mark.parametrize("compositor", [NativeAlphaCompositor(), OpaqueMergeCompositor()])
def test_full_opacity_opaque_overlay_replaces_footprint(compositor):
    dest = Surface(opaque_gradient(40, 40))
    before = dest.pixels.copy()
    overlay = Surface(opaque_gradient(10, 8)[..., [2, 1, 0, 3]])

    compositor.composite(dest, overlay, Position(12, 20), 100)

    assert np.array_equal(dest.pixels[20:28, 12:22], overlay.pixels)
    outside = np.ones((40, 40), dtype=bool)
    outside[20:28, 12:22] = False
    assert np.array_equal(dest.pixels[outside], before[outside])


@pytest.mark.parametrize("opacity", [0, 35, 100])
def test_transparent_overlay_pixel_leaves_destination(opacity):
    dest = Surface(gradient_array(20, 20, alpha=True))
    before = dest.pixels.copy()
    overlay = solid_surface(6, 6, (255, 255, 255, 255))
    overlay.pixels[2, 3] = (0, 255, 0, 0)

    NativeAlphaCompositor().composite(dest, overlay, Position(4, 4), opacity)
    assert np.array_equal(dest.pixels[6, 7], before[6, 7])


def test_native_alpha_half_opacity_blend():
    dest = solid_surface(4, 4, (0, 0, 255, 255))
    overlay = solid_surface(2, 2, (255, 0, 0, 255))

    NativeAlphaCompositor().composite(dest, overlay, Position(1, 1), 50)

    r, g, b, a = (int(c) for c in dest.pixels[1, 1])
    assert abs(r - 128) <= 1 and g == 0 and abs(b - 128) <= 1
    assert a == 255
    assert tuple(dest.pixels[0, 0]) == (0, 0, 255, 255)


def test_opaque_merge_interpolates_color():
    dest = solid_surface(4, 4, (100, 100, 100, 255), alpha_significant=False)
    overlay = solid_surface(2, 2, (200, 100, 0, 255), alpha_significant=False)

    OpaqueMergeCompositor().composite(dest, overlay, Position(0, 0), 50)

    assert tuple(dest.pixels[0, 0]) == (150, 100, 50, 255)
    assert tuple(dest.pixels[3, 3]) == (100, 100, 100, 255)


def test_composite_clips_to_destination():
    dest = solid_surface(10, 10, (0, 0, 0, 255))
    overlay = solid_surface(6, 6, (255, 255, 255, 255))

    NativeAlphaCompositor().composite(dest, overlay, Position(-3, 7), 100)

    assert (dest.pixels[7:10, 0:3, :3] == 255).all()
    assert (dest.pixels[0:7, :, :3] == 0).all()
    assert (dest.pixels[:, 3:, :3] == 0).all()


def test_composite_outside_destination_is_noop():
    dest = solid_surface(10, 10, (0, 0, 0, 255))
    overlay = solid_surface(4, 4, (255, 255, 255, 255))

    OpaqueMergeCompositor().composite(dest, overlay, Position(20, 20), 100)
    assert (dest.pixels[..., :3] == 0).all()


def test_select_compositor_follows_alpha_semantics():
    assert isinstance(select_compositor(solid_surface(1, 1, (0, 0, 0, 0))), NativeAlphaCompositor)
    assert isinstance(
        select_compositor(solid_surface(1, 1, (0, 0, 0, 255), alpha_significant=False)),
        OpaqueMergeCompositor
    )


def test_prepare_canvas_copies_source():
    source = Surface(gradient_array(12, 9, alpha=True), alpha_significant=True)

    with prepare_canvas(source, supports_alpha=True) as canvas:
        assert canvas.alpha_significant
        assert np.array_equal(canvas.pixels, source.pixels)
        assert canvas.pixels is not source.pixels

    with prepare_canvas(source, supports_alpha=False) as canvas:
        assert not canvas.alpha_significant
        assert np.array_equal(canvas.pixels, source.pixels)


def test_prepare_canvas_is_independent_of_source():
    source = Surface(gradient_array(6, 4, alpha=True), alpha_significant=True)
    before = source.pixels.copy()

    with prepare_canvas(source, supports_alpha=False) as canvas:
        canvas.pixels[:, :] = 0

    assert np.array_equal(source.pixels, before)
    assert not source.closed


# ===== Text Layout =====

def test_parse_color():
    assert parse_color("#790000") == (0x79, 0, 0)
    assert parse_color((1, 2, 3, 4)) == (1, 2, 3)


def test_points_to_pixels():
    assert points_to_pixels(72) == 96
    assert points_to_pixels(12) == 16


def test_missing_font_is_fatal(tmp_path):
    layout = TextLayout()
    with pytest.raises(FontUnavailableError):
        layout.measure(tmp_path / "nope.ttf", 14, "Hello")

    bogus = tmp_path / "bogus.ttf"
    bogus.write_bytes(b"not a font")
    with solid_surface(50, 50, (0, 0, 0, 255)) as surface:
        with pytest.raises(FontUnavailableError) as exc:
            layout.render(surface, bogus, 14, 0, Position(0, 0), (255, 255, 255), "Hello")
    assert exc.value.kind is ErrorKind.FONT_UNAVAILABLE


@requires_font
def test_measure_text():
    layout = TextLayout()
    width, height = layout.measure(TEST_FONT, 24, "Lightmark")
    assert width > height > 0

    wider, _ = layout.measure(TEST_FONT, 48, "Lightmark")
    assert wider > width
    assert layout.measure(TEST_FONT, 24, "") == (0, 0)


@requires_font
def test_render_text_inside_box():
    layout = TextLayout()
    width, height = layout.measure(TEST_FONT, 40, "HIM")
    color = (200, 30, 60)

    with solid_surface(300, 200, (255, 255, 255, 255), alpha_significant=False) as surface:
        layout.render(surface, TEST_FONT, 40, 0, Position(20, 30), color, "HIM")

        box = surface.pixels[30:30 + height, 20:20 + width, :3]
        assert np.all(box == color, axis=-1).any()

        outside = surface.pixels.copy()
        outside[30:30 + height, 20:20 + width] = 255
        assert (outside == 255).all()


@requires_font
def test_render_rotated_text_changes_pixels():
    layout = TextLayout()

    with solid_surface(300, 300, (0, 0, 0, 255), alpha_significant=False) as surface:
        layout.render(surface, TEST_FONT, 30, 45, Position(100, 100), "#ffffff", "Rotated")
        assert (surface.pixels[..., :3] > 0).any()
        assert (surface.pixels[..., 3] == 255).all()
