"""
Screenshot stitcher tests - canvas size, clipping and degraded tiles
"""

import io

import numpy as np
import pytest
from PIL import Image

from capture_models import Tile
from conftest import decode_png, make_png, tile_color
from screenshot_stitcher import ScreenshotStitcher
from utils.error_handler import StitchError

RED = (255, 0, 0)
GREEN = (0, 255, 0)
BLUE = (0, 0, 255)


def png_from_array(pixels: np.ndarray) -> bytes:
    buffer = io.BytesIO()
    Image.fromarray(pixels).save(buffer, format="PNG")
    return buffer.getvalue()


def tiles_of(*colors, width=750, height=1600):
    return [Tile(ordinal=i, data=make_png(width, height, color)) for i, color in enumerate(colors)]


def test_canvas_size_rounds():
    assert ScreenshotStitcher.canvas_size(375, 1200, 2.0) == (750, 2400)
    assert ScreenshotStitcher.canvas_size(375, 1201, 1.5) == (562, 1802)


def test_last_tile_clipped_to_content_height():
    stitcher = ScreenshotStitcher()

    canvas = stitcher.stitch(tiles_of(RED, BLUE), 375, 1200, 2.0)

    assert (canvas.width, canvas.height) == (750, 2400)
    assert canvas.tiles_used == 2
    assert not canvas.degraded

    pixels = np.array(decode_png(canvas.png))
    assert pixels.shape == (2400, 750, 3)
    assert tuple(pixels[0, 0]) == RED
    assert tuple(pixels[1599, 749]) == RED
    assert tuple(pixels[1600, 0]) == BLUE
    assert tuple(pixels[2399, 749]) == BLUE


def test_output_height_is_exact_for_many_tiles():
    stitcher = ScreenshotStitcher()
    colors = [tile_color(i) for i in range(5)]

    canvas = stitcher.stitch(tiles_of(*colors, height=200), 100, 830, 1.0)

    pixels = np.array(decode_png(canvas.png))
    assert pixels.shape == (830, 100, 3)
    # Four full tiles, then 30 rows of the fifth
    assert tuple(pixels[799, 0]) == colors[3]
    assert tuple(pixels[800, 0]) == colors[4]
    assert tuple(pixels[829, 0]) == colors[4]


def test_extra_tiles_past_content_ignored():
    stitcher = ScreenshotStitcher()

    canvas = stitcher.stitch(tiles_of(RED, BLUE, RED), 375, 800, 2.0)

    pixels = np.array(decode_png(canvas.png))
    assert pixels.shape == (1600, 750, 3)
    assert tuple(pixels[-1, 0]) == RED
    assert canvas.tiles_used == 3


def test_out_of_order_tiles_rejected():
    stitcher = ScreenshotStitcher()
    tiles = tiles_of(RED, BLUE)
    tiles.reverse()

    with pytest.raises(StitchError) as exc_info:
        stitcher.stitch(tiles, 375, 1200, 2.0)
    assert exc_info.value.reason == StitchError.OUT_OF_ORDER


def test_duplicate_ordinal_rejected():
    stitcher = ScreenshotStitcher()
    tiles = tiles_of(RED, BLUE)
    tiles[1].ordinal = 0

    with pytest.raises(StitchError) as exc_info:
        stitcher.stitch(tiles, 375, 1200, 2.0)
    assert exc_info.value.reason == StitchError.OUT_OF_ORDER


def test_no_tiles():
    with pytest.raises(StitchError) as exc_info:
        ScreenshotStitcher().stitch([], 375, 1200, 2.0)
    assert exc_info.value.reason == StitchError.NO_USABLE_TILES


def test_all_tiles_corrupt():
    tiles = [Tile(ordinal=0, data=b"junk"), Tile(ordinal=1, data=b"")]
    with pytest.raises(StitchError) as exc_info:
        ScreenshotStitcher().stitch(tiles, 375, 1200, 2.0)
    assert exc_info.value.reason == StitchError.NO_USABLE_TILES


def test_corrupt_tile_leaves_blank_band():
    tiles = tiles_of(RED, BLUE)
    tiles[1].data = b"not a png"

    canvas = ScreenshotStitcher().stitch(tiles, 375, 1200, 2.0)

    assert canvas.degraded
    assert canvas.skipped_ordinals == [1]
    assert canvas.tiles_used == 1

    pixels = np.array(decode_png(canvas.png))
    assert pixels.shape == (2400, 750, 3)
    assert tuple(pixels[1599, 0]) == RED
    assert tuple(pixels[1600, 0]) == (255, 255, 255)
    assert tuple(pixels[2399, 0]) == (255, 255, 255)


def test_wide_tile_clamped_to_canvas_width():
    tiles = tiles_of(RED, width=900, height=1600)

    canvas = ScreenshotStitcher().stitch(tiles, 375, 800, 2.0)

    pixels = np.array(decode_png(canvas.png))
    assert pixels.shape == (1600, 750, 3)
    assert tuple(pixels[0, 749]) == RED


def test_narrow_tile_leaves_background():
    tiles = tiles_of(RED, width=500, height=1600)

    canvas = ScreenshotStitcher().stitch(tiles, 375, 800, 2.0)

    pixels = np.array(decode_png(canvas.png))
    assert tuple(pixels[0, 499]) == RED
    assert tuple(pixels[0, 500]) == (255, 255, 255)


def test_repeated_tiles_reported():
    canvas = ScreenshotStitcher().stitch(tiles_of(RED, RED), 375, 1600, 2.0)

    assert canvas.repeated_ordinals == [1]
    assert canvas.height == 3200


def test_rgba_tiles_accepted():
    buffer = io.BytesIO()
    Image.new("RGBA", (750, 1600), (0, 255, 0, 255)).save(buffer, format="PNG")
    canvas = ScreenshotStitcher().stitch([Tile(ordinal=0, data=buffer.getvalue())], 375, 800, 2.0)

    pixels = np.array(decode_png(canvas.png))
    assert tuple(pixels[10, 10]) == (0, 255, 0)


def test_clamped_last_tile_drops_overlapping_rows():
    # 375x1200 @2x, 800 viewport: the browser can only scroll to 400
    top = make_png(750, 1600, RED)
    last = np.zeros((1600, 750, 3), dtype=np.uint8)
    last[:800] = GREEN
    last[800:] = BLUE
    tiles = [
        Tile(ordinal=0, data=top, scroll_offset=0),
        Tile(ordinal=1, data=png_from_array(last), scroll_offset=400),
    ]

    canvas = ScreenshotStitcher().stitch(tiles, 375, 1200, 2.0)

    pixels = np.array(decode_png(canvas.png))
    assert pixels.shape == (2400, 750, 3)
    assert tuple(pixels[1599, 0]) == RED
    assert tuple(pixels[1600, 0]) == BLUE
    assert tuple(pixels[2399, 0]) == BLUE
    assert not (pixels == np.array(GREEN, dtype=np.uint8)).all(axis=2).any()


def test_tile_entirely_above_cursor_ignored():
    tiles = tiles_of(RED, BLUE, height=800)
    tiles[0].scroll_offset = 0
    tiles[1].scroll_offset = 0

    canvas = ScreenshotStitcher().stitch(tiles, 375, 800, 2.0)

    pixels = np.array(decode_png(canvas.png))
    assert tuple(pixels[799, 0]) == RED
    assert tuple(pixels[800, 0]) == (255, 255, 255)
