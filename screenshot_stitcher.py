"""
Webpage Printer - Screenshot Stitcher
Composites ordered viewport tiles into one full-height canvas.

Tiles are copied as whole row blocks into a contiguous numpy buffer
(canvas_height x canvas_width x 3). A write cursor advances by the rows
each tile contributes; the last tile is clipped to the rows left in the
canvas so the result is exactly the element's content height.
"""

import io
import logging
import time
from typing import List, Optional

import cv2
import numpy as np
from PIL import Image

from capture_models import Canvas, Tile
from utils.error_handler import StitchError

logger = logging.getLogger(__name__)


class ScreenshotStitcher:
    """
    Stitches viewport tiles into a single lossless canvas.
    """

    def __init__(self, background: int = 255, duplicate_threshold: float = 0.999):
        """
        Args:
            background: Fill value for canvas areas no tile covers (255 = white paper)
            duplicate_threshold: Similarity above which two consecutive tiles are
                                 reported as repeated (page did not repaint after scroll)
        """
        self.background = background
        self.duplicate_threshold = duplicate_threshold

    @staticmethod
    def canvas_size(target_width: int, target_height: int, pixel_ratio: float) -> tuple:
        return round(target_width * pixel_ratio), round(target_height * pixel_ratio)

    def stitch(
        self,
        tiles: List[Tile],
        target_width: int,
        target_height: int,
        pixel_ratio: float,
    ) -> Canvas:
        """
        Composite tiles top to bottom into one canvas.

        Args:
            tiles: Tiles in strictly increasing ordinal order
            target_width: Element width (CSS pixels)
            target_height: Element scroll height (CSS pixels)
            pixel_ratio: Device pixel ratio the tiles were captured at

        Returns:
            Canvas (PNG) of round(width*ratio) x round(height*ratio) pixels

        Raises:
            StitchError: tiles out of order, or no tile could be decoded
        """
        start_time = time.time()
        self._check_order(tiles)

        canvas_width, canvas_height = self.canvas_size(target_width, target_height, pixel_ratio)
        if canvas_width <= 0 or canvas_height <= 0:
            raise StitchError(
                StitchError.NO_USABLE_TILES,
                f"Canvas would be empty ({canvas_width}x{canvas_height})",
            )

        canvas = np.full((canvas_height, canvas_width, 3), self.background, dtype=np.uint8)
        write_y = 0
        used = 0
        skipped: List[int] = []
        repeated: List[int] = []
        prev_rows: Optional[np.ndarray] = None

        for tile in tiles:
            rows = self._decode_tile(tile)
            if rows is None:
                skipped.append(tile.ordinal)
                logger.warning(f"[ScreenshotStitcher] Tile {tile.ordinal} could not be decoded, skipping (degraded band)")
                continue

            used += 1
            if prev_rows is not None and self._compare_images(prev_rows, rows) > self.duplicate_threshold:
                repeated.append(tile.ordinal)
                logger.warning(f"[ScreenshotStitcher] Tile {tile.ordinal} repeats the previous tile - page may not have repainted")
            prev_rows = rows

            if write_y >= canvas_height:
                logger.debug(f"  Tile {tile.ordinal}: canvas already full, ignoring")
                continue

            tile_height, tile_width = rows.shape[:2]
            skip = self._overlap_rows(tile, write_y, pixel_ratio)
            if skip >= tile_height:
                logger.warning(f"[ScreenshotStitcher] Tile {tile.ordinal} lies entirely above row {write_y}, ignoring")
                continue

            copy_height = min(tile_height - skip, canvas_height - write_y)
            copy_width = min(tile_width, canvas_width)

            canvas[write_y:write_y + copy_height, :copy_width] = rows[skip:skip + copy_height, :copy_width]
            logger.debug(
                f"  Tile {tile.ordinal}: {tile_width}x{tile_height} -> rows {write_y}-{write_y + copy_height}"
                + (f" (skipped {skip} overlapping)" if skip else "")
                + (" (clipped)" if skip + copy_height < tile_height else "")
            )
            write_y += copy_height

        if used == 0:
            raise StitchError(StitchError.NO_USABLE_TILES)

        if write_y < canvas_height:
            logger.warning(
                f"[ScreenshotStitcher] Tiles cover {write_y}/{canvas_height} rows - bottom band left blank"
            )

        png = self._encode_png(canvas)
        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"[ScreenshotStitcher] Stitched {used}/{len(tiles)} tiles -> {canvas_width}x{canvas_height}px "
            f"in {duration_ms}ms" + (f", skipped {skipped}" if skipped else "")
        )

        return Canvas(
            png=png,
            width=canvas_width,
            height=canvas_height,
            tiles_used=used,
            skipped_ordinals=skipped,
            repeated_ordinals=repeated,
        )

    def _overlap_rows(self, tile: Tile, write_y: int, pixel_ratio: float) -> int:
        """
        Rows at the top of a tile already on the canvas.

        Non-zero only when the browser clamped the tile's scroll (the last
        tile of an element whose height is not a multiple of the viewport).
        """
        if tile.scroll_offset is None:
            return 0
        tile_top = round(tile.scroll_offset * pixel_ratio)
        if tile_top >= write_y:
            return 0
        skip = write_y - tile_top
        logger.warning(
            f"[ScreenshotStitcher] Tile {tile.ordinal} starts at row {tile_top}, "
            f"{skip} rows overlap the previous tile - dropping them"
        )
        return skip

    def _check_order(self, tiles: List[Tile]):
        last = None
        for tile in tiles:
            if last is not None and tile.ordinal <= last:
                logger.error(f"[ScreenshotStitcher] Tile {tile.ordinal} arrived after tile {last}")
                raise StitchError(
                    StitchError.OUT_OF_ORDER,
                    f"Tile {tile.ordinal} arrived after tile {last}; tiles must be stitched in scroll order",
                )
            last = tile.ordinal

    def _decode_tile(self, tile: Tile) -> Optional[np.ndarray]:
        """Decode a tile into an RGB row buffer, or None if it is not a readable image"""
        if not tile.data:
            return None
        try:
            with Image.open(io.BytesIO(tile.data)) as img:
                img.load()
                if img.mode != "RGB":
                    img = img.convert("RGB")
                return np.array(img, dtype=np.uint8)
        except Exception as e:
            logger.debug(f"  Tile {tile.ordinal} decode error: {e}")
            return None

    def _encode_png(self, canvas: np.ndarray) -> bytes:
        buffer = io.BytesIO()
        Image.fromarray(canvas).save(buffer, format="PNG")
        return buffer.getvalue()

    def _compare_images(self, arr1: np.ndarray, arr2: np.ndarray) -> float:
        """
        Compare two tiles using normalized cross-correlation of their grayscale.

        Returns:
            Float between 0.0 (completely different) and 1.0 (identical)
        """
        if arr1.shape != arr2.shape:
            return 0.0

        gray1 = cv2.cvtColor(arr1, cv2.COLOR_RGB2GRAY).astype(np.float64)
        gray2 = cv2.cvtColor(arr2, cv2.COLOR_RGB2GRAY).astype(np.float64)

        norm1 = gray1 - gray1.mean()
        norm2 = gray2 - gray2.mean()

        numerator = np.sum(norm1 * norm2)
        denominator = np.sqrt(np.sum(norm1 ** 2) * np.sum(norm2 ** 2))

        if denominator == 0:
            # Flat images: identical only if the same flat color
            return 1.0 if np.array_equal(gray1, gray2) else 0.0

        correlation = numerator / denominator
        return float((correlation + 1) / 2)
