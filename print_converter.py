"""
Webpage Printer - Print Raster Converter

Turns the stitched canvas into an ESC/POS command stream for a 58mm
thermal printer: raster image (GS v 0), paper feed, cut.

Monochrome conversion (dithering) is done by python-escpos.
"""

import io
import logging
from typing import Union

from escpos.printer import Dummy
from PIL import Image

from capture_models import Canvas, PrintJob
from utils.error_handler import ErrorContext, PrintError

logger = logging.getLogger(__name__)

# 58mm-class thermal head
DEFAULT_PRINTER_WIDTH_DOTS = 384


def scaled_height(width: int, height: int, target_width: int) -> int:
    """Height after resizing width -> target_width with the aspect ratio kept"""
    if width <= 0:
        return 0
    return round(height * target_width / width)


class PrintRasterConverter:
    """
    Builds PrintJobs from canvas images.
    """

    def __init__(self, width_dots: int = DEFAULT_PRINTER_WIDTH_DOTS, feed_lines: int = 2):
        self.width_dots = width_dots
        self.feed_lines = feed_lines

    def resize_for_printer(self, image: Image.Image) -> Image.Image:
        """
        Resize to the printer's dot width, keeping the aspect ratio.

        Raises:
            PrintError: resized image would have zero width or height
        """
        width, height = image.size
        target_height = scaled_height(width, height, self.width_dots)
        if self.width_dots <= 0 or target_height <= 0:
            raise PrintError(
                PrintError.INVALID_DIMENSIONS,
                f"Image {width}x{height} resizes to {self.width_dots}x{target_height}",
            )
        if (width, height) == (self.width_dots, target_height):
            return image
        return image.resize((self.width_dots, target_height), Image.Resampling.LANCZOS)

    def build_print_job(self, canvas: Union[Canvas, bytes]) -> PrintJob:
        """
        Encode a canvas as raster + feed + cut.

        Args:
            canvas: Canvas, or its encoded image bytes

        Raises:
            PrintError: canvas undecodable, or invalid dimensions after resize
        """
        data = canvas.png if isinstance(canvas, Canvas) else canvas
        if not data:
            raise PrintError(PrintError.DECODE_FAILED, "Failed to decode image for printing.")

        with ErrorContext(
            "decoding canvas for printing",
            raise_as=lambda message: PrintError(PrintError.DECODE_FAILED, message),
        ):
            image = Image.open(io.BytesIO(data))
            image.load()

        # Transparent areas print as paper
        if image.mode in ("RGBA", "LA", "P"):
            image = image.convert("RGBA")
            background = Image.new("RGBA", image.size, (255, 255, 255, 255))
            image = Image.alpha_composite(background, image)
        image = image.convert("RGB")

        resized = self.resize_for_printer(image)
        logger.info(
            f"[PrintConverter] Resized {image.width}x{image.height} -> {resized.width}x{resized.height} dots"
        )

        printer = Dummy()
        printer.image(resized, impl="bitImageRaster")
        printer.print_and_feed(self.feed_lines)
        printer.cut()

        job = PrintJob(data=printer.output, width_dots=resized.width, height_dots=resized.height)
        logger.info(f"[PrintConverter] Print job ready: {len(job)} bytes")
        return job
