"""
Webpage Printer - Print Pipeline
Sequences the capture and print stages:

    readiness -> measure -> tiled capture -> stitch -> (hold canvas)
    canvas -> print job -> printer transport

Every stage failure is turned into a user-facing message and ends that
attempt; nothing is retried. State is left so capture or print can simply
be triggered again.
"""

import asyncio
import logging
import time
from typing import Optional

from capture_loop import TiledCaptureLoop
from capture_models import Canvas, CaptureResult, PrintResult
from config import Settings, get_settings
from print_converter import PrintRasterConverter
from readiness_monitor import ElementReadinessMonitor
from screenshot_stitcher import ScreenshotStitcher
from utils.error_handler import (
    BrowserNotReadyError,
    CaptureAborted,
    ElementNotFoundError,
    PrintError,
    PrinterNotConnectedError,
    WebpagePrinterError,
    ZeroDimensionsError,
    get_user_friendly_message,
)

logger = logging.getLogger(__name__)


class PrintPipeline:
    """
    Capture/print orchestration for one browser view and one printer.
    """

    def __init__(
        self,
        browser_bridge,
        printer_transport,
        stitcher: Optional[ScreenshotStitcher] = None,
        converter: Optional[PrintRasterConverter] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Args:
            browser_bridge: BrowserBridge (script bridge, viewport metrics, snapshots)
            printer_transport: PrinterTransport used to send print jobs
            stitcher: ScreenshotStitcher (default instance if omitted)
            converter: PrintRasterConverter (built from settings if omitted)
            settings: Settings (environment settings if omitted)
        """
        self.settings = settings or get_settings()
        self.browser_bridge = browser_bridge
        self.printer_transport = printer_transport
        self.stitcher = stitcher or ScreenshotStitcher()
        self.converter = converter or PrintRasterConverter(
            width_dots=self.settings.printer_width_dots,
            feed_lines=self.settings.printer_feed_lines,
        )

        self._capture_loop: Optional[TiledCaptureLoop] = None
        self._canvas: Optional[Canvas] = None
        self._generation = 0
        self._is_capturing = False
        self._capture_generation = -1
        self._capture_done: Optional[asyncio.Future] = None
        self._is_printing = False
        self._auto_capture_task: Optional[asyncio.Task] = None
        self.last_capture: Optional[CaptureResult] = None
        self.last_print: Optional[PrintResult] = None

        logger.info("[PrintPipeline] Initialized")

    def attach(self):
        """Follow the browser's navigation events"""
        self.browser_bridge.register_page_started_callback(self.on_page_started)
        self.browser_bridge.register_page_finished_callback(self.on_page_finished)

    # === State ===

    @property
    def canvas(self) -> Optional[Canvas]:
        return self._canvas

    @property
    def is_capturing(self) -> bool:
        return self._is_capturing

    @property
    def is_printing(self) -> bool:
        return self._is_printing

    def get_status(self) -> dict:
        return {
            "is_capturing": self._is_capturing,
            "is_printing": self._is_printing,
            "is_page_loading": getattr(self.browser_bridge, "is_page_loading", False),
            "current_url": getattr(self.browser_bridge, "current_url", None),
            "has_image": self._canvas is not None,
            "width": self._canvas.width if self._canvas else 0,
            "height": self._canvas.height if self._canvas else 0,
            "last_capture": self.last_capture.model_dump() if self.last_capture else None,
            "last_print": self.last_print.model_dump() if self.last_print else None,
        }

    def _capture_loop_for(self, script_bridge) -> TiledCaptureLoop:
        loop = self._capture_loop
        if loop is None or loop.script_bridge is not script_bridge:
            loop = TiledCaptureLoop(
                script_bridge,
                self.browser_bridge,
                settle_delay_ms=self.settings.settle_delay_ms,
                scroll_reset_delay_ms=self.settings.scroll_reset_delay_ms,
            )
            self._capture_loop = loop
        return loop

    # === Navigation hooks ===

    async def on_page_started(self, url: str):
        """New navigation: drop the held image and abort any capture in flight"""
        self._generation += 1
        self._canvas = None
        if self._auto_capture_task and not self._auto_capture_task.done():
            self._auto_capture_task.cancel()
        if self._capture_loop is not None:
            self._capture_loop.cancel()
        logger.debug(f"[PrintPipeline] Page started ({url}), generation {self._generation}")

    async def on_page_finished(self, url: str):
        if not self.settings.auto_capture:
            return
        generation = self._generation
        self._auto_capture_task = asyncio.create_task(self._auto_capture(generation))

    async def _auto_capture(self, generation: int):
        await asyncio.sleep(self.settings.auto_capture_delay_ms / 1000)
        if generation != self._generation:
            return
        await self.capture()

    # === Capture ===

    async def capture(self) -> CaptureResult:
        """
        Capture the printable element and hold the stitched canvas.

        Returns:
            CaptureResult with status captured | busy | aborted | failed
        """
        while self._is_capturing:
            if self._capture_generation == self._generation:
                logger.info("[PrintPipeline] Capture already running, ignoring request")
                result = CaptureResult(success=False, status="busy", message="Capture already in progress.")
                self.last_capture = result
                return result
            # Capture of a previous page is still unwinding; it aborts at its next check
            logger.info("[PrintPipeline] Waiting for previous page's capture to abort")
            await asyncio.shield(self._capture_done)

        self._is_capturing = True
        generation = self._generation
        self._capture_generation = generation
        self._capture_done = asyncio.get_running_loop().create_future()
        start_time = time.time()

        try:
            canvas, tile_count = await self._run_capture(generation)
            self._canvas = canvas
            result = CaptureResult(
                success=True,
                status="captured",
                message="Screenshot captured successfully!",
                tile_count=tile_count,
                width=canvas.width,
                height=canvas.height,
                skipped_tiles=canvas.skipped_ordinals,
                repeated_tiles=canvas.repeated_ordinals,
            )

        except CaptureAborted:
            logger.info("[PrintPipeline] Capture aborted by navigation")
            result = CaptureResult(success=False, status="aborted")

        except WebpagePrinterError as e:
            logger.warning(f"[PrintPipeline] Capture failed: {e.message}")
            result = CaptureResult(
                success=False,
                status="failed",
                message=get_user_friendly_message(e),
                error_code=e.code,
                error_reason=getattr(e, "reason", None),
            )

        except Exception as e:
            logger.error(f"[PrintPipeline] Error capturing content: {e}", exc_info=True)
            result = CaptureResult(
                success=False,
                status="failed",
                message=f"Error capturing content: {e}",
                error_code="CAPTURE_EXCEPTION",
            )

        finally:
            self._is_capturing = False
            if not self._capture_done.done():
                self._capture_done.set_result(None)

        result.duration_ms = int((time.time() - start_time) * 1000)
        self.last_capture = result
        return result

    def _ensure_generation(self, generation: int):
        if generation != self._generation:
            raise CaptureAborted()

    async def _run_capture(self, generation: int):
        script_bridge = getattr(self.browser_bridge, "script_bridge", None)
        if script_bridge is None:
            raise BrowserNotReadyError()

        monitor = ElementReadinessMonitor(
            script_bridge,
            poll_interval=self.settings.readiness_poll_interval,
            is_live=lambda: generation == self._generation,
        )
        found = await monitor.wait_for_element(timeout=self.settings.readiness_timeout)
        self._ensure_generation(generation)
        if not found:
            raise ElementNotFoundError(script_bridge.element_id, self.settings.readiness_timeout)

        geometry = await script_bridge.measure_element()
        self._ensure_generation(generation)
        if geometry is None:
            raise ElementNotFoundError(script_bridge.element_id)
        if not geometry.has_content:
            raise ZeroDimensionsError(geometry.width, geometry.total_height)

        viewport_height, pixel_ratio = await self.browser_bridge.viewport_metrics()
        self._ensure_generation(generation)

        capture_loop = self._capture_loop_for(script_bridge)
        tiles = await capture_loop.capture(geometry, pixel_ratio, viewport_height)
        self._ensure_generation(generation)

        canvas = await asyncio.to_thread(
            self.stitcher.stitch, tiles, geometry.width, geometry.total_height, pixel_ratio
        )
        self._ensure_generation(generation)
        return canvas, len(tiles)

    # === Print ===

    async def print_capture(self) -> PrintResult:
        """
        Convert the held canvas to a print job and send it.

        Returns:
            PrintResult (never raises for pipeline failures)
        """
        if self._is_printing:
            return PrintResult(success=False, message="Print already in progress.", error_code="BUSY")

        self._is_printing = True
        try:
            result = await self._run_print()
        except WebpagePrinterError as e:
            logger.warning(f"[PrintPipeline] Print failed: {e.message}")
            result = PrintResult(
                success=False,
                message=get_user_friendly_message(e),
                error_code=e.code,
                error_reason=getattr(e, "reason", None),
            )
        except Exception as e:
            logger.error(f"[PrintPipeline] Print error: {e}", exc_info=True)
            result = PrintResult(success=False, message=f"Error printing: {e}", error_code="PRINT_EXCEPTION")
        finally:
            self._is_printing = False

        self.last_print = result
        return result

    async def _run_print(self) -> PrintResult:
        canvas = self._canvas
        if canvas is None:
            raise PrintError(PrintError.NO_IMAGE, "No image to print.")

        job = await asyncio.to_thread(self.converter.build_print_job, canvas)

        if not await self.printer_transport.connection_status():
            raise PrinterNotConnectedError(getattr(self.printer_transport, "address", None))

        sent = await self.printer_transport.write_bytes(job.data)
        if not sent:
            raise PrintError(PrintError.TRANSPORT_FAILED, "Printer did not accept the print job.")

        logger.info(f"[PrintPipeline] Print command sent ({len(job)} bytes, {job.width_dots}x{job.height_dots} dots)")
        return PrintResult(
            success=True,
            message="Print command sent successfully!",
            bytes_sent=len(job),
            width_dots=job.width_dots,
            height_dots=job.height_dots,
        )
