"""
Webpage Printer - Browser Bridge

Owns the embedded browser (Playwright Chromium): page lifecycle,
navigation events, viewport metrics and surface snapshots.
Script evaluation goes through the ScriptBridge bound to the page.
"""

import asyncio
import logging
import time
from typing import Callable, List, Optional, Tuple

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from script_bridge import ScriptBridge
from utils.error_handler import BrowserNotReadyError

logger = logging.getLogger(__name__)


class BrowserBridge:
    """
    Embedded browser view.

    Navigation callbacks:
      - page started: a main-frame navigation request was issued
      - page finished: the main frame fired its load event
    Callbacks receive the URL and may be plain functions or coroutines.
    """

    def __init__(
        self,
        headless: bool = True,
        viewport_width: int = 375,
        viewport_height: int = 800,
        device_scale_factor: float = 2.0,
    ):
        self.headless = headless
        self.viewport_width = viewport_width
        self.viewport_height = viewport_height
        self.device_scale_factor = device_scale_factor

        self._playwright = None
        self.browser = None
        self.context = None
        self.page = None
        self.script_bridge: Optional[ScriptBridge] = None

        self.current_url: Optional[str] = None
        self.is_page_loading = False
        self._page_started_callbacks: List[Callable] = []
        self._page_finished_callbacks: List[Callable] = []
        self._pending_tasks: set = set()

        logger.info(
            f"[BrowserBridge] Initialized (viewport {viewport_width}x{viewport_height} @ {device_scale_factor}x)"
        )

    # === Lifecycle ===

    async def start(self):
        """Launch the browser and open the page"""
        if self.page is not None:
            return

        self._playwright = await async_playwright().start()
        self.browser = await self._playwright.chromium.launch(headless=self.headless)
        self.context = await self.browser.new_context(
            viewport={"width": self.viewport_width, "height": self.viewport_height},
            device_scale_factor=self.device_scale_factor,
        )
        self.page = await self.context.new_page()
        self.page.on("request", self._on_request)
        self.page.on("load", self._on_load)
        self.script_bridge = ScriptBridge(self.page)

        logger.info(f"[BrowserBridge] Browser started (headless={self.headless})")

    async def stop(self):
        """Close the page and the browser"""
        for task in list(self._pending_tasks):
            task.cancel()
        try:
            if self.context is not None:
                await self.context.close()
            if self.browser is not None:
                await self.browser.close()
        except PlaywrightError as e:
            logger.warning(f"[BrowserBridge] Error while closing browser: {e}")
        finally:
            if self._playwright is not None:
                await self._playwright.stop()
            self._playwright = None
            self.browser = None
            self.context = None
            self.page = None
            self.script_bridge = None
            logger.info("[BrowserBridge] Browser stopped")

    @property
    def is_attached(self) -> bool:
        return self.page is not None and not self.page.is_closed()

    # === Navigation ===

    def register_page_started_callback(self, callback: Callable):
        self._page_started_callbacks.append(callback)
        logger.debug(f"[BrowserBridge] Registered page started callback: {callback.__name__}")

    def register_page_finished_callback(self, callback: Callable):
        self._page_finished_callbacks.append(callback)
        logger.debug(f"[BrowserBridge] Registered page finished callback: {callback.__name__}")

    async def load_url(self, url: str, timeout_ms: int = 30000):
        """
        Navigate to url and wait for the load event.

        Raises:
            BrowserNotReadyError: browser not started
        """
        if not self.is_attached:
            raise BrowserNotReadyError("Browser is not started.")

        start_time = time.time()
        logger.info(f"[BrowserBridge] Loading {url}")
        await self.page.goto(url, wait_until="load", timeout=timeout_ms)
        elapsed = (time.time() - start_time) * 1000
        logger.info(f"[BrowserBridge] Loaded {url} in {elapsed:.0f}ms")

    def _on_request(self, request):
        if not request.is_navigation_request() or request.frame != self.page.main_frame:
            return
        self.is_page_loading = True
        self.current_url = request.url
        logger.info(f"[BrowserBridge] Page started: {request.url}")
        self._dispatch(self._page_started_callbacks, request.url)

    def _on_load(self, page):
        self.is_page_loading = False
        self.current_url = page.url
        logger.info(f"[BrowserBridge] Page finished: {page.url}")
        self._dispatch(self._page_finished_callbacks, page.url)

    def _dispatch(self, callbacks: List[Callable], url: str):
        for callback in callbacks:
            try:
                result = callback(url)
                if asyncio.iscoroutine(result):
                    task = asyncio.create_task(result)
                    self._pending_tasks.add(task)
                    task.add_done_callback(self._pending_tasks.discard)
            except Exception as e:
                logger.error(f"[BrowserBridge] Navigation callback {callback.__name__} failed: {e}")

    # === Surface ===

    async def viewport_metrics(self) -> Tuple[int, float]:
        """
        Visible viewport height (CSS pixels) and device pixel ratio.

        Falls back to the configured values if the page cannot answer.
        """
        height, ratio = self.viewport_height, self.device_scale_factor
        if self.script_bridge is None:
            return height, ratio
        try:
            metrics = await self.script_bridge.viewport_metrics()
            height = int(metrics.get("innerHeight") or height)
            ratio = float(metrics.get("devicePixelRatio") or ratio)
        except PlaywrightError as e:
            logger.debug(f"[BrowserBridge] Viewport metrics unavailable: {e}")
        return height, max(1.0, ratio)

    async def capture_snapshot(self) -> Optional[bytes]:
        """
        Snapshot the visible viewport at the device pixel ratio.

        Returns:
            PNG bytes, or None if the page is not attached
        """
        if not self.is_attached:
            logger.warning("[BrowserBridge] Snapshot requested with no attached page")
            return None

        start_time = time.time()
        data = await self.page.screenshot(type="png", scale="device")
        elapsed = (time.time() - start_time) * 1000
        logger.debug(f"[BrowserBridge] Snapshot captured: {len(data)} bytes in {elapsed:.0f}ms")
        return data
