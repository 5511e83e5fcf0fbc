"""
Shared fakes for the capture/print tests.

FakePage answers the ScriptBridge scripts the way a browser page would,
FakeSurface hands out PNG snapshots, FakeBrowser combines both behind the
BrowserBridge interface and FakeTransport records printer writes.
"""

import io
from typing import Awaitable, Callable, List, Optional

import pytest
from PIL import Image

from config import Settings
from script_bridge import (
    ELEMENT_EXISTS_SCRIPT,
    MEASURE_ELEMENT_SCRIPT,
    SCROLL_ELEMENT_SCRIPT,
    VIEWPORT_METRICS_SCRIPT,
    ScriptBridge,
)


def make_png(width: int, height: int, color=(0, 0, 0)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


def decode_png(data: bytes) -> Image.Image:
    img = Image.open(io.BytesIO(data))
    img.load()
    return img.convert("RGB")


def tile_color(ordinal: int):
    return ((ordinal * 60) % 256, 80, 160)


class FakePage:
    """Evaluates the known ScriptBridge scripts against an in-memory element"""

    def __init__(
        self,
        width: int = 375,
        total_height: int = 1200,
        exists: bool = True,
        exists_after: int = 0,
        inner_height: int = 800,
        device_pixel_ratio: float = 2.0,
    ):
        self.width = width
        self.total_height = total_height
        self.exists = exists
        self.exists_after = exists_after
        self.inner_height = inner_height
        self.device_pixel_ratio = device_pixel_ratio
        self.exists_error: Optional[Exception] = None
        self.geometry_override = None

        self.exists_calls = 0
        self.scroll_calls: List[int] = []
        self.scroll_top = 0

    async def evaluate(self, expression, arg=None):
        if expression == ELEMENT_EXISTS_SCRIPT:
            self.exists_calls += 1
            if self.exists_error is not None:
                raise self.exists_error
            return self.exists and self.exists_calls > self.exists_after

        if expression == MEASURE_ELEMENT_SCRIPT:
            if self.geometry_override is not None:
                return self.geometry_override
            if not self.exists:
                return None
            return {
                "x": 0,
                "y": 0,
                "width": self.width,
                "height": min(self.total_height, self.inner_height),
                "totalHeight": self.total_height,
            }

        if expression == SCROLL_ELEMENT_SCRIPT:
            _, y = arg
            self.scroll_calls.append(y)
            max_scroll = max(0, self.total_height - self.inner_height)
            self.scroll_top = max(0, min(y, max_scroll))
            return self.scroll_top

        if expression == VIEWPORT_METRICS_SCRIPT:
            return {
                "innerWidth": self.width,
                "innerHeight": self.inner_height,
                "devicePixelRatio": self.device_pixel_ratio,
            }

        raise AssertionError(f"Unexpected script: {expression[:40]}")


class FakeSurface:
    """
    Snapshot source producing one solid-color PNG per call.

    none_at / raise_at / corrupt_at select the call ordinals that return
    None, raise, or return undecodable bytes. fixed_color makes every
    snapshot the same color. on_snapshot is awaited with
    the ordinal before each snapshot is returned.
    """

    def __init__(self, width: int = 750, height: int = 1600):
        self.width = width
        self.height = height
        self.calls = 0
        self.none_at: set = set()
        self.raise_at: set = set()
        self.corrupt_at: set = set()
        self.fixed_color = None
        self.on_snapshot: Optional[Callable[[int], Awaitable[None]]] = None

    async def capture_snapshot(self) -> Optional[bytes]:
        ordinal = self.calls
        self.calls += 1
        if self.on_snapshot is not None:
            await self.on_snapshot(ordinal)
        if ordinal in self.raise_at:
            raise RuntimeError("surface detached")
        if ordinal in self.none_at:
            return None
        if ordinal in self.corrupt_at:
            return b"not an image"
        color = self.fixed_color or tile_color(ordinal)
        return make_png(self.width, self.height, color)


class FakeBrowser:
    """BrowserBridge stand-in backed by FakePage and FakeSurface"""

    def __init__(self, page: Optional[FakePage] = None, surface: Optional[FakeSurface] = None):
        self.page = page or FakePage()
        self.surface = surface or FakeSurface()
        self.script_bridge = ScriptBridge(self.page)
        self.current_url = None
        self.is_page_loading = False
        self.is_attached = False
        self.loaded_urls: List[str] = []
        self._page_started_callbacks = []
        self._page_finished_callbacks = []

    async def start(self):
        self.is_attached = True

    async def stop(self):
        self.is_attached = False

    def register_page_started_callback(self, callback):
        self._page_started_callbacks.append(callback)

    def register_page_finished_callback(self, callback):
        self._page_finished_callbacks.append(callback)

    async def load_url(self, url: str, timeout_ms: int = 30000):
        self.is_page_loading = True
        self.current_url = url
        for callback in self._page_started_callbacks:
            await callback(url)
        self.loaded_urls.append(url)
        self.is_page_loading = False
        for callback in self._page_finished_callbacks:
            await callback(url)

    async def viewport_metrics(self):
        return self.page.inner_height, self.page.device_pixel_ratio

    async def capture_snapshot(self):
        return await self.surface.capture_snapshot()


class FakeTransport:
    """Printer transport that records written bytes"""

    def __init__(self, connected: bool = True, write_result: bool = True):
        self.connected = connected
        self.write_result = write_result
        self.address = "AA:BB:CC:DD:EE:FF" if connected else None
        self.written: List[bytes] = []

    async def connection_status(self) -> bool:
        return self.connected

    async def connect(self, address: str) -> bool:
        self.connected = True
        self.address = address
        return True

    async def write_bytes(self, data: bytes) -> bool:
        if not self.connected:
            return False
        self.written.append(data)
        return self.write_result

    async def disconnect(self):
        self.connected = False


@pytest.fixture
def settings():
    return Settings(
        settle_delay_ms=0,
        scroll_reset_delay_ms=0,
        readiness_timeout=0.2,
        readiness_poll_interval=0.01,
        auto_capture=False,
        auto_capture_delay_ms=0,
    )


@pytest.fixture
def page():
    return FakePage()


@pytest.fixture
def surface():
    return FakeSurface()


@pytest.fixture
def browser(page, surface):
    return FakeBrowser(page, surface)


@pytest.fixture
def transport():
    return FakeTransport()
