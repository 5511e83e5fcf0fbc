"""
Webpage Printer - Capture Models

Pydantic models and dataclasses shared by the capture, stitch and print stages.
"""

import json
import math
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field


# Fixed integration contract with the target page
PRINTABLE_ELEMENT_ID = "printable-content"


class CaptureState(str, Enum):
    """Capture loop state"""
    IDLE = "idle"
    SCROLLING = "scrolling"
    SETTLING = "settling"
    SNAPSHOTTING = "snapshotting"
    DONE = "done"
    ABORTED = "aborted"


class ElementGeometry(BaseModel):
    """Bounding box and scroll extent of the printable element (CSS pixels)"""
    x: int = Field(0, ge=0)
    y: int = Field(0, ge=0)
    width: int = Field(0, ge=0)
    height: int = Field(0, ge=0)
    total_height: int = Field(0, ge=0, alias="totalHeight")

    class Config:
        populate_by_name = True

    @classmethod
    def from_script_result(cls, result: Any) -> "ElementGeometry":
        """
        Build geometry from a geometry-query result.

        The browser may hand back a dict or its JSON text. Missing or null
        values count as 0; negative offsets (element scrolled above the
        viewport) are clamped to 0.
        """
        if isinstance(result, (str, bytes)):
            result = json.loads(result)
        if not isinstance(result, dict):
            raise ValueError(f"Unexpected geometry result: {result!r}")

        def _int(key: str, *aliases: str) -> int:
            for name in (key,) + aliases:
                value = result.get(name)
                if value is not None:
                    return max(0, int(round(float(value))))
            return 0

        return cls(
            x=_int("x"),
            y=_int("y"),
            width=_int("width"),
            height=_int("height"),
            total_height=_int("totalHeight", "total_height"),
        )

    @property
    def has_content(self) -> bool:
        return self.width > 0 and self.total_height > 0


def tile_count_for(total_height: int, viewport_height: int) -> int:
    """Number of viewport-sized tiles needed to cover total_height"""
    if viewport_height <= 0:
        raise ValueError(f"viewport_height must be positive, got {viewport_height}")
    return math.ceil(total_height / viewport_height)


@dataclass
class CaptureSession:
    """
    One full-page capture attempt.

    viewport_height is the scroll step, in the same CSS pixel space as the
    geometry. Tiles themselves are viewport_height_px tall.
    """
    geometry: ElementGeometry
    pixel_ratio: float
    viewport_height: int
    token: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: CaptureState = CaptureState.IDLE
    cancelled: bool = False

    @property
    def tile_count(self) -> int:
        return tile_count_for(self.geometry.total_height, self.viewport_height)

    @property
    def viewport_height_px(self) -> int:
        return round(self.viewport_height * self.pixel_ratio)

    @property
    def is_live(self) -> bool:
        return not self.cancelled

    def cancel(self):
        self.cancelled = True


@dataclass
class Tile:
    """
    One snapshot of the scrolled element, in scroll order.

    scroll_offset is the element's actual scrollTop (CSS pixels) when the
    snapshot was taken, if known.
    """
    ordinal: int
    data: bytes
    scroll_offset: Optional[int] = None


@dataclass
class Canvas:
    """Stitched full-resolution image (PNG encoded)"""
    png: bytes
    width: int
    height: int
    tiles_used: int = 0
    skipped_ordinals: List[int] = field(default_factory=list)
    repeated_ordinals: List[int] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.skipped_ordinals)


@dataclass(frozen=True)
class PrintJob:
    """Finished printer command stream (raster + feed + cut)"""
    data: bytes
    width_dots: int
    height_dots: int

    def __len__(self) -> int:
        return len(self.data)


class CaptureResult(BaseModel):
    """Outcome of one capture attempt, as reported to callers"""
    success: bool
    status: str  # captured | busy | aborted | failed
    message: str = ""
    error_code: Optional[str] = None
    error_reason: Optional[str] = None
    tile_count: int = 0
    width: int = 0
    height: int = 0
    skipped_tiles: List[int] = []
    repeated_tiles: List[int] = []
    duration_ms: int = 0


class PrintResult(BaseModel):
    """Outcome of one print attempt"""
    success: bool
    message: str = ""
    error_code: Optional[str] = None
    error_reason: Optional[str] = None
    bytes_sent: int = 0
    width_dots: int = 0
    height_dots: int = 0
