"""
Webpage Printer - Tiled Capture Loop

Captures a scrollable element taller than the visible surface as an
ordered list of viewport-sized tiles:

    Idle -> Scrolling -> Settling -> Snapshotting -> ... -> Done / Aborted

Tiles are taken strictly in scroll order (the element's scroll position
is shared state). Every suspension point is followed by a liveness check,
so a session torn down mid-loop (navigation, reload, new capture) stops
without touching shared state again and drops its partial tiles.
"""

import asyncio
import logging
import time
from typing import List, Optional

from capture_models import CaptureSession, CaptureState, ElementGeometry, Tile
from utils.error_handler import CaptureAborted, CaptureError, ZeroDimensionsError

logger = logging.getLogger(__name__)


class TiledCaptureLoop:
    """
    Drives scroll position and surface snapshots for one element.

    Only one session is current at a time: starting a new session cancels
    the previous one and moves the scroll claim to the new token.
    """

    def __init__(
        self,
        script_bridge,
        surface,
        settle_delay_ms: int = 200,
        scroll_reset_delay_ms: int = 300,
    ):
        """
        Args:
            script_bridge: ScriptBridge used to scroll the element
            surface: object with ``async capture_snapshot() -> Optional[bytes]``
            settle_delay_ms: Wait after each scroll for the page to repaint
            scroll_reset_delay_ms: Wait after the initial reset to the top
        """
        self.script_bridge = script_bridge
        self.surface = surface
        self.settle_delay_ms = settle_delay_ms
        self.scroll_reset_delay_ms = scroll_reset_delay_ms
        self._session: Optional[CaptureSession] = None

    @property
    def current_session(self) -> Optional[CaptureSession]:
        return self._session

    @property
    def is_capturing(self) -> bool:
        return self._session is not None and self._session.state not in (
            CaptureState.IDLE, CaptureState.DONE, CaptureState.ABORTED
        )

    def begin_session(self, geometry: ElementGeometry, pixel_ratio: float, viewport_height: int) -> CaptureSession:
        """Start a new session, invalidating any in-flight one"""
        self.cancel()
        session = CaptureSession(
            geometry=geometry,
            pixel_ratio=pixel_ratio,
            viewport_height=viewport_height,
        )
        self._session = session
        self.script_bridge.claim_scroll(session.token)
        return session

    def cancel(self):
        """Tear down the current session; pending resumes become no-ops"""
        session = self._session
        if session is None or not session.is_live:
            return
        session.cancel()
        self.script_bridge.release_scroll(session.token)
        if session.state not in (CaptureState.DONE, CaptureState.IDLE):
            logger.info(f"[CaptureLoop] Session {session.token[:8]} cancelled in state {session.state.value}")

    def _ensure_live(self, session: CaptureSession):
        if not session.is_live or self._session is not session:
            session.state = CaptureState.ABORTED
            raise CaptureAborted(session.token)

    async def capture(self, geometry: ElementGeometry, pixel_ratio: float, viewport_height: int) -> List[Tile]:
        """
        Capture the element as viewport-sized tiles in scroll order.

        Args:
            geometry: Measured element geometry (CSS pixels)
            pixel_ratio: Device pixel ratio (>= 1)
            viewport_height: Scroll step per tile (CSS pixels)

        Returns:
            Tiles with ordinals 0..tile_count-1. The last tile may reach past
            the content; it is clipped during stitching.

        Raises:
            ZeroDimensionsError: geometry has zero width or height
            CaptureError: snapshot surface unavailable, or no tiles produced
            CaptureAborted: session torn down before completion
        """
        if viewport_height <= 0:
            raise ValueError(f"viewport_height must be positive, got {viewport_height}")
        if pixel_ratio < 1:
            raise ValueError(f"pixel_ratio must be >= 1, got {pixel_ratio}")
        if not geometry.has_content:
            raise ZeroDimensionsError(geometry.width, geometry.total_height)

        session = self.begin_session(geometry, pixel_ratio, viewport_height)
        tile_count = session.tile_count
        tiles: List[Tile] = []
        start_time = time.time()

        logger.info(
            f"[CaptureLoop] Capturing {tile_count} screenshots for total height: "
            f"{geometry.total_height} (step {viewport_height}, ratio {pixel_ratio}, "
            f"tile height {session.viewport_height_px}px)"
        )

        try:
            # Reset to the top before the first tile
            await self.script_bridge.scroll_element_to(0, session.token)
            await asyncio.sleep(self.scroll_reset_delay_ms / 1000)

            for i in range(tile_count):
                self._ensure_live(session)

                session.state = CaptureState.SCROLLING
                scroll_position = i * viewport_height
                actual_offset = await self.script_bridge.scroll_element_to(scroll_position, session.token)
                self._ensure_live(session)
                if actual_offset is None:
                    actual_offset = scroll_position
                elif actual_offset != scroll_position:
                    logger.warning(
                        f"[CaptureLoop] Tile {i}: scroll clamped {scroll_position} -> {actual_offset}, "
                        f"overlapping rows will be dropped when stitching"
                    )

                session.state = CaptureState.SETTLING
                await asyncio.sleep(self.settle_delay_ms / 1000)
                self._ensure_live(session)

                session.state = CaptureState.SNAPSHOTTING
                data = await self._snapshot(session, i)

                tiles.append(Tile(ordinal=i, data=data, scroll_offset=actual_offset))
                logger.debug(f"  Captured screenshot {i + 1}/{tile_count} ({len(data)} bytes)")

        except CaptureAborted:
            tiles.clear()
            session.state = CaptureState.ABORTED
            logger.info(f"[CaptureLoop] Session {session.token[:8]} aborted, partial tiles discarded")
            raise
        except Exception:
            if not session.is_live or self._session is not session:
                tiles.clear()
                session.state = CaptureState.ABORTED
                raise CaptureAborted(session.token)
            session.state = CaptureState.ABORTED
            raise
        finally:
            self.script_bridge.release_scroll(session.token)

        if not tiles:
            session.state = CaptureState.ABORTED
            raise CaptureError(CaptureError.NO_TILES)

        session.state = CaptureState.DONE
        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(f"[CaptureLoop] Complete: {len(tiles)} tiles in {duration_ms}ms")
        return tiles

    async def _snapshot(self, session: CaptureSession, ordinal: int) -> bytes:
        try:
            data = await self.surface.capture_snapshot()
        except CaptureError:
            raise
        except Exception as e:
            self._ensure_live(session)
            logger.error(f"[CaptureLoop] Snapshot {ordinal} failed: {e}")
            raise CaptureError(CaptureError.SURFACE_UNAVAILABLE, f"Snapshot failed: {e}", ordinal=ordinal) from e

        self._ensure_live(session)
        if not data:
            raise CaptureError(CaptureError.SURFACE_UNAVAILABLE, ordinal=ordinal)
        return data
