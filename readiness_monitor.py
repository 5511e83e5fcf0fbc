"""
Webpage Printer - Element Readiness Monitor

Polls the page until the printable element exists.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class ElementReadinessMonitor:
    """
    Waits for the printable element to appear in the page.

    A timeout is a normal outcome (returns False), never an exception.
    """

    def __init__(
        self,
        script_bridge,
        poll_interval: float = 0.25,
        is_live: Optional[Callable[[], bool]] = None,
    ):
        """
        Args:
            script_bridge: ScriptBridge for the current page
            poll_interval: Seconds between existence checks
            is_live: Optional liveness check; polling stops when it returns False
        """
        self.script_bridge = script_bridge
        self.poll_interval = poll_interval
        self.is_live = is_live or (lambda: True)

    async def wait_for_element(self, timeout: float = 10.0) -> bool:
        """
        Poll until the element exists or timeout elapses.

        Returns:
            True if the element was found, False on timeout or teardown
        """
        start = time.monotonic()
        attempts = 0

        while time.monotonic() - start < timeout:
            if not self.is_live():
                logger.debug("[ReadinessMonitor] Owner torn down, stopping poll")
                return False

            attempts += 1
            try:
                if await self.script_bridge.element_exists():
                    elapsed_ms = (time.monotonic() - start) * 1000
                    logger.info(
                        f"[ReadinessMonitor] #{self.script_bridge.element_id} ready "
                        f"after {attempts} check(s), {elapsed_ms:.0f}ms"
                    )
                    return True
            except Exception as e:
                # Page may be mid-navigation; keep polling
                logger.debug(f"[ReadinessMonitor] Existence check failed: {e}")

            await asyncio.sleep(self.poll_interval)

        logger.warning(
            f"[ReadinessMonitor] #{self.script_bridge.element_id} not found "
            f"after {timeout:.1f}s ({attempts} checks)"
        )
        return False
