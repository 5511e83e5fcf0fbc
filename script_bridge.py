"""
Webpage Printer - Script Bridge

Runs the measurement and scroll scripts inside the embedded browser page
and turns their results into Python values.

Scroll position of the printable element is shared state: only the
capture session holding the scroll claim may move it.
"""

import json
import logging
from typing import Any, Optional

from capture_models import ElementGeometry, PRINTABLE_ELEMENT_ID
from utils.error_handler import CaptureAborted

logger = logging.getLogger(__name__)


ELEMENT_EXISTS_SCRIPT = "(id) => document.getElementById(id) !== null"

MEASURE_ELEMENT_SCRIPT = """(id) => {
    const element = document.getElementById(id);
    if (!element) return null;
    const rect = element.getBoundingClientRect();
    return {
        x: Math.round(rect.left),
        y: Math.round(rect.top),
        width: Math.round(rect.width),
        height: Math.round(rect.height),
        totalHeight: Math.round(element.scrollHeight)
    };
}"""

SCROLL_ELEMENT_SCRIPT = """([id, y]) => {
    const element = document.getElementById(id);
    if (!element) return null;
    element.scrollTo(0, y);
    return Math.round(element.scrollTop);
}"""

VIEWPORT_METRICS_SCRIPT = """() => ({
    innerWidth: window.innerWidth,
    innerHeight: window.innerHeight,
    devicePixelRatio: window.devicePixelRatio
})"""


def is_truthy_result(result: Any) -> bool:
    """Script engines may return a real boolean or its text form"""
    if result is True:
        return True
    return str(result).strip().lower() == "true"


class ScriptBridge:
    """
    Script evaluation against one page.

    Args:
        page: any object exposing ``async evaluate(expression, arg=None)``
              (a Playwright Page or Frame)
        element_id: id of the element to measure and scroll
    """

    def __init__(self, page, element_id: str = PRINTABLE_ELEMENT_ID):
        self.page = page
        self.element_id = element_id
        self._scroll_owner: Optional[str] = None

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        """Evaluate a script and return its raw result"""
        if arg is None:
            return await self.page.evaluate(script)
        return await self.page.evaluate(script, arg)

    async def element_exists(self) -> bool:
        result = await self.evaluate(ELEMENT_EXISTS_SCRIPT, self.element_id)
        return is_truthy_result(result)

    async def measure_element(self) -> Optional[ElementGeometry]:
        """
        Measure the element's bounding box and full scroll height.

        Returns:
            ElementGeometry, or None if the element is gone
        """
        result = await self.evaluate(MEASURE_ELEMENT_SCRIPT, self.element_id)
        if result is None or result == "null":
            return None
        geometry = ElementGeometry.from_script_result(result)
        logger.debug(f"[ScriptBridge] Measured #{self.element_id}: {geometry.model_dump()}")
        return geometry

    async def viewport_metrics(self) -> dict:
        result = await self.evaluate(VIEWPORT_METRICS_SCRIPT)
        if isinstance(result, str):
            result = json.loads(result)
        return result or {}

    # === Scroll claim (single writer) ===

    def claim_scroll(self, token: str):
        """Make token the only session allowed to scroll; revokes any previous claim"""
        if self._scroll_owner and self._scroll_owner != token:
            logger.debug(f"[ScriptBridge] Scroll claim moved from {self._scroll_owner[:8]} to {token[:8]}")
        self._scroll_owner = token

    def release_scroll(self, token: str):
        if self._scroll_owner == token:
            self._scroll_owner = None

    def owns_scroll(self, token: str) -> bool:
        return self._scroll_owner is not None and self._scroll_owner == token

    async def scroll_element_to(self, y: int, token: str) -> Optional[int]:
        """
        Scroll the element to vertical offset y.

        Raises:
            CaptureAborted: token does not hold the scroll claim

        Returns:
            The element's scrollTop after scrolling (browsers clamp it to
            the maximum scroll offset), or None if unknown
        """
        if not self.owns_scroll(token):
            raise CaptureAborted(token)

        result = await self.evaluate(SCROLL_ELEMENT_SCRIPT, [self.element_id, int(y)])
        if result is None or result == "null":
            return None
        try:
            return int(float(result))
        except (TypeError, ValueError):
            return None
