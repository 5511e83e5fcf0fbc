"""
Capture Routes - Page Loading, Capture and Printing

Provides endpoints for the capture/print workflow:
- Load a webpage into the embedded browser
- Capture the printable element (scroll, snapshot, stitch)
- Fetch the captured image
- Print the captured image on the connected printer
"""

from urllib.parse import urlparse

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel
import logging
from routes import get_deps
from utils.error_handler import create_success_response, handle_api_error, status_code_for_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["capture"])


class LoadPageRequest(BaseModel):
    url: str
    timeout_ms: int = 30000


def _result_response(result) -> JSONResponse:
    if result.success:
        return JSONResponse(status_code=200, content=result.model_dump())
    return JSONResponse(
        status_code=status_code_for_error(result.error_code, result.error_reason),
        content=result.model_dump(),
    )


# =============================================================================
# PAGE
# =============================================================================

@router.post("/page/load")
async def load_page(request: LoadPageRequest):
    """Navigate the embedded browser to a URL"""
    deps = get_deps()
    url = request.url.strip()
    if not url or not urlparse(url).scheme:
        raise HTTPException(status_code=400, detail="A full URL (with scheme) is required")

    try:
        await deps.browser_bridge.load_url(url, timeout_ms=request.timeout_ms)
        return create_success_response(
            data={"url": deps.browser_bridge.current_url or url},
            message=f"Loaded {url}",
        )
    except Exception as e:
        logger.error(f"[API] Page load failed: {e}")
        return handle_api_error(e)


# =============================================================================
# CAPTURE
# =============================================================================

@router.post("/capture")
async def capture():
    """Capture the printable element of the loaded page"""
    deps = get_deps()
    logger.info("[API] Capture requested")
    result = await deps.pipeline.capture()
    return _result_response(result)


@router.get("/capture/status")
async def capture_status():
    """Capture/print state and the last capture outcome"""
    deps = get_deps()
    return deps.pipeline.get_status()


@router.get("/capture/image")
async def capture_image():
    """Captured image as PNG"""
    deps = get_deps()
    canvas = deps.pipeline.canvas
    if canvas is None:
        raise HTTPException(status_code=404, detail="No image captured")
    return Response(
        content=canvas.png,
        media_type="image/png",
        headers={"X-Image-Width": str(canvas.width), "X-Image-Height": str(canvas.height)},
    )


# =============================================================================
# PRINT
# =============================================================================

@router.post("/print")
async def print_capture():
    """Send the captured image to the printer"""
    deps = get_deps()
    logger.info("[API] Print requested")
    result = await deps.pipeline.print_capture()
    return _result_response(result)
