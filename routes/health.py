"""
Health Routes - System Health Check

Reports server, browser, page and printer status.
"""

from fastapi import APIRouter
import logging
from routes import get_deps

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["health"])

VERSION = "0.1.0"


@router.api_route("/health", methods=["GET", "HEAD"])
async def health_check():
    """
    Health check endpoint

    Returns server status, version, page state and printer connection.
    Supports both GET and HEAD methods for Docker health checks.
    """
    deps = get_deps()
    browser = deps.browser_bridge

    printer_connected = False
    if deps.printer_transport:
        printer_connected = await deps.printer_transport.connection_status()

    return {
        "status": "ok",
        "version": VERSION,
        "message": "Webpage Printer is running",
        "browser_status": "ready" if (browser and browser.is_attached) else "not_started",
        "current_url": browser.current_url if browser else None,
        "is_page_loading": browser.is_page_loading if browser else False,
        "printer_status": "connected" if printer_connected else "disconnected",
    }
