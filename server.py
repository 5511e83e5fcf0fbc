"""
Webpage Printer - FastAPI Server
Version: 0.1.0

Loads webpages into an embedded browser, captures the element with
id="printable-content" as one tall image and prints it on a Bluetooth
thermal printer.
"""

import logging
from collections import deque
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import uvicorn

from browser_bridge import BrowserBridge
from config import Settings, get_settings
from print_pipeline import PrintPipeline
from printer_transport import BlePrinterTransport, PrinterTransport
from routes import RouteDependencies, set_deps
from routes import capture, health, logs, printer
from utils.error_handler import WebpagePrinterError, handle_api_error

logger = logging.getLogger(__name__)

LOG_FORMAT = '[%(asctime)s] %(levelname)s - %(message)s'


def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt='%Y-%m-%d %H:%M:%S'
    )


# === Log buffer for the log viewer ===

class LogBufferHandler(logging.Handler):
    """
    Logging handler that keeps a circular buffer of recent log records.
    """

    def __init__(self, max_buffer: int = 200):
        super().__init__()
        self.log_buffer: deque = deque(maxlen=max_buffer)

    def emit(self, record):
        try:
            self.log_buffer.append({
                "timestamp": self.formatter.formatTime(record) if self.formatter else record.created,
                "level": record.levelname,
                "message": record.getMessage(),
                "logger": record.name,
                "module": record.module
            })
        except Exception:
            self.handleError(record)

    def get_recent_logs(self, count: int = 50) -> list:
        """Get recent log entries from buffer"""
        return list(self.log_buffer)[-count:]


log_buffer_handler = LogBufferHandler()
log_buffer_handler.setLevel(logging.DEBUG)
log_buffer_handler.setFormatter(logging.Formatter(LOG_FORMAT, '%H:%M:%S'))

# Add to root logger to capture all logs
logging.getLogger().addHandler(log_buffer_handler)


def create_app(
    settings: Optional[Settings] = None,
    browser_bridge=None,
    printer_transport: Optional[PrinterTransport] = None,
) -> FastAPI:
    """
    Build the API app and its components.

    Components can be passed in (tests); otherwise they are built from settings.
    """
    settings = settings or get_settings()

    if browser_bridge is None:
        browser_bridge = BrowserBridge(
            headless=settings.browser_headless,
            viewport_width=settings.viewport_width,
            viewport_height=settings.viewport_height,
            device_scale_factor=settings.device_scale_factor,
        )
    if printer_transport is None:
        printer_transport = BlePrinterTransport(
            chunk_size=settings.ble_chunk_size,
            write_delay_ms=settings.ble_write_delay_ms,
        )

    pipeline = PrintPipeline(browser_bridge, printer_transport, settings=settings)
    pipeline.attach()

    set_deps(RouteDependencies(
        settings=settings,
        browser_bridge=browser_bridge,
        printer_transport=printer_transport,
        pipeline=pipeline,
        log_handler=log_buffer_handler,
    ))

    app = FastAPI(
        title="Webpage Printer API",
        version=health.VERSION,
        description="Capture webpages and print them on Bluetooth thermal printers"
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Log and return detailed validation errors"""
        logger.error(f"[VALIDATION ERROR] {request.method} {request.url}: {exc.errors()}")
        return JSONResponse(
            status_code=422,
            content={"success": False, "detail": exc.errors()}
        )

    @app.exception_handler(WebpagePrinterError)
    async def webpage_printer_exception_handler(request: Request, exc: WebpagePrinterError):
        return handle_api_error(exc)

    @app.on_event("startup")
    async def startup_event():
        """Start the browser and connect the configured printer"""
        logger.info(f"[Server] Starting Webpage Printer v{health.VERSION}")
        await browser_bridge.start()

        if settings.printer_address:
            logger.info(f"[Server] Connecting to configured printer {settings.printer_address}")
            if not await printer_transport.connect(settings.printer_address):
                logger.warning("[Server] Printer not connected, connect via /api/printer/connect")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Cleanup on shutdown"""
        logger.info("[Server] Shutting down Webpage Printer...")
        await printer_transport.disconnect()
        await browser_bridge.stop()
        logger.info("[Server] Shutdown complete")

    app.include_router(health.router)
    app.include_router(printer.router)
    app.include_router(capture.router)
    app.include_router(logs.router)

    return app


if __name__ == "__main__":
    settings = get_settings()
    configure_logging(settings.log_level)

    logger.info(f"Starting Webpage Printer v{health.VERSION}")
    logger.info(f"Server: http://localhost:{settings.port}")
    logger.info(f"API: http://localhost:{settings.port}/api")

    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower()
    )
