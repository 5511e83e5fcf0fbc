"""
Centralized Error Handling Module for Webpage Printer

Provides the capture/print error taxonomy, consistent error responses,
logging, and user-friendly messages.
"""

import logging
from typing import Dict, Any, Optional
from fastapi import status
from fastapi.responses import JSONResponse

logger = logging.getLogger("webpage_printer")


# =============================================================================
# ERROR HINTS - User-friendly troubleshooting suggestions
# =============================================================================

ERROR_HINTS = {
    "element_not_found": {
        "message": "Element with id=\"printable-content\" not found.",
        "hint": "The page must contain a single element with id 'printable-content'. Check the URL, or wait for the page to finish loading and recapture.",
    },
    "zero_dimensions": {
        "message": "Printable content has zero dimensions.",
        "hint": "The 'printable-content' element is empty or hidden. Make sure it is rendered before capturing.",
    },
    "capture_failed": {
        "message": "Failed to capture any screenshots.",
        "hint": "The browser view may have been closed or navigated away. Reload the page and try again.",
    },
    "stitch_failed": {
        "message": "Could not assemble the captured screenshots.",
        "hint": "None of the captured screenshots could be decoded. Recapture the content.",
    },
    "print_failed": {
        "message": "Error printing.",
        "hint": "Check that the printer is on, has paper, and is still connected.",
    },
    "printer_not_connected": {
        "message": "Printer is not connected.",
        "hint": "Connect to the Bluetooth thermal printer first (POST /api/printer/connect).",
    },
    "browser_not_ready": {
        "message": "No page is loaded.",
        "hint": "Load a webpage before capturing (POST /api/page/load).",
    },
    "timeout": {
        "message": "Operation timed out",
        "hint": "The page may still be loading. Wait a moment and recapture.",
    },
}


def get_error_with_hint(error_type: str, original_message: str = "") -> dict:
    """
    Get error message with troubleshooting hint.

    Args:
        error_type: Key from ERROR_HINTS dictionary
        original_message: Original error message to include

    Returns:
        Dict with error and hint
    """
    hint_info = ERROR_HINTS.get(error_type, {})
    return {
        "error": original_message or hint_info.get("message", "Unknown error"),
        "hint": hint_info.get("hint", ""),
    }


def classify_error(error_message: str) -> str:
    """
    Classify an error message to determine the appropriate hint type.

    Returns:
        Error type key for ERROR_HINTS lookup ("" if nothing matches)
    """
    msg = error_message.lower()

    if "printable-content" in msg or ("element" in msg and "not found" in msg):
        return "element_not_found"
    if "zero dimensions" in msg:
        return "zero_dimensions"
    if "printer" in msg and ("not connected" in msg or "disconnected" in msg):
        return "printer_not_connected"
    if "screenshot" in msg or "surface" in msg or ("tile" in msg and "capture" in msg):
        return "capture_failed"
    if "stitch" in msg or ("decode" in msg and "tile" in msg):
        return "stitch_failed"
    if "print" in msg:
        return "print_failed"
    if "no page" in msg or "browser" in msg:
        return "browser_not_ready"
    if "timeout" in msg or "timed out" in msg:
        return "timeout"

    return ""


class WebpagePrinterError(Exception):
    """Base exception for all Webpage Printer errors"""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class ElementNotFoundError(WebpagePrinterError):
    """Raised when the printable element never appeared within the readiness timeout"""

    def __init__(self, element_id: str, timeout: Optional[float] = None):
        super().__init__(
            f'Element with id="{element_id}" not found.',
            code="ELEMENT_NOT_FOUND",
            details={"element_id": element_id, "timeout": timeout},
        )


class ZeroDimensionsError(WebpagePrinterError):
    """Raised when the measured element has zero width or zero scroll height"""

    def __init__(self, width: int, total_height: int):
        super().__init__(
            "Printable content has zero dimensions.",
            code="ZERO_DIMENSIONS",
            details={"width": width, "total_height": total_height},
        )


class CaptureError(WebpagePrinterError):
    """Raised when the tiled capture loop cannot produce tiles"""

    SURFACE_UNAVAILABLE = "surface_unavailable"
    NO_TILES = "no_tiles"

    def __init__(self, reason: str, message: Optional[str] = None, ordinal: Optional[int] = None):
        if message is None:
            message = (
                "Failed to capture any screenshots."
                if reason == self.NO_TILES
                else "Screenshot surface is not available."
            )
        self.reason = reason
        super().__init__(
            message, code="CAPTURE_ERROR", details={"reason": reason, "ordinal": ordinal}
        )


class StitchError(WebpagePrinterError):
    """Raised when the captured tiles cannot be composited"""

    NO_USABLE_TILES = "no_usable_tiles"
    OUT_OF_ORDER = "out_of_order"

    def __init__(self, reason: str, message: Optional[str] = None):
        if message is None:
            message = (
                "Tiles must be stitched in scroll order."
                if reason == self.OUT_OF_ORDER
                else "No screenshot tile could be decoded for stitching."
            )
        self.reason = reason
        super().__init__(message, code="STITCH_ERROR", details={"reason": reason})


class PrintError(WebpagePrinterError):
    """Raised when the print job cannot be built or sent"""

    DECODE_FAILED = "decode_failed"
    INVALID_DIMENSIONS = "invalid_dimensions"
    TRANSPORT_FAILED = "transport_failed"
    NO_IMAGE = "no_image"

    def __init__(self, reason: str, message: str):
        self.reason = reason
        super().__init__(message, code="PRINT_ERROR", details={"reason": reason})


class PrinterNotConnectedError(WebpagePrinterError):
    """Raised when a print is requested without a printer connection"""

    def __init__(self, address: Optional[str] = None):
        super().__init__(
            "Printer is not connected.",
            code="PRINTER_NOT_CONNECTED",
            details={"address": address},
        )


class BrowserNotReadyError(WebpagePrinterError):
    """Raised when a capture is requested before any page is loaded"""

    def __init__(self, message: str = "No page is loaded."):
        super().__init__(message, code="BROWSER_NOT_READY")


class CaptureAborted(Exception):
    """
    Raised when a capture session is torn down mid-loop (navigation, reload).

    Not a WebpagePrinterError: an aborted capture is not reported to the user.
    """

    def __init__(self, token: str = ""):
        self.token = token
        super().__init__(f"Capture session {token} aborted")


def create_error_response(
    error: Exception,
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
) -> JSONResponse:
    """
    Create a standardized error response

    Args:
        error: The exception that occurred
        status_code: HTTP status code

    Returns:
        JSONResponse with error details
    """
    error_response = {
        "success": False,
        "error": {"message": str(error), "type": error.__class__.__name__},
    }

    if isinstance(error, WebpagePrinterError):
        error_response["error"]["code"] = error.code
        error_response["error"]["details"] = error.details
        error_response["error"]["hint"] = get_error_with_hint(classify_error(error.message))["hint"]

    logger.error(f"{error.__class__.__name__}: {error}", exc_info=True)

    return JSONResponse(status_code=status_code, content=error_response)


ERROR_STATUS_CODES = {
    "ELEMENT_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "ZERO_DIMENSIONS": status.HTTP_400_BAD_REQUEST,
    "PRINTER_NOT_CONNECTED": status.HTTP_409_CONFLICT,
    "BROWSER_NOT_READY": status.HTTP_409_CONFLICT,
    "BUSY": status.HTTP_409_CONFLICT,
}

PRINT_REASON_STATUS_CODES = {
    PrintError.TRANSPORT_FAILED: status.HTTP_503_SERVICE_UNAVAILABLE,
    PrintError.NO_IMAGE: status.HTTP_409_CONFLICT,
}


def status_code_for_error(code: Optional[str], reason: Optional[str] = None) -> int:
    """HTTP status for an error code (and PrintError reason)"""
    if code == "PRINT_ERROR" and reason in PRINT_REASON_STATUS_CODES:
        return PRINT_REASON_STATUS_CODES[reason]
    return ERROR_STATUS_CODES.get(code, status.HTTP_500_INTERNAL_SERVER_ERROR)


def handle_api_error(error: Exception) -> JSONResponse:
    """
    Handle API errors with appropriate status codes

    Args:
        error: The exception to handle

    Returns:
        JSONResponse with appropriate status code
    """
    if isinstance(error, WebpagePrinterError):
        return create_error_response(
            error, status_code_for_error(error.code, getattr(error, "reason", None))
        )

    elif isinstance(error, ValueError):
        return create_error_response(error, status.HTTP_400_BAD_REQUEST)

    else:
        return create_error_response(error, status.HTTP_500_INTERNAL_SERVER_ERROR)


def get_user_friendly_message(error: Exception) -> str:
    """
    Get a user-friendly error message for display

    Args:
        error: The exception

    Returns:
        User-friendly error message
    """
    if isinstance(error, ElementNotFoundError):
        return 'Element with id="printable-content" not found.'

    elif isinstance(error, ZeroDimensionsError):
        return "Printable content has zero dimensions."

    elif isinstance(error, CaptureError):
        if error.reason == CaptureError.NO_TILES:
            return "Failed to capture any screenshots."
        return f"Error capturing content: {error.message}"

    elif isinstance(error, StitchError):
        return f"Error capturing content: {error.message}"

    elif isinstance(error, PrinterNotConnectedError):
        return "Printer is not connected. Please connect to your Bluetooth thermal printer."

    elif isinstance(error, PrintError):
        if error.reason == PrintError.NO_IMAGE:
            return "No image to print."
        if error.reason == PrintError.DECODE_FAILED:
            return "Failed to decode image for printing."
        return f"Error printing: {error.message}"

    elif isinstance(error, BrowserNotReadyError):
        return error.message

    else:
        return f"An unexpected error occurred: {str(error)}"


def create_success_response(
    data: Any = None,
    message: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Create a standardized success response

    Usage:
        return create_success_response(data={"width": 750})
        return create_success_response(message="Print command sent successfully!")
    """
    response = {"success": True}

    if data is not None:
        response["data"] = data

    if message is not None:
        response["message"] = message

    return response


class ErrorContext:
    """
    Context manager for error handling

    Usage:
        with ErrorContext("decoding canvas", raise_as=...):
            # code that might fail
            pass
    """

    def __init__(self, operation: str, raise_as=None):
        self.operation = operation
        self.raise_as = raise_as or (
            lambda message: WebpagePrinterError(message, code="OPERATION_FAILED")
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            logger.error(f"Error during {self.operation}: {exc_val}", exc_info=True)
            if not isinstance(exc_val, (WebpagePrinterError, CaptureAborted)):
                raise self.raise_as(f"Failed {self.operation}: {exc_val}") from exc_val
        return False  # Don't suppress exception
