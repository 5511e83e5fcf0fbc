"""
Printer Routes - Bluetooth Printer Connection

Provides endpoints for checking, opening and closing the printer link.
"""

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel
import logging
from routes import get_deps
from utils.error_handler import create_success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/printer", tags=["printer"])


class ConnectPrinterRequest(BaseModel):
    address: str


@router.get("/status")
async def printer_status():
    """Current printer connection"""
    deps = get_deps()
    transport = deps.printer_transport
    connected = await transport.connection_status()
    return {
        "connected": connected,
        "address": transport.address if connected else None,
    }


@router.post("/connect")
async def connect_printer(request: ConnectPrinterRequest):
    """Connect to the printer at the given Bluetooth address"""
    deps = get_deps()
    address = request.address.strip()
    if not address:
        raise HTTPException(status_code=400, detail="Printer address is required")

    try:
        logger.info(f"[API] Connecting to printer {address}")
        connected = await deps.printer_transport.connect(address)
        if not connected:
            raise HTTPException(status_code=503, detail=f"Could not connect to printer {address}")
        return create_success_response(
            data={"connected": True, "address": address},
            message=f"Connected to {address}",
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"[API] Printer connection failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/disconnect")
async def disconnect_printer():
    """Close the printer link"""
    deps = get_deps()
    try:
        await deps.printer_transport.disconnect()
        return create_success_response(data={"connected": False}, message="Printer disconnected")
    except Exception as e:
        logger.error(f"[API] Printer disconnect failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))
