"""
Log Routes - Recent Log Viewer

Serves the in-memory buffer of recent log records.
"""

from fastapi import APIRouter, Query
from routes import get_deps

router = APIRouter(prefix="/api", tags=["logs"])


@router.get("/logs")
async def get_recent_logs(count: int = Query(50, ge=1, le=500)):
    """Get recent log entries from buffer"""
    deps = get_deps()
    return {
        "success": True,
        "logs": deps.log_handler.get_recent_logs(count) if deps.log_handler else [],
    }
