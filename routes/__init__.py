"""
Route modules for the Webpage Printer API.

Routers pull shared components through get_deps(); server.py fills them
in with set_deps() during startup.
"""

from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class RouteDependencies:
    """Components shared by the route modules"""
    settings: Any = None
    browser_bridge: Any = None
    printer_transport: Any = None
    pipeline: Any = None
    log_handler: Any = None


_deps: Optional[RouteDependencies] = None


def set_deps(deps: RouteDependencies):
    global _deps
    _deps = deps


def get_deps() -> RouteDependencies:
    if _deps is None:
        raise RuntimeError("Route dependencies not initialized")
    return _deps
