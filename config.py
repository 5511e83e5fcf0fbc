"""
Webpage Printer - Configuration

Settings are loaded from environment variables.
"""

import os
from dataclasses import dataclass
from typing import Optional


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class Settings:
    """Runtime configuration"""

    # Server
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"

    # Embedded browser
    browser_headless: bool = True
    viewport_width: int = 375
    viewport_height: int = 800
    device_scale_factor: float = 2.0

    # Capture timing
    readiness_timeout: float = 10.0
    readiness_poll_interval: float = 0.25
    settle_delay_ms: int = 200
    scroll_reset_delay_ms: int = 300
    auto_capture: bool = True
    auto_capture_delay_ms: int = 1000

    # Printer (58mm head = 384 dots)
    printer_address: str = ""
    printer_width_dots: int = 384
    printer_feed_lines: int = 2
    ble_chunk_size: int = 100
    ble_write_delay_ms: int = 10

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "3000")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            browser_headless=_env_bool("BROWSER_HEADLESS", "true"),
            viewport_width=int(os.getenv("VIEWPORT_WIDTH", "375")),
            viewport_height=int(os.getenv("VIEWPORT_HEIGHT", "800")),
            device_scale_factor=float(os.getenv("DEVICE_SCALE_FACTOR", "2.0")),
            readiness_timeout=float(os.getenv("READINESS_TIMEOUT", "10.0")),
            readiness_poll_interval=float(os.getenv("READINESS_POLL_INTERVAL", "0.25")),
            settle_delay_ms=int(os.getenv("SETTLE_DELAY_MS", "200")),
            scroll_reset_delay_ms=int(os.getenv("SCROLL_RESET_DELAY_MS", "300")),
            auto_capture=_env_bool("AUTO_CAPTURE", "true"),
            auto_capture_delay_ms=int(os.getenv("AUTO_CAPTURE_DELAY_MS", "1000")),
            printer_address=os.getenv("PRINTER_ADDRESS", ""),
            printer_width_dots=int(os.getenv("PRINTER_WIDTH_DOTS", "384")),
            printer_feed_lines=int(os.getenv("PRINTER_FEED_LINES", "2")),
            ble_chunk_size=int(os.getenv("BLE_CHUNK_SIZE", "100")),
            ble_write_delay_ms=int(os.getenv("BLE_WRITE_DELAY_MS", "10")),
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the process-wide settings, loading them from the environment once"""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
