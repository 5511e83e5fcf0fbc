"""
Webpage Printer - Printer Transport

Byte-stream link to the thermal printer. The pipeline only relies on
connection_status / connect / write_bytes; a failure on any of them ends
the current print attempt (no retry here).

BlePrinterTransport talks to BLE thermal printers through bleak: it finds
a writable GATT characteristic and streams the job in small chunks.
"""

import asyncio
import logging
from typing import List, Optional

from bleak import BleakClient
from bleak.exc import BleakError

logger = logging.getLogger(__name__)


class PrinterTransport:
    """Interface of a printer byte-stream link"""

    address: Optional[str] = None

    async def connection_status(self) -> bool:
        raise NotImplementedError

    async def connect(self, address: str) -> bool:
        raise NotImplementedError

    async def write_bytes(self, data: bytes) -> bool:
        raise NotImplementedError

    async def disconnect(self) -> None:
        raise NotImplementedError


class BlePrinterTransport(PrinterTransport):
    """
    Bluetooth LE thermal printer link.

    Writable characteristics of common 58mm printers are tried first,
    then any characteristic that accepts writes.
    """

    WRITE_CHARACTERISTIC_UUIDS = [
        "49535343-8841-43f4-a8d4-ecbe34729bb3",  # ISSC transparent UART
        "0000ff02-0000-1000-8000-00805f9b34fb",
        "0000ae01-0000-1000-8000-00805f9b34fb",
        "0000ffe1-0000-1000-8000-00805f9b34fb",
        "bef8d6c9-9c21-4c9e-b632-bd58c1009f9f",
    ]

    def __init__(self, chunk_size: int = 100, write_delay_ms: int = 10, connect_timeout: float = 10.0):
        """
        Args:
            chunk_size: Max bytes per GATT write
            write_delay_ms: Pause between chunks so the printer buffer keeps up
            connect_timeout: Seconds to wait for the BLE connection
        """
        self.chunk_size = chunk_size
        self.write_delay_ms = write_delay_ms
        self.connect_timeout = connect_timeout
        self.address: Optional[str] = None
        self.client: Optional[BleakClient] = None
        self.write_characteristic = None
        self._write_lock = asyncio.Lock()

        logger.info("[BlePrinterTransport] Initialized")

    async def connection_status(self) -> bool:
        return bool(self.client is not None and self.client.is_connected and self.write_characteristic)

    async def connect(self, address: str) -> bool:
        """Connect to the printer at address (MAC, or UUID on macOS)"""
        if await self.connection_status() and self.address == address:
            logger.debug(f"[BlePrinterTransport] Already connected to {address}")
            return True

        await self.disconnect()

        try:
            logger.info(f"[BlePrinterTransport] Connecting to {address}...")
            client = BleakClient(address, timeout=self.connect_timeout)
            await client.connect()
            self.client = client
            self.address = address

            self.write_characteristic = self._find_write_characteristic(client)
            if not self.write_characteristic:
                logger.error(f"[BlePrinterTransport] No writable characteristic on {address}")
                await self.disconnect()
                return False

            logger.info(f"[BlePrinterTransport] Connected to {address} (char {self.write_characteristic.uuid})")
            return True

        except (BleakError, asyncio.TimeoutError, OSError) as e:
            logger.error(f"[BlePrinterTransport] Connection to {address} failed: {e}")
            self.client = None
            self.write_characteristic = None
            return False

    def _find_write_characteristic(self, client: BleakClient):
        writable: List = []
        for service in client.services:
            for char in service.characteristics:
                if char.uuid.lower() in self.WRITE_CHARACTERISTIC_UUIDS:
                    return char
                if "write" in char.properties or "write-without-response" in char.properties:
                    writable.append(char)
        return writable[0] if writable else None

    async def write_bytes(self, data: bytes) -> bool:
        """
        Send data to the printer in chunks.

        Returns:
            True if every chunk was written
        """
        if not await self.connection_status():
            logger.error("[BlePrinterTransport] Write requested while disconnected")
            return False

        response = "write-without-response" not in self.write_characteristic.properties
        total = len(data)

        async with self._write_lock:
            try:
                for offset in range(0, total, self.chunk_size):
                    chunk = data[offset:offset + self.chunk_size]
                    await self.client.write_gatt_char(self.write_characteristic, chunk, response=response)
                    if self.write_delay_ms:
                        await asyncio.sleep(self.write_delay_ms / 1000)
            except (BleakError, asyncio.TimeoutError, OSError) as e:
                logger.error(f"[BlePrinterTransport] Write failed after {offset}/{total} bytes: {e}")
                return False

        logger.info(f"[BlePrinterTransport] Sent {total} bytes to {self.address}")
        return True

    async def disconnect(self) -> None:
        client = self.client
        self.client = None
        self.write_characteristic = None
        if client is None:
            return
        try:
            await client.disconnect()
            logger.info(f"[BlePrinterTransport] Disconnected from {self.address}")
        except (BleakError, OSError) as e:
            logger.warning(f"[BlePrinterTransport] Disconnect error: {e}")
