"""
Print Webpage - command line capture/print
Loads a URL, captures its printable-content element, then saves and/or prints it.

    python print_webpage.py https://example.com/receipt --output receipt.png
    python print_webpage.py https://example.com/receipt --printer AA:BB:CC:DD:EE:FF
"""

import argparse
import asyncio
import dataclasses
import logging
import sys

from browser_bridge import BrowserBridge
from config import get_settings
from print_pipeline import PrintPipeline
from printer_transport import BlePrinterTransport

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Capture the #printable-content element of a webpage and print it on a thermal printer'
    )
    parser.add_argument('url', help='Page to load (with scheme, e.g. https://)')
    parser.add_argument('--output', '-o', help='Save the captured image as PNG')
    parser.add_argument('--printer', '-p', help='Bluetooth address of the printer')
    parser.add_argument('--timeout', type=float, default=None,
                        help='Seconds to wait for the printable element')
    parser.add_argument('--no-headless', action='store_true', help='Show the browser window')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    return parser


async def run(args) -> int:
    settings = dataclasses.replace(get_settings(), auto_capture=False)
    if args.timeout is not None:
        settings.readiness_timeout = args.timeout
    if args.no_headless:
        settings.browser_headless = False

    browser = BrowserBridge(
        headless=settings.browser_headless,
        viewport_width=settings.viewport_width,
        viewport_height=settings.viewport_height,
        device_scale_factor=settings.device_scale_factor,
    )
    transport = BlePrinterTransport(
        chunk_size=settings.ble_chunk_size,
        write_delay_ms=settings.ble_write_delay_ms,
    )
    pipeline = PrintPipeline(browser, transport, settings=settings)
    pipeline.attach()

    printer_address = args.printer or settings.printer_address

    print("=" * 60)
    print(f"PRINT WEBPAGE: {args.url}")
    print("=" * 60)

    await browser.start()
    try:
        await browser.load_url(args.url)

        result = await pipeline.capture()
        if not result.success:
            print(f"Capture failed: {result.message or result.status}")
            return 1

        print(f"Captured {result.width}x{result.height}px from {result.tile_count} tiles in {result.duration_ms}ms")
        if result.skipped_tiles:
            print(f"WARNING: tiles {result.skipped_tiles} could not be decoded (blank band in output)")
        if result.repeated_tiles:
            print(f"WARNING: tiles {result.repeated_tiles} repeat the previous tile (page may not have repainted)")

        if args.output:
            with open(args.output, "wb") as f:
                f.write(pipeline.canvas.png)
            print(f"Saved: {args.output}")

        if printer_address:
            if not await transport.connect(printer_address):
                print(f"Could not connect to printer {printer_address}")
                return 1
            print_result = await pipeline.print_capture()
            print(print_result.message)
            if not print_result.success:
                return 1
        elif not args.output:
            print("Nothing to do with the capture: pass --output and/or --printer")

        return 0

    finally:
        await transport.disconnect()
        await browser.stop()


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='[%(asctime)s] %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )
    try:
        return asyncio.run(run(args))
    except Exception as e:
        logger.error(f"[PrintWebpage] {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
