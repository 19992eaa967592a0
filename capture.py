import argparse
import asyncio
import logging
import sys
from typing import Tuple

from errors import CaptureError
from layout import load_layout
from screenshotter import CaptureType, DeviceScreenshotter
from settings import CaptureSettings
from workbench import Workbench

logger = logging.getLogger(__name__)


def parse_size(s: str) -> Tuple[int, int]:
    try:
        w_str, h_str = s.lower().split("x")
        return int(w_str), int(h_str)
    except Exception:
        raise argparse.ArgumentTypeError(f"Invalid size '{s}', expected WIDTHxHEIGHT")


def parse_capture_type(s: str) -> CaptureType:
    try:
        return CaptureType.parse(s)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


async def screenshot(args) -> str:
    devices = load_layout(args.layout)
    settings = CaptureSettings(downloads_dir=args.output_dir)
    if args.page_dims_timeout is not None:
        settings.page_dims_timeout = args.page_dims_timeout

    async with Workbench(
        devices,
        window=args.window,
        dpr=args.dpr,
        downloads_dir=args.output_dir,
        browser_name=args.browser,
        wait_ms=args.wait * 1000,
    ) as workbench:
        screenshotter = DeviceScreenshotter(workbench, settings)
        result = await screenshotter.capture(args.device, args.type)

    if result is None:
        raise CaptureError("Capture was not started")
    if result.skipped_tiles:
        logger.warning(f"{len(result.skipped_tiles)} tile(s) were skipped and left blank")
    return result.path


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Capture one device of a canvas layout into a PNG using Playwright + Pillow."
    )
    parser.add_argument("layout", help="Layout JSON file describing the devices")
    parser.add_argument("device", help="Id of the device to capture")
    parser.add_argument(
        "--type",
        type=parse_capture_type,
        default=CaptureType.VIEWPORT_1X,
        help="viewport-1x, viewport-2x, full-page (or full-page-1x), full-page-2x (default: viewport-1x)",
    )
    parser.add_argument("--output-dir", default="downloads", help="Where the PNG is written (default: downloads)")
    parser.add_argument("--window", type=parse_size, default=(1280, 800), help="Browser window size, WIDTHxHEIGHT (default: 1280x800)")
    parser.add_argument("--dpr", type=float, default=1.0, help="Browser device pixel ratio (default: 1.0)")
    parser.add_argument("--wait", type=int, default=0, help="Wait time in seconds after the devices load (default: 0)")
    parser.add_argument("--page-dims-timeout", type=float, default=None, help="Seconds to wait for a page height answer (default: 1.0)")
    parser.add_argument(
        "--browser",
        choices=["chromium", "firefox", "webkit"],
        default="chromium",
        help="Playwright browser engine (default: chromium)",
    )
    parser.add_argument("--loglevel", type=str, default="info", help="Logging level (debug, info, warning, error, critical)")
    return parser


def main(argv=None):
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    numeric_level = getattr(logging, args.loglevel.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {args.loglevel}")
    logging.basicConfig(level=numeric_level, format="%(asctime)s [%(levelname)s] %(message)s")

    try:
        path = asyncio.run(screenshot(args))
    except CaptureError as e:
        logger.error(f"Screenshot failed: {e}")
        return 1

    print(f"Saved screenshot to: {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
