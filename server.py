import argparse
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI
from fastapi.responses import FileResponse, JSONResponse

from errors import CaptureError, DeviceNotFoundError
from geometry import Device
from layout import dump_layout, load_layout
from screenshotter import CaptureType, DeviceScreenshotter
from settings import CaptureSettings
from workbench import Workbench

# Configure logger (will be set up later with argparse)
logger = logging.getLogger(__name__)

# Global server settings
SETTINGS = {
    "layout_file": "layout.json",
    "downloads_dir": "downloads",
    "window": (1280, 800),
    "dpr": 1.0,
}

devices: List[Device] = []
screenshotter: Optional[DeviceScreenshotter] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    global devices, screenshotter
    devices = load_layout(SETTINGS["layout_file"])
    async with Workbench(
        devices,
        window=SETTINGS["window"],
        dpr=SETTINGS["dpr"],
        downloads_dir=SETTINGS["downloads_dir"],
    ) as workbench:
        screenshotter = DeviceScreenshotter(
            workbench, CaptureSettings(downloads_dir=SETTINGS["downloads_dir"])
        )
        yield
        screenshotter = None


app = FastAPI(lifespan=lifespan)


@app.get("/api/devices")
async def list_devices():
    return dump_layout(devices)


@app.post("/api/devices/{device_id}/screenshot")
async def take_screenshot(device_id: str, type: str = "viewport-1x"):
    logger.debug(f"/api/devices/{device_id}/screenshot called with type={type}")

    try:
        capture_type = CaptureType.parse(type)
    except ValueError as e:
        logger.warning(f"Rejected screenshot request: {e}")
        return JSONResponse(status_code=400, content={"status": 400, "error": str(e)})

    if screenshotter is None:
        return JSONResponse(status_code=503, content={"status": 503, "error": "Canvas not ready"})

    try:
        result = await screenshotter.capture(device_id, capture_type)
    except DeviceNotFoundError as e:
        logger.error(f"Screenshot failed: {e}")
        return JSONResponse(status_code=404, content={"status": 404, "error": str(e)})
    except CaptureError as e:
        logger.error(f"Screenshot of {device_id} failed: {e}")
        return JSONResponse(status_code=500, content={"status": 500, "error": f"Screenshot failed: {e}"})

    if result is None:
        return JSONResponse(
            status_code=409, content={"status": 409, "error": "Capture already in progress"}
        )

    logger.info(f"Serving screenshot: {result.path}")
    return FileResponse(result.path, media_type="image/png", filename=result.filename)


if __name__ == "__main__":
    import uvicorn

    from capture import parse_size

    parser = argparse.ArgumentParser(description="Device Canvas Screenshot Server")
    parser.add_argument("--host", type=str, default="0.0.0.0", help="Host to bind")
    parser.add_argument("--port", type=int, default=2300, help="Port to bind")
    parser.add_argument("--loglevel", type=str, default="debug", help="Logging level (debug, info, warning, error, critical)")
    parser.add_argument("--layout", type=str, default=SETTINGS["layout_file"], help="Layout JSON file describing the devices")
    parser.add_argument("--output-dir", type=str, default=SETTINGS["downloads_dir"], help="Where screenshots are written")
    parser.add_argument("--window", type=parse_size, default=SETTINGS["window"], help="Browser window size, WIDTHxHEIGHT")
    parser.add_argument("--dpr", type=float, default=SETTINGS["dpr"], help="Browser device pixel ratio")
    args = parser.parse_args()

    # Configure logging with argparse loglevel
    numeric_level = getattr(logging, args.loglevel.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {args.loglevel}")
    logging.basicConfig(level=numeric_level, format="%(asctime)s [%(levelname)s] %(message)s")
    logger.setLevel(numeric_level)

    SETTINGS.update(
        layout_file=args.layout,
        downloads_dir=args.output_dir,
        window=args.window,
        dpr=args.dpr,
    )

    logger.info(f"Starting server on {args.host}:{args.port} with loglevel={args.loglevel}")
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.loglevel)
