import asyncio
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Tuple, Union

from PIL import Image

from compositor import composite_tile, decode_raster, encode_png, new_output_buffer
from errors import CaptureError, DeviceNotFoundError
from geometry import Camera, Device, Rect, camera_for_anchor
from page_dims import discover_capture_height
from settings import CaptureSettings
from tile_grid import TileGrid, plan_tiles

logger = logging.getLogger(__name__)


class CaptureType(str, Enum):
    VIEWPORT_1X = "viewport-1x"
    VIEWPORT_2X = "viewport-2x"
    FULL_PAGE = "full-page"
    FULL_PAGE_2X = "full-page-2x"

    @classmethod
    def parse(cls, value: Union[str, "CaptureType"]) -> "CaptureType":
        if isinstance(value, cls):
            return value
        if value == "full-page-1x":
            return cls.FULL_PAGE
        try:
            return cls(value)
        except ValueError:
            choices = ", ".join(t.value for t in cls)
            raise ValueError(f"Unknown capture type '{value}', expected one of: {choices}")

    @property
    def scale(self) -> int:
        return 2 if self.value.endswith("2x") else 1

    @property
    def full_page(self) -> bool:
        return self.value.startswith("full-page")


class CaptureState(str, Enum):
    IDLE = "idle"
    PREPARING_UI = "preparing-ui"
    EXPANDING_DEVICE = "expanding-device"
    CAPTURING_TILES = "capturing-tiles"
    DOWNLOADING = "downloading"
    RESTORING_STATE = "restoring-state"


class Canvas(Protocol):
    """What the capture engine needs from the canvas that hosts the devices."""

    def get_device(self, device_id: str) -> Optional[Device]: ...

    async def set_device_height(self, device_id: str, height: int) -> None: ...

    def get_camera(self) -> Camera: ...

    async def set_camera(self, camera: Camera) -> None: ...

    def get_selection(self) -> List[str]: ...

    async def set_selection(self, device_ids: List[str]) -> None: ...

    async def set_ui_hidden(self, hidden: bool) -> None: ...

    def window_size(self) -> Tuple[int, int]: ...

    async def capture_window(self) -> Tuple[bytes, float]: ...

    async def locate_device(self, device_id: str) -> Optional[Rect]: ...

    async def request_page_dims(self, message: Dict[str, Any]) -> Optional[Dict[str, Any]]: ...

    async def save_download(self, filename: str, data: bytes) -> str: ...


@dataclass
class CaptureSession:
    device_id: str
    capture_type: CaptureType
    original_height: int
    capture_height: int
    output: Optional[Image.Image] = None
    grid: Optional[TileGrid] = None
    skipped_tiles: List[Tuple[int, int]] = field(default_factory=list)

    @property
    def scale(self) -> int:
        return self.capture_type.scale


@dataclass
class CaptureResult:
    path: str
    filename: str
    width: int
    height: int
    rows: int
    cols: int
    skipped_tiles: List[Tuple[int, int]]


def capture_filename(device_name: str, capture_type: CaptureType) -> str:
    name = re.sub(r"\s+", "-", device_name.strip())
    name = re.sub(r"[^\w.\-]", "", name) or "device"
    return f"{name}-{capture_type.value}.png"


class DeviceScreenshotter:
    """
    Captures one device on the canvas into a PNG by panning the camera over it.

    Only one capture runs at a time. A call made while another is in flight, or
    within the cooldown after the previous one, is ignored and returns None.
    """

    def __init__(self, canvas: Canvas, settings: Optional[CaptureSettings] = None):
        self.canvas = canvas
        self.settings = settings or CaptureSettings()
        self.capturing = False
        self.ui_hidden = False
        self.last_capture_at: Optional[float] = None
        self.state = CaptureState.IDLE

    async def capture(
        self, device_id: str, capture_type: Union[str, CaptureType]
    ) -> Optional[CaptureResult]:
        ctype = CaptureType.parse(capture_type)
        loop = asyncio.get_running_loop()

        if self.capturing:
            logger.warning(f"Capture of {device_id} ignored: capture already in progress")
            return None
        if (
            self.last_capture_at is not None
            and loop.time() - self.last_capture_at < self.settings.cooldown
        ):
            logger.warning(f"Capture of {device_id} ignored: throttled")
            return None

        self.capturing = True
        try:
            return await self._run(device_id, ctype)
        finally:
            self.capturing = False
            self.last_capture_at = loop.time()

    async def _run(self, device_id: str, ctype: CaptureType) -> CaptureResult:
        device = self.canvas.get_device(device_id)
        if device is None:
            raise DeviceNotFoundError(device_id)

        original_camera = self.canvas.get_camera()
        original_selection = list(self.canvas.get_selection())
        session = CaptureSession(
            device_id=device.id,
            capture_type=ctype,
            original_height=device.h,
            capture_height=device.h,
        )
        height_changed = False
        logger.info(f"Capturing {device.name} ({device.id}) as {ctype.value}")

        try:
            self.state = CaptureState.PREPARING_UI
            await self.canvas.set_selection([])
            await self._set_ui_hidden(True)
            await asyncio.sleep(self.settings.ui_hide_delay)

            if ctype.full_page:
                self.state = CaptureState.EXPANDING_DEVICE
                session.capture_height = await discover_capture_height(
                    self.canvas.request_page_dims, device, self.settings.page_dims_timeout
                )
                if session.capture_height != device.h:
                    height_changed = True
                    await self.canvas.set_device_height(device.id, session.capture_height)
                    device.h = session.capture_height
                    await asyncio.sleep(self.settings.reflow_delay)

            session.output = new_output_buffer(device.w, session.capture_height, ctype.scale)
            # Window size is sampled once; a resize mid-capture is not picked up
            view_w, view_h = self.canvas.window_size()
            session.grid = plan_tiles(
                device.w,
                session.capture_height,
                ctype.scale,
                view_w,
                view_h,
                self.settings.safety_margin,
            )
            logger.info(
                f"{session.grid.rows}x{session.grid.cols} tiles for "
                f"{device.w}x{session.capture_height} @{ctype.scale}x in {view_w}x{view_h} window"
            )

            self.state = CaptureState.CAPTURING_TILES
            for row, col in session.grid.tiles():
                if not await self._capture_tile(session, device, row, col):
                    session.skipped_tiles.append((row, col))

            self.state = CaptureState.DOWNLOADING
            filename = capture_filename(device.name, ctype)
            path = await self.canvas.save_download(filename, encode_png(session.output))
            logger.info(f"Saved {filename} ({session.output.width}x{session.output.height})")

            return CaptureResult(
                path=path,
                filename=filename,
                width=session.output.width,
                height=session.output.height,
                rows=session.grid.rows,
                cols=session.grid.cols,
                skipped_tiles=session.skipped_tiles,
            )
        finally:
            self.state = CaptureState.RESTORING_STATE
            try:
                if height_changed:
                    await self.canvas.set_device_height(device.id, session.original_height)
            finally:
                try:
                    await self.canvas.set_camera(original_camera)
                finally:
                    try:
                        await self.canvas.set_selection(original_selection)
                    finally:
                        await self._set_ui_hidden(False)
                        self.state = CaptureState.IDLE

    async def _capture_tile(self, session: CaptureSession, device: Device, row: int, col: int) -> bool:
        grid = session.grid
        off_x, off_y = grid.offset(row, col)
        camera = camera_for_anchor(
            (device.x + off_x, device.y + off_y),
            (grid.safe_area.x, grid.safe_area.y),
            session.scale,
        )
        await self.canvas.set_camera(camera)
        await self.wait_for_stable_rect(device.id)

        try:
            data, dpr = await self.canvas.capture_window()
        except Exception as e:
            raise CaptureError(f"Window capture failed: {e}") from e
        raster = decode_raster(data)

        rect = await self._locate(device.id)
        if rect is None or rect.is_empty:
            logger.warning(f"Tile {row},{col}: device {device.id} not on screen, skipping")
            return False

        logger.debug(f"Tile {row},{col}: camera {camera}, device rect {rect}, dpr {dpr}")
        if not composite_tile(
            session.output, raster, dpr, rect, grid.safe_area, camera, device, session.scale
        ):
            logger.warning(f"Tile {row},{col}: device {device.id} outside the safe area, skipping")
            return False
        return True

    async def wait_for_stable_rect(self, device_id: str) -> Optional[Rect]:
        """
        Wait for the device to stop moving after a camera change.

        Sleeps the minimum settle delay, then polls the device rectangle until two
        consecutive reads agree or the settle budget runs out.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.settings.settle_max
        await asyncio.sleep(self.settings.settle_min)

        previous = await self._locate(device_id)
        while loop.time() < deadline:
            await asyncio.sleep(self.settings.poll_interval)
            current = await self._locate(device_id)
            if current is not None and current == previous:
                return current
            previous = current
        logger.debug(f"Device {device_id} did not settle within {self.settings.settle_max}s")
        return previous

    async def _locate(self, device_id: str) -> Optional[Rect]:
        """Device rectangle, or None when the lookup itself fails."""
        try:
            return await self.canvas.locate_device(device_id)
        except Exception as e:
            logger.warning(f"Locating device {device_id} failed: {e}")
            return None

    async def _set_ui_hidden(self, hidden: bool) -> None:
        self.ui_hidden = hidden
        await self.canvas.set_ui_hidden(hidden)
