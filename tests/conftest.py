"""Shared fixtures: an in-memory canvas that renders synthetic window rasters."""

import asyncio
from dataclasses import replace
from io import BytesIO
from typing import Any, Dict, List, Optional, Tuple

import pytest
from PIL import Image, ImageDraw

from geometry import Camera, Device, Rect, world_to_screen
from settings import CaptureSettings

BACKGROUND = (200, 200, 200)
DEVICE_COLOR = (20, 120, 220)


class FakeCanvas:
    """
    Stands in for the browser canvas.

    Every window capture draws the devices where the current camera puts them, at
    the configured device pixel ratio.
    """

    def __init__(
        self,
        devices: List[Device],
        window: Tuple[int, int] = (1240, 940),
        dpr: float = 1.0,
        page_dims: Optional[Dict[str, Dict[str, Any]]] = None,
    ):
        self.devices = {d.id: replace(d) for d in devices}
        self.window = window
        self.dpr = dpr
        self.page_dims = page_dims or {}
        self.camera = Camera(15, -30, 1)
        self.selection: List[str] = [devices[0].id] if devices else []
        self.ui_hidden = False

        self.cameras: List[Camera] = []
        self.heights: List[Tuple[str, int]] = []
        self.ui_history: List[bool] = []
        self.ui_at_capture: List[bool] = []
        self.captures = 0
        self.lost_on_captures = set()
        self.fail_raster = False
        self.raster_gate: Optional[asyncio.Event] = None
        self.page_dims_messages: List[Dict[str, Any]] = []
        self.page_dims_delay = 0.0
        self.downloads: Dict[str, bytes] = {}

    def get_device(self, device_id: str) -> Optional[Device]:
        device = self.devices.get(device_id)
        return replace(device) if device else None

    async def set_device_height(self, device_id: str, height: int) -> None:
        self.devices[device_id].h = height
        self.heights.append((device_id, height))

    def get_camera(self) -> Camera:
        return self.camera

    async def set_camera(self, camera: Camera) -> None:
        self.camera = camera
        self.cameras.append(camera)

    def get_selection(self) -> List[str]:
        return list(self.selection)

    async def set_selection(self, device_ids: List[str]) -> None:
        self.selection = list(device_ids)

    async def set_ui_hidden(self, hidden: bool) -> None:
        self.ui_hidden = hidden
        self.ui_history.append(hidden)

    def window_size(self) -> Tuple[int, int]:
        return self.window

    def screen_rect(self, device: Device) -> Rect:
        x, y = world_to_screen((device.x, device.y), self.camera)
        return Rect(x, y, device.w * self.camera.zoom, device.h * self.camera.zoom)

    async def capture_window(self) -> Tuple[bytes, float]:
        if self.raster_gate is not None:
            await self.raster_gate.wait()
        self.captures += 1
        self.ui_at_capture.append(self.ui_hidden)
        if self.fail_raster:
            return b"", self.dpr

        w, h = self.window
        img = Image.new("RGB", (round(w * self.dpr), round(h * self.dpr)), BACKGROUND)
        draw = ImageDraw.Draw(img)
        for device in self.devices.values():
            r = self.screen_rect(device)
            draw.rectangle(
                (r.x * self.dpr, r.y * self.dpr, r.right * self.dpr - 1, r.bottom * self.dpr - 1),
                fill=DEVICE_COLOR,
            )
        out = BytesIO()
        img.save(out, format="PNG")
        return out.getvalue(), self.dpr

    async def locate_device(self, device_id: str) -> Optional[Rect]:
        if self.captures in self.lost_on_captures:
            return None
        device = self.devices.get(device_id)
        return self.screen_rect(device) if device else None

    async def request_page_dims(self, message: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        self.page_dims_messages.append(message)
        if self.page_dims_delay:
            await asyncio.sleep(self.page_dims_delay)
        return self.page_dims.get(message["targetDeviceId"])

    async def save_download(self, filename: str, data: bytes) -> str:
        self.downloads[filename] = data
        return f"memory://{filename}"


def fast_settings(**overrides) -> CaptureSettings:
    settings = CaptureSettings(
        ui_hide_delay=0,
        reflow_delay=0,
        settle_min=0,
        settle_max=0,
        poll_interval=0,
        page_dims_timeout=0.2,
        cooldown=0,
    )
    for key, value in overrides.items():
        setattr(settings, key, value)
    return settings


def open_png(data: bytes) -> Image.Image:
    img = Image.open(BytesIO(data))
    img.load()
    return img


@pytest.fixture
def phone():
    return Device(id="shape:phone", name="iPhone 14 Pro", x=100, y=50, w=393, h=852)


@pytest.fixture
def desktop():
    return Device(id="shape:desktop", name="Desktop", x=-300, y=120, w=1440, h=900)
