import json
import logging
import os
from dataclasses import replace
from html import escape
from typing import Any, Dict, List, Optional, Tuple

from playwright.async_api import async_playwright

from geometry import Camera, Device, Rect
from page_dims import FRAME_HANDLER_JS

logger = logging.getLogger(__name__)

HOST_CSS = """
html, body { margin: 0; width: 100%; height: 100%; overflow: hidden; background: #eef0f3; }
#world { position: absolute; left: 0; top: 0; transform-origin: 0 0; }
.device { position: absolute; background: #fff; }
.device iframe { display: block; width: 100%; height: 100%; border: 0; }
.device-label { position: absolute; bottom: 100%; left: 0; padding: 2px 0;
                font: 12px sans-serif; color: #555; white-space: nowrap; }
.device.selected { outline: 2px solid #3b82f6; }
#toolbar { position: fixed; top: 8px; left: 50%; transform: translateX(-50%);
           padding: 6px 12px; border-radius: 8px; background: #222; color: #fff;
           font: 13px sans-serif; z-index: 10; }
body.screenshot-mode .chrome,
body.screenshot-mode .device-label { display: none; }
body.screenshot-mode .device.selected { outline: none; }
"""

LOCATE_JS = """
(deviceId) => {
    for (const f of document.querySelectorAll('iframe[name^="SD_CONF:"]')) {
        let config;
        try { config = JSON.parse(f.name.substring(8)); } catch (e) { continue; }
        if (config.id !== deviceId) continue;
        const r = f.getBoundingClientRect();
        return {x: r.x, y: r.y, width: r.width, height: r.height};
    }
    return null;
}
"""

SET_CAMERA_JS = """
([x, y, z]) => {
    document.getElementById('world').style.transform =
        `scale(${z}) translate(${x}px, ${y}px)`;
}
"""

SET_HEIGHT_JS = """
([deviceId, h]) => {
    const el = document.querySelector(`.device[data-device-id="${CSS.escape(deviceId)}"]`);
    if (el) el.style.height = h + 'px';
}
"""

SET_SELECTION_JS = """
(ids) => {
    for (const el of document.querySelectorAll('.device')) {
        el.classList.toggle('selected', ids.includes(el.dataset.deviceId));
    }
}
"""


def frame_name(device: Device) -> str:
    return "SD_CONF:" + json.dumps({"id": device.id, "name": device.name})


def frame_device_id(name: str) -> Optional[str]:
    if not name or not name.startswith("SD_CONF:"):
        return None
    try:
        config = json.loads(name[len("SD_CONF:"):])
    except ValueError:
        return None
    return config.get("id") if isinstance(config, dict) else None


def render_host_page(devices: List[Device]) -> str:
    parts = []
    for d in devices:
        parts.append(
            f'<div class="device" data-device-id="{escape(d.id)}" '
            f'style="left:{d.x}px;top:{d.y}px;width:{d.w}px;height:{d.h}px">'
            f'<div class="device-label">{escape(d.name)} {d.w}x{d.h}</div>'
            f'<iframe name="{escape(frame_name(d))}" src="{escape(d.url)}"></iframe>'
            f"</div>"
        )
    return (
        "<!DOCTYPE html><html><head><meta charset='utf-8'>"
        f"<style>{HOST_CSS}</style></head><body>"
        "<div id='toolbar' class='chrome'>Device canvas</div>"
        f"<div id='world'>{''.join(parts)}</div>"
        "</body></html>"
    )


class Workbench:
    """
    A headless browser window showing devices on a pannable canvas.

    Owns the device records, the camera, the selection and the UI chrome flag, and
    mirrors every change into the page.
    """

    def __init__(
        self,
        devices: List[Device],
        window: Tuple[int, int] = (1280, 800),
        dpr: float = 1.0,
        downloads_dir: str = "downloads",
        browser_name: str = "chromium",
        wait_ms: int = 0,
    ):
        self.devices: Dict[str, Device] = {d.id: replace(d) for d in devices}
        self.window = window
        self.dpr = dpr
        self.downloads_dir = downloads_dir
        self.browser_name = browser_name
        self.wait_ms = wait_ms
        self.camera = Camera()
        self.selection: List[str] = []
        self.ui_hidden = False
        self._playwright = None
        self._browser = None
        self._context = None
        self.page = None

    async def __aenter__(self) -> "Workbench":
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def start(self) -> None:
        self._playwright = await async_playwright().start()
        browser_launcher = {
            "chromium": self._playwright.chromium,
            "firefox": self._playwright.firefox,
            "webkit": self._playwright.webkit,
        }[self.browser_name]

        self._browser = await browser_launcher.launch(headless=True)
        self._context = await self._browser.new_context(
            viewport={"width": self.window[0], "height": self.window[1]},
            device_scale_factor=self.dpr,
            ignore_https_errors=True,
        )
        self.page = await self._context.new_page()

        goto_timeout = 45000
        await self.page.set_content(
            render_host_page(list(self.devices.values())), timeout=goto_timeout, wait_until="load"
        )
        if self.wait_ms > 0:
            await self.page.wait_for_timeout(self.wait_ms)
        await self.set_camera(self.camera)
        logger.info(
            f"Workbench ready: {len(self.devices)} devices in a "
            f"{self.window[0]}x{self.window[1]} window @{self.dpr}x"
        )

    async def close(self) -> None:
        if self._context is not None:
            await self._context.close()
        if self._browser is not None:
            await self._browser.close()
        if self._playwright is not None:
            await self._playwright.stop()
        self._context = self._browser = self._playwright = self.page = None

    def get_device(self, device_id: str) -> Optional[Device]:
        device = self.devices.get(device_id)
        return replace(device) if device else None

    async def set_device_height(self, device_id: str, height: int) -> None:
        self.devices[device_id].h = height
        await self.page.evaluate(SET_HEIGHT_JS, [device_id, height])

    def get_camera(self) -> Camera:
        return self.camera

    async def set_camera(self, camera: Camera) -> None:
        self.camera = camera
        await self.page.evaluate(SET_CAMERA_JS, [camera.x, camera.y, camera.zoom])

    def get_selection(self) -> List[str]:
        return list(self.selection)

    async def set_selection(self, device_ids: List[str]) -> None:
        self.selection = [i for i in device_ids if i in self.devices]
        await self.page.evaluate(SET_SELECTION_JS, self.selection)

    async def set_ui_hidden(self, hidden: bool) -> None:
        self.ui_hidden = hidden
        await self.page.evaluate(
            "(hidden) => document.body.classList.toggle('screenshot-mode', hidden)", hidden
        )

    def window_size(self) -> Tuple[int, int]:
        size = self.page.viewport_size or {"width": self.window[0], "height": self.window[1]}
        return size["width"], size["height"]

    async def capture_window(self) -> Tuple[bytes, float]:
        png_bytes = await self.page.screenshot(type="png")
        dpr = await self.page.evaluate("() => window.devicePixelRatio")
        return png_bytes, float(dpr)

    async def locate_device(self, device_id: str) -> Optional[Rect]:
        r = await self.page.evaluate(LOCATE_JS, device_id)
        if not r:
            return None
        return Rect(r["x"], r["y"], r["width"], r["height"])

    async def request_page_dims(self, message: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Deliver a message to the addressed device frame and return its answer."""
        for frame in self.page.frames:
            if frame == self.page.main_frame or frame_device_id(frame.name) != message.get("targetDeviceId"):
                continue
            resp = await frame.evaluate(FRAME_HANDLER_JS, message)
            if resp:
                return resp
        return None

    async def save_download(self, filename: str, data: bytes) -> str:
        os.makedirs(self.downloads_dir, exist_ok=True)
        path = os.path.join(self.downloads_dir, filename)
        with open(path, "wb") as f:
            f.write(data)
        logger.debug(f"Wrote {len(data)} bytes to {path}")
        return path
