import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from geometry import Device

logger = logging.getLogger(__name__)

GET_PAGE_DIMS = "GET_PAGE_DIMS"
PAGE_DIMS_TIMEOUT = 1.0

# Evaluated inside each device frame. Frames whose SD_CONF id does not match the
# request return null so several devices on one canvas never answer for each other.
FRAME_HANDLER_JS = """
(msg) => {
    if (!msg || msg.type !== 'GET_PAGE_DIMS') return null;
    if (!window.name || !window.name.startsWith('SD_CONF:')) return null;
    let config;
    try {
        config = JSON.parse(window.name.substring(8));
    } catch (e) {
        return null;
    }
    if (config.id !== msg.targetDeviceId) return null;
    const body = document.body;
    const html = document.documentElement;
    const height = Math.max(
        body ? body.scrollHeight : 0, body ? body.offsetHeight : 0,
        html.clientHeight, html.scrollHeight, html.offsetHeight
    );
    return {
        scrollWidth: html.scrollWidth,
        scrollHeight: height,
        clientWidth: html.clientWidth,
        clientHeight: html.clientHeight,
        pixelRatio: window.devicePixelRatio
    };
}
"""

Transport = Callable[[Dict[str, Any]], Awaitable[Optional[Dict[str, Any]]]]


@dataclass
class PageDims:
    scroll_width: int
    scroll_height: int
    client_width: int
    client_height: int
    pixel_ratio: float

    @classmethod
    def from_message(cls, resp: Dict[str, Any]) -> "PageDims":
        return cls(
            scroll_width=int(resp.get("scrollWidth", 0)),
            scroll_height=int(resp["scrollHeight"]),
            client_width=int(resp.get("clientWidth", 0)),
            client_height=int(resp.get("clientHeight", 0)),
            pixel_ratio=float(resp.get("pixelRatio", 1.0)),
        )


def page_dims_request(device_id: str) -> Dict[str, Any]:
    return {"type": GET_PAGE_DIMS, "targetDeviceId": device_id}


async def request_page_dims(
    transport: Transport, device_id: str, timeout: float = PAGE_DIMS_TIMEOUT
) -> Optional[PageDims]:
    """Ask the device's frame for its dimensions. None on timeout or any failure."""
    try:
        resp = await asyncio.wait_for(transport(page_dims_request(device_id)), timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Page dims for {device_id} timed out after {timeout}s")
        return None
    except Exception as e:
        logger.warning(f"Page dims request for {device_id} failed: {e}")
        return None

    if not resp:
        logger.warning(f"No page dims answer from device {device_id}")
        return None
    if not isinstance(resp, dict):
        logger.warning(f"Malformed page dims from {device_id}: {resp!r}")
        return None
    try:
        return PageDims.from_message(resp)
    except (AttributeError, KeyError, OverflowError, TypeError, ValueError) as e:
        logger.warning(f"Malformed page dims from {device_id}: {resp!r} ({e})")
        return None


async def discover_capture_height(
    transport: Transport, device: Device, timeout: float = PAGE_DIMS_TIMEOUT
) -> int:
    """
    Full-page capture height for a device.

    Never smaller than the device's own height; falls back to it when the frame
    does not answer in time.
    """
    dims = await request_page_dims(transport, device.id, timeout)
    if dims is None:
        logger.warning(f"Falling back to viewport height {device.h} for {device.id}")
        return device.h
    logger.debug(f"Page dims for {device.id}: {dims}")
    return max(dims.scroll_height, device.h)
