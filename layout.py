import json
import logging
from typing import Any, Dict, List

from geometry import Device

logger = logging.getLogger(__name__)


def _positive_int(raw: Dict[str, Any], key: str) -> int:
    try:
        value = int(raw[key])
    except KeyError:
        raise ValueError(f"Device {raw.get('id')!r} is missing '{key}'")
    except (TypeError, ValueError):
        raise ValueError(f"Device {raw.get('id')!r}: '{key}' must be an integer")
    if value <= 0:
        raise ValueError(f"Device {raw.get('id')!r}: '{key}' must be positive")
    return value


def parse_device(raw: Dict[str, Any], default_url: str = "about:blank") -> Device:
    if not raw.get("id"):
        raise ValueError(f"Device entry without an id: {raw!r}")
    device_id = str(raw["id"])
    return Device(
        id=device_id,
        name=str(raw.get("name") or device_id),
        x=float(raw.get("x", 0)),
        y=float(raw.get("y", 0)),
        w=_positive_int(raw, "w"),
        h=_positive_int(raw, "h"),
        url=str(raw.get("url") or default_url),
    )


def parse_layout(data: Dict[str, Any]) -> List[Device]:
    """
    Layout JSON: {"url": "...", "devices": [{"id", "name", "x", "y", "w", "h", "url"}]}.

    A device without its own url shows the layout-wide one.
    """
    default_url = data.get("url") or "about:blank"
    devices = [parse_device(d, default_url) for d in data.get("devices", [])]
    ids = [d.id for d in devices]
    if len(ids) != len(set(ids)):
        raise ValueError("Device ids in a layout must be unique")
    return devices


def load_layout(path: str) -> List[Device]:
    with open(path, "r") as f:
        data = json.load(f)
    devices = parse_layout(data)
    logger.info(f"Loaded {len(devices)} devices from {path}")
    return devices


def dump_layout(devices: List[Device]) -> Dict[str, Any]:
    return {
        "devices": [
            {"id": d.id, "name": d.name, "x": d.x, "y": d.y, "w": d.w, "h": d.h, "url": d.url}
            for d in devices
        ]
    }
