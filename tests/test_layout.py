"""Tests for layout loading."""

import json

import pytest

from layout import dump_layout, load_layout, parse_layout


def test_load_layout(tmp_path):
    path = tmp_path / "layout.json"
    path.write_text(json.dumps({
        "url": "https://example.com",
        "devices": [
            {"id": "shape:phone", "name": "iPhone 14 Pro", "x": 100, "y": 50, "w": 393, "h": 852},
            {"id": "shape:desk", "w": 1440, "h": 900, "url": "https://example.org"},
        ],
    }))

    phone, desk = load_layout(str(path))

    assert phone.url == "https://example.com"
    assert (phone.x, phone.y, phone.w, phone.h) == (100, 50, 393, 852)
    assert desk.name == "shape:desk"
    assert (desk.x, desk.y) == (0, 0)
    assert desk.url == "https://example.org"


@pytest.mark.parametrize(
    "device",
    [
        {"name": "no id", "w": 10, "h": 10},
        {"id": "a", "h": 10},
        {"id": "a", "w": 0, "h": 10},
        {"id": "a", "w": "wide", "h": 10},
    ],
)
def test_invalid_devices(device):
    with pytest.raises(ValueError):
        parse_layout({"devices": [device]})


def test_duplicate_ids():
    dev = {"id": "a", "w": 10, "h": 10}
    with pytest.raises(ValueError):
        parse_layout({"devices": [dev, dev]})


def test_dump_layout_lists_devices():
    devices = parse_layout({"devices": [{"id": "a", "w": 10, "h": 20}]})
    assert dump_layout(devices)["devices"][0]["h"] == 20
