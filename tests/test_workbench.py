"""
Workbench tests.

The end-to-end cases drive a real headless Chromium and are skipped when no
Playwright browser is installed.
"""

import json
from pathlib import Path
from urllib.parse import quote

import pytest
from playwright.async_api import Error as PlaywrightError

from conftest import open_png
from geometry import Camera, Device
from screenshotter import DeviceScreenshotter
from settings import CaptureSettings
from workbench import Workbench, frame_device_id, frame_name, render_host_page

TALL_PAGE = "data:text/html," + quote(
    "<html><body style='margin:0;background:#1478dc'><div style='height:2000px'></div></body></html>"
)


def test_frame_name_carries_device_config():
    device = Device(id="shape:a", name="Phone", x=0, y=0, w=10, h=10)
    name = frame_name(device)
    assert name.startswith("SD_CONF:")
    assert json.loads(name[len("SD_CONF:"):]) == {"id": "shape:a", "name": "Phone"}


def test_frame_device_id():
    device = Device(id="shape:a", name="Phone", x=0, y=0, w=10, h=10)
    assert frame_device_id(frame_name(device)) == "shape:a"
    assert frame_device_id("") is None
    assert frame_device_id("SD_CONF:{broken") is None
    assert frame_device_id("SD_CONF:[1, 2]") is None


def test_host_page_escapes_names():
    device = Device(id="shape:a", name="<b>Phone</b>", x=10, y=20, w=30, h=40)
    html = render_host_page([device])
    assert "&lt;b&gt;Phone&lt;/b&gt;" in html
    assert "left:10px;top:20px;width:30px;height:40px" in html
    assert "screenshot-mode" in html


@pytest.fixture
async def workbench(tmp_path):
    devices = [
        Device(id="shape:tall", name="Tall", x=0, y=0, w=300, h=400, url=TALL_PAGE),
        Device(id="shape:other", name="Other", x=400, y=0, w=300, h=400, url=TALL_PAGE),
    ]
    bench = Workbench(devices, window=(800, 600), downloads_dir=str(tmp_path))
    try:
        await bench.start()
    except PlaywrightError as e:
        await bench.close()
        pytest.skip(f"No Playwright browser available: {e}")
    yield bench
    await bench.close()


@pytest.mark.asyncio
async def test_locate_follows_camera(workbench):
    await workbench.set_camera(Camera(10, 20, 2))
    rect = await workbench.locate_device("shape:tall")
    assert rect.x == pytest.approx(20)
    assert rect.y == pytest.approx(40)
    assert rect.width == pytest.approx(600)


@pytest.mark.asyncio
async def test_page_dims_answered_by_target_frame(workbench):
    resp = await workbench.request_page_dims({"type": "GET_PAGE_DIMS", "targetDeviceId": "shape:tall"})
    assert resp["scrollHeight"] >= 2000
    assert await workbench.request_page_dims({"type": "GET_PAGE_DIMS", "targetDeviceId": "shape:nope"}) is None


@pytest.mark.asyncio
async def test_full_page_capture_end_to_end(workbench, tmp_path):
    settings = CaptureSettings(ui_hide_delay=0.05, reflow_delay=0.2, downloads_dir=str(tmp_path))
    shooter = DeviceScreenshotter(workbench, settings)

    result = await shooter.capture("shape:tall", "full-page")

    assert result.height >= 2000
    img = open_png(Path(result.path).read_bytes())
    assert img.size == (300, result.height)
    assert workbench.get_device("shape:tall").h == 400
    assert workbench.get_camera() == Camera()
    assert workbench.ui_hidden is False
