import logging
from io import BytesIO

from PIL import Image, UnidentifiedImageError

from errors import CaptureError
from geometry import Camera, Device, Rect, screen_to_world

logger = logging.getLogger(__name__)


def new_output_buffer(device_w: int, capture_height: int, scale: int) -> Image.Image:
    width = int(device_w * scale)
    height = int(capture_height * scale)
    if width <= 0 or height <= 0:
        raise CaptureError(f"Cannot allocate a {width}x{height} output image")
    try:
        return Image.new("RGBA", (width, height), (0, 0, 0, 0))
    except (MemoryError, ValueError) as e:
        raise CaptureError(f"Cannot allocate a {width}x{height} output image: {e}") from e


def decode_raster(data: bytes) -> Image.Image:
    if not data:
        raise CaptureError("Window capture returned no image")
    try:
        img = Image.open(BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise CaptureError(f"Window capture is not a readable image: {e}") from e
    return img.convert("RGBA")


def encode_png(image: Image.Image) -> bytes:
    out = BytesIO()
    image.save(out, format="PNG")
    return out.getvalue()


def composite_tile(
    output: Image.Image,
    raster: Image.Image,
    dpr: float,
    device_rect: Rect,
    safe_area: Rect,
    camera: Camera,
    device: Device,
    scale: int,
) -> bool:
    """
    Draw the part of one window raster that shows the device into `output`.

    The destination is recovered from the captured geometry itself: the visible
    region's top-left is taken back through the inverse camera into world space and
    then made device-local. Returns False when the tile contributes nothing.
    """
    visible = device_rect.intersect(safe_area)
    if visible is None:
        return False

    world_x, world_y = screen_to_world((visible.x, visible.y), camera)
    world_r, world_b = screen_to_world((visible.right, visible.bottom), camera)
    dest_x = (world_x - device.x) * scale
    dest_y = (world_y - device.y) * scale
    # world extent times scale, so a camera zoomed to `scale` is not applied twice
    dest_w = round((world_r - world_x) * scale)
    dest_h = round((world_b - world_y) * scale)
    if dest_w <= 0 or dest_h <= 0:
        return False

    # Pillow rejects a resample box that leaves the source image
    src_box = (
        max(0.0, visible.x * dpr),
        max(0.0, visible.y * dpr),
        min(float(raster.width), visible.right * dpr),
        min(float(raster.height), visible.bottom * dpr),
    )
    if src_box[2] <= src_box[0] or src_box[3] <= src_box[1]:
        return False
    region = raster.resize((dest_w, dest_h), Image.LANCZOS, box=src_box)
    output.paste(region, (round(dest_x), round(dest_y)))
    logger.debug(
        f"Composited {visible.width:.0f}x{visible.height:.0f} at screen "
        f"({visible.x:.0f},{visible.y:.0f}) -> dest ({dest_x:.0f},{dest_y:.0f})"
    )
    return True
