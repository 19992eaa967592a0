from dataclasses import dataclass
from math import ceil
from typing import Iterator, Tuple

from errors import CaptureError
from geometry import Rect

SAFETY_MARGIN = 40


@dataclass(frozen=True)
class TileGrid:
    rows: int
    cols: int
    tile_world_w: float
    tile_world_h: float
    safe_area: Rect

    def tiles(self) -> Iterator[Tuple[int, int]]:
        """Row-major: top row left to right, then the next row."""
        for r in range(self.rows):
            for c in range(self.cols):
                yield r, c

    def offset(self, row: int, col: int) -> Tuple[float, float]:
        return col * self.tile_world_w, row * self.tile_world_h

    def __len__(self) -> int:
        return self.rows * self.cols


def plan_tiles(
    device_w: float,
    capture_height: float,
    scale: int,
    view_w: int,
    view_h: int,
    margin: int = SAFETY_MARGIN,
) -> TileGrid:
    """
    Work out how many camera positions are needed to cover a device.

    The safe area starts at (margin, margin) and runs to the window's bottom-right
    corner. Each tile covers that area divided by the capture scale, in world units.
    """
    safe_w = view_w - margin
    safe_h = view_h - margin
    if safe_w <= 0 or safe_h <= 0:
        raise CaptureError(f"Window {view_w}x{view_h} too small for a {margin}px safety margin")
    if device_w <= 0 or capture_height <= 0:
        raise CaptureError(f"Invalid capture size {device_w}x{capture_height}")

    tile_world_w = safe_w / scale
    tile_world_h = safe_h / scale
    # ceil, never round: the last partial tile must still be captured
    cols = ceil(device_w / tile_world_w)
    rows = ceil(capture_height / tile_world_h)

    return TileGrid(
        rows=rows,
        cols=cols,
        tile_world_w=tile_world_w,
        tile_world_h=tile_world_h,
        safe_area=Rect(margin, margin, safe_w, safe_h),
    )
