from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class Camera:
    """World-to-screen transform: screen = (world + (x, y)) * zoom."""
    x: float = 0.0
    y: float = 0.0
    zoom: float = 1.0


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def intersect(self, other: "Rect") -> Optional["Rect"]:
        x0 = max(self.x, other.x)
        y0 = max(self.y, other.y)
        x1 = min(self.right, other.right)
        y1 = min(self.bottom, other.bottom)
        if x1 <= x0 or y1 <= y0:
            return None
        return Rect(x0, y0, x1 - x0, y1 - y0)


@dataclass
class Device:
    id: str
    name: str
    x: float
    y: float
    w: int
    h: int
    url: str = "about:blank"


Point = Tuple[float, float]


def world_to_screen(p: Point, camera: Camera) -> Point:
    return (p[0] + camera.x) * camera.zoom, (p[1] + camera.y) * camera.zoom


def screen_to_world(p: Point, camera: Camera) -> Point:
    return p[0] / camera.zoom - camera.x, p[1] / camera.zoom - camera.y


def camera_for_anchor(target: Point, anchor: Point, zoom: float) -> Camera:
    """
    Solve for the camera that puts world point `target` at screen point `anchor`.

    anchor = (target + cam) * zoom  =>  cam = anchor / zoom - target
    """
    return Camera(anchor[0] / zoom - target[0], anchor[1] / zoom - target[1], zoom)
