from dataclasses import dataclass

from page_dims import PAGE_DIMS_TIMEOUT
from tile_grid import SAFETY_MARGIN


@dataclass
class CaptureSettings:
    """Timing and output knobs for a capture. Times are in seconds."""
    ui_hide_delay: float = 0.3
    reflow_delay: float = 0.5
    settle_min: float = 0.1
    settle_max: float = 0.6
    poll_interval: float = 0.05
    page_dims_timeout: float = PAGE_DIMS_TIMEOUT
    cooldown: float = 0.5
    safety_margin: int = SAFETY_MARGIN
    downloads_dir: str = "downloads"
