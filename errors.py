class CaptureError(Exception):
    """A capture could not produce an image. The session is aborted after cleanup."""


class DeviceNotFoundError(CaptureError):
    def __init__(self, device_id: str):
        super().__init__(f"Device not found: {device_id}")
        self.device_id = device_id
