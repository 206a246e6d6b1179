"""Still-image capture from the live frame source."""

from __future__ import annotations

from typing import Any, Callable, Optional

from errors import CaptureError
from models import CapturedImage

try:
    import cv2
except Exception:  # pragma: no cover
    cv2 = None  # type: ignore

FrameSource = Callable[[], Optional[Any]]


class FrameSampler:
    def __init__(self, frame_source: FrameSource, jpeg_quality: int = 85) -> None:
        self._frame_source = frame_source
        self._jpeg_quality = jpeg_quality

    def capture(self) -> CapturedImage:
        """Encode the current frame as JPEG at the source's native resolution."""
        if cv2 is None:
            raise CaptureError("OpenCV is not installed")
        frame = self._frame_source()
        if frame is None or getattr(frame, "size", 0) == 0:
            raise CaptureError()
        height, width = frame.shape[:2]
        ok, buf = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, self._jpeg_quality])
        if not ok:
            raise CaptureError()
        return CapturedImage(data=buf.tobytes(), width=int(width), height=int(height))
