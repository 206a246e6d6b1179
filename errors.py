"""Shared error codes, user-facing messages and exception types."""

from __future__ import annotations

# Device acquisition
PERMISSION_DENIED = "PERMISSION_DENIED"
DEVICE_NOT_FOUND = "DEVICE_NOT_FOUND"
DEVICE_BUSY = "DEVICE_BUSY"
CONSTRAINT_UNSATISFIABLE = "CONSTRAINT_UNSATISFIABLE"
ABORTED = "ABORTED"
UNSUPPORTED = "UNSUPPORTED"
UNKNOWN = "UNKNOWN"

# Mid-session / per-cycle
DEVICE_RUNTIME_ERROR = "DEVICE_RUNTIME_ERROR"
CAPTURE_ERROR = "CAPTURE_ERROR"
RATE_LIMITED = "RATE_LIMITED"
GENERIC = "GENERIC"
CLIPBOARD_ERROR = "CLIPBOARD_ERROR"

ACQUISITION_CODES = (
    PERMISSION_DENIED,
    DEVICE_NOT_FOUND,
    DEVICE_BUSY,
    CONSTRAINT_UNSATISFIABLE,
    ABORTED,
    UNSUPPORTED,
    UNKNOWN,
)

ERROR_MESSAGES = {
    PERMISSION_DENIED: "Camera access denied. Please enable camera permissions for this app.",
    DEVICE_NOT_FOUND: "No camera found. Ensure a camera is connected and enabled.",
    DEVICE_BUSY: "Camera is in use or unreadable. Try closing other apps using the camera.",
    CONSTRAINT_UNSATISFIABLE: "Camera does not support requested settings (e.g., resolution).",
    ABORTED: "Camera access request was aborted.",
    UNSUPPORTED: "Camera capture is not supported on this system (OpenCV is missing).",
    UNKNOWN: "Could not access camera. Please check permissions.",
    DEVICE_RUNTIME_ERROR: "Video stream error. Camera might be disconnected or an issue occurred.",
    CAPTURE_ERROR: "Failed to capture image from camera.",
    RATE_LIMITED: "The recognition service is rate limiting requests. Consider a longer interval.",
    GENERIC: "Could not recognize the sign. Will keep trying.",
    CLIPBOARD_ERROR: "Could not copy the transcript to the clipboard.",
}


class SignTextError(Exception):
    """Base error carrying one of the codes above."""

    default_code = UNKNOWN

    def __init__(self, message: str = "", code: str | None = None) -> None:
        self.code = code or self.default_code
        self.message = message or ERROR_MESSAGES.get(self.code, self.code)
        super().__init__(self.message)


class DeviceAcquisitionError(SignTextError):
    def __init__(self, code: str = UNKNOWN, message: str = "") -> None:
        if code not in ACQUISITION_CODES:
            code = UNKNOWN
        super().__init__(message, code)


class DeviceRuntimeError(SignTextError):
    default_code = DEVICE_RUNTIME_ERROR


class CaptureError(SignTextError):
    default_code = CAPTURE_ERROR


class ClassificationError(SignTextError):
    default_code = GENERIC

    @property
    def rate_limited(self) -> bool:
        return self.code == RATE_LIMITED


class ClipboardError(SignTextError):
    default_code = CLIPBOARD_ERROR
