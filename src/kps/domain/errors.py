from __future__ import annotations

from enum import Enum


class AppError(Exception):
    """Base app error."""


class ValidationError(AppError):
    pass


class NotFoundError(AppError):
    pass


class AuthorizationError(AppError):
    pass


class CameraFailure(str, Enum):
    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    UNSUPPORTED = "unsupported"
    BUSY = "busy"
    UNKNOWN = "unknown"


CAMERA_MESSAGES: dict[CameraFailure, str] = {
    CameraFailure.PERMISSION_DENIED: "Camera access denied. Allow camera access in the device settings.",
    CameraFailure.NOT_FOUND: "No camera found. Make sure a camera is connected.",
    CameraFailure.UNSUPPORTED: "This device does not support camera access.",
    CameraFailure.BUSY: "The camera is already in use by another application.",
    CameraFailure.UNKNOWN: "Unknown camera error.",
}


class CameraError(AppError):
    def __init__(self, kind: CameraFailure, detail: str = ""):
        self.kind = kind
        self.detail = detail
        super().__init__(CAMERA_MESSAGES[kind])
