"""Custom exceptions for the scroll-video service.

Every failure a client can see maps to one code in
``constants.error_codes`` and is rendered as a ``{"error": ...}`` payload
by the exception handler in ``main``.
"""

from typing import Any

from scroll_video.constants.error_codes import get_error_spec


class ScrollVideoError(Exception):
    """Base exception for all application errors."""

    code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        status_code: int | None = None,
        extra: dict[str, Any] | None = None,
    ):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        self._status_code = status_code
        self.extra = extra or {}
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        if self._status_code:
            return self._status_code
        return get_error_spec(self.code).get("status_code", 500)

    def to_payload(self) -> dict[str, Any]:
        """Convert to the JSON body returned to the client."""
        spec = get_error_spec(self.code)
        payload: dict[str, Any] = {
            "error": self.message,
            "code": self.code,
            "retryable": spec.get("retryable", False),
        }
        if "suggested_fix" in spec:
            payload["suggested_fix"] = spec["suggested_fix"]
        payload.update(self.extra)
        return payload


# =============================================================================
# Validation Errors (400) - rejected before job work begins
# =============================================================================


class ValidationError(ScrollVideoError):
    """Base class for input validation errors."""

    code = "VALIDATION_ERROR"
    message = "Invalid input"


class UploadTooLargeError(ValidationError):
    """Uploaded file exceeds the per-file size limit."""

    code = "UPLOAD_TOO_LARGE"
    message = "Uploaded file is too large"

    def __init__(self, field: str, limit_mb: int):
        super().__init__(
            f"Uploaded {field} exceeds the {limit_mb}MB limit",
            extra={"field": field, "limit_mb": limit_mb},
        )


class InvalidImageError(ValidationError):
    """Uploaded file cannot be decoded as an image."""

    code = "INVALID_IMAGE"
    message = "Could not read image"

    def __init__(self, field: str, reason: str | None = None):
        message = f"Could not read {field} image"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, extra={"field": field})


class DimensionLimitError(ValidationError):
    """Image is wider or taller than the configured maximum."""

    code = "DIMENSION_LIMIT_EXCEEDED"

    def __init__(self, field: str, width: int, height: int, limit: int):
        self.width = width
        self.height = height
        self.limit = limit
        super().__init__(
            f"Image dimensions too large. Maximum allowed: {limit}x{limit}px",
            extra={
                "field": field,
                "limit": f"{limit}x{limit}px",
                "current": f"{width}x{height}px",
            },
        )


# =============================================================================
# Detection Errors (400) - job aborted after cutout detection
# =============================================================================


class DetectionFailure(ScrollVideoError):
    """The frame image has no usable transparent cutout."""

    code = "DETECTION_FAILED"
    message = "Could not detect a transparent cutout in the frame image."


class UnsupportedFormat(DetectionFailure):
    """Frame image has no alpha channel."""

    code = "UNSUPPORTED_FORMAT"
    message = "Frame image must have an alpha channel (RGBA)"

    def __init__(self, channels: int | None = None):
        message = self.message
        if channels is not None:
            message = f"{message}, got {channels} channel(s)"
        super().__init__(message)


# =============================================================================
# Processing Errors (500)
# =============================================================================


class EncodeFailure(ScrollVideoError):
    """The external encoder exited non-zero or could not be spawned."""

    code = "ENCODE_FAILED"
    message = "Video encoding failed"

    def __init__(self, exit_code: int | None, stderr: str):
        self.exit_code = exit_code
        self.stderr = stderr
        if exit_code is None:
            message = f"Could not start encoder: {stderr}"
        else:
            message = f"Encoder exited with code {exit_code}"
        super().__init__(message, extra={"exit_code": exit_code})


class InternalError(ScrollVideoError):
    """Internal server error."""

    code = "INTERNAL_ERROR"
    message = "Render failed"


# =============================================================================
# Cancellation - never rendered, the exchange ends without a payload
# =============================================================================


class JobCancelled(Exception):
    """Raised at a phase boundary once the job's cancellation token is set."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Job cancelled: {reason}")
