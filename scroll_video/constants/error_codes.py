"""Error codes dictionary for the render API.

Single source of truth for error codes, their HTTP status and retryability.
Used by the exception hierarchy to build ``{"error": ...}`` payloads.
"""

from typing import TypedDict


class ErrorCodeSpec(TypedDict, total=False):
    """Specification for an error code."""

    status_code: int
    retryable: bool
    suggested_fix: str


ERROR_CODES: dict[str, ErrorCodeSpec] = {
    # ==========================================================================
    # Validation errors (not retryable, fix input)
    # ==========================================================================
    "VALIDATION_ERROR": {
        "status_code": 400,
        "retryable": False,
    },
    "UPLOAD_TOO_LARGE": {
        "status_code": 413,
        "retryable": False,
        "suggested_fix": "Upload a smaller image",
    },
    "INVALID_IMAGE": {
        "status_code": 400,
        "retryable": False,
        "suggested_fix": "Upload a PNG or JPEG image",
    },
    "DIMENSION_LIMIT_EXCEEDED": {
        "status_code": 400,
        "retryable": False,
        "suggested_fix": "Downscale the image so both sides fit the limit",
    },
    # ==========================================================================
    # Detection errors
    # ==========================================================================
    "UNSUPPORTED_FORMAT": {
        "status_code": 400,
        "retryable": False,
        "suggested_fix": "Use a PNG frame with an alpha channel (RGBA)",
    },
    "DETECTION_FAILED": {
        "status_code": 400,
        "retryable": False,
        "suggested_fix": "Make the screen area of the frame fully transparent (alpha = 0)",
    },
    # ==========================================================================
    # Processing errors
    # ==========================================================================
    "ENCODE_FAILED": {
        "status_code": 500,
        "retryable": True,
    },
    "INTERNAL_ERROR": {
        "status_code": 500,
        "retryable": True,
    },
}


def get_error_spec(code: str) -> ErrorCodeSpec:
    """Look up an error code, falling back to INTERNAL_ERROR."""
    return ERROR_CODES.get(code, ERROR_CODES["INTERNAL_ERROR"])
