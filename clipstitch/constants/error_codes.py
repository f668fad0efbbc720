"""Error codes dictionary for the clipstitch API.

This is the single source of truth for all error codes, their retryability,
and suggested fixes. Used by exception handlers and the job orchestrator to
produce machine-readable error payloads.
"""

from typing import TypedDict


class ErrorCodeSpec(TypedDict, total=False):
    """Specification for an error code."""

    retryable: bool
    suggested_fix: str


ERROR_CODES: dict[str, ErrorCodeSpec] = {
    # ==========================================================================
    # Request errors
    # ==========================================================================
    "VALIDATION_ERROR": {
        "retryable": False,
        "suggested_fix": "Fix the request body and resend it",
    },
    "BAD_REQUEST": {
        "retryable": False,
    },
    "NOT_FOUND": {
        "retryable": False,
    },
    "JOB_NOT_FOUND": {
        "retryable": False,
        "suggested_fix": "Jobs are kept for one hour after they finish",
    },
    "FILE_NOT_FOUND": {
        "retryable": False,
        "suggested_fix": "Output files expire; run the operation again",
    },
    # ==========================================================================
    # Download errors
    # ==========================================================================
    "DOWNLOAD_FAILED": {
        "retryable": True,
        "suggested_fix": "Check that the clip URL is reachable from the server",
    },
    "CLIP_NOT_FOUND": {
        "retryable": False,
        "suggested_fix": "The clip URL returned 404; check the URL",
    },
    "CLIP_ACCESS_DENIED": {
        "retryable": False,
        "suggested_fix": "The clip URL returned 403; use a public or pre-signed URL",
    },
    "CLIP_TOO_LARGE": {
        "retryable": False,
        "suggested_fix": "Use a smaller source file or raise MAX_FILE_SIZE_MB",
    },
    "DOWNLOAD_TIMEOUT": {
        "retryable": True,
        "suggested_fix": "Retry later or host the clip closer to the server",
    },
    # ==========================================================================
    # Processing errors
    # ==========================================================================
    "TRANSCODE_FAILED": {
        "retryable": False,
        "suggested_fix": "Check that every source is a decodable video file",
    },
    "TRANSCODE_TIMEOUT": {
        "retryable": True,
        "suggested_fix": "Use fewer or shorter clips, or raise FFMPEG_TIMEOUT_MS",
    },
    "STORAGE_ERROR": {
        "retryable": True,
    },
    "INVALID_JOB_TRANSITION": {
        "retryable": False,
    },
    "INTERNAL_ERROR": {
        "retryable": False,
    },
}


def get_error_spec(code: str) -> ErrorCodeSpec:
    """Get error specification by code.

    Args:
        code: The error code

    Returns:
        ErrorCodeSpec with retryable flag and suggested fix
    """
    return ERROR_CODES.get(code, {"retryable": False})


def is_retryable(code: str) -> bool:
    """Check if an error code is retryable."""
    spec = get_error_spec(code)
    return spec.get("retryable", False)
