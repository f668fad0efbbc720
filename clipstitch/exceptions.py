"""Custom exceptions for the clipstitch service.

These exceptions carry machine-readable error codes (see
``clipstitch.constants.error_codes``) so that synchronous responses and
asynchronous job records report failures in the same shape.
"""

from clipstitch.constants.error_codes import get_error_spec, is_retryable
from clipstitch.schemas.envelope import ErrorInfo, ErrorLocation


class ClipstitchError(Exception):
    """Base exception for all clipstitch application errors."""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        status_code: int | None = None,
        location: ErrorLocation | None = None,
        suggested_fix: str | None = None,
    ):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.location = location
        self.suggested_fix = suggested_fix
        super().__init__(self.message)

    def to_error_info(self) -> ErrorInfo:
        """Convert exception to ErrorInfo for API responses and job records."""
        spec = get_error_spec(self.code)
        return ErrorInfo(
            code=self.code,
            message=self.message,
            location=self.location,
            retryable=is_retryable(self.code),
            suggested_fix=self.suggested_fix or spec.get("suggested_fix"),
        )


# =============================================================================
# Validation Errors (400)
# =============================================================================


class ValidationError(ClipstitchError):
    """Malformed or missing request fields. Raised before any I/O."""

    code = "VALIDATION_ERROR"
    status_code = 400
    message = "Invalid request"


# =============================================================================
# Download Errors
# =============================================================================


class DownloadError(ClipstitchError):
    """A source clip could not be fetched. Aborts the whole request."""

    code = "DOWNLOAD_FAILED"
    status_code = 502
    message = "Failed to download clip"

    def __init__(self, message: str | None = None, *, url: str | None = None, **kwargs):
        self.url = url
        if url and "location" not in kwargs:
            kwargs["location"] = ErrorLocation(url=url)
        super().__init__(message, **kwargs)


class ClipNotFoundError(DownloadError):
    code = "CLIP_NOT_FOUND"
    status_code = 404
    message = "Clip not found"

    def __init__(self, url: str | None = None):
        super().__init__(f"Video not found: {url}" if url else None, url=url)


class ClipAccessDeniedError(DownloadError):
    code = "CLIP_ACCESS_DENIED"
    status_code = 403
    message = "Access denied to clip"

    def __init__(self, url: str | None = None):
        super().__init__(f"Access denied to video: {url}" if url else None, url=url)


class ClipTooLargeError(DownloadError):
    code = "CLIP_TOO_LARGE"
    status_code = 413
    message = "Clip exceeds the maximum file size"

    def __init__(self, limit_bytes: int, url: str | None = None, *, declared_bytes: int | None = None):
        limit_mb = limit_bytes // (1024 * 1024)
        if declared_bytes is not None:
            message = f"File too large: {declared_bytes // (1024 * 1024)}MB exceeds {limit_mb}MB limit"
        else:
            message = f"Download exceeded {limit_mb}MB limit"
        self.limit_bytes = limit_bytes
        super().__init__(message, url=url)


class DownloadTimeoutError(DownloadError):
    code = "DOWNLOAD_TIMEOUT"
    status_code = 504
    message = "Download timed out"

    def __init__(self, url: str | None = None):
        super().__init__(f"Download timeout for {url}" if url else None, url=url)


# =============================================================================
# Processing Errors
# =============================================================================


class TranscodeError(ClipstitchError):
    """The external engine exited non-zero or produced unusable output."""

    code = "TRANSCODE_FAILED"
    status_code = 500
    message = "FFmpeg processing failed"

    def __init__(self, message: str | None = None, *, stderr: str | None = None, **kwargs):
        self.stderr = stderr
        super().__init__(message, **kwargs)


class TranscodeTimeoutError(TranscodeError):
    code = "TRANSCODE_TIMEOUT"
    status_code = 504
    message = "FFmpeg processing timed out"


class StorageError(ClipstitchError):
    """Finalizing or cleaning up output files failed."""

    code = "STORAGE_ERROR"
    status_code = 500
    message = "Storage operation failed"


# =============================================================================
# Lookup / State Errors
# =============================================================================


class JobNotFoundError(ClipstitchError):
    code = "JOB_NOT_FOUND"
    status_code = 404
    message = "Job not found"

    def __init__(self, job_id: str | None = None):
        super().__init__(f"Job not found: {job_id}" if job_id else None)


class OutputFileNotFoundError(ClipstitchError):
    code = "FILE_NOT_FOUND"
    status_code = 404
    message = "File not found or expired"


class InvalidJobTransitionError(ClipstitchError):
    code = "INVALID_JOB_TRANSITION"
    status_code = 409
    message = "Invalid job state transition"

    def __init__(self, job_id: str, current: str, target: str):
        super().__init__(f"Job {job_id} cannot move from {current} to {target}")
