from pydantic import BaseModel


class ErrorLocation(BaseModel):
    field: str | None = None
    index: int | None = None
    url: str | None = None


class ErrorInfo(BaseModel):
    code: str
    message: str
    location: ErrorLocation | None = None
    retryable: bool = False
    suggested_fix: str | None = None  # Human-readable fix suggestion


class ErrorResponse(BaseModel):
    success: bool = False
    error: ErrorInfo
