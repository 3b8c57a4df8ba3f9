import enum

from pydantic import BaseModel


class ErrorCode(str, enum.Enum):
    access_denied = "access_denied"
    too_many_clients = "too_many_clients"
    rate_limited = "rate_limited"
    payload_too_large = "payload_too_large"
    unsupported_media_type = "unsupported_media_type"
    stats_unavailable = "stats_unavailable"
    internal_server_error = "internal_server_error"


class ErrorDetail(BaseModel):
    code: str
    message: str
    request_id: str | None = None
    details: list[dict] | None = None


class ErrorResponse(BaseModel):
    error: ErrorDetail
