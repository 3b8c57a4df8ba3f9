from fastapi import Request
from starlette.responses import JSONResponse

from app.schemas.common import ErrorCode, ErrorResponse

FORBIDDEN = {403: {"model": ErrorResponse, "description": "Access denied"}}
RATE_LIMITED = {429: {"model": ErrorResponse, "description": "Too many requests"}}
SERVICE_UNAVAILABLE = {
    503: {"model": ErrorResponse, "description": "Statistics page could not be sent"}
}


def error_response(
    request: Request,
    status_code: int,
    code: ErrorCode,
    message: str,
    details: list[dict] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        headers=headers,
        content={
            "error": {
                "code": code.value,
                "message": message,
                "request_id": getattr(request.state, "request_id", None),
                "details": details,
            }
        },
    )
