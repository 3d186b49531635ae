"""Error types rendered as OpenAI-style error bodies."""

from __future__ import annotations

from .models import ErrorDetail, ErrorResponse

UPSTREAM_ERROR_PREFIX = "Azure API Error: "


class ProxyError(Exception):
    status_code: int = 500
    error_type: str = "api_error"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.code = code

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(
            error=ErrorDetail(message=self.message, type=self.error_type, code=self.code)
        )


class InvalidRequestError(ProxyError):
    """The caller sent something we refuse to forward. Always HTTP 400."""

    status_code = 400
    error_type = "invalid_request_error"


class UpstreamError(ProxyError):
    """The forwarded call failed or returned an unusable body."""

    def __init__(self, message: str, *, status_code: int = 500) -> None:
        super().__init__(
            f"{UPSTREAM_ERROR_PREFIX}{message}",
            status_code=status_code,
            code=str(status_code),
        )


class UpstreamHTTPError(UpstreamError):
    """Azure answered with a non-2xx status; status and message are passed through."""


class UpstreamTransportError(UpstreamError):
    """No usable HTTP answer: connection failure, timeout or a local exception."""
