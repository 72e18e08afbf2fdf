from typing import Any, Optional


class ApiError(Exception):
    """Base error for backend calls. `kind` is the stable code surfaced to callers."""

    kind = "api_error"
    is_auth = False
    is_transient = False

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        endpoint: Optional[str] = None,
        response_data: Optional[Any] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status = status
        self.endpoint = endpoint
        # Full parsed error body; only kept for endpoints whose errors may hide completed work
        self.response_data = response_data

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message, "status": self.status}


class AuthRequired(ApiError):
    """No usable credential was found; the network was not touched."""

    kind = "auth_required"
    is_auth = True


class SessionExpired(ApiError):
    kind = "session_expired"
    is_auth = True


class NetworkUnavailable(ApiError):
    kind = "network_unavailable"
    is_transient = True


class RequestTimeout(NetworkUnavailable):
    kind = "timeout"


class MalformedResponse(ApiError):
    kind = "malformed_response"


class ServerError(ApiError):
    kind = "server_error"
