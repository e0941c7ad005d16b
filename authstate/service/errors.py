from __future__ import annotations

from typing import Any, Mapping, Optional


class ServiceError(Exception):
    """Failure surfaced to callers of the resolvers and the verifier.

    Subclasses pin the HTTP status and the stable error code the API layer
    reports. ``expose_detail`` decides whether ``detail`` may reach a
    response body; internal failures keep it in the logs only.
    """

    status_code: int = 400
    error_code: str = "validation_error"
    expose_detail: bool = True

    def __init__(self, message: str, *, detail: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = dict(detail or {})


class ValidationError(ServiceError):
    """Input contract violated by the caller (400)."""


class AuthenticationError(ServiceError):
    """No usable session behind the request (401)."""
    status_code = 401
    error_code = "unauthorized"


class ServerError(ServiceError):
    status_code = 500
    error_code = "server_error"
    expose_detail = False


class CredentialHashError(ServerError):
    """A fresh hash did not verify against its own plaintext."""


class StoreUnavailableError(ServiceError):
    """The durable store could not answer, so no verdict exists (503).

    Never to be read as a logged-out user.
    """
    status_code = 503
    error_code = "store_unavailable"
    expose_detail = False
