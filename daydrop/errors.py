"""Error taxonomy shared by Daydrop services and blueprints."""

from __future__ import annotations

from typing import Any, Dict, Optional


class DaydropError(Exception):
    """Raised when a Daydrop operation fails; carries the HTTP status and JSON payload."""

    status_code = 400
    error_code = "daydrop_error"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        payload: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.payload = payload or {"error": self.error_code}


class NotFound(DaydropError):
    status_code = 404
    error_code = "not_found"


class Unauthenticated(DaydropError):
    status_code = 401
    error_code = "unauthenticated"


class Forbidden(DaydropError):
    status_code = 403
    error_code = "forbidden"


class ValidationFailure(DaydropError):
    status_code = 400
    error_code = "validation_failed"


class RemoteFailure(DaydropError):
    """Store, storage or identity provider call failed; never retried automatically."""

    status_code = 502
    error_code = "remote_failure"
