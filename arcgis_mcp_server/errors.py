"""
Error taxonomy for the feature-edit gateway.

Client errors are caused by the caller's arguments and are detected before
any network call. Server errors come from the feature service or the
transport in front of it. Every error renders into the uniform tool
response via ``to_response()``.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from .results import EditVerdict


class GatewayError(Exception):
    """Base exception for all gateway errors."""

    code = "GatewayError"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_response(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": self.code,
            "details": self.message,
        }


class GatewayClientError(GatewayError):
    """Caller input issues - rejected before any network I/O."""


class GatewayServerError(GatewayError):
    """Feature service or transport failures."""


class MissingCredential(GatewayClientError):
    code = "MissingCredential"

    def __init__(self, message: str = "API key is required for executing this tool") -> None:
        super().__init__(message)


class InvalidArgument(GatewayClientError):
    code = "InvalidArgument"

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(f"Invalid argument '{field}': {reason}")
        self.field = field
        self.reason = reason


class InsufficientVertices(GatewayClientError):
    code = "InsufficientVertices"

    def __init__(self, field: str, minimum: int, actual: int) -> None:
        super().__init__(
            f"'{field}' needs at least {minimum} coordinates, got {actual}"
        )
        self.field = field
        self.minimum = minimum
        self.actual = actual


class LayerUnavailable(GatewayServerError):
    code = "LayerUnavailable"


class QueryFailed(GatewayServerError):
    code = "QueryFailed"


class EditFailed(GatewayServerError):
    """The applyEdits call errored, or it produced no outcomes."""

    code = "EditFailed"

    def __init__(self, message: str, verdict: Optional["EditVerdict"] = None) -> None:
        super().__init__(message)
        self.verdict = verdict

    def to_response(self) -> Dict[str, Any]:
        data = super().to_response()
        if self.verdict is not None:
            data.update(self.verdict.summary())
        return data


class PartialEditFailure(EditFailed):
    """At least one outcome came back, but not all of them succeeded."""

    code = "PartialEditFailure"
