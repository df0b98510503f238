"""Shared types for the Open Horizon MCP server."""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal


class Action(str, Enum):
    LIST = "list"
    DETAILS = "details"
    CREATE = "create"
    DELETE = "delete"
    STATUS = "status"


class Target(str, Enum):
    SERVICE = "service"
    NODE = "node"
    POLICY = "policy"


class PolicyType(str, Enum):
    NODE = "node"
    SERVICE = "service"
    DEPLOYMENT = "deployment"


class ErrorCode(str, Enum):
    """Error taxonomy surfaced to callers as data."""

    MISSING_PARAMETER = "MISSING_PARAMETER"
    UNKNOWN_ACTION = "UNKNOWN_ACTION"
    INVALID_TARGET = "INVALID_TARGET"
    REMOTE_HTTP_ERROR = "REMOTE_HTTP_ERROR"
    REMOTE_TRANSPORT_ERROR = "REMOTE_TRANSPORT_ERROR"
    UNKNOWN_SESSION = "UNKNOWN_SESSION"
    BAD_INITIATION = "BAD_INITIATION"
    UNKNOWN_TOOL = "UNKNOWN_TOOL"


class ToolInputError(ValueError):
    """Raised when tool arguments fail validation."""

    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


ResponseKind = Literal["remote", "acknowledgment", "error"]

KIND_REMOTE: ResponseKind = "remote"
KIND_ACKNOWLEDGMENT: ResponseKind = "acknowledgment"
KIND_ERROR: ResponseKind = "error"


@dataclass(frozen=True)
class ResourceResponse:
    """Normalized envelope returned for every resource operation.

    Remote successes carry the Exchange JSON in ``payload``; acknowledgments
    carry only a ``message`` (no remote call was made); errors carry a
    ``message`` plus an ``error_code`` and, for HTTP failures, the status.
    """

    kind: ResponseKind
    payload: Any = None
    message: str | None = None
    error_code: ErrorCode | None = None
    status_code: int | None = None

    @classmethod
    def remote(cls, payload: Any, status_code: int | None = None) -> "ResourceResponse":
        return cls(kind=KIND_REMOTE, payload=payload, status_code=status_code)

    @classmethod
    def acknowledgment(cls, message: str) -> "ResourceResponse":
        return cls(kind=KIND_ACKNOWLEDGMENT, message=message)

    @classmethod
    def error(
        cls,
        code: ErrorCode,
        message: str,
        status_code: int | None = None,
    ) -> "ResourceResponse":
        return cls(kind=KIND_ERROR, message=message, error_code=code, status_code=status_code)

    @property
    def is_error(self) -> bool:
        return self.kind == KIND_ERROR

    def text(self) -> str:
        if self.kind == KIND_REMOTE:
            return json.dumps(self.payload, indent=2, ensure_ascii=False)
        return self.message or ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "payload": self.payload,
            "message": self.message,
            "error_code": self.error_code.value if self.error_code else None,
            "status_code": self.status_code,
        }
