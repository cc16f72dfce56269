"""
Result Envelope

Tagged result values used by every boundary (CLI, HTTP):

    {"ok": true, "value": ...}
    {"ok": false, "error": {"code": ..., "message": ...}}

The envelope is the only contract external callers depend on. Domain
exceptions never cross it.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Generic, TypeVar, Union

T = TypeVar("T")


class ErrorCode(str, Enum):
    """Error taxonomy exposed through the envelope."""
    NOT_FOUND = "NOT_FOUND"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    VALIDATION = "VALIDATION"
    BAD_REQUEST = "BAD_REQUEST"
    # Never surfaced: absorbed by the deterministic fallback
    UPSTREAM_UNAVAILABLE = "UPSTREAM_UNAVAILABLE"


@dataclass(frozen=True)
class ErrorInfo:
    code: ErrorCode
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"code": self.code.value, "message": self.message}


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T
    ok: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": True, "value": _serialize(self.value)}


@dataclass(frozen=True)
class Err:
    error: ErrorInfo
    ok: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": False, "error": self.error.to_dict()}


Result = Union[Ok[T], Err]


def err(code: ErrorCode, message: str) -> Err:
    return Err(ErrorInfo(code, message))


def _serialize(value: Any) -> Any:
    """Convert domain objects (anything with to_dict) into JSON-ready data."""
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [_serialize(v) for v in value]
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    return value

