from enum import Enum
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, Field, ValidationError

T = TypeVar("T")


class ErrorCode(str, Enum):
    """Failure categories used by the API layer to pick a status code."""
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    UNAUTHORIZED = "unauthorized"
    INTERNAL = "internal"


class ActionResult(BaseModel, Generic[T]):
    """
    Outcome of a public service operation.

    Either `success` is true and `data` holds the payload, or `success` is
    false and `error` holds a user-facing message.
    """
    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    code: Optional[ErrorCode] = Field(default=None, exclude=True)

    @classmethod
    def ok(cls, data=None) -> "ActionResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, code: ErrorCode = ErrorCode.VALIDATION) -> "ActionResult":
        return cls(success=False, error=error, code=code)


def first_error_message(exc: ValidationError) -> str:
    """Render the first pydantic error as `field: message`."""
    return format_error(exc.errors()[0])


def all_error_messages(exc: ValidationError) -> list[str]:
    return [format_error(error) for error in exc.errors()]


def format_error(error: dict) -> str:
    location = ".".join(str(part) for part in error.get("loc", ()))
    message = error.get("msg", "Invalid value")
    return f"{location}: {message}" if location else message
