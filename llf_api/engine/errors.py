from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LlfError(Exception):
    code = "error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class ValidationError(LlfError):
    code = "validation_error"


class NotFound(LlfError):
    code = "not_found"


class ProfileNotFound(NotFound):
    code = "profile_not_found"


class PermissionDenied(LlfError):
    code = "permission_denied"


class PendingApproval(PermissionDenied):
    code = "pending_approval"


class Unauthenticated(LlfError):
    code = "unauthenticated"


class StorageError(LlfError):
    code = "storage_error"


class Conflict(LlfError):
    code = "conflict"


@dataclass(frozen=True)
class Result(Generic[T]):
    """Success payload XOR one typed error."""

    value: Optional[T] = None
    error: Optional[LlfError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: LlfError) -> "Result[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


def service_call(func: Callable[..., Any]) -> Callable[..., Result[Any]]:
    """Turn raised errors into a failed Result at the manager boundary.

    Anything that is not an LlfError came from a collaborator and is
    reported as a StorageError.
    """

    @functools.wraps(func)
    def _wrapper(*args, **kwargs):
        try:
            return Result.success(func(*args, **kwargs))
        except LlfError as exc:
            logger.debug("%s failed: %s (%s)", func.__qualname__, exc.message, exc.code)
            return Result.failure(exc)
        except Exception as exc:
            logger.exception("%s failed unexpectedly", func.__qualname__)
            return Result.failure(StorageError(f"{type(exc).__name__}: {exc}"))

    return _wrapper
