# failures.py
# Description: Failure kinds and the Result wrapper returned across component boundaries.
#
"""
failures.py
-----------

Inside a component errors are ordinary exceptions (`FieldOpsDBError`,
`FieldOpsAPIError`, ...). Public operations of the sync engine and the
fulfillment workflow catch them and hand back a `Result` holding either the
value or one `Failure`:

- `NetworkFailure`: transport errors, timeouts, unreachable host
- `DatabaseFailure`: anything raised by the local store
- `ValidationFailure`: caller data fails a precondition (`InvalidTransition` is one)
- `ServerFailure`: the server answered, but with an error
- `UnknownFailure`: everything else
"""
# Imports
import sqlite3
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar
#
# 3rd-Party Imports
import httpx
#
# Local Imports
from fieldops_app.DB.FieldOps_DB import FieldOpsDBError, InputError
from fieldops_app.api.exceptions import (
    APIConnectionError, APIRequestError, APIResponseError, AuthenticationError, ServerStatusError
)
#
########################################################################################################################
#
# Functions:

T = TypeVar("T")


# --- Failure kinds ---
@dataclass(frozen=True)
class Failure:
    message: str
    code: Optional[str] = None
    cause: Optional[BaseException] = None

    def __str__(self):
        return f"{type(self).__name__}: {self.message}"


@dataclass(frozen=True)
class NetworkFailure(Failure):
    pass


@dataclass(frozen=True)
class DatabaseFailure(Failure):
    pass


@dataclass(frozen=True)
class ValidationFailure(Failure):
    pass


@dataclass(frozen=True)
class InvalidTransition(ValidationFailure):
    """A workflow action attempted from a state, or by a role, the transition table does not allow."""
    state: Optional[int] = None
    action: Optional[str] = None
    role: Optional[int] = None


@dataclass(frozen=True)
class ServerFailure(Failure):
    pass


@dataclass(frozen=True)
class UnknownFailure(Failure):
    pass


class ResultError(Exception):
    """Raised by `Result.unwrap()` on a failed result."""

    def __init__(self, failure: Failure):
        super().__init__(str(failure))
        self.failure = failure


@dataclass(frozen=True)
class Result(Generic[T]):
    value: Optional[T] = None
    failure: Optional[Failure] = None

    @classmethod
    def ok(cls, value: T = None) -> 'Result[T]':
        return cls(value=value)

    @classmethod
    def fail(cls, failure: Failure) -> 'Result[T]':
        return cls(failure=failure)

    @property
    def is_ok(self) -> bool:
        return self.failure is None

    @property
    def is_failure(self) -> bool:
        return self.failure is not None

    def unwrap(self) -> T:
        if self.failure is not None:
            raise ResultError(self.failure)
        return self.value

    def unwrap_or(self, default: Any) -> Any:
        return default if self.failure is not None else self.value


# --- Classification ---
_NETWORK_HINTS = (
    ("timeout", "Connection timed out. Please check your internet connection."),
    ("timed out", "Connection timed out. Please check your internet connection."),
    ("socket", "Network connection failed. Please check your internet connection."),
    ("connection", "Network connection failed. Please check your internet connection."),
    ("host", "Unable to reach server. Please check your internet connection."),
)


def _network_message(exc: BaseException) -> Optional[str]:
    text = f"{type(exc).__name__} {exc}".lower()
    for hint, message in _NETWORK_HINTS:
        if hint in text:
            return message
    return None


def to_failure(exc: BaseException) -> Failure:
    """Maps an exception raised inside a component onto a Failure kind."""
    if isinstance(exc, (APIConnectionError, httpx.TransportError, TimeoutError, ConnectionError)):
        return NetworkFailure(_network_message(exc) or "Network error occurred", cause=exc)
    if isinstance(exc, (ServerStatusError, APIResponseError, AuthenticationError, APIRequestError)):
        code = getattr(exc, 'status', None) or getattr(exc, 'status_code', None)
        return ServerFailure(str(exc), code=str(code) if code is not None else None, cause=exc)
    if isinstance(exc, (FieldOpsDBError, sqlite3.Error)):
        return DatabaseFailure(str(exc), cause=exc)
    if isinstance(exc, (InputError, ValueError)):
        return ValidationFailure(str(exc), cause=exc)
    network_message = _network_message(exc)
    if network_message:
        return NetworkFailure(network_message, cause=exc)
    return UnknownFailure(str(exc) or type(exc).__name__, cause=exc)

#
# End of failures.py
########################################################################################################################
