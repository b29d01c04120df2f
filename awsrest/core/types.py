"""
Core Type Definitions for the REST Client

Implements the Result/Either monad used by every public operation, plus the
small immutable value types shared by all layers (credentials, HTTP verbs).

Design Principles:
- Faults are returned, not raised, at the public surface (Result)
- Credentials are immutable and never rendered in logs
- Everything here is a pure value: no I/O, no hidden state
"""

from __future__ import annotations

import os
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Any,
    Callable,
    ClassVar,
    Generic,
    Literal,
    Optional,
    TypeVar,
    Union,
)

# =============================================================================
# TYPE VARIABLES FOR GENERIC CONTAINERS
# =============================================================================
T = TypeVar("T")  # Success type
E = TypeVar("E")  # Error type
U = TypeVar("U")  # Transform result type


# =============================================================================
# RESULT MONAD
# =============================================================================
@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """
    Success variant of Result monad.

    Immutable container for a typed operation result.
    """

    value: T

    def is_ok(self) -> Literal[True]:
        return True

    def is_err(self) -> Literal[False]:
        return False

    def unwrap(self) -> T:
        """Extract value. Safe to call after is_ok() check."""
        return self.value

    def unwrap_or(self, default: T) -> T:
        """Return value, ignoring default."""
        return self.value

    def map(self, fn: Callable[[T], U]) -> Ok[U]:
        """Apply transformation to success value."""
        return Ok(fn(self.value))

    def flat_map(self, fn: Callable[[T], Result[U, E]]) -> Result[U, E]:
        """Monadic bind for chaining fallible operations."""
        return fn(self.value)

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """
    Failure variant of Result monad.

    Carries the fault object produced by the failing layer. Faults in this
    library are exceptions, so `unwrap()` re-raises them unchanged and
    callers can opt back into exception flow with a single call.
    """

    error: E

    def is_ok(self) -> Literal[False]:
        return False

    def is_err(self) -> Literal[True]:
        return True

    def unwrap(self) -> Any:
        """
        Attempting to unwrap an error re-raises it.

        Raises:
            The carried error if it is an exception, RuntimeError otherwise.
        """
        if isinstance(self.error, BaseException):
            raise self.error
        raise RuntimeError(f"Called unwrap() on Err: {self.error}")

    def unwrap_or(self, default: T) -> T:
        """Return default value on error."""
        return default

    def map(self, fn: Callable[[Any], U]) -> Err[E]:
        """No-op on error variant - propagates error unchanged."""
        return self

    def flat_map(self, fn: Callable[[Any], Result[U, E]]) -> Err[E]:
        """Propagate error through monadic chain."""
        return self

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


# Union type for pattern matching
Result = Union[Ok[T], Err[E]]


# =============================================================================
# HTTP METHOD
# =============================================================================
class HTTPMethod(str, Enum):
    """HTTP verbs used by the service APIs."""

    GET = "GET"
    PUT = "PUT"
    POST = "POST"
    DELETE = "DELETE"
    HEAD = "HEAD"


# =============================================================================
# CREDENTIALS
# =============================================================================
@dataclass(frozen=True, slots=True)
class Credentials:
    """
    Access key pair used to sign every request.

    Owned by a connection for its lifetime and reused across calls.
    The secret never appears in repr() output.

    Attributes:
        access_key_id: Public key identifier sent with each request.
        secret_access_key: Shared secret used as the HMAC key.
        session_token: Optional temporary-credential token.
    """

    access_key_id: str
    secret_access_key: str = field(repr=False)
    session_token: Optional[str] = field(default=None, repr=False)

    def validate(self) -> Result[None, str]:
        """Reject empty key material."""
        if not self.access_key_id:
            return Err("access_key_id must be non-empty")
        if not self.secret_access_key:
            return Err("secret_access_key must be non-empty")
        return Ok(None)

    @classmethod
    def from_env(cls) -> Result[Credentials, str]:
        """
        Load credentials from the process environment.

        Reads AWS_ACCESS_KEY_ID (falling back to AWS_ACCESS_KEY),
        AWS_SECRET_ACCESS_KEY and the optional AWS_SESSION_TOKEN.
        """
        access_key = os.getenv("AWS_ACCESS_KEY_ID") or os.getenv("AWS_ACCESS_KEY")
        secret_key = os.getenv("AWS_SECRET_ACCESS_KEY")
        if not access_key or not secret_key:
            return Err(
                "Environment variables AWS_ACCESS_KEY_ID (or AWS_ACCESS_KEY) "
                "and AWS_SECRET_ACCESS_KEY must be set"
            )
        return Ok(cls(
            access_key_id=access_key,
            secret_access_key=secret_key,
            session_token=os.getenv("AWS_SESSION_TOKEN") or None,
        ))


# =============================================================================
# TIMESTAMP
# =============================================================================
@dataclass(frozen=True, slots=True, order=True)
class Timestamp:
    """
    Nanosecond wall-clock timestamp used to stamp faults.

    Request signing takes an explicit datetime instead; this type only
    orders and correlates error records.
    """

    nanos: int

    NANOS_PER_SECOND: ClassVar[int] = 1_000_000_000

    @classmethod
    def now(cls) -> Timestamp:
        return cls(nanos=time.time_ns())

    @property
    def seconds(self) -> float:
        return self.nanos / self.NANOS_PER_SECOND

    def __repr__(self) -> str:
        return f"Timestamp({self.nanos}ns)"
