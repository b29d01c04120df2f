"""
Fault Taxonomy for the REST Client

Three orthogonal fault families, matching the three places a call can fail:

1. Construction faults: malformed input detected before any network I/O
   (empty names, unseekable stream with unknown size). Never retried.
2. Transport faults: connection failure, timeout, protocol error. Retried
   by the transport for idempotent requests, surfaced after exhaustion.
3. Service faults: a non-success status answered by the service, carrying
   the service error code, message and request id. One variant per
   operation so callers can tell which call failed by type alone.

Each fault includes:
- Unique error code for programmatic handling
- Human-readable message that names the operation and resource
- Context dict with everything needed to log it without a second lookup
- Optional cause for the underlying library exception

Usage:
    result = await s3.get("bucket", "key")
    match result:
        case Ok(value):
            process(value)
        case Err(GetFault() as fault) if fault.is_not_found:
            handle_missing(fault.request_id)
        case Err(TransportFault() as fault):
            handle_network(fault)
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Optional
from uuid import uuid4

from awsrest.core.types import Timestamp


# =============================================================================
# ERROR CODE ENUMERATION
# =============================================================================
class ErrorCode(Enum):
    """
    Unique error codes for programmatic error handling.

    Codes are grouped by layer:
    - 1xxx: Construction (request building, signing)
    - 2xxx: Transport
    - 3xxx: Service-reported
    """

    # Construction errors (1xxx)
    CONSTRUCTION_INVALID_NAME = 1001
    CONSTRUCTION_MALFORMED_PATH = 1002
    CONSTRUCTION_SIZE_UNKNOWN = 1003
    CONSTRUCTION_INVALID_ARGUMENT = 1004
    CONSTRUCTION_FACTORY_CLOSED = 1005

    # Transport errors (2xxx)
    TRANSPORT_CONNECTION_FAILED = 2001
    TRANSPORT_TIMEOUT = 2002
    TRANSPORT_PROTOCOL_ERROR = 2003
    TRANSPORT_RETRY_EXHAUSTED = 2004
    TRANSPORT_CLOSED = 2005

    # Service errors (3xxx)
    SERVICE_BAD_REQUEST = 3001
    SERVICE_ACCESS_DENIED = 3002
    SERVICE_NOT_FOUND = 3003
    SERVICE_CONFLICT = 3004
    SERVICE_PRECONDITION_FAILED = 3005
    SERVICE_UNAVAILABLE = 3006
    SERVICE_ERROR = 3007
    SERVICE_MALFORMED_RESPONSE = 3008
    SERVICE_INTEGRITY_MISMATCH = 3009


# Service codes that mean "the thing you addressed does not exist"
NOT_FOUND_CODES: frozenset[str] = frozenset({
    "NoSuchKey",
    "NoSuchBucket",
    "NotFound",
    "AWS.SimpleQueueService.NonExistentQueue",
    "QueueDoesNotExist",
})


# =============================================================================
# BASE ERROR CLASS
# =============================================================================
@dataclass
class AWSError(Exception):
    """
    Base class for all library faults.

    Provides common infrastructure for error handling:
    - Unique error ID for log correlation
    - Error code for programmatic handling
    - Timestamp of creation
    - Cause for root cause analysis
    """

    code: ErrorCode
    message: str
    error_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: Timestamp = field(default_factory=Timestamp.now)
    cause: Optional[BaseException] = None
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Initialize Exception base class with message
        super().__init__(self.message)

    def with_context(self, **kwargs: Any) -> AWSError:
        """Add context to error (returns new instance of the same type)."""
        return dataclasses.replace(self, context={**self.context, **kwargs})

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize error to dictionary for structured logging.

        Excludes the cause's traceback; the cause is rendered as text.
        """
        data = {
            "error_id": self.error_id,
            "error_type": type(self).__name__,
            "code": self.code.name,
            "code_value": self.code.value,
            "message": self.message,
            "timestamp_nanos": self.timestamp.nanos,
            "context": self.context,
        }
        if self.cause is not None:
            data["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return data

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.message} (id={self.error_id[:8]})"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"code={self.code.name}, "
            f"message={self.message!r}, "
            f"error_id={self.error_id!r})"
        )


# =============================================================================
# CONSTRUCTION FAULTS
# =============================================================================
@dataclass
class ConstructionError(AWSError):
    """
    Malformed input detected before any network I/O.

    Always fatal to the call; never retried.
    """

    @classmethod
    def invalid_name(cls, kind: str, value: Any, reason: str) -> ConstructionError:
        """A bucket, key or queue name failed validation."""
        return cls(
            code=ErrorCode.CONSTRUCTION_INVALID_NAME,
            message=f"Invalid {kind} name {str(value)[:100]!r}: {reason}",
            context={"kind": kind, "value": str(value)[:100], "reason": reason},
        )

    @classmethod
    def malformed_path(cls, path: str, reason: str) -> ConstructionError:
        """Resource path cannot be signed."""
        return cls(
            code=ErrorCode.CONSTRUCTION_MALFORMED_PATH,
            message=f"Malformed resource path {path[:100]!r}: {reason}",
            context={"path": path[:100], "reason": reason},
        )

    @classmethod
    def invalid_argument(cls, name: str, value: Any, reason: str) -> ConstructionError:
        """An operation argument is out of range or of the wrong kind."""
        return cls(
            code=ErrorCode.CONSTRUCTION_INVALID_ARGUMENT,
            message=f"Invalid argument '{name}': {reason}",
            context={"argument": name, "value": str(value)[:100], "reason": reason},
        )

    @classmethod
    def factory_closed(cls, service: str) -> ConstructionError:
        """Connection requested from a factory that was already shut down."""
        return cls(
            code=ErrorCode.CONSTRUCTION_FACTORY_CLOSED,
            message=f"Cannot create {service} connection: factory is shut down",
            context={"service": service},
        )


@dataclass
class SizeUnknownError(ConstructionError):
    """Stream body has no explicit size and cannot be measured by seeking."""

    @classmethod
    def unseekable(
        cls,
        bucket: str,
        key: str,
        cause: Optional[BaseException] = None,
    ) -> SizeUnknownError:
        return cls(
            code=ErrorCode.CONSTRUCTION_SIZE_UNKNOWN,
            message=(
                f"Cannot determine size of stream for {bucket}/{key}: "
                "stream is not seekable and no size was given"
            ),
            cause=cause,
            context={"bucket": bucket, "key": key},
        )


# =============================================================================
# TRANSPORT FAULTS
# =============================================================================
@dataclass
class TransportFault(AWSError):
    """
    Connectivity, timeout or protocol failure.

    Orthogonal to service faults: the service never answered, or answered
    with something that is not HTTP.
    """

    @classmethod
    def connection_failed(
        cls,
        operation: str,
        url: str,
        cause: Optional[BaseException] = None,
    ) -> TransportFault:
        return cls(
            code=ErrorCode.TRANSPORT_CONNECTION_FAILED,
            message=f"{operation}: connection to {url} failed: {cause}",
            cause=cause,
            context={"operation": operation, "url": url},
        )

    @classmethod
    def timeout(
        cls,
        operation: str,
        url: str,
        timeout_s: float,
        cause: Optional[BaseException] = None,
    ) -> TransportFault:
        return cls(
            code=ErrorCode.TRANSPORT_TIMEOUT,
            message=f"{operation}: request to {url} timed out after {timeout_s}s",
            cause=cause,
            context={"operation": operation, "url": url, "timeout_s": timeout_s},
        )

    @classmethod
    def protocol_error(
        cls,
        operation: str,
        url: str,
        cause: Optional[BaseException] = None,
    ) -> TransportFault:
        return cls(
            code=ErrorCode.TRANSPORT_PROTOCOL_ERROR,
            message=f"{operation}: protocol error talking to {url}: {cause}",
            cause=cause,
            context={"operation": operation, "url": url},
        )

    @classmethod
    def retry_exhausted(
        cls,
        operation: str,
        attempts: int,
        last_error: AWSError,
    ) -> TransportFault:
        """All retry attempts failed at the transport level."""
        return cls(
            code=last_error.code,
            message=f"{operation}: giving up after {attempts} attempts: {last_error.message}",
            cause=last_error.cause,
            context={**last_error.context, "attempts": attempts},
        )

    @classmethod
    def closed(cls, operation: str) -> TransportFault:
        """Request issued after the transport was shut down."""
        return cls(
            code=ErrorCode.TRANSPORT_CLOSED,
            message=f"{operation}: transport is closed",
            context={"operation": operation},
        )

    @property
    def is_timeout(self) -> bool:
        return self.code == ErrorCode.TRANSPORT_TIMEOUT


# =============================================================================
# SERVICE FAULTS
# =============================================================================
def _code_for_status(status: int) -> ErrorCode:
    """Map an HTTP status to the closest error code."""
    if status == 404:
        return ErrorCode.SERVICE_NOT_FOUND
    if status in (401, 403):
        return ErrorCode.SERVICE_ACCESS_DENIED
    if status == 409:
        return ErrorCode.SERVICE_CONFLICT
    if status == 412:
        return ErrorCode.SERVICE_PRECONDITION_FAILED
    if status == 503:
        return ErrorCode.SERVICE_UNAVAILABLE
    if 400 <= status < 500:
        return ErrorCode.SERVICE_BAD_REQUEST
    return ErrorCode.SERVICE_ERROR


@dataclass
class ServiceFault(AWSError):
    """
    Non-success answer from the service.

    Concrete subclasses name the failing operation; the fields carry the
    service's own diagnosis.

    Attributes:
        status: HTTP status code.
        service_code: Service error code (e.g. "NoSuchKey"), if reported.
        request_id: Correlation id echoed by the service, if any.
        resource: Bucket/key or queue the call addressed.
    """

    status: int = 0
    service_code: Optional[str] = None
    request_id: Optional[str] = None
    resource: Optional[str] = None

    operation: ClassVar[str] = "Request"

    @classmethod
    def from_response(
        cls,
        *,
        status: int,
        reason: str = "",
        service_code: Optional[str] = None,
        service_message: Optional[str] = None,
        request_id: Optional[str] = None,
        resource: Optional[str] = None,
        host_id: Optional[str] = None,
    ) -> ServiceFault:
        """Build the fault from the decoded pieces of an error response."""
        detail = service_message or reason or "no message"
        label = service_code or f"HTTP {status}"
        return cls(
            code=_code_for_status(status),
            message=f"{cls.operation} failed for {resource or '/'}: {label}: {detail}",
            status=status,
            service_code=service_code,
            request_id=request_id,
            resource=resource,
            context={
                "operation": cls.operation,
                "resource": resource,
                "status": status,
                "service_code": service_code,
                "request_id": request_id,
                "host_id": host_id,
            },
        )

    @classmethod
    def malformed_response(
        cls,
        *,
        status: int,
        resource: Optional[str],
        request_id: Optional[str],
        reason: str,
    ) -> ServiceFault:
        """Success status but a body that cannot be decoded."""
        return cls(
            code=ErrorCode.SERVICE_MALFORMED_RESPONSE,
            message=f"{cls.operation} returned an undecodable response for {resource or '/'}: {reason}",
            status=status,
            request_id=request_id,
            resource=resource,
            context={
                "operation": cls.operation,
                "resource": resource,
                "status": status,
                "request_id": request_id,
                "reason": reason,
            },
        )

    @classmethod
    def integrity_mismatch(
        cls,
        *,
        resource: Optional[str],
        request_id: Optional[str],
        expected: str,
        actual: str,
    ) -> ServiceFault:
        """Checksum echoed by the service does not match what was sent."""
        return cls(
            code=ErrorCode.SERVICE_INTEGRITY_MISMATCH,
            message=f"{cls.operation} checksum mismatch for {resource or '/'}: sent {expected}, service saw {actual}",
            status=200,
            request_id=request_id,
            resource=resource,
            context={
                "operation": cls.operation,
                "resource": resource,
                "request_id": request_id,
                "expected": expected,
                "actual": actual,
            },
        )

    @property
    def is_not_found(self) -> bool:
        return self.status == 404 or (self.service_code or "") in NOT_FOUND_CODES

    @property
    def is_access_denied(self) -> bool:
        return self.status in (401, 403)


# --- S3 operation faults -----------------------------------------------------

@dataclass
class CreateBucketFault(ServiceFault):
    operation: ClassVar[str] = "CreateBucket"


@dataclass
class ListAllBucketsFault(ServiceFault):
    operation: ClassVar[str] = "ListAllBuckets"


@dataclass
class DeleteBucketFault(ServiceFault):
    operation: ClassVar[str] = "DeleteBucket"


@dataclass
class ListBucketFault(ServiceFault):
    operation: ClassVar[str] = "ListBucket"


@dataclass
class PutFault(ServiceFault):
    operation: ClassVar[str] = "Put"


@dataclass
class GetFault(ServiceFault):
    operation: ClassVar[str] = "Get"


@dataclass
class DeleteFault(ServiceFault):
    operation: ClassVar[str] = "Delete"


@dataclass
class HeadFault(ServiceFault):
    operation: ClassVar[str] = "Head"


# --- SQS operation faults ----------------------------------------------------

@dataclass
class CreateQueueFault(ServiceFault):
    operation: ClassVar[str] = "CreateQueue"


@dataclass
class ListQueuesFault(ServiceFault):
    operation: ClassVar[str] = "ListQueues"


@dataclass
class DeleteQueueFault(ServiceFault):
    operation: ClassVar[str] = "DeleteQueue"


@dataclass
class SendMessageFault(ServiceFault):
    operation: ClassVar[str] = "SendMessage"


@dataclass
class ReceiveMessageFault(ServiceFault):
    operation: ClassVar[str] = "ReceiveMessage"


@dataclass
class DeleteMessageFault(ServiceFault):
    operation: ClassVar[str] = "DeleteMessage"


@dataclass
class GetQueueAttributesFault(ServiceFault):
    operation: ClassVar[str] = "GetQueueAttributes"
