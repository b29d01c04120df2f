"""
Request Builder: Operation Parameters → Transport-Level Request

Turns one logical operation (create bucket, put object, send message, ...)
into an `OperationRequest`: method, resource path, query parameters,
headers and a body source. Nothing here touches the network; all input
validation happens here so malformed calls fail before any I/O.

Body Model:
-----------
A body is one of three variants:

| Variant     | Length                      | Replayable on retry        |
|-------------|-----------------------------|----------------------------|
| EmptyBody   | 0                           | yes                        |
| BytesBody   | len(data)                   | yes                        |
| StreamBody  | explicit, or measured       | only if the stream seeks   |

A stream's size is either `KnownLength(n)` or `MeasureBySeeking()`. The
latter is resolved here, at build time, by seeking to the end and back;
a stream that cannot seek raises `SizeUnknownError` before anything is
signed or sent.

maxKeys Policy:
---------------
`max_keys=None` or a non-positive value omits the parameter so the service
applies its default page size (1000). Positive values are sent verbatim.
"""

from __future__ import annotations

import io
import re
from dataclasses import dataclass, field
from typing import BinaryIO, Mapping, Optional, Union
from urllib.parse import urlsplit

from awsrest.core import constants as C
from awsrest.core.errors import ConstructionError, SizeUnknownError
from awsrest.core.types import HTTPMethod


# =============================================================================
# SIZE HINTS
# =============================================================================
@dataclass(frozen=True, slots=True)
class KnownLength:
    """Caller-declared stream length in bytes."""

    value: int


@dataclass(frozen=True, slots=True)
class MeasureBySeeking:
    """Length is unknown; determine it by seeking the stream."""


SizeHint = Union[KnownLength, MeasureBySeeking]


# =============================================================================
# BODY VARIANTS
# =============================================================================
@dataclass(frozen=True, slots=True)
class EmptyBody:
    """No request payload."""

    @property
    def length(self) -> int:
        return 0

    @property
    def replayable(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class BytesBody:
    """In-memory payload."""

    data: bytes

    @property
    def length(self) -> int:
        return len(self.data)

    @property
    def replayable(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class StreamBody:
    """
    Payload read from a caller-owned stream.

    The stream is borrowed: exactly `length` bytes are read starting at
    `start`. When `start` is None the stream could not report its position
    and the body cannot be rewound for a retry.
    """

    stream: BinaryIO = field(repr=False)
    length: int
    start: Optional[int] = None

    @property
    def replayable(self) -> bool:
        return self.start is not None

    def rewind(self) -> None:
        """Return the stream to where the body starts."""
        if self.start is None:
            raise ValueError("stream body is not replayable")
        self.stream.seek(self.start)


Body = Union[EmptyBody, BytesBody, StreamBody]


# =============================================================================
# OPERATION REQUEST
# =============================================================================
@dataclass(frozen=True, slots=True)
class OperationRequest:
    """
    Unsigned request for one operation.

    Attributes:
        operation: Operation name (used in logs and faults).
        method: HTTP verb.
        path: Unencoded resource path, always starting with "/".
        resource: Human-readable resource label, e.g. "bucket/key".
        query: Query parameters; a None value is a bare flag ("?acl").
        headers: Request headers (excluding auth, date and length).
        body: Payload source.
        form: Form parameters for query-protocol services; encoded into the
              body at signing time because some schemes sign them.
        idempotent: Whether repeating the request is harmless.
    """

    operation: str
    method: HTTPMethod
    path: str
    resource: str
    query: Mapping[str, Optional[str]] = field(default_factory=dict)
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Body = EmptyBody()
    form: Optional[Mapping[str, str]] = None
    idempotent: bool = True


# =============================================================================
# STREAM MEASUREMENT
# =============================================================================
def measure_stream(stream: BinaryIO, bucket: str, key: str) -> tuple[int, int]:
    """
    Determine the remaining length of a stream by seeking.

    Seeks to the end and back to the original position, leaving the
    caller's stream where it found it.

    Returns:
        (start_offset, remaining_length)

    Raises:
        SizeUnknownError: If the stream cannot seek or tell.
    """
    seekable = getattr(stream, "seekable", None)
    if seekable is not None and not seekable():
        raise SizeUnknownError.unseekable(bucket, key)
    try:
        start = stream.tell()
        end = stream.seek(0, io.SEEK_END)
        stream.seek(start)
    except (AttributeError, OSError, ValueError) as e:
        raise SizeUnknownError.unseekable(bucket, key, cause=e) from e
    return start, max(0, end - start)


def _stream_position(stream: BinaryIO) -> Optional[int]:
    """Current offset, or None for streams that cannot report one."""
    seekable = getattr(stream, "seekable", None)
    if seekable is not None and not seekable():
        return None
    try:
        return stream.tell()
    except (AttributeError, OSError, ValueError):
        return None


# =============================================================================
# VALIDATION
# =============================================================================
_QUEUE_NAME_RE = re.compile(r"^[A-Za-z0-9_-]+(\.fifo)?$")
_REGION_RE = re.compile(r"[a-z0-9]+(-[a-z0-9]+)*")


def validate_bucket_name(bucket: str) -> None:
    if not bucket:
        raise ConstructionError.invalid_name("bucket", bucket, "must be non-empty")
    if "/" in bucket:
        raise ConstructionError.invalid_name("bucket", bucket, "must not contain '/'")
    if not C.BUCKET_NAME_MIN <= len(bucket) <= C.BUCKET_NAME_MAX:
        raise ConstructionError.invalid_name(
            "bucket",
            bucket,
            f"length must be between {C.BUCKET_NAME_MIN} and {C.BUCKET_NAME_MAX}",
        )


def validate_key(key: str) -> None:
    if not key:
        raise ConstructionError.invalid_name("key", key, "must be non-empty")
    if len(key.encode("utf-8")) > C.OBJECT_KEY_MAX_BYTES:
        raise ConstructionError.invalid_name(
            "key", key, f"must be at most {C.OBJECT_KEY_MAX_BYTES} bytes in UTF-8",
        )


def validate_queue_name(name: str) -> None:
    if not name:
        raise ConstructionError.invalid_name("queue", name, "must be non-empty")
    if len(name) > C.QUEUE_NAME_MAX:
        raise ConstructionError.invalid_name(
            "queue", name, f"must be at most {C.QUEUE_NAME_MAX} characters",
        )
    if not _QUEUE_NAME_RE.match(name):
        raise ConstructionError.invalid_name(
            "queue", name, "only alphanumerics, '-' and '_' are allowed",
        )


def validate_region(region: str) -> None:
    if not _REGION_RE.fullmatch(region):
        raise ConstructionError.invalid_argument(
            "region", region, "expected lower-case letters, digits and '-' (e.g. eu-west-1)",
        )


def queue_path(queue_url: str) -> str:
    """Resource path of a queue URL, e.g. "/123456789012/my-queue"."""
    if not queue_url:
        raise ConstructionError.invalid_name("queue URL", queue_url, "must be non-empty")
    parts = urlsplit(queue_url)
    if not parts.scheme or not parts.netloc or parts.path in ("", "/"):
        raise ConstructionError.invalid_name(
            "queue URL", queue_url, "expected scheme://host/account/queue",
        )
    return parts.path


def normalize_etag(etag: str) -> str:
    """Quote a bare entity tag the way the service emits it."""
    etag = etag.strip()
    if etag.startswith('"') or etag.startswith("W/"):
        return etag
    return f'"{etag}"'


# =============================================================================
# S3 REQUEST BUILDER
# =============================================================================
class S3RequestBuilder:
    """
    Builds object-storage requests with path-style addressing.

    Every method validates its names and returns an `OperationRequest`,
    or raises `ConstructionError` (never touching the network).
    """

    def create_bucket(self, bucket: str, region: Optional[str] = None) -> OperationRequest:
        validate_bucket_name(bucket)
        body: Body = EmptyBody()
        headers: dict[str, str] = {}
        if region and region != C.DEFAULT_REGION:
            validate_region(region)
            xml = (
                '<CreateBucketConfiguration xmlns="http://s3.amazonaws.com/doc/2006-03-01/">'
                f"<LocationConstraint>{region}</LocationConstraint>"
                "</CreateBucketConfiguration>"
            ).encode("utf-8")
            body = BytesBody(xml)
            headers["Content-Type"] = "application/xml"
        return OperationRequest(
            operation="CreateBucket",
            method=HTTPMethod.PUT,
            path=f"/{bucket}",
            resource=bucket,
            headers=headers,
            body=body,
            idempotent=True,
        )

    def list_all_buckets(self) -> OperationRequest:
        return OperationRequest(
            operation="ListAllBuckets",
            method=HTTPMethod.GET,
            path="/",
            resource="/",
        )

    def delete_bucket(self, bucket: str) -> OperationRequest:
        validate_bucket_name(bucket)
        return OperationRequest(
            operation="DeleteBucket",
            method=HTTPMethod.DELETE,
            path=f"/{bucket}",
            resource=bucket,
        )

    def list_bucket(
        self,
        bucket: str,
        prefix: str = "",
        marker: str = "",
        max_keys: Optional[int] = None,
        delimiter: Optional[str] = None,
    ) -> OperationRequest:
        validate_bucket_name(bucket)
        if max_keys is not None and not isinstance(max_keys, int):
            raise ConstructionError.invalid_argument(
                "max_keys", max_keys, "must be an integer or None",
            )
        query: dict[str, Optional[str]] = {}
        if prefix:
            query["prefix"] = prefix
        if marker:
            query["marker"] = marker
        if delimiter:
            query["delimiter"] = delimiter
        if max_keys is not None and max_keys > 0:
            query["max-keys"] = str(max_keys)
        return OperationRequest(
            operation="ListBucket",
            method=HTTPMethod.GET,
            path=f"/{bucket}",
            resource=bucket,
            query=query,
        )

    def put(
        self,
        bucket: str,
        key: str,
        data: Union[bytes, bytearray, memoryview, BinaryIO],
        content_type: str = C.DEFAULT_CONTENT_TYPE,
        size: Optional[SizeHint] = None,
        metadata: Optional[Mapping[str, str]] = None,
    ) -> OperationRequest:
        """
        Build a put request.

        Args:
            data: In-memory bytes or a readable binary stream.
            size: For streams, `KnownLength(n)` or `MeasureBySeeking()`
                  (the default when None). Ignored for bytes.
            metadata: User metadata sent as x-amz-meta-* headers.

        Raises:
            SizeUnknownError: Stream without size that cannot seek.
            ConstructionError: A seekable stream holds fewer bytes than
                `KnownLength` declares.
        """
        validate_bucket_name(bucket)
        validate_key(key)

        body: Body
        if isinstance(data, (bytes, bytearray, memoryview)):
            body = BytesBody(bytes(data))
        elif hasattr(data, "read"):
            if isinstance(size, KnownLength):
                if size.value < 0:
                    raise ConstructionError.invalid_argument(
                        "size", size.value, "must be >= 0",
                    )
                start = _stream_position(data)
                if start is not None:
                    _, available = measure_stream(data, bucket, key)
                    if available < size.value:
                        raise ConstructionError.invalid_argument(
                            "size",
                            size.value,
                            f"stream holds only {available} bytes",
                        )
                body = StreamBody(data, size.value, start)
            else:
                start, length = measure_stream(data, bucket, key)
                body = StreamBody(data, length, start)
        else:
            raise ConstructionError.invalid_argument(
                "data", type(data).__name__, "expected bytes or a readable binary stream",
            )

        headers = {"Content-Type": content_type or C.DEFAULT_CONTENT_TYPE}
        for name, value in (metadata or {}).items():
            if not name:
                raise ConstructionError.invalid_argument("metadata", name, "empty header name")
            headers[f"{C.HEADER_META_PREFIX}{name.lower()}"] = value

        return OperationRequest(
            operation="Put",
            method=HTTPMethod.PUT,
            path=f"/{bucket}/{key}",
            resource=f"{bucket}/{key}",
            headers=headers,
            body=body,
            idempotent=body.replayable,
        )

    def get(self, bucket: str, key: str, old_etag: Optional[str] = None) -> OperationRequest:
        validate_bucket_name(bucket)
        validate_key(key)
        headers: dict[str, str] = {}
        if old_etag:
            headers["If-None-Match"] = normalize_etag(old_etag)
        return OperationRequest(
            operation="Get",
            method=HTTPMethod.GET,
            path=f"/{bucket}/{key}",
            resource=f"{bucket}/{key}",
            headers=headers,
        )

    def delete(self, bucket: str, key: str) -> OperationRequest:
        validate_bucket_name(bucket)
        validate_key(key)
        return OperationRequest(
            operation="Delete",
            method=HTTPMethod.DELETE,
            path=f"/{bucket}/{key}",
            resource=f"{bucket}/{key}",
        )

    def head(self, bucket: str, key: str) -> OperationRequest:
        validate_bucket_name(bucket)
        validate_key(key)
        return OperationRequest(
            operation="Head",
            method=HTTPMethod.HEAD,
            path=f"/{bucket}/{key}",
            resource=f"{bucket}/{key}",
        )


# =============================================================================
# SQS REQUEST BUILDER
# =============================================================================
class SQSRequestBuilder:
    """
    Builds message-queue requests for the form-encoded query protocol.

    Parameters travel in a POST form so large message bodies never end up
    in the URL.
    """

    def __init__(self, api_version: str = C.SQS_API_VERSION) -> None:
        self._api_version = api_version

    def _request(
        self,
        action: str,
        path: str,
        resource: str,
        params: Mapping[str, str],
        idempotent: bool,
    ) -> OperationRequest:
        form = {"Action": action, "Version": self._api_version, **params}
        return OperationRequest(
            operation=action,
            method=HTTPMethod.POST,
            path=path,
            resource=resource,
            headers={"Content-Type": "application/x-www-form-urlencoded; charset=utf-8"},
            form=form,
            idempotent=idempotent,
        )

    def create_queue(
        self,
        name: str,
        default_visibility_timeout: Optional[int] = None,
    ) -> OperationRequest:
        validate_queue_name(name)
        params = {"QueueName": name}
        if default_visibility_timeout is not None:
            if default_visibility_timeout < 0:
                raise ConstructionError.invalid_argument(
                    "default_visibility_timeout", default_visibility_timeout, "must be >= 0",
                )
            params["Attribute.1.Name"] = "VisibilityTimeout"
            params["Attribute.1.Value"] = str(default_visibility_timeout)
        return self._request("CreateQueue", "/", name, params, idempotent=True)

    def list_queues(self, prefix: str = "") -> OperationRequest:
        params = {"QueueNamePrefix": prefix} if prefix else {}
        return self._request("ListQueues", "/", prefix or "/", params, idempotent=True)

    def delete_queue(self, queue_url: str) -> OperationRequest:
        return self._request(
            "DeleteQueue", queue_path(queue_url), queue_url, {}, idempotent=True,
        )

    def send_message(self, queue_url: str, body: str) -> OperationRequest:
        path = queue_path(queue_url)
        if not body:
            raise ConstructionError.invalid_argument("body", body, "message body must be non-empty")
        return self._request(
            "SendMessage", path, queue_url, {"MessageBody": body}, idempotent=False,
        )

    def receive_message(
        self,
        queue_url: str,
        max_messages: int = 1,
        visibility_timeout: Optional[int] = None,
    ) -> OperationRequest:
        path = queue_path(queue_url)
        if not 1 <= max_messages <= C.SQS_MAX_RECEIVE:
            raise ConstructionError.invalid_argument(
                "max_messages", max_messages, f"must be between 1 and {C.SQS_MAX_RECEIVE}",
            )
        params = {
            "MaxNumberOfMessages": str(max_messages),
            "AttributeName.1": "All",
        }
        if visibility_timeout is not None:
            params["VisibilityTimeout"] = str(visibility_timeout)
        # Receiving changes message visibility; a retry could hide a second batch.
        return self._request("ReceiveMessage", path, queue_url, params, idempotent=False)

    def delete_message(self, queue_url: str, receipt_handle: str) -> OperationRequest:
        path = queue_path(queue_url)
        if not receipt_handle:
            raise ConstructionError.invalid_argument(
                "receipt_handle", receipt_handle, "must be non-empty",
            )
        return self._request(
            "DeleteMessage", path, queue_url, {"ReceiptHandle": receipt_handle}, idempotent=True,
        )

    def get_queue_attributes(
        self,
        queue_url: str,
        names: tuple[str, ...] = ("All",),
    ) -> OperationRequest:
        path = queue_path(queue_url)
        params = {f"AttributeName.{i}": name for i, name in enumerate(names, start=1)}
        return self._request(
            "GetQueueAttributes", path, queue_url, params, idempotent=True,
        )
