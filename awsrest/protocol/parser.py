"""
Response Parser: Raw Response → Typed Result or Service Fault

Status first, then headers, then body:
- 2xx decodes into the operation's result type.
- 304 on a conditional get is a success: the caller's copy is current.
- Anything else becomes the operation's fault, with the service code,
  message and request id taken from the XML error document when there is
  one, and from the status line and headers otherwise.

XML handling is namespace-agnostic: `{namespace}Tag` is reduced to `Tag`
before any lookup, so documents with and without the S3 2006-03-01 or SQS
namespaces decode the same way.

Decoding never raises. A success status whose body cannot be decoded
becomes a `malformed_response` fault; a checksum the service echoes that
does not match what was sent becomes an `integrity_mismatch` fault.
"""

from __future__ import annotations

import hashlib
import logging
import xml.etree.ElementTree as ET
from datetime import datetime
from email.utils import parsedate_to_datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional

from awsrest.core import constants as C
from awsrest.core.errors import (
    CreateBucketFault,
    CreateQueueFault,
    DeleteBucketFault,
    DeleteFault,
    DeleteMessageFault,
    DeleteQueueFault,
    GetFault,
    GetQueueAttributesFault,
    HeadFault,
    ListAllBucketsFault,
    ListBucketFault,
    ListQueuesFault,
    PutFault,
    ReceiveMessageFault,
    SendMessageFault,
    ServiceFault,
)
from awsrest.core.types import Err, Ok, Result
from awsrest.protocol.results import (
    Bucket,
    CreateBucketResult,
    CreateQueueResult,
    DeleteBucketResult,
    DeleteMessageResult,
    DeleteQueueResult,
    DeleteResult,
    GetQueueAttributesResult,
    GetResult,
    HeadResult,
    ListAllBucketsResult,
    ListBucketResult,
    ListQueuesResult,
    Message,
    ObjectEntry,
    ObjectInfo,
    Owner,
    PutResult,
    ReceiveMessageResult,
    SendMessageResult,
)
from awsrest.protocol.transport import RawResponse

logger = logging.getLogger(__name__)


class MalformedDocument(ValueError):
    """A success body is missing a required element."""


# =============================================================================
# OPERATION KINDS
# =============================================================================
class OperationKind(Enum):
    """Every operation the parser can decode, with the fault it reports."""

    CREATE_BUCKET = ("CreateBucket", CreateBucketFault)
    LIST_ALL_BUCKETS = ("ListAllBuckets", ListAllBucketsFault)
    DELETE_BUCKET = ("DeleteBucket", DeleteBucketFault)
    LIST_BUCKET = ("ListBucket", ListBucketFault)
    PUT = ("Put", PutFault)
    GET = ("Get", GetFault)
    DELETE = ("Delete", DeleteFault)
    HEAD = ("Head", HeadFault)

    CREATE_QUEUE = ("CreateQueue", CreateQueueFault)
    LIST_QUEUES = ("ListQueues", ListQueuesFault)
    DELETE_QUEUE = ("DeleteQueue", DeleteQueueFault)
    SEND_MESSAGE = ("SendMessage", SendMessageFault)
    RECEIVE_MESSAGE = ("ReceiveMessage", ReceiveMessageFault)
    DELETE_MESSAGE = ("DeleteMessage", DeleteMessageFault)
    GET_QUEUE_ATTRIBUTES = ("GetQueueAttributes", GetQueueAttributesFault)

    def __init__(self, operation: str, fault: type[ServiceFault]) -> None:
        self.operation = operation
        self.fault = fault


# =============================================================================
# XML HELPERS
# =============================================================================
def parse_xml(body: bytes) -> ET.Element:
    """Parse a document and strip namespaces from every tag."""
    root = ET.fromstring(body)
    for element in root.iter():
        if isinstance(element.tag, str) and element.tag.startswith("{"):
            element.tag = element.tag.split("}", 1)[1]
    return root


def _text(element: Optional[ET.Element], path: str) -> Optional[str]:
    if element is None:
        return None
    found = element.find(path)
    if found is None:
        return None
    return found.text or ""


def _required(element: ET.Element, path: str) -> str:
    value = _text(element, path)
    if value is None:
        raise MalformedDocument(f"missing <{path}> in <{element.tag}>")
    return value


def _int(value: Optional[str]) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


def _bool(value: Optional[str]) -> bool:
    return (value or "").strip().lower() == "true"


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """ISO 8601 timestamp as used in listings, e.g. 2009-10-12T17:50:30.000Z."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        logger.debug(f"Unparseable timestamp {value!r}")
        return None


def parse_http_datetime(value: Optional[str]) -> Optional[datetime]:
    """RFC 1123 header date, e.g. Wed, 12 Oct 2009 17:50:00 GMT."""
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.debug(f"Unparseable header date {value!r}")
        return None


def md5_hex(text: str) -> str:
    return hashlib.md5(text.encode("utf-8")).hexdigest()


# =============================================================================
# RESPONSE PARSER
# =============================================================================
class ResponseParser:
    """
    Stateless decoder shared by every connection.

    Example:
        >>> parser = ResponseParser()
        >>> result = parser.parse(OperationKind.HEAD, raw, resource="b/k",
        ...                       bucket="b", key="k")
        >>> result.unwrap().info.content_length
        42
    """

    def parse(
        self,
        kind: OperationKind,
        raw: RawResponse,
        *,
        resource: str,
        bucket: str = "",
        key: str = "",
        sent_body: Optional[str] = None,
    ) -> Result[Any, ServiceFault]:
        """
        Decode `raw` as the response to `kind`.

        Args:
            kind: Operation the response answers.
            raw: Response as returned by the transport.
            resource: Resource label for faults ("bucket/key", queue URL).
            bucket: Bucket name echoed into object-storage results.
            key: Object key echoed into object-storage results.
            sent_body: Message body sent, for checksum verification.
        """
        if raw.status == 304 and kind is OperationKind.GET:
            return Ok(GetResult(
                bucket=bucket,
                key=key,
                info=self.object_info(raw.headers),
                not_modified=True,
                request_id=raw.request_id,
            ))

        if not raw.ok:
            return Err(self.decode_error(kind, raw, resource))

        decoder = self._decoders()[kind]
        try:
            result = decoder(self, raw, bucket, key, resource)
        except (ET.ParseError, MalformedDocument, ValueError) as e:
            return Err(kind.fault.malformed_response(
                status=raw.status,
                resource=resource,
                request_id=raw.request_id,
                reason=str(e),
            ))

        if kind is OperationKind.SEND_MESSAGE and sent_body is not None:
            expected = md5_hex(sent_body)
            if result.md5_of_body.lower() != expected:
                return Err(kind.fault.integrity_mismatch(
                    resource=resource,
                    request_id=result.request_id,
                    expected=expected,
                    actual=result.md5_of_body,
                ))
        elif kind is OperationKind.RECEIVE_MESSAGE:
            for message in result.messages:
                actual = md5_hex(message.body)
                if message.md5_of_body and message.md5_of_body.lower() != actual:
                    return Err(kind.fault.integrity_mismatch(
                        resource=resource,
                        request_id=result.request_id,
                        expected=message.md5_of_body,
                        actual=actual,
                    ))
        return Ok(result)

    # -------------------------------------------------------------------------
    # ERRORS
    # -------------------------------------------------------------------------

    def decode_error(
        self,
        kind: OperationKind,
        raw: RawResponse,
        resource: str,
    ) -> ServiceFault:
        """
        Build the operation's fault from an error response.

        Understands both `<Error>` (object storage) and
        `<ErrorResponse><Error>` (message queue) documents; falls back to the
        status line when the body is empty (HEAD) or not XML.
        """
        service_code: Optional[str] = None
        service_message: Optional[str] = None
        request_id = raw.request_id
        host_id = raw.headers.get(C.HEADER_HOST_ID)

        if raw.body:
            try:
                root = parse_xml(raw.body)
            except ET.ParseError:
                logger.debug(f"{kind.operation}: error body for {resource} is not XML")
            else:
                error = root if root.tag == "Error" else root.find(".//Error")
                service_code = _text(error, "Code") or None
                service_message = _text(error, "Message") or None
                request_id = request_id or _text(root, ".//RequestId") or None
                host_id = host_id or _text(root, ".//HostId") or None

        return kind.fault.from_response(
            status=raw.status,
            reason=raw.reason,
            service_code=service_code,
            service_message=service_message,
            request_id=request_id,
            resource=resource,
            host_id=host_id,
        )

    # -------------------------------------------------------------------------
    # OBJECT STORAGE
    # -------------------------------------------------------------------------

    @staticmethod
    def object_info(headers: Mapping[str, str]) -> ObjectInfo:
        """Content length/type, ETag, Last-Modified and x-amz-meta-* headers."""
        user_metadata = {
            name.lower()[len(C.HEADER_META_PREFIX):]: value
            for name, value in headers.items()
            if name.lower().startswith(C.HEADER_META_PREFIX)
        }
        length = headers.get("Content-Length")
        return ObjectInfo(
            content_length=int(length) if length and length.isdigit() else None,
            content_type=headers.get("Content-Type"),
            etag=headers.get("ETag"),
            last_modified=parse_http_datetime(headers.get("Last-Modified")),
            user_metadata=MappingProxyType(user_metadata),
            version_id=headers.get("x-amz-version-id"),
        )

    def _create_bucket(self, raw: RawResponse, bucket: str, key: str, resource: str) -> CreateBucketResult:
        return CreateBucketResult(
            bucket=bucket,
            location=raw.headers.get("Location"),
            request_id=raw.request_id,
        )

    def _list_all_buckets(self, raw: RawResponse, bucket: str, key: str, resource: str) -> ListAllBucketsResult:
        root = parse_xml(raw.body)
        owner_el = root.find("Owner")
        owner = None
        if owner_el is not None:
            owner = Owner(
                id=_text(owner_el, "ID") or "",
                display_name=_text(owner_el, "DisplayName") or "",
            )
        buckets = tuple(
            Bucket(
                name=_required(el, "Name"),
                creation_date=parse_iso_datetime(_text(el, "CreationDate")),
            )
            for el in root.findall("Buckets/Bucket")
        )
        return ListAllBucketsResult(owner=owner, buckets=buckets, request_id=raw.request_id)

    def _delete_bucket(self, raw: RawResponse, bucket: str, key: str, resource: str) -> DeleteBucketResult:
        return DeleteBucketResult(bucket=bucket, request_id=raw.request_id)

    def _list_bucket(self, raw: RawResponse, bucket: str, key: str, resource: str) -> ListBucketResult:
        root = parse_xml(raw.body)
        if root.tag != "ListBucketResult":
            raise MalformedDocument(f"expected <ListBucketResult>, got <{root.tag}>")

        entries = []
        for el in root.findall("Contents"):
            owner_el = el.find("Owner")
            entries.append(ObjectEntry(
                key=_required(el, "Key"),
                size=_int(_text(el, "Size")) or 0,
                last_modified=parse_iso_datetime(_text(el, "LastModified")),
                etag=_text(el, "ETag") or "",
                storage_class=_text(el, "StorageClass") or "",
                owner=Owner(
                    id=_text(owner_el, "ID") or "",
                    display_name=_text(owner_el, "DisplayName") or "",
                ) if owner_el is not None else None,
            ))
        prefixes = tuple(
            _text(el, "Prefix") or ""
            for el in root.findall("CommonPrefixes")
        )
        return ListBucketResult(
            bucket=_text(root, "Name") or bucket,
            prefix=_text(root, "Prefix") or "",
            marker=_text(root, "Marker") or "",
            next_marker=_text(root, "NextMarker") or None,
            delimiter=_text(root, "Delimiter") or None,
            max_keys=_int(_text(root, "MaxKeys")),
            is_truncated=_bool(_text(root, "IsTruncated")),
            entries=tuple(entries),
            common_prefixes=prefixes,
            request_id=raw.request_id,
        )

    def _put(self, raw: RawResponse, bucket: str, key: str, resource: str) -> PutResult:
        return PutResult(
            bucket=bucket,
            key=key,
            etag=raw.headers.get("ETag"),
            version_id=raw.headers.get("x-amz-version-id"),
            request_id=raw.request_id,
        )

    def _get(self, raw: RawResponse, bucket: str, key: str, resource: str) -> GetResult:
        return GetResult(
            bucket=bucket,
            key=key,
            info=self.object_info(raw.headers),
            data=raw.body,
            stream=raw.stream,
            request_id=raw.request_id,
        )

    def _head(self, raw: RawResponse, bucket: str, key: str, resource: str) -> HeadResult:
        return HeadResult(
            bucket=bucket,
            key=key,
            info=self.object_info(raw.headers),
            request_id=raw.request_id,
        )

    def _delete(self, raw: RawResponse, bucket: str, key: str, resource: str) -> DeleteResult:
        return DeleteResult(bucket=bucket, key=key, request_id=raw.request_id)

    # -------------------------------------------------------------------------
    # MESSAGE QUEUE
    # -------------------------------------------------------------------------

    @staticmethod
    def _queue_request_id(raw: RawResponse, root: Optional[ET.Element]) -> Optional[str]:
        return _text(root, "ResponseMetadata/RequestId") or raw.request_id

    @staticmethod
    def _attributes(root: ET.Element) -> Mapping[str, str]:
        return MappingProxyType({
            _required(el, "Name"): _text(el, "Value") or ""
            for el in root.findall("Attribute")
        })

    def _create_queue(self, raw: RawResponse, bucket: str, key: str, resource: str) -> CreateQueueResult:
        root = parse_xml(raw.body)
        return CreateQueueResult(
            queue_url=_required(root, ".//QueueUrl"),
            request_id=self._queue_request_id(raw, root),
        )

    def _list_queues(self, raw: RawResponse, bucket: str, key: str, resource: str) -> ListQueuesResult:
        root = parse_xml(raw.body)
        return ListQueuesResult(
            queue_urls=tuple(el.text or "" for el in root.iter("QueueUrl")),
            request_id=self._queue_request_id(raw, root),
        )

    def _delete_queue(self, raw: RawResponse, bucket: str, key: str, resource: str) -> DeleteQueueResult:
        root = parse_xml(raw.body) if raw.body else None
        return DeleteQueueResult(queue_url=resource, request_id=self._queue_request_id(raw, root))

    def _send_message(self, raw: RawResponse, bucket: str, key: str, resource: str) -> SendMessageResult:
        root = parse_xml(raw.body)
        return SendMessageResult(
            message_id=_required(root, ".//MessageId"),
            md5_of_body=_required(root, ".//MD5OfMessageBody"),
            request_id=self._queue_request_id(raw, root),
        )

    def _receive_message(self, raw: RawResponse, bucket: str, key: str, resource: str) -> ReceiveMessageResult:
        root = parse_xml(raw.body)
        messages = tuple(
            Message(
                message_id=_required(el, "MessageId"),
                receipt_handle=_required(el, "ReceiptHandle"),
                body=_text(el, "Body") or "",
                md5_of_body=_text(el, "MD5OfBody") or "",
                attributes=self._attributes(el),
            )
            for el in root.iter("Message")
        )
        return ReceiveMessageResult(messages=messages, request_id=self._queue_request_id(raw, root))

    def _delete_message(self, raw: RawResponse, bucket: str, key: str, resource: str) -> DeleteMessageResult:
        root = parse_xml(raw.body) if raw.body else None
        return DeleteMessageResult(request_id=self._queue_request_id(raw, root))

    def _get_queue_attributes(
        self, raw: RawResponse, bucket: str, key: str, resource: str,
    ) -> GetQueueAttributesResult:
        root = parse_xml(raw.body)
        result = root.find(".//GetQueueAttributesResult")
        return GetQueueAttributesResult(
            attributes=self._attributes(result if result is not None else root),
            request_id=self._queue_request_id(raw, root),
        )

    @staticmethod
    def _decoders() -> Mapping[OperationKind, Callable[..., Any]]:
        return _DECODERS


_DECODERS: Mapping[OperationKind, Callable[..., Any]] = MappingProxyType({
    OperationKind.CREATE_BUCKET: ResponseParser._create_bucket,
    OperationKind.LIST_ALL_BUCKETS: ResponseParser._list_all_buckets,
    OperationKind.DELETE_BUCKET: ResponseParser._delete_bucket,
    OperationKind.LIST_BUCKET: ResponseParser._list_bucket,
    OperationKind.PUT: ResponseParser._put,
    OperationKind.GET: ResponseParser._get,
    OperationKind.DELETE: ResponseParser._delete,
    OperationKind.HEAD: ResponseParser._head,
    OperationKind.CREATE_QUEUE: ResponseParser._create_queue,
    OperationKind.LIST_QUEUES: ResponseParser._list_queues,
    OperationKind.DELETE_QUEUE: ResponseParser._delete_queue,
    OperationKind.SEND_MESSAGE: ResponseParser._send_message,
    OperationKind.RECEIVE_MESSAGE: ResponseParser._receive_message,
    OperationKind.DELETE_MESSAGE: ResponseParser._delete_message,
    OperationKind.GET_QUEUE_ATTRIBUTES: ResponseParser._get_queue_attributes,
})
