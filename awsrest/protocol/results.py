"""
Typed Operation Results

Output types of the response parser, one per operation. All results are
immutable snapshots of one response and hold no reference back to the
connection that produced them. The one exception is `GetResult.stream`, a
live body the caller must read or close.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Mapping, Optional

from awsrest.protocol.transport import ObjectBody


def _frozen_mapping() -> Mapping[str, str]:
    return MappingProxyType({})


# =============================================================================
# OBJECT STORAGE
# =============================================================================
@dataclass(frozen=True, slots=True)
class Owner:
    id: str
    display_name: str = ""


@dataclass(frozen=True, slots=True)
class Bucket:
    name: str
    creation_date: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class ObjectEntry:
    """One key from a bucket listing."""

    key: str
    size: int
    last_modified: Optional[datetime] = None
    etag: str = ""
    storage_class: str = ""
    owner: Optional[Owner] = None


@dataclass(frozen=True, slots=True)
class ObjectInfo:
    """
    Object metadata decoded from response headers.

    Attributes:
        content_length: Size of the object in bytes.
        content_type: MIME type the object was stored with.
        etag: Entity tag, quoted as the service sends it.
        last_modified: Modification time (timezone-aware).
        user_metadata: x-amz-meta-* headers with the prefix removed.
        version_id: Version id on versioned buckets.
    """

    content_length: Optional[int] = None
    content_type: Optional[str] = None
    etag: Optional[str] = None
    last_modified: Optional[datetime] = None
    user_metadata: Mapping[str, str] = field(default_factory=_frozen_mapping)
    version_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class CreateBucketResult:
    bucket: str
    location: Optional[str] = None
    request_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ListAllBucketsResult:
    owner: Optional[Owner]
    buckets: tuple[Bucket, ...] = ()
    request_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class DeleteBucketResult:
    bucket: str
    request_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ListBucketResult:
    """
    One page of a bucket listing.

    `marker` echoes the request; `next_marker` is only present when the
    request carried a delimiter and the page is truncated.
    """

    bucket: str
    prefix: str = ""
    marker: str = ""
    next_marker: Optional[str] = None
    delimiter: Optional[str] = None
    max_keys: Optional[int] = None
    is_truncated: bool = False
    entries: tuple[ObjectEntry, ...] = ()
    common_prefixes: tuple[str, ...] = ()
    request_id: Optional[str] = None

    def __len__(self) -> int:
        return len(self.entries) + len(self.common_prefixes)


@dataclass(frozen=True, slots=True)
class PutResult:
    bucket: str
    key: str
    etag: Optional[str] = None
    version_id: Optional[str] = None
    request_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class GetResult:
    """
    Object content and metadata.

    Exactly one of `data` and `stream` carries the body: `stream` when the
    get was issued with `stream=True`, `data` otherwise. A conditional get
    answered with 304 has `not_modified=True` and no body at all.
    """

    bucket: str
    key: str
    info: ObjectInfo
    data: bytes = b""
    stream: Optional[ObjectBody] = None
    not_modified: bool = False
    request_id: Optional[str] = None

    @property
    def etag(self) -> Optional[str]:
        return self.info.etag


@dataclass(frozen=True, slots=True)
class HeadResult:
    bucket: str
    key: str
    info: ObjectInfo
    request_id: Optional[str] = None

    @property
    def etag(self) -> Optional[str]:
        return self.info.etag


@dataclass(frozen=True, slots=True)
class DeleteResult:
    bucket: str
    key: str
    request_id: Optional[str] = None


# =============================================================================
# MESSAGE QUEUE
# =============================================================================
@dataclass(frozen=True, slots=True)
class CreateQueueResult:
    queue_url: str
    request_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ListQueuesResult:
    queue_urls: tuple[str, ...] = ()
    request_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class DeleteQueueResult:
    queue_url: str
    request_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class SendMessageResult:
    message_id: str
    md5_of_body: str
    request_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Message:
    """A received message; `receipt_handle` is what deletes it."""

    message_id: str
    receipt_handle: str
    body: str
    md5_of_body: str = ""
    attributes: Mapping[str, str] = field(default_factory=_frozen_mapping)


@dataclass(frozen=True, slots=True)
class ReceiveMessageResult:
    messages: tuple[Message, ...] = ()
    request_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class DeleteMessageResult:
    request_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class GetQueueAttributesResult:
    attributes: Mapping[str, str] = field(default_factory=_frozen_mapping)
    request_id: Optional[str] = None
