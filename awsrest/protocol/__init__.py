"""
Protocol module: everything between an operation call and the wire.

Pipeline:
    RequestBuilder → Signer → HTTPTransport → ResponseParser
                                             ↘ ListingCursor (pagination)

Builder, signer and parser are pure; only the transport performs I/O.
"""

from awsrest.protocol.request import (
    Body,
    BytesBody,
    EmptyBody,
    KnownLength,
    MeasureBySeeking,
    OperationRequest,
    S3RequestBuilder,
    SQSRequestBuilder,
    StreamBody,
    measure_stream,
)
from awsrest.protocol.signer import (
    QuerySignerV2,
    S3SignerV2,
    SignedRequest,
    Signer,
    SignerV4,
    sign_request,
    signer_for,
)
from awsrest.protocol.transport import (
    HTTPTransport,
    ObjectBody,
    RawResponse,
    TransportMetrics,
)
from awsrest.protocol.parser import OperationKind, ResponseParser
from awsrest.protocol.cursor import ListingCursor, PaginationState

__all__ = [
    "Body",
    "BytesBody",
    "EmptyBody",
    "KnownLength",
    "MeasureBySeeking",
    "OperationRequest",
    "S3RequestBuilder",
    "SQSRequestBuilder",
    "StreamBody",
    "measure_stream",
    "QuerySignerV2",
    "S3SignerV2",
    "SignedRequest",
    "Signer",
    "SignerV4",
    "sign_request",
    "signer_for",
    "HTTPTransport",
    "ObjectBody",
    "RawResponse",
    "TransportMetrics",
    "OperationKind",
    "ResponseParser",
    "ListingCursor",
    "PaginationState",
]
