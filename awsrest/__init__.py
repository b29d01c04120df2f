"""
awsrest: Async REST Client for Object Storage and Message Queues

A thin, typed client for S3-compatible object storage and SQS-compatible
message queues, speaking the services' REST/query protocols directly:
- Request signing (HMAC header and query signatures, plus version 4)
- Pooled asyncio transport with bounded retry for idempotent requests
- Typed results and per-operation faults, returned as Result values
- Marker-based pagination over bucket listings

Example:
    >>> import asyncio
    >>> from awsrest import ConnectionFactory, ClientConfig
    >>>
    >>> async def main():
    ...     async with ConnectionFactory(ClientConfig.for_region("us-east-1")) as factory:
    ...         s3 = factory.create_s3_connection("AKID", "secret")
    ...         listing = await s3.list_bucket("photos", prefix="2024/")
    ...         for entry in listing.unwrap().entries:
    ...             print(entry.key, entry.size)
    >>>
    >>> asyncio.run(main())
"""

from awsrest.core.constants import LIBRARY_VERSION as __version__

# =============================================================================
# PUBLIC API EXPORTS
# =============================================================================
from awsrest.core.types import Result, Ok, Err, Credentials, HTTPMethod
from awsrest.core.errors import (
    AWSError,
    ErrorCode,
    ConstructionError,
    SizeUnknownError,
    TransportFault,
    ServiceFault,
    CreateBucketFault,
    ListAllBucketsFault,
    DeleteBucketFault,
    ListBucketFault,
    PutFault,
    GetFault,
    DeleteFault,
    HeadFault,
    CreateQueueFault,
    ListQueuesFault,
    DeleteQueueFault,
    SendMessageFault,
    ReceiveMessageFault,
    DeleteMessageFault,
    GetQueueAttributesFault,
)
from awsrest.core.config import ClientConfig, ServiceEndpoint, TransportConfig, RetryConfig
from awsrest.protocol.request import KnownLength, MeasureBySeeking
from awsrest.protocol.cursor import ListingCursor
from awsrest.protocol.transport import ObjectBody
from awsrest.s3 import S3Connection
from awsrest.sqs import SQSConnection
from awsrest.factory import ConnectionFactory, create_factory

__all__ = [
    "__version__",
    # Core
    "Result",
    "Ok",
    "Err",
    "Credentials",
    "HTTPMethod",
    # Faults
    "AWSError",
    "ErrorCode",
    "ConstructionError",
    "SizeUnknownError",
    "TransportFault",
    "ServiceFault",
    "CreateBucketFault",
    "ListAllBucketsFault",
    "DeleteBucketFault",
    "ListBucketFault",
    "PutFault",
    "GetFault",
    "DeleteFault",
    "HeadFault",
    "CreateQueueFault",
    "ListQueuesFault",
    "DeleteQueueFault",
    "SendMessageFault",
    "ReceiveMessageFault",
    "DeleteMessageFault",
    "GetQueueAttributesFault",
    # Configuration
    "ClientConfig",
    "ServiceEndpoint",
    "TransportConfig",
    "RetryConfig",
    # Connections
    "ConnectionFactory",
    "create_factory",
    "S3Connection",
    "SQSConnection",
    "ListingCursor",
    "ObjectBody",
    "KnownLength",
    "MeasureBySeeking",
]
