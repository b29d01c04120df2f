"""
Library-Wide Constants

Service defaults, wire-level header names and retry classification tables.
All magic numbers used by the protocol layer are centralized here.
"""

from typing import Final

# =============================================================================
# SIZE AND TIME UNITS
# =============================================================================
KB: Final[int] = 1024
MB: Final[int] = 1024 * KB

SECOND_MS: Final[int] = 1000

# =============================================================================
# SERVICE ENDPOINTS
# =============================================================================
DEFAULT_REGION: Final[str] = "us-east-1"
S3_ENDPOINT_TEMPLATE: Final[str] = "https://s3.{region}.amazonaws.com"
SQS_ENDPOINT_TEMPLATE: Final[str] = "https://sqs.{region}.amazonaws.com"

SQS_API_VERSION: Final[str] = "2012-11-05"

SIGNATURE_V2: Final[str] = "v2"
SIGNATURE_V4: Final[str] = "v4"

# =============================================================================
# TRANSPORT
# =============================================================================
DEFAULT_CONNECT_TIMEOUT_S: Final[float] = 5.0
DEFAULT_REQUEST_TIMEOUT_S: Final[float] = 60.0
DEFAULT_POOL_SIZE: Final[int] = 32
DEFAULT_CHUNK_SIZE: Final[int] = 64 * KB

# =============================================================================
# RETRY
# =============================================================================
RETRY_MAX_ATTEMPTS: Final[int] = 3
RETRY_BASE_MS: Final[int] = 100
RETRY_MAX_DELAY_MS: Final[int] = 10 * SECOND_MS

RETRYABLE_STATUSES: Final[frozenset[int]] = frozenset({500, 502, 503, 504})
RETRYABLE_SERVICE_CODES: Final[frozenset[str]] = frozenset({
    "InternalError",
    "ServiceUnavailable",
    "SlowDown",
    "RequestTimeout",
})

# =============================================================================
# HEADERS
# =============================================================================
HEADER_AMZ_PREFIX: Final[str] = "x-amz-"
HEADER_META_PREFIX: Final[str] = "x-amz-meta-"
HEADER_REQUEST_ID: Final[str] = "x-amz-request-id"
HEADER_HOST_ID: Final[str] = "x-amz-id-2"
HEADER_AMZ_DATE: Final[str] = "x-amz-date"
HEADER_CONTENT_SHA256: Final[str] = "x-amz-content-sha256"
HEADER_SECURITY_TOKEN: Final[str] = "x-amz-security-token"

UNSIGNED_PAYLOAD: Final[str] = "UNSIGNED-PAYLOAD"
DEFAULT_CONTENT_TYPE: Final[str] = "binary/octet-stream"

# =============================================================================
# NAMING LIMITS
# =============================================================================
BUCKET_NAME_MIN: Final[int] = 3
BUCKET_NAME_MAX: Final[int] = 255
OBJECT_KEY_MAX_BYTES: Final[int] = 1024
QUEUE_NAME_MAX: Final[int] = 80
SQS_MAX_RECEIVE: Final[int] = 10

# Sub-resources that take part in the v2 canonical resource
S3_SUBRESOURCES: Final[frozenset[str]] = frozenset({
    "acl",
    "cors",
    "delete",
    "lifecycle",
    "location",
    "logging",
    "notification",
    "partNumber",
    "policy",
    "requestPayment",
    "response-cache-control",
    "response-content-disposition",
    "response-content-encoding",
    "response-content-language",
    "response-content-type",
    "response-expires",
    "tagging",
    "torrent",
    "uploadId",
    "uploads",
    "versionId",
    "versioning",
    "versions",
    "website",
})

# =============================================================================
# LIBRARY
# =============================================================================
LIBRARY_VERSION: Final[str] = "1.0.0"
USER_AGENT: Final[str] = f"awsrest/{LIBRARY_VERSION}"
