"""
Object Storage Connection

The caller-facing handle for bucket and object operations. Each method is
one signed request: build, sign, send, parse. The connection holds only
credentials and a handle to the shared transport, so any number of tasks
may use one connection concurrently.

Every method returns `Result[<Operation>Result, AWSError]`:
- `Ok(result)` on success (including 304 on a conditional get)
- `Err(ConstructionError)` for invalid input, before any network I/O
- `Err(TransportFault)` when the service could not be reached
- `Err(<Operation>Fault)` when the service answered with an error

Example:
    >>> async with ConnectionFactory(config) as factory:
    ...     s3 = factory.create_s3_connection(access_key, secret_key)
    ...     await s3.put("photos", "cat.jpg", image_bytes, "image/jpeg")
    ...     result = await s3.get("photos", "cat.jpg")
    ...     if result.is_ok():
    ...         data = result.unwrap().data
"""

from __future__ import annotations

from typing import BinaryIO, Callable, Mapping, Optional, Union

from awsrest.core import constants as C
from awsrest.core.config import ServiceEndpoint
from awsrest.core.errors import AWSError
from awsrest.core.types import Credentials, Err, Result
from awsrest.observability.logging import StructuredLogger
from awsrest.protocol.cursor import ListingCursor, PaginationState
from awsrest.protocol.parser import OperationKind, ResponseParser
from awsrest.protocol.request import (
    KnownLength,
    MeasureBySeeking,
    OperationRequest,
    S3RequestBuilder,
    SizeHint,
    validate_bucket_name,
)
from awsrest.protocol.results import (
    CreateBucketResult,
    DeleteBucketResult,
    DeleteResult,
    GetResult,
    HeadResult,
    ListAllBucketsResult,
    ListBucketResult,
    PutResult,
)
from awsrest.protocol.signer import Signer, sign_request, signer_for
from awsrest.protocol.transport import HTTPTransport

logger = StructuredLogger(__name__)

PutData = Union[bytes, bytearray, memoryview, BinaryIO]


def _size_hint(size: Union[int, SizeHint, None]) -> Optional[SizeHint]:
    """Accept a plain byte count; a negative count means "measure it"."""
    if size is None or isinstance(size, (KnownLength, MeasureBySeeking)):
        return size
    return MeasureBySeeking() if size < 0 else KnownLength(size)


class S3Connection:
    """
    Connection to an object storage endpoint.

    Created by `ConnectionFactory.create_s3_connection`; shares the
    factory's transport and becomes unusable once the factory shuts down.
    """

    __slots__ = (
        "_credentials",
        "_endpoint",
        "_transport",
        "_signer",
        "_builder",
        "_parser",
    )

    def __init__(
        self,
        credentials: Credentials,
        endpoint: ServiceEndpoint,
        transport: HTTPTransport,
        signer: Optional[Signer] = None,
    ) -> None:
        self._credentials = credentials
        self._endpoint = endpoint
        self._transport = transport
        self._signer = signer or signer_for(endpoint)
        self._builder = S3RequestBuilder()
        self._parser = ResponseParser()

    @property
    def endpoint(self) -> ServiceEndpoint:
        return self._endpoint

    def __repr__(self) -> str:
        return (
            f"S3Connection(endpoint={self._endpoint.url!r}, "
            f"access_key_id={self._credentials.access_key_id!r})"
        )

    async def _call(
        self,
        kind: OperationKind,
        make: Callable[[], OperationRequest],
        *,
        bucket: str = "",
        key: str = "",
        stream: bool = False,
    ) -> Result:
        with logger.context(operation=kind.operation, bucket=bucket, key=key):
            try:
                request = make()
                raw = await self._transport.execute(
                    lambda: sign_request(request, self._credentials, self._endpoint, self._signer),
                    stream=stream,
                )
            except AWSError as e:
                logger.debug(f"{kind.operation} failed: {e}", error=e.to_dict())
                return Err(e)

            result = self._parser.parse(
                kind, raw, resource=request.resource, bucket=bucket, key=key,
            )
            if result.is_err():
                logger.debug(f"{kind.operation} rejected by service: {result.error}")
            return result

    # -------------------------------------------------------------------------
    # BUCKETS
    # -------------------------------------------------------------------------

    async def create_bucket(self, bucket: str) -> Result[CreateBucketResult, AWSError]:
        """Create a bucket in the endpoint's region."""
        return await self._call(
            OperationKind.CREATE_BUCKET,
            lambda: self._builder.create_bucket(bucket, self._endpoint.region),
            bucket=bucket,
        )

    async def list_all_buckets(self) -> Result[ListAllBucketsResult, AWSError]:
        """List every bucket owned by the caller."""
        return await self._call(OperationKind.LIST_ALL_BUCKETS, self._builder.list_all_buckets)

    async def delete_bucket(self, bucket: str) -> Result[DeleteBucketResult, AWSError]:
        """Delete an empty bucket."""
        return await self._call(
            OperationKind.DELETE_BUCKET,
            lambda: self._builder.delete_bucket(bucket),
            bucket=bucket,
        )

    async def list_bucket(
        self,
        bucket: str,
        prefix: str = "",
        marker: str = "",
        max_keys: Optional[int] = None,
        delimiter: Optional[str] = None,
    ) -> Result[ListBucketResult, AWSError]:
        """
        Fetch one page of a bucket listing.

        Args:
            bucket: Bucket to list.
            prefix: Only keys starting with this prefix.
            marker: Only keys after this one.
            max_keys: Page size; None or <= 0 lets the service decide.
            delimiter: Roll keys sharing a prefix up to this character into
                       common prefixes.
        """
        return await self._call(
            OperationKind.LIST_BUCKET,
            lambda: self._builder.list_bucket(bucket, prefix, marker, max_keys, delimiter),
            bucket=bucket,
        )

    def iter_bucket(
        self,
        bucket: str,
        prefix: str = "",
        marker: str = "",
        max_keys: Optional[int] = None,
        delimiter: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> ListingCursor:
        """
        Lazily walk a whole listing, following markers across pages.

        Args:
            limit: Stop after this many items (keys plus common prefixes).

        Raises:
            ConstructionError: Invalid bucket name or limit.
        """
        validate_bucket_name(bucket)

        async def fetch(state: PaginationState) -> ListBucketResult:
            page = await self.list_bucket(
                bucket,
                prefix=state.prefix,
                marker=state.marker,
                max_keys=state.max_keys,
                delimiter=state.delimiter,
            )
            return page.unwrap()

        return ListingCursor(
            fetch,
            prefix=prefix,
            marker=marker,
            delimiter=delimiter,
            max_keys=max_keys,
            limit=limit,
        )

    # -------------------------------------------------------------------------
    # OBJECTS
    # -------------------------------------------------------------------------

    async def put(
        self,
        bucket: str,
        key: str,
        data: PutData,
        content_type: str = C.DEFAULT_CONTENT_TYPE,
        size: Union[int, SizeHint, None] = None,
        metadata: Optional[Mapping[str, str]] = None,
    ) -> Result[PutResult, AWSError]:
        """
        Store an object.

        Args:
            data: Bytes, or a readable binary stream.
            content_type: MIME type stored with the object.
            size: Byte count of a stream. None or a negative count measures
                  the stream by seeking; an unseekable stream then fails
                  with SizeUnknownError before anything is sent.
            metadata: User metadata stored as x-amz-meta-* headers.
        """
        return await self._call(
            OperationKind.PUT,
            lambda: self._builder.put(
                bucket, key, data, content_type, _size_hint(size), metadata,
            ),
            bucket=bucket,
            key=key,
        )

    async def get(
        self,
        bucket: str,
        key: str,
        old_etag: Optional[str] = None,
        stream: bool = False,
    ) -> Result[GetResult, AWSError]:
        """
        Fetch an object.

        Args:
            old_etag: ETag of a cached copy; when it still matches, the result
                      has `not_modified=True` and no body.
            stream: Return the body as a live `ObjectBody` in
                    `GetResult.stream` instead of reading it into memory.
        """
        return await self._call(
            OperationKind.GET,
            lambda: self._builder.get(bucket, key, old_etag),
            bucket=bucket,
            key=key,
            stream=stream,
        )

    async def delete(self, bucket: str, key: str) -> Result[DeleteResult, AWSError]:
        """Delete an object. Deleting a missing key succeeds."""
        return await self._call(
            OperationKind.DELETE,
            lambda: self._builder.delete(bucket, key),
            bucket=bucket,
            key=key,
        )

    async def head(self, bucket: str, key: str) -> Result[HeadResult, AWSError]:
        """Fetch an object's metadata without its body."""
        return await self._call(
            OperationKind.HEAD,
            lambda: self._builder.head(bucket, key),
            bucket=bucket,
            key=key,
        )
