"""
HTTP Transport: Pooled aiohttp Session with Retry

Sends signed requests over a shared connection pool and returns the raw
status, headers and body. Knows nothing about operations beyond the
idempotence flag and the name it puts in log lines.

Design Principles:
1. One `aiohttp.ClientSession` per transport, created lazily; creation is
   guarded by an asyncio.Lock that is never held across network I/O.
2. Each attempt re-invokes the caller's build function, so every retry
   carries a fresh timestamp and signature.
3. Only idempotent requests are retried. Non-idempotent requests get
   exactly one attempt.
4. Service-level errors are data, not exceptions: a 4xx/5xx answer comes
   back as a `RawResponse` for the parser to decode. Only transport
   failures raise.

Retry Classification:
---------------------
| Failure                                  | Retried (idempotent only) |
|------------------------------------------|---------------------------|
| Connection refused/reset, DNS failure    | yes                       |
| Timeout                                  | yes                       |
| HTTP 500, 502, 503, 504                  | yes                       |
| InternalError/SlowDown/... in the body   | yes                       |
| Any other 4xx                            | no                        |
"""

from __future__ import annotations

import asyncio
import re
import time
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional

import aiohttp
from multidict import CIMultiDict, CIMultiDictProxy
from yarl import URL

from awsrest.core import constants as C
from awsrest.core.config import TransportConfig
from awsrest.core.errors import AWSError, ConstructionError, ErrorCode, TransportFault
from awsrest.observability.logging import StructuredLogger
from awsrest.protocol.request import BytesBody, StreamBody
from awsrest.protocol.signer import SignedRequest
from awsrest.reliability.retry import Retrier, RetryPolicy

logger = StructuredLogger(__name__)

_ERROR_CODE_RE = re.compile(rb"<Code>\s*([^<\s]+)\s*</Code>")

_RETRYABLE_FAULTS = frozenset({
    ErrorCode.TRANSPORT_CONNECTION_FAILED,
    ErrorCode.TRANSPORT_TIMEOUT,
    ErrorCode.TRANSPORT_PROTOCOL_ERROR,
})


# =============================================================================
# METRICS
# =============================================================================
@dataclass
class TransportMetrics:
    """
    Counters for everything that crossed the wire.

    Latency is accumulated in nanoseconds, per attempt.
    """
    requests: int = 0
    attempts: int = 0
    retries: int = 0

    bytes_sent: int = 0
    bytes_received: int = 0

    latency_sum_ns: int = 0

    connection_errors: int = 0
    timeout_errors: int = 0
    error_responses: int = 0

    def record_attempt(self, latency_ns: int) -> None:
        self.attempts += 1
        self.latency_sum_ns += latency_ns

    def mean_latency_ms(self) -> float:
        if self.attempts == 0:
            return 0.0
        return self.latency_sum_ns / self.attempts / 1_000_000

    def snapshot(self) -> dict[str, float]:
        return {
            "requests": self.requests,
            "attempts": self.attempts,
            "retries": self.retries,
            "bytes_sent": self.bytes_sent,
            "bytes_received": self.bytes_received,
            "connection_errors": self.connection_errors,
            "timeout_errors": self.timeout_errors,
            "error_responses": self.error_responses,
            "mean_latency_ms": self.mean_latency_ms(),
        }


# =============================================================================
# RESPONSES
# =============================================================================
class ObjectBody:
    """
    Live, streamed response body of a get.

    The connection stays checked out of the pool until the body is fully
    read or closed, so always use it as a context manager or call close().
    Read failures surface as `TransportFault`.

    Usage:
        async with result.body as body:
            async for chunk in body.iter_chunks():
                sink.write(chunk)
    """

    __slots__ = ("_response", "_operation", "_chunk_size", "_timeout_s", "_metrics", "length")

    def __init__(
        self,
        response: aiohttp.ClientResponse,
        operation: str,
        chunk_size: int,
        timeout_s: float,
        metrics: TransportMetrics,
    ) -> None:
        self._response = response
        self._operation = operation
        self._chunk_size = chunk_size
        self._timeout_s = timeout_s
        self._metrics = metrics
        self.length: Optional[int] = response.content_length

    @property
    def closed(self) -> bool:
        return self._response.closed

    def _fault(self, error: BaseException) -> TransportFault:
        url = str(self._response.url)
        if isinstance(error, asyncio.TimeoutError):
            return TransportFault.timeout(self._operation, url, self._timeout_s, error)
        return TransportFault.protocol_error(self._operation, url, error)

    async def read(self) -> bytes:
        """Read the remaining body into memory."""
        try:
            data = await self._response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise self._fault(e) from e
        finally:
            self._response.release()
        self._metrics.bytes_received += len(data)
        return data

    async def iter_chunks(self, chunk_size: Optional[int] = None) -> AsyncIterator[bytes]:
        size = chunk_size or self._chunk_size
        try:
            async for chunk in self._response.content.iter_chunked(size):
                self._metrics.bytes_received += len(chunk)
                yield chunk
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise self._fault(e) from e
        finally:
            self._response.release()

    async def close(self) -> None:
        self._response.release()

    async def __aenter__(self) -> ObjectBody:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()


@dataclass(frozen=True, slots=True)
class RawResponse:
    """Status, headers and body exactly as the service sent them."""

    status: int
    reason: str
    headers: CIMultiDictProxy[str]
    body: bytes = b""
    stream: Optional[ObjectBody] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def request_id(self) -> Optional[str]:
        return self.headers.get(C.HEADER_REQUEST_ID)

    def error_code(self) -> Optional[str]:
        """First <Code> element of an error document, without full parsing."""
        match = _ERROR_CODE_RE.search(self.body)
        return match.group(1).decode("utf-8", "replace") if match else None


def is_retryable_response(response: RawResponse) -> bool:
    if response.status in C.RETRYABLE_STATUSES:
        return True
    if response.status >= 400:
        return response.error_code() in C.RETRYABLE_SERVICE_CODES
    return False


def is_retryable_fault(fault: AWSError) -> bool:
    return isinstance(fault, TransportFault) and fault.code in _RETRYABLE_FAULTS


# =============================================================================
# TRANSPORT
# =============================================================================
class HTTPTransport:
    """
    Shared HTTP client for every connection a factory hands out.

    Safe for concurrent use by many tasks; the pool bounds how many
    requests are in flight at once.

    Example:
        >>> transport = HTTPTransport(TransportConfig())
        >>> raw = await transport.execute(lambda: sign_request(...))
        >>> await transport.close()
    """

    __slots__ = (
        "_config",
        "_policy",
        "_session",
        "_lock",
        "_closed",
        "_metrics",
    )

    def __init__(
        self,
        config: Optional[TransportConfig] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self._config = config or TransportConfig()
        self._policy = retry_policy or RetryPolicy.default()
        self._session: Optional[aiohttp.ClientSession] = None
        self._lock = asyncio.Lock()
        self._closed = False
        self._metrics = TransportMetrics()

    @property
    def metrics(self) -> TransportMetrics:
        return self._metrics

    @property
    def closed(self) -> bool:
        return self._closed

    # -------------------------------------------------------------------------
    # SESSION LIFECYCLE
    # -------------------------------------------------------------------------

    async def _get_session(self, operation: str) -> aiohttp.ClientSession:
        """Get or create the pooled session."""
        async with self._lock:
            if self._closed:
                raise TransportFault.closed(operation)
            if self._session is None or self._session.closed:
                connector_kwargs: dict[str, object] = {"limit": self._config.pool_size}
                if not self._config.verify_ssl:
                    connector_kwargs["ssl"] = False
                self._session = aiohttp.ClientSession(
                    connector=aiohttp.TCPConnector(**connector_kwargs),
                    timeout=aiohttp.ClientTimeout(
                        total=self._config.request_timeout_s,
                        sock_connect=self._config.connect_timeout_s,
                    ),
                    headers={"User-Agent": C.USER_AGENT},
                    # Object bodies are returned byte-for-byte as stored
                    auto_decompress=False,
                )
            return self._session

    async def close(self) -> None:
        """
        Close the session and release pooled connections.

        Safe to call multiple times.
        """
        async with self._lock:
            self._closed = True
            session, self._session = self._session, None
        if session is not None and not session.closed:
            await session.close()

    # -------------------------------------------------------------------------
    # EXECUTION
    # -------------------------------------------------------------------------

    async def execute(
        self,
        build: Callable[[], SignedRequest],
        *,
        stream: bool = False,
    ) -> RawResponse:
        """
        Send a request, retrying transient failures of idempotent requests.

        Args:
            build: Produces a freshly signed request; called once per attempt.
            stream: Leave a successful body unread and hand it back as an
                    `ObjectBody` instead of buffering it.

        Returns:
            The final response, whatever its status.

        Raises:
            ConstructionError: `build` rejected the request.
            TransportFault: The service could not be reached.
        """
        first = build()
        policy = self._policy if first.idempotent and first.replayable else RetryPolicy.no_retry()
        self._metrics.requests += 1

        async def attempt(n: int) -> RawResponse:
            request = first if n == 0 else build()
            if n > 0:
                self._metrics.retries += 1
                if isinstance(request.body, StreamBody):
                    request.body.rewind()
            return await self._send(request, stream)

        retrier: Retrier[RawResponse] = Retrier(
            policy,
            operation=first.operation,
            retry_on_error=is_retryable_fault,
            retry_on_result=is_retryable_response,
        )
        with logger.context(operation=first.operation, resource=first.resource):
            response = await retrier.run(attempt)
            logger.debug(
                f"{first.method.value} {first.resource} -> {response.status}",
                status=response.status,
                attempts=retrier.stats.total_attempts,
                aws_request_id=response.request_id,
            )
        return response

    async def _send(self, request: SignedRequest, stream: bool) -> RawResponse:
        session = await self._get_session(request.operation)
        body = request.body

        data: object = None
        underflow: list[ConstructionError] = []
        if isinstance(body, BytesBody):
            data = body.data
            self._metrics.bytes_sent += len(body.data)
        elif isinstance(body, StreamBody):
            data = self._stream_chunks(body, underflow)

        extra: dict[str, object] = {}
        if stream:
            # A streamed body may take longer than one request; bound idle reads
            extra["timeout"] = aiohttp.ClientTimeout(
                total=None,
                sock_connect=self._config.connect_timeout_s,
                sock_read=self._config.request_timeout_s,
            )

        started = time.perf_counter_ns()
        try:
            response = await session.request(
                request.method.value,
                URL(request.url, encoded=True),
                headers=dict(request.headers),
                data=data,
                skip_auto_headers=("Content-Type",),
                **extra,
            )
            try:
                if stream and response.status < 300:
                    raw = RawResponse(
                        status=response.status,
                        reason=response.reason or "",
                        headers=response.headers,
                        stream=ObjectBody(
                            response,
                            request.operation,
                            self._config.chunk_size,
                            self._config.request_timeout_s,
                            self._metrics,
                        ),
                    )
                else:
                    payload = await response.read()
                    self._metrics.bytes_received += len(payload)
                    raw = RawResponse(
                        status=response.status,
                        reason=response.reason or "",
                        headers=CIMultiDictProxy(CIMultiDict(response.headers)),
                        body=payload,
                    )
            except BaseException:
                response.release()
                raise
            if raw.stream is None:
                response.release()
        except (asyncio.TimeoutError, aiohttp.ClientError) as e:
            # aiohttp reports a failing body generator as a connection error
            if underflow:
                raise underflow[0] from e
            raise self._fault_for(request, e) from e
        finally:
            self._metrics.record_attempt(time.perf_counter_ns() - started)

        if raw.status >= 400:
            self._metrics.error_responses += 1
        return raw

    def _fault_for(self, request: SignedRequest, error: Exception) -> TransportFault:
        if isinstance(error, asyncio.TimeoutError):
            self._metrics.timeout_errors += 1
            return TransportFault.timeout(
                request.operation, request.url, self._config.request_timeout_s, error,
            )
        if isinstance(error, aiohttp.ClientConnectionError):
            self._metrics.connection_errors += 1
            return TransportFault.connection_failed(request.operation, request.url, error)
        return TransportFault.protocol_error(request.operation, request.url, error)

    async def _stream_chunks(
        self,
        body: StreamBody,
        underflow: list[ConstructionError],
    ) -> AsyncIterator[bytes]:
        """
        Read exactly `body.length` bytes from the caller's stream.

        A stream that ends early aborts the upload; the fault is recorded in
        `underflow` so `_send` can report it instead of aiohttp's wrapper.
        """
        remaining = body.length
        while remaining > 0:
            chunk = await asyncio.to_thread(
                body.stream.read, min(self._config.chunk_size, remaining),
            )
            if not chunk:
                fault = ConstructionError.invalid_argument(
                    "size",
                    body.length,
                    f"stream ended after {body.length - remaining} of {body.length} bytes",
                )
                underflow.append(fault)
                raise fault
            remaining -= len(chunk)
            self._metrics.bytes_sent += len(chunk)
            yield chunk

    async def __aenter__(self) -> HTTPTransport:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
