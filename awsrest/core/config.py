"""
Configuration Management for the REST Client

Provides validated configuration with sensible defaults.
Supports environment variable overrides.

Design:
- Immutable after construction
- Fail-fast on invalid configuration
- Type-safe with dataclasses
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

from awsrest.core import constants as C
from awsrest.core.types import Err, Ok, Result


_DEFAULT_PORTS = {"http": 80, "https": 443}


def _as_bool(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


@dataclass(frozen=True)
class ServiceEndpoint:
    """
    Where one service lives and how requests to it are signed.

    Attributes:
        url: Scheme, host and optional port (no path), e.g.
             "https://s3.us-east-1.amazonaws.com".
        region: Region name used in the v4 credential scope.
        service: Service name used in the v4 credential scope.
        signature_version: "v2" (legacy HMAC schemes) or "v4".
    """

    url: str
    region: str = C.DEFAULT_REGION
    service: str = "s3"
    signature_version: str = C.SIGNATURE_V4

    @property
    def host(self) -> str:
        """
        Host header value as the HTTP client sends it.

        Userinfo is dropped and the port is kept only when it is not the
        scheme's default, so the signed host matches the wire.
        """
        parts = urlsplit(self.url)
        host = parts.hostname or ""
        if ":" in host:
            host = f"[{host}]"
        if parts.port is not None and parts.port != _DEFAULT_PORTS.get(parts.scheme):
            host = f"{host}:{parts.port}"
        return host

    @property
    def scheme(self) -> str:
        return urlsplit(self.url).scheme

    def validate(self) -> Result[None, str]:
        parts = urlsplit(self.url)
        if parts.scheme not in ("http", "https"):
            return Err(f"{self.service} endpoint must be http(s), got {self.url!r}")
        if not parts.hostname:
            return Err(f"{self.service} endpoint has no host: {self.url!r}")
        try:
            parts.port
        except ValueError:
            return Err(f"{self.service} endpoint has an invalid port: {self.url!r}")
        if parts.path not in ("", "/"):
            return Err(f"{self.service} endpoint must not carry a path: {self.url!r}")
        if self.signature_version not in (C.SIGNATURE_V2, C.SIGNATURE_V4):
            return Err(f"Unknown signature version {self.signature_version!r}")
        return Ok(None)


@dataclass(frozen=True)
class TransportConfig:
    """HTTP transport tuning."""

    connect_timeout_s: float = C.DEFAULT_CONNECT_TIMEOUT_S
    request_timeout_s: float = C.DEFAULT_REQUEST_TIMEOUT_S
    pool_size: int = C.DEFAULT_POOL_SIZE
    chunk_size: int = C.DEFAULT_CHUNK_SIZE
    verify_ssl: bool = True


@dataclass(frozen=True)
class RetryConfig:
    """Retry and backoff bounds."""

    max_retries: int = C.RETRY_MAX_ATTEMPTS
    base_delay_ms: int = C.RETRY_BASE_MS
    max_delay_ms: int = C.RETRY_MAX_DELAY_MS
    jitter: bool = True


@dataclass(frozen=True)
class ClientConfig:
    """Root configuration shared by every connection a factory creates."""

    s3: ServiceEndpoint = ServiceEndpoint(
        url=C.S3_ENDPOINT_TEMPLATE.format(region=C.DEFAULT_REGION),
        service="s3",
    )
    sqs: ServiceEndpoint = ServiceEndpoint(
        url=C.SQS_ENDPOINT_TEMPLATE.format(region=C.DEFAULT_REGION),
        service="sqs",
    )
    transport: TransportConfig = TransportConfig()
    retry: RetryConfig = RetryConfig()

    @classmethod
    def for_region(
        cls,
        region: str,
        signature_version: str = C.SIGNATURE_V4,
    ) -> ClientConfig:
        """Default public endpoints for one region."""
        return cls(
            s3=ServiceEndpoint(
                url=C.S3_ENDPOINT_TEMPLATE.format(region=region),
                region=region,
                service="s3",
                signature_version=signature_version,
            ),
            sqs=ServiceEndpoint(
                url=C.SQS_ENDPOINT_TEMPLATE.format(region=region),
                region=region,
                service="sqs",
                signature_version=signature_version,
            ),
        )

    @classmethod
    def from_env(cls) -> Result[ClientConfig, str]:
        """
        Load configuration from environment variables.

        Environment variables are prefixed with AWSREST_.
        Example: AWSREST_REGION, AWSREST_S3_ENDPOINT, AWSREST_MAX_RETRIES
        """
        try:
            region = os.getenv("AWSREST_REGION", C.DEFAULT_REGION)
            sig = os.getenv("AWSREST_SIGNATURE_VERSION", C.SIGNATURE_V4)

            s3 = ServiceEndpoint(
                url=os.getenv(
                    "AWSREST_S3_ENDPOINT",
                    C.S3_ENDPOINT_TEMPLATE.format(region=region),
                ).rstrip("/"),
                region=region,
                service="s3",
                signature_version=sig,
            )
            sqs = ServiceEndpoint(
                url=os.getenv(
                    "AWSREST_SQS_ENDPOINT",
                    C.SQS_ENDPOINT_TEMPLATE.format(region=region),
                ).rstrip("/"),
                region=region,
                service="sqs",
                signature_version=sig,
            )
            transport = TransportConfig(
                connect_timeout_s=float(os.getenv(
                    "AWSREST_CONNECT_TIMEOUT_S", C.DEFAULT_CONNECT_TIMEOUT_S,
                )),
                request_timeout_s=float(os.getenv(
                    "AWSREST_REQUEST_TIMEOUT_S", C.DEFAULT_REQUEST_TIMEOUT_S,
                )),
                pool_size=int(os.getenv("AWSREST_POOL_SIZE", C.DEFAULT_POOL_SIZE)),
                verify_ssl=_as_bool(os.getenv("AWSREST_VERIFY_SSL"), True),
            )
            retry = RetryConfig(
                max_retries=int(os.getenv("AWSREST_MAX_RETRIES", C.RETRY_MAX_ATTEMPTS)),
            )
        except (ValueError, TypeError) as e:
            return Err(f"Configuration error: {e}")

        config = cls(s3=s3, sqs=sqs, transport=transport, retry=retry)
        return config.validate().map(lambda _: config)

    def validate(self) -> Result[None, str]:
        """Validate configuration invariants."""
        for endpoint in (self.s3, self.sqs):
            checked = endpoint.validate()
            if checked.is_err():
                return checked
        if self.transport.connect_timeout_s <= 0 or self.transport.request_timeout_s <= 0:
            return Err("Timeouts must be > 0")
        if self.transport.pool_size < 1:
            return Err("pool_size must be >= 1")
        if self.transport.chunk_size < 1:
            return Err("chunk_size must be >= 1")
        if self.retry.max_retries < 0:
            return Err("max_retries must be >= 0")
        if self.retry.base_delay_ms < 0 or self.retry.max_delay_ms < self.retry.base_delay_ms:
            return Err("Retry delays must satisfy 0 <= base_delay_ms <= max_delay_ms")
        return Ok(None)
