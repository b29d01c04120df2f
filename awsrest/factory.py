"""
Connection Factory: Library Lifecycle

Owns the shared HTTP transport and hands out service connections bound to
it. Replaces a process-wide singleton with an explicit object: construct
it, use it as an async context manager (or call `shutdown()`), and every
connection it created stops working once it is shut down.

Example:
    >>> async with ConnectionFactory(ClientConfig.for_region("eu-west-1")) as factory:
    ...     s3 = factory.create_s3_connection("AKID", "secret")
    ...     sqs = factory.create_sqs_connection(Credentials.from_env().unwrap())
    ...     print(factory.version)
"""

from __future__ import annotations

import logging
from typing import Optional, Union

from awsrest.core import constants as C
from awsrest.core.config import ClientConfig
from awsrest.core.errors import ConstructionError
from awsrest.core.types import Credentials, Err, Ok, Result
from awsrest.protocol.transport import HTTPTransport
from awsrest.reliability.retry import RetryPolicy
from awsrest.s3.connection import S3Connection
from awsrest.sqs.connection import SQSConnection

logger = logging.getLogger(__name__)


class ConnectionFactory:
    """
    Creates connections that share one pooled transport.

    Thread-safety: intended for use from a single event loop. Connection
    creation is synchronous and cheap; the transport's session is created
    on the first request.
    """

    __slots__ = ("_config", "_transport", "_closed")

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        transport: Optional[HTTPTransport] = None,
    ) -> None:
        """
        Args:
            config: Endpoints, timeouts and retry bounds (defaults if None).
            transport: Pre-built transport, mainly for tests.

        Raises:
            ConstructionError: The configuration is invalid.
        """
        self._config = config or ClientConfig()
        checked = self._config.validate()
        if checked.is_err():
            raise ConstructionError.invalid_argument("config", self._config, checked.error)

        self._transport = transport or HTTPTransport(
            self._config.transport,
            RetryPolicy.from_config(self._config.retry),
        )
        self._closed = False

    @classmethod
    def from_env(cls) -> Result[ConnectionFactory, str]:
        """Factory configured from AWSREST_* environment variables."""
        return ClientConfig.from_env().flat_map(create_factory)

    @property
    def version(self) -> str:
        """Library version string."""
        return C.LIBRARY_VERSION

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def transport(self) -> HTTPTransport:
        return self._transport

    @property
    def closed(self) -> bool:
        return self._closed

    @staticmethod
    def _credentials(
        access_key_id: Union[str, Credentials],
        secret_access_key: Optional[str],
    ) -> Credentials:
        if isinstance(access_key_id, Credentials):
            credentials = access_key_id
        else:
            credentials = Credentials(access_key_id, secret_access_key or "")
        checked = credentials.validate()
        if checked.is_err():
            raise ConstructionError.invalid_argument(
                "credentials", credentials.access_key_id, checked.error,
            )
        return credentials

    def create_s3_connection(
        self,
        access_key_id: Union[str, Credentials],
        secret_access_key: Optional[str] = None,
    ) -> S3Connection:
        """
        Connection to the configured object storage endpoint.

        Raises:
            ConstructionError: Empty credentials, or the factory is shut down.
        """
        if self._closed:
            raise ConstructionError.factory_closed("s3")
        credentials = self._credentials(access_key_id, secret_access_key)
        return S3Connection(credentials, self._config.s3, self._transport)

    def create_sqs_connection(
        self,
        access_key_id: Union[str, Credentials],
        secret_access_key: Optional[str] = None,
    ) -> SQSConnection:
        """
        Connection to the configured message queue endpoint.

        Raises:
            ConstructionError: Empty credentials, or the factory is shut down.
        """
        if self._closed:
            raise ConstructionError.factory_closed("sqs")
        credentials = self._credentials(access_key_id, secret_access_key)
        return SQSConnection(credentials, self._config.sqs, self._transport)

    async def shutdown(self) -> None:
        """
        Close the shared transport.

        Safe to call multiple times. Requests issued afterwards through
        connections from this factory fail with a transport fault.
        """
        if self._closed:
            return
        self._closed = True
        await self._transport.close()
        logger.debug(f"Connection factory shut down: {self._transport.metrics.snapshot()}")

    async def __aenter__(self) -> ConnectionFactory:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.shutdown()


def create_factory(config: Optional[ClientConfig] = None) -> Result[ConnectionFactory, str]:
    """Build a factory, reporting an invalid configuration as Err."""
    try:
        return Ok(ConnectionFactory(config))
    except ConstructionError as e:
        return Err(e.message)
