"""
Message Queue Connection

Caller-facing handle for queue operations over the form-encoded query
protocol. Same shape as the object storage connection: one signed request
per call, `Result[<Operation>Result, AWSError]` back, no state between
calls beyond credentials and the shared transport.

Retry Safety:
-------------
SendMessage and ReceiveMessage are never retried: a lost response to a
send that actually landed would otherwise enqueue a duplicate, and a
repeated receive hides a second batch. Everything else is idempotent.
"""

from __future__ import annotations

from typing import Callable, Optional

from awsrest.core.config import ServiceEndpoint
from awsrest.core.errors import AWSError
from awsrest.core.types import Credentials, Err, Result
from awsrest.observability.logging import StructuredLogger
from awsrest.protocol.parser import OperationKind, ResponseParser
from awsrest.protocol.request import OperationRequest, SQSRequestBuilder
from awsrest.protocol.results import (
    CreateQueueResult,
    DeleteMessageResult,
    DeleteQueueResult,
    GetQueueAttributesResult,
    ListQueuesResult,
    ReceiveMessageResult,
    SendMessageResult,
)
from awsrest.protocol.signer import Signer, sign_request, signer_for
from awsrest.protocol.transport import HTTPTransport

logger = StructuredLogger(__name__)


class SQSConnection:
    """Connection to a message queue endpoint."""

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
        self._builder = SQSRequestBuilder()
        self._parser = ResponseParser()

    @property
    def endpoint(self) -> ServiceEndpoint:
        return self._endpoint

    def __repr__(self) -> str:
        return (
            f"SQSConnection(endpoint={self._endpoint.url!r}, "
            f"access_key_id={self._credentials.access_key_id!r})"
        )

    async def _call(
        self,
        kind: OperationKind,
        make: Callable[[], OperationRequest],
        *,
        sent_body: Optional[str] = None,
    ) -> Result:
        try:
            request = make()
        except AWSError as e:
            return Err(e)

        with logger.context(operation=kind.operation, queue=request.resource):
            try:
                raw = await self._transport.execute(
                    lambda: sign_request(request, self._credentials, self._endpoint, self._signer),
                )
            except AWSError as e:
                logger.debug(f"{kind.operation} failed: {e}", error=e.to_dict())
                return Err(e)

            result = self._parser.parse(
                kind, raw, resource=request.resource, sent_body=sent_body,
            )
            if result.is_err():
                logger.debug(f"{kind.operation} rejected by service: {result.error}")
            return result

    async def create_queue(
        self,
        name: str,
        default_visibility_timeout: Optional[int] = None,
    ) -> Result[CreateQueueResult, AWSError]:
        """
        Create a queue, or return the URL of the existing queue of that name.

        Args:
            name: Up to 80 characters of [A-Za-z0-9_-].
            default_visibility_timeout: Seconds a received message stays
                hidden from other receivers.
        """
        return await self._call(
            OperationKind.CREATE_QUEUE,
            lambda: self._builder.create_queue(name, default_visibility_timeout),
        )

    async def list_queues(self, prefix: str = "") -> Result[ListQueuesResult, AWSError]:
        return await self._call(
            OperationKind.LIST_QUEUES,
            lambda: self._builder.list_queues(prefix),
        )

    async def delete_queue(self, queue_url: str) -> Result[DeleteQueueResult, AWSError]:
        return await self._call(
            OperationKind.DELETE_QUEUE,
            lambda: self._builder.delete_queue(queue_url),
        )

    async def send_message(self, queue_url: str, body: str) -> Result[SendMessageResult, AWSError]:
        """Enqueue one message; the echoed MD5 is checked against `body`."""
        return await self._call(
            OperationKind.SEND_MESSAGE,
            lambda: self._builder.send_message(queue_url, body),
            sent_body=body,
        )

    async def receive_message(
        self,
        queue_url: str,
        max_messages: int = 1,
        visibility_timeout: Optional[int] = None,
    ) -> Result[ReceiveMessageResult, AWSError]:
        """Receive up to `max_messages` (1-10). An empty queue is an empty result."""
        return await self._call(
            OperationKind.RECEIVE_MESSAGE,
            lambda: self._builder.receive_message(queue_url, max_messages, visibility_timeout),
        )

    async def delete_message(
        self,
        queue_url: str,
        receipt_handle: str,
    ) -> Result[DeleteMessageResult, AWSError]:
        return await self._call(
            OperationKind.DELETE_MESSAGE,
            lambda: self._builder.delete_message(queue_url, receipt_handle),
        )

    async def get_queue_attributes(
        self,
        queue_url: str,
        names: tuple[str, ...] = ("All",),
    ) -> Result[GetQueueAttributesResult, AWSError]:
        return await self._call(
            OperationKind.GET_QUEUE_ATTRIBUTES,
            lambda: self._builder.get_queue_attributes(queue_url, names),
        )
