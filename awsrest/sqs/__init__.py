"""
Message queue: queues and messages over the form-encoded query protocol.
"""

from awsrest.sqs.connection import SQSConnection
from awsrest.protocol.results import (
    CreateQueueResult,
    DeleteMessageResult,
    DeleteQueueResult,
    GetQueueAttributesResult,
    ListQueuesResult,
    Message,
    ReceiveMessageResult,
    SendMessageResult,
)

__all__ = [
    "SQSConnection",
    "CreateQueueResult",
    "DeleteMessageResult",
    "DeleteQueueResult",
    "GetQueueAttributesResult",
    "ListQueuesResult",
    "Message",
    "ReceiveMessageResult",
    "SendMessageResult",
]
