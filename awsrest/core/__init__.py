"""
Core module: Type definitions, fault taxonomy, and configuration.

This module provides the foundational abstractions for the client:
- Result/Either monad for success-or-fault returns
- Fault hierarchy (construction / transport / service)
- Configuration management with validation
"""

from awsrest.core.types import (
    Result,
    Ok,
    Err,
    Credentials,
    HTTPMethod,
    Timestamp,
)
from awsrest.core.errors import (
    AWSError,
    ErrorCode,
    ConstructionError,
    SizeUnknownError,
    TransportFault,
    ServiceFault,
)
from awsrest.core.config import (
    ClientConfig,
    ServiceEndpoint,
    TransportConfig,
    RetryConfig,
)

__all__ = [
    "Result",
    "Ok",
    "Err",
    "Credentials",
    "HTTPMethod",
    "Timestamp",
    "AWSError",
    "ErrorCode",
    "ConstructionError",
    "SizeUnknownError",
    "TransportFault",
    "ServiceFault",
    "ClientConfig",
    "ServiceEndpoint",
    "TransportConfig",
    "RetryConfig",
]
