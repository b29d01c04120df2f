"""
Request Signer: Canonical Strings and HMAC Signatures

Produces the authorization token for a request from the shared secret, the
request's method, resource path, headers and a caller-supplied timestamp.

Design Principles:
1. Pure: no clock reads, no I/O, no caching. The same inputs always produce
   the same signature, which is what makes test vectors possible.
2. The timestamp is an argument, so every retry is re-signed with a fresh one.
3. Malformed resource paths are rejected before anything is computed.

Schemes:
--------
| Signer         | Service        | MAC          | Token placement             |
|----------------|----------------|--------------|-----------------------------|
| S3SignerV2     | object storage | HMAC-SHA1    | Authorization: AWS id:sig   |
| QuerySignerV2  | message queue  | HMAC-SHA256  | Signature form parameter    |
| SignerV4       | both           | HMAC-SHA256  | Authorization: AWS4-HMAC... |
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import format_datetime
from types import MappingProxyType
from typing import Mapping, Optional, Protocol, Union
from urllib.parse import quote

from awsrest.core import constants as C
from awsrest.core.config import ServiceEndpoint
from awsrest.core.errors import ConstructionError
from awsrest.core.types import Credentials, HTTPMethod
from awsrest.protocol.request import (
    Body,
    BytesBody,
    EmptyBody,
    OperationRequest,
)

_WHITESPACE_RE = re.compile(r"\s+")

# Headers (besides host and x-amz-*) covered by the v4 signature
_V4_SIGNED_HEADERS = frozenset({
    "content-md5",
    "content-type",
    "if-match",
    "if-none-match",
    "range",
})


# =============================================================================
# SIGNED REQUEST
# =============================================================================
@dataclass(frozen=True, slots=True)
class SignedRequest:
    """
    Request ready for the wire. Immutable once produced.

    Attributes:
        method: HTTP verb.
        url: Absolute, fully percent-encoded URL.
        headers: Read-only header mapping including authorization.
        body: Payload source.
        operation: Operation name for logs and faults.
        resource: Resource label for faults.
        idempotent: Whether the transport may repeat it.
    """

    method: HTTPMethod
    url: str
    headers: Mapping[str, str]
    body: Body
    operation: str
    resource: str
    idempotent: bool

    @property
    def replayable(self) -> bool:
        return self.body.replayable


# =============================================================================
# ENCODING HELPERS
# =============================================================================
def uri_encode(value: str, safe: str = "-_.~") -> str:
    """RFC 3986 percent-encoding (unreserved characters left as is)."""
    return quote(value, safe=safe)


def encode_path(path: str) -> str:
    """Percent-encode a resource path, keeping the slashes."""
    return uri_encode(path, safe="-_.~/")


def canonical_query(params: Mapping[str, Optional[str]]) -> str:
    """Sorted, RFC 3986 encoded query string; flags encode as "k="."""
    pairs = sorted(
        (uri_encode(k), uri_encode(v if v is not None else ""))
        for k, v in params.items()
    )
    return "&".join(f"{k}={v}" for k, v in pairs)


def _wire_query(params: Mapping[str, Optional[str]]) -> str:
    """Query string as sent on the wire; flags encode as a bare key."""
    parts = []
    for k in sorted(params):
        v = params[k]
        parts.append(uri_encode(k) if v is None else f"{uri_encode(k)}={uri_encode(v)}")
    return "&".join(parts)


def validate_resource_path(path: str) -> None:
    """
    Reject paths that cannot be signed or that an HTTP stack would rewrite.

    Raises:
        ConstructionError: Path is empty, relative, contains NUL, or has
            "." / ".." segments.
    """
    if not path or not path.startswith("/"):
        raise ConstructionError.malformed_path(path, "must start with '/'")
    if "\x00" in path:
        raise ConstructionError.malformed_path(path, "contains NUL")
    segments = path.split("/")[1:]
    if any(segment in (".", "..") for segment in segments):
        raise ConstructionError.malformed_path(path, "contains '.' or '..' segment")


def http_date(timestamp: datetime) -> str:
    """RFC 1123 date, e.g. "Tue, 27 Mar 2007 19:36:42 GMT"."""
    return format_datetime(timestamp.astimezone(timezone.utc), usegmt=True)


def _hmac(key: bytes, message: str, digest: str) -> bytes:
    return hmac.new(key, message.encode("utf-8"), digest).digest()


# =============================================================================
# SIGNER PROTOCOL
# =============================================================================
class Signer(Protocol):
    """Turns an unsigned request into a wire-ready one."""

    def sign_request(
        self,
        request: OperationRequest,
        credentials: Credentials,
        endpoint: ServiceEndpoint,
        timestamp: datetime,
    ) -> SignedRequest:
        ...


def _finish(
    request: OperationRequest,
    endpoint: ServiceEndpoint,
    headers: dict[str, str],
    body: Body,
    query: Mapping[str, Optional[str]],
) -> SignedRequest:
    url = f"{endpoint.scheme}://{endpoint.host}{encode_path(request.path)}"
    query_string = _wire_query(query)
    if query_string:
        url = f"{url}?{query_string}"
    return SignedRequest(
        method=request.method,
        url=url,
        headers=MappingProxyType(headers),
        body=body,
        operation=request.operation,
        resource=request.resource,
        idempotent=request.idempotent,
    )


def _with_length(method: HTTPMethod, headers: dict[str, str], body: Body) -> None:
    if body.length or method in (HTTPMethod.PUT, HTTPMethod.POST):
        headers["Content-Length"] = str(body.length)


# =============================================================================
# OBJECT STORAGE: HMAC-SHA1 HEADER SIGNATURE
# =============================================================================
class S3SignerV2:
    """
    Header signature for object storage.

    String to sign:
        METHOD \\n Content-MD5 \\n Content-Type \\n Date \\n
        CanonicalizedAmzHeaders CanonicalizedResource
    """

    def string_to_sign(
        self,
        method: Union[HTTPMethod, str],
        resource_path: str,
        headers: Mapping[str, str],
        timestamp: datetime,
        query: Optional[Mapping[str, Optional[str]]] = None,
    ) -> str:
        validate_resource_path(resource_path)
        lowered = {k.lower(): v for k, v in headers.items()}

        # An x-amz-date header supersedes Date and empties its slot
        if C.HEADER_AMZ_DATE in lowered:
            date = ""
        else:
            date = lowered.get("date") or http_date(timestamp)

        lines = [
            HTTPMethod(method).value,
            lowered.get("content-md5", ""),
            lowered.get("content-type", ""),
            date,
        ]
        return "\n".join(lines) + "\n" + self._amz_headers(lowered) + self._resource(
            resource_path, query or {},
        )

    def sign(
        self,
        credentials: Credentials,
        method: Union[HTTPMethod, str],
        resource_path: str,
        headers: Mapping[str, str],
        timestamp: datetime,
        query: Optional[Mapping[str, Optional[str]]] = None,
    ) -> str:
        """Base64 HMAC-SHA1 signature of the canonical string."""
        to_sign = self.string_to_sign(method, resource_path, headers, timestamp, query)
        mac = _hmac(credentials.secret_access_key.encode("utf-8"), to_sign, "sha1")
        return base64.b64encode(mac).decode("ascii")

    def sign_request(
        self,
        request: OperationRequest,
        credentials: Credentials,
        endpoint: ServiceEndpoint,
        timestamp: datetime,
    ) -> SignedRequest:
        headers = dict(request.headers)
        headers["Date"] = http_date(timestamp)
        if credentials.session_token:
            headers[C.HEADER_SECURITY_TOKEN] = credentials.session_token
        signature = self.sign(
            credentials, request.method, request.path, headers, timestamp, request.query,
        )
        headers["Authorization"] = f"AWS {credentials.access_key_id}:{signature}"
        _with_length(request.method, headers, request.body)
        return _finish(request, endpoint, headers, request.body, request.query)

    @staticmethod
    def _amz_headers(lowered: Mapping[str, str]) -> str:
        lines = []
        for name in sorted(k for k in lowered if k.startswith(C.HEADER_AMZ_PREFIX)):
            folded = _WHITESPACE_RE.sub(" ", lowered[name].strip())
            lines.append(f"{name}:{folded}\n")
        return "".join(lines)

    @staticmethod
    def _resource(path: str, query: Mapping[str, Optional[str]]) -> str:
        subresources = sorted(k for k in query if k in C.S3_SUBRESOURCES)
        if not subresources:
            return encode_path(path)
        parts = [k if query[k] is None else f"{k}={query[k]}" for k in subresources]
        return encode_path(path) + "?" + "&".join(parts)


# =============================================================================
# MESSAGE QUEUE: HMAC-SHA256 QUERY SIGNATURE
# =============================================================================
class QuerySignerV2:
    """
    Parameter signature for the form-encoded query protocol.

    String to sign:
        METHOD \\n host \\n path \\n sorted-encoded-parameters
    """

    def string_to_sign(
        self,
        method: Union[HTTPMethod, str],
        host: str,
        resource_path: str,
        params: Mapping[str, str],
    ) -> str:
        validate_resource_path(resource_path)
        return "\n".join([
            HTTPMethod(method).value,
            host.lower(),
            encode_path(resource_path),
            canonical_query(params),
        ])

    def sign(
        self,
        credentials: Credentials,
        method: Union[HTTPMethod, str],
        host: str,
        resource_path: str,
        params: Mapping[str, str],
    ) -> str:
        to_sign = self.string_to_sign(method, host, resource_path, params)
        mac = _hmac(credentials.secret_access_key.encode("utf-8"), to_sign, "sha256")
        return base64.b64encode(mac).decode("ascii")

    def auth_params(
        self,
        credentials: Credentials,
        timestamp: datetime,
    ) -> dict[str, str]:
        params = {
            "AWSAccessKeyId": credentials.access_key_id,
            "SignatureVersion": "2",
            "SignatureMethod": "HmacSHA256",
            "Timestamp": timestamp.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        }
        if credentials.session_token:
            params["SecurityToken"] = credentials.session_token
        return params

    def sign_request(
        self,
        request: OperationRequest,
        credentials: Credentials,
        endpoint: ServiceEndpoint,
        timestamp: datetime,
    ) -> SignedRequest:
        params = {**(request.form or {}), **self.auth_params(credentials, timestamp)}
        for k, v in request.query.items():
            params[k] = v or ""
        params["Signature"] = self.sign(
            credentials, request.method, endpoint.host, request.path, params,
        )

        headers = dict(request.headers)
        if request.form is not None:
            # Everything, signature included, travels in the form body
            body: Body = BytesBody(canonical_query(params).encode("utf-8"))
            query: Mapping[str, Optional[str]] = {}
        else:
            body = request.body
            query = params
        _with_length(request.method, headers, body)
        return _finish(request, endpoint, headers, body, query)


# =============================================================================
# VERSION 4: DERIVED-KEY HMAC-SHA256
# =============================================================================
class SignerV4:
    """
    Version 4 signature, accepted by every current region.

    Streamed bodies are sent with the UNSIGNED-PAYLOAD marker so the stream
    is read only once.
    """

    ALGORITHM = "AWS4-HMAC-SHA256"

    def canonical_request(
        self,
        method: Union[HTTPMethod, str],
        resource_path: str,
        query: Mapping[str, Optional[str]],
        headers: Mapping[str, str],
        payload_hash: str,
    ) -> tuple[str, str]:
        """
        Returns:
            (canonical_request, signed_headers)
        """
        validate_resource_path(resource_path)
        lowered = {
            k.lower(): _WHITESPACE_RE.sub(" ", v.strip())
            for k, v in headers.items()
            if k.lower() == "host"
            or k.lower() in _V4_SIGNED_HEADERS
            or k.lower().startswith(C.HEADER_AMZ_PREFIX)
        }
        names = sorted(lowered)
        signed_headers = ";".join(names)
        canonical = "\n".join([
            HTTPMethod(method).value,
            encode_path(resource_path),
            canonical_query(query),
            "".join(f"{n}:{lowered[n]}\n" for n in names),
            signed_headers,
            payload_hash,
        ])
        return canonical, signed_headers

    @staticmethod
    def scope(timestamp: datetime, endpoint: ServiceEndpoint) -> str:
        day = timestamp.astimezone(timezone.utc).strftime("%Y%m%d")
        return f"{day}/{endpoint.region}/{endpoint.service}/aws4_request"

    @staticmethod
    def signing_key(secret: str, timestamp: datetime, region: str, service: str) -> bytes:
        day = timestamp.astimezone(timezone.utc).strftime("%Y%m%d")
        key = _hmac(f"AWS4{secret}".encode("utf-8"), day, "sha256")
        key = _hmac(key, region, "sha256")
        key = _hmac(key, service, "sha256")
        return _hmac(key, "aws4_request", "sha256")

    @staticmethod
    def payload_hash(body: Body) -> str:
        if isinstance(body, EmptyBody):
            return hashlib.sha256(b"").hexdigest()
        if isinstance(body, BytesBody):
            return hashlib.sha256(body.data).hexdigest()
        return C.UNSIGNED_PAYLOAD

    def sign_request(
        self,
        request: OperationRequest,
        credentials: Credentials,
        endpoint: ServiceEndpoint,
        timestamp: datetime,
    ) -> SignedRequest:
        body: Body = request.body
        if request.form is not None:
            body = BytesBody(canonical_query(request.form).encode("utf-8"))

        payload_hash = self.payload_hash(body)
        amz_date = timestamp.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")

        headers = dict(request.headers)
        headers["Host"] = endpoint.host
        headers[C.HEADER_AMZ_DATE] = amz_date
        headers[C.HEADER_CONTENT_SHA256] = payload_hash
        if credentials.session_token:
            headers[C.HEADER_SECURITY_TOKEN] = credentials.session_token

        canonical, signed_headers = self.canonical_request(
            request.method, request.path, request.query, headers, payload_hash,
        )
        scope = self.scope(timestamp, endpoint)
        to_sign = "\n".join([
            self.ALGORITHM,
            amz_date,
            scope,
            hashlib.sha256(canonical.encode("utf-8")).hexdigest(),
        ])
        key = self.signing_key(
            credentials.secret_access_key, timestamp, endpoint.region, endpoint.service,
        )
        signature = hmac.new(key, to_sign.encode("utf-8"), hashlib.sha256).hexdigest()

        headers["Authorization"] = (
            f"{self.ALGORITHM} Credential={credentials.access_key_id}/{scope}, "
            f"SignedHeaders={signed_headers}, Signature={signature}"
        )
        # aiohttp derives Host from the URL
        del headers["Host"]
        _with_length(request.method, headers, body)
        return _finish(request, endpoint, headers, body, request.query)


# =============================================================================
# ENTRY POINTS
# =============================================================================
def signer_for(endpoint: ServiceEndpoint) -> Signer:
    """Pick the scheme the endpoint is configured for."""
    if endpoint.signature_version == C.SIGNATURE_V4:
        return SignerV4()
    if endpoint.service == "sqs":
        return QuerySignerV2()
    return S3SignerV2()


def sign_request(
    request: OperationRequest,
    credentials: Credentials,
    endpoint: ServiceEndpoint,
    signer: Signer,
    timestamp: Optional[datetime] = None,
) -> SignedRequest:
    """
    Sign `request` for `endpoint` at `timestamp` (now when omitted).

    Raises:
        ConstructionError: The resource path is malformed.
    """
    if timestamp is None:
        timestamp = datetime.now(timezone.utc)
    return signer.sign_request(request, credentials, endpoint, timestamp)


__all__ = [
    "QuerySignerV2",
    "S3SignerV2",
    "SignedRequest",
    "Signer",
    "SignerV4",
    "canonical_query",
    "encode_path",
    "http_date",
    "sign_request",
    "signer_for",
    "uri_encode",
    "validate_resource_path",
]
