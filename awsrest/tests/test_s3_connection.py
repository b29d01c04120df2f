"""
Integration Tests: Object Storage Connection

Runs every bucket and object operation against the in-process fake
service, which verifies each request's signature from the bytes on the
wire.

Tests:
    - Bucket lifecycle and listing properties
    - Put/get round trips, conditional get, streaming in both directions
    - Pagination equivalence with and without delimiters
    - Retry on transient failures, no retry on client errors
    - Transport faults: refused connections, timeouts, closed factory
    - Legacy header signature end to end
"""

import asyncio
import io

import pytest

from awsrest.core.errors import (
    ConstructionError,
    CreateBucketFault,
    DeleteBucketFault,
    ErrorCode,
    GetFault,
    HeadFault,
    ListAllBucketsFault,
    ListBucketFault,
    SizeUnknownError,
    TransportFault,
)
from awsrest.core.types import Err, Ok
from awsrest.factory import ConnectionFactory
from awsrest.protocol.request import KnownLength
from awsrest.tests.fake_service import ACCESS_KEY, SECRET_KEY, make_config, running_service


def assert_ok(result):
    """Unwrap an Ok result, failing with the fault otherwise."""
    if result.is_err():
        raise AssertionError(f"Expected Ok result: {result.error}")
    return result.unwrap()


def assert_err(result, fault_type):
    assert result.is_err(), f"Expected Err result, got {result}"
    assert isinstance(result.error, fault_type), repr(result.error)
    return result.error


class UnseekableStream(io.RawIOBase):
    def __init__(self, data: bytes):
        self._inner = io.BytesIO(data)

    def readable(self):
        return True

    def seekable(self):
        return False

    def read(self, size=-1):
        return self._inner.read(size)


async def with_bucket(factory, bucket="bucket1"):
    s3 = factory.create_s3_connection(ACCESS_KEY, SECRET_KEY)
    assert_ok(await s3.create_bucket(bucket))
    return s3


class TestBuckets:
    """Tests for bucket operations."""

    def test_create_then_list_includes_once(self):
        async def scenario():
            async with running_service() as (fake, factory):
                s3 = await with_bucket(factory, "bucket1")
                assert_ok(await s3.create_bucket("bucket2"))

                again = await s3.create_bucket("bucket1")
                fault = assert_err(again, CreateBucketFault)
                assert fault.service_code == "BucketAlreadyOwnedByYou"
                assert fault.code == ErrorCode.SERVICE_CONFLICT

                listing = assert_ok(await s3.list_all_buckets())
                names = [b.name for b in listing.buckets]
                assert names.count("bucket1") == 1
                assert names.count("bucket2") == 1
                assert listing.owner is not None
                assert listing.request_id

        asyncio.run(scenario())

    def test_delete_bucket(self):
        async def scenario():
            async with running_service() as (fake, factory):
                s3 = await with_bucket(factory)
                assert_ok(await s3.put("bucket1", "k1", b"x"))

                fault = assert_err(await s3.delete_bucket("bucket1"), DeleteBucketFault)
                assert fault.service_code == "BucketNotEmpty"

                assert_ok(await s3.delete("bucket1", "k1"))
                assert_ok(await s3.delete_bucket("bucket1"))
                assert "bucket1" not in fake.buckets

                missing = assert_err(await s3.delete_bucket("bucket1"), DeleteBucketFault)
                assert missing.is_not_found

        asyncio.run(scenario())

    def test_empty_bucket_listing(self):
        async def scenario():
            async with running_service() as (fake, factory):
                s3 = await with_bucket(factory)
                page = assert_ok(await s3.list_bucket("bucket1"))
                assert len(page) == 0
                assert not page.is_truncated

        asyncio.run(scenario())

    def test_delimiter_rollup(self):
        """Keys sharing a prefix up to the delimiter collapse into one prefix."""
        async def scenario():
            async with running_service() as (fake, factory):
                s3 = await with_bucket(factory)
                for key in ("a/x", "a/y", "b/z", "top"):
                    assert_ok(await s3.put("bucket1", key, b"data"))

                page = assert_ok(await s3.list_bucket("bucket1", "", "", 1000, "/"))
                assert page.common_prefixes == ("a/", "b/")
                assert [e.key for e in page.entries] == ["top"]

                nested = assert_ok(await s3.list_bucket("bucket1", prefix="a/", delimiter="/"))
                assert [e.key for e in nested.entries] == ["a/x", "a/y"]
                assert nested.common_prefixes == ()

                flat = assert_ok(await s3.list_bucket("bucket1"))
                assert [e.key for e in flat.entries] == ["a/x", "a/y", "b/z", "top"]
                assert flat.entries[0].size == 4

        asyncio.run(scenario())


class TestObjects:
    """Tests for object operations."""

    def test_put_stream_then_get(self):
        """A 5-byte stream with explicit size reads back byte-identical."""
        async def scenario():
            async with running_service() as (fake, factory):
                s3 = await with_bucket(factory)
                put = assert_ok(await s3.put("bucket1", "k1", io.BytesIO(b"hello"), "text/plain", size=5))
                assert put.etag

                got = assert_ok(await s3.get("bucket1", "k1"))
                assert got.data == b"hello"
                assert got.info.content_type == "text/plain"
                assert got.etag == put.etag
                assert got.request_id

        asyncio.run(scenario())

    def test_round_trip_binary_and_unicode_key(self):
        async def scenario():
            async with running_service() as (fake, factory):
                s3 = await with_bucket(factory)
                data = bytes(range(256)) * 40
                key = "dir/héllo wörld+1.bin"
                assert_ok(await s3.put("bucket1", key, data, metadata={"Author": "jane"}))

                got = assert_ok(await s3.get("bucket1", key))
                assert got.data == data
                assert got.info.content_type == "binary/octet-stream"
                assert dict(got.info.user_metadata) == {"author": "jane"}

        asyncio.run(scenario())

    def test_measured_stream(self):
        """A stream without a size is measured from its current position."""
        async def scenario():
            async with running_service() as (fake, factory):
                s3 = await with_bucket(factory)
                stream = io.BytesIO(b"ignored:payload")
                stream.seek(8)
                assert_ok(await s3.put("bucket1", "k1", stream))
                assert fake.buckets["bucket1"]["k1"].data == b"payload"

        asyncio.run(scenario())

    def test_unseekable_stream_fails_before_io(self):
        async def scenario():
            async with running_service() as (fake, factory):
                s3 = await with_bucket(factory)
                sent_before = len(fake.requests)
                result = await s3.put("bucket1", "k1", UnseekableStream(b"data"))
                fault = assert_err(result, SizeUnknownError)
                assert fault.code == ErrorCode.CONSTRUCTION_SIZE_UNKNOWN
                assert len(fake.requests) == sent_before

                sized = await s3.put("bucket1", "k2", UnseekableStream(b"data"), size=KnownLength(4))
                assert_ok(sized)
                assert fake.buckets["bucket1"]["k2"].data == b"data"

        asyncio.run(scenario())

    def test_etag_stable_and_conditional_get(self):
        async def scenario():
            async with running_service() as (fake, factory):
                s3 = await with_bucket(factory)
                assert_ok(await s3.put("bucket1", "k1", b"content"))

                first = assert_ok(await s3.get("bucket1", "k1"))
                second = assert_ok(await s3.get("bucket1", "k1"))
                assert first.etag == second.etag

                cached = assert_ok(await s3.get("bucket1", "k1", old_etag=first.etag))
                assert cached.not_modified
                assert cached.data == b""

                assert_ok(await s3.put("bucket1", "k1", b"changed"))
                fresh = assert_ok(await s3.get("bucket1", "k1", old_etag=first.etag))
                assert not fresh.not_modified
                assert fresh.data == b"changed"

        asyncio.run(scenario())

    def test_identical_puts_idempotent(self):
        async def scenario():
            async with running_service() as (fake, factory):
                s3 = await with_bucket(factory)
                a = assert_ok(await s3.put("bucket1", "k1", b"same", "text/plain"))
                b = assert_ok(await s3.put("bucket1", "k1", b"same", "text/plain"))
                assert a.etag == b.etag
                assert len(fake.buckets["bucket1"]) == 1
                assert assert_ok(await s3.get("bucket1", "k1")).data == b"same"

        asyncio.run(scenario())

    def test_delete_then_head_not_found(self):
        async def scenario():
            async with running_service() as (fake, factory):
                s3 = await with_bucket(factory)
                assert_ok(await s3.put("bucket1", "k1", b"hello"))

                head = assert_ok(await s3.head("bucket1", "k1"))
                assert head.info.content_length == 5
                assert not hasattr(head, "data")

                assert_ok(await s3.delete("bucket1", "k1"))
                fault = assert_err(await s3.head("bucket1", "k1"), HeadFault)
                assert fault.is_not_found
                assert fault.request_id

                # Deleting a missing key succeeds
                assert_ok(await s3.delete("bucket1", "k1"))

        asyncio.run(scenario())

    def test_get_from_missing_bucket(self):
        async def scenario():
            async with running_service() as (fake, factory):
                s3 = factory.create_s3_connection(ACCESS_KEY, SECRET_KEY)
                fault = assert_err(await s3.get("no-such-bucket", "k1"), GetFault)
                assert fault.is_not_found
                assert fault.service_code == "NoSuchBucket"
                assert fault.request_id
                assert fault.resource == "no-such-bucket/k1"

        asyncio.run(scenario())

    def test_streamed_get(self):
        async def scenario():
            async with running_service(chunk_size=1024) as (fake, factory):
                s3 = await with_bucket(factory)
                data = b"z" * 10_000
                assert_ok(await s3.put("bucket1", "big", data))

                result = assert_ok(await s3.get("bucket1", "big", stream=True))
                assert result.data == b""
                chunks = []
                async with result.stream as body:
                    async for chunk in body.iter_chunks():
                        chunks.append(chunk)
                assert b"".join(chunks) == data
                assert all(len(c) <= 1024 for c in chunks)

        asyncio.run(scenario())

    def test_invalid_names_fail_without_io(self):
        async def scenario():
            async with running_service() as (fake, factory):
                s3 = factory.create_s3_connection(ACCESS_KEY, SECRET_KEY)
                assert_err(await s3.get("", "k"), ConstructionError)
                assert_err(await s3.put("bucket1", "", b"x"), ConstructionError)
                assert fake.requests == []
                with pytest.raises(ConstructionError):
                    s3.iter_bucket("")

        asyncio.run(scenario())

    def test_concurrent_operations(self):
        async def scenario():
            async with running_service() as (fake, factory):
                s3 = await with_bucket(factory)
                puts = await asyncio.gather(*(
                    s3.put("bucket1", f"k{i:02d}", f"value-{i}".encode()) for i in range(20)
                ))
                assert all(r.is_ok() for r in puts)
                gets = await asyncio.gather(*(s3.get("bucket1", f"k{i:02d}") for i in range(20)))
                assert [g.unwrap().data for g in gets] == [f"value-{i}".encode() for i in range(20)]

        asyncio.run(scenario())


class TestPagination:
    """Tests for marker-based pagination against the service."""

    KEYS = ["a/1", "a/2", "b/1", "c", "d/1", "d/2", "d/3", "e"]

    async def _populate(self, factory):
        s3 = await with_bucket(factory)
        for key in self.KEYS:
            assert_ok(await s3.put("bucket1", key, b"."))
        return s3

    def test_pages_concatenate_to_full_listing(self):
        async def scenario():
            async with running_service() as (fake, factory):
                s3 = await self._populate(factory)
                full = assert_ok(await s3.list_bucket("bucket1"))
                expected = [e.key for e in full.entries]

                for max_keys in (1, 2, 3, 8, 100):
                    keys = [e.key async for e in s3.iter_bucket("bucket1", max_keys=max_keys)]
                    assert keys == expected, max_keys

        asyncio.run(scenario())

    def test_manual_marker_following(self):
        async def scenario():
            async with running_service() as (fake, factory):
                s3 = await self._populate(factory)
                keys, marker = [], ""
                while True:
                    page = assert_ok(await s3.list_bucket("bucket1", marker=marker, max_keys=3))
                    keys.extend(e.key for e in page.entries)
                    if not page.is_truncated:
                        break
                    marker = page.entries[-1].key
                assert keys == sorted(self.KEYS)

        asyncio.run(scenario())

    def test_delimited_pages(self):
        """Rollups across page boundaries are neither lost nor repeated."""
        async def scenario():
            async with running_service() as (fake, factory):
                s3 = await self._populate(factory)
                full = assert_ok(await s3.list_bucket("bucket1", delimiter="/"))

                for max_keys in (1, 2, 4):
                    entries, prefixes = [], []
                    async for page in s3.iter_bucket("bucket1", delimiter="/", max_keys=max_keys).pages():
                        entries.extend(e.key for e in page.entries)
                        prefixes.extend(page.common_prefixes)
                    assert entries == [e.key for e in full.entries] == ["c", "e"]
                    assert prefixes == list(full.common_prefixes) == ["a/", "b/", "d/"]

        asyncio.run(scenario())

    def test_limit(self):
        async def scenario():
            async with running_service() as (fake, factory):
                s3 = await self._populate(factory)
                keys = [e.key async for e in s3.iter_bucket("bucket1", max_keys=3, limit=5)]
                assert keys == sorted(self.KEYS)[:5]

        asyncio.run(scenario())

    def test_fault_raised_from_iteration(self):
        async def scenario():
            async with running_service() as (fake, factory):
                s3 = factory.create_s3_connection(ACCESS_KEY, SECRET_KEY)
                with pytest.raises(ListBucketFault) as info:
                    async for _ in s3.iter_bucket("missing-bucket"):
                        pass
                assert info.value.is_not_found

        asyncio.run(scenario())


class TestRetries:
    """Tests for transport retry behavior."""

    ERROR_503 = b"<Error><Code>ServiceUnavailable</Code><Message>Reduce your request rate</Message></Error>"

    def test_transient_error_retried(self):
        async def scenario():
            async with running_service(max_retries=2) as (fake, factory):
                s3 = await with_bucket(factory)
                assert_ok(await s3.put("bucket1", "k1", b"hello"))

                fake.inject(503, self.ERROR_503, count=2)
                before = len(fake.requests)
                got = assert_ok(await s3.get("bucket1", "k1"))
                assert got.data == b"hello"
                assert len(fake.requests) - before == 3
                assert factory.transport.metrics.retries == 2

        asyncio.run(scenario())

    def test_retry_exhausted_returns_last_fault(self):
        async def scenario():
            async with running_service(max_retries=2) as (fake, factory):
                s3 = await with_bucket(factory)
                fake.inject(500, b"<Error><Code>InternalError</Code><Message>boom</Message></Error>", count=3)
                before = len(fake.requests)
                fault = assert_err(await s3.head("bucket1", "k1"), HeadFault)
                assert fault.status == 500
                assert len(fake.requests) - before == 3

        asyncio.run(scenario())

    def test_stream_put_rewound_on_retry(self):
        async def scenario():
            async with running_service(max_retries=1) as (fake, factory):
                s3 = await with_bucket(factory)
                fake.inject(503, self.ERROR_503)
                assert_ok(await s3.put("bucket1", "k1", io.BytesIO(b"stream body")))
                assert fake.buckets["bucket1"]["k1"].data == b"stream body"

        asyncio.run(scenario())

    def test_unreplayable_put_not_retried(self):
        async def scenario():
            async with running_service(max_retries=3) as (fake, factory):
                s3 = await with_bucket(factory)
                fake.inject(503, self.ERROR_503)
                before = len(fake.requests)
                result = await s3.put("bucket1", "k1", UnseekableStream(b"data"), size=4)
                assert result.is_err()
                assert result.error.status == 503
                assert len(fake.requests) - before == 1

        asyncio.run(scenario())

    def test_declared_size_longer_than_seekable_stream(self):
        """An oversized declaration fails before any request is sent."""
        async def scenario():
            async with running_service(max_retries=2) as (fake, factory):
                s3 = await with_bucket(factory)
                before = len(fake.requests)
                result = await s3.put("bucket1", "k1", io.BytesIO(b"data"), size=10)
                fault = assert_err(result, ConstructionError)
                assert fault.code == ErrorCode.CONSTRUCTION_INVALID_ARGUMENT
                assert len(fake.requests) == before
                assert "k1" not in fake.buckets["bucket1"]

        asyncio.run(scenario())

    def test_stream_ending_early_is_not_a_timeout(self):
        """A stream that runs dry mid-upload aborts once, without waiting out the timeout."""
        async def scenario():
            async with running_service(request_timeout_s=5.0, max_retries=2) as (fake, factory):
                s3 = await with_bucket(factory)
                started = asyncio.get_running_loop().time()
                result = await s3.put("bucket1", "k1", UnseekableStream(b"data"), size=10)
                elapsed = asyncio.get_running_loop().time() - started
                fault = assert_err(result, ConstructionError)
                assert fault.context["argument"] == "size"
                assert "4 of 10" in fault.message
                assert elapsed < 5.0
                assert factory.transport.metrics.retries == 0
                assert "k1" not in fake.buckets["bucket1"]

        asyncio.run(scenario())

    def test_client_error_not_retried(self):
        """Bad credentials are reported at once, with the service's code."""
        async def scenario():
            async with running_service(max_retries=3) as (fake, factory):
                s3 = factory.create_s3_connection(ACCESS_KEY, "not-the-secret")
                fault = assert_err(await s3.list_all_buckets(), ListAllBucketsFault)
                assert fault.is_access_denied
                assert fault.service_code == "SignatureDoesNotMatch"
                assert len(fake.requests) == 1

        asyncio.run(scenario())

    def test_unknown_access_key(self):
        async def scenario():
            async with running_service() as (fake, factory):
                s3 = factory.create_s3_connection("AKIDUNKNOWN", SECRET_KEY)
                fault = (await s3.list_all_buckets()).error
                assert fault.service_code == "InvalidAccessKeyId"

        asyncio.run(scenario())


class TestTransportFaults:
    """Tests for faults raised below the service."""

    def test_connection_refused(self):
        async def scenario():
            async with ConnectionFactory(make_config("http://127.0.0.1:1", max_retries=1)) as factory:
                s3 = factory.create_s3_connection(ACCESS_KEY, SECRET_KEY)
                result = await s3.get("bucket1", "k1")
                fault = assert_err(result, TransportFault)
                assert fault.code == ErrorCode.TRANSPORT_CONNECTION_FAILED
                assert fault.context["attempts"] == 2
                assert fault.context["operation"] == "Get"
                assert factory.transport.metrics.connection_errors == 2

        asyncio.run(scenario())

    def test_timeout(self):
        async def scenario():
            async with running_service(request_timeout_s=0.2, max_retries=0) as (fake, factory):
                s3 = factory.create_s3_connection(ACCESS_KEY, SECRET_KEY)
                fake.delay_s = 0.6
                fault = assert_err(await s3.list_all_buckets(), TransportFault)
                assert fault.is_timeout
                assert fault.context["timeout_s"] == 0.2

        asyncio.run(scenario())

    def test_closed_factory(self):
        async def scenario():
            async with running_service() as (fake, factory):
                s3 = factory.create_s3_connection(ACCESS_KEY, SECRET_KEY)
                await factory.shutdown()

                fault = assert_err(await s3.list_all_buckets(), TransportFault)
                assert fault.code == ErrorCode.TRANSPORT_CLOSED
                assert fake.requests == []
                with pytest.raises(ConstructionError):
                    factory.create_s3_connection(ACCESS_KEY, SECRET_KEY)

        asyncio.run(scenario())


class TestLegacySignature:
    """Header signature (v2) against the same service."""

    def test_round_trip(self):
        async def scenario():
            async with running_service(signature_version="v2") as (fake, factory):
                s3 = await with_bucket(factory)
                assert_ok(await s3.put("bucket1", "dir/a b.txt", b"v2 body", "text/plain"))
                got = assert_ok(await s3.get("bucket1", "dir/a b.txt"))
                assert got.data == b"v2 body"

                page = assert_ok(await s3.list_bucket("bucket1", prefix="dir/", delimiter="/"))
                assert [e.key for e in page.entries] == ["dir/a b.txt"]
                assert fake.requests[-1].headers["Authorization"].startswith("AWS ")

        asyncio.run(scenario())


class TestResultShape:
    """Results are values; faults never escape as exceptions."""

    def test_results_are_ok_or_err(self):
        async def scenario():
            async with running_service() as (fake, factory):
                s3 = await with_bucket(factory)
                ok = await s3.put("bucket1", "k1", b"x")
                err = await s3.get("bucket1", "missing")
                assert isinstance(ok, Ok)
                assert isinstance(err, Err)
                with pytest.raises(GetFault):
                    err.unwrap()

        asyncio.run(scenario())


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
