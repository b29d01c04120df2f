"""
Unit Tests: Request Building

Tests:
    - Name validation (bucket, key, queue)
    - Listing parameters and the maxKeys policy
    - Put bodies: bytes, sized streams, measured streams, unseekable streams
    - Conditional get headers
    - Message queue form parameters
"""

import io

import pytest

from awsrest.core.errors import ConstructionError, ErrorCode, SizeUnknownError
from awsrest.core.types import HTTPMethod
from awsrest.protocol.request import (
    BytesBody,
    EmptyBody,
    KnownLength,
    MeasureBySeeking,
    S3RequestBuilder,
    SQSRequestBuilder,
    StreamBody,
    measure_stream,
    normalize_etag,
    queue_path,
)

QUEUE_URL = "https://sqs.us-east-1.amazonaws.com/123456789012/orders"


class UnseekableStream(io.RawIOBase):
    """Readable stream that refuses to seek, like a pipe or socket."""

    def __init__(self, data: bytes):
        self._inner = io.BytesIO(data)

    def readable(self):
        return True

    def seekable(self):
        return False

    def read(self, size=-1):
        return self._inner.read(size)


class TestValidation:
    """Tests for name validation before any I/O."""

    @pytest.fixture
    def builder(self):
        return S3RequestBuilder()

    def test_empty_bucket_rejected(self, builder):
        with pytest.raises(ConstructionError) as info:
            builder.get("", "key")
        assert info.value.code == ErrorCode.CONSTRUCTION_INVALID_NAME

    def test_empty_key_rejected(self, builder):
        with pytest.raises(ConstructionError):
            builder.head("bucket1", "")

    def test_bucket_with_slash_rejected(self, builder):
        with pytest.raises(ConstructionError):
            builder.create_bucket("a/b")

    def test_oversized_key_rejected(self, builder):
        with pytest.raises(ConstructionError):
            builder.delete("bucket1", "k" * 1025)

    @pytest.mark.parametrize("name", ["", "has space", "x" * 81, "dots.in.name"])
    def test_invalid_queue_names(self, name):
        with pytest.raises(ConstructionError):
            SQSRequestBuilder().create_queue(name)

    def test_fifo_queue_name_allowed(self):
        request = SQSRequestBuilder().create_queue("orders.fifo")
        assert request.form["QueueName"] == "orders.fifo"


class TestS3RequestBuilder:
    """Tests for object storage requests."""

    @pytest.fixture
    def builder(self):
        return S3RequestBuilder()

    def test_create_bucket_default_region(self, builder):
        """No location constraint in the default region."""
        request = builder.create_bucket("bucket1", "us-east-1")
        assert request.method == HTTPMethod.PUT
        assert request.path == "/bucket1"
        assert isinstance(request.body, EmptyBody)

    def test_create_bucket_other_region(self, builder):
        """Other regions send a CreateBucketConfiguration document."""
        request = builder.create_bucket("bucket1", "eu-west-1")
        assert isinstance(request.body, BytesBody)
        assert b"<LocationConstraint>eu-west-1</LocationConstraint>" in request.body.data
        assert request.headers["Content-Type"] == "application/xml"

    @pytest.mark.parametrize("region", [
        "eu</LocationConstraint><x>",
        "EU-WEST-1",
        "eu-west-1\n",
        "eu--west",
    ])
    def test_create_bucket_rejects_malformed_region(self, builder, region):
        """Region names never reach the XML body unchecked."""
        with pytest.raises(ConstructionError) as info:
            builder.create_bucket("bucket1", region)
        assert info.value.context["argument"] == "region"

    def test_list_all_buckets(self, builder):
        request = builder.list_all_buckets()
        assert request.method == HTTPMethod.GET
        assert request.path == "/"

    def test_list_bucket_query(self, builder):
        """Non-empty listing parameters become query parameters."""
        request = builder.list_bucket("bucket1", prefix="a/", marker="a/m", max_keys=10, delimiter="/")
        assert dict(request.query) == {
            "prefix": "a/",
            "marker": "a/m",
            "delimiter": "/",
            "max-keys": "10",
        }

    def test_list_bucket_without_delimiter(self, builder):
        """Empty prefix and marker are omitted, as is a missing delimiter."""
        request = builder.list_bucket("bucket1", max_keys=5)
        assert dict(request.query) == {"max-keys": "5"}

    @pytest.mark.parametrize("max_keys", [None, 0, -3])
    def test_non_positive_max_keys_uses_service_default(self, builder, max_keys):
        request = builder.list_bucket("bucket1", max_keys=max_keys)
        assert "max-keys" not in request.query

    def test_put_bytes(self, builder):
        """In-memory puts are replayable and idempotent."""
        request = builder.put("bucket1", "k1", b"hello", "text/plain", metadata={"Author": "jane"})
        assert isinstance(request.body, BytesBody)
        assert request.body.length == 5
        assert request.headers["Content-Type"] == "text/plain"
        assert request.headers["x-amz-meta-author"] == "jane"
        assert request.idempotent

    def test_put_default_content_type(self, builder):
        request = builder.put("bucket1", "k1", b"x")
        assert request.headers["Content-Type"] == "binary/octet-stream"

    def test_put_stream_known_length(self, builder):
        """A declared size is used as is."""
        stream = io.BytesIO(b"hello world")
        request = builder.put("bucket1", "k1", stream, size=KnownLength(5))
        assert isinstance(request.body, StreamBody)
        assert request.body.length == 5
        assert request.body.start == 0

    def test_put_stream_measured(self, builder):
        """Measuring starts from the current position and leaves it there."""
        stream = io.BytesIO(b"skip-hello")
        stream.seek(5)
        request = builder.put("bucket1", "k1", stream, size=MeasureBySeeking())
        assert request.body.length == 5
        assert request.body.start == 5
        assert stream.tell() == 5
        assert request.idempotent

    def test_put_stream_default_measures(self, builder):
        request = builder.put("bucket1", "k1", io.BytesIO(b"abc"))
        assert request.body.length == 3

    def test_put_unseekable_stream_without_size(self, builder):
        """Unknown size on an unseekable stream fails at build time."""
        with pytest.raises(SizeUnknownError) as info:
            builder.put("bucket1", "k1", UnseekableStream(b"data"))
        assert info.value.code == ErrorCode.CONSTRUCTION_SIZE_UNKNOWN
        assert info.value.context == {"bucket": "bucket1", "key": "k1"}

    def test_put_unseekable_stream_with_size(self, builder):
        """A sized unseekable stream is sent once and never retried."""
        request = builder.put("bucket1", "k1", UnseekableStream(b"data"), size=KnownLength(4))
        assert request.body.length == 4
        assert not request.body.replayable
        assert not request.idempotent

    def test_put_declared_size_longer_than_stream(self, builder):
        """A seekable stream shorter than its declared size is rejected up front."""
        stream = io.BytesIO(b"data")
        with pytest.raises(ConstructionError) as info:
            builder.put("bucket1", "k1", stream, size=KnownLength(10))
        assert info.value.code == ErrorCode.CONSTRUCTION_INVALID_ARGUMENT
        assert info.value.context["argument"] == "size"
        assert stream.tell() == 0

    def test_put_negative_size_rejected(self, builder):
        with pytest.raises(ConstructionError):
            builder.put("bucket1", "k1", io.BytesIO(b"x"), size=KnownLength(-1))

    def test_put_rejects_non_stream(self, builder):
        with pytest.raises(ConstructionError):
            builder.put("bucket1", "k1", 12345)

    def test_conditional_get(self, builder):
        """A prior ETag becomes If-None-Match, quoted."""
        request = builder.get("bucket1", "k1", old_etag="abc123")
        assert request.headers["If-None-Match"] == '"abc123"'
        assert builder.get("bucket1", "k1").headers == {}

    def test_object_paths(self, builder):
        assert builder.delete("bucket1", "a/b c").path == "/bucket1/a/b c"
        assert builder.head("bucket1", "k").method == HTTPMethod.HEAD


class TestSQSRequestBuilder:
    """Tests for message queue requests."""

    @pytest.fixture
    def builder(self):
        return SQSRequestBuilder()

    def test_common_form_fields(self, builder):
        request = builder.list_queues("ord")
        assert request.method == HTTPMethod.POST
        assert request.form["Action"] == "ListQueues"
        assert request.form["Version"] == "2012-11-05"
        assert request.form["QueueNamePrefix"] == "ord"

    def test_create_queue_visibility(self, builder):
        request = builder.create_queue("orders", default_visibility_timeout=45)
        assert request.form["Attribute.1.Name"] == "VisibilityTimeout"
        assert request.form["Attribute.1.Value"] == "45"

    def test_queue_path_from_url(self, builder):
        request = builder.delete_queue(QUEUE_URL)
        assert request.path == "/123456789012/orders"
        assert request.idempotent

    def test_send_message_not_idempotent(self, builder):
        request = builder.send_message(QUEUE_URL, "hello")
        assert request.form["MessageBody"] == "hello"
        assert not request.idempotent

    def test_send_empty_message_rejected(self, builder):
        with pytest.raises(ConstructionError):
            builder.send_message(QUEUE_URL, "")

    @pytest.mark.parametrize("count", [0, 11])
    def test_receive_bounds(self, builder, count):
        with pytest.raises(ConstructionError):
            builder.receive_message(QUEUE_URL, count)

    def test_receive_message(self, builder):
        request = builder.receive_message(QUEUE_URL, 10, visibility_timeout=5)
        assert request.form["MaxNumberOfMessages"] == "10"
        assert request.form["VisibilityTimeout"] == "5"
        assert not request.idempotent

    def test_delete_message_requires_handle(self, builder):
        with pytest.raises(ConstructionError):
            builder.delete_message(QUEUE_URL, "")

    def test_get_queue_attributes(self, builder):
        request = builder.get_queue_attributes(QUEUE_URL, ("VisibilityTimeout", "QueueArn"))
        assert request.form["AttributeName.1"] == "VisibilityTimeout"
        assert request.form["AttributeName.2"] == "QueueArn"


class TestHelpers:
    """Tests for stream measurement and small helpers."""

    def test_measure_stream(self):
        stream = io.BytesIO(b"0123456789")
        stream.seek(3)
        assert measure_stream(stream, "b", "k") == (3, 7)
        assert stream.tell() == 3

    def test_measure_unseekable(self):
        with pytest.raises(SizeUnknownError):
            measure_stream(UnseekableStream(b"x"), "b", "k")

    def test_stream_body_rewind(self):
        stream = io.BytesIO(b"abcdef")
        body = StreamBody(stream, 4, 2)
        stream.read()
        body.rewind()
        assert stream.tell() == 2

    @pytest.mark.parametrize("url", ["", "not a url", "https://host", "https://host/"])
    def test_bad_queue_urls(self, url):
        with pytest.raises(ConstructionError):
            queue_path(url)

    def test_normalize_etag(self):
        assert normalize_etag("abc") == '"abc"'
        assert normalize_etag('"abc"') == '"abc"'
        assert normalize_etag('W/"abc"') == 'W/"abc"'


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
