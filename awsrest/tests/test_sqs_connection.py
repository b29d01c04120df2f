"""
Integration Tests: Message Queue Connection

Tests:
    - Queue lifecycle: create, list, attributes, delete
    - Send/receive/delete message round trips with checksum verification
    - Faults for missing queues; no retry for send and receive
    - Query signature (v2) end to end
"""

import asyncio

import pytest

from awsrest.core.errors import (
    ConstructionError,
    DeleteQueueFault,
    ErrorCode,
    SendMessageFault,
)
from awsrest.tests.fake_service import ACCESS_KEY, SECRET_KEY, running_service


def assert_ok(result):
    if result.is_err():
        raise AssertionError(f"Expected Ok result: {result.error}")
    return result.unwrap()


async def with_queue(factory, name="orders", **kwargs):
    sqs = factory.create_sqs_connection(ACCESS_KEY, SECRET_KEY)
    created = assert_ok(await sqs.create_queue(name, **kwargs))
    return sqs, created.queue_url


class TestQueues:
    """Tests for queue management."""

    def test_create_and_list(self):
        async def scenario():
            async with running_service() as (fake, factory):
                sqs, url = await with_queue(factory, "orders")
                await with_queue(factory, "invoices")
                assert url == fake.queue_url("orders")

                # Creating an existing queue returns its URL
                again = assert_ok(await sqs.create_queue("orders"))
                assert again.queue_url == url

                everything = assert_ok(await sqs.list_queues())
                assert everything.queue_urls == (fake.queue_url("invoices"), url)

                filtered = assert_ok(await sqs.list_queues("ord"))
                assert filtered.queue_urls == (url,)
                assert filtered.request_id

        asyncio.run(scenario())

    def test_attributes(self):
        async def scenario():
            async with running_service() as (fake, factory):
                sqs, url = await with_queue(factory, default_visibility_timeout=45)
                attributes = assert_ok(await sqs.get_queue_attributes(url)).attributes
                assert attributes["VisibilityTimeout"] == "45"
                assert attributes["ApproximateNumberOfMessages"] == "0"

        asyncio.run(scenario())

    def test_delete_queue(self):
        async def scenario():
            async with running_service() as (fake, factory):
                sqs, url = await with_queue(factory)
                deleted = assert_ok(await sqs.delete_queue(url))
                assert deleted.queue_url == url
                assert fake.queues == {}

                result = await sqs.delete_queue(url)
                assert isinstance(result.error, DeleteQueueFault)
                assert result.error.is_not_found
                assert result.error.request_id

        asyncio.run(scenario())

    def test_invalid_input_fails_without_io(self):
        async def scenario():
            async with running_service() as (fake, factory):
                sqs = factory.create_sqs_connection(ACCESS_KEY, SECRET_KEY)
                assert isinstance((await sqs.create_queue("bad name")).error, ConstructionError)
                assert isinstance((await sqs.send_message("not-a-url", "x")).error, ConstructionError)
                assert isinstance(
                    (await sqs.receive_message(fake.queue_url("q"), max_messages=11)).error,
                    ConstructionError,
                )
                assert fake.requests == []

        asyncio.run(scenario())


class TestMessages:
    """Tests for message round trips."""

    def test_send_receive_delete(self):
        async def scenario():
            async with running_service() as (fake, factory):
                sqs, url = await with_queue(factory)
                bodies = ["first", "second & <third>", "ünïcode"]
                sent = [assert_ok(await sqs.send_message(url, body)) for body in bodies]
                assert len({s.message_id for s in sent}) == 3

                received = assert_ok(await sqs.receive_message(url, max_messages=10))
                assert [m.body for m in received.messages] == bodies
                assert received.messages[0].attributes["ApproximateReceiveCount"] == "1"

                for message in received.messages:
                    assert_ok(await sqs.delete_message(url, message.receipt_handle))
                attributes = assert_ok(await sqs.get_queue_attributes(url)).attributes
                assert attributes["ApproximateNumberOfMessagesNotVisible"] == "0"

        asyncio.run(scenario())

    def test_receive_empty_queue(self):
        async def scenario():
            async with running_service() as (fake, factory):
                sqs, url = await with_queue(factory)
                received = assert_ok(await sqs.receive_message(url))
                assert received.messages == ()

        asyncio.run(scenario())

    def test_receive_respects_max(self):
        async def scenario():
            async with running_service() as (fake, factory):
                sqs, url = await with_queue(factory)
                for i in range(5):
                    assert_ok(await sqs.send_message(url, f"m{i}"))
                first = assert_ok(await sqs.receive_message(url, max_messages=2))
                rest = assert_ok(await sqs.receive_message(url, max_messages=10))
                assert [m.body for m in first.messages] == ["m0", "m1"]
                assert [m.body for m in rest.messages] == ["m2", "m3", "m4"]

        asyncio.run(scenario())

    def test_checksum_mismatch(self):
        """A wrong echoed checksum is a fault even though the status is 200."""
        async def scenario():
            async with running_service() as (fake, factory):
                sqs, url = await with_queue(factory)
                fake.corrupt_md5 = True
                result = await sqs.send_message(url, "hello")
                assert isinstance(result.error, SendMessageFault)
                assert result.error.code == ErrorCode.SERVICE_INTEGRITY_MISMATCH

        asyncio.run(scenario())

    def test_send_to_missing_queue(self):
        async def scenario():
            async with running_service() as (fake, factory):
                sqs = factory.create_sqs_connection(ACCESS_KEY, SECRET_KEY)
                result = await sqs.send_message(fake.queue_url("ghost"), "hello")
                fault = result.error
                assert isinstance(fault, SendMessageFault)
                assert fault.service_code == "AWS.SimpleQueueService.NonExistentQueue"
                assert fault.is_not_found
                assert "ghost" in fault.message

        asyncio.run(scenario())


class TestRetrySafety:
    """Send and receive are never repeated; queue management is."""

    ERROR_503 = b"<ErrorResponse><Error><Code>ServiceUnavailable</Code></Error></ErrorResponse>"

    def test_send_not_retried(self):
        async def scenario():
            async with running_service(max_retries=3) as (fake, factory):
                sqs, url = await with_queue(factory)
                fake.inject(503, self.ERROR_503)
                before = len(fake.requests)
                result = await sqs.send_message(url, "once")
                assert result.error.status == 503
                assert len(fake.requests) - before == 1
                assert fake.queues["orders"].messages == []

        asyncio.run(scenario())

    def test_receive_not_retried(self):
        async def scenario():
            async with running_service(max_retries=3) as (fake, factory):
                sqs, url = await with_queue(factory)
                fake.inject(500, self.ERROR_503)
                before = len(fake.requests)
                assert (await sqs.receive_message(url)).is_err()
                assert len(fake.requests) - before == 1

        asyncio.run(scenario())

    def test_idempotent_action_retried(self):
        async def scenario():
            async with running_service(max_retries=3) as (fake, factory):
                sqs, url = await with_queue(factory)
                fake.inject(503, self.ERROR_503, count=2)
                assert_ok(await sqs.get_queue_attributes(url))

        asyncio.run(scenario())


class TestQuerySignature:
    """Legacy query signature against the same service."""

    def test_round_trip(self):
        async def scenario():
            async with running_service(signature_version="v2") as (fake, factory):
                sqs, url = await with_queue(factory)
                assert_ok(await sqs.send_message(url, "signed with v2 + friends"))
                received = assert_ok(await sqs.receive_message(url))
                assert received.messages[0].body == "signed with v2 + friends"
                assert "Authorization" not in fake.requests[-1].headers

        asyncio.run(scenario())

    def test_bad_secret(self):
        async def scenario():
            async with running_service(signature_version="v2") as (fake, factory):
                sqs = factory.create_sqs_connection(ACCESS_KEY, "wrong")
                result = await sqs.list_queues()
                assert result.error.service_code == "SignatureDoesNotMatch"
                assert result.error.is_access_denied

        asyncio.run(scenario())


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
