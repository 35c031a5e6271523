"""Transport tests."""

import pytest

from meop.contracts import RunRequest
from meop.transports.inmemory import InMemoryTransport


@pytest.mark.asyncio
async def test_inmemory_transport_basic():
    """Test basic InMemoryTransport publish/subscribe."""
    transport = InMemoryTransport()

    request = RunRequest(sequence_id="seq-123", input_data={"query": "X"})
    await transport.publish("test_topic", request)

    message_received = False
    async for raw_msg, received in transport.subscribe("test_topic"):
        assert received.sequence_id == "seq-123"
        assert received.execution_id == request.execution_id
        assert received.input_data["query"] == "X"

        await transport.ack(raw_msg)
        message_received = True
        break

    assert message_received


@pytest.mark.asyncio
async def test_inmemory_subscribe_stops_after_lifespan():
    transport = InMemoryTransport()

    received = [message async for _, message in transport.subscribe("empty", lifespan=0.2)]

    assert received == []


@pytest.mark.asyncio
async def test_inmemory_topics_are_isolated():
    transport = InMemoryTransport()
    await transport.publish("a", RunRequest(sequence_id="for-a"))
    await transport.publish("b", RunRequest(sequence_id="for-b"))

    seen = [message.sequence_id async for _, message in transport.subscribe("b", lifespan=0.3)]

    assert seen == ["for-b"]


def test_redis_transport_queue_name():
    from meop.transports.redis import RedisTransport

    transport = RedisTransport()
    assert transport.host == "localhost"
    assert transport.port == 6379
    assert RedisTransport.queue_name("sequence-runs") == "meop:sequence-runs"


@pytest.mark.asyncio
async def test_malformed_payloads_are_dropped():
    transport = InMemoryTransport()
    await transport.push("runs", "not json")
    await transport.push("runs", '{"request_id": "missing sequence id"}')
    await transport.publish("runs", RunRequest(sequence_id="good"))

    seen = [message.sequence_id async for _, message in transport.subscribe("runs", lifespan=0.3)]

    assert seen == ["good"]
