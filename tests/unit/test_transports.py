"""Transport tests."""

import pytest

from intentflow.contracts import WorkflowCommand
from intentflow.transports import CommandTransport
from intentflow.transports.inmemory import InMemoryTransport


@pytest.mark.asyncio
async def test_inmemory_transport_basic():
    """Test basic InMemoryTransport publish/subscribe."""
    transport = InMemoryTransport()

    command = WorkflowCommand(workflow_id="wf-123", action="confirm", approved=True)
    await transport.publish("test_topic", command)

    message_received = False
    async for raw_msg, received in transport.subscribe("test_topic"):
        assert received.workflow_id == "wf-123"
        assert received.action == "confirm"
        assert received.approved is True
        assert received.command_id == command.command_id

        await transport.ack(raw_msg)
        message_received = True
        break

    assert message_received
    assert transport.pending("test_topic") == 0


@pytest.mark.asyncio
async def test_inmemory_nack_requeues_at_head():
    transport = InMemoryTransport()
    first = WorkflowCommand(workflow_id="wf-1")
    second = WorkflowCommand(workflow_id="wf-2")
    await transport.publish("t", first)
    await transport.publish("t", second)

    async for raw_msg, received in transport.subscribe("t"):
        assert received.workflow_id == "wf-1"
        await transport.nack(raw_msg, requeue=True)
        break
    assert transport.pending("t") == 2

    seen = []
    async for raw_msg, received in transport.subscribe("t", lifespan=0.2):
        seen.append(received.workflow_id)
        await transport.ack(raw_msg)
    assert seen == ["wf-1", "wf-2"]


@pytest.mark.asyncio
async def test_inmemory_nack_without_requeue_drops():
    transport = InMemoryTransport()
    await transport.publish("t", WorkflowCommand(workflow_id="wf-1"))

    async for raw_msg, _ in transport.subscribe("t"):
        await transport.nack(raw_msg, requeue=False)
        break
    assert transport.pending("t") == 0


@pytest.mark.asyncio
async def test_subscribe_stops_after_lifespan():
    transport = InMemoryTransport()
    received = [msg async for _, msg in transport.subscribe("empty", lifespan=0.1)]
    assert received == []


def test_command_json_round_trip():
    command = WorkflowCommand(workflow_id="wf-9", action="run")
    restored = WorkflowCommand.from_json(command.to_json())
    assert restored == command
    assert restored.approved is None


def test_redis_transport_defaults():
    from intentflow.transports.redis import RedisTransport

    transport = RedisTransport()
    assert transport.host == "localhost"
    assert transport.port == 6379


@pytest.mark.asyncio
async def test_transport_as_context_manager():
    async with InMemoryTransport() as transport:
        await transport.publish("t", WorkflowCommand(workflow_id="wf-1", action="run"))
        async for raw_msg, received in transport.subscribe("t"):
            await transport.ack(raw_msg)
            break
    assert received.workflow_id == "wf-1"


def test_transport_must_settle_deliveries():
    class AckOnly(CommandTransport):
        async def publish(self, topic, message):
            pass

        async def subscribe(self, topic, lifespan=None):
            yield

        async def ack(self, raw_message):
            pass

    with pytest.raises(TypeError):
        AckOnly()
