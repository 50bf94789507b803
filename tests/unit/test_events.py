"""
Unit tests for EventChannel.
"""

import logging

import pytest

from verum_sdk import EventChannel, ProgressEvent, ProgressEventType


def event(kind=ProgressEventType.STARTED, write_id="w1", completed=0):
    return ProgressEvent(
        type=kind, write_id=write_id, total_segments=3, completed_segments=completed
    )


class TestQueues:
    """Queue subscribers."""

    @pytest.mark.asyncio
    async def test_subscriber_receives_in_order(self):
        """Events arrive in publish order."""
        channel = EventChannel()
        queue = channel.subscribe()

        channel.publish(event(ProgressEventType.STARTED))
        channel.publish(event(ProgressEventType.SEGMENT_COMPLETED, completed=1))

        assert (await queue.get()).type is ProgressEventType.STARTED
        assert (await queue.get()).completed_segments == 1

    @pytest.mark.asyncio
    async def test_full_queue_drops_oldest(self):
        """A slow subscriber loses its oldest events, never blocks the publisher."""
        channel = EventChannel()
        queue = channel.subscribe(max_size=2)

        for completed in range(4):
            channel.publish(event(completed=completed))

        assert queue.qsize() == 2
        assert [queue.get_nowait().completed_segments for _ in range(2)] == [2, 3]

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        """An unsubscribed queue receives nothing more."""
        channel = EventChannel()
        queue = channel.subscribe()
        channel.unsubscribe(queue)

        channel.publish(event())

        assert queue.empty()
        assert channel.subscriber_count == 0


class TestListeners:
    """Synchronous listeners."""

    def test_listener_and_removal(self):
        """Listeners see events until removed."""
        channel = EventChannel()
        seen = []
        remove = channel.add_listener(seen.append)

        channel.publish(event())
        remove()
        channel.publish(event())

        assert len(seen) == 1
        assert channel.subscriber_count == 0

    def test_failing_listener_is_isolated(self, caplog):
        """One broken listener does not stop the others."""
        channel = EventChannel()
        seen = []

        def broken(_event):
            raise RuntimeError("boom")

        channel.add_listener(broken)
        channel.add_listener(seen.append)

        with caplog.at_level(logging.WARNING, logger="verum_sdk.events"):
            channel.publish(event())

        assert len(seen) == 1
        assert "Progress listener failed" in caplog.text
