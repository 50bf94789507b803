"""
Typed progress events for segmented writes.

Observers either subscribe for their own bounded asyncio.Queue or register
a synchronous listener. Every event has the same payload type, so a
consumer handles all of them with one code path keyed on ``type``.

Invariants:
    - Publishing never blocks the writer: a full queue drops its oldest
      event to make room
    - A failing listener is logged and does not affect other observers
    - Events for one write are published in state-machine order
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

Listener = Callable[["ProgressEvent"], None]


class ProgressEventType(str, Enum):
    STARTED = "started"
    SEGMENT_COMPLETED = "segment_completed"
    RETRYING = "retrying"
    FAILED = "failed"
    RESUMED = "resumed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ProgressEvent:
    """One state change of a segmented write.

    Attributes:
        type: What happened
        write_id: Progress record id
        total_segments: Segments in the write
        completed_segments: Segments published so far
        segment_index: Zero-based segment the event is about, if any
        tx_id: Transaction id for SEGMENT_COMPLETED and COMPLETED
        attempt: Failed attempt number for RETRYING and FAILED
        delay: Seconds until the next attempt for RETRYING
        error: Failure reason for RETRYING and FAILED
        timestamp: Wall-clock time of the event
    """

    type: ProgressEventType
    write_id: str
    total_segments: int
    completed_segments: int
    segment_index: Optional[int] = None
    tx_id: Optional[str] = None
    attempt: Optional[int] = None
    delay: Optional[float] = None
    error: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


class EventChannel:
    """Fan-out of progress events to queues and listeners.

    Example:
        >>> channel = EventChannel()
        >>> queue = channel.subscribe()
        >>> writer = StoryWriter(submitter, events=channel)
        >>> event = await queue.get()
        >>> event.type
        <ProgressEventType.STARTED: 'started'>
    """

    def __init__(self, max_queue_size: int = 100) -> None:
        self.max_queue_size = max_queue_size
        self._queues: List[asyncio.Queue] = []
        self._listeners: List[Listener] = []

    def subscribe(self, max_size: Optional[int] = None) -> asyncio.Queue:
        """Return a new queue that receives every event published from now on."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=max_size or self.max_queue_size)
        self._queues.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._queues:
            self._queues.remove(queue)

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register a synchronous listener.

        Returns:
            A function that removes the listener
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    @property
    def subscriber_count(self) -> int:
        return len(self._queues) + len(self._listeners)

    def publish(self, event: ProgressEvent) -> None:
        for queue in list(self._queues):
            if queue.full():
                dropped = queue.get_nowait()
                logger.debug(
                    f"Event queue full, dropped {dropped.type.value} for {dropped.write_id}",
                    extra={"write_id": event.write_id},
                )
            queue.put_nowait(event)

        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.warning(
                    f"Progress listener failed on {event.type.value}: {e}",
                    extra={"write_id": event.write_id},
                    exc_info=True,
                )
