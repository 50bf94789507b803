"""
Payload builder: one factory per operation kind.

Placement of chain references:
    - START carries none
    - POST, LIKE, COMMENT, UNSUBSCRIBE carry both author references
    - SUBSCRIBE carries ``prev_tx_id`` only; it becomes the new latest
      subscription itself
    - The first story segment carries both author references; later
      segments carry ``parent_id`` = previous segment's transaction id,
      which is only known once that segment is published
"""

from __future__ import annotations

import time
from dataclasses import replace
from typing import Callable, List, Optional

from .chunker import StoryChunk, StoryChunker
from .constants import PROTOCOL_VERSION, TransactionType
from .payload import ChainReferences, ContentPayload, ProfileBody, SegmentParams

_NO_REFS = ChainReferences()


class PayloadBuilder:
    """Builds protocol payloads stamped with the current time."""

    def __init__(
        self,
        version: str = PROTOCOL_VERSION,
        chunker: Optional[StoryChunker] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.version = version
        self.chunker = chunker or StoryChunker()
        self._clock = clock

    def _now(self) -> int:
        return int(self._clock())

    def start(self, nickname: str, avatar: Optional[str] = None) -> ContentPayload:
        """Registration payload carrying the profile as JSON text."""
        body = ProfileBody(nickname=nickname.strip(), avatar=avatar)
        return ContentPayload(
            version=self.version,
            type=TransactionType.START,
            content=body.to_json(),
            timestamp=self._now(),
        )

    def post(self, content: str, chain: ChainReferences = _NO_REFS) -> ContentPayload:
        return self._referenced(TransactionType.POST, content.strip(), chain)

    def comment(
        self, parent_id: str, content: str, chain: ChainReferences = _NO_REFS
    ) -> ContentPayload:
        return self._referenced(TransactionType.COMMENT, content.strip(), chain, parent_id=parent_id)

    def like(self, parent_id: str, chain: ChainReferences = _NO_REFS) -> ContentPayload:
        return self._referenced(TransactionType.LIKE, None, chain, parent_id=parent_id)

    def subscribe(self, target: str, chain: ChainReferences = _NO_REFS) -> ContentPayload:
        return ContentPayload(
            version=self.version,
            type=TransactionType.SUBSCRIBE,
            content=target.strip(),
            timestamp=self._now(),
            prev_tx_id=chain.prev_tx_id,
        )

    def unsubscribe(self, target: str, chain: ChainReferences = _NO_REFS) -> ContentPayload:
        return self._referenced(TransactionType.UNSUBSCRIBE, target.strip(), chain)

    def story_segment(
        self,
        chunk: StoryChunk,
        chain: ChainReferences = _NO_REFS,
        parent_id: Optional[str] = None,
    ) -> ContentPayload:
        """Build the payload for one story segment.

        Args:
            chunk: Segment produced by the chunker
            chain: Author references, only used for segment 1
            parent_id: Previous segment's transaction id, required after segment 1

        Raises:
            ValueError: If a later segment has no parent_id
        """
        params = SegmentParams(segment=chunk.segment, total=chunk.total, is_final=chunk.is_final)
        payload = ContentPayload(
            version=self.version,
            type=TransactionType.STORY,
            content=chunk.content,
            timestamp=self._now(),
            params=params.to_dict(),
        )
        if chunk.segment == 1:
            return replace(payload, prev_tx_id=chain.prev_tx_id, last_subscribe=chain.last_subscribe)
        if not parent_id:
            raise ValueError(f"Segment {chunk.segment} needs the previous segment's transaction id")
        return replace(payload, parent_id=parent_id)

    def story_segments(
        self, content: str, chain: ChainReferences = _NO_REFS
    ) -> List[ContentPayload]:
        """Build every segment payload for a story.

        Segments after the first are returned without ``parent_id``; the
        writer fills it in as each predecessor is published.
        """
        chunks = self.chunker.split(content)
        first = self.story_segment(chunks[0], chain)
        rest = [
            ContentPayload(
                version=self.version,
                type=TransactionType.STORY,
                content=chunk.content,
                timestamp=first.timestamp,
                params=SegmentParams(chunk.segment, chunk.total, chunk.is_final).to_dict(),
            )
            for chunk in chunks[1:]
        ]
        return [first, *rest]

    def _referenced(
        self,
        kind: TransactionType,
        content: Optional[str],
        chain: ChainReferences,
        parent_id: Optional[str] = None,
    ) -> ContentPayload:
        return ContentPayload(
            version=self.version,
            type=kind,
            content=content,
            timestamp=self._now(),
            parent_id=parent_id,
            prev_tx_id=chain.prev_tx_id,
            last_subscribe=chain.last_subscribe,
        )
