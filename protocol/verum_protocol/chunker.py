"""
Story chunker: splits long text into ordered, size-bounded segments.

The split prefers natural boundaries. Scanning back from the ideal cut
point (``max_segment_size`` past the segment start) towards a minimum cut
point, it looks for, in order: paragraph break, line break, sentence end,
clause punctuation, plain space. When none is found the segment is cut
at the minimum point regardless of boundary.

Segments are also bounded by their encoded size: content is measured as
the codec writes it (UTF-8, JSON escapes included), so multibyte text
gets shorter segments that still fit a payload.

Invariants:
    - Every segment is trimmed and non-empty
    - Non-final segments are at most ``max_segment_size`` characters and,
      when set, at most ``max_segment_bytes`` encoded bytes
    - Segment numbers are 1..total; only the last segment is final
    - Totals are assigned after the whole split completes
    - Same input, same segments

How to change safely:
    - Changing the break order changes segment boundaries of new stories
      only; stories already on the ledger are reassembled from their links
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .constants import (
    MAX_SEGMENT_CONTENT_BYTES,
    MAX_SEGMENT_SIZE,
    MAX_STORY_SEGMENTS,
    MIN_SEGMENT_SIZE,
)
from .errors import ContentTooLargeError, EmptyContentError

# Break markers in order of preference
BREAK_MARKERS: Tuple[str, ...] = ("\n\n", "\n", ". ", "! ", "? ", "; ", ", ", " ")

# Segments are never cut shorter than this fraction of the maximum
MIN_CUT_RATIO = 0.7

# Widest JSON form of a single character (a \uXXXX escape)
MAX_CHAR_BYTES = 6


def encoded_size(text: str) -> int:
    """UTF-8 size of text inside a JSON string, as the codec encodes it."""
    return len(json.dumps(text, ensure_ascii=False).encode("utf-8")) - 2


@dataclass(frozen=True)
class StoryChunk:
    """One segment of split text.

    Attributes:
        content: Trimmed segment text
        segment: 1-based position
        total: Number of segments in the split
        is_final: Whether this is the last segment
    """

    content: str
    segment: int
    total: int
    is_final: bool


class StoryChunker:
    """Splits text into story segments.

    Example:
        >>> chunks = StoryChunker().split(long_text)
        >>> [c.segment for c in chunks]
        [1, 2, 3]
    """

    def __init__(
        self,
        max_segment_size: int = MAX_SEGMENT_SIZE,
        min_segment_size: int = MIN_SEGMENT_SIZE,
        max_segments: int = MAX_STORY_SEGMENTS,
        max_segment_bytes: Optional[int] = MAX_SEGMENT_CONTENT_BYTES,
    ) -> None:
        """Initialize the chunker.

        Args:
            max_segment_size: Longest segment in characters
            min_segment_size: Shortest non-final segment in characters
            max_segments: Most segments a split may produce
            max_segment_bytes: Largest encoded segment, None for no byte bound

        Raises:
            ValueError: If the size bounds are inconsistent
        """
        if min_segment_size < 1 or max_segment_size < min_segment_size:
            raise ValueError(
                f"Invalid segment bounds: min={min_segment_size}, max={max_segment_size}"
            )
        if max_segments < 1:
            raise ValueError("max_segments must be at least 1")
        if max_segment_bytes is not None and max_segment_bytes < min_segment_size * MAX_CHAR_BYTES:
            raise ValueError(
                f"max_segment_bytes={max_segment_bytes} cannot hold {min_segment_size} characters"
            )
        self.max_segment_size = max_segment_size
        self.min_segment_size = min_segment_size
        self.max_segments = max_segments
        self.max_segment_bytes = max_segment_bytes

    def split(self, text: str) -> List[StoryChunk]:
        """Split text into ordered segments.

        Args:
            text: Text to split

        Returns:
            Segments in order, the last one marked final

        Raises:
            EmptyContentError: If text is empty or whitespace only
            ContentTooLargeError: If more than ``max_segments`` are needed
        """
        content = text.strip()
        if not content:
            raise EmptyContentError()

        pieces: List[str] = []
        position = 0
        while position < len(content):
            if len(pieces) >= self.max_segments:
                raise ContentTooLargeError(self.max_segments, len(content))
            piece, position = self._extract(content, position)
            pieces.append(piece)

        total = len(pieces)
        return [
            StoryChunk(content=piece, segment=index, total=total, is_final=index == total)
            for index, piece in enumerate(pieces, start=1)
        ]

    def estimate_segment_count(self, text: str) -> int:
        """Number of segments text would need. Never raises.

        Oversized text is estimated as ``ceil(len / max_segment_size)``.
        """
        content = text.strip()
        if not content:
            return 0
        try:
            return len(self.split(content))
        except ContentTooLargeError:
            return math.ceil(len(content) / self.max_segment_size)

    def within_limits(self, text: str) -> bool:
        """Whether text is non-empty and fits in ``max_segments`` segments."""
        if not text.strip():
            return False
        return self.estimate_segment_count(text) <= self.max_segments

    def _extract(self, content: str, start: int) -> Tuple[str, int]:
        ideal_end = self._byte_limited_end(
            content, start, min(len(content), start + self.max_segment_size)
        )
        if ideal_end == len(content):
            return content[start:].strip(), len(content)

        min_end = start + max(
            self.min_segment_size, math.floor(self.max_segment_size * MIN_CUT_RATIO)
        )
        if min_end > ideal_end:
            # Byte bound is tighter than the character bound
            min_end = start + max(
                self.min_segment_size, math.floor((ideal_end - start) * MIN_CUT_RATIO)
            )

        cut = self._find_break(content, min_end, ideal_end)
        if cut is None:
            cut = min_end

        if len(content[start:cut].strip()) < self.min_segment_size:
            cut = min(start + self.min_segment_size, len(content))

        return content[start:cut].strip(), cut

    def _byte_limited_end(self, content: str, start: int, end: int) -> int:
        """Furthest end <= ``end`` whose segment fits ``max_segment_bytes``."""
        if self.max_segment_bytes is None:
            return end
        size = 0
        for i in range(start, end):
            size += encoded_size(content[i])
            if size > self.max_segment_bytes:
                return i
        return end

    @staticmethod
    def _find_break(content: str, min_end: int, ideal_end: int) -> int | None:
        # The cut lands after the marker and never past ideal_end
        for marker in BREAK_MARKERS:
            for i in range(ideal_end - len(marker), min_end - 1, -1):
                if content.startswith(marker, i):
                    return i + len(marker)
        return None
