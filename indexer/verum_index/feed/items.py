"""
Feed item variants.

A feed item is one of three variants, told apart by an explicit ``kind``
discriminant rather than by which attributes happen to be present. Code
that branches on feed items dispatches on ``kind`` and ends in
``_unhandled`` so a new variant fails loudly until every branch knows it.

Invariants:
    - ``kind`` is fixed per class and not settable through the constructor
    - Every variant exposes ``tx_id``, ``author``, ``timestamp`` and
      ``content`` so filters and sorts treat them uniformly
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, NoReturn, Optional, Union

from verum_protocol import TransactionType

from ..reconstruct.stories import Story


class FeedItemKind(str, Enum):
    POST = "post"
    STORY = "story"
    COMMENT = "comment"

    @classmethod
    def from_transaction_type(cls, kind: TransactionType) -> Optional[FeedItemKind]:
        """Feed kind for a message kind, None for kinds that never appear in feeds."""
        return _FEED_KINDS.get(kind)


_FEED_KINDS = {
    TransactionType.POST: FeedItemKind.POST,
    TransactionType.STORY: FeedItemKind.STORY,
    TransactionType.COMMENT: FeedItemKind.COMMENT,
}


@dataclass
class FeedPost:
    """A standalone post.

    Attributes:
        tx_id: Post transaction
        author: Author address
        content: Post text
        timestamp: Unix seconds
        like_count: Distinct likers
        comment_count: Direct comments
        liked_by_viewer: Set when the feed was requested for a viewer
    """

    tx_id: str
    author: Optional[str]
    content: str
    timestamp: int
    like_count: int = 0
    comment_count: int = 0
    liked_by_viewer: Optional[bool] = None
    kind: FeedItemKind = field(default=FeedItemKind.POST, init=False)


@dataclass
class FeedStory:
    """A reconstructed story, listed once under its first segment."""

    story: Story
    like_count: int = 0
    comment_count: int = 0
    liked_by_viewer: Optional[bool] = None
    kind: FeedItemKind = field(default=FeedItemKind.STORY, init=False)

    @property
    def tx_id(self) -> str:
        return self.story.first_tx_id

    @property
    def author(self) -> Optional[str]:
        return self.story.author

    @property
    def timestamp(self) -> int:
        return self.story.timestamp

    @property
    def content(self) -> str:
        return self.story.content

    @property
    def title(self) -> Optional[str]:
        return self.story.title


@dataclass
class FeedComment:
    """A comment shown as a feed entry of its own."""

    tx_id: str
    author: Optional[str]
    parent_tx_id: str
    parent_type: str
    content: str
    timestamp: int
    like_count: int = 0
    liked_by_viewer: Optional[bool] = None
    kind: FeedItemKind = field(default=FeedItemKind.COMMENT, init=False)


FeedItem = Union[FeedPost, FeedStory, FeedComment]


def _unhandled(item: NoReturn) -> NoReturn:
    raise TypeError(f"Unhandled feed item: {item!r}")


def engagement_score(item: FeedItem) -> int:
    """Ranking weight for trending: likes plus comments (likes only for comments)."""
    if item.kind is FeedItemKind.POST or item.kind is FeedItemKind.STORY:
        return item.like_count + item.comment_count
    if item.kind is FeedItemKind.COMMENT:
        return item.like_count
    _unhandled(item)


def searchable_text(item: FeedItem) -> str:
    if item.kind is FeedItemKind.STORY:
        return f"{item.title or ''}\n{item.content}"
    if item.kind is FeedItemKind.POST or item.kind is FeedItemKind.COMMENT:
        return item.content
    _unhandled(item)


@dataclass
class FeedPage:
    """One page of a feed view.

    Attributes:
        items: Items on this page
        offset: Offset the page starts at
        limit: Requested page size
        has_more: True when the page is exactly full
        next_offset: Offset of the next page
    """

    items: List[FeedItem]
    offset: int
    limit: int
    has_more: bool

    @property
    def next_offset(self) -> int:
        return self.offset + len(self.items)
