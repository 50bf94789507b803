"""
Integration tests for feed views over the in-memory ledger.

Tests cover:
- Global, user, personal, trending and by-type views
- Story listing under the first segment only
- Pagination and filtering
- Search
- Caching and failure handling
"""

import pytest

from verum_index import FETCH_FAILED, FeedItemKind, FeedOptions
from verum_protocol import TransactionType

STORY_TEXT = "Harbor Lights:\n" + " ".join(f"Ship {i} came home at dusk." for i in range(40))


def publish(ledger, sender, payload):
    return ledger.add_payload(sender, payload).id


def publish_story(ledger, builder, author, text=STORY_TEXT):
    chunks = builder.chunker.split(text)
    ids = [publish(ledger, author, builder.story_segment(chunks[0]))]
    for chunk in chunks[1:]:
        ids.append(publish(ledger, author, builder.story_segment(chunk, parent_id=ids[-1])))
    return ids


@pytest.fixture
def network(ledger, builder, alice, bob, carol):
    """Three users with posts, a story, likes and a comment.

    Returns a dict of named transaction ids.
    """
    ids = {}
    publish(ledger, alice, builder.start("alice"))
    publish(ledger, bob, builder.start("bob"))
    publish(ledger, carol, builder.start("carol"))
    ids["alice_post"] = publish(ledger, alice, builder.post("Morning coffee on the ledger"))
    ids["story"] = publish_story(ledger, builder, bob)
    ids["carol_post"] = publish(ledger, carol, builder.post("Quiet evening"))
    publish(ledger, bob, builder.like(ids["alice_post"]))
    publish(ledger, carol, builder.like(ids["alice_post"]))
    ids["comment"] = publish(ledger, carol, builder.comment(ids["alice_post"], "Enjoy the coffee"))
    publish(ledger, alice, builder.subscribe(bob))
    return ids


def tx_ids(result):
    return [item.tx_id for item in result.data.items]


class TestGlobalFeed:
    """Network-wide recent view."""

    @pytest.mark.asyncio
    async def test_newest_first_with_each_kind(self, indexer, network):
        """Posts, the story and the comment appear newest first; likes never do."""
        result = await indexer.global_feed()

        assert result.success
        assert tx_ids(result) == [
            network["comment"],
            network["carol_post"],
            network["story"][0],
            network["alice_post"],
        ]
        kinds = [item.kind for item in result.data.items]
        assert kinds == [
            FeedItemKind.COMMENT,
            FeedItemKind.POST,
            FeedItemKind.STORY,
            FeedItemKind.POST,
        ]

    @pytest.mark.asyncio
    async def test_story_is_reassembled(self, indexer, network):
        """The story item carries the joined content and title."""
        result = await indexer.global_feed()

        story = next(i for i in result.data.items if i.kind is FeedItemKind.STORY)
        assert story.story.is_complete
        assert story.title == "Harbor Lights"
        assert [s.tx_id for s in story.story.segments] == network["story"]

    @pytest.mark.asyncio
    async def test_engagement_counts(self, indexer, network, bob):
        """Counts and the viewer's like status are attached."""
        result = await indexer.global_feed(FeedOptions(viewer=bob))

        post = next(i for i in result.data.items if i.tx_id == network["alice_post"])
        assert post.like_count == 2
        assert post.comment_count == 1
        assert post.liked_by_viewer is True

    @pytest.mark.asyncio
    async def test_viewer_status_does_not_leak_between_viewers(
        self, indexer, ledger, builder, network, alice, carol
    ):
        """A second viewer's page leaves the first page and the cached story untouched."""
        publish(ledger, alice, builder.like(network["story"][0]))

        alice_page = await indexer.global_feed(FeedOptions(viewer=alice))
        carol_page = await indexer.global_feed(FeedOptions(viewer=carol))

        alice_story = next(i for i in alice_page.data.items if i.kind is FeedItemKind.STORY)
        carol_story = next(i for i in carol_page.data.items if i.kind is FeedItemKind.STORY)
        assert alice_story.story.is_liked_by_viewer is True
        assert carol_story.story.is_liked_by_viewer is False
        assert alice_story.story.like_count == 1
        cached = (await indexer.get_story(network["story"][0])).data
        assert cached.like_count == 0
        assert cached.is_liked_by_viewer is None

    @pytest.mark.asyncio
    async def test_without_replies(self, indexer, network):
        """Comments are dropped when replies are excluded."""
        result = await indexer.global_feed(FeedOptions(include_replies=False))

        assert network["comment"] not in tx_ids(result)

    @pytest.mark.asyncio
    async def test_pagination(self, indexer, network):
        """A full page reports has_more; the next page continues."""
        first = await indexer.global_feed(FeedOptions(limit=2))
        second = await indexer.global_feed(FeedOptions(limit=2, offset=2))
        third = await indexer.global_feed(FeedOptions(limit=2, offset=4))

        assert first.data.has_more
        assert first.data.next_offset == 2
        assert tx_ids(first) + tx_ids(second) == tx_ids(await indexer.global_feed())
        assert second.pagination.offset == 2
        assert third.data.items == []
        assert not third.data.has_more

    @pytest.mark.asyncio
    async def test_time_and_author_filters(self, indexer, network, carol):
        """Filters apply before pagination."""
        result = await indexer.global_feed(FeedOptions(authors=(carol,)))

        assert tx_ids(result) == [network["comment"], network["carol_post"]]

    @pytest.mark.asyncio
    async def test_source_failure_fails_view(self, indexer, ledger, network):
        """Without a candidate list there is no feed."""
        ledger.fail_fetches(1)

        result = await indexer.global_feed()

        assert not result.success
        assert result.code == FETCH_FAILED


class TestAuthorFeeds:
    """User and personal views."""

    @pytest.mark.asyncio
    async def test_user_feed(self, indexer, network, carol):
        """Only the author's own content."""
        result = await indexer.user_feed(carol)

        assert tx_ids(result) == [network["comment"], network["carol_post"]]

    @pytest.mark.asyncio
    async def test_personal_feed(self, indexer, network, alice):
        """Followed authors plus the viewer, viewer defaulting to the owner."""
        result = await indexer.personal_feed(alice)

        assert tx_ids(result) == [network["story"][0], network["alice_post"]]
        assert all(item.liked_by_viewer is False for item in result.data.items)

    @pytest.mark.asyncio
    async def test_personal_feed_after_unsubscribe(self, indexer, ledger, builder, network, alice, bob):
        """Inactive subscriptions no longer contribute."""
        publish(ledger, alice, builder.unsubscribe(bob))
        indexer.invalidate_address(alice)

        result = await indexer.personal_feed(alice)

        assert tx_ids(result) == [network["alice_post"]]

    @pytest.mark.asyncio
    async def test_engagement_failure_keeps_view(self, indexer, ledger, network, carol):
        """A failed engagement scan leaves counts at zero."""
        await indexer.reader.history(carol)
        ledger.fail_fetches(1)

        result = await indexer.user_feed(carol, FeedOptions(include_replies=False))

        assert result.success
        assert tx_ids(result) == [network["carol_post"]]
        assert result.data.items[0].like_count == 0


class TestRankedAndTypedFeeds:
    """Trending and by-type views."""

    @pytest.mark.asyncio
    async def test_trending(self, indexer, network):
        """Most engaged content first, ties newest first."""
        result = await indexer.trending_feed(FeedOptions(include_replies=False))

        assert tx_ids(result) == [
            network["alice_post"],
            network["carol_post"],
            network["story"][0],
        ]

    @pytest.mark.asyncio
    async def test_by_type_stories(self, indexer, network):
        """Only stories, once each."""
        result = await indexer.feed_by_type([TransactionType.STORY])

        assert tx_ids(result) == [network["story"][0]]

    @pytest.mark.asyncio
    async def test_by_type_non_feed_kinds(self, indexer, network):
        """Kinds that never appear in feeds give an empty page."""
        result = await indexer.feed_by_type([TransactionType.LIKE, TransactionType.START])

        assert result.success
        assert result.data.items == []


class TestSearch:
    """Content search."""

    @pytest.mark.asyncio
    async def test_case_insensitive(self, indexer, network):
        """Matching ignores case across posts and comments."""
        result = await indexer.search("COFFEE")

        assert set(tx_ids(result)) == {network["alice_post"], network["comment"]}

    @pytest.mark.asyncio
    async def test_story_title_is_searchable(self, indexer, network):
        """Story titles and bodies are searched."""
        result = await indexer.search("harbor")

        assert tx_ids(result) == [network["story"][0]]

    @pytest.mark.asyncio
    async def test_author_and_type_restriction(self, indexer, network, carol):
        """Search within one author's posts."""
        result = await indexer.search("e", author=carol, types=[TransactionType.POST])

        assert tx_ids(result) == [network["carol_post"]]

    @pytest.mark.asyncio
    async def test_engagement_sort_ascending(self, indexer, network):
        """Sorting by engagement ascending puts quiet items first."""
        result = await indexer.search("coffee", sort_by="engagement", sort_order="asc")

        assert tx_ids(result) == [network["comment"], network["alice_post"]]

    @pytest.mark.asyncio
    async def test_bad_sort(self, indexer):
        """Unknown sort fields are rejected."""
        with pytest.raises(ValueError):
            await indexer.search("x", sort_by="random")


class TestCaching:
    """View cache behaviour."""

    @pytest.mark.asyncio
    async def test_cached_until_invalidated(self, indexer, ledger, builder, network, alice):
        """A repeated view is served from cache until the author is invalidated."""
        first = await indexer.global_feed()
        new_post = publish(ledger, alice, builder.post("Fresh news"))

        assert await indexer.global_feed() is first

        indexer.invalidate_address(alice)
        refreshed = await indexer.global_feed()

        assert tx_ids(refreshed)[0] == new_post

    @pytest.mark.asyncio
    async def test_refresh_bypasses_view_cache(self, indexer, network):
        """refresh rebuilds the view."""
        first = await indexer.global_feed()

        again = await indexer.global_feed(FeedOptions(refresh=True))

        assert again is not first
        assert tx_ids(again) == tx_ids(first)

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self, indexer, ledger, network):
        """A failed view is retried on the next call."""
        ledger.fail_fetches(1)
        assert not (await indexer.global_feed()).success

        assert (await indexer.global_feed()).success
