"""
VerumClient: the write-side facade.

Each single-transaction operation runs the same steps:

    1. Read the author's chain references from the reconstructed profile
    2. Build the payload and validate it
    3. Submit it under the retry policy
    4. Invalidate cached state derived from the author's history

Stories go through the StoryWriter instead of step 3, so they can be
resumed after a failure.

Invariants:
    - Nothing is submitted that fails validation
    - Chain references come from the ledger, never from local guesses
    - Every operation returns a Result; only misconfiguration raises

How to change safely:
    - New operation kinds need a builder factory first
    - Keep cache invalidation after every successful write
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, List, Optional

from verum_index.config import WriterConfig
from verum_index.feed import FeedOptions, FeedPage
from verum_index.indexer import VerumIndexer
from verum_index.ledger.base import LedgerError
from verum_index.reconstruct import Story, UserProfile
from verum_index.results import (
    FETCH_FAILED,
    NOT_REGISTERED,
    SUBMIT_FAILED,
    VALIDATION_FAILED,
    BatchFailure,
    BatchResult,
    Result,
)
from verum_protocol import (
    ChainReferences,
    ContentPayload,
    PayloadBuilder,
    PayloadValidationError,
    PayloadValidator,
    encode,
)

from .errors import SubmitError
from .events import EventChannel
from .submit import LedgerSubmitter
from .writer import StoryWrite, StoryWriter

logger = logging.getLogger(__name__)

ALREADY_REGISTERED = "ALREADY_REGISTERED"
ALREADY_FOLLOWING = "ALREADY_FOLLOWING"
NOT_FOLLOWING = "NOT_FOLLOWING"

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class WriteReceipt:
    """Outcome of a published single-transaction write.

    Attributes:
        tx_id: New transaction id
        payload: The payload as submitted
    """

    tx_id: str
    payload: ContentPayload

    @property
    def kind(self) -> str:
        return self.payload.type.value


class VerumClient:
    """Publishes protocol messages for one address.

    Example:
        >>> client = VerumClient(indexer, wallet, address="kaspa:qq...")
        >>> await client.register("alice")
        >>> post = await client.post("hello ledger")
        >>> await client.like(post.data.tx_id)
        >>> story = await client.create_story(long_text)
    """

    def __init__(
        self,
        indexer: VerumIndexer,
        submitter: LedgerSubmitter,
        address: str,
        builder: Optional[PayloadBuilder] = None,
        validator: Optional[PayloadValidator] = None,
        config: Optional[WriterConfig] = None,
        events: Optional[EventChannel] = None,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the client.

        Args:
            indexer: Read side, used for chain references and lookups
            submitter: Ledger submit backend (the wallet)
            address: Author address for every write
            builder: Payload builder
            validator: Validator applied before every submission
            config: Writer settings; defaults to the indexer's writer config
            events: Channel for story progress events
            sleep: Async sleep used between retries and segments
            clock: Wall clock for payload timestamps
        """
        self.indexer = indexer
        self.submitter = submitter
        self.address = address
        self.builder = builder or PayloadBuilder(clock=clock)
        self.validator = validator or PayloadValidator(clock=clock)
        self.config = config or indexer.config.writer
        self.retry = self.config.retry.to_policy()
        self._sleep = sleep
        self.writer = StoryWriter(
            submitter,
            builder=self.builder,
            config=self.config,
            validator=self.validator,
            events=events,
            sleep=sleep,
            clock=clock,
        )

    @property
    def events(self) -> EventChannel:
        return self.writer.events

    # =========================================================================
    # Chain references
    # =========================================================================

    async def chain_references(self) -> ChainReferences:
        """Latest activity and latest subscription ids of this address.

        Unregistered or unreadable profiles yield empty references.
        """
        profile = await self.indexer.get_profile(self.address)
        if not profile.success or profile.data is None:
            if profile.code != NOT_REGISTERED:
                logger.warning(
                    f"Could not read chain references: {profile.error}",
                    extra={"address": self.address, "code": profile.code},
                )
            return ChainReferences()
        return ChainReferences(
            prev_tx_id=profile.data.last_tx_id,
            last_subscribe=profile.data.last_subscribe_tx_id,
        )

    # =========================================================================
    # Single-transaction writes
    # =========================================================================

    async def register(self, nickname: str, avatar: Optional[str] = None) -> Result[WriteReceipt]:
        """Publish the START message for this address."""
        existing = await self.indexer.get_profile(self.address)
        if existing.success:
            return Result.fail("User is already registered", code=ALREADY_REGISTERED)
        if existing.code == FETCH_FAILED:
            return Result.fail(existing.error or "Failed to check registration", code=FETCH_FAILED)
        return await self._publish(self.builder.start(nickname, avatar))

    async def post(self, content: str) -> Result[WriteReceipt]:
        chain = await self.chain_references()
        return await self._publish(self.builder.post(content, chain))

    async def comment(self, parent_id: str, content: str) -> Result[WriteReceipt]:
        chain = await self.chain_references()
        return await self._publish(self.builder.comment(parent_id, content, chain), touched=[parent_id])

    async def like(self, parent_id: str) -> Result[WriteReceipt]:
        chain = await self.chain_references()
        return await self._publish(self.builder.like(parent_id, chain), touched=[parent_id])

    async def subscribe(self, target: str) -> Result[WriteReceipt]:
        """Follow target. Fails with ALREADY_FOLLOWING when the edge is active."""
        if await self.indexer.is_following(self.address, target):
            return Result.fail("Already following this user", code=ALREADY_FOLLOWING)
        chain = await self.chain_references()
        return await self._publish(self.builder.subscribe(target, chain))

    async def unsubscribe(self, target: str) -> Result[WriteReceipt]:
        """Unfollow target. Fails with NOT_FOLLOWING when there is no active edge."""
        if not await self.indexer.is_following(self.address, target):
            return Result.fail("Not following this user", code=NOT_FOLLOWING)
        chain = await self.chain_references()
        return await self._publish(self.builder.unsubscribe(target, chain))

    async def subscribe_many(self, targets: Iterable[str]) -> BatchResult[str, WriteReceipt]:
        """Follow several addresses one after another."""
        batch: BatchResult[str, WriteReceipt] = BatchResult()
        for target in targets:
            result = await self.subscribe(target)
            if result.success and result.data is not None:
                batch.successful.append(result.data)
            else:
                batch.failed.append(BatchFailure(item=target, error=result.error or "unknown error"))
            batch.total_processed += 1
        return batch

    # =========================================================================
    # Stories
    # =========================================================================

    async def create_story(self, content: str) -> Result[StoryWrite]:
        """Publish a story as chained segments.

        A repeated call with the same text joins or resumes the open write
        instead of starting a second chain.
        """
        chain = await self.chain_references()
        result = await self.writer.write(self.address, content, chain)
        self._after_story(result)
        return result

    async def resume_story(self, write_id: str) -> Result[StoryWrite]:
        result = await self.writer.resume(write_id)
        self._after_story(result)
        return result

    def cancel_story(self, write_id: str) -> bool:
        return self.writer.cancel(write_id)

    def get_progress(self, write_id: str) -> Optional[StoryWrite]:
        return self.writer.get_progress(write_id)

    def active_writes(self) -> List[StoryWrite]:
        return self.writer.active_writes()

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_profile(self, address: Optional[str] = None) -> Result[UserProfile]:
        return await self.indexer.get_profile(address or self.address)

    async def get_story(self, first_tx_id: str) -> Result[Story]:
        return await self.indexer.get_story(first_tx_id)

    async def feed(self, options: Optional[FeedOptions] = None) -> Result[FeedPage]:
        """Personal feed of this address."""
        return await self.indexer.personal_feed(self.address, options)

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _publish(
        self, payload: ContentPayload, touched: Iterable[str] = ()
    ) -> Result[WriteReceipt]:
        try:
            data = encode(payload, self.validator)
        except PayloadValidationError as e:
            return Result.fail(
                "; ".join(issue.message for issue in e.issues), code=VALIDATION_FAILED
            )

        try:
            tx_id = await self.retry.run(
                lambda: self.submitter.submit(data, self.address),
                retry_on=(SubmitError, LedgerError),
                sleep=self._sleep,
            )
        except (SubmitError, LedgerError) as e:
            logger.warning(
                f"Failed to publish {payload.type.value}: {e}",
                extra={"address": self.address, "kind": payload.type.value},
            )
            return Result.fail(f"Failed to submit transaction: {e}", code=SUBMIT_FAILED)

        self.indexer.invalidate_address(self.address, touched=touched)
        logger.info(
            f"Published {payload.type.value} as {tx_id}",
            extra={"address": self.address, "tx_id": tx_id},
        )
        return Result.ok(WriteReceipt(tx_id=tx_id, payload=payload))

    def _after_story(self, result: Result[StoryWrite]) -> None:
        if result.data is not None and result.data.published:
            self.indexer.invalidate_address(self.address, touched=result.data.published)
