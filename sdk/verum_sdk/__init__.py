"""
Verum SDK - publishing protocol messages to the ledger.

This package provides:
- VerumClient: register, post, comment, like, subscribe, unsubscribe
  and long-form stories for one address
- StoryWriter: resumable, retrying publication of chained story segments
- EventChannel: typed progress events for story writes
- LedgerSubmitter: the interface a wallet implements to sign and publish

Example:
    >>> from verum_index import InMemoryLedger, VerumIndexer
    >>> from verum_sdk import VerumClient
    >>>
    >>> ledger = InMemoryLedger()
    >>> client = VerumClient(VerumIndexer(ledger), ledger, address="kaspa:qq...")
    >>> await client.register("alice")
    >>> result = await client.create_story(long_text)
    >>> result.data.first_tx_id

Invariants:
    - Every payload is validated before it is submitted
    - Story segments are published strictly in order

Version: 0.1.0
"""

__version__ = "0.1.0"

from .client import (
    ALREADY_FOLLOWING,
    ALREADY_REGISTERED,
    NOT_FOLLOWING,
    VerumClient,
    WriteReceipt,
)
from .errors import SubmitError, VerumSdkError, WriteCancelledError, WriteFailedError
from .events import EventChannel, ProgressEvent, ProgressEventType
from .submit import LedgerSubmitter
from .writer import StoryWrite, StoryWriter, WriteStatus, content_fingerprint

__all__ = [
    "__version__",
    # Client
    "VerumClient",
    "WriteReceipt",
    "ALREADY_REGISTERED",
    "ALREADY_FOLLOWING",
    "NOT_FOLLOWING",
    # Writer
    "StoryWriter",
    "StoryWrite",
    "WriteStatus",
    "content_fingerprint",
    # Events
    "EventChannel",
    "ProgressEvent",
    "ProgressEventType",
    # Submission
    "LedgerSubmitter",
    # Errors
    "VerumSdkError",
    "SubmitError",
    "WriteFailedError",
    "WriteCancelledError",
]
