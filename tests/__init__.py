"""
Verum Test Suite.

This package contains:
- unit/: Unit tests (no ledger, no network)
- integration/: Integration tests against the in-memory ledger
"""
