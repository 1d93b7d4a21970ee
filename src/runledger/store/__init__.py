"""
Storage module for runledger.

This module provides SQLite-based persistence for runs and their messages.

Tables:
    - runs: Lifecycle status, task status and diagnostic reason of each run
    - messages: Ordered transcript entries with embedded tool calls

Design principles:
    - Append-only: Messages are never updated or deleted
    - Atomic: A message batch is written in one transaction
    - Guarded: Run status changes follow the run lifecycle
"""

from runledger.store.db import LedgerDB, now_iso

__all__ = [
    "LedgerDB",
    "now_iso",
]
