"""Exceptions raised by workchain."""

from __future__ import annotations


class WorkchainError(Exception):
    """Base class for workchain errors."""


class ChainError(WorkchainError):
    """A continuation graph was built or enqueued incorrectly."""


class EnqueueError(WorkchainError):
    """The store failed during an enqueue; nothing from that call was kept."""


class InvalidTransition(WorkchainError):
    """A work item was asked to move between states that are not connected."""


class TransactionAborted(WorkchainError):
    """The outermost commit found that a nested level had rolled back."""
