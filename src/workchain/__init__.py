"""workchain - Durable scheduling for chains of dependent work."""

from workchain.chain import WorkChain
from workchain.continuation import Continuation, ContinuationState
from workchain.dispatch import CallbackDispatcher, Dispatcher, RecordingDispatcher
from workchain.engine import EnqueueEngine
from workchain.errors import (
    ChainError,
    EnqueueError,
    InvalidTransition,
    TransactionAborted,
    WorkchainError,
)
from workchain.models import Dependency, ExistingWorkPolicy, IdAndState, WorkItem, WorkState

__version__ = "0.1.0"
__all__ = [
    "WorkChain",
    "Continuation",
    "ContinuationState",
    "EnqueueEngine",
    "Dispatcher",
    "CallbackDispatcher",
    "RecordingDispatcher",
    "WorkItem",
    "WorkState",
    "Dependency",
    "IdAndState",
    "ExistingWorkPolicy",
    "WorkchainError",
    "ChainError",
    "EnqueueError",
    "InvalidTransition",
    "TransactionAborted",
]
