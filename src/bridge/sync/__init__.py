"""Event filtering and test branch synchronization.

- should_trigger / evaluate_event: decide whether a PR event starts a run
- BranchReconciler: create or fast-forward the per-PR test branch
"""

from src.bridge.sync.filter import (
    FilterDecision,
    FilterReason,
    evaluate_event,
    should_trigger,
)
from src.bridge.sync.locks import KeyedLock
from src.bridge.sync.reconciler import (
    BranchReconciler,
    ReconcileError,
    ReconcileResult,
    ReconcileStage,
)

__all__ = [
    "BranchReconciler",
    "FilterDecision",
    "FilterReason",
    "KeyedLock",
    "ReconcileError",
    "ReconcileResult",
    "ReconcileStage",
    "evaluate_event",
    "should_trigger",
]
