"""History mining: replay document revisions into completion events."""

from specvelocity.mining.diff import LineChange, diff_checklists, diff_revisions
from specvelocity.mining.miner import (
    HistoryMiner,
    MinedHistory,
    deduplicate_completions,
    detect_spec_completion,
    replay_revisions,
)
from specvelocity.mining.reconciler import WorkingTreeReconciler

__all__ = [
    "LineChange",
    "diff_checklists",
    "diff_revisions",
    "HistoryMiner",
    "MinedHistory",
    "deduplicate_completions",
    "detect_spec_completion",
    "replay_revisions",
    "WorkingTreeReconciler",
]
