"""Velocity aggregation: week-bucketed store, persistence and metrics."""

from specvelocity.velocity.dates import week_end, week_start
from specvelocity.velocity.live import LiveTracker
from specvelocity.velocity.metrics import calculate_metrics
from specvelocity.velocity.state import StateManager, is_valid_store_data
from specvelocity.velocity.tracker import StoreBusyError, VelocityTracker

__all__ = [
    "week_start",
    "week_end",
    "LiveTracker",
    "calculate_metrics",
    "StateManager",
    "is_valid_store_data",
    "StoreBusyError",
    "VelocityTracker",
]
