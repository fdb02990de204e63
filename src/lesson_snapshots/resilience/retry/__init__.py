"""Resilience – tenacity-backed retry."""
from lesson_snapshots.resilience.retry.tenacity_adapter import TenacityRetryPolicy

__all__ = ["TenacityRetryPolicy"]
