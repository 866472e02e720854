"""
Retention

Hourly pruning of records older than the retention horizon.
"""

from .janitor import RetentionJanitor, SweepReport, prune_document

__all__ = ["RetentionJanitor", "SweepReport", "prune_document"]
