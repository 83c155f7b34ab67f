"""
Snapshot retention for SnapState.
"""

from .policy import RetentionPolicy, order_by_recency

__all__ = ["RetentionPolicy", "order_by_recency"]
