"""
Observability components for RewardRounds.

Provides Prometheus metrics for settlement activity.
"""

from .metrics import SettlementMetrics, start_metrics_server

__all__ = [
    "SettlementMetrics",
    "start_metrics_server",
]
