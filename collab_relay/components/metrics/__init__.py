"""
Metrics components.
"""

from collab_relay.components.metrics.collector import MetricsCollector

__all__ = ["MetricsCollector"]
