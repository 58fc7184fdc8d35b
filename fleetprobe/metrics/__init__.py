"""Probe metrics for fleetprobe."""

from fleetprobe.metrics.aggregator import LatencyQuantiles, MetricsAggregator, format_latency

__all__ = ["LatencyQuantiles", "MetricsAggregator", "format_latency"]
