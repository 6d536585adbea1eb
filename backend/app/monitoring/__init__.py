"""Metric registry, metric definitions and log formatting for the backend."""

from . import metrics, registry
from .log_context import ContextFormatter
from .registry import MetricsRegistry

__all__ = ["ContextFormatter", "MetricsRegistry", "metrics", "registry"]
