"""Metric definitions for the realtime layer and the chat API."""

from __future__ import annotations

from .registry import registry


realtime_connections = registry.gauge(
    "realtime_active_connections",
    "Number of live websocket connections registered on this process.",
)

realtime_online_users = registry.gauge(
    "realtime_online_users",
    "Number of users currently present in the online set.",
)

realtime_events_total = registry.counter(
    "realtime_events_total",
    "Count of realtime messages processed by the connection handler and router.",
    label_names=("topic", "direction", "action"),
)

realtime_dropped_events_total = registry.counter(
    "realtime_dropped_events_total",
    "Outbound events discarded before reaching a connection.",
    label_names=("reason",),
)

realtime_persistence_failures_total = registry.counter(
    "realtime_persistence_failures_total",
    "Live messages whose durable write failed after delivery.",
)

realtime_sessions_replaced_total = registry.counter(
    "realtime_sessions_replaced_total",
    "Connections closed because the same user connected again.",
)

chat_messages_created_total = registry.counter(
    "chat_messages_created_total",
    "Messages persisted through the chat store.",
    label_names=("source",),
)
