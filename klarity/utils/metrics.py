"""Prometheus custom business metrics."""

from prometheus_client import Counter, Histogram

# Message metrics
messages_total = Counter(
    "klarity_messages_total",
    "Total messages processed",
    ["type"],  # text, command
)

# Turn metrics
turns_total = Counter(
    "klarity_turns_total",
    "Total booking graph turns",
    ["intent", "outcome"],  # outcome: ok, error
)
turn_latency_seconds = Histogram(
    "klarity_turn_latency_seconds",
    "Booking graph turn latency",
    buckets=(0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

# Node metrics
node_errors_total = Counter(
    "klarity_node_errors_total",
    "Node failures routed to the error handler",
    ["node"],
)

# AI metrics
ai_requests_total = Counter(
    "klarity_ai_requests_total",
    "Total AI requests",
    ["status"],  # ok, error
)
ai_latency_seconds = Histogram(
    "klarity_ai_latency_seconds",
    "AI request latency",
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# Booking metrics
bookings_total = Counter(
    "klarity_bookings_total",
    "Booking lifecycle transitions",
    ["status"],  # pending_calendar, confirmed, cancelled, failed
)

# Error metrics
errors_total = Counter(
    "klarity_errors_total",
    "Total errors",
    ["type"],  # handler, calendar, notification
)
