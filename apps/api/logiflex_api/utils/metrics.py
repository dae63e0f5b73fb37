"""Prometheus metrics."""

from prometheus_client import Counter

# Marketplace metrics
bid_decisions = Counter(
    "logiflex_bid_decisions_total",
    "Total bid accept/reject decisions",
    ["status"],
)

transaction_transitions = Counter(
    "logiflex_transaction_transitions_total",
    "Total transaction status transitions",
    ["from_status", "to_status"],
)

# E-TTN metrics
ettn_signatures = Counter(
    "logiflex_ettn_signatures_total",
    "Total E-TTN signatures applied",
    ["role"],
)

# Reputation metrics
rws_recomputations = Counter(
    "logiflex_rws_recomputations_total",
    "Total RWS recomputations",
    ["trigger"],
)

# Notification metrics
notifications_published = Counter(
    "logiflex_notifications_published_total",
    "Total notifications handed to a publisher",
    ["backend", "status"],
)
