"""Prometheus counters for bookings, payments and background jobs.

Labels stay low-cardinality: no user, session or interviewer ids.
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

MATCH_ATTEMPTS = Counter(
    "mockmatch_match_attempts_total",
    "Interviewer matching attempts by outcome.",
    labelnames=("outcome",),
)

MATCH_SCORE = Histogram(
    "mockmatch_match_score",
    "Score of the selected interviewer.",
    buckets=(5, 10, 20, 25, 30, 40, 50, 60, 80, 100, 140),
)

RESERVATIONS_TOTAL = Counter(
    "mockmatch_reservations_total",
    "Temporary reservation lifecycle events.",
    labelnames=("event",),
)

PAYMENT_EVENTS = Counter(
    "mockmatch_payment_events_total",
    "Payment gateway events by resulting status.",
    labelnames=("status",),
)

PAYMENT_WATCH_OUTCOMES = Counter(
    "mockmatch_payment_watch_outcomes_total",
    "How payment status watches ended.",
    labelnames=("outcome",),
)

CLEANUP_RUNS = Counter(
    "mockmatch_cleanup_runs_total",
    "Expired reservation sweeps by outcome.",
    labelnames=("outcome",),
)

CLEANUP_REMOVED = Counter(
    "mockmatch_cleanup_removed_total",
    "Expired temporary reservations removed by the sweeper.",
)

NOTIFICATIONS_SENT = Counter(
    "mockmatch_notifications_total",
    "Outbound emails and webhooks by channel and outcome.",
    labelnames=("channel", "outcome"),
)

__all__ = [
    "MATCH_ATTEMPTS",
    "MATCH_SCORE",
    "RESERVATIONS_TOTAL",
    "PAYMENT_EVENTS",
    "PAYMENT_WATCH_OUTCOMES",
    "CLEANUP_RUNS",
    "CLEANUP_REMOVED",
    "NOTIFICATIONS_SENT",
]
