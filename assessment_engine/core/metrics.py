"""Engine metrics using the Prometheus client library.

All metrics are defined here, in one inventory; other modules import the
ones they need and increment/observe them at the point of action.

Counters only go up and are read as rates (``rate(...[5m])``); gauges are
snapshots; histograms bucket observations so percentiles can be computed.
The engine exposes no HTTP endpoint of its own: whoever hosts it (an API
process, the deadline worker) serves the default registry.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

INGESTION_ENTRIES = Counter(
    "ingestion_entries_total",
    "Question entries seen by the normalizer, by source and result",
    ["source", "result"],  # result: accepted|skipped|rejected
)

ACCESS_DENIALS = Counter(
    "access_denials_total",
    "Attempt starts or submissions refused by the access policy",
    ["policy"],  # class|public|code|email
)

ATTEMPTS_STARTED = Counter(
    "attempts_started_total",
    "Attempts created (first access by an eligible taker)",
)

ATTEMPTS_RESUMED = Counter(
    "attempts_resumed_total",
    "create_or_resume calls that returned an existing attempt",
)

SUBMISSIONS = Counter(
    "submissions_total",
    "Terminal transitions applied, by trigger",
    ["trigger"],  # manual|deadline
)

SUBMIT_RACES_LOST = Counter(
    "submit_races_lost_total",
    "Submit calls that found the attempt already submitted",
    ["trigger"],
)

DEADLINES_ARMED = Gauge(
    "deadlines_armed",
    "Deadline timers currently scheduled in this process",
)

GRADING_DURATION = Histogram(
    "grading_duration_seconds",
    "Time spent grading one attempt",
    # Grading is pure CPU over a handful of questions; anything past 50ms
    # means an unusually large assessment.
    buckets=[0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1],
)
