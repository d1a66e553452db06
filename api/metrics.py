from __future__ import annotations

from prometheus_client import Counter, Histogram

# Total /evaluate calls by resulting policy gate
POLICY_EVALUATIONS = Counter(
    "outagegate_policy_evaluations_total",
    "Total policy evaluations processed by outagegate-core",
    ["policy_gate"],
)

# Engine latency in seconds, bucketed by policy gate
POLICY_EVALUATION_LATENCY_SECONDS = Histogram(
    "outagegate_policy_evaluation_latency_seconds",
    "Latency of policy evaluations in seconds",
    ["policy_gate"],
    buckets=[0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
)

# Evaluations that could not run at all (surfaced as 503, never as BLOCK)
POLICY_EVALUATION_FAILURES = Counter(
    "outagegate_policy_evaluation_failures_total",
    "Count of evaluations that failed before producing a result",
)

# Decision log write failures (best effort; never affects the response)
DECISION_LOG_ERRORS = Counter(
    "outagegate_decision_log_errors_total",
    "Count of failed decision log writes to the database",
)
