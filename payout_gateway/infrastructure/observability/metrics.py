"""Prometheus metrics for monitoring transfer generation and batch assembly"""

from prometheus_client import Counter, Histogram

# Transfer metrics
transfers_written_counter = Counter(
    "payout_transfers_written_total",
    "Transfers created or refreshed",
    ["stage"],  # weekly_transfers | raw_payouts
)

group_failure_counter = Counter(
    "payout_group_failures_total",
    "Payout groups rolled back",
    ["stage", "code"],
)

# Batch metrics
batch_counter = Counter(
    "payout_batches_total",
    "Batch creation attempts by outcome",
    ["variant", "outcome"],  # transfers | raw_payouts ; created | cancelled | conflict
)

batch_size_histogram = Histogram(
    "payout_batch_transfer_count",
    "Transfers per created batch",
    buckets=[1, 5, 10, 25, 50, 100, 250, 500, 1000],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_group_failure(stage: str, code: str) -> None:
    group_failure_counter.labels(stage=stage, code=code).inc()


def record_batch(variant: str, outcome: str, transfer_count: int = 0) -> None:
    """Record batch outcome; size is only observed for created batches"""
    batch_counter.labels(variant=variant, outcome=outcome).inc()
    if outcome == "created":
        batch_size_histogram.observe(transfer_count)
