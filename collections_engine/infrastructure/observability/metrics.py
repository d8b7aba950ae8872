"""Prometheus metrics for monitoring dunning plans, skips, transitions and batch runs"""

from prometheus_client import Counter, Histogram

from collections_engine.domain.models import DunningBatchResult, DunningSchedule, SkipConditionType, StateTransitionResult

# Planning metrics
plan_counter = Counter(
    "collections_dunning_plans_total",
    "Dunning plans generated",
    ["outcome"],  # active | paused
)

skip_counter = Counter(
    "collections_dunning_skips_total",
    "Dunning plans paused by skip rule",
    ["condition"],  # SkipConditionType value
)

transition_counter = Counter(
    "collections_transitions_recommended_total",
    "State transitions recommended by the registry",
    ["to_state"],
)

# Batch metrics
batch_account_counter = Counter(
    "collections_batch_accounts_total",
    "Accounts evaluated by dunning batches",
    ["outcome"],  # EXECUTED | SKIPPED | NOTHING_DUE | ERROR
)

batch_duration_histogram = Histogram(
    "collections_batch_duration_seconds",
    "Dunning batch evaluation time",
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_plan(schedule: DunningSchedule, skip_condition: SkipConditionType | None = None) -> None:
    """Record plan outcome and, for paused plans, which rule paused it"""
    plan_counter.labels(outcome="paused" if schedule.is_paused else "active").inc()
    if schedule.is_paused and skip_condition is not None:
        skip_counter.labels(condition=skip_condition.value).inc()


def record_transition(result: StateTransitionResult) -> None:
    if result.should_transition:
        transition_counter.labels(to_state=result.next_state.value).inc()


def record_batch(batch: DunningBatchResult) -> None:
    for item in batch.results:
        batch_account_counter.labels(outcome=item.outcome.value).inc()
