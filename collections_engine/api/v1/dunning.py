"""POST /v1/dunning - Dunning plan generation and batch evaluation"""

import logging
import time

from fastapi import APIRouter, Depends, HTTPException, Request

from collections_engine.api.dependencies import get_engine, get_request_id
from collections_engine.api.v1.schemas import (
    DunningBatchRequest,
    DunningBatchResponse,
    DunningMetricsSchema,
    DunningPlanRequest,
    DunningPlanResponse,
    ExecutionResultSchema,
    PendingActionsResponse,
    ScheduledActionSchema,
    ScheduleSchema,
    TransitionResultSchema,
)
from collections_engine.domain.engine import CollectionsEngine
from collections_engine.domain.exceptions import InvalidDomainValueError
from collections_engine.infrastructure.observability.logging import log_batch_completed, log_plan_generated
from collections_engine.infrastructure.observability.metrics import (
    batch_duration_histogram,
    record_batch,
    record_plan,
    record_transition,
)

router = APIRouter()


@router.post("/dunning/plan", response_model=DunningPlanResponse)
def create_dunning_plan(
    request_body: DunningPlanRequest,
    request: Request,
    engine: CollectionsEngine = Depends(get_engine),
):
    """
    Assess one account snapshot.

    Flow:
    1. Recommend the next collection state
    2. Build the dunning schedule (paused when a skip rule matches)
    3. Summarise progress and pick the next due action
    """
    start_time = time.time()
    request_id = get_request_id(request)

    try:
        account = request_body.account.to_domain()
        assessment = engine.assess_account(account, request_body.payment_activity, request_body.as_of)
        schedule = assessment.schedule
        metrics = engine.planner.calculate_dunning_metrics(schedule, assessment.evaluated_at)
        skip_condition = None
        if schedule.is_paused:
            skip_condition = engine.planner.should_skip_dunning(account, assessment.evaluated_at).condition

    except InvalidDomainValueError as e:
        logging.warning(f"Invalid account snapshot: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=422, detail=str(e))

    except Exception as e:
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    # Record metrics and logs
    duration_ms = (time.time() - start_time) * 1000
    record_plan(schedule, skip_condition)
    record_transition(assessment.transition)
    log_plan_generated(request_id, account.account_id, schedule.is_paused, metrics.pending_actions, duration_ms)

    return DunningPlanResponse(
        account_id=assessment.account_id,
        days_past_due=assessment.days_past_due,
        evaluated_at=assessment.evaluated_at,
        transition=TransitionResultSchema.model_validate(assessment.transition),
        schedule=ScheduleSchema.model_validate(schedule),
        metrics=DunningMetricsSchema.model_validate(metrics),
        next_action=(
            ScheduledActionSchema.model_validate(assessment.next_action) if assessment.next_action else None
        ),
    )


@router.post("/dunning/pending", response_model=PendingActionsResponse)
def execute_pending_actions(
    request_body: DunningPlanRequest,
    request: Request,
    engine: CollectionsEngine = Depends(get_engine),
):
    """
    Build execution records for every overdue step of one account.

    Used to catch up after an outage. Records are returned for the caller to
    deliver and persist; nothing is sent from here.
    """
    request_id = get_request_id(request)

    try:
        account = request_body.account.to_domain()
        assessment = engine.assess_account(account, request_body.payment_activity, request_body.as_of)
        now = assessment.evaluated_at
        executions = [
            engine.planner.execute_dunning_action(account.account_id, action, now)
            for action in engine.planner.get_pending_dunning_actions(assessment.schedule, now)
        ]

    except InvalidDomainValueError as e:
        logging.warning(f"Invalid account snapshot: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=422, detail=str(e))

    except Exception as e:
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    return PendingActionsResponse(
        account_id=account.account_id,
        evaluated_at=now,
        executions=[ExecutionResultSchema.model_validate(e) for e in executions],
    )


@router.post("/dunning/batch", response_model=DunningBatchResponse)
def run_dunning_batch(
    request_body: DunningBatchRequest,
    request: Request,
    engine: CollectionsEngine = Depends(get_engine),
):
    """
    Evaluate a batch of accounts against one clock reading.

    Per-account domain failures are reported in `errors`; the batch itself
    only fails on an invalid request.
    """
    start_time = time.time()
    request_id = get_request_id(request)

    try:
        accounts = [snapshot.to_domain() for snapshot in request_body.accounts]
        with batch_duration_histogram.time():
            batch = engine.run_dunning_batch(accounts, request_body.as_of)

    except InvalidDomainValueError as e:
        logging.warning(f"Invalid batch request: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=422, detail=str(e))

    except Exception as e:
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    duration_ms = (time.time() - start_time) * 1000
    record_batch(batch)
    log_batch_completed(
        request_id,
        batch.processed,
        batch.actions_executed,
        batch.skipped,
        batch.nothing_due,
        len(batch.errors),
        duration_ms,
    )

    return DunningBatchResponse.model_validate(batch)
