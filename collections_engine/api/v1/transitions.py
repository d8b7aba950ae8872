"""POST /v1/transitions - Transition validation and next-state recommendation"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from collections_engine.api.dependencies import get_engine, get_request_id
from collections_engine.api.v1.schemas import (
    NextStateRequest,
    TransitionPlanResponse,
    TransitionResultSchema,
    TransitionValidateRequest,
)
from collections_engine.domain.engine import CollectionsEngine
from collections_engine.domain.exceptions import InvalidDomainValueError
from collections_engine.infrastructure.observability.metrics import record_transition

router = APIRouter()


@router.post("/transitions/validate", response_model=TransitionPlanResponse)
def validate_transition(
    request_body: TransitionValidateRequest,
    request: Request,
    engine: CollectionsEngine = Depends(get_engine),
):
    """
    Check whether a manual state change is legal.

    An illegal change is not an error: the response carries valid=false,
    the reason, and next_state equal to the current state.
    """
    request_id = get_request_id(request)

    try:
        plan = engine.plan_transition(
            request_body.current_state,
            request_body.target_state,
            request_body.account_age_days,
            request_body.payment_activity,
        )
    except InvalidDomainValueError as e:
        logging.warning(f"Invalid transition request: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=422, detail=str(e))

    return TransitionPlanResponse.model_validate(plan)


@router.post("/transitions/next", response_model=TransitionResultSchema)
def recommend_next_state(
    request_body: NextStateRequest,
    request: Request,
    engine: CollectionsEngine = Depends(get_engine),
):
    """Recommend the next state from account age, payment activity and balance"""
    request_id = get_request_id(request)

    try:
        result = engine.registry.get_next_state(
            request_body.current_state,
            request_body.account_age_days,
            request_body.payment_activity,
            request_body.balance,
        )
    except InvalidDomainValueError as e:
        logging.warning(f"Invalid next-state request: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=422, detail=str(e))

    record_transition(result)
    return TransitionResultSchema.model_validate(result)
