"""Pydantic schemas for API request/response validation"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from collections_engine.domain.models import (
    AccountType,
    ActionStatus,
    BatchOutcome,
    CollectionAction,
    CollectionState,
    DunningAccount,
    DunningChannel,
    DunningSkipCondition,
    ExecutedAction,
    PaymentActivity,
    SkipConditionType,
)


class DomainView(BaseModel):
    """Response model populated from domain dataclasses"""

    model_config = ConfigDict(from_attributes=True)


class SkipConditionSchema(BaseModel):
    type: SkipConditionType
    active: bool = True
    effective_date: Optional[datetime] = None
    expiration_date: Optional[datetime] = None
    details: Optional[str] = None


class ExecutedActionSchema(BaseModel):
    """Execution-log entry the caller persisted for a previously executed step"""

    day: int
    action: CollectionAction
    executed_at: datetime
    success: bool = True


class AccountSnapshot(BaseModel):
    """Account snapshot as read from the persistence layer"""

    account_id: str = Field(..., min_length=1, description="Account identifier")
    account_type: AccountType
    current_state: CollectionState
    balance: Decimal
    due_date: datetime
    last_payment_date: Optional[datetime] = None
    last_payment_amount: Optional[Decimal] = None
    promise_to_pay_date: Optional[datetime] = None
    promise_to_pay_amount: Optional[Decimal] = None
    has_hardship: bool = False
    on_payment_plan: bool = False
    preferred_channels: List[DunningChannel] = Field(default_factory=list)
    skip_conditions: List[SkipConditionSchema] = Field(default_factory=list)
    executed_actions: List[ExecutedActionSchema] = Field(default_factory=list)

    def to_domain(self) -> DunningAccount:
        return DunningAccount(
            account_id=self.account_id,
            account_type=self.account_type,
            current_state=self.current_state,
            balance=self.balance,
            due_date=self.due_date,
            last_payment_date=self.last_payment_date,
            last_payment_amount=self.last_payment_amount,
            promise_to_pay_date=self.promise_to_pay_date,
            promise_to_pay_amount=self.promise_to_pay_amount,
            has_hardship=self.has_hardship,
            on_payment_plan=self.on_payment_plan,
            preferred_channels=tuple(self.preferred_channels),
            skip_conditions=tuple(DunningSkipCondition(**c.model_dump()) for c in self.skip_conditions),
            executed_actions=tuple(ExecutedAction(**e.model_dump()) for e in self.executed_actions),
        )


class DunningPlanRequest(BaseModel):
    """Request body for POST /v1/dunning/plan and /v1/dunning/pending"""

    account: AccountSnapshot
    payment_activity: PaymentActivity = PaymentActivity.NO_ACTIVITY
    as_of: Optional[datetime] = Field(None, description="Evaluation time; defaults to now")


class DunningBatchRequest(BaseModel):
    """Request body for POST /v1/dunning/batch"""

    accounts: List[AccountSnapshot] = Field(..., min_length=1)
    as_of: Optional[datetime] = None


class TransitionValidateRequest(BaseModel):
    """Request body for POST /v1/transitions/validate"""

    current_state: CollectionState
    target_state: CollectionState
    account_age_days: Optional[int] = Field(None, ge=0)
    payment_activity: Optional[PaymentActivity] = None


class NextStateRequest(BaseModel):
    """Request body for POST /v1/transitions/next"""

    current_state: CollectionState
    account_age_days: int
    payment_activity: PaymentActivity = PaymentActivity.NO_ACTIVITY
    balance: Decimal


class StateConfigSchema(DomainView):
    state: CollectionState
    display_name: str
    description: str
    allowed_actions: List[CollectionAction]
    auto_actions: List[CollectionAction]
    dunning_intensity: int
    can_report_to_credit: bool
    can_send_to_agency: bool
    can_write_off: bool


class StateTransitionSchema(DomainView):
    from_state: CollectionState
    to_state: CollectionState
    description: str
    min_days_in_state: Optional[int] = None
    payment_activity: Optional[PaymentActivity] = None
    requires_approval: bool


class StateDetailResponse(BaseModel):
    """Response for GET /v1/states/{state}"""

    config: StateConfigSchema
    transitions: List[StateTransitionSchema]


class TransitionResultSchema(DomainView):
    next_state: CollectionState
    should_transition: bool
    reason: str
    recommended_actions: List[CollectionAction]
    days_until_auto_transition: Optional[int] = None
    desired_state: Optional[CollectionState] = None


class TransitionPlanResponse(DomainView):
    """Response for POST /v1/transitions/validate"""

    current_state: CollectionState
    target_state: CollectionState
    valid: bool
    reason: str
    requires_approval: bool
    next_state: CollectionState
    actions_to_perform: List[CollectionAction]


class ScheduledActionSchema(DomainView):
    day: int
    action: CollectionAction
    template: str
    channel: DunningChannel
    mandatory: bool
    description: str
    scheduled_date: datetime
    status: ActionStatus
    completed_date: Optional[datetime] = None
    skip_reason: Optional[str] = None


class ScheduleSchema(DomainView):
    account_id: str
    account_type: AccountType
    current_state: CollectionState
    balance: Decimal
    days_past_due: int
    due_date: datetime
    actions: List[ScheduledActionSchema]
    next_action_date: datetime
    is_paused: bool
    pause_reason: Optional[str] = None
    pause_end_date: Optional[datetime] = None


class DunningMetricsSchema(DomainView):
    total_actions: int
    completed_actions: int
    pending_actions: int
    skipped_actions: int
    failed_actions: int
    completion_percentage: int
    next_action_in_days: Optional[int] = None


class ExecutionResultSchema(DomainView):
    account_id: str
    action: CollectionAction
    day: int
    template: str
    success: bool
    message: str
    channel: DunningChannel
    timestamp: datetime
    error: Optional[str] = None


class DunningPlanResponse(BaseModel):
    """Response for POST /v1/dunning/plan"""

    account_id: str
    days_past_due: int
    evaluated_at: datetime
    transition: TransitionResultSchema
    schedule: ScheduleSchema
    metrics: DunningMetricsSchema
    next_action: Optional[ScheduledActionSchema] = None


class PendingActionsResponse(BaseModel):
    """Response for POST /v1/dunning/pending"""

    account_id: str
    evaluated_at: datetime
    executions: List[ExecutionResultSchema]


class BatchItemSchema(DomainView):
    account_id: str
    outcome: BatchOutcome
    message: str
    success: bool
    action: Optional[CollectionAction] = None
    execution: Optional[ExecutionResultSchema] = None


class DunningBatchResponse(DomainView):
    """Response for POST /v1/dunning/batch"""

    evaluated_at: datetime
    processed: int
    ineligible: int
    actions_executed: int
    skipped: int
    nothing_due: int
    errors: List[str]
    results: List[BatchItemSchema]
