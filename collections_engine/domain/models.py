"""Domain models - pure Python enums and dataclasses for the collections lifecycle"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional, Tuple, Type, TypeVar

from collections_engine.domain.exceptions import InvalidDomainValueError
from collections_engine.utils.date_utils import ensure_optional_utc, ensure_utc


class CollectionState(str, Enum):
    """Lifecycle state of a past-due account"""

    CURRENT = "CURRENT"
    PAST_DUE_30 = "PAST_DUE_30"
    PAST_DUE_60 = "PAST_DUE_60"
    PAST_DUE_90 = "PAST_DUE_90"
    PAST_DUE_120 = "PAST_DUE_120"
    PRE_COLLECTION = "PRE_COLLECTION"
    COLLECTION_AGENCY = "COLLECTION_AGENCY"
    BAD_DEBT = "BAD_DEBT"
    PAID = "PAID"
    WRITTEN_OFF = "WRITTEN_OFF"


class CollectionAction(str, Enum):
    """Operational action that can be taken on an account"""

    SEND_STATEMENT = "SEND_STATEMENT"
    SEND_REMINDER = "SEND_REMINDER"
    MAKE_CALL = "MAKE_CALL"
    SEND_DEMAND_LETTER = "SEND_DEMAND_LETTER"
    FINAL_NOTICE = "FINAL_NOTICE"
    SEND_TO_AGENCY = "SEND_TO_AGENCY"
    RECALL_FROM_AGENCY = "RECALL_FROM_AGENCY"
    WRITE_OFF = "WRITE_OFF"
    APPLY_PAYMENT = "APPLY_PAYMENT"
    SET_UP_PAYMENT_PLAN = "SET_UP_PAYMENT_PLAN"
    RECORD_PROMISE_TO_PAY = "RECORD_PROMISE_TO_PAY"
    ESCALATE = "ESCALATE"
    CLOSE_ACCOUNT = "CLOSE_ACCOUNT"


class PaymentActivity(str, Enum):
    """External payment event used as the trigger key of a transition edge"""

    FULL_PAYMENT = "FULL_PAYMENT"
    PARTIAL_PAYMENT = "PARTIAL_PAYMENT"
    PROMISE_TO_PAY = "PROMISE_TO_PAY"
    PAYMENT_PLAN_STARTED = "PAYMENT_PLAN_STARTED"
    PAYMENT_PLAN_DEFAULT = "PAYMENT_PLAN_DEFAULT"
    NO_ACTIVITY = "NO_ACTIVITY"
    RETURNED_PAYMENT = "RETURNED_PAYMENT"
    DISPUTE = "DISPUTE"


class AccountType(str, Enum):
    """Account type selecting the dunning cadence"""

    SELF_PAY = "SELF_PAY"
    INSURANCE = "INSURANCE"
    WORKERS_COMP = "WORKERS_COMP"
    CHARITY = "CHARITY"
    PAYMENT_PLAN = "PAYMENT_PLAN"
    HARDSHIP = "HARDSHIP"


class DunningChannel(str, Enum):
    EMAIL = "EMAIL"
    SMS = "SMS"
    LETTER = "LETTER"
    CALL = "CALL"
    PORTAL = "PORTAL"


class ActionStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"


class SkipConditionType(str, Enum):
    """Reason kinds that suppress dunning"""

    RECENT_PAYMENT = "RECENT_PAYMENT"
    PROMISE_TO_PAY = "PROMISE_TO_PAY"
    HARDSHIP = "HARDSHIP"
    DISPUTE = "DISPUTE"
    BANKRUPTCY = "BANKRUPTCY"
    DECEASED = "DECEASED"
    PAYMENT_PLAN = "PAYMENT_PLAN"
    MINIMUM_BALANCE = "MINIMUM_BALANCE"


class PastActionPolicy(str, Enum):
    """How an action whose date has passed is classified when no execution log entry exists"""

    ASSUME_COMPLETED = "ASSUME_COMPLETED"
    REQUIRE_EXECUTION_LOG = "REQUIRE_EXECUTION_LOG"


class BatchOutcome(str, Enum):
    EXECUTED = "EXECUTED"
    SKIPPED = "SKIPPED"
    NOTHING_DUE = "NOTHING_DUE"
    ERROR = "ERROR"


E = TypeVar("E", bound=Enum)
R = TypeVar("R")


def coerce_enum(enum_cls: Type[E], value: Any, field_name: str) -> E:
    """Accept an enum member or its name; anything else is an InvalidDomainValueError"""
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value)
        except ValueError:
            pass
    raise InvalidDomainValueError(field_name, value, f"Unknown {enum_cls.__name__} for {field_name}: {value!r}")


def coerce_optional_enum(enum_cls: Type[E], value: Any, field_name: str) -> Optional[E]:
    return None if value is None else coerce_enum(enum_cls, value, field_name)


def coerce_amount(value: Any, field_name: str) -> Decimal:
    """Convert int/float/str/Decimal amounts to a finite Decimal"""
    if isinstance(value, bool):
        raise InvalidDomainValueError(field_name, value)
    if isinstance(value, float) and not math.isfinite(value):
        raise InvalidDomainValueError(field_name, value)
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError) as e:
        raise InvalidDomainValueError(field_name, value) from e
    if not amount.is_finite():
        raise InvalidDomainValueError(field_name, value)
    return amount


def coerce_days(value: Any, field_name: str) -> int:
    """Whole-day counts must be real integers"""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidDomainValueError(field_name, value, f"{field_name} must be an integer number of days")
    return value


def _ensure_collection(value: Any, field_name: str) -> Tuple[Any, ...]:
    # A bare string or mapping would otherwise be iterated element by element
    if value is None:
        return ()
    if isinstance(value, (str, bytes, Mapping)) or not isinstance(value, Iterable):
        raise InvalidDomainValueError(field_name, value, f"{field_name} must be a list")
    return tuple(value)


def coerce_records(value: Any, record_cls: Type[R], field_name: str) -> Tuple[R, ...]:
    """Accept record instances or mappings of their fields"""
    records = []
    for item in _ensure_collection(value, field_name):
        if isinstance(item, record_cls):
            records.append(item)
        elif isinstance(item, Mapping):
            try:
                records.append(record_cls(**item))
            except TypeError as e:
                raise InvalidDomainValueError(field_name, item) from e
        else:
            raise InvalidDomainValueError(field_name, item)
    return tuple(records)


def coerce_enum_tuple(enum_cls: Type[E], value: Any, field_name: str) -> Tuple[E, ...]:
    return tuple(coerce_enum(enum_cls, item, field_name) for item in _ensure_collection(value, field_name))


@dataclass(frozen=True)
class StateConfig:
    """Static configuration of a collection state"""

    state: CollectionState
    display_name: str
    description: str
    allowed_actions: Tuple[CollectionAction, ...]
    auto_actions: Tuple[CollectionAction, ...]
    dunning_intensity: int  # 0-10
    can_report_to_credit: bool
    can_send_to_agency: bool
    can_write_off: bool


@dataclass(frozen=True)
class StateTransition:
    """Directed edge of the state graph"""

    from_state: CollectionState
    to_state: CollectionState
    description: str
    min_days_in_state: Optional[int] = None
    payment_activity: Optional[PaymentActivity] = None
    requires_approval: bool = False


@dataclass(frozen=True)
class StateTransitionResult:
    """Recommendation produced by StateRegistry.get_next_state"""

    next_state: CollectionState
    should_transition: bool
    reason: str
    recommended_actions: Tuple[CollectionAction, ...]
    days_until_auto_transition: Optional[int] = None
    desired_state: Optional[CollectionState] = None


@dataclass(frozen=True)
class TransitionValidation:
    valid: bool
    reason: str
    requires_approval: bool


@dataclass(frozen=True)
class DunningAction:
    """Template step of a dunning sequence"""

    day: int  # offset from due date
    action: CollectionAction
    template: str
    channel: DunningChannel
    mandatory: bool
    description: str


@dataclass(frozen=True)
class ScheduledDunningAction(DunningAction):
    """Template step pinned to a concrete date with a derived status"""

    scheduled_date: datetime
    status: ActionStatus = ActionStatus.PENDING
    completed_date: Optional[datetime] = None
    skip_reason: Optional[str] = None

    @classmethod
    def from_template(
        cls, template: DunningAction, scheduled_date: datetime, status: ActionStatus = ActionStatus.PENDING
    ) -> "ScheduledDunningAction":
        return cls(
            day=template.day,
            action=template.action,
            template=template.template,
            channel=template.channel,
            mandatory=template.mandatory,
            description=template.description,
            scheduled_date=scheduled_date,
            status=status,
        )

    @property
    def key(self) -> Tuple[int, CollectionAction]:
        """Execution-log key (together with the account id)"""
        return self.day, self.action


@dataclass(frozen=True)
class DunningSkipCondition:
    """Externally managed flag suppressing dunning"""

    type: SkipConditionType
    active: bool = True
    effective_date: Optional[datetime] = None
    expiration_date: Optional[datetime] = None
    details: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "type", coerce_enum(SkipConditionType, self.type, "skip_condition.type"))
        object.__setattr__(
            self, "effective_date", ensure_optional_utc(self.effective_date, "skip_condition.effective_date")
        )
        object.__setattr__(
            self, "expiration_date", ensure_optional_utc(self.expiration_date, "skip_condition.expiration_date")
        )


@dataclass(frozen=True)
class ExecutedAction:
    """Caller-persisted record that a scheduled step was attempted"""

    day: int
    action: CollectionAction
    executed_at: datetime
    success: bool = True

    def __post_init__(self):
        object.__setattr__(self, "day", coerce_days(self.day, "executed_action.day"))
        object.__setattr__(self, "action", coerce_enum(CollectionAction, self.action, "executed_action.action"))
        object.__setattr__(self, "executed_at", ensure_utc(self.executed_at, "executed_action.executed_at"))

    @property
    def key(self) -> Tuple[int, CollectionAction]:
        return self.day, self.action


@dataclass
class DunningAccount:
    """Account snapshot supplied by the caller for one planning call"""

    account_id: str
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
    preferred_channels: Tuple[DunningChannel, ...] = ()
    skip_conditions: Tuple[DunningSkipCondition, ...] = ()
    executed_actions: Tuple[ExecutedAction, ...] = ()

    def __post_init__(self):
        if not self.account_id:
            raise InvalidDomainValueError("account_id", self.account_id, "account_id must be a non-empty string")
        self.account_type = coerce_enum(AccountType, self.account_type, "account_type")
        self.current_state = coerce_enum(CollectionState, self.current_state, "current_state")
        self.balance = coerce_amount(self.balance, "balance")
        self.due_date = ensure_utc(self.due_date, "due_date")
        self.last_payment_date = ensure_optional_utc(self.last_payment_date, "last_payment_date")
        self.promise_to_pay_date = ensure_optional_utc(self.promise_to_pay_date, "promise_to_pay_date")
        if self.last_payment_amount is not None:
            self.last_payment_amount = coerce_amount(self.last_payment_amount, "last_payment_amount")
        if self.promise_to_pay_amount is not None:
            self.promise_to_pay_amount = coerce_amount(self.promise_to_pay_amount, "promise_to_pay_amount")
        self.preferred_channels = coerce_enum_tuple(DunningChannel, self.preferred_channels, "preferred_channels")
        self.skip_conditions = coerce_records(self.skip_conditions, DunningSkipCondition, "skip_conditions")
        self.executed_actions = coerce_records(self.executed_actions, ExecutedAction, "executed_actions")


@dataclass(frozen=True)
class SkipDecision:
    skip: bool
    reason: Optional[str] = None
    condition: Optional[SkipConditionType] = None  # rule kind that matched


@dataclass(frozen=True)
class DunningSchedule:
    """Planner output; recomputed on every planning call, never the source of truth"""

    account_id: str
    account_type: AccountType
    current_state: CollectionState
    balance: Decimal
    days_past_due: int
    due_date: datetime
    actions: Tuple[ScheduledDunningAction, ...]
    next_action_date: datetime
    is_paused: bool = False
    pause_reason: Optional[str] = None
    pause_end_date: Optional[datetime] = None


@dataclass(frozen=True)
class DunningExecutionResult:
    """Structured record handed to the communication gateway and persisted by the caller"""

    account_id: str
    action: CollectionAction
    day: int
    template: str
    success: bool
    message: str
    channel: DunningChannel
    timestamp: datetime
    error: Optional[str] = None


@dataclass(frozen=True)
class DunningMetrics:
    total_actions: int
    completed_actions: int
    pending_actions: int
    skipped_actions: int
    failed_actions: int
    completion_percentage: int
    next_action_in_days: Optional[int]


@dataclass(frozen=True)
class AccountAssessment:
    """Transition recommendation and outreach plan evaluated against one clock reading"""

    account_id: str
    days_past_due: int
    transition: StateTransitionResult
    schedule: DunningSchedule
    next_action: Optional[ScheduledDunningAction]
    evaluated_at: datetime


@dataclass(frozen=True)
class TransitionPlan:
    """Outcome of validating a requested state change"""

    current_state: CollectionState
    target_state: CollectionState
    valid: bool
    reason: str
    requires_approval: bool
    next_state: CollectionState
    actions_to_perform: Tuple[CollectionAction, ...] = ()


@dataclass
class BatchAccountResult:
    account_id: str
    outcome: BatchOutcome
    message: str
    action: Optional[CollectionAction] = None
    execution: Optional[DunningExecutionResult] = None

    @property
    def success(self) -> bool:
        return self.outcome != BatchOutcome.ERROR


@dataclass
class DunningBatchResult:
    """Aggregate of one dunning batch pass"""

    evaluated_at: datetime
    processed: int = 0
    ineligible: int = 0
    actions_executed: int = 0
    skipped: int = 0  # paused by a skip rule
    nothing_due: int = 0
    errors: List[str] = field(default_factory=list)
    results: List[BatchAccountResult] = field(default_factory=list)
