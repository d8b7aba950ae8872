"""Static collection rule tables - state configs, transition graph, dunning sequences and thresholds"""

from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from collections_engine.domain.exceptions import RuleSetIntegrityError
from collections_engine.domain.models import (
    AccountType,
    CollectionAction as A,
    CollectionState as S,
    DunningAction,
    DunningChannel as C,
    PaymentActivity as P,
    StateConfig,
    StateTransition,
)

# Canonical aging path; dunning intensity must not decrease along it
AGING_PATH: Tuple[S, ...] = (
    S.CURRENT,
    S.PAST_DUE_30,
    S.PAST_DUE_60,
    S.PAST_DUE_90,
    S.PAST_DUE_120,
    S.PRE_COLLECTION,
    S.COLLECTION_AGENCY,
)


@dataclass(frozen=True)
class AgingBand:
    """Inclusive upper bound of days past due mapped to a nominal state"""

    max_days: int
    state: S
    reason: str


AGING_BANDS: Tuple[AgingBand, ...] = (
    AgingBand(0, S.CURRENT, "Account is current"),
    AgingBand(30, S.PAST_DUE_30, "Account is 1-30 days past due"),
    AgingBand(60, S.PAST_DUE_60, "Account is 31-60 days past due"),
    AgingBand(90, S.PAST_DUE_90, "Account is 61-90 days past due"),
    AgingBand(120, S.PAST_DUE_120, "Account is 91-120 days past due"),
    AgingBand(150, S.PRE_COLLECTION, "Account is over 120 days past due - pre-collection"),
)

# Escalations past the last aging band
AGENCY_ESCALATION_DAYS = 164
BAD_DEBT_ESCALATION_DAYS = 330


def _config(
    state: S,
    display_name: str,
    description: str,
    allowed: Tuple[A, ...],
    auto: Tuple[A, ...],
    intensity: int,
    credit: bool = False,
    agency: bool = False,
    write_off: bool = False,
) -> StateConfig:
    return StateConfig(
        state=state,
        display_name=display_name,
        description=description,
        allowed_actions=allowed,
        auto_actions=auto,
        dunning_intensity=intensity,
        can_report_to_credit=credit,
        can_send_to_agency=agency,
        can_write_off=write_off,
    )


STATE_CONFIGS: Dict[S, StateConfig] = {
    S.CURRENT: _config(
        S.CURRENT,
        "Current",
        "Account is current with no overdue balance",
        (A.SEND_STATEMENT, A.APPLY_PAYMENT, A.SET_UP_PAYMENT_PLAN),
        (),
        0,
    ),
    S.PAST_DUE_30: _config(
        S.PAST_DUE_30,
        "30 Days Past Due",
        "Account is 1-30 days past due",
        (A.SEND_STATEMENT, A.SEND_REMINDER, A.APPLY_PAYMENT, A.SET_UP_PAYMENT_PLAN, A.RECORD_PROMISE_TO_PAY),
        (A.SEND_STATEMENT,),
        2,
    ),
    S.PAST_DUE_60: _config(
        S.PAST_DUE_60,
        "60 Days Past Due",
        "Account is 31-60 days past due",
        (
            A.SEND_STATEMENT,
            A.SEND_REMINDER,
            A.MAKE_CALL,
            A.APPLY_PAYMENT,
            A.SET_UP_PAYMENT_PLAN,
            A.RECORD_PROMISE_TO_PAY,
        ),
        (A.SEND_STATEMENT, A.SEND_REMINDER),
        4,
    ),
    S.PAST_DUE_90: _config(
        S.PAST_DUE_90,
        "90 Days Past Due",
        "Account is 61-90 days past due",
        (
            A.SEND_STATEMENT,
            A.SEND_REMINDER,
            A.MAKE_CALL,
            A.SEND_DEMAND_LETTER,
            A.APPLY_PAYMENT,
            A.SET_UP_PAYMENT_PLAN,
            A.RECORD_PROMISE_TO_PAY,
            A.ESCALATE,
        ),
        (A.SEND_DEMAND_LETTER, A.MAKE_CALL),
        6,
        credit=True,
    ),
    S.PAST_DUE_120: _config(
        S.PAST_DUE_120,
        "120 Days Past Due",
        "Account is 91-120 days past due",
        (
            A.SEND_STATEMENT,
            A.MAKE_CALL,
            A.SEND_DEMAND_LETTER,
            A.FINAL_NOTICE,
            A.APPLY_PAYMENT,
            A.SET_UP_PAYMENT_PLAN,
            A.RECORD_PROMISE_TO_PAY,
            A.ESCALATE,
        ),
        (A.FINAL_NOTICE, A.MAKE_CALL),
        8,
        credit=True,
        agency=True,
    ),
    S.PRE_COLLECTION: _config(
        S.PRE_COLLECTION,
        "Pre-Collection",
        "Account is being prepared for external collection",
        (
            A.MAKE_CALL,
            A.FINAL_NOTICE,
            A.SEND_TO_AGENCY,
            A.APPLY_PAYMENT,
            A.SET_UP_PAYMENT_PLAN,
            A.RECORD_PROMISE_TO_PAY,
            A.WRITE_OFF,
        ),
        (A.FINAL_NOTICE,),
        9,
        credit=True,
        agency=True,
        write_off=True,
    ),
    S.COLLECTION_AGENCY: _config(
        S.COLLECTION_AGENCY,
        "At Collection Agency",
        "Account has been assigned to external collection agency",
        (A.RECALL_FROM_AGENCY, A.APPLY_PAYMENT, A.WRITE_OFF),
        (),
        10,
        credit=True,
        write_off=True,
    ),
    S.BAD_DEBT: _config(
        S.BAD_DEBT,
        "Bad Debt",
        "Account classified as bad debt",
        (A.APPLY_PAYMENT, A.WRITE_OFF, A.SEND_TO_AGENCY),
        (),
        10,
        credit=True,
        agency=True,
        write_off=True,
    ),
    S.PAID: _config(
        S.PAID,
        "Paid in Full",
        "Account has been paid in full",
        (A.CLOSE_ACCOUNT,),
        (A.CLOSE_ACCOUNT,),
        0,
    ),
    S.WRITTEN_OFF: _config(
        S.WRITTEN_OFF,
        "Written Off",
        "Account has been written off as uncollectible",
        (A.APPLY_PAYMENT,),
        (),
        0,
    ),
}


def _edge(
    from_state: S,
    to_state: S,
    description: str,
    min_days: Optional[int] = None,
    activity: Optional[P] = None,
    approval: bool = False,
) -> StateTransition:
    return StateTransition(
        from_state=from_state,
        to_state=to_state,
        description=description,
        min_days_in_state=min_days,
        payment_activity=activity,
        requires_approval=approval,
    )


STATE_TRANSITIONS: Tuple[StateTransition, ...] = (
    # Aging progression
    _edge(S.CURRENT, S.PAST_DUE_30, "Account becomes 30 days past due with no payment activity", 30, P.NO_ACTIVITY),
    _edge(S.PAST_DUE_30, S.PAST_DUE_60, "Account ages to 60 days past due", 30, P.NO_ACTIVITY),
    _edge(S.PAST_DUE_60, S.PAST_DUE_90, "Account ages to 90 days past due", 30, P.NO_ACTIVITY),
    _edge(S.PAST_DUE_90, S.PAST_DUE_120, "Account ages to 120 days past due", 30, P.NO_ACTIVITY),
    _edge(S.PAST_DUE_120, S.PRE_COLLECTION, "Account moves to pre-collection after 120+ days", 30, P.NO_ACTIVITY),
    _edge(
        S.PRE_COLLECTION,
        S.COLLECTION_AGENCY,
        "Account sent to collection agency after final notice period",
        14,
        P.NO_ACTIVITY,
        approval=True,
    ),
    _edge(
        S.COLLECTION_AGENCY,
        S.BAD_DEBT,
        "Uncollected agency account moves to bad debt",
        180,
        P.NO_ACTIVITY,
        approval=True,
    ),
    # Full payment
    _edge(S.PAST_DUE_30, S.PAID, "Full payment received", activity=P.FULL_PAYMENT),
    _edge(S.PAST_DUE_60, S.PAID, "Full payment received", activity=P.FULL_PAYMENT),
    _edge(S.PAST_DUE_90, S.PAID, "Full payment received", activity=P.FULL_PAYMENT),
    _edge(S.PAST_DUE_120, S.PAID, "Full payment received", activity=P.FULL_PAYMENT),
    _edge(S.PRE_COLLECTION, S.PAID, "Full payment received", activity=P.FULL_PAYMENT),
    _edge(S.COLLECTION_AGENCY, S.PAID, "Full payment received from agency", activity=P.FULL_PAYMENT),
    _edge(S.BAD_DEBT, S.PAID, "Unexpected full payment on bad debt account", activity=P.FULL_PAYMENT),
    # Partial payment steps the account back one band
    _edge(S.PAST_DUE_60, S.PAST_DUE_30, "Partial payment resets aging clock", activity=P.PARTIAL_PAYMENT),
    _edge(S.PAST_DUE_90, S.PAST_DUE_60, "Partial payment resets aging clock", activity=P.PARTIAL_PAYMENT),
    _edge(S.PAST_DUE_120, S.PAST_DUE_90, "Partial payment resets aging clock", activity=P.PARTIAL_PAYMENT),
    _edge(
        S.PRE_COLLECTION, S.PAST_DUE_120, "Partial payment moves back from pre-collection", activity=P.PARTIAL_PAYMENT
    ),
    # Payment plans
    _edge(S.PAST_DUE_30, S.CURRENT, "Payment plan established", activity=P.PAYMENT_PLAN_STARTED),
    _edge(S.PAST_DUE_60, S.CURRENT, "Payment plan established", activity=P.PAYMENT_PLAN_STARTED),
    _edge(S.PAST_DUE_90, S.CURRENT, "Payment plan established", activity=P.PAYMENT_PLAN_STARTED),
    _edge(S.PAST_DUE_120, S.PAST_DUE_30, "Payment plan established - reduced aging", activity=P.PAYMENT_PLAN_STARTED),
    _edge(
        S.PRE_COLLECTION,
        S.PAST_DUE_60,
        "Payment plan established - moves back from pre-collection",
        activity=P.PAYMENT_PLAN_STARTED,
    ),
    # Write-offs
    _edge(S.PRE_COLLECTION, S.WRITTEN_OFF, "Account written off as uncollectible", approval=True),
    _edge(S.COLLECTION_AGENCY, S.WRITTEN_OFF, "Agency account written off", approval=True),
    _edge(S.BAD_DEBT, S.WRITTEN_OFF, "Bad debt written off", approval=True),
    # Recall
    _edge(S.COLLECTION_AGENCY, S.PRE_COLLECTION, "Account recalled from collection agency", approval=True),
)


def _step(day: int, action: A, template: str, channel: C, mandatory: bool, description: str) -> DunningAction:
    return DunningAction(
        day=day, action=action, template=template, channel=channel, mandatory=mandatory, description=description
    )


SELF_PAY_SEQUENCE: Tuple[DunningAction, ...] = (
    _step(1, A.SEND_STATEMENT, "initial_statement", C.LETTER, True, "Initial statement sent"),
    _step(14, A.SEND_REMINDER, "first_reminder", C.EMAIL, False, "First reminder email"),
    _step(30, A.SEND_STATEMENT, "second_statement", C.LETTER, True, "Second statement - past due notice"),
    _step(35, A.SEND_REMINDER, "sms_reminder", C.SMS, False, "SMS payment reminder"),
    _step(45, A.MAKE_CALL, "first_call", C.CALL, False, "First collection call"),
    _step(60, A.SEND_STATEMENT, "third_statement", C.LETTER, True, "Third statement - urgent"),
    _step(65, A.MAKE_CALL, "second_call", C.CALL, False, "Second collection call"),
    _step(75, A.SEND_REMINDER, "final_email", C.EMAIL, False, "Final email reminder"),
    _step(90, A.SEND_DEMAND_LETTER, "demand_letter", C.LETTER, True, "Demand letter sent"),
    _step(100, A.MAKE_CALL, "final_call", C.CALL, True, "Final collection call"),
    _step(120, A.FINAL_NOTICE, "final_notice", C.LETTER, True, "Final notice before collection agency"),
)

INSURANCE_SEQUENCE: Tuple[DunningAction, ...] = (
    _step(1, A.SEND_STATEMENT, "insurance_statement", C.LETTER, True, "Patient responsibility statement"),
    _step(21, A.SEND_REMINDER, "insurance_reminder", C.EMAIL, False, "Insurance balance reminder"),
    _step(45, A.SEND_STATEMENT, "insurance_second", C.LETTER, True, "Second insurance balance statement"),
    _step(60, A.MAKE_CALL, "insurance_call", C.CALL, False, "Patient responsibility call"),
    _step(75, A.SEND_DEMAND_LETTER, "insurance_demand", C.LETTER, True, "Insurance balance demand"),
    _step(90, A.FINAL_NOTICE, "insurance_final", C.LETTER, True, "Final notice - insurance balance"),
)

WORKERS_COMP_SEQUENCE: Tuple[DunningAction, ...] = (
    _step(30, A.SEND_STATEMENT, "wc_statement", C.LETTER, True, "Workers comp statement"),
    _step(60, A.SEND_REMINDER, "wc_reminder", C.EMAIL, False, "Workers comp reminder"),
    _step(90, A.MAKE_CALL, "wc_call", C.CALL, True, "Workers comp follow-up call"),
    _step(120, A.SEND_DEMAND_LETTER, "wc_demand", C.LETTER, True, "Workers comp demand letter"),
)

CHARITY_SEQUENCE: Tuple[DunningAction, ...] = (
    _step(1, A.SEND_STATEMENT, "charity_statement", C.LETTER, True, "Charity care application reminder"),
    _step(30, A.SEND_REMINDER, "charity_reminder", C.EMAIL, False, "Charity care follow-up"),
    _step(60, A.MAKE_CALL, "charity_call", C.CALL, False, "Charity care assistance call"),
)

PAYMENT_PLAN_SEQUENCE: Tuple[DunningAction, ...] = (
    _step(5, A.SEND_REMINDER, "pp_reminder", C.EMAIL, False, "Payment plan reminder"),
    _step(7, A.SEND_REMINDER, "pp_sms", C.SMS, False, "Payment plan SMS reminder"),
    _step(14, A.MAKE_CALL, "pp_call", C.CALL, True, "Payment plan missed payment call"),
    _step(21, A.SEND_STATEMENT, "pp_statement", C.LETTER, True, "Payment plan status statement"),
    _step(30, A.SEND_DEMAND_LETTER, "pp_default", C.LETTER, True, "Payment plan default notice"),
)

HARDSHIP_SEQUENCE: Tuple[DunningAction, ...] = (
    _step(30, A.SEND_STATEMENT, "hardship_statement", C.LETTER, True, "Hardship status statement"),
    _step(90, A.SEND_REMINDER, "hardship_review", C.LETTER, True, "Hardship review reminder"),
)

DUNNING_SEQUENCES: Dict[AccountType, Tuple[DunningAction, ...]] = {
    AccountType.SELF_PAY: SELF_PAY_SEQUENCE,
    AccountType.INSURANCE: INSURANCE_SEQUENCE,
    AccountType.WORKERS_COMP: WORKERS_COMP_SEQUENCE,
    AccountType.CHARITY: CHARITY_SEQUENCE,
    AccountType.PAYMENT_PLAN: PAYMENT_PLAN_SEQUENCE,
    AccountType.HARDSHIP: HARDSHIP_SEQUENCE,
}

MINIMUM_BALANCE_THRESHOLDS: Dict[AccountType, Decimal] = {
    AccountType.SELF_PAY: Decimal("25"),
    AccountType.INSURANCE: Decimal("10"),
    AccountType.WORKERS_COMP: Decimal("50"),
    AccountType.CHARITY: Decimal("0"),
    AccountType.PAYMENT_PLAN: Decimal("10"),
    AccountType.HARDSHIP: Decimal("0"),
}


@dataclass(frozen=True)
class RuleSet:
    """
    Immutable bundle of the collection rule tables.

    Injected into StateRegistry and DunningPlanner so alternate rule sets can be
    substituted without touching module state.
    """

    state_configs: Mapping[S, StateConfig]
    transitions: Tuple[StateTransition, ...]
    sequences: Mapping[AccountType, Tuple[DunningAction, ...]]
    minimum_balances: Mapping[AccountType, Decimal]
    aging_bands: Tuple[AgingBand, ...] = AGING_BANDS
    agency_escalation_days: int = AGENCY_ESCALATION_DAYS
    bad_debt_escalation_days: int = BAD_DEBT_ESCALATION_DAYS

    @classmethod
    def build(
        cls,
        state_configs: Mapping[S, StateConfig],
        transitions: Tuple[StateTransition, ...],
        sequences: Mapping[AccountType, Tuple[DunningAction, ...]],
        minimum_balances: Mapping[AccountType, Decimal],
        **kwargs,
    ) -> "RuleSet":
        """Freeze plain dicts into read-only mappings"""
        return cls(
            state_configs=MappingProxyType(dict(state_configs)),
            transitions=tuple(transitions),
            sequences=MappingProxyType({k: tuple(v) for k, v in sequences.items()}),
            minimum_balances=MappingProxyType(dict(minimum_balances)),
            **kwargs,
        )

    def validate(self) -> "RuleSet":
        """
        Check structural invariants of the tables.

        Raises:
            RuleSetIntegrityError: listing every violation found
        """
        violations: List[str] = []

        for state in S:
            config = self.state_configs.get(state)
            if config is None:
                violations.append(f"{state.value} has no state config")
                continue
            extra = [a.value for a in config.auto_actions if a not in config.allowed_actions]
            if extra:
                violations.append(f"{state.value} auto actions not allowed: {', '.join(extra)}")
            if not 0 <= config.dunning_intensity <= 10:
                violations.append(f"{state.value} dunning intensity {config.dunning_intensity} outside 0-10")

        path = [self.state_configs[s].dunning_intensity for s in AGING_PATH if s in self.state_configs]
        if any(later < earlier for earlier, later in zip(path, path[1:])):
            violations.append("dunning intensity decreases along the aging path")

        seen = set()
        for t in self.transitions:
            key = (t.from_state, t.to_state, t.payment_activity)
            if key in seen:
                activity = t.payment_activity.value if t.payment_activity else "any"
                violations.append(f"duplicate transition {t.from_state.value}->{t.to_state.value} ({activity})")
            seen.add(key)
            if t.from_state == S.WRITTEN_OFF:
                violations.append(f"terminal state WRITTEN_OFF has outgoing transition to {t.to_state.value}")

        for account_type in AccountType:
            sequence = self.sequences.get(account_type)
            if sequence is None:
                violations.append(f"{account_type.value} has no dunning sequence")
            elif any(b.day <= a.day for a, b in zip(sequence, sequence[1:])):
                violations.append(f"{account_type.value} sequence days are not strictly increasing")
            if account_type not in self.minimum_balances:
                violations.append(f"{account_type.value} has no minimum balance threshold")

        if violations:
            raise RuleSetIntegrityError(violations)
        return self


@lru_cache(maxsize=1)
def default_rule_set() -> RuleSet:
    """Rule set shipped with the engine, validated once per process"""
    return RuleSet.build(
        state_configs=STATE_CONFIGS,
        transitions=STATE_TRANSITIONS,
        sequences=DUNNING_SEQUENCES,
        minimum_balances=MINIMUM_BALANCE_THRESHOLDS,
    ).validate()
