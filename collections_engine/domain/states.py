"""Collection state machine - state lookups, transition graph queries and aging recommendations"""

import logging
from typing import Dict, List, Optional, Tuple

from collections_engine.domain.models import (
    CollectionAction,
    CollectionState,
    PaymentActivity,
    StateConfig,
    StateTransition,
    StateTransitionResult,
    TransitionValidation,
    coerce_amount,
    coerce_days,
    coerce_enum,
    coerce_optional_enum,
)
from collections_engine.domain.rules import RuleSet, default_rule_set

logger = logging.getLogger(__name__)


class StateRegistry:
    """
    Read-only view over the state tables of a RuleSet.

    Every method is a pure function of its arguments and the injected rules,
    so one instance can be shared freely across threads.
    """

    def __init__(self, rules: RuleSet | None = None):
        self.rules = rules or default_rule_set()
        outgoing: Dict[CollectionState, List[StateTransition]] = {state: [] for state in CollectionState}
        for transition in self.rules.transitions:
            outgoing[transition.from_state].append(transition)
        self._outgoing = {state: tuple(edges) for state, edges in outgoing.items()}

    def get_state_config(self, state: CollectionState) -> StateConfig:
        state = coerce_enum(CollectionState, state, "state")
        return self.rules.state_configs[state]

    def get_allowed_transitions(self, from_state: CollectionState) -> Tuple[StateTransition, ...]:
        """All edges leaving from_state, in table order"""
        from_state = coerce_enum(CollectionState, from_state, "from_state")
        return self._outgoing[from_state]

    def is_transition_allowed(
        self,
        from_state: CollectionState,
        to_state: CollectionState,
        payment_activity: Optional[PaymentActivity] = None,
    ) -> bool:
        """
        Edge existence test.

        When payment_activity is given it must equal the edge trigger, unless the
        edge has no trigger at all.
        """
        return self._find_transition(from_state, to_state, payment_activity) is not None

    def validate_transition(
        self,
        from_state: CollectionState,
        to_state: CollectionState,
        account_age_days: Optional[int] = None,
        payment_activity: Optional[PaymentActivity] = None,
    ) -> TransitionValidation:
        """
        Validate a requested state change, including the dwell-time requirement.

        An invalid result is an ordinary outcome, not an error. requires_approval
        is informational; approval workflows belong to the caller.
        """
        transition = self._find_transition(from_state, to_state, payment_activity)
        from_state = coerce_enum(CollectionState, from_state, "from_state")
        to_state = coerce_enum(CollectionState, to_state, "to_state")

        if transition is None:
            return TransitionValidation(
                valid=False,
                reason=f"Transition from {from_state.value} to {to_state.value} is not allowed",
                requires_approval=False,
            )

        if account_age_days is not None:
            account_age_days = coerce_days(account_age_days, "account_age_days")
            if transition.min_days_in_state is not None and account_age_days < transition.min_days_in_state:
                return TransitionValidation(
                    valid=False,
                    reason=(
                        f"Account must be in {from_state.value} state for at least "
                        f"{transition.min_days_in_state} days"
                    ),
                    requires_approval=False,
                )

        return TransitionValidation(
            valid=True,
            reason=transition.description,
            requires_approval=transition.requires_approval,
        )

    def get_next_state(
        self,
        current_state: CollectionState,
        account_age_days: int,
        payment_activity: PaymentActivity,
        current_balance,
    ) -> StateTransitionResult:
        """
        Recommend the next state from account age and payment activity.

        Priority:
        1. Zero balance or full payment -> PAID (never out of WRITTEN_OFF)
        2. Payment plan / partial payment with a matching edge -> that edge's target
        3. Aging bands, plus agency and bad-debt escalations
        4. The aging target is only accepted when it is the current state or an
           edge allows it; otherwise the desired state is surfaced for review
        """
        current_state = coerce_enum(CollectionState, current_state, "current_state")
        payment_activity = coerce_enum(PaymentActivity, payment_activity, "payment_activity")
        balance = coerce_amount(current_balance, "current_balance")
        age_days = max(0, coerce_days(account_age_days, "account_age_days"))

        if balance <= 0 or payment_activity == PaymentActivity.FULL_PAYMENT:
            if current_state == CollectionState.WRITTEN_OFF:
                return StateTransitionResult(
                    next_state=CollectionState.WRITTEN_OFF,
                    should_transition=False,
                    reason="Payment received on written-off account - state is terminal",
                    recommended_actions=(CollectionAction.APPLY_PAYMENT,),
                    desired_state=CollectionState.PAID,
                )
            return StateTransitionResult(
                next_state=CollectionState.PAID,
                should_transition=current_state != CollectionState.PAID,
                reason="Account paid in full",
                recommended_actions=(CollectionAction.CLOSE_ACCOUNT,),
            )

        if payment_activity in (PaymentActivity.PAYMENT_PLAN_STARTED, PaymentActivity.PARTIAL_PAYMENT):
            for transition in self._outgoing[current_state]:
                if transition.payment_activity == payment_activity:
                    return StateTransitionResult(
                        next_state=transition.to_state,
                        should_transition=True,
                        reason=transition.description,
                        recommended_actions=(CollectionAction.SEND_STATEMENT,),
                    )

        target, reason = self._aging_target(current_state, age_days)
        config = self.rules.state_configs[target]
        recommended_actions = config.auto_actions or config.allowed_actions[:2]

        if target == current_state:
            return StateTransitionResult(
                next_state=current_state,
                should_transition=False,
                reason=reason,
                recommended_actions=recommended_actions,
                desired_state=target,
            )

        transition = self._find_transition(current_state, target, payment_activity)
        if transition is None:
            logger.debug(
                "Aging target %s not reachable from %s at %d days",
                target.value,
                current_state.value,
                age_days,
            )
            return StateTransitionResult(
                next_state=current_state,
                should_transition=False,
                reason=(
                    f"{reason}; recommended {target.value} is not reachable from "
                    f"{current_state.value} - manual review required"
                ),
                recommended_actions=recommended_actions,
                desired_state=target,
            )

        days_until = None
        if transition.min_days_in_state:
            days_until = max(0, transition.min_days_in_state - (age_days % 30))

        return StateTransitionResult(
            next_state=target,
            should_transition=True,
            reason=reason,
            recommended_actions=recommended_actions,
            days_until_auto_transition=days_until,
            desired_state=target,
        )

    def get_allowed_actions(self, state: CollectionState) -> Tuple[CollectionAction, ...]:
        return self.get_state_config(state).allowed_actions

    def is_action_allowed(self, state: CollectionState, action: CollectionAction) -> bool:
        action = coerce_enum(CollectionAction, action, "action")
        return action in self.get_state_config(state).allowed_actions

    def get_auto_actions(self, state: CollectionState) -> Tuple[CollectionAction, ...]:
        """Actions fired automatically on entering state"""
        return self.get_state_config(state).auto_actions

    def get_dunning_intensity(self, state: CollectionState) -> int:
        return self.get_state_config(state).dunning_intensity

    def can_report_to_credit(self, state: CollectionState) -> bool:
        return self.get_state_config(state).can_report_to_credit

    def can_send_to_agency(self, state: CollectionState) -> bool:
        return self.get_state_config(state).can_send_to_agency

    def can_write_off(self, state: CollectionState) -> bool:
        return self.get_state_config(state).can_write_off

    def _find_transition(
        self,
        from_state: CollectionState,
        to_state: CollectionState,
        payment_activity: Optional[PaymentActivity],
    ) -> Optional[StateTransition]:
        from_state = coerce_enum(CollectionState, from_state, "from_state")
        to_state = coerce_enum(CollectionState, to_state, "to_state")
        payment_activity = coerce_optional_enum(PaymentActivity, payment_activity, "payment_activity")

        for transition in self._outgoing[from_state]:
            if transition.to_state != to_state:
                continue
            if (
                payment_activity is None
                or transition.payment_activity is None
                or transition.payment_activity == payment_activity
            ):
                return transition
        return None

    def _aging_target(self, current_state: CollectionState, age_days: int) -> Tuple[CollectionState, str]:
        for band in self.rules.aging_bands:
            if age_days <= band.max_days:
                return band.state, band.reason

        if current_state == CollectionState.COLLECTION_AGENCY:
            if age_days > self.rules.bad_debt_escalation_days:
                return CollectionState.BAD_DEBT, "Account at agency over 180 days - classify as bad debt"
            return CollectionState.COLLECTION_AGENCY, "Account remains at collection agency"

        if current_state == CollectionState.PRE_COLLECTION and age_days > self.rules.agency_escalation_days:
            return CollectionState.COLLECTION_AGENCY, "Pre-collection period expired - send to agency"

        return current_state, "No state change required"
