"""Dunning planner - skip rules, outreach schedule generation and schedule adjustments"""

import logging
import math
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Mapping, Optional, Tuple

from collections_engine.domain.exceptions import InvalidDomainValueError
from collections_engine.domain.models import (
    AccountType,
    ActionStatus,
    DunningAccount,
    DunningAction,
    DunningExecutionResult,
    DunningMetrics,
    DunningSchedule,
    DunningSkipCondition,
    ExecutedAction,
    PastActionPolicy,
    ScheduledDunningAction,
    SkipConditionType,
    SkipDecision,
    coerce_days,
    coerce_enum,
)
from collections_engine.domain.rules import RuleSet
from collections_engine.domain.states import StateRegistry
from collections_engine.utils.date_utils import (
    SECONDS_PER_DAY,
    add_days,
    ensure_optional_utc,
    utc_now,
    whole_days_between,
)

logger = logging.getLogger(__name__)

CHANNEL_SKIP_REASON = "Channel not in patient preferences"

# Reason text for explicit skip conditions; PAYMENT_PLAN switches sequences instead
CONDITION_SKIP_REASONS: Dict[SkipConditionType, Optional[str]] = {
    SkipConditionType.BANKRUPTCY: "Account in bankruptcy - all collection activity prohibited",
    SkipConditionType.DECEASED: "Patient deceased - dunning suspended",
    SkipConditionType.DISPUTE: "Active dispute on account",
    SkipConditionType.HARDSHIP: "Hardship condition active",
    SkipConditionType.PAYMENT_PLAN: None,
    SkipConditionType.PROMISE_TO_PAY: None,  # reason carries the condition details
    SkipConditionType.RECENT_PAYMENT: "Recent payment activity detected",
    SkipConditionType.MINIMUM_BALANCE: "Balance below collection threshold",
}


class DunningPlanner:
    """
    Builds and manipulates dunning schedules.

    Stateless: every operation is a pure function of its arguments, the injected
    rules and the `now` it is given (or reads once when omitted).
    """

    def __init__(
        self,
        registry: StateRegistry | None = None,
        rules: RuleSet | None = None,
        past_action_policy: PastActionPolicy = PastActionPolicy.ASSUME_COMPLETED,
        recent_payment_window_days: int = 14,
        review_interval_days: int = 30,
    ):
        self.registry = registry or StateRegistry(rules)
        self.rules = rules or self.registry.rules
        self.past_action_policy = coerce_enum(PastActionPolicy, past_action_policy, "past_action_policy")
        self.recent_payment_window_days = coerce_days(recent_payment_window_days, "recent_payment_window_days")
        self.review_interval_days = coerce_days(review_interval_days, "review_interval_days")

    def get_dunning_sequence(self, account_type: AccountType) -> Tuple[DunningAction, ...]:
        account_type = coerce_enum(AccountType, account_type, "account_type")
        sequence = self.rules.sequences.get(account_type)
        if sequence is None:
            raise InvalidDomainValueError(
                "account_type", account_type, f"No dunning sequence for {account_type.value}"
            )
        return sequence

    def get_all_dunning_sequences(self) -> Mapping[AccountType, Tuple[DunningAction, ...]]:
        return self.rules.sequences

    def condition_in_force(self, condition: DunningSkipCondition, now: datetime) -> bool:
        """Active, already effective and not yet expired"""
        if not condition.active:
            return False
        if condition.effective_date is not None and condition.effective_date > now:
            return False
        if condition.expiration_date is not None and condition.expiration_date < now:
            return False
        return True

    def should_skip_dunning(self, account: DunningAccount, now: datetime | None = None) -> SkipDecision:
        """
        Decide whether outreach is suppressed for an account.

        Checks run in fixed order and the first match wins:
        minimum balance -> recent payment -> future promise to pay -> hardship flag
        -> explicit skip conditions (PAYMENT_PLAN never skips).
        """
        now = ensure_optional_utc(now, "now") or utc_now()

        threshold = self.rules.minimum_balances.get(account.account_type)
        if threshold is None:
            raise InvalidDomainValueError(
                "account_type", account.account_type, f"No minimum balance for {account.account_type.value}"
            )
        if account.balance < threshold:
            return SkipDecision(
                skip=True,
                reason=f"Balance below minimum threshold (${threshold})",
                condition=SkipConditionType.MINIMUM_BALANCE,
            )

        if account.last_payment_date is not None:
            days_since_payment = whole_days_between(account.last_payment_date, now)
            if days_since_payment <= self.recent_payment_window_days:
                return SkipDecision(
                    skip=True,
                    reason=f"Recent payment received {days_since_payment} days ago",
                    condition=SkipConditionType.RECENT_PAYMENT,
                )

        if account.promise_to_pay_date is not None and account.promise_to_pay_date >= now:
            return SkipDecision(
                skip=True,
                reason=f"Promise to pay scheduled for {account.promise_to_pay_date.date().isoformat()}",
                condition=SkipConditionType.PROMISE_TO_PAY,
            )

        if account.has_hardship:
            return SkipDecision(
                skip=True, reason="Account has hardship status", condition=SkipConditionType.HARDSHIP
            )

        for condition in account.skip_conditions:
            if not self.condition_in_force(condition, now):
                continue
            if condition.type == SkipConditionType.PAYMENT_PLAN:
                continue
            if condition.type == SkipConditionType.PROMISE_TO_PAY:
                reason = f"Promise to pay active: {condition.details or 'pending payment'}"
            else:
                reason = CONDITION_SKIP_REASONS[condition.type]
            return SkipDecision(skip=True, reason=reason, condition=condition.type)

        return SkipDecision(skip=False)

    def generate_dunning_plan(self, account: DunningAccount, now: datetime | None = None) -> DunningSchedule:
        """
        Compute the outreach schedule for an account snapshot.

        Requirements:
        - days_past_due is clamped at 0 for future due dates
        - skipped accounts get a paused schedule with no actions and a review date
        - PAYMENT_PLAN cadence replaces the nominal one for accounts on a plan
        - past actions are classified by the execution log, then by policy
        - non-mandatory pending actions outside preferred channels are skipped
        """
        now = ensure_optional_utc(now, "now") or utc_now()
        days_past_due = max(0, whole_days_between(account.due_date, now))
        review_date = add_days(now, self.review_interval_days)

        skip = self.should_skip_dunning(account, now)
        if skip.skip:
            logger.debug("Dunning paused for account %s: %s", account.account_id, skip.reason)
            return DunningSchedule(
                account_id=account.account_id,
                account_type=account.account_type,
                current_state=account.current_state,
                balance=account.balance,
                days_past_due=days_past_due,
                due_date=account.due_date,
                actions=(),
                next_action_date=review_date,
                is_paused=True,
                pause_reason=skip.reason,
            )

        sequence = self.get_dunning_sequence(self._effective_account_type(account, now))
        executed = self._execution_log(account.executed_actions)
        actions = tuple(self._schedule_action(template, account, executed, now) for template in sequence)

        return DunningSchedule(
            account_id=account.account_id,
            account_type=account.account_type,
            current_state=account.current_state,
            balance=account.balance,
            days_past_due=days_past_due,
            due_date=account.due_date,
            actions=actions,
            next_action_date=self._earliest_pending(actions) or review_date,
            is_paused=False,
        )

    def get_next_dunning_action(
        self, schedule: DunningSchedule, now: datetime | None = None
    ) -> Optional[ScheduledDunningAction]:
        """First pending action that is due; None while paused"""
        due = self.get_pending_dunning_actions(schedule, now)
        return due[0] if due else None

    def get_pending_dunning_actions(
        self, schedule: DunningSchedule, now: datetime | None = None
    ) -> List[ScheduledDunningAction]:
        """All pending actions that are due, in schedule order"""
        if schedule.is_paused:
            return []
        now = ensure_optional_utc(now, "now") or utc_now()
        return [
            action
            for action in schedule.actions
            if action.status == ActionStatus.PENDING and action.scheduled_date <= now
        ]

    def execute_dunning_action(
        self, account_id: str, action: ScheduledDunningAction, now: datetime | None = None
    ) -> DunningExecutionResult:
        """
        Produce the record the caller hands to the communication gateway.

        Delivery itself happens outside the engine; the caller persists the
        result keyed by (account_id, action.day, action.action).
        """
        now = ensure_optional_utc(now, "now") or utc_now()
        return DunningExecutionResult(
            account_id=account_id,
            action=action.action,
            day=action.day,
            template=action.template,
            success=True,
            message=f"{action.description} - {action.template} sent via {action.channel.value}",
            channel=action.channel,
            timestamp=now,
        )

    def calculate_dunning_metrics(self, schedule: DunningSchedule, now: datetime | None = None) -> DunningMetrics:
        now = ensure_optional_utc(now, "now") or utc_now()
        counts = {status: 0 for status in ActionStatus}
        for action in schedule.actions:
            counts[action.status] += 1
        total = len(schedule.actions)
        completed = counts[ActionStatus.COMPLETED]

        next_action_in_days = None
        if not schedule.is_paused and schedule.next_action_date is not None:
            remaining = (schedule.next_action_date - now).total_seconds() / SECONDS_PER_DAY
            next_action_in_days = max(0, math.ceil(remaining))

        return DunningMetrics(
            total_actions=total,
            completed_actions=completed,
            pending_actions=counts[ActionStatus.PENDING],
            skipped_actions=counts[ActionStatus.SKIPPED],
            failed_actions=counts[ActionStatus.FAILED],
            completion_percentage=math.floor(completed / total * 100 + 0.5) if total else 0,
            next_action_in_days=next_action_in_days,
        )

    def adjust_dunning_intensity(self, schedule: DunningSchedule, target_intensity: int) -> DunningSchedule:
        """
        Compress or stretch the remaining cadence.

        Only PENDING actions move: each is rescheduled to
        due_date + day / ratio (rounded half up) with ratio = target / current intensity.
        Completed, skipped and failed history is left untouched.
        """
        target_intensity = coerce_days(target_intensity, "target_intensity")
        if not 1 <= target_intensity <= 10:
            raise InvalidDomainValueError(
                "target_intensity", target_intensity, "target_intensity must be between 1 and 10"
            )

        current_intensity = self.registry.get_dunning_intensity(schedule.current_state)
        ratio = target_intensity / max(1, current_intensity)

        adjusted = tuple(
            replace(action, scheduled_date=add_days(schedule.due_date, math.floor(action.day / ratio + 0.5)))
            if action.status == ActionStatus.PENDING
            else action
            for action in schedule.actions
        )
        return replace(
            schedule,
            actions=adjusted,
            next_action_date=self._earliest_pending(adjusted) or schedule.next_action_date,
        )

    def pause_dunning(
        self, schedule: DunningSchedule, reason: str, pause_days: int, now: datetime | None = None
    ) -> DunningSchedule:
        pause_days = coerce_days(pause_days, "pause_days")
        if pause_days < 0:
            raise InvalidDomainValueError("pause_days", pause_days, "pause_days must not be negative")
        now = ensure_optional_utc(now, "now") or utc_now()
        return replace(schedule, is_paused=True, pause_reason=reason, pause_end_date=add_days(now, pause_days))

    def resume_dunning(self, schedule: DunningSchedule) -> DunningSchedule:
        """Clear pause metadata; call generate_dunning_plan again to pick up elapsed time"""
        return replace(schedule, is_paused=False, pause_reason=None, pause_end_date=None)

    def _effective_account_type(self, account: DunningAccount, now: datetime) -> AccountType:
        if account.on_payment_plan:
            return AccountType.PAYMENT_PLAN
        for condition in account.skip_conditions:
            if condition.type == SkipConditionType.PAYMENT_PLAN and self.condition_in_force(condition, now):
                return AccountType.PAYMENT_PLAN
        return account.account_type

    def _execution_log(self, entries: Tuple[ExecutedAction, ...]) -> Dict[tuple, ExecutedAction]:
        # Latest attempt per (day, action) wins
        log: Dict[tuple, ExecutedAction] = {}
        for entry in sorted(entries, key=lambda e: e.executed_at):
            log[entry.key] = entry
        return log

    def _schedule_action(
        self,
        template: DunningAction,
        account: DunningAccount,
        executed: Dict[tuple, ExecutedAction],
        now: datetime,
    ) -> ScheduledDunningAction:
        scheduled_date = add_days(account.due_date, template.day)
        action = ScheduledDunningAction.from_template(template, scheduled_date)

        entry = executed.get(action.key)
        if entry is not None:
            if entry.success:
                return replace(action, status=ActionStatus.COMPLETED, completed_date=entry.executed_at)
            return replace(action, status=ActionStatus.FAILED)

        if scheduled_date < now and self.past_action_policy == PastActionPolicy.ASSUME_COMPLETED:
            return replace(action, status=ActionStatus.COMPLETED)

        if (
            account.preferred_channels
            and template.channel not in account.preferred_channels
            and not template.mandatory
        ):
            return replace(action, status=ActionStatus.SKIPPED, skip_reason=CHANNEL_SKIP_REASON)

        return action

    @staticmethod
    def _earliest_pending(actions: Tuple[ScheduledDunningAction, ...]) -> Optional[datetime]:
        pending = [a.scheduled_date for a in actions if a.status == ActionStatus.PENDING]
        return min(pending) if pending else None
