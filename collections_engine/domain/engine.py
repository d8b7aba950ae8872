"""Collections engine - one-call account assessment, transition planning and dunning batches"""

import logging
from datetime import datetime
from typing import Any, FrozenSet, Iterable, Mapping, Optional, Union

from collections_engine.domain.dunning import DunningPlanner
from collections_engine.domain.exceptions import DomainException, InvalidDomainValueError
from collections_engine.domain.models import (
    AccountAssessment,
    BatchAccountResult,
    BatchOutcome,
    CollectionState,
    DunningAccount,
    DunningBatchResult,
    PaymentActivity,
    TransitionPlan,
    coerce_enum,
)
from collections_engine.domain.states import StateRegistry
from collections_engine.utils.date_utils import ensure_optional_utc, utc_now, whole_days_between

logger = logging.getLogger(__name__)

# States in which outreach is still running
ACTIVE_DUNNING_STATES: FrozenSet[CollectionState] = frozenset(
    {
        CollectionState.CURRENT,
        CollectionState.PAST_DUE_30,
        CollectionState.PAST_DUE_60,
        CollectionState.PAST_DUE_90,
        CollectionState.PAST_DUE_120,
        CollectionState.PRE_COLLECTION,
    }
)


class CollectionsEngine:
    """Facade combining the state registry and the dunning planner"""

    def __init__(self, registry: StateRegistry | None = None, planner: DunningPlanner | None = None):
        self.registry = registry or (planner.registry if planner else StateRegistry())
        self.planner = planner or DunningPlanner(registry=self.registry)

    def assess_account(
        self,
        account: DunningAccount,
        payment_activity: PaymentActivity = PaymentActivity.NO_ACTIVITY,
        now: datetime | None = None,
    ) -> AccountAssessment:
        """
        Evaluate an account snapshot end to end against a single clock reading.

        Returns the recommended transition, the recomputed schedule and the next
        due outreach step. Nothing is executed or persisted.
        """
        now = ensure_optional_utc(now, "now") or utc_now()
        days_past_due = max(0, whole_days_between(account.due_date, now))

        transition = self.registry.get_next_state(
            account.current_state, days_past_due, payment_activity, account.balance
        )
        schedule = self.planner.generate_dunning_plan(account, now)
        next_action = self.planner.get_next_dunning_action(schedule, now)

        return AccountAssessment(
            account_id=account.account_id,
            days_past_due=days_past_due,
            transition=transition,
            schedule=schedule,
            next_action=next_action,
            evaluated_at=now,
        )

    def plan_transition(
        self,
        current_state: CollectionState,
        target_state: CollectionState,
        account_age_days: Optional[int] = None,
        payment_activity: Optional[PaymentActivity] = None,
    ) -> TransitionPlan:
        """Validate a requested state change and list the entry actions to fire if it is legal"""
        current_state = coerce_enum(CollectionState, current_state, "current_state")
        target_state = coerce_enum(CollectionState, target_state, "target_state")
        validation = self.registry.validate_transition(
            current_state, target_state, account_age_days, payment_activity
        )

        if not validation.valid:
            return TransitionPlan(
                current_state=current_state,
                target_state=target_state,
                valid=False,
                reason=validation.reason,
                requires_approval=False,
                next_state=current_state,
            )

        return TransitionPlan(
            current_state=current_state,
            target_state=target_state,
            valid=True,
            reason=validation.reason,
            requires_approval=validation.requires_approval,
            next_state=target_state,
            actions_to_perform=self.registry.get_auto_actions(target_state),
        )

    def run_dunning_batch(
        self, accounts: Iterable[Union[DunningAccount, Mapping[str, Any]]], now: datetime | None = None
    ) -> DunningBatchResult:
        """
        Evaluate many accounts against one snapshot of `now`.

        Accounts may be given as DunningAccount instances or as raw snapshot
        mappings. Only accounts in an active dunning state with a positive
        balance are processed. At most one due action per account is turned
        into an execution record. A malformed snapshot or a domain error on one
        account is recorded and the batch continues.
        """
        now = ensure_optional_utc(now, "now") or utc_now()
        batch = DunningBatchResult(evaluated_at=now)

        for raw in accounts:
            account_id = _snapshot_id(raw)
            try:
                account = _to_account(raw)
                if account.current_state not in ACTIVE_DUNNING_STATES or account.balance <= 0:
                    batch.ineligible += 1
                    continue

                batch.processed += 1
                schedule = self.planner.generate_dunning_plan(account, now)
                if schedule.is_paused:
                    batch.skipped += 1
                    batch.results.append(
                        BatchAccountResult(
                            account_id=account.account_id,
                            outcome=BatchOutcome.SKIPPED,
                            message=schedule.pause_reason or "Skipped",
                        )
                    )
                    continue

                action = self.planner.get_next_dunning_action(schedule, now)
                if action is None:
                    batch.nothing_due += 1
                    batch.results.append(
                        BatchAccountResult(
                            account_id=account.account_id,
                            outcome=BatchOutcome.NOTHING_DUE,
                            message="No dunning action due",
                        )
                    )
                    continue

                execution = self.planner.execute_dunning_action(account.account_id, action, now)
                batch.actions_executed += 1
                batch.results.append(
                    BatchAccountResult(
                        account_id=account.account_id,
                        outcome=BatchOutcome.EXECUTED,
                        message=execution.message,
                        action=action.action,
                        execution=execution,
                    )
                )

            except DomainException as e:
                logger.warning("Dunning batch failed for account %s: %s", account_id, e)
                batch.errors.append(f"Account {account_id}: {e}")
                batch.results.append(
                    BatchAccountResult(account_id=account_id, outcome=BatchOutcome.ERROR, message=str(e))
                )

        return batch


def _snapshot_id(raw: Any) -> str:
    if isinstance(raw, DunningAccount):
        return raw.account_id
    if isinstance(raw, Mapping):
        return str(raw.get("account_id", "<unknown>"))
    return "<unknown>"


def _to_account(raw: Any) -> DunningAccount:
    if isinstance(raw, DunningAccount):
        return raw
    if not isinstance(raw, Mapping):
        raise InvalidDomainValueError("account", raw, "Account snapshot must be a mapping")
    try:
        return DunningAccount(**raw)
    except TypeError as e:
        raise InvalidDomainValueError("account", dict(raw), f"Malformed account snapshot: {e}") from e
