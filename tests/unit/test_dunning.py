"""Unit tests for dunning plan generation and schedule adjustments"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from collections_engine.domain.dunning import CHANNEL_SKIP_REASON, DunningPlanner
from collections_engine.domain.exceptions import InvalidDomainValueError
from collections_engine.domain.models import (
    AccountType,
    ActionStatus,
    CollectionAction,
    CollectionState,
    DunningChannel,
    DunningSkipCondition,
    ExecutedAction,
    PastActionPolicy,
    ScheduledDunningAction,
    SkipConditionType,
)
from collections_engine.domain.rules import (
    DUNNING_SEQUENCES,
    MINIMUM_BALANCE_THRESHOLDS,
    STATE_CONFIGS,
    STATE_TRANSITIONS,
    RuleSet,
)


def statuses(schedule):
    return {action.day: action.status for action in schedule.actions}


def test_self_pay_cadence_at_day_46(planner: DunningPlanner, make_account, days_after_due):
    """Test past steps complete and the day-60 statement is next"""
    schedule = planner.generate_dunning_plan(make_account(), days_after_due(46))

    by_day = statuses(schedule)
    for day in (1, 14, 30, 35, 45):
        assert by_day[day] == ActionStatus.COMPLETED
    for day in (60, 65, 75, 90, 100, 120):
        assert by_day[day] == ActionStatus.PENDING
    assert schedule.next_action_date == days_after_due(60)
    assert schedule.days_past_due == 46
    assert schedule.is_paused is False


def test_channel_preferences_skip_optional_steps(planner: DunningPlanner, make_account, days_after_due):
    """Test non-mandatory steps outside preferred channels are skipped, mandatory ones are kept"""
    account = make_account(preferred_channels=[DunningChannel.EMAIL])

    schedule = planner.generate_dunning_plan(account, days_after_due(40))

    actions = {action.day: action for action in schedule.actions}
    assert actions[45].action == CollectionAction.MAKE_CALL
    assert actions[45].status == ActionStatus.SKIPPED
    assert actions[45].skip_reason == CHANNEL_SKIP_REASON == "Channel not in patient preferences"
    assert actions[75].status == ActionStatus.PENDING  # EMAIL is preferred
    assert actions[90].action == CollectionAction.SEND_DEMAND_LETTER
    assert actions[90].status == ActionStatus.PENDING
    assert actions[100].status == ActionStatus.PENDING  # mandatory call
    assert schedule.next_action_date == days_after_due(60)


def test_plan_generation_is_idempotent(planner: DunningPlanner, make_account, days_after_due):
    account = make_account(preferred_channels=[DunningChannel.LETTER])
    now = days_after_due(33)

    assert planner.generate_dunning_plan(account, now) == planner.generate_dunning_plan(account, now)


def test_future_due_date_clamps_days_past_due(planner: DunningPlanner, make_account, due_date):
    schedule = planner.generate_dunning_plan(make_account(), due_date - timedelta(days=10))

    assert schedule.days_past_due == 0
    assert set(statuses(schedule).values()) == {ActionStatus.PENDING}
    assert schedule.next_action_date == due_date + timedelta(days=1)


def test_minimum_balance_wins_over_bankruptcy(planner: DunningPlanner, make_account, days_after_due):
    """Test skip rules are checked in order and the first match wins"""
    account = make_account(
        balance=Decimal("10"),
        skip_conditions=[DunningSkipCondition(type=SkipConditionType.BANKRUPTCY)],
    )

    decision = planner.should_skip_dunning(account, days_after_due(46))

    assert decision.skip is True
    assert decision.reason == "Balance below minimum threshold ($25)"
    assert decision.condition == SkipConditionType.MINIMUM_BALANCE


def test_recent_payment_skips(planner: DunningPlanner, make_account, days_after_due):
    account = make_account(last_payment_date=days_after_due(36), last_payment_amount=Decimal("50"))

    decision = planner.should_skip_dunning(account, days_after_due(46))

    assert decision.reason == "Recent payment received 10 days ago"
    assert decision.condition == SkipConditionType.RECENT_PAYMENT


def test_old_payment_does_not_skip(planner: DunningPlanner, make_account, days_after_due):
    account = make_account(last_payment_date=days_after_due(20))

    assert planner.should_skip_dunning(account, days_after_due(46)).skip is False


def test_future_promise_to_pay_skips(planner: DunningPlanner, make_account, days_after_due):
    account = make_account(promise_to_pay_date=datetime(2024, 2, 20), promise_to_pay_amount=200)

    decision = planner.should_skip_dunning(account, days_after_due(46))

    assert decision.reason == "Promise to pay scheduled for 2024-02-20"


def test_hardship_flag_skips(planner: DunningPlanner, make_account, days_after_due):
    decision = planner.should_skip_dunning(make_account(has_hardship=True), days_after_due(46))

    assert decision.reason == "Account has hardship status"
    assert decision.condition == SkipConditionType.HARDSHIP


@pytest.mark.parametrize(
    "condition_type, reason",
    [
        (SkipConditionType.BANKRUPTCY, "Account in bankruptcy - all collection activity prohibited"),
        (SkipConditionType.DECEASED, "Patient deceased - dunning suspended"),
        (SkipConditionType.DISPUTE, "Active dispute on account"),
        (SkipConditionType.HARDSHIP, "Hardship condition active"),
    ],
)
def test_explicit_skip_conditions(planner: DunningPlanner, make_account, days_after_due, condition_type, reason):
    account = make_account(skip_conditions=[DunningSkipCondition(type=condition_type)])

    decision = planner.should_skip_dunning(account, days_after_due(46))

    assert decision.reason == reason
    assert decision.condition == condition_type


def test_promise_condition_reports_details(planner: DunningPlanner, make_account, days_after_due):
    with_details = make_account(
        skip_conditions=[DunningSkipCondition(type=SkipConditionType.PROMISE_TO_PAY, details="$200 on Friday")]
    )
    without_details = make_account(skip_conditions=[DunningSkipCondition(type=SkipConditionType.PROMISE_TO_PAY)])

    assert planner.should_skip_dunning(with_details, days_after_due(46)).reason == (
        "Promise to pay active: $200 on Friday"
    )
    assert planner.should_skip_dunning(without_details, days_after_due(46)).reason == (
        "Promise to pay active: pending payment"
    )


def test_conditions_out_of_force_are_ignored(planner: DunningPlanner, make_account, days_after_due):
    """Test inactive, expired and not-yet-effective conditions do not skip"""
    account = make_account(
        skip_conditions=[
            DunningSkipCondition(type=SkipConditionType.DISPUTE, active=False),
            DunningSkipCondition(type=SkipConditionType.DECEASED, expiration_date=days_after_due(40)),
            DunningSkipCondition(type=SkipConditionType.BANKRUPTCY, effective_date=days_after_due(50)),
        ]
    )

    assert planner.should_skip_dunning(account, days_after_due(46)).skip is False


def test_skipped_account_gets_paused_schedule(planner: DunningPlanner, make_account, days_after_due):
    now = days_after_due(46)

    schedule = planner.generate_dunning_plan(make_account(has_hardship=True), now)

    assert schedule.is_paused is True
    assert schedule.pause_reason == "Account has hardship status"
    assert schedule.actions == ()
    assert schedule.next_action_date == now + timedelta(days=30)
    assert planner.get_next_dunning_action(schedule, now) is None


def test_payment_plan_condition_switches_sequence(planner: DunningPlanner, make_account, days_after_due):
    """Test a payment plan uses the plan cadence instead of skipping"""
    by_condition = make_account(skip_conditions=[DunningSkipCondition(type=SkipConditionType.PAYMENT_PLAN)])
    by_flag = make_account(on_payment_plan=True)

    for account in (by_condition, by_flag):
        schedule = planner.generate_dunning_plan(account, days_after_due(10))
        assert schedule.is_paused is False
        assert [a.template for a in schedule.actions] == [
            "pp_reminder",
            "pp_sms",
            "pp_call",
            "pp_statement",
            "pp_default",
        ]
        assert schedule.account_type == AccountType.SELF_PAY


def test_execution_log_overrides_assumed_completion(planner: DunningPlanner, make_account, days_after_due):
    """Test a logged failure stays FAILED and a logged success carries its completion date"""
    account = make_account(
        executed_actions=[
            ExecutedAction(day=1, action=CollectionAction.SEND_STATEMENT, executed_at=days_after_due(2)),
            ExecutedAction(
                day=14, action=CollectionAction.SEND_REMINDER, executed_at=days_after_due(14), success=False
            ),
        ]
    )

    schedule = planner.generate_dunning_plan(account, days_after_due(46))

    actions = {action.day: action for action in schedule.actions}
    assert actions[1].status == ActionStatus.COMPLETED
    assert actions[1].completed_date == days_after_due(2)
    assert actions[14].status == ActionStatus.FAILED
    assert actions[30].status == ActionStatus.COMPLETED
    assert actions[30].completed_date is None


def test_latest_execution_attempt_wins(planner: DunningPlanner, make_account, days_after_due):
    account = make_account(
        executed_actions=[
            ExecutedAction(day=14, action=CollectionAction.SEND_REMINDER, executed_at=days_after_due(15)),
            ExecutedAction(
                day=14, action=CollectionAction.SEND_REMINDER, executed_at=days_after_due(14), success=False
            ),
        ]
    )

    schedule = planner.generate_dunning_plan(account, days_after_due(46))

    assert statuses(schedule)[14] == ActionStatus.COMPLETED


def test_require_execution_log_policy(make_account, days_after_due):
    """Test unlogged past steps remain due when the log is authoritative"""
    planner = DunningPlanner(past_action_policy=PastActionPolicy.REQUIRE_EXECUTION_LOG)
    account = make_account(
        executed_actions=[
            ExecutedAction(day=1, action=CollectionAction.SEND_STATEMENT, executed_at=days_after_due(1)),
        ]
    )
    now = days_after_due(46)

    schedule = planner.generate_dunning_plan(account, now)
    due = planner.get_pending_dunning_actions(schedule, now)

    assert statuses(schedule)[1] == ActionStatus.COMPLETED
    assert [action.day for action in due] == [14, 30, 35, 45]
    assert planner.get_next_dunning_action(schedule, now).day == 14
    assert schedule.next_action_date == days_after_due(14)


def test_action_is_due_on_its_scheduled_date(planner: DunningPlanner, make_account, days_after_due):
    now = days_after_due(60)

    schedule = planner.generate_dunning_plan(make_account(), now)
    action = planner.get_next_dunning_action(schedule, now)

    assert action.day == 60
    assert action.template == "third_statement"


def test_nothing_due_between_steps(planner: DunningPlanner, make_account, days_after_due):
    now = days_after_due(46)
    schedule = planner.generate_dunning_plan(make_account(), now)

    assert planner.get_next_dunning_action(schedule, now) is None
    assert planner.get_pending_dunning_actions(schedule, now) == []


def test_execute_dunning_action_builds_record(planner: DunningPlanner, make_account, days_after_due):
    now = days_after_due(60)
    schedule = planner.generate_dunning_plan(make_account(), now)
    action = planner.get_next_dunning_action(schedule, now)

    result = planner.execute_dunning_action("acct-1001", action, now)

    assert result.success is True
    assert result.channel == DunningChannel.LETTER
    assert result.day == 60
    assert result.timestamp == now
    assert result.message == "Third statement - urgent - third_statement sent via LETTER"


def test_dunning_metrics(planner: DunningPlanner, make_account, days_after_due):
    now = days_after_due(46)
    schedule = planner.generate_dunning_plan(make_account(preferred_channels=["LETTER"]), now)

    metrics = planner.calculate_dunning_metrics(schedule, now)

    # 65 and 75 are optional non-letter steps
    assert metrics.total_actions == 11
    assert metrics.completed_actions == 5
    assert metrics.skipped_actions == 2
    assert metrics.pending_actions == 4
    assert metrics.failed_actions == 0
    assert metrics.completion_percentage == 45
    assert metrics.next_action_in_days == 14


def test_dunning_metrics_for_paused_schedule(planner: DunningPlanner, make_account, days_after_due):
    now = days_after_due(46)
    schedule = planner.generate_dunning_plan(make_account(has_hardship=True), now)

    metrics = planner.calculate_dunning_metrics(schedule, now)

    assert metrics.total_actions == 0
    assert metrics.completion_percentage == 0
    assert metrics.next_action_in_days is None


def test_adjust_intensity_compresses_pending_steps(planner: DunningPlanner, make_account, days_after_due, due_date):
    """Test doubling intensity halves the remaining offsets, rounding half up"""
    schedule = planner.generate_dunning_plan(make_account(), days_after_due(46))

    adjusted = planner.adjust_dunning_intensity(schedule, 8)  # PAST_DUE_60 runs at 4

    dates = {action.day: action.scheduled_date for action in adjusted.actions}
    assert dates[60] == due_date + timedelta(days=30)
    assert dates[65] == due_date + timedelta(days=33)
    assert dates[75] == due_date + timedelta(days=38)
    assert dates[1] == due_date + timedelta(days=1)  # completed history untouched
    assert adjusted.next_action_date == due_date + timedelta(days=30)
    assert schedule.next_action_date == days_after_due(60)


@pytest.mark.parametrize("target", [0, 11, -3])
def test_adjust_intensity_rejects_out_of_range(planner: DunningPlanner, make_account, days_after_due, target):
    schedule = planner.generate_dunning_plan(make_account(), days_after_due(46))

    with pytest.raises(InvalidDomainValueError):
        planner.adjust_dunning_intensity(schedule, target)


def test_pause_and_resume(planner: DunningPlanner, make_account, days_after_due):
    now = days_after_due(46)
    schedule = planner.generate_dunning_plan(make_account(), now)

    paused = planner.pause_dunning(schedule, "Customer requested callback", 7, now)
    resumed = planner.resume_dunning(paused)

    assert paused.is_paused is True
    assert paused.pause_reason == "Customer requested callback"
    assert paused.pause_end_date == now + timedelta(days=7)
    assert planner.get_pending_dunning_actions(paused, days_after_due(60)) == []
    assert resumed.is_paused is False
    assert resumed.pause_reason is None
    assert resumed.pause_end_date is None
    assert resumed.actions == schedule.actions


def test_pause_rejects_negative_days(planner: DunningPlanner, make_account, days_after_due):
    schedule = planner.generate_dunning_plan(make_account(), days_after_due(46))

    with pytest.raises(InvalidDomainValueError):
        planner.pause_dunning(schedule, "bad", -1)


def test_sequence_lookup(planner: DunningPlanner):
    assert planner.get_dunning_sequence("CHARITY") == DUNNING_SEQUENCES[AccountType.CHARITY]
    assert set(planner.get_all_dunning_sequences()) == set(AccountType)

    with pytest.raises(InvalidDomainValueError):
        planner.get_dunning_sequence("MEDICARE")


def test_missing_sequence_fails_fast(make_account, days_after_due):
    """Test an incomplete injected rule set raises a typed error instead of a KeyError"""
    sequences = dict(DUNNING_SEQUENCES)
    del sequences[AccountType.INSURANCE]
    rules = RuleSet.build(STATE_CONFIGS, STATE_TRANSITIONS, sequences, MINIMUM_BALANCE_THRESHOLDS)
    planner = DunningPlanner(rules=rules)

    with pytest.raises(InvalidDomainValueError, match="No dunning sequence for INSURANCE"):
        planner.generate_dunning_plan(make_account(account_type=AccountType.INSURANCE), days_after_due(46))


def test_account_snapshot_validation(make_account):
    with pytest.raises(InvalidDomainValueError):
        make_account(account_id="")
    with pytest.raises(InvalidDomainValueError):
        make_account(account_type="MEDICARE")
    with pytest.raises(InvalidDomainValueError):
        make_account(due_date="2024-01-01")
    with pytest.raises(InvalidDomainValueError):
        make_account(preferred_channels=["FAX"])


def test_skip_conditions_accept_mappings(planner: DunningPlanner, make_account, days_after_due):
    """Test plain mappings in skip_conditions become typed conditions"""
    account = make_account(skip_conditions=[{"type": "BANKRUPTCY", "active": True}])

    assert account.skip_conditions == (DunningSkipCondition(type=SkipConditionType.BANKRUPTCY),)
    decision = planner.should_skip_dunning(account, days_after_due(46))
    assert decision.skip is True
    assert decision.condition == SkipConditionType.BANKRUPTCY


def test_executed_actions_accept_mappings(make_account, days_after_due):
    account = make_account(
        executed_actions=[{"day": 60, "action": "SEND_STATEMENT", "executed_at": days_after_due(60)}]
    )

    assert account.executed_actions == (
        ExecutedAction(day=60, action=CollectionAction.SEND_STATEMENT, executed_at=days_after_due(60)),
    )


@pytest.mark.parametrize(
    "overrides",
    [
        {"skip_conditions": [("BANKRUPTCY", True)]},
        {"skip_conditions": [{"type": "BANKRUPTCY", "reason": "filed"}]},
        {"skip_conditions": [{"active": True}]},
        {"skip_conditions": {"type": "BANKRUPTCY"}},
        {"executed_actions": [("60", "SEND_STATEMENT")]},
        {"executed_actions": [{"day": 60, "action": "SEND_STATEMENT"}]},
        {"executed_actions": "SEND_STATEMENT"},
        {"preferred_channels": "EMAIL"},
        {"preferred_channels": 3},
    ],
)
def test_malformed_collections_are_rejected_at_construction(make_account, overrides):
    """Test bad list elements fail with a domain error instead of later attribute errors"""
    with pytest.raises(InvalidDomainValueError):
        make_account(**overrides)


def test_naive_dates_are_read_as_utc(make_account, due_date):
    account = make_account(due_date=datetime(2024, 1, 1), current_state="PAST_DUE_30")

    assert account.due_date == due_date
    assert account.current_state == CollectionState.PAST_DUE_30


def test_planner_rejects_unknown_policy():
    with pytest.raises(InvalidDomainValueError):
        DunningPlanner(past_action_policy="OPTIMISTIC")


def test_injected_threshold_changes_skip(make_account, days_after_due):
    thresholds = dict(MINIMUM_BALANCE_THRESHOLDS)
    thresholds[AccountType.SELF_PAY] = Decimal("1000")
    rules = RuleSet.build(STATE_CONFIGS, STATE_TRANSITIONS, DUNNING_SEQUENCES, thresholds)

    decision = DunningPlanner(rules=rules).should_skip_dunning(make_account(), days_after_due(46))

    assert decision.reason == "Balance below minimum threshold ($1000)"


def test_scheduled_action_requires_a_date(planner: DunningPlanner, days_after_due):
    template = planner.get_dunning_sequence(AccountType.SELF_PAY)[0]

    with pytest.raises(TypeError):
        ScheduledDunningAction(
            day=template.day,
            action=template.action,
            template=template.template,
            channel=template.channel,
            mandatory=template.mandatory,
            description=template.description,
        )

    pinned = ScheduledDunningAction.from_template(template, days_after_due(1))
    assert pinned.scheduled_date == days_after_due(1)
    assert pinned.status == ActionStatus.PENDING
