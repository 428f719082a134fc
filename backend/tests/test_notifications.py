"""Loyalty notification events built after a committed redemption."""

import logging
import uuid
from decimal import Decimal

import pytest

from loyalty_ledger.services.notifications import (
    EVENT_MILESTONE,
    EVENT_REDEEMED,
    LoggingDispatcher,
    build_events,
    dispatch_events,
)
from loyalty_ledger.services.redemption import RedemptionResult


def _result(points: int, balance: int) -> RedemptionResult:
    return RedemptionResult(
        scan_event_id=uuid.uuid4(),
        code_id=uuid.uuid4(),
        caller_id="caller-1",
        issuer_id="issuer-1",
        points_earned=points,
        discount_applied=Decimal("0"),
        balance=balance,
    )


def test_redeemed_event_always_emitted() -> None:
    events = build_events(_result(points=10, balance=40), milestones=[100])

    assert [event.kind for event in events] == [EVENT_REDEEMED]
    assert events[0].balance == 40


def test_each_crossed_milestone_emitted_once() -> None:
    events = build_events(_result(points=600, balance=650), milestones=[1000, 100, 500])

    assert [event.milestone for event in events if event.kind == EVENT_MILESTONE] == [100, 500]


def test_landing_exactly_on_milestone_counts() -> None:
    events = build_events(_result(points=20, balance=100), milestones=[100])

    assert [event.kind for event in events] == [EVENT_REDEEMED, EVENT_MILESTONE]


def test_milestone_already_passed_is_not_repeated() -> None:
    events = build_events(_result(points=10, balance=110), milestones=[100])

    assert all(event.kind == EVENT_REDEEMED for event in events)


def test_zero_point_scan_crosses_nothing() -> None:
    events = build_events(_result(points=0, balance=100), milestones=[100])

    assert len(events) == 1


@pytest.mark.asyncio
async def test_dispatch_failures_are_logged(caplog) -> None:
    delivered = []

    class FlakyDispatcher:
        async def send(self, event) -> None:
            if event.kind == EVENT_REDEEMED:
                raise ConnectionError("push gateway down")
            delivered.append(event)

    events = build_events(_result(points=100, balance=100), milestones=[100])

    with caplog.at_level(logging.ERROR):
        await dispatch_events(FlakyDispatcher(), events)

    assert [event.kind for event in delivered] == [EVENT_MILESTONE]
    assert "Failed to dispatch redeemed event" in caplog.text


@pytest.mark.asyncio
async def test_logging_dispatcher(caplog) -> None:
    with caplog.at_level(logging.INFO, logger="loyalty_ledger.services.notifications"):
        await dispatch_events(LoggingDispatcher(), build_events(_result(100, 100), [100]))

    assert "reached 100 points" in caplog.text
