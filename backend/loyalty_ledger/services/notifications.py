"""
Post-commit loyalty notifications.

After a redemption commits, the router schedules the events built here as a
FastAPI background task:

  • redeemed  — one per successful redemption
  • milestone — one per LOYALTY_MILESTONES threshold the new balance crossed

Delivery is fire-and-forget. A dispatcher failure is logged and dropped; it
can never fail or delay the redemption that produced the event.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

from loyalty_ledger.core.config import settings
from loyalty_ledger.services.redemption import RedemptionResult

logger = logging.getLogger(__name__)

EVENT_REDEEMED = "redeemed"
EVENT_MILESTONE = "milestone"


@dataclass(frozen=True, slots=True)
class LoyaltyEvent:
    kind: str
    caller_id: str
    issuer_id: str
    code_id: uuid.UUID
    points: int
    balance: int
    milestone: int | None = None


class NotificationDispatcher(Protocol):
    async def send(self, event: LoyaltyEvent) -> None: ...


class LoggingDispatcher:
    """Default dispatcher: writes each event to the application log."""

    async def send(self, event: LoyaltyEvent) -> None:
        if event.kind == EVENT_MILESTONE:
            logger.info(
                "Caller %s reached %d points with issuer %s",
                event.caller_id, event.milestone, event.issuer_id,
            )
        else:
            logger.info(
                "Caller %s earned %d points with issuer %s (balance %d)",
                event.caller_id, event.points, event.issuer_id, event.balance,
            )


def build_events(
    result: RedemptionResult,
    milestones: Iterable[int] | None = None,
) -> list[LoyaltyEvent]:
    """
    Events for one committed redemption.

    A milestone fires when the balance moves from below it to at or above
    it, so each threshold is announced once per crossing.
    """
    thresholds = settings.LOYALTY_MILESTONES if milestones is None else milestones
    previous = result.balance - result.points_earned

    events = [
        LoyaltyEvent(
            kind=EVENT_REDEEMED,
            caller_id=result.caller_id,
            issuer_id=result.issuer_id,
            code_id=result.code_id,
            points=result.points_earned,
            balance=result.balance,
        )
    ]
    for threshold in sorted(set(thresholds)):
        if previous < threshold <= result.balance:
            events.append(
                LoyaltyEvent(
                    kind=EVENT_MILESTONE,
                    caller_id=result.caller_id,
                    issuer_id=result.issuer_id,
                    code_id=result.code_id,
                    points=result.points_earned,
                    balance=result.balance,
                    milestone=threshold,
                )
            )
    return events


async def dispatch_events(
    dispatcher: NotificationDispatcher,
    events: list[LoyaltyEvent],
) -> None:
    """Send every event; failures are logged per event and never raised."""
    for event in events:
        try:
            await dispatcher.send(event)
        except Exception:
            logger.exception(
                "Failed to dispatch %s event for caller %s", event.kind, event.caller_id,
            )


_default_dispatcher = LoggingDispatcher()


def get_dispatcher() -> NotificationDispatcher:
    """FastAPI dependency; override in app.dependency_overrides to plug in a transport."""
    return _default_dispatcher
