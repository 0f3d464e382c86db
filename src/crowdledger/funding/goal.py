"""Goal state machine: Funding / Succeeded / Failed for Solution funds.

The state is never stored. It is derived on every read from the clock,
the deadline and the net contributed total:

    SUCCEEDED  contributed >= goal
    FAILED     now > deadline and contributed < goal
    FUNDING    otherwise

Because the state is derived, ``extend_goal`` can move a fund from
SUCCEEDED back to FUNDING by raising the goal.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from crowdledger.errors import (
    DeadlineMustBeFuture,
    GoalFailed,
    GoalMustIncrease,
    GoalNotFailed,
    GoalNotReached,
)
from crowdledger.models.ledger import GoalState


class GoalStateMachine:
    """Funding goal and deadline with guard helpers.

    Usage:
        goal = GoalStateMachine(funding_goal=10_000, deadline=deadline)
        goal.state(contributed=5_000, now=now)
        goal.require_failed(contributed=5_000, now=now)
    """

    def __init__(self, funding_goal: int, deadline: datetime) -> None:
        if funding_goal <= 0:
            raise ValueError(f"funding_goal must be > 0, got {funding_goal}")
        self._goal = funding_goal
        self._deadline = deadline

    @property
    def funding_goal(self) -> int:
        return self._goal

    @property
    def deadline(self) -> datetime:
        return self._deadline

    def state(self, contributed: int, now: datetime) -> GoalState:
        if contributed >= self._goal:
            return GoalState.SUCCEEDED
        if now > self._deadline:
            return GoalState.FAILED
        return GoalState.FUNDING

    def reached(self, contributed: int) -> bool:
        return contributed >= self._goal

    def failed(self, contributed: int, now: datetime) -> bool:
        return self.state(contributed, now) == GoalState.FAILED

    def require_reached(self, contributed: int) -> None:
        if not self.reached(contributed):
            raise GoalNotReached(
                f"Funding goal {self._goal} not reached ({contributed} contributed)"
            )

    def require_failed(self, contributed: int, now: datetime) -> None:
        if not self.failed(contributed, now):
            raise GoalNotFailed("Funding goal has not failed")

    def require_not_failed(self, contributed: int, now: datetime) -> None:
        if self.failed(contributed, now):
            raise GoalFailed(
                f"Funding goal {self._goal} failed at {self._deadline.isoformat()}"
            )

    def extend(
        self,
        new_goal: int,
        now: datetime,
        new_deadline: Optional[datetime] = None,
    ) -> None:
        """Raise the goal and optionally push the deadline out.

        Both checks run before anything changes.
        """
        if new_goal <= self._goal:
            raise GoalMustIncrease(
                f"New goal {new_goal} must exceed current goal {self._goal}"
            )
        if new_deadline is not None and new_deadline <= now:
            raise DeadlineMustBeFuture(
                f"New deadline {new_deadline.isoformat()} is not after {now.isoformat()}"
            )
        self._goal = new_goal
        if new_deadline is not None:
            self._deadline = new_deadline
