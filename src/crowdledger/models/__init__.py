"""Core data models for crowdledger."""

from crowdledger.models.ledger import (
    Cycle,
    GoalState,
    IdeaParameters,
    LedgerParameters,
    Position,
    SolutionParameters,
)

__all__ = [
    "Cycle",
    "GoalState",
    "IdeaParameters",
    "LedgerParameters",
    "Position",
    "SolutionParameters",
]
