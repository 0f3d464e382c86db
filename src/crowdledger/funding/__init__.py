"""Funds: Solution and Idea funds plus the token and access seams they use."""

from crowdledger.funding.goal import GoalStateMachine
from crowdledger.funding.idea import IdeaFund
from crowdledger.funding.solution import SolutionFund
from crowdledger.funding.token import InMemoryToken, TokenLedger, Web3Token

__all__ = [
    "GoalStateMachine",
    "IdeaFund",
    "InMemoryToken",
    "SolutionFund",
    "TokenLedger",
    "Web3Token",
]
