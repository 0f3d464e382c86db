"""Scenario simulator: replays a JSON scenario against an in-memory fund.

A scenario names the fund kind, starting balances and a list of steps.
Each step runs at ``at`` seconds after the fund start:

    {
      "kind": "solution",
      "fund_id": "demo",
      "owner": "creator",
      "start": "2026-01-01T00:00:00+00:00",
      "balances": {"alice": 1000, "bob": 1000},
      "steps": [
        {"at": 0, "action": "contribute", "caller": "alice", "amount": 100},
        {"at": 3600, "action": "contribute", "caller": "bob", "amount": 200},
        {"at": 7200, "action": "collect_fees", "caller": "alice"}
      ]
    }

Rule violations do not stop the replay: the failing step is reported as
unsuccessful and the fund is left exactly as it was before that step.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Optional, Union

from crowdledger.errors import LedgerError
from crowdledger.funding.idea import IdeaFund
from crowdledger.funding.solution import SolutionFund
from crowdledger.funding.token import InMemoryToken
from crowdledger.persistence.event_log import EventLog
from crowdledger.policy.resolver import ParameterResolver

logger = logging.getLogger(__name__)

Fund = Union[SolutionFund, IdeaFund]
DEFAULT_START = datetime(2026, 1, 1, tzinfo=timezone.utc)


@dataclass
class StepResult:
    """Outcome of one scenario step."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class ScenarioOutcome:
    """Final fund, token balances and per-step results of a replay."""
    fund: Fund
    token: InMemoryToken
    steps: list[StepResult]

    @property
    def failed_steps(self) -> list[int]:
        return [i for i, step in enumerate(self.steps) if not step.success]

    def report(self) -> dict[str, Any]:
        holders = self.token.holders()
        return {
            "fund": self.fund.summary(),
            "balances": {h: self.token.balance_of(h) for h in holders},
            "steps": [
                {"success": s.success, "errors": s.errors, "data": s.data}
                for s in self.steps
            ],
        }


def load_scenario(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        scenario = json.load(f)
    if not isinstance(scenario, dict) or "steps" not in scenario:
        raise ValueError(f"{path} is not a scenario: expected an object with 'steps'")
    return scenario


def build_fund(
    scenario: dict[str, Any],
    resolver: ParameterResolver,
    token: InMemoryToken,
    event_log: Optional[EventLog] = None,
) -> Fund:
    """Create the fund a scenario describes."""
    kind = scenario.get("kind", "solution")
    fund_id = scenario.get("fund_id", "scenario")
    owner = scenario.get("owner", "creator")
    start = _parse_time(scenario.get("start"))

    if kind == "solution":
        params = resolver.solution_parameters(start, scenario.get("funding_goal"))
        if params.initial_stake:
            token.mint(fund_id, params.initial_stake)
        return SolutionFund(fund_id, owner, params, token, start=start, event_log=event_log)
    if kind == "idea":
        params = resolver.idea_parameters(scenario.get("fee_recipient"))
        return IdeaFund(fund_id, owner, params, token, start=start, event_log=event_log)
    raise ValueError(f"Unknown fund kind: {kind}")


def run_scenario(
    scenario: dict[str, Any],
    resolver: ParameterResolver,
    event_log: Optional[EventLog] = None,
) -> ScenarioOutcome:
    """Replay every step of ``scenario`` and collect the results."""
    token = InMemoryToken()
    fund = build_fund(scenario, resolver, token, event_log)
    for holder, amount in scenario.get("balances", {}).items():
        token.mint(holder, amount)
        token.approve(holder, fund.address, amount)

    results: list[StepResult] = []
    for number, step in enumerate(scenario["steps"]):
        now = fund.start + timedelta(seconds=step.get("at", 0))
        results.append(run_step(fund, step, now))
        if not results[-1].success:
            logger.warning(
                "Step %d (%s) failed: %s",
                number, step.get("action"), "; ".join(results[-1].errors),
            )
    return ScenarioOutcome(fund=fund, token=token, steps=results)


def run_step(fund: Fund, step: dict[str, Any], now: datetime) -> StepResult:
    """Run a single step; rule violations become an unsuccessful result."""
    action = step.get("action")
    handler = _ACTIONS.get(action)
    if handler is None:
        return StepResult(success=False, errors=[f"Unknown action: {action}"])
    if not hasattr(fund, action):
        return StepResult(
            success=False,
            errors=[f"Action {action} is not supported by {type(fund).__name__}"],
        )
    try:
        data = handler(fund, step, now)
    except (LedgerError, ValueError) as exc:
        return StepResult(success=False, errors=[f"{type(exc).__name__}: {exc}"])
    except KeyError as exc:
        return StepResult(success=False, errors=[f"Missing step field: {exc}"])
    return StepResult(success=True, data={"action": action, **data})


def _parse_time(value: Optional[str]) -> datetime:
    if value is None:
        return DEFAULT_START
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _contribute(fund: Fund, step: dict[str, Any], now: datetime) -> dict[str, Any]:
    return {"index": fund.contribute(step["caller"], step["amount"], now=now)}


def _airdrop(fund: Fund, step: dict[str, Any], now: datetime) -> dict[str, Any]:
    return {"fee": fund.airdrop(step["caller"], step["amount"], now=now)}


def _collect_fees(fund: Fund, step: dict[str, Any], now: datetime) -> dict[str, Any]:
    return {"paid": fund.collect_fees(step["caller"], step.get("index"), now=now)}


def _refund(fund: Fund, step: dict[str, Any], now: datetime) -> dict[str, Any]:
    return {"paid": fund.refund(step["caller"], step.get("index"), now=now)}


def _withdraw(fund: Fund, step: dict[str, Any], now: datetime) -> dict[str, Any]:
    return {"paid": fund.withdraw(step["caller"], step.get("index"), now=now)}


def _withdraw_funds(fund: Fund, step: dict[str, Any], now: datetime) -> dict[str, Any]:
    fund.withdraw_funds(step["caller"], step["to"], step["amount"], now=now)
    return {"amount": step["amount"]}


def _extend_goal(fund: Fund, step: dict[str, Any], now: datetime) -> dict[str, Any]:
    deadline = None
    if "deadline_at" in step:
        deadline = fund.start + timedelta(seconds=step["deadline_at"])
    fund.extend_goal(step["caller"], step["goal"], deadline, now=now)
    return {"goal": step["goal"]}


def _add_stake(fund: Fund, step: dict[str, Any], now: datetime) -> dict[str, Any]:
    fund.add_stake(step["caller"], step["amount"], now=now)
    return {"stake": fund.stake}


def _remove_stake(fund: Fund, step: dict[str, Any], now: datetime) -> dict[str, Any]:
    fund.remove_stake(step["caller"], step["amount"], now=now)
    return {"stake": fund.stake}


def _transfer_stake(fund: Fund, step: dict[str, Any], now: datetime) -> dict[str, Any]:
    return {"moved": fund.transfer_stake(step["caller"], step["to"], now=now)}


def _split(fund: Fund, step: dict[str, Any], now: datetime) -> dict[str, Any]:
    new_indices = fund.split(
        step["caller"], step.get("index"),
        step["num_splits"], step["amount_per_split"], now=now,
    )
    return {"new_indices": new_indices}


def _split_evenly(fund: Fund, step: dict[str, Any], now: datetime) -> dict[str, Any]:
    new_indices = fund.split_evenly(
        step["caller"], step.get("index"), step["parts"], now=now
    )
    return {"new_indices": new_indices}


def _transfer_position(fund: Fund, step: dict[str, Any], now: datetime) -> dict[str, Any]:
    if "indices" in step:
        return {
            "new_indices": fund.transfer_positions(
                step["caller"], step["to"], step["indices"], now=now
            )
        }
    return {
        "new_index": fund.transfer_position(
            step["caller"], step["to"], step.get("index"), now=now
        )
    }


def _check_position(fund: Fund, step: dict[str, Any], now: datetime) -> dict[str, Any]:
    value, shares = fund.check_position(step["owner"], step.get("index"), now=now)
    return {"value": value, "shares": shares}


def _pause(fund: Fund, step: dict[str, Any], now: datetime) -> dict[str, Any]:
    fund.pause(step["caller"], now=now)
    return {}


def _unpause(fund: Fund, step: dict[str, Any], now: datetime) -> dict[str, Any]:
    fund.unpause(step["caller"], now=now)
    return {}


def _transfer_ownership(fund: Fund, step: dict[str, Any], now: datetime) -> dict[str, Any]:
    fund.transfer_ownership(step["caller"], step["new_owner"], now=now)
    return {"owner": fund.owner}


_ACTIONS: dict[str, Callable[[Fund, dict[str, Any], datetime], dict[str, Any]]] = {
    "contribute": _contribute,
    "airdrop": _airdrop,
    "collect_fees": _collect_fees,
    "refund": _refund,
    "withdraw": _withdraw,
    "withdraw_funds": _withdraw_funds,
    "extend_goal": _extend_goal,
    "add_stake": _add_stake,
    "remove_stake": _remove_stake,
    "transfer_stake": _transfer_stake,
    "split": _split,
    "split_evenly": _split_evenly,
    "transfer_position": _transfer_position,
    "check_position": _check_position,
    "pause": _pause,
    "unpause": _unpause,
    "transfer_ownership": _transfer_ownership,
}
