"""Parameter resolver: loads fund parameters from a config directory.

``config/fund_params.json`` has three sections:

    ledger    cycle_length (seconds), accrual_rate, percent_scale,
              contributor_fee
    solution  funding_goal, duration (seconds from fund start),
              initial_stake
    idea      percent_fee, min_fee, fee_recipient

Rates are fixed-point ints over percent_scale. The resolver returns the
frozen parameter dataclasses funds are built from.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Optional

from crowdledger.models.ledger import (
    IdeaParameters,
    LedgerParameters,
    SolutionParameters,
)

PARAMS_FILE = "fund_params.json"

_LEDGER_KEYS = ("cycle_length", "accrual_rate", "percent_scale", "contributor_fee")
_SOLUTION_KEYS = ("funding_goal", "duration")
_IDEA_KEYS = ("percent_fee", "min_fee")


class ParameterResolver:
    """Typed access to fund parameters.

    Usage:
        resolver = ParameterResolver.from_config_dir(Path("config"))
        errors = resolver.validate()
        params = resolver.solution_parameters(start=now)
    """

    def __init__(self, params: dict[str, Any]) -> None:
        self._params = params

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> ParameterResolver:
        path = config_dir / PARAMS_FILE
        if not path.exists():
            raise FileNotFoundError(f"Parameter file not found: {path}")
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"{path} must hold a JSON object")
        return cls(data)

    def raw(self) -> dict[str, Any]:
        return json.loads(json.dumps(self._params))

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty list means valid."""
        errors: list[str] = []
        for section, keys in (
            ("ledger", _LEDGER_KEYS),
            ("solution", _SOLUTION_KEYS),
            ("idea", _IDEA_KEYS),
        ):
            values = self._params.get(section)
            if not isinstance(values, dict):
                errors.append(f"Missing section: {section}")
                continue
            for key in keys:
                if key not in values:
                    errors.append(f"Missing key: {section}.{key}")
                elif not isinstance(values[key], int) or isinstance(values[key], bool):
                    errors.append(f"{section}.{key} must be an integer")
        if errors:
            return errors

        if self._params["solution"]["duration"] <= 0:
            errors.append("solution.duration must be > 0")
        # Both kinds embed the ledger section, so its errors appear twice.
        errors.extend(self.solution_parameters(datetime(2000, 1, 1)).validate())
        errors.extend(self.idea_parameters().validate())
        return list(dict.fromkeys(errors))

    def ledger_parameters(self) -> LedgerParameters:
        section = self._section("ledger")
        return LedgerParameters(
            cycle_length=section["cycle_length"],
            accrual_rate=section["accrual_rate"],
            percent_scale=section["percent_scale"],
            contributor_fee=section["contributor_fee"],
        )

    def solution_duration(self) -> timedelta:
        return timedelta(seconds=self._section("solution")["duration"])

    def solution_parameters(
        self,
        start: datetime,
        funding_goal: Optional[int] = None,
    ) -> SolutionParameters:
        """Solution terms for a fund starting at ``start``."""
        section = self._section("solution")
        return SolutionParameters(
            ledger=self.ledger_parameters(),
            funding_goal=funding_goal if funding_goal is not None else section["funding_goal"],
            deadline=start + self.solution_duration(),
            initial_stake=section.get("initial_stake", 0),
        )

    def idea_parameters(self, fee_recipient: Optional[str] = None) -> IdeaParameters:
        section = self._section("idea")
        return IdeaParameters(
            ledger=self.ledger_parameters(),
            percent_fee=section["percent_fee"],
            min_fee=section["min_fee"],
            fee_recipient=fee_recipient or section.get("fee_recipient"),
        )

    def _section(self, name: str) -> dict[str, Any]:
        section = self._params.get(name)
        if not isinstance(section, dict):
            raise ValueError(f"Missing config section: {name}")
        return section
