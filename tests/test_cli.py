"""Tests for the crowdledger CLI: proves commands dispatch and report."""

import json
import pytest
from pathlib import Path

from crowdledger.cli import build_parser, main
from crowdledger.funding.token import Web3Token


def _scenario_file(tmp_path: Path, steps: list) -> Path:
    path = tmp_path / "scenario.json"
    path.write_text(json.dumps({
        "kind": "solution",
        "funding_goal": 1_000,
        "balances": {"alice": 1_000},
        "steps": steps,
    }), encoding="utf-8")
    return path


class TestCLIParsing:
    def test_simulate_command(self) -> None:
        args = build_parser().parse_args(["simulate", "--scenario", "s.json"])
        assert args.command == "simulate"
        assert args.scenario == Path("s.json")
        assert args.events is None

    def test_token_balance_command(self) -> None:
        args = build_parser().parse_args([
            "token-balance", "--token", "0xToken", "--address", "0xAlice",
        ])
        assert args.token == "0xToken"
        assert args.rpc_url is None


class TestCLIExecution:
    def test_no_command_shows_help(self) -> None:
        assert main([]) == 0

    def test_show_params(self, capsys) -> None:
        assert main(["show-params"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert set(data) == {"ledger", "solution", "idea"}

    def test_check_params(self) -> None:
        assert main(["check-params"]) == 0

    def test_check_params_reports_errors(self, tmp_path: Path, capsys) -> None:
        (tmp_path / "fund_params.json").write_text(json.dumps({"ledger": {}}), encoding="utf-8")
        assert main(["--config", str(tmp_path), "check-params"]) == 1
        assert "Missing section: solution" in capsys.readouterr().err

    def test_simulate(self, tmp_path: Path, capsys) -> None:
        scenario = _scenario_file(tmp_path, [
            {"at": 0, "action": "contribute", "caller": "alice", "amount": 100},
        ])
        events = tmp_path / "data" / "events.jsonl"
        assert main(["simulate", "--scenario", str(scenario), "--events", str(events)]) == 0
        report = json.loads(capsys.readouterr().out)
        assert report["fund"]["tokens_contributed"] == 100
        assert len(events.read_text(encoding="utf-8").splitlines()) == 1

    def test_simulate_with_failing_step(self, tmp_path: Path, capsys) -> None:
        scenario = _scenario_file(tmp_path, [
            {"at": 0, "action": "withdraw_funds", "caller": "alice", "to": "alice", "amount": 1},
        ])
        assert main(["simulate", "--scenario", str(scenario)]) == 1
        assert "1 step(s) failed" in capsys.readouterr().err

    def test_token_balance(self, monkeypatch, capsys) -> None:
        class _Token:
            def balance_of(self, address: str) -> int:
                return 1_234

        calls = []

        def _connect(cls, rpc_url, token_address, private_key=None, **kwargs):
            calls.append((rpc_url, token_address))
            return _Token()

        monkeypatch.setenv("RPC_URL", "http://localhost:8545")
        monkeypatch.setattr(Web3Token, "connect", classmethod(_connect))
        assert main(["token-balance", "--token", "0xToken", "--address", "0xAlice"]) == 0
        assert calls == [("http://localhost:8545", "0xToken")]
        assert json.loads(capsys.readouterr().out) == {"address": "0xAlice", "balance": 1_234}

    def test_token_balance_without_rpc_url(self, monkeypatch, capsys) -> None:
        monkeypatch.delenv("RPC_URL", raising=False)
        monkeypatch.setattr("dotenv.load_dotenv", lambda *a, **k: False)
        assert main(["token-balance", "--token", "0xToken", "--address", "0xAlice"]) == 1
        assert "RPC_URL is not set" in capsys.readouterr().err
