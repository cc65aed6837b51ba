"""Tests for the JSON command line entry point."""
import io
import json
import logging

import pytest

from multiplant.main import main

PROBLEM = {
    "plants": [{"name": "A", "capacity": 100}, {"name": "B", "capacity": 80}],
    "production_costs": {"A": {"widget": 5}, "B": {"widget": 7}},
    "demands": [{"product": "widget", "quantity": 150}],
}


def run_cli(monkeypatch, capsys, payload, *argv):
    monkeypatch.setattr("sys.stdin", io.StringIO(payload if isinstance(payload, str) else json.dumps(payload)))
    exit_code = main(list(argv))
    return exit_code, json.loads(capsys.readouterr().out)


def test_stdin_to_stdout(monkeypatch, capsys):
    exit_code, out = run_cli(monkeypatch, capsys, PROBLEM)
    assert exit_code == 0
    assert out["status"] == "ok"
    assert abs(out["total_cost"] - 850.0) < 1e-6


def test_output_is_compact_and_sorted(monkeypatch, capsys):
    monkeypatch.setattr("sys.stdin", io.StringIO(json.dumps(PROBLEM)))
    main([])
    text = capsys.readouterr().out
    assert ": " not in text
    keys = list(json.loads(text).keys())
    assert keys == sorted(keys)


def test_file_argument(tmp_path, capsys):
    path = tmp_path / "problem.json"
    path.write_text(json.dumps(PROBLEM), encoding="utf-8")
    assert main([str(path)]) == 0
    assert json.loads(capsys.readouterr().out)["status"] == "ok"


def test_sensitivity_flag(monkeypatch, capsys):
    _, out = run_cli(monkeypatch, capsys, PROBLEM, "--sensitivity")
    assert out["capacity_shadow_prices"] == pytest.approx({"A": 2.0, "B": 0.0}, abs=1e-9)


def test_flags_override_input_options(monkeypatch, capsys):
    payload = dict(PROBLEM, options={"max_iterations": 1000})
    exit_code, out = run_cli(monkeypatch, capsys, payload, "--max-iterations", "1")
    assert exit_code == 1
    assert out == {
        "status": "error",
        "code": "ITERATION_LIMIT",
        "message": "simplex stopped after 1 pivots (limit 1)",
        "details": {"iterations": 1, "limit": 1},
    }


def test_infeasible_is_an_answer_not_an_error(monkeypatch, capsys):
    payload = dict(PROBLEM, demands=[{"product": "widget", "quantity": 200}])
    exit_code, out = run_cli(monkeypatch, capsys, payload)
    assert exit_code == 0
    assert out["status"] == "infeasible"
    assert abs(out["max_deliverable"] - 180.0) < 1e-6


def test_invalid_problem_reported(monkeypatch, capsys):
    payload = dict(PROBLEM, plants=[{"name": "A", "capacity": -3}])
    exit_code, out = run_cli(monkeypatch, capsys, payload)
    assert exit_code == 1
    assert out["status"] == "error"
    assert out["code"] == "INVALID_PROBLEM"


def test_malformed_json_reported(monkeypatch, capsys):
    exit_code, out = run_cli(monkeypatch, capsys, "{not json")
    assert exit_code == 1
    assert out["code"] == "INVALID_PROBLEM"


def test_bad_options_reported(monkeypatch, capsys):
    exit_code, out = run_cli(monkeypatch, capsys, dict(PROBLEM, options=[1, 2]))
    assert exit_code == 1
    assert out["code"] == "CONFIG_ERROR"


def test_verbose_logs_to_stderr(monkeypatch, capsys):
    monkeypatch.setattr(logging.root, "handlers", [])
    monkeypatch.setattr(logging.root, "level", logging.WARNING)
    monkeypatch.setattr("sys.stdin", io.StringIO(json.dumps(PROBLEM)))
    assert main(["--verbose"]) == 0
    captured = capsys.readouterr()
    assert json.loads(captured.out)["status"] == "ok"
    assert "multiplant.simplex" in captured.err


def test_missing_input_file_reported(tmp_path, capsys):
    missing = tmp_path / "missing.json"
    assert main([str(missing)]) == 1
    out = json.loads(capsys.readouterr().out)
    assert out["status"] == "error"
    assert out["code"] == "INVALID_PROBLEM"
    assert out["details"] == {"path": str(missing)}


def test_string_sensitivity_option_reported(monkeypatch, capsys):
    payload = dict(PROBLEM, options={"compute_sensitivity": "false"})
    exit_code, out = run_cli(monkeypatch, capsys, payload)
    assert exit_code == 1
    assert out["code"] == "CONFIG_ERROR"
