from __future__ import annotations

import json
from pathlib import Path
from typing import Iterator

import pytest
import structlog
from typer.testing import CliRunner

from hrworkflow.cli import app

CONFIG = """
engine:
  actor: cli-test
templates:
  - id: fast-track
    name: Fast Track
    phases:
      - id: cv_review
        name: CV Review
        order: 1
        auto_advance_rules:
          - condition: ai_score
            operator: ">="
            value: 85
            next_phase: technical_interview
      - id: technical_interview
        name: Technical Interview
        order: 2
        kind: technical
      - id: final_decision
        name: Final Decision
        order: 3
        kind: final
"""


@pytest.fixture
def runner() -> Iterator[CliRunner]:
    yield CliRunner()
    structlog.reset_defaults()


def invoke(runner: CliRunner, state_file: Path, *args: str):
    return runner.invoke(app, ["--state-file", str(state_file), *args])


def test_cli_start_move_and_show_persist_state(tmp_path: Path, runner: CliRunner) -> None:
    state_file = tmp_path / "state.json"

    started = invoke(runner, state_file, "start", "C-001", "--position-title", "Data Engineer", "--priority", "high")
    assert started.exit_code == 0, started.output
    assert json.loads(started.stdout)["current_phase"] == "cv_review"

    moved = invoke(runner, state_file, "move", "C-001", "--from", "cv_review", "--to", "phone_screening", "--score", "81")
    assert moved.exit_code == 0, moved.output
    payload = json.loads(moved.stdout)
    assert payload["current_phase"] == "phone_screening"
    assert payload["history"][0]["score"] == 81

    shown = invoke(runner, state_file, "show", "C-001")
    assert shown.exit_code == 0, shown.output
    assert json.loads(shown.stdout)["metadata"]["position_title"] == "Data Engineer"

    persisted = json.loads(state_file.read_text(encoding="utf-8"))
    assert [item["candidate_id"] for item in persisted["states"]] == ["C-001"]


def test_cli_board_and_metrics(tmp_path: Path, runner: CliRunner) -> None:
    state_file = tmp_path / "state.json"
    invoke(runner, state_file, "start", "C-001")
    invoke(runner, state_file, "start", "C-002")
    invoke(runner, state_file, "move", "C-002", "--from", "cv_review", "--to", "phone_screening", "--decision", "failed")

    board = invoke(runner, state_file, "board")
    assert board.exit_code == 0, board.output
    columns = json.loads(board.stdout)
    assert [card["candidate_id"] for card in columns[0]["cards"]] == ["C-001"]

    metrics = invoke(runner, state_file, "metrics")
    assert metrics.exit_code == 0, metrics.output
    rendered = json.loads(metrics.stdout)
    assert rendered["total_candidates"] == 2
    assert rendered["candidates_by_phase"]["cv_review"] == 1
    assert rendered["candidates_by_phase"]["rejected"] == 1


def test_cli_bulk_move_reports_summary(tmp_path: Path, runner: CliRunner) -> None:
    state_file = tmp_path / "state.json"
    moves_file = tmp_path / "moves.json"
    invoke(runner, state_file, "start", "C-001")
    moves_file.write_text(
        json.dumps(
            [
                {"candidate_id": "C-001", "from_phase": "cv_review", "to_phase": "phone_screening"},
                {"candidate_id": "C-404", "from_phase": "cv_review", "to_phase": "phone_screening"},
            ]
        ),
        encoding="utf-8",
    )

    result = invoke(runner, state_file, "bulk-move", "--moves", str(moves_file))

    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)["summary"] == {"total": 2, "successful": 1, "failed": 1}


def test_cli_workflow_errors_exit_non_zero(tmp_path: Path, runner: CliRunner) -> None:
    state_file = tmp_path / "state.json"

    result = invoke(runner, state_file, "move", "C-404", "--from", "cv_review", "--to", "phone_screening")

    assert result.exit_code == 1
    assert "NotFoundError" in result.output
    assert not state_file.exists()


def test_cli_config_templates_and_auto_advance(tmp_path: Path, runner: CliRunner) -> None:
    state_file = tmp_path / "state.json"
    config_file = tmp_path / "workflow.yaml"
    config_file.write_text(CONFIG, encoding="utf-8")

    listed = runner.invoke(app, ["--config", str(config_file), "--state-file", str(state_file), "templates"])
    assert listed.exit_code == 0, listed.output
    assert {t["id"] for t in json.loads(listed.stdout)} == {"default-workflow", "fast-track"}

    started = runner.invoke(
        app,
        ["--config", str(config_file), "--state-file", str(state_file), "start", "C-001", "--template", "fast-track"],
    )
    assert started.exit_code == 0, started.output

    scored = runner.invoke(app, ["--config", str(config_file), "--state-file", str(state_file), "score", "C-001", "90"])
    assert scored.exit_code == 0, scored.output
    payload = json.loads(scored.stdout)
    assert payload["advanced"] is True
    assert payload["state"]["current_phase"] == "technical_interview"
    assert payload["state"]["history"][-1]["automated_transition"] is True


def test_cli_rejects_non_mapping_config(tmp_path: Path, runner: CliRunner) -> None:
    config_file = tmp_path / "workflow.yaml"
    config_file.write_text("- not\n- a mapping\n", encoding="utf-8")

    result = runner.invoke(app, ["--config", str(config_file), "templates"])

    assert result.exit_code != 0
