"""Typer CLI entrypoint for the workflow engine."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, NoReturn, Optional

import typer
import yaml
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .container import WorkflowContainer, create_container
from .core import JsonFileStateRepository
from .errors import WorkflowError
from .logging import configure_logging
from .schemas.config import load_config
from .service import WorkflowService

app = typer.Typer(help="Candidate hiring workflow CLI.")


@dataclass
class CLIContext:
    container: WorkflowContainer

    @property
    def service(self) -> WorkflowService:
        return self.container.service()


def _load_settings(config: Optional[Path]) -> dict[str, Any]:
    if not config:
        return {}
    with config.open("r", encoding="utf-8") as handle:
        loaded = yaml.safe_load(handle) or {}
    if not isinstance(loaded, dict):
        raise typer.BadParameter("Config file must be a YAML object", param_name="config")
    try:
        return load_config(loaded).to_settings()
    except PydanticValidationError as exc:
        raise typer.BadParameter(str(exc), param_name="config") from exc


def _echo(value: Any) -> None:
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json")
    elif isinstance(value, list):
        value = [item.model_dump(mode="json") if isinstance(item, BaseModel) else item for item in value]
    typer.echo(json.dumps(value, ensure_ascii=False, indent=2))


def _fail(exc: WorkflowError) -> NoReturn:
    typer.echo(f"{type(exc).__name__}: {exc}", err=True)
    raise typer.Exit(code=1)


@app.callback()
def main_callback(
    ctx: typer.Context,
    state_file: Path = typer.Option(
        Path("workflow_state.json"),
        dir_okay=False,
        help="JSON file holding candidate workflow states.",
    ),
    config: Optional[Path] = typer.Option(None, exists=True, readable=True, dir_okay=False, help="YAML config path."),
    log_level: str = typer.Option("WARNING", help="Log level for structured logging."),
) -> None:
    """Shared options for every command."""
    settings = _load_settings(config)
    # One-shot process: deliver side effects before the command returns.
    settings.setdefault("dispatch", {}).setdefault("mode", "sync")
    configure_logging(log_level)

    container = create_container(settings=settings, repository=JsonFileStateRepository(state_file))
    ctx.obj = CLIContext(container=container)
    ctx.call_on_close(lambda: container.dispatcher().shutdown())


@app.command()
def start(
    ctx: typer.Context,
    candidate_id: str = typer.Argument(..., help="Candidate identifier."),
    template: Optional[str] = typer.Option(None, help="Workflow template id (default template when omitted)."),
    position_type: Optional[str] = typer.Option(None, help="Position category used to pick a template."),
    position_title: str = typer.Option("", help="Position title shown on the board."),
    priority: str = typer.Option("medium", help="low, medium, high or urgent."),
    recruiter: str = typer.Option("", help="Assigned recruiter."),
) -> None:
    """Start a candidate at the first phase of a template."""
    service = ctx.obj.service
    try:
        state = service.start_candidate(
            candidate_id,
            template,
            metadata={"position_title": position_title, "priority": priority, "assigned_recruiter": recruiter},
            position_type=position_type,
        )
    except PydanticValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc
    except WorkflowError as exc:
        _fail(exc)
    _echo(state)


@app.command()
def move(
    ctx: typer.Context,
    candidate_id: str = typer.Argument(..., help="Candidate identifier."),
    from_phase: str = typer.Option(..., "--from", help="Phase the candidate is expected to be in."),
    to_phase: str = typer.Option(..., "--to", help="Target phase."),
    decision: Optional[str] = typer.Option(None, help="passed or failed (default passed)."),
    score: Optional[float] = typer.Option(None, help="Score for the phase being left (0-100)."),
    notes: Optional[str] = typer.Option(None, help="Notes recorded on the closed phase."),
    interviewer: Optional[str] = typer.Option(None, help="Interviewer id."),
) -> None:
    """Move a candidate between phases."""
    try:
        state = ctx.obj.service.move_candidate(
            candidate_id,
            from_phase,
            to_phase,
            decision=decision,
            score=score,
            notes=notes,
            interviewer_id=interviewer,
        )
    except WorkflowError as exc:
        _fail(exc)
    _echo(state)


@app.command("bulk-move")
def bulk_move(
    ctx: typer.Context,
    moves: Path = typer.Option(..., exists=True, readable=True, dir_okay=False, help="JSON list of move requests."),
) -> None:
    """Apply many moves; failures are reported per candidate."""
    payload = json.loads(moves.read_text(encoding="utf-8"))
    if not isinstance(payload, list):
        raise typer.BadParameter("Moves file must contain a JSON list", param_name="moves")
    outcome = ctx.obj.service.bulk_move(payload)
    _echo({**outcome.model_dump(mode="json"), "summary": outcome.summary})


@app.command()
def score(
    ctx: typer.Context,
    candidate_id: str = typer.Argument(..., help="Candidate identifier."),
    value: float = typer.Argument(..., help="Score between 0 and 100."),
    phase: Optional[str] = typer.Option(None, help="Phase the score belongs to."),
) -> None:
    """Feed a score and apply the first matching auto-advance rule."""
    service = ctx.obj.service
    try:
        advanced = service.process_score(candidate_id, value, phase)
        state = advanced or service.get_state(candidate_id)
    except WorkflowError as exc:
        _fail(exc)
    _echo({"advanced": advanced is not None, "state": state.model_dump(mode="json")})


@app.command()
def status(
    ctx: typer.Context,
    candidate_id: str = typer.Argument(..., help="Candidate identifier."),
    value: str = typer.Argument(..., help="active, on_hold or withdrawn."),
    notes: Optional[str] = typer.Option(None, help="Notes recorded on the open phase."),
) -> None:
    """Put a candidate on hold, withdraw it, or resume it."""
    try:
        state = ctx.obj.service.set_status(candidate_id, value, notes=notes)
    except WorkflowError as exc:
        _fail(exc)
    _echo(state)


@app.command()
def show(
    ctx: typer.Context,
    candidate_id: str = typer.Argument(..., help="Candidate identifier."),
) -> None:
    """Print a candidate's workflow state."""
    try:
        state = ctx.obj.service.get_state(candidate_id)
    except WorkflowError as exc:
        _fail(exc)
    _echo(state)


@app.command()
def board(
    ctx: typer.Context,
    template: Optional[str] = typer.Option(None, help="Workflow template id."),
) -> None:
    """Print the board columns for a template."""
    try:
        columns = ctx.obj.service.get_board(template)
    except WorkflowError as exc:
        _fail(exc)
    _echo(columns)


@app.command()
def metrics(
    ctx: typer.Context,
    template: Optional[str] = typer.Option(None, help="Workflow template id."),
) -> None:
    """Print pipeline metrics for a template."""
    try:
        result = ctx.obj.service.get_metrics(template)
    except WorkflowError as exc:
        _fail(exc)
    _echo(result)


@app.command()
def templates(ctx: typer.Context) -> None:
    """List registered workflow templates."""
    _echo(ctx.obj.service.list_templates())


@app.command()
def sync(
    ctx: typer.Context,
    candidate_ids: Optional[list[str]] = typer.Argument(None, help="Candidates to sync (all when omitted)."),
) -> None:
    """Reconcile states with the candidate record service."""
    states = ctx.obj.service.sync_all(candidate_ids or None)
    _echo(states)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
