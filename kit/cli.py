"""CLI interface for the promo kit pipeline."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, NoReturn, Optional

import typer

from promo_core.stats import parse_timestamp

from .config import KitConfig, load_config, resolve_root
from .errors import ErrorCode, KitError
from .runner import PipelineRunner

app = typer.Typer(help="Promo kit: targets, decisions, telemetry and ops artifacts")


@dataclass
class CliState:
    config_path: Optional[str] = None
    data_dir: Optional[str] = None
    as_of: Optional[datetime] = None
    dry_run: bool = False
    plots: bool = False


def _fail(error: KitError) -> NoReturn:
    lines = error.format_lines()
    typer.secho(f"❌ {lines[0]}", fg=typer.colors.RED, err=True)
    for line in lines[1:]:
        typer.secho(line, err=True)
    raise typer.Exit(1)


def _load(state: CliState) -> tuple[KitConfig, Path]:
    try:
        config = load_config(state.config_path)
    except FileNotFoundError as e:
        _fail(
            KitError(
                ErrorCode.CONFIG_MISSING,
                "Config file not found",
                fix="Pass --config with an existing kit.config.yaml",
                path=state.config_path,
                detail=str(e),
            )
        )
    except ValueError as e:
        _fail(
            KitError(
                ErrorCode.CONFIG_INVALID,
                "Invalid config",
                fix="Check the YAML against the documented sections",
                path=state.config_path,
                detail=str(e).splitlines()[0],
            )
        )
    if state.data_dir:
        paths = config.paths.model_copy(update={"data_dir": state.data_dir})
        config = config.model_copy(update={"paths": paths})
    return config, resolve_root(state.config_path)


def _runner(ctx: typer.Context) -> PipelineRunner:
    state: CliState = ctx.obj
    config, root = _load(state)
    now = state.as_of or datetime.now(timezone.utc)
    return PipelineRunner(config, root, now, dry_run=state.dry_run, plots=state.plots)


def _run_step(ctx: typer.Context, step: str, **kwargs: Any) -> Any:
    runner = _runner(ctx)
    try:
        result = getattr(runner, step)(**kwargs)
    except KitError as e:
        _fail(e)
    verb = "Would write" if runner.dry_run else "Wrote"
    typer.secho(f"✅ {step.replace('_', '-')} done", fg=typer.colors.GREEN)
    for path in runner.artifacts.written:
        typer.echo(f"   {verb}: {path}")
    return result


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to kit.config.yaml"),
    data_dir: Optional[str] = typer.Option(None, "--data-dir", help="Override paths.data_dir"),
    as_of: Optional[str] = typer.Option(
        None, "--as-of", help="ISO-8601 timestamp used as 'now' for reproducible output"
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Compute everything, write nothing"),
    plots: bool = typer.Option(False, "--plots", help="Also render PNG charts"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    moment = None
    if as_of is not None:
        moment = parse_timestamp(as_of)
        if moment is None:
            raise typer.BadParameter(f"not an ISO-8601 timestamp: {as_of}", param_hint="--as-of")
    ctx.obj = CliState(
        config_path=config, data_dir=data_dir, as_of=moment, dry_run=dry_run, plots=plots
    )


@app.command()
def targets(
    ctx: typer.Context,
    slug: Optional[list[str]] = typer.Option(None, "--slug", help="Limit to these tool slugs"),
) -> None:
    """Discover, score and rank outreach targets for each enabled tool."""
    results = _run_step(ctx, "targets", slugs=slug or None)
    for target_list in results:
        typer.echo(
            f"   {target_list.tool}: {target_list.candidate_count} targets "
            f"({target_list.total_scored} scored, {len(target_list.errors)} errors)"
        )


@app.command()
def facts(ctx: typer.Context) -> None:
    """Collect live GitHub facts for each enabled tool."""
    collected = _run_step(ctx, "facts")
    for item in collected:
        status = f"{len(item.errors)} error(s)" if item.errors else "ok"
        typer.echo(f"   {item.slug}: {status}")


@app.command()
def feedback(ctx: typer.Context) -> None:
    """Summarize outreach feedback from feedback.jsonl."""
    summary = _run_step(ctx, "feedback")
    typer.echo(f"   {summary.total_entries} entries, reply rate {summary.reply_rate}")


@app.command()
def decisions(ctx: typer.Context) -> None:
    """Evaluate active experiments against feedback."""
    report = _run_step(ctx, "decisions")
    for evaluation in report.evaluations:
        typer.echo(f"   {evaluation.experiment_id}: {evaluation.status}")
    for warning in report.warnings:
        typer.secho(f"⚠️  {warning}", fg=typer.colors.YELLOW)


@app.command()
def telemetry(ctx: typer.Context) -> None:
    """Roll up telemetry events with daily caps and spike detection."""
    rollup = _run_step(ctx, "telemetry")
    typer.echo(
        f"   {rollup.total_events} events kept, {rollup.guardrails.events_capped} capped, "
        f"{len(rollup.guardrails.suspicious_days)} suspicious day(s)"
    )


@app.command("queue-health")
def queue_health(ctx: typer.Context) -> None:
    """Snapshot submission queue health."""
    snapshot = _run_step(ctx, "queue_health")
    typer.echo(f"   {snapshot.submissions} submissions, {snapshot.stuck_count} stuck")


@app.command()
def baseline(ctx: typer.Context) -> None:
    """Compute the ops cost baseline from run history."""
    result = _run_step(ctx, "baseline")
    typer.echo(
        f"   {result.run_count} runs, confidence {result.confidence_label}, "
        f"avg {result.avg_minutes_per_run} min/run"
    )


@app.command("ops-actions")
def ops_actions(ctx: typer.Context) -> None:
    """Suggest operator actions from recent run history."""
    result = _run_step(ctx, "ops_actions")
    for action in result.actions:
        typer.echo(f"   [{action.level}] {action.message}")


@app.command()
def recommendations(ctx: typer.Context) -> None:
    """Synthesize prioritized recommendations from all signals."""
    result = _run_step(ctx, "recommendations")
    typer.echo(f"   {len(result.recommendations)} recommendation(s)")


@app.command("promo-decisions")
def promo_decisions(ctx: typer.Context) -> None:
    """Score queued promotion candidates and decide promote, skip or defer."""
    result = _run_step(ctx, "promo_decisions")
    for decision in result.decisions:
        typer.echo(f"   {decision.slug}: {decision.action} ({decision.score})")
    for warning in result.warnings:
        typer.secho(f"⚠️  {warning}", fg=typer.colors.YELLOW)


@app.command()
def drift(ctx: typer.Context) -> None:
    """Compare promo decisions with the previous snapshot."""
    result = _run_step(ctx, "drift")
    typer.echo(
        f"   {len(result.entrants)} entrant(s), {len(result.exits)} exit(s), "
        f"{result.summary.total_changed} changed"
    )


@app.command("run-all")
def run_all(
    ctx: typer.Context,
    network: bool = typer.Option(
        False, "--network/--no-network", help="Include facts and targets steps"
    ),
) -> None:
    """Run every step in order, continuing past failed steps."""
    runner = _runner(ctx)
    outcomes = runner.run_all(include_network=network)
    failed = [o for o in outcomes if not o.ok]

    typer.secho(f"\n📊 {len(outcomes) - len(failed)}/{len(outcomes)} steps succeeded", fg=typer.colors.BLUE)
    for outcome in failed:
        for line in outcome.error.format_lines():
            typer.secho(f"   {line}", fg=typer.colors.RED, err=True)
    if failed:
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
