"""Command line interface for resizeflow."""

from __future__ import annotations

import asyncio
import json
import logging
import signal
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

import typer

from resizeflow import (
    ResizeRequest,
    WorkflowEngine,
    build_resize_workflow,
    dump_workflow,
    get_client,
    get_repository,
    load_workflow,
    resize_instance,
    validate_workflow,
)
from resizeflow.config import ResizeflowConfig, load_config
from resizeflow.contracts import RunResult, Workflow
from resizeflow.errors import ConfigurationError
from resizeflow.persistence import RunRepository

logger = logging.getLogger(__name__)

app = typer.Typer(help="CLI for resizeflow instance resize workflows")

workflow_app = typer.Typer(help="Commands for inspecting and running workflow definitions")
run_app = typer.Typer(help="Commands for inspecting recorded runs")

app.add_typer(workflow_app, name="workflow")
app.add_typer(run_app, name="run")

_state = {"config_path": None}


def _config() -> ResizeflowConfig:
    return load_config(_state["config_path"])


def _repository() -> RunRepository:
    if _state["config_path"]:
        return get_repository(config=_config())
    return get_repository()


@app.callback()
def main(
    config: Optional[Path] = typer.Option(None, help="Path to a resizeflow YAML config"),
    log_level: Optional[str] = typer.Option(None, help="Logging level (default from config)"),
) -> None:
    """resizeflow CLI entry point."""
    _state["config_path"] = str(config) if config else None
    level = (log_level or _config().log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def _run_cancellable(
    run: Callable[[asyncio.Event], Awaitable[RunResult]],
) -> RunResult:
    """Run with Ctrl-C wired to the run's cancel event."""
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
        handler_installed = True
    except (NotImplementedError, RuntimeError):
        logger.debug("SIGINT handler unavailable; Ctrl-C will not trigger cleanup")
        handler_installed = False
    try:
        return await run(cancel_event)
    finally:
        if handler_installed:
            loop.remove_signal_handler(signal.SIGINT)


def _echo_result(result: RunResult) -> None:
    color = typer.colors.GREEN if result.succeeded else typer.colors.RED
    typer.secho(f"Run {result.run_id}: {result.status.value}", fg=color)
    if result.failing_step:
        typer.echo(f"Failing step: {result.failing_step}")
    if result.error:
        typer.echo(f"Error ({result.error.kind.value}): {result.error.message}")
    for name, error in result.step_errors.items():
        if name != result.failing_step:
            typer.secho(
                f"- {name} failed ({error.kind.value}): {error.message}",
                fg=typer.colors.YELLOW,
            )
    if result.compensated_steps:
        typer.echo(f"Compensated: {', '.join(result.compensated_steps)}")
    typer.echo(f"Steps: {' -> '.join(result.executed_steps)}")


def _parse_params(pairs: Optional[List[str]]) -> dict:
    params = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Expected KEY=VALUE, got {pair!r}")
        params[key.strip()] = value
    return params


@app.command("resize")
def resize(
    instance_id: str,
    target_instance_type: str,
    reservation_name: Optional[str] = typer.Option(None, help="Name tag for the capacity reservation"),
    platform: Optional[str] = typer.Option(None, help="Reservation platform (default: instance's)"),
    availability_zone: Optional[str] = typer.Option(None, help="Reservation zone (default: instance's)"),
    retry_attempts: Optional[int] = typer.Option(None, min=1, help="Capacity reservation attempts"),
    retry_interval: Optional[float] = typer.Option(None, min=0, help="Seconds between reservation attempts"),
    stop_timeout: Optional[float] = typer.Option(None, help="Seconds to wait for the instance to stop"),
    start_timeout: Optional[float] = typer.Option(None, help="Seconds to wait for the instance to run"),
    reservation_timeout: Optional[float] = typer.Option(None, help="Seconds to wait for the reservation"),
    poll_interval: Optional[float] = typer.Option(None, help="Seconds between state polls"),
    reserve: bool = typer.Option(True, "--reserve/--no-reserve", help="Reserve capacity before stopping"),
    os_family: str = typer.Option("linux", "--os", help="linux or windows; selects default scripts"),
    pre_script: Optional[Path] = typer.Option(None, exists=True, dir_okay=False, help="Pre-downtime script"),
    post_script: Optional[Path] = typer.Option(None, exists=True, dir_okay=False, help="Post-downtime script"),
    backend: Optional[str] = typer.Option(None, help="Client backend (ec2 or inmemory)"),
    deadline: Optional[float] = typer.Option(None, help="Overall run deadline in seconds"),
) -> None:
    """
    Resize an instance to TARGET_INSTANCE_TYPE.

    Reserves capacity (retrying on insufficient capacity), runs the
    pre-downtime script, stops the instance, changes its type, starts it,
    runs the post-downtime script and cancels the reservation. Ctrl-C
    cancels the run and still releases the reservation.

    Example:
        resizeflow resize i-0abc123 m5.large
        resizeflow resize i-0abc123 m5.large --os windows --retry-attempts 10
    """
    if os_family not in ("linux", "windows"):
        raise typer.BadParameter("--os must be linux or windows")
    config = _config()
    try:
        request = ResizeRequest(
            instance_id=instance_id,
            target_instance_type=target_instance_type,
            reservation_name=reservation_name,
            platform=platform,
            availability_zone=availability_zone,
            retry_attempts=retry_attempts,
            retry_interval_seconds=retry_interval,
            stop_timeout_seconds=stop_timeout,
            start_timeout_seconds=start_timeout,
            reservation_timeout_seconds=reservation_timeout,
            poll_interval_seconds=poll_interval,
            reserve_capacity=reserve,
            os_family=os_family,
            pre_script=pre_script,
            post_script=post_script,
        )
    except ValueError as exc:
        typer.secho(f"Invalid request: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=2)

    client = get_client(backend, config=config)
    repository = _repository()
    typer.echo(f"Resizing {instance_id} to {target_instance_type}")
    try:
        result = asyncio.run(
            _run_cancellable(
                lambda cancel_event: resize_instance(
                    request,
                    client=client,
                    config=config,
                    repository=repository,
                    cancel_event=cancel_event,
                    deadline_seconds=deadline,
                )
            )
        )
    except ConfigurationError as exc:
        typer.secho(f"Configuration error: {exc.message}", fg=typer.colors.RED)
        raise typer.Exit(code=2)

    _echo_result(result)
    if not result.succeeded:
        raise typer.Exit(code=1)


def _load_or_default(path: Optional[Path], os_family: str) -> Workflow:
    if path is None:
        return build_resize_workflow(os_family="windows" if os_family == "windows" else "linux")
    return load_workflow(path)


@workflow_app.command("show")
def workflow_show(
    path: Optional[Path] = typer.Argument(None, help="Workflow YAML (default: built-in resize)"),
    os_family: str = typer.Option("linux", "--os"),
) -> None:
    """List the steps of a workflow with their routing and failure policy."""
    try:
        workflow = _load_or_default(path, os_family)
        plan = validate_workflow(workflow)
    except (ConfigurationError, OSError) as exc:
        typer.secho(f"Invalid workflow: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Workflow {workflow.name}: {workflow.description or ''}".rstrip())
    for name, spec in workflow.parameters.items():
        default = "" if spec.default is None else f" = {spec.default!r}"
        typer.echo(f"  param {name} ({spec.type.value}){default}")
    for step in plan.path:
        target = "END" if step.is_end else step.next_step
        typer.echo(
            f"- {step.name}: {step.action.value} [{step.on_failure.value}] -> {target}"
        )


@workflow_app.command("export")
def workflow_export(
    output: Optional[Path] = typer.Option(None, help="File to write (default: stdout)"),
    os_family: str = typer.Option("linux", "--os"),
    reserve: bool = typer.Option(True, "--reserve/--no-reserve"),
) -> None:
    """Write the built-in resize workflow as a YAML document."""
    workflow = build_resize_workflow(
        os_family="windows" if os_family == "windows" else "linux",
        reserve_capacity=reserve,
    )
    document = dump_workflow(workflow)
    if output is None:
        typer.echo(document)
    else:
        output.write_text(document)
        typer.echo(f"Wrote {workflow.name} to {output}")


@workflow_app.command("validate")
def workflow_validate(path: Path) -> None:
    """Check a workflow YAML document without running it."""
    try:
        plan = validate_workflow(load_workflow(path))
    except (ConfigurationError, OSError) as exc:
        typer.secho(f"Invalid workflow: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.secho(
        f"Workflow {plan.workflow.name} is valid ({len(plan.path)} steps)",
        fg=typer.colors.GREEN,
    )


@workflow_app.command("execute")
def workflow_execute(
    path: Path,
    param: Optional[List[str]] = typer.Option(None, "--param", "-p", help="KEY=VALUE"),
    backend: Optional[str] = typer.Option(None, help="Client backend (ec2 or inmemory)"),
    deadline: Optional[float] = typer.Option(None, help="Overall run deadline in seconds"),
) -> None:
    """
    Run a workflow YAML document.

    Example:
        resizeflow workflow execute ./resize.yaml -p InstanceId=i-0abc -p TargetInstanceType=m5.large
    """
    config = _config()
    try:
        workflow = load_workflow(path)
    except (ConfigurationError, OSError) as exc:
        typer.secho(f"Invalid workflow: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=2)
    params = _parse_params(param)

    client = get_client(backend, config=config)
    engine = WorkflowEngine(client, repository=_repository())

    async def _execute(cancel_event: asyncio.Event) -> RunResult:
        await client.connect()
        try:
            return await engine.run(
                workflow, params, cancel_event=cancel_event, deadline_seconds=deadline
            )
        finally:
            await client.disconnect()

    try:
        result = asyncio.run(_run_cancellable(_execute))
    except ConfigurationError as exc:
        typer.secho(f"Configuration error: {exc.message}", fg=typer.colors.RED)
        raise typer.Exit(code=2)
    _echo_result(result)
    if not result.succeeded:
        raise typer.Exit(code=1)


@run_app.command("list")
def run_list() -> None:
    """List recorded runs with their status."""
    repo = _repository()
    runs = asyncio.run(repo.list_runs())
    if not runs:
        typer.echo("No runs found")
        return
    for run in runs:
        typer.echo(f"{run.run_id}\t{run.workflow_name}\t{run.status}")


@run_app.command("show")
def run_show(run_id: str) -> None:
    """Show parameters and step history of a recorded run."""
    repo = _repository()
    run = asyncio.run(repo.get_run(run_id))
    if run is None:
        typer.echo("Run not found")
        raise typer.Exit(code=1)
    typer.echo(f"Run {run.run_id} ({run.workflow_name}): {run.status}")
    if run.failing_step:
        typer.echo(f"Failing step: {run.failing_step} - {run.error}")
    if run.parameters:
        typer.echo(f"Parameters: {json.dumps(run.parameters, default=str)}")
    for step in run.steps:
        typer.echo(
            f"- {step.step_name}: {step.status}"
            + (
                f" ({step.started_at} -> {step.completed_at})"
                if step.started_at or step.completed_at
                else ""
            )
        )


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
