from __future__ import annotations

import asyncio
import json
import shlex
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Any

import click

from conductor.attempts import ModelAttemptConfig, format_attempt, parse_try_models
from conductor.chain import ChainExhaustedError
from conductor.config import DEFAULT_CONFIG_FILE, ConductorConfig, load_config, save_config
from conductor.executors import (
    EXECUTOR_NAMES,
    ExecutorConfig,
    ExecutorError,
    ExecutorFactoryFn,
    create_executor,
)
from conductor.phases import ExecutionPhase, PlanningPhase
from conductor.tasks import Task, TaskDocumentation, load_task


@dataclass(slots=True)
class Runtime:
    config_path: Path
    config: ConductorConfig
    working_directory: Path
    factory: ExecutorFactoryFn


def _resolve_config_path(root: Path, config_value: str) -> Path:
    config_path = Path(config_value)
    if not config_path.is_absolute():
        config_path = root / config_path
    return config_path.resolve()


def _echo_event(event: dict[str, Any]) -> None:
    name = event.get("event")
    if name == "executor_dry_run":
        click.echo(f"[dry-run] {event['executor']}: {shlex.join(event['command'])}", err=True)
    elif name == "executor_start":
        details = f" (model: {event['model']})" if event.get("model") else ""
        if event.get("continue_last_session"):
            details += " continuing last session"
        elif event.get("session_id"):
            details += f" resuming session {event['session_id']}"
        click.echo(f"Launching {event['executor']}{details}", err=True)
    elif name == "chain_attempt_start":
        click.echo(
            f"Attempt {event['index']}/{event['total']}: {event['executor']} ({event['model']})",
            err=True,
        )
    elif name == "chain_attempt_failed":
        summary = event["error"].strip().splitlines()[0] if event["error"].strip() else ""
        click.echo(f"Attempt {event['index']} failed: {summary}", err=True)
    elif name == "verification_dry_run":
        click.echo(f"[dry-run] verify: {event['command']}", err=True)
    elif name == "verification_start":
        click.echo(f"Verifying [{event['index']}/{event['total']}]: {event['command']}", err=True)
    elif name == "verification_finished" and not event["success"]:
        click.echo(f"Verification failed: {event['command']} (exit {event['exit_code']})", err=True)
    elif name == "phase_start":
        click.echo(f"Starting {event['phase']} phase with {event['executor']}", err=True)


def _load_runtime(config_value: str) -> Runtime:
    root = Path.cwd().resolve()
    config_path = _resolve_config_path(root, config_value)
    try:
        config = load_config(config_path)
    except (ExecutorError, TypeError) as exc:
        raise click.ClickException(f"Invalid config {config_path}: {exc}") from exc
    working_directory = root
    if config.execution.working_directory:
        working_directory = _resolve_config_path(root, config.execution.working_directory)
    factory = partial(
        create_executor, working_directory=working_directory, event_hook=_echo_event
    )
    return Runtime(
        config_path=config_path,
        config=config,
        working_directory=working_directory,
        factory=factory,
    )


def _load_task(task_file: Path) -> Task:
    try:
        return load_task(task_file)
    except (OSError, ValueError, KeyError) as exc:
        raise click.ClickException(f"Could not load task from {task_file}: {exc}") from exc


def _read_text(path: Path | None) -> str | None:
    if path is None:
        return None
    return path.read_text(encoding="utf-8")


def _documentation_context(documentation: TaskDocumentation | None) -> str | None:
    if documentation is None or not documentation.recap:
        return None
    lines = [documentation.recap.strip()]
    if documentation.libraries:
        lines.extend(["", "Libraries: " + ", ".join(documentation.libraries)])
    if documentation.files:
        lines.extend(["", "Referenced Files:"])
        lines.extend(f"- {path}" for path in documentation.files)
    return "\n".join(lines)


def _fail(exc: ExecutorError) -> click.ClickException:
    if isinstance(exc, ChainExhaustedError):
        for failure in exc.failures:
            click.echo(f"  {failure.describe()}", err=True)
        return click.ClickException(f"All {len(exc.failures)} attempts failed.")
    return click.ClickException(str(exc))


def _parse_attempts(value: str | None, runtime: Runtime) -> list[ModelAttemptConfig]:
    if value:
        return parse_try_models(value)
    return runtime.config.executor.attempts()


def _run_planning(
    runtime: Runtime,
    task: Task,
    *,
    plan_model: str | None,
    plan_executor: str | None,
    default_executor: str,
    review: bool,
    dry: bool,
) -> str | None:
    """Run the planner, then loop on reviewer feedback until it is approved.

    Returns the plan text, or ``None`` when nothing was written.
    """
    planning = PlanningPhase(factory=runtime.factory, event_hook=_echo_event)
    options: dict[str, Any] = {
        "plan_model": plan_model,
        "plan_executor": plan_executor,
        "default_executor": default_executor,
        "dry": dry,
    }
    try:
        outcome = asyncio.run(planning.run(task, **options))
    except ExecutorError as exc:
        raise _fail(exc) from exc

    if dry:
        click.echo(f"Dry run complete for {outcome.executor}.")
        return None
    plan_path = runtime.working_directory / outcome.plan_file
    if not plan_path.exists():
        click.echo(f"Plan file {outcome.plan_file} was not created by {outcome.executor}.")
        return None
    click.echo(f"Plan created: {plan_path}")

    while review:
        feedback = click.prompt(
            "Feedback to refine the plan (press Enter to approve)",
            default="",
            show_default=False,
        )
        if not feedback.strip():
            break
        try:
            asyncio.run(planning.revise(task, feedback, **options))
        except ExecutorError as exc:
            raise _fail(exc) from exc
        click.echo(f"Plan updated: {plan_path}")
    return plan_path.read_text(encoding="utf-8")


@click.group()
def cli() -> None:
    """Conductor CLI."""


@cli.command("init")
@click.option("--executor", type=click.Choice(EXECUTOR_NAMES), default=None)
@click.option("--config", "config_value", default=DEFAULT_CONFIG_FILE, show_default=True)
def init_command(executor: str | None, config_value: str) -> None:
    config_path = _resolve_config_path(Path.cwd().resolve(), config_value)
    try:
        config = load_config(config_path)
    except (ExecutorError, TypeError) as exc:
        raise click.ClickException(f"Invalid config {config_path}: {exc}") from exc
    if executor:
        config.executor.default = executor  # type: ignore[assignment]
    save_config(config_path, config)
    click.echo(f"Config: {config_path}")
    click.echo(f"Default executor: {config.executor.default}")


@cli.command("models")
@click.argument("chain")
def models_command(chain: str) -> None:
    """Show how a --try-models chain is interpreted."""
    payload = [
        {
            "index": index,
            "executor": attempt.executor,
            "model": attempt.model,
            "token": format_attempt(attempt),
        }
        for index, attempt in enumerate(parse_try_models(chain), start=1)
    ]
    click.echo(json.dumps(payload, ensure_ascii=False, indent=2))


@cli.command("plan")
@click.argument("task_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--executor", type=click.Choice(EXECUTOR_NAMES), default=None)
@click.option("--plan-model", default=None, help="model or executor:model")
@click.option("--review-plan/--no-review-plan", "review_plan", default=None)
@click.option("--dry", is_flag=True, default=False)
@click.option("--config", "config_value", default=DEFAULT_CONFIG_FILE, show_default=True)
def plan_command(
    task_file: Path,
    executor: str | None,
    plan_model: str | None,
    review_plan: bool | None,
    dry: bool,
    config_value: str,
) -> None:
    runtime = _load_runtime(config_value)
    settings = runtime.config.planning
    _run_planning(
        runtime,
        _load_task(task_file),
        plan_model=plan_model or settings.plan_model or None,
        plan_executor=executor or settings.plan_executor or None,
        default_executor=runtime.config.executor.default,
        review=settings.review if review_plan is None else review_plan,
        dry=dry,
    )


@cli.command("execute")
@click.argument("task_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--executor", type=click.Choice(EXECUTOR_NAMES), default=None)
@click.option("--model", default=None)
@click.option("--try-models", default=None, help="e.g. gpt-4o-mini,claude:sonnet-4")
@click.option("--max-retries", type=click.IntRange(min=1), default=None)
@click.option(
    "--verify",
    "--validate",
    "verify_commands",
    multiple=True,
    help="command to run after each attempt; repeatable",
)
@click.option("--plan/--no-plan", "with_plan", default=None)
@click.option("--plan-model", default=None, help="model or executor:model")
@click.option("--review-plan/--no-review-plan", "review_plan", default=None)
@click.option(
    "--plan-file", type=click.Path(exists=True, dir_okay=False, path_type=Path), default=None
)
@click.option(
    "--stack-info", type=click.Path(exists=True, dir_okay=False, path_type=Path), default=None
)
@click.option(
    "--docs-file", type=click.Path(exists=True, dir_okay=False, path_type=Path), default=None
)
@click.option("--continue-session", is_flag=True, default=False)
@click.option("--session-id", default=None)
@click.option("--agent-arg", "agent_args", multiple=True, help="extra flag for the agent CLI")
@click.option("--dry", is_flag=True, default=False)
@click.option("--config", "config_value", default=DEFAULT_CONFIG_FILE, show_default=True)
def execute_command(
    task_file: Path,
    executor: str | None,
    model: str | None,
    try_models: str | None,
    max_retries: int | None,
    verify_commands: tuple[str, ...],
    with_plan: bool | None,
    plan_model: str | None,
    review_plan: bool | None,
    plan_file: Path | None,
    stack_info: Path | None,
    docs_file: Path | None,
    continue_session: bool,
    session_id: str | None,
    agent_args: tuple[str, ...],
    dry: bool,
    config_value: str,
) -> None:
    runtime = _load_runtime(config_value)
    settings = runtime.config
    task = _load_task(task_file)
    executor_name = executor or settings.executor.default
    attempts = _parse_attempts(try_models, runtime)

    plan = _read_text(plan_file)
    if plan is None and (settings.planning.enabled if with_plan is None else with_plan):
        plan = _run_planning(
            runtime,
            task,
            plan_model=plan_model or settings.planning.plan_model or None,
            plan_executor=settings.planning.plan_executor or None,
            default_executor=executor_name,
            review=settings.planning.review if review_plan is None else review_plan,
            dry=dry,
        )

    # Session flags only apply to attempts on executor_name.
    config = ExecutorConfig(
        model=model or settings.executor.model or None,
        session_id=session_id,
        continue_last_session=True if continue_session else None,
        extra={"args": list(agent_args)} if agent_args else {},
    )
    phase = ExecutionPhase(
        factory=runtime.factory,
        event_hook=_echo_event,
        resume_session_on_retry=settings.execution.resume_session_on_retry,
        working_directory=runtime.working_directory,
    )
    try:
        outcome = asyncio.run(
            phase.run(
                task,
                executor=executor_name,
                config=config,
                attempts=attempts,
                plan=plan,
                stack_info=_read_text(stack_info),
                documentation=_read_text(docs_file) or _documentation_context(task.documentation),
                verification_commands=verify_commands or settings.execution.verification_commands,
                max_retries=max_retries or settings.execution.max_retries or None,
                dry=dry,
            )
        )
    except ExecutorError as exc:
        raise _fail(exc) from exc

    used = outcome.executor + (f" ({outcome.model})" if outcome.model else "")
    if dry:
        click.echo(f"Dry run complete: {used}")
        return
    click.echo(f"Task {task.id} executed with {used}")
    if outcome.verifications:
        click.echo(f"Verification passed: {len(outcome.verifications)} command(s).")
    if outcome.failures:
        click.echo(f"Recovered after {len(outcome.failures)} failed attempt(s).")
