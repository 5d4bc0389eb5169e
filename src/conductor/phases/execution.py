from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from conductor.attempts import ModelAttemptConfig, schedule_attempts
from conductor.chain import AttemptFailure, FallbackChainRunner
from conductor.executors.base import EventHook, ExecutionResult, ExecutorConfig
from conductor.executors.factory import ExecutorFactoryFn
from conductor.phases.base import Phase
from conductor.tasks import Task
from conductor.verification import VerificationResult, verify

COMMIT_REMINDER = (
    "## **IMPORTANT**: Before finishing, commit all of your changes with a clear, "
    "descriptive commit message summarizing what was implemented. "
    "Do not hand back control without committing your work!"
)


def build_retry_context(
    attempt: int,
    total: int,
    error: str,
    *,
    executor: str | None = None,
    model: str | None = None,
) -> str:
    lines = [f"# RETRY ATTEMPT {attempt}/{total}", ""]
    if model:
        lines.extend(
            [
                f"**Note**: You are {executor or 'the agent'} using the {model} model. "
                "A previous attempt did not complete the task.",
                "",
            ]
        )
    lines.extend(
        [
            "## Previous Attempt Failed With Error:",
            "",
            error.strip(),
            "",
            "Analyze the error above before changing anything. Common causes:",
            "- Syntax errors",
            "- Logic errors",
            "- Missing dependencies or imports",
            "- Incorrect configuration",
            "- Build or test failures",
            "",
            "Fix the error and complete the task.",
        ]
    )
    return "\n".join(lines)


def _task_section(task: Task) -> str:
    parts = [f"# Task: {task.title}"]
    if task.description:
        parts.append(task.description.strip())
    if task.content and task.content != task.description:
        parts.append(task.content.strip())
    return "\n\n".join(parts)


def render_execution_prompt(
    task: Task,
    *,
    plan: str | None = None,
    stack_info: str | None = None,
    documentation: str | None = None,
    retry_context: str | None = None,
) -> str:
    """Assemble the implementation prompt.

    Sections always appear in this order: retry context, plan, technology
    stack, documentation. Empty sections are left out.
    """
    sections: list[str] = []
    if retry_context and retry_context.strip():
        sections.append(retry_context.strip())
    if plan and plan.strip():
        sections.append(
            f"# Implementation Plan\n\n{plan.strip()}\n\n"
            "Please follow this plan to implement the task."
        )
    else:
        sections.append(_task_section(task))
    if stack_info and stack_info.strip():
        sections.append(f"# Technology Stack\n\n{stack_info.strip()}")
    if documentation and documentation.strip():
        sections.append(f"# Documentation Context\n\n{documentation.strip()}")
    sections.append(COMMIT_REMINDER)
    return "\n\n".join(sections)


@dataclass(slots=True)
class ExecutionOutcome:
    prompt: str
    executor: str
    model: str | None
    result: ExecutionResult
    failures: list[AttemptFailure] = field(default_factory=list)
    verifications: list[VerificationResult] = field(default_factory=list)


class ExecutionPhase(Phase):
    name = "execution"

    def __init__(
        self,
        *,
        factory: ExecutorFactoryFn | None = None,
        event_hook: EventHook | None = None,
        resume_session_on_retry: bool = True,
        working_directory: Path | None = None,
    ) -> None:
        super().__init__(factory=factory, event_hook=event_hook)
        self.resume_session_on_retry = resume_session_on_retry
        self.working_directory = working_directory

    async def _verify(
        self, commands: Sequence[str], executor: str, result: ExecutionResult
    ) -> list[VerificationResult]:
        return await verify(
            commands,
            executor=executor,
            dry=result.dry,
            working_directory=self.working_directory,
            event_hook=self.event_hook,
        )

    async def run(
        self,
        task: Task,
        *,
        executor: str = "opencode",
        config: ExecutorConfig | None = None,
        attempts: Sequence[ModelAttemptConfig] | None = None,
        plan: str | None = None,
        stack_info: str | None = None,
        documentation: str | None = None,
        retry_context: str | None = None,
        verification_commands: Sequence[str] = (),
        max_retries: int | None = None,
        dry: bool = False,
    ) -> ExecutionOutcome:
        """Run the implementation step once, or through a fallback chain.

        With ``attempts`` or ``max_retries`` every retry gets the previous
        failure embedded as retry context, so the agent can correct itself.
        ``verification_commands`` run after each clean agent exit and a
        failing one fails the attempt.
        """
        config = config or ExecutorConfig()
        schedule = schedule_attempts(attempts or (), max_retries)
        verifications: list[VerificationResult] = []

        def render(context: str | None) -> str:
            return render_execution_prompt(
                task,
                plan=plan,
                stack_info=stack_info,
                documentation=documentation,
                retry_context=context,
            )

        async def check(executor_name: str, result: ExecutionResult) -> None:
            if verification_commands:
                verifications.extend(
                    await self._verify(verification_commands, executor_name, result)
                )

        prompt = render(retry_context)
        if not schedule:
            agent = self._create_executor(executor, config)
            result = await agent.execute(prompt, dry, config)
            await check(executor, result)
            return ExecutionOutcome(
                prompt=prompt,
                executor=executor,
                model=config.model,
                result=result,
                verifications=verifications,
            )

        total = len(schedule)
        rendered: dict[int, str] = {}

        def render_attempt(index: int, previous: AttemptFailure | None) -> str:
            verifications.clear()
            if previous is None:
                rendered[index] = prompt
            else:
                current = schedule[index - 1]
                rendered[index] = render(
                    build_retry_context(
                        index,
                        total,
                        str(previous.error),
                        executor=current.executor or executor,
                        model=current.model or config.model,
                    )
                )
            return rendered[index]

        self._emit(
            {
                "event": "phase_start",
                "phase": self.name,
                "executor": executor,
                "attempts": total,
            }
        )
        runner = FallbackChainRunner(
            executor,
            factory=self.factory,
            event_hook=self.event_hook,
            resume_session_on_retry=self.resume_session_on_retry,
        )
        chain_result = await runner.run(
            prompt, schedule, dry=dry, config=config, render=render_attempt, check=check
        )
        return ExecutionOutcome(
            prompt=rendered.get(chain_result.index, prompt),
            executor=chain_result.executor,
            model=chain_result.model or None,
            result=chain_result.result,
            failures=chain_result.failures,
            verifications=verifications,
        )
