from __future__ import annotations

from dataclasses import dataclass

from conductor.attempts import parse_executor_model_string
from conductor.executors.base import (
    ConfigurationError,
    EventHook,
    ExecutionResult,
    ExecutorConfig,
    validate_executor,
)
from conductor.executors.factory import ExecutorFactoryFn
from conductor.phases.base import Phase
from conductor.tasks import Task

PLANNING_TEMPLATE = """
You are a senior software architect. Study the task below and write a detailed implementation plan.

Task Title: {title}
{file_reference}
Task Description/Summary:
{description}

Detailed Task Requirements:
{requirements}
{documentation}
Requirements:
1. Plan this task only. Do not plan follow-up tasks or subtasks unless they are required.
2. Read the requirements and any documentation provided above.
3. If a task content file is referenced, check it for further details.
4. Describe the implementation step by step.
5. List the files that need to change.
6. Write the plan to a file named "{plan_file}" in the current directory.
7. Do not implement anything yet. Only create the plan file.

Please create the "{plan_file}" file now.
"""

PLAN_FEEDBACK_TEMPLATE = """
The user reviewed the plan you just wrote and left this feedback:

"{feedback}"

Update the plan file "{plan_file}" so it addresses the feedback.
"""


def plan_file_name(task: Task) -> str:
    return f"task-{task.id}-plan.md"


def _documentation_block(task: Task) -> str:
    if task.documentation is None:
        return ""
    files = "\n".join(f"- {path}" for path in task.documentation.files) or "None"
    return (
        "\nDocumentation Context:\n"
        f"{task.documentation.recap}\n\n"
        "Referenced Files:\n"
        f"{files}\n"
    )


def render_planning_prompt(
    task: Task,
    *,
    plan_file: str | None = None,
    template: str | None = None,
) -> str:
    """Render the planning prompt for ``task``.

    Full ``content`` is the primary requirements text; the short description
    is kept as a summary above it.
    """
    file_reference = f"(Task Content File: {task.content_file})\n" if task.content_file else ""
    return (template or PLANNING_TEMPLATE).strip().format(
        title=task.title,
        file_reference=file_reference,
        description=task.description or "No summary provided.",
        requirements=task.content or task.description or "No description provided.",
        documentation=_documentation_block(task),
        plan_file=plan_file or plan_file_name(task),
    )


def render_plan_feedback_prompt(plan_file: str, feedback: str) -> str:
    return PLAN_FEEDBACK_TEMPLATE.strip().format(feedback=feedback.strip(), plan_file=plan_file)


@dataclass(slots=True)
class PlanningResult:
    prompt: str
    executor: str
    model: str | None
    plan_file: str
    result: ExecutionResult


class PlanningPhase(Phase):
    name = "planning"

    def __init__(
        self,
        *,
        factory: ExecutorFactoryFn | None = None,
        event_hook: EventHook | None = None,
        template: str | None = None,
    ) -> None:
        super().__init__(factory=factory, event_hook=event_hook)
        self.template = template or PLANNING_TEMPLATE

    def resolve_target(
        self,
        plan_model: str | None,
        plan_executor: str | None,
        default_executor: str,
    ) -> tuple[str, str | None]:
        """Pick the executor and model for planning.

        An explicit ``plan_executor`` wins over an ``executor:`` prefix in
        ``plan_model``; the prefix is stripped from the model either way.
        """
        executor_name = plan_executor or default_executor
        model = plan_model or None
        if plan_model:
            parsed = parse_executor_model_string(plan_model)
            if parsed.executor and not plan_executor:
                executor_name = parsed.executor
            model = parsed.model or None
        if not validate_executor(executor_name):
            raise ConfigurationError(
                f"Unknown executor for planning: {executor_name!r}", executor=executor_name
            )
        return executor_name, model

    async def run(
        self,
        task: Task,
        *,
        plan_model: str | None = None,
        plan_executor: str | None = None,
        default_executor: str = "opencode",
        dry: bool = False,
        prompt: str | None = None,
        continue_session: bool = False,
    ) -> PlanningResult:
        executor_name, model = self.resolve_target(plan_model, plan_executor, default_executor)
        plan_file = plan_file_name(task)
        if prompt is None:
            prompt = render_planning_prompt(task, plan_file=plan_file, template=self.template)

        config = ExecutorConfig(model=model, continue_last_session=continue_session)
        executor = self._create_executor(executor_name, config)
        result = await executor.execute(prompt, dry, config)
        return PlanningResult(
            prompt=prompt,
            executor=executor_name,
            model=model,
            plan_file=plan_file,
            result=result,
        )

    async def revise(
        self,
        task: Task,
        feedback: str,
        *,
        plan_model: str | None = None,
        plan_executor: str | None = None,
        default_executor: str = "opencode",
        dry: bool = False,
    ) -> PlanningResult:
        """Have the planner update its plan file from reviewer feedback.

        The planner's last session is continued so the plan it wrote is still
        in context.
        """
        return await self.run(
            task,
            plan_model=plan_model,
            plan_executor=plan_executor,
            default_executor=default_executor,
            dry=dry,
            prompt=render_plan_feedback_prompt(plan_file_name(task), feedback),
            continue_session=True,
        )
