from __future__ import annotations

from typing import Any, ClassVar

from conductor.executors.base import EventHook, Executor, ExecutorConfig
from conductor.executors.factory import ExecutorFactoryFn, create_executor


class Phase:
    """Shared plumbing for the planning and execution phases.

    A phase renders one prompt from a task and hands it to an executor. It
    never touches the task store; persisting plans or statuses is up to the
    caller.
    """

    name: ClassVar[str] = "phase"

    def __init__(
        self,
        *,
        factory: ExecutorFactoryFn | None = None,
        event_hook: EventHook | None = None,
    ) -> None:
        self.factory = factory or create_executor
        self.event_hook = event_hook

    def _emit(self, payload: dict[str, Any]) -> None:
        if self.event_hook is not None:
            self.event_hook(payload)

    def _create_executor(self, executor_name: str, config: ExecutorConfig) -> Executor:
        self._emit(
            {
                "event": "phase_start",
                "phase": self.name,
                "executor": executor_name,
                "model": config.model,
            }
        )
        return self.factory(executor_name, config)
