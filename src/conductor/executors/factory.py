from __future__ import annotations

from collections.abc import Callable
from typing import Any, ClassVar

from conductor.executors.base import (
    EXECUTOR_NAMES,
    ConfigurationError,
    Executor,
    ExecutorConfig,
)
from conductor.executors.claude import ClaudeCodeExecutor
from conductor.executors.codex import CodexExecutor
from conductor.executors.gemini import GeminiExecutor
from conductor.executors.kilo import KiloExecutor
from conductor.executors.opencode import OpencodeExecutor

ExecutorFactoryFn = Callable[..., Executor]


class ExecutorFactory:
    registry: ClassVar[dict[str, type[Executor]]] = {
        OpencodeExecutor.name: OpencodeExecutor,
        ClaudeCodeExecutor.name: ClaudeCodeExecutor,
        GeminiExecutor.name: GeminiExecutor,
        CodexExecutor.name: CodexExecutor,
        KiloExecutor.name: KiloExecutor,
    }

    @classmethod
    def create(
        cls,
        name: str,
        config: ExecutorConfig | None = None,
        **options: Any,
    ) -> Executor:
        executor_cls = cls.registry.get(name)
        if executor_cls is None:
            known = ", ".join(EXECUTOR_NAMES)
            raise ConfigurationError(
                f"Unknown executor: {name!r} (expected one of: {known})", executor=name
            )
        return executor_cls(config, **options)

    @classmethod
    def register(cls, executor_cls: type[Executor]) -> None:
        cls.registry[executor_cls.name] = executor_cls


def create_executor(name: str, config: ExecutorConfig | None = None, **options: Any) -> Executor:
    # Looked up at call time so tests can monkeypatch ExecutorFactory.create.
    return ExecutorFactory.create(name, config, **options)
