from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field, replace
from typing import Any

from conductor.attempts import ModelAttemptConfig
from conductor.executors.base import (
    ConfigurationError,
    EventHook,
    ExecutionError,
    ExecutionResult,
    ExecutorConfig,
    ExecutorError,
    validate_executor,
)
from conductor.executors.factory import ExecutorFactoryFn, create_executor
from conductor.verification import VerificationError


@dataclass(slots=True)
class AttemptFailure:
    index: int
    executor: str
    model: str
    error: ExecutorError

    def describe(self) -> str:
        return f"#{self.index} {self.executor}:{self.model}: {self.error}"


PromptRenderer = Callable[[int, AttemptFailure | None], str]
AttemptCheck = Callable[[str, ExecutionResult], Awaitable[object]]


@dataclass(slots=True)
class ChainResult:
    index: int
    executor: str
    model: str
    result: ExecutionResult
    failures: list[AttemptFailure] = field(default_factory=list)


class ChainExhaustedError(ExecutorError):
    """Raised when every attempt of a fallback chain failed."""

    def __init__(self, failures: Sequence[AttemptFailure]) -> None:
        self.failures = list(failures)
        summary = "; ".join(failure.describe() for failure in self.failures)
        super().__init__(
            f"All {len(self.failures)} attempts failed. {summary}",
            retriable=False,
        )


class FallbackChainRunner:
    """Tries a prompt against an ordered list of executor/model attempts.

    Attempts run strictly one after another with no delay; the first success
    wins. A chain of one attempt behaves like a direct executor call and lets
    the executor's error through unchanged.
    """

    def __init__(
        self,
        default_executor: str,
        *,
        factory: ExecutorFactoryFn | None = None,
        event_hook: EventHook | None = None,
        resume_session_on_retry: bool = False,
    ) -> None:
        if not validate_executor(default_executor):
            raise ConfigurationError(
                f"Unknown default executor: {default_executor!r}", executor=default_executor
            )
        self.default_executor = default_executor
        self.factory = factory or create_executor
        self.event_hook = event_hook
        self.resume_session_on_retry = resume_session_on_retry

    def _emit(self, payload: dict[str, Any]) -> None:
        if self.event_hook is not None:
            self.event_hook(payload)

    def _attempt_config(
        self,
        base: ExecutorConfig | None,
        attempt: ModelAttemptConfig,
        executor_name: str,
        previous: AttemptFailure | None,
        supports_resumption: bool,
    ) -> ExecutorConfig:
        base = base or ExecutorConfig()
        if executor_name != self.default_executor:
            # Session settings in the base config belong to the default executor.
            base = replace(base, session_id=None, continue_last_session=None)
        resume = (
            self.resume_session_on_retry
            and supports_resumption
            and previous is not None
            and previous.executor == executor_name
            and isinstance(previous.error, (ExecutionError, VerificationError))
        )
        override = ExecutorConfig(
            model=attempt.model or None,
            continue_last_session=True if resume else None,
        )
        return base.merged(override)

    async def run(
        self,
        message: str,
        attempts: Sequence[ModelAttemptConfig],
        *,
        dry: bool = False,
        config: ExecutorConfig | None = None,
        render: PromptRenderer | None = None,
        check: AttemptCheck | None = None,
    ) -> ChainResult:
        """Run ``attempts`` in order until one succeeds.

        ``check`` runs after every clean agent exit; raising an
        ``ExecutorError`` from it fails the attempt. An attempt without a model
        uses the model of ``config``.
        """
        if not attempts:
            raise ConfigurationError("Attempt chain is empty.")

        single = len(attempts) == 1
        fallback_model = config.model if config is not None and config.model else ""
        failures: list[AttemptFailure] = []
        previous: AttemptFailure | None = None
        for index, attempt in enumerate(attempts, start=1):
            executor_name = attempt.executor or self.default_executor
            model = attempt.model or fallback_model
            self._emit(
                {
                    "event": "chain_attempt_start",
                    "index": index,
                    "total": len(attempts),
                    "executor": executor_name,
                    "model": model,
                }
            )
            prompt = render(index, previous) if render is not None else message
            try:
                executor = self.factory(executor_name)
                attempt_config = self._attempt_config(
                    config,
                    attempt,
                    executor_name,
                    previous,
                    executor.supports_session_resumption(),
                )
                result = await executor.execute(prompt, dry, attempt_config)
                if check is not None:
                    await check(executor_name, result)
            except ExecutorError as exc:
                if single:
                    raise
                previous = AttemptFailure(
                    index=index, executor=executor_name, model=model, error=exc
                )
                failures.append(previous)
                self._emit(
                    {
                        "event": "chain_attempt_failed",
                        "index": index,
                        "executor": executor_name,
                        "model": model,
                        "error": str(exc),
                        "exit_code": exc.exit_code,
                    }
                )
                continue

            self._emit(
                {
                    "event": "chain_attempt_succeeded",
                    "index": index,
                    "executor": executor_name,
                    "model": model,
                }
            )
            return ChainResult(
                index=index,
                executor=executor_name,
                model=model,
                result=result,
                failures=failures,
            )

        raise ChainExhaustedError(failures)
