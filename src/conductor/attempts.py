"""Parsing for ``--try-models`` style attempt chains.

A chain is a comma separated list of ``model`` or ``executor:model`` tokens,
for example ``gpt-4o-mini,claude:sonnet-4,gemini:gemini-2.0``.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from conductor.executors.base import ConfigurationError, ExecutorName, validate_executor


@dataclass(frozen=True, slots=True)
class ModelAttemptConfig:
    model: str
    executor: ExecutorName | None = None


def parse_executor_model_string(value: str) -> ModelAttemptConfig:
    """Split an optional executor prefix off a model identifier.

    Only the first colon is considered. When the text before it is not a known
    executor the whole value is the model, so ``model:with:colons`` survives.
    """
    executor, separator, rest = value.partition(":")
    if separator and validate_executor(executor):
        return ModelAttemptConfig(model=rest, executor=executor)  # type: ignore[arg-type]
    return ModelAttemptConfig(model=value)


def parse_try_models(value: str) -> list[ModelAttemptConfig]:
    """Parse every comma separated token, in order.

    A blank token, or an executor prefix with nothing after it, yields an
    attempt with an empty model; that attempt runs with the configured model.
    """
    return [parse_executor_model_string(item.strip()) for item in value.split(",")]


def schedule_attempts(
    attempts: Sequence[ModelAttemptConfig],
    max_retries: int | None = None,
) -> list[ModelAttemptConfig]:
    """Expand ``attempts`` to exactly ``max_retries`` runs.

    Extra runs repeat the last attempt; surplus attempts are dropped. With no
    attempts every run uses the default executor and configured model.
    ``None`` keeps the chain as given.
    """
    if max_retries is None:
        return list(attempts)
    if max_retries < 1:
        raise ConfigurationError(f"max_retries must be at least 1, got {max_retries}")
    source = list(attempts) or [ModelAttemptConfig(model="")]
    return [source[min(run, len(source) - 1)] for run in range(max_retries)]


def format_attempt(attempt: ModelAttemptConfig) -> str:
    if attempt.executor:
        return f"{attempt.executor}:{attempt.model}"
    return attempt.model
