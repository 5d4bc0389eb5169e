from __future__ import annotations

import asyncio
import shlex
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar, Literal

ExecutorName = Literal["opencode", "claude", "gemini", "codex", "kilo"]
EXECUTOR_NAMES: tuple[ExecutorName, ...] = ("opencode", "claude", "gemini", "codex", "kilo")

EventHook = Callable[[dict[str, Any]], None]


class ExecutorError(RuntimeError):
    """Base class for failures raised while driving an external agent."""

    def __init__(
        self,
        message: str,
        *,
        executor: str | None = None,
        exit_code: int | None = None,
        retriable: bool = True,
    ) -> None:
        super().__init__(message)
        self.executor = executor
        self.exit_code = exit_code
        self.retriable = retriable


class ConfigurationError(ExecutorError):
    """Raised for invalid input that no retry can fix."""

    def __init__(self, message: str, *, executor: str | None = None) -> None:
        super().__init__(message, executor=executor, retriable=False)


class LaunchError(ExecutorError):
    """Raised when the agent process could not be started."""


class ExecutionError(ExecutorError):
    """Raised when the agent process exited with a non-zero status."""


def validate_executor(value: str) -> bool:
    return value in EXECUTOR_NAMES


@dataclass(frozen=True, slots=True)
class ExecutorConfig:
    model: str | None = None
    session_id: str | None = None
    continue_last_session: bool | None = None
    # Backend specific settings; "args" holds pass-through flags.
    extra: Mapping[str, Any] = field(default_factory=dict)

    def merged(self, other: ExecutorConfig | None) -> ExecutorConfig:
        return merge_configs(self, other)


def merge_configs(base: ExecutorConfig | None, override: ExecutorConfig | None) -> ExecutorConfig:
    """Combine two configs field by field; fields set on ``override`` win.

    ``None`` marks a field as unset. ``extra`` is merged key by key.
    """
    if base is None:
        base = ExecutorConfig()
    if override is None:
        return ExecutorConfig(
            model=base.model,
            session_id=base.session_id,
            continue_last_session=base.continue_last_session,
            extra=dict(base.extra),
        )
    return ExecutorConfig(
        model=override.model if override.model is not None else base.model,
        session_id=override.session_id if override.session_id is not None else base.session_id,
        continue_last_session=(
            override.continue_last_session
            if override.continue_last_session is not None
            else base.continue_last_session
        ),
        extra={**base.extra, **override.extra},
    )


@dataclass(slots=True)
class ExecutionResult:
    executor: str
    command: list[str]
    dry: bool
    exit_code: int | None = None

    @property
    def success(self) -> bool:
        return self.dry or self.exit_code == 0


class Executor(ABC):
    """Drives one external coding agent as a child process.

    Subclasses declare ``name`` and ``binary`` and implement
    ``supports_session_resumption`` and ``build_command``. The child inherits
    the caller's terminal and runs against ``working_directory``.
    """

    name: ClassVar[ExecutorName]
    binary: str = ""
    display_name: ClassVar[str] = ""

    def __init__(
        self,
        config: ExecutorConfig | None = None,
        *,
        binary: str | None = None,
        working_directory: Path | None = None,
        event_hook: EventHook | None = None,
    ) -> None:
        self.config = config or ExecutorConfig()
        if binary:
            self.binary = binary
        self.working_directory = working_directory
        self.event_hook = event_hook

    def _emit(self, payload: dict[str, Any]) -> None:
        if self.event_hook is not None:
            self.event_hook(payload)

    @abstractmethod
    def supports_session_resumption(self) -> bool:
        """Whether the backend can continue a previous conversation."""

    @abstractmethod
    def build_command(self, message: str, config: ExecutorConfig) -> list[str]:
        """Build the full argv for an already merged config."""

    def sandbox_args(self) -> list[str]:
        return []

    def extra_args(self, config: ExecutorConfig) -> list[str]:
        """Backend flags passed through from ``config.extra["args"]``.

        A string is split like a shell command line; a sequence is used as is.
        They follow the sandbox flags and precede the prompt.
        """
        args = config.extra.get("args")
        if not args:
            return []
        if isinstance(args, str):
            return shlex.split(args)
        return [str(arg) for arg in args]

    async def execute(
        self,
        message: str,
        dry: bool = False,
        config: ExecutorConfig | None = None,
    ) -> ExecutionResult:
        final_config = merge_configs(self.config, config)
        command = self.build_command(message, final_config)

        if dry:
            self._emit(
                {
                    "event": "executor_dry_run",
                    "executor": self.name,
                    "command": command,
                    "model": final_config.model,
                }
            )
            return ExecutionResult(executor=self.name, command=command, dry=True)

        label = self.display_name or self.name
        self._emit(
            {
                "event": "executor_start",
                "executor": self.name,
                "model": final_config.model,
                "session_id": final_config.session_id,
                "continue_last_session": bool(final_config.continue_last_session),
            }
        )
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(self.working_directory) if self.working_directory else None,
            )
        except OSError as exc:
            raise LaunchError(
                f"Failed to launch {label} ({self.binary}): {exc}",
                executor=self.name,
                retriable=not isinstance(exc, FileNotFoundError),
            ) from exc

        return_code = await process.wait()
        self._emit({"event": "executor_exit", "executor": self.name, "exit_code": return_code})
        if return_code != 0:
            raise ExecutionError(
                f"{label} exited with code {return_code}",
                executor=self.name,
                exit_code=return_code,
            )
        return ExecutionResult(
            executor=self.name, command=command, dry=False, exit_code=return_code
        )
