from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from conductor.attempts import ModelAttemptConfig, parse_try_models
from conductor.executors.base import ConfigurationError, ExecutorName, validate_executor

DEFAULT_CONFIG_FILE = "conductor.toml"


@dataclass(slots=True)
class ExecutorSettings:
    default: ExecutorName = "opencode"
    model: str = ""
    try_models: str = ""

    def attempts(self) -> list[ModelAttemptConfig]:
        if not self.try_models.strip():
            return []
        return parse_try_models(self.try_models)


@dataclass(slots=True)
class PlanningSettings:
    enabled: bool = False
    plan_model: str = ""
    plan_executor: str = ""
    review: bool = False


@dataclass(slots=True)
class ExecutionSettings:
    resume_session_on_retry: bool = True
    working_directory: str = ""
    # 0 runs each attempt of the chain once.
    max_retries: int = 0
    verification_commands: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ConductorConfig:
    executor: ExecutorSettings = field(default_factory=ExecutorSettings)
    planning: PlanningSettings = field(default_factory=PlanningSettings)
    execution: ExecutionSettings = field(default_factory=ExecutionSettings)

    @classmethod
    def default(cls) -> ConductorConfig:
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> ConductorConfig:
        config = cls(
            executor=ExecutorSettings(**data.get("executor", {})),
            planning=PlanningSettings(**data.get("planning", {})),
            execution=ExecutionSettings(**data.get("execution", {})),
        )
        config.validate()
        return config

    def validate(self) -> None:
        if not validate_executor(self.executor.default):
            raise ConfigurationError(
                f"Unknown default executor in config: {self.executor.default!r}",
                executor=self.executor.default,
            )
        plan_executor = self.planning.plan_executor
        if plan_executor and not validate_executor(plan_executor):
            raise ConfigurationError(
                f"Unknown planning executor in config: {plan_executor!r}",
                executor=plan_executor,
            )
        self.executor.attempts()
        if self.execution.max_retries < 0:
            raise ConfigurationError(
                f"execution.max_retries must not be negative: {self.execution.max_retries}"
            )

    def to_dict(self) -> dict:
        return {
            "executor": {
                "default": self.executor.default,
                "model": self.executor.model,
                "try_models": self.executor.try_models,
            },
            "planning": {
                "enabled": self.planning.enabled,
                "plan_model": self.planning.plan_model,
                "plan_executor": self.planning.plan_executor,
                "review": self.planning.review,
            },
            "execution": {
                "resume_session_on_retry": self.execution.resume_session_on_retry,
                "working_directory": self.execution.working_directory,
                "max_retries": self.execution.max_retries,
                "verification_commands": list(self.execution.verification_commands),
            },
        }


def _toml_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, list):
        return "[" + ", ".join(_toml_value(item) for item in value) + "]"
    return json.dumps(str(value), ensure_ascii=False)


def dumps_toml(config: ConductorConfig) -> str:
    data = config.to_dict()
    lines: list[str] = []
    for section in ("executor", "planning", "execution"):
        lines.append(f"[{section}]")
        for key, value in data[section].items():
            lines.append(f"{key} = {_toml_value(value)}")
        lines.append("")
    return "\n".join(lines).strip() + "\n"


def load_config(path: Path) -> ConductorConfig:
    if not path.exists():
        return ConductorConfig.default()
    return ConductorConfig.from_dict(tomllib.loads(path.read_text(encoding="utf-8")))


def save_config(path: Path, config: ConductorConfig) -> None:
    path.write_text(dumps_toml(config), encoding="utf-8")
