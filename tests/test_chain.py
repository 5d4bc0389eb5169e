import asyncio
from dataclasses import dataclass, field
from typing import Any

import pytest

from conductor.attempts import ModelAttemptConfig, parse_try_models
from conductor.chain import AttemptFailure, ChainExhaustedError, FallbackChainRunner
from conductor.verification import VerificationError, VerificationResult
from conductor.executors import (
    ConfigurationError,
    ExecutionError,
    ExecutionResult,
    Executor,
    ExecutorConfig,
    LaunchError,
    merge_configs,
    validate_executor,
)


@dataclass
class Script:
    outcomes: list[Exception | None]
    calls: list[tuple[str, str | None, str, ExecutorConfig]] = field(default_factory=list)
    broken: set[str] = field(default_factory=set)

    def create(self, name: str, config: ExecutorConfig | None = None, **options: Any) -> Executor:
        _ = options
        if not validate_executor(name) or name in self.broken:
            raise ConfigurationError(f"Unknown executor: {name}", executor=name)
        return ScriptedExecutor(name, self, config)


class ScriptedExecutor(Executor):
    def __init__(self, name: str, script: Script, config: ExecutorConfig | None = None) -> None:
        super().__init__(config)
        self.name = name  # type: ignore[misc]
        self.script = script

    def supports_session_resumption(self) -> bool:
        return True

    def build_command(self, message: str, config: ExecutorConfig) -> list[str]:
        return [self.name, message]

    async def execute(
        self,
        message: str,
        dry: bool = False,
        config: ExecutorConfig | None = None,
    ) -> ExecutionResult:
        final = merge_configs(self.config, config)
        self.script.calls.append((self.name, final.model, message, final))
        outcome = self.script.outcomes.pop(0)
        if outcome is not None:
            raise outcome
        return ExecutionResult(
            executor=self.name,
            command=self.build_command(message, final),
            dry=dry,
            exit_code=None if dry else 0,
        )


def _failure(code: int = 1) -> ExecutionError:
    return ExecutionError(f"exited with code {code}", exit_code=code)


@pytest.mark.parametrize("succeeding", [1, 2, 3, 4])
def test_chain_stops_at_first_success(succeeding: int) -> None:
    outcomes: list[Exception | None] = [_failure(index) for index in range(1, succeeding)]
    outcomes.append(None)
    script = Script(outcomes=outcomes)
    attempts = parse_try_models("m1,claude:m2,gemini:m3,m4")
    runner = FallbackChainRunner("opencode", factory=script.create)

    result = asyncio.run(runner.run("prompt", attempts))

    assert len(script.calls) == succeeding
    assert result.index == succeeding
    assert result.model == attempts[succeeding - 1].model
    assert len(result.failures) == succeeding - 1
    assert result.result.success


def test_chain_exhausted_keeps_every_failure_in_order() -> None:
    errors: list[Exception | None] = [
        _failure(2),
        LaunchError("Failed to launch Gemini CLI", executor="gemini"),
        _failure(7),
    ]
    script = Script(outcomes=list(errors))
    attempts = parse_try_models("gpt-4o-mini,gemini:flash,codex:gpt-5")
    runner = FallbackChainRunner("opencode", factory=script.create)

    with pytest.raises(ChainExhaustedError) as exc_info:
        asyncio.run(runner.run("prompt", attempts))

    failures = exc_info.value.failures
    assert [failure.index for failure in failures] == [1, 2, 3]
    assert [(failure.executor, failure.model) for failure in failures] == [
        ("opencode", "gpt-4o-mini"),
        ("gemini", "flash"),
        ("codex", "gpt-5"),
    ]
    assert [failure.error for failure in failures] == errors
    assert "gemini:flash" in str(exc_info.value)
    assert exc_info.value.retriable is False


def test_empty_chain_is_configuration_error() -> None:
    script = Script(outcomes=[])
    runner = FallbackChainRunner("opencode", factory=script.create)

    with pytest.raises(ConfigurationError):
        asyncio.run(runner.run("prompt", []))

    assert script.calls == []


def test_single_attempt_surfaces_executor_error() -> None:
    error = _failure(5)
    script = Script(outcomes=[error])
    runner = FallbackChainRunner("claude", factory=script.create)

    with pytest.raises(ExecutionError) as exc_info:
        asyncio.run(runner.run("prompt", [ModelAttemptConfig(model="sonnet-4")]))

    assert exc_info.value is error
    assert not isinstance(exc_info.value, ChainExhaustedError)


def test_unknown_default_executor_fails_fast() -> None:
    with pytest.raises(ConfigurationError):
        FallbackChainRunner("cursor")


def test_factory_configuration_error_is_recorded_and_chain_continues() -> None:
    script = Script(outcomes=[None], broken={"gemini"})
    runner = FallbackChainRunner("opencode", factory=script.create)

    result = asyncio.run(runner.run("prompt", parse_try_models("gemini:flash,claude:sonnet")))

    assert result.index == 2
    assert isinstance(result.failures[0].error, ConfigurationError)
    assert [call[0] for call in script.calls] == ["claude"]


def test_attempt_model_merges_onto_base_config() -> None:
    script = Script(outcomes=[None])
    runner = FallbackChainRunner("kilo", factory=script.create)
    base = ExecutorConfig(model="ignored", session_id="s1", extra={"k": "v"})

    asyncio.run(runner.run("prompt", [ModelAttemptConfig(model="m1")], config=base))

    executor, model, message, config = script.calls[0]
    assert (executor, model, message) == ("kilo", "m1", "prompt")
    assert config.session_id == "s1"
    assert dict(config.extra) == {"k": "v"}
    assert base.model == "ignored"


def test_resume_session_only_for_same_executor_after_exit_failure() -> None:
    script = Script(outcomes=[_failure(), _failure(), None])
    runner = FallbackChainRunner(
        "claude", factory=script.create, resume_session_on_retry=True
    )

    asyncio.run(runner.run("prompt", parse_try_models("haiku,sonnet,codex:gpt-5")))

    resumed = [call[3].continue_last_session for call in script.calls]
    assert resumed == [None, True, None]


def test_render_receives_previous_failure() -> None:
    script = Script(outcomes=[_failure(9), None])
    seen: list[tuple[int, AttemptFailure | None]] = []

    def render(index: int, previous: AttemptFailure | None) -> str:
        seen.append((index, previous))
        return f"prompt #{index}"

    runner = FallbackChainRunner("opencode", factory=script.create)
    asyncio.run(runner.run("prompt", parse_try_models("a,b"), render=render))

    assert [call[2] for call in script.calls] == ["prompt #1", "prompt #2"]
    assert seen[0] == (1, None)
    assert seen[1][1] is not None
    assert seen[1][1].error.exit_code == 9


def test_chain_emits_attempt_events() -> None:
    events: list[dict[str, Any]] = []
    script = Script(outcomes=[_failure(), None])
    runner = FallbackChainRunner("opencode", factory=script.create, event_hook=events.append)

    asyncio.run(runner.run("prompt", parse_try_models("a,b"), dry=True))

    assert [event["event"] for event in events] == [
        "chain_attempt_start",
        "chain_attempt_failed",
        "chain_attempt_start",
        "chain_attempt_succeeded",
    ]
    assert events[-1]["index"] == 2


def test_blank_attempt_model_uses_base_config_model() -> None:
    script = Script(outcomes=[_failure(), None])
    runner = FallbackChainRunner("opencode", factory=script.create)
    base = ExecutorConfig(model="configured")

    result = asyncio.run(runner.run("prompt", parse_try_models("m1,"), config=base))

    assert [call[1] for call in script.calls] == ["m1", "configured"]
    assert result.model == "configured"
    assert result.failures[0].model == "m1"


def test_session_settings_apply_only_to_default_executor() -> None:
    script = Script(outcomes=[_failure(), _failure(), None])
    runner = FallbackChainRunner("claude", factory=script.create)
    base = ExecutorConfig(session_id="s1", continue_last_session=True)

    asyncio.run(runner.run("prompt", parse_try_models("m1,gemini:m2,m3"), config=base))

    sessions = [
        (call[0], call[3].session_id, call[3].continue_last_session) for call in script.calls
    ]
    assert sessions == [
        ("claude", "s1", True),
        ("gemini", None, None),
        ("claude", "s1", True),
    ]


def test_check_failure_moves_to_next_attempt() -> None:
    script = Script(outcomes=[None, None])
    checked: list[str] = []

    async def check(executor: str, result: ExecutionResult) -> None:
        checked.append(executor)
        if len(checked) == 1:
            raise VerificationError(
                VerificationResult(command="pytest", success=False, exit_code=1, output="1 failed"),
                executor=executor,
            )

    runner = FallbackChainRunner("opencode", factory=script.create, resume_session_on_retry=True)

    result = asyncio.run(runner.run("prompt", parse_try_models("m1,m2"), check=check))

    assert checked == ["opencode", "opencode"]
    assert result.index == 2
    assert isinstance(result.failures[0].error, VerificationError)
    assert "1 failed" in str(result.failures[0].error)
    assert script.calls[1][3].continue_last_session is True


def test_check_failure_in_single_attempt_propagates() -> None:
    script = Script(outcomes=[None])

    async def check(executor: str, result: ExecutionResult) -> None:
        raise VerificationError(VerificationResult(command="make", success=False, exit_code=2))

    runner = FallbackChainRunner("kilo", factory=script.create)

    with pytest.raises(VerificationError) as exc_info:
        asyncio.run(runner.run("prompt", [ModelAttemptConfig(model="m")], check=check))

    assert exc_info.value.exit_code == 2
