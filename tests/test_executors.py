import asyncio
from pathlib import Path
from typing import Any

import pytest

from conductor.executors import (
    ClaudeCodeExecutor,
    CodexExecutor,
    ConfigurationError,
    ExecutionError,
    ExecutorConfig,
    ExecutorFactory,
    GeminiExecutor,
    KiloExecutor,
    LaunchError,
    OpencodeExecutor,
    merge_configs,
)


class FakeProcess:
    def __init__(self, return_code: int) -> None:
        self.return_code = return_code

    async def wait(self) -> int:
        return self.return_code


def _capture_spawn(monkeypatch: pytest.MonkeyPatch, return_code: int = 0) -> list[dict[str, Any]]:
    calls: list[dict[str, Any]] = []

    async def fake_create_subprocess_exec(*args: Any, **kwargs: Any) -> FakeProcess:
        calls.append({"args": list(args), "kwargs": kwargs})
        return FakeProcess(return_code)

    monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_create_subprocess_exec)
    return calls


def test_opencode_build_command_shape() -> None:
    executor = OpencodeExecutor()
    command = executor.build_command("do it", ExecutorConfig(model="gpt-4o", session_id="s1"))

    assert command == ["opencode", "-m", "gpt-4o", "-s", "s1", "run", "do it"]


def test_claude_build_command_shape() -> None:
    executor = ClaudeCodeExecutor()
    command = executor.build_command("do it", ExecutorConfig(model="sonnet-4"))

    assert command == [
        "claude",
        "--model",
        "sonnet-4",
        "--permission-mode",
        "acceptEdits",
        "do it",
    ]


def test_gemini_resume_latest() -> None:
    executor = GeminiExecutor()
    command = executor.build_command("do it", ExecutorConfig(continue_last_session=True))

    assert command == ["gemini", "-r", "latest", "--yolo", "do it"]


def test_codex_subcommands() -> None:
    executor = CodexExecutor()

    fresh = executor.build_command("do it", ExecutorConfig(model="gpt-5-codex"))
    assert fresh == [
        "codex",
        "-c",
        'model="gpt-5-codex"',
        "exec",
        "--sandbox",
        "workspace-write",
        "do it",
    ]

    last = executor.build_command("do it", ExecutorConfig(continue_last_session=True))
    assert last[1:4] == ["exec", "resume", "--last"]

    specific = executor.build_command("do it", ExecutorConfig(session_id="abc"))
    assert specific[1:4] == ["exec", "resume", "abc"]
    assert specific[-1] == "do it"


def test_kilo_uses_kilocode_binary() -> None:
    executor = KiloExecutor()
    command = executor.build_command("do it", ExecutorConfig(model="m1"))

    assert command == ["kilocode", "-mo", "m1", "--auto", "--yolo", "do it"]


def test_continue_last_session_wins_over_session_id() -> None:
    config = ExecutorConfig(session_id="abc", continue_last_session=True)

    assert ClaudeCodeExecutor().build_command("x", config)[1:2] == ["-c"]
    assert "abc" not in OpencodeExecutor().build_command("x", config)
    assert "--last" in CodexExecutor().build_command("x", config)


def test_merge_configs_call_fields_win() -> None:
    base = ExecutorConfig(model="base", session_id="s1", extra={"a": 1, "b": 2})
    override = ExecutorConfig(model="call", extra={"b": 3})

    merged = merge_configs(base, override)

    assert merged.model == "call"
    assert merged.session_id == "s1"
    assert merged.continue_last_session is None
    assert dict(merged.extra) == {"a": 1, "b": 3}
    assert merge_configs(None, None) == ExecutorConfig()


def test_dry_run_never_spawns(monkeypatch: pytest.MonkeyPatch) -> None:
    async def forbidden(*args: Any, **kwargs: Any) -> None:
        raise AssertionError("dry run must not spawn a process")

    monkeypatch.setattr(asyncio, "create_subprocess_exec", forbidden)
    events: list[dict[str, Any]] = []

    for executor_cls in (
        OpencodeExecutor,
        ClaudeCodeExecutor,
        GeminiExecutor,
        CodexExecutor,
        KiloExecutor,
    ):
        executor = executor_cls(event_hook=events.append)
        result = asyncio.run(
            executor.execute("plan it", True, ExecutorConfig(model="m", session_id="s"))
        )
        assert result.success
        assert result.dry
        assert result.exit_code is None

    assert [event["event"] for event in events] == ["executor_dry_run"] * 5
    assert events[0]["command"][-1] == "plan it"


def test_execute_spawns_with_inherited_stdio(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = _capture_spawn(monkeypatch, return_code=0)
    executor = ClaudeCodeExecutor(working_directory=Path("/tmp/work"))

    result = asyncio.run(executor.execute("build it"))

    assert result.success
    assert result.exit_code == 0
    assert len(calls) == 1
    assert calls[0]["args"][0] == "claude"
    assert calls[0]["args"][-1] == "build it"
    assert calls[0]["kwargs"] == {"cwd": "/tmp/work"}


def test_non_zero_exit_raises_execution_error(monkeypatch: pytest.MonkeyPatch) -> None:
    _capture_spawn(monkeypatch, return_code=3)

    with pytest.raises(ExecutionError) as exc_info:
        asyncio.run(GeminiExecutor().execute("build it"))

    assert exc_info.value.exit_code == 3
    assert exc_info.value.executor == "gemini"


def test_missing_binary_raises_launch_error(monkeypatch: pytest.MonkeyPatch) -> None:
    async def missing(*args: Any, **kwargs: Any) -> None:
        raise FileNotFoundError(2, "No such file or directory", args[0])

    monkeypatch.setattr(asyncio, "create_subprocess_exec", missing)

    with pytest.raises(LaunchError) as exc_info:
        asyncio.run(CodexExecutor(binary="codex-missing").execute("build it"))

    assert "codex-missing" in str(exc_info.value)
    assert exc_info.value.retriable is False


def test_per_call_config_does_not_leak(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = _capture_spawn(monkeypatch)
    executor = OpencodeExecutor(ExecutorConfig(model="default-model"))

    asyncio.run(executor.execute("one", False, ExecutorConfig(model="override", session_id="s9")))
    asyncio.run(executor.execute("two"))

    assert calls[0]["args"] == ["opencode", "-m", "override", "-s", "s9", "run", "one"]
    assert calls[1]["args"] == ["opencode", "-m", "default-model", "run", "two"]
    assert executor.config == ExecutorConfig(model="default-model")


def test_factory_creates_known_executors() -> None:
    executor = ExecutorFactory.create("kilo", ExecutorConfig(model="m"))

    assert isinstance(executor, KiloExecutor)
    assert executor.config.model == "m"
    assert executor.supports_session_resumption() is True
    assert ExecutorFactory.create("opencode") is not ExecutorFactory.create("opencode")


def test_factory_rejects_unknown_executor() -> None:
    with pytest.raises(ConfigurationError) as exc_info:
        ExecutorFactory.create("cursor")

    assert exc_info.value.retriable is False
    assert "cursor" in str(exc_info.value)


def test_factory_register_replaces_backend(monkeypatch: pytest.MonkeyPatch) -> None:
    class PinnedOpencode(OpencodeExecutor):
        binary = "/opt/bin/opencode"

    monkeypatch.setattr(ExecutorFactory, "registry", dict(ExecutorFactory.registry))
    ExecutorFactory.register(PinnedOpencode)

    executor = ExecutorFactory.create("opencode")

    assert isinstance(executor, PinnedOpencode)
    assert executor.build_command("hi", ExecutorConfig())[0] == "/opt/bin/opencode"


@pytest.mark.parametrize(
    ("executor", "tail"),
    [
        (OpencodeExecutor(), ["--print-logs", "run", "go"]),
        (ClaudeCodeExecutor(), ["acceptEdits", "--print-logs", "go"]),
        (GeminiExecutor(), ["--yolo", "--print-logs", "go"]),
        (CodexExecutor(), ["workspace-write", "--print-logs", "go"]),
        (KiloExecutor(), ["--yolo", "--print-logs", "go"]),
    ],
)
def test_extra_args_follow_sandbox_flags(executor: Any, tail: list[str]) -> None:
    command = executor.build_command("go", ExecutorConfig(extra={"args": ["--print-logs"]}))

    assert command[-3:] == tail


def test_extra_args_string_is_split() -> None:
    executor = ClaudeCodeExecutor(ExecutorConfig(extra={"args": "--max-turns 5"}))

    assert executor.extra_args(executor.config) == ["--max-turns", "5"]
    assert executor.extra_args(ExecutorConfig()) == []
