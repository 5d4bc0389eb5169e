from __future__ import annotations

from conductor.executors.base import Executor, ExecutorConfig


class ClaudeCodeExecutor(Executor):
    name = "claude"
    binary = "claude"
    display_name = "Claude Code"

    def supports_session_resumption(self) -> bool:
        return True

    def sandbox_args(self) -> list[str]:
        return ["--permission-mode", "acceptEdits"]

    def build_command(self, message: str, config: ExecutorConfig) -> list[str]:
        command = [self.binary]
        if config.model:
            command.extend(["--model", config.model])
        if config.continue_last_session:
            command.append("-c")
        elif config.session_id:
            command.extend(["-r", config.session_id])
        command.extend(self.sandbox_args())
        command.extend(self.extra_args(config))
        command.append(message)
        return command
