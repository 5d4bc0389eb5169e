from __future__ import annotations

from conductor.executors.base import Executor, ExecutorConfig


class CodexExecutor(Executor):
    """Codex CLI. Resumption is a sub-mode of ``exec`` rather than a flag."""

    name = "codex"
    binary = "codex"
    display_name = "Codex CLI"

    def supports_session_resumption(self) -> bool:
        return True

    def sandbox_args(self) -> list[str]:
        return ["--sandbox", "workspace-write"]

    def build_command(self, message: str, config: ExecutorConfig) -> list[str]:
        command = [self.binary]
        if config.model:
            command.extend(["-c", f'model="{config.model}"'])
        if config.continue_last_session:
            command.extend(["exec", "resume", "--last"])
        elif config.session_id:
            command.extend(["exec", "resume", config.session_id])
        else:
            command.append("exec")
        command.extend(self.sandbox_args())
        command.extend(self.extra_args(config))
        command.append(message)
        return command
