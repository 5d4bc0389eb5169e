from __future__ import annotations

from conductor.executors.base import Executor, ExecutorConfig


class OpencodeExecutor(Executor):
    name = "opencode"
    binary = "opencode"
    display_name = "Opencode"

    def supports_session_resumption(self) -> bool:
        return True

    def build_command(self, message: str, config: ExecutorConfig) -> list[str]:
        command = [self.binary]
        if config.model:
            command.extend(["-m", config.model])
        if config.continue_last_session:
            command.append("-c")
        elif config.session_id:
            command.extend(["-s", config.session_id])
        command.extend(self.sandbox_args())
        command.extend(self.extra_args(config))
        command.extend(["run", message])
        return command
