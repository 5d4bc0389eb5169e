from __future__ import annotations

from conductor.executors.base import Executor, ExecutorConfig


class KiloExecutor(Executor):
    name = "kilo"
    binary = "kilocode"
    display_name = "Kilo Code"

    def supports_session_resumption(self) -> bool:
        return True

    def sandbox_args(self) -> list[str]:
        # autonomous mode plus auto-approval of every tool permission
        return ["--auto", "--yolo"]

    def build_command(self, message: str, config: ExecutorConfig) -> list[str]:
        command = [self.binary]
        if config.model:
            command.extend(["-mo", config.model])
        if config.continue_last_session:
            command.append("-c")
        elif config.session_id:
            command.extend(["-s", config.session_id])
        command.extend(self.sandbox_args())
        command.extend(self.extra_args(config))
        command.append(message)
        return command
