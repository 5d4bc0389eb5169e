from __future__ import annotations

from conductor.executors.base import Executor, ExecutorConfig


class GeminiExecutor(Executor):
    name = "gemini"
    binary = "gemini"
    display_name = "Gemini CLI"

    def supports_session_resumption(self) -> bool:
        return True

    def sandbox_args(self) -> list[str]:
        return ["--yolo"]

    def build_command(self, message: str, config: ExecutorConfig) -> list[str]:
        command = [self.binary]
        if config.model:
            command.extend(["-m", config.model])
        if config.continue_last_session:
            command.extend(["-r", "latest"])
        elif config.session_id:
            command.extend(["-r", config.session_id])
        command.extend(self.sandbox_args())
        command.extend(self.extra_args(config))
        # -p is deprecated, the prompt goes last as a positional
        command.append(message)
        return command
