from conductor.executors.base import (
    EXECUTOR_NAMES,
    ConfigurationError,
    EventHook,
    ExecutionError,
    ExecutionResult,
    Executor,
    ExecutorConfig,
    ExecutorError,
    ExecutorName,
    LaunchError,
    merge_configs,
    validate_executor,
)
from conductor.executors.claude import ClaudeCodeExecutor
from conductor.executors.codex import CodexExecutor
from conductor.executors.factory import ExecutorFactory, ExecutorFactoryFn, create_executor
from conductor.executors.gemini import GeminiExecutor
from conductor.executors.kilo import KiloExecutor
from conductor.executors.opencode import OpencodeExecutor

__all__ = [
    "EXECUTOR_NAMES",
    "ClaudeCodeExecutor",
    "CodexExecutor",
    "ConfigurationError",
    "EventHook",
    "ExecutionError",
    "ExecutionResult",
    "Executor",
    "ExecutorConfig",
    "ExecutorError",
    "ExecutorFactory",
    "ExecutorFactoryFn",
    "ExecutorName",
    "GeminiExecutor",
    "KiloExecutor",
    "LaunchError",
    "OpencodeExecutor",
    "create_executor",
    "merge_configs",
    "validate_executor",
]
