"""Verification commands run after an agent finishes an attempt.

Typical commands are a build, a type check or the test suite. A failing
command turns a clean agent exit into a failed attempt, and its output is
what the next attempt is asked to fix.
"""

from __future__ import annotations

import asyncio
import re
import shlex
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from conductor.executors.base import EventHook, ExecutorError

SHELL_REQUIRED_PATTERN = re.compile(r"(?:\|\||&&|[|;<>`]|[$]\()")
OUTPUT_TAIL_CHARS = 4000


@dataclass(slots=True)
class VerificationResult:
    command: str
    success: bool
    exit_code: int | None = None
    output: str = ""
    dry: bool = False


def format_verification_error(result: VerificationResult) -> str:
    output = result.output.strip() or "No error output captured"
    return (
        f"## Verification Failed: {result.command}\n\n"
        "**Error Output**:\n"
        f"```\n{output}\n```\n\n"
        "Please analyze this error carefully and fix the issue. Common causes include:\n"
        "- Syntax errors in the code\n"
        "- Type errors (missing types, wrong types)\n"
        "- Missing imports or dependencies\n"
        "- Logic errors or incorrect implementations\n"
        "- Build configuration issues"
    )


class VerificationError(ExecutorError):
    """Raised when a verification command failed after a successful agent run."""

    def __init__(self, result: VerificationResult, *, executor: str | None = None) -> None:
        self.result = result
        super().__init__(
            format_verification_error(result), executor=executor, exit_code=result.exit_code
        )


async def run_verification(
    command: str, *, working_directory: Path | None = None
) -> VerificationResult:
    command_text = command.strip()
    if not command_text:
        return VerificationResult(command=command, success=False, output="Command is empty.")

    used_shell = bool(SHELL_REQUIRED_PATTERN.search(command_text))
    argv: list[str] = []
    if not used_shell:
        try:
            argv = shlex.split(command_text)
        except ValueError:
            used_shell = True

    cwd = str(working_directory) if working_directory else None
    try:
        if used_shell:
            process = await asyncio.create_subprocess_shell(
                command_text,
                cwd=cwd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        else:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=cwd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
    except OSError as exc:
        return VerificationResult(command=command, success=False, output=str(exc))

    stdout, _ = await process.communicate()
    output = (stdout or b"").decode("utf-8", errors="replace").strip()
    return VerificationResult(
        command=command,
        success=process.returncode == 0,
        exit_code=process.returncode,
        output=output[-OUTPUT_TAIL_CHARS:],
    )


async def run_verifications(
    commands: Sequence[str],
    *,
    dry: bool = False,
    working_directory: Path | None = None,
    event_hook: EventHook | None = None,
) -> list[VerificationResult]:
    """Run ``commands`` in order and stop at the first failure.

    Dry runs only report the commands and count them as passed.
    """

    def emit(payload: dict[str, Any]) -> None:
        if event_hook is not None:
            event_hook(payload)

    results: list[VerificationResult] = []
    total = len(commands)
    for index, command in enumerate(commands, start=1):
        if dry:
            emit({"event": "verification_dry_run", "index": index, "command": command})
            results.append(VerificationResult(command=command, success=True, dry=True))
            continue
        emit({"event": "verification_start", "index": index, "total": total, "command": command})
        result = await run_verification(command, working_directory=working_directory)
        emit(
            {
                "event": "verification_finished",
                "index": index,
                "command": command,
                "success": result.success,
                "exit_code": result.exit_code,
            }
        )
        results.append(result)
        if not result.success:
            break
    return results


async def verify(
    commands: Sequence[str],
    *,
    executor: str | None = None,
    dry: bool = False,
    working_directory: Path | None = None,
    event_hook: EventHook | None = None,
) -> list[VerificationResult]:
    results = await run_verifications(
        commands, dry=dry, working_directory=working_directory, event_hook=event_hook
    )
    for result in results:
        if not result.success:
            raise VerificationError(result, executor=executor)
    return results
