#!/usr/bin/env python3
"""
PageBench external tool invocation.

Thin wrappers around subprocess for the converters and the timing tool.
A missing binary or a non-zero exit is always raised as ToolInvocationError.
"""

from __future__ import annotations

import asyncio
import subprocess
from typing import Optional, Sequence


class ToolInvocationError(Exception):
    """An external tool is not installed or exited non-zero."""

    def __init__(self, tool: str, message: str, returncode: Optional[int] = None):
        super().__init__(f"{tool}: {message}")
        self.tool = tool
        self.returncode = returncode


def _stderr_tail(stderr: bytes, limit: int = 500) -> str:
    text = stderr.decode("utf-8", errors="replace").strip()
    return text[-limit:]


def run_tool(
    argv: Sequence[str],
    *,
    cwd: Optional[str] = None,
    timeout: Optional[float] = None,
) -> str:
    """
    Run a command and return its stdout as text.

    Raises:
        ToolInvocationError: Binary missing, timed out, or exited non-zero
    """
    tool = argv[0]
    try:
        result = subprocess.run(
            list(argv),
            capture_output=True,
            cwd=cwd,
            timeout=timeout,
        )
    except FileNotFoundError as e:
        raise ToolInvocationError(tool, "is not installed") from e
    except subprocess.TimeoutExpired as e:
        raise ToolInvocationError(tool, f"timed out after {timeout}s") from e

    if result.returncode != 0:
        raise ToolInvocationError(
            tool,
            f"exited with code {result.returncode}: {_stderr_tail(result.stderr)}",
            returncode=result.returncode,
        )
    return result.stdout.decode("utf-8", errors="replace")


def run_shell(command: str, *, cwd: Optional[str] = None) -> str:
    """Run a shell command line (used for user-supplied build commands)."""
    result = subprocess.run(command, shell=True, capture_output=True, cwd=cwd)
    if result.returncode != 0:
        raise ToolInvocationError(
            command,
            f"exited with code {result.returncode}: {_stderr_tail(result.stderr)}",
            returncode=result.returncode,
        )
    return result.stdout.decode("utf-8", errors="replace")


def check_command(tool: str, version_flag: str = "--version") -> str:
    """Verify `tool` is installed; returns its version output."""
    return run_tool([tool, version_flag])


async def run_tool_async(argv: Sequence[str]) -> str:
    """Async variant of run_tool for use inside the bounded task pool."""
    tool = argv[0]
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise ToolInvocationError(tool, "is not installed") from e

    stdout, stderr = await proc.communicate()
    if proc.returncode != 0:
        raise ToolInvocationError(
            tool,
            f"exited with code {proc.returncode}: {_stderr_tail(stderr)}",
            returncode=proc.returncode,
        )
    return stdout.decode("utf-8", errors="replace")
