"""Shell and git utilities.

Provides simple wrappers around subprocess calls for running shell commands
and git operations, plus output formatting helpers.
"""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path


def git(*args: str, check: bool = True, cwd: Path | None = None) -> str:
    """Run a git command and return stdout.

    Args:
        *args: Arguments to pass to git (e.g., "tag", "--merged", "HEAD").
        check: If True (default), raise on non-zero exit. Set to False
               for commands that may legitimately fail (e.g., parent lookup
               on a root commit).
        cwd: Directory to run in. Defaults to the current directory.

    Returns:
        Stripped stdout from the git command.
    """
    result = subprocess.run(
        ["git", *args], capture_output=True, text=True, check=check, cwd=cwd
    )
    return result.stdout.strip()


def capture(*args: str, check: bool = True, input: str | None = None) -> str:
    """Run a command and return its stripped stdout.

    Like git(), but for other tools such as gh.
    """
    result = subprocess.run(args, capture_output=True, text=True, check=check, input=input)
    return result.stdout.strip()


def run(
    *args: str, check: bool = True, input: str | None = None
) -> subprocess.CompletedProcess[str]:
    """Run an arbitrary command, streaming its output to the terminal.

    Unlike git(), this doesn't capture output so users can follow build
    and publish progress.

    Args:
        *args: Command and arguments (e.g., "uv", "build", ".").
        check: If True (default), raise on non-zero exit.
        input: Optional text piped to the command's stdin.

    Returns:
        CompletedProcess with returncode for checking success.
    """
    return subprocess.run(args, check=check, input=input, text=True)


def succeeds(*args: str, input: str | None = None) -> bool:
    """Run a command quietly and report whether it exited with status 0."""
    result = subprocess.run(
        args,
        input=input,
        text=True,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        check=False,
    )
    return result.returncode == 0


def step(msg: str) -> None:
    """Print a visually distinct step header.

    Used to separate major phases of a release in terminal output.
    """
    print(f"\n{'─' * 60}\n{msg}\n{'─' * 60}")


def log(msg: str) -> None:
    """Print an indented progress line."""
    print(f"  {msg}")


def warning(msg: str) -> None:
    """Print a warning to stderr without interrupting the run."""
    print(f"WARNING: {msg}", file=sys.stderr)
