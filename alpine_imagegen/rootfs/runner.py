"""External command execution.

Every host command the pipeline issues (mount, umount, chroot, apk.static,
the guest tooling installer) goes through run_command so that commands are
logged consistently and failures surface as CommandExecutionError.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from alpine_imagegen.errors import CommandExecutionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Result of an external command.

    Attributes:
        argv: The command that was executed.
        returncode: Process exit code.
        stdout: Captured standard output.
        stderr: Captured standard error.
    """

    argv: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0


def run_command(
    argv: Sequence[str | Path],
    *,
    check: bool = True,
    env: Mapping[str, str] | None = None,
    timeout: float | None = None,
) -> CommandResult:
    """Run a command, logging it and capturing its output.

    Args:
        argv: Command and arguments.
        check: Raise CommandExecutionError on a non-zero exit.
        env: Environment overrides merged over the current environment.
        timeout: Timeout in seconds (None = no timeout).

    Returns:
        CommandResult with exit code and captured output.

    Raises:
        CommandExecutionError: If the command cannot be started, times out,
            or exits non-zero while check is set.
    """
    argv_list = [str(a) for a in argv]
    cmd_str = shlex.join(argv_list)
    logger.info("Executing: %s", cmd_str)

    try:
        result = subprocess.run(
            argv_list,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=dict(os.environ, **env) if env else None,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        raise CommandExecutionError(
            f"Command timed out after {timeout} seconds: {cmd_str}",
            exit_code=-1,
            code="command_timeout",
        ) from e
    except OSError as e:
        raise CommandExecutionError(
            f"Failed to execute {cmd_str}: {e}",
            code="execution_error",
        ) from e

    stdout = result.stdout or ""
    stderr = result.stderr or ""
    if stdout:
        logger.debug("stdout: %s", stdout.strip())
    if stderr:
        logger.debug("stderr: %s", stderr.strip())

    if check and result.returncode != 0:
        message = f"Command failed with exit code {result.returncode}: {cmd_str}"
        if stderr.strip():
            message = f"{message}\n{stderr.strip()}"
        raise CommandExecutionError(message, exit_code=result.returncode)

    return CommandResult(
        argv=argv_list,
        returncode=result.returncode,
        stdout=stdout,
        stderr=stderr,
    )


__all__ = ["CommandResult", "run_command"]
