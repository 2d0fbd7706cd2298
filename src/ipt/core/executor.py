"""Command execution with output capture.

Provides:
- One blocking subprocess per call
- stdout/stderr captured as UTF-8 (undecodable bytes replaced)
- Dry-run mode support for mutating commands
"""

import shlex
import subprocess
from dataclasses import dataclass
from typing import Optional

from ipt.core.context import ExecutionContext
from ipt.core.exceptions import ExecutionError, UtilityError


@dataclass(frozen=True)
class CommandResult:
    """Result of a command execution."""
    command: list[str]
    return_code: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        """Check if command succeeded."""
        return self.return_code == 0

    @property
    def output(self) -> str:
        """The meaningful stream: stdout on success, stderr otherwise."""
        return self.stdout if self.success else self.stderr

    def raise_for_status(self, description: Optional[str] = None) -> "CommandResult":
        """Raise UtilityError if the command exited non-zero.

        Returns:
            self, so calls can be chained
        """
        if not self.success:
            cmd_display = shlex.join(self.command)
            raise UtilityError(
                f"Command failed: {description or cmd_display}",
                command=cmd_display,
                return_code=self.return_code,
                stderr=self.stderr,
            )
        return self


class CommandExecutor:
    """Subprocess execution with dry-run support and output capture.

    A non-zero exit code is a normal result here. Only failing to spawn
    the child or losing it to a signal raises.
    """

    def __init__(self, ctx: ExecutionContext) -> None:
        """Initialize executor with context.

        Args:
            ctx: Execution context with flags
        """
        self.ctx = ctx

    def run(
        self,
        command: list[str],
        *,
        description: Optional[str] = None,
        read_only: bool = False,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        """Execute a command and wait for it.

        Args:
            command: Command as list of strings
            description: Human-readable description for logging
            read_only: Command does not change state, runs even in dry-run
            timeout: Command timeout in seconds

        Returns:
            CommandResult with exit code and captured output

        Raises:
            ExecutionError: If the command cannot be spawned, times out
                or is terminated by a signal
        """
        if description:
            self.ctx.console.step(description)

        cmd_display = shlex.join(command)
        self.ctx.console.debug(f"Running: {cmd_display}")

        if self.ctx.dry_run and not read_only:
            self.ctx.console.dry_run_msg(f"Run: {cmd_display}")
            return CommandResult(
                command=command,
                return_code=0,
                stdout="",
                stderr="",
            )

        try:
            result = subprocess.run(
                command,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            raise ExecutionError(
                f"Command timed out after {timeout}s: {description or cmd_display}",
                command=cmd_display,
            )
        except OSError as e:
            raise ExecutionError(
                f"Cannot execute {command[0]}: {e.strerror or e}",
                command=cmd_display,
                hint="Check that iptables is installed and on PATH",
            ) from e

        if result.returncode < 0:
            raise ExecutionError(
                f"Command terminated by signal {-result.returncode}: {cmd_display}",
                command=cmd_display,
                stderr=result.stderr,
            )

        self.ctx.console.debug(f"Exit code {result.returncode}: {cmd_display}")

        return CommandResult(
            command=command,
            return_code=result.returncode,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
        )
