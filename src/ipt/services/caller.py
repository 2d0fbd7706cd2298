"""Serialized iptables invocation.

Every iptables call goes through IptablesCaller.call(), which makes sure
concurrent rule changes on the host do not interleave:

- iptables newer than 1.4.19 serializes itself when given ``--wait``,
  so the flag is appended and the binary is run directly.
- Older releases have no lock at all. The call is wrapped in an
  exclusive flock on a shared lock file, held until the child exits.
"""

from pathlib import Path
from typing import Optional

from ipt.core.context import ExecutionContext
from ipt.core.executor import CommandExecutor, CommandResult
from ipt.core.locking import xtables_lock
from ipt.services.version import UtilityCapabilities


# Cumulative lock wait in seconds after which the wait is reported as a warning
LOCK_WARN_AFTER = 1.0


class IptablesCommand:
    """Argument vector builder for one iptables invocation.

    Usage:
        args = (IptablesCommand()
                .with_table("nat")
                .with_flag("-A", "POSTROUTING")
                .with_args(["-o", "eth0", "-j", "MASQUERADE"])
                .build())
    """

    def __init__(self) -> None:
        self._args: list[str] = []

    def with_table(self, table: str) -> "IptablesCommand":
        self._args.extend(["-t", table])
        return self

    def with_flag(self, flag: str, *values: str) -> "IptablesCommand":
        self._args.append(flag)
        self._args.extend(values)
        return self

    def with_args(self, args: list[str]) -> "IptablesCommand":
        self._args.extend(args)
        return self

    def build(self) -> list[str]:
        return list(self._args)


class IptablesCaller:
    """Runs iptables with host-wide serialization.

    Returns the CommandResult whatever the exit code; deciding what a
    non-zero exit means is up to the caller.
    """

    def __init__(
        self,
        ctx: ExecutionContext,
        executor: CommandExecutor,
        binary: str,
        capabilities: UtilityCapabilities,
        *,
        wait_flag: str = "--wait",
        lock_path: Optional[Path] = None,
        lock_timeout: Optional[float] = 10.0,
        lock_initial_delay: float = 0.005,
        lock_max_delay: float = 0.25,
    ) -> None:
        """Initialize caller.

        Args:
            ctx: Execution context
            executor: Command executor
            binary: iptables or ip6tables
            capabilities: What the installed binary supports
            wait_flag: Native serialization option
            lock_path: Shared lock file for releases without wait_flag
            lock_timeout: Seconds to retry a contended lock (None = forever)
            lock_initial_delay: First backoff delay in seconds
            lock_max_delay: Backoff cap in seconds
        """
        self.ctx = ctx
        self.executor = executor
        self.binary = binary
        self.capabilities = capabilities
        self.wait_flag = wait_flag
        self.lock_path = lock_path or ctx.config.lock_path
        self.lock_timeout = lock_timeout
        self.lock_initial_delay = lock_initial_delay
        self.lock_max_delay = lock_max_delay
        self._waited = 0.0

    def call(
        self,
        args: list[str],
        *,
        read_only: bool = False,
        description: Optional[str] = None,
    ) -> CommandResult:
        """Run the binary with args, serialized against other callers.

        Args:
            args: Arguments after the binary name
            read_only: Query that may run in dry-run mode
            description: Human-readable description for logging

        Returns:
            CommandResult of the child

        Raises:
            ExecutionError: If the child cannot be spawned or is killed
            LockError: If the lock file cannot be opened or locked
            LockTimeoutError: If the lock stays contended past the timeout
        """
        command = [self.binary] + list(args)

        if self.capabilities.has_wait:
            command.append(self.wait_flag)
            return self.executor.run(command, read_only=read_only, description=description)

        if self.ctx.dry_run and not read_only:
            # Nothing will run, so there is nothing to serialize
            return self.executor.run(command, read_only=read_only, description=description)

        self._waited = 0.0
        with xtables_lock(
            self.lock_path,
            timeout=self.lock_timeout,
            initial_delay=self.lock_initial_delay,
            max_delay=self.lock_max_delay,
            on_wait=self._log_wait,
        ):
            self.ctx.console.debug(f"Acquired lock {self.lock_path}")
            return self.executor.run(command, read_only=read_only, description=description)

    def _log_wait(self, attempt: int, delay: float) -> None:
        self.ctx.console.debug(
            f"Lock {self.lock_path} busy (attempt {attempt}), retrying in {delay:.3f}s"
        )
        before = self._waited
        self._waited += delay
        if before < LOCK_WARN_AFTER <= self._waited:
            self.ctx.console.warn(
                f"Still waiting for lock {self.lock_path}; another process is changing rules"
            )
