"""Core framework components for ipt."""

from ipt.core.exceptions import (
    IPTError,
    ConfigurationError,
    ExecutionError,
    UtilityError,
    LockError,
    LockTimeoutError,
    ParseError,
    VersionParseError,
    RuleParseError,
    FirewallError,
)

from ipt.core.context import ExecutionContext, create_context
from ipt.core.output import console, Console, Verbosity
from ipt.core.config import AppConfig, MachineConfig
from ipt.core.executor import CommandExecutor, CommandResult
from ipt.core.locking import xtables_lock

__all__ = [
    # Exceptions
    "IPTError",
    "ConfigurationError",
    "ExecutionError",
    "UtilityError",
    "LockError",
    "LockTimeoutError",
    "ParseError",
    "VersionParseError",
    "RuleParseError",
    "FirewallError",
    # Context
    "ExecutionContext",
    "create_context",
    # Output
    "console",
    "Console",
    "Verbosity",
    # Config
    "AppConfig",
    "MachineConfig",
    # Executor
    "CommandExecutor",
    "CommandResult",
    # Locking
    "xtables_lock",
]
