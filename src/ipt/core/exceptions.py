"""Custom exceptions for ipt.

All exceptions provide:
- Clear error messages
- Optional hints for resolution
- Optional details for debugging
- Exit codes for proper shell integration
"""

from typing import Optional


class IPTError(Exception):
    """Base exception for all ipt errors.

    Attributes:
        message: Human-readable error description
        hint: Suggested action to resolve the error
        details: Additional context for debugging
        exit_code: Shell exit code (1-127)
    """

    exit_code: int = 1

    def __init__(
        self,
        message: str,
        *,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.details = details or []

    def __str__(self) -> str:
        return self.message


class ConfigurationError(IPTError):
    """Configuration file or settings errors.

    Raised when:
    - Config file unreadable
    - Invalid YAML syntax
    - Invalid configuration values
    """
    exit_code = 2


class ExecutionError(IPTError):
    """Command execution failures.

    Raised when:
    - The utility binary cannot be spawned
    - The child process is terminated by a signal
    """
    exit_code = 5

    def __init__(
        self,
        message: str,
        *,
        command: Optional[str] = None,
        return_code: Optional[int] = None,
        stderr: Optional[str] = None,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        if not details:
            details = []
        if return_code is not None:
            details.append(f"Exit code: {return_code}")
        if stderr:
            details.append(f"Error output: {stderr.strip()}")
        super().__init__(message, hint=hint, details=details)
        self.command = command
        self.return_code = return_code
        self.stderr = stderr


class UtilityError(ExecutionError):
    """The utility ran and reported a failure (non-zero exit code).

    Carries the captured stderr so callers can see what iptables said.
    """
    exit_code = 11


class LockError(IPTError):
    """Advisory lock failures.

    Raised when:
    - The shared lock file cannot be opened or created
    - flock fails for a reason other than contention
    """
    exit_code = 8

    def __init__(
        self,
        message: str,
        *,
        lock_path: Optional[str] = None,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message, hint=hint, details=details)
        self.lock_path = lock_path


class LockTimeoutError(LockError):
    """The lock was still contended when the retry timeout elapsed."""
    exit_code = 9


class ParseError(IPTError):
    """Utility output could not be parsed.

    Attributes:
        text: The offending raw text
    """
    exit_code = 10

    def __init__(
        self,
        message: str,
        *,
        text: str = "",
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        if not details:
            details = []
        details.append(f"Input: {text!r}")
        super().__init__(message, hint=hint, details=details)
        self.text = text


class VersionParseError(ParseError):
    """Malformed version banner."""


class RuleParseError(ParseError):
    """Unexpected output in a rule-dump line."""


class FirewallError(IPTError):
    """Contextual firewall errors.

    Raised when:
    - Table is not supported
    - Chain is not a built-in chain of the table
    - Rule already exists where uniqueness was requested
    """
    exit_code = 15

    def __init__(
        self,
        message: str,
        *,
        table: Optional[str] = None,
        chain: Optional[str] = None,
        rule: Optional[str] = None,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message, hint=hint, details=details)
        self.table = table
        self.chain = chain
        self.rule = rule
