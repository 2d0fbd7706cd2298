"""Iptables rule service.

Verb-level interface over iptables/ip6tables:
- Listing rules as parsed RuleRecord objects
- Chain management (new, delete, rename, flush, exists)
- Default policies of built-in chains
- Rule insert/append/replace/delete/exists from user rule strings
- Host-wide serialization of every call (see caller.py)
- Dry-run mode support
"""

from __future__ import annotations

import shlex
from typing import Optional

from ipt.core.context import ExecutionContext
from ipt.core.executor import CommandExecutor, CommandResult
from ipt.core.exceptions import FirewallError
from ipt.services.caller import IptablesCaller, IptablesCommand
from ipt.services.chains import validate_builtin_chain, validate_table
from ipt.services.parser import Archive, RuleRecord, parse_rules, tokenize
from ipt.services.version import UtilityCapabilities, parse_version


# iptables exit code for "rule/chain does not exist" on -C and -L
EXIT_NOT_FOUND = 1


class IptablesService:
    """Safe interface for iptables rule management.

    Capabilities of the installed binary are detected once, at
    construction, from ``iptables --version`` unless given explicitly.
    """

    def __init__(
        self,
        ctx: ExecutionContext,
        executor: CommandExecutor,
        *,
        capabilities: Optional[UtilityCapabilities] = None,
    ) -> None:
        """Initialize iptables service.

        Args:
            ctx: Execution context (ctx.ipv6 selects ip6tables)
            executor: Command executor
            capabilities: Skip version detection and use these
        """
        self.ctx = ctx
        self.executor = executor

        config = ctx.config
        self.binary = config.binary(ipv6=ctx.ipv6)
        self.version: Optional[tuple[int, int, int]] = None

        if capabilities is None:
            self.version = self.detect_version()
            capabilities = UtilityCapabilities.from_version(self.version)
        self.capabilities = capabilities

        self.caller = IptablesCaller(
            ctx,
            executor,
            self.binary,
            self.capabilities,
            wait_flag=config.wait_flag,
            lock_path=config.lock_path,
            lock_timeout=config.lock_timeout,
            lock_initial_delay=config.lock_initial_delay,
            lock_max_delay=config.lock_max_delay,
        )

    def detect_version(self) -> tuple[int, int, int]:
        """Run ``<binary> --version`` and parse the banner.

        Raises:
            UtilityError: If the binary exits non-zero
            VersionParseError: If the banner has no usable version
        """
        result = self.executor.run([self.binary, "--version"], read_only=True)
        result.raise_for_status(f"{self.binary} --version")
        banner = result.stdout.strip() or result.stderr.strip()
        version = parse_version(banner)
        self.ctx.console.verbose(f"{self.binary} version {'.'.join(map(str, version))}")
        return version

    # =========================================================================
    # Listing
    # =========================================================================

    def list(self, table: str) -> list[RuleRecord]:
        """List every policy, chain and rule of a table."""
        validate_table(table)
        args = IptablesCommand().with_table(table).with_flag("-S").build()
        return parse_rules(table, self._run(args, read_only=True))

    def list_chain(self, table: str, chain: str) -> list[RuleRecord]:
        """List the policy or declaration of a chain followed by its rules."""
        validate_table(table)
        args = IptablesCommand().with_table(table).with_flag("-S", chain).build()
        return parse_rules(table, self._run(args, read_only=True))

    def chain_names(self, table: str) -> list[str]:
        """Names of built-in and user-defined chains, in dump order."""
        return [
            record.chain
            for record in self.list(table)
            if record.archive_kind in (Archive.POLICY, Archive.NEW_CHAIN)
        ]

    # =========================================================================
    # Chain Management
    # =========================================================================

    def new_chain(self, table: str, chain: str) -> None:
        validate_table(table)
        self.ctx.console.step(f"Creating chain {chain} in {table}")
        self._run(IptablesCommand().with_table(table).with_flag("-N", chain).build())

    def delete_chain(self, table: str, chain: str) -> None:
        validate_table(table)
        self.ctx.console.step(f"Deleting chain {chain} from {table}")
        self._run(IptablesCommand().with_table(table).with_flag("-X", chain).build())

    def rename_chain(self, table: str, old_chain: str, new_chain: str) -> None:
        validate_table(table)
        self.ctx.console.step(f"Renaming chain {old_chain} to {new_chain} in {table}")
        self._run(
            IptablesCommand().with_table(table).with_flag("-E", old_chain, new_chain).build()
        )

    def flush_chain(self, table: str, chain: str) -> None:
        validate_table(table)
        self.ctx.console.step(f"Flushing chain {chain} in {table}")
        self._run(IptablesCommand().with_table(table).with_flag("-F", chain).build())

    def exists_chain(self, table: str, chain: str) -> bool:
        """Check whether a chain exists in a table."""
        validate_table(table)
        args = IptablesCommand().with_table(table).with_flag("-L", chain).with_args(["-n"]).build()
        return self._check_exists(args)

    def flush_table(self, table: str) -> None:
        """Delete every rule of every chain in a table."""
        validate_table(table)
        self.ctx.console.step(f"Flushing table {table}")
        self._run(IptablesCommand().with_table(table).with_flag("-F").build())

    # =========================================================================
    # Policies
    # =========================================================================

    def get_policy(self, table: str, chain: str) -> Optional[str]:
        """Get the default policy of a built-in chain.

        Raises:
            FirewallError: If table is unknown or chain is not built-in
        """
        validate_builtin_chain(table, chain)
        for record in self.list_chain(table, chain):
            if record.archive_kind is Archive.POLICY and record.chain == chain:
                return record.policy
        return None

    def set_policy(self, table: str, chain: str, policy: str) -> None:
        """Set the default policy of a built-in chain.

        Raises:
            FirewallError: If table is unknown or chain is not built-in
        """
        validate_builtin_chain(table, chain)
        self.ctx.console.step(f"Setting policy of {table}/{chain} to {policy}")
        self._run(IptablesCommand().with_table(table).with_flag("-P", chain, policy).build())

    # =========================================================================
    # Rule Management
    # =========================================================================

    def exists(self, table: str, chain: str, rule: str) -> bool:
        """Check whether a rule is present in a chain.

        Uses ``-C`` when available. Older releases compare the rule
        against the chain dump token by token.
        """
        validate_table(table)
        tokens = self._rule_tokens(rule, table, chain)

        if not self.capabilities.has_check:
            return self._exists_in_dump(table, chain, tokens)

        args = IptablesCommand().with_table(table).with_flag("-C", chain).with_args(tokens).build()
        return self._check_exists(args)

    def insert(self, table: str, chain: str, rule: str, position: int) -> None:
        """Insert a rule at a 1-based position."""
        validate_table(table)
        self._check_position(position, table, chain)
        tokens = self._rule_tokens(rule, table, chain)
        self.ctx.console.step(f"Inserting rule at {table}/{chain}:{position}: {rule}")
        self._run(
            IptablesCommand()
            .with_table(table)
            .with_flag("-I", chain, str(position))
            .with_args(tokens)
            .build()
        )

    def insert_unique(self, table: str, chain: str, rule: str, position: int) -> None:
        """Insert a rule unless it already exists.

        Raises:
            FirewallError: If the rule already exists
        """
        if self.exists(table, chain, rule):
            raise FirewallError(
                f"Rule already exists in {table}/{chain}",
                table=table,
                chain=chain,
                rule=rule,
            )
        self.insert(table, chain, rule, position)

    def replace(self, table: str, chain: str, rule: str, position: int) -> None:
        """Replace the rule at a 1-based position."""
        validate_table(table)
        self._check_position(position, table, chain)
        tokens = self._rule_tokens(rule, table, chain)
        self.ctx.console.step(f"Replacing rule {table}/{chain}:{position} with: {rule}")
        self._run(
            IptablesCommand()
            .with_table(table)
            .with_flag("-R", chain, str(position))
            .with_args(tokens)
            .build()
        )

    def append(self, table: str, chain: str, rule: str) -> None:
        """Append a rule to the end of a chain."""
        validate_table(table)
        tokens = self._rule_tokens(rule, table, chain)
        self.ctx.console.step(f"Appending rule to {table}/{chain}: {rule}")
        self._run(IptablesCommand().with_table(table).with_flag("-A", chain).with_args(tokens).build())

    def append_unique(self, table: str, chain: str, rule: str) -> None:
        """Append a rule unless it already exists.

        Raises:
            FirewallError: If the rule already exists
        """
        if self.exists(table, chain, rule):
            raise FirewallError(
                f"Rule already exists in {table}/{chain}",
                table=table,
                chain=chain,
                rule=rule,
            )
        self.append(table, chain, rule)

    def append_replace(self, table: str, chain: str, rule: str) -> None:
        """Move a rule to the end of a chain, appending it if absent."""
        if self.exists(table, chain, rule):
            self.delete(table, chain, rule)
        self.append(table, chain, rule)

    def delete(self, table: str, chain: str, rule: str) -> None:
        """Delete the first occurrence of a rule."""
        validate_table(table)
        tokens = self._rule_tokens(rule, table, chain)
        self.ctx.console.step(f"Deleting rule from {table}/{chain}: {rule}")
        self._run(IptablesCommand().with_table(table).with_flag("-D", chain).with_args(tokens).build())

    def delete_all(self, table: str, chain: str, rule: str) -> int:
        """Delete every occurrence of a rule.

        Returns:
            Number of deletions issued
        """
        count = 0
        while self.exists(table, chain, rule):
            self.delete(table, chain, rule)
            count += 1
            if self.ctx.dry_run:
                # Nothing is really deleted, the rule would exist forever
                break
        return count

    def execute(self, args: list[str], *, read_only: bool = False) -> CommandResult:
        """Run iptables with a raw argument vector, serialized.

        The result is returned as is; a non-zero exit does not raise.
        """
        return self.caller.call(args, read_only=read_only)

    # =========================================================================
    # Private Helpers
    # =========================================================================

    def _run(self, args: list[str], *, read_only: bool = False) -> str:
        """Run a call that must succeed and return its stdout.

        Raises:
            UtilityError: If iptables exits non-zero
        """
        result = self.caller.call(args, read_only=read_only)
        result.raise_for_status()
        return result.stdout

    def _check_exists(self, args: list[str]) -> bool:
        """Run an existence check: exit 0 is yes, exit 1 is no.

        Raises:
            UtilityError: For any other exit code (bad arguments,
                permission problems, ...)
        """
        result = self.caller.call(args, read_only=True)
        if result.return_code == EXIT_NOT_FOUND:
            return False
        result.raise_for_status()
        return True

    def _exists_in_dump(self, table: str, chain: str, tokens: list[str]) -> bool:
        args = IptablesCommand().with_table(table).with_flag("-S", chain).build()
        result = self.caller.call(args, read_only=True)
        if result.return_code == EXIT_NOT_FOUND:
            return False
        result.raise_for_status()

        for record in parse_rules(table, result.stdout):
            if record.archive_kind is Archive.APPEND and record.chain == chain:
                if list(record.arguments) == tokens:
                    return True
        return False

    def _rule_tokens(self, rule: str, table: str, chain: str) -> list[str]:
        tokens = tokenize(rule)
        if not tokens:
            raise FirewallError(
                "Empty rule specification",
                table=table,
                chain=chain,
                hint='Pass a rule such as "-p tcp --dport 22 -j ACCEPT"',
            )
        self.ctx.console.debug(f"Rule tokens: {shlex.join(tokens)}")
        return tokens

    def _check_position(self, position: int, table: str, chain: str) -> None:
        if position < 1:
            raise FirewallError(
                f"Invalid rule position: {position}",
                table=table,
                chain=chain,
                hint="Rule positions start at 1",
            )
