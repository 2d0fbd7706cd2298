"""Main CLI entry point using Typer.

This module defines the root CLI application. Command groups are
registered from ipt.commands.
"""

import json
from typing import Annotated, Optional

import typer
from rich.console import Console

from ipt import __version__
from ipt.commands import (
    ConfigOption,
    DryRunOption,
    Ipv6Option,
    NoColorOption,
    TableOption,
    VerboseOption,
    get_service,
    handle_error,
)
from ipt.commands.chains import app as chain_app, chain_list
from ipt.commands.policy import app as policy_app
from ipt.commands.rules import app as rule_app
from ipt.core import IPTError, create_context
from ipt.core.config import init_config
from ipt.services.parser import RuleRecord


app = typer.Typer(
    name="ipt",
    help="Serialized iptables control with rule-dump parsing.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_enable=True,
    pretty_exceptions_show_locals=False,
)

config_app = typer.Typer(
    name="config",
    help="Configuration management.",
    no_args_is_help=True,
)

app.add_typer(rule_app, name="rule")
app.add_typer(chain_app, name="chain")
app.add_typer(policy_app, name="policy")
app.add_typer(config_app, name="config")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console = Console()
        console.print(f"ipt version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """Serialized iptables control with rule-dump parsing.

    Every iptables call is serialized host-wide: with --wait on iptables
    newer than 1.4.19, with a shared flock on older releases.

    [bold]Examples:[/bold]
        ipt list -t nat
        ipt rule append INPUT -- '-p tcp --dport 22 -j ACCEPT'
        ipt policy set FORWARD DROP
        ipt chain new -t nat MYCHAIN
    """
    pass


def _record_row(index: int, record: RuleRecord) -> list[str]:
    extensions = " ".join(
        ("! " if ext.negate else "") + f"-{ext.name} " + " ".join(ext.values)
        for ext in record.extensions
    )
    return [
        str(index),
        record.archive_kind.value,
        record.chain,
        str(record.input_interface or ""),
        str(record.output_interface or ""),
        record.protocol,
        record.source_port,
        record.destination_port,
        record.jump_target,
        extensions.strip(),
    ]


def _record_dict(record: RuleRecord) -> dict:
    def iface(value):
        return None if value is None else {"negate": value.negate, "value": value.value}

    return {
        "origin": record.origin,
        "table": record.table,
        "archive": record.archive_kind.value,
        "chain": record.chain,
        "input_interface": iface(record.input_interface),
        "output_interface": iface(record.output_interface),
        "protocol": record.protocol,
        "source_port": record.source_port,
        "destination_port": record.destination_port,
        "jump": record.jump_target,
        "extensions": [
            {"name": ext.name, "values": list(ext.values), "negate": ext.negate}
            for ext in record.extensions
        ],
    }


@app.command("list")
def list_rules(
    chain: Annotated[Optional[str], typer.Argument(help="Only list this chain.")] = None,
    table: TableOption = "filter",
    raw: Annotated[bool, typer.Option("--raw", help="Print dump lines as read.")] = False,
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON.")] = False,
    ipv6: Ipv6Option = False,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """List policies, chains and rules of a table."""
    try:
        ctx, iptables = get_service(ipv6=ipv6, verbose=verbose, no_color=no_color, config=config)
        records = iptables.list_chain(table, chain) if chain else iptables.list(table)
    except IPTError as e:
        handle_error(e)
        return

    if json_output:
        print(json.dumps([_record_dict(r) for r in records], indent=2))
        return

    if raw:
        for record in records:
            print(record.origin)
        return

    ctx.console.table(
        f"{iptables.binary} -t {table}",
        ["#", "Kind", "Chain", "In", "Out", "Proto", "Sport", "Dport", "Target", "Extensions"],
        [_record_row(i, r) for i, r in enumerate(records, start=1)],
    )


@app.command("chains")
def chains(
    table: TableOption = "filter",
    ipv6: Ipv6Option = False,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """List chain names of a table (same as 'chain list')."""
    chain_list(table=table, ipv6=ipv6, verbose=verbose, no_color=no_color, config=config)


@app.command("flush-table")
def flush_table(
    table: TableOption = "filter",
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation.")] = False,
    ipv6: Ipv6Option = False,
    dry_run: DryRunOption = False,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Delete every rule of every chain in a table."""
    if not yes and not dry_run:
        typer.confirm(f"Flush all rules in table {table}?", abort=True)

    try:
        ctx, iptables = get_service(
            ipv6=ipv6, dry_run=dry_run, verbose=verbose, no_color=no_color, config=config
        )
        iptables.flush_table(table)
        ctx.console.success(f"Table {table} flushed")
    except IPTError as e:
        handle_error(e)


@app.command("version")
def utility_version(
    ipv6: Ipv6Option = False,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Show the installed iptables version and supported options."""
    try:
        ctx, iptables = get_service(ipv6=ipv6, verbose=verbose, no_color=no_color, config=config)
    except IPTError as e:
        handle_error(e)
        return

    version = ".".join(map(str, iptables.version)) if iptables.version else "unknown"
    ctx.console.summary(iptables.binary, {
        "Version": version,
        "Check (-C)": iptables.capabilities.has_check,
        "Wait (--wait)": iptables.capabilities.has_wait,
        "Lock file": "not used" if iptables.capabilities.has_wait else str(iptables.caller.lock_path),
    })


# ============================================================================
# Config commands
# ============================================================================

@config_app.command("show")
def config_show(
    config: ConfigOption = None,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
) -> None:
    """Show the effective configuration."""
    ctx = create_context(verbose=verbose, no_color=no_color, config=config)

    try:
        app_config = ctx.config

        ctx.console.print()
        ctx.console.print(f"[bold]Configuration file:[/bold] {ctx.config_path}")
        ctx.console.print(f"[bold]File exists:[/bold] {ctx.config_path.exists()}")
        ctx.console.print()

        ctx.console.yaml(app_config.config.to_yaml(), title="Configuration")

        ctx.console.summary("Effective values", {
            "iptables": app_config.binary(ipv6=False),
            "ip6tables": app_config.binary(ipv6=True),
            "Lock file": app_config.lock_path,
            "Lock timeout": app_config.lock_timeout if app_config.lock_timeout is not None else "none",
        })
    except IPTError as e:
        handle_error(e)


@config_app.command("init")
def config_init(
    config: ConfigOption = None,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Overwrite an existing file.", is_flag=True),
    ] = False,
    no_color: NoColorOption = False,
) -> None:
    """Write an example configuration file."""
    ctx = create_context(no_color=no_color, config=config)

    try:
        init_config(ctx.config_path, force=force)
        ctx.console.success(f"Configuration written to {ctx.config_path}")
    except IPTError as e:
        handle_error(e)
    except OSError as e:
        ctx.console.error(f"Cannot write {ctx.config_path}: {e}")
        ctx.console.hint("Run with sudo or use --config to choose another path")
        raise typer.Exit(2)


if __name__ == "__main__":
    app()
