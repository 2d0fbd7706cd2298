"""Rule commands.

The rule is passed as one quoted argument after "--" and split the way
a shell would, so comments with spaces survive:

    ipt rule append INPUT -- '-p tcp --dport 22 -m comment --comment "ssh in" -j ACCEPT'
"""

from typing import Annotated

import typer

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
from ipt.core import IPTError


app = typer.Typer(
    name="rule",
    help="Append, insert, replace, delete and check rules.",
    no_args_is_help=True,
)

ChainArg = Annotated[str, typer.Argument(help="Chain name, e.g. INPUT.")]
RuleArg = Annotated[str, typer.Argument(help="Rule specification, quoted as one argument.")]
PositionArg = Annotated[int, typer.Argument(help="1-based rule position.", min=1)]
UniqueOption = Annotated[
    bool,
    typer.Option("--unique", "-u", help="Fail if the rule already exists.", is_flag=True),
]


@app.command("append")
def rule_append(
    chain: ChainArg,
    rule: RuleArg,
    table: TableOption = "filter",
    unique: UniqueOption = False,
    move: Annotated[
        bool,
        typer.Option("--move", help="Delete an existing copy first so the rule ends up last."),
    ] = False,
    ipv6: Ipv6Option = False,
    dry_run: DryRunOption = False,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Append a rule to the end of a chain."""
    try:
        ctx, iptables = get_service(
            ipv6=ipv6, dry_run=dry_run, verbose=verbose, no_color=no_color, config=config
        )
        if move:
            iptables.append_replace(table, chain, rule)
        elif unique:
            iptables.append_unique(table, chain, rule)
        else:
            iptables.append(table, chain, rule)
        ctx.console.success(f"Rule appended to {table}/{chain}")
    except IPTError as e:
        handle_error(e)


@app.command("insert")
def rule_insert(
    chain: ChainArg,
    rule: RuleArg,
    position: Annotated[int, typer.Option("--position", "-p", help="1-based position.", min=1)] = 1,
    table: TableOption = "filter",
    unique: UniqueOption = False,
    ipv6: Ipv6Option = False,
    dry_run: DryRunOption = False,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Insert a rule at a position (default: top of the chain)."""
    try:
        ctx, iptables = get_service(
            ipv6=ipv6, dry_run=dry_run, verbose=verbose, no_color=no_color, config=config
        )
        if unique:
            iptables.insert_unique(table, chain, rule, position)
        else:
            iptables.insert(table, chain, rule, position)
        ctx.console.success(f"Rule inserted at {table}/{chain}:{position}")
    except IPTError as e:
        handle_error(e)


@app.command("replace")
def rule_replace(
    chain: ChainArg,
    position: PositionArg,
    rule: RuleArg,
    table: TableOption = "filter",
    ipv6: Ipv6Option = False,
    dry_run: DryRunOption = False,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Replace the rule at a position."""
    try:
        ctx, iptables = get_service(
            ipv6=ipv6, dry_run=dry_run, verbose=verbose, no_color=no_color, config=config
        )
        iptables.replace(table, chain, rule, position)
        ctx.console.success(f"Rule {table}/{chain}:{position} replaced")
    except IPTError as e:
        handle_error(e)


@app.command("delete")
def rule_delete(
    chain: ChainArg,
    rule: RuleArg,
    table: TableOption = "filter",
    ipv6: Ipv6Option = False,
    dry_run: DryRunOption = False,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Delete the first occurrence of a rule."""
    try:
        ctx, iptables = get_service(
            ipv6=ipv6, dry_run=dry_run, verbose=verbose, no_color=no_color, config=config
        )
        iptables.delete(table, chain, rule)
        ctx.console.success(f"Rule deleted from {table}/{chain}")
    except IPTError as e:
        handle_error(e)


@app.command("delete-all")
def rule_delete_all(
    chain: ChainArg,
    rule: RuleArg,
    table: TableOption = "filter",
    ipv6: Ipv6Option = False,
    dry_run: DryRunOption = False,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Delete every occurrence of a rule."""
    try:
        ctx, iptables = get_service(
            ipv6=ipv6, dry_run=dry_run, verbose=verbose, no_color=no_color, config=config
        )
        count = iptables.delete_all(table, chain, rule)
        ctx.console.success(f"Deleted {count} rule(s) from {table}/{chain}")
    except IPTError as e:
        handle_error(e)


@app.command("exists")
def rule_exists(
    chain: ChainArg,
    rule: RuleArg,
    table: TableOption = "filter",
    ipv6: Ipv6Option = False,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Check whether a rule exists. Exits 0 if it does, 1 if not."""
    try:
        ctx, iptables = get_service(ipv6=ipv6, verbose=verbose, no_color=no_color, config=config)
        found = iptables.exists(table, chain, rule)
    except IPTError as e:
        handle_error(e)
        return

    if found:
        ctx.console.info(f"Rule exists in {table}/{chain}")
        return
    ctx.console.info(f"Rule not found in {table}/{chain}")
    raise typer.Exit(1)
