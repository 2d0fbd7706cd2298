"""Default policy commands for built-in chains."""

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
    name="policy",
    help="Show or change default policies of built-in chains.",
    no_args_is_help=True,
)

VALID_POLICIES = ("ACCEPT", "DROP")


@app.command("get")
def policy_get(
    chain: Annotated[str, typer.Argument(help="Built-in chain, e.g. INPUT.")],
    table: TableOption = "filter",
    ipv6: Ipv6Option = False,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Print the default policy of a built-in chain."""
    try:
        ctx, iptables = get_service(ipv6=ipv6, verbose=verbose, no_color=no_color, config=config)
        policy = iptables.get_policy(table, chain)
    except IPTError as e:
        handle_error(e)
        return

    ctx.console.print(policy or "-")


@app.command("set")
def policy_set(
    chain: Annotated[str, typer.Argument(help="Built-in chain, e.g. INPUT.")],
    policy: Annotated[str, typer.Argument(help="ACCEPT or DROP.")],
    table: TableOption = "filter",
    ipv6: Ipv6Option = False,
    dry_run: DryRunOption = False,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Set the default policy of a built-in chain."""
    policy = policy.upper()
    if policy not in VALID_POLICIES:
        handle_error(IPTError(
            f"Invalid policy: {policy}",
            hint=f"Valid policies: {', '.join(VALID_POLICIES)}",
        ))

    try:
        ctx, iptables = get_service(
            ipv6=ipv6, dry_run=dry_run, verbose=verbose, no_color=no_color, config=config
        )
        iptables.set_policy(table, chain, policy)
        ctx.console.success(f"Policy of {table}/{chain} set to {policy}")
    except IPTError as e:
        handle_error(e)
