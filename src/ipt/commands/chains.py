"""Chain commands: create, delete, rename, flush, check and list names."""

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
from ipt.services.chains import is_builtin_chain


app = typer.Typer(
    name="chain",
    help="Manage user-defined chains.",
    no_args_is_help=True,
)

ChainArg = Annotated[str, typer.Argument(help="Chain name.")]


@app.command("list")
def chain_list(
    table: TableOption = "filter",
    ipv6: Ipv6Option = False,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """List chain names of a table."""
    try:
        ctx, iptables = get_service(ipv6=ipv6, verbose=verbose, no_color=no_color, config=config)
        names = iptables.chain_names(table)
    except IPTError as e:
        handle_error(e)
        return

    rows = [[name, "built-in" if is_builtin_chain(table, name) else "user"] for name in names]
    ctx.console.table(f"Chains in {table}", ["Chain", "Type"], rows)


@app.command("new")
def chain_new(
    chain: ChainArg,
    table: TableOption = "filter",
    ipv6: Ipv6Option = False,
    dry_run: DryRunOption = False,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Create a user-defined chain."""
    try:
        ctx, iptables = get_service(
            ipv6=ipv6, dry_run=dry_run, verbose=verbose, no_color=no_color, config=config
        )
        iptables.new_chain(table, chain)
        ctx.console.success(f"Chain {chain} created in {table}")
    except IPTError as e:
        handle_error(e)


@app.command("delete")
def chain_delete(
    chain: ChainArg,
    table: TableOption = "filter",
    ipv6: Ipv6Option = False,
    dry_run: DryRunOption = False,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Delete an empty user-defined chain."""
    try:
        ctx, iptables = get_service(
            ipv6=ipv6, dry_run=dry_run, verbose=verbose, no_color=no_color, config=config
        )
        iptables.delete_chain(table, chain)
        ctx.console.success(f"Chain {chain} deleted from {table}")
    except IPTError as e:
        handle_error(e)


@app.command("rename")
def chain_rename(
    old_name: Annotated[str, typer.Argument(help="Current chain name.")],
    new_name: Annotated[str, typer.Argument(help="New chain name.")],
    table: TableOption = "filter",
    ipv6: Ipv6Option = False,
    dry_run: DryRunOption = False,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Rename a user-defined chain."""
    try:
        ctx, iptables = get_service(
            ipv6=ipv6, dry_run=dry_run, verbose=verbose, no_color=no_color, config=config
        )
        iptables.rename_chain(table, old_name, new_name)
        ctx.console.success(f"Chain {old_name} renamed to {new_name}")
    except IPTError as e:
        handle_error(e)


@app.command("flush")
def chain_flush(
    chain: ChainArg,
    table: TableOption = "filter",
    ipv6: Ipv6Option = False,
    dry_run: DryRunOption = False,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Delete every rule in a chain."""
    try:
        ctx, iptables = get_service(
            ipv6=ipv6, dry_run=dry_run, verbose=verbose, no_color=no_color, config=config
        )
        iptables.flush_chain(table, chain)
        ctx.console.success(f"Chain {chain} flushed")
    except IPTError as e:
        handle_error(e)


@app.command("exists")
def chain_exists(
    chain: ChainArg,
    table: TableOption = "filter",
    ipv6: Ipv6Option = False,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Check whether a chain exists. Exits 0 if it does, 1 if not."""
    try:
        ctx, iptables = get_service(ipv6=ipv6, verbose=verbose, no_color=no_color, config=config)
        found = iptables.exists_chain(table, chain)
    except IPTError as e:
        handle_error(e)
        return

    if found:
        ctx.console.info(f"Chain {chain} exists in {table}")
        return
    ctx.console.info(f"Chain {chain} not found in {table}")
    raise typer.Exit(1)
