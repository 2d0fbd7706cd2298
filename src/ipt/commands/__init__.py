"""Shared CLI plumbing for ipt command groups.

Option aliases, service construction and error reporting used by every
command module.
"""

from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.markup import escape

from ipt.core import (
    IPTError,
    CommandExecutor,
    ExecutionContext,
    console,
    create_context,
)
from ipt.core.config import DEFAULT_CONFIG_PATH
from ipt.services.iptables import IptablesService


TableOption = Annotated[
    str,
    typer.Option("--table", "-t", help="Table to operate on (filter, nat, mangle, raw, security)."),
]

Ipv6Option = Annotated[
    bool,
    typer.Option("--ipv6", "-6", help="Use ip6tables instead of iptables.", is_flag=True),
]

DryRunOption = Annotated[
    bool,
    typer.Option(
        "--dry-run",
        "-n",
        help="Show changing commands without executing them. Queries still run.",
        is_flag=True,
    ),
]

VerboseOption = Annotated[
    int,
    typer.Option(
        "--verbose",
        "-v",
        count=True,
        help="Increase output verbosity. Can be repeated (-v, -vv).",
    ),
]

NoColorOption = Annotated[
    bool,
    typer.Option("--no-color", help="Disable colored output.", is_flag=True),
]

ConfigOption = Annotated[
    Optional[Path],
    typer.Option(
        "--config",
        "-c",
        help=f"Path to configuration file. Default: {DEFAULT_CONFIG_PATH}",
        exists=False,
        file_okay=True,
        dir_okay=False,
    ),
]


def get_service(
    *,
    ipv6: bool = False,
    dry_run: bool = False,
    verbose: int = 0,
    no_color: bool = False,
    config: Optional[Path] = None,
) -> tuple[ExecutionContext, IptablesService]:
    """Create context and iptables service from CLI options.

    Raises:
        IPTError: If the config is invalid or version detection fails
    """
    ctx = create_context(
        dry_run=dry_run,
        ipv6=ipv6,
        verbose=verbose,
        no_color=no_color,
        config=config,
    )
    executor = CommandExecutor(ctx)
    return ctx, IptablesService(ctx, executor)


def handle_error(error: IPTError) -> None:
    """Print a formatted IPTError and exit with its exit code."""
    console.error(error.message)

    if error.details:
        for detail in error.details:
            console.print(f"  [dim]{escape(detail)}[/dim]")

    if error.hint:
        console.hint(error.hint)

    raise typer.Exit(error.exit_code)
