"""Built-in tables and chains.

Taken from iptables(8). Only built-in chains carry a default policy.
"""

from types import MappingProxyType
from typing import Mapping

from ipt.core.exceptions import FirewallError


BUILTIN_CHAINS: Mapping[str, tuple[str, ...]] = MappingProxyType({
    "filter": ("INPUT", "FORWARD", "OUTPUT"),
    "mangle": ("PREROUTING", "OUTPUT", "INPUT", "FORWARD", "POSTROUTING"),
    "nat": ("PREROUTING", "POSTROUTING", "OUTPUT"),
    "raw": ("PREROUTING", "OUTPUT"),
    "security": ("INPUT", "OUTPUT", "FORWARD"),
})

TABLES = tuple(BUILTIN_CHAINS)


def validate_table(table: str) -> str:
    """Raise FirewallError unless table is a known iptables table."""
    if table not in BUILTIN_CHAINS:
        raise FirewallError(
            f"Table not supported: {table}",
            table=table,
            hint=f"Valid tables: {', '.join(TABLES)}",
        )
    return table


def is_builtin_chain(table: str, chain: str) -> bool:
    return chain in BUILTIN_CHAINS.get(table, ())


def validate_builtin_chain(table: str, chain: str) -> None:
    """Raise FirewallError unless chain is a built-in chain of table.

    Policies can only be read or set on built-in chains.
    """
    validate_table(table)
    if not is_builtin_chain(table, chain):
        raise FirewallError(
            f"Chain {chain} is not a default chain in table {table}",
            table=table,
            chain=chain,
            hint=f"Built-in chains of {table}: {', '.join(BUILTIN_CHAINS[table])}",
        )
