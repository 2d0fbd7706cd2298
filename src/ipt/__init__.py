"""
ipt - Serialized iptables control.

Drives iptables/ip6tables as a subprocess, parses its rule dumps into
structured records and serializes concurrent invocations on hosts whose
iptables has no --wait option.
"""

__version__ = "1.0.0"
__author__ = "ipt Maintainers"
