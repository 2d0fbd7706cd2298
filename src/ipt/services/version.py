"""iptables version detection.

Parses the banner printed by ``iptables --version``, e.g.
``iptables v1.8.4 (legacy)``, and derives which options the installed
release understands.
"""

from dataclasses import dataclass

from ipt.core.exceptions import VersionParseError


# Newest releases WITHOUT the option; anything strictly newer has it.
LAST_WITHOUT_CHECK = (1, 4, 10)
LAST_WITHOUT_WAIT = (1, 4, 19)


def parse_version(text: str) -> tuple[int, int, int]:
    """Extract (major, minor, patch) from a version banner.

    Everything before the first ``v`` followed by a digit is ignored.
    Dots separate components, whitespace or end of input ends the
    version.

    Raises:
        VersionParseError: If there is no version, a component is not
            an integer, or there are not exactly three components
    """
    parts: list[int] = []
    token = ""
    entry = False

    for i, ch in enumerate(text):
        if not entry:
            if ch == "v" and text[i + 1:i + 2].isdigit():
                entry = True
            continue

        if ch == ".":
            parts.append(_to_int(token, text))
            token = ""
        elif ch.isspace():
            break
        else:
            token += ch

    if not entry:
        raise VersionParseError("No version number found in banner", text=text)

    parts.append(_to_int(token, text))

    if len(parts) != 3:
        raise VersionParseError(
            f"Expected major.minor.patch, got {len(parts)} component(s)",
            text=text,
        )

    return parts[0], parts[1], parts[2]


def _to_int(token: str, text: str) -> int:
    if not (token.isascii() and token.isdigit()):
        raise VersionParseError(f"Invalid version component: {token!r}", text=text)
    return int(token)


@dataclass(frozen=True)
class UtilityCapabilities:
    """Options supported by the installed iptables.

    Attributes:
        has_check: ``-C``/``--check`` is available (after 1.4.10)
        has_wait: ``-w``/``--wait`` is available (after 1.4.19)
    """
    has_check: bool
    has_wait: bool

    @classmethod
    def from_version(cls, version: tuple[int, int, int]) -> "UtilityCapabilities":
        return cls(
            has_check=version > LAST_WITHOUT_CHECK,
            has_wait=version > LAST_WITHOUT_WAIT,
        )

    @classmethod
    def from_version_text(cls, text: str) -> "UtilityCapabilities":
        return cls.from_version(parse_version(text))
