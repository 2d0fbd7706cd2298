"""Parsers for iptables rule text.

Two directions:
- ``parse_line`` / ``parse_rules`` read the canonical dump printed by
  ``iptables -S`` into RuleRecord objects.
- ``tokenize`` splits a rule specification typed by a user
  (``-m comment --comment "allow web" -j ACCEPT``) into the argument
  vector handed to the subprocess.

Dump line grammar, as emitted by iptables:

    line   := group (" "+ group)*
    group  := ["!" " "+] flag (" "+ value)*
    flag   := "-" name | "--" name
    value  := word | '"' text '"'

Inside double quotes spaces are literal and a backslash escapes the next
character. A dash only starts a flag at the beginning of a word.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ipt.core.exceptions import RuleParseError


class Archive(str, Enum):
    """Kind of directive a dump line represents."""
    POLICY = "Policy"        # -P CHAIN TARGET
    NEW_CHAIN = "NewChain"   # -N CHAIN
    APPEND = "Append"        # -A CHAIN rule...


ARCHIVE_FLAGS = {
    "A": Archive.APPEND,
    "P": Archive.POLICY,
    "N": Archive.NEW_CHAIN,
}


@dataclass(frozen=True)
class InterfaceConstraint:
    """An ``-i``/``-o`` match, optionally negated with ``!``."""
    negate: bool
    value: str

    def __str__(self) -> str:
        return f"! {self.value}" if self.negate else self.value


@dataclass(frozen=True)
class FlagTuple:
    """One flag group of a dump line: name, values and negation."""
    name: str
    values: tuple[str, ...] = ()
    negate: bool = False


@dataclass(frozen=True)
class RuleRecord:
    """One parsed rule-dump line.

    Attributes:
        origin: The line exactly as read
        table: Table the line was listed from (not part of the line)
        archive_kind: Policy, NewChain or Append
        chain: Chain the directive applies to
        input_interface: ``-i`` match, None when unconstrained
        output_interface: ``-o`` match, None when unconstrained
        protocol: ``-p`` value
        source_port: ``--sport`` value
        destination_port: ``--dport`` value
        jump_target: ``-j`` target, or the policy of a ``-P`` line
        extensions: Every other flag group, in line order
        arguments: Rule of an ``-A`` line as unescaped argument words,
            ready to compare with ``tokenize`` output
    """
    origin: str
    table: str
    archive_kind: Archive
    chain: str
    input_interface: Optional[InterfaceConstraint] = None
    output_interface: Optional[InterfaceConstraint] = None
    protocol: str = ""
    source_port: str = ""
    destination_port: str = ""
    jump_target: str = ""
    extensions: tuple[FlagTuple, ...] = ()
    arguments: tuple[str, ...] = ()

    @property
    def policy(self) -> Optional[str]:
        """Default policy of a ``-P`` line, None for other kinds."""
        if self.archive_kind is Archive.POLICY:
            return self.jump_target
        return None

    @property
    def rule_spec(self) -> str:
        """Rule specification of an ``-A`` line (text after the chain).

        ``-A INPUT -p tcp -j ACCEPT`` gives ``-p tcp -j ACCEPT``. Empty
        for policy and new-chain lines.
        """
        if self.archive_kind is not Archive.APPEND:
            return ""
        # origin starts with "-A <chain>" since -A was the first group
        parts = self.origin.strip().split(maxsplit=2)
        return parts[2] if len(parts) > 2 else ""


class _LineScanner:
    """Single forward pass over one dump line producing FlagTuples."""

    NAME_CHARS = frozenset("abcdefghijklmnopqrstuvwxyz"
                           "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
                           "0123456789-_")

    def __init__(self, line: str) -> None:
        self.line = line
        self.pos = 0
        self.tuples: list[FlagTuple] = []
        self.words: list[str] = []
        self._name: Optional[str] = None
        self._values: list[str] = []
        self._negate = False
        self._pending_negate = False

    def scan(self) -> list[FlagTuple]:
        while True:
            self._skip_spaces()
            ch = self._peek()
            if not ch:
                break

            if ch == "!" and self._peek(1) in ("", " "):
                if self._pending_negate:
                    self._fail("repeated '!'")
                self.pos += 1
                self._pending_negate = True
                self.words.append("!")
            elif ch == "-" and self._at_flag():
                self._read_flag()
            else:
                self._read_value()

        if self._pending_negate:
            self._fail("'!' is not followed by a flag")

        self._emit()
        return self.tuples

    def _peek(self, offset: int = 0) -> str:
        i = self.pos + offset
        return self.line[i] if i < len(self.line) else ""

    def _skip_spaces(self) -> None:
        while self._peek() == " ":
            self.pos += 1

    def _at_flag(self) -> bool:
        # "-x" or "--x" where x is a letter; "-1" or "-" alone is a value
        nxt = self._peek(1)
        if nxt == "-":
            nxt = self._peek(2)
        return nxt.isascii() and nxt.isalpha()

    def _read_flag(self) -> None:
        flag_start = self.pos
        self.pos += 1
        if self._peek() == "-":
            self.pos += 1

        start = self.pos
        while self._peek() and self._peek() != " ":
            if self._peek() not in self.NAME_CHARS:
                self._fail(f"unexpected character {self._peek()!r} in flag name")
            self.pos += 1

        self.words.append(self.line[flag_start:self.pos])
        self._emit()
        self._name = self.line[start:self.pos]
        self._negate = self._pending_negate
        self._pending_negate = False

    def _read_value(self) -> None:
        if self._name is None:
            self._fail("value before the first flag")
        if self._pending_negate:
            self._fail("'!' is not followed by a flag")

        chars: list[str] = []
        quoted = False
        while True:
            ch = self._peek()
            if not ch:
                break
            if not ch.isprintable():
                self._fail(f"unexpected character {ch!r}")
            self.pos += 1

            if quoted:
                if ch == '"':
                    quoted = False
                elif ch == "\\":
                    escaped = self._peek()
                    if not escaped:
                        break
                    self.pos += 1
                    chars.append(escaped)
                else:
                    chars.append(ch)
            elif ch == '"':
                quoted = True
            elif ch == " ":
                break
            else:
                chars.append(ch)

        if quoted:
            self._fail("unterminated quote")

        self._values.append("".join(chars))
        self.words.append(self._values[-1])

    def _emit(self) -> None:
        if self._name is None:
            return
        self.tuples.append(FlagTuple(self._name, tuple(self._values), self._negate))
        self._name = None
        self._values = []
        self._negate = False

    def _fail(self, reason: str) -> None:
        raise RuleParseError(f"Unexpected output from iptables: {reason}", text=self.line)


def _value(item: FlagTuple, index: int, line: str) -> str:
    if index >= len(item.values):
        raise RuleParseError(
            f"Unexpected output from iptables: -{item.name} needs {index + 1} value(s)",
            text=line,
        )
    return item.values[index]


def parse_line(table: str, line: str) -> RuleRecord:
    """Parse one ``iptables -S`` line into a RuleRecord.

    Args:
        table: Table the line was listed from
        line: Dump line without trailing newline

    Raises:
        RuleParseError: If the line is malformed or does not start with
            -A, -P or -N
    """
    scanner = _LineScanner(line)
    tuples = scanner.scan()

    if not tuples:
        raise RuleParseError("Unexpected output from iptables: empty rule line", text=line)

    archive = ARCHIVE_FLAGS.get(tuples[0].name)
    if archive is None:
        raise RuleParseError(
            f"Unexpected output from iptables: line starts with -{tuples[0].name}",
            text=line,
            hint="Rule dump lines start with -P, -N or -A",
        )

    fields: dict = {
        "chain": "",
        "input_interface": None,
        "output_interface": None,
        "protocol": "",
        "source_port": "",
        "destination_port": "",
        "jump_target": "",
    }
    extensions: list[FlagTuple] = []

    for item in tuples:
        name = item.name
        if name in ARCHIVE_FLAGS:
            archive = ARCHIVE_FLAGS[name]
            fields["chain"] = _value(item, 0, line)
            if name == "P":
                fields["jump_target"] = _value(item, 1, line)
        elif name == "i":
            fields["input_interface"] = InterfaceConstraint(item.negate, _value(item, 0, line))
        elif name == "o":
            fields["output_interface"] = InterfaceConstraint(item.negate, _value(item, 0, line))
        elif name == "p":
            fields["protocol"] = _value(item, 0, line)
        elif name == "sport":
            fields["source_port"] = _value(item, 0, line)
        elif name == "dport":
            fields["destination_port"] = _value(item, 0, line)
        elif name == "j":
            fields["jump_target"] = _value(item, 0, line)
        else:
            extensions.append(item)

    return RuleRecord(
        origin=line,
        table=table,
        archive_kind=archive,
        extensions=tuple(extensions),
        arguments=tuple(scanner.words[2:]) if archive is Archive.APPEND else (),
        **fields,
    )


def parse_rules(table: str, text: str) -> list[RuleRecord]:
    """Parse a whole ``iptables -S`` dump.

    Blank lines (including the one after a trailing newline) are skipped.
    The first malformed line aborts the batch.

    Args:
        table: Table the dump was listed from
        text: Dump text

    Returns:
        Records in input order
    """
    return [
        parse_line(table, line)
        for line in text.split("\n")
        if line.strip()
    ]


def tokenize(text: str) -> list[str]:
    """Split a rule specification into argument tokens.

    Both ``"`` and ``'`` quote; inside one kind of quote the other is a
    literal character. Whitespace outside quotes separates tokens. Quote
    characters are removed and never produce an empty token on their
    own. An unterminated quote runs to the end of the input.

    Example:
        >>> tokenize('-m comment --comment "it\\'s fine" -j ACCEPT')
        ['-m', 'comment', '--comment', "it's fine", '-j', 'ACCEPT']
    """
    tokens: list[str] = []
    current: list[str] = []
    quote: Optional[str] = None

    for ch in text:
        if quote is not None:
            if ch == quote:
                quote = None
            else:
                current.append(ch)
        elif ch in ('"', "'"):
            quote = ch
        elif ch.isspace():
            if current:
                tokens.append("".join(current))
                current = []
        else:
            current.append(ch)

    if current:
        tokens.append("".join(current))

    return tokens
