#!/usr/bin/env python3
"""
Ferm Rule Importer
Converts iptables-save / ip6tables-save dumps into nested ferm configuration.

License: MIT
Version: 1.0.0
"""

# === Imports ===
import argparse
import io
import logging
import re
import sys
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, TextIO, Tuple, Union

from pydantic import BaseModel, ValidationError, field_validator
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table


# === Constants ===
VERSION = "1.0.0"

OUTPUT_HEADER = (
    "# ferm rules generated by fermimporter",
    "# review before loading them with ferm",
)

DOMAINS = ("ip", "ip6")

# Checked in order, the first substring found in a dump comment wins
DOMAIN_HINTS = (
    ("ip6tables", "ip6"),
    ("iptables", "ip"),
)

BUILTIN_POLICIES = ("ACCEPT", "DROP", "QUEUE", "RETURN")

NOP_MARKER = "NOP"

PROTOCOL_KEYWORD = "protocol"

SIMPLE_VALUE = re.compile(r"^[A-Za-z0-9_.:/@%+-]+$")

logger = logging.getLogger("fermimporter")


# === Enums ===
class ParamShape(str, Enum):
    """Parameter shapes an option keyword accepts."""
    NONE = "none"
    SCALAR = "scalar"
    LITERAL = "literal"
    FIXED = "fixed"
    LIST = "list"
    COMPOSITE = "composite"


class Negation(str, Enum):
    """Placement of the negation marker relative to the keyword."""
    NONE = "none"
    PRE = "pre"
    POST = "post"


class LineKind(str, Enum):
    """Shapes of iptables-save input lines."""
    BLANK = "blank"
    COMMENT = "comment"
    TABLE = "table"
    CHAIN = "chain"
    RULE = "rule"
    COMMIT = "commit"
    UNKNOWN = "unknown"


class ParsePhase(str, Enum):
    """Where parsed clauses of a rule accumulate."""
    MATCH = "match"
    TARGET = "target"


class ContextState(str, Enum):
    """Nesting reached by the import context."""
    NO_DOMAIN = "no domain"
    DOMAIN_OPEN = "domain open"
    TABLE_OPEN = "table open"
    CHAIN_OPEN = "chain open"


# === Exceptions ===
class FermImportError(Exception):
    """Base exception for import failures."""

    fatal = True

    def __init__(self, message: str, line_number: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.line_number = line_number

    def __str__(self) -> str:
        if self.line_number is None:
            return self.message
        return f"line {self.line_number}: {self.message}"


class StructuralError(FermImportError):
    """Rule or chain line without an open table."""


class ArityError(FermImportError):
    """Not enough tokens for a declared parameter shape."""


class GrammarError(FermImportError):
    """Option that cannot be resolved or negated as written."""

    fatal = False


class TokenizeError(GrammarError):
    """Malformed quoting in a rule line."""


class UnrecognizedLineError(FermImportError):
    """Line matching none of the known dump shapes."""

    fatal = False


# === Data Models ===
@dataclass(frozen=True)
class Scalar:
    """A single literal parameter."""
    text: str


@dataclass(frozen=True)
class ListValue:
    """Ordered scalars, rendered as an array when there is more than one."""
    items: Tuple[Scalar, ...]


@dataclass(frozen=True)
class Composite:
    """Ordered sub-fields of a composite parameter."""
    fields: Tuple[Union[Scalar, ListValue], ...]


@dataclass(frozen=True)
class Negated:
    """Value negated after the keyword (``keyword ! value``)."""
    value: Optional["PlainValue"]


@dataclass(frozen=True)
class PreNegated:
    """Value negated before the keyword (``! keyword value``)."""
    value: Optional["PlainValue"]


PlainValue = Union[Scalar, ListValue, Composite]
Value = Union[Scalar, ListValue, Composite, Negated, PreNegated]


@dataclass(frozen=True)
class KeywordDef:
    """Definition of one option keyword."""
    name: str
    shape: ParamShape = ParamShape.SCALAR
    negation: Negation = Negation.NONE
    arity: int = 1
    fields: Tuple[ParamShape, ...] = ()
    output_name: Optional[str] = None
    accumulate: bool = False

    @property
    def rendered_name(self) -> str:
        return self.output_name or self.name

    @property
    def mergeable(self) -> bool:
        """Whether rules differing only in this keyword may share one array."""
        # accumulated lists are conjunctive, arrays expand into alternatives
        return self.shape in (ParamShape.SCALAR, ParamShape.LIST) and not self.accumulate


@dataclass(frozen=True)
class Clause:
    """One keyword with its value, in match or target position."""
    keyword: str
    value: Optional[Value] = None
    definition: Optional[KeywordDef] = field(default=None, compare=False, repr=False)

    @property
    def rendered_name(self) -> str:
        if self.definition is not None:
            return self.definition.rendered_name
        return self.keyword


@dataclass(frozen=True)
class Action:
    """Jump or goto directive of a rule."""
    kind: str
    target: str
    params: Tuple[Clause, ...] = ()


@dataclass(frozen=True)
class LeafRule:
    """Match clauses and an optional action."""
    matches: Tuple[Clause, ...] = ()
    action: Optional[Action] = None


@dataclass(frozen=True)
class BlockRule:
    """A match clause shared by consecutive child rules."""
    shared: Clause
    children: Tuple["Rule", ...]


Rule = Union[LeafRule, BlockRule]


@dataclass(frozen=True)
class Token:
    """A word or quoted literal from a rule line."""
    text: str
    quoted: bool = False

    @property
    def is_negation(self) -> bool:
        return self.text == "!" and not self.quoted


@dataclass
class InputLine:
    """One classified line of the dump."""
    kind: LineKind
    number: int
    text: str = ""
    name: str = ""
    policy: Optional[str] = None
    rest: str = ""


@dataclass
class ChainSummary:
    """Rule counts for one converted chain."""
    domain: str
    table: str
    chain: str
    parsed: int
    emitted: int


@dataclass
class ImportReport:
    """Outcome of one conversion run."""
    chains: List[ChainSummary] = field(default_factory=list)
    diagnostics: List[str] = field(default_factory=list)


# === Utility Functions ===
def setup_logging(verbose: bool = False) -> logging.Logger:
    """
    Configure logging with rich handler.

    Diagnostics go to stderr, stdout carries the generated configuration.

    Args:
        verbose: Enable verbose logging

    Returns:
        Configured logger instance
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)]
    )
    return logger


def domain_hint(comment: str) -> Optional[str]:
    """Return the domain named by a dump comment, if any."""
    for marker, domain in DOMAIN_HINTS:
        if marker in comment:
            return domain
    return None


def count_statements(rules: Iterable["Rule"]) -> int:
    """Count rendered statements, blocks included."""
    total = 0
    for rule in rules:
        total += 1
        if isinstance(rule, BlockRule):
            total += count_statements(rule.children)
    return total


# === Keyword Registry ===
_KEYWORD_NOTATION = re.compile(
    r"^(?P<pre>!)?(?P<name>[\w-]+)(?P<post>!)?(?P<accumulate>\+)?"
    r"(?:=(?P<shape>\w+))?(?:>(?P<output>[\w-]+))?$"
)

_SHAPE_CODES = {
    "s": ParamShape.SCALAR,
    "l": ParamShape.LITERAL,
    "c": ParamShape.LIST,
}

_EMPTY: Mapping[str, KeywordDef] = MappingProxyType({})


def keyword(notation: str) -> KeywordDef:
    """
    Build a keyword definition from its compact notation.

    The notation is ``[!]name[!][+][=shape][>output]``. A leading ``!``
    allows negation before the keyword, a trailing one allows it after the
    keyword. ``+`` lets repeated clauses on one line accumulate into one list
    and ``>output`` sets the rendered keyword. Shapes: no ``=`` for none,
    ``s`` scalar, ``l`` single literal, ``c`` comma list, a number N for N
    fixed scalars, or a sequence of ``s``/``c`` for a composite.

    Args:
        notation: Compact keyword notation

    Returns:
        Keyword definition

    Raises:
        ValueError: If the notation is malformed
    """
    match = _KEYWORD_NOTATION.match(notation)
    if not match or (match.group("pre") and match.group("post")):
        raise ValueError(f"Invalid keyword notation: {notation!r}")

    negation = Negation.NONE
    if match.group("pre"):
        negation = Negation.PRE
    elif match.group("post"):
        negation = Negation.POST

    code = match.group("shape")
    fields: Tuple[ParamShape, ...] = ()
    if code is None:
        shape, arity = ParamShape.NONE, 0
    elif code.isdigit() and int(code) > 0:
        shape, arity = ParamShape.FIXED, int(code)
    elif code in _SHAPE_CODES:
        shape, arity = _SHAPE_CODES[code], 1
    elif len(code) > 1 and set(code) <= {"s", "c"}:
        fields = tuple(_SHAPE_CODES[letter] for letter in code)
        shape, arity = ParamShape.COMPOSITE, len(fields)
    else:
        raise ValueError(f"Invalid parameter shape in {notation!r}")

    return KeywordDef(
        name=match.group("name"),
        shape=shape,
        negation=negation,
        arity=arity,
        fields=fields,
        output_name=match.group("output"),
        accumulate=bool(match.group("accumulate")),
    )


def keyword_set(*notations: str) -> Mapping[str, KeywordDef]:
    """Build an immutable name -> definition table."""
    definitions = [keyword(notation) for notation in notations]
    return MappingProxyType({definition.name: definition for definition in definitions})


@dataclass(frozen=True)
class KeywordRegistry:
    """Immutable keyword tables consulted by the option parser."""
    aliases: Mapping[str, str]
    match_keywords: Mapping[str, KeywordDef]
    protocols: Mapping[str, Mapping[str, KeywordDef]]
    modules: Mapping[str, Mapping[str, KeywordDef]]
    targets: Mapping[str, Mapping[str, KeywordDef]]
    protocol_modules: Mapping[str, str]

    def resolve(self, name: str) -> str:
        """Resolve a short or alternate option name."""
        return self.aliases.get(name, name)

    def protocol_keywords(self, protocol: str) -> Mapping[str, KeywordDef]:
        return self.protocols.get(protocol.lower(), _EMPTY)

    def module_keywords(self, module: str) -> Mapping[str, KeywordDef]:
        return self.modules.get(module, _EMPTY)

    def target_keywords(self, target: str) -> Mapping[str, KeywordDef]:
        return self.targets.get(target, _EMPTY)

    def is_target(self, name: str) -> bool:
        return name in self.targets

    def module_for_protocol(self, protocol: str) -> str:
        """Name of the match module that duplicates a protocol declaration."""
        protocol = protocol.lower()
        return self.protocol_modules.get(protocol, protocol)


MATCH_KEYWORD = keyword("match+=c>mod")

_TCP_KEYWORDS = keyword_set(
    "!source-port=s", "!destination-port=s", "!syn", "!tcp-flags=cc", "!tcp-option=s",
)
_UDP_KEYWORDS = keyword_set("!source-port=s", "!destination-port=s")
_ICMP_KEYWORDS = keyword_set("!icmp-type=s")
_ICMP6_KEYWORDS = keyword_set("!icmpv6-type=s")
_SCTP_KEYWORDS = keyword_set("!source-port=s", "!destination-port=s", "!chunk-types=sc")
_DCCP_KEYWORDS = keyword_set(
    "!source-port=s", "!destination-port=s", "!dccp-types=c", "!dccp-option=s",
)

DEFAULT_REGISTRY = KeywordRegistry(
    aliases=MappingProxyType({
        "p": "protocol",
        "s": "source",
        "d": "destination",
        "i": "in-interface",
        "o": "out-interface",
        "f": "fragment",
        "m": "match",
        "j": "jump",
        "g": "goto",
        "sport": "source-port",
        "dport": "destination-port",
        "sports": "source-ports",
        "dports": "destination-ports",
        # rendered names, so generated text parses back
        "source-address": "source",
        "destination-address": "destination",
        "mod": "match",
    }),
    match_keywords=keyword_set(
        "!protocol=s",
        "!source=s>source-address",
        "!destination=s>destination-address",
        "!in-interface=s",
        "!out-interface=s",
        "!fragment",
    ),
    protocols=MappingProxyType({
        "tcp": _TCP_KEYWORDS,
        "udp": _UDP_KEYWORDS,
        "udplite": _UDP_KEYWORDS,
        "icmp": _ICMP_KEYWORDS,
        "ipv6-icmp": _ICMP6_KEYWORDS,
        "icmpv6": _ICMP6_KEYWORDS,
        "sctp": _SCTP_KEYWORDS,
        "dccp": _DCCP_KEYWORDS,
    }),
    modules=MappingProxyType({
        "tcp": _TCP_KEYWORDS,
        "udp": _UDP_KEYWORDS,
        "udplite": _UDP_KEYWORDS,
        "icmp": _ICMP_KEYWORDS,
        "icmp6": _ICMP6_KEYWORDS,
        "sctp": _SCTP_KEYWORDS,
        "dccp": _DCCP_KEYWORDS,
        "multiport": keyword_set("!source-ports=c", "!destination-ports=c", "!ports=c"),
        "state": keyword_set("!state=c"),
        "conntrack": keyword_set(
            "!ctstate=c", "!ctproto=s", "!ctorigsrc=s", "!ctorigdst=s", "!ctreplsrc=s",
            "!ctrepldst=s", "!ctorigsrcport=s", "!ctorigdstport=s", "!ctreplsrcport=s",
            "!ctrepldstport=s", "!ctstatus=c", "!ctexpire=s", "ctdir=s",
        ),
        "comment": keyword_set("comment=l"),
        "limit": keyword_set("limit=l", "limit-burst=l"),
        "mac": keyword_set("!mac-source=s"),
        "mark": keyword_set("!mark=s"),
        "connmark": keyword_set("!mark=s"),
        "owner": keyword_set("!uid-owner=s", "!gid-owner=s", "!socket-exists", "suppl-groups"),
        "iprange": keyword_set("!src-range=s", "!dst-range=s"),
        "length": keyword_set("!length=s"),
        "tos": keyword_set("!tos=s"),
        "pkttype": keyword_set("!pkt-type=s"),
        "helper": keyword_set("!helper=l"),
        "recent": keyword_set(
            "name=l", "!set", "!rcheck", "!update", "!remove", "seconds=l", "reap",
            "hitcount=l", "rttl", "rsource", "rdest", "mask=s",
        ),
        "set": keyword_set("!match-set=sc", "return-nomatch", "!update-counters"),
        "addrtype": keyword_set("!src-type=c", "!dst-type=c", "limit-iface-in", "limit-iface-out"),
        "physdev": keyword_set(
            "!physdev-in=s", "!physdev-out=s", "!physdev-is-in", "!physdev-is-out",
            "!physdev-is-bridged",
        ),
        "string": keyword_set("algo=s", "from=s", "to=s", "!string=l", "!hex-string=l", "icase"),
        "hashlimit": keyword_set(
            "hashlimit-upto=l", "hashlimit-above=l", "hashlimit-burst=l", "hashlimit-mode=l",
            "hashlimit-name=l", "hashlimit-htable-size=l", "hashlimit-htable-max=l",
            "hashlimit-htable-expire=l", "hashlimit-htable-gcinterval=l",
            "hashlimit-srcmask=s", "hashlimit-dstmask=s",
        ),
        "ttl": keyword_set("ttl-eq=s", "ttl-gt=s", "ttl-lt=s"),
        "hl": keyword_set("!hl-eq=s", "hl-gt=s", "hl-lt=s"),
        "dscp": keyword_set("!dscp=s", "!dscp-class=s"),
        "connlimit": keyword_set(
            "connlimit-upto=l", "connlimit-above=l", "connlimit-mask=s", "connlimit-saddr",
            "connlimit-daddr",
        ),
        "connbytes": keyword_set("!connbytes=s", "connbytes-dir=s", "connbytes-mode=s"),
        "time": keyword_set(
            "timestart=l", "timestop=l", "!weekdays=c", "!monthdays=c", "datestart=l",
            "datestop=l", "kerneltz", "utc",
        ),
        "u32": keyword_set("!u32=l"),
        "statistic": keyword_set("mode=s", "!probability=l", "!every=l", "packet=l"),
        "policy": keyword_set(
            "dir=s", "pol=s", "strict", "!reqid=s", "!spi=s", "!proto=s", "!mode=s",
            "!tunnel-src=s", "!tunnel-dst=s", "next",
        ),
        "devgroup": keyword_set("!src-group=s", "!dst-group=s"),
        "socket": keyword_set("transparent", "nowildcard", "restore-skmark"),
        "rpfilter": keyword_set("loose", "validmark", "accept-local", "invert"),
        "quota": keyword_set("!quota=l"),
        "realm": keyword_set("!realm=s"),
        "cgroup": keyword_set("!cgroup=s", "!path=l"),
        "ah": keyword_set("!ahspi=s"),
        "esp": keyword_set("!espspi=s"),
        "ipv6header": keyword_set("!header=l", "soft"),
        "frag": keyword_set(
            "!fragid=s", "!fraglen=s", "fragres", "fragfirst", "fragmore", "fraglast",
        ),
        "rt": keyword_set(
            "!rt-type=s", "!rt-segsleft=s", "!rt-len=s", "rt-0-res", "rt-0-addrs=l",
            "rt-0-not-strict",
        ),
    }),
    targets=MappingProxyType({
        "ACCEPT": _EMPTY,
        "DROP": _EMPTY,
        "RETURN": _EMPTY,
        "QUEUE": _EMPTY,
        "NOTRACK": _EMPTY,
        "TRACE": _EMPTY,
        "REJECT": keyword_set("reject-with=s"),
        "LOG": keyword_set(
            "log-level=s", "log-prefix=l", "log-tcp-sequence", "log-tcp-options",
            "log-ip-options", "log-uid", "log-macdecode",
        ),
        "ULOG": keyword_set(
            "ulog-nlgroup=s", "ulog-prefix=l", "ulog-cprange=s", "ulog-qthreshold=s",
        ),
        "NFLOG": keyword_set(
            "nflog-group=s", "nflog-prefix=l", "nflog-range=s", "nflog-size=s",
            "nflog-threshold=s",
        ),
        "SNAT": keyword_set("to-source=l", "random", "random-fully", "persistent"),
        "DNAT": keyword_set("to-destination=l", "random", "persistent"),
        "MASQUERADE": keyword_set("to-ports=l", "random", "random-fully"),
        "REDIRECT": keyword_set("to-ports=l", "random"),
        "NETMAP": keyword_set("to=l"),
        "MARK": keyword_set("set-mark=l", "set-xmark=l", "and-mark=l", "or-mark=l", "xor-mark=l"),
        "CONNMARK": keyword_set(
            "set-mark=l", "set-xmark=l", "save-mark", "restore-mark", "nfmask=l",
            "ctmask=l", "mask=l",
        ),
        "TCPMSS": keyword_set("set-mss=l", "clamp-mss-to-pmtu"),
        "TOS": keyword_set("set-tos=l", "and-tos=l", "or-tos=l", "xor-tos=l"),
        "DSCP": keyword_set("set-dscp=l", "set-dscp-class=l"),
        "TTL": keyword_set("ttl-set=l", "ttl-dec=l", "ttl-inc=l"),
        "HL": keyword_set("hl-set=l", "hl-dec=l", "hl-inc=l"),
        "CLASSIFY": keyword_set("set-class=l"),
        "NFQUEUE": keyword_set(
            "queue-num=l", "queue-balance=l", "queue-bypass", "fail-open", "queue-cpu-fanout",
        ),
        "CT": keyword_set(
            "notrack", "helper=l", "ctevents=c", "expevents=c", "zone=l", "timeout=l",
        ),
        "TPROXY": keyword_set("on-port=l", "on-ip=l", "tproxy-mark=l"),
        "CHECKSUM": keyword_set("checksum-fill"),
        "SET": keyword_set("add-set=sc", "del-set=sc", "exist", "timeout=l"),
        "SECMARK": keyword_set("selctx=l"),
        "CONNSECMARK": keyword_set("save", "restore"),
        "TEE": keyword_set("gateway=l"),
        "AUDIT": keyword_set("type=s"),
    }),
    protocol_modules=MappingProxyType({
        "ipv6-icmp": "icmp6",
        "icmpv6": "icmp6",
    }),
)


# === Tokenizer ===
_WHITESPACE = re.compile(r"\s*")
_WORD = re.compile(r"[^\s\"']+")


def tokenize(text: str, line_number: Optional[int] = None) -> List[Token]:
    """
    Split the option part of a rule line into tokens.

    Args:
        text: Rule text following ``-A CHAIN``
        line_number: Input line number for error messages

    Returns:
        Ordered tokens, quoted literals flagged as such

    Raises:
        TokenizeError: If a quote is never closed
    """
    tokens: List[Token] = []
    position = 0
    while True:
        position = _WHITESPACE.match(text, position).end()
        if position >= len(text):
            return tokens
        if text[position] in "\"'":
            literal, position = _read_quoted(text, position, line_number)
            tokens.append(Token(literal, quoted=True))
        else:
            word = _WORD.match(text, position)
            tokens.append(Token(word.group()))
            position = word.end()


def _read_quoted(text: str, start: int, line_number: Optional[int]) -> Tuple[str, int]:
    """Read a quoted literal starting at ``start``; backslash escapes only in double quotes."""
    quote = text[start]
    chars = []
    position = start + 1
    while position < len(text):
        char = text[position]
        if char == quote:
            return "".join(chars), position + 1
        if char == "\\" and quote == '"' and position + 1 < len(text):
            position += 1
            char = text[position]
        chars.append(char)
        position += 1
    raise TokenizeError(f"unterminated quote at column {start + 1}", line_number)


# === Option Parser ===
class _TokenCursor:
    """Sequential access to the tokens of one rule."""

    def __init__(self, tokens: Sequence[Token], line_number: Optional[int]):
        self.tokens = list(tokens)
        self.position = 0
        self.line_number = line_number

    @property
    def exhausted(self) -> bool:
        return self.position >= len(self.tokens)

    def peek(self) -> Optional[Token]:
        if self.exhausted:
            return None
        return self.tokens[self.position]

    def next(self) -> Token:
        token = self.tokens[self.position]
        self.position += 1
        return token

    def take(self, option: str) -> Token:
        """Consume a parameter token of ``option``."""
        if self.exhausted:
            raise ArityError(f"missing parameter for option {option!r}", self.line_number)
        return self.next()


@dataclass
class _RuleState:
    """Per-rule parser state."""
    active: Dict[str, KeywordDef]
    phase: ParsePhase = ParsePhase.MATCH
    matches: List[Clause] = field(default_factory=list)
    params: List[Clause] = field(default_factory=list)
    action_kind: Optional[str] = None
    target: Optional[str] = None
    pending_negation: bool = False
    protocols: List[str] = field(default_factory=list)

    @property
    def clauses(self) -> List[Clause]:
        if self.phase is ParsePhase.TARGET:
            return self.params
        return self.matches


class OptionParser:
    """Parser turning the tokens of one rule into a LeafRule."""

    def __init__(self, registry: Optional[KeywordRegistry] = None):
        self.registry = registry or DEFAULT_REGISTRY

    def parse(self, tokens: Sequence[Token], line_number: Optional[int] = None) -> LeafRule:
        """
        Parse one rule.

        Args:
            tokens: Tokens produced by ``tokenize``
            line_number: Input line number for error messages

        Returns:
            Parsed rule with match clauses in input order

        Raises:
            GrammarError: For an unknown option or a misplaced negation
            ArityError: For missing parameters or a dangling ``!``
        """
        state = _RuleState(active=dict(self.registry.match_keywords))
        cursor = _TokenCursor(_strip_terminator(tokens), line_number)

        while not cursor.exhausted:
            token = cursor.next()
            if token.is_negation:
                if state.pending_negation:
                    raise GrammarError("repeated '!'", line_number)
                state.pending_negation = True
                continue
            if token.quoted:
                raise GrammarError(f"expected an option, found {token.text!r}", line_number)

            name = self.registry.resolve(token.text.lstrip("-"))
            definition = state.active.get(name)
            if definition is not None:
                self._parse_option(state, definition, cursor)
            elif name == "match":
                self._parse_match(state, cursor)
            elif name in ("jump", "goto"):
                self._parse_action(state, name, cursor.take(name).text, cursor)
            elif state.phase is ParsePhase.MATCH and self.registry.is_target(name):
                # bare built-in target as rendered
                self._parse_action(state, "jump", name, cursor)
            elif name == NOP_MARKER and not state.pending_negation:
                continue
            else:
                raise GrammarError(f"unknown option {token.text!r}", line_number)

        if state.pending_negation:
            raise ArityError("'!' at end of rule negates nothing", line_number)

        action = None
        if state.target is not None:
            action = Action(state.action_kind, state.target, tuple(state.params))
        return LeafRule(tuple(state.matches), action)

    def _parse_match(self, state: _RuleState, cursor: _TokenCursor) -> None:
        """Activate match modules and record the ones no protocol already implies."""
        if state.pending_negation:
            raise GrammarError("a match module cannot be negated", cursor.line_number)
        name = MATCH_KEYWORD.name
        modules = self._parse_list(cursor.take(name), cursor, name)

        declared = {self.registry.module_for_protocol(protocol) for protocol in state.protocols}
        kept = []
        for module in modules.items:
            extension = self.registry.module_keywords(module.text)
            if not extension:
                logger.debug("line %s: no keywords known for module %s", cursor.line_number, module.text)
            state.active.update(extension)
            if module.text not in declared:
                kept.append(module)

        if kept:
            self._add_clause(state, Clause(name, ListValue(tuple(kept)), MATCH_KEYWORD))

    def _parse_action(self, state: _RuleState, kind: str, target: str, cursor: _TokenCursor) -> None:
        if state.pending_negation:
            raise GrammarError(f"{kind} cannot be negated", cursor.line_number)
        if state.target is not None:
            raise GrammarError("rule has more than one jump or goto", cursor.line_number)
        state.action_kind = kind
        state.target = target
        if kind == "jump":
            state.phase = ParsePhase.TARGET
            state.active = dict(self.registry.target_keywords(state.target))

    def _parse_option(self, state: _RuleState, definition: KeywordDef, cursor: _TokenCursor) -> None:
        pre = state.pending_negation
        state.pending_negation = False
        if pre and definition.negation is not Negation.PRE:
            raise GrammarError(
                f"option {definition.name!r} cannot be negated with a leading '!'",
                cursor.line_number,
            )

        post = False
        following = cursor.peek()
        if definition.shape is not ParamShape.NONE and following is not None and following.is_negation:
            if definition.negation is not Negation.POST:
                raise GrammarError(
                    f"option {definition.name!r} cannot be negated with a trailing '!'",
                    cursor.line_number,
                )
            cursor.next()
            post = True

        value = self._parse_value(definition, cursor)
        if definition.name == PROTOCOL_KEYWORD and not (pre or post):
            self._declare_protocols(state, value)
        if pre:
            value = PreNegated(value)
        elif post:
            value = Negated(value)
        self._add_clause(state, Clause(definition.name, value, definition))

    def _declare_protocols(self, state: _RuleState, value: Optional[PlainValue]) -> None:
        """Record declared protocols and activate their keywords."""
        if isinstance(value, Scalar):
            protocols = [value.text]
        elif isinstance(value, ListValue):
            protocols = [item.text for item in value.items]
        else:
            protocols = []
        for protocol in protocols:
            state.protocols.append(protocol.lower())
            state.active.update(self.registry.protocol_keywords(protocol))

    def _add_clause(self, state: _RuleState, clause: Clause) -> None:
        clauses = state.clauses
        if clauses and clause.definition is not None and clause.definition.accumulate:
            previous = clauses[-1]
            if (previous.keyword == clause.keyword
                    and isinstance(previous.value, ListValue)
                    and isinstance(clause.value, ListValue)):
                clauses[-1] = replace(previous, value=ListValue(previous.value.items + clause.value.items))
                return
        clauses.append(clause)

    def _parse_value(self, definition: KeywordDef, cursor: _TokenCursor) -> Optional[PlainValue]:
        name = definition.name
        shape = definition.shape
        if shape is ParamShape.NONE:
            return None
        if shape is ParamShape.LITERAL:
            return Scalar(cursor.take(name).text)
        if shape is ParamShape.SCALAR:
            token = cursor.take(name)
            if _opens_group(token):
                return ListValue(self._read_group(token, cursor, name))
            return Scalar(token.text)
        if shape is ParamShape.LIST:
            return self._parse_list(cursor.take(name), cursor, name)
        if shape is ParamShape.FIXED:
            items = tuple(Scalar(cursor.take(name).text) for _ in range(definition.arity))
            return ListValue(items) if len(items) > 1 else items[0]
        if shape is ParamShape.COMPOSITE:
            fields: List[Union[Scalar, ListValue]] = []
            for field_shape in definition.fields:
                token = cursor.take(name)
                if field_shape is ParamShape.LIST:
                    fields.append(self._parse_list(token, cursor, name))
                else:
                    fields.append(Scalar(token.text))
            return Composite(tuple(fields))
        raise ValueError(f"Unhandled parameter shape: {shape}")

    def _parse_list(self, token: Token, cursor: _TokenCursor, name: str) -> ListValue:
        if _opens_group(token):
            return ListValue(self._read_group(token, cursor, name))
        if token.quoted:
            return ListValue((Scalar(token.text),))
        return ListValue(tuple(Scalar(part) for part in token.text.split(",")))

    def _read_group(self, first: Token, cursor: _TokenCursor, name: str) -> Tuple[Scalar, ...]:
        """Read a parenthesized array as written by the emitter."""
        items: List[Scalar] = []
        token, text = first, first.text[1:]
        while True:
            closing = not token.quoted and text.endswith(")")
            if closing:
                text = text[:-1]
            if text or token.quoted:
                items.append(Scalar(text))
            if closing:
                return tuple(items)
            if cursor.exhausted:
                raise ArityError(f"unclosed array for option {name!r}", cursor.line_number)
            token = cursor.next()
            text = token.text


def _opens_group(token: Token) -> bool:
    return not token.quoted and token.text.startswith("(")


def _strip_terminator(tokens: Sequence[Token]) -> List[Token]:
    """Drop the ``;`` closing a rendered statement."""
    tokens = list(tokens)
    if tokens and not tokens[-1].quoted and tokens[-1].text.endswith(";"):
        text = tokens.pop().text[:-1]
        if text:
            tokens.append(Token(text))
    return tokens


# === Optimizer ===
def factor_prefixes(rules: Sequence[Rule]) -> List[Rule]:
    """
    Factor leading match clauses shared by consecutive rules into blocks.

    Only the first clause of each rule is compared; runs are factored
    recursively so nested prefixes become nested blocks. Rule order is kept.

    Args:
        rules: Ordered rules of one chain or block

    Returns:
        New ordered rule list
    """
    result: List[Rule] = []
    index = 0
    while index < len(rules):
        rule = rules[index]
        end = _prefix_run_end(rules, index)
        if end - index < 2:
            result.append(rule)
            index += 1
            continue

        shared = rule.matches[0]
        stripped = [replace(member, matches=member.matches[1:]) for member in rules[index:end]]
        inner = factor_prefixes(stripped)
        if len(inner) == 1 and isinstance(inner[0], LeafRule):
            result.append(replace(inner[0], matches=(shared,) + inner[0].matches))
        else:
            result.append(BlockRule(shared, tuple(inner)))
        index = end
    return result


def _prefix_run_end(rules: Sequence[Rule], start: int) -> int:
    """End index of the run of leaf rules sharing the first clause of ``rules[start]``."""
    first = rules[start]
    if not isinstance(first, LeafRule) or not first.matches:
        return start + 1
    end = start + 1
    while end < len(rules):
        other = rules[end]
        if not isinstance(other, LeafRule) or not other.matches or other.matches[0] != first.matches[0]:
            break
        end += 1
    return end


def merge_arrays(rules: Sequence[Rule]) -> List[Rule]:
    """
    Merge consecutive rules that differ only in their first clause value.

    Block children are merged first; a block left with a single leaf
    collapses back into that leaf.
    """
    rules = [_merge_block(rule) for rule in rules]
    result: List[Rule] = []
    index = 0
    while index < len(rules):
        rule = rules[index]
        end = index + 1
        if _is_merge_candidate(rule):
            while end < len(rules) and _differs_in_head_only(rule, rules[end]):
                end += 1
        if end - index > 1:
            result.append(_merge_run(rules[index:end]))
        else:
            result.append(rule)
        index = end
    return result


def _merge_block(rule: Rule) -> Rule:
    if isinstance(rule, LeafRule):
        return rule
    children = merge_arrays(rule.children)
    if len(children) == 1 and isinstance(children[0], LeafRule):
        return replace(children[0], matches=(rule.shared,) + children[0].matches)
    return BlockRule(rule.shared, tuple(children))


def _is_plain_array_member(value: Optional[Value]) -> bool:
    return isinstance(value, (Scalar, ListValue))


def _is_merge_candidate(rule: Rule) -> bool:
    if not isinstance(rule, LeafRule) or not rule.matches:
        return False
    head = rule.matches[0]
    return (_is_plain_array_member(head.value)
            and head.definition is not None
            and head.definition.mergeable)


def _differs_in_head_only(rule: LeafRule, other: Rule) -> bool:
    if not isinstance(other, LeafRule) or not other.matches:
        return False
    head = other.matches[0]
    return (head.keyword == rule.matches[0].keyword
            and _is_plain_array_member(head.value)
            and other.matches[1:] == rule.matches[1:]
            and other.action == rule.action)


def _merge_run(run: Sequence[LeafRule]) -> LeafRule:
    items: List[Scalar] = []
    for rule in run:
        value = rule.matches[0].value
        if isinstance(value, ListValue):
            items.extend(value.items)
        else:
            items.append(value)
    first = run[0]
    head = replace(first.matches[0], value=ListValue(tuple(items)))
    return replace(first, matches=(head,) + first.matches[1:])


def optimize_rules(rules: Sequence[Rule]) -> List[Rule]:
    """Prefix factoring followed by array merging."""
    return merge_arrays(factor_prefixes(rules))


# === Emitter ===
def render_text(text: str) -> str:
    """Quote a literal unless it consists of simple characters only."""
    if SIMPLE_VALUE.match(text):
        return text
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def render_value(value: PlainValue) -> str:
    if isinstance(value, Scalar):
        return render_text(value.text)
    if isinstance(value, ListValue):
        if len(value.items) == 1:
            return render_value(value.items[0])
        return "(" + " ".join(render_value(item) for item in value.items) + ")"
    if isinstance(value, Composite):
        return " ".join(render_value(part) for part in value.fields)
    raise TypeError(f"Cannot render value {value!r}")


def render_clause(clause: Clause) -> str:
    """Render a clause, placing the negation marker where its value says."""
    value = clause.value
    name = clause.rendered_name
    if isinstance(value, PreNegated):
        words = ["!", name] + _value_words(value.value)
    elif isinstance(value, Negated):
        words = [name, "!"] + _value_words(value.value)
    else:
        words = [name] + _value_words(value)
    return " ".join(words)


def _value_words(value: Optional[PlainValue]) -> List[str]:
    if value is None:
        return []
    return [render_value(value)]


def render_action(action: Action, registry: KeywordRegistry) -> str:
    """Known targets render bare, anything else as an explicit jump."""
    if action.kind == "goto":
        return f"goto {render_text(action.target)}"
    if registry.is_target(action.target):
        words = [action.target]
    else:
        words = ["jump", render_text(action.target)]
    words.extend(render_clause(param) for param in action.params)
    return " ".join(words)


def render_leaf(rule: LeafRule, registry: KeywordRegistry) -> str:
    words = [render_clause(clause) for clause in rule.matches]
    if rule.action is not None:
        words.append(render_action(rule.action, registry))
    if not words:
        words.append(NOP_MARKER)
    return " ".join(words) + ";"


class Emitter:
    """Writes block-structured configuration with indentation tracking."""

    def __init__(self, stream: TextIO, registry: Optional[KeywordRegistry] = None, indent: int = 4):
        self.stream = stream
        self.registry = registry or DEFAULT_REGISTRY
        self.indent = " " * indent
        self.level = 0

    def line(self, text: str) -> None:
        """Write one line, dedenting before ``}`` and indenting after ``{``."""
        if text.startswith("}"):
            self.level = max(self.level - 1, 0)
        if text:
            self.stream.write(f"{self.indent * self.level}{text}\n")
        else:
            self.stream.write("\n")
        if text.endswith("{"):
            self.level += 1

    def rules(self, rules: Iterable[Rule]) -> None:
        for rule in rules:
            self.rule(rule)

    def rule(self, rule: Rule) -> None:
        if isinstance(rule, BlockRule):
            self.line(f"{render_clause(rule.shared)} {{")
            self.rules(rule.children)
            self.line("}")
        else:
            self.line(render_leaf(rule, self.registry))


# === Configuration ===
class ImportSettings(BaseModel):
    """Conversion settings."""

    domain: str = "ip"
    optimize: bool = True
    indent: int = 4
    header: bool = True

    @field_validator("domain")
    @classmethod
    def validate_domain(cls, value: str) -> str:
        value = value.lower()
        if value not in DOMAINS:
            raise ValueError(f"domain must be one of: {', '.join(DOMAINS)}")
        return value

    @field_validator("indent")
    @classmethod
    def validate_indent(cls, value: int) -> int:
        if not 0 <= value <= 16:
            raise ValueError("indent must be between 0 and 16")
        return value


# === Context Tracker ===
_TABLE_LINE = re.compile(r"^\*(?P<name>\S+)$")
_CHAIN_LINE = re.compile(r"^:(?P<name>\S+)\s+(?P<policy>\S+)(?:\s+.*)?$")
_RULE_LINE = re.compile(r"^(?:\[\d+:\d+\]\s+)?-A\s+(?P<name>\S+)(?:\s+(?P<rest>.*))?$")


def classify_line(text: str, number: int) -> InputLine:
    """Classify one line of an iptables-save dump."""
    line = text.strip()
    if not line:
        return InputLine(LineKind.BLANK, number)
    if line.startswith("#"):
        return InputLine(LineKind.COMMENT, number, text=line)
    if line == "COMMIT":
        return InputLine(LineKind.COMMIT, number, text=line)

    match = _TABLE_LINE.match(line)
    if match:
        return InputLine(LineKind.TABLE, number, text=line, name=match.group("name"))

    match = _CHAIN_LINE.match(line)
    if match:
        policy = match.group("policy")
        return InputLine(
            LineKind.CHAIN, number, text=line, name=match.group("name"),
            policy=None if policy == "-" else policy,
        )

    match = _RULE_LINE.match(line)
    if match:
        return InputLine(
            LineKind.RULE, number, text=line, name=match.group("name"),
            rest=match.group("rest") or "",
        )

    return InputLine(LineKind.UNKNOWN, number, text=line)


@dataclass
class ImportContext:
    """Open domain, table and chain plus the rules buffered for the chain."""
    domain: Optional[str] = None
    table: Optional[str] = None
    chain: Optional[str] = None
    rules: List[LeafRule] = field(default_factory=list)
    pending_policies: Dict[str, str] = field(default_factory=dict)
    domain_hint: Optional[str] = None

    @property
    def state(self) -> ContextState:
        if self.chain is not None:
            return ContextState.CHAIN_OPEN
        if self.table is not None:
            return ContextState.TABLE_OPEN
        if self.domain is not None:
            return ContextState.DOMAIN_OPEN
        return ContextState.NO_DOMAIN


class ContextTracker:
    """State machine over classified dump lines."""

    def __init__(
        self,
        emitter: Emitter,
        parser: Optional[OptionParser] = None,
        settings: Optional[ImportSettings] = None,
        report: Optional[ImportReport] = None,
    ):
        self.emitter = emitter
        self.parser = parser or OptionParser()
        self.settings = settings or ImportSettings()
        self.report = report or ImportReport()

    def handle(self, ctx: ImportContext, line: InputLine) -> ImportContext:
        """
        Apply one input line to the context.

        Recoverable errors are reported and leave the context untouched,
        fatal ones propagate.

        Args:
            ctx: Current import context
            line: Classified input line

        Returns:
            Updated import context
        """
        handlers = {
            LineKind.BLANK: self._handle_blank,
            LineKind.COMMENT: self._handle_comment,
            LineKind.TABLE: self._handle_table,
            LineKind.CHAIN: self._handle_chain,
            LineKind.RULE: self._handle_rule,
            LineKind.COMMIT: self._handle_commit,
            LineKind.UNKNOWN: self._handle_unknown,
        }
        try:
            return handlers[line.kind](ctx, line)
        except FermImportError as e:
            if e.fatal:
                raise
            self._report(e)
            return ctx

    def finish(self, ctx: ImportContext) -> ImportContext:
        """Close everything still open at end of input."""
        self._close_domain(ctx)
        return ctx

    def _report(self, error: FermImportError) -> None:
        message = str(error)
        logger.warning(message)
        self.report.diagnostics.append(message)

    def _handle_blank(self, ctx: ImportContext, line: InputLine) -> ImportContext:
        return ctx

    def _handle_comment(self, ctx: ImportContext, line: InputLine) -> ImportContext:
        hint = domain_hint(line.text)
        if hint is not None:
            ctx.domain_hint = hint
        return ctx

    def _handle_table(self, ctx: ImportContext, line: InputLine) -> ImportContext:
        domain = ctx.domain_hint or self.settings.domain
        if ctx.domain is not None and ctx.domain != domain:
            self._close_domain(ctx)
        else:
            self._close_table(ctx)

        if ctx.domain is None:
            self.emitter.line(f"domain {domain} {{")
            ctx.domain = domain
        self.emitter.line(f"table {render_text(line.name)} {{")
        ctx.table = line.name
        return ctx

    def _handle_chain(self, ctx: ImportContext, line: InputLine) -> ImportContext:
        self._require_table(ctx, line, "chain declaration")
        if line.policy is None:
            self._close_chain(ctx)
            self.emitter.line(f"chain {render_text(line.name)} {{}}")
            return ctx
        if line.policy not in BUILTIN_POLICIES:
            raise GrammarError(f"unknown policy {line.policy!r} for chain {line.name}", line.number)
        ctx.pending_policies[line.name] = line.policy
        return ctx

    def _handle_rule(self, ctx: ImportContext, line: InputLine) -> ImportContext:
        self._require_table(ctx, line, "rule")
        if ctx.chain != line.name:
            self._close_chain(ctx)
            self._open_chain(ctx, line.name)
        tokens = tokenize(line.rest, line.number)
        ctx.rules.append(self.parser.parse(tokens, line.number))
        return ctx

    def _handle_commit(self, ctx: ImportContext, line: InputLine) -> ImportContext:
        self._require_table(ctx, line, "COMMIT")
        self._close_chain(ctx)
        return ctx

    def _handle_unknown(self, ctx: ImportContext, line: InputLine) -> ImportContext:
        raise UnrecognizedLineError(f"unrecognized line: {line.text}", line.number)

    def _require_table(self, ctx: ImportContext, line: InputLine, what: str) -> None:
        if ctx.table is None:
            raise StructuralError(f"{what} outside of a table", line.number)

    def _open_chain(self, ctx: ImportContext, name: str) -> None:
        self.emitter.line(f"chain {render_text(name)} {{")
        policy = ctx.pending_policies.pop(name, None)
        if policy is not None:
            self.emitter.line(f"policy {policy};")
        ctx.chain = name

    def _close_chain(self, ctx: ImportContext) -> None:
        if ctx.chain is None:
            return
        rules: List[Rule] = list(ctx.rules)
        if self.settings.optimize:
            rules = optimize_rules(rules)
        self.emitter.rules(rules)
        self.emitter.line("}")

        emitted = count_statements(rules)
        logger.debug("chain %s: %d rules -> %d statements", ctx.chain, len(ctx.rules), emitted)
        self.report.chains.append(ChainSummary(
            domain=ctx.domain or self.settings.domain,
            table=ctx.table or "",
            chain=ctx.chain,
            parsed=len(ctx.rules),
            emitted=emitted,
        ))
        ctx.chain = None
        ctx.rules = []

    def _close_table(self, ctx: ImportContext) -> None:
        self._close_chain(ctx)
        if ctx.table is None:
            return
        # built-in chains without rules still state their policy
        for name, policy in ctx.pending_policies.items():
            self.emitter.line(f"chain {render_text(name)} {{")
            self.emitter.line(f"policy {policy};")
            self.emitter.line("}")
        ctx.pending_policies.clear()
        self.emitter.line("}")
        ctx.table = None

    def _close_domain(self, ctx: ImportContext) -> None:
        self._close_table(ctx)
        if ctx.domain is None:
            return
        self.emitter.line("}")
        ctx.domain = None


# === Reporting ===
class Reporter:
    """Print conversion summaries."""

    def __init__(self, console: Console):
        """Initialize reporter."""
        self.console = console

    def print_summary(self, report: ImportReport) -> None:
        """Print per-chain rule counts and the diagnostics total."""
        table = Table(show_header=True, header_style="bold magenta", title="Import Summary")
        table.add_column("Domain", style="cyan")
        table.add_column("Table", style="cyan")
        table.add_column("Chain", style="white")
        table.add_column("Rules", justify="right", style="white")
        table.add_column("Statements", justify="right", style="green")

        for chain in report.chains:
            table.add_row(chain.domain, chain.table, chain.chain, str(chain.parsed), str(chain.emitted))

        self.console.print(table)
        if report.diagnostics:
            self.console.print(f"[yellow]{len(report.diagnostics)} line(s) skipped, see warnings above[/yellow]")
        else:
            self.console.print("[green]✓ All lines converted[/green]")


# === Core Importer ===
class FermImporter:
    """Main importer orchestrating all components."""

    def __init__(self, settings: Optional[ImportSettings] = None, registry: Optional[KeywordRegistry] = None):
        """Initialize importer."""
        self.settings = settings or ImportSettings()
        self.registry = registry or DEFAULT_REGISTRY

    def convert(self, lines: Iterable[str], stream: TextIO) -> ImportReport:
        """
        Convert dump lines, writing the configuration to ``stream``.

        Args:
            lines: Lines of an iptables-save dump
            stream: Output text stream

        Returns:
            Report of converted chains and skipped lines

        Raises:
            FermImportError: On fatal structural or arity errors
        """
        report = ImportReport()
        emitter = Emitter(stream, self.registry, self.settings.indent)
        if self.settings.header:
            for text in OUTPUT_HEADER:
                emitter.line(text)
            emitter.line("")

        tracker = ContextTracker(emitter, OptionParser(self.registry), self.settings, report)
        ctx = ImportContext()
        for number, text in enumerate(lines, 1):
            ctx = tracker.handle(ctx, classify_line(text, number))
        tracker.finish(ctx)
        return report


def convert_text(text: str, settings: Optional[ImportSettings] = None) -> str:
    """Convert a whole dump held in memory and return the configuration."""
    stream = io.StringIO()
    FermImporter(settings).convert(text.splitlines(), stream)
    return stream.getvalue()


def read_dump(source: str) -> List[str]:
    """Read dump lines from a file, or from stdin for ``-``."""
    try:
        if source == "-":
            return sys.stdin.read().splitlines()
        with open(source, 'r', encoding='utf-8') as f:
            return f.read().splitlines()
    except FileNotFoundError:
        raise FileNotFoundError(f"Dump file not found: {source}")
    except PermissionError:
        raise PermissionError(f"Permission denied reading: {source}")
    except UnicodeDecodeError as e:
        raise ValueError(f"Dump is not valid UTF-8: {source} (byte {e.start})") from e


# === CLI ===
def print_examples() -> None:
    """Print usage examples."""
    console = Console()

    examples = """
[bold cyan]Usage Examples:[/bold cyan]

[bold yellow]1. Convert the running IPv4 rule set:[/bold yellow]
   [green]iptables-save | fermimporter > ferm.conf[/green]

[bold yellow]2. Convert an IPv6 dump without a header comment:[/bold yellow]
   [green]fermimporter rules.v6 --domain ip6[/green]

[bold yellow]3. Keep the rule list flat and show a summary:[/bold yellow]
   [green]fermimporter rules.v4 --no-optimize --summary --output ferm.conf[/green]
"""

    console.print(examples)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Ferm Rule Importer - convert iptables-save output into ferm configuration",
        epilog=f"Version: {VERSION}",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        'input',
        nargs='?',
        default='-',
        help='iptables-save / ip6tables-save dump (default: stdin)'
    )

    parser.add_argument(
        '--domain',
        default='ip',
        help='Domain used until the dump names one (ip or ip6, default: ip)'
    )

    parser.add_argument(
        '--no-optimize',
        action='store_true',
        help='Emit one statement per rule without factoring or merging'
    )

    parser.add_argument(
        '--indent',
        type=int,
        default=4,
        help='Spaces per nesting level (default: 4)'
    )

    parser.add_argument(
        '--no-header',
        action='store_true',
        help='Omit the leading comment'
    )

    parser.add_argument(
        '--output',
        type=Path,
        help='Write the configuration to a file instead of stdout'
    )

    parser.add_argument(
        '--summary',
        action='store_true',
        help='Print per-chain rule counts to stderr'
    )

    parser.add_argument(
        '--examples',
        action='store_true',
        help='Show usage examples and exit'
    )

    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )

    args = parser.parse_args(argv)

    if args.examples:
        print_examples()
        return 0

    console = Console(stderr=True)
    setup_logging(args.verbose)

    try:
        settings = ImportSettings(
            domain=args.domain,
            optimize=not args.no_optimize,
            indent=args.indent,
            header=not args.no_header,
        )
    except ValidationError as e:
        console.print(f"[red]Error: invalid settings: {escape(str(e))}[/red]")
        return 2

    importer = FermImporter(settings)
    try:
        lines = read_dump(args.input)
        if args.output:
            with open(args.output, 'w', encoding='utf-8') as f:
                report = importer.convert(lines, f)
        else:
            report = importer.convert(lines, sys.stdout)
    except FermImportError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return 1
    except (OSError, ValueError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return 1

    if args.summary:
        Reporter(console).print_summary(report)

    return 0


if __name__ == '__main__':
    sys.exit(main())
