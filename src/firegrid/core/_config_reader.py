# Copyright (C) 2026 Linuxfabrik <info@linuxfabrik.ch>
#
# This program is free software; you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation; either version 2 of the License, or
# (at your option) any later version.
#
# On Debian systems, the complete text of the GNU General Public License
# version 2 can be found in /usr/share/common-licenses/GPL-2.
#
# SPDX-License-Identifier: GPL-2.0-or-later

"""Reader for the line-oriented firewall/shaping/topology language.

Blocks are opened by a top-level keyword (``interface``, ``router``,
``chain``, ``host``, ``switch``) and closed by the next top-level keyword.
``{``, ``}`` and ``;`` may be used as explicit delimiters, so a whole
block can be written on one line::

    interface eth0 lan inbound { service http accept }

The reader only checks syntax and block structure.  Match clauses are
kept as token tuples and parsed by the MatchEngine during compilation;
semantic checks (unknown services, overcommitted rates, ...) belong to the
compilers.
"""

import dataclasses
import ipaddress
import logging
import pathlib
import re
import shlex
from types import MappingProxyType

from ._errors import ParseError, RangeError
from ._model import (
    ACTION_WORDS,
    DIRECTION_WORDS,
    Action,
    ActionKind,
    BridgeDecl,
    Configuration,
    Direction,
    Domain,
    Interface,
    Limiter,
    LinkDecl,
    MatchClause,
    PolicyStatement,
    RuleStatement,
    ScopeKind,
    TrafficClassDecl,
)
from ._rates import parse_rate

logger = logging.getLogger(__name__)

_NAME_RE = re.compile(r'^[A-Za-z0-9_][A-Za-z0-9_.-]*$')

_FAMILY_SUFFIXES = {'': (4, 6), '46': (4, 6), '4': (4,), '6': (6,)}

_QDISC_KINDS = frozenset({'sfq', 'fq_codel', 'pfifo', 'bfifo', 'red'})

_HEADER_OPTIONS = frozenset({'policy', 'rate', 'inface', 'outface'})


@dataclasses.dataclass
class _Statement:
    tokens: list[str]
    line: int
    opens_block: bool = False
    closes_block: bool = False

    @property
    def keyword(self) -> str:
        return self.tokens[0]


@dataclasses.dataclass
class _ClassBuilder:
    name: str
    line: int
    commit: object = None
    max: object = None
    prio: int | None = None
    qdisc: str = 'sfq'
    matches: list = dataclasses.field(default_factory=list)

    def freeze(self) -> TrafficClassDecl:
        return TrafficClassDecl(
            name=self.name,
            line=self.line,
            commit=self.commit,
            max=self.max,
            prio=self.prio,
            qdisc=self.qdisc,
            matches=tuple(self.matches),
        )


@dataclasses.dataclass
class _BlockBuilder:
    keyword: str
    name: str
    line: int
    kind: object = None
    devices: tuple = ()
    direction: Direction = Direction.INBOUND
    families: tuple = (4, 6)
    rate: object = None
    policies: list = dataclasses.field(default_factory=list)
    rules: list = dataclasses.field(default_factory=list)
    classes: list = dataclasses.field(default_factory=list)
    current_class: _ClassBuilder | None = None
    # topology
    devs: list = dataclasses.field(default_factory=list)
    bridges: list = dataclasses.field(default_factory=list)
    routes: list = dataclasses.field(default_factory=list)
    execs: list = dataclasses.field(default_factory=list)

    @property
    def is_topology(self) -> bool:
        return self.keyword in ('host', 'switch')

    def freeze(self):
        if self.is_topology:
            return Domain(
                kind=self.keyword,
                name=self.name,
                line=self.line,
                devs=tuple(self.devs),
                bridges=tuple(self.bridges),
                routes=tuple(self.routes),
                execs=tuple(self.execs),
            )
        if self.current_class is not None:
            self.classes.append(self.current_class.freeze())
            self.current_class = None
        return Interface(
            kind=self.kind,
            name=self.name,
            line=self.line,
            devices=self.devices,
            direction=self.direction,
            families=self.families,
            policies=tuple(self.policies),
            rules=tuple(self.rules),
            classes=tuple(self.classes),
            rate=self.rate,
        )


def split_statements(text: str):
    """Tokenize *text* into statements, keeping the source line numbers."""
    statements = []
    for lineno, raw in enumerate(text.splitlines(), start=1):
        lex = shlex.shlex(raw, posix=True, punctuation_chars='{};')
        lex.whitespace_split = True
        lex.commenters = '#'
        try:
            tokens = list(lex)
        except ValueError as e:
            raise ParseError(lineno, raw.strip(), str(e)) from e

        current: list[str] = []
        for tok in tokens:
            if tok and all(c in '{};' for c in tok):
                for c in tok:
                    if current:
                        statements.append(
                            _Statement(current, lineno, opens_block=c == '{')
                        )
                        current = []
                    elif c == '{':
                        raise ParseError(lineno, c, 'block opened without header')
                    if c == '}':
                        statements.append(_Statement([], lineno, closes_block=True))
            else:
                current.append(tok)
        if current:
            statements.append(_Statement(current, lineno))
    return statements


class ConfigReader:
    """Parses configuration text into a frozen Configuration."""

    TOP_LEVEL = frozenset(
        {
            'interface',
            'interface4',
            'interface6',
            'interface46',
            'router',
            'router4',
            'router6',
            'router46',
            'chain',
            'limiter',
            'host',
            'switch',
        }
    )

    def __init__(self):
        self._blocks = []
        self._limiters = {}
        self._block: _BlockBuilder | None = None
        self._explicit_block = False

    def parse(self, input_path):
        input_path = pathlib.Path(input_path)
        logger.debug('Reading configuration from %s', input_path)
        text = input_path.read_text(encoding='utf-8')
        return self.parse_text(text, source=str(input_path))

    def parse_text(self, text, source=''):
        self._blocks = []
        self._limiters = {}
        self._block = None
        self._explicit_block = False

        for stmt in split_statements(text):
            if stmt.closes_block:
                if not self._explicit_block:
                    raise ParseError(stmt.line, '}', 'unbalanced closing brace')
                self._close_block()
                continue

            keyword = stmt.keyword
            if keyword in self.TOP_LEVEL:
                if self._explicit_block:
                    raise ParseError(
                        stmt.line, keyword, 'missing closing brace before new block'
                    )
                self._close_block()
                self._top_level(stmt)
                if stmt.opens_block:
                    if self._block is None:
                        raise ParseError(stmt.line, '{', f'"{keyword}" has no block')
                    self._explicit_block = True
                continue

            if stmt.opens_block:
                raise ParseError(stmt.line, keyword, 'only blocks may open a brace')
            if self._block is None:
                raise ParseError(
                    stmt.line, keyword, 'statement outside of a block or unknown keyword'
                )
            self._nested(stmt)

        if self._explicit_block:
            raise ParseError(0, '{', 'unterminated block at end of file')
        self._close_block()

        interfaces = tuple(b for b in self._blocks if isinstance(b, Interface))
        domains = tuple(b for b in self._blocks if isinstance(b, Domain))
        logger.debug(
            'Parsed %d filter/shaping blocks and %d topology domains',
            len(interfaces),
            len(domains),
        )
        return Configuration(
            interfaces=interfaces,
            limiters=MappingProxyType(dict(self._limiters)),
            domains=domains,
            source=source,
        )

    def _close_block(self):
        if self._block is not None:
            self._blocks.append(self._block.freeze())
        self._block = None
        self._explicit_block = False

    # -- Top level --

    def _top_level(self, stmt):
        keyword = stmt.keyword
        base = keyword.rstrip('46')
        suffix = keyword[len(base) :]
        if base == 'interface':
            self._parse_interface(stmt, _FAMILY_SUFFIXES[suffix])
        elif base == 'router':
            self._parse_router(stmt, _FAMILY_SUFFIXES[suffix])
        elif keyword == 'chain':
            self._parse_chain(stmt)
        elif keyword == 'limiter':
            self._parse_limiter(stmt)
        else:
            name = self._expect_name(stmt, 1)
            if len(stmt.tokens) > 2:
                raise ParseError(stmt.line, stmt.tokens[2], 'unexpected argument')
            self._block = _BlockBuilder(keyword=keyword, name=name, line=stmt.line)

    def _parse_interface(self, stmt, families):
        tokens = stmt.tokens
        if len(tokens) < 2:
            raise ParseError(stmt.line, tokens[0], 'missing device name')
        dev = tokens[1]
        rest = tokens[2:]
        name = re.sub(r'[^A-Za-z0-9_]', '_', dev)
        if rest and rest[0] not in DIRECTION_WORDS and rest[0] not in _HEADER_OPTIONS:
            name = self._check_name(stmt.line, rest[0])
            rest = rest[1:]
        block = _BlockBuilder(
            keyword='interface',
            name=name,
            line=stmt.line,
            kind=ScopeKind.INTERFACE,
            devices=(dev,),
            families=families,
        )
        self._parse_header_options(stmt, block, rest, allow_rate=True)
        self._block = block

    def _parse_router(self, stmt, families):
        name = self._expect_name(stmt, 1)
        block = _BlockBuilder(
            keyword='router',
            name=name,
            line=stmt.line,
            kind=ScopeKind.ROUTER,
            families=families,
        )
        self._parse_header_options(stmt, block, stmt.tokens[2:], allow_rate=False)
        if len(block.devices) != 2 or not all(block.devices):
            raise ParseError(stmt.line, name, 'router needs both inface and outface')
        self._block = block

    def _parse_chain(self, stmt):
        name = self._expect_name(stmt, 1)
        block = _BlockBuilder(
            keyword='chain', name=name, line=stmt.line, kind=ScopeKind.CHAIN
        )
        rest = stmt.tokens[2:]
        if rest:
            if rest[0] != 'policy' or len(rest) != 2:
                raise ParseError(stmt.line, rest[0], 'expected "policy <action>"')
            action = self._parse_action(stmt.line, rest[1:])[0]
            block.policies.append(PolicyStatement(action=action, line=stmt.line))
        self._block = block

    def _parse_header_options(self, stmt, block, rest, allow_rate):
        inface = outface = ''
        i = 0
        while i < len(rest):
            tok = rest[i]
            if tok in DIRECTION_WORDS:
                block.direction = DIRECTION_WORDS[tok]
                i += 1
                continue
            if i + 1 >= len(rest):
                raise ParseError(stmt.line, tok, 'missing value')
            value = rest[i + 1]
            if tok == 'policy':
                action, used = self._parse_action(stmt.line, rest[i + 1 :])
                block.policies.append(PolicyStatement(action=action, line=stmt.line))
                i += 1 + used
                continue
            if tok == 'rate' and allow_rate:
                block.rate = parse_rate(value, stmt.line, allow_percent=False)
            elif tok == 'inface' and block.kind is ScopeKind.ROUTER:
                inface = value
            elif tok == 'outface' and block.kind is ScopeKind.ROUTER:
                outface = value
            else:
                raise ParseError(stmt.line, tok, 'unknown header option')
            i += 2
        if block.kind is ScopeKind.ROUTER:
            block.devices = (inface, outface)
        if block.rate is not None and block.direction is Direction.BOTH:
            raise ParseError(
                stmt.line, 'both', 'a shaping interface must be input or output'
            )

    def _parse_limiter(self, stmt):
        tokens = stmt.tokens
        if len(tokens) not in (3, 5):
            raise ParseError(stmt.line, tokens[0], 'expected "limiter <name> <rate> [burst N]"')
        name = self._check_name(stmt.line, tokens[1])
        burst = None
        if len(tokens) == 5:
            if tokens[3] != 'burst':
                raise ParseError(stmt.line, tokens[3], 'expected "burst"')
            burst = self._parse_int(stmt.line, tokens[4])
        if name in self._limiters:
            raise ParseError(stmt.line, name, 'limiter defined twice')
        self._limiters[name] = Limiter(
            name=name, rate=tokens[2], line=stmt.line, burst=burst
        )
        self._block = None

    # -- Nested --

    def _nested(self, stmt):
        block = self._block
        keyword = stmt.keyword
        if block.is_topology:
            handler = {
                'dev': self._topo_dev,
                'bridgedev': self._topo_bridge,
                'route': self._topo_route,
                'exec': self._topo_exec,
            }.get(keyword)
        else:
            handler = {
                'policy': self._policy,
                'service': self._rule,
                'server': self._rule,
                'client': self._rule,
                'route': self._rule,
                'match': self._match,
                'class': self._class,
                'commit': self._class_rate,
                'max': self._class_rate,
                'ceil': self._class_rate,
            }.get(keyword)
        if handler is None:
            raise ParseError(
                stmt.line, keyword, f'unknown statement inside {block.keyword} block'
            )
        handler(block, stmt)

    def _policy(self, block, stmt):
        rest = stmt.tokens[1:]
        if not rest:
            raise ParseError(stmt.line, 'policy', 'missing action')
        action, used = self._parse_action(stmt.line, rest)
        direction = None
        tail = rest[used:]
        if tail:
            if len(tail) > 1 or tail[0] not in DIRECTION_WORDS:
                raise ParseError(stmt.line, tail[0], 'unexpected argument')
            direction = DIRECTION_WORDS[tail[0]]
            if direction is Direction.BOTH:
                direction = None
        block.policies.append(
            PolicyStatement(action=action, line=stmt.line, direction=direction)
        )

    def _rule(self, block, stmt):
        keyword = stmt.keyword
        if keyword == 'route' and block.kind is not ScopeKind.ROUTER:
            raise ParseError(stmt.line, keyword, '"route" is only valid in routers')
        if block.kind is ScopeKind.CHAIN and keyword in ('server', 'client', 'route'):
            raise ParseError(stmt.line, keyword, f'"{keyword}" is not valid in chains')
        if len(stmt.tokens) < 2:
            raise ParseError(stmt.line, keyword, 'missing service name')
        service = stmt.tokens[1]
        block.rules.append(
            self._rule_statement(stmt, keyword, stmt.tokens[2:], service=service)
        )

    def _match(self, block, stmt):
        if block.current_class is not None:
            if len(stmt.tokens) < 2:
                raise ParseError(stmt.line, 'match', 'empty match')
            block.current_class.matches.append(
                MatchClause(tokens=tuple(stmt.tokens[1:]), line=stmt.line)
            )
            return
        if block.rate is not None:
            raise ParseError(stmt.line, 'match', 'match before the first class')
        block.rules.append(self._rule_statement(stmt, 'match', stmt.tokens[1:]))

    def _rule_statement(self, stmt, keyword, args, service=''):
        action = None
        direction = None
        log = None
        stateless = False
        clause = []
        i = 0
        while i < len(args):
            tok = args[i]
            if tok in ACTION_WORDS:
                if action is not None:
                    raise ParseError(stmt.line, tok, 'more than one action')
                action, used = self._parse_action(stmt.line, args[i:])
                i += used
                continue
            if tok in ('inbound', 'outbound') and keyword in ('service', 'match'):
                if direction is not None:
                    raise ParseError(stmt.line, tok, 'more than one direction')
                direction = DIRECTION_WORDS[tok]
            elif tok == 'log':
                if i + 1 >= len(args):
                    raise ParseError(stmt.line, tok, 'missing log prefix')
                log = args[i + 1]
                i += 1
            elif tok == 'stateless':
                stateless = True
            else:
                clause.append(tok)
            i += 1
        if keyword == 'match' and action is None:
            raise ParseError(stmt.line, keyword, 'match statement without action')
        return RuleStatement(
            keyword=keyword,
            line=stmt.line,
            service=service,
            action=action,
            direction=direction,
            clause=tuple(clause),
            log=log,
            stateless=stateless,
        )

    def _class(self, block, stmt):
        if block.rate is None:
            raise ParseError(
                stmt.line, 'class', 'classes need an interface with a "rate"'
            )
        name = self._expect_name(stmt, 1)
        if block.current_class is not None:
            block.classes.append(block.current_class.freeze())
        cls = _ClassBuilder(name=name, line=stmt.line)
        rest = stmt.tokens[2:]
        i = 0
        while i < len(rest):
            tok = rest[i]
            if i + 1 >= len(rest):
                raise ParseError(stmt.line, tok, 'missing value')
            value = rest[i + 1]
            if tok in ('commit', 'rate'):
                cls.commit = parse_rate(value, stmt.line)
            elif tok in ('max', 'ceil'):
                cls.max = parse_rate(value, stmt.line)
            elif tok in ('prio', 'priority'):
                cls.prio = self._parse_int(stmt.line, value, 0, 7)
            elif tok == 'qdisc':
                if value not in _QDISC_KINDS:
                    raise ParseError(stmt.line, value, 'unsupported qdisc')
                cls.qdisc = value
            else:
                raise ParseError(stmt.line, tok, 'unknown class option')
            i += 2
        block.current_class = cls

    def _class_rate(self, block, stmt):
        if block.current_class is None:
            raise ParseError(stmt.line, stmt.keyword, 'no class to apply the rate to')
        if len(stmt.tokens) != 2:
            raise ParseError(stmt.line, stmt.keyword, 'expected exactly one rate')
        rate = parse_rate(stmt.tokens[1], stmt.line)
        if stmt.keyword == 'commit':
            block.current_class.commit = rate
        else:
            block.current_class.max = rate

    # -- Topology --

    def _topo_dev(self, block, stmt):
        tokens = stmt.tokens
        if len(tokens) < 2:
            raise ParseError(stmt.line, 'dev', 'missing device name')
        dev = tokens[1]
        peer_domain = peer_dev = ''
        addresses = []
        for tok in tokens[2:]:
            try:
                ipaddress.ip_interface(tok)
            except ValueError:
                if '/' not in tok or peer_domain:
                    raise ParseError(stmt.line, tok, 'expected peer or address') from None
                peer_domain, peer_dev = tok.split('/', 1)
                continue
            addresses.append(tok)
        block.devs.append(
            LinkDecl(
                dev=dev,
                line=stmt.line,
                peer_domain=peer_domain,
                peer_dev=peer_dev,
                addresses=tuple(addresses),
            )
        )

    def _topo_bridge(self, block, stmt):
        if len(stmt.tokens) < 2:
            raise ParseError(stmt.line, 'bridgedev', 'missing bridge name')
        block.bridges.append(
            BridgeDecl(
                name=stmt.tokens[1], line=stmt.line, devices=tuple(stmt.tokens[2:])
            )
        )

    def _topo_route(self, block, stmt):
        if len(stmt.tokens) < 2:
            raise ParseError(stmt.line, 'route', 'missing route')
        block.routes.append(tuple(stmt.tokens[1:]))

    def _topo_exec(self, block, stmt):
        if len(stmt.tokens) < 2:
            raise ParseError(stmt.line, 'exec', 'missing command')
        block.execs.append(tuple(stmt.tokens[1:]))

    # -- Helpers --

    def _parse_action(self, line, tokens):
        """Parse an action at the start of *tokens*; return it and tokens used."""
        word = tokens[0]
        kind = ACTION_WORDS.get(word)
        if kind is None:
            raise ParseError(line, word, 'unknown action')
        if kind is ActionKind.JUMP:
            if len(tokens) < 2:
                raise ParseError(line, word, 'jump needs a target chain')
            return Action(kind, self._check_name(line, tokens[1])), 2
        return Action(kind), 1

    def _expect_name(self, stmt, index):
        if len(stmt.tokens) <= index:
            raise ParseError(stmt.line, stmt.keyword, 'missing name')
        return self._check_name(stmt.line, stmt.tokens[index])

    @staticmethod
    def _check_name(line, name):
        if not _NAME_RE.match(name):
            raise ParseError(line, name, 'invalid name')
        return name

    @staticmethod
    def _parse_int(line, text, low=0, high=None):
        try:
            value = int(text)
        except ValueError:
            raise ParseError(line, text, 'expected an integer') from None
        if value < low or (high is not None and value > high):
            raise RangeError(line, text, f'value outside {low}..{high}')
        return value
