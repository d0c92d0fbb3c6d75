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

"""Match expressions: parsing and normalization of packet predicates.

A clause is written from the point of view of the request packet:
``src`` is the client, ``dst`` the server.  The only direction relative
keywords are ``server <svc>`` and ``client <svc>``: on an inbound
direction a server service matches the destination port, on an outbound
direction the source port, and ``client`` does the opposite.

Grammar (tokens may appear in any order, each keyword at most once)::

    [tcp|udp|...[,...]] proto P[,P...] sport PORTS dport PORTS port PORTS
    src ADDRS dst ADDRS mac MAC limit RATE [burst N] state STATES
    server SVC client SVC all|any
"""

from __future__ import annotations

import dataclasses
import ipaddress
import re
import shlex
from typing import TYPE_CHECKING

from firegrid.core._errors import ConfigError, ParseError, RangeError
from firegrid.core._model import Direction
from firegrid.core._services import PORT_PROTOCOLS, PROTOCOLS, PortRange, parse_ports

if TYPE_CHECKING:
    from collections.abc import Mapping

    from firegrid.core._model import Limiter
    from firegrid.core._services import MatchTemplate, ServiceCatalog

CONNTRACK_STATES = ('NEW', 'ESTABLISHED', 'RELATED', 'INVALID', 'UNTRACKED')

_MAC_RE = re.compile(r'^[0-9a-f]{2}(:[0-9a-f]{2}){5}$', re.IGNORECASE)
_LIMIT_RE = re.compile(r'^(\d+)/(s|sec|second|m|min|minute|h|hour|d|day)$')
_LIMIT_UNITS = {
    's': 'second',
    'sec': 'second',
    'second': 'second',
    'm': 'minute',
    'min': 'minute',
    'minute': 'minute',
    'h': 'hour',
    'hour': 'hour',
    'd': 'day',
    'day': 'day',
}

_KEYWORD_ALIASES = {
    'protocol': 'proto',
    'port': 'dport',
    'saddr': 'src',
    'daddr': 'dst',
    'any': 'all',
}

_VALUE_KEYWORDS = frozenset(
    {'proto', 'sport', 'dport', 'src', 'dst', 'mac', 'limit', 'state', 'server', 'client'}
)


@dataclasses.dataclass(frozen=True, slots=True)
class Endpoint:
    """One side of a packet: addresses, ports and (source only) MAC."""

    addresses: tuple = ()
    ports: tuple[PortRange, ...] = ()
    mac: str = ''

    def is_any(self) -> bool:
        return not (self.addresses or self.ports or self.mac)

    def for_family(self, family: int) -> Endpoint | None:
        """Restrict addresses to *family*; None if nothing remains."""
        if not self.addresses:
            return self
        kept = tuple(a for a in self.addresses if a.version == family)
        if not kept:
            return None
        return dataclasses.replace(self, addresses=kept)


@dataclasses.dataclass(frozen=True, slots=True)
class RateLimit:
    rate: int
    unit: str
    burst: int | None = None
    name: str = ''

    def __str__(self) -> str:
        return f'{self.rate}/{self.unit}'


@dataclasses.dataclass(frozen=True, slots=True)
class MatchPredicate:
    """A normalized packet predicate.

    Empty fields mean "any".  ``match_all`` marks a deliberately
    unrestricted predicate (``all``/``any`` in the configuration).
    """

    protocol: str = ''
    src: Endpoint = Endpoint()
    dst: Endpoint = Endpoint()
    limit: RateLimit | None = None
    state: tuple[str, ...] = ()
    match_all: bool = False

    def is_empty(self) -> bool:
        return (
            not self.protocol
            and self.src.is_any()
            and self.dst.is_any()
            and self.limit is None
            and not self.state
        )

    @property
    def has_ports(self) -> bool:
        return bool(self.src.ports or self.dst.ports)

    def swapped(self) -> MatchPredicate:
        return dataclasses.replace(self, src=self.dst, dst=self.src)

    def for_family(self, family: int) -> MatchPredicate | None:
        """Return the predicate restricted to *family*, or None."""
        if self.protocol == 'icmpv6' and family == 4:
            return None
        src = self.src.for_family(family)
        dst = self.dst.for_family(family)
        if src is None or dst is None:
            return None
        protocol = self.protocol
        if protocol == 'icmp' and family == 6:
            protocol = 'icmpv6'
        return dataclasses.replace(self, protocol=protocol, src=src, dst=dst)

    def __str__(self) -> str:
        if self.match_all:
            return 'all'
        parts = []
        if self.protocol:
            parts.append(f'proto {self.protocol}')
        for name, ep in (('src', self.src), ('dst', self.dst)):
            if ep.addresses:
                parts.append(f'{name} {",".join(str(a) for a in ep.addresses)}')
        if self.src.ports:
            parts.append(f'sport {",".join(str(p) for p in self.src.ports)}')
        if self.dst.ports:
            parts.append(f'dport {",".join(str(p) for p in self.dst.ports)}')
        if self.src.mac:
            parts.append(f'mac {self.src.mac}')
        if self.limit is not None:
            parts.append(f'limit {self.limit}')
        if self.state:
            parts.append(f'state {",".join(self.state)}')
        return ' '.join(parts)


MATCH_ALL = MatchPredicate(match_all=True)


def parse_addresses(text: str, line: int = 0) -> tuple:
    """Parse a comma separated list of CIDR networks or bare addresses."""
    result = []
    for item in text.split(','):
        item = item.strip()
        if not item:
            raise ParseError(line, text, 'empty address')
        addr, sep, prefix = item.partition('/')
        try:
            ip = ipaddress.ip_address(addr)
        except ValueError:
            raise ParseError(line, item, 'invalid address') from None
        if sep:
            if not prefix.isdigit():
                raise ParseError(line, item, 'invalid prefix length')
            if int(prefix) > ip.max_prefixlen:
                raise RangeError(
                    line, item, f'prefix length outside 0..{ip.max_prefixlen}'
                )
        result.append(ipaddress.ip_network(item, strict=False))
    return tuple(result)


class MatchEngine:
    """Parses match clauses and merges them with catalog templates."""

    def __init__(
        self,
        catalog: ServiceCatalog,
        limiters: Mapping[str, Limiter] | None = None,
    ) -> None:
        self.catalog = catalog
        self.limiters = dict(limiters or {})

    def parse_match(self, clause, direction: Direction, line: int = 0) -> MatchPredicate:
        """Parse *clause* into exactly one predicate."""
        predicates = self.parse_matches(clause, direction, line)
        if len(predicates) != 1:
            raise ParseError(
                line,
                ' '.join(self._tokens(clause, line)),
                f'clause expands to {len(predicates)} predicates',
            )
        return predicates[0]

    def parse_matches(
        self, clause, direction: Direction, line: int = 0
    ) -> list[MatchPredicate]:
        """Parse *clause*, yielding one predicate per protocol."""
        return [predicate for predicate, _, _ in self.parse_match_templates(clause, direction, line)]

    def parse_match_templates(
        self, clause, direction: Direction, line: int = 0
    ) -> list[tuple[MatchPredicate, str, MatchTemplate | None]]:
        """Like parse_matches, returning (predicate, service, template) triples.

        Service and template are only set when the clause names a
        ``server`` or ``client`` service.
        """
        tokens = self._tokens(clause, line)
        if not tokens:
            raise ParseError(line, '', 'empty match')

        values: dict[str, str] = {}
        burst = None
        match_all = False
        i = 0
        if tokens[0].split(',')[0].lower() in PROTOCOLS and tokens[0] not in (
            'all',
        ):
            values['proto'] = tokens[0]
            i = 1
        while i < len(tokens):
            tok = tokens[i]
            keyword = _KEYWORD_ALIASES.get(tok, tok)
            if keyword == 'all':
                match_all = True
                i += 1
                continue
            if keyword == 'burst' and 'limit' in values and burst is None:
                if i + 1 >= len(tokens):
                    raise ParseError(line, tok, 'missing value')
                burst = self._parse_burst(tokens[i + 1], line)
                i += 2
                continue
            if keyword not in _VALUE_KEYWORDS:
                raise ParseError(line, tok, 'unknown match keyword')
            if keyword in values or (keyword in ('server', 'client') and self._has_service(values)):
                raise ParseError(line, tok, 'keyword given more than once')
            if i + 1 >= len(tokens):
                raise ParseError(line, tok, 'missing value')
            values[keyword] = tokens[i + 1]
            i += 2

        if match_all:
            if values:
                raise ParseError(line, 'all', '"all" cannot be combined with other matches')
            return [(MATCH_ALL, '', None)]

        src = Endpoint(
            addresses=parse_addresses(values['src'], line) if 'src' in values else (),
            ports=parse_ports(values['sport'], line) if 'sport' in values else (),
            mac=self._parse_mac(values['mac'], line) if 'mac' in values else '',
        )
        dst = Endpoint(
            addresses=parse_addresses(values['dst'], line) if 'dst' in values else (),
            ports=parse_ports(values['dport'], line) if 'dport' in values else (),
        )
        limit = self._parse_limit(values['limit'], burst, line) if 'limit' in values else None
        state = self._parse_state(values['state'], line) if 'state' in values else ()
        base = MatchPredicate(src=src, dst=dst, limit=limit, state=state)

        if 'server' in values or 'client' in values:
            if 'proto' in values:
                raise ParseError(line, values['proto'], 'protocol given with a service')
            role = 'server' if 'server' in values else 'client'
            return self._service_predicates(base, values[role], role, direction, line)

        if 'proto' not in values:
            if base.is_empty():
                raise ParseError(line, ' '.join(tokens), 'empty match')
            return [(base, '', None)]
        result = []
        for protocol in self._parse_protocols(values['proto'], line):
            predicate = dataclasses.replace(base, protocol=protocol)
            # an empty predicate here comes from an explicit "proto all"
            result.append((MATCH_ALL if predicate.is_empty() else predicate, '', None))
        return result

    def resolve_service(self, name: str, line: int = 0, scope: str = '') -> list[MatchPredicate]:
        """One predicate per template of service *name* (server ports on dst)."""
        return [
            self.apply_template(t, MatchPredicate(), line=line, scope=scope)
            for t in self.catalog.lookup(name, line=line, scope=scope)
        ]

    def apply_template(
        self,
        template: MatchTemplate,
        predicate: MatchPredicate,
        line: int = 0,
        scope: str = '',
    ) -> MatchPredicate:
        """Merge a catalog template into the extra matches of a statement."""
        if predicate.match_all:
            predicate = MatchPredicate()
        protocol = template.protocol if template.protocol != 'all' else ''
        if protocol and predicate.protocol and predicate.protocol != protocol:
            raise ConfigError(
                f'protocol {predicate.protocol} conflicts with service protocol {protocol}',
                line=line,
                scope=scope,
            )
        if template.ports and predicate.dst.ports:
            raise ConfigError(
                'destination ports set by both the service and the statement',
                line=line,
                scope=scope,
            )
        if template.client_ports and predicate.src.ports:
            raise ConfigError(
                'source ports set by both the service and the statement',
                line=line,
                scope=scope,
            )
        merged = dataclasses.replace(
            predicate,
            protocol=protocol or predicate.protocol,
            src=dataclasses.replace(
                predicate.src, ports=template.client_ports or predicate.src.ports
            ),
            dst=dataclasses.replace(
                predicate.dst, ports=template.ports or predicate.dst.ports
            ),
        )
        self.check_ports(merged, line, scope)
        if merged.is_empty():
            if template.protocol != 'all':
                raise ParseError(line, str(template), 'empty match')
            return MATCH_ALL
        return merged

    @staticmethod
    def expand_bidirectional(predicate: MatchPredicate) -> tuple[MatchPredicate, MatchPredicate]:
        """Return the request predicate and its exact mirror for replies."""
        return predicate, predicate.swapped()

    @staticmethod
    def check_ports(predicate: MatchPredicate, line: int = 0, scope: str = '') -> None:
        if predicate.has_ports and predicate.protocol not in PORT_PROTOCOLS:
            raise ConfigError(
                'ports require one of the protocols ' + ', '.join(sorted(PORT_PROTOCOLS)),
                line=line,
                scope=scope,
            )

    # -- Helpers --

    @staticmethod
    def _tokens(clause, line):
        if isinstance(clause, str):
            try:
                return shlex.split(clause, comments=True)
            except ValueError as e:
                raise ParseError(line, clause, str(e)) from e
        return list(clause)

    @staticmethod
    def _has_service(values):
        return 'server' in values or 'client' in values

    def _service_predicates(self, base, name, role, direction, line):
        inbound = direction is not Direction.OUTBOUND
        # server+inbound and client+outbound put the service ports on dst
        on_dst = inbound == (role == 'server')
        predicates = []
        for template in self.catalog.lookup(name, line=line):
            pred = self.apply_template(template, MatchPredicate(), line=line)
            if not on_dst:
                pred = pred.swapped()
            for side in ('src', 'dst'):
                ours, theirs = getattr(base, side), getattr(pred, side)
                if ours.ports and theirs.ports:
                    raise ParseError(line, name, f'{side} ports set twice')
            merged = dataclasses.replace(
                base,
                protocol=pred.protocol,
                src=dataclasses.replace(base.src, ports=base.src.ports or pred.src.ports),
                dst=dataclasses.replace(base.dst, ports=base.dst.ports or pred.dst.ports),
            )
            # "server all" with nothing else is the match-all sentinel
            predicates.append((MATCH_ALL if merged.is_empty() else merged, name, template))
        return predicates

    @staticmethod
    def _parse_protocols(text, line):
        protocols = []
        for p in text.split(','):
            p = p.strip().lower()
            if p not in PROTOCOLS:
                raise ParseError(line, p, 'unknown protocol')
            if p == 'all':
                p = ''
            if p not in protocols:
                protocols.append(p)
        return protocols

    @staticmethod
    def _parse_mac(text, line):
        if not _MAC_RE.match(text):
            raise ParseError(line, text, 'invalid MAC address')
        return text.lower()

    @staticmethod
    def _parse_burst(text, line):
        if not text.isdigit():
            raise ParseError(line, text, 'invalid burst')
        value = int(text)
        if not 1 <= value <= 10000:
            raise RangeError(line, text, 'burst outside 1..10000')
        return value

    def _parse_limit(self, text, burst, line):
        m = _LIMIT_RE.match(text)
        if m:
            rate = int(m.group(1))
            if rate < 1:
                raise RangeError(line, text, 'limit rate must be at least 1')
            return RateLimit(rate=rate, unit=_LIMIT_UNITS[m.group(2)], burst=burst)
        limiter = self.limiters.get(text)
        if limiter is None:
            raise ParseError(line, text, 'invalid limit or unknown limiter')
        named = _LIMIT_RE.match(limiter.rate)
        if not named:
            raise ParseError(limiter.line, limiter.rate, 'invalid limiter rate')
        return RateLimit(
            rate=int(named.group(1)),
            unit=_LIMIT_UNITS[named.group(2)],
            burst=burst if burst is not None else limiter.burst,
            name=limiter.name,
        )

    @staticmethod
    def _parse_state(text, line):
        states = set()
        for s in text.split(','):
            s = s.strip().upper()
            if s not in CONNTRACK_STATES:
                raise ParseError(line, s, 'unknown connection state')
            states.add(s)
        return tuple(s for s in CONNTRACK_STATES if s in states)
