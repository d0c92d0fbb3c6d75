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

"""Configuration model produced by the ConfigReader.

All objects are frozen: a block is never mutated after it closes.
"""

from __future__ import annotations

import dataclasses
from enum import StrEnum
from types import MappingProxyType

from firegrid.core._rates import RateSpec


class Direction(StrEnum):
    INBOUND = 'inbound'
    OUTBOUND = 'outbound'
    BOTH = 'both'

    def reverse(self) -> Direction:
        if self is Direction.INBOUND:
            return Direction.OUTBOUND
        if self is Direction.OUTBOUND:
            return Direction.INBOUND
        return self


DIRECTION_WORDS = {
    'inbound': Direction.INBOUND,
    'input': Direction.INBOUND,
    'in': Direction.INBOUND,
    'outbound': Direction.OUTBOUND,
    'output': Direction.OUTBOUND,
    'out': Direction.OUTBOUND,
    'both': Direction.BOTH,
}


class ActionKind(StrEnum):
    ACCEPT = 'accept'
    DROP = 'drop'
    REJECT = 'reject'
    RETURN = 'return'
    JUMP = 'jump'


ACTION_WORDS = {
    'accept': ActionKind.ACCEPT,
    'drop': ActionKind.DROP,
    'deny': ActionKind.DROP,
    'reject': ActionKind.REJECT,
    'return': ActionKind.RETURN,
    'jump': ActionKind.JUMP,
}


@dataclasses.dataclass(frozen=True, slots=True)
class Action:
    """Tagged variant: the kind plus, for JUMP, the target chain."""

    kind: ActionKind
    target: str = ''

    def __str__(self) -> str:
        if self.kind is ActionKind.JUMP:
            return f'jump {self.target}'
        return str(self.kind)


class ScopeKind(StrEnum):
    INTERFACE = 'interface'
    ROUTER = 'router'
    CHAIN = 'chain'


@dataclasses.dataclass(frozen=True, slots=True)
class RuleStatement:
    """One ``service``/``server``/``client``/``route``/``match`` line."""

    keyword: str
    line: int
    service: str = ''
    action: Action | None = None
    direction: Direction | None = None
    clause: tuple[str, ...] = ()
    log: str | None = None
    stateless: bool = False

    @property
    def is_bidirectional(self) -> bool:
        if self.keyword in ('server', 'client', 'route'):
            return True
        return self.keyword == 'service' and self.direction is None


@dataclasses.dataclass(frozen=True, slots=True)
class PolicyStatement:
    action: Action
    line: int
    direction: Direction | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class MatchClause:
    tokens: tuple[str, ...]
    line: int


@dataclasses.dataclass(frozen=True, slots=True)
class TrafficClassDecl:
    name: str
    line: int
    commit: RateSpec | None = None
    max: RateSpec | None = None
    prio: int | None = None
    qdisc: str = 'sfq'
    matches: tuple[MatchClause, ...] = ()

    @property
    def is_default(self) -> bool:
        return self.name == 'default'


@dataclasses.dataclass(frozen=True, slots=True)
class Interface:
    """An interface, router or user chain block."""

    kind: ScopeKind
    name: str
    line: int
    devices: tuple[str, ...] = ()
    direction: Direction = Direction.INBOUND
    families: tuple[int, ...] = (4, 6)
    policies: tuple[PolicyStatement, ...] = ()
    rules: tuple[RuleStatement, ...] = ()
    classes: tuple[TrafficClassDecl, ...] = ()
    rate: RateSpec | None = None

    @property
    def label(self) -> str:
        return f'{self.kind} {self.name}'

    @property
    def dev(self) -> str:
        return self.devices[0] if self.devices else ''

    @property
    def inface(self) -> str:
        return self.devices[0] if self.devices else ''

    @property
    def outface(self) -> str:
        return self.devices[1] if len(self.devices) > 1 else ''

    @property
    def has_shaping(self) -> bool:
        return self.rate is not None

    @property
    def has_filtering(self) -> bool:
        """Shaping-only interfaces produce no filter chains."""
        if self.kind is not ScopeKind.INTERFACE:
            return True
        return bool(self.rules or self.policies or not self.has_shaping)


@dataclasses.dataclass(frozen=True, slots=True)
class Limiter:
    name: str
    rate: str
    line: int
    burst: int | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class LinkDecl:
    dev: str
    line: int
    peer_domain: str = ''
    peer_dev: str = ''
    addresses: tuple[str, ...] = ()


@dataclasses.dataclass(frozen=True, slots=True)
class BridgeDecl:
    name: str
    line: int
    devices: tuple[str, ...] = ()


@dataclasses.dataclass(frozen=True, slots=True)
class Domain:
    """A ``host`` or ``switch`` of a test topology."""

    kind: str
    name: str
    line: int
    devs: tuple[LinkDecl, ...] = ()
    bridges: tuple[BridgeDecl, ...] = ()
    routes: tuple[tuple[str, ...], ...] = ()
    execs: tuple[tuple[str, ...], ...] = ()


@dataclasses.dataclass(frozen=True, slots=True)
class Configuration:
    interfaces: tuple[Interface, ...] = ()
    limiters: MappingProxyType = dataclasses.field(
        default_factory=lambda: MappingProxyType({})
    )
    domains: tuple[Domain, ...] = ()
    source: str = ''

    def filter_scopes(self) -> list[Interface]:
        return [i for i in self.interfaces if i.has_filtering]

    def shaping_scopes(self) -> list[Interface]:
        return [i for i in self.interfaces if i.has_shaping]
