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

"""Service catalog: named protocol/port templates.

The built-in catalog ships as ``resources/services.yml``.  Each entry maps
a service name to one or more templates::

    dns:
      - udp/53
      - tcp/53
    ftp:
      - match: tcp/21
        helper: ftp

A template is ``<protocol>[/<ports>]`` where ports is a comma separated
list of ports or ``low:high`` ranges.  Entries may carry ``client_ports``
(restricting the client side), ``helper`` (a connection-tracking helper)
and ``action`` (the default action of the service).
"""

from __future__ import annotations

import dataclasses
import importlib.resources
import logging
import pathlib
from types import MappingProxyType

import yaml

from firegrid.core._errors import ConfigError, ParseError, RangeError, UnknownService
from firegrid.core._model import ACTION_WORDS, Action, ActionKind

logger = logging.getLogger(__name__)

PROTOCOLS = frozenset(
    {
        'all',
        'tcp',
        'udp',
        'icmp',
        'icmpv6',
        'sctp',
        'gre',
        'esp',
        'ah',
        'udplite',
        'igmp',
    }
)

PORT_PROTOCOLS = frozenset({'tcp', 'udp', 'sctp', 'udplite'})


@dataclasses.dataclass(frozen=True, slots=True, order=True)
class PortRange:
    low: int
    high: int

    def __str__(self) -> str:
        if self.low == self.high:
            return str(self.low)
        return f'{self.low}:{self.high}'


def parse_ports(text: str, line: int = 0) -> tuple[PortRange, ...]:
    """Parse ``80``, ``5000:5010`` or a comma separated list of both."""
    ranges = []
    for item in text.split(','):
        item = item.strip()
        if not item:
            raise ParseError(line, text, 'empty port')
        low_text, sep, high_text = item.partition(':')
        if not sep:
            sep, high_text = ':', low_text
        for part in (low_text, high_text):
            if not part.isdigit():
                raise ParseError(line, item, 'invalid port')
        low, high = int(low_text), int(high_text)
        if high > 65535 or low > 65535:
            raise RangeError(line, item, 'port outside 0..65535')
        if low > high:
            raise RangeError(line, item, 'inverted port range')
        ranges.append(PortRange(low, high))
    return tuple(ranges)


@dataclasses.dataclass(frozen=True, slots=True)
class MatchTemplate:
    """One protocol of a service, with the server side ports."""

    protocol: str
    ports: tuple[PortRange, ...] = ()
    client_ports: tuple[PortRange, ...] = ()
    helper: str = ''

    def __str__(self) -> str:
        if not self.ports:
            return self.protocol
        return f'{self.protocol}/{",".join(str(p) for p in self.ports)}'


@dataclasses.dataclass(frozen=True, slots=True)
class Service:
    name: str
    templates: tuple[MatchTemplate, ...]
    action: Action = Action(ActionKind.ACCEPT)

    @property
    def helpers(self) -> tuple[str, ...]:
        return tuple(sorted({t.helper for t in self.templates if t.helper}))


def parse_template(text: str, helper: str = '', client_ports: str = '') -> MatchTemplate:
    protocol, _, ports = str(text).strip().partition('/')
    protocol = protocol.lower()
    if protocol not in PROTOCOLS:
        raise ParseError(0, text, f'unknown protocol "{protocol}"')
    if (ports or client_ports) and protocol not in PORT_PROTOCOLS:
        raise ParseError(0, text, f'protocol "{protocol}" has no ports')
    return MatchTemplate(
        protocol=protocol,
        ports=parse_ports(ports) if ports else (),
        client_ports=parse_ports(str(client_ports)) if client_ports else (),
        helper=helper or '',
    )


class ServiceCatalog:
    """Read-only mapping of service names to match templates."""

    def __init__(self, services: dict[str, Service] | None = None) -> None:
        self._services = MappingProxyType(dict(services or {}))

    @property
    def services(self) -> MappingProxyType:
        return self._services

    def __contains__(self, name: str) -> bool:
        return name in self._services

    def __len__(self) -> int:
        return len(self._services)

    def names(self) -> list[str]:
        return sorted(self._services)

    def get(self, name: str) -> Service:
        try:
            return self._services[name]
        except KeyError:
            raise UnknownService(name) from None

    def lookup(self, name: str, line: int = 0, scope: str = '') -> tuple[MatchTemplate, ...]:
        """Return every template of *name* (one per protocol)."""
        service = self._services.get(name)
        if service is None:
            raise UnknownService(name, line=line, scope=scope)
        return service.templates

    @classmethod
    def load(cls, extra_files=()) -> ServiceCatalog:
        """Load the built-in catalog and merge *extra_files* into it.

        Redefining a name that an earlier file already defined is a
        ConfigError.
        """
        services: dict[str, Service] = {}
        builtin = importlib.resources.files('firegrid').joinpath(
            'resources', 'services.yml'
        )
        cls._merge(services, builtin.read_text(encoding='utf-8'), 'services.yml')
        for path in extra_files:
            path = pathlib.Path(path)
            logger.debug('Loading services from %s', path)
            cls._merge(services, path.read_text(encoding='utf-8'), str(path))
        logger.debug('Service catalog holds %d services', len(services))
        return cls(services)

    @classmethod
    def from_yaml(cls, text: str, source: str = '<string>') -> ServiceCatalog:
        services: dict[str, Service] = {}
        cls._merge(services, text, source)
        return cls(services)

    @staticmethod
    def _merge(services: dict[str, Service], text: str, source: str) -> None:
        data = yaml.safe_load(text) or {}
        if not isinstance(data, dict):
            raise ConfigError(f'{source}: expected a mapping of services')
        for name, entries in data.items():
            name = str(name)
            if name in services:
                raise ConfigError(f'{source}: service "{name}" is already defined')
            if not isinstance(entries, list):
                entries = [entries]
            templates = []
            action = Action(ActionKind.ACCEPT)
            for entry in entries:
                try:
                    if isinstance(entry, dict):
                        if 'action' in entry:
                            kind = ACTION_WORDS.get(str(entry['action']))
                            if kind is None or kind is ActionKind.JUMP:
                                raise ConfigError(
                                    f'{source}: service "{name}" has an invalid action'
                                )
                            action = Action(kind)
                        templates.append(
                            parse_template(
                                entry['match'],
                                helper=entry.get('helper', ''),
                                client_ports=entry.get('client_ports', ''),
                            )
                        )
                    else:
                        templates.append(parse_template(entry))
                except (KeyError, ParseError) as e:
                    raise ConfigError(
                        f'{source}: service "{name}" has an invalid template: {e}'
                    ) from e
            if not templates:
                raise ConfigError(f'{source}: service "{name}" has no templates')
            services[name] = Service(name=name, templates=tuple(templates), action=action)
