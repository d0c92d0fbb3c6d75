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

"""TopologyInterpreter: build host/switch test networks in namespaces.

Every ``host`` and ``switch`` becomes a network namespace named
``<netns_prefix><name>``.  ``dev`` statements naming a peer become veth
pairs; each pair is created once, no matter which side declares it.  A
switch without ``bridgedev`` bridges all of its devices into a bridge
called ``switch``.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING

from firegrid.core._errors import ConfigError, ResourceError
from firegrid.platforms.linux._runner import CommandRunner

if TYPE_CHECKING:
    from firegrid.core._model import Domain
    from firegrid.core.options import FiregridDefaults

logger = logging.getLogger(__name__)

SWITCH_BRIDGE = 'switch'


@dataclasses.dataclass(frozen=True)
class Step:
    """One command of a topology build, owned by a domain."""

    domain: str
    args: tuple[str, ...]


class TopologyInterpreter:
    def __init__(
        self,
        domains,
        options: FiregridDefaults,
        runner: CommandRunner | None = None,
    ) -> None:
        self.domains: tuple[Domain, ...] = tuple(domains)
        self.options = options
        self.runner = runner if runner is not None else CommandRunner()
        self._by_name = {}
        for domain in self.domains:
            if domain.name in self._by_name:
                raise ConfigError(
                    f'{domain.kind} {domain.name} is defined twice', line=domain.line
                )
            self._by_name[domain.name] = domain

    def namespace(self, name: str) -> str:
        return f'{self.options.netns_prefix}{name}'

    def links(self) -> list[tuple[tuple[str, str], tuple[str, str], int]]:
        """Unique veth pairs as ((domain, dev), (peer, peer dev), line)."""
        seen = set()
        links = []
        for domain in self.domains:
            for dev in domain.devs:
                if not dev.peer_domain:
                    continue
                if dev.peer_domain not in self._by_name:
                    raise ConfigError(
                        f'dev {dev.dev} connects to unknown host or switch {dev.peer_domain}',
                        line=dev.line,
                        scope=f'{domain.kind} {domain.name}',
                    )
                a = (domain.name, dev.dev)
                b = (dev.peer_domain, dev.peer_dev or dev.dev)
                key = frozenset((a, b))
                if key in seen:
                    continue
                seen.add(key)
                links.append((a, b, dev.line))
        return links

    def devices_of(self, name: str) -> list[str]:
        """Devices of a domain: declared ones plus peers pointing at it."""
        devices = [d.dev for d in self._by_name[name].devs]
        for a, b, _ in self.links():
            for end_domain, end_dev in (a, b):
                if end_domain == name and end_dev not in devices:
                    devices.append(end_dev)
        return devices

    def plan(self) -> list[Step]:
        """All commands of a build, in execution order."""
        ip = self.options.ip
        links = self.links()
        steps = []

        for domain in self.domains:
            ns = self.namespace(domain.name)
            steps.append(Step(domain.name, (ip, 'netns', 'add', ns)))
            steps.append(Step(domain.name, (ip, '-n', ns, 'link', 'set', 'lo', 'up')))

        linked = set()
        for (a_dom, a_dev), (b_dom, b_dev), _ in links:
            linked.add((a_dom, a_dev))
            linked.add((b_dom, b_dev))
            args = (ip, '-n', self.namespace(a_dom), 'link', 'add', a_dev, 'type', 'veth')
            args += ('peer', 'name', b_dev, 'netns', self.namespace(b_dom))
            steps.append(Step(a_dom, args))

        for domain in self.domains:
            ns = self.namespace(domain.name)
            for dev in domain.devs:
                if (domain.name, dev.dev) not in linked:
                    steps.append(
                        Step(domain.name, (ip, '-n', ns, 'link', 'add', dev.dev, 'type', 'dummy'))
                    )
                for address in dev.addresses:
                    steps.append(
                        Step(domain.name, (ip, '-n', ns, 'addr', 'add', address, 'dev', dev.dev))
                    )
            devices = self.devices_of(domain.name)
            for dev in devices:
                steps.append(Step(domain.name, (ip, '-n', ns, 'link', 'set', dev, 'up')))

            bridges = list(domain.bridges)
            if domain.kind == 'switch' and not bridges:
                bridges = [(SWITCH_BRIDGE, tuple(devices))]
            else:
                bridges = [(b.name, b.devices) for b in bridges]
            for bridge, members in bridges:
                steps.append(Step(domain.name, (ip, '-n', ns, 'link', 'add', bridge, 'type', 'bridge')))
                for member in members:
                    steps.append(
                        Step(domain.name, (ip, '-n', ns, 'link', 'set', member, 'master', bridge))
                    )
                steps.append(Step(domain.name, (ip, '-n', ns, 'link', 'set', bridge, 'up')))

            for route in domain.routes:
                steps.append(Step(domain.name, (ip, '-n', ns, 'route', 'add', *route)))

        for domain in self.domains:
            ns = self.namespace(domain.name)
            for command in domain.execs:
                steps.append(Step(domain.name, (ip, 'netns', 'exec', ns, *command)))
        return steps

    def start(self) -> None:
        steps = self.plan()
        created = []
        for step in steps:
            result = self.runner.run(step.args)
            if not result.ok:
                logger.error('Building %s failed, removing %d namespaces', step.domain, len(created))
                self._delete(created)
                raise ResourceError(
                    f'cannot build {step.domain}: {" ".join(step.args)}: '
                    f'{result.stderr.strip()}'
                )
            if step.args[1:3] == ('netns', 'add'):
                created.append(step.args[3])
        logger.info('Topology started: %d namespaces', len(created))

    def stop(self) -> None:
        self._delete([self.namespace(d.name) for d in self.domains])
        logger.info('Topology stopped')

    def _delete(self, namespaces) -> None:
        for ns in reversed(namespaces):
            result = self.runner.run([self.options.ip, 'netns', 'del', ns])
            if not result.ok:
                logger.debug('Namespace %s was not there', ns)

    def graph(self) -> str:
        """Graphviz DOT description of domains and links."""
        from firegrid.driver._jinja2_template import Jinja2Template

        links = [
            {'a': a, 'b': b, 'label': f'{a[1]} - {b[1]}'} for a, b, _ in self.links()
        ]
        domains = [
            {
                'name': d.name,
                'kind': d.kind,
                'addresses': [a for dev in d.devs for a in dev.addresses],
            }
            for d in self.domains
        ]
        return Jinja2Template('vnet', 'graph.j2').render({'domains': domains, 'links': links})
