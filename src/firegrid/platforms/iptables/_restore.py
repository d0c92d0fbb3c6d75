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

"""RestoreWriter: one iptables-restore payload per address family.

The payload replaces the raw and filter tables atomically.  While
rendering, every ``-A`` and chain declaration line is mapped back to the
primitive it came from, so a failure reported by iptables-restore
(``line N failed``) can be traced to a configuration statement.
"""

from __future__ import annotations

import dataclasses
import logging

import firegrid
from firegrid.compiler._primitives import ChainPrimitive, FilterPrimitive, HelperPrimitive
from firegrid.platforms.iptables._print_rule import PrintRule

logger = logging.getLogger(__name__)

TABLES = ('raw', 'filter')
RAW_BUILTINS = ('PREROUTING', 'OUTPUT')


@dataclasses.dataclass
class RenderedPayload:
    text: str
    line_map: dict[int, object] = dataclasses.field(default_factory=dict)

    def primitive_at(self, lineno: int):
        return self.line_map.get(lineno)


class RestoreWriter:
    def __init__(self) -> None:
        from firegrid.driver._jinja2_template import Jinja2Template

        self.print_rule = PrintRule()
        self._ruleset = Jinja2Template('iptables', 'ruleset.j2')
        self._panic = Jinja2Template('iptables', 'panic.j2')
        self._stop = Jinja2Template('iptables', 'stop.j2')

    def render(self, primitives, family: int) -> RenderedPayload:
        chains = {t: {} for t in TABLES}
        rules = {t: [] for t in TABLES}
        for name in RAW_BUILTINS:
            chains['raw'][name] = ChainPrimitive(
                family=family, table='raw', name=name, policy='ACCEPT', label=f'raw {name}'
            )

        for p in primitives:
            if getattr(p, 'family', None) != family:
                continue
            if isinstance(p, ChainPrimitive):
                chains[p.table].setdefault(p.name, p)
            elif isinstance(p, (FilterPrimitive, HelperPrimitive)):
                rules[p.table].extend((line, p) for line in self.print_rule.rule_lines(p))

        tables = [
            {
                'name': table,
                'chains': list(chains[table].values()),
                'rules': [line for line, _ in rules[table]],
            }
            for table in TABLES
        ]
        text = self._ruleset.render(
            {'family': family, 'version': firegrid.__version__, 'tables': tables}
        )

        # walk the output in the same order the template emitted it
        sources = []
        for table in TABLES:
            sources.extend(chains[table].values())
            sources.extend(p for _, p in rules[table])
        pending = iter(sources)
        line_map = {}
        for lineno, line in enumerate(text.splitlines(), start=1):
            if line.startswith((':', '-A ')):
                line_map[lineno] = next(pending)

        logger.debug(
            'IPv%d payload: %d lines, %d rules',
            family,
            len(line_map),
            sum(len(r) for r in rules.values()),
        )
        return RenderedPayload(text=text, line_map=line_map)

    def render_panic(self, family: int) -> str:
        return self._panic.render({'family': family})

    def render_stop(self, family: int) -> str:
        return self._stop.render({'family': family})
