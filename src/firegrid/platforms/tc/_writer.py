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

"""TcWriter: shaping primitives to ``tc -batch`` and ``ip -batch`` payloads.

Three payloads are produced: the ifb links (``ip``), the teardown of
every shaped device (run with ``-force``, missing qdiscs are not an
error) and the hierarchy itself (``tc``).
"""

from __future__ import annotations

import dataclasses
import logging

from firegrid.compiler._primitives import (
    ClassPrimitive,
    IfbPrimitive,
    QdiscPrimitive,
    RedirectPrimitive,
)
from firegrid.platforms.tc._print_class import PrintClass

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class TcPayload:
    tc: str = ''
    ip: str = ''
    teardown: str = ''
    line_map: dict[int, object] = dataclasses.field(default_factory=dict)
    devices: tuple[str, ...] = ()


class TcWriter:
    def __init__(self) -> None:
        from firegrid.driver._jinja2_template import Jinja2Template

        self.print_class = PrintClass()
        self._qos = Jinja2Template('tc', 'qos.j2')
        self._links = Jinja2Template('tc', 'links.j2')
        self._teardown = Jinja2Template('tc', 'teardown.j2')

    def render(self, primitives) -> TcPayload:
        lines = []
        sources = []
        ifbs = []
        # physical devices; ifbs are tracked separately
        devices = set()

        def emit(primitive, new_lines):
            lines.extend(new_lines)
            sources.extend([primitive] * len(new_lines))

        for p in primitives:
            if isinstance(p, IfbPrimitive):
                ifbs.append(p.name)
            elif isinstance(p, RedirectPrimitive):
                devices.add(p.device)
                emit(p, self.print_class.redirect_lines(p))
            elif isinstance(p, QdiscPrimitive):
                if p.is_root and p.device not in ifbs:
                    devices.add(p.device)
                emit(p, self.print_class.qdisc_lines(p))
            elif isinstance(p, ClassPrimitive):
                emit(p, self.print_class.class_lines(p))

        if not lines:
            return TcPayload()

        teardown = [{'name': d, 'ingress': True} for d in sorted(devices)]
        teardown += [{'name': ifb, 'ingress': False} for ifb in ifbs]
        payload = TcPayload(
            tc=self._qos.render({'lines': lines}),
            ip=self._links.render({'ifbs': ifbs}),
            teardown=self._teardown.render({'devices': teardown}),
            line_map=dict(enumerate(sources, start=1)),
            devices=tuple(sorted(devices)),
        )
        logger.debug(
            'tc payload: %d lines for %d devices (%d ifb)',
            len(lines),
            len(devices),
            len(ifbs),
        )
        return payload
