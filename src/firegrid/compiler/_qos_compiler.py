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

"""QosCompiler: shaping blocks to HTB hierarchies.

Layout per shaped device and direction::

    qdisc 1: htb default 10
      class 1:1            rate = ceil = interface rate
        class 1:11, 1:12   declared classes, in declaration order
        class 1:10         the default class (declared or implicit)
          qdisc <minor>:   leaf qdisc per class (sfq unless configured)

Ingress shaping runs on an ifb device that receives all ingress traffic
of the physical device.  Unlike filter errors, shaping errors are raised
immediately, since all classes of a device share one interface rate.
"""

from __future__ import annotations

import dataclasses
import logging

from firegrid.compiler._compiler import Compiler
from firegrid.compiler._primitives import (
    ClassPrimitive,
    IfbPrimitive,
    QdiscPrimitive,
    RedirectPrimitive,
)
from firegrid.core._errors import ConfigError, OvercommitError
from firegrid.core._model import Direction, TrafficClassDecl
from firegrid.core._rates import format_rate

logger = logging.getLogger(__name__)

# Rate of classes without a guaranteed rate (bits per second).
FLOOR_RATE = 8000

DEFAULT_MINOR = 0x10
FIRST_MINOR = 0x11
MAX_PRIO = 7


@dataclasses.dataclass(frozen=True, slots=True)
class ResolvedClass:
    decl: TrafficClassDecl
    classid: str
    minor: str
    rate: int
    ceil: int
    prio: int
    counted: bool


class QosCompiler(Compiler):
    def prolog(self) -> int:
        self.scopes = self.config.shaping_scopes()
        return len(self.scopes)

    def compile(self) -> None:
        seen = {}
        for scope in self.scopes:
            key = (scope.dev, scope.direction)
            if key in seen:
                raise ConfigError(
                    f'device {scope.dev} is already shaped {scope.direction} '
                    f'by interface {seen[key].name}',
                    line=scope.line,
                    scope=scope.label,
                )
            seen[key] = scope
            self.primitives.extend(self._compile_scope(scope))

    def epilog(self) -> None:
        logger.debug(
            'QoS compiler: %d shaped devices, %d primitives',
            len(self.scopes),
            len(self.primitives),
        )

    def classes_of(self, scope) -> list[TrafficClassDecl]:
        """Declared classes plus the implicit default class, if needed."""
        names = set()
        classes = []
        for decl in scope.classes:
            if decl.name in names:
                raise ConfigError(
                    f'class {decl.name} defined twice', line=decl.line, scope=scope.label
                )
            names.add(decl.name)
            classes.append(decl)
        if 'default' not in names:
            classes.append(TrafficClassDecl(name='default', line=scope.line))
        return classes

    def resolve_rates(self, scope) -> list[ResolvedClass]:
        """Resolve every class rate against the interface rate, in one pass."""
        rate = scope.rate.bits
        resolved = []
        minor = FIRST_MINOR
        index = 0
        for decl in self.classes_of(scope):
            label = f'{scope.label} class {decl.name}'
            ceil = decl.max.resolve(rate) if decl.max is not None else rate
            if ceil > rate:
                raise ConfigError(
                    f'max {format_rate(ceil)} exceeds the interface rate {format_rate(rate)}',
                    line=decl.line,
                    scope=label,
                )
            if decl.commit is not None:
                commit = max(decl.commit.resolve(rate), 1)
                counted = True
                if ceil < commit:
                    raise ConfigError(
                        f'max {format_rate(ceil)} is lower than commit {format_rate(commit)}',
                        line=decl.line,
                        scope=label,
                    )
            else:
                commit = min(FLOOR_RATE, ceil)
                counted = False

            if decl.is_default:
                classid_minor = DEFAULT_MINOR
                prio = decl.prio if decl.prio is not None else MAX_PRIO
            else:
                classid_minor = minor
                minor += 1
                prio = decl.prio if decl.prio is not None else min(index, MAX_PRIO)
                index += 1
            resolved.append(
                ResolvedClass(
                    decl=decl,
                    classid=f'1:{classid_minor:x}',
                    minor=f'{classid_minor:x}',
                    rate=commit,
                    ceil=ceil,
                    prio=prio,
                    counted=counted,
                )
            )

        counted = [r for r in resolved if r.counted]
        committed = sum(r.rate for r in counted)
        if committed > rate:
            # blame the first class that pushes the sum over the rate
            total = 0
            for culprit in counted:
                total += culprit.rate
                if total > rate:
                    break
            raise OvercommitError(
                [r.decl.name for r in counted],
                committed,
                rate,
                line=culprit.decl.line,
                scope=scope.label,
            )
        return resolved

    def _compile_scope(self, scope) -> list:
        primitives = []
        device = scope.dev
        if scope.direction is Direction.INBOUND:
            ifb = self.ctx.allocate_ifb(scope.dev, scope.label)
            primitives.append(IfbPrimitive(name=ifb, device=scope.dev, label=scope.label))
            primitives.append(RedirectPrimitive(device=scope.dev, ifb=ifb, label=scope.label))
            device = ifb

        resolved = self.resolve_rates(scope)
        rate = scope.rate.bits
        primitives.append(
            QdiscPrimitive(
                device=device,
                parent='root',
                handle='1:',
                kind='htb',
                default_class=f'{DEFAULT_MINOR:x}',
                label=scope.label,
                line=scope.line,
            )
        )
        primitives.append(
            ClassPrimitive(
                device=device,
                parent='1:',
                classid='1:1',
                rate=rate,
                ceil=rate,
                name=scope.name,
                families=scope.families,
                label=scope.label,
                line=scope.line,
            )
        )

        # default class matches go last: first declared class wins
        ordered = [r for r in resolved if not r.decl.is_default]
        ordered += [r for r in resolved if r.decl.is_default]
        pref = 0
        for r in ordered:
            label = f'{scope.label} class {r.decl.name}'
            classifiers = []
            for clause in r.decl.matches:
                for predicate in self.ctx.engine.parse_matches(
                    clause.tokens, scope.direction, clause.line
                ):
                    if predicate.limit is not None or predicate.state:
                        self.warning(
                            f'line {clause.line}: {label}: rate limits and connection '
                            'state cannot be used for classification, ignored'
                        )
                        predicate = dataclasses.replace(predicate, limit=None, state=())
                    self.ctx.engine.check_ports(predicate, clause.line, label)
                    pref += 1
                    classifiers.append((pref, predicate))
            primitives.append(
                ClassPrimitive(
                    device=device,
                    parent='1:1',
                    classid=r.classid,
                    rate=r.rate,
                    ceil=r.ceil,
                    prio=r.prio,
                    name=r.decl.name,
                    classifiers=tuple(classifiers),
                    families=scope.families,
                    label=label,
                    line=r.decl.line,
                )
            )
            primitives.append(
                QdiscPrimitive(
                    device=device,
                    parent=r.classid,
                    handle=f'{r.minor}:',
                    kind=r.decl.qdisc,
                    label=label,
                    line=r.decl.line,
                )
            )
        return primitives
