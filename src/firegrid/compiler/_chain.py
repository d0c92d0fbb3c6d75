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

"""ChainBuilder: ordered rules of one chain plus its default policy.

A builder walks INIT -> COLLECTING -> POLICY_RESOLVED -> EMITTED.  Rules
are append-only; declaration order is rule priority.  A chain always
ends with an explicit default policy rule, so a chain without rules
compiles to the policy alone.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
from typing import TYPE_CHECKING

from firegrid.compiler._match import MATCH_ALL
from firegrid.compiler._primitives import ChainPrimitive, FilterPrimitive
from firegrid.core._errors import ChainStateError, ConflictingDefaultPolicy
from firegrid.core._model import Action, ActionKind

if TYPE_CHECKING:
    from firegrid.compiler._match import MatchPredicate

logger = logging.getLogger(__name__)


class ChainState(enum.Enum):
    INIT = 'init'
    COLLECTING = 'collecting'
    POLICY_RESOLVED = 'policy_resolved'
    EMITTED = 'emitted'


@dataclasses.dataclass(frozen=True, slots=True)
class ChainEntry:
    predicate: MatchPredicate
    action: Action
    family: int
    label: str = ''
    line: int = 0
    log: str | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class ChainHook:
    """Jump from a built-in chain into this chain."""

    builtin: str
    in_iface: str = ''
    out_iface: str = ''


class ChainBuilder:
    def __init__(
        self,
        name: str,
        scope: str,
        families: tuple[int, ...] = (4, 6),
        hooks: tuple[ChainHook, ...] = (),
        line: int = 0,
    ) -> None:
        self.name = name
        self.scope = scope
        self.families = families
        self.hooks = hooks
        self.line = line
        self.state = ChainState.INIT
        self.entries: list[ChainEntry] = []
        self.declared_policy: Action | None = None
        self._declared_line = 0
        self.policy: Action | None = None

    def __repr__(self) -> str:
        return f'<ChainBuilder {self.name} {self.state.value} entries={len(self.entries)}>'

    def _require(self, *states: ChainState, op: str) -> None:
        if self.state not in states:
            raise ChainStateError(
                f'chain {self.name}: cannot {op} in state {self.state.value}'
            )

    def append(self, entry: ChainEntry) -> None:
        self._require(ChainState.INIT, ChainState.COLLECTING, op='append a rule')
        self.entries.append(entry)
        self.state = ChainState.COLLECTING

    def declare_policy(self, action: Action, line: int = 0) -> None:
        """Record a declared policy; a different second one is a conflict."""
        self._require(ChainState.INIT, ChainState.COLLECTING, op='declare a policy')
        if self.declared_policy is not None and self.declared_policy != action:
            raise ConflictingDefaultPolicy(
                self.name,
                str(self.declared_policy),
                str(action),
                line=line,
                scope=self.scope,
            )
        if self.declared_policy is None:
            self.declared_policy = action
            self._declared_line = line

    def resolve_policy(self, default: Action) -> Action:
        self._require(ChainState.INIT, ChainState.COLLECTING, op='resolve the policy')
        self.policy = self.declared_policy or default
        self.state = ChainState.POLICY_RESOLVED
        logger.debug('Chain %s: policy %s', self.name, self.policy)
        return self.policy

    def jump_targets(self) -> list[str]:
        targets = [e.action.target for e in self.entries if e.action.kind is ActionKind.JUMP]
        if self.declared_policy is not None and self.declared_policy.kind is ActionKind.JUMP:
            targets.append(self.declared_policy.target)
        return targets

    def emit(self) -> list:
        """Return the primitives of this chain for every family."""
        self._require(ChainState.POLICY_RESOLVED, op='emit')
        primitives = []
        for family in self.families:
            primitives.append(
                ChainPrimitive(family=family, table='filter', name=self.name, label=self.name)
            )
            for hook in self.hooks:
                primitives.append(
                    FilterPrimitive(
                        family=family,
                        table='filter',
                        chain=hook.builtin,
                        predicate=MATCH_ALL,
                        action=Action(ActionKind.JUMP, self.name),
                        in_iface=hook.in_iface,
                        out_iface=hook.out_iface,
                        label=f'{self.scope} (jump)',
                        line=self.line,
                    )
                )
            position = 0
            for entry in self.entries:
                if entry.family != family:
                    continue
                position += 1
                primitives.append(
                    FilterPrimitive(
                        family=family,
                        table='filter',
                        chain=self.name,
                        predicate=entry.predicate,
                        action=entry.action,
                        position=position,
                        label=entry.label,
                        line=entry.line,
                        log=entry.log,
                    )
                )
            primitives.append(
                FilterPrimitive(
                    family=family,
                    table='filter',
                    chain=self.name,
                    predicate=MATCH_ALL,
                    action=self.policy,
                    position=position + 1,
                    label=f'{self.scope} (policy {self.policy})',
                    line=self._declared_line or self.line,
                )
            )
        self.state = ChainState.EMITTED
        return primitives
