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

"""CompRule dataclass and rule-loading helpers for the compilation pipeline.

CompRule is a mutable in-memory copy of a rule statement used throughout
the compiler's processor chain.  The configuration model objects it
references are frozen; processors only mutate CompRule fields, cloning a
rule whenever one statement expands into several rules.
"""

from __future__ import annotations

import copy
import dataclasses
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from firegrid.compiler._match import MatchPredicate
    from firegrid.core._model import Action, Direction, Interface, RuleStatement
    from firegrid.core._services import MatchTemplate


@dataclasses.dataclass
class CompRule:
    """Mutable in-memory rule for the compilation pipeline."""

    position: int
    label: str
    line: int
    scope: Interface
    statement: RuleStatement

    action: Action | None = None
    service: str = ''
    template: MatchTemplate | None = None

    # Set by the expansion processors
    predicate: MatchPredicate | None = None
    direction: Direction | None = None
    leg: str = 'request'  # 'request', 'reply' or 'raw'
    bidirectional: bool = False
    helper: str = ''

    # Set by AssignChain / CheckAddressFamily
    chain: str = ''
    family: int = 0

    @property
    def log(self) -> str | None:
        return self.statement.log

    @property
    def stateless(self) -> bool:
        return self.statement.stateless

    @property
    def scope_label(self) -> str:
        return self.scope.label

    def clone(self) -> CompRule:
        """Create a shallow copy; all referenced objects are immutable."""
        return copy.copy(self)


def load_rules(scopes) -> list[CompRule]:
    """Create one CompRule per rule statement of every filter scope."""
    rules = []
    for scope in scopes:
        for position, stmt in enumerate(scope.rules, start=1):
            subject = stmt.service or ' '.join(stmt.clause) or stmt.keyword
            rules.append(
                CompRule(
                    position=position,
                    label=f'{scope.name}:{position} ({stmt.keyword} {subject})',
                    line=stmt.line,
                    scope=scope,
                    statement=stmt,
                    action=stmt.action,
                    service=stmt.service,
                )
            )
    return rules
