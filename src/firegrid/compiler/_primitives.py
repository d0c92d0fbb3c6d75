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

"""Compiled primitives: the output of a compile pass.

Primitives are frozen and carry everything a renderer needs; once a
compile pass hands them over they are owned by the activation manager.
Every primitive has a ``label`` used in diagnostics.
"""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from firegrid.compiler._match import MatchPredicate
    from firegrid.core._model import Action


@dataclasses.dataclass(frozen=True, slots=True)
class ChainPrimitive:
    """Declaration of a chain; built-in chains carry their policy."""

    family: int
    table: str
    name: str
    policy: str = '-'
    label: str = ''


@dataclasses.dataclass(frozen=True, slots=True)
class FilterPrimitive:
    family: int
    table: str
    chain: str
    predicate: MatchPredicate
    action: Action
    position: int = 0
    in_iface: str = ''
    out_iface: str = ''
    label: str = ''
    line: int = 0
    log: str | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class HelperPrimitive:
    """Attach a connection-tracking helper in the raw table."""

    family: int
    chain: str
    predicate: MatchPredicate
    helper: str
    in_iface: str = ''
    out_iface: str = ''
    label: str = ''
    line: int = 0

    @property
    def table(self) -> str:
        return 'raw'

    @property
    def module(self) -> str:
        return f'nf_conntrack_{self.helper}'


@dataclasses.dataclass(frozen=True, slots=True)
class IfbPrimitive:
    name: str
    device: str
    label: str = ''


@dataclasses.dataclass(frozen=True, slots=True)
class RedirectPrimitive:
    """Redirect all ingress traffic of *device* to *ifb*."""

    device: str
    ifb: str
    label: str = ''


@dataclasses.dataclass(frozen=True, slots=True)
class QdiscPrimitive:
    device: str
    parent: str
    handle: str
    kind: str
    default_class: str = ''
    label: str = ''
    line: int = 0

    @property
    def is_root(self) -> bool:
        return self.parent == 'root'


@dataclasses.dataclass(frozen=True, slots=True)
class ClassPrimitive:
    """An HTB class.  ``classifiers`` holds (preference, predicate) pairs."""

    device: str
    parent: str
    classid: str
    rate: int
    ceil: int
    prio: int | None = None
    name: str = ''
    classifiers: tuple[tuple[int, MatchPredicate], ...] = ()
    families: tuple[int, ...] = (4, 6)
    label: str = ''
    line: int = 0
