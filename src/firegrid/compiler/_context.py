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

"""CompileContext: every table a single compile pass needs.

A context is created at the start of a pass and dropped at its end, so
nothing leaks from one compilation into the next.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING

from firegrid.compiler._match import MatchEngine
from firegrid.core._errors import ConfigError, ResourceExhausted
from firegrid.core.options import FiregridDefaults

if TYPE_CHECKING:
    from firegrid.compiler._chain import ChainBuilder
    from firegrid.compiler._match import MatchPredicate
    from firegrid.core._errors import FiregridError
    from firegrid.core._services import ServiceCatalog

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class HelperAllocation:
    """A conntrack helper attached for one (service, interface) pair."""

    service: str
    scope: str
    helper: str
    labels: list[str] = dataclasses.field(default_factory=list)
    # (family, chain, in_iface, out_iface, predicate), deduplicated
    hooks: list[tuple] = dataclasses.field(default_factory=list)

    @property
    def module(self) -> str:
        return f'nf_conntrack_{self.helper}'

    def add_hook(self, family, chain, in_iface, out_iface, predicate: MatchPredicate):
        hook = (family, chain, in_iface, out_iface, predicate)
        if hook not in self.hooks:
            self.hooks.append(hook)


class CompileContext:
    def __init__(
        self,
        catalog: ServiceCatalog,
        options: FiregridDefaults | None = None,
        limiters=None,
    ) -> None:
        self.options = options if options is not None else FiregridDefaults()
        self.catalog = catalog
        self.engine = MatchEngine(catalog, limiters)
        self.helpers: dict[tuple[str, str], HelperAllocation] = {}
        self.chains: dict[str, ChainBuilder] = {}
        self.scope_errors: dict[str, list[FiregridError]] = {}
        self.ifb_pool: list[str] = [f'ifb{i}' for i in range(self.options.ifb_devices)]
        self.ifb_allocations: dict[str, str] = {}

    # -- Helpers --

    def allocate_helper(self, service: str, scope: str, helper: str, label: str) -> HelperAllocation:
        """Allocate *helper* once per (service, scope); repeats add the label."""
        key = (service, scope)
        allocation = self.helpers.get(key)
        if allocation is None:
            allocation = HelperAllocation(service=service, scope=scope, helper=helper)
            self.helpers[key] = allocation
            logger.debug('Allocated helper %s for %s on %s', helper, service, scope)
        elif allocation.helper != helper:
            raise ConfigError(
                f'service {service} requests helpers {allocation.helper} and {helper}',
                scope=scope,
            )
        if label not in allocation.labels:
            allocation.labels.append(label)
        return allocation

    @property
    def required_modules(self) -> tuple[str, ...]:
        return tuple(sorted({a.module for a in self.helpers.values()}))

    # -- ifb devices --

    def allocate_ifb(self, device: str, scope: str = '') -> str:
        """Return the ifb device for ingress shaping of *device*."""
        if device in self.ifb_allocations:
            return self.ifb_allocations[device]
        if len(self.ifb_allocations) >= len(self.ifb_pool):
            raise ResourceExhausted(
                f'{scope or device}: no free ifb device for ingress shaping '
                f'({len(self.ifb_pool)} configured)'
            )
        ifb = self.ifb_pool[len(self.ifb_allocations)]
        self.ifb_allocations[device] = ifb
        logger.debug('Allocated %s for ingress of %s', ifb, device)
        return ifb

    # -- Chains --

    def add_chain(self, builder: ChainBuilder) -> ChainBuilder:
        if builder.name in self.chains:
            raise ConfigError(f'chain {builder.name} defined twice', scope=builder.scope)
        self.chains[builder.name] = builder
        return builder

    def chains_of(self, scope: str) -> list[ChainBuilder]:
        return [c for c in self.chains.values() if c.scope == scope]

    # -- Scope errors --

    def record_scope_error(self, scope: str, exc: FiregridError) -> None:
        self.scope_errors.setdefault(scope, []).append(exc)

    def scope_failed(self, scope: str) -> bool:
        return scope in self.scope_errors
