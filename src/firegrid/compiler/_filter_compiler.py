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

"""FilterCompiler: interfaces, routers and user chains to filter primitives.

Every interface and router owns two chains, ``in_<name>`` and
``out_<name>``, hooked into INPUT/OUTPUT (interfaces) or FORWARD
(routers).  User chains keep their name and are only reached by jumps.

A configuration error inside one scope drops that scope's chains; all
other scopes still compile and the pass reports FWCOMPILER_ERROR.
"""

from __future__ import annotations

import logging

from firegrid.compiler._chain import ChainBuilder, ChainHook
from firegrid.compiler._comp_rule import load_rules
from firegrid.compiler._compiler import Compiler
from firegrid.compiler._match import MATCH_ALL
from firegrid.compiler._primitives import ChainPrimitive, FilterPrimitive, HelperPrimitive
from firegrid.compiler.processors import (
    AllocateHelpers,
    AppendToChain,
    ApplyConnectionState,
    AssignChain,
    Begin,
    CheckAddressFamily,
    ExpandDirections,
    ExpandReplies,
    PrintTotalNumberOfRules,
    ResolveServices,
    SimplePrintProgress,
)
from firegrid.core._errors import ConfigError, FiregridError
from firegrid.core._model import ACTION_WORDS, Action, ActionKind, Direction, ScopeKind

logger = logging.getLogger(__name__)

BUILTIN_CHAINS = ('INPUT', 'FORWARD', 'OUTPUT')


def _policy_action(word: str) -> Action:
    return Action(ACTION_WORDS[word])


class FilterCompiler(Compiler):
    def prolog(self) -> int:
        self.scopes = self.config.filter_scopes()
        seen = set()
        for scope in self.scopes:
            try:
                if scope.name in seen:
                    raise ConfigError(
                        f'name {scope.name} is used by more than one block',
                        scope.line,
                        scope.label,
                    )
                seen.add(scope.name)
                self._create_chains(scope)
            except FiregridError as e:
                self.scope_error(scope, e)

        self.rules = load_rules(s for s in self.scopes if not self.scope_failed(s))
        logger.debug(
            'Filter compiler: %d scopes, %d rule statements',
            len(self.scopes),
            len(self.rules),
        )
        return len(self.rules)

    def _create_chains(self, scope) -> None:
        ctx = self.ctx
        label = scope.label
        if scope.kind is ScopeKind.CHAIN:
            if scope.name in BUILTIN_CHAINS or scope.name.startswith(('in_', 'out_')):
                raise ConfigError(f'reserved chain name {scope.name}', scope.line, label)
            builders = {
                None: ctx.add_chain(
                    ChainBuilder(scope.name, scope.name, scope.families, line=scope.line)
                )
            }
        else:
            if scope.kind is ScopeKind.ROUTER:
                hooks = {
                    Direction.INBOUND: ChainHook('FORWARD', scope.inface, scope.outface),
                    Direction.OUTBOUND: ChainHook('FORWARD', scope.outface, scope.inface),
                }
            else:
                hooks = {
                    Direction.INBOUND: ChainHook('INPUT', scope.dev, ''),
                    Direction.OUTBOUND: ChainHook('OUTPUT', '', scope.dev),
                }
            builders = {}
            for direction in (Direction.INBOUND, Direction.OUTBOUND):
                prefix = 'in' if direction is Direction.INBOUND else 'out'
                builders[direction] = ctx.add_chain(
                    ChainBuilder(
                        f'{prefix}_{scope.name}',
                        scope.name,
                        scope.families,
                        hooks=(hooks[direction],),
                        line=scope.line,
                    )
                )

        for policy in scope.policies:
            if scope.kind is ScopeKind.CHAIN or policy.direction is None:
                targets = builders.values()
            else:
                targets = [builders[policy.direction]]
            for builder in targets:
                builder.declare_policy(policy.action, policy.line)

    def compile(self) -> None:
        self.add(Begin())
        self.add(PrintTotalNumberOfRules())
        self.add(ExpandDirections())
        self.add(ResolveServices())
        self.add(ExpandReplies())
        self.add(ApplyConnectionState())
        self.add(AssignChain())
        self.add(CheckAddressFamily())
        self.add(AllocateHelpers())
        self.add(SimplePrintProgress())
        self.add(AppendToChain())
        self.run_rule_processors()

    def epilog(self) -> None:
        self._check_jump_targets()

        options = self.ctx.options
        scope_default = _policy_action(options.default_policy)
        families = (4, 6)

        primitives = []
        primitives.extend(self._helper_primitives())
        builtin_policy = options.builtin_policy.upper()
        for family in families:
            for name in BUILTIN_CHAINS:
                primitives.append(
                    ChainPrimitive(
                        family=family,
                        table='filter',
                        name=name,
                        policy=builtin_policy,
                        label=f'{name} (builtin policy)',
                    )
                )
            if options.accept_loopback:
                for chain, in_iface, out_iface in (('INPUT', 'lo', ''), ('OUTPUT', '', 'lo')):
                    primitives.append(
                        FilterPrimitive(
                            family=family,
                            table='filter',
                            chain=chain,
                            predicate=MATCH_ALL,
                            action=Action(ActionKind.ACCEPT),
                            in_iface=in_iface,
                            out_iface=out_iface,
                            label='loopback',
                        )
                    )

        for scope in self.scopes:
            if self.scope_failed(scope):
                continue
            default = (
                Action(ActionKind.RETURN) if scope.kind is ScopeKind.CHAIN else scope_default
            )
            for builder in self.ctx.chains_of(scope.name):
                builder.resolve_policy(default)
                primitives.extend(builder.emit())

        self.primitives = primitives
        failed = sorted(self.ctx.scope_errors)
        if failed:
            logger.info('Scopes not compiled because of errors: %s', ', '.join(failed))

    def _check_jump_targets(self) -> None:
        """Fail scopes that jump to unknown or failed user chains.

        Repeats until stable, since failing one chain may break others.
        """
        user_chains = {s.name for s in self.scopes if s.kind is ScopeKind.CHAIN}
        changed = True
        while changed:
            changed = False
            for scope in self.scopes:
                if self.scope_failed(scope):
                    continue
                for builder in self.ctx.chains_of(scope.name):
                    missing = [
                        t
                        for t in builder.jump_targets()
                        if t not in user_chains or self.scope_failed(t)
                    ]
                    if missing:
                        self.scope_error(
                            scope,
                            ConfigError(
                                f'jump to unknown or failed chain {missing[0]}',
                                line=scope.line,
                                scope=scope.label,
                            ),
                        )
                        changed = True
                        break

    def _helper_primitives(self) -> list:
        primitives = []
        for allocation in self.ctx.helpers.values():
            if self.scope_failed(allocation.scope):
                continue
            for family, chain, in_iface, out_iface, predicate in allocation.hooks:
                primitives.append(
                    HelperPrimitive(
                        family=family,
                        chain=chain,
                        predicate=predicate,
                        helper=allocation.helper,
                        in_iface=in_iface,
                        out_iface=out_iface,
                        label=f'{allocation.scope} (helper {allocation.helper} for '
                        f'{allocation.service}: {", ".join(allocation.labels)})',
                    )
                )
        return primitives

    @property
    def required_modules(self) -> tuple[str, ...]:
        return tuple(
            sorted(
                {
                    a.module
                    for a in self.ctx.helpers.values()
                    if not self.scope_failed(a.scope)
                }
            )
        )
