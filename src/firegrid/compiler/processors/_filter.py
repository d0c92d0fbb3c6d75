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

"""Rule processors of the filtering path.

Pipeline order (see FilterCompiler.compile)::

    Begin -> ExpandDirections -> ResolveServices -> ExpandReplies
          -> ApplyConnectionState -> AssignChain -> CheckAddressFamily
          -> AllocateHelpers -> SimplePrintProgress -> AppendToChain

Configuration errors are recorded against the rule's scope; the scope is
then skipped by every later processor.  ParseError propagates and aborts
the whole pass.
"""

from __future__ import annotations

import dataclasses

from firegrid.compiler._chain import ChainEntry
from firegrid.compiler._match import MatchPredicate
from firegrid.compiler._rule_processor import ScopedRuleProcessor
from firegrid.core._errors import ConfigError
from firegrid.core._model import Direction, ScopeKind


def chain_name(scope, direction) -> str:
    if scope.kind is ScopeKind.CHAIN:
        return scope.name
    prefix = 'in' if direction is Direction.INBOUND else 'out'
    return f'{prefix}_{scope.name}'


class ExpandDirections(ScopedRuleProcessor):
    """Fix the request direction of each statement.

    ``server``/``route`` requests are inbound, ``client`` requests are
    outbound.  ``service`` without a direction follows the scope default
    and is bidirectional; with ``inbound``/``outbound`` it is one-way.
    ``match`` is always one-way.  A ``both`` default yields two rules.
    """

    def __init__(self, name: str = 'Expand directions') -> None:
        super().__init__(name)

    def process_next(self) -> bool:
        rule = self.get_next()
        if rule is None:
            return False

        stmt = rule.statement
        scope = rule.scope
        if scope.kind is ScopeKind.CHAIN:
            legs = [(None, False)]
        elif stmt.keyword in ('server', 'route'):
            legs = [(Direction.INBOUND, True)]
        elif stmt.keyword == 'client':
            legs = [(Direction.OUTBOUND, True)]
        else:
            bidirectional = stmt.is_bidirectional
            direction = stmt.direction or scope.direction
            if direction is Direction.BOTH:
                legs = [(Direction.INBOUND, bidirectional), (Direction.OUTBOUND, bidirectional)]
            else:
                legs = [(direction, bidirectional)]

        for direction, bidirectional in legs:
            r = rule.clone()
            r.direction = direction
            r.bidirectional = bidirectional
            r.leg = 'request'
            self.tmp_queue.append(r)
        return True


class ResolveServices(ScopedRuleProcessor):
    """Parse the extra clause and merge it with the service templates.

    One rule is produced per (template, clause predicate) pair, so
    ``service dns`` becomes one udp and one tcp rule.
    """

    def __init__(self, name: str = 'Resolve services') -> None:
        super().__init__(name)

    def process_next(self) -> bool:
        rule = self.get_next()
        if rule is None:
            return False

        ctx = self.compiler.ctx
        stmt = rule.statement
        direction = rule.direction or Direction.INBOUND
        try:
            if stmt.keyword == 'match':
                matches = ctx.engine.parse_match_templates(stmt.clause, direction, stmt.line)
                for predicate, service, template in matches:
                    ctx.engine.check_ports(predicate, stmt.line, rule.scope_label)
                    r = rule.clone()
                    r.predicate = predicate
                    if template is not None:
                        r.service = service
                        r.template = template
                        r.helper = template.helper
                    self.tmp_queue.append(r)
                return True

            templates = ctx.catalog.lookup(stmt.service, line=stmt.line, scope=rule.scope_label)
            service = ctx.catalog.get(stmt.service)
            extras = (
                ctx.engine.parse_matches(stmt.clause, direction, stmt.line)
                if stmt.clause
                else [MatchPredicate()]
            )
            expanded = []
            for template in templates:
                for extra in extras:
                    r = rule.clone()
                    r.template = template
                    r.helper = template.helper
                    r.predicate = ctx.engine.apply_template(
                        template, extra, line=stmt.line, scope=rule.scope_label
                    )
                    if r.action is None:
                        r.action = service.action
                    expanded.append(r)
        except ConfigError as e:
            self.compiler.scope_error(rule.scope, e, rule)
            return True
        self.tmp_queue.extend(expanded)
        return True


class ExpandReplies(ScopedRuleProcessor):
    """Add the mirrored reply leg after each bidirectional request."""

    def __init__(self, name: str = 'Expand replies') -> None:
        super().__init__(name)

    def process_next(self) -> bool:
        rule = self.get_next()
        if rule is None:
            return False

        self.tmp_queue.append(rule)
        if rule.bidirectional:
            _, reverse = self.compiler.ctx.engine.expand_bidirectional(rule.predicate)
            reply = rule.clone()
            reply.predicate = reverse
            reply.direction = rule.direction.reverse()
            reply.leg = 'reply'
            self.tmp_queue.append(reply)
        return True


class ApplyConnectionState(ScopedRuleProcessor):
    """Request legs match NEW,ESTABLISHED and replies ESTABLISHED.

    Replies of services with a helper also match RELATED.  Statements
    with ``stateless`` or an explicit ``state`` are left alone, and
    one-way statements never get a state match.
    """

    def __init__(self, name: str = 'Apply connection state') -> None:
        super().__init__(name)

    def process_next(self) -> bool:
        rule = self.get_next()
        if rule is None:
            return False

        pred = rule.predicate
        if rule.bidirectional and not rule.stateless and not pred.state:
            if rule.leg == 'request':
                state = ('NEW', 'ESTABLISHED')
            elif rule.helper:
                state = ('ESTABLISHED', 'RELATED')
            else:
                state = ('ESTABLISHED',)
            rule.predicate = dataclasses.replace(pred, state=state, match_all=False)
        self.tmp_queue.append(rule)
        return True


class AssignChain(ScopedRuleProcessor):
    def __init__(self, name: str = 'Assign chain') -> None:
        super().__init__(name)

    def process_next(self) -> bool:
        rule = self.get_next()
        if rule is None:
            return False
        rule.chain = chain_name(rule.scope, rule.direction)
        self.tmp_queue.append(rule)
        return True


class CheckAddressFamily(ScopedRuleProcessor):
    """Split each rule per address family of its scope.

    Addresses of the other family are dropped from the copy; a rule that
    matches none of the scope's families is an error of that scope.
    """

    def __init__(self, name: str = 'Check address family') -> None:
        super().__init__(name)

    def process_next(self) -> bool:
        rule = self.get_next()
        if rule is None:
            return False

        produced = []
        for family in rule.scope.families:
            predicate = rule.predicate.for_family(family)
            if predicate is None:
                continue
            r = rule.clone()
            r.family = family
            r.predicate = predicate
            produced.append(r)
        if not produced:
            families = '/'.join(f'ipv{f}' for f in rule.scope.families)
            self.compiler.scope_error(
                rule.scope,
                ConfigError(
                    f'rule matches no address of {families}',
                    line=rule.line,
                    scope=rule.scope_label,
                ),
                rule,
            )
            return True
        self.tmp_queue.extend(produced)
        return True


class AllocateHelpers(ScopedRuleProcessor):
    """Attach conntrack helpers needed by request legs."""

    def __init__(self, name: str = 'Allocate helpers') -> None:
        super().__init__(name)

    def process_next(self) -> bool:
        rule = self.get_next()
        if rule is None:
            return False

        if rule.helper and rule.leg == 'request':
            scope = rule.scope
            try:
                allocation = self.compiler.ctx.allocate_helper(
                    rule.service, scope.name, rule.helper, rule.label
                )
            except ConfigError as e:
                self.compiler.scope_error(scope, e, rule)
                return True
            predicate = dataclasses.replace(rule.predicate, state=(), limit=None)
            if scope.kind is ScopeKind.ROUTER:
                dev = scope.inface if rule.direction is Direction.INBOUND else scope.outface
                allocation.add_hook(rule.family, 'PREROUTING', dev, '', predicate)
            elif scope.kind is ScopeKind.INTERFACE:
                if rule.direction is Direction.INBOUND:
                    allocation.add_hook(rule.family, 'PREROUTING', scope.dev, '', predicate)
                else:
                    allocation.add_hook(rule.family, 'OUTPUT', '', scope.dev, predicate)
            else:
                allocation.add_hook(rule.family, 'PREROUTING', '', '', predicate)
                allocation.add_hook(rule.family, 'OUTPUT', '', '', predicate)
        self.tmp_queue.append(rule)
        return True


class AppendToChain(ScopedRuleProcessor):
    """Final processor: append each rule to its chain builder."""

    def __init__(self, name: str = 'Append to chain') -> None:
        super().__init__(name)

    def process_next(self) -> bool:
        rule = self.get_next()
        if rule is None:
            return False

        builder = self.compiler.ctx.chains[rule.chain]
        builder.append(
            ChainEntry(
                predicate=rule.predicate,
                action=rule.action,
                family=rule.family,
                label=rule.label,
                line=rule.line,
                log=rule.log,
            )
        )
        self.tmp_queue.append(rule)
        return True
