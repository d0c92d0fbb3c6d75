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

"""Tests for the per-chain builder state machine."""

import pytest

from firegrid.compiler import MATCH_ALL, ChainBuilder, ChainEntry, ChainHook, ChainState
from firegrid.compiler._match import MatchPredicate
from firegrid.compiler._primitives import ChainPrimitive, FilterPrimitive
from firegrid.core import ConflictingDefaultPolicy
from firegrid.core._errors import ChainStateError
from firegrid.core._model import Action, ActionKind

ACCEPT = Action(ActionKind.ACCEPT)
DROP = Action(ActionKind.DROP)


def _entry(port, family=4, action=ACCEPT):
    return ChainEntry(
        predicate=MatchPredicate(protocol='tcp'),
        action=action,
        family=family,
        label=f'port {port}',
    )


class TestStateMachine:
    def test_initial_state(self):
        builder = ChainBuilder('in_eth0', 'interface eth0')
        assert builder.state is ChainState.INIT

    def test_append_moves_to_collecting(self):
        builder = ChainBuilder('in_eth0', 'interface eth0')
        builder.append(_entry(22))
        assert builder.state is ChainState.COLLECTING

    def test_no_append_after_policy(self):
        builder = ChainBuilder('in_eth0', 'interface eth0')
        builder.resolve_policy(DROP)
        with pytest.raises(ChainStateError):
            builder.append(_entry(22))

    def test_emit_requires_policy(self):
        builder = ChainBuilder('in_eth0', 'interface eth0')
        with pytest.raises(ChainStateError):
            builder.emit()

    def test_emit_only_once(self):
        builder = ChainBuilder('in_eth0', 'interface eth0')
        builder.resolve_policy(DROP)
        builder.emit()
        assert builder.state is ChainState.EMITTED
        with pytest.raises(ChainStateError):
            builder.emit()


class TestPolicy:
    def test_default_applies_without_declaration(self):
        builder = ChainBuilder('in_eth0', 'interface eth0')
        assert builder.resolve_policy(DROP) == DROP

    def test_declared_policy_wins(self):
        builder = ChainBuilder('in_eth0', 'interface eth0')
        builder.declare_policy(ACCEPT, line=3)
        assert builder.resolve_policy(DROP) == ACCEPT

    def test_same_policy_twice_is_fine(self):
        builder = ChainBuilder('in_eth0', 'interface eth0')
        builder.declare_policy(ACCEPT)
        builder.declare_policy(ACCEPT)
        assert builder.resolve_policy(DROP) == ACCEPT

    def test_conflicting_policies(self):
        builder = ChainBuilder('in_eth0', 'interface eth0')
        builder.declare_policy(ACCEPT, line=3)
        with pytest.raises(ConflictingDefaultPolicy) as excinfo:
            builder.declare_policy(DROP, line=4)
        assert excinfo.value.chain == 'in_eth0'
        assert excinfo.value.scope == 'interface eth0'

    def test_jump_targets(self):
        builder = ChainBuilder('in_eth0', 'interface eth0')
        builder.append(_entry(22, action=Action(ActionKind.JUMP, 'trusted')))
        builder.declare_policy(Action(ActionKind.JUMP, 'fallback'))
        assert builder.jump_targets() == ['trusted', 'fallback']


class TestEmit:
    def test_empty_chain_is_the_policy_alone(self):
        builder = ChainBuilder('in_eth0', 'interface eth0', families=(4,))
        builder.resolve_policy(DROP)
        chain, policy = builder.emit()
        assert isinstance(chain, ChainPrimitive)
        assert policy.predicate is MATCH_ALL
        assert policy.action == DROP

    def test_rules_keep_declaration_order_and_end_with_policy(self):
        builder = ChainBuilder('in_eth0', 'interface eth0', families=(4,))
        for port in (22, 80, 443):
            builder.append(_entry(port))
        builder.resolve_policy(DROP)
        rules = [p for p in builder.emit() if isinstance(p, FilterPrimitive)]
        assert [r.label for r in rules[:3]] == ['port 22', 'port 80', 'port 443']
        assert [r.position for r in rules] == [1, 2, 3, 4]
        assert rules[-1].action == DROP

    def test_entries_are_split_by_family(self):
        builder = ChainBuilder('in_eth0', 'interface eth0')
        builder.append(_entry(22, family=4))
        builder.append(_entry(80, family=6))
        builder.resolve_policy(DROP)
        rules = [p for p in builder.emit() if isinstance(p, FilterPrimitive)]
        assert [(r.family, r.label) for r in rules if r.predicate is not MATCH_ALL] == [
            (4, 'port 22'),
            (6, 'port 80'),
        ]
        assert sum(1 for r in rules if r.action == DROP) == 2

    def test_hooks_jump_from_builtin(self):
        hooks = (ChainHook('INPUT', in_iface='eth0'), ChainHook('OUTPUT', out_iface='eth0'))
        builder = ChainBuilder('in_eth0', 'interface eth0', families=(4,), hooks=hooks)
        builder.resolve_policy(DROP)
        jumps = [p for p in builder.emit() if isinstance(p, FilterPrimitive) and p.chain != 'in_eth0']
        assert [(j.chain, j.in_iface, j.out_iface) for j in jumps] == [
            ('INPUT', 'eth0', ''),
            ('OUTPUT', '', 'eth0'),
        ]
        assert all(j.action == Action(ActionKind.JUMP, 'in_eth0') for j in jumps)
