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

"""Tests for the configuration reader and rate parsing."""

from decimal import Decimal

import pytest

from firegrid.core import ConfigReader, ParseError, RangeError, format_rate, parse_rate
from firegrid.core._model import ActionKind, Direction, ScopeKind


def _parse(text):
    return ConfigReader().parse_text(text, source='test.conf')


class TestBlocks:
    def test_interface_header(self):
        config = _parse('interface eth0 lan inbound policy drop\n    service ssh accept\n')
        (iface,) = config.interfaces
        assert iface.kind is ScopeKind.INTERFACE
        assert iface.name == 'lan'
        assert iface.dev == 'eth0'
        assert iface.direction is Direction.INBOUND
        assert iface.policies[0].action.kind is ActionKind.DROP
        assert iface.rules[0].service == 'ssh'
        assert iface.rules[0].line == 2
        assert config.source == 'test.conf'

    def test_name_defaults_to_device(self):
        (iface,) = _parse('interface eth0.10\n').interfaces
        assert iface.name == 'eth0_10'

    def test_block_on_one_line(self):
        config = _parse('interface eth0 lan { service http accept; service ssh drop }\nrouter r1 inface eth0 outface eth1\n')
        lan, r1 = config.interfaces
        assert [r.service for r in lan.rules] == ['http', 'ssh']
        assert lan.rules[1].action.kind is ActionKind.DROP
        assert r1.kind is ScopeKind.ROUTER

    def test_block_is_closed_by_next_header(self):
        config = _parse('interface eth0 a\nservice ssh accept\ninterface eth1 b\nservice http accept\n')
        assert [[r.service for r in i.rules] for i in config.interfaces] == [['ssh'], ['http']]

    def test_family_suffix(self):
        config = _parse('interface4 eth0 a\ninterface6 eth1 b\ninterface46 eth2 c\n')
        assert [i.families for i in config.interfaces] == [(4,), (6,), (4, 6)]

    def test_router_needs_both_devices(self):
        with pytest.raises(ParseError, match='inface and outface'):
            _parse('router r1 inface eth0\n')

    def test_router_devices(self):
        (router,) = _parse('router r1 inface eth0 outface eth1\nroute http accept\n').interfaces
        assert (router.inface, router.outface) == ('eth0', 'eth1')
        assert router.rules[0].is_bidirectional

    def test_route_outside_router(self):
        with pytest.raises(ParseError):
            _parse('interface eth0\nroute http accept\n')

    def test_chain_with_policy(self):
        (chain,) = _parse('chain web policy reject\nservice http accept\n').interfaces
        assert chain.kind is ScopeKind.CHAIN
        assert chain.policies[0].action.kind is ActionKind.REJECT

    def test_server_not_valid_in_chain(self):
        with pytest.raises(ParseError):
            _parse('chain web\nserver http accept\n')

    def test_statement_outside_block(self):
        with pytest.raises(ParseError) as excinfo:
            _parse('service ssh accept\n')
        assert excinfo.value.line == 1

    def test_unbalanced_brace(self):
        with pytest.raises(ParseError):
            _parse('interface eth0 {\nservice ssh accept\n')
        with pytest.raises(ParseError):
            _parse('interface eth0\n}\n')

    def test_unknown_statement(self):
        with pytest.raises(ParseError) as excinfo:
            _parse('interface eth0\n\n  masquerade\n')
        assert excinfo.value.line == 3

    def test_comments_are_ignored(self):
        (iface,) = _parse('# top\ninterface eth0 # trailing\n  service ssh accept # why\n').interfaces
        assert len(iface.rules) == 1


class TestRules:
    def test_match_needs_action(self):
        with pytest.raises(ParseError, match='without action'):
            _parse('interface eth0\nmatch tcp dport 80\n')

    def test_match_clause_and_log(self):
        (iface,) = _parse('interface eth0\nmatch tcp dport 8080 src 10.0.0.0/8 reject log "web: "\n').interfaces
        rule = iface.rules[0]
        assert rule.clause == ('tcp', 'dport', '8080', 'src', '10.0.0.0/8')
        assert rule.action.kind is ActionKind.REJECT
        assert rule.log == 'web: '

    def test_one_way_service(self):
        (iface,) = _parse('interface eth0\nservice ntp accept outbound\n').interfaces
        rule = iface.rules[0]
        assert rule.direction is Direction.OUTBOUND
        assert not rule.is_bidirectional

    def test_jump(self):
        (iface,) = _parse('interface eth0\nmatch src 10.0.0.0/8 jump trusted\n').interfaces
        assert iface.rules[0].action.target == 'trusted'

    def test_two_actions(self):
        with pytest.raises(ParseError, match='more than one action'):
            _parse('interface eth0\nservice ssh accept drop\n')

    def test_unknown_action(self):
        with pytest.raises(ParseError):
            _parse('interface eth0 policy maybe\n')

    def test_limiter(self):
        config = _parse('limiter ssh_rate 3/min burst 5\ninterface eth0\nservice ssh accept limit ssh_rate\n')
        assert config.limiters['ssh_rate'].burst == 5
        assert config.interfaces[0].rules[0].clause == ('limit', 'ssh_rate')

    def test_limiter_defined_twice(self):
        with pytest.raises(ParseError):
            _parse('limiter a 1/s\nlimiter a 2/s\n')


class TestShaping:
    def test_classes(self):
        text = """\
interface eth0 wan output rate 1mbit
    class voip commit 100kbit prio 0
        match udp dport 5060
    class bulk
        commit 10%
        max 50%
        match tcp dport 20:21
"""
        (iface,) = _parse(text).interfaces
        assert iface.rate.bits == 1_000_000
        assert iface.direction is Direction.OUTBOUND
        voip, bulk = iface.classes
        assert voip.commit.bits == 100_000
        assert voip.prio == 0
        assert voip.matches[0].tokens == ('udp', 'dport', '5060')
        assert bulk.commit.percent == Decimal(10)
        assert bulk.max.percent == Decimal(50)
        assert not iface.has_filtering

    def test_rate_with_both(self):
        with pytest.raises(ParseError):
            _parse('interface eth0 both rate 1mbit\n')

    def test_percent_interface_rate(self):
        with pytest.raises(ParseError, match='percentage'):
            _parse('interface eth0 output rate 50%\n')

    def test_class_without_rate(self):
        with pytest.raises(ParseError):
            _parse('interface eth0\nclass voip\n')

    def test_prio_out_of_range(self):
        with pytest.raises(RangeError):
            _parse('interface eth0 output rate 1mbit\nclass voip prio 8\n')

    def test_unsupported_qdisc(self):
        with pytest.raises(ParseError):
            _parse('interface eth0 output rate 1mbit\nclass voip qdisc cake\n')


class TestTopology:
    def test_host_and_switch(self):
        text = """\
host fw
    dev eth0 lan/eth0 192.0.2.1/24
    route default via 192.0.2.254
    exec ip link show
switch lan
    bridgedev br0 eth0 eth1
"""
        config = _parse(text)
        fw, lan = config.domains
        assert fw.kind == 'host'
        assert fw.devs[0].peer_domain == 'lan'
        assert fw.devs[0].peer_dev == 'eth0'
        assert fw.devs[0].addresses == ('192.0.2.1/24',)
        assert fw.routes == (('default', 'via', '192.0.2.254'),)
        assert fw.execs == (('ip', 'link', 'show'),)
        assert lan.bridges[0].devices == ('eth0', 'eth1')
        assert config.interfaces == ()

    def test_invalid_dev_argument(self):
        with pytest.raises(ParseError):
            _parse('host a\ndev eth0 nonsense\n')


class TestRates:
    @pytest.mark.parametrize(
        ('text', 'bits'),
        [
            ('8000', 8000),
            ('100kbit', 100_000),
            ('1.5mbit', 1_500_000),
            ('1gbit', 1_000_000_000),
            ('10kbps', 80_000),
        ],
    )
    def test_absolute(self, text, bits):
        assert parse_rate(text).bits == bits

    def test_percent_resolves_against_parent(self):
        assert parse_rate('25%').resolve(1_000_000) == 250_000

    def test_percent_out_of_range(self):
        with pytest.raises(RangeError):
            parse_rate('150%')

    def test_zero_rate(self):
        with pytest.raises(RangeError):
            parse_rate('0kbit')

    def test_unknown_unit(self):
        with pytest.raises(ParseError):
            parse_rate('10furlongs')

    @pytest.mark.parametrize(
        ('bits', 'text'),
        [(1_000_000, '1mbit'), (8000, '8kbit'), (1500, '1500bit'), (2_000_000_000, '2gbit')],
    )
    def test_format_rate(self, bits, text):
        assert format_rate(bits) == text
