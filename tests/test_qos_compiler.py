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

"""Tests for the shaping compiler and the tc payloads."""

import pytest

from firegrid.compiler import ClassPrimitive, CompilerStatus
from firegrid.core import ConfigError, OvercommitError, ResourceExhausted

VOIP = """\
interface eth0 wan output rate 1mbit
    class voip commit 100kbit prio 0
        match udp dport 5060
"""


def _tc(result):
    return result.payloads['tc'].splitlines()


class TestHierarchy:
    def test_voip_example(self, compile_text):
        result = compile_text(VOIP)
        assert result.status == CompilerStatus.FWCOMPILER_SUCCESS
        assert _tc(result) == [
            'qdisc add dev eth0 root handle 1: htb default 10',
            'class add dev eth0 parent 1: classid 1:1 htb rate 1mbit ceil 1mbit',
            'class add dev eth0 parent 1:1 classid 1:11 htb rate 100kbit ceil 1mbit prio 0',
            'filter add dev eth0 parent 1: protocol ip pref 1 flower ip_proto udp dst_port 5060 classid 1:11',
            'filter add dev eth0 parent 1: protocol ipv6 pref 1 flower ip_proto udp dst_port 5060 classid 1:11',
            'qdisc add dev eth0 parent 1:11 handle 11: sfq perturb 10',
            'class add dev eth0 parent 1:1 classid 1:10 htb rate 8kbit ceil 1mbit prio 7',
            'qdisc add dev eth0 parent 1:10 handle 10: sfq perturb 10',
        ]
        assert result.payloads['ip'] == ''
        assert result.devices == ('eth0',)

    def test_shaping_only_interface_has_no_filter_chains(self, compile_text):
        result = compile_text(VOIP)
        assert 'in_wan' not in result.payloads['ipv4']

    def test_teardown(self, compile_text):
        assert compile_text(VOIP).payloads['tc_teardown'].splitlines() == [
            'qdisc del dev eth0 root',
            'qdisc del dev eth0 ingress',
        ]

    def test_no_shaping_no_payload(self, compile_text):
        result = compile_text('interface eth0\n    service ssh accept\n')
        assert result.payloads['tc'] == ''
        assert result.payloads['tc_teardown'] == ''
        assert result.devices == ()

    def test_percentages_resolve_against_interface_rate(self, compile_text):
        result = compile_text(
            'interface eth0 wan output rate 1mbit\n    class bulk commit 10% max 50%\n'
        )
        assert 'class add dev eth0 parent 1:1 classid 1:11 htb rate 100kbit ceil 500kbit prio 0' in _tc(result)

    def test_classes_get_minors_and_prios_in_order(self, compile_text):
        result = compile_text(
            'interface eth0 wan output rate 10mbit\n    class a\n    class b\n    class c prio 5\n'
        )
        classes = [line for line in _tc(result) if line.startswith('class add') and 'parent 1:1 ' in line]
        assert classes == [
            'class add dev eth0 parent 1:1 classid 1:11 htb rate 8kbit ceil 10mbit prio 0',
            'class add dev eth0 parent 1:1 classid 1:12 htb rate 8kbit ceil 10mbit prio 1',
            'class add dev eth0 parent 1:1 classid 1:13 htb rate 8kbit ceil 10mbit prio 5',
            'class add dev eth0 parent 1:1 classid 1:10 htb rate 8kbit ceil 10mbit prio 7',
        ]

    def test_declared_default_class(self, compile_text):
        result = compile_text(
            'interface eth0 wan output rate 1mbit\n    class default commit 200kbit\n'
        )
        assert 'class add dev eth0 parent 1:1 classid 1:10 htb rate 200kbit ceil 1mbit prio 7' in _tc(result)
        assert len([line for line in _tc(result) if 'classid 1:10' in line]) == 1

    def test_leaf_qdisc_kind(self, compile_text):
        result = compile_text(
            'interface eth0 wan output rate 1mbit\n    class bulk qdisc fq_codel\n'
        )
        assert 'qdisc add dev eth0 parent 1:11 handle 11: fq_codel' in _tc(result)

    def test_line_map(self, compile_text):
        result = compile_text(VOIP)
        primitive = result.line_maps['tc'][3]
        assert isinstance(primitive, ClassPrimitive)
        assert primitive.name == 'voip'


class TestClassifiers:
    def _filters(self, compile_text, match):
        result = compile_text(f'interface eth0 wan output rate 1mbit\n    class a\n        match {match}\n')
        return [line for line in _tc(result) if line.startswith('filter')]

    def test_address_restricts_family(self, compile_text):
        assert self._filters(compile_text, 'tcp sport 1000:2000 src 192.0.2.0/24') == [
            'filter add dev eth0 parent 1: protocol ip pref 1 flower ip_proto tcp '
            'src_ip 192.0.2.0/24 src_port 1000-2000 classid 1:11'
        ]

    def test_mac_only(self, compile_text):
        assert self._filters(compile_text, 'mac 00:11:22:33:44:55') == [
            'filter add dev eth0 parent 1: protocol all pref 1 flower src_mac 00:11:22:33:44:55 classid 1:11'
        ]

    def test_match_all(self, compile_text):
        assert self._filters(compile_text, 'all') == [
            'filter add dev eth0 parent 1: protocol all pref 1 matchall classid 1:11'
        ]

    def test_icmp_on_ipv6(self, compile_text):
        assert self._filters(compile_text, 'icmp') == [
            'filter add dev eth0 parent 1: protocol ip pref 1 flower ip_proto icmp classid 1:11',
            'filter add dev eth0 parent 1: protocol ipv6 pref 1 flower ip_proto icmpv6 classid 1:11',
        ]

    def test_preferences_follow_declaration_order(self, compile_text):
        result = compile_text(
            'interface eth0 wan output rate 1mbit\n'
            '    class a\n        match tcp dport 22\n'
            '    class b\n        match tcp dport 80\n'
        )
        filters = [line for line in _tc(result) if line.startswith('filter') and 'protocol ip ' in line]
        assert [line.split(' pref ')[1].split()[0] for line in filters] == ['1', '2']

    def test_state_is_ignored_with_a_warning(self, compile_text):
        result = compile_text(
            'interface eth0 wan output rate 1mbit\n    class a\n        match tcp state new\n'
        )
        assert result.status == CompilerStatus.FWCOMPILER_WARNING
        assert any('cannot be used for classification' in w for w in result.warnings)


class TestIngress:
    def test_input_shaping_uses_ifb(self, compile_text):
        result = compile_text('interface eth1 lan input rate 10mbit\n')
        lines = _tc(result)
        assert lines[:3] == [
            'qdisc add dev eth1 handle ffff: ingress',
            'filter add dev eth1 parent ffff: protocol all pref 1 matchall action mirred egress redirect dev ifb0',
            'qdisc add dev ifb0 root handle 1: htb default 10',
        ]
        assert result.payloads['ip'].splitlines() == ['link add ifb0 type ifb', 'link set dev ifb0 up']
        assert result.devices == ('eth1',)
        assert 'qdisc del dev ifb0 root' in result.payloads['tc_teardown']

    def test_ifb_pool_exhausted(self, compile_text):
        with pytest.raises(ResourceExhausted):
            compile_text(
                'interface eth0 a input rate 10mbit\ninterface eth1 b input rate 10mbit\n',
                ifb_devices=1,
            )

    def test_both_directions_of_one_device(self, compile_text):
        result = compile_text('interface eth0 a input rate 10mbit\ninterface eth0 b output rate 2mbit\n')
        lines = _tc(result)
        assert 'qdisc add dev ifb0 root handle 1: htb default 10' in lines
        assert 'qdisc add dev eth0 root handle 1: htb default 10' in lines


class TestErrors:
    def test_overcommit(self, compile_text):
        text = (
            'interface eth0 wan output rate 100kbit\n'
            '    class voip commit 100kbit\n'
            '    class clients commit 95%\n'
        )
        with pytest.raises(OvercommitError) as excinfo:
            compile_text(text)
        assert excinfo.value.classes == ['voip', 'clients']
        assert excinfo.value.line == 3
        assert str(excinfo.value).startswith('line 3: ')
        assert 'voip' in str(excinfo.value)
        assert 'clients' in str(excinfo.value)

    def test_exactly_full_is_fine(self, compile_text):
        result = compile_text(
            'interface eth0 wan output rate 1mbit\n    class a commit 50%\n    class b commit 500kbit\n'
        )
        assert result.ok

    def test_max_above_interface_rate(self, compile_text):
        with pytest.raises(ConfigError, match='exceeds'):
            compile_text('interface eth0 wan output rate 1mbit\n    class a max 2mbit\n')

    def test_max_below_commit(self, compile_text):
        with pytest.raises(ConfigError, match='lower than commit'):
            compile_text('interface eth0 wan output rate 1mbit\n    class a commit 500kbit max 100kbit\n')

    def test_device_shaped_twice(self, compile_text):
        with pytest.raises(ConfigError, match='already shaped'):
            compile_text('interface eth0 a output rate 1mbit\ninterface eth0 b output rate 2mbit\n')

    def test_class_defined_twice(self, compile_text):
        with pytest.raises(ConfigError, match='defined twice'):
            compile_text('interface eth0 wan output rate 1mbit\n    class a\n    class a\n')
