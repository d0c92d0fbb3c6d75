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

"""Tests for the filter compiler, checked through the rendered payloads."""

import pytest

import firegrid
from firegrid.compiler import CompilerStatus, FilterPrimitive


def _lines(result, family=4):
    return result.payloads[f'ipv{family}'].splitlines()


class TestInterface:
    def test_http_server(self, compile_text):
        result = compile_text('interface eth0\n    service http accept\n')
        assert result.status == CompilerStatus.FWCOMPILER_SUCCESS
        assert _lines(result) == [
            f'# Generated by firegrid {firegrid.__version__} (IPv4)',
            '*raw',
            ':PREROUTING ACCEPT [0:0]',
            ':OUTPUT ACCEPT [0:0]',
            'COMMIT',
            '*filter',
            ':INPUT DROP [0:0]',
            ':FORWARD DROP [0:0]',
            ':OUTPUT DROP [0:0]',
            ':in_eth0 - [0:0]',
            ':out_eth0 - [0:0]',
            '-A INPUT -i lo -j ACCEPT',
            '-A OUTPUT -o lo -j ACCEPT',
            '-A INPUT -i eth0 -j in_eth0',
            '-A in_eth0 -p tcp --dport 80 -m conntrack --ctstate NEW,ESTABLISHED -j ACCEPT',
            '-A in_eth0 -j DROP',
            '-A OUTPUT -o eth0 -j out_eth0',
            '-A out_eth0 -p tcp --sport 80 -m conntrack --ctstate ESTABLISHED -j ACCEPT',
            '-A out_eth0 -j DROP',
            'COMMIT',
        ]

    def test_both_families_by_default(self, compile_text):
        result = compile_text('interface eth0\n    service http accept\n')
        assert '-A INPUT -i eth0 -j in_eth0' in _lines(result, 6)

    def test_family_restricted_interface(self, compile_text):
        result = compile_text('interface4 eth0\n    service http accept\n')
        assert '-A INPUT -i eth0 -j in_eth0' in _lines(result, 4)
        assert '-A INPUT -i eth0 -j in_eth0' not in _lines(result, 6)

    def test_client_request_goes_out(self, compile_text):
        lines = _lines(compile_text('interface eth0\n    client dns accept\n'))
        assert '-A out_eth0 -p udp --dport 53 -m conntrack --ctstate NEW,ESTABLISHED -j ACCEPT' in lines
        assert '-A in_eth0 -p udp --sport 53 -m conntrack --ctstate ESTABLISHED -j ACCEPT' in lines

    def test_one_way_service_has_no_reply_and_no_state(self, compile_text):
        lines = _lines(compile_text('interface eth0\n    service syslog accept inbound\n'))
        assert '-A in_eth0 -p udp --dport 514 -j ACCEPT' in lines
        assert not [line for line in lines if line.startswith('-A out_eth0 -p')]

    @pytest.mark.parametrize('statement', ['match proto all accept', 'service all accept inbound'])
    def test_explicit_all_matches_everything(self, compile_text, statement):
        result = compile_text(f'interface eth0\n    {statement}\n')
        assert result.status == CompilerStatus.FWCOMPILER_SUCCESS
        lines = _lines(result)
        assert lines.index('-A in_eth0 -j ACCEPT') < lines.index('-A in_eth0 -j DROP')

    def test_interface_policy(self, compile_text):
        lines = _lines(compile_text('interface eth0 policy reject\n    service ssh accept\n'))
        assert '-A in_eth0 -j REJECT' in lines
        assert '-A out_eth0 -j REJECT' in lines

    def test_directional_policy(self, compile_text):
        lines = _lines(compile_text('interface eth0\n    policy accept outbound\n'))
        assert '-A in_eth0 -j DROP' in lines
        assert '-A out_eth0 -j ACCEPT' in lines

    def test_service_default_action(self, compile_text):
        lines = _lines(compile_text('interface eth0\n    service ident\n'))
        assert (
            '-A in_eth0 -p tcp --dport 113 -m conntrack --ctstate NEW,ESTABLISHED '
            '-j REJECT --reject-with tcp-reset'
        ) in lines

    def test_match_with_log(self, compile_text):
        lines = _lines(compile_text('interface eth0\n    match tcp dport 23 drop log telnet\n'))
        assert lines.index('-A in_eth0 -p tcp --dport 23 -j LOG --log-prefix "telnet "') + 1 == lines.index(
            '-A in_eth0 -p tcp --dport 23 -j DROP'
        )

    def test_builtin_policy_and_loopback_options(self, compile_text):
        result = compile_text('interface eth0\n', builtin_policy='accept', accept_loopback=False)
        lines = _lines(result)
        assert ':INPUT ACCEPT [0:0]' in lines
        assert '-A INPUT -i lo -j ACCEPT' not in lines

    def test_declaration_order_is_priority(self, compile_text):
        lines = _lines(compile_text('interface eth0\n    match src 10.0.0.1 drop\n    service ssh accept\n'))
        drop = lines.index('-A in_eth0 -s 10.0.0.1/32 -j DROP')
        ssh = lines.index('-A in_eth0 -p tcp --dport 22 -m conntrack --ctstate NEW,ESTABLISHED -j ACCEPT')
        assert drop < ssh


class TestRouter:
    def test_forward_hooks(self, compile_text):
        lines = _lines(compile_text('router lan2wan inface eth1 outface eth0\n    route http accept\n'))
        assert '-A FORWARD -i eth1 -o eth0 -j in_lan2wan' in lines
        assert '-A FORWARD -i eth0 -o eth1 -j out_lan2wan' in lines
        assert '-A in_lan2wan -p tcp --dport 80 -m conntrack --ctstate NEW,ESTABLISHED -j ACCEPT' in lines
        assert '-A out_lan2wan -p tcp --sport 80 -m conntrack --ctstate ESTABLISHED -j ACCEPT' in lines


class TestHelpers:
    def test_ftp_helper(self, compile_text):
        result = compile_text('interface eth0\n    service ftp accept\n')
        lines = _lines(result)
        assert '-A PREROUTING -i eth0 -p tcp --dport 21 -j CT --helper ftp' in lines
        assert lines.index('*raw') < lines.index('-A PREROUTING -i eth0 -p tcp --dport 21 -j CT --helper ftp')
        assert '-A out_eth0 -p tcp --sport 21 -m conntrack --ctstate ESTABLISHED,RELATED -j ACCEPT' in lines
        assert result.modules == ('nf_conntrack_ftp',)

    def test_helper_attached_once_per_interface(self, compile_text):
        result = compile_text('interface eth0\n    service ftp accept\n    service ftp accept src 10.0.0.0/8\n')
        assert result.modules == ('nf_conntrack_ftp',)
        helpers = [line for line in _lines(result) if '--helper' in line]
        assert len(helpers) == 2

    def test_match_server_allocates_the_helper(self, compile_text):
        result = compile_text('interface eth0\n    match server ftp accept\n')
        lines = _lines(result)
        assert result.modules == ('nf_conntrack_ftp',)
        assert '-A PREROUTING -i eth0 -p tcp --dport 21 -j CT --helper ftp' in lines
        assert '-A in_eth0 -p tcp --dport 21 -j ACCEPT' in lines

    def test_no_modules_without_helpers(self, compile_text):
        assert compile_text('interface eth0\n    service ssh accept\n').modules == ()


class TestChains:
    CONFIG = """\
interface eth0
    match src 10.0.0.0/8 jump trusted
chain trusted
    service ssh accept
"""

    def test_jump_into_user_chain(self, compile_text):
        result = compile_text(self.CONFIG)
        lines = _lines(result)
        assert ':trusted - [0:0]' in lines
        assert '-A in_eth0 -s 10.0.0.0/8 -j trusted' in lines
        assert '-A trusted -p tcp --dport 22 -j ACCEPT' in lines
        assert lines[-2] == '-A trusted -j RETURN'

    def test_ipv4_only_jump_is_not_in_ipv6(self, compile_text):
        lines = _lines(compile_text(self.CONFIG), 6)
        assert not [line for line in lines if '-j trusted' in line]

    def test_jump_to_unknown_chain(self, compile_text):
        result = compile_text('interface eth0\n    match all jump nowhere\ninterface eth1\n    service ssh accept\n')
        assert result.status == CompilerStatus.FWCOMPILER_ERROR
        assert any('nowhere' in e for e in result.errors)
        lines = _lines(result)
        assert ':in_eth0 - [0:0]' not in lines
        assert ':in_eth1 - [0:0]' in lines

    def test_reserved_chain_name(self, compile_text):
        result = compile_text('chain in_lan\n    service ssh accept\n')
        assert result.status == CompilerStatus.FWCOMPILER_ERROR


class TestScopeErrors:
    def test_unknown_service_fails_only_its_scope(self, compile_text):
        result = compile_text(
            'interface eth0 a\n    service gopher accept\ninterface eth1 b\n    service ssh accept\n'
        )
        assert result.status == CompilerStatus.FWCOMPILER_ERROR
        assert not result.ok
        assert any('unknown service "gopher"' in e for e in result.errors)
        lines = _lines(result)
        assert not [line for line in lines if 'in_a' in line]
        assert '-A INPUT -i eth1 -j in_b' in lines

    def test_conflicting_policies(self, compile_text):
        result = compile_text('interface eth0 policy accept\n    policy drop\n')
        assert result.status == CompilerStatus.FWCOMPILER_ERROR
        assert any('conflicting default policies' in e for e in result.errors)

    def test_duplicate_scope_names(self, compile_text):
        result = compile_text('interface eth0 lan\ninterface eth1 lan\n')
        assert any('more than one block' in e for e in result.errors)

    def test_address_of_the_wrong_family(self, compile_text):
        result = compile_text('interface4 eth0\n    match src 2001:db8::/32 accept\n')
        assert result.status == CompilerStatus.FWCOMPILER_ERROR
        assert any('matches no address' in e for e in result.errors)

    def test_ports_without_protocol(self, compile_text):
        result = compile_text('interface eth0\n    match dport 80 accept\n')
        assert result.status == CompilerStatus.FWCOMPILER_ERROR


class TestDeterminism:
    CONFIG = 'interface eth0\n    service http accept\n    service dns accept\n'

    def test_same_input_same_digest(self, compile_text):
        first = compile_text(self.CONFIG)
        second = compile_text(self.CONFIG)
        assert first.payloads == second.payloads
        assert first.digest == second.digest

    def test_changed_input_changes_digest(self, compile_text):
        assert compile_text(self.CONFIG).digest != compile_text(self.CONFIG + '    service ssh accept\n').digest

    def test_line_map_points_back_to_statement(self, compile_text):
        result = compile_text(self.CONFIG)
        lines = _lines(result)
        lineno = lines.index('-A in_eth0 -p tcp --dport 80 -m conntrack --ctstate NEW,ESTABLISHED -j ACCEPT') + 1
        primitive = result.line_maps['ipv4'][lineno]
        assert isinstance(primitive, FilterPrimitive)
        assert primitive.line == 2
