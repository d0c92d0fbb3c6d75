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

"""Unit tests for the service catalog."""

import pytest

from firegrid.core import ConfigError, ServiceCatalog, UnknownService
from firegrid.core._errors import ParseError, RangeError
from firegrid.core._model import ActionKind
from firegrid.core._services import PortRange, parse_ports, parse_template


class TestParsePorts:
    def test_single_port(self):
        assert parse_ports('80') == (PortRange(80, 80),)

    def test_range_and_list(self):
        assert parse_ports('80,8000:8010') == (PortRange(80, 80), PortRange(8000, 8010))

    def test_port_out_of_range(self):
        with pytest.raises(RangeError):
            parse_ports('70000')

    def test_inverted_range(self):
        with pytest.raises(RangeError):
            parse_ports('90:80')

    def test_not_a_number(self):
        with pytest.raises(ParseError):
            parse_ports('http')

    def test_str_of_range(self):
        assert str(PortRange(5900, 5903)) == '5900:5903'
        assert str(PortRange(22, 22)) == '22'


class TestParseTemplate:
    def test_protocol_only(self):
        template = parse_template('icmp')
        assert template.protocol == 'icmp'
        assert template.ports == ()

    def test_ports_need_a_port_protocol(self):
        with pytest.raises(ParseError):
            parse_template('icmp/8')

    def test_unknown_protocol(self):
        with pytest.raises(ParseError):
            parse_template('xtp/1')


class TestBuiltinCatalog:
    def test_loads(self, catalog):
        assert 'http' in catalog
        assert len(catalog) > 50

    def test_dns_has_one_template_per_protocol(self, catalog):
        templates = catalog.lookup('dns')
        assert [t.protocol for t in templates] == ['udp', 'tcp']
        assert all(t.ports == (PortRange(53, 53),) for t in templates)

    def test_ftp_needs_a_helper(self, catalog):
        assert catalog.get('ftp').helpers == ('ftp',)

    def test_dhcp_restricts_client_ports(self, catalog):
        (template,) = catalog.lookup('dhcp')
        assert template.client_ports == (PortRange(68, 68),)

    def test_ident_is_rejected_by_default(self, catalog):
        assert catalog.get('ident').action.kind is ActionKind.REJECT

    def test_unknown_service(self, catalog):
        with pytest.raises(UnknownService) as excinfo:
            catalog.lookup('gopher', line=7, scope='interface eth0')
        assert excinfo.value.line == 7
        assert 'gopher' in str(excinfo.value)

    def test_catalog_is_read_only(self, catalog):
        with pytest.raises(TypeError):
            catalog.services['http'] = None

    def test_names_are_case_sensitive(self, catalog):
        assert 'HTTP' not in catalog


class TestCatalogFiles:
    def test_extra_file_adds_services(self, tmp_path):
        extra = tmp_path / 'local.yml'
        extra.write_text('myapp:\n  - tcp/9000:9010\n', encoding='utf-8')
        catalog = ServiceCatalog.load([str(extra)])
        (template,) = catalog.lookup('myapp')
        assert template.ports == (PortRange(9000, 9010),)
        assert 'ssh' in catalog

    def test_redefining_a_service_is_an_error(self, tmp_path):
        extra = tmp_path / 'local.yml'
        extra.write_text('ssh:\n  - tcp/2222\n', encoding='utf-8')
        with pytest.raises(ConfigError, match='already defined'):
            ServiceCatalog.load([str(extra)])

    def test_invalid_template(self):
        with pytest.raises(ConfigError, match='invalid template'):
            ServiceCatalog.from_yaml('bad:\n  - tcp/99999\n')

    def test_dict_entry_with_action(self):
        catalog = ServiceCatalog.from_yaml(
            'blocked:\n  - match: udp/9999\n    action: drop\n'
        )
        assert catalog.get('blocked').action.kind is ActionKind.DROP
