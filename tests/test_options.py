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

"""Tests for option loading."""

import pytest

from firegrid.core import ConfigError
from firegrid.core.options import FIREGRID_DEFAULTS, Option, get_canonical_key, load_options, migrate_options


def _write(tmp_path, text):
    path = tmp_path / 'options.yml'
    path.write_text(text)
    return path


class TestLoadOptions:
    def test_missing_file_gives_defaults(self, tmp_path):
        options = load_options(tmp_path / 'missing.yml', env={})
        assert options == FIREGRID_DEFAULTS

    def test_yaml_values(self, tmp_path):
        path = _write(tmp_path, 'verify_timeout: 5\nfail_closed: false\nservices_files: [/etc/a.yml]\n')
        options = load_options(path, env={})
        assert options.verify_timeout == 5.0
        assert options.fail_closed is False
        assert options.services_files == ['/etc/a.yml']

    def test_environment_wins(self, tmp_path):
        path = _write(tmp_path, 'try_timeout: 10\n')
        options = load_options(path, env={'FIREGRID_TRY_TIMEOUT': '60', 'FIREGRID_ACCEPT_LOOPBACK': 'no'})
        assert options.try_timeout == 60
        assert options.accept_loopback is False

    def test_list_from_environment(self):
        options = load_options(env={'FIREGRID_SERVICES_FILES': '/a.yml, /b.yml'})
        assert options.services_files == ['/a.yml', '/b.yml']

    def test_unknown_option(self, tmp_path):
        with pytest.raises(ConfigError, match='unknown option'):
            load_options(_write(tmp_path, 'colour: blue\n'), env={})

    def test_bad_type(self, tmp_path):
        with pytest.raises(ConfigError, match='expected a int'):
            load_options(_write(tmp_path, 'ifb_devices: many\n'), env={})

    def test_bad_boolean(self):
        with pytest.raises(ConfigError):
            load_options(env={'FIREGRID_FAIL_CLOSED': 'perhaps'})

    def test_not_a_mapping(self, tmp_path):
        with pytest.raises(ConfigError, match='mapping'):
            load_options(_write(tmp_path, '- a\n- b\n'), env={})

    @pytest.mark.parametrize(('key', 'value'), [('default_policy', 'maybe'), ('builtin_policy', 'reject')])
    def test_invalid_policies(self, key, value):
        with pytest.raises(ConfigError):
            load_options(env={f'FIREGRID_{key.upper()}': value})


class TestMigration:
    def test_legacy_keys(self):
        assert migrate_options({'FIREQOS_IFBS': 2, 'verify_timeout': 3}) == {
            'ifb_devices': 2,
            'verify_timeout': 3,
        }

    def test_canonical_key_wins(self):
        assert migrate_options({'FIREHOL_TRY_TIMEOUT': 5, 'try_timeout': 9}) == {'try_timeout': 9}

    def test_legacy_file(self, tmp_path):
        options = load_options(_write(tmp_path, 'DEFAULT_INTERFACE_POLICY: reject\n'), env={})
        assert options.default_policy == 'reject'

    def test_get_canonical_key(self):
        assert get_canonical_key('FIREQOS_LOCK_FILE') == Option.LOCK_FILE
        assert get_canonical_key('tc') == 'tc'


def test_every_key_has_a_default():
    for key in Option:
        assert hasattr(FIREGRID_DEFAULTS, key.value)
