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

"""Tests for the firegrid and firegrid-vnet command lines."""

import pytest

from firegrid.cli import firegrid as cli
from firegrid.cli import firegrid_vnet
from firegrid.platforms.linux import ActivationManager

CONFIG = """\
interface eth0 wan
    policy drop
    server ssh accept
    client dns accept
"""

BROKEN = """\
interface eth0 wan
    server gopher accept
"""

TOPOLOGY = """\
host fw
    dev eth0 lan/port1 192.0.2.1/24
switch lan
"""


@pytest.fixture
def config_file(tmp_path):
    def _write(text, name='firegrid.conf'):
        path = tmp_path / name
        path.write_text(text)
        return str(path)

    return _write


@pytest.fixture
def run(options, kernel, database):
    """Run a firegrid command against the fake kernel."""

    def _run(*argv):
        args = cli.parse_args(list(argv))
        return cli.run_command(
            args,
            options,
            manager_factory=lambda opts: ActivationManager(opts, runner=kernel, database=database),
        )

    return _run


def _restores(kernel):
    return [c for c in kernel.calls if c[0][0] == 'iptables-restore' and '--test' not in c[0]]


class TestParseArgs:
    def test_defaults(self):
        args = cli.parse_args(['status'])
        assert args.CONFIG == cli.DEFAULT_CONFIG
        assert args.OPTIONS == cli.DEFAULT_OPTIONS
        assert args.FILES == []
        assert args.VERBOSE == 0

    def test_unknown_command(self):
        with pytest.raises(SystemExit):
            cli.parse_args(['explode'])


class TestRunCommand:
    def test_debug_prints_payloads(self, run, config_file, capsys, kernel):
        assert run('debug', '-c', config_file(CONFIG)) == cli.EXIT_OK
        out = capsys.readouterr().out
        assert '# --- ipv4 ---' in out
        assert '# --- ipv6 ---' in out
        assert '-A in_wan -p tcp --dport 22' in out
        assert kernel.calls == []

    def test_debug_with_errors(self, run, config_file, capsys):
        assert run('debug', '-c', config_file(BROKEN)) == cli.EXIT_COMPILE
        assert 'gopher' in capsys.readouterr().err

    def test_start_activates(self, run, config_file, database, kernel, capsys):
        assert run('start', '-c', config_file(CONFIG)) == cli.EXIT_OK
        assert database.get_active() is not None
        assert 'Firewall activated' in capsys.readouterr().err
        assert '-A in_wan -p tcp --dport 22' in kernel.live[4]

    def test_start_refuses_errors(self, run, config_file, database, kernel):
        assert run('start', '-c', config_file(BROKEN)) == cli.EXIT_COMPILE
        assert database.get_active() is None
        assert _restores(kernel) == []

    def test_status(self, run, config_file, capsys):
        run('start', '-c', config_file(CONFIG))
        capsys.readouterr()
        assert run('status') == cli.EXIT_OK
        out = capsys.readouterr().out
        assert 'firegrid is active since' in out
        assert 'IPv4:' in out
        assert 'IPv6:' in out

    def test_status_inactive(self, run, capsys):
        assert run('status') == cli.EXIT_OK
        out = capsys.readouterr().out
        assert 'firegrid is not active.' in out
        assert 'IPv4: 3 rules' in out

    def test_condrestart_when_inactive(self, run, config_file, kernel):
        assert run('condrestart', '-c', config_file(CONFIG)) == cli.EXIT_OK
        assert _restores(kernel) == []

    def test_condrestart_when_active(self, run, config_file, database):
        run('start', '-c', config_file(CONFIG))
        first = database.get_active().id
        assert run('condrestart', '-c', config_file(CONFIG)) == cli.EXIT_OK
        assert database.get_active().id != first

    def test_stop(self, run, config_file, database, capsys):
        run('start', '-c', config_file(CONFIG))
        assert run('stop') == cli.EXIT_OK
        assert database.get_active() is None
        assert 'Firewall stopped.' in capsys.readouterr().err

    def test_save(self, run, tmp_path, kernel):
        v4, v6 = tmp_path / 'v4.save', tmp_path / 'v6.save'
        assert run('save', str(v4), str(v6)) == cli.EXIT_OK
        assert v4.read_text() == kernel.live[4]
        assert v6.read_text() == kernel.live[6]

    def test_save_needs_two_files(self, run, tmp_path, capsys):
        assert run('save', str(tmp_path / 'only.save')) == cli.EXIT_INTERNAL
        assert 'IPv4 and an IPv6 file' in capsys.readouterr().err


class TestMain:
    def test_parse_error(self, config_file, tmp_path, capsys):
        path = config_file('interface eth0\n    frobnicate\n')
        code = cli.main(['debug', '-c', path, '-o', str(tmp_path / 'none.yml')])
        assert code == cli.EXIT_COMPILE
        assert 'frobnicate' in capsys.readouterr().err

    def test_missing_config(self, tmp_path):
        code = cli.main(['debug', '-c', str(tmp_path / 'missing.conf'), '-o', str(tmp_path / 'none.yml')])
        assert code == cli.EXIT_INTERNAL

    def test_bad_options(self, config_file, tmp_path):
        options = tmp_path / 'options.yml'
        options.write_text('colour: blue\n')
        code = cli.main(['debug', '-c', config_file(CONFIG), '-o', str(options)])
        assert code == cli.EXIT_COMPILE


class TestVnet:
    def _main(self, command, path, tmp_path, kernel):
        return firegrid_vnet.main([command, '-c', path, '-o', str(tmp_path / 'none.yml')], runner=kernel)

    def test_start(self, config_file, tmp_path, kernel):
        assert self._main('start', config_file(TOPOLOGY), tmp_path, kernel) == 0
        assert kernel.commands('ip', 'netns', 'add')

    def test_graph(self, config_file, tmp_path, kernel, capsys):
        assert self._main('graph', config_file(TOPOLOGY), tmp_path, kernel) == 0
        out = capsys.readouterr().out
        assert out.startswith('graph')
        assert '"fw" -- "lan"' in out
        assert kernel.calls == []

    def test_parse_error(self, config_file, tmp_path, kernel):
        assert self._main('start', config_file('host fw\n    dev\n'), tmp_path, kernel) == 2

    def test_no_domains(self, config_file, tmp_path, kernel, capsys):
        assert self._main('start', config_file('# empty\n'), tmp_path, kernel) == 2
        assert 'defines no host or switch' in capsys.readouterr().err
