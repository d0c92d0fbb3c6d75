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

"""Shared pytest fixtures: catalog, options, compile helper, fake kernel."""

import dataclasses
import subprocess

import pytest

import firegrid.core
from firegrid.core.options import FiregridDefaults
from firegrid.driver import CompilerDriver
from firegrid.platforms.linux import ActivationManager, CommandResult


LIVE_RULESET = """\
*filter
:INPUT ACCEPT [0:0]
:FORWARD ACCEPT [0:0]
:OUTPUT ACCEPT [0:0]
-A INPUT -i lo -j ACCEPT
-A INPUT -p tcp --dport 22 -j ACCEPT
-A INPUT -j DROP
COMMIT
"""


@dataclasses.dataclass
class _Failure:
    returncode: int = 1
    stderr: str = ''
    times: int | None = None
    when: object = None
    timeout: bool = False


class FakeKernel:
    """Stands in for iptables-restore, tc, ip and modprobe.

    Records every call.  ``*-restore`` without ``--test`` replaces the
    live ruleset of its family, ``*-save`` prints it.  Failures are
    registered per exact argument tuple.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[tuple[str, ...], str | None]] = []
        self.live = {4: LIVE_RULESET, 6: LIVE_RULESET}
        self.devices = {'lo', 'eth0', 'eth1', 'ppp0'}
        self._failures: dict[tuple[str, ...], _Failure] = {}

    def fail(self, *args, returncode=1, stderr='', times=None, when=None, timeout=False):
        self._failures[tuple(args)] = _Failure(returncode, stderr, times, when, timeout)

    def run(self, args, input=None, timeout=None):
        args = tuple(str(a) for a in args)
        self.calls.append((args, input))

        failure = self._failures.get(args)
        if failure is not None and failure.times != 0:
            if failure.when is None or failure.when(input):
                if failure.times is not None:
                    failure.times -= 1
                if failure.timeout:
                    raise subprocess.TimeoutExpired(args, timeout)
                return CommandResult(args, failure.returncode, '', failure.stderr)

        tool = args[0]
        if tool in ('iptables-save', 'ip6tables-save'):
            family = 4 if tool == 'iptables-save' else 6
            return CommandResult(args, 0, self.live[family], '')
        if tool in ('iptables-restore', 'ip6tables-restore') and '--test' not in args:
            family = 4 if tool == 'iptables-restore' else 6
            self.live[family] = input
        if args[1:3] == ('link', 'show'):
            if args[-1] not in self.devices:
                return CommandResult(args, 1, '', f'Device "{args[-1]}" does not exist.')
        return CommandResult(args, 0, '', '')

    def commands(self, *prefix):
        """Calls whose arguments start with *prefix*."""
        return [c for c in self.calls if c[0][: len(prefix)] == prefix]

    def live_rule_count(self, family):
        return sum(1 for line in self.live[family].splitlines() if line.startswith('-A '))


@pytest.fixture(scope='session')
def catalog():
    return firegrid.core.ServiceCatalog.load()


@pytest.fixture
def options(tmp_path):
    return FiregridDefaults(
        state_db=str(tmp_path / 'state.db'),
        staging_dir=str(tmp_path / 'staging'),
        lock_file=str(tmp_path / 'firegrid.lock'),
        lock_retries=1,
        lock_retry_delay=0.0,
    )


@pytest.fixture
def compile_text(options, catalog):
    """Compile configuration text with a fresh driver."""

    def _compile(text, **overrides):
        opts = dataclasses.replace(options, **overrides) if overrides else options
        return CompilerDriver(opts, catalog).compile_text(text)

    return _compile


@pytest.fixture
def kernel():
    return FakeKernel()


@pytest.fixture
def database():
    return firegrid.core.DatabaseManager()


@pytest.fixture
def manager(options, kernel, database):
    return ActivationManager(options, runner=kernel, database=database)
