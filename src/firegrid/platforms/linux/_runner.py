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

"""CommandRunner: the only place firegrid starts external programs."""

from __future__ import annotations

import dataclasses
import logging
import shlex
import subprocess

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class CommandResult:
    args: tuple[str, ...]
    returncode: int
    stdout: str = ''
    stderr: str = ''

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner:
    """Run commands with :func:`subprocess.run`.

    A missing executable is reported as return code 127, a timeout raises
    :class:`subprocess.TimeoutExpired` to the caller.
    """

    def run(
        self,
        args,
        input: str | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        args = tuple(str(a) for a in args)
        cmd_str = ' '.join(shlex.quote(a) for a in args)
        logger.debug('Running: %s', cmd_str)
        try:
            proc = subprocess.run(
                args,
                input=input,
                capture_output=True,
                text=True,
                timeout=timeout,
                check=False,
            )
        except FileNotFoundError:
            logger.error('Command not found: %s', args[0])
            return CommandResult(args, 127, '', f'{args[0]}: command not found')
        except subprocess.TimeoutExpired:
            logger.error('Command %s timed out after %ss', cmd_str, timeout)
            raise

        result = CommandResult(args, proc.returncode, proc.stdout or '', proc.stderr or '')
        if result.stderr:
            level = logging.DEBUG if result.ok else logging.WARNING
            logger.log(level, '%s: %s', args[0], result.stderr.strip())
        return result
