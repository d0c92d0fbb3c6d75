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

"""BaseCompiler: error/warning tracking for all compilers."""

from __future__ import annotations

import logging
import sys
from enum import IntEnum

logger = logging.getLogger(__name__)


class CompilerStatus(IntEnum):
    """Compiler exit status codes."""

    FWCOMPILER_SUCCESS = 0
    FWCOMPILER_WARNING = 1
    FWCOMPILER_ERROR = 2


class BaseCompiler:
    """Base class providing error/warning tracking for all compilers.

    Errors may be attached to a rule (anything with a ``label``) or, for
    scope-level failures, to the name of an interface, router or chain.
    """

    def __init__(self) -> None:
        self._status: CompilerStatus = CompilerStatus.FWCOMPILER_SUCCESS
        self._errors: list[str] = []
        self._warnings: list[str] = []

    @property
    def status(self) -> CompilerStatus:
        return self._status

    def error(self, rule_or_msg, msg: str | None = None) -> None:
        """Record an error, optionally associated with a rule."""
        if msg is None:
            text = str(rule_or_msg)
            self._errors.append(text)
        else:
            label = getattr(rule_or_msg, 'label', '')
            text = f'Rule {label}: {msg}' if label else msg
            self._errors.append(text)
        logger.debug('error: %s', text)
        self._status = CompilerStatus.FWCOMPILER_ERROR

    def warning(self, rule_or_msg, msg: str | None = None) -> None:
        """Record a warning, optionally associated with a rule."""
        if msg is None:
            text = str(rule_or_msg)
            self._warnings.append(text)
        else:
            label = getattr(rule_or_msg, 'label', '')
            text = f'Rule {label}: {msg}' if label else msg
            self._warnings.append(text)
        logger.debug('warning: %s', text)
        if self._status == CompilerStatus.FWCOMPILER_SUCCESS:
            self._status = CompilerStatus.FWCOMPILER_WARNING

    def info(self, msg: str) -> None:
        """Print an informational message to stderr."""
        print(msg, file=sys.stderr)

    def get_errors(self) -> list[str]:
        return list(self._errors)

    def get_warnings(self) -> list[str]:
        return list(self._warnings)

    def merge_diagnostics(self, other: BaseCompiler) -> None:
        """Take over the errors and warnings of a sub-compiler."""
        self._errors.extend(other.get_errors())
        self._warnings.extend(other.get_warnings())
        if other.status > self._status:
            self._status = other.status
