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

"""Exception taxonomy shared by the reader, the compilers and activation.

- ParseError / RangeError: malformed configuration, aborts the whole pass.
- ConfigError and subclasses: well-formed but semantically invalid input.
- ResourceError: a kernel resource (ifb device, lock) is unavailable.
- ActivationError / VerificationError: the kernel rejected staged state.
"""

from __future__ import annotations


class FiregridError(Exception):
    """Base class for all firegrid errors."""


class ParseError(FiregridError):
    """Malformed configuration syntax."""

    def __init__(self, line: int, token: str, reason: str) -> None:
        self.line = line
        self.token = token
        self.reason = reason
        where = f'line {line}: ' if line else ''
        super().__init__(f'{where}{reason} (at {token!r})')


class RangeError(ParseError):
    """A numeric value or range lies outside its allowed bounds."""


class ConfigError(FiregridError):
    """Semantically invalid configuration.

    *scope* names the interface, router, chain or class the error belongs
    to; the filter compiler uses it to isolate failures to one scope.
    """

    def __init__(self, message: str, line: int = 0, scope: str = '') -> None:
        self.line = line
        self.scope = scope
        self.message = message
        parts = []
        if line:
            parts.append(f'line {line}')
        if scope:
            parts.append(scope)
        prefix = ': '.join(parts)
        super().__init__(f'{prefix}: {message}' if prefix else message)


class UnknownService(ConfigError):
    def __init__(self, name: str, line: int = 0, scope: str = '') -> None:
        self.name = name
        super().__init__(f'unknown service "{name}"', line=line, scope=scope)


class ConflictingDefaultPolicy(ConfigError):
    def __init__(
        self, chain: str, first: str, second: str, line: int = 0, scope: str = ''
    ) -> None:
        self.chain = chain
        super().__init__(
            f'chain {chain} declares conflicting default policies '
            f'"{first}" and "{second}"',
            line=line,
            scope=scope,
        )


class OvercommitError(ConfigError):
    def __init__(
        self,
        classes: list[str],
        committed: int,
        rate: int,
        line: int = 0,
        scope: str = '',
    ) -> None:
        self.classes = list(classes)
        self.committed = committed
        self.rate = rate
        super().__init__(
            f'guaranteed rates of classes {", ".join(classes)} sum to '
            f'{committed}bit, more than the interface rate of {rate}bit',
            line=line,
            scope=scope,
        )


class ResourceError(FiregridError):
    """A needed system resource could not be allocated."""


class ResourceExhausted(ResourceError):
    pass


class LockError(ResourceError):
    pass


class ActivationError(FiregridError):
    """The kernel rejected staged state; the previous state stays live."""


class VerificationError(ActivationError):
    def __init__(self, message: str, primitive=None) -> None:
        self.primitive = primitive
        if primitive is not None:
            label = getattr(primitive, 'label', '') or str(primitive)
            message = f'{message} [{label}]'
        super().__init__(message)


class ChainStateError(RuntimeError):
    """A chain builder was driven through an illegal state transition."""
