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

"""Bandwidth values as written in the configuration.

Units follow tc(8): ``bit`` (or a bare number) and ``kbit``/``mbit``/...
are bits per second, ``bps``/``kbps``/... are bytes per second.  A
percentage stays unresolved until the shaping compiler resolves it
against the interface rate right before emission.
"""

from __future__ import annotations

import dataclasses
import re
from decimal import Decimal, InvalidOperation

from firegrid.core._errors import ParseError, RangeError

_RATE_RE = re.compile(r'^(\d+(?:\.\d+)?)([a-z%]*)$', re.IGNORECASE)

_MULTIPLIERS = {
    '': 1,
    'bit': 1,
    'kbit': 1000,
    'mbit': 1000**2,
    'gbit': 1000**3,
    'tbit': 1000**4,
    'bps': 8,
    'kbps': 8 * 1000,
    'mbps': 8 * 1000**2,
    'gbps': 8 * 1000**3,
    'tbps': 8 * 1000**4,
}


@dataclasses.dataclass(frozen=True, slots=True)
class RateSpec:
    """An absolute rate in bits per second, or a percentage of the parent."""

    text: str
    bits: int | None = None
    percent: Decimal | None = None

    def resolve(self, parent_bits: int) -> int:
        """Return the rate in bits per second relative to *parent_bits*."""
        if self.percent is None:
            return self.bits
        return int(Decimal(parent_bits) * self.percent / 100)

    def __str__(self) -> str:
        return self.text


def parse_rate(text: str, line: int = 0, allow_percent: bool = True) -> RateSpec:
    m = _RATE_RE.match(text.strip())
    if not m:
        raise ParseError(line, text, 'invalid rate')
    value, unit = m.group(1), m.group(2).lower()
    try:
        number = Decimal(value)
    except InvalidOperation as e:
        raise ParseError(line, text, 'invalid rate') from e

    if unit == '%':
        if not allow_percent:
            raise ParseError(line, text, 'a percentage is not allowed here')
        if not 0 < number <= 100:
            raise RangeError(line, text, 'percentage must be within 0..100')
        return RateSpec(text=text, percent=number)

    if unit not in _MULTIPLIERS:
        raise ParseError(line, text, f'unknown rate unit "{unit}"')
    bits = int(number * _MULTIPLIERS[unit])
    if bits <= 0:
        raise RangeError(line, text, 'rate must be greater than zero')
    return RateSpec(text=text, bits=bits)


def format_rate(bits: int) -> str:
    """Render a rate for tc, using the largest exact decimal unit."""
    for unit, mult in (('gbit', 1000**3), ('mbit', 1000**2), ('kbit', 1000)):
        if bits % mult == 0:
            return f'{bits // mult}{unit}'
    return f'{bits}bit'
