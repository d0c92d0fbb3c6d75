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

from ._config_reader import ConfigReader
from ._database import DatabaseManager
from ._errors import (
    ActivationError,
    ChainStateError,
    ConfigError,
    ConflictingDefaultPolicy,
    FiregridError,
    LockError,
    OvercommitError,
    ParseError,
    RangeError,
    ResourceError,
    ResourceExhausted,
    UnknownService,
    VerificationError,
)
from ._rates import RateSpec, format_rate, parse_rate
from ._services import MatchTemplate, PortRange, Service, ServiceCatalog

__all__ = [
    'ActivationError',
    'ChainStateError',
    'ConfigError',
    'ConfigReader',
    'ConflictingDefaultPolicy',
    'DatabaseManager',
    'FiregridError',
    'LockError',
    'MatchTemplate',
    'OvercommitError',
    'ParseError',
    'PortRange',
    'RangeError',
    'RateSpec',
    'ResourceError',
    'ResourceExhausted',
    'Service',
    'ServiceCatalog',
    'UnknownService',
    'VerificationError',
    'format_rate',
    'parse_rate',
]
