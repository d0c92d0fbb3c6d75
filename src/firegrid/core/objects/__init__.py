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

"""SQLAlchemy models of the persistent state store."""

from ._activation import SCHEMA_VERSION, Activation, ActivationStatus
from ._base import Base, enable_sqlite_fks

__all__ = [
    'SCHEMA_VERSION',
    'Activation',
    'ActivationStatus',
    'Base',
    'enable_sqlite_fks',
]
