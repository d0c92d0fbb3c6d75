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

"""Typed option keys and schema for firegrid.

This module provides:

- **StrEnum keys**: Type-safe option key names (``Option``)
- **Dataclass schema**: Typed defaults (``FiregridDefaults``)
- **Loader**: YAML file plus ``FIREGRID_<KEY>`` environment overrides
- **Migration helpers**: FireHOL/FireQOS variable names

Usage::

    from firegrid.core.options import Option, load_options

    options = load_options('/etc/firegrid/options.yml')
    timeout = getattr(options, Option.VERIFY_TIMEOUT)
"""

from firegrid.core.options._keys import Option
from firegrid.core.options._loader import ENV_PREFIX, load_options
from firegrid.core.options._migration import get_canonical_key, migrate_options
from firegrid.core.options._schemas import FIREGRID_DEFAULTS, FiregridDefaults

__all__ = [
    'ENV_PREFIX',
    'FIREGRID_DEFAULTS',
    'FiregridDefaults',
    'Option',
    'get_canonical_key',
    'load_options',
    'migrate_options',
]
