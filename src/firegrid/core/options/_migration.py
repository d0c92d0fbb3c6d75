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

"""Legacy key migration.

Options files converted from FireHOL/FireQOS defaults files may still use
the shell variable names of those tools.  They are mapped to canonical
keys when the options are loaded.
"""

from firegrid.core.options._keys import Option

# Format: {'legacy_key': CanonicalKey}
LEGACY_KEY_MAP: dict[str, str] = {
    'FIREHOL_INPUT_ACTIVATION_POLICY': Option.BUILTIN_POLICY,
    'FIREHOL_OUTPUT_ACTIVATION_POLICY': Option.BUILTIN_POLICY,
    'FIREHOL_FORWARD_ACTIVATION_POLICY': Option.BUILTIN_POLICY,
    'DEFAULT_INTERFACE_POLICY': Option.DEFAULT_POLICY,
    'DEFAULT_ROUTER_POLICY': Option.DEFAULT_POLICY,
    'FIREHOL_TRY_TIMEOUT': Option.TRY_TIMEOUT,
    'FIREHOL_SERVICES_DIR': Option.SERVICES_FILES,
    'FIREQOS_IFBS': Option.IFB_DEVICES,
    'FIREQOS_LOCK_FILE': Option.LOCK_FILE,
    'FIREHOL_LOCK_FILE': Option.LOCK_FILE,
}


def migrate_options(options: dict | None) -> dict:
    """Return a copy of *options* with legacy keys replaced.

    If both the legacy and the canonical key are present, the canonical
    key wins.
    """
    if not options:
        return {}

    result = {}
    for key, value in options.items():
        if key in LEGACY_KEY_MAP:
            continue
        result[str(key)] = value
    for key, value in options.items():
        canonical_key = LEGACY_KEY_MAP.get(key)
        if canonical_key is not None and canonical_key not in result:
            result[str(canonical_key)] = value
    return result


def get_canonical_key(key: str) -> str:
    return LEGACY_KEY_MAP.get(key, key)
