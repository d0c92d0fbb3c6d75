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

"""Typed option schema with defaults.

FiregridDefaults is the single source of truth for which options exist,
their types and their default values.  Attribute names equal the
``Option`` values.
"""

from dataclasses import dataclass, field


@dataclass
class FiregridDefaults:
    """Default values for all firegrid options."""

    # Tool paths
    iptables_restore: str = 'iptables-restore'
    ip6tables_restore: str = 'ip6tables-restore'
    iptables_save: str = 'iptables-save'
    ip6tables_save: str = 'ip6tables-save'
    tc: str = 'tc'
    ip: str = 'ip'
    modprobe: str = 'modprobe'

    # State and staging
    state_db: str = '/var/lib/firegrid/state.db'
    staging_dir: str = '/var/lib/firegrid/staging'
    lock_file: str = '/run/firegrid.lock'
    lock_retries: int = 10
    lock_retry_delay: float = 0.5  # seconds

    # Activation
    verify_timeout: float = 30.0  # seconds, per verification step
    fail_closed: bool = True
    try_timeout: int = 30  # seconds to type "commit" after "try"

    # Compiler
    default_policy: str = 'drop'  # interfaces and routers without a policy
    builtin_policy: str = 'drop'  # INPUT/OUTPUT/FORWARD
    accept_loopback: bool = True
    services_files: list[str] = field(default_factory=list)

    # Traffic shaping
    ifb_devices: int = 4

    # Test topologies
    netns_prefix: str = 'fg-'


FIREGRID_DEFAULTS = FiregridDefaults()
