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

"""Canonical option key definitions using StrEnum.

The same keys are used in the YAML options file, as ``FIREGRID_<KEY>``
environment variables and as attribute names of FiregridDefaults.

Example:
    from firegrid.core.options import Option

    options.get(Option.VERIFY_TIMEOUT)
"""

from enum import StrEnum


class Option(StrEnum):
    """firegrid option keys."""

    # Tool paths
    PATH_IPTABLES_RESTORE = 'iptables_restore'
    PATH_IP6TABLES_RESTORE = 'ip6tables_restore'
    PATH_IPTABLES_SAVE = 'iptables_save'
    PATH_IP6TABLES_SAVE = 'ip6tables_save'
    PATH_TC = 'tc'
    PATH_IP = 'ip'
    PATH_MODPROBE = 'modprobe'

    # State and staging
    STATE_DB = 'state_db'
    STAGING_DIR = 'staging_dir'
    LOCK_FILE = 'lock_file'
    LOCK_RETRIES = 'lock_retries'
    LOCK_RETRY_DELAY = 'lock_retry_delay'

    # Activation
    VERIFY_TIMEOUT = 'verify_timeout'
    FAIL_CLOSED = 'fail_closed'
    TRY_TIMEOUT = 'try_timeout'

    # Compiler
    DEFAULT_POLICY = 'default_policy'
    BUILTIN_POLICY = 'builtin_policy'
    ACCEPT_LOOPBACK = 'accept_loopback'
    SERVICES_FILES = 'services_files'

    # Traffic shaping
    IFB_DEVICES = 'ifb_devices'

    # Test topologies
    NETNS_PREFIX = 'netns_prefix'
