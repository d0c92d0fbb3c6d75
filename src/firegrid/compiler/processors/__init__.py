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

from ._filter import (
    AllocateHelpers,
    AppendToChain,
    ApplyConnectionState,
    AssignChain,
    CheckAddressFamily,
    ExpandDirections,
    ExpandReplies,
    ResolveServices,
    chain_name,
)
from ._generic import Begin, PrintTotalNumberOfRules, SimplePrintProgress

__all__ = [
    'AllocateHelpers',
    'AppendToChain',
    'ApplyConnectionState',
    'AssignChain',
    'Begin',
    'CheckAddressFamily',
    'ExpandDirections',
    'ExpandReplies',
    'PrintTotalNumberOfRules',
    'ResolveServices',
    'SimplePrintProgress',
    'chain_name',
]
