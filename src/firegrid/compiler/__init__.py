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

"""Compiler infrastructure: match engine, chain builder, rule pipeline."""

from ._base import BaseCompiler, CompilerStatus
from ._chain import ChainBuilder, ChainEntry, ChainHook, ChainState
from ._comp_rule import CompRule, load_rules
from ._compiler import Compiler
from ._context import CompileContext, HelperAllocation
from ._filter_compiler import FilterCompiler
from ._match import (
    MATCH_ALL,
    Endpoint,
    MatchEngine,
    MatchPredicate,
    RateLimit,
    parse_addresses,
)
from ._primitives import (
    ChainPrimitive,
    ClassPrimitive,
    FilterPrimitive,
    HelperPrimitive,
    IfbPrimitive,
    QdiscPrimitive,
    RedirectPrimitive,
)
from ._qos_compiler import QosCompiler
from ._rule_processor import BasicRuleProcessor, ScopedRuleProcessor

__all__ = [
    'MATCH_ALL',
    'BaseCompiler',
    'BasicRuleProcessor',
    'ChainBuilder',
    'ChainEntry',
    'ChainHook',
    'ChainPrimitive',
    'ChainState',
    'ClassPrimitive',
    'CompRule',
    'CompileContext',
    'Compiler',
    'CompilerStatus',
    'Endpoint',
    'FilterCompiler',
    'FilterPrimitive',
    'HelperAllocation',
    'HelperPrimitive',
    'IfbPrimitive',
    'MatchEngine',
    'MatchPredicate',
    'QdiscPrimitive',
    'QosCompiler',
    'RateLimit',
    'RedirectPrimitive',
    'ScopedRuleProcessor',
    'parse_addresses',
]
