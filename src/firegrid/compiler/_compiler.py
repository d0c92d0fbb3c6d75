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

"""Compiler base class managing the rule processor pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING

from firegrid.compiler._base import BaseCompiler
from firegrid.compiler._rule_processor import BasicRuleProcessor, Debug

if TYPE_CHECKING:
    from firegrid.compiler._comp_rule import CompRule
    from firegrid.compiler._context import CompileContext
    from firegrid.core._errors import FiregridError
    from firegrid.core._model import Configuration


class Compiler(BaseCompiler):
    """Base compiler. Manages the rule processor pipeline."""

    def __init__(self, ctx: CompileContext, config: Configuration) -> None:
        super().__init__()
        self.ctx: CompileContext = ctx
        self.config: Configuration = config

        self.rules: list[CompRule] = []
        self.rule_processors: list[BasicRuleProcessor] = []
        self.primitives: list = []

        self.rule_debug_on: bool = False
        self.debug_scope: str = ''
        self.verbose: bool = False

    # -- Processor chain --

    def add(self, rp: BasicRuleProcessor) -> None:
        """Add a processor to the chain.

        If debugging is ON (rule_debug_on), also adds a Debug processor
        after it, except after SimplePrintProgress.
        """
        from firegrid.compiler.processors._generic import SimplePrintProgress

        self.rule_processors.append(rp)
        if self.rule_debug_on and not isinstance(rp, SimplePrintProgress):
            self.rule_processors.append(Debug())

    def run_rule_processors(self) -> None:
        """Link and execute the processor pipeline."""
        if not self.rule_processors:
            return

        self.rule_processors[0].set_context(self)
        for i in range(1, len(self.rule_processors)):
            self.rule_processors[i].set_context(self)
            self.rule_processors[i].set_data_source(self.rule_processors[i - 1])

        # Execute: call process_next() on the LAST processor
        last = self.rule_processors[-1]
        while last.process_next():
            pass

    # -- Compilation entry points --

    def prolog(self) -> int:
        """Initialize compilation. Returns rule count."""
        return 0

    def compile(self) -> None:
        """Override in subclasses to add processors."""
        pass

    def epilog(self) -> None:
        pass

    def run(self) -> list:
        """prolog, compile, epilog; returns the primitives."""
        self.prolog()
        self.compile()
        self.epilog()
        return self.primitives

    # -- Scope errors --

    def scope_error(self, scope, exc: FiregridError, rule: CompRule | None = None) -> None:
        """Record *exc* for *scope*; the rest of the scope is skipped."""
        name = getattr(scope, 'name', scope)
        first = not self.ctx.scope_failed(name)
        self.ctx.record_scope_error(name, exc)
        if rule is not None:
            self.error(rule, str(exc))
        else:
            self.error(str(exc))
        if first:
            self.warning(f'{getattr(scope, "label", name)}: skipped because of errors')

    def scope_failed(self, scope) -> bool:
        return self.ctx.scope_failed(getattr(scope, 'name', scope))

    def debug_print_rule(self, rule: CompRule) -> str:
        parts = [rule.label]
        if rule.chain:
            parts.append(f'chain={rule.chain}')
        if rule.family:
            parts.append(f'ipv{rule.family}')
        if rule.direction is not None:
            parts.append(f'{rule.direction}/{rule.leg}')
        if rule.predicate is not None:
            parts.append(f'[{rule.predicate}]')
        if rule.action is not None:
            parts.append(f'-> {rule.action}')
        return ' '.join(parts)
