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

"""Generic rule processors shared across all compilers."""

from __future__ import annotations

import logging

from firegrid.compiler._rule_processor import BasicRuleProcessor

logger = logging.getLogger(__name__)


class Begin(BasicRuleProcessor):
    """Injects CompRules from the compiler's rules list into the pipeline."""

    def __init__(self, name: str = 'Begin') -> None:
        super().__init__(name)
        self._init = False

    def process_next(self) -> bool:
        if not self._init:
            for rule in self.compiler.rules:
                if self.compiler.scope_failed(rule.scope):
                    continue
                self.tmp_queue.append(rule)
            self._init = True
            return bool(self.tmp_queue)
        return False


class PrintTotalNumberOfRules(BasicRuleProcessor):
    """Counts total rules (uses slurp). Passes all rules through."""

    def __init__(self, name: str = 'Print total number of rules') -> None:
        super().__init__(name)

    def process_next(self) -> bool:
        if self.slurp():
            if self.compiler.verbose:
                self.compiler.info(f' Compiling {len(self.tmp_queue)} rules')
            return True
        return bool(self.tmp_queue)


class SimplePrintProgress(BasicRuleProcessor):
    """Passes rules through, logging each new statement once."""

    def __init__(self, name: str = 'Progress') -> None:
        super().__init__(name)
        self._current = ''

    def process_next(self) -> bool:
        rule = self.prev_processor.get_next_rule()
        if rule is None:
            return False
        key = f'{rule.scope.name}:{rule.position}'
        if key != self._current:
            self._current = key
            logger.debug('Rule %s', rule.label)
        self.tmp_queue.append(rule)
        return True
