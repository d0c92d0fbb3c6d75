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

"""PrintRule: iptables-restore rule lines from filter primitives.

Targets are rendered through one handler per ActionKind; the handler
table is checked for completeness when the module is imported.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from firegrid.compiler._primitives import FilterPrimitive, HelperPrimitive
from firegrid.core._model import ActionKind

if TYPE_CHECKING:
    from firegrid.compiler._match import Endpoint, MatchPredicate
    from firegrid.core._model import Action

# iptables limits the log prefix to 29 characters
LOG_PREFIX_MAX = 29


def _target_accept(action: Action, predicate: MatchPredicate) -> str:
    return '-j ACCEPT'


def _target_drop(action: Action, predicate: MatchPredicate) -> str:
    return '-j DROP'


def _target_reject(action: Action, predicate: MatchPredicate) -> str:
    if predicate.protocol == 'tcp':
        return '-j REJECT --reject-with tcp-reset'
    return '-j REJECT'


def _target_return(action: Action, predicate: MatchPredicate) -> str:
    return '-j RETURN'


def _target_jump(action: Action, predicate: MatchPredicate) -> str:
    return f'-j {action.target}'


TARGET_HANDLERS = {
    ActionKind.ACCEPT: _target_accept,
    ActionKind.DROP: _target_drop,
    ActionKind.REJECT: _target_reject,
    ActionKind.RETURN: _target_return,
    ActionKind.JUMP: _target_jump,
}

_missing = set(ActionKind) - set(TARGET_HANDLERS)
if _missing:
    raise TypeError(f'no iptables target handler for {sorted(_missing)}')


class PrintRule:
    """Generates iptables-restore rule lines (without the table header)."""

    def rule_lines(self, primitive) -> list[str]:
        """Return the ``-A`` lines of *primitive* (LOG line first, if any)."""
        if isinstance(primitive, HelperPrimitive):
            return [self._build_helper_command(primitive)]
        if not isinstance(primitive, FilterPrimitive):
            raise TypeError(f'cannot print {type(primitive).__name__}')
        lines = []
        if primitive.log is not None:
            lines.append(self._build_log_command(primitive))
        lines.append(self._build_rule_command(primitive))
        return lines

    def _build_rule_command(self, p: FilterPrimitive) -> str:
        command_line = self._start_rule_line(p.chain)
        command_line += self._print_direction_and_interface(p.in_iface, p.out_iface)
        command_line += self._print_match(p.predicate)
        command_line += TARGET_HANDLERS[p.action.kind](p.action, p.predicate)
        return command_line

    def _build_log_command(self, p: FilterPrimitive) -> str:
        command_line = self._start_rule_line(p.chain)
        command_line += self._print_direction_and_interface(p.in_iface, p.out_iface)
        command_line += self._print_match(p.predicate)
        command_line += '-j LOG ' + self._print_log_parameters(p.log)
        return command_line

    def _build_helper_command(self, p: HelperPrimitive) -> str:
        command_line = self._start_rule_line(p.chain)
        command_line += self._print_direction_and_interface(p.in_iface, p.out_iface)
        command_line += self._print_match(p.predicate)
        command_line += f'-j CT --helper {p.helper}'
        return command_line

    # -- Pieces --

    def _start_rule_line(self, chain: str) -> str:
        return f'-A {chain or "UNKNOWN"} '

    def _print_direction_and_interface(self, in_iface: str, out_iface: str) -> str:
        res = ''
        if in_iface:
            res += f'-i {in_iface} '
        if out_iface:
            res += f'-o {out_iface} '
        return res

    def _print_match(self, predicate: MatchPredicate) -> str:
        if predicate.match_all:
            return ''
        res = self._print_protocol(predicate.protocol)
        res += self._print_addr('-s', predicate.src)
        res += self._print_addr('-d', predicate.dst)
        if predicate.src.mac:
            res += f'-m mac --mac-source {predicate.src.mac} '
        res += self._print_ports(predicate)
        res += self._print_state(predicate.state)
        res += self._print_limit(predicate)
        return res

    def _print_protocol(self, protocol: str) -> str:
        if not protocol or protocol == 'all':
            return ''
        return f'-p {protocol} '

    def _print_addr(self, option: str, endpoint: Endpoint) -> str:
        if not endpoint.addresses:
            return ''
        return f'{option} {",".join(str(a) for a in endpoint.addresses)} '

    def _print_ports(self, predicate: MatchPredicate) -> str:
        src, dst = predicate.src.ports, predicate.dst.ports
        if not src and not dst:
            return ''
        if len(src) > 1 or len(dst) > 1:
            res = '-m multiport '
            if src:
                res += f'--sports {",".join(str(p) for p in src)} '
            if dst:
                res += f'--dports {",".join(str(p) for p in dst)} '
            return res
        res = ''
        if src:
            res += f'--sport {src[0]} '
        if dst:
            res += f'--dport {dst[0]} '
        return res

    def _print_state(self, state: tuple[str, ...]) -> str:
        if not state:
            return ''
        return f'-m conntrack --ctstate {",".join(state)} '

    def _print_limit(self, predicate: MatchPredicate) -> str:
        limit = predicate.limit
        if limit is None:
            return ''
        res = f'-m limit --limit {limit.rate}/{limit.unit} '
        if limit.burst:
            res += f'--limit-burst {limit.burst} '
        return res

    def _print_log_parameters(self, prefix: str) -> str:
        prefix = prefix[:LOG_PREFIX_MAX]
        if prefix and not prefix.endswith(' ') and len(prefix) < LOG_PREFIX_MAX:
            prefix += ' '
        prefix = prefix.replace('"', '')
        return f'--log-prefix "{prefix}"'
