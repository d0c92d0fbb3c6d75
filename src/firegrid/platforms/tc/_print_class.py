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

"""PrintClass: ``tc -batch`` lines from shaping primitives.

Classifiers use the flower filter.  A flower filter matches a single
address, port (or port range) and protocol family, so one predicate may
expand into several filters sharing the predicate's preference.
"""

from __future__ import annotations

import itertools
from typing import TYPE_CHECKING

from firegrid.compiler._primitives import (
    ClassPrimitive,
    QdiscPrimitive,
    RedirectPrimitive,
)
from firegrid.core._rates import format_rate

if TYPE_CHECKING:
    from firegrid.compiler._match import MatchPredicate
    from firegrid.core._services import PortRange

INGRESS_HANDLE = 'ffff:'

# flower only knows tcp, udp, sctp, icmp and icmpv6 by name
_IP_PROTO = {
    'tcp': 'tcp',
    'udp': 'udp',
    'sctp': 'sctp',
    'icmp': 'icmp',
    'icmpv6': 'icmpv6',
    'gre': '47',
    'esp': '50',
    'ah': '51',
    'igmp': '2',
    'udplite': '136',
}

_LEAF_OPTIONS = {
    'sfq': 'sfq perturb 10',
    'fq_codel': 'fq_codel',
    'pfifo': 'pfifo',
    'bfifo': 'bfifo',
    'red': 'red limit 400000 avpkt 1000 adaptive',
}


def _port(port: PortRange) -> str:
    if port.low == port.high:
        return str(port.low)
    return f'{port.low}-{port.high}'


class PrintClass:
    def qdisc_lines(self, p: QdiscPrimitive) -> list[str]:
        if p.is_root:
            return [
                f'qdisc add dev {p.device} root handle {p.handle} htb '
                f'default {p.default_class}'
            ]
        return [
            f'qdisc add dev {p.device} parent {p.parent} handle {p.handle} '
            f'{_LEAF_OPTIONS.get(p.kind, p.kind)}'
        ]

    def class_lines(self, p: ClassPrimitive) -> list[str]:
        line = (
            f'class add dev {p.device} parent {p.parent} classid {p.classid} htb '
            f'rate {format_rate(p.rate)} ceil {format_rate(p.ceil)}'
        )
        if p.prio is not None:
            line += f' prio {p.prio}'
        lines = [line]
        for pref, predicate in p.classifiers:
            lines.extend(self.filter_lines(p, pref, predicate))
        return lines

    def redirect_lines(self, p: RedirectPrimitive) -> list[str]:
        return [
            f'qdisc add dev {p.device} handle {INGRESS_HANDLE} ingress',
            f'filter add dev {p.device} parent {INGRESS_HANDLE} protocol all pref 1 '
            f'matchall action mirred egress redirect dev {p.ifb}',
        ]

    def filter_lines(self, p: ClassPrimitive, pref: int, predicate: MatchPredicate) -> list[str]:
        head = f'filter add dev {p.device} parent 1: protocol'
        tail = f'classid {p.classid}'
        if predicate.match_all or predicate.is_empty():
            return [f'{head} all pref {pref} matchall {tail}']

        is_ip = bool(
            predicate.protocol
            or predicate.src.addresses
            or predicate.dst.addresses
            or predicate.has_ports
        )
        if not is_ip:
            return [f'{head} all pref {pref} flower {self._mac(predicate)}{tail}']

        lines = []
        for family in p.families:
            srcs = [a for a in predicate.src.addresses if a.version == family]
            dsts = [a for a in predicate.dst.addresses if a.version == family]
            if (predicate.src.addresses and not srcs) or (predicate.dst.addresses and not dsts):
                continue
            if predicate.protocol == 'icmpv6' and family == 4:
                continue
            proto = predicate.protocol
            if proto == 'icmp' and family == 6:
                proto = 'icmpv6'
            keys = self._mac(predicate)
            if proto:
                keys += f'ip_proto {_IP_PROTO[proto]} '
            combos = itertools.product(
                srcs or [None],
                dsts or [None],
                predicate.src.ports or (None,),
                predicate.dst.ports or (None,),
            )
            for src, dst, sport, dport in combos:
                match = keys
                if src is not None:
                    match += f'src_ip {src} '
                if dst is not None:
                    match += f'dst_ip {dst} '
                if sport is not None:
                    match += f'src_port {_port(sport)} '
                if dport is not None:
                    match += f'dst_port {_port(dport)} '
                ether = 'ip' if family == 4 else 'ipv6'
                lines.append(f'{head} {ether} pref {pref} flower {match}{tail}')
        return lines

    @staticmethod
    def _mac(predicate: MatchPredicate) -> str:
        if predicate.src.mac:
            return f'src_mac {predicate.src.mac} '
        return ''
