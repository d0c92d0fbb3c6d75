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

"""CompilerDriver: orchestrates a full compile pass.

Handles:
- reading the configuration
- running the filter and shaping compilers on one CompileContext
- rendering the iptables-restore, ip and tc payloads
- the digest that identifies a compiled state
"""

from __future__ import annotations

import dataclasses
import hashlib
import logging
from typing import TYPE_CHECKING

from firegrid.compiler._base import BaseCompiler, CompilerStatus
from firegrid.compiler._context import CompileContext
from firegrid.compiler._filter_compiler import FilterCompiler
from firegrid.compiler._qos_compiler import QosCompiler
from firegrid.core._config_reader import ConfigReader
from firegrid.core._services import ServiceCatalog
from firegrid.core.options import FiregridDefaults

if TYPE_CHECKING:
    from firegrid.core._model import Configuration

logger = logging.getLogger(__name__)

PAYLOAD_ORDER = ('ipv4', 'ipv6', 'ip', 'tc', 'tc_teardown')


@dataclasses.dataclass
class CompileResult:
    """Everything the activation manager needs, plus diagnostics."""

    primitives: tuple
    payloads: dict[str, str]
    line_maps: dict[str, dict[int, object]]
    digest: str
    modules: tuple[str, ...] = ()
    devices: tuple[str, ...] = ()
    status: CompilerStatus = CompilerStatus.FWCOMPILER_SUCCESS
    errors: list[str] = dataclasses.field(default_factory=list)
    warnings: list[str] = dataclasses.field(default_factory=list)
    source: str = ''

    @property
    def ok(self) -> bool:
        return self.status != CompilerStatus.FWCOMPILER_ERROR


def payload_digest(payloads: dict[str, str]) -> str:
    """SHA-256 over all payloads in a fixed order."""
    digest = hashlib.sha256()
    for key in PAYLOAD_ORDER:
        digest.update(key.encode())
        digest.update(b'\0')
        digest.update(payloads.get(key, '').encode())
        digest.update(b'\0')
    return digest.hexdigest()


class CompilerDriver(BaseCompiler):
    def __init__(
        self,
        options: FiregridDefaults | None = None,
        catalog: ServiceCatalog | None = None,
    ) -> None:
        super().__init__()
        self.options = options if options is not None else FiregridDefaults()
        if catalog is None:
            catalog = ServiceCatalog.load(self.options.services_files)
        self.catalog = catalog

        # Options
        self.verbose: int = 0
        self.rule_debug_on: bool = False
        self.debug_scope: str = ''

    def compile_file(self, path) -> CompileResult:
        return self.compile(ConfigReader().parse(path))

    def compile_text(self, text: str, source: str = '<string>') -> CompileResult:
        return self.compile(ConfigReader().parse_text(text, source))

    def compile(self, config: Configuration) -> CompileResult:
        """Compile *config*.

        ParseError never gets here; shaping errors raise, filter errors
        are recorded per scope and reported through the result status.
        """
        ctx = CompileContext(self.catalog, self.options, config.limiters)

        filter_compiler = FilterCompiler(ctx, config)
        filter_compiler.verbose = self.verbose > 1
        filter_compiler.rule_debug_on = self.rule_debug_on
        filter_compiler.debug_scope = self.debug_scope
        filter_compiler.run()
        self.merge_diagnostics(filter_compiler)

        qos_compiler = QosCompiler(ctx, config)
        qos_compiler.run()
        self.merge_diagnostics(qos_compiler)

        primitives = tuple(filter_compiler.primitives) + tuple(qos_compiler.primitives)
        return self.render(
            primitives,
            modules=filter_compiler.required_modules,
            source=config.source,
        )

    def render(self, primitives, modules=(), source='') -> CompileResult:
        from firegrid.platforms.iptables import RestoreWriter
        from firegrid.platforms.tc import TcWriter

        restore_writer = RestoreWriter()
        payloads = {}
        line_maps = {}
        for family in (4, 6):
            rendered = restore_writer.render(primitives, family)
            payloads[f'ipv{family}'] = rendered.text
            line_maps[f'ipv{family}'] = rendered.line_map

        shaping = TcWriter().render(primitives)
        payloads['ip'] = shaping.ip
        payloads['tc'] = shaping.tc
        payloads['tc_teardown'] = shaping.teardown
        line_maps['tc'] = shaping.line_map

        digest = payload_digest(payloads)
        logger.info(
            'Compiled %d primitives, digest %s, status %s',
            len(primitives),
            digest[:12],
            self.status.name,
        )
        return CompileResult(
            primitives=primitives,
            payloads=payloads,
            line_maps=line_maps,
            digest=digest,
            modules=tuple(modules),
            devices=shaping.devices,
            status=self.status,
            errors=self.get_errors(),
            warnings=self.get_warnings(),
            source=source,
        )
