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

"""ActivationManager: stage, verify, activate or roll back compiled state.

The sequence never leaves the firewall half-applied:

* ``stage`` writes the payloads to a private directory and snapshots the
  live rulesets; nothing live changes.
* ``verify`` lets the kernel check everything without committing it
  (``iptables-restore --test``, helper modules, shaped devices).
* ``activate`` swaps the tables of each family atomically and then
  applies the tc batch.  On failure the snapshot is restored; if even
  that fails and ``fail_closed`` is set, the panic ruleset is loaded.
* ``rollback`` discards staged files and never touches live state.
"""

from __future__ import annotations

import contextlib
import dataclasses
import logging
import re
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

from firegrid.core._errors import ActivationError, VerificationError
from firegrid.core.objects import ActivationStatus
from firegrid.platforms.linux._lock import exclusive_lock
from firegrid.platforms.linux._runner import CommandRunner

if TYPE_CHECKING:
    from firegrid.core._database import DatabaseManager
    from firegrid.core.options import FiregridDefaults
    from firegrid.driver._compiler_driver import CompileResult

logger = logging.getLogger(__name__)

FAMILIES = (4, 6)

PAYLOAD_FILES = {
    'ipv4': 'ipv4.rules',
    'ipv6': 'ipv6.rules',
    'ip': 'ip.batch',
    'tc': 'tc.batch',
    'tc_teardown': 'tc-teardown.batch',
}

LAST_KNOWN_GOOD = 'the firewall remains in its last-known-good state'

# "iptables-restore: line 12 failed", "Error occurred at line: 12"
_RESTORE_LINE_RE = re.compile(r'line:? (\d+)')
# "Command failed -:7"
_BATCH_LINE_RE = re.compile(r'Command failed \S*?:(\d+)')


@dataclasses.dataclass
class StagingHandle:
    activation_id: int
    path: Path
    result: CompileResult
    snapshot: dict[str, str]
    previous_id: int | None = None
    verified: bool = False
    activated: bool = False
    closed: bool = False


@dataclasses.dataclass(frozen=True)
class StatusReport:
    active: object
    rule_counts: dict[int, int]


class ActivationManager:
    def __init__(
        self,
        options: FiregridDefaults,
        runner: CommandRunner | None = None,
        database: DatabaseManager | None = None,
    ) -> None:
        from firegrid.core._database import DatabaseManager
        from firegrid.platforms.iptables import RestoreWriter

        self.options = options
        self.runner = runner if runner is not None else CommandRunner()
        if database is None:
            database = DatabaseManager.from_path(options.state_db)
        self.db = database
        self.writer = RestoreWriter()

    # -- Tools --

    def _restore_tool(self, family: int) -> str:
        if family == 4:
            return self.options.iptables_restore
        return self.options.ip6tables_restore

    def _save_tool(self, family: int) -> str:
        if family == 4:
            return self.options.iptables_save
        return self.options.ip6tables_save

    def _check(self, args, input=None, what=''):
        """Run a staging or verification step under ``verify_timeout``."""
        timeout = self.options.verify_timeout
        try:
            return self.runner.run(args, input=input, timeout=timeout)
        except subprocess.TimeoutExpired:
            raise VerificationError(
                f'{what or args[0]} timed out after {timeout}s; {LAST_KNOWN_GOOD}'
            ) from None

    def _teardown(self, payload: str) -> None:
        # qdiscs that are already gone are not an error
        if payload:
            self.runner.run([self.options.tc, '-force', '-batch', '-'], input=payload)

    @contextlib.contextmanager
    def locked(self):
        with exclusive_lock(
            self.options.lock_file,
            retries=self.options.lock_retries,
            delay=self.options.lock_retry_delay,
        ):
            yield

    # -- Transaction --

    def apply(self, result: CompileResult) -> StagingHandle:
        """Stage, verify and activate *result* under the activation lock."""
        with self.locked():
            handle = self.stage(result)
            try:
                self.verify(handle)
                self.activate(handle)
            except ActivationError:
                self.rollback(handle)
                raise
            return handle

    def stage(self, result: CompileResult) -> StagingHandle:
        staging_root = Path(self.options.staging_dir)
        staging_root.mkdir(parents=True, exist_ok=True)
        path = Path(tempfile.mkdtemp(prefix=f'{result.digest[:12]}-', dir=staging_root))
        for key, name in PAYLOAD_FILES.items():
            (path / name).write_text(result.payloads.get(key, ''), encoding='utf-8')

        snapshot = {}
        try:
            for family in FAMILIES:
                saved = self._check([self._save_tool(family)], what=f'IPv{family} snapshot')
                if not saved.ok:
                    raise ActivationError(
                        f'cannot snapshot the live IPv{family} ruleset: '
                        f'{saved.stderr.strip()}; {LAST_KNOWN_GOOD}'
                    )
                snapshot[f'ipv{family}'] = saved.stdout
        except ActivationError:
            shutil.rmtree(path)
            raise

        active = self.db.get_active()
        activation_id = self.db.add_activation(
            digest=result.digest,
            status=ActivationStatus.STAGED,
            source=result.source,
            staging_path=str(path),
            payloads=dict(result.payloads),
            snapshot=snapshot,
        )
        logger.info(
            'Staged activation %d (%s) in %s', activation_id, result.digest[:12], path
        )
        return StagingHandle(
            activation_id=activation_id,
            path=path,
            result=result,
            snapshot=snapshot,
            previous_id=active.id if active is not None else None,
        )

    def verify(self, handle: StagingHandle) -> None:
        if handle.closed:
            raise ActivationError(f'activation {handle.activation_id} is closed')
        try:
            self._verify(handle.result)
        except VerificationError as e:
            self.db.set_status(handle.activation_id, ActivationStatus.FAILED, message=str(e))
            raise
        handle.verified = True
        logger.info('Activation %d verified', handle.activation_id)

    def _verify(self, result: CompileResult) -> None:
        for family in FAMILIES:
            key = f'ipv{family}'
            checked = self._check(
                [self._restore_tool(family), '--test'],
                input=result.payloads[key],
                what=f'verification of the IPv{family} ruleset',
            )
            if checked.ok:
                continue
            primitive = None
            where = ''
            match = _RESTORE_LINE_RE.search(checked.stderr)
            if match:
                lineno = int(match.group(1))
                primitive = result.line_maps.get(key, {}).get(lineno)
                where = f' at line {lineno}'
                if getattr(primitive, 'line', 0):
                    where += f' (configuration line {primitive.line})'
            raise VerificationError(
                f'the kernel rejected the IPv{family} ruleset{where}: '
                f'{checked.stderr.strip()}; {LAST_KNOWN_GOOD}',
                primitive,
            )

        for module in result.modules:
            loaded = self._check([self.options.modprobe, module], what=f'modprobe {module}')
            if not loaded.ok:
                raise VerificationError(
                    f'cannot load connection tracking helper {module}: '
                    f'{loaded.stderr.strip()}; {LAST_KNOWN_GOOD}'
                )

        for device in result.devices:
            shown = self._check(
                [self.options.ip, 'link', 'show', 'dev', device],
                what=f'lookup of device {device}',
            )
            if not shown.ok:
                raise VerificationError(
                    f'shaped device {device} does not exist; {LAST_KNOWN_GOOD}'
                )

    def activate(self, handle: StagingHandle) -> None:
        if handle.closed or not handle.verified:
            raise ActivationError(
                f'activation {handle.activation_id} must be verified before it is activated'
            )
        result = handle.result
        previous = None
        if handle.previous_id is not None:
            previous = self.db.get_activation(handle.previous_id)

        swapped = []
        for family in FAMILIES:
            applied = self.runner.run(
                [self._restore_tool(family)], input=result.payloads[f'ipv{family}']
            )
            if not applied.ok:
                self._fail(
                    handle, swapped, f'IPv{family} swap failed: {applied.stderr.strip()}'
                )
            swapped.append(family)

        if previous is not None and previous.digest == result.digest:
            logger.info('Shaping unchanged (%s), skipping tc', result.digest[:12])
        else:
            error = self._apply_shaping(result.payloads, previous, result.line_maps.get('tc', {}))
            if error:
                self._teardown(result.payloads.get('tc_teardown', ''))
                if previous is not None:
                    self._apply_shaping(previous.payloads, None, {})
                self._fail(handle, swapped, error)

        self.db.demote_active(keep=handle.activation_id)
        self.db.set_status(handle.activation_id, ActivationStatus.ACTIVE, message='')
        handle.activated = True
        self._discard(handle)
        logger.info('Activation %d is live', handle.activation_id)

    def _apply_shaping(self, payloads: dict, previous, line_map: dict) -> str:
        """Replace the live shaping with *payloads*.  Returns an error or ''."""
        if previous is not None:
            self._teardown(previous.payloads.get('tc_teardown', ''))
        self._teardown(payloads.get('tc_teardown', ''))
        if payloads.get('ip'):
            self.runner.run([self.options.ip, '-force', '-batch', '-'], input=payloads['ip'])
        if not payloads.get('tc'):
            return ''
        applied = self.runner.run([self.options.tc, '-batch', '-'], input=payloads['tc'])
        if applied.ok:
            return ''
        message = f'tc batch failed: {applied.stderr.strip()}'
        match = _BATCH_LINE_RE.search(applied.stderr)
        if match:
            primitive = line_map.get(int(match.group(1)))
            if primitive is not None:
                message += f' [{primitive.label}]'
        return message

    def _fail(self, handle: StagingHandle, swapped, reason: str):
        restored = self._restore_snapshot(handle.snapshot, swapped)
        self.db.set_status(handle.activation_id, ActivationStatus.FAILED, message=reason)
        if not restored:
            outcome = (
                'the panic ruleset is loaded' if self.options.fail_closed else 'state unknown'
            )
            raise ActivationError(f'{reason}; restoring the previous ruleset failed, {outcome}')
        raise ActivationError(f'{reason}; {LAST_KNOWN_GOOD}')

    def _restore_snapshot(self, snapshot: dict, families) -> bool:
        ok = True
        for family in families:
            restored = self.runner.run(
                [self._restore_tool(family)], input=snapshot.get(f'ipv{family}', '')
            )
            if not restored.ok:
                logger.critical(
                    'Cannot restore the IPv%d snapshot: %s', family, restored.stderr.strip()
                )
                ok = False
        if not ok and self.options.fail_closed:
            self.panic()
        return ok

    def rollback(self, handle: StagingHandle) -> None:
        if handle.closed:
            return
        record = self.db.get_activation(handle.activation_id)
        if record is not None and record.status == ActivationStatus.STAGED:
            self.db.set_status(handle.activation_id, ActivationStatus.ROLLED_BACK)
        self._discard(handle)
        logger.info('Rolled back activation %d', handle.activation_id)

    def _discard(self, handle: StagingHandle) -> None:
        if handle.path.exists():
            shutil.rmtree(handle.path)
        handle.closed = True

    def revert(self, handle: StagingHandle) -> None:
        """Put the pre-activation state back after a successful activate."""
        if not handle.activated:
            raise ActivationError(f'activation {handle.activation_id} was never activated')
        with self.locked():
            if not self._restore_snapshot(handle.snapshot, FAMILIES):
                raise ActivationError('cannot restore the previous ruleset')
            current = self.db.get_activation(handle.activation_id)
            previous = None
            if handle.previous_id is not None:
                previous = self.db.get_activation(handle.previous_id)
            if previous is None or previous.digest != current.digest:
                self._teardown(current.payloads.get('tc_teardown', ''))
                if previous is not None:
                    self._apply_shaping(previous.payloads, None, {})
            self.db.set_status(handle.activation_id, ActivationStatus.ROLLED_BACK)
            if previous is not None:
                self.db.set_status(previous.id, ActivationStatus.ACTIVE)
        logger.info('Reverted activation %d', handle.activation_id)

    # -- Operations outside the transaction --

    def panic(self) -> None:
        """Drop everything except loopback, for both families."""
        for family in FAMILIES:
            loaded = self.runner.run(
                [self._restore_tool(family)], input=self.writer.render_panic(family)
            )
            if loaded.ok:
                logger.warning('IPv%d panic ruleset loaded', family)
            else:
                logger.critical(
                    'Cannot load the IPv%d panic ruleset: %s', family, loaded.stderr.strip()
                )

    def stop(self) -> None:
        """Open all policies, flush the firewall and remove shaping."""
        with self.locked():
            for family in FAMILIES:
                stopped = self.runner.run(
                    [self._restore_tool(family)], input=self.writer.render_stop(family)
                )
                if not stopped.ok:
                    raise ActivationError(
                        f'cannot stop the IPv{family} firewall: {stopped.stderr.strip()}'
                    )
            active = self.db.get_active()
            if active is not None:
                self._teardown(active.payloads.get('tc_teardown', ''))
            self.db.demote_active(ActivationStatus.STOPPED)
        logger.info('Firewall stopped')

    def _live_ruleset(self, family: int) -> str:
        saved = self.runner.run([self._save_tool(family)], timeout=self.options.verify_timeout)
        if not saved.ok:
            raise ActivationError(
                f'cannot read the live IPv{family} ruleset: {saved.stderr.strip()}'
            )
        return saved.stdout

    def live_rule_count(self, family: int) -> int:
        return sum(
            1 for line in self._live_ruleset(family).splitlines() if line.startswith('-A ')
        )

    def status(self) -> StatusReport:
        return StatusReport(
            active=self.db.get_active(),
            rule_counts={family: self.live_rule_count(family) for family in FAMILIES},
        )

    def save(self, path, family: int = 4) -> None:
        Path(path).write_text(self._live_ruleset(family), encoding='utf-8')
        logger.info('Saved the live IPv%d ruleset to %s', family, path)
