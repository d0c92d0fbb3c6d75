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

"""Exclusive advisory lock around activation."""

from __future__ import annotations

import contextlib
import fcntl
import logging
import os
import time
from pathlib import Path

from firegrid.core._errors import LockError

logger = logging.getLogger(__name__)


@contextlib.contextmanager
def exclusive_lock(path, retries: int = 10, delay: float = 0.5):
    """Hold an exclusive ``flock`` on *path* for the duration of the block.

    Contention is retried *retries* times, *delay* seconds apart, then
    :class:`LockError` is raised.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o600)
    try:
        attempt = 0
        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                attempt += 1
                if attempt > retries:
                    raise LockError(
                        f'another firegrid activation holds {path}, gave up after '
                        f'{retries} retries'
                    ) from None
                logger.info('Waiting for lock %s (attempt %d of %d)', path, attempt, retries)
                time.sleep(delay)
        logger.debug('Acquired lock %s', path)
        try:
            yield
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            logger.debug('Released lock %s', path)
    finally:
        os.close(fd)
