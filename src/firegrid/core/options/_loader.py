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

"""Load options from an optional YAML file and the environment.

Precedence (lowest first): FiregridDefaults, the YAML file, then
``FIREGRID_<KEY>`` environment variables.
"""

import dataclasses
import logging
import os
import pathlib

import yaml

from firegrid.core._errors import ConfigError
from firegrid.core.options._keys import Option
from firegrid.core.options._migration import migrate_options
from firegrid.core.options._schemas import FiregridDefaults

logger = logging.getLogger(__name__)

ENV_PREFIX = 'FIREGRID_'

_TRUE = frozenset({'1', 'true', 'yes', 'on'})
_FALSE = frozenset({'0', 'false', 'no', 'off', ''})


def _coerce(key, value, default):
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ConfigError(f'option {key}: expected a boolean, got {value!r}')
    if isinstance(default, list):
        if isinstance(value, str):
            return [v for v in (p.strip() for p in value.split(',')) if v]
        if isinstance(value, list):
            return [str(v) for v in value]
        raise ConfigError(f'option {key}: expected a list, got {value!r}')
    try:
        if isinstance(default, int):
            return int(value)
        if isinstance(default, float):
            return float(value)
    except (TypeError, ValueError):
        raise ConfigError(
            f'option {key}: expected a {type(default).__name__}, got {value!r}'
        ) from None
    return str(value)


def load_options(path=None, env=None) -> FiregridDefaults:
    """Build the effective options.

    *path* may be None or point to a missing file, in which case only the
    defaults and the environment apply.  *env* defaults to ``os.environ``.
    """
    options = FiregridDefaults()
    known = {f.name: f for f in dataclasses.fields(options)}

    raw = {}
    if path is not None:
        path = pathlib.Path(path)
        if path.is_file():
            logger.debug('Reading options from %s', path)
            try:
                data = yaml.safe_load(path.read_text(encoding='utf-8')) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f'{path}: {e}') from e
            if not isinstance(data, dict):
                raise ConfigError(f'{path}: expected a mapping of options')
            raw.update(migrate_options(data))
        else:
            logger.debug('Options file %s not found, using defaults', path)

    env = os.environ if env is None else env
    for key in Option:
        env_value = env.get(ENV_PREFIX + key.value.upper())
        if env_value is not None:
            raw[key.value] = env_value

    for key, value in raw.items():
        if key not in known:
            raise ConfigError(f'unknown option "{key}"')
        default = getattr(options, key)
        setattr(options, key, _coerce(key, value, default))

    if options.default_policy not in ('accept', 'drop', 'reject', 'return'):
        raise ConfigError(
            f'option {Option.DEFAULT_POLICY}: invalid policy {options.default_policy!r}'
        )
    # built-in chains only take ACCEPT or DROP as policy
    if options.builtin_policy not in ('accept', 'drop'):
        raise ConfigError(
            f'option {Option.BUILTIN_POLICY}: invalid policy {options.builtin_policy!r}'
        )
    if options.ifb_devices < 0:
        raise ConfigError(f'option {Option.IFB_DEVICES}: must not be negative')
    return options
