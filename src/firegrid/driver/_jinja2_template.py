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

"""Jinja2 template loader and renderer.

Checks ``~/firegrid/templates/<platform>/`` for user overrides first and
falls back to the package's ``resources/templates/<platform>/``
directory.
"""

from __future__ import annotations

import importlib.resources
from pathlib import Path

import jinja2


def _get_package_resources_dir() -> Path:
    """Return the path to the package's resources directory."""
    ref = importlib.resources.files('firegrid') / 'resources'
    return Path(str(ref))


class Jinja2Template:
    """Load and render a Jinja2 template by platform and name."""

    def __init__(self, platform: str, template_name: str) -> None:
        search_paths: list[str] = []

        # User override directory (checked first)
        user_dir = Path.home() / 'firegrid' / 'templates' / platform
        if user_dir.is_dir():
            search_paths.append(str(user_dir))

        pkg_dir = _get_package_resources_dir() / 'templates' / platform
        search_paths.append(str(pkg_dir))

        self._env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(search_paths),
            undefined=jinja2.StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )
        self._template = self._env.get_template(template_name)

    def render(self, context: dict) -> str:
        return self._template.render(context)
