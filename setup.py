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

import re
from pathlib import Path

from setuptools import find_packages, setup

VERSION = re.search(
    r"__version__ = '([^']+)'",
    Path('src/firegrid/__init__.py').read_text(encoding='utf-8'),
).group(1)


setup(
    name='firegrid',
    version=VERSION,
    description='Declarative firewall and traffic-shaping compiler for iptables and tc',
    author='Linuxfabrik GmbH, Zurich/Switzerland',
    author_email='info@linuxfabrik.ch',
    license='GPL-2.0-or-later',
    python_requires='>=3.11',
    package_dir={'': 'src'},
    packages=find_packages(where='src'),
    package_data={
        'firegrid': [
            'resources/services.yml',
            'resources/templates/*/*.j2',
        ],
    },
    install_requires=[
        'Jinja2>=3.1',
        'PyYAML>=6.0',
        'SQLAlchemy>=2.0',
    ],
    extras_require={
        'test': [
            'pytest>=8',
        ],
    },
    entry_points={
        'console_scripts': [
            'firegrid=firegrid.cli.firegrid:main',
            'firegrid-vnet=firegrid.cli.firegrid_vnet:main',
        ],
    },
)
