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

"""CLI entry point for network-namespace test topologies."""

import argparse
import logging
import sys

import firegrid
import firegrid.core
import firegrid.core.options

__author__ = 'Linuxfabrik GmbH, Zurich/Switzerland'

DESCRIPTION = """firegrid-vnet builds host/switch test networks from a topology file using
network namespaces and veth pairs."""

DEFAULT_OPTIONS = '/etc/firegrid/options.yml'


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog='firegrid-vnet',
        description=DESCRIPTION,
    )

    parser.add_argument(
        'COMMAND',
        choices=('start', 'stop', 'graph'),
        help='start or stop the topology, or print it as Graphviz DOT',
    )

    parser.add_argument(
        '-c',
        '--config',
        required=True,
        dest='CONFIG',
        help='topology file',
    )

    parser.add_argument(
        '-o',
        '--options',
        default=DEFAULT_OPTIONS,
        dest='OPTIONS',
        help='options file (YAML). Default: %(default)s',
    )

    parser.add_argument(
        '-v',
        '--verbose',
        action='count',
        default=0,
        dest='VERBOSE',
        help='verbose output (repeat for higher verbosity)',
    )

    parser.add_argument(
        '-V',
        '--version',
        action='version',
        version=f'%(prog)s: v{firegrid.__version__} by {__author__}',
    )

    return parser.parse_args(argv)


def main(argv=None, runner=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.VERBOSE else logging.WARNING,
        format='%(levelname)s: %(message)s',
        stream=sys.stderr,
    )

    from firegrid.platforms.linux import TopologyInterpreter

    try:
        options = firegrid.core.options.load_options(args.OPTIONS)
        config = firegrid.core.ConfigReader().parse(args.CONFIG)
        if not config.domains:
            print(f'Error: {args.CONFIG} defines no host or switch', file=sys.stderr)
            return 2
        topology = TopologyInterpreter(config.domains, options, runner)
        if args.COMMAND == 'start':
            topology.start()
            print(f'Started {len(config.domains)} namespaces.', file=sys.stderr)
        elif args.COMMAND == 'stop':
            topology.stop()
        else:
            print(topology.graph(), end='')
    except (firegrid.core.ParseError, firegrid.core.ConfigError) as e:
        print(f'Error: {e}', file=sys.stderr)
        return 2
    except firegrid.core.ResourceError as e:
        print(f'Error: {e}', file=sys.stderr)
        return 4
    except OSError as e:
        print(f'Error: {e}', file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
