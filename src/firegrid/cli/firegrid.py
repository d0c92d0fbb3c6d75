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

"""CLI entry point for the firewall and traffic-shaping compiler."""

import argparse
import logging
import select
import sys
import time

import firegrid
import firegrid.core
import firegrid.core.options

__author__ = 'Linuxfabrik GmbH, Zurich/Switzerland'

DESCRIPTION = """firegrid compiles a declarative firewall and traffic-shaping configuration
into iptables-restore and tc payloads and applies them transactionally."""

DEFAULT_CONFIG = '/etc/firegrid/firegrid.conf'
DEFAULT_OPTIONS = '/etc/firegrid/options.yml'
DEFAULT_SAVE = '/etc/firegrid/iptables.save'
DEFAULT_SAVE6 = '/etc/firegrid/ip6tables.save'

EXIT_OK = 0
EXIT_INTERNAL = 1
EXIT_COMPILE = 2
EXIT_ACTIVATION = 3
EXIT_RESOURCE = 4

COMMANDS = ('start', 'stop', 'restart', 'condrestart', 'status', 'save', 'try', 'debug')


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog='firegrid',
        description=DESCRIPTION,
    )

    parser.add_argument(
        'COMMAND',
        choices=COMMANDS,
        help='what to do',
    )

    parser.add_argument(
        'FILES',
        nargs='*',
        help='save: target files for the IPv4 and IPv6 rulesets. '
        f'Default: {DEFAULT_SAVE} {DEFAULT_SAVE6}',
    )

    parser.add_argument(
        '-c',
        '--config',
        default=DEFAULT_CONFIG,
        dest='CONFIG',
        help='configuration file. Default: %(default)s',
    )

    parser.add_argument(
        '-o',
        '--options',
        default=DEFAULT_OPTIONS,
        dest='OPTIONS',
        help='options file (YAML). Default: %(default)s',
    )

    parser.add_argument(
        '--xs',
        default='',
        dest='DEBUG_SCOPE',
        help='debug the rules of this interface, router or chain',
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


def _setup_logging(verbose):
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format='%(levelname)s: %(message)s', stream=sys.stderr)


def _compile(args, options):
    from firegrid.driver import CompilerDriver

    driver = CompilerDriver(options)
    driver.verbose = args.VERBOSE
    if args.DEBUG_SCOPE:
        driver.rule_debug_on = True
        driver.debug_scope = args.DEBUG_SCOPE

    print(f'Compiling {args.CONFIG} ...', file=sys.stderr)
    result = driver.compile_file(args.CONFIG)
    for warning in result.warnings:
        print(f'Warning: {warning}', file=sys.stderr)
    for error in result.errors:
        print(f'Error: {error}', file=sys.stderr)
    return result


def _wait_for_commit(timeout):
    print(
        f'Type "commit" within {timeout} seconds to keep the new firewall: ',
        end='',
        file=sys.stderr,
        flush=True,
    )
    ready, _, _ = select.select([sys.stdin], [], [], timeout)
    if not ready:
        print('', file=sys.stderr)
        return False
    return sys.stdin.readline().strip() == 'commit'


def run_command(args, options, manager_factory=None):
    """Run one command. Raises FiregridError subclasses on failure."""
    if manager_factory is None:
        from firegrid.platforms.linux import ActivationManager

        manager_factory = ActivationManager

    if args.COMMAND == 'debug':
        result = _compile(args, options)
        for key in ('ipv4', 'ipv6', 'ip', 'tc'):
            if result.payloads.get(key):
                print(f'# --- {key} ---')
                print(result.payloads[key], end='')
        return EXIT_OK if result.ok else EXIT_COMPILE

    manager = manager_factory(options)

    if args.COMMAND == 'stop':
        manager.stop()
        print('Firewall stopped.', file=sys.stderr)
        return EXIT_OK

    if args.COMMAND == 'status':
        report = manager.status()
        if report.active is None:
            print('firegrid is not active.')
        else:
            started = time.strftime('%Y-%m-%d %H:%M:%S', time.localtime(report.active.created))
            print(f'firegrid is active since {started} ({report.active.source})')
            print(f'digest: {report.active.digest}')
        for family, count in report.rule_counts.items():
            print(f'IPv{family}: {count} rules')
        return EXIT_OK

    if args.COMMAND == 'save':
        files = list(args.FILES) or [DEFAULT_SAVE, DEFAULT_SAVE6]
        if len(files) != 2:
            print('Error: save takes an IPv4 and an IPv6 file', file=sys.stderr)
            return EXIT_INTERNAL
        for family, path in zip((4, 6), files):
            manager.save(path, family)
        return EXIT_OK

    if args.COMMAND == 'condrestart' and manager.db.get_active() is None:
        print('firegrid is not active, nothing to restart.', file=sys.stderr)
        return EXIT_OK

    # start, restart, condrestart, try
    result = _compile(args, options)
    if not result.ok:
        print('Not activating a configuration with errors.', file=sys.stderr)
        return EXIT_COMPILE
    handle = manager.apply(result)
    print(f'Firewall activated ({result.digest[:12]}).', file=sys.stderr)

    if args.COMMAND == 'try':
        if _wait_for_commit(options.try_timeout):
            print('Committed.', file=sys.stderr)
        else:
            manager.revert(handle)
            print('Not committed, the previous firewall is restored.', file=sys.stderr)
    return EXIT_OK


def main(argv=None):
    args = parse_args(argv)
    _setup_logging(args.VERBOSE)
    t_start = time.monotonic()

    try:
        options = firegrid.core.options.load_options(args.OPTIONS)
        code = run_command(args, options)
    except firegrid.core.ParseError as e:
        print(f'Error: {e}', file=sys.stderr)
        return EXIT_COMPILE
    except firegrid.core.ConfigError as e:
        print(f'Error: {e}', file=sys.stderr)
        return EXIT_COMPILE
    except firegrid.core.ActivationError as e:
        print(f'Error: {e}', file=sys.stderr)
        return EXIT_ACTIVATION
    except firegrid.core.ResourceError as e:
        print(f'Error: {e}', file=sys.stderr)
        return EXIT_RESOURCE
    except OSError as e:
        print(f'Error: {e}', file=sys.stderr)
        return EXIT_INTERNAL

    elapsed = time.monotonic() - t_start
    logging.getLogger(__name__).info('Done in %.2fs', elapsed)
    return code


if __name__ == '__main__':
    sys.exit(main())
