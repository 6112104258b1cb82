#!/usr/bin/env python3
"""
CLI for the script bridge.

Usage:
    python -m scriptbridge list --module MOD [--json]
    python -m scriptbridge describe NAME --module MOD
    python -m scriptbridge run SCRIPT --module MOD [--history]

MOD is an importable module exposing `register(bridge)`, which registers its
functions and classes on the bridge it is given.

Examples:
    # List the functions a plugin exposes
    python -m scriptbridge list --module my_plugin

    # Show the doc string, signature and last values of one function
    python -m scriptbridge describe set_i1 --module my_plugin

    # Run a call script and print the undo/redo history
    python -m scriptbridge run session.calls --module my_plugin --history

The configuration file is taken from --config or the SCRIPTBRIDGE_CONFIG
environment variable.
"""

import argparse
import importlib
import logging
import os
import sys
from pathlib import Path
from typing import Any

from .config import BridgeConfig, CONFIG_ENV_VAR
from .errors import BridgeError
from .state import Table, table_to_python
from .types import INSTANCE_ID_FIELD


def format_result(value: Any) -> str:
    """Format a script value returned by a call for display."""
    if isinstance(value, Table):
        meta = value.metatable
        if isinstance(meta, Table) and meta[INSTANCE_ID_FIELD] is not None:
            return f"<instance {int(meta[INSTANCE_ID_FIELD])}>"
        return repr(table_to_python(value))
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, bool):
        return "true" if value else "false"
    return repr(value)


def load_config(args) -> BridgeConfig:
    """Load the configuration named on the command line or in the environment."""
    path = args.config or os.environ.get(CONFIG_ENV_VAR)
    if path:
        return BridgeConfig.load(path)
    return BridgeConfig()


def setup_logging(args, config: BridgeConfig) -> None:
    level = logging.DEBUG if args.verbose else config.logging_level
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def create_bridge(args):
    """Build a bridge and let the plugin module register on it."""
    from .runtime import ScriptBridge

    config = load_config(args)
    setup_logging(args, config)
    bridge = ScriptBridge(config)
    if args.module:
        try:
            module = importlib.import_module(args.module)
        except ImportError as e:
            raise SystemExit(f"Error: cannot import module '{args.module}': {e}")
        register = getattr(module, "register", None)
        if register is None:
            raise SystemExit(f"Error: module '{args.module}' has no register(bridge) function")
        register(bridge)
    return bridge


def cmd_list(args):
    """List registered functions with their signatures."""
    from .introspection import get_api_as_json, list_functions

    bridge = create_bridge(args)
    if args.json:
        print(get_api_as_json(bridge))
        return 0

    names = list_functions(bridge)
    print(f"Functions ({len(names)}):")
    for name in names:
        entry = bridge.registry.get(name)
        marker = "" if not entry.exempt else "  [exempt]"
        print(f"  {entry.signature}{marker}")
    return 0


def cmd_describe(args):
    """Describe one registered function."""
    from .introspection import describe_function

    bridge = create_bridge(args)
    if args.name not in bridge.registry:
        print(f"Error: unknown function '{args.name}'", file=sys.stderr)
        return 1
    print(describe_function(bridge, args.name))
    return 0


def cmd_run(args):
    """Run a call script against the plugin's functions."""
    from .runtime import run_script

    script_path = Path(args.script)
    if not script_path.exists():
        print(f"Error: File not found: {script_path}", file=sys.stderr)
        return 1

    bridge = create_bridge(args)
    try:
        result = run_script(bridge, script_path.read_text())
    except BridgeError as e:
        print(e.format(), file=sys.stderr)
        return 1

    for call, value in result.calls:
        if value is not None:
            print(f"{call} -> {format_result(value)}")
    print(f"Executed {len(result.calls)} call(s)")

    if args.history:
        ledger = bridge.provenance
        print(f"History ({len(ledger)} record(s), cursor at {ledger.cursor}):")
        for i, line in enumerate(ledger.history()):
            marker = "*" if i < ledger.cursor else " "
            print(f"  {marker} {line}")
    return 0


def main(argv=None):
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument('-m', '--module', metavar='MOD',
                        help='Module exposing register(bridge)')
    common.add_argument('-c', '--config', metavar='FILE',
                        help=f'Configuration file (default: ${CONFIG_ENV_VAR})')
    common.add_argument('-v', '--verbose', action='store_true',
                        help='Enable debug logging')

    parser = argparse.ArgumentParser(
        prog='python -m scriptbridge',
        description='Script bridge with undo/redo provenance',
    )

    subparsers = parser.add_subparsers(dest='action', required=True)

    # list command
    list_parser = subparsers.add_parser('list', parents=[common],
                                        help='List registered functions')
    list_parser.add_argument('--json', action='store_true',
                             help='Print the API reference as JSON')

    # describe command
    describe_parser = subparsers.add_parser('describe', parents=[common],
                                            help='Describe a registered function')
    describe_parser.add_argument('name', help='Dotted function name')

    # run command
    run_parser = subparsers.add_parser('run', parents=[common],
                                       help='Run a call script')
    run_parser.add_argument('script', help='Call script file')
    run_parser.add_argument('--history', action='store_true',
                            help='Print the provenance history afterwards')

    args = parser.parse_args(argv)

    try:
        if args.action == 'list':
            return cmd_list(args)
        elif args.action == 'describe':
            return cmd_describe(args)
        elif args.action == 'run':
            return cmd_run(args)
    except BridgeError as e:
        print(e.format(), file=sys.stderr)
        return 1
    parser.print_help()
    return 1


if __name__ == '__main__':
    sys.exit(main())
