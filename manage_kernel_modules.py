#!/usr/bin/env python3
"""
Kernel Module Manager

Lists the kernel modules installed for the running kernel with their
description, parameters and load state, and loads or unloads a module
through modprobe. After every load or unload the inventory is rebuilt
from the system.
"""

import argparse
import logging
import sys
from typing import Dict, List, Optional

from module_inventory import (
    CSVFormatter, JSONFormatter, KernelModuleError, ModuleFilter, ModuleSorter,
    TableFormatter, __version__, build_controller, load_config
)

logger = logging.getLogger("manage_kernel_modules")


def parse_params(values: Optional[List[str]]) -> Dict[str, str]:
    """Turn repeated --param KEY=VALUE options into a dictionary."""
    params = {}
    for item in values or []:
        if '=' not in item:
            raise argparse.ArgumentTypeError(f"invalid module parameter '{item}', expected KEY=VALUE")
        key, value = item.split('=', 1)
        params[key] = value
    return params


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="List, load and unload the kernel modules installed for the running kernel",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python3 manage_kernel_modules.py                      # Table of installed modules
  python3 manage_kernel_modules.py --loaded             # Only modules currently loaded
  python3 manage_kernel_modules.py --filter "snd*"      # Modules starting with 'snd'
  python3 manage_kernel_modules.py --count              # Count installed/loaded modules
  python3 manage_kernel_modules.py --json -o mods.json  # Save JSON inventory

  # Load / unload (uses sudo -n unless run as root)
  python3 manage_kernel_modules.py --load dummy --param numdummies=2
  python3 manage_kernel_modules.py --unload dummy
        """
    )

    action = parser.add_mutually_exclusive_group()
    action.add_argument('--load', metavar='MODULE',
                        help='Load the module, then show its refreshed state')
    action.add_argument('--unload', metavar='MODULE',
                        help='Unload the module, then show its refreshed state')
    parser.add_argument('--param', action='append', metavar='KEY=VALUE',
                        help='Module parameter for --load (repeatable)')

    # Filtering options
    parser.add_argument('--filter', '-f', type=str, metavar='PATTERN',
                        help='Filter modules by name pattern (supports wildcards)')
    state = parser.add_mutually_exclusive_group()
    state.add_argument('--loaded', action='store_true',
                       help='Show only loaded modules')
    state.add_argument('--unloaded', action='store_true',
                       help='Show only modules that are not loaded')
    parser.add_argument('--with-options', action='store_true',
                        help='Show only modules that declare parameters')

    # Sorting options
    parser.add_argument('--sort', choices=['name', 'state'], default=None,
                        help='Sort modules by name or by state (default: discovery order)')
    parser.add_argument('--reverse', '-r', action='store_true',
                        help='Reverse sort order')

    # Output options
    output = parser.add_mutually_exclusive_group()
    output.add_argument('--json', action='store_true', help='Output in JSON format')
    output.add_argument('--csv', action='store_true', help='Output in CSV format')
    parser.add_argument('--count', '-c', action='store_true',
                        help='Show only the count of modules')
    parser.add_argument('--detailed', '-d', action='store_true',
                        help='Show detailed information for each module')
    parser.add_argument('--quiet', '-q', action='store_true',
                        help='Suppress headers and only show module data')
    parser.add_argument('--output', '-o', type=str, metavar='FILE',
                        help='Write output to specified file instead of stdout')

    # Configuration options
    parser.add_argument('--config', type=str, metavar='FILE',
                        help='JSON configuration file')
    parser.add_argument('--timeout', type=float, metavar='SECONDS',
                        help='Timeout for each external command')
    parser.add_argument('--substring-match', action='store_true',
                        help='Treat a module as loaded if its name appears anywhere in lsmod output')
    parser.add_argument('--elf', action='store_true',
                        help='Read metadata from module files instead of running modinfo')
    parser.add_argument('--no-sudo', action='store_true',
                        help='Run modprobe without a privilege escalation prefix')

    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}',
                        help='Show version information')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable verbose output with additional debugging information')
    return parser


def render(records, snapshot, args) -> str:
    if args.count:
        loaded = sum(1 for record in records if record.loaded)
        return f"Total kernel modules: {len(records)} ({loaded} loaded, {len(records) - loaded} not loaded)"
    if args.json:
        return JSONFormatter().format(records, snapshot)
    if args.csv:
        return CSVFormatter().format(records, snapshot)
    return TableFormatter(show_details=args.detailed, quiet=args.quiet).format(records, snapshot)


def write_output(content: str, path: Optional[str]) -> None:
    if not path:
        print(content)
        return
    with open(path, 'w', encoding='utf-8') as f:
        f.write(content)
    logger.debug("Output written to %s", path)


def main(argv: Optional[List[str]] = None) -> int:
    """Main function to run the kernel module manager."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s: %(message)s", stream=sys.stderr)

    if args.param and not args.load:
        parser.error("--param can only be used with --load")
    if args.reverse and not args.sort:
        parser.error("--reverse requires --sort")

    try:
        params = parse_params(args.param)
    except argparse.ArgumentTypeError as e:
        parser.error(str(e))

    try:
        config = load_config(args.config).merged({
            'command_timeout': args.timeout,
            'residency_match': 'substring' if args.substring_match else None,
            'metadata_source': 'elf' if args.elf else None,
            'privileged_prefix': [] if args.no_sudo else None,
        })
    except KernelModuleError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    logger.debug("Configuration: %s", config)

    try:
        controller = build_controller(config)
        exit_code = 0

        if args.load or args.unload:
            if args.load:
                outcome = controller.request_load(args.load, params)
            else:
                outcome = controller.request_unload(args.unload)
            stream = sys.stdout if outcome.success else sys.stderr
            print(outcome.message, file=stream)
            if not outcome.success:
                if outcome.error.stderr:
                    print(outcome.error.stderr, file=sys.stderr)
                exit_code = 1
            snapshot = outcome.snapshot
            record = snapshot.get(outcome.name)
            records = [record] if record is not None else []
        else:
            snapshot = controller.refresh()
            records = list(snapshot)

        if snapshot.is_empty:
            print(snapshot.notice, file=sys.stderr)
            return exit_code

        records = ModuleFilter.filter_modules(
            records,
            name_pattern=args.filter,
            loaded=True if args.loaded else (False if args.unloaded else None),
            with_options=args.with_options
        )
        if args.sort:
            records = ModuleSorter.sort_modules(records, args.sort, args.reverse)

        content = render(records, snapshot, args)
        try:
            write_output(content, args.output)
        except OSError as e:
            print(f"Error writing to file {args.output}: {e}", file=sys.stderr)
            return 1
        return exit_code

    except KeyboardInterrupt:
        print("\nOperation cancelled by user", file=sys.stderr)
        return 1
    except (KernelModuleError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
