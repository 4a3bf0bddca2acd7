"""
CLI - Command-line interface for hostrecon.

    hostrecon [options] [<module>|all] [apply|status|revert]

Without positional arguments the CLI asks for an operation and then
confirms each module in turn.
"""

import argparse
import os
import sys
from typing import List, Optional

from . import __version__
from .config import Config, ConfigError
from .modules import ModuleContext
from .protocol.result import Mode
from .runner.orchestrator import Orchestrator, SelectionError
from .ui import ConsoleUI


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="hostrecon",
        description="Idempotent host-configuration reconciler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    hostrecon                       # interactive selection
    hostrecon all apply
    hostrecon network status
    hostrecon ssh-security revert

    # Against a sandbox tree instead of /
    hostrecon --root /srv/image all status
        """,
    )

    parser.add_argument(
        "target",
        nargs="?",
        help="Module name or 'all' (omit for interactive mode)",
    )
    parser.add_argument(
        "mode",
        nargs="?",
        choices=[m.value for m in Mode],
        help="Operation (default: apply)",
    )
    parser.add_argument(
        "-c", "--config",
        help="Path to config file (default: search standard locations)",
    )
    parser.add_argument(
        "--root",
        help="Host root directory (default: /)",
    )
    parser.add_argument(
        "-y", "--yes",
        action="store_true",
        help="Accept interactive defaults without prompting",
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Only print errors and the final summary",
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="List modules and exit",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser.parse_args(argv)


def _interactive_selection(args, ui: ConsoleUI, orchestrator: Orchestrator):
    """Resolve mode and module list by asking (or by defaults with --yes)."""
    mode = Mode(args.mode) if args.mode else (Mode.APPLY if args.yes else ui.choose_mode())

    if mode == Mode.APPLY:
        defaults = orchestrator.interactive_defaults(orchestrator.last_record())
    else:
        # status is harmless; revert must be opted into per module
        defaults = {name: mode == Mode.STATUS for name in orchestrator.module_names}

    if args.yes:
        return mode, [name for name, run in defaults.items() if run]

    descriptions = {name: m.description for name, m in orchestrator.registry.items()}
    return mode, ui.select_modules(defaults, descriptions)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point. Returns the process exit code."""
    args = parse_args(argv)
    ui = ConsoleUI(quiet=args.quiet)

    try:
        config = Config.load(args.config).override_from_args(args)
    except (FileNotFoundError, ConfigError) as e:
        ui.print_error(str(e))
        return 1

    errors = config.validate()
    if errors:
        for error in errors:
            ui.print_error(error)
        return 1

    ctx = ModuleContext.create(config)
    orchestrator = Orchestrator(ctx)

    if args.list:
        ui.print_module_list(orchestrator.registry)
        return 0

    if os.geteuid() != 0:
        ui.print_error("hostrecon must be run as root")
        return 1

    try:
        if args.target:
            mode = Mode(args.mode or Mode.APPLY.value)
            names = orchestrator.select(args.target)
        else:
            mode, names = _interactive_selection(args, ui, orchestrator)
            if not names:
                ui.print("Nothing selected.")
                return 0

        ui.print_banner(__version__, config.host.root)
        orchestrator.on_module_start(ui.print_module_start)
        orchestrator.on_module_done(ui.print_module_result)

        report = orchestrator.run(mode, names)

    except SelectionError as e:
        ui.print_error(str(e))
        return 1
    except KeyboardInterrupt:
        ui.print_error("Interrupted by user")
        return 1

    ui.print_summary(
        report.results,
        interrupted=report.record.interrupted,
        status_path=str(config.status_path) if report.saved else None,
    )
    if report.save_error is not None:
        ui.print_error(f"Could not write run record {config.status_path}", report.save_error)
    return report.exit_code


if __name__ == "__main__":
    sys.exit(main())
