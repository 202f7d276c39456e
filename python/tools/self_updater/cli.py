# cli.py
import argparse
import asyncio
import sys
import traceback
from typing import List, Optional

from pydantic import ValidationError

from .exceptions import ConfigurationError, UpdaterError
from .launcher import HandoffLauncher
from .logger import level_for_verbosity, setup_logging
from .models import CallerExitCode, UpdaterConfig
from .updater import SelfUpdater


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Self Updater - Check for, assemble and apply application updates"
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to the configuration file (JSON)",
    )
    parser.add_argument("--working-dir", type=str, help="Directory of the installation")
    parser.add_argument("--manifest", type=str, help="Name of the local manifest (default: ver.upd)")
    parser.add_argument("--remote-url", type=str, help="URL of the incoming manifest")
    parser.add_argument("--archive-name", type=str, help="Name of the update archive")

    parser.add_argument(
        "--restart",
        action="store_true",
        default=None,
        help="Restart this program once the update is applied",
    )
    parser.add_argument(
        "--no-unpack",
        action="store_true",
        help="Do not extract archives found among the sources",
    )
    parser.add_argument(
        "--wait-for-input",
        action="store_true",
        default=None,
        help="Keep the companion window open until a key is pressed",
    )
    parser.add_argument(
        "--skip-connectivity",
        action="store_true",
        help="Do not check for an internet connection first",
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--check-only",
        action="store_true",
        help="Only compare versions, don't assemble or apply anything",
    )
    mode.add_argument(
        "--assemble-only",
        action="store_true",
        help="Assemble the incoming release into an archive without applying it",
    )
    mode.add_argument(
        "--purge",
        action="store_true",
        help="Remove companion files left by an earlier update",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="count",
        default=0,
        help="Increase verbosity (can be used multiple times)",
    )
    return parser


def load_config(args: argparse.Namespace) -> UpdaterConfig:
    overrides = {
        "working_dir": args.working_dir,
        "manifest_name": args.manifest,
        "remote_manifest_url": args.remote_url,
        "archive_name": args.archive_name,
        "restart": args.restart,
        "wait_for_input": args.wait_for_input,
        "unpack_nested": False if args.no_unpack else None,
        "check_connectivity": False if args.skip_connectivity else None,
        "show_progress": True if args.verbose > 0 else None,
    }
    if args.config:
        return UpdaterConfig.from_file(args.config, **overrides)
    try:
        return UpdaterConfig(**{k: v for k, v in overrides.items() if v is not None})
    except ValidationError as e:
        raise ConfigurationError(f"Invalid command line options: {e}", original_error=e) from e


async def _check_only(updater: SelfUpdater) -> int:
    if not await updater.is_online():
        print("No internet connection found to complete an update.")
        return CallerExitCode.UNAVAILABLE
    check = await updater.check_for_updates()
    if check.is_newer:
        print(f"Update available: {check.incoming.version_number}")
        return CallerExitCode.HANDOFF
    print(f"Update not required (current version: {check.working.version_number})")
    return CallerExitCode.NOT_REQUIRED


async def _assemble_only(updater: SelfUpdater) -> int:
    if not await updater.is_online():
        print("No internet connection found to complete an update.")
        return CallerExitCode.UNAVAILABLE
    check = await updater.check_for_updates()
    if not check.is_newer:
        print(f"Update not required (current version: {check.working.version_number})")
        return CallerExitCode.NOT_REQUIRED
    archive = await updater.assemble(check.newest)
    if archive is None:
        print("No files to download/copy")
        return CallerExitCode.NOT_REQUIRED
    print(f"Update assembled at: {archive}")
    return CallerExitCode.HANDOFF


def main(argv: Optional[List[str]] = None) -> int:
    """
    The main entry point for the command-line interface.

    Returns:
        int: Exit code (0 handoff/success, 1 no update required, -1 unavailable or error)
    """
    args = build_parser().parse_args(argv)
    setup_logging(level_for_verbosity(args.verbose))

    try:
        config = load_config(args)

        if args.purge:
            removed = HandoffLauncher(config.working_dir).purge_old_update()
            print(f"Removed {len(removed)} stale companion file(s)")
            return 0

        updater = SelfUpdater(config)
        if args.check_only:
            return int(asyncio.run(_check_only(updater)))
        if args.assemble_only:
            return int(asyncio.run(_assemble_only(updater)))

        code = asyncio.run(updater.update())
        if code == CallerExitCode.NOT_REQUIRED:
            print("Update not required.")
        elif code == CallerExitCode.UNAVAILABLE:
            print("Update unavailable: no connection or manifest.")
        return int(code)

    except UpdaterError as e:
        print(f"Error: {e}")
        return int(CallerExitCode.UNAVAILABLE)
    except Exception as e:
        print(f"Unexpected error: {e}")
        traceback.print_exc()
        return int(CallerExitCode.UNAVAILABLE)


if __name__ == "__main__":
    sys.exit(main())
