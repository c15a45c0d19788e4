# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Command line interface for Title Match Linker.

Usage:
    # Link every note in the vault (asks for confirmation)
    title-linker --vault ~/notes link

    # Skip the prompt and exclude a folder for this run
    title-linker --vault ~/notes link --yes --exclude Templates/

    # Show what one note would look like, without changing it
    title-linker --vault ~/notes link-one Projects/Alpha.md --dry-run

    # Review, then accept or revert
    title-linker --vault ~/notes status
    title-linker --vault ~/notes accept --all --delete-log
    title-linker --vault ~/notes revert Projects/Alpha.md
"""

import argparse
import logging
import sys
import uuid
from pathlib import Path
from typing import Callable, List, Optional

from title_linker.config import Config
from title_linker.errors import TitleLinkerError
from title_linker.log_config import get_default_data_root, get_logs_dir
from title_linker.logging_setup import setup_logging
from title_linker.run_logger import RunLogger
from title_linker.service import TitleLinkerService
from title_linker.storage import VaultStore

logger = logging.getLogger(__name__)


def _prompt(message: str) -> bool:
    if not sys.stdin.isatty():
        print(f"{message}\nRefusing to proceed without a terminal; pass --yes to confirm.")
        return False
    answer = input(f"{message} [y/N] ")
    return answer.strip().lower() in ("y", "yes")


def _print_progress(processed: int, total: int, path: str) -> None:
    print(f"[{processed}/{total}] {path}", file=sys.stderr)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="title-linker",
        description="Link note-title mentions across a markdown vault, reversibly.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--vault", type=Path, default=Path.cwd(), help="Vault directory")
    parser.add_argument("--config", type=Path, default=None, help="Configuration file")
    parser.add_argument(
        "--data-root",
        type=Path,
        default=None,
        help=f"Root directory for run logs. Default: {get_default_data_root()}",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    link = sub.add_parser("link", help="Link title matches across the vault")
    link.add_argument("--exclude", action="append", default=None, help="Folder prefix to skip (repeatable)")
    link.add_argument("--yes", action="store_true", help="Do not ask for confirmation")

    link_one = sub.add_parser("link-one", help="Link title matches in one note")
    link_one.add_argument("path", help="Vault-relative note path")
    link_one.add_argument("--dry-run", action="store_true", help="Print the result without writing")

    revert = sub.add_parser("revert", help="Restore notes from their backups")
    revert_target = revert.add_mutually_exclusive_group(required=True)
    revert_target.add_argument("path", nargs="?", help="Vault-relative note path")
    revert_target.add_argument("--all", action="store_true", help="Revert every pending change")

    accept = sub.add_parser("accept", help="Keep added links and delete backups")
    accept_target = accept.add_mutually_exclusive_group(required=True)
    accept_target.add_argument("path", nargs="?", help="Vault-relative note path")
    accept_target.add_argument("--all", action="store_true", help="Accept every pending change")
    accept.add_argument("--delete-log", action="store_true", help="With --all, also delete the review log")

    sub.add_parser("status", help="List pending changes")
    return parser


def _cmd_link(service: TitleLinkerService, args: argparse.Namespace, confirm: Callable[[str], bool]) -> int:
    result = service.run_batch(
        exclusions=args.exclude,
        confirm=(lambda message: True) if args.yes else confirm,
        progress=_print_progress,
    )
    if result.cancelled and result.processed_count == 0:
        print("Link creation process cancelled; nothing was changed.")
        return 1
    print(
        f"Link creation process completed: {result.links_added} links added "
        f"across {result.modified_count} notes."
    )
    for failure in result.failures:
        print(f"  {failure.error_kind}: {failure.message}")
    return 0


def _cmd_link_one(service: TitleLinkerService, args: argparse.Namespace) -> int:
    if args.dry_run:
        preview = service.preview(args.path)
        print(f"{preview.links_added} links would be added to {args.path}")
        if preview.links_added:
            print(preview.content)
        return 0
    result = service.run_single(args.path)
    if result.skipped_reason:
        print(f"No links added to {args.path} ({result.skipped_reason}).")
    else:
        print(f"{result.links_added} links added to {args.path}.")
    if result.log_warning:
        print(f"Warning: {result.log_warning}")
    return 0


def _cmd_revert(service: TitleLinkerService, args: argparse.Namespace) -> int:
    if args.all:
        result = service.revert_all()
        print(f"Reversion process completed: {len(result.reverted)} notes reverted.")
        for failure in result.failures:
            print(f"  {failure.error_kind}: {failure.message}")
        return 1 if result.failures else 0
    service.revert_single(args.path)
    print(f"'{args.path}' has been reverted to its previous state.")
    return 0


def _cmd_accept(service: TitleLinkerService, args: argparse.Namespace) -> int:
    if args.all:
        count = service.accept_all(also_delete_log=args.delete_log)
        print(f"All changes accepted ({count} notes).")
        return 0
    if service.accept_single(args.path):
        print(f"Changes accepted for '{args.path}'.")
    else:
        print(f"No pending changes for '{args.path}'.")
    return 0


def _cmd_status(service: TitleLinkerService) -> int:
    pending = service.pending_changes()
    if not pending:
        print("No pending changes.")
        return 0
    for change in pending:
        count = "?" if change.links_added is None else str(change.links_added)
        print(f"{change.path}: {count} links added")
    return 0


def main(argv: Optional[List[str]] = None, confirm: Callable[[str], bool] = _prompt) -> int:
    """Run the command line interface.

    Returns:
        Process exit code.
    """
    args = build_parser().parse_args(argv)

    data_root = args.data_root or get_default_data_root()
    setup_logging(
        log_dir=get_logs_dir(data_root),
        log_level=logging.DEBUG if args.verbose else logging.WARNING,
    )

    config = Config(config_path=args.config) if args.config else Config.for_vault(args.vault)
    try:
        store = VaultStore(args.vault)
    except FileNotFoundError as e:
        print(str(e), file=sys.stderr)
        return 2

    service = TitleLinkerService(
        config=config,
        store=store,
        run_logger=RunLogger(
            session_id=str(uuid.uuid4()),
            data_root=data_root,
            enabled=config.enable_run_logging,
        ),
    )
    try:
        if args.command == "link":
            return _cmd_link(service, args, confirm)
        if args.command == "link-one":
            return _cmd_link_one(service, args)
        if args.command == "revert":
            return _cmd_revert(service, args)
        if args.command == "accept":
            return _cmd_accept(service, args)
        return _cmd_status(service)
    except TitleLinkerError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    finally:
        service.shutdown()


if __name__ == "__main__":
    sys.exit(main())
