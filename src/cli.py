#!/usr/bin/env python3
"""
CLI for watching folders and submitting claims.

Usage:
    python -m src.cli --user me@example.com add-folder ./drafts --project p-123
    python -m src.cli --user me@example.com watch
    python -m src.cli --user me@example.com history --page 2
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
import uuid
from pathlib import Path

from dotenv import load_dotenv

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Load .env from project root
_env_file = Path(__file__).parent.parent / ".env"
if _env_file.exists():
    load_dotenv(_env_file)
else:
    load_dotenv()

from src.claims import ClaimApiClient, ClaimsConfig, ImageTransformer, TokenStore
from src.history import ChangeClassifier, CollectionKind, HistoryStore
from src.watcher import RenameCorrelator, RootError, WatcherConfig
from src.watcher.process import WatchPipeline


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("cli")


class GracefulShutdown:
    """Handle graceful shutdown on SIGINT/SIGTERM."""

    def __init__(self):
        self.should_exit = False
        signal.signal(signal.SIGINT, self._handler)
        signal.signal(signal.SIGTERM, self._handler)

    def _handler(self, signum, frame):
        logger.info("Received shutdown signal, stopping...")
        self.should_exit = True


def _watcher_config(args) -> WatcherConfig:
    config = WatcherConfig.from_env()
    if args.db:
        config.db_path = Path(args.db)
    config.db_path = config.db_path.resolve()
    config.db_path.parent.mkdir(parents=True, exist_ok=True)
    return config


def _collection_from_args(args):
    if args.project:
        return CollectionKind.PROJECT, args.project
    return CollectionKind.MARK, args.mark


def cmd_watch(args):
    """Watch all registered folders and submit claims until interrupted."""
    config = _watcher_config(args)
    if args.debounce is not None:
        config.debounce_ms = args.debounce

    claims_config = ClaimsConfig.from_env()
    shutdown = GracefulShutdown()

    async def _run():
        with HistoryStore(config.db_path) as store:
            async with ClaimApiClient(claims_config) as client:
                images = ImageTransformer(claims_config.image_max_width, claims_config.image_quality)
                pipeline = WatchPipeline(args.user, store, config, client=client, images=images)

                if not pipeline.get_folders():
                    logger.warning("No folders registered; use add-folder first")

                await pipeline.start()
                for folder in pipeline.get_folders():
                    logger.info(f"  - {folder.folder_path} ({folder.collection_kind.value} {folder.collection_id})")
                logger.info(f"Database: {config.db_path}")
                logger.info("Press Ctrl+C to stop")

                try:
                    while not shutdown.should_exit:
                        await asyncio.sleep(1)
                finally:
                    await pipeline.stop()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        pass
    logger.info("Watcher stopped")


def cmd_add_folder(args):
    """Register a folder feeding a project or mark."""
    config = _watcher_config(args)
    folder = Path(args.folder).resolve()

    if not folder.is_dir():
        logger.error(f"Folder does not exist or is not a directory: {folder}")
        sys.exit(1)

    kind, collection_id = _collection_from_args(args)

    with HistoryStore(config.db_path) as store:
        pipeline = WatchPipeline(args.user, store, config)
        try:
            pipeline.add_folder(folder, kind, collection_id)
        except RootError as e:
            logger.error(str(e))
            sys.exit(1)

    print(f"Watching {folder} for {kind.value} {collection_id}. Restart 'watch' to pick it up.")


def cmd_remove_folder(args):
    """Stop watching a folder."""
    config = _watcher_config(args)
    folder = Path(args.folder).resolve()

    with HistoryStore(config.db_path) as store:
        pipeline = WatchPipeline(args.user, store, config)
        if not pipeline.remove_folder(folder):
            logger.error(f"Folder is not watched: {folder}")
            sys.exit(1)

    print(f"Stopped watching {folder}")


def cmd_folders(args):
    """List watched folders."""
    config = _watcher_config(args)

    with HistoryStore(config.db_path) as store:
        folders = store.get_watched_folders(args.user)

    print(f"\nWatched folders ({len(folders)}):")
    if folders:
        for folder in folders:
            print(f"  - {folder.folder_path}  [{folder.collection_kind.value} {folder.collection_id}]")
    else:
        print("  (none)")


def cmd_history(args):
    """Show file history for watched folders, newest first."""
    config = _watcher_config(args)

    with HistoryStore(config.db_path) as store:
        if args.folder:
            folders = [Path(f).resolve() for f in args.folder]
        else:
            folders = [f.folder_path for f in store.get_watched_folders(args.user)]

        classifier = ChangeClassifier(store, RenameCorrelator())
        items, total = classifier.history_for_folders(args.user, folders, page=args.page, page_size=args.page_size)

    if not items:
        print("No history found.")
        return

    print(f"\nHistory page {args.page} ({len(items)} of {total}):\n")
    for entry in items:
        fingerprint = (entry.fingerprint or "")[:18]
        print(f"  {entry.timestamp}  {entry.event_type.value:<7} {fingerprint:<18}  {entry.path}")
    print()


def cmd_login(args):
    """Start a login request and store the token once the user signs in."""
    config = _watcher_config(args)
    claims_config = ClaimsConfig.from_env()
    request_id = args.request_id or str(uuid.uuid4())

    print(f"Login request: {request_id}")
    print("Complete sign-in in the browser; waiting for the token...")

    async def _poll():
        async with ClaimApiClient(claims_config) as client:
            return await client.poll_for_token(request_id)

    token = asyncio.run(_poll())
    if not token:
        logger.error("Authentication timed out or failed.")
        sys.exit(1)

    with HistoryStore(config.db_path) as store:
        TokenStore(store, args.user).set(token)
    print(f"Signed in as {args.user}")


def cmd_logout(args):
    """Forget the stored token."""
    config = _watcher_config(args)

    with HistoryStore(config.db_path) as store:
        TokenStore(store, args.user).clear()
    print("Signed out")


def cmd_reset(args):
    """Delete all data stored for the user."""
    config = _watcher_config(args)

    if not args.yes:
        answer = input(f"Delete all files, history and folders for {args.user}? [y/N] ")
        if answer.strip().lower() != "y":
            print("Aborted")
            return

    with HistoryStore(config.db_path) as store:
        count = store.reset_user(args.user)
    print(f"Removed {count} tracked file(s) and all history for {args.user}")


def main():
    parser = argparse.ArgumentParser(
        description="Watch folders and submit content claims for changed files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Sign in (stores the token for the user)
  python -m src.cli --user me@example.com login

  # Map a folder to a project, then watch
  python -m src.cli --user me@example.com add-folder ./drafts --project p-123
  python -m src.cli --user me@example.com watch

  # Show history for all watched folders
  python -m src.cli --user me@example.com history --page 1
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--user", default=os.environ.get("CLAIMWATCH_USER"),
                        help="User email (or set CLAIMWATCH_USER)")
    parser.add_argument("--db", default=None, help="Database path (or set CLAIMWATCH_DB)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    watch_parser = subparsers.add_parser("watch", help="Watch folders and submit claims")
    watch_parser.add_argument("--debounce", type=int, default=None, help="Debounce time in ms")
    watch_parser.set_defaults(func=cmd_watch)

    add_folder_parser = subparsers.add_parser("add-folder", help="Map a folder to a project or mark")
    add_folder_parser.add_argument("folder", help="Folder to watch")
    target = add_folder_parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--project", help="Project ID receiving claims")
    target.add_argument("--mark", help="Mark ID receiving artifacts")
    add_folder_parser.set_defaults(func=cmd_add_folder)

    remove_folder_parser = subparsers.add_parser("remove-folder", help="Stop watching a folder")
    remove_folder_parser.add_argument("folder", help="Folder to stop watching")
    remove_folder_parser.set_defaults(func=cmd_remove_folder)

    folders_parser = subparsers.add_parser("folders", help="List watched folders")
    folders_parser.set_defaults(func=cmd_folders)

    history_parser = subparsers.add_parser("history", help="Show file history")
    history_parser.add_argument("--folder", nargs="+", help="Limit to these folders (default: all watched)")
    history_parser.add_argument("--page", type=int, default=1, help="Page number (default: 1)")
    history_parser.add_argument("--page-size", type=int, default=20, help="Entries per page (default: 20)")
    history_parser.set_defaults(func=cmd_history)

    login_parser = subparsers.add_parser("login", help="Sign in and store the token")
    login_parser.add_argument("--request-id", default=None, help="Existing login request ID")
    login_parser.set_defaults(func=cmd_login)

    logout_parser = subparsers.add_parser("logout", help="Forget the stored token")
    logout_parser.set_defaults(func=cmd_logout)

    reset_parser = subparsers.add_parser("reset", help="Delete all data for the user")
    reset_parser.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation")
    reset_parser.set_defaults(func=cmd_reset)

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if not args.user:
        parser.error("--user is required (or set CLAIMWATCH_USER)")

    args.func(args)


if __name__ == "__main__":
    main()
