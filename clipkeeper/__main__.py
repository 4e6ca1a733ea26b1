"""Clipkeeper process entry-point.

Usage:
    python -m clipkeeper page PAGE_ID [--input FILE]
    python -m clipkeeper export PAGE_ID
    python -m clipkeeper export-category CATEGORY [--format FMT] [--no-persist]
    python -m clipkeeper stats
    python -m clipkeeper import FILE [--mode skip|replace]
    python -m clipkeeper add ID NAME PAGE_ID

The component wiring lives in ``clipkeeper.runner``.  This module is
intentionally thin: it calls ``configure_logging()`` first, then runs one
command against the SQLite store at ``STORE_PATH``.  Exported text goes to
stdout; everything else is logged to stderr.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from clipkeeper.core import configure_logging
from clipkeeper.core.exceptions import ClipkeeperError
from clipkeeper.core.models import Category
from clipkeeper.core.settings import Settings
from clipkeeper.engine.formatter import ExportFormat
from clipkeeper.engine.reconcile import (
    BatchOutcome,
    extract_candidates,
    fetch_candidates,
    filter_new_candidates,
)
from clipkeeper.runner import App, load_import_file, open_app
from clipkeeper.storage.repository import ImportMode

logger = logging.getLogger("clipkeeper")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clipkeeper",
        description="Curate BOOTH item references across listing pages.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        metavar="LEVEL",
        help="Override LOG_LEVEL env var (DEBUG|INFO|WARNING|ERROR).",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        metavar="FORMAT",
        help="Override LOG_FORMAT env var (text|json).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    page = sub.add_parser("page", help="Discover and fetch new items referenced by a page.")
    page.add_argument("page_id")
    page.add_argument(
        "--input",
        type=argparse.FileType("r", encoding="utf-8"),
        default=sys.stdin,
        help="Page text to scan for item URLs (default: stdin).",
    )

    export = sub.add_parser("export", help="Export kept and pending items for a page.")
    export.add_argument("page_id")

    by_category = sub.add_parser("export-category", help="Export every item of one category.")
    by_category.add_argument("category", choices=[c.value for c in Category])
    by_category.add_argument(
        "--format",
        dest="fmt",
        choices=[f.value for f in ExportFormat],
        default=ExportFormat.LIST.value,
    )
    by_category.add_argument(
        "--no-persist",
        action="store_true",
        help="Copy the text without changing any item.",
    )

    sub.add_parser("stats", help="Show item and history counts.")

    importer = sub.add_parser("import", help="Import items from a JSON backup file.")
    importer.add_argument("file")
    importer.add_argument(
        "--mode",
        choices=[m.value for m in ImportMode],
        default=ImportMode.SKIP.value,
        help="What to do with ids that already exist.",
    )

    add = sub.add_parser("add", help="Manually add a pending item.")
    add.add_argument("item_id")
    add.add_argument("name")
    add.add_argument("page_id")

    return parser


async def _run(args: argparse.Namespace, settings: Settings) -> int:
    async with open_app(settings) as app:
        return await _dispatch(app, args)


async def _dispatch(app: App, args: argparse.Namespace) -> int:
    if args.command == "page":
        candidates = extract_candidates(args.input.read(), args.page_id)
        fresh = await filter_new_candidates(app.store, candidates, args.page_id)
        summary = await fetch_candidates(app.store, app.policy, fresh, args.page_id)
        for failed in summary.failed:
            print(f"{failed.id}\t{failed.error}", file=sys.stderr)  # noqa: T201
        return 1 if summary.outcome is BatchOutcome.FAILURE else 0

    if args.command == "export":
        result = await app.engine.export_kept_and_pending(args.page_id)
        if result.warning:
            logger.warning(result.warning)
        return 0

    if args.command == "export-category":
        result = await app.engine.export_by_category(
            args.category, args.fmt, persist=not args.no_persist
        )
        if result.warning:
            logger.warning(result.warning)
        return 0

    if args.command == "stats":
        stats = await app.store.stats()
        print(  # noqa: T201
            f"kept={stats.kept} pending={stats.pending} dismissed={stats.dismissed} "
            f"total={stats.total} history={stats.history.total} "
            f"free={stats.history.free} registered={stats.history.registered}"
        )
        return 0

    if args.command == "import":
        summary = await app.store.import_items(load_import_file(args.file), args.mode)
        print(  # noqa: T201
            f"added={len(summary.added)} replaced={len(summary.replaced)} "
            f"skipped={len(summary.skipped)} invalid={summary.invalid}"
        )
        return 0 if summary.success else 1

    if args.command == "add":
        saved = await app.commands.manual_add(args.item_id, args.name, args.page_id)
        return 0 if saved else 1

    raise AssertionError(f"unhandled command {args.command!r}")


def main() -> None:
    """CLI entry-point registered in ``pyproject.toml``."""
    args = _build_parser().parse_args()

    # pydantic's ValidationError is a ValueError subclass.
    try:
        settings = Settings()
        configure_logging(
            level=args.log_level or settings.log_level,
            fmt=args.log_format or settings.log_format,
        )
    except ValueError as exc:
        print(f"clipkeeper: configuration error: {exc}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    try:
        code = asyncio.run(_run(args, settings))
    except ClipkeeperError as exc:
        logger.error("%s", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting.")
        sys.exit(130)
    sys.exit(code)


if __name__ == "__main__":
    main()
