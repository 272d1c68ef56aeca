"""argparse front end: `repair`, `ping` and `config` subcommands."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from bson import ObjectId

from bson_text_repair.config import (
    ConfigLoadError,
    ConfigValidationError,
    effective_config,
    load_config,
)
from bson_text_repair.config.schema import LOG_LEVELS, REPLACE_ERROR_POLICIES
from bson_text_repair.domain.models import RunSummary
from bson_text_repair.observability.logging import (
    LogSettings,
    correlation_scope,
    start_run_log,
    stop_run_log,
)
from bson_text_repair.pipeline import CollectionDriver, RecordProcessor
from bson_text_repair.repair.rewriter import DocumentRewriter
from bson_text_repair.review.reviewer import ChangeReviewer
from bson_text_repair.store.base import StoreError
from bson_text_repair.store.mongo import MongoStore
from bson_text_repair.ui.render import CLIRenderer, create_renderer


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Reported as ``error: <message>`` and turned into ``exit_code`` by :func:`run_cli`."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bson-text-repair",
        description=(
            "bson-text-repair: restore string fields whose UTF-16 code units were\n"
            "truncated to single bytes before being stored in MongoDB.\n\n"
            "Common workflows:\n"
            "  bson-text-repair repair --db app --dry-run     Show what would change\n"
            "  bson-text-repair repair --db app --confirm     Review every field\n"
            "  bson-text-repair ping --db app                 Check connectivity\n"
            "  bson-text-repair config                        Show effective config\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to TOML config (default: ./bson-text-repair.toml if present).",
    )
    common.add_argument(
        "--profile",
        default=None,
        help="Optional config profile overlay name (audit, interactive, ...).",
    )
    common.add_argument(
        "--uri",
        default=None,
        help="MongoDB connection string (default: mongodb://localhost:27017).",
    )
    common.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        default=None,
        help="Structured log level.",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show detailed output.",
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # repair --------------------------------------------------------------
    repair_parser = subparsers.add_parser(
        "repair",
        parents=[common],
        help="Scan collections and repair truncated text fields",
        description=(
            "Walk every record of the selected collections, repair string fields\n"
            "that are not valid UTF-8, and replace changed records by _id.\n\n"
            "Examples:\n"
            "  bson-text-repair repair --db app\n"
            "  bson-text-repair repair --db app --col users --col orders --confirm\n"
            "  bson-text-repair repair --db app --high-byte 0x04 --dry-run\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    repair_parser.add_argument("--database", "--db", dest="database", default=None)
    repair_parser.add_argument(
        "--collection",
        "--col",
        dest="collections",
        action="append",
        default=None,
        help="Collection to process; repeatable (default: every collection).",
    )
    repair_parser.add_argument(
        "--confirm",
        action="store_true",
        default=None,
        help="Ask before applying each field repair.",
    )
    repair_parser.add_argument(
        "--dry-run",
        action="store_true",
        default=None,
        help="Show diffs without writing anything back.",
    )
    repair_parser.add_argument(
        "--high-byte",
        type=_parse_high_byte,
        default=None,
        help="High byte restored onto each code unit, e.g. 0x04 for Cyrillic (default: 0).",
    )
    repair_parser.add_argument(
        "--on-replace-error",
        choices=REPLACE_ERROR_POLICIES,
        default=None,
        help="Keep going or stop the collection when a replace fails (default: continue).",
    )
    repair_parser.add_argument(
        "--max-concurrent-streams",
        type=int,
        default=None,
        help="Collections processed at once (default: 1).",
    )
    repair_parser.set_defaults(handler=_cmd_repair)

    # ping ----------------------------------------------------------------
    ping_parser = subparsers.add_parser(
        "ping",
        parents=[common],
        help="Check connectivity and list collections",
        description=(
            "Connect, run ping, and list the collections of --database if given.\n\n"
            "Examples:\n"
            "  bson-text-repair ping\n"
            "  bson-text-repair ping --uri mongodb://db.internal:27017 --db app\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    ping_parser.add_argument("--database", "--db", dest="database", default=None)
    ping_parser.set_defaults(handler=_cmd_ping)

    # config --------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Show effective configuration (redacted)",
        description=(
            "Display the effective config after merging defaults, file, env, and profile.\n"
            "Credentials in the connection string are redacted.\n\n"
            "Examples:\n"
            "  bson-text-repair config\n"
            "  bson-text-repair config --profile audit\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Run one subcommand and return its exit code.

    argparse itself raises ``SystemExit`` for ``--help`` and usage errors.
    """

    args = build_parser().parse_args(None if argv is None else list(argv))
    try:
        return int(args.handler(args))
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code


def _cmd_repair(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    store_cfg = config["store"]
    if not store_cfg["database"]:
        raise CLIError(
            "no database selected; pass --database or set store.database", exit_code=2
        )

    renderer = _renderer_for(args)
    run_id = f"run-{ObjectId()}"
    handle = start_run_log(run_id, LogSettings.from_config(config["observability"]))
    try:
        with correlation_scope(run_id=run_id):
            handle.logger.info(
                "repair run started",
                extra={"config": effective_config(config)},
            )
            summary = asyncio.run(_run_repair(config, renderer))
            handle.logger.info("repair run finished", extra={"summary": summary.as_rows()})
    except StoreError as exc:
        handle.logger.error("store failure: %s", exc)
        raise CLIError(str(exc), exit_code=3) from exc
    finally:
        stop_run_log(handle)

    renderer.blank()
    renderer.table(("", "count"), summary.as_rows(), title="Summary")
    if summary.aborted_streams:
        renderer.warning("aborted: " + ", ".join(summary.aborted_streams))
    if args.verbose:
        renderer.kv("Log", handle.log_path)
    return 1 if summary.has_failures else 0


async def _run_repair(config: Mapping[str, Any], renderer: CLIRenderer) -> RunSummary:
    store_cfg = config["store"]
    repair_cfg = config["repair"]

    reviewer = ChangeReviewer.for_mode(confirm=repair_cfg["confirm"], renderer=renderer)
    rewriter = DocumentRewriter(reviewer, high_byte=repair_cfg["high_byte"])
    processor = RecordProcessor(rewriter, dry_run=repair_cfg["dry_run"], renderer=renderer)
    driver = CollectionDriver(
        processor,
        max_concurrent_streams=repair_cfg["max_concurrent_streams"],
        on_replace_error=repair_cfg["on_replace_error"],
        renderer=renderer,
    )

    store = await MongoStore.connect(
        store_cfg["uri"],
        server_selection_timeout_ms=store_cfg["server_selection_timeout_ms"],
    )
    async with store:
        streams = await store.streams(store_cfg["database"], store_cfg["collections"])
        renderer.kv("Target", store.target)
        renderer.kv("Database", store_cfg["database"])
        if repair_cfg["dry_run"]:
            renderer.warning("dry run; nothing will be written")
        return await driver.run(streams)


def _cmd_ping(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    renderer = _renderer_for(args)
    database = _flag_text(args.database) or config["store"]["database"]

    try:
        names = asyncio.run(_ping(config, database))
    except StoreError as exc:
        raise CLIError(str(exc), exit_code=3) from exc

    renderer.ok(f"reachable: {_redacted_uri(config)}")
    if database:
        renderer.heading(database)
        for name in names:
            renderer.text(f"  {name}")
    return 0


async def _ping(config: Mapping[str, Any], database: str) -> list[str]:
    store_cfg = config["store"]
    store = await MongoStore.connect(
        store_cfg["uri"],
        server_selection_timeout_ms=store_cfg["server_selection_timeout_ms"],
    )
    async with store:
        if not database:
            return []
        return await store.collection_names(database)


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    payload = {"active_profile": _flag_text(args.profile), "config": effective_config(config)}
    print(json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False))
    return 0


def _renderer_for(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(no_color=args.no_color, verbose=args.verbose)


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    try:
        return load_config(
            _flag_text(args.config_path),
            profile=_flag_text(args.profile),
            cli_overrides=cli_overrides(args),
        )
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def cli_overrides(args: argparse.Namespace) -> dict[str, object]:
    """Map parsed flags onto dotted config paths; unset flags are left out."""

    mapping = {
        "store.uri": "uri",
        "store.database": "database",
        "store.collections": "collections",
        "repair.confirm": "confirm",
        "repair.dry_run": "dry_run",
        "repair.high_byte": "high_byte",
        "repair.on_replace_error": "on_replace_error",
        "repair.max_concurrent_streams": "max_concurrent_streams",
        "observability.log_level": "log_level",
    }
    overrides: dict[str, object] = {}
    for path, attribute in mapping.items():
        value = getattr(args, attribute, None)
        if value is not None:
            overrides[path] = value
    return overrides


def _parse_high_byte(raw: str) -> int:
    try:
        text = raw.strip()
        value = int(text, 16) if text.lower().startswith("0x") else int(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not an integer: {raw!r}") from exc
    if not 0 <= value <= 0xFF:
        raise argparse.ArgumentTypeError("must be between 0 and 0xFF")
    return value


def _flag_text(value: object) -> str | None:
    text = value.strip() if isinstance(value, str) else ""
    return text or None


def _redacted_uri(config: Mapping[str, Any]) -> str:
    return str(effective_config(config)["store"]["uri"])


__all__ = ["CLIError", "build_parser", "cli_overrides", "run_cli"]
