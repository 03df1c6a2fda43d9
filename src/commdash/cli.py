"""CLI for ``commdash``.

Refresh, query and inspect the local store from the command line.

Usage:
    commdash init                          # Create/upgrade the database
    commdash refresh                       # Fetch every enabled source
    commdash refresh --fixtures tests/fixtures
    commdash search "deploy"               # Full-text search
    commdash items --provider slack        # List stored items
    commdash config set theme dark         # Key/value settings
    commdash --json items                  # JSON output
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

from commdash.adapters import build_adapters
from commdash.config import CommdashConfig, ConfigPaths
from commdash.errors import CommdashError, ConfigError, NotInitializedError, StorageError
from commdash.fixtures import FixtureLoader, install_fixtures
from commdash.logs import JsonlLogger, setup_logging
from commdash.storage.engine import StorageEngine
from commdash.sync.orchestrator import RefreshReport, SyncOrchestrator
from commdash.transport.http import RequestsHTTPClient
from commdash.transport.mock import MockHTTPClient, MockShellExecutor
from commdash.transport.shell import SubprocessShellExecutor

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_PARTIAL = 1
EXIT_STORAGE = 2


def _positive_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be positive, got {value}")
    return number


def _config_paths(config_file: Optional[str]) -> ConfigPaths:
    """Layout rooted next to ``--config`` when given, else the default home."""
    if config_file:
        return ConfigPaths(Path(config_file).expanduser().resolve().parent)
    return ConfigPaths.default()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="commdash",
        description="Aggregate chat, mail, issues, notifications and calendar into one local store",
    )
    parser.add_argument("--config", default=None, metavar="PATH", help="Config file (default: ~/.config/commdash/config.yaml)")
    parser.add_argument("--db", default=None, metavar="PATH", help="Database path (overrides the config file)")
    parser.add_argument("--json", action="store_true", dest="as_json", help="Output as JSON")
    parser.add_argument("--log-level", default=None, help="Logging level (default: from config)")

    sub = parser.add_subparsers(dest="action")

    sub.add_parser("init", help="Initialize the database and show applied migrations")

    sp_refresh = sub.add_parser("refresh", help="Run one refresh cycle")
    sp_refresh.add_argument("--fixtures", default=None, metavar="DIR", help="Serve sources from fixture files instead of the network")
    sp_refresh.add_argument("--timeout", type=_positive_float, default=None, help="Per-source fetch timeout in seconds")

    sp_search = sub.add_parser("search", help="Full-text search over stored items")
    sp_search.add_argument("term", help="Search term")
    sp_search.add_argument("--limit", type=int, default=20, help="Max results")

    sp_items = sub.add_parser("items", help="List stored items, newest first")
    sp_items.add_argument("--provider", default=None, help="Only items from this provider")
    sp_items.add_argument("--limit", type=int, default=20, help="Max results")

    sp_config = sub.add_parser("config", help="Read or write stored settings")
    config_sub = sp_config.add_subparsers(dest="config_action")
    sp_get = config_sub.add_parser("get", help="Print one value")
    sp_get.add_argument("key")
    sp_set = config_sub.add_parser("set", help="Store one value")
    sp_set.add_argument("key")
    sp_set.add_argument("value")
    sp_list = config_sub.add_parser("list", help="List all values")
    sp_list.add_argument("--prefix", default="", help="Only keys starting with this prefix")

    return parser


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def _cmd_init(engine: StorageEngine, as_json: bool) -> int:
    migrations = engine.applied_migrations()
    if as_json:
        _print_json({
            "db_path": engine.db_path,
            "migrations": [{"version": v, "name": n} for v, n in migrations],
        })
        return EXIT_OK

    print(f"🗄️  Database ready: {engine.db_path}")
    for version, name in migrations:
        print(f"  v{version}  {name}")
    return EXIT_OK


def _print_report(report: RefreshReport, as_json: bool) -> None:
    if as_json:
        _print_json(report.to_dict())
        return

    print(f"🔄 Refresh finished in {report.duration_ms:.0f} ms "
          f"({report.inserted} new, {report.updated} updated)")
    for name, result in report.items():
        if result.ok:
            print(f"  ✓ {name:<10} {result.item_count} items")
        else:
            print(f"  ✗ {name:<10} {result.error_type}: {result.error}")


def _cmd_refresh(
    engine: StorageEngine,
    config: CommdashConfig,
    fixtures: Optional[str],
    timeout: Optional[float],
    as_json: bool,
    paths: ConfigPaths,
) -> int:
    if fixtures:
        http = MockHTTPClient()
        shell = MockShellExecutor()
        adapters = build_adapters(config, http, shell)
        install_fixtures(FixtureLoader(fixtures), http, shell, adapters)
    else:
        adapters = build_adapters(config, RequestsHTTPClient(), SubprocessShellExecutor())

    orchestrator = SyncOrchestrator(
        engine, adapters,
        fetch_timeout=timeout if timeout is not None else config.fetch_timeout,
    )
    report = asyncio.run(orchestrator.refresh())

    JsonlLogger(str(paths.logs_dir / "refresh.jsonl")).log_refresh(report)

    _print_report(report, as_json)
    return EXIT_OK if report.ok else EXIT_PARTIAL


def _cmd_search(engine: StorageEngine, term: str, limit: int, as_json: bool) -> int:
    results = engine.search(term, limit=limit)

    if as_json:
        _print_json([r.to_dict() for r in results])
        return EXIT_OK

    if not results:
        print(f"No items found for '{term}'")
        return EXIT_OK

    print(f"🔍 Results for '{term}' ({len(results)} found):")
    for i, item in enumerate(results, 1):
        print(f"  {i}. [{item.provider}] {item.title}")
    return EXIT_OK


def _cmd_items(engine: StorageEngine, provider: Optional[str], limit: int, as_json: bool) -> int:
    items = engine.query(provider=provider, limit=limit)

    if as_json:
        _print_json([r.to_dict() for r in items])
        return EXIT_OK

    if not items:
        print("No items stored")
        return EXIT_OK

    total = engine.count_items(provider)
    print(f"📥 {len(items)} of {total} items:")
    for item in items:
        print(f"  • [{item.provider}] {item.title}  ({item.source_key})")
    return EXIT_OK


def _cmd_config(engine: StorageEngine, args: argparse.Namespace) -> int:
    action = args.config_action
    if action == "get":
        value = engine.get_config(args.key)
        if value is None:
            print(f"'{args.key}' is not set", file=sys.stderr)
            return EXIT_PARTIAL
        if args.as_json:
            _print_json({args.key: value})
        else:
            print(value)
        return EXIT_OK

    if action == "set":
        engine.set_config(args.key, args.value)
        if not args.as_json:
            print(f"{args.key} = {args.value}")
        return EXIT_OK

    entries = engine.list_config(getattr(args, "prefix", ""))
    if args.as_json:
        _print_json({e.key: e.value for e in entries})
    else:
        for entry in entries:
            print(f"{entry.key} = {entry.value}")
    return EXIT_OK


def main(argv: List[str] | None = None) -> int:
    """Entry point for ``commdash``."""
    parser = _build_parser()
    args = parser.parse_args(argv if argv is not None else sys.argv[1:])

    if not args.action:
        parser.print_help()
        return EXIT_OK

    try:
        config = CommdashConfig.load(args.config)
    except ConfigError as exc:
        print(f"❌ Config error: {exc}", file=sys.stderr)
        return EXIT_STORAGE

    setup_logging(args.log_level or config.log_level)

    engine = StorageEngine(args.db or config.database_path)
    try:
        engine.initialize()

        if args.action == "init":
            return _cmd_init(engine, args.as_json)
        elif args.action == "refresh":
            return _cmd_refresh(engine, config, args.fixtures, args.timeout, args.as_json,
                                _config_paths(args.config))
        elif args.action == "search":
            return _cmd_search(engine, args.term, args.limit, args.as_json)
        elif args.action == "items":
            return _cmd_items(engine, args.provider, args.limit, args.as_json)
        elif args.action == "config":
            return _cmd_config(engine, args)
        else:
            parser.print_help()
            return EXIT_OK
    except (StorageError, NotInitializedError) as exc:
        print(f"❌ Storage error: {exc}", file=sys.stderr)
        return EXIT_STORAGE
    except CommdashError as exc:
        print(f"❌ {exc}", file=sys.stderr)
        return EXIT_PARTIAL
    finally:
        engine.close()


if __name__ == "__main__":
    raise SystemExit(main())
