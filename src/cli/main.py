"""Persistent config maintenance CLI.

Commands operate on the overlay built from environment settings:
rebuild-cache warms the cache entry from storage, the rest are
administrative helpers around it.
"""

import argparse
import json
import sys
from collections.abc import Sequence
from typing import Any

from src.bootstrap import PersistentConfig, build_persistent_config, load_defaults, load_items
from src.config.settings import Settings
from src.domain.errors import CacheError, ConfigurationError, StorageError, ValidationError
from src.logger.logger import get_logger, init_logger
from src.logger.types import Category, Level, param
from src.logger.writer import StreamWriter

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level CLI parser."""
    parser = argparse.ArgumentParser(
        prog="persistent-config",
        description="Maintenance commands for the persistent configuration overlay",
    )
    parser.add_argument("--items", help="Override PERSISTENT_CONFIG_ITEMS (JSON file)")
    parser.add_argument("--defaults", help="Override PERSISTENT_CONFIG_DEFAULTS (JSON file)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser(
        "rebuild-cache",
        help="Reload persisted values from storage and rewrite the cache entry",
    )
    subparsers.add_parser("clear-cache", help="Delete the cache entry")

    list_parser = subparsers.add_parser("list", help="Show items with effective values")
    list_parser.add_argument("--json", action="store_true", help="Print JSON instead of a table")

    set_parser = subparsers.add_parser("set", help="Validate and persist a value")
    set_parser.add_argument("key", help="Dotted config key")
    set_parser.add_argument("value", help="New value (text; cast per item)")

    reset_parser = subparsers.add_parser("reset", help="Drop persisted values")
    reset_parser.add_argument("key", nargs="?", help="Single key (all keys if omitted)")

    subparsers.add_parser("init-storage", help="Create the storage table if missing")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """
    Run the CLI.

    Returns:
        Process exit code: 0 success, 1 storage/cache/validation failure,
        2 bad configuration or usage
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = Settings()
        level = Level.parse(settings.log_level)
    except (ConfigurationError, ValueError) as e:
        print(f"configuration_error={e}", file=sys.stderr)
        return EXIT_USAGE

    init_logger(
        service_name=settings.service_name,
        environment=settings.environment,
        writer=StreamWriter(level=level),
    )

    try:
        config = build_persistent_config(
            settings,
            items=load_items(settings, args.items),
            base=load_defaults(settings, args.defaults),
        )
    except ConfigurationError as e:
        print(f"configuration_error={e}", file=sys.stderr)
        return EXIT_USAGE

    try:
        return _dispatch(config, args)
    finally:
        config.close()


def _dispatch(config: PersistentConfig, args: argparse.Namespace) -> int:
    if args.command == "rebuild-cache":
        return _run_rebuild_cache_command(config)
    if args.command == "clear-cache":
        return _run_clear_cache_command(config)
    if args.command == "list":
        return _run_list_command(config, args)
    if args.command == "set":
        return _run_set_command(config, args)
    if args.command == "reset":
        return _run_reset_command(config, args)
    if args.command == "init-storage":
        return _run_init_storage_command(config)
    print(f"Unsupported command: {args.command}", file=sys.stderr)
    return EXIT_USAGE


def _run_rebuild_cache_command(config: PersistentConfig) -> int:
    """Warm the cache entry from storage."""
    repository = config.repository
    logger = get_logger().with_category(Category.CLI)
    try:
        overrides = repository.rebuild_cache()
    except (StorageError, CacheError) as e:
        logger.error("Persistent config cache rebuild failed", e)
        print(f"Failed to rebuild persistent config cache: {e}", file=sys.stderr)
        return EXIT_FAILURE

    if repository.cache is None:
        print(f"Persistent config reloaded: {len(overrides)} persisted value(s), no cache configured")
    else:
        print(
            f"Persistent config cache rebuilt: {len(overrides)} persisted value(s) "
            f"under '{repository.cache_key}'"
        )
    return EXIT_OK


def _run_clear_cache_command(config: PersistentConfig) -> int:
    try:
        config.repository.clear_cache()
    except CacheError as e:
        print(f"Failed to clear persistent config cache: {e}", file=sys.stderr)
        return EXIT_FAILURE
    print(f"Persistent config cache cleared: '{config.repository.cache_key}'")
    return EXIT_OK


def _run_list_command(config: PersistentConfig, args: argparse.Namespace) -> int:
    repository = config.repository
    overrides = repository.overrides()
    rows: list[dict[str, Any]] = [
        {
            "key": item.key,
            "label": item.label,
            "hint": item.hint,
            "value": repository.get(item.key),
            "persisted": item.key in overrides,
        }
        for item in repository.items.values()
    ]

    if args.json:
        print(json.dumps(rows, ensure_ascii=False, default=str, indent=2))
        return EXIT_OK

    for row in rows:
        source = "persisted" if row["persisted"] else "default"
        value = json.dumps(row["value"], ensure_ascii=False, default=str)
        print(f"{row['key']}\t{value}\t{source}\t{row['label']}")
    if repository.is_degraded:
        print("warning: storage unavailable, showing defaults", file=sys.stderr)
    return EXIT_OK


def _run_set_command(config: PersistentConfig, args: argparse.Namespace) -> int:
    repository = config.repository
    if args.key not in repository.items:
        print(f"'{args.key}' is not a persistent config item", file=sys.stderr)
        return EXIT_USAGE

    try:
        repository.set(args.key, args.value)
    except ValidationError as e:
        print(f"Invalid value for '{e.key}' ({e.rule}): {e.message}", file=sys.stderr)
        return EXIT_FAILURE
    except ConfigurationError as e:
        print(f"configuration_error={e}", file=sys.stderr)
        return EXIT_USAGE
    except StorageError as e:
        print(f"Failed to persist '{args.key}': {e}", file=sys.stderr)
        return EXIT_FAILURE

    get_logger().with_category(Category.CLI).info(
        "Persistent config value set from CLI", param("key", args.key)
    )
    print(f"{args.key}={json.dumps(repository.get(args.key), ensure_ascii=False, default=str)}")
    return EXIT_OK


def _run_reset_command(config: PersistentConfig, args: argparse.Namespace) -> int:
    repository = config.repository
    try:
        if args.key:
            repository.reset_value(args.key)
        else:
            repository.reset()
    except ConfigurationError as e:
        print(str(e), file=sys.stderr)
        return EXIT_USAGE
    except StorageError as e:
        print(f"Failed to reset persistent config: {e}", file=sys.stderr)
        return EXIT_FAILURE

    print(f"Persistent config reset: {args.key or 'all items'}")
    return EXIT_OK


def _run_init_storage_command(config: PersistentConfig) -> int:
    storage = config.repository.storage
    ensure_table = getattr(storage, "ensure_table", None)
    if ensure_table is None:
        print(f"{type(storage).__name__} needs no initialization")
        return EXIT_OK
    try:
        ensure_table()
    except StorageError as e:
        print(f"Failed to initialize storage: {e}", file=sys.stderr)
        return EXIT_FAILURE
    print(f"Storage initialized: {type(storage).__name__}")
    return EXIT_OK
