"""Command-line interface for the decay job.

Provides subcommands for a single run, the recurring schedule, loading
documents into a store and showing the effective configuration.
"""

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict, replace
from pathlib import Path

from .config import DecayConfig, config_from_env, load_config, save_config
from .decay import DecayJob, DecayScheduler, ScanError, parse_timestamp
from .logging import configure_logger
from .store import DocumentStore, InMemoryStore, SQLiteStore, StoreError


def _get_config(args: argparse.Namespace) -> DecayConfig:
    """Load config from disk, then environment, then command-line flags."""
    config = config_from_env(load_config(args.config))
    if getattr(args, "store", None):
        config = replace(config, store=args.store)
    return config


def _get_store(config: DecayConfig) -> DocumentStore:
    """Create the store named by ``config.store``."""
    if config.store == "memory":
        return InMemoryStore()
    if config.store == "sqlite":
        assert config.sqlite_path is not None
        store = SQLiteStore(config.sqlite_path, timeout=config.store_timeout)
        store.init_db()
        return store

    # Imported lazily so the Google client libraries load only when used.
    from .store.firestore import FirestoreStore

    return FirestoreStore(
        project=config.firestore_project,
        credentials_path=config.credentials_path,
        timeout=config.store_timeout,
    )


def _load_documents(store: DocumentStore, path: Path) -> int:
    """Write every ``{document path: fields}`` entry of a JSON file to ``store``."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError("Document file must map document paths to objects")

    count = 0
    for doc_path, fields in data.items():
        if not isinstance(fields, dict):
            raise ValueError(f"Document {doc_path} is not an object")
        store.set(doc_path, fields)
        count += 1
    return count


def _format_mutation(mutation) -> str:
    attribute = mutation.attribute
    name = f" ({attribute.name})" if attribute.name else ""
    history = "" if mutation.history is not None else "  [no owner, no history]"
    return (
        f"  {attribute.path}{name}: {attribute.score} -> {mutation.new_score}"
        f"  (inactive {mutation.elapsed_days:.1f}d){history}"
    )


def cmd_run(args: argparse.Namespace) -> int:
    """Run the decay job once."""
    config = _get_config(args)

    now = None
    if args.now:
        now = parse_timestamp(args.now)
        if now is None:
            print(f"Error: Cannot parse --now value '{args.now}'.")
            return 1

    run_log = configure_logger(config.log_dir)
    store = _get_store(config)
    try:
        if args.seed:
            try:
                loaded = _load_documents(store, args.seed)
            except (OSError, ValueError) as e:
                print(f"Error: {e}")
                return 1
            except StoreError as e:
                print(f"Error: Store write failed: {e}")
                return 1
            print(f"Loaded {loaded} document(s) from {args.seed}")

        job = DecayJob(store, config, run_log=run_log)
        try:
            report = job.run(now=now, dry_run=args.dry_run)
        except ScanError as e:
            print(f"Error: Decay run aborted: {e}")
            return 1

        if args.dry_run and report.planned:
            print("\nWould decay:")
            for mutation in report.planned:
                print(_format_mutation(mutation))

        print(f"\n{report.summary()}")
        if report.partial:
            print("Warning: a batch failed to commit; earlier batches remain applied.")
        return 0
    finally:
        store.close()


def cmd_schedule(args: argparse.Namespace) -> int:
    """Run the decay job on a fixed interval."""
    config = _get_config(args)
    if args.interval_hours is not None:
        config = replace(config, interval_hours=args.interval_hours)

    run_log = configure_logger(config.log_dir)
    store = _get_store(config)
    scheduler = DecayScheduler(
        DecayJob(store, config, run_log=run_log),
        interval_seconds=config.interval_seconds,
        run_timeout=config.run_timeout,
    )

    print(f"Decay scheduler started. Interval: {config.interval_hours:g}h. Ctrl+C to stop.")
    try:
        asyncio.run(scheduler.run_forever(max_runs=args.max_runs))
    except KeyboardInterrupt:
        print("\nStopped.")
    finally:
        store.close()
    return 0


def cmd_import(args: argparse.Namespace) -> int:
    """Load documents from a JSON file into the configured store."""
    config = _get_config(args)
    if config.store == "memory":
        print("Error: Importing into the memory store has no lasting effect.")
        return 1

    store = _get_store(config)
    try:
        count = _load_documents(store, args.file)
    except (OSError, ValueError) as e:
        print(f"Error: {e}")
        return 1
    except StoreError as e:
        print(f"Error: Store write failed: {e}")
        return 1
    finally:
        store.close()

    print(f"Imported {count} document(s) into {config.store} store.")
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    """Show the effective configuration, optionally saving it."""
    config = _get_config(args)

    print(f"\n{'Setting':<20} Value")
    print("-" * 60)
    for key, value in asdict(config).items():
        print(f"{key:<20} {value}")

    if args.save:
        save_config(config, args.config)
        print(f"\nSaved to {args.config or 'default config path'}")
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the decay CLI."""
    parser = argparse.ArgumentParser(
        prog="innerdecay",
        description="Inactivity decay for tracked innerfaces",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config.json (default ~/.innerdecay/config.json)",
    )
    parser.add_argument(
        "--store",
        choices=["memory", "sqlite", "firestore"],
        help="Override the configured store backend",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Sub-command help")

    # run command
    run_parser = subparsers.add_parser("run", help="Run the decay job once")
    run_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would decay without writing",
    )
    run_parser.add_argument("--now", help="Reference instant (ISO-8601), default: current time")
    run_parser.add_argument(
        "--seed",
        type=Path,
        help="JSON file of documents to load before running",
    )

    # schedule command
    schedule_parser = subparsers.add_parser("schedule", help="Run the decay job periodically")
    schedule_parser.add_argument(
        "--interval-hours",
        type=float,
        help="Hours between runs (default from config, 24)",
    )
    schedule_parser.add_argument(
        "--max-runs",
        type=int,
        help="Exit after this many runs",
    )

    # import command
    import_parser = subparsers.add_parser("import", help="Load documents into the store")
    import_parser.add_argument("file", type=Path, help="JSON file mapping paths to documents")

    # config command
    config_parser = subparsers.add_parser("config", help="Show effective configuration")
    config_parser.add_argument(
        "--save",
        action="store_true",
        help="Write the effective configuration to the config file",
    )

    return parser


def run_cli(argv: list[str] | None = None) -> int:
    """Run the CLI with given arguments.

    Args:
        argv: Command-line arguments. Uses sys.argv[1:] if None.

    Returns:
        Exit code (0 for success, non-zero for error).
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "run": cmd_run,
        "schedule": cmd_schedule,
        "import": cmd_import,
        "config": cmd_config,
    }

    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        return 1

    try:
        return handler(args)
    except ValueError as e:
        print(f"Error: {e}")
        return 1
    except StoreError as e:
        print(f"Error: Store unavailable: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(run_cli())
