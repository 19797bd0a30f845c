# =============================================================================
# src/cli/ingest.py — CLI Ingest Command (Message Embedding Store)
# =============================================================================
#
# Standalone CLI for running the message ingestion pipeline and inspecting
# the embedding store.  Every content message that reaches the pipeline is
# classified, chunked to the embedding model's token budget, embedded by a
# local Ollama server (nomic-embed-text, 768 dims) and appended to the
# store, one row per chunk.
#
# Supported subcommands:
#
#   init     — Create the store schema (table / collection)
#   receive  — Replay a JSON-lines event stream through the receiver
#   message  — Ingest a single message given on the command line
#   stats    — Display store statistics (rows, messages, tokens)
#   dump     — Print stored rows without their vectors
#   config   — Print the resolved configuration
#
# Usage examples:
#   python -m src.cli.ingest init
#   python -m src.cli.ingest receive --file data/events.jsonl
#   python -m src.cli.ingest message --body "see you at 8" --direction to \
#       --receiver "Alice,0b5c..."
#   python -m src.cli.ingest stats
#   python -m src.cli.ingest dump --limit 20
# =============================================================================

"""Standalone CLI for the signal-vector-db ingestion pipeline.

Usage::

    python -m src.cli.ingest init
    python -m src.cli.ingest receive --file data/events.jsonl
    python -m src.cli.ingest message --body "hello" --direction from
    python -m src.cli.ingest stats

Exit code 0 on success, 1 when the store or configuration is unusable.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
import uuid
from pathlib import Path

from pydantic import ValidationError

from src.config.loader import build_settings, load_config
from src.config.settings import Settings
from src.utils.errors import ConfigurationError, StoreUnavailableError
from src.utils.logging import configure_logging

_DEFAULT_CONFIG_PATH = "config/config.yaml"


# ---------------------------------------------------------------------------
# Subcommand handlers
# ---------------------------------------------------------------------------


async def _warn_if_embedding_unreachable(provider) -> None:
    """Print a warning when the embedding service fails its health check."""
    if not await asyncio.to_thread(provider.is_available):
        print(
            f"Warning: embedding service {provider.get_provider_name()} is not reachable; "
            "chunks will be skipped until it is.",
            file=sys.stderr,
        )


async def _handle_init(app_settings: Settings) -> int:
    """Create the store schema."""
    from src.main import build_embedding_store

    store = build_embedding_store(app_settings)
    await store.initialize()
    print(f"Store initialized: {store.get_provider_name()}")
    await store.close()
    return 0


async def _handle_receive(args: argparse.Namespace, app_settings: Settings) -> int:
    """Replay a JSON-lines event stream through the stream receiver."""
    path = Path(args.file)
    if not path.is_file():
        print(f"Error: event file not found: {path}", file=sys.stderr)
        return 1

    from src.main import build_pipeline
    from src.providers.source.jsonl_message_source import JsonlMessageSource
    from src.services.receiver import StreamReceiver

    components = build_pipeline(app_settings)
    store = components["store"]
    provider = components["embedding_provider"]
    receiver: StreamReceiver = components["receiver"]
    if args.follow:
        receiver = StreamReceiver(
            ingestion_service=components["ingestion_service"],
            attachment_store=components["attachment_store"],
            follow=True,
            confirmation_timeout=app_settings.confirmation_timeout,
        )

    source = JsonlMessageSource(path)
    try:
        await store.initialize()
        await _warn_if_embedding_unreachable(provider)
        if args.wait_contacts:
            synced = await receiver.await_contacts_sync(source)
            if not synced:
                print("Warning: no contacts synchronization received.", file=sys.stderr)
        summary = await receiver.run(source)
    finally:
        await source.close()
        await provider.aclose()
        await store.close()

    print("\nReceive complete:")
    print(f"  Messages seen:      {summary.messages_seen}")
    print(f"  Messages embedded:  {summary.messages_embedded}")
    print(f"  Noise skipped:      {summary.noise_skipped}")
    print(f"  Records written:    {summary.records_written}")
    print(f"  Duplicates:         {summary.duplicates}")
    print(f"  Skipped chunks:     {summary.chunk_failures}")
    print(f"  Write failures:     {summary.write_failures}")
    print(f"  Contacts syncs:     {summary.contacts_syncs}")
    print(f"  End of backlog:     {'yes' if summary.reached_end_of_backlog else 'no'}")
    return 0


async def _handle_message(args: argparse.Namespace, app_settings: Settings) -> int:
    """Ingest one message given on the command line."""
    from src.main import build_pipeline
    from src.models.message import Direction, NormalizedMessage

    message = NormalizedMessage(
        message_id=args.id or uuid.uuid4().hex,
        direction=Direction(args.direction) if args.direction else None,
        body=args.body,
        sender=args.sender,
        receiver=args.receiver,
        group=args.group,
    )

    components = build_pipeline(app_settings)
    store = components["store"]
    provider = components["embedding_provider"]
    try:
        await store.initialize()
        await _warn_if_embedding_unreachable(provider)
        result = await components["ingestion_service"].process(message)
    finally:
        await provider.aclose()
        await store.close()

    print(f"Message {result.message_id}:")
    if result.skipped:
        print(f"  Skipped as noise ({result.classification.reason})")
        return 0
    print(f"  Chunks:          {result.chunks_total}")
    print(f"  Records written: {result.records_written}")
    print(f"  Duplicates:      {result.duplicates}")
    print(f"  Total tokens:    {result.total_tokens}")
    for failure in result.chunk_failures:
        print(
            f"  Chunk {failure.chunk_index} skipped after {failure.attempts} "
            f"attempt(s): {failure.reason}"
        )
    for write_failure in result.write_failures:
        print(f"  Chunk {write_failure.chunk_index} not stored: {write_failure.reason}")
    print(f"  Time:            {result.ingestion_time:.2f}s")
    return 0


async def _handle_stats(app_settings: Settings) -> int:
    """Display store statistics."""
    from src.main import build_embedding_store

    store = build_embedding_store(app_settings)
    try:
        await store.initialize()
        stats = await store.get_stats()
        available = store.is_available()
    finally:
        await store.close()

    print("Store Statistics")
    print("=" * 40)
    print(f"  Backend:        {store.get_provider_name()}")
    print(f"  Available:      {'yes' if available else 'no'}")
    print(f"  Total records:  {stats.total_records}")
    print(f"  Total messages: {stats.total_messages}")
    print(f"  Total tokens:   {stats.total_tokens}")

    if stats.records_by_direction:
        print("\n  Records by direction:")
        for direction, count in sorted(stats.records_by_direction.items()):
            print(f"    {direction or '(unknown)':<10} {count}")

    return 0


async def _handle_dump(args: argparse.Namespace, app_settings: Settings) -> int:
    """Print stored rows as JSON lines, vectors replaced by their dimension."""
    from src.main import build_embedding_store

    store = build_embedding_store(app_settings)
    try:
        await store.initialize()
        rows = await store.get_all()
    finally:
        await store.close()

    if args.limit is not None:
        rows = rows[: args.limit]
    for row in rows:
        data = row.model_dump(mode="json", exclude={"embedding"})
        data["dimension"] = len(row.embedding)
        print(json.dumps(data, ensure_ascii=False))
    return 0


def _handle_config(args: argparse.Namespace) -> int:
    """Print the resolved configuration."""
    try:
        resolved = load_config(args.config)
    except ValidationError as exc:
        print(f"Error: invalid configuration: {exc}", file=sys.stderr)
        return 1
    print(json.dumps(resolved, indent=2, default=str))
    return 0


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the ingestion CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m src.cli.ingest",
        description="Embed messages into the signal-vector-db store.",
    )
    parser.add_argument(
        "--config",
        default=_DEFAULT_CONFIG_PATH,
        help=f"YAML configuration file (default: {_DEFAULT_CONFIG_PATH})",
    )
    subparsers = parser.add_subparsers(dest="command", help="Ingestion commands")

    # -- init --
    subparsers.add_parser("init", help="Create the store schema")

    # -- receive --
    receive_parser = subparsers.add_parser(
        "receive", help="Replay a JSON-lines event stream"
    )
    receive_parser.add_argument("--file", required=True, help="Path to the .jsonl file")
    receive_parser.add_argument(
        "--follow",
        action="store_true",
        help="Keep reading past the end-of-backlog marker",
    )
    receive_parser.add_argument(
        "--wait-contacts",
        action="store_true",
        dest="wait_contacts",
        help="Wait for a contacts synchronization before receiving",
    )

    # -- message --
    message_parser = subparsers.add_parser("message", help="Ingest a single message")
    message_parser.add_argument("--body", required=True, help="Message body")
    message_parser.add_argument(
        "--direction", choices=["to", "from"], default=None, help="Message direction"
    )
    message_parser.add_argument("--sender", default=None, help="Sender identifier")
    message_parser.add_argument("--receiver", default=None, help="Receiver identifier")
    message_parser.add_argument("--group", default=None, help="Group title")
    message_parser.add_argument(
        "--id", default=None, help="Message id (default: a random id)"
    )

    # -- stats --
    subparsers.add_parser("stats", help="Show store statistics")

    # -- dump --
    dump_parser = subparsers.add_parser("dump", help="Print stored rows without vectors")
    dump_parser.add_argument("--limit", type=int, default=None, help="Maximum rows")

    # -- config --
    subparsers.add_parser("config", help="Print the resolved configuration")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the ingestion tool.

    Parses the subcommand, resolves Settings from ``config/config.yaml``
    plus environment overrides, configures logging and dispatches to the
    handler.  Structural failures (store unreachable, bad configuration)
    exit with status 1.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    if args.command == "config":
        sys.exit(_handle_config(args))

    try:
        app_settings = build_settings(args.config)
    except ValidationError as exc:
        print(f"Error: invalid configuration: {exc}", file=sys.stderr)
        sys.exit(1)

    configure_logging(
        log_level=app_settings.log_level,
        json_output=(app_settings.app_env == "production"),
    )

    try:
        if args.command == "init":
            exit_code = asyncio.run(_handle_init(app_settings))
        elif args.command == "receive":
            exit_code = asyncio.run(_handle_receive(args, app_settings))
        elif args.command == "message":
            exit_code = asyncio.run(_handle_message(args, app_settings))
        elif args.command == "stats":
            exit_code = asyncio.run(_handle_stats(app_settings))
        elif args.command == "dump":
            exit_code = asyncio.run(_handle_dump(args, app_settings))
        else:
            parser.print_help()
            exit_code = 1
    except (StoreUnavailableError, ConfigurationError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
