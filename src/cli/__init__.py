# =============================================================================
# src/cli/__init__.py — CLI Module Overview
# =============================================================================
#
# Command-line tools for signal-vector-db, run via `python -m src.cli.<module>`
# or `python -m src.cli` for the default ingestion tool.
#
#   INGESTION (ingest.py)
#      Runs the message ingestion pipeline (classify -> chunk -> embed ->
#      store) over a recorded event stream or a single message, and
#      inspects the embedding store (stats, dump, config).
#
# Architecture Notes:
#   - argparse only; no extra CLI dependencies.
#   - Heavy imports (providers, stores) are deferred inside handlers so
#     `config` and `--help` start fast.
# =============================================================================

"""CLI tools for the signal-vector-db pipeline.

- ``python -m src.cli.ingest`` — ingest messages and inspect the store.
"""
