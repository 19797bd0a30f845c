# =============================================================================
# src/cli/__main__.py — Package Entry Point
# =============================================================================
#
# Running the package itself as a module delegates to the ingestion CLI:
#     python -m src.cli stats
# is the same as
#     python -m src.cli.ingest stats
# =============================================================================

"""Allow ``python -m src.cli`` execution."""

from src.cli.ingest import main

main()
