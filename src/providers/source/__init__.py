"""Upstream message source implementations.

The live messaging client is an external collaborator.  JsonlMessageSource
replays a recorded event stream so the pipeline can run without it.
"""

from src.providers.source.jsonl_message_source import JsonlMessageSource

__all__ = ["JsonlMessageSource"]
