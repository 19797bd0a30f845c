"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ──────────────────────────────────────────
#
# Configuration is loaded in layers (later layers override earlier):
#
#   1. Field defaults       — declared on Settings
#   2. config/config.yaml   — static, sectioned defaults checked into the repo
#   3. .env file            — local developer overrides (not committed)
#   4. Environment vars     — set at deploy time
#
# load_config() reads the YAML file first, then deep-merges only the
# values that were actually provided through .env / the environment.
# build_settings() flattens the merged sections back into a Settings
# instance for the CLI and the factories in src/main.py.
#
#   yaml   = {"embedding": {"model": "nomic-embed-text"}}
#   env    = EMBEDDING_MAX_ATTEMPTS=5
#   result = {"embedding": {"model": "nomic-embed-text", "max_attempts": 5}}
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path
from typing import Any

import yaml

from src.config.settings import Settings

# (section, key) in config.yaml -> Settings field name.
_YAML_FIELDS: dict[tuple[str, str], str] = {
    ("embedding", "base_url"): "ollama_base_url",
    ("embedding", "model"): "embedding_model",
    ("embedding", "dimension"): "embedding_dimension",
    ("embedding", "timeout"): "embedding_timeout",
    ("embedding", "max_attempts"): "embedding_max_attempts",
    ("embedding", "retry_backoff"): "embedding_retry_backoff",
    ("embedding", "concurrency"): "embedding_concurrency",
    ("chunking", "target_tokens"): "chunk_target_tokens",
    ("chunking", "encoding"): "token_encoding",
    ("store", "backend"): "store_backend",
    ("store", "sqlite_db_path"): "sqlite_db_path",
    ("store", "chromadb_persist_dir"): "chromadb_persist_dir",
    ("store", "chromadb_collection"): "chromadb_collection",
    ("receiver", "attachments_dir"): "attachments_dir",
    ("receiver", "confirmation_timeout"): "confirmation_timeout",
    ("app", "env"): "app_env",
    ("logging", "level"): "log_level",
}


def load_config(path: str = "config/config.yaml") -> dict:
    """Load YAML config and merge environment-provided Settings on top.

    Args:
        path: Path to the YAML configuration file.  A missing file is
            treated as an empty mapping.

    Returns:
        Fully resolved, sectioned configuration dictionary.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    settings = Settings()
    provided = settings.model_fields_set
    env_overrides: dict[str, Any] = {}
    for (section, key), field_name in _YAML_FIELDS.items():
        if field_name in provided:
            env_overrides.setdefault(section, {})[key] = getattr(settings, field_name)

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def build_settings(path: str = "config/config.yaml") -> Settings:
    """Return a :class:`Settings` built from YAML defaults plus env overrides."""
    resolved = load_config(path)
    values: dict[str, Any] = {}
    for (section, key), field_name in _YAML_FIELDS.items():
        section_values = resolved.get(section)
        if isinstance(section_values, dict) and key in section_values:
            values[field_name] = section_values[key]
    return Settings(**values)


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
