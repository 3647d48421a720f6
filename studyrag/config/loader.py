"""YAML configuration loader with environment variable overrides.

Configuration is layered (later layers win):

  1. ``config/config.yaml`` -- static defaults checked into the repo
  2. ``.env`` file          -- local developer overrides
  3. Environment variables  -- deploy-time values

``load_config`` reads the YAML file, then deep-merges the values resolved
by :class:`~studyrag.config.settings.Settings` on top of it.

The merge is per key, so a YAML section keeps the keys the environment
does not set:

    base      = {"quality": {"review_batch_size": 20}}
    overrides = {"quality": {"score_threshold": 5}}
    result    = {"quality": {"review_batch_size": 20, "score_threshold": 5}}
"""

from pathlib import Path

import yaml

from studyrag.config.settings import Settings


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Args:
        path: Path to the YAML configuration file.
        settings: Pre-built settings; a fresh ``Settings()`` is used when omitted.

    Returns:
        Fully resolved configuration dictionary.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            # safe_load only builds plain dicts, lists and scalars.
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    # Settings has already folded .env and the process environment together.
    # Only keys that make sense in the resolved config are copied across;
    # API keys stay on the Settings object.
    settings = settings or Settings()
    env_overrides = {
        "app": {
            "host": settings.app_host,
            "port": settings.app_port,
            "env": settings.app_env,
        },
        "llm": {
            # Providers with credentials, in the order the app prefers them.
            "available_providers": settings.get_available_llm_providers(),
            "ollama_base_url": settings.ollama_base_url,
        },
        "storage": {
            "sqlite_db_path": settings.sqlite_db_path,
        },
        "rag": {
            "match_threshold": settings.match_threshold,
            "match_count": settings.match_count,
            "rrf_k": settings.rrf_k,
            "rerank_enabled": settings.rerank_enabled,
            "embedding_dimension": settings.embedding_dimension,
        },
        "quality": {
            "score_threshold": settings.quality_score_threshold,
            "suggestion_threshold": settings.quality_suggestion_threshold,
            "dedup_threshold": settings.semantic_dedup_threshold,
            "review_batch_size": settings.quality_review_batch_size,
            "outline_local_threshold": settings.outline_local_threshold,
        },
        "ingestion": {
            "save_batch_size": settings.save_batch_size,
            "max_file_size_mb": settings.max_file_size_mb,
        },
        "logging": {
            "level": settings.log_level,
        },
    }

    # Environment wins over YAML for every key listed above.
    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
