"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY (Junior Developer Guide) ──────────────────
#
# Configuration is loaded in layers (later layers override earlier):
#
#   1. config/config.yaml  - Tunables checked into the repo (chunk size,
#                            retrieval limits, tool-loop cap, quota back-off)
#   2. .env file           - Local developer overrides (not committed)
#   3. Environment vars    - Set at deploy time
#
# Services never read YAML themselves: main.py pulls the numbers out of
# the merged dict and passes them to constructors, so tests can build a
# service with any values they like.
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path

import yaml

from src.config.settings import Settings

# Used when config.yaml is missing or leaves a section out.
DEFAULT_CONFIG: dict = {
    "chunking": {"size": 1000, "overlap": 200},
    "retrieval": {
        "document_limit": 5,
        "chunk_limit": 8,
        "chunk_min_similarity": 0.3,
        "source_min_similarity": 0.3,
    },
    "ingestion": {
        "min_text_length": 10,
        "analysis_char_limit": 50000,
        "chunk_insert_batch": 50,
    },
    "chat": {
        "history_limit": 10,
        "agent_history_limit": 20,
        "max_tool_iterations": 5,
        "temperature": 0.7,
        "max_tokens": 2000,
    },
    "verification": {
        "quota_max_retries": 5,
        "quota_wait_seconds": 60.0,
        "email_delay_seconds": 0.3,
        "phone_delay_seconds": 0.1,
        "numverify_delay_seconds": 2.0,
    },
}


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Args:
        path: Path to the YAML configuration file.
        settings: Pre-built settings; a fresh ``Settings()`` is read when omitted.

    Returns:
        Fully resolved configuration dictionary.
    """
    config: dict = {}
    _deep_merge(config, _copy(DEFAULT_CONFIG))

    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}
        _deep_merge(config, yaml_config)

    settings = settings or Settings()
    env_overrides = {
        "app": {
            "host": settings.app_host,
            "port": settings.app_port,
            "env": settings.app_env,
        },
        "llm": {
            "preferred": settings.llm_provider,
            "available_providers": settings.get_available_llm_providers(),
        },
        "uploads": {
            "dir": settings.upload_dir,
            "max_bytes": settings.max_upload_bytes,
        },
        "logging": {
            "level": settings.log_level,
        },
    }

    _deep_merge(config, env_overrides)
    return config


def _copy(value: dict) -> dict:
    return {k: _copy(v) if isinstance(v, dict) else v for k, v in value.items()}


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
