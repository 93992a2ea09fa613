import os
from pathlib import Path
from typing import Optional

import yaml

from codefeed_core.errors import ConfigurationError

DEFAULT_CONFIG: dict = {
    "model": "anthropic",  # provider family used for every call
    "fallback_model": "openai",  # family retried once on context-length errors; None disables
    "model_name": None,  # None = the family's default model
    "fallback_model_name": None,
    "remote": "origin",
    "data_dir": ".codefeed",  # heuristics.json and analyses/ live here, relative to the repo root
    "exclude": [],  # extra substrings marking changed paths as noise (e.g. "dist/", ".min.js")
    "first_run": "fallback",  # "fallback" = analyze using the fallback chain; "baseline" = skip until first pull
    "fallback_window": 5,
    "max_attempts": 3,
    "retry_backoff": 1.0,
    "context_budgets": {},  # per-family overrides, e.g. {"openai": 16000}
    "store": "json",  # "json" | "sqlite"
    "store_path": None,  # None = <data_dir>/analyses (json) or <data_dir>/codefeed.db (sqlite)
}

PROVIDER_FAMILIES = ("anthropic", "openai")
_FIRST_RUN_POLICIES = ("fallback", "baseline")
_STORES = ("json", "sqlite")


def load_config(config_path: str = ".codefeed.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .codefeed.yml in the current directory
      3. CLI argument overrides
    """
    config = {
        **DEFAULT_CONFIG,
        "exclude": list(DEFAULT_CONFIG["exclude"]),
        "context_budgets": dict(DEFAULT_CONFIG["context_budgets"]),
    }

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        if not isinstance(file_config, dict):
            raise ConfigurationError(f"{config_path} must contain a YAML mapping.")
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    # Resolve credentials from environment variables
    config["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")
    config["openai_api_key"] = os.environ.get("OPENAI_API_KEY")

    validate_config(config)
    return config


def validate_config(config: dict) -> None:
    if config.get("model") not in PROVIDER_FAMILIES:
        raise ConfigurationError(
            f"Unknown model provider: {config.get('model')!r}. Choose one of: {', '.join(PROVIDER_FAMILIES)}."
        )
    fallback = config.get("fallback_model")
    if fallback is not None and fallback not in PROVIDER_FAMILIES:
        raise ConfigurationError(f"Unknown fallback model provider: {fallback!r}.")
    if config.get("first_run") not in _FIRST_RUN_POLICIES:
        raise ConfigurationError(f"first_run must be one of: {', '.join(_FIRST_RUN_POLICIES)}.")
    if config.get("store") not in _STORES:
        raise ConfigurationError(f"store must be one of: {', '.join(_STORES)}.")
    if not isinstance(config.get("exclude"), list):
        raise ConfigurationError("exclude must be a list of patterns.")
    if not isinstance(config.get("context_budgets"), dict):
        raise ConfigurationError("context_budgets must map provider families to token budgets.")
    for family, budget in config["context_budgets"].items():
        if not _is_int(budget) or budget < 1:
            raise ConfigurationError(f"context_budgets.{family} must be a positive integer, got {budget!r}.")
    max_attempts = config.get("max_attempts")
    if not _is_int(max_attempts) or max_attempts < 1:
        raise ConfigurationError(f"max_attempts must be an integer of at least 1, got {max_attempts!r}.")
    window = config.get("fallback_window")
    if window is not None and (not _is_int(window) or window < 1):
        raise ConfigurationError(f"fallback_window must be a positive integer, got {window!r}.")
    backoff = config.get("retry_backoff")
    if backoff is not None and (isinstance(backoff, bool) or not isinstance(backoff, (int, float)) or backoff < 0):
        raise ConfigurationError(f"retry_backoff must be a non-negative number, got {backoff!r}.")


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def data_dir(config: dict, repo_root: str | Path = ".") -> Path:
    """Absolute location of codefeed's per-repository state."""
    path = Path(config.get("data_dir") or DEFAULT_CONFIG["data_dir"])
    return path if path.is_absolute() else Path(repo_root) / path
