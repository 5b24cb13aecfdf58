"""Configuration loader — merges YAML settings with .env secrets."""

import os
from pathlib import Path

import yaml
from dotenv import load_dotenv


DEFAULT_CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"
DEFAULT_DATA_DIR = Path(__file__).resolve().parent.parent / "data"

DEFAULT_SEARCH = {"query": "", "location": "", "max_pages": 1}


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_dir: str | Path | None = None) -> dict:
    """Load configuration from config.yaml and environment variables.

    Returns a merged config dict with all settings + secrets.
    """
    config_dir = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR

    # .env values win over empty variables already present in the environment
    for env_path in [config_dir / ".env", config_dir.parent / ".env"]:
        if env_path.exists():
            load_dotenv(env_path, override=True)
            break

    config_path = config_dir / "config.yaml"
    if config_path.exists():
        with open(config_path, "r") as f:
            config = yaml.safe_load(f) or {}
    else:
        config = {}

    config["search"] = _deep_merge(DEFAULT_SEARCH, config.get("search") or {})
    config.setdefault("scrapers", {})

    config.setdefault("api_keys", {})
    config["api_keys"]["serpapi"] = os.getenv(
        "SERPAPI_KEY", config["api_keys"].get("serpapi", "")
    )

    config.setdefault("database", {})
    config["database"].setdefault("path", str(DEFAULT_DATA_DIR / "jobaggregator.db"))
    Path(config["database"]["path"]).parent.mkdir(parents=True, exist_ok=True)

    return config


def scraper_overrides(config: dict, name: str, extra: dict | None = None) -> dict:
    """Per-scraper settings from config.yaml, with call-site overrides on top."""
    base = (config.get("scrapers") or {}).get(name) or {}
    return _deep_merge(base, extra or {})
