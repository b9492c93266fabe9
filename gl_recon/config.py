"""
gl-recon configuration: import defaults and header synonym extensions.

Config files are JSON. Keys (all optional):

    company_code       default company for `gl-recon import`
    gl_account         default GL account
    gl_account_name    label stored on the import metadata
    imported_by        user recorded on the import metadata
    account_directory  path to the account directory (relative to the config)
    header_synonyms    {"Posting Date": ["Txn Date", ...], ...}
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from gl_recon.pipeline.shared import HEADER_SYNONYMS
from gl_recon.pipeline.text import normalize_key

DEFAULT_CONFIG_NAME = "gl-recon.json"
CONFIG_ENV_VAR = "GL_RECON_CONFIG"
OUTPUT_STAMP_ENV_VAR = "GL_RECON_OUTPUT_STAMP"
SUPPORTED_CONFIG_SUFFIXES = {".json", ".yml", ".yaml"}

CONFIG_KEYS = (
    "company_code",
    "gl_account",
    "gl_account_name",
    "imported_by",
    "account_directory",
    "header_synonyms",
)


class ConfigError(ValueError):
    pass


def default_config() -> dict[str, Any]:
    return {
        "company_code": "",
        "gl_account": "9020",
        "gl_account_name": "",
        "imported_by": "",
        "account_directory": None,
        "header_synonyms": {},
    }


def merge_synonyms(extra: Mapping[str, Any] | None) -> dict[str, tuple[str, ...]]:
    """Return the built-in synonym table extended with ``extra`` (never mutates the default)."""
    merged = {key: tuple(values) for key, values in HEADER_SYNONYMS.items()}
    for header, variants in (extra or {}).items():
        if isinstance(variants, str):
            variants = [variants]
        key = normalize_key(header)
        current = list(merged.get(key, ()))
        for variant in variants:
            if variant not in current:
                current.append(str(variant))
        merged[key] = tuple(current)
    return merged


def resolve_config_path(explicit: str | Path | None) -> Path | None:
    if explicit:
        return Path(explicit)
    from_env = os.environ.get(CONFIG_ENV_VAR)
    if from_env:
        return Path(from_env)
    local = Path.cwd() / DEFAULT_CONFIG_NAME
    return local if local.exists() else None


def load_config(path: str | Path) -> dict[str, Any]:
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError(f"Config not found: {config_path}")
    suffix = config_path.suffix.lower()
    if suffix not in SUPPORTED_CONFIG_SUFFIXES:
        raise ConfigError("Config must be .json")
    if suffix in {".yml", ".yaml"}:
        raise ConfigError("YAML configs are not supported. Use JSON.")
    try:
        payload = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Could not read config: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError("Config root must be a JSON object.")

    unknown = sorted(set(payload) - set(CONFIG_KEYS))
    if unknown:
        raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")
    synonyms = payload.get("header_synonyms") or {}
    if not isinstance(synonyms, dict):
        raise ConfigError("header_synonyms must be an object of header -> list of spellings.")

    config = default_config()
    config.update(payload)
    directory = config.get("account_directory")
    if directory:
        directory_path = Path(directory)
        if not directory_path.is_absolute():
            directory_path = config_path.parent / directory_path
        config["account_directory"] = str(directory_path)
    return config
