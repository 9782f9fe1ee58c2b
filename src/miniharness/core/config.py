"""Configuration loading (TOML, env vars, .env)."""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import fields
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from miniharness.types.config import DEFAULT_STATE_DIR, RunConfig

logger = logging.getLogger(__name__)

# Load .env from current directory (and parents), won't override existing env vars
load_dotenv()

_ENV_VARS: dict[str, tuple[str, type]] = {
    "MINIHARNESS_BASE_URL": ("base_url", str),
    "MINIHARNESS_MODEL": ("model", str),
    "MINIHARNESS_API_KEY": ("api_key", str),
    "MINIHARNESS_MAX_TOKENS": ("max_tokens", int),
    "MINIHARNESS_HEARTBEAT": ("heartbeat_interval", float),
    "MINIHARNESS_ROOT": ("root", str),
}


def load_env_config() -> dict[str, Any]:
    """Load configuration from environment variables."""
    config: dict[str, Any] = {}
    for var, (key, cast) in _ENV_VARS.items():
        raw = os.environ.get(var)
        if not raw:
            continue
        try:
            config[key] = cast(raw)
        except ValueError:
            logger.warning("Ignoring %s=%r: expected %s", var, raw, cast.__name__)
    return config


def load_toml_config(cwd: str | None = None) -> dict[str, Any]:
    """Load the first ``config.toml`` found in the project or home state dir."""
    candidates = [
        Path(cwd or Path.cwd()) / DEFAULT_STATE_DIR / "config.toml",
        Path.home() / DEFAULT_STATE_DIR / "config.toml",
    ]
    for path in candidates:
        if not path.exists():
            continue
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as exc:
            logger.warning("Could not read %s: %s", path, exc)
            continue
        logger.debug("Loaded config from %s", path)
        return data
    return {}


def resolve_config(cwd: str | None = None, **overrides: Any) -> RunConfig:
    """Merge defaults, TOML, environment and explicit overrides.

    ``None`` overrides are ignored so CLI flags that were not given fall
    through to the lower layers.
    """
    resolved_cwd = str(Path(cwd).resolve()) if cwd else str(Path.cwd())
    known = {f.name for f in fields(RunConfig)}

    merged: dict[str, Any] = {}
    for layer in (load_toml_config(resolved_cwd), load_env_config(), overrides):
        for key, value in layer.items():
            if value is None:
                continue
            if key not in known:
                logger.debug("Ignoring unknown config key %r", key)
                continue
            merged[key] = value

    merged["cwd"] = resolved_cwd
    merged.setdefault("root", str(Path(resolved_cwd) / DEFAULT_STATE_DIR))
    return RunConfig(**merged)
