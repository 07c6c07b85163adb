"""
Configuration loader for distill_commit.

Settings come from two places:

* an optional JSON file named ``config.json`` in the ``~/.distill/``
  directory, holding model and size/timeout tuning;
* environment variables: ``OPENROUTER_API_KEY`` for the credential and
  ``DISTILL_MODEL`` to override the model.

A missing file simply means defaults. A malformed file, or a value of the
wrong type, raises :class:`ConfigurationError`. The API key may be absent
here; the pipeline reports that before any repository or network access.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from distill_commit.errors import ConfigurationError
from distill_commit.llm.commit_message import DEFAULT_MAX_SUMMARY_LENGTH
from distill_commit.llm.openrouter_client import (
    API_KEY_ENV_VAR,
    DEFAULT_MODEL,
    DEFAULT_TIMEOUT,
    OPENROUTER_BASE_URL,
)


logger = logging.getLogger(__name__)
# Attach a null handler to avoid "No handler" warnings or logging errors in
# environments where the root logger may be closed. When the CLI configures
# logging, messages are emitted through its handlers.
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


MODEL_ENV_VAR = "DISTILL_MODEL"
CONFIG_FILE_NAME = "config.json"
DEFAULT_MAX_DIFF_BYTES = 8000


@dataclass(frozen=True)
class Settings:
    """Resolved run configuration."""

    api_key: Optional[str] = field(default=None, repr=False)
    model: str = DEFAULT_MODEL
    base_url: str = OPENROUTER_BASE_URL
    request_timeout: float = DEFAULT_TIMEOUT
    max_tokens: int = 500
    temperature: float = 0.2
    max_diff_bytes: int = DEFAULT_MAX_DIFF_BYTES
    max_summary_length: int = DEFAULT_MAX_SUMMARY_LENGTH

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key and self.api_key.strip())


def _get_config_directory() -> Path:
    """Return the directory holding the user configuration: ``~/.distill/``."""
    return Path.home() / ".distill"


def _read_config_file(config_path: Path) -> Dict[str, Any]:
    if not config_path.exists():
        logger.debug("No configuration file at %s; using defaults", config_path)
        return {}
    try:
        content = config_path.read_text(encoding="utf-8")
        data = json.loads(content)
    except (OSError, json.JSONDecodeError) as exc:
        logger.error("Failed to read or parse configuration file: %s", exc)
        raise ConfigurationError(f"Invalid JSON in {config_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"{config_path} must contain a JSON object")
    return data


def _validate(data: Dict[str, Any]) -> None:
    for key in ("api_key", "model", "base_url"):
        if key in data and not isinstance(data[key], str):
            raise ConfigurationError(f"'{key}' must be a string")
    for key in ("request_timeout", "temperature"):
        value = data.get(key)
        if key in data and (isinstance(value, bool) or not isinstance(value, (int, float))):
            raise ConfigurationError(f"'{key}' must be a number")
    for key in ("max_tokens", "max_diff_bytes", "max_summary_length"):
        value = data.get(key)
        if key in data and (isinstance(value, bool) or not isinstance(value, int)):
            raise ConfigurationError(f"'{key}' must be an integer")
        if key in data and value <= 0:
            raise ConfigurationError(f"'{key}' must be positive")
    if "request_timeout" in data and data["request_timeout"] <= 0:
        raise ConfigurationError("'request_timeout' must be positive")


def load_config(
    config_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load the configuration file and environment into :class:`Settings`.

    Parameters
    ----------
    config_path : Path, optional
        Explicit configuration file. Defaults to ``~/.distill/config.json``.
    environ : Mapping[str, str], optional
        Environment to read. Defaults to :data:`os.environ`.

    Returns
    -------
    Settings
        The resolved settings. ``api_key`` is None when not configured.

    Raises
    ------
    ConfigurationError
        If the configuration file is malformed or holds invalid values.
    """
    env = os.environ if environ is None else environ
    path = config_path or _get_config_directory() / CONFIG_FILE_NAME
    data = _read_config_file(path)
    _validate(data)

    api_key = env.get(API_KEY_ENV_VAR, "").strip() or data.get("api_key") or None
    model = env.get(MODEL_ENV_VAR, "").strip() or data.get("model") or DEFAULT_MODEL

    settings = Settings(
        api_key=api_key,
        model=model,
        base_url=data.get("base_url", OPENROUTER_BASE_URL),
        request_timeout=float(data.get("request_timeout", DEFAULT_TIMEOUT)),
        max_tokens=data.get("max_tokens", 500),
        temperature=float(data.get("temperature", 0.2)),
        max_diff_bytes=data.get("max_diff_bytes", DEFAULT_MAX_DIFF_BYTES),
        max_summary_length=data.get("max_summary_length", DEFAULT_MAX_SUMMARY_LENGTH),
    )
    logger.debug("Loaded configuration: %s", settings)
    return settings
