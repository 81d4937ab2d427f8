"""Runtime settings and configuration-file loading.

``Settings`` holds process-level knobs read from ``DOCKSHIP_*``
environment variables or a ``.env`` file.  The distribution itself is
described by a YAML file which ``load_config`` turns into a frozen
``DistributionConfig``.

Examples
--------
Override via environment::

    export DOCKSHIP_LOG_LEVEL=DEBUG
    export DOCKSHIP_CONFIG_PATH=/etc/dockship/config.yaml
    export DOCKSHIP_ASSUME_YES=true
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from dockship.models.config import DistributionConfig

logger = logging.getLogger(__name__)


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be read or is invalid."""


class Settings(BaseSettings):
    """Process settings with environment variable overrides."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="DOCKSHIP_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "INFO"
    config_path: Path = Path("config.yaml")
    assume_yes: bool = False  # skip the confirmation prompt

    # Progress bar refresh rate for the terminal renderer
    progress_refresh_hz: float = 8.0

    # Local container engine binary used by the artifact store
    docker_bin: str = "docker"


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigError(f"config file not found: {path}") from exc
    except OSError as exc:
        raise ConfigError(f"cannot read config file {path}: {exc}") from exc

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML in {path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a mapping at the top level")
    return data


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        location = ".".join(str(p) for p in err["loc"]) or "<root>"
        parts.append(f"{location}: {err['msg']}")
    return "; ".join(parts)


def parse_config(data: dict[str, Any], *, source: str = "<memory>") -> DistributionConfig:
    """Validate an already-parsed mapping into a ``DistributionConfig``."""
    try:
        return DistributionConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(
            f"invalid configuration in {source}: {_format_validation_error(exc)}"
        ) from exc


def load_config(path: Path | str) -> DistributionConfig:
    """Read, default and validate a YAML configuration file.

    Raises
    ------
    ConfigError
        If the file is missing, is not valid YAML, or fails validation.
    """
    path = Path(path)
    data = _read_yaml(path)
    config = parse_config(data, source=str(path))
    logger.debug(
        "Loaded config %s: %d images, %d hosts, concurrent=%d, retry=%d",
        path,
        len(config.images),
        len(config.target_hosts),
        config.transfer.concurrent,
        config.transfer.retry,
    )
    return config
