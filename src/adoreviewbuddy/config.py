"""Configuration for adoreviewbuddy.

Settings live in ``.adoreviewbuddy.toml``, found by searching from the working
directory up to the repository root. ``ADOREVIEWBUDDY_CONFIG`` can point at a
file explicitly. Without either, every setting has a working default.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".adoreviewbuddy.toml"
CONFIG_ENV_VAR = "ADOREVIEWBUDDY_CONFIG"


class ApiConfig(BaseModel):
    """Settings for calls to the Azure DevOps REST API."""

    model_config = ConfigDict(extra="ignore")

    api_version: str = Field(default="7.1", min_length=1, description="Value of the api-version query parameter")
    timeout_seconds: float = Field(default=30.0, gt=0, description="Per-request timeout")


class AuthConfig(BaseModel):
    """Settings for bearer token acquisition."""

    model_config = ConfigDict(extra="ignore")

    token_env_vars: list[str] = Field(
        default_factory=lambda: ["AZURE_DEVOPS_TOKEN", "SYSTEM_ACCESSTOKEN"],
        description="Environment variables checked, in order, for a ready-made bearer token",
    )
    use_azure_cli: bool = Field(default=True, description="Fall back to 'az account get-access-token'")
    azure_cli_timeout_seconds: float = Field(default=30.0, gt=0, description="Timeout for the az subprocess")


class Config(BaseModel):
    """Everything configurable in adoreviewbuddy."""

    model_config = ConfigDict(extra="ignore")

    api: ApiConfig = Field(default_factory=ApiConfig, description="REST API settings")
    auth: AuthConfig = Field(default_factory=AuthConfig, description="Token acquisition settings")


def _collect_unknown_keys(data: dict[str, Any], model_cls: type[BaseModel], prefix: str = "") -> list[str]:
    """Dotted paths (``api.retries``) of keys in *data* that *model_cls* doesn't define."""
    fields = model_cls.model_fields
    unknown: list[str] = []
    for key, value in data.items():
        path = f"{prefix}{key}"
        field = fields.get(key)
        if field is None:
            unknown.append(path)
        elif isinstance(value, dict) and isinstance(field.annotation, type) and issubclass(field.annotation, BaseModel):
            unknown += _collect_unknown_keys(value, field.annotation, prefix=f"{path}.")
    return unknown


def _find_config_file(start: Path) -> Path | None:
    """Search *start* and its parents for the config file.

    The search ends at the first directory containing ``.git``.
    """
    start = start.resolve()
    for directory in (start, *start.parents):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        if (directory / ".git").exists():
            break
    return None


def _parse_config_file(config_path: Path) -> Config:
    """Read and validate *config_path*.

    Raises:
        ValueError: If the file is not valid TOML or holds invalid values.
    """
    try:
        data = tomllib.loads(config_path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        msg = f"Invalid TOML in {config_path}: {exc}"
        raise ValueError(msg) from exc

    try:
        config = Config.model_validate(data)
    except ValidationError as exc:
        msg = f"Invalid config in {config_path}: {exc}"
        raise ValueError(msg) from exc

    for key in _collect_unknown_keys(data, Config):
        logger.warning("Ignoring unknown config key '%s' in %s", key, config_path)
    return config


def load_config(cwd: str | Path | None = None) -> tuple[Config, Path | None]:
    """Locate and parse the configuration.

    ``ADOREVIEWBUDDY_CONFIG`` wins when set. Otherwise the file is searched for
    from *cwd* (default: the current directory) up to the repository root.

    Returns:
        The parsed config and the file it came from, or defaults and None.

    Raises:
        ValueError: If the file is invalid, or ``ADOREVIEWBUDDY_CONFIG`` names a missing file.
    """
    override = os.environ.get(CONFIG_ENV_VAR, "").strip()
    if override:
        config_path: Path | None = Path(override).expanduser()
        if not config_path.is_file():
            msg = f"{CONFIG_ENV_VAR} points to {override}, which is not a file"
            raise ValueError(msg)
    else:
        config_path = _find_config_file(Path(cwd) if cwd else Path.cwd())

    if config_path is None:
        logger.debug("No %s found; using defaults", CONFIG_FILENAME)
        return Config(), None

    logger.info("Using config %s", config_path)
    return _parse_config_file(config_path), config_path


# -- Active config ---------------------------------------------------------------
# The MCP server is long-running, so the active config follows edits to its
# file: each get_config() compares the file's mtime with the one last read.


def _mtime(path: Path | None) -> float | None:
    if path is None:
        return None
    try:
        return path.stat().st_mtime
    except OSError:
        return None


class _ActiveConfig:
    __slots__ = ("config", "initialized", "mtime", "path")

    def __init__(self) -> None:
        self.config = Config()
        self.path: Path | None = None
        self.mtime: float | None = None
        self.initialized = False

    def refresh(self) -> None:
        """Re-read the file if its mtime moved; fall back to defaults if it vanished."""
        if self.path is None:
            return
        mtime = _mtime(self.path)
        if mtime == self.mtime:
            return
        if mtime is None:
            logger.warning("%s was removed; using defaults", self.path)
            self.config, self.mtime = Config(), None
            return

        logger.info("%s changed; reloading", self.path)
        self.mtime = mtime
        try:
            self.config = _parse_config_file(self.path)
        except ValueError as exc:
            logger.warning("Keeping previous config, the edited file is invalid: %s", exc)


_active = _ActiveConfig()


def get_config() -> Config:
    """Return the active configuration.

    The first call loads it via :func:`load_config`. Later calls pick up edits
    to the config file. An invalid edit keeps the last good config.
    """
    if not _active.initialized:
        config, path = load_config()
        set_config(config, config_path=path)
    _active.refresh()
    return _active.config


def set_config(config: Config, *, config_path: Path | None = None) -> None:
    """Replace the active configuration.

    With *config_path*, later :func:`get_config` calls reload the file when it
    changes.
    """
    _active.config = config
    _active.path = config_path
    _active.mtime = _mtime(config_path)
    _active.initialized = True


def get_config_path() -> Path | None:
    """File the active config came from, or None when running on defaults."""
    return _active.path
