"""Key authentication config stored as a YAML file.

The file is read at startup and on /keyreload. Rotated secrets are written
back so a restart resumes with the secret that was last published.
"""

from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from gate.keyauth.exceptions import ConfigReloadError

logger = structlog.get_logger()

DEFAULT_KEY = "default123"

PERMISSION_RELOAD = "keyauth.reload"
PERMISSION_STATS = "keyauth.stats"
PERMISSION_STATS_CLEAR = "keyauth.stats.clear"


class AutoUpdateConfig(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    enabled: bool = True
    web_path: str = Field(default="web/key.txt", alias="web-path", min_length=1)
    update_hour: int = Field(default=12, alias="update-hour", ge=0, le=23)


class KeyAuthConfig(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    key: str = Field(default=DEFAULT_KEY, min_length=1)
    kick_delay_seconds: int = Field(default=60, alias="kick-delay-seconds", ge=1)
    auto_update: AutoUpdateConfig = Field(default_factory=AutoUpdateConfig, alias="auto-update")

    def to_yaml_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class ConfigStore:
    """Load and persist ``KeyAuthConfig`` at a fixed path."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> KeyAuthConfig:
        """Read and validate the config, writing defaults first if the file is missing.

        Raises ConfigReloadError for unreadable files, malformed YAML,
        invalid values, or defaults that cannot be written.
        """
        if not self._path.exists():
            config = KeyAuthConfig()
            try:
                self._write(config.to_yaml_dict())
            except OSError as e:
                raise ConfigReloadError(f"cannot write defaults to {self._path}: {e}") from e
            logger.info("wrote default keyauth config", path=str(self._path))
            return config

        try:
            with self._path.open(encoding="utf-8") as f:
                raw = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigReloadError(f"cannot read {self._path}: {e}") from e

        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ConfigReloadError(f"{self._path} must contain a mapping, got {type(raw).__name__}")

        try:
            return KeyAuthConfig.model_validate(raw)
        except ValidationError as e:
            raise ConfigReloadError(f"invalid config in {self._path}: {e}") from e

    def save_key(self, key: str) -> None:
        """Replace the ``key`` entry, keeping the rest of the file as written."""
        try:
            with self._path.open(encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
        except FileNotFoundError:
            raw = {}
        except yaml.YAMLError:
            logger.warning("config unreadable, rewriting with defaults", path=str(self._path))
            raw = KeyAuthConfig().to_yaml_dict()
        if not isinstance(raw, dict):
            raw = {}
        raw["key"] = key
        self._write(raw)

    def _write(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, sort_keys=False, allow_unicode=True)
