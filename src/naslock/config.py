"""Centralized application configuration."""

import os
import tomllib
from enum import StrEnum
from pathlib import Path
from typing import Any, Self

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, computed_field, field_validator

from naslock.errors import ConfigError

DEFAULT_DATA_DIR = Path.home() / ".local" / "naslock"


class AuthMethod(StrEnum):
    """How naslock authenticates against the TrueNAS API."""

    BASIC = "basic"
    API_KEY = "api_key"


class UnlockMode(StrEnum):
    """Which unlock field the dataset secret is sent as."""

    PASSPHRASE = "passphrase"
    KEY = "key"


def _normalize_choice(value: object) -> object:
    """Lowercase and snake-case an enum spelling, e.g. "API-Key" -> "api_key"."""
    if isinstance(value, str):
        return value.strip().lower().replace("-", "_")
    return value


class KeepassConfig(BaseModel):
    """Location of the KeePass database."""

    model_config = ConfigDict(frozen=True)

    path: Path = Field(description="KeePass database file")
    key_file: Path | None = Field(default=None, description="Optional KeePass key file")


class NasConfig(BaseModel):
    """A TrueNAS host and where its API credentials live."""

    model_config = ConfigDict(frozen=True)

    host: str = Field(description="Host name or URL of the TrueNAS API")
    auth_entry: str = Field(description="Selector of the KeePass entry holding API credentials")
    auth_method: AuthMethod = Field(default=AuthMethod.BASIC, description="basic or api_key")
    username_field: str = Field(default="UserName", description="Entry field holding the username")
    password_field: str = Field(default="Password", description="Entry field holding the password or API key")
    skip_tls_verify: bool = Field(default=False, description="Disable TLS certificate verification")

    @field_validator("auth_method", mode="before")
    @classmethod
    def _auth_method_aliases(cls, value: object) -> object:
        return _normalize_choice(value)


class VolumeConfig(BaseModel):
    """An encrypted dataset and where its unlock secret lives."""

    model_config = ConfigDict(frozen=True)

    nas: str = Field(description="Name of the owning [nas.*] table")
    dataset: str = Field(description="Dataset id, e.g. tank/secure")
    unlock_entry: str = Field(description="Selector of the KeePass entry holding the unlock secret")
    unlock_field: str = Field(default="Password", description="Entry field holding the unlock secret")
    unlock_mode: UnlockMode = Field(default=UnlockMode.PASSPHRASE, description="passphrase or key")
    recursive: bool = Field(default=True)
    force: bool = Field(default=False)
    toggle_attachments: bool = Field(default=True)
    lock_force_umount: bool = Field(
        default=False, validation_alias=AliasChoices("lock_force_umount", "force_umount", "lock_force")
    )

    @field_validator("unlock_mode", mode="before")
    @classmethod
    def _unlock_mode_aliases(cls, value: object) -> object:
        value = _normalize_choice(value)
        return UnlockMode.KEY if value == "key_file" else value


class Config(BaseModel):
    """Application-wide configuration."""

    model_config = ConfigDict(frozen=True)

    keepass: KeepassConfig
    nas: dict[str, NasConfig] = Field(default_factory=dict)
    volumes: dict[str, VolumeConfig] = Field(default_factory=dict, validation_alias=AliasChoices("volume", "volumes"))
    data_dir: Path = Field(default=DEFAULT_DATA_DIR, description="Base directory for application data")

    @computed_field(description="Log file")
    @property
    def log_path(self) -> Path:
        """Log file."""
        return self.data_dir / "naslock.log"

    def get_volume(self, name: str) -> VolumeConfig:
        """Look up a volume by name.

        Raises:
            ConfigError: Unknown volume.

        """
        if name not in self.volumes:
            raise ConfigError(f"Unknown volume '{name}'.")
        return self.volumes[name]

    def get_nas(self, name: str) -> NasConfig:
        """Look up a NAS by name.

        Raises:
            ConfigError: Unknown NAS.

        """
        if name not in self.nas:
            raise ConfigError(f"Unknown NAS '{name}'.")
        return self.nas[name]

    @classmethod
    def load(cls, path: Path) -> Self:
        """Read and validate a TOML config file, anchoring relative paths at its directory.

        Raises:
            ConfigError: File unreadable, invalid TOML, or failed validation.

        """
        try:
            with path.open("rb") as f:
                data: dict[str, Any] = tomllib.load(f)
        except OSError as e:
            raise ConfigError(f"Failed to read config file {path}: {e.strerror or e}") from e
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Failed to parse config file {path}: {e}") from e

        try:
            cfg = cls.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid config file {path}: {e}") from e

        base_dir = path.parent
        keepass = cfg.keepass.model_copy(
            update={
                "path": expand_path(cfg.keepass.path, base_dir),
                "key_file": expand_path(cfg.keepass.key_file, base_dir) if cfg.keepass.key_file else None,
            }
        )
        return cfg.model_copy(update={"keepass": keepass, "data_dir": expand_path(cfg.data_dir)})


def default_config_path() -> Path:
    """Return $XDG_CONFIG_HOME/naslock/config.toml, falling back to ~/.config."""
    xdg = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg) if xdg else Path.home() / ".config"
    return base / "naslock" / "config.toml"


def expand_path(path: Path, base_dir: Path | None = None) -> Path:
    """Expand a leading ~ and anchor relative paths at base_dir when given."""
    expanded = path.expanduser()
    if not expanded.is_absolute() and base_dir is not None:
        return base_dir / expanded
    return expanded
