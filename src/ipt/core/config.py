"""Configuration management using Pydantic.

Provides:
- Typed configuration models with validation
- YAML file loading with defaults
- Environment variable overrides
- Configuration initialization and display
"""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ipt.core.exceptions import ConfigurationError


# Default configuration paths
DEFAULT_CONFIG_PATH = Path("/etc/ipt/config.yaml")

# Shared lock file used by every cooperating invocation on the host when
# iptables has no --wait option. Not the same file iptables itself locks.
DEFAULT_LOCK_FILE = Path("/var/run/xtables_old.lock")


class UtilityConfig(BaseModel):
    """Control utility binaries and flags."""

    iptables_binary: str = "iptables"
    ip6tables_binary: str = "ip6tables"
    wait_flag: str = "--wait"

    @field_validator("iptables_binary", "ip6tables_binary")
    @classmethod
    def validate_binary(cls, v: str) -> str:
        if not v or any(c.isspace() for c in v):
            raise ValueError("binary must be a non-empty name or path without whitespace")
        return v

    @field_validator("wait_flag")
    @classmethod
    def validate_wait_flag(cls, v: str) -> str:
        if not v.startswith("-"):
            raise ValueError("wait_flag must be an option, e.g. --wait")
        return v


class LockConfig(BaseModel):
    """Advisory lock used when the utility cannot serialize itself."""

    path: Path = DEFAULT_LOCK_FILE
    timeout: Optional[float] = 10.0  # seconds, None waits forever
    initial_delay: float = 0.005
    max_delay: float = 0.25

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v < 0:
            raise ValueError("timeout must be >= 0")
        return v

    @field_validator("initial_delay", "max_delay")
    @classmethod
    def validate_delay(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("retry delays must be > 0")
        return v


class MachineConfig(BaseModel):
    """Root configuration model, loaded from /etc/ipt/config.yaml."""

    utility: UtilityConfig = Field(default_factory=UtilityConfig)
    lock: LockConfig = Field(default_factory=LockConfig)

    @classmethod
    def load(cls, path: Path) -> "MachineConfig":
        """Load configuration from YAML file.

        Args:
            path: Path to configuration file

        Returns:
            Loaded configuration

        Raises:
            ConfigurationError: If file not found or invalid
        """
        if not path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {path}",
                hint="Create it with: ipt config init",
            )

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in configuration file: {path}",
                details=[str(e)],
            ) from e
        except PermissionError:
            raise ConfigurationError(
                f"Cannot read configuration file: {path}",
                hint="Check file permissions or run with sudo",
            )

        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Invalid configuration: {path} must contain a mapping",
            )

        try:
            return cls(**data)
        except Exception as e:
            raise ConfigurationError(
                f"Invalid configuration: {e}",
                details=[str(e)],
            ) from e

    @classmethod
    def load_or_default(cls, path: Optional[Path] = None) -> "MachineConfig":
        """Load configuration, falling back to defaults if file doesn't exist."""
        if path is None:
            path = DEFAULT_CONFIG_PATH

        if path.exists():
            return cls.load(path)
        return cls()

    def to_yaml(self) -> str:
        """Convert configuration to YAML string."""
        data = self.model_dump(mode="json")
        return yaml.dump(data, default_flow_style=False, sort_keys=False)


class EnvOverrides(BaseSettings):
    """Overrides read from the environment.

    Environment wins over the config file.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    ipt_lock_file: Optional[Path] = Field(None, alias="IPT_LOCK_FILE")
    ipt_lock_timeout: Optional[float] = Field(None, alias="IPT_LOCK_TIMEOUT")
    ipt_iptables_binary: Optional[str] = Field(None, alias="IPT_IPTABLES_BINARY")
    ipt_ip6tables_binary: Optional[str] = Field(None, alias="IPT_IP6TABLES_BINARY")


class AppConfig:
    """Application configuration combining config file and environment.

    This is the main interface for accessing configuration throughout the app.
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        config: Optional[MachineConfig] = None,
        env: Optional[EnvOverrides] = None,
    ) -> None:
        self.config_path = config_path or DEFAULT_CONFIG_PATH
        self._config = config or MachineConfig.load_or_default(self.config_path)
        self._env = env if env is not None else EnvOverrides()

    @property
    def config(self) -> MachineConfig:
        """Get the machine configuration."""
        return self._config

    @property
    def env(self) -> EnvOverrides:
        """Get the environment overrides."""
        return self._env

    @property
    def lock_path(self) -> Path:
        return self._env.ipt_lock_file or self._config.lock.path

    @property
    def lock_timeout(self) -> Optional[float]:
        if self._env.ipt_lock_timeout is not None:
            return self._env.ipt_lock_timeout
        return self._config.lock.timeout

    @property
    def lock_initial_delay(self) -> float:
        return self._config.lock.initial_delay

    @property
    def lock_max_delay(self) -> float:
        return self._config.lock.max_delay

    @property
    def wait_flag(self) -> str:
        return self._config.utility.wait_flag

    def binary(self, ipv6: bool = False) -> str:
        """Get the utility binary for the address family."""
        if ipv6:
            return self._env.ipt_ip6tables_binary or self._config.utility.ip6tables_binary
        return self._env.ipt_iptables_binary or self._config.utility.iptables_binary


def get_example_config() -> str:
    """Generate example configuration file content."""
    return """# ipt configuration
# Environment overrides: IPT_LOCK_FILE, IPT_LOCK_TIMEOUT,
#   IPT_IPTABLES_BINARY, IPT_IP6TABLES_BINARY

utility:
  iptables_binary: iptables
  ip6tables_binary: ip6tables
  wait_flag: --wait  # appended when iptables > 1.4.19

# Lock used when iptables has no --wait option. Every program that
# mutates rules on this host must lock the same file.
lock:
  path: /var/run/xtables_old.lock
  timeout: 10.0  # seconds; null waits forever
  initial_delay: 0.005
  max_delay: 0.25
"""


def init_config(path: Path, force: bool = False) -> None:
    """Initialize a new configuration file.

    Args:
        path: Path to create config file
        force: Overwrite if exists

    Raises:
        ConfigurationError: If file exists and force is False
    """
    if path.exists() and not force:
        raise ConfigurationError(
            f"Configuration file already exists: {path}",
            hint="Use --force to overwrite",
        )

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(get_example_config())
    os.chmod(path, 0o600)
