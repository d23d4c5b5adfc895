"""Configuration management for Switchboard.

Loads YAML settings (settings.yaml) and environment variables (.env)
into a typed Config object. Property getters provide safe access with
sensible defaults for every subsystem: command prefixes, per-module
sections, execution and initialization timeouts, logging, and the
console transport identity.

Key classes:
    Config: Central configuration manager and module config provider.
    ModuleConfig: Validated per-root configuration section.
    ConsoleIdentity: Identity used by the console transport.

Key functions:
    get_config: Singleton accessor for the global Config instance.
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

import structlog
import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import ConfigurationError, ConfigurationMissingError
from .permissions import PermissionPolicy

logger = structlog.get_logger("switchboard.core")

SETTINGS_FILE = "settings.yaml"


class ModuleConfig(BaseModel):
    """Configuration section for one root command.

    Shared by reference with every node under that root. Fields other
    than ``enabled`` and ``permissions`` are kept as extras for the
    module's own use (``config.model_extra`` or attribute access).
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    enabled: bool = False
    permissions: Optional[PermissionPolicy] = None

    def get(self, key: str, default: Any = None) -> Any:
        """Read a module-specific field."""
        return (self.model_extra or {}).get(key, default)


class ConsoleIdentity(BaseModel):
    """Who the console transport pretends to be."""

    user_id: str = "console"
    role_ids: List[str] = Field(default_factory=list)
    channel_id: Optional[str] = "console"
    category_id: Optional[str] = None
    capabilities: List[str] = Field(default_factory=list)


class ConfigProvider(Protocol):
    """Anything that can hand out module config sections by root name."""

    def get_module_config(self, name: str) -> ModuleConfig:
        ...


class Config:
    """Central configuration manager for Switchboard.

    Loads settings.yaml and .env from the config directory. Module
    sections are validated the first time they are requested and cached,
    so every node under a root shares the same ModuleConfig object.

    Args:
        config_dir: Path to the config directory. Defaults to
            ``$SWITCHBOARD_CONFIG_DIR`` or ``<repo_root>/config/``.
        settings: Pre-parsed settings, used instead of reading the file.
    """

    def __init__(
        self,
        config_dir: Optional[Path] = None,
        settings: Optional[Dict[str, Any]] = None,
    ):
        if config_dir is None:
            env_dir = os.environ.get("SWITCHBOARD_CONFIG_DIR")
            config_dir = Path(env_dir) if env_dir else Path(__file__).parent.parent / "config"
        self.config_dir = config_dir
        self._module_cache: Dict[str, ModuleConfig] = {}

        if settings is not None:
            self.settings = settings
            self.settings_found = True
            return

        env_file = config_dir / ".env"
        if env_file.exists():
            load_dotenv(env_file)

        self.settings_found = (config_dir / SETTINGS_FILE).exists()
        self.settings = self._load_yaml(SETTINGS_FILE)

    def _load_yaml(self, filename: str) -> dict:
        """Load a YAML configuration file."""
        filepath = self.config_dir / filename
        if filepath.exists():
            with open(filepath, "r") as f:
                try:
                    return yaml.safe_load(f) or {}
                except yaml.YAMLError as e:
                    raise ConfigurationError(
                        f"Could not parse {filepath}", setting_name=filename
                    ) from e
        return {}

    def validate(self):
        """Validate critical settings at startup.

        A missing settings file or ``modules`` section is fatal. Other
        problems are logged and the bot starts in degraded mode.

        Raises:
            ConfigurationError: If settings.yaml or its ``modules``
                section is missing, or a timeout is not a number.
        """
        if not self.settings_found:
            raise ConfigurationError(
                f"Unable to locate {SETTINGS_FILE} in {self.config_dir}",
                setting_name=SETTINGS_FILE,
            )
        if not isinstance(self.settings.get("modules"), dict):
            raise ConfigurationError(
                "settings.yaml has no 'modules' section", setting_name="modules"
            )

        if not self.prefixes:
            logger.warning("no_command_prefixes", msg="Bot will ignore all messages")

        for name in self.modules:
            try:
                self.get_module_config(name)
            except ConfigurationError as e:
                logger.error("module_config_invalid", module=name, error=str(e))

        timeouts = {
            "execution": self.execution_timeout,
            "initialization": self.initialization_timeout,
            "dependency": self.dependency_timeout,
        }
        for section, seconds in timeouts.items():
            if seconds is not None and seconds <= 0:
                logger.error(
                    "config_invalid_value",
                    key=f"{section}.timeout_seconds",
                    value=seconds,
                    valid="> 0",
                )

    # --- Module sections ---

    @property
    def modules(self) -> Dict[str, Any]:
        """Raw module sections keyed by lowercased root name."""
        raw = self.settings.get("modules") or {}
        if not isinstance(raw, dict):
            logger.error("modules_invalid_type", type=type(raw).__name__)
            return {}
        return {str(name).lower(): section for name, section in raw.items()}

    def get_module_config(self, name: str) -> ModuleConfig:
        """Return the validated config section for root ``name``.

        Raises:
            ConfigurationMissingError: If no section exists for ``name``.
            ConfigurationError: If the section does not validate.
        """
        key = name.lower()
        if key in self._module_cache:
            return self._module_cache[key]

        modules = self.modules
        if key not in modules:
            raise ConfigurationMissingError(key)

        section = modules[key]
        if section is None:
            section = {}
        try:
            module_config = ModuleConfig.model_validate(section)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid config section for module {key!r}: {e.error_count()} error(s)",
                setting_name=f"modules.{key}",
                errors=e.errors(include_url=False),
            ) from e

        self._module_cache[key] = module_config
        return module_config

    @property
    def module_allowlist(self) -> Optional[List[str]]:
        """Module files the loader may import. None means no restriction."""
        allowlist = self.settings.get("module_allowlist")
        if allowlist is not None and not isinstance(allowlist, list):
            logger.error("module_allowlist_invalid_type", type=type(allowlist).__name__)
            return None
        return allowlist

    @property
    def modules_dir(self) -> Path:
        """Directory the module loader scans."""
        configured = self.settings.get("modules_dir")
        if configured:
            return Path(configured).expanduser()
        return self.config_dir.parent / "modules"

    # --- Front end ---

    @property
    def prefixes(self) -> List[str]:
        """Characters that mark a message as a command (default ``!``)."""
        prefixes = self.settings.get("prefixes", ["!"])
        if isinstance(prefixes, str):
            return [prefixes]
        if not isinstance(prefixes, list):
            logger.error("prefixes_invalid_type", type=type(prefixes).__name__)
            return []
        return [str(p) for p in prefixes if p]

    @property
    def testing_user_id(self) -> Optional[str]:
        """Bot account whose messages are processed anyway (for tests)."""
        testing = self.settings.get("testing", {}) or {}
        user_id = testing.get("user_id")
        return str(user_id) if user_id is not None else None

    @property
    def console_identity(self) -> ConsoleIdentity:
        """Identity block for the console transport."""
        return ConsoleIdentity.model_validate(self.settings.get("console", {}) or {})

    # --- Timeouts ---

    def _seconds(self, section: str, default: Optional[float]) -> Optional[float]:
        """Read ``<section>.timeout_seconds`` as a float.

        Raises:
            ConfigurationError: If the value is not a number.
        """
        values = self.settings.get(section, {}) or {}
        if not isinstance(values, dict):
            raise ConfigurationError(
                f"{section} must be a mapping", setting_name=section
            )
        value = values.get("timeout_seconds", default)
        if value is None:
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ConfigurationError(
                f"{section}.timeout_seconds must be a number, got {value!r}",
                setting_name=f"{section}.timeout_seconds",
            ) from None

    @property
    def execution_timeout(self) -> float:
        """Seconds a command executor may run (default 30)."""
        return self._seconds("execution", 30)

    @property
    def initialization_timeout(self) -> float:
        """Seconds a module initializer may run (default 60)."""
        return self._seconds("initialization", 60)

    @property
    def dependency_timeout(self) -> Optional[float]:
        """Default seconds a dependency resolution may run (no limit)."""
        return self._seconds("dependency", None)

    # --- Logging ---

    @property
    def log_dir(self) -> Path:
        """Get log directory path."""
        configured = self.settings.get("log_dir")
        if configured:
            return Path(configured).expanduser()
        return self.config_dir.parent / "logs"

    @property
    def logging_level(self) -> str:
        """Global log level (default INFO). Env var SWITCHBOARD_LOG_LEVEL wins."""
        log_config = self.settings.get("logging", {}) or {}
        return os.environ.get("SWITCHBOARD_LOG_LEVEL") or log_config.get("level", "INFO")

    @property
    def logging_subsystem_levels(self) -> dict:
        """Per-subsystem log level overrides. E.g. {"permissions": "DEBUG"}."""
        log_config = self.settings.get("logging", {}) or {}
        return log_config.get("subsystem_levels", {})

    @property
    def logging_max_file_size_mb(self) -> int:
        """Max size per log file in MB before rotation (default 10)."""
        log_config = self.settings.get("logging", {}) or {}
        return log_config.get("max_file_size_mb", 10)

    @property
    def logging_backup_count(self) -> int:
        """Number of rotated log files to keep (default 5)."""
        log_config = self.settings.get("logging", {}) or {}
        return log_config.get("backup_count", 5)


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config
