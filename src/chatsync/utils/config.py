"""
Configuration models and loader for chatsync.

This module provides:
- Validated login and room-creation options
- Engine tuning (debounce, polling, typing TTL)
- A loader merging dict/JSON/YAML/TOML sources with environment overrides
"""

import json
import os
import re
import time
from pathlib import Path
from typing import Optional, Dict, Any, List, Union

import toml
import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError as PydanticValidationError,
    field_validator,
    model_validator,
)

from .logging import get_logger, setup_logging
from .errors import ConfigurationError, ValidationError


logger = get_logger("chatsync.config")

DM_TARGET_PATTERN = re.compile(r'^@[^:]+:.+$')
ENV_PREFIX = "CHATSYNC_"


def _first_error(exc: PydanticValidationError, value: Any) -> ValidationError:
    """Translate the first pydantic error into a chatsync ValidationError."""
    error = exc.errors()[0]
    field = ".".join(str(x) for x in error["loc"]) or "options"
    message = error["msg"]
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    return ValidationError(field, value, message)


class LoginConfig(BaseModel):
    """Login parameters: a homeserver plus one of password or access token."""
    base_url: str
    user_id: str
    password: Optional[str] = None
    access_token: Optional[str] = None
    device_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @model_validator(mode='after')
    def check_secret(self) -> 'LoginConfig':
        """Exactly one of password/access_token must be present."""
        if bool(self.password) == bool(self.access_token):
            raise ValueError("exactly one of password or access_token is required")
        return self

    def resolved_device_id(self) -> str:
        """Device id to use, generating one when none was given."""
        return self.device_id or f"chatsync_{int(time.time() * 1000)}"

    @classmethod
    def parse(cls, data: Union['LoginConfig', Dict[str, Any]]) -> 'LoginConfig':
        """Build from a mapping, raising chatsync's ValidationError."""
        if isinstance(data, cls):
            return data
        try:
            return cls(**data)
        except PydanticValidationError as e:
            raise _first_error(e, data) from e


class CreateRoomOptions(BaseModel):
    """Options for creating either a named room or a direct message."""
    name: Optional[str] = None
    is_direct: bool = False
    invite_user_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @field_validator('name', 'invite_user_id')
    @classmethod
    def blank_to_none(cls, v):
        """Treat blank strings as absent."""
        if v is None:
            return None
        v = v.strip()
        return v or None

    @model_validator(mode='after')
    def check_exactly_one(self) -> 'CreateRoomOptions':
        """Require a name or a DM target, never both and never neither."""
        wants_dm = self.is_direct or self.invite_user_id is not None
        if wants_dm:
            if not (self.is_direct and self.invite_user_id):
                raise ValueError("a direct message needs is_direct and invite_user_id together")
            if self.name:
                raise ValueError("give either a name or a direct-message target, not both")
            if not DM_TARGET_PATTERN.match(self.invite_user_id):
                raise ValueError("user id must be in format @user:server")
        elif not self.name:
            raise ValueError("createRoom requires either a name or is_direct with invite_user_id")
        return self

    @property
    def is_dm(self) -> bool:
        return self.invite_user_id is not None

    def to_request(self) -> Dict[str, Any]:
        """Request body handed to the session's create_room."""
        if self.is_dm:
            return {
                "invite": [self.invite_user_id],
                "is_direct": True,
                "preset": "trusted_private_chat",
            }
        return {"name": self.name}

    @classmethod
    def parse(cls, **kwargs) -> 'CreateRoomOptions':
        """Build from keyword options, raising chatsync's ValidationError."""
        try:
            return cls(**kwargs)
        except PydanticValidationError as e:
            raise _first_error(e, kwargs) from e


class SyncConfig(BaseModel):
    """Engine timing and sync parameters."""
    decryption_debounce_ms: int = Field(default=100, ge=0)
    room_wait_timeout_ms: int = Field(default=5000, gt=0)
    room_wait_interval_ms: int = Field(default=100, gt=0)
    typing_ttl_ms: int = Field(default=3000, gt=0)
    typing_idle_ms: int = Field(default=2500, gt=0)
    initial_sync_limit: int = Field(default=50, gt=0)


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    format: str = "console"
    directory: Optional[Path] = None

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()

    @field_validator('format')
    @classmethod
    def validate_format(cls, v):
        """Validate console/json format."""
        if v.lower() not in ("console", "json"):
            raise ValueError(f"Invalid log format: {v}")
        return v.lower()


class ChatSyncConfig(BaseModel):
    """Root configuration."""
    debug: bool = False
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(validate_assignment=True)


class ConfigSource(BaseModel):
    """Configuration source definition."""
    path: Optional[Path] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    priority: int = 0
    source_type: str = "dict"


class ConfigLoader:
    """Configuration loader with multiple source support."""

    def __init__(self, env_prefix: str = ENV_PREFIX):
        self.env_prefix = env_prefix
        self._sources: List[ConfigSource] = []
        self._config: Optional[ChatSyncConfig] = None

    def add_source(
        self,
        source: Union[str, Path, Dict[str, Any]],
        priority: int = 0,
        source_type: Optional[str] = None
    ) -> None:
        """
        Add configuration source.

        Args:
            source: Configuration source (file path or dict)
            priority: Source priority (higher wins)
            source_type: Source type (auto-detected if None)
        """
        if isinstance(source, (str, Path)):
            path = Path(source)
            self._sources.append(ConfigSource(
                path=path,
                priority=priority,
                source_type=source_type or self._detect_source_type(path)
            ))
        else:
            self._sources.append(ConfigSource(
                data=source,
                priority=priority,
                source_type="dict"
            ))

        self._sources.sort(key=lambda s: s.priority)

    def _detect_source_type(self, path: Path) -> str:
        suffix = path.suffix.lower()
        if suffix == ".json":
            return "json"
        elif suffix in (".yaml", ".yml"):
            return "yaml"
        elif suffix == ".toml":
            return "toml"
        raise ConfigurationError(f"Unknown config file type: {suffix}")

    def load(self) -> ChatSyncConfig:
        """Merge every source (lowest priority first), then the environment."""
        merged: Dict[str, Any] = {}

        for source in self._sources:
            merged = self._deep_merge(merged, self._load_source(source))

        merged = self._deep_merge(merged, self._load_env_vars())

        try:
            self._config = ChatSyncConfig(**merged)
        except PydanticValidationError as e:
            errors = []
            for error in e.errors():
                field = ".".join(str(x) for x in error["loc"])
                errors.append(f"{field}: {error['msg']}")
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}"
            ) from e

        logger.info("configuration_loaded", sources=len(self._sources))
        return self._config

    def _load_source(self, source: ConfigSource) -> Dict[str, Any]:
        if source.path is None:
            return source.data

        if not source.path.exists():
            logger.warning("config_file_not_found", path=str(source.path))
            return {}

        content = source.path.read_text(encoding="utf-8")
        try:
            if source.source_type == "json":
                return json.loads(content) or {}
            elif source.source_type == "yaml":
                return yaml.safe_load(content) or {}
            elif source.source_type == "toml":
                return toml.loads(content)
        except (ValueError, yaml.YAMLError, toml.TomlDecodeError) as e:
            raise ConfigurationError(f"Could not parse {source.path}: {e}") from e
        raise ConfigurationError(f"Unknown source type: {source.source_type}")

    def _load_env_vars(self) -> Dict[str, Any]:
        """Map CHATSYNC_<SECTION>_<KEY> variables onto nested config."""
        result: Dict[str, Any] = {}

        for key, value in os.environ.items():
            if not key.startswith(self.env_prefix):
                continue
            name = key[len(self.env_prefix):].lower()
            if not name:
                continue
            section, sep, field = name.partition("_")
            if sep and section in ChatSyncConfig.model_fields:
                result.setdefault(section, {})[field] = self._convert_value(value)
            else:
                result[name] = self._convert_value(value)

        return result

    def _convert_value(self, value: str) -> Any:
        if value.lower() in ("true", "yes", "on"):
            return True
        elif value.lower() in ("false", "no", "off"):
            return False

        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            pass

        return value

    def _deep_merge(self, base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
        result = base.copy()

        for key, value in update.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def get_config(self) -> ChatSyncConfig:
        """Get current configuration."""
        if self._config is None:
            raise ConfigurationError("Configuration not loaded")
        return self._config


def load_config(
    config_paths: Optional[List[Union[str, Path]]] = None,
    extra_config: Optional[Dict[str, Any]] = None
) -> ChatSyncConfig:
    """
    Load configuration from standard locations.

    Args:
        config_paths: Additional configuration paths
        extra_config: Extra configuration to merge (highest file priority)

    Returns:
        Loaded configuration
    """
    loader = ConfigLoader()

    default_paths = [
        Path.home() / ".chatsync" / "config.yaml",
        Path.home() / ".chatsync" / "config.json",
        Path("./chatsync.yaml"),
        Path("./chatsync.toml"),
    ]
    for path in default_paths:
        if path.exists():
            loader.add_source(path, priority=10)

    for i, path in enumerate(config_paths or []):
        loader.add_source(path, priority=20 + i)

    if extra_config:
        loader.add_source(extra_config, priority=100)

    return loader.load()


def configure_logging(config: ChatSyncConfig, app_name: str = "chatsync") -> Dict[str, Any]:
    """
    Apply the ``logging`` section (and ``debug``) through setup_logging.

    ``debug`` forces DEBUG regardless of the configured level.
    """
    log_config = config.logging
    return setup_logging(
        app_name=app_name,
        log_level="DEBUG" if config.debug else log_config.level,
        log_dir=log_config.directory,
        enable_json=log_config.format == "json",
    )


__all__ = [
    'LoginConfig',
    'CreateRoomOptions',
    'SyncConfig',
    'LoggingConfig',
    'ChatSyncConfig',
    'ConfigLoader',
    'load_config',
    'configure_logging',
]
