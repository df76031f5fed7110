"""
Configuration Module

Architectural Intent:
- Centralized configuration loading from a JSON file
- Provides typed access to every deployment setting
- Falls back to defaults when the config file is absent
- Environment variables override file-based config

Design Decisions:
- Config is a tree of frozen dataclasses: immutable for the whole run
- Values arriving as strings (env vars) are converted by declared field type
- Unconvertible values and malformed files raise ConfigError; a deployment
  never starts from a half-understood configuration
- The variables of the original shell-driven deploy (DEPLOY_HOST, REMOTE_DIR,
  ...) are honoured as lowest-priority aliases
"""

from __future__ import annotations
import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional
import json
import logging
import os

from hoist.domain.errors import ConfigError
from hoist.domain.ports.remote_session_port import Credentials
from hoist.domain.value_objects.retry_policy import RetryPolicy
from hoist.domain.value_objects.target_host import TargetHost

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDE = (
    "node_modules/**",
    ".cache/**",
    ".tmp/**",
    "*.zip",
    ".env",
    ".git/**",
    "build/**",
    "public/uploads/**",
    "data/**",
    "config/env/**",
)

_TRUE_WORDS = ("true", "1", "yes", "on")
_FALSE_WORDS = ("false", "0", "no", "off")

LEGACY_ENV = {
    "DEPLOY_HOST": ("target", "host"),
    "DEPLOY_USER": ("target", "username"),
    "DEPLOY_PASSWORD": ("target", "password"),
    "REMOTE_DIR": ("deploy", "target_dir"),
    "NODE_VERSION": ("runtime", "version"),
}


@dataclass(frozen=True)
class TargetConfig:
    """SSH endpoint and credentials."""
    host: str = ""
    port: int = 22
    username: str = ""
    password: str = field(default="", repr=False)
    key_filename: str = ""
    connect_timeout: int = 30

    def to_host(self) -> TargetHost:
        try:
            return TargetHost(host=self.host, user=self.username, port=self.port)
        except ValueError as e:
            raise ConfigError(f"Invalid target: {e}") from e

    def credentials(self) -> Credentials:
        return Credentials(password=self.password, key_filename=self.key_filename)


@dataclass(frozen=True)
class DeployConfig:
    """What is deployed and where."""
    target_dir: str = ""
    project_dir: str = "."
    manifest_file: str = "package.json"
    install_marker: str = ""
    exclude: tuple[str, ...] = DEFAULT_EXCLUDE
    preserve_paths: tuple[str, ...] = ("public/uploads", "config/env")
    ensure_paths: tuple[str, ...] = ("public/uploads",)
    require_existing_install: bool = True
    min_free_gb: float = 1.0
    fix_permissions: bool = True
    install_command: tuple[str, ...] = ("npm", "install")
    build_command: tuple[str, ...] = ("npm", "run", "build")
    build_env: tuple[str, ...] = ("NODE_ENV=production",)

    def build_environment(self) -> dict[str, str]:
        env = {}
        for item in self.build_env:
            key, sep, value = item.partition("=")
            if not sep or not key:
                raise ConfigError(f"build_env entries must be KEY=VALUE, got {item!r}")
            env[key] = value
        return env


@dataclass(frozen=True)
class RuntimeConfig:
    """Runtime selected through nvm on the host; empty means the login default."""
    version: str = ""


@dataclass(frozen=True)
class SupervisorConfig:
    """pm2 process settings."""
    service_name: str = "app"
    start_command: tuple[str, ...] = ("npm", "run", "start")
    update_startup: bool = True
    verify_runtime: bool = True


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 3
    delay_seconds: float = 5.0
    backoff: float = 1.0
    retry_unsafe: bool = False

    def to_policy(self) -> RetryPolicy:
        try:
            return RetryPolicy(
                max_attempts=self.max_attempts,
                delay=self.delay_seconds,
                backoff=self.backoff,
                retry_unsafe=self.retry_unsafe,
            )
        except ValueError as e:
            raise ConfigError(f"Invalid retry policy: {e}") from e


@dataclass(frozen=True)
class TelemetryConfig:
    """OpenTelemetry configuration."""
    endpoint: str = ""
    insecure: bool = False
    service_name: str = "hoist"


@dataclass(frozen=True)
class DeploymentConfig:
    """Root configuration for one deployment run."""
    target: TargetConfig = field(default_factory=TargetConfig)
    deploy: DeployConfig = field(default_factory=DeployConfig)
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)
    supervisor: SupervisorConfig = field(default_factory=SupervisorConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)
    log_level: str = "WARNING"

    def with_overrides(self, section: str, **values) -> "DeploymentConfig":
        current = getattr(self, section)
        return dataclasses.replace(self, **{section: dataclasses.replace(current, **values)})


_SECTIONS = {
    "target": TargetConfig,
    "deploy": DeployConfig,
    "runtime": RuntimeConfig,
    "supervisor": SupervisorConfig,
    "retry": RetryConfig,
    "telemetry": TelemetryConfig,
}


def _env_override(data: dict, environ: Mapping[str, str], prefix: str = "HOIST") -> dict:
    """Override config values with environment variables.

    Environment variables follow the pattern HOIST_SECTION_KEY.
    For example: HOIST_TARGET_HOST=10.0.0.5, HOIST_DEPLOY_TARGET_DIR=/srv/app
    """
    for key, value in environ.items():
        if not key.startswith(f"{prefix}_"):
            continue
        name = key[len(prefix) + 1:].lower()
        if name == "log_level":
            data[name] = value
            continue
        parts = name.split("_", 1)
        if len(parts) == 2:
            section, field_name = parts
            data.setdefault(section, {})[field_name] = value
        elif len(parts) == 1:
            data[parts[0]] = value
    return data


def _legacy_env(data: dict, environ: Mapping[str, str]) -> dict:
    for env_name, (section, field_name) in LEGACY_ENV.items():
        value = environ.get(env_name)
        if value and field_name not in data.get(section, {}):
            data.setdefault(section, {})[field_name] = value
    return data


def _parse_config_file(path: Path) -> dict:
    """Parse a JSON config file. A missing file yields an empty dict."""
    try:
        with open(path) as f:
            data = json.load(f)
    except FileNotFoundError:
        logger.debug("Config file not found: %s", path)
        return {}
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")
    return data


def _coerce(type_name: str, name: str, value):
    try:
        if type_name == "int":
            return int(value)
        if type_name == "float":
            return float(value)
        if type_name == "bool":
            if isinstance(value, bool):
                return value
            text = str(value).strip().lower()
            if text in _TRUE_WORDS:
                return True
            if text in _FALSE_WORDS:
                return False
            raise ValueError(f"not a boolean: {value!r}")
        if type_name.startswith("tuple"):
            if isinstance(value, str):
                return tuple(v.strip() for v in value.split(",") if v.strip())
            return tuple(str(v) for v in value)
        if type_name == "str":
            return str(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for {name!r}: {value!r}") from e
    return value


def _build_sub_config(cls, data: dict):
    """Build a sub-config dataclass from a dict, ignoring unknown keys."""
    if not isinstance(data, dict):
        raise ConfigError(f"Section {cls.__name__} must be an object")
    fields = {f.name: f for f in dataclasses.fields(cls)}
    values = {}
    for key, value in data.items():
        if key not in fields:
            logger.debug("Ignoring unknown config key %s.%s", cls.__name__, key)
            continue
        values[key] = _coerce(fields[key].type, key, value)
    return cls(**values)


def load_config(
    path: Optional[str] = None,
    env_prefix: str = "HOIST",
    environ: Optional[Mapping[str, str]] = None,
) -> DeploymentConfig:
    """Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (HOIST_SECTION_KEY)
    2. Config file values
    3. Legacy deploy variables (DEPLOY_HOST, REMOTE_DIR, ...)
    4. Defaults

    Args:
        path: Path to config file (JSON). Defaults to hoist.json in CWD.
        env_prefix: Environment variable prefix. Defaults to HOIST.
        environ: Environment mapping; defaults to os.environ.
    """
    environ = os.environ if environ is None else environ
    config_path = Path(path) if path else Path("hoist.json")
    data = _parse_config_file(config_path)
    data = _env_override(data, environ, env_prefix)
    data = _legacy_env(data, environ)

    sections = {
        name: _build_sub_config(cls, data.get(name, {})) for name, cls in _SECTIONS.items()
    }
    return DeploymentConfig(log_level=str(data.get("log_level", "WARNING")), **sections)
