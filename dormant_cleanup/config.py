"""Configuration loading utilities for the dormant account clean-up job."""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml


DEFAULT_CONFIG_PATH = Path("config/settings.yaml")
ENV_CONFIG_PATH = "DORMANT_CLEANUP_CONFIG"
ENV_PREFIX = "DORMANT_CLEANUP_"

# Flat keys used by the hosting environment's app settings.
ENV_KEYS = {
    "TenantId": ("identity", "tenant_id"),
    "ClientId": ("identity", "client_id"),
    "CertificateThumbprint": ("identity", "certificate_thumbprint"),
    "CertificatePath": ("identity", "certificate_path"),
    "CertificateStorePath": ("identity", "certificate_store"),
    "AdminGroupId": ("groups", "admin_group_id"),
    "ExclusiveDemosGroupId": ("groups", "exclusive_group_id"),
}

MAX_BATCH_SIZE = 20
_SCHEDULE_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class IdentityConfig:
    """App registration used to authenticate against Microsoft Graph."""

    tenant_id: str
    client_id: str
    certificate_thumbprint: str
    certificate_path: Optional[Path] = None
    certificate_store: Optional[Path] = None
    authority_host: str = "https://login.microsoftonline.com"

    @property
    def authority(self) -> str:
        return f"{self.authority_host.rstrip('/')}/{self.tenant_id}"


@dataclass
class GroupsConfig:
    """Groups whose members must never be deleted."""

    admin_group_id: Optional[str] = None
    exclusive_group_id: Optional[str] = None

    @property
    def protected_group_ids(self) -> list[Optional[str]]:
        return [self.admin_group_id, self.exclusive_group_id]


@dataclass
class ThrottleConfig:
    """Pacing applied to paginated reads and batched deletes."""

    page_delay_seconds: float = 3.0
    batch_delay_seconds: float = 3.0
    batch_size: int = MAX_BATCH_SIZE
    member_page_size: int = 999
    inactivity_days: int = 30


@dataclass
class ScheduleConfig:
    """Daily trigger time, ``HH:MM``."""

    at: str = "09:30"
    utc: bool = True


@dataclass
class LoggingConfig:
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class AppConfig:
    """Aggregate configuration for the clean-up job."""

    identity: IdentityConfig
    groups: GroupsConfig = field(default_factory=GroupsConfig)
    throttle: ThrottleConfig = field(default_factory=ThrottleConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


class ConfigurationError(RuntimeError):
    """Raised when the configuration file or environment variables are invalid."""


def _load_from_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigurationError(f"Configuration file '{path}' does not exist.")
    with path.open("r", encoding="utf-8") as file:
        payload = yaml.safe_load(file) or {}
    if not isinstance(payload, dict):
        raise ConfigurationError(f"Configuration file '{path}' must contain a mapping.")
    return payload


def _apply_environment_overrides(
    config_dict: Dict[str, Any], environ: Mapping[str, str]
) -> Dict[str, Any]:
    """Override configuration values with environment variables."""

    overrides: Dict[str, Any] = {}
    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX) or key == ENV_CONFIG_PATH:
            continue
        path = key[len(ENV_PREFIX) :].lower().split("__")
        node = overrides
        for part in path[:-1]:
            node = node.setdefault(part, {})
        node[path[-1]] = value

    for key, (section, option) in ENV_KEYS.items():
        if key in environ:
            overrides.setdefault(section, {})[option] = environ[key]

    if overrides:
        config_dict = _deep_merge(config_dict, overrides)
    return config_dict


def _deep_merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    result = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            result[key] = _deep_merge(base[key], value)
        else:
            result[key] = value
    return result


def _resolve_config_path(path: Optional[Path], environ: Mapping[str, str]) -> Optional[Path]:
    if path is not None:
        return Path(path)
    env_path = environ.get(ENV_CONFIG_PATH)
    if env_path:
        return Path(env_path)
    if DEFAULT_CONFIG_PATH.exists():
        return DEFAULT_CONFIG_PATH
    return None


def _section(config_dict: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = config_dict.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"Configuration section '{key}' must be a mapping.")
    return value


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _to_int(value: Any, key: str) -> int:
    try:
        if isinstance(value, str):
            return int(value.strip())
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"'{key}' must be an integer, got {value!r}.") from exc


def _to_float(value: Any, key: str) -> float:
    try:
        if isinstance(value, str):
            return float(value.strip())
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"'{key}' must be a number, got {value!r}.") from exc


def _optional_path(raw: Any) -> Optional[Path]:
    """Convert a raw config value to ``Path`` if set, otherwise ``None``."""

    if raw is None:
        return None
    if isinstance(raw, Path):
        return raw
    stripped = str(raw).strip()
    return Path(stripped) if stripped else None


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return str(value)


def _build_identity(section: Dict[str, Any]) -> IdentityConfig:
    required = {
        "tenant_id": "TenantId",
        "client_id": "ClientId",
        "certificate_thumbprint": "CertificateThumbprint",
    }
    values = {key: _optional_str(section.get(key)) for key in required}
    missing = [env_name for key, env_name in required.items() if not values[key]]
    if missing:
        raise ConfigurationError(
            "Missing required identity configuration: " + ", ".join(missing) + "."
        )
    return IdentityConfig(
        tenant_id=values["tenant_id"],
        client_id=values["client_id"],
        certificate_thumbprint=values["certificate_thumbprint"],
        certificate_path=_optional_path(section.get("certificate_path")),
        certificate_store=_optional_path(section.get("certificate_store")),
        authority_host=_optional_str(section.get("authority_host"))
        or "https://login.microsoftonline.com",
    )


def _build_throttle(section: Dict[str, Any]) -> ThrottleConfig:
    defaults = ThrottleConfig()
    throttle = ThrottleConfig(
        page_delay_seconds=_to_float(
            section.get("page_delay_seconds", defaults.page_delay_seconds), "page_delay_seconds"
        ),
        batch_delay_seconds=_to_float(
            section.get("batch_delay_seconds", defaults.batch_delay_seconds), "batch_delay_seconds"
        ),
        batch_size=_to_int(section.get("batch_size", defaults.batch_size), "batch_size"),
        member_page_size=_to_int(
            section.get("member_page_size", defaults.member_page_size), "member_page_size"
        ),
        inactivity_days=_to_int(
            section.get("inactivity_days", defaults.inactivity_days), "inactivity_days"
        ),
    )
    if not 1 <= throttle.batch_size <= MAX_BATCH_SIZE:
        raise ConfigurationError(f"'batch_size' must be between 1 and {MAX_BATCH_SIZE}.")
    if throttle.page_delay_seconds < 0 or throttle.batch_delay_seconds < 0:
        raise ConfigurationError("Throttle delays cannot be negative.")
    if throttle.member_page_size < 1:
        raise ConfigurationError("'member_page_size' must be positive.")
    if throttle.inactivity_days < 1:
        raise ConfigurationError("'inactivity_days' must be positive.")
    return throttle


def _build_schedule(section: Dict[str, Any]) -> ScheduleConfig:
    at = str(section.get("at", ScheduleConfig().at)).strip()
    if not _SCHEDULE_PATTERN.match(at):
        raise ConfigurationError(f"Schedule time must be HH:MM, got {at!r}.")
    return ScheduleConfig(at=at, utc=_to_bool(section.get("utc", True)))


def _build_logging(section: Dict[str, Any]) -> LoggingConfig:
    defaults = LoggingConfig()
    level = str(section.get("level", defaults.level)).strip().upper()
    if level not in _LOG_LEVELS:
        raise ConfigurationError(f"Log level must be one of {', '.join(_LOG_LEVELS)}.")
    return LoggingConfig(level=level, format=str(section.get("format") or defaults.format))


def parse_config(config_dict: Dict[str, Any]) -> AppConfig:
    """Validate a raw configuration mapping and build an :class:`AppConfig`."""

    groups_section = _section(config_dict, "groups")
    return AppConfig(
        identity=_build_identity(_section(config_dict, "identity")),
        groups=GroupsConfig(
            admin_group_id=_optional_str(groups_section.get("admin_group_id")),
            exclusive_group_id=_optional_str(groups_section.get("exclusive_group_id")),
        ),
        throttle=_build_throttle(_section(config_dict, "throttle")),
        schedule=_build_schedule(_section(config_dict, "schedule")),
        logging=_build_logging(_section(config_dict, "logging")),
    )


def load_config(
    path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None
) -> AppConfig:
    """Load configuration from an optional YAML file and the environment."""

    env = os.environ if environ is None else environ
    resolved_path = _resolve_config_path(path, env)
    config_dict = _load_from_file(resolved_path) if resolved_path else {}
    return parse_config(_apply_environment_overrides(config_dict, env))


__all__ = [
    "AppConfig",
    "ConfigurationError",
    "GroupsConfig",
    "IdentityConfig",
    "LoggingConfig",
    "ScheduleConfig",
    "ThrottleConfig",
    "load_config",
    "parse_config",
]
