"""Configuration management for the user service."""
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Optional

import yaml

from .policy import DELETION_EMBARGO_SECONDS, FORBIDDEN_NAME_SUBSTRING


class ConfigurationError(ValueError):
    """Raised when the policy configuration is malformed."""


def _env_int(value: Optional[str], default: int) -> int:
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid integer value {value!r} for policy setting") from exc


def _require_text(data: Dict[str, object], key: str, default: str) -> str:
    value = data.get(key, default)
    if not isinstance(value, str):
        raise ConfigurationError(f"{key} must be a string")
    return value


@dataclass(frozen=True)
class PolicySettings:
    """Tunable parameters for the validation and deletion rules."""

    forbidden_name_substring: str = FORBIDDEN_NAME_SUBSTRING
    deletion_embargo_seconds: int = DELETION_EMBARGO_SECONDS
    collection: str = "users"

    def __post_init__(self) -> None:
        if not self.forbidden_name_substring:
            raise ConfigurationError("forbidden_name_substring must not be empty")
        if self.deletion_embargo_seconds <= 0:
            raise ConfigurationError("deletion_embargo_seconds must be a positive integer")
        if not self.collection.strip():
            raise ConfigurationError("collection must not be empty")

    @staticmethod
    def from_dict(data: Dict[str, object]) -> "PolicySettings":
        """Create :class:`PolicySettings` from raw dictionary data."""
        known = {"forbidden_name_substring", "deletion_embargo_seconds", "collection"}
        unknown = set(data.keys()) - known
        if unknown:
            raise ConfigurationError(f"Unknown policy settings: {', '.join(sorted(unknown))}")

        defaults = PolicySettings()
        embargo = data.get("deletion_embargo_seconds", defaults.deletion_embargo_seconds)
        if isinstance(embargo, bool) or not isinstance(embargo, int):
            raise ConfigurationError("deletion_embargo_seconds must be an integer")

        return PolicySettings(
            forbidden_name_substring=_require_text(
                data, "forbidden_name_substring", defaults.forbidden_name_substring
            ),
            deletion_embargo_seconds=embargo,
            collection=_require_text(data, "collection", defaults.collection),
        )


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the policy configuration file."""
    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    return (Path(__file__).resolve().parent.parent / "config" / "policy.yaml").resolve(strict=False)


def load_policy_settings(config_path: Path) -> PolicySettings:
    """Load policy settings from a YAML file, falling back to defaults when absent."""
    if not config_path.exists():
        return PolicySettings()

    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}

    if not isinstance(raw, dict):
        raise ConfigurationError("Policy configuration must be a mapping")

    section = raw.get("policy", {}) or {}
    if not isinstance(section, dict):
        raise ConfigurationError("The 'policy' key must contain a mapping")
    return PolicySettings.from_dict(section)


def load_settings_from_env() -> PolicySettings:
    """Load the YAML policy file and apply environment overrides."""

    settings = load_policy_settings(resolve_config_path(os.getenv("USERGATE_CONFIG_PATH")))
    embargo = _env_int(
        os.getenv("USERGATE_DELETION_EMBARGO_SECONDS"),
        settings.deletion_embargo_seconds,
    )
    if embargo != settings.deletion_embargo_seconds:
        settings = replace(settings, deletion_embargo_seconds=embargo)
    return settings


__all__ = [
    "ConfigurationError",
    "PolicySettings",
    "load_policy_settings",
    "load_settings_from_env",
    "resolve_config_path",
]
