from __future__ import annotations

from pathlib import Path

import pytest

from usergate.config import (
    ConfigurationError,
    PolicySettings,
    load_policy_settings,
    load_settings_from_env,
    resolve_config_path,
)


def test_missing_file_uses_defaults(tmp_path: Path) -> None:
    settings = load_policy_settings(tmp_path / "absent.yaml")

    assert settings == PolicySettings()
    assert settings.forbidden_name_substring == "환영"
    assert settings.deletion_embargo_seconds == 60
    assert settings.collection == "users"


def test_yaml_file_overrides_defaults(tmp_path: Path) -> None:
    config = tmp_path / "policy.yaml"
    config.write_text(
        "policy:\n"
        "  forbidden_name_substring: 'welcome'\n"
        "  deletion_embargo_seconds: 120\n"
        "  collection: members\n",
        encoding="utf-8",
    )

    settings = load_policy_settings(config)

    assert settings.forbidden_name_substring == "welcome"
    assert settings.deletion_embargo_seconds == 120
    assert settings.collection == "members"


def test_bundled_config_matches_defaults() -> None:
    settings = load_policy_settings(resolve_config_path(None))

    assert settings == PolicySettings()


@pytest.mark.parametrize(
    "body",
    [
        "policy:\n  deletion_embargo_seconds: 0\n",
        "policy:\n  deletion_embargo_seconds: soon\n",
        "policy:\n  forbidden_name_substring: ''\n",
        "policy:\n  unexpected: true\n",
        "policy:\n  forbidden_name_substring:\n",
        "policy:\n  collection:\n",
        "policy:\n  collection: 5\n",
        "policy:\n  deletion_embargo_seconds: 60.7\n",
        "policy:\n  deletion_embargo_seconds: true\n",
        "policy:\n  deletion_embargo_seconds:\n",
        "policy: [1, 2]\n",
        "- just\n- a list\n",
    ],
)
def test_invalid_configuration_is_rejected(tmp_path: Path, body: str) -> None:
    config = tmp_path / "policy.yaml"
    config.write_text(body, encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_policy_settings(config)


def test_environment_overrides_embargo(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("USERGATE_CONFIG_PATH", str(tmp_path / "absent.yaml"))
    monkeypatch.setenv("USERGATE_DELETION_EMBARGO_SECONDS", "90")

    settings = load_settings_from_env()

    assert settings.deletion_embargo_seconds == 90
    assert settings.collection == "users"


def test_environment_rejects_non_integer_embargo(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("USERGATE_DELETION_EMBARGO_SECONDS", "a minute")

    with pytest.raises(ConfigurationError):
        load_settings_from_env()
