"""Tests for sitelink_sync.config -- overrides and validation."""

from datetime import timedelta

import pytest

from sitelink_sync.config import (
    apply_env_overrides,
    get_bool_env,
    load_config,
    password_env_var,
    validate_config,
)
from sitelink_sync.config_schema import build_config


def _raw(**sections):
    """Minimal valid raw config, with *sections* replacing defaults."""
    raw = {
        "sites": {
            "wikidatawiki": {
                "api_endpoint": "https://www.wikidata.org/w/api.php",
                "username": "Bot@sync",
                "password": "pw",
            },
            "enwiki": {"api_endpoint": "https://en.example.org/w/api.php"},
        },
        "synchronizer": {"client_sites": ["enwiki"]},
    }
    raw.update(sections)
    return raw


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "SITELINK_SYNC_WHAT_IF",
        "SITELINK_SYNC_STATE_DIR",
        "SITELINK_SYNC_WEBHOOK_URL",
        "SITELINK_SYNC_PASSWORD_WIKIDATAWIKI",
        "SITELINK_SYNC_PASSWORD_ENWIKI",
    ):
        monkeypatch.delenv(name, raising=False)


class TestHelpers:
    def test_get_bool_env(self, monkeypatch):
        monkeypatch.setenv("X_FLAG", "yes")
        assert get_bool_env("X_FLAG") is True
        monkeypatch.setenv("X_FLAG", "0")
        assert get_bool_env("X_FLAG") is False
        monkeypatch.setenv("X_FLAG", "")
        assert get_bool_env("X_FLAG") is None

    def test_password_env_var(self):
        assert password_env_var("wikidatawiki") == "SITELINK_SYNC_PASSWORD_WIKIDATAWIKI"
        assert password_env_var("zh-min-nanwiki") == "SITELINK_SYNC_PASSWORD_ZH_MIN_NANWIKI"


class TestValidateConfig:
    """Tests for validate_config()."""

    def test_valid(self):
        validate_config(build_config(_raw()))

    def test_endpoint_scheme(self):
        raw = _raw()
        raw["sites"]["enwiki"]["api_endpoint"] = "ftp://en.example.org/api.php"
        with pytest.raises(ValueError, match="must start with http"):
            validate_config(build_config(raw))

    def test_endpoint_host(self):
        raw = _raw()
        raw["sites"]["enwiki"]["api_endpoint"] = "https:///w/api.php"
        with pytest.raises(ValueError, match="hostname"):
            validate_config(build_config(raw))

    def test_username_without_password(self):
        raw = _raw()
        del raw["sites"]["wikidatawiki"]["password"]
        with pytest.raises(ValueError, match="SITELINK_SYNC_PASSWORD_WIKIDATAWIKI"):
            validate_config(build_config(raw))

    def test_unregistered_repository(self):
        raw = _raw(synchronizer={"repository_site": "testwikidatawiki"})
        with pytest.raises(ValueError, match="Repository site"):
            validate_config(build_config(raw))

    def test_unregistered_client(self):
        raw = _raw(synchronizer={"client_sites": ["dewiki"]})
        with pytest.raises(ValueError, match="Client site 'dewiki'"):
            validate_config(build_config(raw))

    def test_bad_site_name(self):
        raw = _raw()
        raw["sites"]["../x"] = {"api_endpoint": "https://x.example.org/w/api.php"}
        with pytest.raises(ValueError, match="Site name"):
            validate_config(build_config(raw))

    def test_empty_namespaces(self):
        raw = _raw(synchronizer={"namespaces": []})
        with pytest.raises(ValueError, match="Namespaces"):
            validate_config(build_config(raw))

    def test_non_positive_duration(self):
        raw = _raw(synchronizer={"max_check_duration": 0})
        with pytest.raises(ValueError, match="max_check_duration must be positive"):
            validate_config(build_config(raw))

    def test_zero_safety_margin_allowed(self):
        validate_config(build_config(_raw(synchronizer={"safety_margin": 0})))

    def test_negative_safety_margin(self):
        raw = _raw(synchronizer={"safety_margin": -5})
        with pytest.raises(ValueError, match="safety_margin cannot be negative"):
            validate_config(build_config(raw))


class TestEnvOverrides:
    """Tests for apply_env_overrides()."""

    def test_password_from_env(self, monkeypatch):
        monkeypatch.setenv("SITELINK_SYNC_PASSWORD_WIKIDATAWIKI", "from-env")
        config = apply_env_overrides(build_config(_raw()))
        assert config.sites["wikidatawiki"].password == "from-env"
        assert config.sites["enwiki"].password is None

    def test_what_if_state_dir_webhook(self, monkeypatch):
        monkeypatch.setenv("SITELINK_SYNC_WHAT_IF", "true")
        monkeypatch.setenv("SITELINK_SYNC_STATE_DIR", "/tmp/marks")
        monkeypatch.setenv("SITELINK_SYNC_WEBHOOK_URL", "https://hook")

        config = apply_env_overrides(build_config(_raw()))

        assert config.synchronizer.what_if
        assert config.state_store.state_dir == "/tmp/marks"
        assert config.notifications.webhook_url == "https://hook"

    def test_env_can_turn_what_if_off(self, monkeypatch):
        monkeypatch.setenv("SITELINK_SYNC_WHAT_IF", "false")
        raw = _raw(synchronizer={"client_sites": ["enwiki"], "what_if": True})
        config = apply_env_overrides(build_config(raw))
        assert not config.synchronizer.what_if


class TestLoadConfig:
    """Tests for load_config()."""

    def test_no_sites(self):
        with pytest.raises(ValueError, match="No sites configured"):
            load_config(raw_data={})

    def test_what_if_flag_wins(self, monkeypatch):
        monkeypatch.setenv("SITELINK_SYNC_WHAT_IF", "false")
        config = load_config(what_if=True, raw_data=_raw())
        assert config.synchronizer.what_if

    def test_durations_parsed(self):
        raw = _raw(
            synchronizer={"client_sites": ["enwiki"], "max_check_duration": "7d"}
        )
        config = load_config(raw_data=raw)
        assert config.synchronizer.max_check_duration == timedelta(days=7)

    def test_password_env_satisfies_validation(self, monkeypatch):
        raw = _raw()
        del raw["sites"]["wikidatawiki"]["password"]
        monkeypatch.setenv("SITELINK_SYNC_PASSWORD_WIKIDATAWIKI", "pw")
        config = load_config(raw_data=raw)
        assert config.sites["wikidatawiki"].password == "pw"

    def test_reads_discovered_file(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yml"
        path.write_text(
            "sites:\n"
            "  wikidatawiki:\n"
            "    api_endpoint: https://www.wikidata.org/w/api.php\n"
        )
        monkeypatch.setenv("SITELINK_SYNC_CONFIG", str(path))
        monkeypatch.setenv("HOME", str(tmp_path))
        monkeypatch.chdir(tmp_path)

        config = load_config()

        assert list(config.sites) == ["wikidatawiki"]
