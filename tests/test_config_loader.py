"""Tests for sitelink_sync.config_loader -- config discovery and YAML loading."""

import textwrap

import pytest

from sitelink_sync.config_loader import (
    CONFIG_ENV_VAR,
    _interpolate_tree,
    discover_config_files,
    ensure_config,
    interpolate_env_vars,
    load_hierarchical_config,
    load_yaml_file,
    resolve_config_path,
)


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """Run in an empty project dir with an empty home and no env config."""
    home = tmp_path / "home"
    home.mkdir()
    project = tmp_path / "project"
    project.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    monkeypatch.chdir(project)
    return project


def _write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(text))
    return path


# -------------------------------------------------------------------------
# Env var interpolation
# -------------------------------------------------------------------------


class TestInterpolateEnvVars:
    """Tests for ${VAR} and ${VAR:-default} substitution."""

    def test_replaces_set_var(self, monkeypatch):
        monkeypatch.setenv("BOT_PASSWORD", "s3cret")
        assert interpolate_env_vars("${BOT_PASSWORD}") == "s3cret"

    def test_unset_var_replaced_with_empty(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("${UNSET_VAR_XYZ}") == ""

    def test_default_used_when_unset(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("${UNSET_VAR_XYZ:-enwiki}") == "enwiki"

    def test_default_used_when_empty(self, monkeypatch):
        monkeypatch.setenv("EMPTY_VAR_XYZ", "")
        assert interpolate_env_vars("${EMPTY_VAR_XYZ:-x}") == "x"

    def test_embedded_in_url(self, monkeypatch):
        monkeypatch.setenv("WIKI_HOST", "en.example.org")
        assert (
            interpolate_env_vars("https://${WIKI_HOST}/w/api.php")
            == "https://en.example.org/w/api.php"
        )

    def test_tree_interpolation_leaves_non_strings(self, monkeypatch):
        monkeypatch.setenv("SITE", "dewiki")
        data = {"client_sites": ["${SITE}"], "batch_size": 50, "what_if": True}
        assert _interpolate_tree(data) == {
            "client_sites": ["dewiki"],
            "batch_size": 50,
            "what_if": True,
        }


# -------------------------------------------------------------------------
# !include
# -------------------------------------------------------------------------


class TestInclude:
    """Tests for the !include tag."""

    def test_include_relative_file(self, tmp_path):
        _write(
            tmp_path / "sites.yml",
            """\
            enwiki:
              api_endpoint: https://en.example.org/w/api.php
            """,
        )
        main = _write(tmp_path / "config.yml", "sites: !include sites.yml\n")

        data = load_yaml_file(main)

        assert data == {
            "sites": {"enwiki": {"api_endpoint": "https://en.example.org/w/api.php"}}
        }

    def test_missing_include(self, tmp_path):
        main = _write(tmp_path / "config.yml", "sites: !include nope.yml\n")
        with pytest.raises(FileNotFoundError, match="nope.yml"):
            load_yaml_file(main)

    def test_circular_include(self, tmp_path):
        _write(tmp_path / "a.yml", "b: !include b.yml\n")
        _write(tmp_path / "b.yml", "a: !include a.yml\n")
        with pytest.raises(ValueError, match="Circular include"):
            load_yaml_file(tmp_path / "a.yml")

    def test_include_does_not_leak_into_safe_load(self):
        import yaml

        with pytest.raises(yaml.constructor.ConstructorError):
            yaml.safe_load("x: !include y.yml")


# -------------------------------------------------------------------------
# Discovery and merge
# -------------------------------------------------------------------------


class TestDiscovery:
    """Tests for discover_config_files() and load_hierarchical_config()."""

    def test_nothing_found(self, isolated):
        assert discover_config_files() == []
        assert load_hierarchical_config() == {}

    def test_precedence_order(self, isolated, tmp_path, monkeypatch):
        explicit = _write(tmp_path / "explicit.yml", "logging: {level: DEBUG}\n")
        project = _write(isolated / ".sitelink_sync" / "config.yml", "{}\n")
        home = _write(
            tmp_path / "home" / ".config" / "sitelink_sync" / "config.yml",
            "{}\n",
        )
        monkeypatch.setenv(CONFIG_ENV_VAR, str(explicit))

        assert discover_config_files() == [
            explicit.resolve(),
            project,
            home,
        ]

    def test_higher_precedence_section_wins(self, isolated, tmp_path):
        _write(
            tmp_path / "home" / ".config" / "sitelink_sync" / "config.yml",
            """\
            logging:
              level: WARNING
            state_store:
              state_dir: /var/lib/sitelink
            """,
        )
        _write(
            isolated / ".sitelink_sync" / "config.yml",
            """\
            logging:
              level: DEBUG
            """,
        )

        merged = load_hierarchical_config()

        assert merged["logging"] == {"level": "DEBUG"}
        assert merged["state_store"] == {"state_dir": "/var/lib/sitelink"}

    def test_interpolates_after_merge(self, isolated, monkeypatch):
        monkeypatch.setenv("BOT_PASSWORD", "s3cret")
        _write(
            isolated / ".sitelink_sync" / "config.yml",
            """\
            sites:
              wikidatawiki:
                api_endpoint: https://www.wikidata.org/w/api.php
                password: ${BOT_PASSWORD}
            """,
        )

        merged = load_hierarchical_config()

        assert merged["sites"]["wikidatawiki"]["password"] == "s3cret"

    def test_non_dict_root_skipped(self, isolated):
        _write(isolated / ".sitelink_sync" / "config.yml", "- a\n- b\n")
        assert load_hierarchical_config() == {}


# -------------------------------------------------------------------------
# Bootstrapping
# -------------------------------------------------------------------------


class TestEnsureConfig:
    """Tests for ensure_config() and resolve_config_path()."""

    def test_creates_starter(self, isolated):
        path, created = ensure_config()

        assert created
        assert path == isolated / ".sitelink_sync" / "config.yml"
        assert "synchronizer:" in path.read_text()
        assert load_hierarchical_config() == {}

    def test_existing_config_kept(self, isolated):
        existing = _write(isolated / ".sitelink_sync" / "config.yaml", "{}\n")

        path, created = ensure_config()

        assert not created
        assert path == existing
        assert resolve_config_path() == existing

    def test_explicit_target(self, isolated, tmp_path):
        target = tmp_path / "elsewhere" / "sync.yml"
        path, created = ensure_config(target)
        assert created
        assert path == target
        assert target.exists()
