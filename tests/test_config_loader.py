"""
Unit tests for configuration loader.

Tests multi-layer config merging, environment variable overrides,
customer discovery and selection, XDG directory handling, and layered
.env loading.
"""

import json
import logging
from pathlib import Path

import pytest

from agentmirror.core.config import (
    ConfigError,
    MirrorConfig,
    discover_customer_envs,
    get_customer,
    get_project_config_path,
    get_user_config_path,
    list_customers,
    load_config,
    load_layered_env,
    read_customer_env,
    require_customer,
    select_customers,
)
from agentmirror.core.config.loader import (
    apply_env_overrides,
    deep_merge,
    default_customer,
    get_default_config,
    get_xdg_config_home,
    load_json_file,
    parse_customers,
)

# ==============================================================================
# Helper Functions Tests
# ==============================================================================


class TestDeepMerge:
    """Test the deep_merge helper function."""

    def test_simple_merge(self):
        """Test merging two simple dicts."""
        assert deep_merge({"a": 1, "b": 2}, {"b": 3, "c": 4}) == {"a": 1, "b": 3, "c": 4}

    def test_nested_merge(self):
        """Test merging nested dicts."""
        base = {"a": 1, "b": {"x": 10, "y": 20}}
        override = {"b": {"y": 30, "z": 40}, "c": 3}
        assert deep_merge(base, override) == {"a": 1, "b": {"x": 10, "y": 30, "z": 40}, "c": 3}

    def test_override_replaces_non_dict(self):
        """Test that non-dict values are replaced, not merged."""
        assert deep_merge({"a": [1, 2, 3]}, {"a": [4, 5]}) == {"a": [4, 5]}

    def test_base_is_not_mutated(self):
        """Test that the inputs are left untouched."""
        base = {"b": {"x": 1}}
        deep_merge(base, {"b": {"y": 2}})
        assert base == {"b": {"x": 1}}


class TestLoadJsonFile:
    """Test JSON file loading."""

    def test_load_existing_file(self, tmp_path):
        """Test loading a valid JSON file."""
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"key": "value", "number": 42}))
        assert load_json_file(config_file) == {"key": "value", "number": 42}

    def test_load_nonexistent_file(self, tmp_path):
        """Test loading a file that doesn't exist returns None."""
        assert load_json_file(tmp_path / "nonexistent.json") is None

    def test_load_invalid_json(self, tmp_path, caplog):
        """Test loading invalid JSON returns None and logs a warning."""
        config_file = tmp_path / "invalid.json"
        config_file.write_text("{ invalid json }")

        with caplog.at_level(logging.WARNING):
            assert load_json_file(config_file) is None
        assert "Failed to parse config" in caplog.text

    def test_load_non_object(self, tmp_path):
        """Test that a JSON array is not a config."""
        config_file = tmp_path / "list.json"
        config_file.write_text("[1, 2]")
        assert load_json_file(config_file) is None


# ==============================================================================
# Environment
# ==============================================================================


class TestParseCustomers:
    """Test customer discovery from environment variables."""

    def test_customer_keys(self):
        """Test one customer per AGENTMIRROR_CUSTOMER_<IDN>_API_KEY."""
        env = {
            "AGENTMIRROR_CUSTOMER_ACME_API_KEY": "key-a",
            "AGENTMIRROR_CUSTOMER_GLOBEX_API_KEY": " key-g ",
            "AGENTMIRROR_CUSTOMER_GLOBEX_PROJECT_ID": "p9",
            "UNRELATED": "x",
        }
        customers = parse_customers(env)
        assert customers == {
            "acme": {"idn": "acme", "api_key": "key-a"},
            "globex": {"idn": "globex", "api_key": "key-g", "project_id": "p9"},
        }

    def test_empty_key_is_skipped(self):
        """Test that an empty API key does not define a customer."""
        assert parse_customers({"AGENTMIRROR_CUSTOMER_ACME_API_KEY": ""}) == {}

    def test_legacy_single_customer(self):
        """Test AGENTMIRROR_API_KEY defines the 'default' customer."""
        customers = parse_customers(
            {"AGENTMIRROR_API_KEY": "legacy", "AGENTMIRROR_PROJECT_ID": "p1"}
        )
        assert customers == {"default": {"idn": "default", "api_key": "legacy", "project_id": "p1"}}

    def test_legacy_ignored_with_named_customers(self):
        """Test that named customers take over from the legacy key."""
        customers = parse_customers(
            {"AGENTMIRROR_API_KEY": "legacy", "AGENTMIRROR_CUSTOMER_ACME_API_KEY": "key-a"}
        )
        assert list(customers) == ["acme"]


class TestApplyEnvOverrides:
    """Test environment variable override logic."""

    def test_base_url_and_concurrency(self):
        """Test scalar overrides."""
        result = apply_env_overrides(
            {}, {"AGENTMIRROR_BASE_URL": "https://x.test", "AGENTMIRROR_CONCURRENCY": "3"}
        )
        assert result["base_url"] == "https://x.test"
        assert result["concurrency"] == 3

    def test_invalid_concurrency_ignored(self, caplog):
        """Test invalid AGENTMIRROR_CONCURRENCY is ignored with a warning."""
        with caplog.at_level(logging.WARNING):
            result = apply_env_overrides({}, {"AGENTMIRROR_CONCURRENCY": "many"})
        assert "concurrency" not in result
        assert "AGENTMIRROR_CONCURRENCY" in caplog.text

    def test_customers_merge_with_config(self):
        """Test env customers merge into customers from config files."""
        config = {"customers": {"acme": {"idn": "acme", "project_id": "p1"}}}
        result = apply_env_overrides(config, {"AGENTMIRROR_CUSTOMER_ACME_API_KEY": "key-a"})
        assert result["customers"]["acme"] == {"idn": "acme", "project_id": "p1", "api_key": "key-a"}

    def test_no_env_overrides(self):
        """Test that config is unchanged when no env vars are set."""
        config = {"concurrency": 7}
        assert apply_env_overrides(config, {}) == config


class TestLayeredEnv:
    """Test .env file layering."""

    def test_later_files_win_but_not_over_the_shell(self, tmp_path):
        """Test workspace .env beats user .env, and neither beats the shell."""
        user_env = tmp_path / "user.env"
        user_env.write_text("AM_TEST_A=user\nAM_TEST_B=user\nAM_TEST_C=user\n")
        project_env = tmp_path / ".env"
        project_env.write_text("AM_TEST_A=project\nAM_TEST_C=project\n")
        environ = {"AM_TEST_C": "shell"}

        loaded = load_layered_env(env_files=[user_env, project_env], environ=environ)

        assert loaded == [user_env, project_env]
        assert environ == {"AM_TEST_A": "project", "AM_TEST_B": "user", "AM_TEST_C": "shell"}

    def test_default_files(self, tmp_path, monkeypatch):
        """Test the user file under XDG_CONFIG_HOME and .env.local are read."""
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
        (tmp_path / "xdg" / "agentmirror").mkdir(parents=True)
        (tmp_path / "xdg" / "agentmirror" / ".env").write_text("AM_TEST_A=user\n")
        (tmp_path / ".env.local").write_text("AM_TEST_B=local\n")
        environ = {}

        load_layered_env(project_dir=tmp_path, environ=environ)

        assert environ == {"AM_TEST_A": "user", "AM_TEST_B": "local"}

    def test_missing_files(self, tmp_path):
        """Test that absent .env files are skipped."""
        environ = {}
        loaded = load_layered_env(
            env_files=[tmp_path / "nope", tmp_path / "nope.env"], environ=environ
        )
        assert loaded == []
        assert environ == {}


class TestCustomerEnvFiles:
    """Test credentials kept in customers/<idn>/.env."""

    def test_read_customer_env(self, tmp_path):
        """Test unprefixed keys map to the folder's customer."""
        folder = tmp_path / "Acme"
        folder.mkdir()
        (folder / ".env").write_text("API_KEY=key-acme\nPROJECT_ID= p1 \nOTHER=x\n")

        assert read_customer_env(folder) == {
            "idn": "acme",
            "api_key": "key-acme",
            "project_id": "p1",
        }

    def test_without_api_key(self, tmp_path, caplog):
        """Test a .env without API_KEY is ignored with a warning."""
        folder = tmp_path / "acme"
        folder.mkdir()
        (folder / ".env").write_text("PROJECT_ID=p1\n")

        with caplog.at_level(logging.WARNING):
            assert read_customer_env(folder) is None
        assert "no API_KEY" in caplog.text

    def test_discover(self, tmp_path):
        """Test every customer folder with credentials is found."""
        for idn in ("acme", "globex", "empty"):
            (tmp_path / idn).mkdir()
        (tmp_path / "acme" / ".env").write_text("API_KEY=key-acme\n")
        (tmp_path / "globex" / ".env").write_text("API_KEY=key-globex\n")
        (tmp_path / "notes.txt").write_text("not a folder")

        assert sorted(discover_customer_envs(tmp_path)) == ["acme", "globex"]
        assert discover_customer_envs(tmp_path / "missing") == {}


# ==============================================================================
# Paths and defaults
# ==============================================================================


class TestXdgDirectories:
    """Test XDG directory helpers."""

    def test_get_xdg_config_home_default(self, monkeypatch):
        """Test XDG_CONFIG_HOME defaults to ~/.config."""
        monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
        assert get_xdg_config_home() == Path.home() / ".config"

    def test_get_user_config_path(self, monkeypatch, tmp_path):
        """Test user config lives under XDG_CONFIG_HOME/agentmirror."""
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
        assert get_user_config_path() == tmp_path / "agentmirror" / "config.json"

    def test_get_project_config_path_custom(self, tmp_path):
        """Test project config path in a given directory."""
        assert get_project_config_path(tmp_path) == tmp_path / ".agentmirror.json"


class TestGetDefaultConfig:
    """Test default configuration."""

    def test_defaults_validate(self):
        """Test that the defaults build a valid MirrorConfig."""
        config = MirrorConfig(**get_default_config())
        assert config.concurrency == 5
        assert config.publish is True
        assert config.customers == {}


# ==============================================================================
# load_config
# ==============================================================================


class TestLoadConfig:
    """Test the full precedence chain."""

    @pytest.fixture(autouse=True)
    def xdg(self, tmp_path, monkeypatch):
        xdg = tmp_path / "xdg"
        monkeypatch.setenv("XDG_CONFIG_HOME", str(xdg))
        return xdg

    def test_defaults_only(self, tmp_path):
        """Test loading with no files and no env."""
        config = load_config(project_dir=tmp_path, env={})
        assert config.base_url == "https://app.newo.ai"
        assert config.state_dir == ".agentmirror"

    def test_full_precedence(self, tmp_path, xdg):
        """Test defaults < user < project < env."""
        (xdg / "agentmirror").mkdir(parents=True)
        (xdg / "agentmirror" / "config.json").write_text(
            json.dumps({"concurrency": 2, "publish": False, "base_url": "https://user.test"})
        )
        (tmp_path / ".agentmirror.json").write_text(
            json.dumps({"concurrency": 3, "base_url": "https://project.test"})
        )
        env = {"AGENTMIRROR_BASE_URL": "https://env.test/"}

        config = load_config(project_dir=tmp_path, env=env)

        assert config.publish is False
        assert config.concurrency == 3
        assert config.base_url == "https://env.test"

    def test_invalid_json_ignored(self, tmp_path):
        """Test a broken project config is skipped."""
        (tmp_path / ".agentmirror.json").write_text("{ nope")
        assert load_config(project_dir=tmp_path, env={}).concurrency == 5

    def test_validation_error(self, tmp_path):
        """Test an invalid merged config raises ConfigError."""
        (tmp_path / ".agentmirror.json").write_text(json.dumps({"concurrency": 0}))
        with pytest.raises(ConfigError, match="Invalid configuration"):
            load_config(project_dir=tmp_path, env={})

    def test_bad_base_url(self, tmp_path):
        """Test base_url must be http(s)."""
        with pytest.raises(ConfigError):
            load_config(project_dir=tmp_path, env={"AGENTMIRROR_BASE_URL": "ftp://x"})

    def test_customers_from_env(self, tmp_path):
        """Test customers are discovered from the env mapping."""
        config = load_config(
            project_dir=tmp_path, env={"AGENTMIRROR_CUSTOMER_ACME_API_KEY": "key-a"}
        )
        assert list_customers(config) == ["acme"]
        assert config.customers["acme"].api_key == "key-a"

    def test_customers_from_customer_folders(self, tmp_path):
        """Test customers/<idn>/.env supplies credentials below the env mapping."""
        (tmp_path / "clients" / "acme").mkdir(parents=True)
        (tmp_path / "clients" / "acme" / ".env").write_text("API_KEY=folder\nPROJECT_ID=p1\n")
        (tmp_path / "clients" / "globex").mkdir()
        (tmp_path / "clients" / "globex" / ".env").write_text("API_KEY=key-g\n")
        (tmp_path / ".agentmirror.json").write_text(json.dumps({"customers_dir": "clients"}))

        config = load_config(
            project_dir=tmp_path, env={"AGENTMIRROR_CUSTOMER_ACME_API_KEY": "from-env"}
        )

        assert list_customers(config) == ["acme", "globex"]
        assert config.customers["acme"].api_key == "from-env"
        assert config.customers["acme"].project_id == "p1"
        assert config.customers["globex"].api_key == "key-g"


# ==============================================================================
# Customer selection
# ==============================================================================


def _config(*idns: str, default: str | None = None) -> MirrorConfig:
    return MirrorConfig(
        customers={idn: {"idn": idn, "api_key": f"key-{idn}"} for idn in idns},
        default_customer=default,
    )


class TestCustomerSelection:
    """Test which customers a command acts on."""

    def test_named_customer(self):
        """Test an explicit idn wins, case-insensitively."""
        config = _config("acme", "globex")
        assert [c.idn for c in select_customers(config, "GLOBEX")] == ["globex"]

    def test_unknown_customer(self):
        """Test an unknown idn lists what is available."""
        with pytest.raises(ConfigError, match="Available customers: acme"):
            get_customer(_config("acme"), "initech")

    def test_default_customer(self):
        """Test the configured default is used without --customer."""
        config = _config("acme", "globex", default="globex")
        assert default_customer(config).idn == "globex"
        assert [c.idn for c in select_customers(config)] == ["globex"]

    def test_single_customer_is_default(self):
        """Test a lone customer acts as the default."""
        assert require_customer(_config("acme")).idn == "acme"

    def test_all_customers_without_default(self):
        """Test multi-customer commands fall back to every customer in order."""
        config = _config("globex", "acme")
        assert [c.idn for c in select_customers(config)] == ["acme", "globex"]

    def test_require_customer_is_ambiguous(self):
        """Test single-customer commands refuse to guess."""
        with pytest.raises(ConfigError, match="Multiple customers"):
            require_customer(_config("acme", "globex"))

    def test_no_customers(self):
        """Test a helpful error when nothing is configured."""
        with pytest.raises(ConfigError, match="AGENTMIRROR_CUSTOMER_<IDN>_API_KEY"):
            select_customers(MirrorConfig())
