"""
STOCKCOUNT Configuration Tests

Tests for YAML loading, environment overrides and validation.
"""

import os

import pytest

from stockcount.config import (
    CatalogConfig,
    ConfirmationConfig,
    StockcountConfig,
    get_config_paths,
    load_config,
)
from stockcount.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    """Run every test in an empty directory with no STOCKCOUNT_ variables."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    for name in list(os.environ):
        if name.startswith("STOCKCOUNT_"):
            monkeypatch.delenv(name)
    return tmp_path


class TestDefaults:
    """Tests for default values."""

    def test_pipeline_timings(self):
        """Default aggregator and accumulator windows."""
        config = StockcountConfig()
        assert config.aggregator.idle_timeout_seconds == 3.0
        assert config.accumulator.context_window_seconds == 5.0

    def test_catalog_thresholds(self):
        """Candidates between the floor and the acceptance bar are suggested."""
        config = StockcountConfig()
        assert config.catalog.top_k == 5
        assert config.catalog.similarity_floor == 0.5
        assert config.catalog.acceptance_threshold == 0.8

    def test_session_limits(self):
        config = StockcountConfig()
        assert config.session.max_conversation_turns == 8
        assert config.session.max_recent_commands == 2

    def test_no_file_gives_defaults(self):
        """With nothing on the search path, defaults are used."""
        config = load_config()
        assert config == StockcountConfig()


class TestYamlLoading:
    """Tests for loading from a YAML file."""

    def test_explicit_path(self, tmp_path):
        path = tmp_path / "custom.yaml"
        path.write_text(
            "aggregator:\n"
            "  idle_timeout_seconds: 1.5\n"
            "llm:\n"
            "  backend: rules\n"
        )
        config = load_config(path)
        assert config.aggregator.idle_timeout_seconds == 1.5
        assert config.llm.backend == "rules"
        assert config.catalog.top_k == 5

    def test_discovered_in_cwd(self, isolated_cwd):
        (isolated_cwd / "stockcount.yaml").write_text("server:\n  port: 11000\n")
        config = load_config()
        assert config.server.port == 11000

    def test_missing_explicit_path(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(tmp_path / "nope.yaml")
        assert "not found" in exc_info.value.message

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("server: [unclosed\n")
        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_non_mapping_root(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_invalid_value(self, tmp_path):
        path = tmp_path / "invalid.yaml"
        path.write_text("catalog:\n  top_k: 0\n")
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(path)
        assert exc_info.value.config_file == str(path)

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path) == StockcountConfig()


class TestEnvironmentOverrides:
    """Tests for STOCKCOUNT_<SECTION>_<FIELD> variables."""

    def test_int_override(self, monkeypatch):
        monkeypatch.setenv("STOCKCOUNT_SERVER_PORT", "10600")
        assert load_config().server.port == 10600

    def test_float_override(self, monkeypatch):
        monkeypatch.setenv("STOCKCOUNT_AGGREGATOR_IDLE_TIMEOUT_SECONDS", "2.5")
        assert load_config().aggregator.idle_timeout_seconds == 2.5

    def test_string_override(self, monkeypatch):
        monkeypatch.setenv("STOCKCOUNT_LLM_BACKEND", "rules")
        assert load_config().llm.backend == "rules"

    def test_top_level_override(self, monkeypatch):
        monkeypatch.setenv("STOCKCOUNT_LOG_LEVEL", "DEBUG")
        assert load_config().log_level == "DEBUG"

    def test_env_wins_over_file(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("server:\n  port: 11000\n")
        monkeypatch.setenv("STOCKCOUNT_SERVER_PORT", "12000")
        assert load_config(path).server.port == 12000

    def test_bad_number(self, monkeypatch):
        monkeypatch.setenv("STOCKCOUNT_SERVER_PORT", "many")
        with pytest.raises(ConfigurationError) as exc_info:
            load_config()
        assert exc_info.value.config_key == "server.port"


class TestConfirmationConfig:
    """Tests for threshold ordering checks."""

    def test_explicit_above_implicit_rejected(self):
        with pytest.raises(ValueError):
            ConfirmationConfig(implicit_confidence=0.5, explicit_confidence=0.6)

    def test_error_rates_ordered(self):
        with pytest.raises(ValueError):
            ConfirmationConfig(low_error_rate=0.5, high_error_rate=0.3)


class TestCatalogConfig:
    """Tests for similarity threshold ordering."""

    def test_floor_at_acceptance_rejected(self):
        with pytest.raises(ValueError):
            CatalogConfig(similarity_floor=0.7, acceptance_threshold=0.6)
        with pytest.raises(ValueError):
            CatalogConfig(similarity_floor=0.7, acceptance_threshold=0.7)

    def test_floor_below_acceptance(self):
        config = CatalogConfig(similarity_floor=0.4, acceptance_threshold=0.9)
        assert config.similarity_floor < config.acceptance_threshold


def test_config_paths_order():
    """Local file is tried before the user and system locations."""
    paths = get_config_paths()
    assert paths[0].name == "stockcount.yaml"
    assert str(paths[-1]) == "/etc/stockcount/config.yaml"
