"""Tests for sources.yaml loading and runtime settings."""

import textwrap

import pytest

from taskhub import config, paths
from taskhub.config import SourceConfig, default_sources, load_sources_config
from taskhub.settings import Settings


def write_yaml(path, text):
    path.write_text(textwrap.dedent(text))
    return path


class TestLoadSourcesConfig:
    def test_defaults_without_file(self, tmp_path):
        sources = load_sources_config(tmp_path / "missing.yaml")
        assert sources == default_sources()
        assert sources["calendar"].transient
        assert sources["calendar"].allow_empty
        assert not sources["jira"].transient
        assert not sources["jira"].allow_empty

    def test_file_merges_over_defaults(self, tmp_path):
        path = write_yaml(
            tmp_path / "sources.yaml",
            """
            sources:
              jira:
                enabled: false
              todo:
                allow_empty: true
              zendesk:
                durability: transient
            """,
        )

        sources = load_sources_config(path)

        assert sources["jira"].enabled is False
        assert sources["todo"].allow_empty is True
        assert sources["todo"].durability == config.DURABLE
        assert sources["zendesk"] == SourceConfig(name="zendesk", durability=config.TRANSIENT)
        assert sources["email"] == default_sources()["email"]

    def test_default_location_is_app_home(self):
        write_yaml(paths.sources_config_path(), "sources:\n  monday:\n    enabled: false\n")
        assert load_sources_config()["monday"].enabled is False

    def test_empty_file(self, tmp_path):
        path = write_yaml(tmp_path / "sources.yaml", "")
        assert load_sources_config(path) == default_sources()

    def test_invalid_durability(self, tmp_path):
        path = write_yaml(tmp_path / "sources.yaml", "sources:\n  jira:\n    durability: sometimes\n")
        with pytest.raises(ValueError, match="durability"):
            load_sources_config(path)


class TestSettings:
    def test_source_enabled_needs_both_layers(self, store):
        sources = default_sources()
        sources["jira"] = SourceConfig(name="jira", enabled=False)
        settings = Settings(store, sources=sources)

        settings.set_source_enabled("jira", True)
        assert settings.is_source_enabled("jira") is False

        settings.set_source_enabled("todo", False)
        assert settings.is_source_enabled("todo") is False
        settings.set_source_enabled("todo", True)
        assert settings.is_source_enabled("todo") is True

    def test_unknown_source_defaults(self, settings):
        assert settings.is_source_enabled("zendesk") is True
        assert settings.is_transient("zendesk") is False
        assert settings.allows_empty("zendesk") is False

    def test_email_filter_validated(self, settings):
        assert settings.email_filter == config.DEFAULT_EMAIL_FILTER
        settings.set("email_filter", "unread_and_flagged")
        assert settings.email_filter == "unread_and_flagged"
        settings.set("email_filter", "starred")
        assert settings.email_filter == config.DEFAULT_EMAIL_FILTER

    def test_get_int_falls_back(self, settings):
        settings.set("email_days", "3")
        settings.set("email_limit", "lots")
        assert settings.email_days == 3
        assert settings.email_limit == config.DEFAULT_EMAIL_LIMIT

    def test_jira_url_trailing_slash(self, settings):
        settings.set("jira_url", "https://tracker.example.com/")
        assert settings.jira_url == "https://tracker.example.com"

    def test_monday_board_ids(self, settings, monkeypatch):
        monkeypatch.setattr(config, "MONDAY_BOARD_IDS", "11, 12")
        assert settings.monday_board_ids == ["11", "12"]
        settings.set("monday_board_ids", "42,,43 ")
        assert settings.monday_board_ids == ["42", "43"]
