"""
Unit tests for configuration and logging setup.
"""

import logging

import json_log_formatter

from entitydb.config import Settings
from entitydb.log import setup_logging


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self, monkeypatch):
        for name in ["ENTITYDB_STORE_BACKEND", "ENTITYDB_TRASH_COLLECTION", "ENTITYDB_DEFAULT_PER_PAGE"]:
            monkeypatch.delenv(name, raising=False)

        settings = Settings()

        assert settings.store_backend == "sqlite"
        assert settings.schemas_collection == "schemas"
        assert settings.trash_collection == "trash"
        assert settings.entity_collection_prefix == "entity-"
        assert settings.default_per_page == 25
        assert settings.default_actor == "system"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("ENTITYDB_STORE_BACKEND", "memory")
        monkeypatch.setenv("ENTITYDB_DEFAULT_PER_PAGE", "10")

        settings = Settings()

        assert settings.store_backend == "memory"
        assert settings.default_per_page == 10


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_json_format(self):
        root = logging.getLogger()
        saved = root.handlers[:], root.level
        try:
            setup_logging(Settings(log_format="json", log_level="DEBUG"))

            assert root.level == logging.DEBUG
            assert isinstance(root.handlers[0].formatter, json_log_formatter.JSONFormatter)
        finally:
            root.handlers = saved[0]
            root.setLevel(saved[1])

    def test_text_format(self):
        root = logging.getLogger()
        saved = root.handlers[:], root.level
        try:
            setup_logging(Settings(log_format="text", log_level="warning"))

            assert root.level == logging.WARNING
            assert not isinstance(root.handlers[0].formatter, json_log_formatter.JSONFormatter)
        finally:
            root.handlers = saved[0]
            root.setLevel(saved[1])
