"""
Tests for configuration loading.
"""

import os
import tempfile
import unittest
from pathlib import Path

import yaml

from modindex.core.configuration import (
    ConfigurationManager,
    load_config,
    store_config,
)
from modindex.core.exceptions import ConfigurationError
from modindex.core.interfaces import IndexerConfig
from modindex.core.store import StoreBackend


class TestConfigurationManager(unittest.TestCase):
    """Test the ConfigurationManager class."""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.config_path = Path(self.temp_dir.name) / "modindex.yaml"

    def tearDown(self):
        self.temp_dir.cleanup()

    def write_config(self, data):
        with open(self.config_path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(data, f)
        return self.config_path

    def test_defaults(self):
        config = load_config(environ={})

        self.assertEqual(config, IndexerConfig())
        self.assertEqual(config.expiration, 3600)
        self.assertEqual(config.source_precedence, ["github", "pypi"])

    def test_load_file(self):
        path = self.write_config({
            "store_backend": "memory",
            "expiration": 600,
            "ecosystems": ["levilamina"],
            "tag_replacements": {"eco": "category:economy"},
        })

        config = load_config(path, environ={})

        self.assertEqual(config.store_backend, "memory")
        self.assertEqual(config.expiration, 600)
        self.assertEqual(config.ecosystems, ["levilamina"])
        self.assertEqual(config.tag_replacements, {"eco": "category:economy"})
        self.assertEqual(config.fetch_interval, 1800)

    def test_config_path_from_environment(self):
        path = self.write_config({"retry_count": 0})

        config = load_config(environ={"MODINDEX_CONFIG": str(path)})
        self.assertEqual(config.retry_count, 0)

    def test_empty_file(self):
        self.config_path.write_text("", encoding="utf-8")

        self.assertEqual(load_config(self.config_path, environ={}), IndexerConfig())

    def test_environment_overrides_file(self):
        path = self.write_config({"expiration": 600, "concurrent_requests": 2})

        config = load_config(path, environ={
            "MODINDEX_EXPIRATION": "900",
            "MODINDEX_ECOSYSTEMS": "pypi, endstone-python,",
            "MODINDEX_DATABASE_PATH": "/tmp/other.db",
            "MODINDEX_RETRY_COUNT": "",
        })

        self.assertEqual(config.expiration, 900)
        self.assertEqual(config.concurrent_requests, 2)
        self.assertEqual(config.ecosystems, ["pypi", "endstone-python"])
        self.assertEqual(config.database_path, "/tmp/other.db")
        self.assertEqual(config.retry_count, 3)

    def test_github_token(self):
        self.assertEqual(load_config(environ={"GITHUB_TOKEN": "a"}).github_token, "a")
        self.assertEqual(
            load_config(environ={"GITHUB_TOKEN": "a", "MODINDEX_GITHUB_TOKEN": "b"}).github_token, "b"
        )
        self.assertEqual(
            load_config(environ={"MODINDEX_GITHUB_TOKEN": "b"}).fetcher_config().github_token, "b"
        )

    def test_missing_file(self):
        with self.assertRaises(ConfigurationError):
            load_config(os.path.join(self.temp_dir.name, "missing.yaml"), environ={})

    def test_invalid_yaml(self):
        self.config_path.write_text("expiration: [unclosed", encoding="utf-8")

        with self.assertRaises(ConfigurationError):
            load_config(self.config_path, environ={})

    def test_not_a_mapping(self):
        self.config_path.write_text("- a\n- b\n", encoding="utf-8")

        with self.assertRaises(ConfigurationError):
            load_config(self.config_path, environ={})

    def test_unknown_keys(self):
        path = self.write_config({"expiration": 10, "colour": "blue"})

        with self.assertRaisesRegex(ConfigurationError, "colour"):
            load_config(path, environ={})

    def test_invalid_environment_value(self):
        with self.assertRaisesRegex(ConfigurationError, "MODINDEX_FETCH_INTERVAL"):
            load_config(environ={"MODINDEX_FETCH_INTERVAL": "soon"})

    def test_validation_collects_every_error(self):
        path = self.write_config({
            "store_backend": "redis",
            "expiration": 0,
            "cleanup_interval": -1,
            "ecosystems": "pypi",
            "tag_replacements": {"a": 1},
        })

        with self.assertRaises(ConfigurationError) as ctx:
            load_config(path, environ={})

        message = str(ctx.exception)
        for fragment in ("store_backend", "expiration", "cleanup_interval", "ecosystems", "tag_replacements"):
            self.assertIn(fragment, message)

    def test_boolean_is_not_an_integer(self):
        path = self.write_config({"retry_count": True})

        with self.assertRaises(ConfigurationError):
            load_config(path, environ={})

    def test_manager_expands_user(self):
        manager = ConfigurationManager("~/modindex.yaml", environ={})
        self.assertFalse(str(manager.config_path).startswith("~"))


class TestStoreConfig(unittest.TestCase):

    def test_store_config(self):
        config = IndexerConfig(store_backend="memory", expiration=90, cleanup_interval=5, database_path="x.db")
        result = store_config(config)

        self.assertEqual(result.backend, StoreBackend.MEMORY)
        self.assertEqual(result.default_ttl, 90)
        self.assertEqual(result.cleanup_interval, 5)
        self.assertEqual(result.database_path, "x.db")


if __name__ == "__main__":
    unittest.main()
