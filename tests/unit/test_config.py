"""
Unit tests for configuration and queue construction.
"""

from pathlib import Path

import pytest

from durable_queue.config import Settings, get_settings
from durable_queue.exceptions import ConfigurationError
from durable_queue.queue import Queue
from durable_queue.types import JsonCodec, QueueOptions


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self):
        """Test default settings values."""
        settings = Settings(_env_file=None)

        assert settings.storage_root is None
        assert settings.default_timeout_seconds == 60
        assert settings.reservation_ttl_seconds is None
        assert settings.sqlite_journal_mode == "wal"
        assert settings.reaper_queue_names == []
        assert settings.reaper_interval_seconds == 10
        assert settings.failed_retention_seconds is None
        assert settings.tracing_enabled is False

    def test_environment_override(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
        """Test settings are read from the environment."""
        monkeypatch.setenv("STORAGE_ROOT", str(tmp_path))
        monkeypatch.setenv("DEFAULT_TIMEOUT_SECONDS", "5")
        monkeypatch.setenv("REAPER_QUEUE_NAMES", '["orders", "emails"]')
        get_settings.cache_clear()

        settings = get_settings()

        assert settings.storage_root == tmp_path
        assert settings.default_timeout_seconds == 5
        assert settings.reaper_queue_names == ["orders", "emails"]


class TestQueueOptions:
    """Tests for QueueOptions validation."""

    def test_rejects_blank_name(self):
        """Test a whitespace-only name is rejected."""
        with pytest.raises(ValueError):
            QueueOptions(name="   ")

    def test_rejects_negative_timeout(self):
        """Test a negative default timeout is rejected."""
        with pytest.raises(ValueError):
            QueueOptions(name="orders", default_timeout_seconds=-1)


class TestQueueConstruction:
    """Tests for Queue configuration handling."""

    def test_requires_storage_root(self):
        """Test construction fails fast without a storage root."""
        with pytest.raises(ConfigurationError, match="No storage root"):
            Queue("orders")

    def test_rejects_empty_name(self, storage_root: Path):
        """Test construction fails for an empty name."""
        with pytest.raises(ConfigurationError):
            Queue("", storage_root)

    def test_storage_root_from_settings(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
        """Test the storage root falls back to settings."""
        monkeypatch.setenv("STORAGE_ROOT", str(tmp_path))
        get_settings.cache_clear()

        queue = Queue("orders")

        assert queue.path.parent == tmp_path
        assert queue.default_timeout == 60

    def test_construction_does_not_touch_disk(self, storage_root: Path):
        """Test storage is created lazily by open()."""
        queue = Queue("orders", storage_root)

        assert queue.is_open is False
        assert not storage_root.exists()

    def test_explicit_options(self, storage_root: Path):
        """Test explicit options override settings."""
        queue = Queue(
            "orders",
            storage_root,
            default_timeout_seconds=5,
            reservation_ttl_seconds=30,
        )

        assert queue.name == "orders"
        assert queue.default_timeout == 5
        assert queue.options.reservation_ttl_seconds == 30

    def test_from_options_mapping(self, storage_root: Path):
        """Test building a queue from a plain mapping."""
        queue = Queue.from_options(
            {"name": "orders", "storage_root": str(storage_root), "default_timeout_seconds": 3}
        )

        assert queue.name == "orders"
        assert queue.default_timeout == 3
        assert queue.path.parent == storage_root

    def test_from_options_invalid(self, storage_root: Path):
        """Test invalid option mappings raise ConfigurationError."""
        with pytest.raises(ConfigurationError):
            Queue.from_options({"storage_root": str(storage_root)})


class TestJsonCodec:
    """Tests for the default payload codec."""

    def test_round_trip(self):
        """Test structured payloads survive encoding."""
        codec = JsonCodec()
        payload = {"x": 1, "items": [1, "two", None], "nested": {"ok": True}}

        assert codec.decode(codec.encode(payload)) == payload

    def test_rejects_unserializable(self):
        """Test payloads JSON cannot represent raise TypeError."""
        with pytest.raises(TypeError):
            JsonCodec().encode({"when": object()})
