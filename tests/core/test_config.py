"""Tests for service configuration."""

from __future__ import annotations

import logging

import pytest

from paddysync.core.config import (
    DriveConfig,
    ServiceConfig,
    StorageConfig,
    SyncConfig,
)


class TestDefaults:
    """Tests for configuration defaults."""

    def test_empty_environment(self) -> None:
        """No environment should give a working development setup."""
        config = ServiceConfig.from_env({})

        assert config.database.url == "sqlite:///paddysync.db"
        assert config.database.geometry_url == "sqlite:///paddysync-geometry.db"
        assert config.location.cache_size == 500
        assert config.location.max_assign_attempts == 5
        assert config.storage.type == "none"
        assert config.drive.type == "none"
        assert config.drive.folder_cache_size == 1000
        assert config.drive.folder_cache_ttl == 300.0
        assert config.sync.batch_size == 10
        assert config.sync.concurrency == 2
        assert config.sync.max_retries == 3
        assert config.sync.retry_failed is True
        assert config.scheduler.schedule == "0 12 * * *"
        assert config.scheduler.enabled is True
        assert config.queue.max_size == 100
        assert config.weather.enabled is False
        assert config.cron_secret is None
        assert config.log_level == "INFO"

    def test_type_is_lowercased(self) -> None:
        assert StorageConfig(type="S3").type == "s3"
        assert DriveConfig(type="Google").type == "google"


class TestFromEnv:
    """Tests for ServiceConfig.from_env."""

    def test_reads_values(self) -> None:
        config = ServiceConfig.from_env(
            {
                "PADDYSYNC_DATABASE_URL": "postgresql://db/survey",
                "PADDYSYNC_SYNC_BATCH_SIZE": "25",
                "PADDYSYNC_SYNC_CONCURRENCY": "4",
                "PADDYSYNC_SYNC_RETRY_BASE_DELAY": "0.5",
                "PADDYSYNC_SYNC_RETRY_FAILED": "no",
                "PADDYSYNC_CRON_SCHEDULE": "*/15 * * * *",
                "PADDYSYNC_CRON_TIMEZONE": "Asia/Phnom_Penh",
                "PADDYSYNC_CRON_SECRET": "s3cret",
                "PADDYSYNC_WEATHER_ENABLED": "true",
                "PADDYSYNC_LOG_LEVEL": "DEBUG",
            }
        )

        assert config.database.url == "postgresql://db/survey"
        assert config.sync.batch_size == 25
        assert config.sync.concurrency == 4
        assert config.sync.retry_base_delay == 0.5
        assert config.sync.retry_failed is False
        assert config.scheduler.schedule == "*/15 * * * *"
        assert config.scheduler.timezone == "Asia/Phnom_Penh"
        assert config.cron_secret == "s3cret"
        assert config.weather.enabled is True
        assert config.log_level == "DEBUG"

    def test_bucket_selects_s3(self) -> None:
        config = ServiceConfig.from_env(
            {
                "PADDYSYNC_S3_BUCKET": "photos",
                "PADDYSYNC_S3_ENDPOINT": "http://minio:9000",
            }
        )

        assert config.storage.type == "s3"
        assert config.storage.bucket == "photos"
        assert config.storage.endpoint_url == "http://minio:9000"

    def test_explicit_storage_type_wins(self) -> None:
        config = ServiceConfig.from_env(
            {"PADDYSYNC_S3_BUCKET": "photos", "PADDYSYNC_STORAGE_TYPE": "local"}
        )
        assert config.storage.type == "local"

    def test_service_account_selects_google(self) -> None:
        config = ServiceConfig.from_env(
            {
                "PADDYSYNC_DRIVE_SERVICE_ACCOUNT_FILE": "/etc/sa.json",
                "PADDYSYNC_DRIVE_ROOT_FOLDER_ID": "root123",
            }
        )

        assert config.drive.type == "google"
        assert config.drive.service_account_file == "/etc/sa.json"
        assert config.drive.root_folder_id == "root123"

    def test_invalid_integer_falls_back(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            config = ServiceConfig.from_env({"PADDYSYNC_SYNC_BATCH_SIZE": "lots"})

        assert config.sync.batch_size == SyncConfig.batch_size
        assert "PADDYSYNC_SYNC_BATCH_SIZE" in caplog.text

    def test_non_positive_integer_falls_back(self) -> None:
        config = ServiceConfig.from_env({"PADDYSYNC_SYNC_BATCH_SIZE": "0"})
        assert config.sync.batch_size == 10

    def test_zero_retries_allowed(self) -> None:
        config = ServiceConfig.from_env({"PADDYSYNC_SYNC_MAX_RETRIES": "0"})
        assert config.sync.max_retries == 0

    def test_invalid_float_falls_back(self) -> None:
        config = ServiceConfig.from_env(
            {"PADDYSYNC_DRIVE_FOLDER_CACHE_TTL": "-1", "PADDYSYNC_WEATHER_TIMEOUT": "soon"}
        )
        assert config.drive.folder_cache_ttl == 300.0
        assert config.weather.timeout == 5.0

    def test_invalid_boolean_falls_back(self) -> None:
        config = ServiceConfig.from_env({"PADDYSYNC_CRON_ENABLED": "maybe"})
        assert config.scheduler.enabled is True

    def test_blank_values_are_ignored(self) -> None:
        config = ServiceConfig.from_env({"PADDYSYNC_DATABASE_URL": "  "})
        assert config.database.url == "sqlite:///paddysync.db"

    def test_queue_retry_settings(self) -> None:
        default = ServiceConfig.from_env({})
        assert default.queue.max_retries == 2
        assert default.queue.retry_base_delay == 2.0

        config = ServiceConfig.from_env(
            {
                "PADDYSYNC_QUEUE_MAX_RETRIES": "0",
                "PADDYSYNC_QUEUE_RETRY_BASE_DELAY": "0.5",
                "PADDYSYNC_QUEUE_RETRY_MAX_DELAY": "8",
            }
        )
        assert config.queue.max_retries == 0
        assert config.queue.retry_base_delay == 0.5
        assert config.queue.retry_max_delay == 8.0

    def test_reads_os_environ_by_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PADDYSYNC_QUEUE_MAX_SIZE", "7")
        assert ServiceConfig.from_env().queue.max_size == 7
