"""Tests for settings validation."""

import pytest
from pydantic import ValidationError

from ci_insights.config import Settings, SyncConfig


class TestSyncConfigBounds:
    @pytest.mark.parametrize(
        "field", ["retention_days", "job_batch_size", "page_size", "stop_threshold", "recent_failures_limit"],
    )
    def test_zero_is_rejected(self, field):
        with pytest.raises(ValidationError):
            SyncConfig(**{field: 0})

    def test_page_size_capped_at_graphql_limit(self):
        with pytest.raises(ValidationError):
            SyncConfig(page_size=101)

    def test_nested_env_override_is_validated(self, monkeypatch):
        monkeypatch.setenv("SYNC__RETENTION_DAYS", "0")
        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_nested_env_override(self, monkeypatch):
        monkeypatch.setenv("SYNC__RETENTION_DAYS", "30")
        assert Settings(_env_file=None).sync.retention_days == 30


class TestProductionSettings:
    def test_requires_token(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, environment="production", github_token="")

    def test_rejects_memory_store(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, environment="production", github_token="t", kv_backend="memory")
