"""Tests for environment-driven settings."""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError


class TestStoreSettings:
    def test_defaults(self):
        from slotsync.config import StoreSettings

        with patch.dict(os.environ, {}, clear=True):
            settings = StoreSettings()
            assert settings.base_url == "http://localhost:8787"
            assert settings.timeout_sec == 10.0

    def test_from_environment(self):
        from slotsync.config import StoreSettings

        env = {
            "SLOTSYNC_STORE_BASE_URL": "https://events.example.com/api/",
            "SLOTSYNC_STORE_TIMEOUT_SEC": "2.5",
        }
        with patch.dict(os.environ, env, clear=True):
            settings = StoreSettings()
            assert settings.base_url == "https://events.example.com/api"
            assert settings.timeout_sec == 2.5


class TestSyncSettings:
    def test_defaults(self):
        from slotsync.config import SyncSettings

        with patch.dict(os.environ, {}, clear=True):
            settings = SyncSettings()
            assert settings.poll_interval_sec == 3.0
            assert settings.debounce_sec == 1.0
            assert settings.expiry_days == 7
            assert settings.max_dates == 10

    def test_from_environment(self):
        from slotsync.config import SyncSettings

        env = {
            "SLOTSYNC_SYNC_POLL_INTERVAL_SEC": "5",
            "SLOTSYNC_SYNC_DEBOUNCE_SEC": "0",
            "SLOTSYNC_SYNC_EXPIRY_DAYS": "30",
        }
        with patch.dict(os.environ, env, clear=True):
            settings = SyncSettings()
            assert settings.poll_interval_sec == 5.0
            assert settings.debounce_sec == 0.0
            assert settings.expiry_days == 30

    def test_poll_interval_must_be_positive(self):
        from slotsync.config import SyncSettings

        with patch.dict(os.environ, {"SLOTSYNC_SYNC_POLL_INTERVAL_SEC": "0"}, clear=True):
            with pytest.raises(ValidationError):
                SyncSettings()


class TestDebugSettings:
    def test_defaults(self):
        from slotsync.config import DebugSettings

        with patch.dict(os.environ, {}, clear=True):
            settings = DebugSettings()
            assert settings.http is False
            assert settings.log_level == "INFO"

    @pytest.mark.parametrize("value,expected", [("1", True), ("yes", True), ("TRUE", True), ("0", False), ("off", False)])
    def test_http_debug_flag(self, value, expected):
        from slotsync.config import DebugSettings

        with patch.dict(os.environ, {"SLOTSYNC_HTTP_DEBUG": value}, clear=True):
            assert DebugSettings().http is expected

    def test_log_level_is_uppercased(self):
        from slotsync.config import DebugSettings

        with patch.dict(os.environ, {"SLOTSYNC_LOG_LEVEL": "debug"}, clear=True):
            assert DebugSettings().log_level == "DEBUG"


class TestGetSettings:
    def test_is_cached(self):
        from slotsync.config import get_settings

        assert get_settings() is get_settings()

    def test_cache_can_be_cleared(self):
        from slotsync.config import clear_settings_cache, get_settings

        with patch.dict(os.environ, {"SLOTSYNC_SYNC_POLL_INTERVAL_SEC": "9"}):
            clear_settings_cache()
            assert get_settings().sync.poll_interval_sec == 9.0

    def test_sections(self):
        from slotsync.config import DebugSettings, StoreSettings, SyncSettings, get_settings

        settings = get_settings()
        assert isinstance(settings.store, StoreSettings)
        assert isinstance(settings.sync, SyncSettings)
        assert isinstance(settings.debug, DebugSettings)
