"""
Unit tests for configuration checks and application setup
"""

import logging
import pytest

from app import create_app, _database_config
from utils.config_validator import (ConfigValidationError, check_production_readiness,
                                    validate_schedule_config)
from utils.logging_config import setup_logging, JSONFormatter


class TestConfigValidator:
    """Test startup validation"""

    def test_valid_schedule_config(self, monkeypatch):
        monkeypatch.setenv('APP_TIMEZONE', 'Africa/Abidjan')
        monkeypatch.setenv('TOKEN_VERIFY_TTL', '5')
        assert validate_schedule_config() == (True, [])

    def test_unknown_timezone_stops_startup(self, monkeypatch):
        monkeypatch.setenv('APP_TIMEZONE', 'Mars/Olympus')
        with pytest.raises(ConfigValidationError):
            check_production_readiness()

    def test_bad_ttl_stops_startup(self, monkeypatch):
        monkeypatch.setenv('TOKEN_VERIFY_TTL', 'soon')
        with pytest.raises(ConfigValidationError):
            check_production_readiness()

    def test_short_secret_reported(self, monkeypatch):
        monkeypatch.setenv('SESSION_SECRET', 'short')
        result = check_production_readiness()
        assert result['production_ready'] is False
        assert any('SESSION_SECRET' in issue for issue in result['issues'])


class TestAppFactory:
    """Test application setup"""

    def test_session_secret_required(self, monkeypatch):
        monkeypatch.delenv('SESSION_SECRET')
        with pytest.raises(RuntimeError):
            create_app({'TESTING': True})

    def test_postgres_url_normalized(self):
        url, options = _database_config('postgres://fleet:pw@db/fleet')
        assert url == 'postgresql+psycopg2://fleet:pw@db/fleet'
        assert options['pool_pre_ping'] is True
        assert 'pool_size' in options

    def test_sqlite_url_kept(self):
        url, options = _database_config('sqlite:///:memory:')
        assert url == 'sqlite:///:memory:'
        assert 'pool_size' not in options

    def test_token_cache_uses_configured_ttl(self, monkeypatch):
        monkeypatch.setenv('TOKEN_VERIFY_TTL', '3')
        app = create_app({'TESTING': True, 'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:'})
        assert app.extensions['token_cache'].ttl_seconds == 3.0

    @pytest.mark.parametrize('ttl', ['soon', '0', '-1'])
    def test_bad_ttl_rejected_by_factory(self, monkeypatch, ttl):
        monkeypatch.setenv('TOKEN_VERIFY_TTL', ttl)
        with pytest.raises(ConfigValidationError) as exc_info:
            create_app({'TESTING': True, 'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:'})
        assert 'TOKEN_VERIFY_TTL' in str(exc_info.value)


class TestLogging:
    """Test logging setup"""

    def test_json_logging(self, monkeypatch):
        monkeypatch.setenv('USE_JSON_LOGGING', 'true')
        root = logging.getLogger()
        saved = list(root.handlers)
        try:
            loggers = setup_logging()
            assert isinstance(root.handlers[0].formatter, JSONFormatter)
            assert 'app' in loggers
        finally:
            root.handlers[:] = saved
