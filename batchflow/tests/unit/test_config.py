"""Tests for the Config singleton and its environment overrides."""

from batchflow.utils import config as config_module
from batchflow.utils.config import Config, get_config, get_database_url, reset_config
from batchflow.utils.constants import DEFAULT_NOTIFY_MAX_ATTEMPTS


class TestConfigDefaults:
    """Defaults when no BATCHFLOW_* variables are set."""

    def test_production_uses_home_directory(self, clean_config):
        config = Config("production")
        assert config.database_path.parent.name == ".batchflow"
        assert config.database_url.startswith("sqlite:///")
        assert config.database_url.endswith("batchflow.db")

    def test_development_uses_project_data_directory(self, clean_config):
        config = Config("development")
        assert config.database_path.parent.name == "data"
        assert config.is_development
        assert not config.is_production

    def test_tunable_defaults(self, clean_config):
        config = Config()
        assert config.db_timeout == 30
        assert config.notify_max_attempts == DEFAULT_NOTIFY_MAX_ATTEMPTS
        assert config.log_level == "INFO"

    def test_metadata(self, clean_config):
        config = Config()
        assert config.app_name == "batchflow"
        assert config.app_version == "0.1.0"
        assert config.database_version == "1.0"


class TestConfigOverrides:
    """Environment variables override the defaults."""

    def test_database_url_override(self, clean_config, monkeypatch):
        monkeypatch.setenv("BATCHFLOW_DATABASE_URL", "postgresql://localhost/batchflow")
        assert Config().database_url == "postgresql://localhost/batchflow"

    def test_integer_overrides(self, clean_config, monkeypatch):
        monkeypatch.setenv("BATCHFLOW_DB_TIMEOUT", "5")
        monkeypatch.setenv("BATCHFLOW_NOTIFY_MAX_ATTEMPTS", "2")
        config = Config()
        assert config.db_timeout == 5
        assert config.notify_max_attempts == 2

    def test_invalid_integer_falls_back(self, clean_config, monkeypatch):
        monkeypatch.setenv("BATCHFLOW_NOTIFY_MAX_ATTEMPTS", "often")
        monkeypatch.setenv("BATCHFLOW_DB_TIMEOUT", "0")
        config = Config()
        assert config.notify_max_attempts == DEFAULT_NOTIFY_MAX_ATTEMPTS
        assert config.db_timeout == 30

    def test_log_level_normalized(self, clean_config, monkeypatch):
        monkeypatch.setenv("BATCHFLOW_LOG_LEVEL", "debug")
        assert Config().log_level == "DEBUG"

    def test_unknown_log_level_falls_back(self, clean_config, monkeypatch):
        monkeypatch.setenv("BATCHFLOW_LOG_LEVEL", "chatty")
        assert Config().log_level == "INFO"


class TestSingleton:
    """get_config() returns one instance until reset."""

    def test_same_instance(self, clean_config):
        assert get_config() is get_config()

    def test_environment_from_variable(self, clean_config, monkeypatch):
        monkeypatch.setenv("BATCHFLOW_ENV", "development")
        assert get_config().environment == "development"

    def test_environment_not_switched_after_creation(self, clean_config):
        first = get_config("production")
        second = get_config("development")
        assert second is first
        assert second.environment == "production"

    def test_reset(self, clean_config):
        first = get_config()
        reset_config()
        assert get_config() is not first
        assert config_module._config_instance is not None

    def test_get_database_url(self, clean_config, monkeypatch):
        monkeypatch.setenv("BATCHFLOW_DATABASE_URL", "sqlite:///:memory:")
        assert get_database_url() == "sqlite:///:memory:"
