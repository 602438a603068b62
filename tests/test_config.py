"""Tests for server configuration.

These tests cover:
1. Default values, including the lending and fine policies
2. Environment variable loading
3. Validation rules
4. The process-wide configuration instance
"""

import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from library_api.config import ServerConfig, get_config, reset_config


class TestServerConfig:
    """Test server configuration behavior."""

    def test_default_configuration(self):
        config = ServerConfig()

        assert config.server_name == "library-api"
        assert config.server_version == "0.1.0"
        assert config.database_path == Path("data/library.db").absolute()
        assert config.database_url is None
        assert config.debug is False

        # Lending and fine defaults
        assert config.on_site_loan_days == 1
        assert config.take_home_loan_days == 14
        assert config.overdue_fine_per_day == 5000
        assert config.damage_fine_ratio == 0.3
        assert config.lost_fine_ratio == 1.0

    def test_environment_variable_loading(self):
        env_vars = {
            "LIBRARY_API_SERVER_NAME": "test-library",
            "LIBRARY_API_SERVER_VERSION": "2.0.0",
            "LIBRARY_API_DATABASE_PATH": "/tmp/test.db",
            "LIBRARY_API_DEBUG": "true",
            "LIBRARY_API_LOG_LEVEL": "DEBUG",
            "LIBRARY_API_OVERDUE_FINE_PER_DAY": "1000",
        }

        with patch.dict(os.environ, env_vars):
            config = ServerConfig()

            assert config.server_name == "test-library"
            assert config.server_version == "2.0.0"
            assert config.database_path == Path("/tmp/test.db")
            assert config.debug is True
            assert config.log_level == "DEBUG"
            assert config.fine_policy.overdue_fine_per_day == 1000

    def test_server_name_validation(self):
        for name in ["library-api", "test-123", "lib"]:
            assert ServerConfig(server_name=name).server_name == name

        for name in ["Library_API", "library api", "lib@api", "ab", "a" * 51]:
            with pytest.raises(ValidationError):
                ServerConfig(server_name=name)

    def test_version_validation(self):
        for version in ["1.0.0", "0.1.0", "1.0.0-alpha", "1.0.0-beta.1"]:
            assert ServerConfig(server_version=version).server_version == version

        for version in ["1.0", "v1.0.0", "1.0.0.0", "latest"]:
            with pytest.raises(ValidationError):
                ServerConfig(server_version=version)

    def test_log_level_validation(self):
        for level in ["DEBUG", "INFO", "WARNING", "ERROR"]:
            assert ServerConfig(log_level=level).log_level == level

        with pytest.raises(ValidationError):
            ServerConfig(log_level="TRACE")

    def test_http_port_validation(self):
        assert ServerConfig(http_port=8080).http_port == 8080

        with pytest.raises(ValidationError):
            ServerConfig(http_port=80)
        with pytest.raises(ValidationError, match="reserved"):
            ServerConfig(http_port=5432)

    def test_fine_ratio_bounds(self):
        with pytest.raises(ValidationError):
            ServerConfig(damage_fine_ratio=1.5)
        with pytest.raises(ValidationError):
            ServerConfig(overdue_fine_per_day=-1)

    def test_database_url_override(self, tmp_path):
        config = ServerConfig(database_path=tmp_path / "lib.db")
        assert config.get_database_url() == f"sqlite:///{tmp_path / 'lib.db'}"

        config = ServerConfig(database_url="postgresql://localhost/library")
        assert config.get_database_url() == "postgresql://localhost/library"

    def test_database_directory_created(self, tmp_path):
        db_path = tmp_path / "nested" / "dir" / "library.db"
        ServerConfig(database_path=db_path)
        assert db_path.parent.is_dir()

    def test_policies_follow_settings(self):
        config = ServerConfig(take_home_loan_days=21, max_extension_days=30, lost_fine_ratio=1.5)

        assert config.lending_policy.take_home_loan_days == 21
        assert config.lending_policy.max_extension_days == 30
        assert config.fine_policy.lost_fine_ratio == 1.5

    def test_is_development(self):
        assert ServerConfig(debug=True).is_development is True
        assert ServerConfig(log_level="DEBUG").is_development is True
        assert ServerConfig().is_development is False


class TestConfigSingleton:
    def test_get_config_returns_same_instance(self):
        reset_config()
        assert get_config() is get_config()

    def test_reset_config(self):
        first = get_config()
        reset_config()
        assert get_config() is not first
