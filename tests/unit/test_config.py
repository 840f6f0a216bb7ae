"""Unit tests for orchestr8r configuration."""

from pathlib import Path

import pytest

from orchestr8r.config import ContextConfig


class TestContextConfigDefaults:
    """Test cases for default configuration."""

    def test_paths_under_storage_dir(self, tmp_path):
        """Test that state lives in <root>/.orchestr8r."""
        config = ContextConfig.defaults(tmp_path)

        storage = tmp_path.resolve() / ".orchestr8r"
        assert config.persistence_path == storage / "context.json"
        assert config.lock_path == storage / "context.lock"

    def test_default_values(self, tmp_path):
        """Test the documented defaults."""
        config = ContextConfig.defaults(tmp_path)

        assert config.lock_timeout == 5.0
        assert config.max_retries == 3
        assert config.retry_delay == 1.0
        assert config.enable_memory_cache is True
        assert config.enable_process_lock is False
        assert config.enable_github_validation is True
        assert config.github_validation_timeout == 10.0
        assert config.log_level == "info"
        assert config.validate() == []


class TestContextConfigFromEnv:
    """Test cases for environment-driven configuration."""

    def test_empty_environment_gives_defaults(self, tmp_path):
        """Test that no variables means defaults."""
        assert ContextConfig.from_env(tmp_path, environ={}) == ContextConfig.defaults(tmp_path)

    def test_durations_are_milliseconds(self, tmp_path):
        """Test ms-to-seconds conversion."""
        config = ContextConfig.from_env(tmp_path, environ={
            "ORCHESTR8R_LOCK_TIMEOUT": "2500",
            "ORCHESTR8R_RETRY_DELAY": "200",
            "ORCHESTR8R_GITHUB_VALIDATION_TIMEOUT": "3000",
        })

        assert config.lock_timeout == 2.5
        assert config.retry_delay == 0.2
        assert config.github_validation_timeout == 3.0

    def test_booleans(self, tmp_path):
        """Test boolean parsing."""
        config = ContextConfig.from_env(tmp_path, environ={
            "ORCHESTR8R_ENABLE_MEMORY_CACHE": "false",
            "ORCHESTR8R_ENABLE_PROCESS_LOCK": "yes",
            "ORCHESTR8R_ENABLE_GITHUB_VALIDATION": "0",
        })

        assert config.enable_memory_cache is False
        assert config.enable_process_lock is True
        assert config.enable_github_validation is False

    def test_path_keeps_only_file_name(self, tmp_path):
        """Test that configured paths cannot escape the storage directory."""
        config = ContextConfig.from_env(tmp_path, environ={
            "ORCHESTR8R_CONTEXT_PATH": "/etc/../somewhere/else/state.json",
        })

        assert config.persistence_path == tmp_path.resolve() / ".orchestr8r" / "state.json"

    def test_debug_forces_debug_level(self, tmp_path):
        """Test that debug mode overrides the log level."""
        config = ContextConfig.from_env(tmp_path, environ={
            "ORCHESTR8R_LOG_LEVEL": "error",
            "ORCHESTR8R_DEBUG": "true",
        })

        assert config.debug is True
        assert config.log_level == "debug"

    def test_warn_alias(self, tmp_path):
        """Test that 'warn' is accepted for 'warning'."""
        config = ContextConfig.from_env(tmp_path, environ={"ORCHESTR8R_LOG_LEVEL": "WARN"})
        assert config.log_level == "warning"

    def test_github_settings(self, tmp_path):
        """Test token and API URL pass through."""
        config = ContextConfig.from_env(tmp_path, environ={
            "GITHUB_TOKEN": "ghp_secret",
            "GITHUB_API_URL": "https://github.example.com/api/graphql",
        })

        assert config.github_token == "ghp_secret"
        assert config.github_api_url == "https://github.example.com/api/graphql"

    def test_errors_are_aggregated(self, tmp_path):
        """Test that every invalid variable is reported at once."""
        with pytest.raises(ValueError) as exc_info:
            ContextConfig.from_env(tmp_path, environ={
                "ORCHESTR8R_LOCK_TIMEOUT": "100",
                "ORCHESTR8R_MAX_RETRIES": "many",
                "ORCHESTR8R_LOG_LEVEL": "verbose",
            })

        message = str(exc_info.value)
        assert message.startswith("Context configuration validation failed:")
        assert "lock_timeout" in message
        assert "ORCHESTR8R_MAX_RETRIES" in message
        assert "log_level" in message

    def test_reads_os_environ_by_default(self, tmp_path, monkeypatch):
        """Test that os.environ is used when no mapping is given."""
        monkeypatch.setenv("ORCHESTR8R_MAX_RETRIES", "7")
        assert ContextConfig.from_env(tmp_path).max_retries == 7


class TestDeploymentValidation:
    """Test cases for validate_deployment."""

    def test_missing_directory_is_a_warning(self, tmp_path):
        """Test that a not-yet-created storage directory only warns."""
        report = ContextConfig.defaults(tmp_path).validate_deployment()

        assert report["is_valid"] is True
        assert any("does not exist" in w for w in report["warnings"])

    def test_token_warning(self, tmp_path):
        """Test the missing-token warning when validation is enabled."""
        report = ContextConfig.defaults(tmp_path).validate_deployment()
        assert "GitHub validation enabled but GITHUB_TOKEN not set" in report["warnings"]

    def test_enabled_process_lock_not_flagged(self, tmp_path):
        """Test that the last-writer-wins warning goes away with the process lock."""
        config = ContextConfig.defaults(tmp_path)
        config.enable_process_lock = True
        (tmp_path / ".orchestr8r").mkdir()

        report = config.validate_deployment()

        assert not any("last-writer-wins" in w for w in report["warnings"])

    def test_to_dict_masks_token(self, tmp_path):
        """Test that secrets never appear in the dictionary view."""
        config = ContextConfig.defaults(tmp_path)
        config.github_token = "ghp_secret"

        data = config.to_dict()

        assert data["github_token"] == "***"
        assert data["persistence_path"] == str(Path(tmp_path).resolve() / ".orchestr8r" / "context.json")
