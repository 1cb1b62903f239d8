"""Unit tests for registry_cli/config_manager.py"""

import os
import tempfile
from unittest.mock import patch

import pytest
import yaml

from registry_cli.config_manager import ConfigManager, ConfigValidationError, get_config_manager

ENV_KEYS = ("REGISTRY_ADDRESS", "GIT_USERNAME", "GIT_ACCESS_TOKEN", "DOCKER_COMMAND")


@pytest.fixture(autouse=True)
def clear_environment():
    """Remove overrides a developer may have exported"""
    with patch.dict(os.environ, {}, clear=False):
        for key in ENV_KEYS:
            os.environ.pop(key, None)
        yield


def _write_config(config) -> str:
    with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
        yaml.dump(config, f)
        return f.name


class TestConfigManagerInitialization:
    """Tests for ConfigManager initialization"""

    def test_loads_default_config_when_file_not_found(self):
        """Test that defaults are used when config file doesn't exist"""
        cm = ConfigManager(config_file="/nonexistent/config.yaml", validate=False)

        assert cm.get_registry_address() == "http://localhost:5000"
        assert cm.get_docker_command() == "docker"
        assert cm.get_dummy_base_image() == "alpine:latest"
        assert cm.get_resolver_max_workers() == 1
        assert cm.get_scratch_cleanup_retries() == 20
        assert cm.get_scratch_cleanup_retry_delay() == 0.1
        assert cm.requires_confirmation() is True
        assert cm.is_verbose() is False

    def test_merges_user_config_with_defaults(self):
        """Test that user config is merged with defaults"""
        temp_path = _write_config({"registry": {"address": "http://registry.internal:5000"}})

        try:
            cm = ConfigManager(config_file=temp_path, validate=False)
            assert cm.get_registry_address() == "http://registry.internal:5000"
            # Default value preserved
            assert cm.get_registry_verify_tls() is True
        finally:
            os.unlink(temp_path)

    def test_camel_case_keys_are_normalised(self):
        temp_path = _write_config({"registry": {"verifyTls": False}, "git": {"accessToken": "t0ken"}})

        try:
            cm = ConfigManager(config_file=temp_path, validate=False)
            assert cm.get_registry_verify_tls() is False
            assert cm.get_git_access_token() == "t0ken"
        finally:
            os.unlink(temp_path)

    def test_invalid_yaml_falls_back_to_defaults(self):
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            f.write("registry: [unclosed\n")
            temp_path = f.name

        try:
            cm = ConfigManager(config_file=temp_path, validate=False)
            assert cm.get_registry_address() == "http://localhost:5000"
        finally:
            os.unlink(temp_path)

    def test_environment_variables_override_config(self):
        """Test that environment variables take precedence"""
        with patch.dict(
            os.environ,
            {
                "REGISTRY_ADDRESS": "env-registry:5000",
                "GIT_USERNAME": "env-user",
                "GIT_ACCESS_TOKEN": "env-token",
                "DOCKER_COMMAND": "podman",
            },
        ):
            cm = ConfigManager(config_file="/nonexistent/config.yaml", validate=False)
            assert cm.get_registry_address() == "https://env-registry:5000"
            assert cm.get_git_username() == "env-user"
            assert cm.get_git_access_token() == "env-token"
            assert cm.get_docker_command() == "podman"

    def test_config_file_from_environment(self):
        temp_path = _write_config({"verbose": True})

        try:
            with patch.dict(os.environ, {"CONFIG_FILE": temp_path}):
                cm = ConfigManager(validate=False)
            assert cm.config_file == temp_path
            assert cm.is_verbose() is True
        finally:
            os.unlink(temp_path)


class TestConfigManagerGetters:
    """Tests for ConfigManager getter methods"""

    @pytest.fixture
    def config_manager(self):
        return ConfigManager(config_file="/nonexistent/config.yaml", validate=False)

    def test_registry_address_gets_scheme_and_loses_trailing_slash(self, config_manager):
        config_manager.config["registry"]["address"] = "registry.example.com/"
        assert config_manager.get_registry_address() == "https://registry.example.com"

    def test_timeout_coercion(self, config_manager):
        config_manager.config["registry"]["timeout"] = "2.5"
        assert config_manager.get_registry_timeout() == 2.5

    def test_timeout_invalid_type(self, config_manager):
        config_manager.config["registry"]["timeout"] = "soon"
        with pytest.raises(ConfigValidationError):
            config_manager.get_registry_timeout()

    def test_max_workers_invalid_type(self, config_manager):
        config_manager.config["resolver"]["max_workers"] = "many"
        with pytest.raises(ConfigValidationError):
            config_manager.get_resolver_max_workers()

    def test_empty_git_credentials_are_none(self, config_manager):
        assert config_manager.get_git_username() is None
        assert config_manager.get_git_access_token() is None


class TestConfigValidation:
    """Tests for validate_config"""

    @pytest.fixture
    def config_manager(self):
        return ConfigManager(config_file="/nonexistent/config.yaml", validate=False)

    def test_defaults_are_valid(self, config_manager):
        config_manager.validate_config()

    def test_empty_address_is_invalid(self, config_manager):
        config_manager.config["registry"]["address"] = ""
        with pytest.raises(ConfigValidationError) as exc_info:
            config_manager.validate_config()
        assert "Registry address is required" in str(exc_info.value)

    def test_collects_multiple_errors(self, config_manager):
        config_manager.config["resolver"]["max_workers"] = 0
        config_manager.config["scratch"]["cleanup_retries"] = -1

        with pytest.raises(ConfigValidationError) as exc_info:
            config_manager.validate_config()

        assert "resolver.max_workers" in str(exc_info.value)
        assert "scratch.cleanup_retries" in str(exc_info.value)

    def test_validates_on_init(self):
        temp_path = _write_config({"docker": {"command": " "}})

        try:
            with pytest.raises(ConfigValidationError):
                ConfigManager(config_file=temp_path)
        finally:
            os.unlink(temp_path)

    def test_scalar_section_is_invalid(self):
        """Test that a section written as a plain value is reported, not crashed on"""
        temp_path = _write_config({"registry": "localhost:5000"})

        try:
            with pytest.raises(ConfigValidationError) as exc_info:
                ConfigManager(config_file=temp_path)
            assert "registry" in str(exc_info.value)
            assert "mapping" in str(exc_info.value)
        finally:
            os.unlink(temp_path)

    def test_scalar_section_uses_defaults_without_validation(self):
        temp_path = _write_config({"registry": "localhost:5000", "resolver": {"max_workers": 2}})

        try:
            cm = ConfigManager(config_file=temp_path, validate=False)
            assert cm.get_registry_address() == "http://localhost:5000"
            assert cm.get_registry_timeout() is None
            assert cm.get_resolver_max_workers() == 2
        finally:
            os.unlink(temp_path)


class TestConfigEditing:
    """Tests for edit_config, set_value and save"""

    @pytest.fixture
    def config_manager(self, tmp_path):
        return ConfigManager(config_file=str(tmp_path / "config.yaml"), validate=False)

    def test_edit_config_from_yaml(self, config_manager):
        config_manager.edit_config("registry:\n  address: http://registry.internal:5000\nverbose: true\n")

        assert config_manager.get_registry_address() == "http://registry.internal:5000"
        assert config_manager.is_verbose() is True

    def test_edit_config_rolls_back_invalid_changes(self, config_manager):
        with pytest.raises(ConfigValidationError):
            config_manager.edit_config({"resolver": {"max_workers": 0}})

        assert config_manager.get_resolver_max_workers() == 1

    def test_edit_config_rejects_scalar_section(self, config_manager):
        with pytest.raises(ConfigValidationError):
            config_manager.edit_config("registry: registry.internal:5000\n")

        assert config_manager.get_registry_address() == "http://localhost:5000"

    def test_edit_config_rejects_bad_yaml(self, config_manager):
        with pytest.raises(ConfigValidationError):
            config_manager.edit_config("registry: [unclosed")

    def test_set_value_parses_yaml_scalars(self, config_manager):
        config_manager.set_value("resolver.max_workers", "4")
        config_manager.set_value("registry.verify_tls", "false")

        assert config_manager.get_resolver_max_workers() == 4
        assert config_manager.get_registry_verify_tls() is False

    def test_save_round_trips(self, config_manager):
        config_manager.set_value("registry.address", "http://registry.internal:5000")

        path = config_manager.save()

        reloaded = ConfigManager(config_file=path, validate=False)
        assert reloaded.get_registry_address() == "http://registry.internal:5000"

    def test_print_config_masks_token(self, config_manager, capsys):
        config_manager.config["git"]["access_token"] = "s3cr3t"

        config_manager.print_config()

        out = capsys.readouterr().out
        assert "s3cr3t" not in out
        assert "******" in out


class TestGetConfigManager:
    """Tests for the shared instance"""

    def test_returns_same_instance(self, tmp_path):
        first = get_config_manager(str(tmp_path / "config.yaml"))
        assert get_config_manager() is first
