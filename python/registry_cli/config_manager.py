#!/usr/bin/env python3
"""
Configuration Manager for the Registry V2 CLI

This module handles loading, editing and saving the configuration from
config.yaml and environment variables.
"""

import copy
import logging
import os
import re
from typing import Any, Dict, List, Optional, Union

import yaml


DEFAULT_CONFIG_PATH = os.path.join(os.path.expanduser("~"), ".config", "registry-v2-cli", "config.yaml")

DEFAULT_CONFIG: Dict[str, Any] = {
    "registry": {
        "address": "http://localhost:5000",
        "verify_tls": True,
        "timeout": None,  # Seconds; None waits as long as the server does
    },
    "git": {"username": "", "access_token": ""},
    "docker": {"command": "docker", "dummy_base_image": "alpine:latest"},
    "resolver": {"max_workers": 1},
    "scratch": {
        "base_dir": "",  # Empty uses the system temporary directory
        "cleanup_retries": 20,
        "cleanup_retry_delay": 0.1,
    },
    "security": {"require_confirmation": True},
    "verbose": False,
}


class ConfigValidationError(Exception):
    """Raised when configuration validation fails"""


def _snake_case(key: str) -> str:
    """Normalise camelCase / kebab-case keys to snake_case"""
    key = re.sub(r"[-\s]+", "_", key.strip())
    key = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", key)
    return key.lower()


def _normalise_keys(value: Any) -> Any:
    """Recursively snake_case every dictionary key"""
    if isinstance(value, dict):
        return {_snake_case(str(k)): _normalise_keys(v) for k, v in value.items()}
    return value


class ConfigManager:
    """Manages configuration for the registry client"""

    def __init__(self, config_file: str = None, validate: bool = True):
        """Initialize ConfigManager

        Args:
            config_file: Path to configuration YAML file (defaults to CONFIG_FILE env var,
                then ~/.config/registry-v2-cli/config.yaml)
            validate: If True, validate configuration on initialization
        """
        if config_file is None:
            config_file = os.environ.get("CONFIG_FILE", DEFAULT_CONFIG_PATH)
        self.config_file = config_file
        self.config = self._load_config()

        if validate:
            self.validate_config()
        else:
            self._restore_sections()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file with defaults"""
        default_config = copy.deepcopy(DEFAULT_CONFIG)

        try:
            if os.path.exists(self.config_file):
                with open(self.config_file, "r") as f:
                    user_config = yaml.safe_load(f) or {}
                if not isinstance(user_config, dict):
                    logging.error(f"Config file {self.config_file} does not contain a mapping, using defaults")
                    return default_config
                return self._merge_config(default_config, _normalise_keys(user_config))
            else:
                logging.debug(f"Config file {self.config_file} not found, using defaults")
                return default_config
        except (OSError, yaml.YAMLError) as e:
            logging.error(f"Error loading config file: {e}")
            return default_config

    def _merge_config(self, default: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge user config with defaults"""
        result = default.copy()
        for key, value in user.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value
        return result

    def _invalid_sections(self) -> List[str]:
        """Names of sections that should be mappings but are not"""
        return [
            key for key, default in DEFAULT_CONFIG.items()
            if isinstance(default, dict) and not isinstance(self.config.get(key), dict)
        ]

    def _restore_sections(self) -> None:
        """Replace sections that are not mappings with their defaults"""
        for key in self._invalid_sections():
            logging.error(
                f"Configuration section '{key}' must be a mapping, got: "
                f"{type(self.config.get(key)).__name__}. Using defaults for it"
            )
            self.config[key] = copy.deepcopy(DEFAULT_CONFIG[key])

    # Registry configuration
    def get_registry_address(self) -> str:
        """Get registry address from environment or config, with a scheme and no trailing slash"""
        address = os.environ.get("REGISTRY_ADDRESS") or self.config["registry"]["address"] or ""
        address = str(address).strip().rstrip("/")
        if address and not re.match(r"^https?://", address):
            address = f"https://{address}"
        return address

    def get_registry_verify_tls(self) -> bool:
        """Get whether TLS certificates are verified"""
        return bool(self.config.get("registry", {}).get("verify_tls", True))

    def get_registry_timeout(self) -> Optional[float]:
        """Get HTTP timeout in seconds (None for no timeout), with type coercion"""
        timeout = self.config.get("registry", {}).get("timeout")
        if timeout is None or timeout == "":
            return None
        try:
            return float(timeout)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"registry.timeout must be a number, got: {timeout} (type: {type(timeout).__name__})"
            )

    # Git configuration
    def get_git_username(self) -> Optional[str]:
        """Get git username from environment or config"""
        return os.environ.get("GIT_USERNAME") or self.config.get("git", {}).get("username") or None

    def get_git_access_token(self) -> Optional[str]:
        """Get git access token from environment or config"""
        return os.environ.get("GIT_ACCESS_TOKEN") or self.config.get("git", {}).get("access_token") or None

    # Container engine configuration
    def get_docker_command(self) -> str:
        """Get the container engine executable"""
        return os.environ.get("DOCKER_COMMAND") or self.config.get("docker", {}).get("command") or "docker"

    def get_dummy_base_image(self) -> str:
        """Get the base image used for placeholder builds"""
        return self.config.get("docker", {}).get("dummy_base_image") or "alpine:latest"

    # Resolver configuration
    def get_resolver_max_workers(self) -> int:
        """Get max concurrent digest lookups, with type coercion"""
        workers = self.config.get("resolver", {}).get("max_workers", 1)
        try:
            return int(workers)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"resolver.max_workers must be an integer, got: {workers} (type: {type(workers).__name__})"
            )

    # Scratch directory configuration
    def get_scratch_base_dir(self) -> Optional[str]:
        """Get parent directory for scratch build contexts (None for the system default)"""
        return self.config.get("scratch", {}).get("base_dir") or None

    def get_scratch_cleanup_retries(self) -> int:
        """Get retry count for scratch directory removal, with type coercion"""
        retries = self.config.get("scratch", {}).get("cleanup_retries", 20)
        try:
            return int(retries)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"scratch.cleanup_retries must be an integer, got: {retries} (type: {type(retries).__name__})"
            )

    def get_scratch_cleanup_retry_delay(self) -> float:
        """Get delay between scratch removal attempts, with type coercion"""
        delay = self.config.get("scratch", {}).get("cleanup_retry_delay", 0.1)
        try:
            return float(delay)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"scratch.cleanup_retry_delay must be a number, got: {delay} (type: {type(delay).__name__})"
            )

    # Behaviour
    def requires_confirmation(self) -> bool:
        """Get whether removals ask for confirmation"""
        return bool(self.config.get("security", {}).get("require_confirmation", True))

    def is_verbose(self) -> bool:
        """Get whether command output is echoed"""
        return bool(self.config.get("verbose", False))

    def validate_config(self) -> None:
        """Validate configuration values

        Raises:
            ConfigValidationError: If configuration is invalid
        """
        invalid_sections = self._invalid_sections()
        if invalid_sections:
            error_msg = "Configuration validation failed:\n  " + "\n  ".join(
                f"Configuration section '{key}' must be a mapping, got: {type(self.config.get(key)).__name__}"
                for key in invalid_sections
            )
            logging.error(error_msg)
            raise ConfigValidationError(error_msg)

        errors = []
        warnings = []

        address = self.get_registry_address()
        if not address:
            errors.append("Registry address is required and cannot be empty")
        elif not self._is_valid_registry_address(address):
            warnings.append(
                f"Registry address '{address}' may be invalid (expected format: http[s]://hostname[:port])"
            )

        try:
            timeout = self.get_registry_timeout()
            if timeout is not None and timeout <= 0:
                errors.append(f"registry.timeout must be a positive number, got: {timeout}")
        except ConfigValidationError as e:
            errors.append(str(e))

        try:
            max_workers = self.get_resolver_max_workers()
            if max_workers < 1:
                errors.append(f"resolver.max_workers must be a positive integer, got: {max_workers}")
            elif max_workers > 16:
                warnings.append(f"resolver.max_workers is very high ({max_workers}), this may hit registry rate limits")
        except ConfigValidationError as e:
            errors.append(str(e))

        try:
            retries = self.get_scratch_cleanup_retries()
            if retries < 0:
                errors.append(f"scratch.cleanup_retries must be a non-negative integer, got: {retries}")
        except ConfigValidationError as e:
            errors.append(str(e))

        try:
            delay = self.get_scratch_cleanup_retry_delay()
            if delay < 0:
                errors.append(f"scratch.cleanup_retry_delay must be a non-negative number, got: {delay}")
        except ConfigValidationError as e:
            errors.append(str(e))

        base_dir = self.get_scratch_base_dir()
        if base_dir and not os.path.isdir(base_dir):
            warnings.append(f"scratch.base_dir '{base_dir}' does not exist, it will be created on first use")

        if not self.get_docker_command().strip():
            errors.append("docker.command is required and cannot be empty")

        if bool(self.get_git_username()) != bool(self.get_git_access_token()):
            warnings.append("git.username and git.access_token should be set together")

        for warning in warnings:
            logging.warning(f"Configuration warning: {warning}")

        if errors:
            error_msg = "Configuration validation failed:\n  " + "\n  ".join(errors)
            logging.error(error_msg)
            raise ConfigValidationError(error_msg)

    def _is_valid_registry_address(self, address: str) -> bool:
        """Validate registry address format"""
        pattern = r"^https?://[a-zA-Z0-9]([a-zA-Z0-9\-\.]*[a-zA-Z0-9])?(:[0-9]{1,5})?(/[\w\-\./]*)?$"
        return bool(re.match(pattern, address))

    # Editing and persistence
    def edit_config(self, changes: Union[str, Dict[str, Any]]) -> None:
        """Merge changes into the configuration

        Args:
            changes: YAML text (as produced by config_as_yaml) or a mapping.
                Keys are normalised to snake_case; None values are ignored.

        Raises:
            ConfigValidationError: If the YAML cannot be parsed or the result is invalid
        """
        if isinstance(changes, str):
            try:
                changes = yaml.safe_load(changes) or {}
            except yaml.YAMLError as e:
                raise ConfigValidationError(f"Configuration is not valid YAML: {e}")
        if not isinstance(changes, dict):
            raise ConfigValidationError("Configuration must be a mapping of keys to values")

        changes = {k: v for k, v in _normalise_keys(changes).items() if v is not None}
        previous = self.config
        self.config = self._merge_config(self.config, changes)
        try:
            self.validate_config()
        except ConfigValidationError:
            self.config = previous
            raise

    def set_value(self, dotted_key: str, raw_value: str) -> None:
        """Set one value such as `registry.address` from its YAML representation"""
        value = yaml.safe_load(raw_value) if raw_value != "" else ""
        change: Dict[str, Any] = {}
        node = change
        parts = [p for p in dotted_key.split(".") if p]
        if not parts:
            raise ConfigValidationError("Configuration key cannot be empty")
        for part in parts[:-1]:
            node = node.setdefault(part, {})
        node[parts[-1]] = value
        self.edit_config(change)

    def config_as_yaml(self) -> str:
        """Return the stored configuration as YAML"""
        return yaml.safe_dump(self.config, sort_keys=False, default_flow_style=False)

    def save(self) -> str:
        """Write the configuration to the config file and return its path"""
        directory = os.path.dirname(self.config_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.config_file, "w") as f:
            f.write(self.config_as_yaml())
        logging.info(f"Configuration saved to {self.config_file}")
        return self.config_file

    def print_config(self):
        """Print current configuration"""
        print("Current Configuration:")
        print(f"  Config File: {self.config_file}")
        print(f"  Registry Address: {self.get_registry_address()}")
        print(f"  Verify TLS: {self.get_registry_verify_tls()}")
        print(f"  Timeout: {self.get_registry_timeout() or 'None'}")
        print(f"  Docker Command: {self.get_docker_command()}")
        print(f"  Dummy Base Image: {self.get_dummy_base_image()}")
        print(f"  Resolver Workers: {self.get_resolver_max_workers()}")
        print(f"  Scratch Directory: {self.get_scratch_base_dir() or 'System default'}")
        print(f"  Require Confirmation: {self.requires_confirmation()}")
        print(f"  Verbose: {self.is_verbose()}")
        print(f"  Git Username: {self.get_git_username() or 'Not set'}")

        token = self.get_git_access_token()
        if token:
            print(f"  Git Access Token: {'*' * len(token)}")
        else:
            print("  Git Access Token: Not set")


_config_manager: Optional[ConfigManager] = None


def get_config_manager(config_file: str = None) -> ConfigManager:
    """Return the shared ConfigManager, creating it on first use.

    Validation can be disabled by setting SKIP_CONFIG_VALIDATION=true.
    Passing config_file replaces the shared instance.
    """
    global _config_manager
    if _config_manager is None or config_file is not None:
        _config_manager = ConfigManager(
            config_file=config_file,
            validate=os.environ.get("SKIP_CONFIG_VALIDATION", "").lower() not in ("true", "1", "yes"),
        )
    return _config_manager
