"""
Health checks for the registry and the local tooling.

This module checks:
- Configuration validity
- Registry connectivity (GET /v2/)
- Container engine availability (required for push and remove)
- git availability (required for pushes from a repository)
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from registry_cli.config_manager import ConfigManager, ConfigValidationError
from registry_cli.error_utils import ActionableError
from registry_cli.git_client import GitClient
from registry_cli.image_executor import ImageExecutor
from registry_cli.logging_utils import get_logger
from registry_cli.registry_client import RegistryClient

logger = get_logger(__name__)


@dataclass
class HealthCheckResult:
    """Result of a health check"""

    name: str
    status: bool  # True if healthy, False if unhealthy
    message: str
    details: Optional[Dict] = None
    optional: bool = False


class HealthChecker:
    """Performs health checks on the registry and local tools"""

    def __init__(self, config_manager: ConfigManager, registry_client: Optional[RegistryClient] = None,
                 image_executor: Optional[ImageExecutor] = None, git_client: Optional[GitClient] = None):
        self.logger = get_logger(self.__class__.__name__)
        self.config_manager = config_manager
        self.registry_client = registry_client or RegistryClient.from_config(config_manager)
        self.image_executor = image_executor or ImageExecutor.from_config(config_manager)
        self.git_client = git_client or GitClient.from_config(config_manager)

    def check_configuration(self) -> HealthCheckResult:
        try:
            self.config_manager.validate_config()
            return HealthCheckResult(
                name="configuration",
                status=True,
                message="Configuration is valid",
                details={"config_file": self.config_manager.config_file},
            )
        except ConfigValidationError as e:
            return HealthCheckResult(
                name="configuration",
                status=False,
                message=f"Configuration validation failed: {e}",
            )

    def check_registry_connectivity(self) -> HealthCheckResult:
        """Check that the registry answers the Registry v2 base endpoint

        Returns:
            HealthCheckResult indicating registry connectivity status
        """
        address = self.registry_client.registry_address
        self.logger.info(f"Checking registry connectivity at {address}")
        try:
            api_version = self.registry_client.check_connection()
            return HealthCheckResult(
                name="registry_connectivity",
                status=True,
                message=f"Connected to {address}",
                details={"api_version": api_version or "unknown"},
            )
        except ActionableError as e:
            self.logger.debug(f"Registry connectivity check failed: {e}")
            return HealthCheckResult(
                name="registry_connectivity",
                status=False,
                message=str(e),
                details={"suggestions": "; ".join(e.suggestions)} if e.suggestions else None,
            )

    def check_container_engine(self) -> HealthCheckResult:
        command = self.image_executor.command
        if self.image_executor.is_engine_available():
            return HealthCheckResult(
                name="container_engine",
                status=True,
                message=f"'{command}' is available, push and remove are enabled",
            )
        return HealthCheckResult(
            name="container_engine",
            status=False,
            message=f"'{command}' is not available, push and remove are disabled",
        )

    def check_git(self) -> HealthCheckResult:
        if self.git_client.is_available():
            return HealthCheckResult(name="git", status=True, message="git is available", optional=True)
        return HealthCheckResult(
            name="git",
            status=False,
            message="git is not available, pushes from a git repository will fail",
            optional=True,
        )

    def run_all_checks(self, skip_optional: bool = False) -> List[HealthCheckResult]:
        """Run all health checks

        Args:
            skip_optional: If True, skip the git check

        Returns:
            List of HealthCheckResult objects
        """
        results = [
            self.check_configuration(),
            self.check_registry_connectivity(),
            self.check_container_engine(),
        ]
        if not skip_optional:
            results.append(self.check_git())
        return results

    def print_health_report(self, results: List[HealthCheckResult]) -> bool:
        """Print a formatted health check report

        Optional checks are reported but do not fail the report.

        Returns:
            True if all required checks passed, False otherwise
        """
        print("\n" + "=" * 60)
        print("Health Check Report")
        print("=" * 60)

        all_healthy = True

        for result in results:
            status_icon = "✓" if result.status else "✗"
            status_text = "HEALTHY" if result.status else ("UNAVAILABLE" if result.optional else "UNHEALTHY")

            print(f"\n{status_icon} {result.name.upper().replace('_', ' ')}: {status_text}")
            print(f"   {result.message}")

            if result.details:
                for key, value in result.details.items():
                    print(f"   {key}: {value}")

            if not result.status and not result.optional:
                all_healthy = False

        print("\n" + "=" * 60)

        if all_healthy:
            print("✓ All health checks passed")
        else:
            print("✗ Some health checks failed - please review the issues above")

        print("=" * 60 + "\n")

        return all_healthy
