"""
Error types and message utilities for providing actionable guidance to users.

Every error the shell can display derives from ActionableError, which carries
a category, a list of suggested fixes and extra details. The create_* helpers
build the common cases with their suggestions filled in.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCategory(Enum):
    """Categories of errors for better error handling"""
    CONNECTION = "connection"
    AUTHENTICATION = "authentication"
    CONFIGURATION = "configuration"
    RESOURCE = "resource"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


class ActionableError(Exception):
    """Exception with actionable guidance for users"""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN,
                 suggestions: Optional[List[str]] = None, details: Optional[Dict[str, Any]] = None):
        """Initialize actionable error

        Args:
            message: Primary error message
            category: Error category for classification
            suggestions: List of suggested fixes
            details: Additional context information
        """
        self.message = message
        self.category = category
        self.suggestions = suggestions or []
        self.details = details or {}
        super().__init__(self.format_message())

    @property
    def title(self) -> str:
        """Short name shown above the message in the shell"""
        return type(self).__name__

    def format_message(self) -> str:
        """Format the complete error message with suggestions"""
        lines = [f"❌ {self.message}"]

        if self.suggestions:
            lines.append("\n💡 Suggested fixes:")
            for i, suggestion in enumerate(self.suggestions, 1):
                lines.append(f"   {i}. {suggestion}")

        if self.details:
            lines.append("\n📋 Additional details:")
            for key, value in self.details.items():
                lines.append(f"   {key}: {value}")

        return "\n".join(lines)


class RegistryUnreachable(ActionableError):
    """The registry refused the connection or could not be reached"""


class AuthRequired(ActionableError):
    """The registry answered 401; `challenge` holds the WWW-Authenticate header"""

    def __init__(self, challenge: str, **kwargs):
        self.challenge = challenge
        super().__init__(**kwargs)


class RegistryRequestError(ActionableError):
    """The registry answered with an unexpected HTTP status"""

    def __init__(self, status_code: int, **kwargs):
        self.status_code = status_code
        super().__init__(**kwargs)


class ImageNotFound(ActionableError):
    """The requested name:tag does not exist on the registry"""

    def __init__(self, tagged_image: str, **kwargs):
        self.tagged_image = tagged_image
        super().__init__(**kwargs)


class InvalidImageReference(ActionableError):
    """A string could not be split into name and tag"""


class DockerUnavailable(ActionableError):
    """The container engine command is missing or not running"""


class CommandFailed(ActionableError):
    """An external command exited with a nonzero status"""

    def __init__(self, output: str, exit_code: int, **kwargs):
        self.output = output
        self.exit_code = exit_code
        super().__init__(**kwargs)


class BuildFailed(CommandFailed):
    """`docker build` failed"""


class PushFailed(CommandFailed):
    """`docker push` failed or its digest could not be read"""


class TagFailed(CommandFailed):
    """`docker tag` failed"""


class CloneFailed(CommandFailed):
    """`git clone` failed"""


def _tail(output: str, lines: int = 15) -> str:
    """Return the last lines of command output for error details"""
    output_lines = (output or "").strip().splitlines()
    return "\n".join(output_lines[-lines:])


def create_registry_unreachable_error(registry_address: str, error: Exception) -> RegistryUnreachable:
    """Create actionable error for registry connection failures"""
    error_str = str(error).lower()

    suggestions = [
        f"Verify the registry address is correct: {registry_address}",
        "Check network connectivity to the registry",
        "Check if the registry service is running",
        "Try changing the address in your configuration (Config menu or --config)",
    ]

    if "timeout" in error_str or "timed out" in error_str:
        suggestions.insert(1, "Check if the registry is experiencing high load")

    if "name resolution" in error_str or "name or service not known" in error_str:
        suggestions.insert(1, "Verify DNS resolution for the registry hostname")

    if "ssl" in error_str or "certificate" in error_str:
        suggestions.insert(1, "Use an http:// address or set registry.verify_tls: false for self-signed registries")

    return RegistryUnreachable(
        message="Connection to the registry was refused",
        category=ErrorCategory.CONNECTION,
        suggestions=suggestions,
        details={
            "registry_address": registry_address,
            "error_type": type(error).__name__,
            "error_message": str(error)
        }
    )


def create_auth_required_error(registry_address: str, challenge: str) -> AuthRequired:
    """Create actionable error for registries that demand authentication"""
    suggestions = [
        "This client talks to registries without authentication",
        "Point the configuration at a registry that allows anonymous access",
        "Or put an authenticating proxy in front of the registry",
    ]

    if "bearer" in (challenge or "").lower():
        suggestions.insert(0, "The registry uses token authentication (Bearer challenge)")

    return AuthRequired(
        challenge=challenge,
        message=f"Authentication failed: {challenge or 'no challenge given'}",
        category=ErrorCategory.AUTHENTICATION,
        suggestions=suggestions,
        details={
            "registry_address": registry_address,
            "challenge": challenge,
        }
    )


def create_registry_request_error(url: str, status_code: int, body: str = "",
                                  message: str = None) -> RegistryRequestError:
    """Create actionable error for unexpected registry responses"""
    suggestions = [
        "Verify the registry implements the Docker Registry HTTP API v2",
        "Check the registry logs for the failing request",
    ]

    if status_code == 405:
        suggestions.insert(0, "Deletion may be disabled: set REGISTRY_STORAGE_DELETE_ENABLED=true on the registry")

    if status_code >= 500:
        suggestions.insert(0, "The registry reported an internal error, try again later")

    return RegistryRequestError(
        status_code=status_code,
        message=message or f"Registry request failed with HTTP {status_code}",
        category=ErrorCategory.RESOURCE,
        suggestions=suggestions,
        details={
            "url": url,
            "status_code": status_code,
            "response": (body or "").strip()[:500],
        }
    )


def create_image_not_found_error(tagged_image: str) -> ImageNotFound:
    """Create actionable error for a name:tag that is not on the registry"""
    return ImageNotFound(
        tagged_image=tagged_image,
        message=f"Image {tagged_image} is not on this registry",
        category=ErrorCategory.RESOURCE,
        suggestions=[
            "Use the List command to check the repository and tag names",
            "Enter the image as name:tag, without the registry address",
        ],
        details={"image": tagged_image}
    )


def create_invalid_reference_error(value: str, reason: str) -> InvalidImageReference:
    """Create actionable error for malformed name:tag input"""
    return InvalidImageReference(
        message=f"Invalid image reference '{value}': {reason}",
        category=ErrorCategory.CONFIGURATION,
        suggestions=["Use the form name:tag, for example team/app:1.2.3"],
        details={"value": value}
    )


def create_docker_unavailable_error(command: str = "docker") -> DockerUnavailable:
    """Create actionable error for a missing container engine"""
    return DockerUnavailable(
        message="The Docker Engine is needed to push and remove images",
        category=ErrorCategory.CONFIGURATION,
        suggestions=[
            "Make sure the Docker Engine is installed and running",
            f"Make sure the \"{command}\" command is available anywhere in your environment",
            "See: https://docs.docker.com/engine/install/",
        ],
        details={"command": command}
    )


def create_command_failed_error(error_class: type, operation: str, image: str, output: str,
                                exit_code: int) -> CommandFailed:
    """Create actionable error for a failed build, push, tag or clone"""
    output_lower = (output or "").lower()

    suggestions = [
        f"Re-run with --verbose to see the full {operation} output",
    ]

    if "cannot connect to the docker daemon" in output_lower or "is the docker daemon running" in output_lower:
        suggestions.insert(0, "Start the Docker daemon and try again")

    if "http response to https client" in output_lower:
        suggestions.insert(0, "Add the registry to the Docker daemon's insecure-registries list")

    if "no such file or directory" in output_lower or "unable to prepare context" in output_lower:
        suggestions.insert(0, "Check that the path contains a Dockerfile")

    if "denied" in output_lower or "unauthorized" in output_lower or "authentication failed" in output_lower:
        suggestions.insert(0, "Check the credentials for this operation")

    return error_class(
        output=output,
        exit_code=exit_code,
        message=f"{operation.capitalize()} failed for {image} (exit code {exit_code})",
        category=ErrorCategory.RESOURCE,
        suggestions=suggestions,
        details={
            "image": image,
            "exit_code": exit_code,
            "output": _tail(output),
        }
    )
