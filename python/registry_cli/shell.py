"""
Interactive menu for the registry.

The shell loops over List / Push / Remove / Config / Test Connection / Exit.
Errors raised by an operation are printed and the loop continues. Push and
Remove need the container engine; when it is missing they are shown as
disabled and choosing them reports DockerUnavailable.
"""

import os
import shlex
import subprocess
import sys
import tempfile
from dataclasses import dataclass
from typing import Callable, List, Optional, TextIO, Tuple

from registry_cli.catalog import format_catalog, list_images
from registry_cli.config_manager import ConfigManager, ConfigValidationError
from registry_cli.error_utils import ActionableError, create_docker_unavailable_error
from registry_cli.git_client import GitClient
from registry_cli.image_executor import ImageExecutor
from registry_cli.logging_utils import get_logger
from registry_cli.models import PushResult, RemovalOutcome, TaggedImage
from registry_cli.push import PushOrchestrator
from registry_cli.reference_resolver import ReferenceResolver
from registry_cli.registry_client import RegistryClient
from registry_cli.removal import RemovalOrchestrator
from registry_cli.scratch import ScratchSpace

logger = get_logger(__name__)

SEPARATOR = "=" * 60

PUSH_SOURCES = ["Local Built Image", "Dockerfile", "Git Repository", "Cancel"]


class OutputSink:
    """Text sink that prints every non-blank line it receives"""

    def __init__(self, out: Optional[TextIO] = None, prefix: str = ""):
        self.out = out
        self.prefix = prefix

    def write(self, data: str) -> int:
        out = self.out or sys.stdout
        for line in str(data).splitlines():
            if line.strip():
                out.write(f"{self.prefix}{line}\n")
        out.flush()
        return len(data)

    def flush(self) -> None:
        (self.out or sys.stdout).flush()


@dataclass
class Services:
    """Components wired from one configuration"""

    registry_client: RegistryClient
    image_executor: ImageExecutor
    git_client: GitClient
    removal: RemovalOrchestrator
    push: PushOrchestrator


def build_services(config_manager: ConfigManager, notices: Optional[TextIO] = None,
                   command_output: Optional[TextIO] = None) -> Services:
    """Create the registry client and orchestrators from configuration.

    Args:
        notices: Sink for progress notices such as "[Pushing app:v1]"
        command_output: Sink for docker and git output (usually only when verbose)
    """
    registry_client = RegistryClient.from_config(config_manager)
    image_executor = ImageExecutor.from_config(config_manager, stream=command_output)
    git_client = GitClient.from_config(config_manager, stream=command_output)
    scratch = ScratchSpace.from_config(config_manager)
    resolver = ReferenceResolver(registry_client, max_workers=config_manager.get_resolver_max_workers())

    return Services(
        registry_client=registry_client,
        image_executor=image_executor,
        git_client=git_client,
        removal=RemovalOrchestrator(registry_client, image_executor, resolver=resolver, scratch=scratch,
                                    stream=notices),
        push=PushOrchestrator(registry_client, image_executor, git_client=git_client, scratch=scratch,
                              stream=notices),
    )


def open_in_editor(text: str) -> str:
    """Let the user edit `text` in $VISUAL / $EDITOR (default vi) and return the result"""
    editor = os.environ.get("VISUAL") or os.environ.get("EDITOR") or "vi"
    fd, path = tempfile.mkstemp(prefix="registry-cli-config-", suffix=".yaml")
    try:
        with os.fdopen(fd, "w") as f:
            f.write(text)
        try:
            subprocess.run(shlex.split(editor) + [path], check=True)
        except (OSError, subprocess.CalledProcessError) as e:
            raise ConfigValidationError(f"Editor '{editor}' failed, configuration unchanged: {e}")
        with open(path, "r") as f:
            return f.read()
    finally:
        os.remove(path)


def confirm_removal(image: str, input_func: Callable[[str], str] = input) -> bool:
    """Ask the user to confirm the removal of one tag

    Returns:
        True if user confirmed, False otherwise
    """
    print("\n" + SEPARATOR)
    print("⚠️  WARNING: You are about to REMOVE an image tag from the registry!")
    print(SEPARATOR)
    print(f"This will remove {image}.")
    print("Other tags that share its content are kept.")
    print("This action cannot be undone.")
    print(SEPARATOR)

    while True:
        response = input_func("Are you sure you want to proceed? (yes/no): ").lower().strip()
        if response in ["yes", "y"]:
            return True
        elif response in ["no", "n"]:
            return False
        else:
            print("Please enter 'yes' or 'no'.")


def print_push_result(result: PushResult) -> None:
    print(f"Repository: {result.repository}")
    print(f"Tag: {result.tag}")
    print(f"Digest: {result.digest}")


def print_error(error: Exception) -> None:
    title = error.title if isinstance(error, ActionableError) else type(error).__name__
    print()
    print(title)
    print(str(error))
    print()


class RegistryShell:
    """Menu loop over one configuration.

    Args:
        config_manager: Configuration, re-read before every command
        verbose: Echo docker and git output while commands run
        input_func: Line reader (defaults to input)
        edit_text: Editor used by the Config command (defaults to open_in_editor)
        services_factory: Builds the services for each command
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        verbose: bool = False,
        input_func: Callable[[str], str] = input,
        edit_text: Callable[[str], str] = open_in_editor,
        services_factory: Callable[..., Services] = build_services,
    ):
        self.config_manager = config_manager
        self.verbose = verbose
        self.input_func = input_func
        self.edit_text = edit_text
        self.services_factory = services_factory
        self.last_option: Optional[str] = None

    def _menu(self, engine_available: bool) -> List[Tuple[str, str]]:
        disabled = " [Disabled: Docker Not Available]"
        return [
            ("List", "List"),
            ("Push", "Push" if engine_available else "Push" + disabled),
            ("Remove", "Remove" if engine_available else "Remove" + disabled),
            ("Config", "Config"),
            ("Test Connection", "Test Connection"),
            ("Exit", "Exit"),
        ]

    def _select(self, options: List[Tuple[str, str]], message: str, default: Optional[str] = None) -> str:
        """Show numbered options and return the key of the chosen one"""
        for i, (_, label) in enumerate(options, 1):
            print(f"  {i}. {label}")
        while True:
            hint = f" [{default}]" if default else ""
            answer = self.input_func(f"{message}{hint} ").strip()
            if not answer and default:
                return default
            if answer.isdigit() and 1 <= int(answer) <= len(options):
                return options[int(answer) - 1][0]
            for key, _ in options:
                if answer.lower() == key.lower():
                    return key
            print(f"Please enter a number between 1 and {len(options)}.")

    def _ask(self, message: str) -> str:
        return self.input_func(message).strip()

    def run(self) -> int:
        """Run the menu until Exit or end of input"""
        try:
            while True:
                engine_available = ImageExecutor.from_config(self.config_manager).is_engine_available()
                print(SEPARATOR)
                print(f"Connected to: {self.config_manager.get_registry_address()}")
                print()

                option = self._select(self._menu(engine_available), "Choose a command to execute:",
                                      default=self.last_option)
                self.last_option = option
                if option == "Exit":
                    return 0

                try:
                    self.execute(option, engine_available)
                except (ActionableError, ConfigValidationError) as e:
                    logger.debug(f"{option} failed: {e}")
                    print_error(e)
        except (EOFError, KeyboardInterrupt):
            print()
            return 0

    def execute(self, option: str, engine_available: bool = True) -> None:
        """Run one menu command; errors propagate to the caller"""
        if option == "Config":
            self.edit_config()
            return

        if option in ("Push", "Remove") and not engine_available:
            raise create_docker_unavailable_error(self.config_manager.get_docker_command())

        command_output = OutputSink() if self.verbose else None
        services = self.services_factory(self.config_manager, notices=OutputSink(), command_output=command_output)

        if option == "Test Connection":
            self.test_connection(services)
        elif option == "List":
            self.list_catalog(services)
        elif option == "Push":
            self.push(services)
        elif option == "Remove":
            self.remove(services)

    def edit_config(self) -> None:
        edited = self.edit_text(self.config_manager.config_as_yaml())
        self.config_manager.edit_config(edited)
        path = self.config_manager.save()
        print(f"Configuration saved to {path}")

    def test_connection(self, services: Services) -> None:
        version = services.registry_client.check_connection()
        print()
        print(f"Connection successful at {services.registry_client.registry_address}")
        print(f"Registry Version: {version or 'unknown'}")
        print()

    def list_catalog(self, services: Services) -> None:
        entries = list_images(services.registry_client, show_progress=sys.stderr.isatty())
        print("Registry Catalog")
        print(format_catalog(entries))

    def push(self, services: Services) -> None:
        source = self._select([(s, s) for s in PUSH_SOURCES], "Please select the image source:")
        if source == "Cancel":
            return

        git_url = None
        dockerfile_path = None
        if source == "Dockerfile":
            dockerfile_path = self._ask(" Dockerfile path: ")
        elif source == "Git Repository":
            git_url = self._ask(" Git Repository url: ")

        image = TaggedImage.parse(services.registry_client.strip_address(self._ask(" Image name (repo:tag): ")))
        result = services.push.push_image(image, git_url=git_url, dockerfile_path=dockerfile_path)
        print_push_result(result)

    def remove(self, services: Services) -> None:
        raw = self._ask("Enter the image name and tag (name:tag): ")
        image = TaggedImage.parse(services.registry_client.strip_address(raw))
        if self.config_manager.requires_confirmation() and not confirm_removal(str(image), self.input_func):
            print("Removal cancelled.")
            return
        outcome = services.removal.remove_image(image)
        if outcome == RemovalOutcome.UNTAGGED:
            print(f"{image} was untagged; tags sharing its content were kept")
        else:
            print(f"{image} was deleted")
