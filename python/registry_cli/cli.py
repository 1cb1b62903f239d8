"""Command line entry point: `registry-cli [shell|list|push|remove|test-connection|config]`"""

import argparse
import logging
import sys
from typing import List, Optional

from registry_cli import __version__
from registry_cli.catalog import format_catalog, list_images
from registry_cli.config_manager import ConfigManager, ConfigValidationError, get_config_manager
from registry_cli.error_utils import ActionableError
from registry_cli.health_checks import HealthChecker
from registry_cli.logging_utils import get_logger, log_exception, parse_log_level, setup_logging
from registry_cli.models import RemovalOutcome, TaggedImage
from registry_cli.shell import (
    OutputSink,
    RegistryShell,
    build_services,
    confirm_removal,
    open_in_editor,
    print_error,
    print_push_result,
)

logger = get_logger(__name__)


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="registry-cli",
        description="Browse, push and remove images on a Docker Registry v2",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Interactive menu
  registry-cli

  # List repositories and tags
  registry-cli list

  # Build a Dockerfile directory and push it
  registry-cli push myapp:1.0 --dockerfile ./myapp

  # Remove one tag without touching tags that share its content
  registry-cli remove myapp:1.0 --force

  # Change a configuration value
  registry-cli config --set registry.address=https://registry.example.com
        """,
    )
    parser.add_argument("--config", help="Path to the configuration file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show docker and git output and debug logs")
    parser.add_argument("--log-level", default="WARNING", help="Log level (default: WARNING)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("shell", help="Interactive menu (default)")
    subparsers.add_parser("list", help="List repositories and their tags")

    push_parser = subparsers.add_parser("push", help="Push an image to the registry")
    push_parser.add_argument("image", help="Image as name:tag")
    source_group = push_parser.add_mutually_exclusive_group()
    source_group.add_argument("--dockerfile", metavar="PATH", help="Build from this Dockerfile directory")
    source_group.add_argument("--git", metavar="URL", help="Clone and build this git repository")

    remove_parser = subparsers.add_parser("remove", help="Remove an image tag from the registry")
    remove_parser.add_argument("image", help="Image as name:tag")
    remove_parser.add_argument("--force", action="store_true", help="Skip the confirmation prompt")

    health_parser = subparsers.add_parser("test-connection", help="Check the registry and local tools")
    health_parser.add_argument("--skip-optional", action="store_true", help="Skip the git check")

    config_parser = subparsers.add_parser("config", help="Show or change the configuration")
    config_group = config_parser.add_mutually_exclusive_group()
    config_group.add_argument("--edit", action="store_true", help="Edit the configuration in $EDITOR")
    config_group.add_argument("--set", metavar="KEY=VALUE", action="append", dest="assignments",
                              help="Set a value, e.g. registry.address=http://localhost:5000")

    return parser


def _command_list(args, config_manager: ConfigManager, verbose: bool) -> int:
    services = build_services(config_manager)
    entries = list_images(services.registry_client, show_progress=sys.stderr.isatty())
    print(format_catalog(entries))
    return 0


def _command_push(args, config_manager: ConfigManager, verbose: bool) -> int:
    services = build_services(config_manager, notices=OutputSink(), command_output=OutputSink() if verbose else None)
    image = TaggedImage.parse(services.registry_client.strip_address(args.image))
    result = services.push.push_image(image, git_url=args.git, dockerfile_path=args.dockerfile)
    print_push_result(result)
    return 0


def _command_remove(args, config_manager: ConfigManager, verbose: bool) -> int:
    services = build_services(config_manager, notices=OutputSink(), command_output=OutputSink() if verbose else None)
    image = TaggedImage.parse(services.registry_client.strip_address(args.image))

    if args.force:
        logger.warning("⚠️  Force mode enabled - skipping confirmation prompt")
    elif config_manager.requires_confirmation() and not confirm_removal(str(image)):
        print("Removal cancelled.")
        return 0

    outcome = services.removal.remove_image(image)
    if outcome == RemovalOutcome.UNTAGGED:
        print(f"{image} was untagged; tags sharing its content were kept")
    else:
        print(f"{image} was deleted")
    return 0


def _command_test_connection(args, config_manager: ConfigManager, verbose: bool) -> int:
    checker = HealthChecker(config_manager)
    results = checker.run_all_checks(skip_optional=args.skip_optional)
    return 0 if checker.print_health_report(results) else 1


def _command_config(args, config_manager: ConfigManager, verbose: bool) -> int:
    if args.edit:
        config_manager.edit_config(open_in_editor(config_manager.config_as_yaml()))
        print(f"Configuration saved to {config_manager.save()}")
    elif args.assignments:
        for assignment in args.assignments:
            key, sep, value = assignment.partition("=")
            if not sep:
                raise ConfigValidationError(f"Expected KEY=VALUE, got: {assignment}")
            config_manager.set_value(key.strip(), value.strip())
        print(f"Configuration saved to {config_manager.save()}")
    else:
        config_manager.print_config()
    return 0


def _command_shell(args, config_manager: ConfigManager, verbose: bool) -> int:
    print(f"Registry V2 CLI {__version__}")
    return RegistryShell(config_manager, verbose=verbose).run()


COMMANDS = {
    "shell": _command_shell,
    "list": _command_list,
    "push": _command_push,
    "remove": _command_remove,
    "test-connection": _command_test_connection,
    "config": _command_config,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = create_parser()
    args = parser.parse_args(argv)
    command = args.command or "shell"

    level = logging.DEBUG if args.verbose else parse_log_level(args.log_level)
    setup_logging(level, override_level=True)

    try:
        if command == "config":
            # An invalid file must stay editable.
            config_manager = ConfigManager(config_file=args.config, validate=False)
        else:
            config_manager = get_config_manager(args.config)
    except ConfigValidationError as e:
        print_error(e)
        return 1

    verbose = args.verbose or config_manager.is_verbose()

    try:
        return COMMANDS[command](args, config_manager, verbose)
    except (ActionableError, ConfigValidationError) as e:
        logger.debug(f"{command} failed: {e}")
        print_error(e)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 130
    except Exception as e:
        log_exception(logger, f"Error in {command}", exc_info=e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
