"""
Container engine wrapper for building, tagging, pushing and removing images.

Each operation runs one `docker` command. Failures of build, tag and push are
raised as BuildFailed / PushFailed / TagFailed carrying the captured output
and exit code; removing a local image and probing the engine never raise.
"""

import os
import re
import time
from typing import Optional, TextIO

from registry_cli.error_utils import (
    ActionableError,
    BuildFailed,
    PushFailed,
    TagFailed,
    create_command_failed_error,
    create_docker_unavailable_error,
)
from registry_cli.logging_utils import get_logger
from registry_cli.models import PushResult
from registry_cli.process_utils import CommandResult, probe_command, run_command

logger = get_logger(__name__)

_REPOSITORY_RE = re.compile(r"\[(?P<repository>[^\]]+)\]")
_DIGEST_RE = re.compile(r"^\s*(?P<tag>[^\s:]+):\s+digest:\s+(?P<digest>\S+)", re.MULTILINE)


def write_dummy_dockerfile(context_path: str, base_image: str = "alpine:latest") -> str:
    """Write a Dockerfile whose content is unique to the current millisecond.

    Every build of it produces a new image digest.

    Returns:
        Path of the written Dockerfile
    """
    os.makedirs(context_path, exist_ok=True)
    timestamp = int(time.time() * 1000)
    dockerfile_path = os.path.join(context_path, "Dockerfile")
    with open(dockerfile_path, "w") as f:
        f.write(f"FROM {base_image}\nENTRYPOINT /dummy\nRUN touch {timestamp}\n")
    return dockerfile_path


def parse_push_output(output: str, image_tag: str) -> Optional[PushResult]:
    """Extract repository, tag and digest from `docker push` output.

    Expects the "The push refers to repository [...]" header and a
    "<tag>: digest: <digest> size: <n>" trailer. Returns None when no
    digest is present.
    """
    digest_matches = list(_DIGEST_RE.finditer(output or ""))
    if not digest_matches:
        return None
    digest_match = digest_matches[-1]

    repository_match = _REPOSITORY_RE.search(output)
    if repository_match:
        repository = repository_match.group("repository")
    else:
        repository = image_tag.rpartition(":")[0] or image_tag

    return PushResult(repository=repository, tag=digest_match.group("tag"), digest=digest_match.group("digest"))


class ImageExecutor:
    """Runs container engine commands.

    Args:
        command: Engine executable (default: docker)
        dummy_base_image: Base image for placeholder builds
        stream: Optional sink receiving the indented command output
    """

    def __init__(self, command: str = "docker", dummy_base_image: str = "alpine:latest",
                 stream: Optional[TextIO] = None):
        self.command = command
        self.dummy_base_image = dummy_base_image
        self.stream = stream

    @classmethod
    def from_config(cls, config_manager, stream: Optional[TextIO] = None) -> "ImageExecutor":
        return cls(
            command=config_manager.get_docker_command(),
            dummy_base_image=config_manager.get_dummy_base_image(),
            stream=stream,
        )

    def _run(self, *args: str) -> CommandResult:
        cmd = [self.command, *args]
        try:
            return run_command(cmd, stream=self.stream)
        except FileNotFoundError:
            raise create_docker_unavailable_error(self.command)

    def build(self, image_tag: str, source_path: str, dummy: bool = False,
              dockerfile: Optional[str] = None) -> CommandResult:
        """Build `image_tag` from the build context at `source_path`.

        With dummy=True a placeholder Dockerfile is written into source_path first.
        `dockerfile` names a Dockerfile outside the default `source_path/Dockerfile`.

        Raises:
            BuildFailed: On a nonzero exit or a missing Dockerfile
        """
        if dummy:
            write_dummy_dockerfile(source_path, self.dummy_base_image)

        if dockerfile:
            if not os.path.isfile(dockerfile):
                raise create_command_failed_error(
                    BuildFailed, "build", image_tag, f"Dockerfile {dockerfile} does not exist", 1
                )
            args = ["build", "-t", image_tag, "-f", dockerfile, source_path]
        elif os.path.isfile(os.path.join(source_path, "Dockerfile")):
            args = ["build", "-t", image_tag, source_path]
        else:
            raise create_command_failed_error(
                BuildFailed, "build", image_tag, f"No Dockerfile found in {source_path}", 1
            )

        logger.info(f"Building {image_tag} from {source_path}")
        result = self._run(*args)
        if not result.ok:
            raise create_command_failed_error(BuildFailed, "build", image_tag, result.output, result.exit_code)
        return result

    def push(self, image_tag: str) -> PushResult:
        """Push `image_tag` and return the repository, tag and digest it was stored under.

        Raises:
            PushFailed: On a nonzero exit or when no digest appears in the output
        """
        logger.info(f"Pushing {image_tag}")
        result = self._run("push", image_tag)
        if not result.ok:
            raise create_command_failed_error(PushFailed, "push", image_tag, result.output, result.exit_code)

        push_result = parse_push_output(result.output, image_tag)
        if push_result is None:
            raise create_command_failed_error(
                PushFailed, "push", image_tag, f"No digest found in push output:\n{result.output}", 0
            )

        logger.info(f"Pushed {image_tag} as {push_result.digest}")
        return push_result

    def tag(self, source_tag: str, target_tag: str) -> None:
        """Create a local alias `target_tag` for `source_tag`.

        Raises:
            TagFailed: On a nonzero exit
        """
        result = self._run("tag", source_tag, target_tag)
        if not result.ok:
            raise create_command_failed_error(TagFailed, "tag", source_tag, result.output, result.exit_code)

    def remove_local_image(self, image_tag: str) -> bool:
        """Remove a local image; failures are logged and reported as False"""
        try:
            result = self._run("rmi", image_tag)
        except (ActionableError, OSError) as e:
            logger.warning(f"Could not remove local image {image_tag}: {e}")
            return False

        if not result.ok:
            logger.warning(f"Could not remove local image {image_tag}: {result.output.strip()}")
            return False
        return True

    def is_engine_available(self) -> bool:
        """Return True if `docker version` succeeds"""
        return probe_command([self.command, "version"])
