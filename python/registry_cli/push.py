"""Push workflows: a local image, a Dockerfile directory or a git repository"""

import os
from typing import Optional, TextIO, Union

from registry_cli.git_client import GitClient, redact_url
from registry_cli.image_executor import ImageExecutor
from registry_cli.logging_utils import get_logger
from registry_cli.models import PushResult, TaggedImage
from registry_cli.registry_client import RegistryClient
from registry_cli.scratch import ScratchSpace

logger = get_logger(__name__)


class PushOrchestrator:
    """Pushes images to the configured registry under `<address>/<name:tag>`"""

    def __init__(
        self,
        registry_client: RegistryClient,
        image_executor: ImageExecutor,
        git_client: Optional[GitClient] = None,
        scratch: Optional[ScratchSpace] = None,
        stream: Optional[TextIO] = None,
    ):
        self.registry_client = registry_client
        self.image_executor = image_executor
        self.git_client = git_client or GitClient()
        self.scratch = scratch or ScratchSpace()
        self.stream = stream

    def _notify(self, message: str) -> None:
        if self.stream is not None:
            self.stream.write(message)

    def push_image(
        self,
        tagged_image: Union[str, TaggedImage],
        git_url: Optional[str] = None,
        dockerfile_path: Optional[str] = None,
    ) -> PushResult:
        """Push an image and return where it was stored.

        Without a source the local image `tagged_image` is tagged for the
        registry and pushed. With `git_url` the repository is cloned and built;
        with `dockerfile_path` that directory is built, or the directory
        holding that file when it names a Dockerfile.

        Raises:
            CloneFailed, BuildFailed, TagFailed, PushFailed: If a step fails
        """
        image = tagged_image if isinstance(tagged_image, TaggedImage) else TaggedImage.parse(tagged_image)
        scoped_image = self.registry_client.scoped(str(image))

        if not git_url and not dockerfile_path:
            self._notify(f"[Pushing {image}]")
            self.image_executor.tag(str(image), scoped_image)
            push_result = self.image_executor.push(scoped_image)
            self.image_executor.remove_local_image(scoped_image)
            self._notify(f"[Successfully pushed {image}]")
            return push_result

        if git_url:
            with self.scratch.directory("build") as scratch_path:
                clone_path = os.path.join(scratch_path, "source")
                self._notify(f"[Cloning {redact_url(git_url)}]")
                self.git_client.clone(git_url, clone_path)
                self._notify(f"[Successfully cloned {redact_url(git_url)}]\n")
                self._build(image, scoped_image, clone_path)
        else:
            context_path = os.path.expanduser(dockerfile_path)
            dockerfile = None
            if os.path.isfile(context_path):
                dockerfile = os.path.abspath(context_path)
                context_path = os.path.dirname(dockerfile)
            self._build(image, scoped_image, context_path, dockerfile=dockerfile)

        self._notify(f"[Pushing {image}]")
        push_result = self.image_executor.push(scoped_image)
        self._notify(f"[Successfully pushed {image}]\n")
        self.image_executor.remove_local_image(scoped_image)

        return push_result

    def _build(self, image: TaggedImage, scoped_image: str, context_path: str,
               dockerfile: Optional[str] = None) -> None:
        self._notify(f"[Building {image}]")
        self.image_executor.build(scoped_image, context_path, dockerfile=dockerfile)
        self._notify(f"[Successfully built {image}]\n")
