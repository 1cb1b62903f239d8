"""
Safe removal of image tags.

The Registry v2 API deletes manifests by digest, not tags. Deleting the digest
of a tag that other tags also point at would remove those tags too, so:

- a tag that is the only reference to its digest is removed by deleting the
  manifest;
- a tag that shares its digest is first moved to freshly built placeholder
  content (build + push under the same tag), and that new, unshared manifest
  is deleted. The original manifest, still used by the sibling tags, is left
  alone.

Failed steps are raised as-is. Nothing is rolled back: the registry stays in
the state produced by the last step that succeeded.
"""

from typing import Optional, TextIO, Union

from registry_cli.error_utils import create_image_not_found_error
from registry_cli.image_executor import ImageExecutor
from registry_cli.logging_utils import get_logger
from registry_cli.models import RemovalOutcome, RemovalState, TaggedImage
from registry_cli.reference_resolver import ReferenceResolver
from registry_cli.registry_client import RegistryClient
from registry_cli.scratch import ScratchSpace

logger = get_logger(__name__)


class RemovalOrchestrator:
    """Removes one `name:tag` at a time from the registry.

    Args:
        registry_client: Registry HTTP client
        image_executor: Container engine wrapper used for the untag workaround
        resolver: Reference resolver (defaults to a serial one over registry_client)
        scratch: Provider of scratch build contexts
        stream: Optional sink for progress notices such as "[Deleting app:v1]"
    """

    def __init__(
        self,
        registry_client: RegistryClient,
        image_executor: ImageExecutor,
        resolver: Optional[ReferenceResolver] = None,
        scratch: Optional[ScratchSpace] = None,
        stream: Optional[TextIO] = None,
    ):
        self.registry_client = registry_client
        self.image_executor = image_executor
        self.resolver = resolver or ReferenceResolver(registry_client)
        self.scratch = scratch or ScratchSpace()
        self.stream = stream
        self.state = RemovalState.IDLE

    def _notify(self, message: str) -> None:
        if self.stream is not None:
            self.stream.write(message)

    def remove_image(self, tagged_image: Union[str, TaggedImage]) -> RemovalOutcome:
        """Remove a tag from the registry without touching tags that share its content.

        Returns:
            RemovalOutcome.DELETED when the manifest was deleted directly,
            RemovalOutcome.UNTAGGED when the placeholder workaround was used

        Raises:
            ImageNotFound: If the tag does not exist; nothing is changed
            BuildFailed, PushFailed: If a step of the untag workaround fails
        """
        image = tagged_image if isinstance(tagged_image, TaggedImage) else TaggedImage.parse(tagged_image)

        self.state = RemovalState.RESOLVING
        references = self.resolver.resolve_references(image) or []
        own_reference = next((r for r in references if r.tag == image.tag), None)

        if own_reference is None:
            self.state = RemovalState.NOT_FOUND
            logger.info(f"{image} is not on the registry")
            raise create_image_not_found_error(str(image))

        if len(references) > 1:
            self.state = RemovalState.SHARED_REFERENCE_UNTAG
            siblings = [r.tag for r in references if r.tag != image.tag]
            logger.info(f"{image} shares {own_reference.digest} with {siblings}, untagging")
            self._notify(f"[Untagging {image}]")
            self._untag_image(image)
            self._notify(f"[Successfully untagged {image}]")
            outcome = RemovalOutcome.UNTAGGED
        else:
            self.state = RemovalState.SOLE_REFERENCE_DELETE
            self._notify(f"[Deleting {image}]")
            self.registry_client.delete_manifest(image.name, own_reference.digest)
            self._notify(f"[Successfully deleted {image}]")
            outcome = RemovalOutcome.DELETED

        self.state = RemovalState.DONE
        return outcome

    def _untag_image(self, image: TaggedImage) -> None:
        """Point the tag at placeholder content, then delete that content's manifest"""
        scoped_image = self.registry_client.scoped(str(image))

        with self.scratch.directory("untag") as context_path:
            self._notify(" [Building dummy image]")
            self.image_executor.build(scoped_image, context_path, dummy=True)
            self._notify(" [Successfully built dummy image]")

        self._notify(" [Pushing dummy image]")
        push_result = self.image_executor.push(scoped_image)
        self._notify(" [Successfully pushed dummy image]")

        self._notify(f" [Untagging {image}]")
        self.image_executor.remove_local_image(scoped_image)

        self.registry_client.delete_manifest(image.name, push_result.digest)
