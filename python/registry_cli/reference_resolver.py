"""
Reference group resolution.

The registry has no query for "every tag pointing at digest D", so the group
of a tag is found by looking up the digest of every tag in its repository:
one manifest request per tag. That is fine for private registries with a
modest number of tags per repository.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Union

from registry_cli.logging_utils import get_logger
from registry_cli.models import Reference, TaggedImage
from registry_cli.registry_client import RegistryClient

logger = get_logger(__name__)


class ReferenceResolver:
    """Finds the tags that share a tag's manifest digest.

    Args:
        registry_client: Client used for tag listing and digest lookups
        max_workers: Concurrent digest lookups; 1 looks them up one after another
    """

    def __init__(self, registry_client: RegistryClient, max_workers: int = 1):
        self.registry_client = registry_client
        self.max_workers = max(1, int(max_workers))

    def _lookup_digests(self, name: str, tags: List[str]) -> List[Optional[str]]:
        """Digest for each tag, in the order of `tags`"""
        if self.max_workers == 1 or len(tags) <= 1:
            return [self.registry_client.get_digest(name, tag) for tag in tags]

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(tags))) as executor:
            return list(executor.map(lambda tag: self.registry_client.get_digest(name, tag), tags))

    def resolve_references(self, tagged_image: Union[str, TaggedImage]) -> Optional[List[Reference]]:
        """Return every Reference whose digest equals the digest of `tagged_image`.

        The queried tag is included. The list follows the repository's tag
        order (longest tag first).

        Returns:
            None if the repository has no tags or the tag's digest cannot be read
        """
        image = tagged_image if isinstance(tagged_image, TaggedImage) else TaggedImage.parse(tagged_image)

        tags = self.registry_client.list_tags(image.name)
        if tags is None:
            logger.debug(f"Repository {image.name} has no tags")
            return None

        target_digest = self.registry_client.get_digest(image.name, image.tag)
        if target_digest is None:
            logger.debug(f"Could not read the digest of {image}")
            return None

        digests = self._lookup_digests(image.name, tags)
        references = [
            Reference(tag=tag, digest=digest)
            for tag, digest in zip(tags, digests)
            if digest == target_digest
        ]

        logger.debug(f"{image} ({target_digest}) is referenced by {[r.tag for r in references]}")
        return references
