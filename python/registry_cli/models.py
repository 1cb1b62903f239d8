"""Data classes shared by the registry client, executor and orchestrators"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Tuple

from registry_cli.error_utils import create_invalid_reference_error


@dataclass(frozen=True)
class TaggedImage:
    """An image reference split at its final colon.

    The name may contain slashes and a registry host with a port; the tag is
    everything after the last colon, so str() reproduces the parsed string.
    """

    name: str
    tag: str

    @classmethod
    def parse(cls, value: str) -> "TaggedImage":
        """Split `name:tag`

        Raises:
            InvalidImageReference: If there is no tag, no name, or the final
                colon belongs to a host port (e.g. `host:5000/app`)
        """
        value = (value or "").strip()
        name, sep, tag = value.rpartition(":")
        if not sep:
            raise create_invalid_reference_error(value, "missing ':tag'")
        if not name:
            raise create_invalid_reference_error(value, "missing image name")
        if not tag:
            raise create_invalid_reference_error(value, "missing tag after ':'")
        if "/" in tag:
            raise create_invalid_reference_error(value, "missing ':tag' (the last ':' is part of the host)")
        return cls(name=name, tag=tag)

    def __str__(self) -> str:
        return f"{self.name}:{self.tag}"


def extract_name_and_tag(tagged_image: str) -> Tuple[str, str]:
    """Return (name, tag) for a `name:tag` string"""
    image = TaggedImage.parse(tagged_image)
    return image.name, image.tag


@dataclass(frozen=True)
class Reference:
    """One tag of a repository and the manifest digest it resolves to"""

    tag: str
    digest: str


@dataclass(frozen=True)
class PushResult:
    """Summary parsed from a successful push"""

    repository: str
    tag: str
    digest: str


@dataclass
class CatalogEntry:
    """A repository and its tags, longest tag first"""

    name: str
    tags: List[str] = field(default_factory=list)


class RemovalState(Enum):
    """States of a single removal"""

    IDLE = "idle"
    RESOLVING = "resolving"
    NOT_FOUND = "not_found"
    SOLE_REFERENCE_DELETE = "sole_reference_delete"
    SHARED_REFERENCE_UNTAG = "shared_reference_untag"
    DONE = "done"


class RemovalOutcome(Enum):
    """What a successful removal did"""

    DELETED = "deleted"  # The manifest was deleted by digest
    UNTAGGED = "untagged"  # The tag was moved to placeholder content which was then deleted
