"""
Container image reference parsing with Docker's normalisation rules
"""

import re
from dataclasses import dataclass

from harbor_operator.constants import BARE_REGISTRY

_PATH_COMPONENT = re.compile(r"^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*$")
_TAG = re.compile(r"^[\w][\w.-]{0,127}$")
_DIGEST = re.compile(r"^[A-Za-z][A-Za-z0-9]*(?:[-_+.][A-Za-z][A-Za-z0-9]*)*:[0-9a-fA-F]{32,}$")
_HOST = re.compile(r"^[A-Za-z0-9.-]+(?::[0-9]+)?$|^\[[0-9A-Fa-f:]+\](?::[0-9]+)?$")


class InvalidImageReference(ValueError):
    """The string is not a valid image reference"""


@dataclass(frozen=True)
class ImageReference:
    registry: str
    path: str
    tag: str | None = None
    digest: str | None = None

    @property
    def suffix(self) -> str:
        suffix = f":{self.tag}" if self.tag else ""
        if self.digest:
            suffix += f"@{self.digest}"
        return suffix

    def relocate(self, prefix: str) -> str:
        """The same repository path, tag and digest under another registry prefix"""
        return f"{prefix.rstrip('/')}/{self.path}{self.suffix}"

    def __str__(self) -> str:
        return f"{self.registry}/{self.path}{self.suffix}"


def _is_host(component: str) -> bool:
    return "." in component or ":" in component or component == "localhost"


def parse_image_reference(image: str) -> ImageReference:
    """
    Parse and normalise an image reference.

    ``nginx`` becomes ``docker.io/library/nginx``, a first component containing
    a dot or colon (or ``localhost``) is taken as the registry host. No default
    tag is added.

    Raises:
        InvalidImageReference: If the reference does not follow the image grammar
    """
    if not image or image != image.strip():
        raise InvalidImageReference(f"invalid image reference {image!r}")

    name, _, digest = image.partition("@")
    if digest and not _DIGEST.match(digest):
        raise InvalidImageReference(f"invalid digest in image reference {image!r}")

    tag: str | None = None
    last_slash = name.rfind("/")
    colon = name.rfind(":")
    if colon > last_slash:
        name, tag = name[:colon], name[colon + 1 :]
        if not _TAG.match(tag):
            raise InvalidImageReference(f"invalid tag in image reference {image!r}")

    components = name.split("/")
    if len(components) > 1 and _is_host(components[0]):
        registry = components[0]
        if not _HOST.match(registry):
            raise InvalidImageReference(f"invalid registry in image reference {image!r}")
        components = components[1:]
    else:
        registry = BARE_REGISTRY
        if len(components) == 1:
            components = ["library", *components]

    for component in components:
        if not _PATH_COMPONENT.match(component):
            raise InvalidImageReference(f"invalid repository path in image reference {image!r}")

    return ImageReference(
        registry=registry, path="/".join(components), tag=tag, digest=digest or None
    )
