"""Stable identifiers for processed artifacts."""

import base64
import re
from dataclasses import dataclass

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")


@dataclass(frozen=True)
class ArtifactDescriptor:
    """Descriptive attributes of a processed image."""

    name: str
    byte_size: int
    width: int
    height: int


def fingerprint(
    name: str, processed_byte_size: int, processed_width: int, processed_height: int
) -> str:
    """Derive a fingerprint from an artifact's name, size and dimensions.

    The value is the base64 encoding of ``name_size_WxH`` with every
    non-alphanumeric character removed, so it is stable across restarts and
    compatible with hashes already stored in ``image_downloads``. Two artifacts
    sharing all four attributes collapse to the same fingerprint.
    """
    content = f"{name}_{processed_byte_size}_{processed_width}x{processed_height}"
    encoded = base64.b64encode(content.encode("utf-8")).decode("ascii")
    return _NON_ALNUM.sub("", encoded)


def fingerprint_artifact(artifact: ArtifactDescriptor) -> str:
    """Fingerprint an artifact descriptor."""
    return fingerprint(
        artifact.name, artifact.byte_size, artifact.width, artifact.height
    )
