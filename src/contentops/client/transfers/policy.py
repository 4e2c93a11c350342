"""Upload selection policy and size formatting."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TypeVar

from contentops.client.transfers.types import UploadSource

logger = logging.getLogger(__name__)

S = TypeVar("S", bound=UploadSource)


def format_bytes(size: int) -> str:
    """Format a byte count for display (e.g., "1.5 KB")."""
    if size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB"]
    i = min(int(math.floor(math.log(size, 1024))), len(units) - 1)
    return f"{round(size / 1024**i, 1):g} {units[i]}"


@dataclass(frozen=True)
class UploadPolicy:
    """Limits applied to a selection before it is enqueued.

    Attributes:
        max_files: Files beyond this count are ignored.
        max_size_bytes: Larger files are rejected.
        content_type_prefix: Required MIME prefix, e.g. "image/".
    """

    max_files: int | None = None
    max_size_bytes: int | None = None
    content_type_prefix: str | None = None

    def validate(self, sources: Iterable[S]) -> tuple[list[S], list[str]]:
        """Split a selection into accepted sources and rejection messages."""
        selected = list(sources)
        if self.max_files is not None and len(selected) > self.max_files:
            logger.info("Selection truncated to %d files", self.max_files)
            selected = selected[: self.max_files]

        accepted: list[S] = []
        errors: list[str] = []
        for source in selected:
            prefix = self.content_type_prefix
            if prefix and not source.content_type.startswith(prefix):
                kind = "an image" if prefix == "image/" else f"a {prefix.rstrip('/')} file"
                errors.append(f"{source.name} is not {kind}")
            elif self.max_size_bytes is not None and source.size_bytes > self.max_size_bytes:
                errors.append(f"{source.name} exceeds {format_bytes(self.max_size_bytes)} limit")
            else:
                accepted.append(source)
        return accepted, errors


# Media gallery: at most 25 images of 5 MB each
GALLERY_POLICY = UploadPolicy(
    max_files=25,
    max_size_bytes=5 * 1024 * 1024,
    content_type_prefix="image/",
)
