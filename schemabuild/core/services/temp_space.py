"""
Temporary space — build-scoped working directories.

Every directory the pipeline writes to (archive extraction targets,
argument files, the incremental state) lives under one base directory:

    <build_directory>/schemabuild/<role>/<execution_id>/...

Keeping role and execution id in the path stops main and test builds
(or two executions in the same build) from trampling each other.
"""

from __future__ import annotations

import logging
from pathlib import Path

from schemabuild.core.errors import ResourceConflict

logger = logging.getLogger(__name__)

FRAGMENT = "schemabuild"


def ensure_directory(path: Path) -> Path:
    """Create ``path`` and any missing parents, returning it.

    Idempotent and safe to race: if another process creates the same
    directory first, the result is still success as long as a directory
    ends up at ``path``.

    Raises:
        ResourceConflict: ``path`` or one of its ancestors exists and is
            not a directory.
    """
    try:
        path.mkdir(parents=True, exist_ok=True)
    except FileExistsError:
        # mkdir(exist_ok=True) still raises when a non-directory is in the way,
        # and on some platforms when a concurrent creator wins the race.
        if path.is_dir():
            return path
        raise ResourceConflict(
            f"Cannot create directory {path}: a file is in the way", path
        ) from None
    except NotADirectoryError:
        raise ResourceConflict(
            f"Cannot create directory {path}: an ancestor is not a directory", path
        ) from None

    if not path.is_dir():
        raise ResourceConflict(f"Path exists but is not a directory: {path}", path)
    return path


class TemporarySpace:
    """Allocates working directories under a build-specific base."""

    def __init__(
        self,
        build_directory: Path,
        role: str = "main",
        execution_id: str = "default",
    ):
        self._base = Path(build_directory) / FRAGMENT / (role or "main") / (
            execution_id or "default"
        )

    @property
    def base(self) -> Path:
        return self._base

    def acquire(self, *segments: str) -> Path:
        """Return the directory ``base/segments...``, creating it if needed.

        Raises:
            ValueError: a segment is empty, absolute, or contains ``..``.
            ResourceConflict: the path exists but is not a directory.
        """
        target = self._base
        for segment in segments:
            if not segment or segment in (".", "..") or Path(segment).is_absolute():
                raise ValueError(f"Invalid temporary space segment: {segment!r}")
            if ".." in Path(segment).parts:
                raise ValueError(f"Invalid temporary space segment: {segment!r}")
            target = target / segment

        logger.debug("Acquiring temporary space %s", target)
        return ensure_directory(target)
