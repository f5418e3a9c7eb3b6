"""
Source discovery — find schema files and the include roots that resolve them.

Walks the configured source directories, import paths and archive
dependencies (materialized through the archive service) and produces:

    - the ordered include-root list (sources, then import paths, then
      archives in declaration order)
    - the compilable schema sources
    - the import-only schema files (context for the compiler, and input
      to the dependency fingerprint)

Absent directories contribute nothing. Unreadable ones are fatal.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from fnmatch import fnmatchcase
from pathlib import Path

from schemabuild.core.errors import DiscoveryError
from schemabuild.core.models.config import GenerationConfig
from schemabuild.core.models.schema import IncludeRoot, RootKind, SchemaFile
from schemabuild.core.services.archives import materialize_archive
from schemabuild.core.services.temp_space import TemporarySpace

logger = logging.getLogger(__name__)


@dataclass
class SourceDiscovery:
    """Everything discovery found for one build."""

    include_roots: list[IncludeRoot] = field(default_factory=list)
    sources: list[SchemaFile] = field(default_factory=list)
    dependencies: list[SchemaFile] = field(default_factory=list)

    @property
    def source_count(self) -> int:
        return len(self.sources)

    def to_dict(self) -> dict:
        return {
            "include_roots": [
                {"path": str(r.path), "kind": r.kind, "origin": r.origin, "compile": r.compile}
                for r in self.include_roots
            ],
            "sources": [s.logical_path for s in self.sources],
            "dependencies": [d.logical_path for d in self.dependencies],
        }


class GlobFilter:
    """Include/exclude globs evaluated against a file's logical path.

    Excludes win over includes; an empty include list accepts everything.
    ``**/`` may match zero directories.
    """

    def __init__(self, includes: list[str] | None = None, excludes: list[str] | None = None):
        self._includes = list(includes or [])
        self._excludes = list(excludes or [])

    @staticmethod
    def _match(logical_path: str, pattern: str) -> bool:
        if fnmatchcase(logical_path, pattern):
            return True
        if pattern.startswith("**/"):
            return fnmatchcase(logical_path, pattern[3:])
        return False

    def matches(self, logical_path: str) -> bool:
        if any(self._match(logical_path, p) for p in self._excludes):
            return False
        return not self._includes or any(self._match(logical_path, p) for p in self._includes)


def _check_readable(directory: Path) -> bool:
    """True if ``directory`` exists and can be listed.

    Raises:
        DiscoveryError: it exists but is not a readable directory.
    """
    if not directory.exists():
        logger.debug("Skipping %s as it does not exist", directory)
        return False
    if not directory.is_dir():
        raise DiscoveryError(f"Configured path is not a directory: {directory}", directory)
    if not os.access(directory, os.R_OK | os.X_OK):
        raise DiscoveryError(f"Configured directory is not readable: {directory}", directory)
    return True


def list_schema_files(
    root: IncludeRoot,
    extensions: list[str],
    glob_filter: GlobFilter | None = None,
) -> list[SchemaFile]:
    """List schema files under an include root, sorted by logical path.

    Raises:
        DiscoveryError: a directory below the root cannot be listed.
    """

    def _on_error(err: OSError) -> None:
        raise DiscoveryError(f"Cannot read {err.filename}: {err.strerror}", err.filename)

    origin: RootKind = root.kind
    found: list[SchemaFile] = []
    for dirpath, dirnames, filenames in os.walk(root.path, onerror=_on_error):
        dirnames.sort()
        for name in filenames:
            if Path(name).suffix.lower() not in extensions:
                continue
            path = Path(dirpath) / name
            logical = path.relative_to(root.path).as_posix()
            if glob_filter is not None and not glob_filter.matches(logical):
                continue
            found.append(
                SchemaFile(
                    path=path.resolve(),
                    root=root.path,
                    logical_path=logical,
                    origin=origin,
                )
            )
    found.sort(key=lambda f: f.logical_path)
    return found


def _directory_roots(paths: list[Path], kind: RootKind, compile: bool) -> list[IncludeRoot]:
    roots = []
    for path in paths:
        if _check_readable(path):
            roots.append(
                IncludeRoot(path=path.resolve(), kind=kind, origin=str(path), compile=compile)
            )
    return roots


def discover_sources(config: GenerationConfig, space: TemporarySpace) -> SourceDiscovery:
    """Discover include roots, compilable sources and import-only files.

    Raises:
        DiscoveryError: a configured directory or archive is unreadable.
    """
    candidates: list[IncludeRoot] = []
    candidates += _directory_roots(config.source_directories, "source", True)
    candidates += _directory_roots(config.import_paths, "import", False)
    for ref in config.archives:
        candidates.append(materialize_archive(ref, space, config.file_extensions))

    # First occurrence wins; keeps declared precedence stable.
    discovery = SourceDiscovery()
    seen_roots: set[Path] = set()
    for root in candidates:
        if root.path in seen_roots:
            logger.debug("Ignoring duplicate include root %s", root.path)
            continue
        seen_roots.add(root.path)
        discovery.include_roots.append(root)

    source_filter = GlobFilter(config.includes, config.excludes)
    seen_files: set[Path] = set()
    seen_logical: dict[str, Path] = {}

    for root in discovery.include_roots:
        files = list_schema_files(
            root,
            config.file_extensions,
            source_filter if root.compile else None,
        )
        for schema in files:
            if schema.path in seen_files:
                continue
            seen_files.add(schema.path)

            if not root.compile:
                discovery.dependencies.append(schema)
                continue

            if schema.logical_path in seen_logical:
                logger.warning(
                    "Ignoring %s: %s already provides %s",
                    schema.path,
                    seen_logical[schema.logical_path],
                    schema.logical_path,
                )
                continue
            seen_logical[schema.logical_path] = schema.path
            discovery.sources.append(schema)

    logger.info(
        "Discovered %d schema source(s) and %d import-only file(s) across %d include root(s)",
        len(discovery.sources),
        len(discovery.dependencies),
        len(discovery.include_roots),
    )
    return discovery
