"""
Fingerprints — stable digests that decide what changed between builds.

Three kinds of digest feed the incremental decision:

    - content hash per schema file (SHA-256 of its bytes)
    - compiler identity (compiler + plugins: path, version, size, mtime)
    - config fingerprint (every setting that shapes generated output)

A file's fingerprint combines its logical path, content hash and the
compiler identity, so upgrading the compiler re-classifies every file.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import shutil
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from schemabuild.core.errors import DiscoveryError
from schemabuild.core.models.config import GenerationConfig
from schemabuild.core.models.schema import SchemaFile
from schemabuild.core.models.state import BuildState, FileRecord

logger = logging.getLogger(__name__)

_CHUNK = 64 * 1024


def _sha256(*parts: str) -> str:
    return hashlib.sha256("\0".join(parts).encode("utf-8")).hexdigest()


def content_hash(path: Path) -> str:
    """SHA-256 of a file's bytes.

    Raises:
        DiscoveryError: the file cannot be read.
    """
    digest = hashlib.sha256()
    try:
        with path.open("rb") as f:
            for chunk in iter(lambda: f.read(_CHUNK), b""):
                digest.update(chunk)
    except OSError as e:
        raise DiscoveryError(f"Cannot read schema file {path}: {e}", path) from e
    return digest.hexdigest()


def hash_files(paths: Iterable[Path], max_workers: int | None = None) -> dict[Path, str]:
    """Content-hash many files concurrently."""
    unique = list(dict.fromkeys(paths))
    if len(unique) <= 1:
        return {p: content_hash(p) for p in unique}
    workers = max_workers or min(8, (os.cpu_count() or 1) + 2)
    with ThreadPoolExecutor(max_workers=workers) as pool:
        return dict(zip(unique, pool.map(content_hash, unique)))


def _executable_signature(executable: str) -> str:
    """Path plus size/mtime of an executable, or just its name if not found."""
    located = shutil.which(executable) or executable
    try:
        st = Path(located).stat()
    except OSError:
        return located
    return f"{located}:{st.st_size}:{st.st_mtime_ns}"


def compiler_identity(config: GenerationConfig) -> str:
    """Digest identifying the compiler and every plugin used to generate."""
    parts = [
        _executable_signature(config.compiler.executable),
        config.compiler.version,
    ]
    for plugin in config.ordered_plugins():
        parts += [plugin.id, _executable_signature(plugin.executable), plugin.options or ""]
    return _sha256(*parts)


def config_fingerprint(config: GenerationConfig) -> str:
    """Digest of every configuration value that shapes generated output.

    Compiler identity is deliberately absent: it is tracked per file.
    """
    payload = {
        "role": config.role,
        "output_directory": str(config.effective_output_directory),
        "source_directories": [str(p) for p in config.source_directories],
        "import_paths": [str(p) for p in config.import_paths],
        "archives": [
            {"path": str(a.path), "compile_sources": a.compile_sources} for a in config.archives
        ],
        "includes": config.includes,
        "excludes": config.excludes,
        "file_extensions": config.file_extensions,
        "languages": config.compiler.languages,
        "lite": config.compiler.lite,
        "descriptor_set": (
            config.compiler.descriptor_set.model_dump(mode="json")
            if config.compiler.descriptor_set
            else None
        ),
        "fatal_warnings": config.compiler.fatal_warnings,
        "extra_arguments": config.compiler.extra_arguments,
        "plugins": [
            {
                "id": p.id,
                "options": p.options,
                "order": p.order,
                "output_directory": str(config.plugin_output_directory(p)),
            }
            for p in config.ordered_plugins()
        ],
    }
    return hashlib.sha256(
        json.dumps(payload, sort_keys=True).encode("utf-8")
    ).hexdigest()


def file_fingerprint(logical_path: str, content: str, identity: str) -> str:
    return _sha256(logical_path, content, identity)


def dependency_fingerprint(dependencies: Iterable[SchemaFile], hashes: dict[Path, str]) -> str:
    """Digest of the import-only file set (logical paths and content)."""
    entries = sorted(
        (d.logical_path, str(d.root), hashes[d.path]) for d in dependencies
    )
    return _sha256(*("|".join(e) for e in entries))


def build_state(
    sources: list[SchemaFile],
    dependencies: list[SchemaFile],
    config: GenerationConfig,
) -> BuildState:
    """Fingerprint the current tree into a fresh BuildState (no outputs yet)."""
    hashes = hash_files([s.path for s in sources] + [d.path for d in dependencies])
    identity = compiler_identity(config)

    files: dict[str, FileRecord] = {}
    for schema in sources:
        digest = hashes[schema.path]
        files[schema.logical_path] = FileRecord(
            logical_path=schema.logical_path,
            content_hash=digest,
            compiler_identity=identity,
            fingerprint=file_fingerprint(schema.logical_path, digest, identity),
        )

    return BuildState(
        config_fingerprint=config_fingerprint(config),
        dependency_fingerprint=dependency_fingerprint(dependencies, hashes),
        files=files,
    )


@dataclass
class Classification:
    """How the current sources relate to the previous build."""

    unchanged: set[str] = field(default_factory=set)
    changed: set[str] = field(default_factory=set)
    added: set[str] = field(default_factory=set)
    removed: set[str] = field(default_factory=set)

    @property
    def dirty(self) -> set[str]:
        return self.changed | self.added

    def to_dict(self) -> dict:
        keys = ("unchanged", "changed", "added", "removed")
        return {key: sorted(getattr(self, key)) for key in keys}


def classify(current: BuildState, previous: BuildState) -> Classification:
    """Compare file records of two states by logical path."""
    result = Classification()
    for logical, record in current.files.items():
        old = previous.files.get(logical)
        if old is None:
            result.added.add(logical)
        elif (
            old.content_hash == record.content_hash
            and old.compiler_identity == record.compiler_identity
        ):
            result.unchanged.add(logical)
        else:
            result.changed.add(logical)
    result.removed = set(previous.files) - set(current.files)
    return result
