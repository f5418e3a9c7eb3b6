"""
Archive materializer — unpack bundled schema files into temporary space.

Archive dependencies (jar/zip/tar) often carry schema files that other
sources import. Each archive gets a deterministic extraction directory
keyed by its absolute path, so repeated builds reuse it. A marker file
records the archive's content digest and the extensions it was filtered
by; when both are unchanged the extraction is skipped entirely.

Only schema files (by extension) are extracted, and members whose paths
would escape the extraction directory are ignored.
"""

from __future__ import annotations

import hashlib
import logging
import shutil
import tarfile
import zipfile
from pathlib import Path, PurePosixPath

from schemabuild.core.errors import DiscoveryError
from schemabuild.core.models.config import ArchiveRef
from schemabuild.core.models.schema import IncludeRoot
from schemabuild.core.services.temp_space import TemporarySpace

logger = logging.getLogger(__name__)

MARKER_FILE = ".schemabuild-archive"
_CHUNK = 64 * 1024


def archive_digest(path: Path) -> str:
    """SHA-256 of an archive's bytes."""
    digest = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK), b""):
            digest.update(chunk)
    return digest.hexdigest()


def marker_text(digest: str, extensions: list[str]) -> str:
    """Marker contents: the digest, then the sorted extension filter."""
    return f"{digest} {','.join(sorted(set(extensions)))}\n"


def extraction_name(path: Path) -> str:
    """Stable directory name for an archive: ``<stem>-<sha1(abs path)[:12]>``."""
    key = hashlib.sha1(str(path.resolve()).encode("utf-8")).hexdigest()[:12]
    return f"{path.stem}-{key}"


def _safe_member_path(name: str) -> PurePosixPath | None:
    """Normalize an archive member name, or None if it escapes the root."""
    member = PurePosixPath(name.replace("\\", "/"))
    if member.is_absolute() or ".." in member.parts:
        return None
    parts = [p for p in member.parts if p not in ("", ".")]
    if not parts:
        return None
    return PurePosixPath(*parts)


def _wanted(member: PurePosixPath, extensions: list[str]) -> bool:
    return member.suffix.lower() in extensions


def _clear_directory(directory: Path) -> None:
    for child in directory.iterdir():
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child)
        else:
            child.unlink()


def _extract_zip(archive: Path, target: Path, extensions: list[str]) -> int:
    count = 0
    with zipfile.ZipFile(archive) as zf:
        for info in zf.infolist():
            if info.is_dir():
                continue
            member = _safe_member_path(info.filename)
            if member is None:
                logger.warning("Ignoring unsafe archive member %s in %s", info.filename, archive)
                continue
            if not _wanted(member, extensions):
                continue
            dest = target.joinpath(*member.parts)
            dest.parent.mkdir(parents=True, exist_ok=True)
            with zf.open(info) as src, dest.open("wb") as out:
                shutil.copyfileobj(src, out)
            count += 1
    return count


def _extract_tar(archive: Path, target: Path, extensions: list[str]) -> int:
    count = 0
    with tarfile.open(archive, "r:*") as tar:
        for info in tar.getmembers():
            if not info.isfile():
                continue
            member = _safe_member_path(info.name)
            if member is None:
                logger.warning("Ignoring unsafe archive member %s in %s", info.name, archive)
                continue
            if not _wanted(member, extensions):
                continue
            fobj = tar.extractfile(info)
            if fobj is None:
                continue
            dest = target.joinpath(*member.parts)
            dest.parent.mkdir(parents=True, exist_ok=True)
            with fobj, dest.open("wb") as out:
                shutil.copyfileobj(fobj, out)
            count += 1
    return count


def extract_schema_files(archive: Path, target: Path, extensions: list[str]) -> int:
    """Replace the contents of ``target`` with the archive's schema files.

    Returns:
        Number of files extracted.

    Raises:
        DiscoveryError: the archive cannot be read or is not zip/tar.
    """
    _clear_directory(target)
    try:
        if zipfile.is_zipfile(archive):
            return _extract_zip(archive, target, extensions)
        if tarfile.is_tarfile(archive):
            return _extract_tar(archive, target, extensions)
    except (OSError, zipfile.BadZipFile, tarfile.TarError) as e:
        raise DiscoveryError(f"Failed to extract archive {archive}: {e}", archive) from e
    raise DiscoveryError(f"Not a zip or tar archive: {archive}", archive)


def materialize_archive(
    ref: ArchiveRef,
    space: TemporarySpace,
    extensions: list[str],
) -> IncludeRoot:
    """Turn an archive dependency into an include root.

    Directories are used in place. Archive files are extracted into
    ``space/archives/<name>`` unless the marker shows the same content
    was already extracted with the same extension filter.

    Raises:
        DiscoveryError: the archive is missing or unreadable.
    """
    path = ref.path
    if path.is_dir():
        logger.debug("Archive dependency %s is a directory, using it in place", path)
        return IncludeRoot(
            path=path.resolve(),
            kind="archive",
            origin=str(path),
            compile=ref.compile_sources,
        )

    if not path.is_file():
        raise DiscoveryError(f"Archive dependency not found: {path}", path)

    try:
        digest = archive_digest(path)
    except OSError as e:
        raise DiscoveryError(f"Cannot read archive {path}: {e}", path) from e

    target = space.acquire("archives", extraction_name(path))
    marker = target / MARKER_FILE
    expected = marker_text(digest, extensions)

    if marker.is_file() and marker.read_text(encoding="utf-8") == expected:
        logger.debug("Archive %s unchanged, reusing %s", path, target)
    else:
        count = extract_schema_files(path, target, extensions)
        marker.write_text(expected, encoding="utf-8")
        logger.info("Extracted %d schema file(s) from %s", count, path.name)

    return IncludeRoot(
        path=target.resolve(),
        kind="archive",
        origin=str(path),
        compile=ref.compile_sources,
    )
