"""
Tests for source discovery and archive materialization.
"""

import io
import os
import tarfile
import zipfile
from pathlib import Path

import pytest

from schemabuild.core.errors import DiscoveryError
from schemabuild.core.models.config import ArchiveRef
from schemabuild.core.services.archives import (
    MARKER_FILE,
    extraction_name,
    materialize_archive,
)
from schemabuild.core.services.discovery import GlobFilter, discover_sources
from schemabuild.core.services.temp_space import TemporarySpace


def _make_zip(path: Path, members: dict[str, str]) -> Path:
    with zipfile.ZipFile(path, "w") as zf:
        for name, content in members.items():
            zf.writestr(name, content)
    return path


def _make_tar(path: Path, members: dict[str, str]) -> Path:
    with tarfile.open(path, "w:gz") as tar:
        for name, content in members.items():
            data = content.encode("utf-8")
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return path


# ── Glob filter ──────────────────────────────────────────────────────


class TestGlobFilter:
    def test_empty_accepts_everything(self):
        assert GlobFilter().matches("any/path.proto")

    def test_double_star_matches_zero_directories(self):
        f = GlobFilter(includes=["**/*.proto"])
        assert f.matches("top.proto")
        assert f.matches("a/b/deep.proto")

    def test_excludes_win(self):
        f = GlobFilter(includes=["**/*.proto"], excludes=["internal/*"])
        assert f.matches("public/api.proto")
        assert not f.matches("internal/secret.proto")

    def test_include_restricts(self):
        f = GlobFilter(includes=["api/*"])
        assert f.matches("api/user.proto")
        assert not f.matches("other/user.proto")


# ── Directory discovery ──────────────────────────────────────────────


class TestDiscoverSources:
    def test_finds_sources_sorted(self, make_config, write_schema, schema_dir, space):
        write_schema(schema_dir, "b.proto")
        write_schema(schema_dir, "a.proto")
        write_schema(schema_dir, "nested/c.proto")
        (schema_dir / "README.md").write_text("not a schema")

        result = discover_sources(make_config(), space)

        assert [s.logical_path for s in result.sources] == ["a.proto", "b.proto", "nested/c.proto"]
        assert all(s.path.is_absolute() for s in result.sources)
        assert result.dependencies == []

    def test_absent_directory_contributes_nothing(self, make_config, tmp_path, space):
        config = make_config(source_directories=[tmp_path / "missing"])
        result = discover_sources(config, space)
        assert result.sources == []
        assert result.include_roots == []

    def test_unreadable_directory_is_fatal(self, make_config, schema_dir, space, monkeypatch):
        config = make_config()
        monkeypatch.setattr(os, "access", lambda *args, **kwargs: False)
        with pytest.raises(DiscoveryError) as exc:
            discover_sources(config, space)
        assert str(schema_dir) in str(exc.value)

    def test_source_path_that_is_a_file_is_fatal(self, make_config, tmp_path, space):
        not_a_dir = tmp_path / "file.proto"
        not_a_dir.write_text("")
        with pytest.raises(DiscoveryError):
            discover_sources(make_config(source_directories=[not_a_dir]), space)

    def test_custom_extensions(self, make_config, write_schema, schema_dir, space):
        write_schema(schema_dir, "a.schema")
        write_schema(schema_dir, "b.proto")
        result = discover_sources(make_config(file_extensions=["schema"]), space)
        assert [s.logical_path for s in result.sources] == ["a.schema"]

    def test_include_exclude_filters(self, make_config, write_schema, schema_dir, space):
        write_schema(schema_dir, "api/user.proto")
        write_schema(schema_dir, "api/internal/debug.proto")
        write_schema(schema_dir, "legacy/old.proto")
        config = make_config(includes=["api/**"], excludes=["**/internal/*"])
        result = discover_sources(config, space)
        assert [s.logical_path for s in result.sources] == ["api/user.proto"]


class TestIncludeRoots:
    def test_root_order(self, make_config, tmp_path, schema_dir, write_schema, space):
        imports = tmp_path / "imports"
        write_schema(imports, "dep.proto")
        archive = _make_zip(tmp_path / "lib.zip", {"lib/common.proto": "message C {}"})

        config = make_config(import_paths=[imports], archives=[{"path": archive}])
        result = discover_sources(config, space)

        assert [r.kind for r in result.include_roots] == ["source", "import", "archive"]
        assert result.include_roots[0].path == schema_dir.resolve()
        assert [d.logical_path for d in result.dependencies] == ["dep.proto", "lib/common.proto"]

    def test_first_root_wins_for_duplicate_logical_path(
        self, make_config, tmp_path, write_schema, space
    ):
        first = tmp_path / "first"
        second = tmp_path / "second"
        write_schema(first, "common.proto")
        write_schema(second, "common.proto")
        write_schema(second, "extra.proto")

        result = discover_sources(make_config(source_directories=[first, second]), space)

        by_name = {s.logical_path: s for s in result.sources}
        assert set(by_name) == {"common.proto", "extra.proto"}
        assert by_name["common.proto"].root == first.resolve()

    def test_duplicate_directories_deduplicated(self, make_config, schema_dir, write_schema, space):
        write_schema(schema_dir, "a.proto")
        config = make_config(source_directories=[schema_dir, schema_dir], import_paths=[schema_dir])
        result = discover_sources(config, space)
        assert len(result.include_roots) == 1
        assert [s.logical_path for s in result.sources] == ["a.proto"]

    def test_archive_sources_compiled_when_configured(self, make_config, tmp_path, space):
        archive = _make_zip(tmp_path / "api.jar", {"api/v1.proto": "message V1 {}"})
        config = make_config(
            source_directories=[],
            archives=[{"path": archive, "compile_sources": True}],
        )
        result = discover_sources(config, space)
        assert [s.logical_path for s in result.sources] == ["api/v1.proto"]
        assert result.sources[0].origin == "archive"


# ── Archive materialization ──────────────────────────────────────────


class TestMaterializeArchive:
    def test_extracts_only_schema_files(self, tmp_path: Path, space: TemporarySpace):
        archive = _make_zip(
            tmp_path / "deps.jar",
            {
                "google/type/date.proto": "message Date {}",
                "META-INF/MANIFEST.MF": "Manifest-Version: 1.0",
                "com/example/Foo.class": "binary",
            },
        )
        root = materialize_archive(ArchiveRef(path=archive), space, [".proto"])

        assert root.kind == "archive"
        assert root.compile is False
        assert (root.path / "google" / "type" / "date.proto").is_file()
        assert not (root.path / "META-INF").exists()
        assert root.path.name == extraction_name(archive)

    def test_unsafe_members_ignored(self, tmp_path: Path, space: TemporarySpace):
        archive = _make_zip(
            tmp_path / "evil.zip",
            {"../escape.proto": "x", "/abs.proto": "x", "ok.proto": "x"},
        )
        root = materialize_archive(ArchiveRef(path=archive), space, [".proto"])
        assert (root.path / "ok.proto").is_file()
        assert not (root.path.parent / "escape.proto").exists()
        assert not (tmp_path / "escape.proto").exists()

    def test_tar_archive(self, tmp_path: Path, space: TemporarySpace):
        archive = _make_tar(tmp_path / "deps.tar.gz", {"pkg/a.proto": "message A {}"})
        root = materialize_archive(ArchiveRef(path=archive), space, [".proto"])
        assert (root.path / "pkg" / "a.proto").read_text() == "message A {}"

    def test_unchanged_archive_not_extracted_again(self, tmp_path: Path, space: TemporarySpace):
        archive = _make_zip(tmp_path / "deps.zip", {"a.proto": "v1"})
        root = materialize_archive(ArchiveRef(path=archive), space, [".proto"])
        assert (root.path / MARKER_FILE).is_file()

        sentinel = root.path / "sentinel.proto"
        sentinel.write_text("left alone")
        materialize_archive(ArchiveRef(path=archive), space, [".proto"])
        assert sentinel.is_file()

    def test_changed_archive_extracted_again(self, tmp_path: Path, space: TemporarySpace):
        archive = _make_zip(tmp_path / "deps.zip", {"a.proto": "v1"})
        root = materialize_archive(ArchiveRef(path=archive), space, [".proto"])
        (root.path / "sentinel.proto").write_text("stale")

        _make_zip(archive, {"a.proto": "v2", "b.proto": "new"})
        materialize_archive(ArchiveRef(path=archive), space, [".proto"])

        assert (root.path / "a.proto").read_text() == "v2"
        assert (root.path / "b.proto").is_file()
        assert not (root.path / "sentinel.proto").exists()

    def test_extension_change_extracts_again(self, tmp_path: Path, space: TemporarySpace):
        archive = _make_zip(tmp_path / "deps.zip", {"a.proto": "A", "b.schema": "B"})
        root = materialize_archive(ArchiveRef(path=archive), space, [".proto"])
        assert not (root.path / "b.schema").exists()

        materialize_archive(ArchiveRef(path=archive), space, [".proto", ".schema"])
        assert (root.path / "a.proto").is_file()
        assert (root.path / "b.schema").read_text() == "B"

    def test_discovery_follows_extension_change(
        self, make_config, tmp_path: Path, space: TemporarySpace
    ):
        archive = _make_zip(tmp_path / "deps.zip", {"a.proto": "A", "b.schema": "B"})
        narrow = make_config(source_directories=[], archives=[{"path": archive}])
        wide = make_config(
            source_directories=[],
            archives=[{"path": archive}],
            file_extensions=[".proto", ".schema"],
        )

        assert [d.logical_path for d in discover_sources(narrow, space).dependencies] == [
            "a.proto"
        ]
        assert [d.logical_path for d in discover_sources(wide, space).dependencies] == [
            "a.proto",
            "b.schema",
        ]

    def test_directory_used_in_place(self, tmp_path: Path, space: TemporarySpace):
        extracted = tmp_path / "already-extracted"
        extracted.mkdir()
        root = materialize_archive(ArchiveRef(path=extracted), space, [".proto"])
        assert root.path == extracted.resolve()

    def test_missing_archive(self, tmp_path: Path, space: TemporarySpace):
        with pytest.raises(DiscoveryError) as exc:
            materialize_archive(ArchiveRef(path=tmp_path / "nope.jar"), space, [".proto"])
        assert "nope.jar" in str(exc.value)

    def test_not_an_archive(self, tmp_path: Path, space: TemporarySpace):
        bogus = tmp_path / "bogus.jar"
        bogus.write_text("plain text")
        with pytest.raises(DiscoveryError):
            materialize_archive(ArchiveRef(path=bogus), space, [".proto"])
