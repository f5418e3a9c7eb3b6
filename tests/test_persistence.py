"""
Tests for persistence — fingerprint store and build ledger.
"""

import json
import os
from pathlib import Path

import pytest

from schemabuild.core.errors import StateCorruption
from schemabuild.core.models.state import STATE_FORMAT_VERSION, BuildState, FileRecord, OutputRecord
from schemabuild.core.persistence.audit import AuditEntry, AuditWriter
from schemabuild.core.persistence.state_file import FingerprintStore, default_state_path
from schemabuild.core.services.temp_space import TemporarySpace


def _sample_state() -> BuildState:
    return BuildState(
        config_fingerprint="cfg-1",
        dependency_fingerprint="dep-1",
        files={
            "a.proto": FileRecord(
                logical_path="a.proto", content_hash="h-a", compiler_identity="c", fingerprint="f-a"
            ),
        },
        generated_outputs=[
            OutputRecord(directory="/out", pass_id="compiler", files=["A.java"]),
        ],
    )


class TestFingerprintStore:
    def test_save_and_load(self, tmp_path: Path):
        store = FingerprintStore(tmp_path / "cache" / "state.json")
        state = _sample_state()
        store.save(state)
        assert store.path.is_file()

        loaded = store.load("cfg-1")
        assert loaded == state
        assert loaded.output_for("compiler").files == ["A.java"]

    def test_load_missing(self, tmp_path: Path):
        assert FingerprintStore(tmp_path / "none.json").load() is None

    def test_load_corrupt_degrades_to_none(self, tmp_path: Path):
        path = tmp_path / "state.json"
        path.write_text("not json at all {{{")
        store = FingerprintStore(path)
        assert store.load() is None
        with pytest.raises(StateCorruption) as exc:
            store.read()
        assert str(path) in str(exc.value)

    def test_load_wrong_shape_degrades_to_none(self, tmp_path: Path):
        path = tmp_path / "state.json"
        path.write_text(json.dumps({"files": "should be a mapping"}))
        assert FingerprintStore(path).load() is None

    def test_config_fingerprint_mismatch(self, tmp_path: Path):
        store = FingerprintStore(tmp_path / "state.json")
        store.save(_sample_state())
        assert store.load("cfg-2") is None
        assert store.load("cfg-1") is not None

    def test_format_version_mismatch(self, tmp_path: Path):
        store = FingerprintStore(tmp_path / "state.json")
        state = _sample_state()
        state.schema_version = STATE_FORMAT_VERSION + 1
        store.save(state)
        assert store.load() is None

    def test_save_is_valid_json(self, tmp_path: Path):
        path = tmp_path / "state.json"
        FingerprintStore(path).save(_sample_state())
        data = json.loads(path.read_text())
        assert data["config_fingerprint"] == "cfg-1"
        assert data["files"]["a.proto"]["content_hash"] == "h-a"

    def test_failed_save_keeps_previous_state(self, tmp_path: Path, monkeypatch):
        path = tmp_path / "state.json"
        store = FingerprintStore(path)
        store.save(_sample_state())
        before = path.read_text()

        def _boom(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(os, "replace", _boom)
        changed = _sample_state()
        changed.config_fingerprint = "cfg-2"
        with pytest.raises(OSError):
            store.save(changed)

        assert path.read_text() == before
        assert [p.name for p in tmp_path.iterdir()] == ["state.json"]

    def test_clear(self, tmp_path: Path):
        store = FingerprintStore(tmp_path / "state.json")
        assert store.clear() is False
        store.save(_sample_state())
        assert store.clear() is True
        assert not store.path.is_file()

    def test_default_path_per_output_directory(self, tmp_path: Path):
        space = TemporarySpace(tmp_path / "build")
        first = default_state_path(space, tmp_path / "out-a")
        second = default_state_path(space, tmp_path / "out-b")
        assert first != second
        assert first.parent == second.parent
        assert first.parent.is_dir()
        assert first == default_state_path(space, tmp_path / "out-a")


class TestAuditWriter:
    def test_write_and_read(self, tmp_path: Path):
        writer = AuditWriter(tmp_path / "ledger" / "audit.ndjson")
        writer.write(AuditEntry(operation_id="gen-1", plan="full", status="ok"))
        writer.write(AuditEntry(operation_id="gen-2", plan="skip", status="skipped"))

        entries = writer.read_all()
        assert [e.operation_id for e in entries] == ["gen-1", "gen-2"]
        assert entries[1].plan == "skip"

    def test_one_json_object_per_line(self, tmp_path: Path):
        path = tmp_path / "audit.ndjson"
        writer = AuditWriter(path)
        writer.write(AuditEntry(operation_id="gen-1", targets=["a.proto"]))
        lines = path.read_text().splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["targets"] == ["a.proto"]

    def test_corrupt_lines_skipped(self, tmp_path: Path):
        path = tmp_path / "audit.ndjson"
        writer = AuditWriter(path)
        writer.write(AuditEntry(operation_id="gen-1"))
        with path.open("a") as f:
            f.write("garbage\n")
        writer.write(AuditEntry(operation_id="gen-2"))
        assert [e.operation_id for e in writer.read_all()] == ["gen-1", "gen-2"]

    def test_read_recent(self, tmp_path: Path):
        writer = AuditWriter(tmp_path / "audit.ndjson")
        for i in range(5):
            writer.write(AuditEntry(operation_id=f"gen-{i}"))
        assert [e.operation_id for e in writer.read_recent(2)] == ["gen-3", "gen-4"]

    def test_missing_ledger(self, tmp_path: Path):
        assert AuditWriter(tmp_path / "nothing.ndjson").read_all() == []
