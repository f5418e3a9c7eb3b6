"""
BuildState — the persisted record of the previous successful build.

Serialized to JSON by the fingerprint store. A BuildState is loaded once
at the start of a build and treated as an immutable snapshot; a fresh
instance is constructed for the next build and written atomically at
the end.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field

# Bump when the layout changes incompatibly; older files are then ignored.
STATE_FORMAT_VERSION = 1


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class FileRecord(BaseModel):
    """Fingerprint of a single schema source file."""

    logical_path: str
    content_hash: str
    compiler_identity: str
    fingerprint: str = ""


class OutputRecord(BaseModel):
    """Files one generation pass has produced into an output directory."""

    directory: str
    role: str = "main"
    pass_id: str = "compiler"
    files: list[str] = Field(default_factory=list)   # relative to directory


class BuildState(BaseModel):
    """Root state model — one file per output-directory scope."""

    schema_version: int = STATE_FORMAT_VERSION

    config_fingerprint: str = ""
    dependency_fingerprint: str = ""

    files: dict[str, FileRecord] = Field(default_factory=dict)
    generated_outputs: list[OutputRecord] = Field(default_factory=list)

    created_at: str = Field(default_factory=_now_iso)
    updated_at: str = Field(default_factory=_now_iso)

    def touch(self) -> None:
        """Update the updated_at timestamp."""
        self.updated_at = _now_iso()

    def output_for(self, pass_id: str) -> OutputRecord | None:
        """Look up the recorded output of a generation pass."""
        for record in self.generated_outputs:
            if record.pass_id == pass_id:
                return record
        return None
