"""
State use cases — inspect or discard the persisted build state.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from schemabuild.core.config.loader import ConfigError, load_config
from schemabuild.core.errors import StateCorruption
from schemabuild.core.models.state import BuildState
from schemabuild.core.persistence.audit import AuditEntry, AuditWriter
from schemabuild.core.use_cases.generate import audit_path, state_store


@dataclass
class StateResult:
    """Result of a state command."""

    state: BuildState | None = None
    state_path: Path | None = None
    history: list[AuditEntry] | None = None
    cleared: bool = False
    error: str | None = None

    def to_dict(self) -> dict:
        result: dict = {}
        if self.error:
            result["error"] = self.error
            return result

        result["state_path"] = str(self.state_path) if self.state_path else None
        result["exists"] = self.state is not None
        result["cleared"] = self.cleared
        if self.state is not None:
            result["state"] = {
                "schema_version": self.state.schema_version,
                "config_fingerprint": self.state.config_fingerprint,
                "dependency_fingerprint": self.state.dependency_fingerprint,
                "files": sorted(self.state.files),
                "generated_outputs": [
                    o.model_dump(mode="json") for o in self.state.generated_outputs
                ],
                "created_at": self.state.created_at,
                "updated_at": self.state.updated_at,
            }
        if self.history is not None:
            result["history"] = [e.model_dump(mode="json") for e in self.history]
        return result


def show_state(
    config_path: Path | None = None,
    role: str | None = None,
    history: int = 5,
) -> StateResult:
    """Load the persisted state and the most recent ledger entries."""
    result = StateResult()
    try:
        config = load_config(config_path)
        if role is not None:
            config = config.model_copy(update={"role": role})
    except ConfigError as e:
        result.error = str(e)
        return result

    store = state_store(config)
    result.state_path = store.path
    try:
        result.state = store.read()
    except StateCorruption as e:
        result.error = str(e)
        return result

    entries = AuditWriter(audit_path(config)).read_recent(history)
    result.history = [e for e in entries if e.role == config.role]
    return result


def clear_state(config_path: Path | None = None, role: str | None = None) -> StateResult:
    """Delete the persisted state so the next build is a full build."""
    result = StateResult()
    try:
        config = load_config(config_path)
        if role is not None:
            config = config.model_copy(update={"role": role})
    except ConfigError as e:
        result.error = str(e)
        return result

    store = state_store(config)
    result.state_path = store.path
    result.cleared = store.clear()
    return result
