"""
State file persistence — atomic read/write for BuildState.

One state file exists per output-directory scope, inside the temporary
space's incremental-cache directory. Writes are atomic (write to a temp
file in the same directory, fsync, then os.replace) so a crash mid-write
leaves the previous state untouched and no reader ever sees half a file.

A missing, corrupt, outdated or foreign state file is never an error:
it simply means "no prior state", which forces a full rebuild.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from schemabuild.core.errors import StateCorruption
from schemabuild.core.models.state import STATE_FORMAT_VERSION, BuildState
from schemabuild.core.services.temp_space import TemporarySpace

logger = logging.getLogger(__name__)

STATE_DIR = "incremental-cache"


def default_state_path(space: TemporarySpace, output_directory: Path) -> Path:
    """State file path for an output directory."""
    key = hashlib.sha256(str(output_directory).encode("utf-8")).hexdigest()[:16]
    return space.acquire(STATE_DIR, f"v{STATE_FORMAT_VERSION}") / f"{key}.json"


class FingerprintStore:
    """Loads and saves the BuildState of the previous successful build."""

    def __init__(self, path: Path):
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def read(self) -> BuildState | None:
        """Read the raw state without any compatibility checks.

        Returns:
            The stored state, or None if there is no file.

        Raises:
            StateCorruption: the file is unreadable or malformed.
        """
        if not self._path.is_file():
            return None
        try:
            raw = self._path.read_text(encoding="utf-8")
            return BuildState.model_validate(json.loads(raw))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, ValidationError) as e:
            raise StateCorruption(f"Corrupt build state {self._path}: {e}", self._path) from e

    def load(self, config_fingerprint: str | None = None) -> BuildState | None:
        """Load the previous state if it is usable for this build.

        Args:
            config_fingerprint: Current configuration fingerprint. A state
                recorded under a different configuration is discarded.

        Returns:
            BuildState, or None if absent, corrupt, from another format
            version, or recorded under a different configuration.
        """
        try:
            state = self.read()
        except StateCorruption as e:
            logger.warning("%s; starting fresh", e)
            return None

        if state is None:
            logger.info("No previous build state at %s, full build required", self._path)
            return None

        if state.schema_version != STATE_FORMAT_VERSION:
            logger.info(
                "Build state format %s differs from %s, full build required",
                state.schema_version,
                STATE_FORMAT_VERSION,
            )
            return None

        if config_fingerprint is not None and state.config_fingerprint != config_fingerprint:
            logger.info("Configuration changed since the last build, full build required")
            return None

        logger.debug("Loaded build state from %s (updated_at=%s)", self._path, state.updated_at)
        return state

    def save(self, state: BuildState) -> None:
        """Save state atomically.

        Raises:
            OSError: the state could not be written. The previous file, if
                any, is left intact.
        """
        state.touch()
        self._path.parent.mkdir(parents=True, exist_ok=True)

        content = json.dumps(state.model_dump(mode="json"), indent=2, ensure_ascii=False) + "\n"

        fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=".state_", suffix=".tmp")
        tmp = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self._path)
            logger.debug("Build state saved to %s", self._path)
        except Exception:
            tmp.unlink(missing_ok=True)
            logger.error("Failed to save build state to %s", self._path)
            raise

    def clear(self) -> bool:
        """Delete the state file. Returns True if one existed."""
        if self._path.is_file():
            self._path.unlink()
            return True
        return False
