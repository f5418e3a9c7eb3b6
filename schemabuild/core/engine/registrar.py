"""
Source root registrar — hand generated directories to the build system.

The build system provides a ``register(directory, role)`` callback. The
registrar calls it once per directory, primary compiler output first,
then plugin outputs in declaration order, and ignores repeats for the
rest of the run.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from pathlib import Path

from schemabuild.core.engine.executor import GeneratedOutput

logger = logging.getLogger(__name__)

RegisterCallback = Callable[[Path, str], None]


class SourceRootRegistrar:
    """Idempotent wrapper around the build system's registration callback."""

    def __init__(self, register: RegisterCallback | None = None):
        self._register = register
        self._registered: list[tuple[Path, str]] = []

    @property
    def registered(self) -> list[tuple[Path, str]]:
        """(directory, role) pairs registered so far, in order."""
        return list(self._registered)

    def register_directory(self, directory: Path, role: str) -> bool:
        """Register one directory. Returns False if it was already registered."""
        key = (Path(directory), role)
        if key in self._registered:
            logger.debug("%s is already registered as a %s source root", directory, role)
            return False
        logger.info("Registering %s as a %s source root", directory, role)
        if self._register is not None:
            self._register(key[0], role)
        self._registered.append(key)
        return True

    def register_outputs(self, outputs: Iterable[GeneratedOutput], role: str) -> list[Path]:
        """Register the directories of generated outputs, in the given order."""
        newly = []
        for output in outputs:
            if self.register_directory(output.directory, role):
                newly.append(output.directory)
        return newly
