"""
Error taxonomy for the generation pipeline.

Fatal errors derive from SchemaBuildError and always name the offending
file or directory. Recoverable conditions (absent directories, absent or
corrupt state, unresolved imports) never raise out of the pipeline; they
degrade to an empty set or a full rebuild.
"""

from __future__ import annotations

from pathlib import Path


class SchemaBuildError(Exception):
    """Base class for fatal pipeline errors."""

    def __init__(self, message: str, path: Path | str | None = None):
        super().__init__(message)
        self.path = Path(path) if path is not None else None


class DiscoveryError(SchemaBuildError):
    """A configured source directory or archive cannot be read."""


class ResourceConflict(SchemaBuildError):
    """A managed directory path is occupied by something that is not a directory."""


class StateCorruption(SchemaBuildError):
    """The persisted build state is unreadable or malformed.

    Never escapes the fingerprint store: it is logged and treated as
    "no prior state", which forces a full rebuild.
    """


class CycleError(SchemaBuildError):
    """The schema import graph contains a cycle."""

    def __init__(self, cycle: list[str], path: Path | str | None = None):
        self.cycle = list(cycle)
        super().__init__(f"Import cycle detected: {' -> '.join(self.cycle)}", path)


class GenerationFailure(SchemaBuildError):
    """An external compiler invocation exited with a non-zero status.

    ``diagnostics`` is the captured stderr, unmodified.
    """

    def __init__(
        self,
        pass_id: str,
        exit_code: int | None,
        diagnostics: str,
        path: Path | str | None = None,
    ):
        self.pass_id = pass_id
        self.exit_code = exit_code
        self.diagnostics = diagnostics
        where = f" (output: {path})" if path is not None else ""
        super().__init__(
            f"Generation pass '{pass_id}' failed with exit code {exit_code}{where}:\n{diagnostics}",
            path,
        )


class DependencyResolutionWarning(UserWarning):
    """An import statement could not be resolved against any include root.

    Collected on the dependency graph and logged. The compiler invocation
    is the authority on whether this is really an error.
    """

    def __init__(self, source: Path, import_path: str):
        self.source = source
        self.import_path = import_path
        super().__init__(f"{source}: unresolved import \"{import_path}\"")
