"""
Schema models — discovered schema files and the roots they resolve against.

Both models are frozen: once discovery has produced them for a build they
are used as dictionary keys and set members by the graph builder and the
decision engine.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict

RootKind = Literal["source", "import", "archive"]


class IncludeRoot(BaseModel):
    """A directory searched when resolving import statements.

    Roots form an ordered list: the first root that contains a matching
    relative path wins.
    """

    model_config = ConfigDict(frozen=True)

    path: Path
    kind: RootKind = "source"
    origin: str = ""          # configured directory or archive the root came from
    compile: bool = True      # whether files under this root are compilation targets


class SchemaFile(BaseModel):
    """One schema source file, as seen by this build."""

    model_config = ConfigDict(frozen=True)

    path: Path                # absolute, resolved
    root: Path                # owning include root
    logical_path: str         # POSIX path relative to root, used in import statements
    origin: RootKind = "source"

    def __str__(self) -> str:
        return self.logical_path
