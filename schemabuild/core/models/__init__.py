"""
Domain models — Pydantic types for schemabuild.

All models are re-exported here for convenient access:

    from schemabuild.core.models import GenerationConfig, SchemaFile, BuildState
"""

from schemabuild.core.models.action import Action, Receipt
from schemabuild.core.models.config import (
    ArchiveRef,
    CompilerSpec,
    GenerationConfig,
    PluginSpec,
)
from schemabuild.core.models.schema import IncludeRoot, SchemaFile
from schemabuild.core.models.state import BuildState, FileRecord, OutputRecord

__all__ = [
    # action.py
    "Action",
    # config.py
    "ArchiveRef",
    # state.py
    "BuildState",
    "CompilerSpec",
    "FileRecord",
    "GenerationConfig",
    # schema.py
    "IncludeRoot",
    "OutputRecord",
    "PluginSpec",
    "Receipt",
    "SchemaFile",
]
