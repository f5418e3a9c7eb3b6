"""
Generation configuration — the resolved build configuration object.

Loaded from schemabuild.yml by the config loader, this is everything
the pipeline needs to know: where the schema sources live, which archives
provide import context, which compiler and plugins to run, and how the
incremental decision should behave.
"""

from __future__ import annotations

from collections import Counter
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

Role = Literal["main", "test"]


class ArchiveRef(BaseModel):
    """An archive dependency that bundles schema files.

    ``path`` may point at a zip/jar/tar archive or at a directory that
    already holds extracted schema files.
    """

    path: Path
    compile_sources: bool = False   # also emit code for the archive's files


class DescriptorSetSpec(BaseModel):
    """A binary descriptor set written alongside the generated code."""

    path: Path
    include_imports: bool = False
    include_source_info: bool = False
    retain_options: bool = False


class CompilerSpec(BaseModel):
    """The external schema compiler (protoc-compatible command line)."""

    executable: str = "protoc"
    version: str = ""
    languages: list[str] = Field(default_factory=list)
    lite: bool = False   # prefix every language output with "lite:"
    descriptor_set: DescriptorSetSpec | None = None
    fatal_warnings: bool = False
    extra_arguments: list[str] = Field(default_factory=list)
    timeout: int = 600


class PluginSpec(BaseModel):
    """A code-generator plugin run as its own generation pass."""

    id: str
    executable: str
    options: str | None = None
    output_directory: Path | None = None
    supports_incremental: bool = True
    order: int = 0

    @field_validator("id")
    @classmethod
    def _id_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("plugin id must not be empty")
        return value


class GenerationConfig(BaseModel):
    """Root configuration model — loaded from schemabuild.yml."""

    version: int = 1
    name: str = ""

    # ── Layout ───────────────────────────────────────────────────
    build_directory: Path = Path("build")
    execution_id: str = "default"
    role: Role = "main"
    output_directory: Path | None = None

    # ── Inputs ───────────────────────────────────────────────────
    source_directories: list[Path] = Field(default_factory=list)
    import_paths: list[Path] = Field(default_factory=list)
    archives: list[ArchiveRef] = Field(default_factory=list)
    includes: list[str] = Field(default_factory=list)
    excludes: list[str] = Field(default_factory=list)
    file_extensions: list[str] = Field(default_factory=lambda: [".proto"])

    # ── Generation ───────────────────────────────────────────────
    compiler: CompilerSpec = Field(default_factory=CompilerSpec)
    plugins: list[PluginSpec] = Field(default_factory=list)

    # ── Behaviour ────────────────────────────────────────────────
    skip: bool = False
    incremental: bool = True
    fail_on_missing_sources: bool = False
    fail_on_missing_targets: bool = True
    register_source_roots: bool = True
    parallel_passes: bool = False
    prune_stale_outputs: bool = True
    argument_file_threshold: int = 8000

    @field_validator("file_extensions")
    @classmethod
    def _normalize_extensions(cls, value: list[str]) -> list[str]:
        normalized = []
        for ext in value:
            ext = ext.strip().lower()
            if ext and not ext.startswith("."):
                ext = "." + ext
            if ext:
                normalized.append(ext)
        return normalized or [".proto"]

    @model_validator(mode="after")
    def _unique_plugin_ids(self) -> GenerationConfig:
        counts = Counter(p.id for p in self.plugins)
        dupes = sorted(pid for pid, n in counts.items() if n > 1)
        if dupes:
            raise ValueError(f"duplicate plugin ids: {', '.join(dupes)}")
        return self

    @property
    def effective_output_directory(self) -> Path:
        """Primary output directory (explicit, or derived from the role)."""
        if self.output_directory is not None:
            return self.output_directory
        folder = "generated-sources" if self.role == "main" else "generated-test-sources"
        return self.build_directory / folder / "schemabuild"

    def plugin_output_directory(self, plugin: PluginSpec) -> Path:
        """Output directory for a plugin pass (override, or the primary one)."""
        return plugin.output_directory or self.effective_output_directory

    def ordered_plugins(self) -> list[PluginSpec]:
        """Plugins sorted by precedence; declaration order breaks ties."""
        return sorted(self.plugins, key=lambda p: p.order)

    def resolve_paths(self, base: Path) -> GenerationConfig:
        """Return a copy with every relative path anchored at ``base``."""

        def anchor(path: Path) -> Path:
            path = path.expanduser()
            return path if path.is_absolute() else (base / path).resolve()

        def anchor_exe(exe: str) -> str:
            # Bare command names stay as-is so they can be found on PATH.
            if "/" not in exe and "\\" not in exe:
                return exe
            return str(anchor(Path(exe)))

        return self.model_copy(
            update={
                "build_directory": anchor(self.build_directory),
                "output_directory": (
                    anchor(self.output_directory) if self.output_directory else None
                ),
                "source_directories": [anchor(p) for p in self.source_directories],
                "import_paths": [anchor(p) for p in self.import_paths],
                "archives": [
                    a.model_copy(update={"path": anchor(a.path)}) for a in self.archives
                ],
                "compiler": self.compiler.model_copy(
                    update={
                        "executable": anchor_exe(self.compiler.executable),
                        "descriptor_set": (
                            self.compiler.descriptor_set.model_copy(
                                update={"path": anchor(self.compiler.descriptor_set.path)}
                            )
                            if self.compiler.descriptor_set
                            else None
                        ),
                    }
                ),
                "plugins": [
                    p.model_copy(
                        update={
                            "executable": anchor_exe(p.executable),
                            "output_directory": (
                                anchor(p.output_directory) if p.output_directory else None
                            ),
                        }
                    )
                    for p in self.plugins
                ],
            }
        )
