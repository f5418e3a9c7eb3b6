"""
Config check use case — validate schemabuild.yml and report issues.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from pathlib import Path

from schemabuild.core.config.loader import ConfigError, find_config_file, load_config
from schemabuild.core.engine.executor import directories_overlap, planned_passes
from schemabuild.core.models.config import GenerationConfig


@dataclass
class ConfigCheckResult:
    """Result of configuration validation."""

    valid: bool = False
    config: GenerationConfig | None = None
    config_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "config_path": str(self.config_path) if self.config_path else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "name": self.config.name if self.config else None,
            "role": self.config.role if self.config else None,
            "source_directories": (
                [str(p) for p in self.config.source_directories] if self.config else []
            ),
            "output_directory": (
                str(self.config.effective_output_directory) if self.config else None
            ),
            "plugin_count": len(self.config.plugins) if self.config else 0,
        }


def _executable_found(executable: str) -> bool:
    return shutil.which(executable) is not None or Path(executable).is_file()


def check_config(config_path: Path | None = None) -> ConfigCheckResult:
    """Validate build configuration and report issues.

    Args:
        config_path: Optional explicit path to schemabuild.yml.

    Returns:
        ConfigCheckResult with validation status and any issues.
    """
    result = ConfigCheckResult()

    if config_path is None:
        config_path = find_config_file()
    if config_path is None:
        result.errors.append("No schemabuild.yml found.")
        return result
    result.config_path = config_path

    try:
        config = load_config(config_path)
        result.config = config
    except ConfigError as e:
        result.errors.append(str(e))
        return result

    # ── Inputs ───────────────────────────────────────────────────
    if not config.source_directories and not any(a.compile_sources for a in config.archives):
        result.warnings.append("No source directories configured. Nothing will be compiled.")

    for directory in config.source_directories:
        if not directory.exists():
            result.warnings.append(f"Source directory does not exist: {directory}")
        elif not directory.is_dir():
            result.errors.append(f"Source directory is not a directory: {directory}")

    for directory in config.import_paths:
        if not directory.exists():
            result.warnings.append(f"Import path does not exist: {directory}")

    for archive in config.archives:
        if not archive.path.exists():
            result.errors.append(f"Archive dependency not found: {archive.path}")

    # ── Generation ───────────────────────────────────────────────
    if not planned_passes(config):
        message = "No target languages, descriptor set or plugins configured."
        if config.fail_on_missing_targets:
            result.errors.append(message)
        else:
            result.warnings.append(message)

    if not _executable_found(config.compiler.executable):
        result.warnings.append(f"Compiler not found: {config.compiler.executable}")

    for plugin in config.plugins:
        if not _executable_found(plugin.executable):
            result.warnings.append(
                f"Plugin '{plugin.id}' executable not found: {plugin.executable}"
            )
        if not plugin.supports_incremental and config.incremental:
            result.warnings.append(
                f"Plugin '{plugin.id}' does not support incremental generation; "
                "every build will be a full build."
            )

    if config.parallel_passes:
        directories = [p.output_directory for p in planned_passes(config)]
        if len(directories) > 1 and directories_overlap(directories):
            result.warnings.append(
                "parallel_passes is enabled but passes share or nest output directories; "
                "they will run sequentially."
            )

    result.valid = len(result.errors) == 0
    return result
