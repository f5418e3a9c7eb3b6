"""
Shared test fixtures and configuration.
"""

import textwrap
from collections.abc import Callable
from pathlib import Path

import pytest

from schemabuild.core.models.config import GenerationConfig
from schemabuild.core.services.temp_space import TemporarySpace


@pytest.fixture
def schema_dir(tmp_path: Path) -> Path:
    """Return an empty source directory for schema files."""
    directory = tmp_path / "schemas"
    directory.mkdir()
    return directory


@pytest.fixture
def write_schema() -> Callable[..., Path]:
    """Factory writing a schema file with the given imports under a root."""

    def _write(root: Path, logical: str, imports: tuple[str, ...] = (), body: str = "") -> Path:
        path = root / logical
        path.parent.mkdir(parents=True, exist_ok=True)
        lines = ['syntax = "proto3";', ""]
        lines += [f'import "{imp}";' for imp in imports]
        lines += ["", textwrap.dedent(body).strip() or f"message {path.stem.title()} {{}}"]
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write


@pytest.fixture
def make_config(tmp_path: Path, schema_dir: Path) -> Callable[..., GenerationConfig]:
    """Factory for a GenerationConfig rooted in tmp_path."""

    def _make(**overrides) -> GenerationConfig:
        data = {
            "build_directory": tmp_path / "build",
            "source_directories": [schema_dir],
            "compiler": {"languages": ["java"]},
        }
        data.update(overrides)
        return GenerationConfig.model_validate(data)

    return _make


@pytest.fixture
def space(tmp_path: Path) -> TemporarySpace:
    """Temporary space under tmp_path/build."""
    return TemporarySpace(tmp_path / "build")
