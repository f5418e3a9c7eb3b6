"""
Dependency graph — which schema files import which.

This is a shallow scan, not a parser: quoted import/include targets are
extracted with a regex after stripping comments. It only has to be
conservative enough to know which files a change might affect; the
compiler remains the authority on whether the schemas are valid.

Imports resolve against the ordered include roots, first match wins.
Unresolved imports are collected as warnings. Cycles are fatal.
"""

from __future__ import annotations

import logging
import re
from collections import deque
from collections.abc import Iterable
from pathlib import Path

from schemabuild.core.errors import CycleError, DependencyResolutionWarning, DiscoveryError
from schemabuild.core.models.schema import IncludeRoot, SchemaFile

logger = logging.getLogger(__name__)

_IMPORT_RE = re.compile(
    r"""^\s*(?:import(?:\s+(?:public|weak))?|include)\s+["']([^"']+)["']""",
    re.MULTILINE,
)
_BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)
_LINE_COMMENT_RE = re.compile(r"//[^\n]*")


def scan_imports(text: str) -> list[str]:
    """Extract quoted import targets from schema text, in order, without duplicates."""
    text = _BLOCK_COMMENT_RE.sub(lambda m: "\n" * m.group(0).count("\n"), text)
    text = _LINE_COMMENT_RE.sub("", text)
    seen: dict[str, None] = {}
    for match in _IMPORT_RE.finditer(text):
        seen.setdefault(match.group(1).strip(), None)
    return list(seen)


def resolve_import(import_path: str, include_roots: list[IncludeRoot]) -> IncludeRoot | None:
    """Return the first include root that contains ``import_path``."""
    for root in include_roots:
        if (root.path / import_path).is_file():
            return root
    return None


class DependencyGraph:
    """Forward and reverse import edges between schema files."""

    def __init__(self) -> None:
        self._imports: dict[SchemaFile, set[SchemaFile]] = {}
        self._dependents: dict[SchemaFile, set[SchemaFile]] = {}
        self.warnings: list[DependencyResolutionWarning] = []

    def add_node(self, node: SchemaFile) -> None:
        self._imports.setdefault(node, set())
        self._dependents.setdefault(node, set())

    def add_edge(self, importer: SchemaFile, imported: SchemaFile) -> None:
        self.add_node(importer)
        self.add_node(imported)
        self._imports[importer].add(imported)
        self._dependents[imported].add(importer)

    @property
    def nodes(self) -> list[SchemaFile]:
        return list(self._imports)

    def __contains__(self, node: object) -> bool:
        return node in self._imports

    def imports_of(self, node: SchemaFile) -> set[SchemaFile]:
        return set(self._imports.get(node, ()))

    def dependents_of(self, node: SchemaFile) -> set[SchemaFile]:
        return set(self._dependents.get(node, ()))

    def affected(self, changed: Iterable[SchemaFile]) -> set[SchemaFile]:
        """Changed files plus everything that transitively imports them (BFS)."""
        result: set[SchemaFile] = set()
        queue = deque(changed)
        while queue:
            node = queue.popleft()
            if node in result:
                continue
            result.add(node)
            queue.extend(self._dependents.get(node, ()))
        return result

    def find_cycle(self) -> list[SchemaFile] | None:
        """Return one import cycle (first node repeated at the end), or None."""
        white, grey, black = 0, 1, 2
        colour = {node: white for node in self._imports}

        for start in sorted(self._imports, key=lambda n: str(n.path)):
            if colour[start] != white:
                continue
            stack: list[tuple[SchemaFile, list[SchemaFile]]] = [
                (start, sorted(self._imports[start], key=lambda n: str(n.path)))
            ]
            path = [start]
            colour[start] = grey
            while stack:
                node, pending = stack[-1]
                if not pending:
                    colour[node] = black
                    stack.pop()
                    path.pop()
                    continue
                child = pending.pop(0)
                if colour[child] == grey:
                    return path[path.index(child):] + [child]
                if colour[child] == white:
                    colour[child] = grey
                    path.append(child)
                    stack.append(
                        (child, sorted(self._imports[child], key=lambda n: str(n.path)))
                    )
        return None


def _schema_file_for(
    import_path: str,
    root: IncludeRoot,
    known: dict[Path, SchemaFile],
) -> SchemaFile:
    path = (root.path / import_path).resolve()
    existing = known.get(path)
    if existing is not None:
        return existing
    schema = SchemaFile(
        path=path,
        root=root.path,
        logical_path=Path(import_path).as_posix(),
        origin=root.kind,
    )
    known[path] = schema
    return schema


def build_dependency_graph(
    sources: list[SchemaFile],
    include_roots: list[IncludeRoot],
    known_files: Iterable[SchemaFile] = (),
) -> DependencyGraph:
    """Build the import graph reachable from ``sources``.

    Args:
        sources: Compilable schema files; scanning starts here.
        include_roots: Ordered roots used for resolution.
        known_files: Other discovered files (import-only), so resolved
            imports reuse the same SchemaFile instances.

    Raises:
        DiscoveryError: a schema file cannot be read.
        CycleError: the imports form a cycle.
    """
    graph = DependencyGraph()
    known: dict[Path, SchemaFile] = {f.path: f for f in known_files}
    known.update({s.path: s for s in sources})

    queue = deque(sources)
    scanned: set[Path] = set()

    while queue:
        schema = queue.popleft()
        if schema.path in scanned:
            continue
        scanned.add(schema.path)
        graph.add_node(schema)

        try:
            text = schema.path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            raise DiscoveryError(f"Cannot read schema file {schema.path}: {e}", schema.path) from e

        for import_path in scan_imports(text):
            root = resolve_import(import_path, include_roots)
            if root is None:
                warning = DependencyResolutionWarning(schema.path, import_path)
                graph.warnings.append(warning)
                logger.warning("%s", warning)
                continue
            imported = _schema_file_for(import_path, root, known)
            graph.add_edge(schema, imported)
            if imported.path not in scanned:
                queue.append(imported)

    cycle = graph.find_cycle()
    if cycle is not None:
        raise CycleError([str(node) for node in cycle], cycle[0].path)

    logger.debug(
        "Built dependency graph with %d node(s), %d unresolved import(s)",
        len(graph.nodes),
        len(graph.warnings),
    )
    return graph
