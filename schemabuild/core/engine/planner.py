"""
Incremental decision engine — full, partial or no regeneration.

Combines discovery, the dependency graph and the two build states into a
single GenerationPlan. The previous state is passed in explicitly and
never mutated; nothing here touches the filesystem.

Decision order:
    incremental off / plugin without incremental support / no previous
    state / import-only files changed / a source was removed  →  Full
    nothing changed or added                                    →  Skip
    something changed and a descriptor set is written           →  Full
    otherwise                                                   →  Partial
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Literal

from schemabuild.core.models.config import PluginSpec
from schemabuild.core.models.schema import SchemaFile
from schemabuild.core.models.state import BuildState
from schemabuild.core.services.fingerprint import Classification, classify
from schemabuild.core.services.import_graph import DependencyGraph

logger = logging.getLogger(__name__)

PlanKind = Literal["full", "partial", "skip"]


@dataclass
class GenerationPlan:
    """What the generation invoker must emit.

    ``changed`` holds the changed or added sources; ``dependents`` holds
    the unchanged sources that transitively import them. For a full plan
    ``changed`` is every source.
    """

    kind: PlanKind
    changed: list[SchemaFile] = field(default_factory=list)
    dependents: list[SchemaFile] = field(default_factory=list)
    reason: str = ""
    classification: Classification | None = None
    _consumed: bool = field(default=False, repr=False)

    @classmethod
    def full(cls, sources: list[SchemaFile], reason: str) -> GenerationPlan:
        return cls(kind="full", changed=list(sources), reason=reason)

    @classmethod
    def partial(
        cls,
        changed: list[SchemaFile],
        dependents: list[SchemaFile],
        reason: str = "",
    ) -> GenerationPlan:
        return cls(
            kind="partial", changed=list(changed), dependents=list(dependents), reason=reason
        )

    @classmethod
    def skip(cls, reason: str = "all sources are up to date") -> GenerationPlan:
        return cls(kind="skip", reason=reason)

    @property
    def targets(self) -> list[SchemaFile]:
        """Files to emit code for."""
        return self.changed + self.dependents

    @property
    def is_skip(self) -> bool:
        return self.kind == "skip"

    def consume(self) -> list[SchemaFile]:
        """Hand the targets to the invoker. Allowed exactly once."""
        if self._consumed:
            raise RuntimeError("GenerationPlan has already been consumed")
        self._consumed = True
        return self.targets

    def to_dict(self) -> dict:
        result: dict = {
            "kind": self.kind,
            "reason": self.reason,
            "changed": [s.logical_path for s in self.changed],
            "dependents": [s.logical_path for s in self.dependents],
        }
        if self.classification is not None:
            result["classification"] = self.classification.to_dict()
        return result


def _blocking_plugins(plugins: list[PluginSpec]) -> list[str]:
    return [p.id for p in plugins if not p.supports_incremental]


def decide(
    sources: list[SchemaFile],
    graph: DependencyGraph,
    previous: BuildState | None,
    current: BuildState,
    incremental: bool = True,
    plugins: list[PluginSpec] | None = None,
    descriptor_set: bool = False,
) -> GenerationPlan:
    """Decide how much needs regenerating.

    Args:
        sources: Compilable sources in discovery order.
        graph: Import graph covering the sources.
        previous: State of the last successful build, or None.
        current: Freshly fingerprinted state of this build.
        incremental: Whether incremental generation is enabled.
        plugins: Configured plugins; any that cannot run incrementally
            forces a full plan.
        descriptor_set: A descriptor set is written. It must describe
            every source, so any change upgrades a partial plan to full.

    Returns:
        The GenerationPlan.
    """
    if not incremental:
        return GenerationPlan.full(sources, "incremental generation is disabled")

    blocking = _blocking_plugins(plugins or [])
    if blocking:
        return GenerationPlan.full(
            sources,
            f"plugin(s) {', '.join(blocking)} require the full source set",
        )

    if previous is None:
        return GenerationPlan.full(sources, "no usable previous build state")

    if previous.dependency_fingerprint != current.dependency_fingerprint:
        return GenerationPlan.full(sources, "import-only dependencies changed")

    classification = classify(current, previous)

    if classification.removed:
        plan = GenerationPlan.full(
            sources,
            f"{len(classification.removed)} source(s) removed since the last build",
        )
        plan.classification = classification
        return plan

    dirty = [s for s in sources if s.logical_path in classification.dirty]
    if not dirty:
        plan = GenerationPlan.skip()
        plan.classification = classification
        return plan

    if descriptor_set:
        plan = GenerationPlan.full(
            sources, f"{len(dirty)} source(s) changed and the descriptor set covers all sources"
        )
        plan.classification = classification
        return plan

    affected = graph.affected(dirty)
    dirty_set = set(dirty)
    dependents = [s for s in sources if s in affected and s not in dirty_set]

    plan = GenerationPlan.partial(
        dirty,
        dependents,
        reason=(
            f"{len(dirty)} source(s) changed, "
            f"{len(dependents)} dependent source(s) affected"
        ),
    )
    plan.classification = classification
    logger.debug("Partial plan targets: %s", [s.logical_path for s in plan.targets])
    return plan
