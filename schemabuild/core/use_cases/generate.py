"""
Generate use case — one incremental code-generation run.

This is the top-level orchestrator: it discovers sources, builds the
import graph, fingerprints the tree, decides what to regenerate, runs
the compiler passes, persists the new build state and registers the
output directories. The full vertical slice from configuration to
registered source roots.

State is only written after every pass succeeded. Any fatal error
leaves the previous state as it was (or cleared, when a full build had
already started deleting old outputs), so the next run rebuilds.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path

from schemabuild.adapters.registry import AdapterRegistry
from schemabuild.core.config.loader import ConfigError, load_config
from schemabuild.core.engine.executor import (
    GeneratedOutput,
    InvocationReport,
    clean_previous_outputs,
    generate_operation_id,
    planned_passes,
    run_generation,
)
from schemabuild.core.engine.planner import GenerationPlan, decide
from schemabuild.core.engine.registrar import RegisterCallback, SourceRootRegistrar
from schemabuild.core.errors import GenerationFailure, SchemaBuildError, StateCorruption
from schemabuild.core.models.config import GenerationConfig
from schemabuild.core.models.schema import SchemaFile
from schemabuild.core.models.state import BuildState, OutputRecord
from schemabuild.core.persistence.audit import DEFAULT_AUDIT_FILE, AuditEntry, AuditWriter
from schemabuild.core.persistence.state_file import FingerprintStore, default_state_path
from schemabuild.core.services.discovery import SourceDiscovery, discover_sources
from schemabuild.core.services.fingerprint import build_state
from schemabuild.core.services.import_graph import DependencyGraph, build_dependency_graph
from schemabuild.core.services.temp_space import FRAGMENT, TemporarySpace

logger = logging.getLogger(__name__)

# Statuses that do not fail the build.
OK_STATUSES = ("ok", "skipped", "nothing_to_do", "planned", "disabled")


@dataclass
class GenerationResult:
    """Result of a generate (or plan) run."""

    status: str = ""
    operation_id: str = ""
    role: str = "main"
    plan: GenerationPlan | None = None
    discovery: SourceDiscovery | None = None
    report: InvocationReport | None = None
    registered: list[Path] = field(default_factory=list)
    state_path: Path | None = None
    duration_ms: int = 0
    error: str | None = None
    failure: SchemaBuildError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.status in OK_STATUSES

    def to_dict(self) -> dict:
        result: dict = {
            "status": self.status,
            "operation_id": self.operation_id,
            "role": self.role,
            "duration_ms": self.duration_ms,
        }
        if self.error:
            result["error"] = self.error
        if isinstance(self.failure, GenerationFailure):
            result["failure"] = {
                "pass_id": self.failure.pass_id,
                "exit_code": self.failure.exit_code,
                "diagnostics": self.failure.diagnostics,
            }
        if self.plan is not None:
            result["plan"] = self.plan.to_dict()
        if self.discovery is not None:
            result["discovery"] = self.discovery.to_dict()
        if self.report is not None:
            result["report"] = self.report.to_dict()
        result["registered"] = [str(p) for p in self.registered]
        if self.state_path is not None:
            result["state_path"] = str(self.state_path)
        return result


def default_registry() -> AdapterRegistry:
    """Registry with the process adapter that runs the real compiler."""
    from schemabuild.adapters.shell.command import ProcessAdapter

    registry = AdapterRegistry()
    registry.register(ProcessAdapter())
    return registry


def audit_path(config: GenerationConfig) -> Path:
    return config.build_directory / FRAGMENT / DEFAULT_AUDIT_FILE


def state_store(config: GenerationConfig) -> FingerprintStore:
    """The fingerprint store for a config's role and output directory."""
    space = TemporarySpace(config.build_directory, config.role, config.execution_id)
    return FingerprintStore(default_state_path(space, config.effective_output_directory))


def _recorded_state(store: FingerprintStore) -> BuildState | None:
    """Last saved state regardless of compatibility, for output cleanup."""
    try:
        return store.read()
    except StateCorruption as e:
        logger.warning("%s; previously generated files will not be removed", e)
        return None


def _merge_outputs(
    recorded: list[OutputRecord],
    outputs: list[GeneratedOutput],
) -> list[OutputRecord]:
    """Recorded outputs still on disk, plus what this run wrote."""
    merged: dict[tuple[str, str], OutputRecord] = {}

    for record in recorded:
        directory = Path(record.directory)
        existing = [name for name in record.files if (directory / name).is_file()]
        merged[(record.directory, record.pass_id)] = record.model_copy(update={"files": existing})

    for output in outputs:
        key = (str(output.directory), output.pass_id)
        record = merged.get(key)
        if record is None:
            merged[key] = OutputRecord(
                directory=key[0],
                role=output.role,
                pass_id=output.pass_id,
                files=list(output.files),
            )
        else:
            record.files = sorted(set(record.files) | set(output.files))

    return list(merged.values())


def _import_context(discovery: SourceDiscovery, graph: DependencyGraph) -> list[SchemaFile]:
    """Every non-source file the build depends on.

    Besides the discovered import-only files this includes files the
    graph reached that discovery filtered out, such as an excluded file
    in a source root that a source still imports.
    """
    source_paths = {s.path for s in discovery.sources}
    context = {d.path: d for d in discovery.dependencies}
    for node in graph.nodes:
        if node.path not in source_paths:
            context.setdefault(node.path, node)
    return list(context.values())


def _register_outputs(
    result: GenerationResult,
    config: GenerationConfig,
    registrar: SourceRootRegistrar,
) -> None:
    if not config.register_source_roots:
        logger.debug("Source root registration is disabled")
        return
    if result.report is None:
        logger.debug("No generation report, nothing to register")
        return

    outputs = result.report.outputs
    if result.plan is not None and result.plan.is_skip:
        # Nothing ran; previously generated sources still need compiling.
        outputs = [
            GeneratedOutput(directory=p.output_directory, role=config.role, pass_id=p.pass_id)
            for p in planned_passes(config)
            if p.output_directory.is_dir()
        ]
    result.registered = registrar.register_outputs(outputs, config.role)


def _fail_or_nothing(
    result: GenerationResult,
    fail: bool,
    failed_status: str,
    message: str,
) -> None:
    if fail:
        result.status = failed_status
        result.error = message
        logger.error("%s", message)
    else:
        result.status = "nothing_to_do"
        logger.info("%s, nothing to do", message)


def _run(
    result: GenerationResult,
    config: GenerationConfig,
    registry: AdapterRegistry,
    registrar: SourceRootRegistrar,
    dry_run: bool,
    incremental: bool,
) -> None:
    space = TemporarySpace(config.build_directory, config.role, config.execution_id)

    # ── Discover ─────────────────────────────────────────────────
    discovery = discover_sources(config, space)
    result.discovery = discovery

    if not discovery.sources:
        _fail_or_nothing(
            result,
            config.fail_on_missing_sources,
            "no_sources",
            "No schema sources found in "
            + (", ".join(str(p) for p in config.source_directories) or "any source directory"),
        )
        return

    if not planned_passes(config):
        _fail_or_nothing(
            result,
            config.fail_on_missing_targets,
            "no_targets",
            "No target languages or plugins are configured",
        )
        return

    # ── Graph + fingerprints ─────────────────────────────────────
    graph = build_dependency_graph(
        discovery.sources, discovery.include_roots, discovery.dependencies
    )
    current = build_state(discovery.sources, _import_context(discovery, graph), config)

    store = FingerprintStore(default_state_path(space, config.effective_output_directory))
    result.state_path = store.path
    previous = store.load(current.config_fingerprint)

    # ── Decide ───────────────────────────────────────────────────
    plan = decide(
        discovery.sources,
        graph,
        previous,
        current,
        incremental=incremental,
        plugins=config.plugins,
        descriptor_set=config.compiler.descriptor_set is not None,
    )
    result.plan = plan
    logger.info("Generation plan: %s (%s)", plan.kind, plan.reason)

    if dry_run:
        result.status = "skipped" if plan.is_skip else "planned"
        return

    # ── Clean up after the previous build ────────────────────────
    recorded = _recorded_state(store)
    if plan.kind == "full" and config.prune_stale_outputs and recorded is not None:
        # Drop the state first: if this build fails, the next one must be full.
        store.clear()
        clean_previous_outputs(recorded)
        recorded = None

    # ── Generate ─────────────────────────────────────────────────
    report = run_generation(
        plan, config, discovery.include_roots, registry, space, result.operation_id
    )
    result.report = report

    # ── Persist ──────────────────────────────────────────────────
    current.generated_outputs = _merge_outputs(
        recorded.generated_outputs if recorded is not None else [],
        report.outputs,
    )
    if previous is not None:
        current.created_at = previous.created_at
    store.save(current)

    # ── Register ─────────────────────────────────────────────────
    _register_outputs(result, config, registrar)

    result.status = "skipped" if plan.is_skip else "ok"


def generate(
    config: GenerationConfig,
    registry: AdapterRegistry | None = None,
    register: RegisterCallback | None = None,
    dry_run: bool = False,
    incremental: bool | None = None,
    registrar: SourceRootRegistrar | None = None,
) -> GenerationResult:
    """Run one generation for a loaded configuration.

    Args:
        config: Resolved build configuration.
        registry: Adapter registry; defaults to the process adapter.
        register: Build-system callback receiving ``(directory, role)``.
        dry_run: Decide only. Nothing is invoked, saved or registered.
        incremental: Overrides ``config.incremental`` when given.
        registrar: Registrar to reuse across several runs of one build,
            so a directory is never registered twice.

    Returns:
        GenerationResult. Fatal pipeline errors are reported through
        ``error`` and ``failure`` rather than raised.
    """
    start = time.monotonic()
    result = GenerationResult(operation_id=generate_operation_id(), role=config.role)

    if config.skip:
        logger.info("Generation is skipped (skip: true)")
        result.status = "disabled"
        return result

    if registry is None:
        registry = default_registry()
    if registrar is None:
        registrar = SourceRootRegistrar(register)
    if incremental is None:
        incremental = config.incremental

    try:
        _run(result, config, registry, registrar, dry_run, incremental)
    except SchemaBuildError as e:
        result.status = "failed"
        result.error = str(e)
        result.failure = e
        logger.error("%s", e)
    except OSError as e:
        result.status = "failed"
        result.error = f"Filesystem error: {e}"
        logger.error("%s", result.error)

    result.duration_ms = int((time.monotonic() - start) * 1000)

    if not dry_run:
        _write_audit(result, config)

    return result


def _write_audit(result: GenerationResult, config: GenerationConfig) -> None:
    plan = result.plan
    AuditWriter(audit_path(config)).write(
        AuditEntry(
            operation_id=result.operation_id,
            role=result.role,
            plan=plan.kind if plan else "",
            reason=plan.reason if plan else "",
            sources_total=result.discovery.source_count if result.discovery else 0,
            targets=[s.logical_path for s in plan.targets] if plan else [],
            status=result.status,
            invocations=result.report.invocations if result.report else 0,
            files_generated=result.report.files_generated if result.report else 0,
            duration_ms=result.duration_ms,
            errors=[result.error] if result.error else [],
            context={"registered": [str(p) for p in result.registered]},
        )
    )


def run_generate(
    config_path: Path | None = None,
    role: str | None = None,
    incremental: bool | None = None,
    dry_run: bool = False,
    registry: AdapterRegistry | None = None,
    register: RegisterCallback | None = None,
) -> GenerationResult:
    """Load schemabuild.yml and run :func:`generate`.

    Args:
        config_path: Optional explicit path to schemabuild.yml.
        role: Overrides the configured role (main/test).
        incremental: Overrides ``incremental`` from the config.
        dry_run: Decide only.
        registry: Optional pre-configured adapter registry.
        register: Build-system registration callback.
    """
    try:
        config = load_config(config_path)
        if role is not None:
            config = config.model_copy(update={"role": role})
    except ConfigError as e:
        return GenerationResult(status="failed", error=str(e))

    return generate(
        config,
        registry=registry,
        register=register,
        dry_run=dry_run,
        incremental=incremental,
    )
