"""
Generation invoker — turn a plan into compiler invocations and run them.

One generation pass per output category: the primary compiler pass (one
``--<lang>_out`` flag per enabled language) and one pass per plugin, in
plugin order. Every pass receives the full include-root list so imports
resolve, but only the plan's targets are emitted.

Flow:
    plan → passes → actions (argv) → registry → receipts → generated outputs

Passes run sequentially and stop at the first failure. With
``parallel_passes`` enabled and distinct output directories they run on
a thread pool instead; passes not yet started are cancelled on failure.
"""

from __future__ import annotations

import concurrent.futures
import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from schemabuild.adapters.registry import AdapterRegistry
from schemabuild.core.engine.planner import GenerationPlan
from schemabuild.core.errors import GenerationFailure
from schemabuild.core.models.action import Action, Receipt
from schemabuild.core.models.config import GenerationConfig
from schemabuild.core.models.schema import IncludeRoot, SchemaFile
from schemabuild.core.models.state import BuildState
from schemabuild.core.services.temp_space import TemporarySpace, ensure_directory

logger = logging.getLogger(__name__)

COMPILER_PASS = "compiler"


@dataclass(frozen=True)
class GenerationPass:
    """One planned compiler invocation, before targets are known."""

    pass_id: str
    output_directory: Path
    flags: tuple[str, ...]


@dataclass
class GeneratedOutput:
    """What one successful pass produced."""

    directory: Path
    role: str
    pass_id: str
    files: list[str] = field(default_factory=list)   # relative to directory

    def to_dict(self) -> dict:
        return {
            "directory": str(self.directory),
            "role": self.role,
            "pass_id": self.pass_id,
            "files": self.files,
        }


@dataclass
class InvocationReport:
    """Result of running the passes for one plan."""

    operation_id: str = ""
    receipts: list[Receipt] = field(default_factory=list)
    outputs: list[GeneratedOutput] = field(default_factory=list)

    @property
    def invocations(self) -> int:
        return len(self.receipts)

    @property
    def files_generated(self) -> int:
        return sum(len(o.files) for o in self.outputs)

    def to_dict(self) -> dict:
        return {
            "operation_id": self.operation_id,
            "invocations": self.invocations,
            "files_generated": self.files_generated,
            "outputs": [o.to_dict() for o in self.outputs],
        }


def generate_operation_id() -> str:
    """Generate a unique operation ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    return f"gen-{now}-{uuid.uuid4().hex[:6]}"


def plugin_pass_id(plugin_id: str) -> str:
    return f"plugin:{plugin_id}"


def planned_passes(config: GenerationConfig) -> list[GenerationPass]:
    """Passes in registration order: compiler first, then plugins by order.

    The compiler pass exists when languages or a descriptor set are
    configured.
    """
    passes: list[GenerationPass] = []
    out = config.effective_output_directory

    compiler = config.compiler
    prefix = "lite:" if compiler.lite else ""
    flags = [f"--{lang}_out={prefix}{out}" for lang in compiler.languages]
    descriptor = compiler.descriptor_set
    if descriptor is not None:
        flags.append(f"--descriptor_set_out={descriptor.path}")
        if descriptor.include_imports:
            flags.append("--include_imports")
        if descriptor.include_source_info:
            flags.append("--include_source_info")
        if descriptor.retain_options:
            flags.append("--retain_options")
    if flags:
        passes.append(
            GenerationPass(pass_id=COMPILER_PASS, output_directory=out, flags=tuple(flags))
        )

    for plugin in config.ordered_plugins():
        plugin_out = config.plugin_output_directory(plugin)
        flags = [
            f"--plugin=protoc-gen-{plugin.id}={plugin.executable}",
            f"--{plugin.id}_out={plugin_out}",
        ]
        if plugin.options:
            flags.append(f"--{plugin.id}_opt={plugin.options}")
        passes.append(
            GenerationPass(
                pass_id=plugin_pass_id(plugin.id),
                output_directory=plugin_out,
                flags=tuple(flags),
            )
        )

    return passes


def build_argv(
    generation_pass: GenerationPass,
    config: GenerationConfig,
    include_roots: list[IncludeRoot],
    targets: list[SchemaFile],
) -> list[str]:
    """Full command line for a pass: executable, -I roots, flags, targets."""
    argv = [config.compiler.executable]
    argv += [f"-I{root.path}" for root in include_roots]
    if config.compiler.fatal_warnings:
        argv.append("--fatal_warnings")
    argv += generation_pass.flags
    argv += config.compiler.extra_arguments
    argv += [str(target.path) for target in targets]
    return argv


def _with_argument_file(
    argv: list[str],
    pass_id: str,
    space: TemporarySpace,
    threshold: int,
) -> list[str]:
    """Move arguments into an @file when the command line gets too long."""
    if threshold <= 0 or sum(len(a) + 1 for a in argv) <= threshold:
        return argv
    directory = space.acquire("argfiles")
    path = directory / f"{pass_id.replace(':', '-')}.args"
    path.write_text("\n".join(argv[1:]) + "\n", encoding="utf-8")
    logger.debug("Command line for %s written to argument file %s", pass_id, path)
    return [argv[0], f"@{path}"]


def build_actions(
    targets: list[SchemaFile],
    config: GenerationConfig,
    include_roots: list[IncludeRoot],
    space: TemporarySpace,
    operation_id: str,
) -> list[Action]:
    """One Action per planned pass."""
    actions = []
    for generation_pass in planned_passes(config):
        argv = build_argv(generation_pass, config, include_roots, targets)
        argv = _with_argument_file(
            argv, generation_pass.pass_id, space, config.argument_file_threshold
        )
        actions.append(
            Action(
                id=f"{operation_id}:{generation_pass.pass_id}",
                pass_id=generation_pass.pass_id,
                argv=argv,
                params={
                    "output_directory": str(generation_pass.output_directory),
                    "targets": [t.logical_path for t in targets],
                },
            )
        )
    return actions


# ── Output bookkeeping ──────────────────────────────────────────────


def snapshot_directory(directory: Path) -> dict[str, tuple[int, int]]:
    """Map of relative file path → (mtime_ns, size)."""
    if not directory.is_dir():
        return {}
    snapshot = {}
    for path in directory.rglob("*"):
        if path.is_file():
            st = path.stat()
            snapshot[path.relative_to(directory).as_posix()] = (st.st_mtime_ns, st.st_size)
    return snapshot


def changed_files(
    before: dict[str, tuple[int, int]],
    after: dict[str, tuple[int, int]],
) -> list[str]:
    return sorted(name for name, sig in after.items() if before.get(name) != sig)


def _run_action(
    action: Action,
    registry: AdapterRegistry,
    config: GenerationConfig,
) -> tuple[Receipt, GeneratedOutput]:
    directory = Path(action.params["output_directory"])
    before = snapshot_directory(directory)
    receipt = registry.execute_action(
        action=action,
        working_dir="",
        timeout=config.compiler.timeout,
    )
    output = GeneratedOutput(
        directory=directory,
        role=config.role,
        pass_id=action.pass_id,
        files=changed_files(before, snapshot_directory(directory)) if receipt.ok else [],
    )
    return receipt, output


def _failure(action: Action, receipt: Receipt) -> GenerationFailure:
    return GenerationFailure(
        pass_id=action.pass_id,
        exit_code=receipt.exit_code,
        diagnostics=receipt.error or "",
        path=action.params.get("output_directory"),
    )


def _execute_sequential(
    actions: list[Action],
    registry: AdapterRegistry,
    config: GenerationConfig,
    report: InvocationReport,
) -> None:
    for action in actions:
        receipt, output = _run_action(action, registry, config)
        report.receipts.append(receipt)
        if receipt.failed:
            raise _failure(action, receipt)
        report.outputs.append(output)


def _execute_parallel(
    actions: list[Action],
    registry: AdapterRegistry,
    config: GenerationConfig,
    report: InvocationReport,
) -> None:
    results: dict[str, tuple[Receipt, GeneratedOutput]] = {}
    first_failure: GenerationFailure | None = None

    with concurrent.futures.ThreadPoolExecutor(max_workers=len(actions)) as pool:
        futures = {pool.submit(_run_action, a, registry, config): a for a in actions}
        for future in concurrent.futures.as_completed(futures):
            if future.cancelled():
                continue
            action = futures[future]
            receipt, output = future.result()
            results[action.id] = (receipt, output)
            if receipt.failed and first_failure is None:
                first_failure = _failure(action, receipt)
                for pending in futures:
                    pending.cancel()

    # Report in declaration order regardless of completion order.
    for action in actions:
        if action.id not in results:
            continue
        receipt, output = results[action.id]
        report.receipts.append(receipt)
        if receipt.ok:
            report.outputs.append(output)

    if first_failure is not None:
        raise first_failure


def directories_overlap(directories: list[Path]) -> bool:
    """True if any directory equals or contains another one."""
    resolved = [d.resolve() for d in directories]
    for i, first in enumerate(resolved):
        for second in resolved[i + 1 :]:
            if first == second or first.is_relative_to(second) or second.is_relative_to(first):
                return True
    return False


def _can_parallelize(actions: list[Action]) -> bool:
    directories = [Path(a.params["output_directory"]) for a in actions]
    return len(actions) > 1 and not directories_overlap(directories)


def execute_actions(
    actions: list[Action],
    registry: AdapterRegistry,
    config: GenerationConfig,
    operation_id: str = "",
) -> InvocationReport:
    """Run the actions, fail-fast.

    Raises:
        GenerationFailure: a pass exited non-zero. Passes after it (or not
            yet started, when parallel) are not run.
        ResourceConflict: an output directory is blocked by a file.
    """
    report = InvocationReport(operation_id=operation_id)

    for action in actions:
        ensure_directory(Path(action.params["output_directory"]))
    if config.compiler.descriptor_set is not None:
        ensure_directory(config.compiler.descriptor_set.path.parent)

    if config.parallel_passes and _can_parallelize(actions):
        logger.debug("Running %d passes in parallel", len(actions))
        _execute_parallel(actions, registry, config, report)
    else:
        if config.parallel_passes and len(actions) > 1:
            logger.debug("Passes share or nest output directories, running sequentially")
        _execute_sequential(actions, registry, config, report)

    return report


def run_generation(
    plan: GenerationPlan,
    config: GenerationConfig,
    include_roots: list[IncludeRoot],
    registry: AdapterRegistry,
    space: TemporarySpace,
    operation_id: str,
) -> InvocationReport:
    """Consume a plan and run every pass it needs.

    A Skip plan performs zero invocations and reports zero files.
    """
    targets = plan.consume()
    if plan.is_skip:
        logger.info("All sources are up to date, nothing to generate")
        return InvocationReport(operation_id=operation_id)

    logger.info(
        "Generating code for %d of the schema source(s) (%s build)",
        len(targets),
        plan.kind,
    )
    actions = build_actions(targets, config, include_roots, space, operation_id)
    return execute_actions(actions, registry, config, operation_id)


def clean_previous_outputs(previous: BuildState | None) -> list[Path]:
    """Delete the files a previous build recorded as generated.

    Run before a full build so outputs of removed sources do not linger.
    Only recorded files are touched; anything else in the output
    directories is left alone.
    """
    if previous is None:
        return []

    removed = []
    for record in previous.generated_outputs:
        for name in record.files:
            path = Path(record.directory) / name
            if path.is_file():
                path.unlink()
                removed.append(path)
    if removed:
        logger.info("Removed %d previously generated file(s) before full build", len(removed))
    return removed
