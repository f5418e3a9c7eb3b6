"""
Tests for the generation invoker — passes, argv, fail-fast, outputs.
"""

import logging
from pathlib import Path

import pytest

from schemabuild.adapters.mock import MockAdapter, write_outputs
from schemabuild.adapters.registry import AdapterRegistry
from schemabuild.core.engine.executor import (
    COMPILER_PASS,
    build_actions,
    build_argv,
    clean_previous_outputs,
    directories_overlap,
    generate_operation_id,
    planned_passes,
    run_generation,
)
from schemabuild.core.engine.planner import GenerationPlan
from schemabuild.core.errors import GenerationFailure, ResourceConflict
from schemabuild.core.models.state import BuildState, OutputRecord
from schemabuild.core.services.discovery import discover_sources


@pytest.fixture
def discovered(make_config, write_schema, schema_dir, space):
    write_schema(schema_dir, "a.proto")
    write_schema(schema_dir, "b.proto", imports=("a.proto",))
    return discover_sources(make_config(), space)


def _registry(mock: MockAdapter) -> AdapterRegistry:
    registry = AdapterRegistry()
    registry.register(mock)
    return registry


class TestPlannedPasses:
    def test_compiler_pass_per_language(self, make_config):
        config = make_config(compiler={"languages": ["java", "kotlin"]})
        (compiler,) = planned_passes(config)
        out = config.effective_output_directory
        assert compiler.pass_id == COMPILER_PASS
        assert compiler.flags == (f"--java_out={out}", f"--kotlin_out={out}")

    def test_plugins_sorted_by_order(self, make_config, tmp_path: Path):
        config = make_config(
            plugins=[
                {"id": "second", "executable": "/bin/gen-second", "order": 2},
                {
                    "id": "first",
                    "executable": "/bin/gen-first",
                    "order": 1,
                    "options": "lite",
                    "output_directory": tmp_path / "grpc",
                },
            ]
        )
        passes = planned_passes(config)
        assert [p.pass_id for p in passes] == ["compiler", "plugin:first", "plugin:second"]
        first = passes[1]
        assert first.output_directory == tmp_path / "grpc"
        assert first.flags == (
            "--plugin=protoc-gen-first=/bin/gen-first",
            f"--first_out={tmp_path / 'grpc'}",
            "--first_opt=lite",
        )

    def test_no_languages_means_no_compiler_pass(self, make_config):
        config = make_config(
            compiler={"languages": []},
            plugins=[{"id": "only", "executable": "gen-only"}],
        )
        assert [p.pass_id for p in planned_passes(config)] == ["plugin:only"]


    def test_lite_prefix(self, make_config):
        config = make_config(compiler={"languages": ["java", "python"], "lite": True})
        (compiler,) = planned_passes(config)
        out = config.effective_output_directory
        assert compiler.flags == (f"--java_out=lite:{out}", f"--python_out=lite:{out}")

    def test_descriptor_set_flags(self, make_config, tmp_path: Path):
        descriptor = tmp_path / "out.binpb"
        config = make_config(
            compiler={
                "languages": ["java"],
                "descriptor_set": {
                    "path": descriptor,
                    "include_imports": True,
                    "retain_options": True,
                },
            }
        )
        (compiler,) = planned_passes(config)
        assert compiler.flags[1:] == (
            f"--descriptor_set_out={descriptor}",
            "--include_imports",
            "--retain_options",
        )

    def test_descriptor_set_alone_is_a_compiler_pass(self, make_config, tmp_path: Path):
        config = make_config(
            compiler={"languages": [], "descriptor_set": {"path": tmp_path / "d.binpb"}}
        )
        (compiler,) = planned_passes(config)
        assert compiler.pass_id == COMPILER_PASS
        assert compiler.flags == (f"--descriptor_set_out={tmp_path / 'd.binpb'}",)


class TestDirectoriesOverlap:
    def test_siblings_are_distinct(self, tmp_path: Path):
        assert not directories_overlap([tmp_path / "java", tmp_path / "grpc"])

    def test_same_directory(self, tmp_path: Path):
        assert directories_overlap([tmp_path / "out", tmp_path / "out" / "."])

    def test_nested_directory(self, tmp_path: Path):
        dirs = [tmp_path / "out", tmp_path / "other", tmp_path / "out" / "grpc"]
        assert directories_overlap(dirs)


class TestBuildArgv:
    def test_layout(self, make_config, discovered):
        config = make_config(
            compiler={
                "executable": "/opt/protoc",
                "languages": ["java"],
                "fatal_warnings": True,
                "extra_arguments": ["--experimental_allow_proto3_optional"],
            }
        )
        (compiler,) = planned_passes(config)
        argv = build_argv(compiler, config, discovered.include_roots, discovered.sources)

        root = discovered.include_roots[0].path
        assert argv[0] == "/opt/protoc"
        assert argv[1] == f"-I{root}"
        assert argv[2] == "--fatal_warnings"
        assert argv[3].startswith("--java_out=")
        assert argv[4] == "--experimental_allow_proto3_optional"
        assert argv[5:] == [str(root / "a.proto"), str(root / "b.proto")]

    def test_argument_file_for_long_command_lines(self, make_config, discovered, space):
        config = make_config(argument_file_threshold=10)
        (action,) = build_actions(discovered.sources, config, discovered.include_roots, space, "op")
        assert action.argv[0] == "protoc"
        assert len(action.argv) == 2
        argfile = Path(action.argv[1].lstrip("@"))
        lines = argfile.read_text().splitlines()
        assert lines[0].startswith("-I")
        assert lines[-1].endswith("b.proto")

    def test_action_params(self, make_config, discovered, space):
        config = make_config()
        (action,) = build_actions(
            discovered.sources[:1], config, discovered.include_roots, space, "op-1"
        )
        assert action.id == "op-1:compiler"
        assert action.params["targets"] == ["a.proto"]
        assert action.params["output_directory"] == str(config.effective_output_directory)


class TestRunGeneration:
    def test_full_plan_runs_every_pass(self, make_config, discovered, space):
        config = make_config(plugins=[{"id": "grpc", "executable": "gen-grpc"}])
        mock = MockAdapter(on_execute=write_outputs({"A.java": "class A {}"}))
        plan = GenerationPlan.full(discovered.sources, "test")

        report = run_generation(
            plan, config, discovered.include_roots, _registry(mock), space, "op-1"
        )

        assert mock.call_count == 2
        assert report.invocations == 2
        assert report.outputs[0].pass_id == "compiler"
        assert report.outputs[0].files == ["A.java"]
        assert (config.effective_output_directory / "A.java").is_file()

    def test_skip_plan_invokes_nothing(self, make_config, discovered, space):
        mock = MockAdapter()
        report = run_generation(
            GenerationPlan.skip(), make_config(), discovered.include_roots,
            _registry(mock), space, "op-1",
        )
        assert mock.call_count == 0
        assert report.invocations == 0
        assert report.files_generated == 0

    def test_partial_plan_emits_targets_but_keeps_all_roots(self, make_config, discovered, space):
        mock = MockAdapter()
        a, b = discovered.sources
        plan = GenerationPlan.partial([a], [b])
        run_generation(plan, make_config(), discovered.include_roots, _registry(mock), space, "op")
        argv = mock.argv_for("compiler")
        assert f"-I{discovered.include_roots[0].path}" in argv
        assert argv[-2:] == [str(a.path), str(b.path)]

    def test_failure_is_fail_fast(self, make_config, discovered, space):
        config = make_config(plugins=[{"id": "grpc", "executable": "gen-grpc"}])
        mock = MockAdapter()
        mock.set_failure("compiler", error='a.proto:3:1: Expected ";".\n', exit_code=1)

        with pytest.raises(GenerationFailure) as exc:
            run_generation(
                GenerationPlan.full(discovered.sources, "test"),
                config, discovered.include_roots, _registry(mock), space, "op",
            )

        assert mock.call_count == 1
        assert exc.value.pass_id == "compiler"
        assert exc.value.exit_code == 1
        assert exc.value.diagnostics == 'a.proto:3:1: Expected ";".\n'
        assert 'a.proto:3:1: Expected ";".' in str(exc.value)

    def test_parallel_passes(self, make_config, discovered, space, tmp_path: Path):
        config = make_config(
            parallel_passes=True,
            plugins=[
                {"id": "one", "executable": "gen-one", "output_directory": tmp_path / "one"},
                {"id": "two", "executable": "gen-two", "output_directory": tmp_path / "two"},
            ],
        )
        mock = MockAdapter(on_execute=write_outputs({"out.txt": "x"}))
        report = run_generation(
            GenerationPlan.full(discovered.sources, "test"),
            config, discovered.include_roots, _registry(mock), space, "op",
        )
        assert mock.call_count == 3
        assert [o.pass_id for o in report.outputs] == ["compiler", "plugin:one", "plugin:two"]
        assert all(o.files == ["out.txt"] for o in report.outputs)

    def test_nested_output_directories_run_sequentially(
        self, make_config, discovered, space, caplog
    ):
        primary = make_config().effective_output_directory
        config = make_config(
            parallel_passes=True,
            plugins=[
                {"id": "grpc", "executable": "gen-grpc", "output_directory": primary / "grpc"}
            ],
        )
        mock = MockAdapter(on_execute=write_outputs({"out.txt": "x"}))
        with caplog.at_level(logging.DEBUG, logger="schemabuild.core.engine.executor"):
            report = run_generation(
                GenerationPlan.full(discovered.sources, "test"),
                config, discovered.include_roots, _registry(mock), space, "op",
            )
        assert "running sequentially" in caplog.text
        assert [(o.pass_id, o.files) for o in report.outputs] == [
            ("compiler", ["out.txt"]),
            ("plugin:grpc", ["out.txt"]),
        ]

    def test_parallel_failure_raises(self, make_config, discovered, space, tmp_path: Path):
        config = make_config(
            parallel_passes=True,
            plugins=[{"id": "bad", "executable": "gen-bad", "output_directory": tmp_path / "bad"}],
        )
        mock = MockAdapter()
        mock.set_failure("plugin:bad", error="boom")
        with pytest.raises(GenerationFailure) as exc:
            run_generation(
                GenerationPlan.full(discovered.sources, "test"),
                config, discovered.include_roots, _registry(mock), space, "op",
            )
        assert exc.value.pass_id == "plugin:bad"

    def test_output_directory_blocked_by_file(self, make_config, discovered, space, tmp_path):
        blocked = tmp_path / "blocked"
        blocked.write_text("file")
        config = make_config(output_directory=blocked)
        mock = MockAdapter()
        with pytest.raises(ResourceConflict):
            run_generation(
                GenerationPlan.full(discovered.sources, "test"),
                config, discovered.include_roots, _registry(mock), space, "op",
            )
        assert mock.call_count == 0


class TestCleanPreviousOutputs:
    def test_removes_only_recorded_files(self, tmp_path: Path):
        out = tmp_path / "out"
        (out / "pkg").mkdir(parents=True)
        (out / "pkg" / "A.java").write_text("a")
        (out / "handwritten.java").write_text("keep")
        previous = BuildState(
            generated_outputs=[
                OutputRecord(directory=str(out), files=["pkg/A.java", "pkg/Gone.java"])
            ]
        )

        removed = clean_previous_outputs(previous)

        assert removed == [out / "pkg" / "A.java"]
        assert (out / "handwritten.java").is_file()

    def test_no_previous_state(self):
        assert clean_previous_outputs(None) == []


def test_operation_id_format():
    op = generate_operation_id()
    assert op.startswith("gen-")
    assert op != generate_operation_id()
