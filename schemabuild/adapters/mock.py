"""
Mock adapter — test double standing in for the compiler process.

Records every execution context it receives, so tests can assert on the
exact argument lists, and can be told to fail specific passes or to
drop files into an output directory the way a compiler would.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

from schemabuild.adapters.base import Adapter, ExecutionContext
from schemabuild.core.models.action import Receipt


class MockAdapter(Adapter):
    """Universal mock adapter for testing.

    By default returns success for everything. ``on_execute`` may be set
    to a callable receiving the context, e.g. to write generated files.
    """

    def __init__(
        self,
        adapter_name: str = "process",
        available: bool = True,
        default_output: str = "[mock] executed",
        on_execute: Callable[[ExecutionContext], None] | None = None,
    ):
        self._name = adapter_name
        self._available = available
        self._default_output = default_output
        self._failures: dict[str, tuple[str, int]] = {}
        self._call_log: list[ExecutionContext] = []
        self.on_execute = on_execute

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[ExecutionContext]:
        """All execution contexts this mock has received."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def argv_for(self, pass_id: str) -> list[str]:
        """Argument list of the last call for a pass."""
        for ctx in reversed(self._call_log):
            if ctx.action.pass_id == pass_id:
                return list(ctx.action.argv)
        raise KeyError(pass_id)

    def is_available(self) -> bool:
        return self._available

    def set_failure(self, pass_id: str, error: str = "Mock failure", exit_code: int = 1) -> None:
        """Configure a specific pass to fail with the given stderr."""
        self._failures[pass_id] = (error, exit_code)

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        self._call_log.append(context)

        failure = self._failures.get(context.action.pass_id)
        if failure is not None:
            error, exit_code = failure
            return Receipt.failure(
                adapter=self._name,
                action_id=context.action.id,
                error=error,
                exit_code=exit_code,
            )

        if self.on_execute is not None:
            self.on_execute(context)

        return Receipt.success(
            adapter=self._name,
            action_id=context.action.id,
            output=self._default_output,
            exit_code=0,
            metadata={"mock": True},
        )


def write_outputs(files: dict[str, str]) -> Callable[[ExecutionContext], None]:
    """``on_execute`` hook that writes ``files`` into the action's output directory."""

    def _write(context: ExecutionContext) -> None:
        out = Path(context.action.params["output_directory"])
        for name, content in files.items():
            target = out / name
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")

    return _write
