"""
Action and Receipt models — the invocation contract.

An Action describes one external process to run (a generation pass).
A Receipt describes how it went. Adapters receive Actions and return
Receipts; they never raise, so the executor decides what a failure
means for the rest of the build.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Action(BaseModel):
    """A requested external invocation."""

    id: str                         # unique per build, e.g. "op-...:plugin:grpc"
    pass_id: str                    # "compiler" or "plugin:<id>"
    adapter: str = "process"
    argv: list[str] = Field(default_factory=list)
    params: dict[str, Any] = Field(default_factory=dict)


class Receipt(BaseModel):
    """Result of executing an Action.

    ``output`` holds stdout and ``error`` holds stderr exactly as the
    process produced them.
    """

    adapter: str
    action_id: str
    status: Literal["ok", "skipped", "failed"] = "ok"

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    output: str = ""
    error: str | None = None
    exit_code: int | None = None

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the action succeeded."""
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        """Whether the action failed."""
        return self.status == "failed"

    @classmethod
    def success(
        cls,
        adapter: str,
        action_id: str,
        output: str = "",
        **kwargs: Any,
    ) -> Receipt:
        """Create a success receipt."""
        return cls(
            adapter=adapter,
            action_id=action_id,
            status="ok",
            output=output,
            **kwargs,
        )

    @classmethod
    def failure(
        cls,
        adapter: str,
        action_id: str,
        error: str,
        **kwargs: Any,
    ) -> Receipt:
        """Create a failure receipt."""
        return cls(
            adapter=adapter,
            action_id=action_id,
            status="failed",
            error=error,
            **kwargs,
        )
