"""
Adapter registry — central dispatch for generation passes.

The executor only talks to adapters through the registry. Mock mode
short-circuits every action to a success receipt, which is how
`--dry-run` style callers and tests avoid spawning processes.
"""

from __future__ import annotations

import logging
import time

from schemabuild.adapters.base import Adapter, ExecutionContext
from schemabuild.core.models.action import Action, Receipt

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Registry and dispatcher for adapters."""

    def __init__(self, mock_mode: bool = False):
        self._adapters: dict[str, Adapter] = {}
        self._mock_mode = mock_mode

    @property
    def mock_mode(self) -> bool:
        return self._mock_mode

    def register(self, adapter: Adapter) -> None:
        name = adapter.name
        if name in self._adapters:
            logger.warning("Overwriting existing adapter: %s", name)
        self._adapters[name] = adapter
        logger.debug("Registered adapter: %s", name)

    def list_adapters(self) -> list[str]:
        return list(self._adapters.keys())

    def execute_action(
        self,
        action: Action,
        working_dir: str = ".",
        timeout: int = 600,
        dry_run: bool = False,
    ) -> Receipt:
        """Execute an action through its adapter. Never raises.

        1. Resolves the adapter (or mock)
        2. Checks that the adapter is available
        3. Builds the execution context
        4. Validates the action
        5. Executes
        """
        start_time = time.monotonic()

        if self._mock_mode:
            return Receipt.success(
                adapter=action.adapter,
                action_id=action.id,
                output=f"[mock] {action.pass_id} executed",
                exit_code=0,
                metadata={"mock": True},
            )

        adapter = self._adapters.get(action.adapter)
        if adapter is None:
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"No adapter registered for '{action.adapter}'",
            )

        if not adapter.is_available():
            return Receipt.failure(
                adapter=adapter.name,
                action_id=action.id,
                error=f"Adapter '{adapter.name}' is not available",
            )

        context = ExecutionContext(
            action=action,
            working_dir=working_dir,
            dry_run=dry_run,
            timeout=timeout,
            params=action.params,
        )

        valid, message = adapter.validate(context)
        if not valid:
            return Receipt.failure(
                adapter=adapter.name,
                action_id=action.id,
                error=f"Validation failed: {message}",
            )

        try:
            receipt = adapter.execute(context)
        except Exception as e:
            # Adapters should never raise; keep the contract if one does.
            logger.exception("Adapter %s raised during %s", adapter.name, action.id)
            receipt = Receipt.failure(
                adapter=adapter.name,
                action_id=action.id,
                error=f"Unexpected error: {e}",
            )

        receipt.duration_ms = int((time.monotonic() - start_time) * 1000)
        return receipt
