"""
Process adapter — run a compiler invocation and capture its output.

Runs the action's argv directly (no shell), waits for it to exit, and
returns a Receipt. stdout and stderr are captured verbatim: compiler
diagnostics must reach the user exactly as the compiler wrote them.
Each captured line is also echoed to the ``schemabuild.compiler`` logger
(stdout at INFO, stderr at WARNING).
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time
from pathlib import Path

from schemabuild.adapters.base import Adapter, ExecutionContext
from schemabuild.core.models.action import Receipt
from schemabuild.core.observability.logging_config import COMPILER_LOGGER

logger = logging.getLogger(__name__)
compiler_output = logging.getLogger(COMPILER_LOGGER)


class ProcessAdapter(Adapter):
    """Execute an argument list as a child process.

    Action fields used:
        argv (list[str]): Executable followed by its arguments.
    """

    @property
    def name(self) -> str:
        return "process"

    def is_available(self) -> bool:
        return True

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        argv = context.action.argv
        if not argv:
            return False, "Missing argument list"

        executable = argv[0]
        if shutil.which(executable) is None and not Path(executable).is_file():
            return False, f"Executable not found: {executable}"

        if context.working_dir and not Path(context.working_dir).is_dir():
            return False, f"Working directory does not exist: {context.working_dir}"

        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        argv = context.action.argv
        action_id = context.action.id

        logger.info("Invoking %s for %s", Path(argv[0]).name, context.action.pass_id)
        logger.debug("Invocation arguments: %s", argv)
        start = time.monotonic()

        env = dict(os.environ)
        env.update(context.env)

        try:
            result = subprocess.run(
                argv,
                cwd=context.working_dir or None,
                env=env,
                capture_output=True,
                text=True,
                timeout=context.timeout,
            )
        except subprocess.TimeoutExpired:
            return Receipt.failure(
                adapter=self.name,
                action_id=action_id,
                error=f"{argv[0]} timed out after {context.timeout}s",
                metadata={"argv": argv, "timeout": context.timeout},
            )
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=action_id,
                error=f"Failed to start {argv[0]}: {e}",
                metadata={"argv": argv},
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)

        for line in result.stdout.splitlines():
            compiler_output.info("%s", line.rstrip())
        for line in result.stderr.splitlines():
            compiler_output.warning("%s", line.rstrip())

        if result.returncode == 0:
            logger.info(
                "%s returned exit code 0 (success) after %dms", Path(argv[0]).name, elapsed_ms
            )
            return Receipt.success(
                adapter=self.name,
                action_id=action_id,
                output=result.stdout,
                exit_code=0,
                duration_ms=elapsed_ms,
                metadata={"argv": argv, "stderr": result.stderr},
            )

        logger.error(
            "%s returned exit code %d (error) after %dms",
            Path(argv[0]).name,
            result.returncode,
            elapsed_ms,
        )
        return Receipt.failure(
            adapter=self.name,
            action_id=action_id,
            error=result.stderr or f"{argv[0]} exited with code {result.returncode}",
            output=result.stdout,
            exit_code=result.returncode,
            duration_ms=elapsed_ms,
            metadata={"argv": argv},
        )
