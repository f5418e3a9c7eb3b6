"""Adapters — bindings between the executor and external processes.

Public re-exports for convenient access.
"""

from schemabuild.adapters.base import Adapter, ExecutionContext
from schemabuild.adapters.mock import MockAdapter
from schemabuild.adapters.registry import AdapterRegistry

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "ExecutionContext",
    "MockAdapter",
]
