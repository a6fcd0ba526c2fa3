"""
Domain Services Package

Architectural Intent:
- Contains domain services implementing business logic
- Graph construction and diffing are synchronous and side-effect free
"""

from strata.domain.services.graph_builder import (
    build_graph,
    collect_graph_errors,
    find_cycle,
    is_enabled,
)
from strata.domain.services.diff_engine import DiffEngine, changed_properties

__all__ = [
    "build_graph",
    "collect_graph_errors",
    "find_cycle",
    "is_enabled",
    "DiffEngine",
    "changed_properties",
]
