"""
Validate Stack Use Case

Architectural Intent:
- Runs Resource Graph construction plus a dry diff against stored state
- Never calls the provisioning API
- Reports every validation error at once rather than stopping at the first
"""

import logging

from strata.application.dtos.stack_dtos import ValidationReport
from strata.domain.entities.resource_graph import StackDefinition
from strata.domain.ports.provisioning_port import KindRegistry
from strata.domain.ports.state_store_port import StateStorePort
from strata.domain.services.diff_engine import DiffEngine
from strata.domain.services.graph_builder import build_graph, collect_graph_errors

logger = logging.getLogger(__name__)


class ValidateStack:
    def __init__(
        self,
        registry: KindRegistry,
        state_store: StateStorePort,
        diff_engine: DiffEngine,
    ):
        self.registry = registry
        self.state_store = state_store
        self.diff_engine = diff_engine

    async def execute(self, definition: StackDefinition) -> ValidationReport:
        errors = collect_graph_errors(definition, self.registry.kinds())
        if errors:
            logger.info(
                "Stack %s failed validation with %d error(s)",
                definition.stack_name,
                len(errors),
            )
            return ValidationReport(definition.stack_name, errors=tuple(errors))

        graph = build_graph(definition, self.registry.kinds())
        state = self.state_store.load(graph.stack_name)
        change_set = self.diff_engine.compute(graph, state)
        return ValidationReport(graph.stack_name, change_set=change_set)
