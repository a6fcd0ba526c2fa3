"""
Domain Ports Package

Architectural Intent:
- Contains port interfaces (abstract contracts) for external dependencies
- Ports define what the domain needs, adapters implement how
- Follows Hexagonal Architecture principles
"""

from strata.domain.ports.provisioning_port import ProvisioningPort, KindRegistry
from strata.domain.ports.state_store_port import StateStorePort, RecordMutation
from strata.domain.ports.event_bus_port import EventBusPort

__all__ = [
    "ProvisioningPort",
    "KindRegistry",
    "StateStorePort",
    "RecordMutation",
    "EventBusPort",
]
