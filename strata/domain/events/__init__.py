"""
Domain Events Package

Architectural Intent:
- Contains domain events and event bus infrastructure
- Events are the primary mechanism for cross-boundary communication
"""

from strata.domain.events.event_base import (
    DomainEvent,
    StackRunStarted,
    ResourceTransitioned,
    StackRunCompleted,
)

__all__ = [
    "DomainEvent",
    "StackRunStarted",
    "ResourceTransitioned",
    "StackRunCompleted",
]
