"""
Domain Events Package

Architectural Intent:
- Base event type; deployment lifecycle events live beside the Deployment aggregate
"""

from hoist.domain.events.event_base import DomainEvent

__all__ = ["DomainEvent"]
