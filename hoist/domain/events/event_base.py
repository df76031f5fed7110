"""
Domain Events Module

Architectural Intent:
- Base class for domain events
- Events are immutable and capture significant domain occurrences
- Events are collected in aggregates and dispatched via the event bus
"""

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Any


@dataclass(frozen=True)
class DomainEvent:
    occurred_at: str = field(
        default_factory=lambda: datetime.now(UTC).isoformat(), init=False, repr=False
    )
    aggregate_id: str = ""

    @property
    def event_type(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in dataclasses.fields(self)}
        data["event_type"] = self.event_type
        return data
