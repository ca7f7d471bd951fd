"""
Base for events published on the DomainEventBus.

An event records something that already happened to a filesystem. It is
immutable; subscribers react to it but never change it.
"""

import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


@dataclass(frozen=True, kw_only=True)
class DomainEvent:
    filesystem_id: Optional[str] = None
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def event_type(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        """Flat JSON-friendly view (enums as values, timestamp as ISO string)."""
        data: Dict[str, Any] = {"event_type": self.event_type}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, datetime):
                value = value.isoformat()
            data[f.name] = value
        return data
