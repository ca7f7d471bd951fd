"""
Domain events specific to filesystem lifecycle.
"""

from dataclasses import dataclass
from typing import Optional

from mount_agent.core.events.domain_event import DomainEvent
from mount_agent.models import FilesystemStatus


@dataclass(frozen=True, kw_only=True)
class FilesystemStatusChangedEvent(DomainEvent):
    """Event published after a filesystem's status has been committed."""

    old_status: FilesystemStatus
    new_status: FilesystemStatus
    error_message: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class FilesystemParametersChangedEvent(DomainEvent):
    """Event published when a filesystem's parameters have been replaced."""

    persisted: bool
