import logging
from collections import deque
from typing import Deque, Dict, List

from mount_agent.core.events.event_bus import DomainEventBus
from mount_agent.core.events.filesystem_events import (
    FilesystemParametersChangedEvent,
    FilesystemStatusChangedEvent,
)
from mount_agent.models import FilesystemStatus


class StatusHistoryService:
    """
    Subscriber der logger status-skift og husker de seneste pr. filsystem.

    The history is what the API shows under /api/filesystems/{id}/history,
    so a client polling after the fact can still see e.g. a short-lived
    Waiting -> Failed -> Waiting sequence.
    """

    def __init__(self, event_bus: DomainEventBus, max_entries_per_filesystem: int = 50):
        self._event_bus = event_bus
        self._max_entries = max_entries_per_filesystem
        self._history: Dict[str, Deque[FilesystemStatusChangedEvent]] = {}
        self._subscribed = False

    @property
    def is_subscribed(self) -> bool:
        return self._subscribed

    async def start(self) -> None:
        if self._subscribed:
            return
        await self._event_bus.subscribe(FilesystemStatusChangedEvent, self.handle_status_changed)
        await self._event_bus.subscribe(
            FilesystemParametersChangedEvent, self.handle_parameters_changed
        )
        self._subscribed = True
        logging.info("Status history subscribed to filesystem events")

    async def stop(self) -> None:
        await self._event_bus.unsubscribe(FilesystemStatusChangedEvent, self.handle_status_changed)
        await self._event_bus.unsubscribe(
            FilesystemParametersChangedEvent, self.handle_parameters_changed
        )
        self._subscribed = False

    async def handle_status_changed(self, event: FilesystemStatusChangedEvent) -> None:
        entries = self._history.get(event.filesystem_id)
        if entries is None:
            entries = deque(maxlen=self._max_entries)
            self._history[event.filesystem_id] = entries
        entries.append(event)

        if event.new_status == FilesystemStatus.FAILED:
            logging.warning(
                f"Filesystem {event.filesystem_id} failed "
                f"(from {event.old_status.value}): {event.error_message}"
            )
        else:
            logging.info(
                f"Filesystem {event.filesystem_id}: "
                f"{event.old_status.value} -> {event.new_status.value}"
            )

    async def handle_parameters_changed(self, event: FilesystemParametersChangedEvent) -> None:
        if event.persisted:
            logging.info(f"Parameters of {event.filesystem_id} replaced and stored")
        else:
            logging.info(f"Parameters of {event.filesystem_id} replaced (not stored)")

    def history(self, filesystem_id: str) -> List[FilesystemStatusChangedEvent]:
        """Oldest first."""
        return list(self._history.get(filesystem_id, ()))

    def forget(self, filesystem_id: str) -> None:
        self._history.pop(filesystem_id, None)
