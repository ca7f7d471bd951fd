"""
Tests for StatusHistoryService.
"""

import logging

import pytest

from mount_agent.core.events.event_bus import DomainEventBus
from mount_agent.core.events.filesystem_events import (
    FilesystemParametersChangedEvent,
    FilesystemStatusChangedEvent,
)
from mount_agent.models import FilesystemStatus
from mount_agent.services.status_history import StatusHistoryService


def status_event(filesystem_id: str, old: FilesystemStatus, new: FilesystemStatus, error=None):
    return FilesystemStatusChangedEvent(
        filesystem_id=filesystem_id, old_status=old, new_status=new, error_message=error
    )


@pytest.mark.asyncio
async def test_records_published_status_changes():
    bus = DomainEventBus()
    service = StatusHistoryService(bus)
    await service.start()
    assert service.is_subscribed

    first = status_event("fs1", FilesystemStatus.UNMOUNTED, FilesystemStatus.WAITING)
    second = status_event("fs1", FilesystemStatus.WAITING, FilesystemStatus.MOUNTED)
    other = status_event("fs2", FilesystemStatus.UNMOUNTED, FilesystemStatus.WAITING)
    for event in (first, second, other):
        await bus.publish(event)

    assert service.history("fs1") == [first, second]
    assert service.history("fs2") == [other]
    assert service.history("unknown") == []


@pytest.mark.asyncio
async def test_history_is_bounded_per_filesystem():
    bus = DomainEventBus()
    service = StatusHistoryService(bus, max_entries_per_filesystem=2)
    await service.start()

    events = [
        status_event("fs1", FilesystemStatus.UNMOUNTED, FilesystemStatus.WAITING),
        status_event("fs1", FilesystemStatus.WAITING, FilesystemStatus.FAILED, "timeout"),
        status_event("fs1", FilesystemStatus.FAILED, FilesystemStatus.WAITING),
    ]
    for event in events:
        await bus.publish(event)

    assert service.history("fs1") == events[1:]


@pytest.mark.asyncio
async def test_failure_is_logged_as_warning(caplog):
    bus = DomainEventBus()
    service = StatusHistoryService(bus)
    await service.start()

    with caplog.at_level(logging.INFO):
        await bus.publish(
            status_event("fs1", FilesystemStatus.WAITING, FilesystemStatus.FAILED, "timeout")
        )
        await bus.publish(FilesystemParametersChangedEvent(filesystem_id="fs1", persisted=True))

    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) == 1
    assert "timeout" in warnings[0].getMessage()
    assert any("replaced and stored" in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_forget_and_stop():
    bus = DomainEventBus()
    service = StatusHistoryService(bus)
    await service.start()
    await service.start()

    await bus.publish(status_event("fs1", FilesystemStatus.UNMOUNTED, FilesystemStatus.WAITING))
    service.forget("fs1")
    assert service.history("fs1") == []

    await service.stop()
    assert not service.is_subscribed
    await bus.publish(status_event("fs1", FilesystemStatus.WAITING, FilesystemStatus.UNMOUNTED))
    assert service.history("fs1") == []
