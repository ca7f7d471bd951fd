"""
Pytest configuration og shared fixtures.
"""

import asyncio
import sys
from typing import Dict, List

import pytest
import pytest_asyncio

from mount_agent.core.events.event_bus import DomainEventBus
from mount_agent.core.filesystem import Filesystem, FilesystemDependencies
from mount_agent.core.filesystem_state_machine import FilesystemStateMachine
from mount_agent.core.mount_point import MountPointManager
from mount_agent.core.parameters import ParameterKeys
from mount_agent.core.persistence import FilesystemStore
from mount_agent.core.process_supervisor import ProcessSupervisor
from mount_agent.dependencies import reset_singletons
from tests.helpers import FakeDelegate


@pytest.fixture(autouse=True)
def clean_singletons():
    """Automatically reset singletons before hver test."""
    reset_singletons()
    yield
    reset_singletons()


@pytest.fixture
def mount_root(tmp_path) -> str:
    root = tmp_path / "mnt"
    root.mkdir()
    return str(root)


@pytest.fixture
def fake_delegate(mount_root) -> FakeDelegate:
    return FakeDelegate(mount_root)


@pytest.fixture
def timeout_seconds() -> Dict[str, float]:
    """Mutable watchdog interval; tests change it before mounting."""
    return {"value": 5.0}


@pytest.fixture
def filesystem_dependencies(tmp_path, timeout_seconds) -> FilesystemDependencies:
    event_bus = DomainEventBus()
    mount_points = MountPointManager()
    return FilesystemDependencies(
        state_machine=FilesystemStateMachine(event_bus, mount_points),
        supervisor=ProcessSupervisor(drain_timeout_seconds=1.0),
        mount_point_manager=mount_points,
        store=FilesystemStore(tmp_path / "filesystems"),
        event_bus=event_bus,
        timeout_provider=lambda: timeout_seconds["value"],
        unmount_command=[sys.executable, "-c", "pass"],
        output_max_chars=4096,
    )


@pytest_asyncio.fixture
async def make_filesystem(fake_delegate, filesystem_dependencies):
    """Factory for filesystems whose helpers are killed after the test."""
    created: List[Filesystem] = []

    def factory(**parameters) -> Filesystem:
        parameters.setdefault(ParameterKeys.VOLUME_NAME, "vol")
        filesystem = Filesystem.create(
            parameters, fake_delegate, filesystem_dependencies, persistent=False
        )
        created.append(filesystem)
        return filesystem

    yield factory

    for filesystem in created:
        filesystem.close()
        helper = filesystem.helper
        if helper is not None and helper.is_running:
            helper.kill()
            await helper.wait()
    # Let watcher tasks finish their termination callbacks
    await asyncio.sleep(0.05)
