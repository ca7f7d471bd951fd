import json
import logging

import pytest

from mount_agent.core.delegate import DelegateRegistry
from mount_agent.core.exceptions import (
    DataUnreadableError,
    FilesystemBusyError,
    FilesystemNotFoundError,
    InvalidParameterValueError,
    MissingParameterError,
)
from mount_agent.models import FilesystemStatus
from mount_agent.services.filesystem_controller import FilesystemController

# Slå logning fra under tests for at holde output rent
logging.disable(logging.CRITICAL)


@pytest.fixture
def controller(fake_delegate, filesystem_dependencies) -> FilesystemController:
    registry = DelegateRegistry()
    registry.register(fake_delegate)
    return FilesystemController(registry, filesystem_dependencies)


def write_stored(store, name: str, content) -> None:
    store.directory.mkdir(parents=True, exist_ok=True)
    path = store.directory / name
    if isinstance(content, str):
        path.write_text(content)
    else:
        path.write_text(json.dumps(content))


@pytest.mark.asyncio
async def test_create_filesystem_persists(controller, filesystem_dependencies):
    filesystem = await controller.create_filesystem("fake", {"volume_name": "data"})

    assert controller.get(filesystem.uuid) is filesystem
    assert filesystem.persistent is True
    stored = json.loads(filesystem_dependencies.store.path_for(filesystem.uuid).read_text())
    assert stored["uuid"] == filesystem.uuid
    assert stored["type"] == "fake"
    assert stored["volume_name"] == "data"


@pytest.mark.asyncio
async def test_create_filesystem_with_unknown_type(controller):
    with pytest.raises(InvalidParameterValueError):
        await controller.create_filesystem("nfs", {"volume_name": "data"})

    assert controller.list_filesystems() == []


@pytest.mark.asyncio
async def test_create_filesystem_from_url_is_not_stored(controller, filesystem_dependencies):
    filesystem = await controller.create_filesystem_from_url("fake://share")

    assert filesystem.persistent is False
    assert controller.list_filesystems() == [filesystem]
    assert filesystem_dependencies.store.list_files() == []


@pytest.mark.asyncio
async def test_load_round_trip(controller, fake_delegate, filesystem_dependencies):
    created = await controller.create_filesystem("fake", {"volume_name": "data", "name": "Data"})

    fresh = FilesystemController(controller.registry, filesystem_dependencies)
    assert await fresh.load_filesystems() == 1

    loaded = fresh.get(created.uuid)
    assert loaded.parameters == created.parameters
    assert loaded.storage_path == created.storage_path


@pytest.mark.asyncio
async def test_load_skips_broken_files(controller, filesystem_dependencies):
    store = filesystem_dependencies.store
    write_stored(store, "good.json", {"type": "fake", "uuid": "GOOD", "volume_name": "good"})
    write_stored(store, "broken.json", "{not json")
    write_stored(store, "notype.json", {"uuid": "NOTYPE", "volume_name": "x"})
    write_stored(store, "unknown.json", {"type": "nfs", "uuid": "UNKNOWN", "volume_name": "x"})
    write_stored(store, "invalid.json", {"type": "fake", "uuid": "INVALID"})

    assert await controller.load_filesystems() == 1
    assert [fs.uuid for fs in controller.list_filesystems()] == ["GOOD"]


@pytest.mark.asyncio
async def test_load_filesystem_errors(controller, filesystem_dependencies):
    store = filesystem_dependencies.store
    write_stored(store, "broken.json", "[]")
    write_stored(store, "notype.json", {"uuid": "NOTYPE", "volume_name": "x"})
    write_stored(store, "unknown.json", {"type": "nfs", "uuid": "U", "volume_name": "x"})

    with pytest.raises(DataUnreadableError):
        await controller.load_filesystem(store.directory / "broken.json")
    with pytest.raises(MissingParameterError) as exc_info:
        await controller.load_filesystem(store.directory / "notype.json")
    assert exc_info.value.parameter == "type"
    with pytest.raises(InvalidParameterValueError):
        await controller.load_filesystem(store.directory / "unknown.json")


@pytest.mark.asyncio
async def test_load_skips_duplicate_uuid(controller, filesystem_dependencies):
    store = filesystem_dependencies.store
    write_stored(store, "a.json", {"type": "fake", "uuid": "SAME", "volume_name": "a"})
    write_stored(store, "b.json", {"type": "fake", "uuid": "SAME", "volume_name": "b"})

    assert await controller.load_filesystems() == 1


def test_get_unknown(controller):
    with pytest.raises(FilesystemNotFoundError):
        controller.get("missing")


@pytest.mark.asyncio
async def test_remove_filesystem_deletes_stored_file(controller, filesystem_dependencies):
    filesystem = await controller.create_filesystem("fake", {"volume_name": "data"})
    path = filesystem.storage_path

    await controller.remove_filesystem(filesystem.uuid)

    assert not path.exists()
    with pytest.raises(FilesystemNotFoundError):
        controller.get(filesystem.uuid)


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [FilesystemStatus.WAITING, FilesystemStatus.MOUNTED])
async def test_remove_refuses_active_filesystem(controller, status):
    filesystem = await controller.create_filesystem("fake", {"volume_name": "data"})
    filesystem.state.status = status

    with pytest.raises(FilesystemBusyError):
        await controller.remove_filesystem(filesystem.uuid)

    assert controller.get(filesystem.uuid) is filesystem


@pytest.mark.asyncio
async def test_shutdown_kills_pending_helpers(controller):
    filesystem = await controller.create_filesystem_from_url("fake://pending")
    await filesystem.mount()
    helper = filesystem.helper

    await controller.shutdown()
    await helper.wait()

    assert not helper.is_running
    assert not filesystem.watchdog.is_armed
