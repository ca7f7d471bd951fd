import json

import pytest

from mount_agent.core.exceptions import DataUnreadableError
from mount_agent.core.persistence import FilesystemStore


@pytest.fixture
def store(tmp_path) -> FilesystemStore:
    return FilesystemStore(tmp_path / "filesystems")


@pytest.mark.asyncio
async def test_write_then_read_returns_identical_mapping(store):
    parameters = {
        "type": "sshfs",
        "uuid": "ABC",
        "host": "example.org",
        "port": 2222,
        "persistent": True,
        "no_apple_double": False,
        "advanced_options": "",
    }

    assert await store.write(parameters) is True

    path = store.path_for("ABC")
    assert path.name == "ABC.json"
    assert await store.read(path) == parameters
    assert list((await store.read(path)).keys()) == list(parameters.keys())


@pytest.mark.asyncio
async def test_write_replaces_existing_file(store):
    await store.write({"uuid": "ABC", "a": 1})
    await store.write({"uuid": "ABC", "b": 2})

    assert await store.read(store.path_for("ABC")) == {"uuid": "ABC", "b": 2}
    assert store.list_files() == [store.path_for("ABC")]


@pytest.mark.asyncio
async def test_write_without_uuid_fails(store):
    assert await store.write({"type": "sshfs"}) is False


@pytest.mark.asyncio
async def test_write_failure_is_swallowed(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    store = FilesystemStore(blocker)

    assert await store.write({"uuid": "ABC"}) is False


@pytest.mark.asyncio
async def test_write_to_explicit_path(store, tmp_path):
    path = tmp_path / "elsewhere" / "custom.json"

    assert await store.write({"uuid": "ABC"}, path) is True
    assert json.loads(path.read_text()) == {"uuid": "ABC"}


@pytest.mark.asyncio
async def test_read_missing_file(store):
    with pytest.raises(DataUnreadableError):
        await store.read(store.path_for("missing"))


@pytest.mark.asyncio
async def test_read_invalid_json(store, tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json")

    with pytest.raises(DataUnreadableError) as exc_info:
        await store.read(path)

    assert str(path) in exc_info.value.message


@pytest.mark.asyncio
async def test_read_non_mapping(store, tmp_path):
    path = tmp_path / "list.json"
    path.write_text("[1, 2]")

    with pytest.raises(DataUnreadableError):
        await store.read(path)


@pytest.mark.asyncio
async def test_delete(store):
    await store.write({"uuid": "ABC"})

    assert await store.delete(store.path_for("ABC")) is True
    assert await store.delete(store.path_for("ABC")) is False
    assert store.list_files() == []


def test_list_files_on_missing_directory(store):
    assert store.list_files() == []
