import os
from unittest.mock import Mock

import pytest

from mount_agent.core.exceptions import MountPointError
from mount_agent.core.mount_point import MountPointManager, OwnershipMarker, normalize_mount_path
from mount_agent.models import MountFailureReason


@pytest.fixture
def marker() -> Mock:
    return Mock(spec=OwnershipMarker)


@pytest.fixture
def manager(marker) -> MountPointManager:
    return MountPointManager(marker)


@pytest.mark.asyncio
async def test_prepare_creates_missing_directory(manager, marker, tmp_path):
    path = tmp_path / "a" / "b"

    result = await manager.prepare(str(path), "OWNER")

    assert result == str(path)
    assert path.is_dir()
    marker.mark.assert_called_once_with(str(path), "OWNER")


@pytest.mark.asyncio
async def test_prepare_accepts_empty_directory(manager, tmp_path):
    path = tmp_path / "empty"
    path.mkdir()

    assert await manager.prepare(str(path), "OWNER") == str(path)


@pytest.mark.asyncio
async def test_prepare_rejects_directory_in_use(manager, marker, tmp_path):
    path = tmp_path / "busy"
    path.mkdir()
    (path / "file.txt").write_text("x")

    with pytest.raises(MountPointError) as exc_info:
        await manager.prepare(str(path), "OWNER")

    assert exc_info.value.reason == MountFailureReason.MOUNT_POINT_IN_USE
    assert exc_info.value.message == "Mount path directory in use."
    marker.mark.assert_not_called()


@pytest.mark.skipif(hasattr(os, "geteuid") and os.geteuid() == 0, reason="root can write anywhere")
@pytest.mark.asyncio
async def test_prepare_rejects_read_only_directory(manager, tmp_path):
    path = tmp_path / "readonly"
    path.mkdir()
    path.chmod(0o500)
    try:
        with pytest.raises(MountPointError) as exc_info:
            await manager.prepare(str(path), "OWNER")
    finally:
        path.chmod(0o700)

    assert exc_info.value.reason == MountFailureReason.MOUNT_POINT_NOT_WRITABLE


@pytest.mark.asyncio
async def test_prepare_rejects_file(manager, tmp_path):
    path = tmp_path / "file"
    path.write_text("x")

    with pytest.raises(MountPointError) as exc_info:
        await manager.prepare(str(path), "OWNER")

    assert exc_info.value.reason == MountFailureReason.MOUNT_POINT_IS_FILE


@pytest.mark.asyncio
async def test_prepare_reports_uncreatable_path(manager, tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("x")

    with pytest.raises(MountPointError) as exc_info:
        await manager.prepare(str(blocker / "sub"), "OWNER")

    assert exc_info.value.reason == MountFailureReason.MOUNT_POINT_UNCREATABLE
    assert exc_info.value.to_error().message == "Mount path could not be created."


@pytest.mark.asyncio
async def test_cleanup_removes_empty_directory(manager, marker, tmp_path):
    path = tmp_path / "mnt"
    path.mkdir()

    assert await manager.cleanup(str(path)) is True

    assert not path.exists()
    marker.clear.assert_called_once_with(str(path))


@pytest.mark.asyncio
async def test_cleanup_never_removes_content(manager, tmp_path):
    path = tmp_path / "mnt"
    path.mkdir()
    (path / "data").write_text("keep me")

    assert await manager.cleanup(str(path)) is False

    assert (path / "data").read_text() == "keep me"


@pytest.mark.asyncio
async def test_cleanup_of_missing_or_file_path(manager, tmp_path):
    assert await manager.cleanup(str(tmp_path / "missing")) is False

    file_path = tmp_path / "file"
    file_path.write_text("x")
    assert await manager.cleanup(str(file_path)) is False
    assert file_path.exists()


def test_normalize_mount_path_expands_user(monkeypatch):
    monkeypatch.setenv("HOME", "/home/tester")

    assert normalize_mount_path("~/mnt/../mnt/share/") == "/home/tester/mnt/share"
