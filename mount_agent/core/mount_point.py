"""
Mount point preparation and cleanup.

All filesystem calls run in the default executor so a hanging stat on a dead
network mount never blocks the event loop.
"""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from mount_agent.core.exceptions import MountPointError
from mount_agent.models import MountFailureReason

OWNERSHIP_XATTR = "user.mount_agent.uuid"


class OwnershipMarker(ABC):
    """Marks a mount point directory as created/owned by a filesystem."""

    @abstractmethod
    def mark(self, path: str, owner_id: str) -> None:
        pass

    @abstractmethod
    def clear(self, path: str) -> None:
        pass


class NoOpOwnershipMarker(OwnershipMarker):
    """For platforms without extended attributes."""

    def mark(self, path: str, owner_id: str) -> None:
        pass

    def clear(self, path: str) -> None:
        pass


class XattrOwnershipMarker(OwnershipMarker):
    """Stores the owning filesystem's UUID in an extended attribute."""

    def __init__(self, attribute: str = OWNERSHIP_XATTR):
        self._attribute = attribute

    def mark(self, path: str, owner_id: str) -> None:
        try:
            os.setxattr(path, self._attribute, owner_id.encode("utf-8"))
        except OSError as e:
            logging.debug(f"Could not set ownership marker on {path}: {e}")

    def clear(self, path: str) -> None:
        try:
            os.removexattr(path, self._attribute)
        except OSError as e:
            # ENODATA when never marked, ENOTSUP on filesystems without xattrs
            logging.debug(f"Could not remove ownership marker from {path}: {e}")


def normalize_mount_path(path: str) -> str:
    return os.path.normpath(os.path.expanduser(str(path)))


class MountPointManager:
    def __init__(self, ownership_marker: Optional[OwnershipMarker] = None):
        self._marker = ownership_marker or NoOpOwnershipMarker()

    async def prepare(self, path: str, owner_id: str) -> str:
        """
        Make sure path is an empty, writable directory.

        Returns:
            The normalized mount path.

        Raises:
            MountPointError: in use, not writable, is a file, or uncreatable.
        """
        mount_path = normalize_mount_path(path)
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._prepare_sync, mount_path)
        await loop.run_in_executor(None, self._marker.mark, mount_path, owner_id)
        return mount_path

    async def cleanup(self, path: str) -> bool:
        """
        Remove the ownership marker and the directory if it is still an empty
        directory. Never removes anything with content.

        Returns:
            True if the directory was removed.
        """
        mount_path = normalize_mount_path(path)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._cleanup_sync, mount_path)

    def _prepare_sync(self, mount_path: str) -> None:
        path_obj = Path(mount_path)

        if path_obj.is_dir():
            if any(path_obj.iterdir()):
                raise MountPointError(
                    MountFailureReason.MOUNT_POINT_IN_USE,
                    mount_path,
                    "Mount path directory in use.",
                )
            if not os.access(mount_path, os.W_OK):
                raise MountPointError(
                    MountFailureReason.MOUNT_POINT_NOT_WRITABLE,
                    mount_path,
                    "Mount path directory not writeable.",
                )
            return

        if path_obj.exists():
            raise MountPointError(
                MountFailureReason.MOUNT_POINT_IS_FILE,
                mount_path,
                "Mount path is a file, not a directory.",
            )

        try:
            path_obj.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logging.warning(f"Could not create mount point {mount_path}: {e}")
            raise MountPointError(
                MountFailureReason.MOUNT_POINT_UNCREATABLE,
                mount_path,
                "Mount path could not be created.",
            ) from e
        logging.debug(f"Created mount point {mount_path}")

    def _cleanup_sync(self, mount_path: str) -> bool:
        self._marker.clear(mount_path)

        path_obj = Path(mount_path)
        try:
            if path_obj.is_dir() and not any(path_obj.iterdir()):
                path_obj.rmdir()
                logging.debug(f"Removed mount point {mount_path}")
                return True
        except OSError as e:
            logging.warning(f"Could not remove mount point {mount_path}: {e}")
        return False
