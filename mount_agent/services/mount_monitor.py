import asyncio
import logging
from typing import Awaitable, Callable, Optional

import aiofiles.os

from mount_agent.config import Settings
from mount_agent.models import FilesystemStatus

from .filesystem_controller import FilesystemController

MountChecker = Callable[[str], Awaitable[bool]]


async def is_mount_point(path: str) -> bool:
    return await aiofiles.os.path.ismount(path)


class MountMonitorService:
    """
    Polls the OS mount table and reports mount appearance / disappearance to
    the filesystems that are waiting for, or holding, a mount.
    """

    def __init__(
        self,
        settings: Settings,
        controller: FilesystemController,
        mount_checker: Optional[MountChecker] = None,
        check_timeout_seconds: float = 5.0,
    ):
        self._settings = settings
        self._controller = controller
        self._mount_checker = mount_checker or is_mount_point
        self._check_timeout = check_timeout_seconds

        self._is_running = False
        self._monitor_task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._is_running

    async def start_monitoring(self) -> None:
        if self._is_running:
            logging.warning("Mount monitoring already running")
            return

        self._is_running = True
        self._monitor_task = asyncio.create_task(self._monitoring_loop())
        logging.info("Mount monitoring started")

    async def stop_monitoring(self) -> None:
        if not self._is_running:
            return

        self._is_running = False

        if self._monitor_task:
            self._monitor_task.cancel()
            try:
                await self._monitor_task
            except asyncio.CancelledError:
                pass

        logging.info("Mount monitoring stopped")

    async def _monitoring_loop(self) -> None:
        logging.info(
            f"Mount monitoring loop starting - checking every {self._settings.mount_poll_interval_seconds}s"
        )
        try:
            while self._is_running:
                try:
                    await self.check_all_filesystems()
                except Exception as e:
                    logging.error(f"Error in mount monitoring loop: {e}")

                await asyncio.sleep(self._settings.mount_poll_interval_seconds)

        except asyncio.CancelledError:
            logging.debug("Mount monitoring loop cancelled")

    async def check_all_filesystems(self) -> None:
        for filesystem in self._controller.list_filesystems():
            status = filesystem.status
            if status not in (FilesystemStatus.WAITING, FilesystemStatus.MOUNTED):
                continue

            mount_path = filesystem.mount_path
            if not mount_path:
                continue

            is_mounted = await self._check_mounted(mount_path)
            if is_mounted is None:
                continue

            if status == FilesystemStatus.WAITING and is_mounted:
                logging.info(f"Mount appeared for {filesystem.display_name} at {mount_path}")
                await filesystem.handle_mount_notification()
            elif status == FilesystemStatus.MOUNTED and not is_mounted:
                logging.info(f"Mount disappeared for {filesystem.display_name} at {mount_path}")
                await filesystem.handle_unmount_notification()

    async def _check_mounted(self, mount_path: str) -> Optional[bool]:
        try:
            return await asyncio.wait_for(self._mount_checker(mount_path), timeout=self._check_timeout)
        except asyncio.TimeoutError:
            # A hung network mount; try again next round
            logging.warning(f"Mount check timed out for: {mount_path}")
            return None
        except OSError as e:
            logging.debug(f"Mount check failed for {mount_path}: {e}")
            return None
