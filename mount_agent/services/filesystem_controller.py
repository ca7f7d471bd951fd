import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from mount_agent.core.delegate import DelegateRegistry
from mount_agent.core.exceptions import (
    FilesystemBusyError,
    FilesystemNotFoundError,
    MissingParameterError,
    MountAgentError,
)
from mount_agent.core.filesystem import Filesystem, FilesystemDependencies
from mount_agent.core.parameters import ParameterKeys, is_missing
from mount_agent.models import FilesystemStatus


class FilesystemController:
    """
    Registry over all configured filesystems.

    Loads persistent filesystems from the store at startup, creates new ones
    (from parameters or a URL) and removes them again. Mounting itself is the
    filesystem's business; the controller only looks them up.
    """

    def __init__(self, registry: DelegateRegistry, dependencies: FilesystemDependencies):
        self._registry = registry
        self._deps = dependencies
        self._filesystems: Dict[str, Filesystem] = {}

        logging.info(f"FilesystemController initialized with mount types: {', '.join(registry.type_ids)}")

    @property
    def registry(self) -> DelegateRegistry:
        return self._registry

    async def load_filesystems(self) -> int:
        """
        Load every stored filesystem. Files that fail to load are logged and skipped.

        Returns:
            Number of filesystems loaded.
        """
        loaded = 0
        for path in self._deps.store.list_files():
            try:
                filesystem = await self.load_filesystem(path)
            except MountAgentError as e:
                logging.error(f"Could not load filesystem from {path}: {e.message}")
                continue

            if filesystem.uuid in self._filesystems:
                logging.warning(f"Duplicate filesystem UUID {filesystem.uuid} in {path}; skipping")
                continue

            self._filesystems[filesystem.uuid] = filesystem
            loaded += 1

        logging.info(f"Loaded {loaded} stored filesystem(s) from {self._deps.store.directory}")
        return loaded

    async def load_filesystem(self, path: Path) -> Filesystem:
        """
        Construct a filesystem from one stored file. Does not register it.

        Raises:
            DataUnreadableError: the file could not be read or parsed.
            MissingParameterError: no mount type recorded.
            InvalidParameterValueError: unknown mount type, or invalid parameters.
        """
        parameters = await self._deps.store.read(path)

        if is_missing(parameters, ParameterKeys.TYPE):
            raise MissingParameterError(ParameterKeys.TYPE, parameters.get(ParameterKeys.UUID))
        delegate = self._registry.require(parameters[ParameterKeys.TYPE])

        return Filesystem.from_stored_parameters(parameters, Path(path), delegate, self._deps)

    async def create_filesystem(
        self, type_id: str, parameters: Optional[Mapping[str, Any]] = None
    ) -> Filesystem:
        """Create, register and persist a new filesystem."""
        delegate = self._registry.require(type_id)
        filesystem = Filesystem.create(parameters, delegate, self._deps, persistent=True)
        self._filesystems[filesystem.uuid] = filesystem

        if not await filesystem.persist():
            logging.warning(f"Filesystem {filesystem.display_name} created but could not be stored")

        logging.info(f"Created {type_id} filesystem {filesystem.display_name} ({filesystem.uuid})")
        return filesystem

    async def create_filesystem_from_url(self, url: str) -> Filesystem:
        """Create and register a non-persistent filesystem from a URL."""
        delegate = self._registry.for_url(url)
        filesystem = Filesystem.from_url(url, delegate, self._deps)
        self._filesystems[filesystem.uuid] = filesystem
        description = filesystem.parameters[ParameterKeys.DESCRIPTION]
        logging.info(f"Created filesystem {filesystem.display_name} from URL {description}")
        return filesystem

    def get(self, filesystem_id: str) -> Filesystem:
        filesystem = self._filesystems.get(filesystem_id)
        if filesystem is None:
            raise FilesystemNotFoundError(filesystem_id)
        return filesystem

    def list_filesystems(self) -> List[Filesystem]:
        return list(self._filesystems.values())

    async def remove_filesystem(self, filesystem_id: str) -> None:
        """
        Forget a filesystem and delete its stored file.

        Raises:
            FilesystemNotFoundError: unknown UUID.
            FilesystemBusyError: the filesystem is Waiting or Mounted.
        """
        filesystem = self.get(filesystem_id)
        if filesystem.status in (FilesystemStatus.WAITING, FilesystemStatus.MOUNTED):
            raise FilesystemBusyError(filesystem_id, filesystem.status.value)

        filesystem.close()
        del self._filesystems[filesystem_id]

        if filesystem.storage_path is not None:
            await self._deps.store.delete(filesystem.storage_path)
        logging.info(f"Removed filesystem {filesystem.display_name} ({filesystem_id})")

    async def shutdown(self) -> None:
        """Stop watchdogs and kill helpers that are still waiting for their mount."""
        for filesystem in self._filesystems.values():
            filesystem.close()
            helper = filesystem.helper
            if helper is not None and filesystem.status == FilesystemStatus.WAITING:
                logging.info(f"Killing pending helper for {filesystem.display_name}")
                helper.kill()

        # Give the helpers' watcher tasks a chance to report their exit
        await asyncio.sleep(0)
        logging.info("FilesystemController shut down")
