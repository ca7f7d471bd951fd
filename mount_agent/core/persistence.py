"""
File storage for persistent filesystems.

One JSON file per filesystem, named by its UUID, holding the full parameter
mapping. Write failures are logged and swallowed so they never block a mount.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import aiofiles
import aiofiles.os

from mount_agent.core.exceptions import DataUnreadableError

FILESYSTEM_FILE_SUFFIX = ".json"


class FilesystemStore:
    def __init__(self, directory: Union[str, Path]):
        self._directory = Path(directory).expanduser()

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, filesystem_id: str) -> Path:
        return self._directory / f"{filesystem_id}{FILESYSTEM_FILE_SUFFIX}"

    def list_files(self) -> List[Path]:
        if not self._directory.is_dir():
            return []
        return sorted(self._directory.glob(f"*{FILESYSTEM_FILE_SUFFIX}"))

    async def write(self, parameters: Mapping[str, Any], path: Optional[Path] = None) -> bool:
        """
        Replace the stored file with the given parameters.

        Returns:
            True on success, False if anything failed (already logged).
        """
        if path is None:
            filesystem_id = parameters.get("uuid")
            if not filesystem_id:
                logging.error("Cannot store filesystem without UUID")
                return False
            path = self.path_for(str(filesystem_id))
        path = Path(path)

        try:
            await aiofiles.os.makedirs(path.parent, exist_ok=True)
        except OSError as e:
            logging.error(f"Failed to create directory to save filesystem {path.parent}: {e}")
            return False

        try:
            if await aiofiles.os.path.exists(path):
                await aiofiles.os.remove(path)
        except OSError as e:
            logging.warning(f"Failed to delete old file during save {path}: {e}")

        try:
            content = json.dumps(dict(parameters), indent=2)
        except (TypeError, ValueError) as e:
            logging.error(f"Filesystem parameters are not serializable: {e}")
            return False

        try:
            async with aiofiles.open(path, "w", encoding="utf-8") as f:
                await f.write(content)
        except OSError as e:
            logging.error(f"Failed to write out filesystem to file {path}: {e}")
            return False

        logging.debug(f"Saved filesystem to {path}")
        return True

    async def read(self, path: Union[str, Path]) -> Dict[str, Any]:
        """
        Read a stored parameter mapping.

        Raises:
            DataUnreadableError: missing file, invalid JSON, or not a mapping.
        """
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                content = await f.read()
        except OSError as e:
            raise DataUnreadableError(str(path), str(e)) from e

        try:
            parameters = json.loads(content)
        except json.JSONDecodeError as e:
            raise DataUnreadableError(str(path), str(e)) from e

        if not isinstance(parameters, dict):
            raise DataUnreadableError(str(path), "top level is not a mapping")

        return parameters

    async def delete(self, path: Union[str, Path]) -> bool:
        try:
            await aiofiles.os.remove(path)
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            logging.warning(f"Failed to delete stored filesystem {path}: {e}")
            return False
