"""Shared test doubles for the mount agent tests."""

import asyncio
import os
import sys
from typing import Any, Dict, List, Mapping, Optional

from mount_agent.core.delegate import MountTypeDelegate
from mount_agent.core.exceptions import InvalidParameterValueError
from mount_agent.core.parameters import ParameterKeys, is_missing
from mount_agent.models import FilesystemStatus, MountError, MountFailureReason

FAKE_ERROR_MARKER = "FAKE-ERROR"


class FakeDelegate(MountTypeDelegate):
    """
    Mount type running the current Python interpreter as helper.

    The helper script comes from the 'script' parameter, so each test decides
    how the helper behaves (sleep, print, exit).
    """

    type_id = "fake"
    name = "Fake"
    url_schemes = ("fake",)

    def __init__(self, mount_root: str, executable: Optional[str] = None):
        self.mount_root = mount_root
        self.executable = sys.executable if executable is None else executable
        self.arguments_override: Optional[List[str]] = None

    def default_parameters(self) -> Dict[str, Any]:
        return {"script": "import time; time.sleep(30)"}

    def implied_parameters(self, parameters: Mapping[str, Any]) -> Dict[str, Any]:
        if is_missing(parameters, ParameterKeys.VOLUME_NAME):
            return {}
        return {
            ParameterKeys.MOUNT_PATH: os.path.join(
                self.mount_root, str(parameters[ParameterKeys.VOLUME_NAME])
            )
        }

    def executable_path(self) -> Optional[str]:
        return self.executable

    def task_arguments(self, parameters: Mapping[str, Any]) -> Optional[List[str]]:
        if self.arguments_override is not None:
            return self.arguments_override
        return ["-c", str(parameters["script"])]

    def validate(self, parameters: Mapping[str, Any]) -> None:
        if parameters.get("reject"):
            raise InvalidParameterValueError("reject", "Rejected by fake delegate")

    def error_from_output(
        self, parameters: Mapping[str, Any], output: str
    ) -> Optional[MountError]:
        if FAKE_ERROR_MARKER in output:
            return MountError.mount_failure(
                MountFailureReason.DELEGATE_REPORTED, "Fake helper reported an error."
            )
        return None

    def parameters_for_url(self, url: str) -> Dict[str, Any]:
        volume = url.split("://", 1)[-1].strip("/")
        return {ParameterKeys.VOLUME_NAME: volume} if volume else {}


async def wait_for_status(filesystem, status: FilesystemStatus, timeout: float = 5.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while filesystem.status != status:
        if loop.time() > deadline:
            raise AssertionError(
                f"Filesystem stayed {filesystem.status.value}, expected {status.value}"
            )
        await asyncio.sleep(0.02)
