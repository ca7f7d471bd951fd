"""FTP mount type backed by curlftpfs."""

import os
import shutil
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import unquote, urlparse

from mount_agent.core.delegate import MountTypeDelegate
from mount_agent.core.exceptions import InvalidParameterValueError, MissingParameterError
from mount_agent.core.parameters import ParameterKeys, is_missing
from mount_agent.models import MountError, MountFailureReason

HOST = "host"
USER = "user"
PASSWORD = "password"
PORT = "port"
DIRECTORY = "directory"


class FTPFSDelegate(MountTypeDelegate):
    type_id = "ftpfs"
    name = "FTP"
    url_schemes = ("ftp",)

    def __init__(self, mount_root: str = "~/mnt", executable: str = ""):
        self._mount_root = mount_root
        self._executable = executable

    def default_parameters(self) -> Dict[str, Any]:
        return {PORT: 21, DIRECTORY: "", USER: ""}

    def implied_parameters(self, parameters: Mapping[str, Any]) -> Dict[str, Any]:
        implied: Dict[str, Any] = {}
        volume_name = parameters.get(ParameterKeys.VOLUME_NAME)
        if is_missing(parameters, ParameterKeys.VOLUME_NAME) and not is_missing(parameters, HOST):
            volume_name = parameters[HOST]
            implied[ParameterKeys.VOLUME_NAME] = volume_name
        if volume_name:
            implied[ParameterKeys.MOUNT_PATH] = os.path.join(
                os.path.expanduser(self._mount_root), str(volume_name)
            )
        return implied

    def executable_path(self) -> Optional[str]:
        return self._executable or shutil.which("curlftpfs")

    def task_arguments(self, parameters: Mapping[str, Any]) -> Optional[List[str]]:
        if is_missing(parameters, HOST) or is_missing(parameters, ParameterKeys.MOUNT_PATH):
            return None

        directory = str(parameters.get(DIRECTORY) or "").lstrip("/")
        url = f"ftp://{parameters[HOST]}:{parameters.get(PORT) or 21}/{directory}"

        arguments = [url, str(parameters[ParameterKeys.MOUNT_PATH]), "-f"]
        if not is_missing(parameters, USER):
            credentials = str(parameters[USER])
            if not is_missing(parameters, PASSWORD):
                credentials = f"{credentials}:{parameters[PASSWORD]}"
            arguments.append(f"-ouser={credentials}")
        return arguments

    def validate(self, parameters: Mapping[str, Any]) -> None:
        if is_missing(parameters, HOST):
            raise MissingParameterError(HOST, parameters.get(ParameterKeys.UUID))

    def error_from_output(
        self, parameters: Mapping[str, Any], output: str
    ) -> Optional[MountError]:
        lowered = (output or "").lower()
        if "access denied" in lowered or "login denied" in lowered:
            message = "FTP login failed."
        elif "couldn't resolve host" in lowered:
            message = "Could not resolve host name."
        elif "couldn't connect" in lowered:
            message = "Could not connect to FTP server."
        else:
            return None
        return MountError.mount_failure(
            MountFailureReason.DELEGATE_REPORTED, message, parameters.get(ParameterKeys.UUID)
        )

    def parameters_for_url(self, url: str) -> Dict[str, Any]:
        parsed = urlparse(url)
        if parsed.scheme.lower() != "ftp" or not parsed.hostname:
            return {}

        parameters: Dict[str, Any] = {HOST: parsed.hostname}
        if parsed.username:
            parameters[USER] = unquote(parsed.username)
        if parsed.password:
            parameters[PASSWORD] = unquote(parsed.password)
        try:
            port = parsed.port
        except ValueError as e:
            raise InvalidParameterValueError(PORT, f"Invalid port in URL: {e}")
        if port:
            parameters[PORT] = port
        if parsed.path and parsed.path != "/":
            parameters[DIRECTORY] = unquote(parsed.path)
        return parameters
