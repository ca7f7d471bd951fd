"""SSHFS mount type: mounts a remote directory over SFTP with the sshfs helper."""

import os
import re
import shutil
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import unquote, urlparse

from mount_agent.core.delegate import MountTypeDelegate
from mount_agent.core.exceptions import InvalidParameterValueError, MissingParameterError
from mount_agent.core.parameters import ParameterKeys, is_missing
from mount_agent.models import MountError, MountFailureReason

HOST = "host"
USER = "user"
PORT = "port"
DIRECTORY = "directory"

DEFAULT_PORT = 22

# (pattern, message) pairs, checked in order against the helper output
OUTPUT_ERROR_PATTERNS: Tuple[Tuple[re.Pattern, str], ...] = (
    (re.compile(r"connection refused", re.IGNORECASE), "Connection refused by server."),
    (re.compile(r"permission denied", re.IGNORECASE), "Authentication failed. Check user name and password."),
    (
        re.compile(r"could not resolve hostname|name or service not known", re.IGNORECASE),
        "Could not resolve host name.",
    ),
    (re.compile(r"no such file or directory", re.IGNORECASE), "Remote directory does not exist."),
    (
        re.compile(r"remote host has disconnected|connection reset|read: connection", re.IGNORECASE),
        "Remote host has disconnected.",
    ),
)


class SSHFSDelegate(MountTypeDelegate):
    type_id = "sshfs"
    name = "SSH (SFTP)"
    url_schemes = ("ssh", "sftp")

    def __init__(self, mount_root: str = "~/mnt", executable: str = ""):
        self._mount_root = mount_root
        self._executable = executable

    def default_parameters(self) -> Dict[str, Any]:
        return {
            PORT: DEFAULT_PORT,
            DIRECTORY: "",
            USER: os.environ.get("USER", ""),
        }

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
        if self._executable:
            return self._executable
        return shutil.which("sshfs")

    def task_arguments(self, parameters: Mapping[str, Any]) -> Optional[List[str]]:
        if is_missing(parameters, HOST) or is_missing(parameters, ParameterKeys.MOUNT_PATH):
            return None

        remote = str(parameters[HOST])
        if not is_missing(parameters, USER):
            remote = f"{parameters[USER]}@{remote}"
        remote = f"{remote}:{parameters.get(DIRECTORY) or ''}"

        return [
            remote,
            str(parameters[ParameterKeys.MOUNT_PATH]),
            "-p",
            str(parameters.get(PORT) or DEFAULT_PORT),
            # Foreground, so helper exit means the mount is gone
            "-f",
            "-oreconnect",
            "-oServerAliveInterval=15",
            f"-ovolname={parameters.get(ParameterKeys.VOLUME_NAME)}",
        ]

    def validate(self, parameters: Mapping[str, Any]) -> None:
        if is_missing(parameters, HOST):
            raise MissingParameterError(HOST, parameters.get(ParameterKeys.UUID))

        port = DEFAULT_PORT
        if not is_missing(parameters, PORT):
            try:
                port = int(parameters[PORT])
            except (TypeError, ValueError):
                port = -1
        if not 0 < port < 65536:
            raise InvalidParameterValueError(
                PORT,
                f"Invalid port {parameters.get(PORT)!r}; must be between 1 and 65535",
                parameters.get(ParameterKeys.UUID),
            )

    def error_from_output(
        self, parameters: Mapping[str, Any], output: str
    ) -> Optional[MountError]:
        if not output:
            return None
        for pattern, message in OUTPUT_ERROR_PATTERNS:
            if pattern.search(output):
                return MountError.mount_failure(
                    MountFailureReason.DELEGATE_REPORTED,
                    message,
                    parameters.get(ParameterKeys.UUID),
                )
        return None

    def parameters_for_url(self, url: str) -> Dict[str, Any]:
        parsed = urlparse(url)
        if parsed.scheme.lower() not in self.url_schemes or not parsed.hostname:
            return {}

        parameters: Dict[str, Any] = {HOST: parsed.hostname}
        if parsed.username:
            parameters[USER] = unquote(parsed.username)
        try:
            port = parsed.port
        except ValueError as e:
            raise InvalidParameterValueError(PORT, f"Invalid port in URL: {e}")
        if port:
            parameters[PORT] = port
        if parsed.path and parsed.path != "/":
            parameters[DIRECTORY] = unquote(parsed.path)
        return parameters
