"""
The filesystem descriptor: one configured remote filesystem and the lifecycle
of its mount helper.

Every event source (mount request, helper exit, watchdog fire, OS mount
notification) goes through a handler that takes the filesystem's lock, checks
the current status and only then asks the state machine for a transition.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional
from urllib.parse import urlsplit, urlunsplit

from mount_agent.core.events.event_bus import DomainEventBus
from mount_agent.core.events.filesystem_events import FilesystemParametersChangedEvent
from mount_agent.core.exceptions import (
    FilesystemBusyError,
    InvalidParameterValueError,
    MissingParameterError,
    MountPointError,
)
from mount_agent.core.filesystem_state_machine import FilesystemStateMachine, MountState
from mount_agent.core.mount_point import MountPointManager, normalize_mount_path
from mount_agent.core.output_buffer import OutputBuffer
from mount_agent.core.parameters import (
    ParameterKeys,
    as_bool,
    default_parameters,
    fill_implied_values,
    is_missing,
    merge_with_defaults,
    new_uuid,
)
from mount_agent.core.persistence import FilesystemStore
from mount_agent.core.process_supervisor import HelperProcess, ProcessSupervisor
from mount_agent.core.shell_integration import NullShellIntegration, ShellIntegration
from mount_agent.core.validator import validate_parameters
from mount_agent.core.watchdog import MountWatchdog
from mount_agent.models import FilesystemStatus, MountError, MountFailureReason


def _url_without_password(url: str) -> str:
    parts = urlsplit(url)
    userinfo, at, host = parts.netloc.rpartition("@")
    if not at or ":" not in userinfo:
        return url
    user = userinfo.split(":", 1)[0]
    return urlunsplit(parts._replace(netloc=f"{user}@{host}"))


@dataclass
class FilesystemDependencies:
    """Collaborators shared by all filesystems of one agent."""

    state_machine: FilesystemStateMachine
    supervisor: ProcessSupervisor
    mount_point_manager: MountPointManager
    store: FilesystemStore
    event_bus: DomainEventBus
    shell_integration: ShellIntegration = field(default_factory=NullShellIntegration)
    timeout_provider: Callable[[], float] = lambda: 15.0
    unmount_command: List[str] = field(default_factory=lambda: ["umount"])
    output_max_chars: int = 64 * 1024


class Filesystem:
    def __init__(
        self,
        parameters: Optional[Mapping[str, Any]],
        delegate,
        dependencies: FilesystemDependencies,
        storage_path: Optional[Path] = None,
    ):
        self._delegate = delegate
        self._deps = dependencies

        params = merge_with_defaults(parameters, default_parameters(delegate))
        if is_missing(params, ParameterKeys.TYPE):
            params[ParameterKeys.TYPE] = delegate.type_id
        if is_missing(params, ParameterKeys.UUID):
            params[ParameterKeys.UUID] = new_uuid()

        self._uuid: str = str(params[ParameterKeys.UUID])
        self._parameters: Dict[str, Any] = params
        self._storage_path = Path(storage_path) if storage_path else None

        self.state = MountState()
        self._output = OutputBuffer(dependencies.output_max_chars)
        self._pause_timeout = False
        self._helper: Optional[HelperProcess] = None
        self._lock = asyncio.Lock()
        self._watchdog = MountWatchdog(
            dependencies.timeout_provider,
            self.handle_mount_timeout,
            name=f"watchdog-{self._uuid[:8]}",
        )

    # --- Construction ---

    @classmethod
    def create(
        cls,
        parameters: Optional[Mapping[str, Any]],
        delegate,
        dependencies: FilesystemDependencies,
        persistent: bool = True,
    ) -> "Filesystem":
        """
        New filesystem for a mount request. A fresh UUID is generated and the
        delegate's defaults are merged in.

        Raises:
            MountAgentError: if the parameters do not validate.
        """
        params: Dict[str, Any] = {
            ParameterKeys.TYPE: delegate.type_id,
            ParameterKeys.PERSISTENT: persistent,
        }
        params.update(parameters or {})
        params.pop(ParameterKeys.UUID, None)

        filesystem = cls(params, delegate, dependencies)
        filesystem.validate()
        return filesystem

    @classmethod
    def from_url(
        cls, url: str, delegate, dependencies: FilesystemDependencies
    ) -> "Filesystem":
        """Non-persistent filesystem from a URL like sftp://user@host/path."""
        params = delegate.parameters_for_url(url)
        if not params:
            raise InvalidParameterValueError(
                ParameterKeys.DESCRIPTION, f"Plugin failed to parse URL {_url_without_password(url)}"
            )

        params = dict(params)
        params[ParameterKeys.PERSISTENT] = False
        params[ParameterKeys.TYPE] = delegate.type_id
        params[ParameterKeys.DESCRIPTION] = _url_without_password(url)
        params.pop(ParameterKeys.UUID, None)

        filesystem = cls(params, delegate, dependencies)
        filesystem.validate()
        return filesystem

    @classmethod
    def from_stored_parameters(
        cls,
        parameters: Mapping[str, Any],
        path: Path,
        delegate,
        dependencies: FilesystemDependencies,
    ) -> "Filesystem":
        """Filesystem loaded from storage; identity and parameters are taken verbatim."""
        params = dict(parameters)
        params[ParameterKeys.PERSISTENT] = True

        filesystem = cls(params, delegate, dependencies, storage_path=path)
        filesystem.validate()
        return filesystem

    # --- Read-only observation ---

    @property
    def uuid(self) -> str:
        return self._uuid

    @property
    def delegate(self):
        return self._delegate

    @property
    def type_id(self) -> Optional[str]:
        return self._parameters.get(ParameterKeys.TYPE)

    @property
    def parameters(self) -> Dict[str, Any]:
        return dict(self._parameters)

    def implied_parameters(self) -> Dict[str, Any]:
        return fill_implied_values(self._parameters, self._delegate)

    @property
    def persistent(self) -> bool:
        return as_bool(self._parameters.get(ParameterKeys.PERSISTENT))

    @property
    def storage_path(self) -> Optional[Path]:
        if self._storage_path is not None:
            return self._storage_path
        if self.persistent:
            return self._deps.store.path_for(self._uuid)
        return None

    @property
    def status(self) -> FilesystemStatus:
        return self.state.status

    @property
    def error(self) -> Optional[MountError]:
        return self.state.error

    @property
    def output(self) -> str:
        return self._output.text

    @property
    def output_truncated(self) -> bool:
        return self._output.truncated

    @property
    def pause_timeout(self) -> bool:
        return self._pause_timeout

    @property
    def mount_path(self) -> Optional[str]:
        mount_path = self.implied_parameters().get(ParameterKeys.MOUNT_PATH)
        if not mount_path:
            return None
        return normalize_mount_path(mount_path)

    @property
    def display_name(self) -> str:
        implied = self.implied_parameters()
        for key in (ParameterKeys.NAME, ParameterKeys.VOLUME_NAME):
            if not is_missing(implied, key):
                return str(implied[key])
        return self._uuid

    @property
    def helper(self) -> Optional[HelperProcess]:
        return self._helper

    @property
    def watchdog(self) -> MountWatchdog:
        return self._watchdog

    def validate(self) -> Dict[str, Any]:
        return validate_parameters(self._parameters, self._delegate)

    # --- Caller operations ---

    async def mount(self) -> None:
        """
        Start a mount attempt. Does nothing while Waiting or Mounted.

        Raises:
            DelegateImplementationError: the delegate supplied no executable or
                arguments; the status is left untouched.
            MissingParameterError: no mount path could be determined.
        """
        machine = self._deps.state_machine

        async with self._lock:
            if self.status in (FilesystemStatus.MOUNTED, FilesystemStatus.WAITING):
                logging.info(f"{self.display_name} is already {self.status.value}; ignoring mount")
                return

            implied = self.implied_parameters()
            spec = self._deps.supervisor.build_launch_spec(
                self._parameters, implied, self._delegate
            )
            mount_path = self.mount_path
            if not mount_path:
                raise MissingParameterError(ParameterKeys.MOUNT_PATH, self._uuid)

            if self._helper is not None and self._helper.is_running:
                logging.warning(f"Killing leftover helper {self._helper!r} before remounting")
                self._helper.kill()

            logging.info(f"Mounting {self.display_name} at {mount_path}")
            self._pause_timeout = False
            machine.clear_error(self)
            self._output = OutputBuffer(self._deps.output_max_chars)

            try:
                await self._deps.mount_point_manager.prepare(mount_path, self._uuid)
            except MountPointError as e:
                logging.warning(f"Mount point could not be set up for {self.display_name}: {e.message}")
                await machine.transition(self, FilesystemStatus.FAILED, error=e.to_error())
                return

            await machine.transition(self, FilesystemStatus.WAITING)

            try:
                self._helper = await self._deps.supervisor.launch(
                    spec, self._append_output, self.handle_process_terminated
                )
            except OSError as e:
                logging.error(f"Could not launch {spec.executable}: {e}")
                error = MountError.mount_failure(
                    MountFailureReason.PROCESS_LAUNCH_FAILED,
                    f"Could not launch mount helper {spec.executable}: {e}",
                    self._uuid,
                )
                await machine.transition(self, FilesystemStatus.FAILED, error=error)
                return

            self._watchdog.arm()

            if as_bool(self._parameters.get(ParameterKeys.SHOW_IN_SIDEBAR)):
                try:
                    self._deps.shell_integration.add_favorite(self.display_name, mount_path)
                except Exception as e:
                    logging.warning(f"Could not add {self.display_name} to favorites: {e}")

            logging.info(f"Task launched OK for {self.display_name}")

    async def unmount(self) -> bool:
        """
        Ask the OS to unmount. The status changes later, when the helper exits.

        Returns:
            True if the unmount command was dispatched.
        """
        mount_path = self.mount_path
        if not mount_path:
            raise MissingParameterError(ParameterKeys.MOUNT_PATH, self._uuid)

        command = [*self._deps.unmount_command, mount_path]
        logging.info(f"Unmounting {self.display_name}: {' '.join(command)}")
        try:
            await self._deps.supervisor.run_detached(command)
        except OSError as e:
            logging.error(f"Could not run unmount command for {self.display_name}: {e}")
            return False
        return True

    async def replace_parameters(self, new_parameters: Mapping[str, Any]) -> None:
        """
        Validate and commit a new parameter set, then persist it.

        Raises:
            FilesystemBusyError: the filesystem is Waiting or Mounted; its
                mount path must not move under a running helper.
            MountAgentError: validation failed or the UUID/type would change.
                Nothing is committed and the status is untouched.
        """
        async with self._lock:
            if self.status in (FilesystemStatus.WAITING, FilesystemStatus.MOUNTED):
                raise FilesystemBusyError(self._uuid, self.status.value)

            params = merge_with_defaults(new_parameters, default_parameters(self._delegate))

            if is_missing(params, ParameterKeys.UUID):
                params[ParameterKeys.UUID] = self._uuid
            elif str(params[ParameterKeys.UUID]) != self._uuid:
                raise InvalidParameterValueError(
                    ParameterKeys.UUID, "The UUID of a filesystem cannot be changed", self._uuid
                )

            if is_missing(params, ParameterKeys.TYPE):
                params[ParameterKeys.TYPE] = self.type_id
            elif params[ParameterKeys.TYPE] != self.type_id:
                raise InvalidParameterValueError(
                    ParameterKeys.TYPE, "The type of a filesystem cannot be changed", self._uuid
                )

            if ParameterKeys.PERSISTENT not in params:
                params[ParameterKeys.PERSISTENT] = self.persistent

            validate_parameters(params, self._delegate)
            self._parameters = params

        persisted = await self.persist()
        await self._deps.event_bus.publish(
            FilesystemParametersChangedEvent(filesystem_id=self._uuid, persisted=persisted)
        )

    async def set_pause_timeout(self, paused: bool) -> None:
        """
        Pause or resume the mount timeout, e.g. while a password prompt is open.
        Always restarts the watchdog, so toggling also resets the deadline.

        Waits for the lock so a timeout handler already running is never
        cancelled halfway through its transition.
        """
        async with self._lock:
            self._pause_timeout = bool(paused)
            self._watchdog.arm()

    async def persist(self) -> bool:
        if not self.persistent:
            return False
        path = self.storage_path
        self._storage_path = path
        return await self._deps.store.write(self._parameters, path)

    def close(self) -> None:
        """Drop timers before the filesystem is discarded."""
        self._watchdog.cancel()

    # --- Event handlers ---

    async def handle_mount_notification(self) -> None:
        """The OS reports the mount is in place."""
        async with self._lock:
            if self.status != FilesystemStatus.WAITING:
                logging.debug(f"Mount notification for {self.display_name} while {self.status.value}")
                return
            self._watchdog.cancel()
            await self._deps.state_machine.transition(self, FilesystemStatus.MOUNTED)

    async def handle_unmount_notification(self) -> None:
        """The OS reports the mount disappeared."""
        async with self._lock:
            if self.status != FilesystemStatus.MOUNTED:
                return
            self._watchdog.cancel()
            await self._deps.state_machine.transition(self, FilesystemStatus.UNMOUNTED)

    async def handle_process_terminated(self, helper: HelperProcess) -> None:
        async with self._lock:
            if helper is not self._helper:
                logging.debug(f"Ignoring exit of stale helper {helper!r}")
                return
            self._helper = None

            if self.status == FilesystemStatus.MOUNTED:
                # May be a dropped connection rather than a requested unmount;
                # either way the mount is gone
                self._watchdog.cancel()
                await self._deps.state_machine.transition(self, FilesystemStatus.UNMOUNTED)
            elif self.status == FilesystemStatus.WAITING:
                self._watchdog.cancel()
                await self._deps.state_machine.transition(self, FilesystemStatus.UNMOUNTED)

    async def handle_mount_timeout(self) -> None:
        async with self._lock:
            if self._pause_timeout:
                self._watchdog.arm()
                return

            if self.status != FilesystemStatus.WAITING:
                return

            if self._helper is not None:
                logging.warning(
                    f"Mount time out detected for {self.display_name}. "
                    f"Killing task pid {self._helper.pid}"
                )
                self._helper.kill()
            await self._deps.state_machine.transition(
                self, FilesystemStatus.FAILED, error=MountError.timed_out(self._uuid)
            )

    def _append_output(self, text: str) -> None:
        self._output.append(text)

    def __repr__(self) -> str:
        return f"<Filesystem {self._uuid} type={self.type_id} status={self.status.value}>"
