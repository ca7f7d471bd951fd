import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Set

from mount_agent.core.events.event_bus import DomainEventBus
from mount_agent.core.events.filesystem_events import FilesystemStatusChangedEvent
from mount_agent.core.exceptions import InvalidTransitionError
from mount_agent.core.mount_point import MountPointManager
from mount_agent.core.parameters import ParameterKeys, as_bool
from mount_agent.core.shell_integration import NullShellIntegration, ShellIntegration
from mount_agent.models import FilesystemStatus, MountError


@dataclass
class MountState:
    """Status and error of one filesystem. Written only by FilesystemStateMachine."""

    status: FilesystemStatus = FilesystemStatus.UNMOUNTED
    error: Optional[MountError] = None


class FilesystemStateMachine:
    """
    Central gatekeeper for all filesystem status changes.

    This is the ONLY class in the system that may:
    1. Validate a status transition.
    2. Change a filesystem's status and error.
    3. Run the entry side effects (favorites removal, mount point cleanup).
    4. Publish FilesystemStatusChangedEvent.

    Callers must hold the filesystem's lock, so the status they checked is
    still the status the transition starts from.
    """

    def __init__(
        self,
        event_bus: DomainEventBus,
        mount_point_manager: MountPointManager,
        shell_integration: Optional[ShellIntegration] = None,
    ):
        self._event_bus = event_bus
        self._mount_points = mount_point_manager
        self._shell = shell_integration or NullShellIntegration()
        self._pending_events: Set[asyncio.Task] = set()

        # Alle lovlige overgange
        self._transitions: Dict[FilesystemStatus, Set[FilesystemStatus]] = {
            FilesystemStatus.UNMOUNTED: {
                FilesystemStatus.WAITING,
                FilesystemStatus.FAILED,  # Mount point setup failed
            },
            FilesystemStatus.WAITING: {
                FilesystemStatus.MOUNTED,
                FilesystemStatus.UNMOUNTED,  # Helper exited before the mount appeared
                FilesystemStatus.FAILED,  # Timeout or launch failure
            },
            FilesystemStatus.MOUNTED: {
                FilesystemStatus.UNMOUNTED,
            },
            FilesystemStatus.FAILED: {
                FilesystemStatus.WAITING,  # Fresh mount attempt
            },
        }

    def clear_error(self, filesystem) -> None:
        """A fresh mount attempt starts without the previous failure's error."""
        filesystem.state.error = None

    def can_transition(self, old_status: FilesystemStatus, new_status: FilesystemStatus) -> bool:
        return new_status in self._transitions.get(old_status, set())

    async def transition(
        self,
        filesystem,
        new_status: FilesystemStatus,
        *,
        error: Optional[MountError] = None,
    ) -> bool:
        """
        Attach an optional error, then move the filesystem to new_status.

        Setting the current status again is a no-op (the error is still
        attached, so repeated failures overwrite it).

        Returns:
            True if the status changed.

        Raises:
            InvalidTransitionError: if the edge is not allowed.
        """
        state: MountState = filesystem.state
        old_status = state.status

        if error is not None:
            state.error = self._with_filesystem_id(error, filesystem.uuid)

        if new_status == old_status:
            return False

        if not self.can_transition(old_status, new_status):
            raise InvalidTransitionError(filesystem.uuid, old_status.value, new_status.value)

        logging.info(f"Transition: {filesystem.display_name} | {old_status.value} -> {new_status.value}")
        state.status = new_status

        if new_status == FilesystemStatus.FAILED:
            state.error = self._resolve_failure_error(filesystem, state.error)
            logging.warning(f"Filesystem {filesystem.display_name} failed: {state.error.message}")

        if new_status in (FilesystemStatus.UNMOUNTED, FilesystemStatus.FAILED):
            await self._release_mount_resources(filesystem)

        self._announce(
            FilesystemStatusChangedEvent(
                filesystem_id=filesystem.uuid,
                old_status=old_status,
                new_status=new_status,
                error_message=state.error.message if state.error else None,
            )
        )
        return True

    def _resolve_failure_error(self, filesystem, attached: Optional[MountError]) -> MountError:
        # Delegate's interpretation of the output wins over what was attached
        try:
            delegate_error = filesystem.delegate.error_from_output(
                filesystem.implied_parameters(), filesystem.output
            )
        except Exception as e:
            logging.error(f"Delegate error_from_output failed: {e}", exc_info=True)
            delegate_error = None

        if delegate_error is not None:
            return self._with_filesystem_id(delegate_error, filesystem.uuid)
        if attached is not None:
            return attached
        return MountError.generic(filesystem.uuid)

    async def _release_mount_resources(self, filesystem) -> None:
        if as_bool(filesystem.parameters.get(ParameterKeys.SHOW_IN_SIDEBAR)):
            try:
                self._shell.remove_favorite(filesystem.display_name)
            except Exception as e:
                logging.warning(f"Could not remove {filesystem.display_name} from favorites: {e}")

        mount_path = filesystem.mount_path
        if mount_path:
            await self._mount_points.cleanup(mount_path)

    def _announce(self, event: FilesystemStatusChangedEvent) -> None:
        # Fire and forget; slow subscribers must not hold up the next transition
        task = asyncio.create_task(self._event_bus.publish(event))
        self._pending_events.add(task)
        task.add_done_callback(self._pending_events.discard)

    @staticmethod
    def _with_filesystem_id(error: MountError, filesystem_id: str) -> MountError:
        if error.filesystem_id:
            return error
        return error.model_copy(update={"filesystem_id": filesystem_id})
