from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, status

from ..core.exceptions import (
    DataUnreadableError,
    DelegateImplementationError,
    FilesystemBusyError,
    FilesystemNotFoundError,
    InvalidTransitionError,
    MountAgentError,
)
from ..dependencies import get_filesystem_controller, get_status_history
from ..models import (
    REDACTED_VALUE,
    SECRET_PARAMETER_KEYS,
    CreateFilesystemRequest,
    CreateFromUrlRequest,
    FilesystemInfo,
    PauseTimeoutRequest,
    ReplaceParametersRequest,
)
from ..services.filesystem_controller import FilesystemController
from ..services.status_history import StatusHistoryService

router = APIRouter(prefix="/api/filesystems", tags=["filesystems"])


def _to_http_exception(error: MountAgentError) -> HTTPException:
    if isinstance(error, FilesystemNotFoundError):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, (FilesystemBusyError, InvalidTransitionError)):
        status_code = status.HTTP_409_CONFLICT
    elif isinstance(error, (DelegateImplementationError, DataUnreadableError)):
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    else:
        status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    return HTTPException(status_code=status_code, detail=error.to_error().model_dump(mode="json"))


def _restore_redacted(new_parameters: Dict[str, Any], current: Dict[str, Any]) -> Dict[str, Any]:
    """A client sending back the redacted placeholder keeps the stored secret."""
    restored = dict(new_parameters)
    for key in SECRET_PARAMETER_KEYS:
        if restored.get(key) == REDACTED_VALUE and key in current:
            restored[key] = current[key]
    return restored


@router.get("", response_model=List[FilesystemInfo])
async def list_filesystems(
    controller: FilesystemController = Depends(get_filesystem_controller),
) -> List[FilesystemInfo]:
    return [FilesystemInfo.from_filesystem(fs) for fs in controller.list_filesystems()]


@router.get("/{filesystem_id}", response_model=FilesystemInfo)
async def get_filesystem(
    filesystem_id: str,
    controller: FilesystemController = Depends(get_filesystem_controller),
) -> FilesystemInfo:
    try:
        return FilesystemInfo.from_filesystem(controller.get(filesystem_id))
    except MountAgentError as e:
        raise _to_http_exception(e)


@router.post("", response_model=FilesystemInfo, status_code=status.HTTP_201_CREATED)
async def create_filesystem(
    request: CreateFilesystemRequest,
    controller: FilesystemController = Depends(get_filesystem_controller),
) -> FilesystemInfo:
    """
    Create a persistent filesystem of the given mount type.

    HTTP Status Codes:
        201: Created and stored
        422: Unknown mount type or invalid parameters
    """
    try:
        filesystem = await controller.create_filesystem(request.type, request.parameters)
    except MountAgentError as e:
        raise _to_http_exception(e)
    return FilesystemInfo.from_filesystem(filesystem)


@router.post("/from-url", response_model=FilesystemInfo, status_code=status.HTTP_201_CREATED)
async def create_filesystem_from_url(
    request: CreateFromUrlRequest,
    controller: FilesystemController = Depends(get_filesystem_controller),
) -> FilesystemInfo:
    """Create a non-persistent filesystem from e.g. sftp://user@host/path."""
    try:
        filesystem = await controller.create_filesystem_from_url(request.url)
    except MountAgentError as e:
        raise _to_http_exception(e)
    return FilesystemInfo.from_filesystem(filesystem)


@router.get("/{filesystem_id}/history", response_model=List[Dict[str, Any]])
async def get_status_history_for_filesystem(
    filesystem_id: str,
    controller: FilesystemController = Depends(get_filesystem_controller),
    history: StatusHistoryService = Depends(get_status_history),
) -> List[Dict[str, Any]]:
    """Recent status changes of one filesystem, oldest first."""
    try:
        controller.get(filesystem_id)
    except MountAgentError as e:
        raise _to_http_exception(e)
    return [event.to_dict() for event in history.history(filesystem_id)]


@router.put("/{filesystem_id}/parameters", response_model=FilesystemInfo)
async def replace_parameters(
    filesystem_id: str,
    request: ReplaceParametersRequest,
    controller: FilesystemController = Depends(get_filesystem_controller),
) -> FilesystemInfo:
    try:
        filesystem = controller.get(filesystem_id)
        await filesystem.replace_parameters(
            _restore_redacted(request.parameters, filesystem.parameters)
        )
    except MountAgentError as e:
        raise _to_http_exception(e)
    return FilesystemInfo.from_filesystem(filesystem)


@router.post("/{filesystem_id}/mount", response_model=FilesystemInfo)
async def mount_filesystem(
    filesystem_id: str,
    controller: FilesystemController = Depends(get_filesystem_controller),
) -> FilesystemInfo:
    """
    Start mounting. Returns immediately; poll the filesystem for Mounted/Failed.

    HTTP Status Codes:
        200: Mount started (or already in progress / mounted)
        404: Unknown filesystem
        500: The mount type could not build a helper command
    """
    try:
        filesystem = controller.get(filesystem_id)
        await filesystem.mount()
    except MountAgentError as e:
        raise _to_http_exception(e)
    return FilesystemInfo.from_filesystem(filesystem)


@router.post("/{filesystem_id}/unmount", response_model=FilesystemInfo)
async def unmount_filesystem(
    filesystem_id: str,
    controller: FilesystemController = Depends(get_filesystem_controller),
) -> FilesystemInfo:
    try:
        filesystem = controller.get(filesystem_id)
        dispatched = await filesystem.unmount()
    except MountAgentError as e:
        raise _to_http_exception(e)

    if not dispatched:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Unmount command could not be started",
        )
    return FilesystemInfo.from_filesystem(filesystem)


@router.post("/{filesystem_id}/pause-timeout", response_model=FilesystemInfo)
async def pause_timeout(
    filesystem_id: str,
    request: PauseTimeoutRequest,
    controller: FilesystemController = Depends(get_filesystem_controller),
) -> FilesystemInfo:
    """Pause or resume the mount timeout, e.g. while the user types a password."""
    try:
        filesystem = controller.get(filesystem_id)
    except MountAgentError as e:
        raise _to_http_exception(e)
    await filesystem.set_pause_timeout(request.paused)
    return FilesystemInfo.from_filesystem(filesystem)


@router.delete("/{filesystem_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_filesystem(
    filesystem_id: str,
    controller: FilesystemController = Depends(get_filesystem_controller),
    history: StatusHistoryService = Depends(get_status_history),
) -> None:
    try:
        await controller.remove_filesystem(filesystem_id)
    except MountAgentError as e:
        raise _to_http_exception(e)
    history.forget(filesystem_id)
