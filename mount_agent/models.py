from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ConfigDict

ERROR_DOMAIN = "mount_agent"

# Parameters never echoed back by the API
SECRET_PARAMETER_KEYS = frozenset({"password"})
REDACTED_VALUE = "********"


class FilesystemStatus(str, Enum):
    """
    Status for et konfigureret filsystem.

    Normal Workflow: Unmounted -> Waiting -> Mounted -> Unmounted
    Alternative: Waiting -> Failed (timeout, launch error) or Unmounted -> Failed (mount point)
    """

    UNMOUNTED = "Unmounted"  # Not mounted; initial state
    WAITING = "Waiting"  # Helper launched, waiting for the OS to report the mount
    MOUNTED = "Mounted"  # Mount is active
    FAILED = "Failed"  # Last mount attempt failed; error attached


class ErrorCode(str, Enum):
    DATA_UNREADABLE = "DataUnreadable"
    MISSING_PARAMETER = "MissingParameter"
    INVALID_PARAMETER_VALUE = "InvalidParameterValue"
    MOUNT_FAILURE = "MountFailure"


class MountFailureReason(str, Enum):
    """Why a mount attempt failed. Only meaningful with ErrorCode.MOUNT_FAILURE."""

    MOUNT_POINT_IN_USE = "mount-point-in-use"
    MOUNT_POINT_NOT_WRITABLE = "mount-point-not-writable"
    MOUNT_POINT_IS_FILE = "mount-point-is-file"
    MOUNT_POINT_UNCREATABLE = "mount-point-uncreatable"
    PROCESS_LAUNCH_FAILED = "process-launch-failed"
    # Reserved: helper exit while Waiting is treated as a clean unwind, not a failure
    PROCESS_TERMINATED_UNEXPECTEDLY = "process-terminated-unexpectedly"
    TIMED_OUT = "timed-out"
    DELEGATE_REPORTED = "delegate-reported"
    MOUNT_FAILED = "mount-failed"


class MountError(BaseModel):
    """
    Struktureret fejl knyttet til et filsystem.

    A Failed filesystem always carries exactly one MountError describing the most
    recent failure. The same shape is used in API error responses.
    """

    model_config = ConfigDict(frozen=True)

    domain: str = Field(default=ERROR_DOMAIN, description="Error domain")
    code: ErrorCode = Field(..., description="Error category")
    reason: Optional[MountFailureReason] = Field(
        default=None, description="Failure reason for MountFailure errors"
    )
    message: str = Field(..., description="Human readable description")
    parameter: Optional[str] = Field(
        default=None, description="Offending parameter key, if any"
    )
    filesystem_id: Optional[str] = Field(
        default=None, description="UUID of the filesystem this error belongs to"
    )

    @classmethod
    def mount_failure(
        cls,
        reason: MountFailureReason,
        message: str,
        filesystem_id: Optional[str] = None,
    ) -> "MountError":
        return cls(
            code=ErrorCode.MOUNT_FAILURE,
            reason=reason,
            message=message,
            filesystem_id=filesystem_id,
        )

    @classmethod
    def generic(cls, filesystem_id: str) -> "MountError":
        return cls.mount_failure(
            MountFailureReason.MOUNT_FAILED, "Mount has failed.", filesystem_id
        )

    @classmethod
    def timed_out(cls, filesystem_id: str) -> "MountError":
        return cls.mount_failure(
            MountFailureReason.TIMED_OUT, "Mount has timed out.", filesystem_id
        )


class FilesystemInfo(BaseModel):
    """Read-only snapshot of a filesystem for the control API."""

    uuid: str
    type: Optional[str] = None
    name: Optional[str] = None
    status: FilesystemStatus
    mount_path: Optional[str] = None
    persistent: bool = False
    pause_timeout: bool = False
    error: Optional[MountError] = None
    output: str = ""
    output_truncated: bool = False
    parameters: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_filesystem(cls, filesystem) -> "FilesystemInfo":
        parameters = {
            key: REDACTED_VALUE if key in SECRET_PARAMETER_KEYS and value else value
            for key, value in filesystem.parameters.items()
        }
        return cls(
            uuid=filesystem.uuid,
            type=filesystem.type_id,
            name=filesystem.display_name,
            status=filesystem.status,
            mount_path=filesystem.mount_path,
            persistent=filesystem.persistent,
            pause_timeout=filesystem.pause_timeout,
            error=filesystem.error,
            output=filesystem.output,
            output_truncated=filesystem.output_truncated,
            parameters=parameters,
        )


class CreateFilesystemRequest(BaseModel):
    type: str = Field(..., description="Mount type id, e.g. 'sshfs'")
    parameters: Dict[str, Any] = Field(default_factory=dict)


class CreateFromUrlRequest(BaseModel):
    url: str = Field(..., description="e.g. sftp://user@host/path")


class ReplaceParametersRequest(BaseModel):
    parameters: Dict[str, Any]


class PauseTimeoutRequest(BaseModel):
    paused: bool
