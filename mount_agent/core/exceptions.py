# mount_agent/core/exceptions.py
from typing import Optional

from mount_agent.models import ErrorCode, MountError, MountFailureReason


class MountAgentError(Exception):
    """Base for all errors raised synchronously to callers."""

    code: ErrorCode = ErrorCode.MOUNT_FAILURE

    def __init__(self, message: str, filesystem_id: Optional[str] = None):
        self.message = message
        self.filesystem_id = filesystem_id
        super().__init__(message)

    def to_error(self) -> MountError:
        return MountError(
            code=self.code, message=self.message, filesystem_id=self.filesystem_id
        )


class DataUnreadableError(MountAgentError):
    """Raised when a stored filesystem file cannot be read or parsed."""

    code = ErrorCode.DATA_UNREADABLE

    def __init__(self, path: str, detail: str = ""):
        self.path = path
        message = f"Could not read dictionary data for filesystem at {path}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class MissingParameterError(MountAgentError):
    code = ErrorCode.MISSING_PARAMETER

    def __init__(self, parameter: str, filesystem_id: Optional[str] = None):
        self.parameter = parameter
        super().__init__(f"Missing value for parameter '{parameter}'", filesystem_id)

    def to_error(self) -> MountError:
        return MountError(
            code=self.code,
            message=self.message,
            parameter=self.parameter,
            filesystem_id=self.filesystem_id,
        )


class InvalidParameterValueError(MountAgentError):
    code = ErrorCode.INVALID_PARAMETER_VALUE

    def __init__(self, parameter: str, message: str, filesystem_id: Optional[str] = None):
        self.parameter = parameter
        super().__init__(message, filesystem_id)

    def to_error(self) -> MountError:
        return MountError(
            code=self.code,
            message=self.message,
            parameter=self.parameter,
            filesystem_id=self.filesystem_id,
        )


class MountPointError(MountAgentError):
    """Raised by mount point preparation; recorded on the filesystem, never returned to callers."""

    def __init__(self, reason: MountFailureReason, path: str, message: str):
        self.reason = reason
        self.path = path
        super().__init__(message)

    def to_error(self) -> MountError:
        return MountError.mount_failure(self.reason, self.message, self.filesystem_id)


class DelegateImplementationError(MountAgentError):
    """The mount-type delegate could not supply an executable or task arguments."""

    def __init__(self, type_id: str, message: str, filesystem_id: Optional[str] = None):
        self.type_id = type_id
        super().__init__(f"Delegate '{type_id}': {message}", filesystem_id)


class InvalidTransitionError(MountAgentError):
    """Raised when a filesystem status transition is not allowed."""

    def __init__(self, filesystem_id: str, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid state transition for filesystem {filesystem_id}: "
            f"Cannot move from '{from_status}' to '{to_status}'.",
            filesystem_id,
        )


class FilesystemNotFoundError(MountAgentError):
    def __init__(self, filesystem_id: str):
        super().__init__(f"No filesystem with UUID {filesystem_id}", filesystem_id)


class FilesystemBusyError(MountAgentError):
    def __init__(self, filesystem_id: str, status: str):
        self.status = status
        super().__init__(
            f"Filesystem {filesystem_id} is {status}; unmount it first", filesystem_id
        )
