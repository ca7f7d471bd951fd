"""Platform detection and platform-specific collaborators."""

import platform
import shlex
import shutil
from typing import List

from mount_agent.core.mount_point import (
    NoOpOwnershipMarker,
    OwnershipMarker,
    XattrOwnershipMarker,
)


class UnsupportedPlatformError(Exception):
    """Raised when platform is not supported for mounting."""
    pass


class PlatformFactory:
    def detect_platform(self) -> str:
        """Detect current platform. Returns: macos or linux."""
        system = platform.system().lower()

        if system == "darwin":
            return "macos"
        elif system == "linux":
            return "linux"
        else:
            raise UnsupportedPlatformError(f"Platform {system} not supported for FUSE mounting")

    def unmount_command(self, override: str = "") -> List[str]:
        """Command prefix that unmounts a path when the path is appended."""
        if override:
            return shlex.split(override)

        if self.detect_platform() == "macos":
            return ["/usr/sbin/diskutil", "unmount"]

        for candidate in ("fusermount3", "fusermount"):
            found = shutil.which(candidate)
            if found:
                return [found, "-u"]
        return ["umount"]

    def create_ownership_marker(self) -> OwnershipMarker:
        if self.detect_platform() == "linux":
            return XattrOwnershipMarker()
        return NoOpOwnershipMarker()
