from mount_agent.core.delegate import DelegateRegistry

from .ftpfs import FTPFSDelegate
from .sshfs import SSHFSDelegate


def build_default_registry(settings) -> DelegateRegistry:
    """Registry with the built-in mount types, configured from settings."""
    registry = DelegateRegistry()
    registry.register(SSHFSDelegate(settings.mount_root, settings.sshfs_path))
    registry.register(FTPFSDelegate(settings.mount_root, settings.curlftpfs_path))
    return registry


__all__ = ["FTPFSDelegate", "SSHFSDelegate", "build_default_registry"]
