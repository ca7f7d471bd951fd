from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict
from .utils.host_config import get_hostname_settings_file


class Settings(BaseSettings):
    # Filsystem storage
    filesystems_directory: str = "~/.local/share/mount-agent/filesystems"
    mount_root: str = "~/mnt"  # Delegates imply mount paths below this directory

    # Timing konfiguration
    mount_timeout_seconds: float = 15.0  # Watchdog interval for a mount attempt
    mount_poll_interval_seconds: float = 1.0  # How often the OS mount table is checked

    # Helper process output
    output_buffer_max_chars: int = 64 * 1024  # Oldest output is dropped beyond this
    output_read_chunk_bytes: int = 4096
    status_history_size: int = 50  # Status changes kept per filesystem

    # Helper executables (empty = look up on PATH)
    sshfs_path: str = ""
    curlftpfs_path: str = ""
    unmount_command: str = ""  # e.g. "fusermount -u"; empty selects the platform default

    # Logging konfiguration
    log_level: str = "INFO"
    log_file_path: str = "logs/mount_agent.log"
    log_retention_days: int = 30

    # Control API
    api_host: str = "127.0.0.1"
    api_port: int = 8765

    model_config = SettingsConfigDict(env_file=get_hostname_settings_file(), extra="ignore")

    @property
    def log_directory(self) -> Path:
        """Returnerer log directory som Path objekt"""
        return Path(self.log_file_path).parent

    @property
    def filesystems_path(self) -> Path:
        return Path(self.filesystems_directory).expanduser()

    @property
    def mount_root_path(self) -> Path:
        return Path(self.mount_root).expanduser()

    @property
    def config_file_info(self) -> dict:
        """Return information about which configuration file is being used."""
        from .utils.host_config import get_hostname, list_all_settings_files

        return {
            "hostname": get_hostname(),
            "active_config_file": get_hostname_settings_file(),
            "all_available_configs": list_all_settings_files(),
        }
