"""
Host-specific configuration management utility.

Handles automatic creation and selection of hostname-specific configuration files,
so one checkout can drive the agent on several machines with different mount roots.
"""

import socket
import shutil
from pathlib import Path
import logging

BASE_SETTINGS_FILE = "mount-agent.env"
HOST_SETTINGS_SUFFIX = "-mount-agent.env"


def get_hostname_settings_file() -> str:
    """
    Get the appropriate settings file for this host.

    Logic:
    1. Get current hostname
    2. Check if {hostname}-mount-agent.env exists
    3. If not, create it by copying mount-agent.env
    4. Return the hostname-specific file path

    Returns:
        str: Path to the hostname-specific settings file
    """
    try:
        hostname = get_hostname()

        base_settings = Path(BASE_SETTINGS_FILE)
        host_settings = Path(f"{hostname}{HOST_SETTINGS_SUFFIX}")

        if host_settings.exists():
            logging.debug(f"Using existing host-specific configuration: {host_settings}")
            return str(host_settings)

        if not base_settings.exists():
            logging.debug(f"{BASE_SETTINGS_FILE} not found, using defaults and environment")
            return BASE_SETTINGS_FILE

        content = base_settings.read_text(encoding="utf-8")
        shutil.copy2(base_settings, host_settings)
        host_header = (
            f"# Host-specific configuration for: {hostname}\n"
            f"# This file was auto-generated from {BASE_SETTINGS_FILE}\n"
            "# ==========================================================\n\n"
        )
        host_settings.write_text(host_header + content, encoding="utf-8")
        logging.info(f"Created host-specific configuration: {host_settings}")

        return str(host_settings)

    except OSError as e:
        logging.error(f"Error handling host-specific settings: {e}")
        return BASE_SETTINGS_FILE


def list_all_settings_files() -> list[str]:
    """List all available settings files (base + host-specific)."""
    settings_files = []

    if Path(BASE_SETTINGS_FILE).exists():
        settings_files.append(BASE_SETTINGS_FILE)

    for file_path in Path(".").glob(f"*{HOST_SETTINGS_SUFFIX}"):
        settings_files.append(str(file_path))

    return settings_files


def get_hostname() -> str:
    """Get the current hostname (without domain)."""
    return socket.gethostname().split(".")[0]
