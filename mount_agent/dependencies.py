from functools import lru_cache
from typing import Any, Dict

from mount_agent.core.delegate import DelegateRegistry
from mount_agent.core.events.event_bus import DomainEventBus
from mount_agent.core.filesystem import FilesystemDependencies
from mount_agent.core.filesystem_state_machine import FilesystemStateMachine
from mount_agent.core.mount_point import MountPointManager
from mount_agent.core.persistence import FilesystemStore
from mount_agent.core.platform_factory import PlatformFactory
from mount_agent.core.process_supervisor import ProcessSupervisor
from mount_agent.core.shell_integration import NullShellIntegration, ShellIntegration

from .config import Settings
from .delegates import build_default_registry
from .services.filesystem_controller import FilesystemController
from .services.mount_monitor import MountMonitorService
from .services.status_history import StatusHistoryService

# Global singleton instances
_singletons: Dict[str, Any] = {}


@lru_cache
def get_settings() -> Settings:
    """Hent Settings singleton instance."""
    return Settings()


def get_event_bus() -> DomainEventBus:
    if "event_bus" not in _singletons:
        _singletons["event_bus"] = DomainEventBus()
    return _singletons["event_bus"]


def get_platform_factory() -> PlatformFactory:
    if "platform_factory" not in _singletons:
        _singletons["platform_factory"] = PlatformFactory()
    return _singletons["platform_factory"]


def get_shell_integration() -> ShellIntegration:
    if "shell_integration" not in _singletons:
        _singletons["shell_integration"] = NullShellIntegration()
    return _singletons["shell_integration"]


def get_mount_point_manager() -> MountPointManager:
    if "mount_point_manager" not in _singletons:
        _singletons["mount_point_manager"] = MountPointManager(
            get_platform_factory().create_ownership_marker()
        )
    return _singletons["mount_point_manager"]


def get_filesystem_state_machine() -> FilesystemStateMachine:
    if "filesystem_state_machine" not in _singletons:
        _singletons["filesystem_state_machine"] = FilesystemStateMachine(
            event_bus=get_event_bus(),
            mount_point_manager=get_mount_point_manager(),
            shell_integration=get_shell_integration(),
        )
    return _singletons["filesystem_state_machine"]


def get_process_supervisor() -> ProcessSupervisor:
    if "process_supervisor" not in _singletons:
        settings = get_settings()
        _singletons["process_supervisor"] = ProcessSupervisor(
            read_chunk_bytes=settings.output_read_chunk_bytes
        )
    return _singletons["process_supervisor"]


def get_filesystem_store() -> FilesystemStore:
    if "filesystem_store" not in _singletons:
        _singletons["filesystem_store"] = FilesystemStore(get_settings().filesystems_path)
    return _singletons["filesystem_store"]


def get_delegate_registry() -> DelegateRegistry:
    if "delegate_registry" not in _singletons:
        _singletons["delegate_registry"] = build_default_registry(get_settings())
    return _singletons["delegate_registry"]


def get_filesystem_dependencies() -> FilesystemDependencies:
    if "filesystem_dependencies" not in _singletons:
        settings = get_settings()
        _singletons["filesystem_dependencies"] = FilesystemDependencies(
            state_machine=get_filesystem_state_machine(),
            supervisor=get_process_supervisor(),
            mount_point_manager=get_mount_point_manager(),
            store=get_filesystem_store(),
            event_bus=get_event_bus(),
            shell_integration=get_shell_integration(),
            # Read on every arm so a changed preference applies to the next attempt
            timeout_provider=lambda: get_settings().mount_timeout_seconds,
            unmount_command=get_platform_factory().unmount_command(settings.unmount_command),
            output_max_chars=settings.output_buffer_max_chars,
        )
    return _singletons["filesystem_dependencies"]


def get_filesystem_controller() -> FilesystemController:
    if "filesystem_controller" not in _singletons:
        _singletons["filesystem_controller"] = FilesystemController(
            registry=get_delegate_registry(),
            dependencies=get_filesystem_dependencies(),
        )
    return _singletons["filesystem_controller"]


def get_mount_monitor() -> MountMonitorService:
    if "mount_monitor" not in _singletons:
        _singletons["mount_monitor"] = MountMonitorService(
            settings=get_settings(),
            controller=get_filesystem_controller(),
        )
    return _singletons["mount_monitor"]


def get_status_history() -> StatusHistoryService:
    if "status_history" not in _singletons:
        _singletons["status_history"] = StatusHistoryService(
            event_bus=get_event_bus(),
            max_entries_per_filesystem=get_settings().status_history_size,
        )
    return _singletons["status_history"]


def reset_singletons() -> None:
    """Reset all singletons - useful for testing"""
    global _singletons
    _singletons.clear()
    get_settings.cache_clear()
