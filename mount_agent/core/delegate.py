"""
Mount-type delegates: the pluggable providers of helper arguments, validation
and output interpretation for one kind of remote filesystem.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import urlparse

from mount_agent.core.exceptions import InvalidParameterValueError
from mount_agent.core.parameters import ParameterKeys
from mount_agent.models import MountError


class MountTypeDelegate(ABC):
    """Capability set a filesystem consults for its mount-type specific behaviour."""

    type_id: str = ""
    name: str = ""
    url_schemes: Tuple[str, ...] = ()

    def default_parameters(self) -> Dict[str, Any]:
        return {}

    def implied_parameters(self, parameters: Mapping[str, Any]) -> Dict[str, Any]:
        """Values derivable from other parameters; only used where a key is missing."""
        return {}

    def task_environment(self, parameters: Mapping[str, Any]) -> Optional[Dict[str, str]]:
        """Environment for the helper. None inherits the agent's environment."""
        return None

    @abstractmethod
    def task_arguments(self, parameters: Mapping[str, Any]) -> Optional[List[str]]:
        """Helper arguments for the given implied parameters."""

    @abstractmethod
    def executable_path(self) -> Optional[str]:
        """Absolute path of the helper executable, or None if unavailable."""

    @abstractmethod
    def validate(self, parameters: Mapping[str, Any]) -> None:
        """Raise a MountAgentError if the parameters are not usable for this type."""

    def error_from_output(
        self, parameters: Mapping[str, Any], output: str
    ) -> Optional[MountError]:
        """Derive a specific error from captured helper output."""
        return None

    def parameters_for_url(self, url: str) -> Dict[str, Any]:
        raise InvalidParameterValueError(
            ParameterKeys.DESCRIPTION, f"{self.type_id} filesystems cannot be created from URLs"
        )


class DelegateRegistry:
    """Maps mount type ids (and URL schemes) to their delegates."""

    def __init__(self) -> None:
        self._delegates: Dict[str, MountTypeDelegate] = {}

    def register(self, delegate: MountTypeDelegate) -> None:
        if not delegate.type_id:
            raise ValueError(f"Delegate {delegate!r} has no type_id")
        if delegate.type_id in self._delegates:
            logging.warning(f"Replacing delegate for mount type '{delegate.type_id}'")
        self._delegates[delegate.type_id] = delegate
        logging.debug(f"Registered mount type '{delegate.type_id}'")

    def get(self, type_id: Optional[str]) -> Optional[MountTypeDelegate]:
        if type_id is None:
            return None
        return self._delegates.get(type_id)

    def require(self, type_id: Optional[str]) -> MountTypeDelegate:
        delegate = self.get(type_id)
        if delegate is None:
            raise InvalidParameterValueError(
                ParameterKeys.TYPE, f"Invalid plugin ID given: {type_id!r}"
            )
        return delegate

    def for_url(self, url: str) -> MountTypeDelegate:
        scheme = urlparse(url).scheme.lower()
        for delegate in self._delegates.values():
            if scheme in delegate.url_schemes:
                return delegate
        raise InvalidParameterValueError(
            ParameterKeys.DESCRIPTION, f"No mount type handles URL scheme '{scheme}'"
        )

    @property
    def type_ids(self) -> List[str]:
        return sorted(self._delegates)
