"""
Parameter keys and defaults merging for filesystem parameter sets.

A parameter set is a plain dict of string keys to scalar values. Insertion
order is preserved so stored files and API responses stay stable.
"""

import uuid
from typing import Any, Dict, Mapping, Optional


class ParameterKeys:
    TYPE = "type"
    UUID = "uuid"
    NAME = "name"
    DESCRIPTION = "description"
    VOLUME_NAME = "volume_name"
    MOUNT_PATH = "mount_path"
    PERSISTENT = "persistent"
    NEGATIVE_VNODE_CACHE = "negative_vncache"
    NO_APPLE_DOUBLE = "no_apple_double"
    SHOW_IN_SIDEBAR = "show_in_sidebar"
    ADVANCED_OPTIONS = "advanced_options"


GENERIC_DEFAULTS: Dict[str, Any] = {
    ParameterKeys.NEGATIVE_VNODE_CACHE: False,
    ParameterKeys.NO_APPLE_DOUBLE: False,
    ParameterKeys.SHOW_IN_SIDEBAR: False,
}


def new_uuid() -> str:
    return str(uuid.uuid4()).upper()


def is_missing(parameters: Mapping[str, Any], key: str) -> bool:
    """A key counts as missing when absent, None or an empty string."""
    value = parameters.get(key)
    return value is None or value == ""


def default_parameters(delegate) -> Dict[str, Any]:
    """Delegate-specific defaults followed by the generic flag defaults."""
    defaults: Dict[str, Any] = dict(delegate.default_parameters() or {})
    defaults.update(GENERIC_DEFAULTS)
    return defaults


def merge_with_defaults(
    parameters: Optional[Mapping[str, Any]], defaults: Mapping[str, Any]
) -> Dict[str, Any]:
    """
    Merge caller parameters over defaults.

    Caller keys win (even when their value is falsy); keys only present in
    defaults are appended in default order. Never mutates its inputs.
    """
    merged: Dict[str, Any] = dict(parameters or {})
    for key, value in defaults.items():
        if key not in merged:
            merged[key] = value
    return merged


def fill_implied_values(parameters: Mapping[str, Any], delegate) -> Dict[str, Any]:
    """
    Return the fully implied parameter set: defaults merged in, then any keys
    the delegate can derive (e.g. mount path from volume name) where missing.
    """
    implied = merge_with_defaults(parameters, default_parameters(delegate))
    for key, value in (delegate.implied_parameters(implied) or {}).items():
        if is_missing(implied, key):
            implied[key] = value
    return implied


def as_bool(value: Any) -> bool:
    """Interpret flag values coming from JSON, env files or query strings."""
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)
