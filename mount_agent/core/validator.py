from typing import Any, Dict, Mapping

from mount_agent.core.exceptions import MissingParameterError
from mount_agent.core.parameters import ParameterKeys, fill_implied_values, is_missing

# Checked in this order so the reported key is deterministic
REQUIRED_GENERIC_KEYS = (
    ParameterKeys.VOLUME_NAME,
    ParameterKeys.MOUNT_PATH,
    ParameterKeys.UUID,
)


def validate_parameters(parameters: Mapping[str, Any], delegate) -> Dict[str, Any]:
    """
    Validate a parameter set for the given mount-type delegate.

    Delegate validation runs first and its errors propagate unchanged; then the
    generic keys are checked and the first missing one is reported.

    Returns:
        The implied parameter set that was validated.

    Raises:
        MountAgentError: from the delegate, or MissingParameterError.
    """
    implied = fill_implied_values(parameters, delegate)
    delegate.validate(implied)

    for key in REQUIRED_GENERIC_KEYS:
        if is_missing(implied, key):
            raise MissingParameterError(key, filesystem_id=implied.get(ParameterKeys.UUID))

    return implied
