"""
Shared input validation for ledger operations.

Each helper raises the typed error of the taxonomy in
``core.exceptions`` and returns the normalized value.
"""

from typing import Any, Type, Union

from core.exceptions import (
    HDSError,
    InvalidAccessTypeError,
    InvalidDataIdError,
    InvalidDurationError,
    InvalidParameterError,
    InvalidResearcherError,
)
from core.models import AccessType

# Burn address of the reference deployment, rejected as a principal.
NULL_IDENTITY = "SP000000000000000000002Q6VF78"


def is_positive_int(value: Any) -> bool:
    """True for ints strictly greater than zero. Booleans are not ints here."""
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def parse_access_type(value: Union[str, AccessType]) -> AccessType:
    """
    Normalize an access type.

    Args:
        value: ``AccessType`` member or its string value.

    Returns:
        The matching AccessType.

    Raises:
        InvalidAccessTypeError: For any other value.
    """
    if isinstance(value, AccessType):
        return value
    try:
        return AccessType(value)
    except ValueError:
        raise InvalidAccessTypeError(value) from None


def require_data_id(data_id: Any) -> int:
    if not is_positive_int(data_id):
        raise InvalidDataIdError(data_id)
    return data_id


def require_duration(duration: Any) -> int:
    if not is_positive_int(duration):
        raise InvalidDurationError(duration)
    return duration


def require_identity(identity: Any, null_identity: str = NULL_IDENTITY) -> str:
    """Reject empty identities and the reserved null identity."""
    if not isinstance(identity, str) or not identity or identity == null_identity:
        raise InvalidResearcherError(identity)
    return identity


def require_positive(
    value: Any,
    parameter: str,
    error_cls: Type[HDSError] = InvalidParameterError,
) -> int:
    """Validate a tunable; raises ``error_cls(parameter, value)`` on failure."""
    if not is_positive_int(value):
        raise error_cls(parameter, value)
    return value
