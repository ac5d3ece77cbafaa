"""ValidationPolicy: how bounded fields react to out-of-range values."""

from enum import Enum


class ValidationPolicy(Enum):
    """
    Policy applied by ``normalize_range``.

    STRICT:   out-of-range values raise ``ValueError``.
    CLAMPING: out-of-range values are clipped to the nearest bound.
    """

    STRICT = "strict"
    CLAMPING = "clamping"


def normalize_range(
    value: int,
    low: int,
    high: int,
    field_name: str,
    policy: ValidationPolicy = ValidationPolicy.STRICT,
) -> int:
    """
    Return ``value`` if it lies in ``[low, high]``, otherwise apply ``policy``.

    Raises:
        ValueError: If the value is out of range under ``STRICT``.
    """
    value = int(value)
    if low <= value <= high:
        return value
    if policy is ValidationPolicy.STRICT:
        raise ValueError(f"{field_name} must be in range [{low}; {high}], got {value}.")
    return low if value < low else high
