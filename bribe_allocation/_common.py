"""Shared numeric and parsing utilities.

Contains decimal coercion, percentage helpers, and chain-name parsing
used by the models and every pipeline stage.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Any

from bribe_allocation.exceptions import MalformedChoiceLabel

ZERO = Decimal(0)
HUNDRED = Decimal(100)

# Significant digits used while an allocation run is in progress.
DECIMAL_PRECISION = 40

# Slack allowed when comparing converged percentages against a cap.
TOLERANCE = Decimal("1e-9")

_CHAIN_PATTERN = re.compile(r"\(([^()]+)\)\s*$")


def to_decimal(value: Any) -> Decimal:
    """Coerce ``value`` to a finite ``Decimal``.

    Floats go through ``str`` so that ``0.1`` becomes ``Decimal("0.1")``
    rather than its binary expansion.

    Parameters
    ----------
    value : Any
        Number, numeric string, or ``Decimal``.

    Returns
    -------
    Decimal

    Raises
    ------
    ValueError
        If the value is a bool, not numeric, or not finite.
    """
    if isinstance(value, bool):
        raise ValueError(f"Expected a number, got {value!r}.")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise ValueError(f"Expected a number, got {value!r}.") from exc
    if not result.is_finite():
        raise ValueError(f"Expected a finite number, got {value!r}.")
    return result


def percentage(part: Decimal, whole: Decimal) -> Decimal:
    """Return ``part / whole * 100``, or zero when ``whole`` is zero."""
    if whole == 0:
        return ZERO
    return part / whole * HUNDRED


def parse_chain(label: str) -> str:
    """Extract the chain name from a label such as ``"WBTC (Arbitrum)"``.

    The last parenthesised group at the end of the label is used.

    Raises
    ------
    MalformedChoiceLabel
        If the label does not end in a parenthesised chain name.
    """
    match = _CHAIN_PATTERN.search(label)
    if match is None or not match.group(1).strip():
        raise MalformedChoiceLabel(label)
    return match.group(1).strip()


def normalize_address(address: str) -> str:
    return address.strip().lower()
