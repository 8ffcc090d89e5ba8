"""Fixed-point money helpers.

All amounts inside the ledger are integer minor units (paise, cents).
Conversion to and from two-decimal strings only happens at the edges.
"""

from decimal import Decimal, InvalidOperation

MINOR_PER_MAJOR = 100


def to_minor_units(amount: Decimal | str | int) -> int:
    """
    Convert a major-unit amount to integer minor units.

    Amounts carry at most two decimal places; anything finer is rejected
    rather than rounded.

    Args:
        amount: Amount as Decimal, numeric string or whole major units

    Returns:
        Amount in minor units (integer)

    Raises:
        TypeError: If given a float (binary floating point is never accepted)
        ValueError: If the value is not a number or has sub-minor precision
    """
    if isinstance(amount, float):
        raise TypeError("Use Decimal or str for money, not float")
    if isinstance(amount, bool):
        raise TypeError("Booleans are not money")

    try:
        value = Decimal(amount)
    except InvalidOperation as e:
        raise ValueError(f"Not a monetary amount: {amount!r}") from e

    if not value.is_finite():
        raise ValueError(f"Not a monetary amount: {amount!r}")

    if value != value.quantize(Decimal("0.01")):
        raise ValueError(f"More than two decimal places: {amount!r}")

    return int(value * MINOR_PER_MAJOR)


def from_minor_units(minor: int) -> Decimal:
    """Convert integer minor units back to a two-decimal Decimal."""
    return (Decimal(minor) / MINOR_PER_MAJOR).quantize(Decimal("0.01"))


def format_minor_units(minor: int) -> str:
    """Format minor units as a plain two-decimal string, e.g. ``-12.05``."""
    sign = "-" if minor < 0 else ""
    major, cents = divmod(abs(minor), MINOR_PER_MAJOR)
    return f"{sign}{major}.{cents:02d}"
