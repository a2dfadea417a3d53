"""Resource quantity parsing (cpu / memory strings such as "250m" or "128Mi")."""

import re
from decimal import Decimal, InvalidOperation

_QUANTITY_RE = re.compile(
    r"^(?P<number>[+-]?(?:\d+(?:\.\d*)?|\.\d+))"
    r"(?P<suffix>Ki|Mi|Gi|Ti|Pi|Ei|[numkMGTPE]|[eE][+-]?\d+)?$"
)

_BINARY = {"Ki": 2**10, "Mi": 2**20, "Gi": 2**30, "Ti": 2**40, "Pi": 2**50, "Ei": 2**60}
_DECIMAL = {
    "n": Decimal("1e-9"),
    "u": Decimal("1e-6"),
    "m": Decimal("1e-3"),
    "k": Decimal("1e3"),
    "M": Decimal("1e6"),
    "G": Decimal("1e9"),
    "T": Decimal("1e12"),
    "P": Decimal("1e15"),
    "E": Decimal("1e18"),
}


def parse_quantity(value: str) -> Decimal:
    """
    Parse a resource quantity into its base-unit value.

    Raises:
        ValueError: If the string is not a valid quantity
    """
    match = _QUANTITY_RE.match(value.strip()) if isinstance(value, str) else None
    if match is None:
        raise ValueError(f"quantities must match the regular expression {_QUANTITY_RE.pattern!r}")

    try:
        number = Decimal(match.group("number"))
    except InvalidOperation as e:
        raise ValueError(f"invalid number in quantity {value!r}") from e

    suffix = match.group("suffix")
    if not suffix:
        return number
    if suffix in _BINARY:
        return number * _BINARY[suffix]
    if suffix in _DECIMAL:
        return number * _DECIMAL[suffix]
    # exponent form, e.g. 1e3
    return number * (Decimal(10) ** int(suffix[1:]))
