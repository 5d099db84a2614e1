"""
Performance Engine - Display helpers.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional


MISSING = "--"


def format_performance(value: Optional[float]) -> str:
    """
    "--" for absent, otherwise a signed whole percent.

    Examples:
        12.4  -> "+12%"
        -5.5  -> "-6%"
        0     -> "+0%"
    """
    if value is None:
        return MISSING
    rounded = Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    if rounded == 0:
        # -0.4 rounds to -0
        rounded = Decimal(0)
    sign = "+" if rounded >= 0 else ""
    return f"{sign}{rounded}%"
