"""
Fixed-point math for the CDP ledger.

All amounts, prices and ratios in the ledger are integers scaled by
DECIMAL_PRECISION (1e18). Python integers never overflow, so products are kept
at full precision before the final division.
"""

from errors import DivisionByZero

DECIMAL_PRECISION = 10**18
HALF_DECIMAL_PRECISION = DECIMAL_PRECISION // 2

# Scale of the nominal ICR, kept larger than DECIMAL_PRECISION so that tiny
# debts still order correctly
NICR_PRECISION = 10**20

# Returned for ratios with zero debt
MAX_VALUE = 2**256 - 1

# 1000 years, in minutes. Any decay exponent beyond this yields 0.
MAX_DECAY_MINUTES = 525_600_000

ONE_HUNDRED_PCT = DECIMAL_PRECISION


def dec_min(a: int, b: int) -> int:
    return a if a < b else b


def dec_max(a: int, b: int) -> int:
    return a if a >= b else b


def mul_div(a: int, b: int, denominator: int) -> int:
    """
    Computes floor(a * b / denominator) at full precision.

    Raises:
        DivisionByZero: If denominator is 0
    """
    if denominator == 0:
        raise DivisionByZero("Division by zero")
    return (a * b) // denominator


def dec_mul(x: int, y: int) -> int:
    """Multiplies two 1e18 fixed-point numbers, rounding half up."""
    return (x * y + HALF_DECIMAL_PRECISION) // DECIMAL_PRECISION


def dec_pow(base: int, minutes: int) -> int:
    """
    Raises a 1e18 fixed-point base to an integer power.

    Uses exponentiation by squaring, so the cost is O(log(minutes)) calls to
    dec_mul. The function is only used to decay the base rate, where the base is
    strictly below 1, so exponents beyond MAX_DECAY_MINUTES return 0 directly.

    Args:
        base: Fixed-point base (1e18 == 1.0)
        minutes: Non-negative integer exponent

    Returns:
        base ** minutes as a 1e18 fixed-point integer
    """
    if minutes < 0:
        raise ValueError(f"Exponent must be non-negative: {minutes}")
    if minutes > MAX_DECAY_MINUTES:
        return 0
    if minutes == 0:
        return DECIMAL_PRECISION

    y = DECIMAL_PRECISION
    x = base
    n = minutes

    while n > 1:
        if n % 2 == 0:
            x = dec_mul(x, x)
            n //= 2
        else:
            y = dec_mul(x, y)
            x = dec_mul(x, x)
            n = (n - 1) // 2

    return dec_mul(x, y)


def compute_nominal_cr(coll: int, debt: int) -> int:
    """Price-independent collateral ratio used to order positions."""
    if debt > 0:
        return coll * NICR_PRECISION // debt
    return MAX_VALUE


def compute_cr(coll: int, debt: int, price: int) -> int:
    """
    Collateral ratio in 1e18 precision.

    A price of 0 values the collateral at nothing, so the ratio is 0 even when
    the debt is 0.
    """
    if price == 0:
        return 0
    if debt > 0:
        return coll * price // debt
    return MAX_VALUE
