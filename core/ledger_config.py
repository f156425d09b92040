"""
Protocol parameters for the CDP ledger.

Every component receives a LedgerConfig through its constructor. The config is
frozen; build a variant with from_overrides() or dataclasses.replace().
"""

from dataclasses import dataclass, fields, replace

from fixed_point_math import DECIMAL_PRECISION, ONE_HUNDRED_PCT


@dataclass(frozen=True)
class LedgerConfig:
    """Ledger-wide constants, all 1e18 fixed point unless noted."""
    mcr: int = 11 * DECIMAL_PRECISION // 10
    # Minimum collateral ratio, 110%
    ccr: int = 15 * DECIMAL_PRECISION // 10
    # Critical collateral ratio, 150%. Reported by the model only.
    debt_gas_compensation: int = 50 * DECIMAL_PRECISION
    # Flat debt reserve added to every position at open
    coll_gas_compensation_divisor: int = 200
    # 0.5% of collateral goes to the liquidator (plain integer)
    min_net_debt: int = 50 * DECIMAL_PRECISION
    borrowing_spread: int = 0
    redemption_fee_floor: int = 5 * DECIMAL_PRECISION // 1000
    # 0.5%
    minute_decay_factor: int = 999_037_758_833_783_000
    # 12 hour half-life
    beta: int = 2
    # Divisor applied to the base rate bump (plain integer)
    max_list_size: int = 1_000_000
    # Capacity of the sorted positions list (plain integer)
    fee_recipient: str = "fee_recipient"
    gas_pool: str = "gas_pool"

    def __post_init__(self):
        if self.mcr <= 0:
            raise ValueError(f"MCR must be positive: {self.mcr}")
        if self.coll_gas_compensation_divisor <= 0:
            raise ValueError("Collateral gas compensation divisor must be positive")
        if not 0 <= self.borrowing_spread <= ONE_HUNDRED_PCT:
            raise ValueError(f"Borrowing spread out of range: {self.borrowing_spread}")
        if not 0 <= self.redemption_fee_floor <= ONE_HUNDRED_PCT:
            raise ValueError(f"Redemption fee floor out of range: {self.redemption_fee_floor}")
        if not 0 < self.minute_decay_factor < DECIMAL_PRECISION:
            raise ValueError("Minute decay factor must be strictly between 0 and 1")
        if self.beta <= 0:
            raise ValueError(f"Beta must be positive: {self.beta}")
        if self.max_list_size <= 0:
            raise ValueError("Size cannot be zero")

    @classmethod
    def from_overrides(cls, **overrides):
        """
        Returns the default config with the given fields replaced.

        Raises:
            ValueError: On an unknown field name or an invalid value
        """
        known = {f.name for f in fields(cls)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown config fields: {sorted(unknown)}")
        return replace(cls(), **overrides)


DEFAULT_CONFIG = LedgerConfig()
