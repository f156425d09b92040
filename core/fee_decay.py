"""
Fee Decay Engine for the CDP ledger.

The base rate is shared by the borrowing and redemption fee formulas. Every
fee-triggering operation first decays it, with one decay step per whole minute
since the last fee operation, then bumps it in proportion to the size of the
operation relative to the system.

The last fee operation time only moves forward once at least one whole minute has
passed. Operations issued more often than that cannot restart the decay clock,
so a borrower cannot keep the base rate from decaying by operating at a higher
frequency than the decay granularity.
"""

import logging
import time

from errors import MaxFeeExceeded, MaxFeeOutOfRange
from fixed_point_math import DECIMAL_PRECISION, ONE_HUNDRED_PCT, dec_min, dec_pow, mul_div
from ledger_config import DEFAULT_CONFIG

logger = logging.getLogger(__name__)

SECONDS_IN_ONE_MINUTE = 60


def _format_pct(value):
    return f"{value * 100 / DECIMAL_PRECISION:g}%"


class FeeDecayEngine:
    """
    Base rate state plus the borrowing and redemption fee rules.

    Args:
        config: LedgerConfig with the decay factor, beta, spread and fee floor
        time_source: Callable returning the current time in seconds
    """

    def __init__(self, config=DEFAULT_CONFIG, time_source=time.time):
        self.config = config
        self.time_source = time_source

        self.base_rate = 0
        self.last_fee_operation_time = int(time_source())
        self.borrowing_spread = config.borrowing_spread

    def _now(self):
        return int(self.time_source())

    # --- Base rate ---

    def minutes_passed_since_last_fee_op(self):
        return (self._now() - self.last_fee_operation_time) // SECONDS_IN_ONE_MINUTE

    def calc_decayed_base_rate(self):
        """Returns the base rate decayed by the whole minutes elapsed, without storing it."""
        minutes_passed = self.minutes_passed_since_last_fee_op()
        decay_factor = dec_pow(self.config.minute_decay_factor, minutes_passed)
        return self.base_rate * decay_factor // DECIMAL_PRECISION

    def set_base_rate(self, base_rate):
        """Seeds the base rate and restarts the decay clock."""
        if not 0 <= base_rate <= ONE_HUNDRED_PCT:
            raise ValueError(f"Base rate out of range: {base_rate}")
        self.base_rate = base_rate
        self.last_fee_operation_time = self._now()

    def set_borrowing_spread(self, borrowing_spread):
        if not 0 <= borrowing_spread <= ONE_HUNDRED_PCT:
            raise ValueError("Borrowing spread cannot exceed 100%")
        self.borrowing_spread = borrowing_spread
        logger.info("Borrowing spread set to %s", _format_pct(borrowing_spread))

    def _update_last_fee_op_time(self):
        now = self._now()
        if now - self.last_fee_operation_time >= SECONDS_IN_ONE_MINUTE:
            self.last_fee_operation_time = now

    def _commit_base_rate(self, new_base_rate):
        if new_base_rate != self.base_rate:
            logger.info("Base rate updated from %s to %s",
                        _format_pct(self.base_rate), _format_pct(new_base_rate))
        self.base_rate = new_base_rate
        self._update_last_fee_op_time()

    def decay_base_rate_from_borrowing(self):
        """Decays the base rate without bumping it."""
        decayed_base_rate = self.calc_decayed_base_rate()
        self._commit_base_rate(decayed_base_rate)

    def calc_base_rate_from_borrowing(self, debt_increase, total_system_debt):
        """
        Returns the base rate a borrowing operation would leave, without storing it.

        Args:
            debt_increase: Debt drawn by the operation
            total_system_debt: System debt after the operation
        """
        decayed_base_rate = self.calc_decayed_base_rate()
        if total_system_debt == 0:
            return decayed_base_rate

        borrowed_fraction = mul_div(debt_increase, DECIMAL_PRECISION, total_system_debt)
        return dec_min(decayed_base_rate + borrowed_fraction // self.config.beta, ONE_HUNDRED_PCT)

    def update_base_rate_from_borrowing(self, debt_increase, total_system_debt):
        new_base_rate = self.calc_base_rate_from_borrowing(debt_increase, total_system_debt)
        self._commit_base_rate(new_base_rate)
        return new_base_rate

    def calc_base_rate_from_redemption(self, coll_drawn, price, total_debt_supply):
        """
        Returns the base rate a redemption would leave, without storing it.

        The bump is the redeemed fraction of the debt supply, valued at price,
        divided by beta.
        """
        decayed_base_rate = self.calc_decayed_base_rate()
        redeemed_fraction = mul_div(coll_drawn, price, total_debt_supply)
        return dec_min(decayed_base_rate + redeemed_fraction // self.config.beta, ONE_HUNDRED_PCT)

    def update_base_rate_from_redemption(self, coll_drawn, price, total_debt_supply):
        new_base_rate = self.calc_base_rate_from_redemption(coll_drawn, price, total_debt_supply)
        self._commit_base_rate(new_base_rate)
        return new_base_rate

    # --- Rates and fees ---

    def _calc_borrowing_rate(self, base_rate):
        return dec_min(base_rate + self.borrowing_spread, ONE_HUNDRED_PCT)

    def _calc_redemption_rate(self, base_rate):
        return dec_min(base_rate + self.config.redemption_fee_floor, ONE_HUNDRED_PCT)

    def get_borrowing_rate(self):
        return self._calc_borrowing_rate(self.base_rate)

    def get_borrowing_rate_with_decay(self):
        return self._calc_borrowing_rate(self.calc_decayed_base_rate())

    def get_borrowing_fee(self, debt):
        return self.get_borrowing_rate() * debt // DECIMAL_PRECISION

    def get_borrowing_fee_with_decay(self, debt):
        return self.get_borrowing_rate_with_decay() * debt // DECIMAL_PRECISION

    def get_redemption_rate(self):
        return self._calc_redemption_rate(self.base_rate)

    def get_redemption_rate_with_decay(self):
        return self._calc_redemption_rate(self.calc_decayed_base_rate())

    def get_redemption_fee(self, coll_drawn):
        return self.calc_redemption_fee(self.base_rate, coll_drawn)

    def get_redemption_fee_with_decay(self, coll_drawn):
        return self.calc_redemption_fee(self.calc_decayed_base_rate(), coll_drawn)

    def calc_redemption_fee(self, base_rate, coll_drawn):
        """Redemption fee on coll_drawn at the given base rate, paid in collateral."""
        return self._calc_redemption_rate(base_rate) * coll_drawn // DECIMAL_PRECISION

    # --- Fee bounds ---

    def check_borrowing_max_fee(self, max_fee_percentage, is_debt_increase):
        """
        Raises:
            MaxFeeOutOfRange: If a debt increase allows less than the borrowing
                spread, or any max fee is outside [0%, 100%]
        """
        if is_debt_increase:
            if not self.borrowing_spread <= max_fee_percentage <= ONE_HUNDRED_PCT:
                raise MaxFeeOutOfRange()
        elif not 0 <= max_fee_percentage <= ONE_HUNDRED_PCT:
            raise MaxFeeOutOfRange("Max fee percentage must be between 0% and 100%")

    def check_redemption_max_fee(self, max_fee_percentage):
        floor = self.config.redemption_fee_floor
        if not floor <= max_fee_percentage <= ONE_HUNDRED_PCT:
            raise MaxFeeOutOfRange(
                f"Max fee percentage must be between {_format_pct(floor)} and 100%"
            )

    @staticmethod
    def require_user_accepts_fee(fee, amount, max_fee_percentage, error=MaxFeeExceeded):
        """
        Raises:
            MaxFeeExceeded or FeeExceededMaximum: If fee / amount exceeds the
                caller's max fee percentage
        """
        if amount == 0:
            return
        fee_percentage = fee * DECIMAL_PRECISION // amount
        if fee_percentage > max_fee_percentage:
            raise error()
