"""
Redemption Engine for the CDP ledger.

Debt token holders can swap tokens for collateral at face value, minus the
redemption fee. The debt is cancelled against the positions with the lowest
ICR first, starting at the tail of the sorted list. Positions already below
the MCR are liquidation targets and are skipped.

A position whose whole net debt is redeemed is closed. Its gas compensation
reserve is burned, and the collateral left over after the redemption is parked
in the surplus pool for its owner to claim. Otherwise the position is partially
redeemed and re-inserted in the sorted list. A partial redemption that would
leave the position below the minimum net debt, or whose NICR no longer matches
the caller's hint, is cancelled and ends the walk.
"""

import logging
from dataclasses import dataclass, field
from typing import List

from errors import (
    AmountMustBePositive,
    FeeEatsAllCollateral,
    FeeExceededMaximum,
    InsufficientBalance,
    UnableToRedeem,
)
from fixed_point_math import DECIMAL_PRECISION, ONE_HUNDRED_PCT, compute_nominal_cr, dec_min, mul_div
from position_types import Status

logger = logging.getLogger(__name__)


@dataclass
class SingleRedemptionValues:
    """Planned redemption against one position."""
    owner: str
    debt_lot: int = 0         # Debt cancelled on the position
    coll_lot: int = 0         # Collateral drawn from the position
    new_debt: int = 0
    new_coll: int = 0
    new_nicr: int = 0
    is_full: bool = False
    cancelled_partial: bool = False


@dataclass
class RedemptionTotals:
    """Aggregated outcome of a redemption."""
    total_debt_to_redeem: int = 0
    total_coll_drawn: int = 0
    coll_fee: int = 0
    coll_to_send_to_redeemer: int = 0
    new_base_rate: int = 0
    price: int = 0
    total_debt_supply_at_start: int = 0
    redemptions: List[SingleRedemptionValues] = field(default_factory=list)


class RedemptionEngine:
    """
    Redeems debt tokens for collateral against a PositionLedger.

    Args:
        ledger: The PositionLedger whose positions are redeemed against
    """

    def __init__(self, ledger):
        self.ledger = ledger

    def _is_valid_first_redemption_hint(self, first_hint, price):
        ledger = self.ledger
        if first_hint is None or not ledger.sorted_positions.contains(first_hint):
            return False
        if ledger.get_current_icr(first_hint, price) < ledger.config.mcr:
            return False

        next_position = ledger.sorted_positions.get_next(first_hint)
        return next_position is None or ledger.get_current_icr(next_position, price) < ledger.config.mcr

    def redeem_collateral(self, redeemer, amount, max_fee_percentage=ONE_HUNDRED_PCT,
                          first_redemption_hint=None, upper_partial_hint=None,
                          lower_partial_hint=None, partial_redemption_hint_nicr=None,
                          max_iterations=0):
        """
        Redeems amount of debt tokens for collateral.

        Args:
            redeemer: Address redeeming its debt tokens
            amount: Debt tokens to redeem
            max_fee_percentage: Highest redemption fee rate the redeemer accepts
            first_redemption_hint: Position with the lowest ICR >= MCR, if known
            upper_partial_hint: Sorted list hint for the partially redeemed position
            lower_partial_hint: Sorted list hint for the partially redeemed position
            partial_redemption_hint_nicr: Expected NICR of the partially redeemed
                position. A mismatch cancels the partial redemption.
            max_iterations: Maximum number of positions to visit, 0 for no limit

        Returns:
            RedemptionTotals

        Raises:
            AmountMustBePositive, MaxFeeOutOfRange, InsufficientBalance,
            UnableToRedeem, FeeEatsAllCollateral, FeeExceededMaximum
        """
        ledger = self.ledger

        if amount <= 0:
            raise AmountMustBePositive()
        ledger.fee_engine.check_redemption_max_fee(max_fee_percentage)
        if ledger.debt_token.balance_of(redeemer) < amount:
            raise InsufficientBalance()

        price = ledger.price_feed.get_price()
        totals = self._plan(amount, price, first_redemption_hint, partial_redemption_hint_nicr, max_iterations)

        if totals.total_coll_drawn == 0:
            raise UnableToRedeem()

        totals.new_base_rate = ledger.fee_engine.calc_base_rate_from_redemption(
            totals.total_coll_drawn, price, totals.total_debt_supply_at_start
        )
        totals.coll_fee = ledger.fee_engine.calc_redemption_fee(totals.new_base_rate, totals.total_coll_drawn)
        if totals.coll_fee >= totals.total_coll_drawn:
            raise FeeEatsAllCollateral()
        ledger.fee_engine.require_user_accepts_fee(
            totals.coll_fee, totals.total_coll_drawn, max_fee_percentage, FeeExceededMaximum
        )
        totals.coll_to_send_to_redeemer = totals.total_coll_drawn - totals.coll_fee

        self._apply(redeemer, totals, upper_partial_hint, lower_partial_hint)
        return totals

    # --- Planning ---

    def _plan(self, amount, price, first_redemption_hint, partial_redemption_hint_nicr, max_iterations):
        ledger = self.ledger
        sorted_positions = ledger.sorted_positions
        totals = RedemptionTotals(price=price, total_debt_supply_at_start=ledger.get_entire_system_debt())

        if self._is_valid_first_redemption_hint(first_redemption_hint, price):
            current = first_redemption_hint
        else:
            current = sorted_positions.get_last()
            # Skip positions below the MCR
            while current is not None and ledger.get_current_icr(current, price) < ledger.config.mcr:
                current = sorted_positions.get_prev(current)

        remaining = amount
        active_left = ledger.get_position_owners_count()
        iterations = 0

        while current is not None and remaining > 0 and (max_iterations == 0 or iterations < max_iterations):
            iterations += 1
            next_to_check = sorted_positions.get_prev(current)

            single = self._plan_single(current, remaining, price, partial_redemption_hint_nicr)
            if single.cancelled_partial:
                break
            if single.is_full:
                if active_left <= 1:
                    break
                active_left -= 1

            totals.redemptions.append(single)
            totals.total_debt_to_redeem += single.debt_lot
            totals.total_coll_drawn += single.coll_lot
            remaining -= single.debt_lot
            current = next_to_check

        return totals

    def _plan_single(self, owner, max_debt_amount, price, partial_redemption_hint_nicr):
        ledger = self.ledger
        data = ledger.get_entire_debt_and_coll(owner)
        reserve = ledger.config.debt_gas_compensation

        single = SingleRedemptionValues(owner=owner)
        # The gas compensation reserve cannot be redeemed
        single.debt_lot = dec_min(max_debt_amount, data.entire_debt - reserve)
        single.coll_lot = mul_div(single.debt_lot, DECIMAL_PRECISION, price)

        single.new_debt = data.entire_debt - single.debt_lot
        single.new_coll = data.entire_coll - single.coll_lot

        if single.new_debt == reserve:
            single.is_full = True
            return single

        single.new_nicr = compute_nominal_cr(single.new_coll, single.new_debt)
        hint_is_stale = (
            partial_redemption_hint_nicr is not None
            and single.new_nicr != partial_redemption_hint_nicr
        )
        if hint_is_stale or ledger.get_net_debt(single.new_debt) < ledger.config.min_net_debt:
            logger.warning("Cancelled partial redemption of %s (%s)", owner,
                           "stale NICR hint" if hint_is_stale else "net debt below minimum")
            single.cancelled_partial = True
        return single

    # --- Applying ---

    def _apply(self, redeemer, totals, upper_partial_hint, lower_partial_hint):
        ledger = self.ledger
        config = ledger.config

        ledger.fee_engine.update_base_rate_from_redemption(
            totals.total_coll_drawn, totals.price, totals.total_debt_supply_at_start
        )

        for single in totals.redemptions:
            ledger.apply_pending_rewards(single.owner)

            if single.is_full:
                ledger.remove_stake(single.owner)
                ledger.close_position_record(single.owner, Status.CLOSED_BY_REDEMPTION)

                # Burn the reserve and park the leftover collateral for the owner
                ledger.active_pool.decrease_debt(config.debt_gas_compensation)
                if config.debt_gas_compensation > 0:
                    ledger.debt_token.burn(config.gas_pool, config.debt_gas_compensation)
                if single.new_coll > 0:
                    ledger.active_pool.send_coll_to_surplus_pool(ledger.coll_surplus_pool, single.owner, single.new_coll)
                logger.info("Position %s closed by redemption, surplus %d", single.owner, single.new_coll)
            else:
                position = ledger.positions[single.owner]
                position.debt = single.new_debt
                position.coll = single.new_coll
                ledger.sorted_positions.re_insert(single.owner, single.new_nicr, upper_partial_hint, lower_partial_hint)
                ledger.update_stake_and_total_stakes(single.owner)
                logger.info("Position %s partially redeemed, %d debt left", single.owner, single.new_debt)

        ledger.active_pool.decrease_debt(totals.total_debt_to_redeem)
        ledger.debt_token.burn(redeemer, totals.total_debt_to_redeem)

        if totals.coll_fee > 0:
            ledger.active_pool.send_coll(config.fee_recipient, totals.coll_fee)
        ledger.active_pool.send_coll(redeemer, totals.coll_to_send_to_redeemer)

        logger.info("Redeemed %d debt for %d collateral (fee %d) from %d position(s)",
                    totals.total_debt_to_redeem, totals.total_coll_drawn, totals.coll_fee,
                    len(totals.redemptions))
        return totals
