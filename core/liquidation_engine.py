"""
Liquidation Engine for the CDP ledger.

A position whose ICR, pending rewards included, is below the MCR can be
liquidated by anyone. The liquidator receives 0.5% of the position's
collateral plus its flat debt reserve as gas compensation. The remaining
collateral and the net debt are redistributed to every other active position
in proportion to its stake.

Three entry points share the same machinery:
- liquidate(): one explicit position, failing if it is not eligible
- liquidate_sequence(): the worst positions, walking up from the tail of the
  sorted list until the first healthy one
- batch_liquidate(): an explicit list, silently skipping ineligible ids

Every entry point first plans which positions it will liquidate, without
touching any state, and only then applies the liquidations. Sequence and batch
liquidations fold all positions into a single accumulator update.
"""

import logging
from dataclasses import dataclass, field
from typing import List

from errors import EmptyPositionArray, NothingToLiquidate, OnlyOnePositionInSystem
from position_types import Status

logger = logging.getLogger(__name__)


@dataclass
class LiquidationValues:
    """Outcome of liquidating one position."""
    owner: str = ""
    entire_position_debt: int = 0
    entire_position_coll: int = 0
    coll_gas_compensation: int = 0   # Collateral paid to the liquidator
    debt_gas_compensation: int = 0   # Debt reserve paid to the liquidator
    debt_to_redistribute: int = 0
    coll_to_redistribute: int = 0


@dataclass
class LiquidationTotals:
    """Aggregated outcome of a liquidation call."""
    total_debt_in_sequence: int = 0
    total_coll_in_sequence: int = 0
    total_coll_gas_compensation: int = 0
    total_debt_gas_compensation: int = 0
    total_debt_to_redistribute: int = 0
    total_coll_to_redistribute: int = 0
    liquidated: List[str] = field(default_factory=list)

    def add(self, values):
        self.total_debt_in_sequence += values.entire_position_debt
        self.total_coll_in_sequence += values.entire_position_coll
        self.total_coll_gas_compensation += values.coll_gas_compensation
        self.total_debt_gas_compensation += values.debt_gas_compensation
        self.total_debt_to_redistribute += values.debt_to_redistribute
        self.total_coll_to_redistribute += values.coll_to_redistribute
        self.liquidated.append(values.owner)


class LiquidationEngine:
    """
    Liquidates under-collateralized positions of a PositionLedger.

    Args:
        ledger: The PositionLedger whose positions and accumulators are updated
    """

    def __init__(self, ledger):
        self.ledger = ledger

    def is_liquidatable(self, owner, price):
        """True if the position is active and its ICR is below the MCR."""
        if not self.ledger.is_active(owner):
            return False
        return self.ledger.get_current_icr(owner, price) < self.ledger.config.mcr

    # --- Entry points ---

    def liquidate(self, owner, liquidator="liquidator"):
        """
        Liquidates a single position.

        Args:
            owner: Id of the position to liquidate
            liquidator: Address receiving the gas compensation

        Returns:
            LiquidationTotals for the single position

        Raises:
            NothingToLiquidate: If the position is not active or its ICR >= MCR
            OnlyOnePositionInSystem: If it is the last active position
        """
        price = self.ledger.price_feed.get_price()

        if not self.is_liquidatable(owner, price):
            raise NothingToLiquidate()
        self.ledger.require_more_than_one_position()

        return self._apply([owner], liquidator)

    def liquidate_sequence(self, max_count, liquidator="liquidator"):
        """
        Liquidates up to max_count of the riskiest positions.

        The walk starts at the tail of the sorted list and stops at the first
        position with ICR >= MCR; every position above it is healthier. The last
        active position is never liquidated.

        Args:
            max_count: Maximum number of positions to liquidate
            liquidator: Address receiving the gas compensation

        Returns:
            LiquidationTotals

        Raises:
            NothingToLiquidate: If max_count is 0 or no position is eligible
        """
        if max_count <= 0:
            raise NothingToLiquidate()

        price = self.ledger.price_feed.get_price()
        sorted_positions = self.ledger.sorted_positions
        # Keep at least one active position
        budget = min(max_count, self.ledger.get_position_owners_count() - 1)

        plan = []
        owner = sorted_positions.get_last()
        while owner is not None and len(plan) < budget:
            if not self.is_liquidatable(owner, price):
                break
            plan.append(owner)
            owner = sorted_positions.get_prev(owner)

        if not plan:
            raise NothingToLiquidate()

        return self._apply(plan, liquidator)

    def batch_liquidate(self, owners, liquidator="liquidator"):
        """
        Liquidates every eligible position in an explicit list.

        Ids that are unknown, closed, healthy or repeated are skipped. Once a
        single active position would remain, the remaining ids are skipped too.

        Args:
            owners: Ids of the positions to attempt to liquidate
            liquidator: Address receiving the gas compensation

        Returns:
            LiquidationTotals

        Raises:
            EmptyPositionArray: If owners is empty
            NothingToLiquidate: If every id was skipped
        """
        if not owners:
            raise EmptyPositionArray()

        price = self.ledger.price_feed.get_price()
        budget = self.ledger.get_position_owners_count() - 1

        plan = []
        for owner in owners:
            if len(plan) >= budget:
                logger.debug("Skipping %s: only one position would remain", owner)
                continue
            if owner in plan or not self.is_liquidatable(owner, price):
                logger.debug("Skipping %s: not eligible for liquidation", owner)
                continue
            plan.append(owner)

        if not plan:
            raise NothingToLiquidate()

        return self._apply(plan, liquidator)

    # --- Internals ---

    def _liquidate_position(self, owner):
        """
        Closes one position and returns what it frees. Pool balances and the
        accumulators are left to _apply().
        """
        ledger = self.ledger
        if ledger.get_position_owners_count() <= 1:
            raise OnlyOnePositionInSystem()

        ledger.apply_pending_rewards(owner)
        position = ledger.positions[owner]

        values = LiquidationValues(
            owner=owner,
            entire_position_debt=position.debt,
            entire_position_coll=position.coll,
        )
        values.coll_gas_compensation = ledger.get_coll_gas_compensation(position.coll)
        values.debt_gas_compensation = min(ledger.config.debt_gas_compensation, position.debt)
        values.coll_to_redistribute = position.coll - values.coll_gas_compensation
        values.debt_to_redistribute = position.debt - values.debt_gas_compensation

        ledger.remove_stake(owner)
        ledger.close_position_record(owner, Status.CLOSED_BY_LIQUIDATION)

        logger.info("Liquidated position %s: %d debt, %d collateral", owner,
                    values.entire_position_debt, values.entire_position_coll)
        return values

    def _apply(self, plan, liquidator):
        ledger = self.ledger
        totals = LiquidationTotals()

        for owner in plan:
            totals.add(self._liquidate_position(owner))

        # The liquidated debt leaves the active pool; its net part is shared
        # among the remaining stakes
        ledger.active_pool.decrease_debt(totals.total_debt_in_sequence)
        ledger.redistribute_debt_and_coll(totals.total_debt_to_redistribute, totals.total_coll_to_redistribute)

        if totals.total_coll_gas_compensation > 0:
            ledger.active_pool.send_coll(liquidator, totals.total_coll_gas_compensation)
        if totals.total_debt_gas_compensation > 0:
            ledger.debt_token.transfer(ledger.config.gas_pool, liquidator, totals.total_debt_gas_compensation)

        ledger.update_system_snapshots()

        logger.info("Liquidated %d position(s); gas compensation %d collateral and %d debt to %s",
                    len(totals.liquidated), totals.total_coll_gas_compensation,
                    totals.total_debt_gas_compensation, liquidator)
        return totals
