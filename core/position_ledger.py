"""
Position Ledger Model for the CDP ledger.

This module holds the authoritative record of every position and the global
state used to share liquidated collateral and debt among the remaining ones.

Redistribution is lazy. A liquidation only raises two accumulators, L_coll and
L_debt, which hold the collateral and debt each unit of stake has earned since
the system started. Every position keeps a snapshot of both accumulators, so
its pending reward is

    stake * (L - snapshot) / DECIMAL_PRECISION

and is folded into its recorded collateral and debt the next time the position
is touched. A liquidation costs O(1) no matter how many positions stay open.

Stakes are corrected through the ratio total_stakes_snapshot /
total_collateral_snapshot captured after the latest liquidation. Redistributed
collateral raises the system collateral without raising any stake, so a position
opened later receives a proportionally smaller stake and does not dilute the
rewards earned by older positions.

Borrower operations (open, adjust, close, claim) enter through this class.
Liquidations and redemptions are delegated to LiquidationEngine and
RedemptionEngine, which work on the ledger passed to them.
"""

import logging
import time

from active_pool import ActivePool
from coll_surplus_pool import CollSurplusPool
from collateral_token import CollateralToken
from debt_token import DebtToken
from default_pool import DefaultPool
from errors import (
    DivisionByZero,
    ICRBelowMCR,
    InsufficientBalance,
    InsufficientCollateralBalance,
    ListFull,
    NetDebtBelowMinimum,
    NoCollateralToClaim,
    OnlyOnePositionInSystem,
    PositionAlreadyActive,
    PositionNotActive,
    RepaymentExceedsDebt,
    WithdrawalExceedsCollateral,
    ZeroAdjustment,
    ZeroDebtChange,
    ZeroId,
)
from fee_decay import FeeDecayEngine
from fixed_point_math import DECIMAL_PRECISION, ONE_HUNDRED_PCT, compute_cr, compute_nominal_cr
from ledger_config import DEFAULT_CONFIG
from liquidation_engine import LiquidationEngine
from position_types import LatestPositionData, Position, RewardSnapshot, Status
from redemption_engine import RedemptionEngine
from sorted_positions import SortedPositions

logger = logging.getLogger(__name__)


class PositionLedger:
    """
    Authoritative map of positions plus the reward accumulators.

    Args:
        price_feed: Source of the latest trusted collateral price
        debt_token: Debt token the ledger mints and burns
        collateral_token: Custodian of the locked collateral
        config: Protocol parameters
        time_source: Callable returning the current time in seconds, used by
            the fee decay engine
    """

    def __init__(self, price_feed, debt_token=None, collateral_token=None,
                 config=DEFAULT_CONFIG, time_source=time.time):
        self.config = config
        self.price_feed = price_feed
        self.debt_token = debt_token if debt_token is not None else DebtToken()
        self.collateral_token = collateral_token if collateral_token is not None else CollateralToken()

        # Pools
        self.default_pool = DefaultPool()
        self.active_pool = ActivePool(self.collateral_token, self.default_pool)
        self.default_pool.active_pool = self.active_pool
        self.coll_surplus_pool = CollSurplusPool(self.collateral_token)

        self.sorted_positions = SortedPositions(config.max_list_size, nicr_lookup=self.get_nominal_icr)
        self.fee_engine = FeeDecayEngine(config, time_source)
        self.liquidation_engine = LiquidationEngine(self)
        self.redemption_engine = RedemptionEngine(self)

        # State variables
        self.positions = {}  # owner -> Position
        self.reward_snapshots = {}  # owner -> RewardSnapshot
        self.position_owners = []

        self.total_stakes = 0
        self.total_stakes_snapshot = 0
        self.total_collateral_snapshot = 0

        # Collateral and debt earned per unit staked
        self.L_coll = 0
        self.L_debt = 0

        # Division remainders carried into the next redistribution
        self.last_coll_error_redistribution = 0
        self.last_debt_error_redistribution = 0

    # --- Getters ---

    def get_position(self, owner):
        """Returns the position record, or an empty NON_EXISTENT record."""
        return self.positions.get(owner) or Position(owner=owner)

    def get_position_status(self, owner):
        return self.get_position(owner).status

    def get_position_stake(self, owner):
        return self.get_position(owner).stake

    def get_position_coll(self, owner):
        return self.get_position(owner).coll

    def get_position_debt(self, owner):
        return self.get_position(owner).debt

    def get_reward_snapshot(self, owner):
        return self.reward_snapshots.get(owner) or RewardSnapshot()

    def get_position_owners_count(self):
        """Returns the number of active positions."""
        return len(self.position_owners)

    def get_position_from_array(self, index):
        if index < 0 or index >= len(self.position_owners):
            raise IndexError("Index out of range")
        return self.position_owners[index]

    def is_active(self, owner):
        return self.get_position_status(owner) == Status.ACTIVE

    def _require_active(self, owner):
        if not self.is_active(owner):
            raise PositionNotActive()
        return self.positions[owner]

    def get_pending_coll_reward(self, owner):
        """Collateral redistributed to the position that is not yet recorded on it."""
        if not self.is_active(owner):
            return 0
        reward_per_unit_staked = self.L_coll - self.reward_snapshots[owner].coll
        if reward_per_unit_staked == 0:
            return 0
        return self.positions[owner].stake * reward_per_unit_staked // DECIMAL_PRECISION

    def get_pending_debt_reward(self, owner):
        """Debt redistributed to the position that is not yet recorded on it."""
        if not self.is_active(owner):
            return 0
        reward_per_unit_staked = self.L_debt - self.reward_snapshots[owner].debt
        if reward_per_unit_staked == 0:
            return 0
        return self.positions[owner].stake * reward_per_unit_staked // DECIMAL_PRECISION

    def has_pending_rewards(self, owner):
        if not self.is_active(owner):
            return False
        snapshot = self.reward_snapshots[owner]
        return snapshot.coll < self.L_coll or snapshot.debt < self.L_debt

    def get_entire_debt_and_coll(self, owner):
        """
        Returns the recorded amounts of a position plus its pending rewards.

        Args:
            owner: Position id

        Returns:
            LatestPositionData (all zero for a position that is not active)
        """
        position = self.get_position(owner)
        pending_debt = self.get_pending_debt_reward(owner)
        pending_coll = self.get_pending_coll_reward(owner)
        return LatestPositionData(
            entire_debt=position.debt + pending_debt,
            entire_coll=position.coll + pending_coll,
            pending_debt_reward=pending_debt,
            pending_coll_reward=pending_coll,
        )

    def get_nominal_icr(self, owner):
        data = self.get_entire_debt_and_coll(owner)
        return compute_nominal_cr(data.entire_coll, data.entire_debt)

    def get_current_icr(self, owner, price=None):
        """ICR of a position including pending rewards, at price or the feed price."""
        if price is None:
            price = self.price_feed.get_price()
        data = self.get_entire_debt_and_coll(owner)
        return compute_cr(data.entire_coll, data.entire_debt, price)

    def get_entire_system_coll(self):
        return self.active_pool.get_coll_balance() + self.default_pool.get_coll_balance()

    def get_entire_system_debt(self):
        return self.active_pool.get_debt() + self.default_pool.get_debt()

    def get_tcr(self, price=None):
        if price is None:
            price = self.price_feed.get_price()
        return compute_cr(self.get_entire_system_coll(), self.get_entire_system_debt(), price)

    def get_composite_debt(self, debt):
        """Debt plus the gas compensation reserve."""
        return debt + self.config.debt_gas_compensation

    def get_net_debt(self, debt):
        """Debt minus the gas compensation reserve."""
        return debt - self.config.debt_gas_compensation

    def get_coll_gas_compensation(self, entire_coll):
        """Collateral paid to the liquidator, 0.5% of the position's collateral."""
        return entire_coll // self.config.coll_gas_compensation_divisor

    # --- Rewards, stakes and snapshots ---

    def apply_pending_rewards(self, owner):
        """
        Folds the pending redistribution rewards into the position's recorded
        collateral and debt, and moves them from the Default Pool to the Active
        Pool. Calling it twice in a row is a no-op the second time.
        """
        position = self._require_active(owner)

        if self.has_pending_rewards(owner):
            pending_coll = self.get_pending_coll_reward(owner)
            pending_debt = self.get_pending_debt_reward(owner)

            position.coll += pending_coll
            position.debt += pending_debt

            self._move_pending_rewards_to_active_pool(pending_debt, pending_coll)

        self.update_position_reward_snapshots(owner)

    def _move_pending_rewards_to_active_pool(self, debt, coll):
        if debt > 0:
            self.default_pool.decrease_debt(debt)
            self.active_pool.increase_debt(debt)
        if coll > 0:
            self.default_pool.send_coll_to_active_pool(coll)

    def update_position_reward_snapshots(self, owner):
        self.reward_snapshots[owner] = RewardSnapshot(coll=self.L_coll, debt=self.L_debt)

    def compute_new_stake(self, coll):
        """
        Stake for a collateral amount, corrected by the ratio captured after the
        latest liquidation. Before the first liquidation the stake equals the
        collateral.
        """
        if self.total_collateral_snapshot == 0:
            return coll
        return coll * self.total_stakes_snapshot // self.total_collateral_snapshot

    def update_stake_and_total_stakes(self, owner):
        position = self.positions[owner]
        new_stake = self.compute_new_stake(position.coll)
        old_stake = position.stake
        position.stake = new_stake
        self.total_stakes = self.total_stakes - old_stake + new_stake
        return new_stake

    def remove_stake(self, owner):
        position = self.positions[owner]
        self.total_stakes -= position.stake
        position.stake = 0

    def update_system_snapshots(self):
        """Captures stake and collateral totals after a liquidation."""
        self.total_stakes_snapshot = self.total_stakes
        self.total_collateral_snapshot = self.get_entire_system_coll()

    def redistribute_debt_and_coll(self, debt, coll):
        """
        Shares debt and collateral among all active positions in proportion to
        their stake, by raising L_debt and L_coll. The amounts move from the
        Active Pool to the Default Pool until each position claims its share.

        Remainders of the per-stake divisions are carried over to the next
        redistribution so no wei is lost to rounding.

        Args:
            debt: Debt to redistribute
            coll: Collateral to redistribute
        """
        if debt == 0 and coll == 0:
            return
        if self.total_stakes == 0:
            raise DivisionByZero("No stake left to redistribute to")

        coll_numerator = coll * DECIMAL_PRECISION + self.last_coll_error_redistribution
        debt_numerator = debt * DECIMAL_PRECISION + self.last_debt_error_redistribution

        coll_reward_per_unit_staked, self.last_coll_error_redistribution = divmod(coll_numerator, self.total_stakes)
        debt_reward_per_unit_staked, self.last_debt_error_redistribution = divmod(debt_numerator, self.total_stakes)

        self.L_coll += coll_reward_per_unit_staked
        self.L_debt += debt_reward_per_unit_staked

        if debt > 0:
            self.default_pool.increase_debt(debt)
        if coll > 0:
            self.active_pool.send_coll_to_default_pool(coll)

        logger.info("Redistributed %d debt and %d collateral over %d stake", debt, coll, self.total_stakes)

    # --- Owner array and closing ---

    def _add_position_owner_to_array(self, owner):
        self.position_owners.append(owner)
        index = len(self.position_owners) - 1
        self.positions[owner].array_index = index
        return index

    def _remove_position_owner(self, owner):
        # Swap the last owner into the freed slot, then truncate
        index = self.positions[owner].array_index
        last_owner = self.position_owners[-1]

        self.position_owners[index] = last_owner
        self.positions[last_owner].array_index = index
        self.position_owners.pop()

    def require_more_than_one_position(self):
        if self.get_position_owners_count() <= 1 or self.sorted_positions.get_size() <= 1:
            raise OnlyOnePositionInSystem()

    def close_position_record(self, owner, closed_status):
        """
        Marks a position closed, zeroes it and removes it from the sorted list
        and the owner array. The stake must already have been removed.
        """
        if closed_status in (Status.NON_EXISTENT, Status.ACTIVE):
            raise ValueError(f"Invalid closed status: {closed_status}")
        self.require_more_than_one_position()

        position = self.positions[owner]
        position.status = closed_status
        position.coll = 0
        position.debt = 0

        self.update_position_reward_snapshots(owner)
        self._remove_position_owner(owner)
        self.sorted_positions.remove(owner)

    # --- Borrower operations ---

    def open_position(self, owner, coll, debt_amount, max_fee_percentage=ONE_HUNDRED_PCT,
                      upper_hint=None, lower_hint=None):
        """
        Opens a position: locks coll and mints debt_amount to the owner.

        The recorded debt is debt_amount plus the borrowing fee plus the gas
        compensation reserve. The fee is minted to the fee recipient and the
        reserve to the gas pool.

        Args:
            owner: Address opening the position, also its id
            coll: Collateral to lock
            debt_amount: Debt tokens the owner receives
            max_fee_percentage: Highest borrowing fee rate the owner accepts
            upper_hint: Hint for the sorted list neighbour with the higher NICR
            lower_hint: Hint for the sorted list neighbour with the lower NICR

        Returns:
            The new Position

        Raises:
            ZeroId, PositionAlreadyActive, MaxFeeOutOfRange, MaxFeeExceeded,
            NetDebtBelowMinimum, ICRBelowMCR, InsufficientCollateralBalance,
            ListFull
        """
        if not owner:
            raise ZeroId()
        if self.is_active(owner):
            raise PositionAlreadyActive()

        self.fee_engine.check_borrowing_max_fee(max_fee_percentage, True)
        price = self.price_feed.get_price()

        fee = self.fee_engine.get_borrowing_fee_with_decay(debt_amount)
        self.fee_engine.require_user_accepts_fee(fee, debt_amount, max_fee_percentage)

        net_debt = debt_amount + fee
        if net_debt < self.config.min_net_debt:
            raise NetDebtBelowMinimum()

        composite_debt = self.get_composite_debt(net_debt)
        if compute_cr(coll, composite_debt, price) < self.config.mcr:
            raise ICRBelowMCR()
        if self.collateral_token.balance_of(owner) < coll:
            raise InsufficientCollateralBalance()
        if self.sorted_positions.is_full():
            raise ListFull()

        # Checks passed, apply the operation
        self.fee_engine.update_base_rate_from_borrowing(
            debt_amount, self.get_entire_system_debt() + composite_debt
        )

        position = Position(owner=owner, debt=composite_debt, coll=coll, status=Status.ACTIVE)
        self.positions[owner] = position
        self.update_stake_and_total_stakes(owner)
        self.update_position_reward_snapshots(owner)

        self.sorted_positions.insert(owner, compute_nominal_cr(coll, composite_debt), upper_hint, lower_hint)
        self._add_position_owner_to_array(owner)

        self.collateral_token.transfer_in(owner, coll)
        self.active_pool.receive_coll(coll)
        self.active_pool.increase_debt(composite_debt)

        self._mint(owner, debt_amount)
        self._mint(self.config.fee_recipient, fee)
        self._mint(self.config.gas_pool, self.config.debt_gas_compensation)

        logger.debug("Opened position %s with %d collateral and %d debt (fee %d)",
                     owner, coll, composite_debt, fee)
        return position

    def adjust_position(self, owner, coll_change=0, is_coll_increase=False, debt_change=0,
                        is_debt_increase=False, max_fee_percentage=ONE_HUNDRED_PCT,
                        upper_hint=None, lower_hint=None):
        """
        Changes the collateral and/or the debt of an active position.

        Pending rewards are applied first. A debt increase pays the borrowing fee,
        which is added to the recorded debt. A repayment burns tokens from the
        owner and cannot touch the gas compensation reserve.

        Args:
            owner: Position id
            coll_change: Collateral to add or withdraw
            is_coll_increase: True to add collateral, False to withdraw it
            debt_change: Debt to draw or repay
            is_debt_increase: True to draw debt, False to repay it
            max_fee_percentage: Highest borrowing fee rate the owner accepts
            upper_hint: Sorted list hint with the higher NICR
            lower_hint: Sorted list hint with the lower NICR

        Returns:
            The updated Position

        Raises:
            PositionNotActive, ZeroAdjustment, ZeroDebtChange, MaxFeeOutOfRange,
            MaxFeeExceeded, WithdrawalExceedsCollateral, RepaymentExceedsDebt,
            NetDebtBelowMinimum, ICRBelowMCR, InsufficientBalance,
            InsufficientCollateralBalance
        """
        position = self._require_active(owner)

        if coll_change == 0 and debt_change == 0:
            if is_debt_increase:
                raise ZeroDebtChange()
            raise ZeroAdjustment()
        if is_debt_increase and debt_change == 0:
            raise ZeroDebtChange()
        if coll_change < 0 or debt_change < 0:
            raise ValueError("Changes must be non-negative; use the increase flags for direction")

        self.fee_engine.check_borrowing_max_fee(max_fee_percentage, is_debt_increase)
        price = self.price_feed.get_price()

        data = self.get_entire_debt_and_coll(owner)

        if not is_coll_increase and coll_change > data.entire_coll:
            raise WithdrawalExceedsCollateral()
        if not is_debt_increase and debt_change > self.get_net_debt(data.entire_debt):
            raise RepaymentExceedsDebt()

        fee = 0
        net_debt_change = debt_change
        if is_debt_increase:
            fee = self.fee_engine.get_borrowing_fee_with_decay(debt_change)
            self.fee_engine.require_user_accepts_fee(fee, debt_change, max_fee_percentage)
            net_debt_change += fee

        new_coll = data.entire_coll + coll_change if is_coll_increase else data.entire_coll - coll_change
        new_debt = data.entire_debt + net_debt_change if is_debt_increase else data.entire_debt - net_debt_change

        if compute_cr(new_coll, new_debt, price) < self.config.mcr:
            raise ICRBelowMCR()
        if not is_debt_increase and debt_change > 0:
            if self.get_net_debt(new_debt) < self.config.min_net_debt:
                raise NetDebtBelowMinimum()
            if self.debt_token.balance_of(owner) < debt_change:
                raise InsufficientBalance()
        if is_coll_increase and coll_change > 0 and self.collateral_token.balance_of(owner) < coll_change:
            raise InsufficientCollateralBalance()

        # Checks passed, apply the operation
        if is_debt_increase:
            self.fee_engine.update_base_rate_from_borrowing(
                debt_change, self.get_entire_system_debt() + net_debt_change
            )

        self.apply_pending_rewards(owner)
        position.coll = new_coll
        position.debt = new_debt
        self.update_stake_and_total_stakes(owner)

        self.sorted_positions.re_insert(owner, compute_nominal_cr(new_coll, new_debt), upper_hint, lower_hint)

        if coll_change > 0:
            if is_coll_increase:
                self.collateral_token.transfer_in(owner, coll_change)
                self.active_pool.receive_coll(coll_change)
            else:
                self.active_pool.send_coll(owner, coll_change)

        if debt_change > 0:
            if is_debt_increase:
                self.active_pool.increase_debt(net_debt_change)
                self._mint(owner, debt_change)
                self._mint(self.config.fee_recipient, fee)
            else:
                self.active_pool.decrease_debt(debt_change)
                self.debt_token.burn(owner, debt_change)

        logger.debug("Adjusted position %s to %d collateral and %d debt", owner, new_coll, new_debt)
        return position

    def add_coll(self, owner, amount, upper_hint=None, lower_hint=None):
        return self.adjust_position(owner, amount, True, 0, False, ONE_HUNDRED_PCT, upper_hint, lower_hint)

    def withdraw_coll(self, owner, amount, upper_hint=None, lower_hint=None):
        return self.adjust_position(owner, amount, False, 0, False, ONE_HUNDRED_PCT, upper_hint, lower_hint)

    def withdraw_debt(self, owner, amount, max_fee_percentage=ONE_HUNDRED_PCT, upper_hint=None, lower_hint=None):
        return self.adjust_position(owner, 0, False, amount, True, max_fee_percentage, upper_hint, lower_hint)

    def repay_debt(self, owner, amount, upper_hint=None, lower_hint=None):
        return self.adjust_position(owner, 0, False, amount, False, ONE_HUNDRED_PCT, upper_hint, lower_hint)

    def close_position(self, owner):
        """
        Closes a position: the owner repays the net debt and gets the collateral
        back, and the gas compensation reserve is burned from the gas pool.

        Raises:
            PositionNotActive, OnlyOnePositionInSystem, InsufficientBalance
        """
        position = self._require_active(owner)
        self.require_more_than_one_position()

        data = self.get_entire_debt_and_coll(owner)
        net_debt = self.get_net_debt(data.entire_debt)
        if self.debt_token.balance_of(owner) < net_debt:
            raise InsufficientBalance()

        # Checks passed, apply the operation
        self.apply_pending_rewards(owner)
        entire_debt = position.debt
        entire_coll = position.coll

        self.remove_stake(owner)
        self.close_position_record(owner, Status.CLOSED_BY_OWNER)

        self.active_pool.decrease_debt(entire_debt)
        self._burn(owner, net_debt)
        self._burn(self.config.gas_pool, entire_debt - net_debt)
        if entire_coll > 0:
            self.active_pool.send_coll(owner, entire_coll)

        logger.debug("Closed position %s, returned %d collateral", owner, entire_coll)
        return entire_coll

    def claim_collateral(self, owner):
        """
        Pays out the surplus collateral left after the owner's position was
        fully redeemed.

        Raises:
            NoCollateralToClaim: If the owner has nothing to claim
        """
        if self.coll_surplus_pool.get_collateral(owner) == 0:
            raise NoCollateralToClaim()
        return self.coll_surplus_pool.claim_coll(owner)

    def _mint(self, account, amount):
        if amount > 0:
            self.debt_token.mint(account, amount)

    def _burn(self, account, amount):
        if amount > 0:
            self.debt_token.burn(account, amount)

    # --- Liquidation and redemption ---

    def liquidate(self, owner, liquidator="liquidator"):
        return self.liquidation_engine.liquidate(owner, liquidator)

    def liquidate_sequence(self, max_count, liquidator="liquidator"):
        return self.liquidation_engine.liquidate_sequence(max_count, liquidator)

    def batch_liquidate(self, owners, liquidator="liquidator"):
        return self.liquidation_engine.batch_liquidate(owners, liquidator)

    def redeem_collateral(self, redeemer, amount, max_fee_percentage=ONE_HUNDRED_PCT, **hints):
        return self.redemption_engine.redeem_collateral(redeemer, amount, max_fee_percentage, **hints)
