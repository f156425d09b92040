"""
Economic Model for the CDP ledger.

This module wires every component together into a complete model of the
system: tokens, price feed, position ledger and its engines, plus a simulation
clock. It exposes a float-based convenience API (collateral in ETH, debt in
tokens) on top of the ledger's 1e18 fixed-point integers, and can simulate a
random market to study liquidations and the base rate over time.
"""

import logging

import matplotlib.pyplot as plt
import numpy as np

from collateral_token import CollateralToken
from debt_token import DebtToken
from fixed_point_math import DECIMAL_PRECISION, MAX_VALUE, compute_nominal_cr
from ledger_config import DEFAULT_CONFIG
from position_ledger import PositionLedger
from position_types import Status
from price_feed import PriceFeed

logger = logging.getLogger(__name__)

SECONDS_IN_ONE_HOUR = 60 * 60
SECONDS_IN_ONE_DAY = 24 * SECONDS_IN_ONE_HOUR


def to_fixed(value):
    """Converts a float to 1e18 fixed point, keeping 6 decimals."""
    return int(round(value * 10**6)) * (DECIMAL_PRECISION // 10**6)


def from_fixed(value):
    return value / DECIMAL_PRECISION


class CdpModel:
    """
    Complete economic model of the CDP ledger.
    Combines all components and provides simulation capabilities.

    Args:
        initial_price: Collateral price in debt tokens
        config: LedgerConfig for the ledger
        start_time: Initial value of the simulation clock, in seconds
    """

    def __init__(self, initial_price=2000.0, config=DEFAULT_CONFIG, start_time=0):
        self.current_time = start_time

        self.price_feed = PriceFeed(to_fixed(initial_price))
        self.debt_token = DebtToken()
        self.collateral_token = CollateralToken()

        self.ledger = PositionLedger(
            self.price_feed,
            self.debt_token,
            self.collateral_token,
            config=config,
            time_source=lambda: self.current_time,
        )
        self.config = config

        # Simulation history
        self.price_history = []
        self.total_coll_history = []
        self.total_debt_history = []
        self.active_positions_history = []
        self.tcr_history = []
        self.base_rate_history = []
        self.liquidation_count = 0

    # --- Operations ---

    def open_position(self, owner, collateral, debt, max_fee=1.0):
        """
        Funds owner with collateral and opens a position drawing debt tokens.

        Args:
            owner: Address of the position owner
            collateral: Collateral to lock, in ETH
            debt: Debt tokens to draw (before fee and gas reserve)
            max_fee: Highest borrowing fee rate accepted, as a fraction

        Returns:
            The owner, which is also the position id
        """
        coll = to_fixed(collateral)
        missing = coll - self.collateral_token.balance_of(owner)
        if missing > 0:
            self.collateral_token.mint(owner, missing)

        debt_amount = to_fixed(debt)
        fee = self.ledger.fee_engine.get_borrowing_fee_with_decay(debt_amount)
        nicr = compute_nominal_cr(coll, self.ledger.get_composite_debt(debt_amount + fee))
        upper_hint, lower_hint = self.ledger.sorted_positions.find_insert_position(nicr)
        self.ledger.open_position(owner, coll, debt_amount, to_fixed(max_fee), upper_hint, lower_hint)
        return owner

    def close_position(self, owner):
        return from_fixed(self.ledger.close_position(owner))

    def redeem_collateral(self, redeemer, amount, max_fee=1.0, max_iterations=0):
        """
        Redeems debt tokens for collateral.

        Returns:
            Collateral sent to the redeemer, in ETH
        """
        totals = self.ledger.redeem_collateral(
            redeemer, to_fixed(amount), to_fixed(max_fee), max_iterations=max_iterations
        )
        self._update_history()
        return from_fixed(totals.coll_to_send_to_redeemer)

    def update_price(self, new_price):
        """
        Updates the collateral price and liquidates every position below the MCR.

        Args:
            new_price: New collateral price in debt tokens

        Returns:
            List of liquidated position ids
        """
        self.price_feed.set_price(to_fixed(new_price))

        liquidated = []
        tail = self.ledger.sorted_positions.get_last()
        price = self.price_feed.get_price()
        if (self.ledger.get_position_owners_count() > 1
                and self.ledger.liquidation_engine.is_liquidatable(tail, price)):
            totals = self.ledger.liquidate_sequence(self.ledger.get_position_owners_count())
            liquidated = totals.liquidated
            self.liquidation_count += len(liquidated)

        self._update_history()
        return liquidated

    def update_time(self, seconds):
        """Advances the simulation clock."""
        self.current_time += seconds

    # --- Reporting ---

    def get_system_state(self):
        """
        Returns the current state of the system.

        Returns:
            Dictionary with system state, amounts converted to floats
        """
        ledger = self.ledger
        tcr = ledger.get_tcr()
        active_positions = sum(1 for p in ledger.positions.values() if p.status == Status.ACTIVE)

        return {
            'price': from_fixed(self.price_feed.get_price()),
            'active_coll': from_fixed(ledger.active_pool.get_coll_balance()),
            'active_debt': from_fixed(ledger.active_pool.get_debt()),
            'default_coll': from_fixed(ledger.default_pool.get_coll_balance()),
            'default_debt': from_fixed(ledger.default_pool.get_debt()),
            'surplus_coll': from_fixed(ledger.coll_surplus_pool.get_coll_balance()),
            'total_coll': from_fixed(ledger.get_entire_system_coll()),
            'total_debt': from_fixed(ledger.get_entire_system_debt()),
            'tcr': float('inf') if tcr == MAX_VALUE else from_fixed(tcr),
            'base_rate': from_fixed(ledger.fee_engine.calc_decayed_base_rate()),
            'active_positions': active_positions,
        }

    def _update_history(self):
        state = self.get_system_state()

        self.price_history.append(state['price'])
        self.total_coll_history.append(state['total_coll'])
        self.total_debt_history.append(state['total_debt'])
        self.active_positions_history.append(state['active_positions'])
        self.tcr_history.append(state['tcr'])
        self.base_rate_history.append(state['base_rate'])

    # --- Simulation ---

    def simulate_market_scenario(self, days, price_volatility=0.02, plot_results=True):
        """
        Runs a simulation with random price movements over the specified period.

        The price follows a log-normal walk with hourly steps. After every step,
        positions below the MCR are liquidated and the clock advances one hour,
        so the base rate decays between fee operations.

        Args:
            days: Number of days to simulate
            price_volatility: Daily price volatility (standard deviation of log returns)
            plot_results: Whether to plot the results

        Returns:
            Dictionary with simulation results
        """
        steps = days * 24
        initial_positions = self.get_system_state()['active_positions']
        initial_liquidations = self.liquidation_count

        self.price_history = []
        self.total_coll_history = []
        self.total_debt_history = []
        self.active_positions_history = []
        self.tcr_history = []
        self.base_rate_history = []

        price = from_fixed(self.price_feed.get_price())
        hourly_volatility = price_volatility / np.sqrt(24)
        log_returns = np.random.normal(0, hourly_volatility, steps)
        time_points = np.zeros(steps)

        for i in range(steps):
            price *= np.exp(log_returns[i])
            self.update_time(SECONDS_IN_ONE_HOUR)
            self.update_price(float(price))
            time_points[i] = self.current_time / SECONDS_IN_ONE_DAY

        if plot_results:
            self.plot_history(time_points)

        final_state = self.get_system_state()
        logger.info("Simulated %d days: %d liquidations, final TCR %.3f",
                    days, self.liquidation_count - initial_liquidations, final_state['tcr'])

        return {
            'final_price': final_state['price'],
            'final_system_debt': final_state['total_debt'],
            'final_collateral': final_state['total_coll'],
            'initial_positions': initial_positions,
            'active_positions': final_state['active_positions'],
            'liquidations': self.liquidation_count - initial_liquidations,
            'final_tcr': final_state['tcr'],
            'final_base_rate': final_state['base_rate'],
        }

    def plot_history(self, time_points):
        fig, axs = plt.subplots(6, 1, figsize=(12, 22), sharex=True)

        axs[0].plot(time_points, self.price_history)
        axs[0].set_title('Collateral Price')
        axs[0].set_ylabel('Debt tokens')

        axs[1].plot(time_points, self.total_debt_history)
        axs[1].set_title('Total System Debt')
        axs[1].set_ylabel('Debt tokens')

        axs[2].plot(time_points, self.total_coll_history)
        axs[2].set_title('Total Collateral')
        axs[2].set_ylabel('ETH')

        axs[3].plot(time_points, self.active_positions_history)
        axs[3].set_title('Active Positions')
        axs[3].set_ylabel('Count')

        axs[4].plot(time_points, self.tcr_history)
        axs[4].axhline(from_fixed(self.config.mcr), color='red', linestyle='--', label='MCR')
        axs[4].set_title('Total Collateralization Ratio')
        axs[4].set_ylabel('Ratio')
        axs[4].legend()

        axs[5].plot(time_points, np.array(self.base_rate_history) * 100)
        axs[5].set_title('Base Rate')
        axs[5].set_ylabel('%')
        axs[5].set_xlabel('Days')

        plt.tight_layout()
        plt.show()
        return fig
