"""
Simulation Example for the CDP ledger economic model.

This script walks through the main mechanisms one scenario at a time:
liquidation with redistribution, redemption against the riskiest positions,
and the decay of the base rate between fee operations.
"""

import logging
import sys
import os

import numpy as np

# Add the core directory to the path
sys.path.append(os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "core"))
from cdp_model import SECONDS_IN_ONE_DAY, SECONDS_IN_ONE_HOUR, CdpModel, from_fixed
from errors import LedgerError


def print_state(model):
    state = model.get_system_state()
    print(f"  Price: ${state['price']:.2f}")
    print(f"  Active positions: {state['active_positions']}")
    print(f"  Total collateral: {state['total_coll']:.4f} ETH "
          f"(pending redistribution: {state['default_coll']:.4f} ETH)")
    print(f"  Total debt: {state['total_debt']:.2f} "
          f"(pending redistribution: {state['default_debt']:.2f})")
    print(f"  TCR: {state['tcr'] * 100:.2f}%")
    print(f"  Base rate: {state['base_rate'] * 100:.4f}%")


def print_positions(model):
    ledger = model.ledger
    price = model.price_feed.get_price()
    for owner in ledger.sorted_positions:
        data = ledger.get_entire_debt_and_coll(owner)
        print(f"  {owner}: {from_fixed(data.entire_coll):.4f} ETH, {from_fixed(data.entire_debt):.2f} debt, "
              f"ICR {from_fixed(ledger.get_current_icr(owner, price)) * 100:.1f}%")


def open_initial_positions(model, count=6):
    """Opens positions with ratios spread between ~150% and ~300%."""
    for i in range(count):
        owner = f"user{i}"
        collateral = np.random.uniform(2.0, 10.0)
        target_cr = 3.0 - i * 1.5 / count
        debt = collateral * from_fixed(model.price_feed.get_price()) / target_cr

        try:
            model.open_position(owner, collateral, debt)
            print(f"Opened {owner}: {collateral:.2f} ETH, {debt:.2f} debt")
        except LedgerError as e:
            print(f"  Failed to open position for {owner}: {e}")
        model.update_time(SECONDS_IN_ONE_DAY)


def run_liquidation_simulation():
    """A price crash liquidates the riskiest positions and redistributes them."""
    print("=== Running Liquidation Simulation ===")
    model = CdpModel(initial_price=2000.0)
    open_initial_positions(model)

    print("\n--- Positions before the crash ---")
    print_positions(model)

    target_price = 1100.0
    print(f"\n--- Dropping price from $2000.00 to ${target_price:.2f} ---")
    liquidated = model.update_price(target_price)
    print(f"Liquidated: {', '.join(liquidated) if liquidated else 'none'}")

    print("\n--- Positions after the crash (pending rewards included) ---")
    print_positions(model)
    print("\n--- System state ---")
    print_state(model)


def run_redemption_simulation():
    """Redemptions cancel the debt of the riskiest positions first."""
    print("\n=== Running Redemption Simulation ===")
    model = CdpModel(initial_price=2000.0)
    open_initial_positions(model)

    redeemer = "user0"
    amount = from_fixed(model.debt_token.balance_of(redeemer)) / 2
    print(f"\n--- {redeemer} redeems {amount:.2f} debt tokens ---")
    received = model.redeem_collateral(redeemer, amount)
    print(f"Received {received:.4f} ETH")

    print("\n--- Positions after the redemption ---")
    print_positions(model)
    for i in range(6):
        owner = f"user{i}"
        surplus = model.ledger.coll_surplus_pool.get_collateral(owner)
        if surplus > 0:
            print(f"  {owner} can claim {from_fixed(surplus):.4f} ETH of surplus collateral")
    print_state(model)


def run_fee_decay_simulation():
    """The base rate halves every 12 hours without fee operations."""
    print("\n=== Running Fee Decay Simulation ===")
    model = CdpModel(initial_price=2000.0)
    model.open_position("user0", 10.0, 5000.0)
    model.open_position("user1", 10.0, 5000.0)

    engine = model.ledger.fee_engine
    for hours in (0, 1, 6, 12, 24, 48, 168):
        model.current_time = engine.last_fee_operation_time + hours * SECONDS_IN_ONE_HOUR
        print(f"  After {hours:>3} hours: base rate {from_fixed(engine.calc_decayed_base_rate()) * 100:.4f}%, "
              f"borrowing rate {from_fixed(engine.get_borrowing_rate_with_decay()) * 100:.4f}%")


if __name__ == "__main__":
    logging.basicConfig(level=logging.WARNING, format="%(name)s %(levelname)s: %(message)s")
    np.random.seed(7)

    run_liquidation_simulation()
    run_redemption_simulation()
    run_fee_decay_simulation()
