"""
Visualization simulation for the CDP ledger economic model.

Opens a set of positions with varying risk profiles, then runs a random market
and plots price, debt, collateral, positions, TCR and base rate over time.
"""

import argparse
import logging
import sys
import os

import numpy as np

# Add the core directory to the path
sys.path.append(os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "core"))
from cdp_model import SECONDS_IN_ONE_HOUR, CdpModel
from errors import LedgerError


def run_visualization_simulation(days=30, volatility=0.03, seed=None):
    if seed is not None:
        np.random.seed(seed)

    model = CdpModel(initial_price=2000.0)

    print("Creating initial positions...")
    # Target ratios on the requested debt from 200% to 400%
    for i in range(10):
        collateral = np.random.uniform(2.0, 10.0)
        target_cr = 2.0 + (i * 2.0 / 10)
        debt = collateral * 2000 / target_cr
        try:
            model.open_position(f"user{i}", collateral, debt)
            print(f"user{i}: {collateral:.2f} ETH, {debt:.2f} debt, target CR: {target_cr * 100:.0f}%")
        except LedgerError as e:
            print(f"  Failed to open position for user{i}: {e}")
        model.update_time(6 * SECONDS_IN_ONE_HOUR)

    print("\nRunning simulation with visualizations...")
    results = model.simulate_market_scenario(days, price_volatility=volatility, plot_results=True)

    print("\nSimulation Results:")
    for key, value in results.items():
        print(f"  {key}: {value}")
    return results


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run a random market simulation and plot the results")
    parser.add_argument("--days", type=int, default=30)
    parser.add_argument("--volatility", type=float, default=0.03, help="daily price volatility")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--verbose", action="store_true", help="log every liquidation and fee update")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING,
                        format="%(name)s %(levelname)s: %(message)s")
    run_visualization_simulation(args.days, args.volatility, args.seed)
