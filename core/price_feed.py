"""
Price Feed Model for the CDP ledger.

Stands in for the oracle: it only holds the latest trusted collateral price,
in 1e18 precision (debt tokens per unit of collateral).
"""

import logging

logger = logging.getLogger(__name__)


class PriceFeed:
    """
    Latest trusted price of the collateral.
    """

    def __init__(self, initial_price):
        if initial_price < 0:
            raise ValueError(f"Invalid price: {initial_price}")
        self.price = initial_price
        self.last_good_price = initial_price

    def get_price(self):
        """Returns the latest trusted price."""
        return self.price

    def fetch_price(self):
        """Returns the price and records it as the last good price."""
        self.last_good_price = self.price
        return self.price

    def set_price(self, new_price):
        """Sets a new price (for simulation purposes)."""
        if new_price < 0:
            raise ValueError(f"Invalid price: {new_price}")
        logger.debug("Price updated from %d to %d", self.price, new_price)
        self.price = new_price
