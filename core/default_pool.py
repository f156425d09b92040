"""
Default Pool Model for the CDP ledger.

This module simulates the pool that holds the collateral and debt of liquidated
positions until they are applied to the active positions they were
redistributed to. A position's pending rewards move from here to the Active
Pool the next time it is touched.
"""


class DefaultPool:
    """
    Holds redistributed collateral and debt that has not been applied yet.
    """

    def __init__(self, active_pool=None):
        self.coll_balance = 0
        self.debt = 0
        self.active_pool = active_pool

    def get_coll_balance(self):
        """Returns the collateral balance in the Default Pool."""
        return self.coll_balance

    def get_debt(self):
        """Returns the debt in the Default Pool."""
        return self.debt

    def receive_coll(self, amount):
        """
        Receives collateral into the Default Pool.
        Called by the Active Pool when position collateral is redistributed.
        """
        if amount <= 0:
            raise ValueError(f"Invalid collateral amount: {amount}")

        self.coll_balance += amount

    def send_coll_to_active_pool(self, amount):
        """
        Sends collateral from the Default Pool to the Active Pool.
        Called when a position's pending collateral reward is applied.
        """
        if amount <= 0 or amount > self.coll_balance:
            raise ValueError(f"Invalid collateral amount: {amount}")

        self.coll_balance -= amount
        self.active_pool.receive_coll(amount)

    def increase_debt(self, amount):
        """
        Increases the debt in the Default Pool.
        Called during liquidations when debt is redistributed.
        """
        if amount <= 0:
            raise ValueError(f"Invalid debt amount: {amount}")

        self.debt += amount

    def decrease_debt(self, amount):
        """
        Decreases the debt in the Default Pool.
        Called when a position's pending debt reward is applied.
        """
        if amount <= 0 or amount > self.debt:
            raise ValueError(f"Invalid debt amount: {amount}")

        self.debt -= amount
