"""
Active Pool Model for the CDP ledger.

This module simulates the pool that holds the collateral and records the debt of
all active positions. When a position is liquidated, its collateral and debt
leave the Active Pool: the gas compensation goes to the liquidator and the rest
moves to the Default Pool for redistribution.
"""


class ActivePool:
    """
    Tracks collateral and debt recorded on active positions.

    Collateral leaving the ledger is paid out through the collateral token
    custodian, so the pool balances always add up to what the custodian holds.
    """

    def __init__(self, collateral_token=None, default_pool=None):
        # Deposited collateral tracker
        self.coll_balance = 0

        # Sum of the recorded debt of active positions
        self.debt = 0

        self.collateral_token = collateral_token
        self.default_pool = default_pool

    def get_coll_balance(self):
        """Returns the collateral balance in the Active Pool."""
        return self.coll_balance

    def get_debt(self):
        """Returns the recorded debt of active positions."""
        return self.debt

    def increase_debt(self, amount):
        if amount < 0:
            raise ValueError(f"Invalid debt amount: {amount}")
        self.debt += amount

    def decrease_debt(self, amount):
        if amount < 0 or amount > self.debt:
            raise ValueError(f"Invalid debt amount: {amount}")
        self.debt -= amount

    def send_coll(self, account, amount):
        """Sends collateral out of the ledger to an account (borrower, liquidator, ...)."""
        if amount <= 0 or amount > self.coll_balance:
            raise ValueError(f"Invalid collateral amount: {amount}")

        self.coll_balance -= amount
        if self.collateral_token is not None:
            self.collateral_token.transfer_out(account, amount)

    def send_coll_to_default_pool(self, amount):
        """Moves collateral to the Default Pool for redistribution."""
        if amount <= 0 or amount > self.coll_balance:
            raise ValueError(f"Invalid collateral amount: {amount}")

        self.coll_balance -= amount
        self.default_pool.receive_coll(amount)

    def send_coll_to_surplus_pool(self, coll_surplus_pool, account, amount):
        """Moves collateral to the surplus pool, claimable by account."""
        if amount <= 0 or amount > self.coll_balance:
            raise ValueError(f"Invalid collateral amount: {amount}")

        self.coll_balance -= amount
        coll_surplus_pool.account_surplus(account, amount)

    def receive_coll(self, amount):
        """Receives collateral, from a borrower deposit or the Default Pool."""
        if amount <= 0:
            raise ValueError(f"Invalid collateral amount: {amount}")

        self.coll_balance += amount
