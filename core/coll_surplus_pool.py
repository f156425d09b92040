"""
Collateral Surplus Pool Model for the CDP ledger.

This module simulates the pool that holds collateral left over when a position is
fully redeemed: the part of its collateral worth more than the redeemed debt.
Owners claim it at any time through the ledger.
"""


class CollSurplusPool:
    """
    Manages surplus collateral claimable by position owners.
    """

    def __init__(self, collateral_token=None):
        # Total collateral stored in this pool
        self.coll_balance = 0

        # Mapping of owner to claimable collateral
        self.balances = {}

        self.collateral_token = collateral_token

    def get_coll_balance(self):
        """
        Returns the total collateral in the pool.
        """
        return self.coll_balance

    def get_collateral(self, account):
        """
        Returns the claimable collateral balance for a specific account.
        """
        return self.balances.get(account, 0)

    def account_surplus(self, account, amount):
        """
        Records a surplus collateral amount for an account.
        Called by the Active Pool when a redeemed position is closed.
        """
        if amount <= 0:
            raise ValueError(f"Invalid collateral amount: {amount}")

        self.balances[account] = self.balances.get(account, 0) + amount
        self.coll_balance += amount

    def claim_coll(self, account):
        """
        Pays out the account's surplus collateral and returns the amount.
        """
        claimable_coll = self.balances.get(account, 0)

        if claimable_coll <= 0:
            raise ValueError("No collateral available to claim")

        self.balances[account] = 0
        self.coll_balance -= claimable_coll

        if self.collateral_token is not None:
            self.collateral_token.transfer_out(account, claimable_coll)

        return claimable_coll
