"""
Collateral Token Model for the CDP ledger.

A plain token ledger plus the custodian view used by the position ledger:
transfer_in() pulls collateral from a user into custody and transfer_out() pays
it back out.
"""


class CollateralToken:
    """
    Simulates the collateral token held in custody by the ledger.

    Args:
        custodian: Address that holds the collateral of every position
    """

    def __init__(self, custodian="position_ledger"):
        self.custodian = custodian
        self.total_supply = 0
        self.balances = {}

    def balance_of(self, account):
        """Returns the collateral balance of the given account."""
        return self.balances.get(account, 0)

    def mint(self, recipient, amount):
        """Faucet used to fund accounts in tests and simulations."""
        if amount <= 0:
            raise ValueError("Amount must be greater than zero")

        self.balances[recipient] = self.balances.get(recipient, 0) + amount
        self.total_supply += amount

    def transfer(self, sender, recipient, amount):
        if amount <= 0:
            raise ValueError("Amount must be greater than zero")

        sender_balance = self.balances.get(sender, 0)
        if sender_balance < amount:
            raise ValueError("Insufficient collateral balance")

        self.balances[sender] = sender_balance - amount
        self.balances[recipient] = self.balances.get(recipient, 0) + amount

    def transfer_in(self, sender, amount):
        """Moves collateral from sender into custody."""
        self.transfer(sender, self.custodian, amount)

    def transfer_out(self, recipient, amount):
        """Pays collateral out of custody to recipient."""
        self.transfer(self.custodian, recipient, amount)
