"""
Debt Token Model for the CDP ledger.

This module simulates the token minted against locked collateral. It handles
minting, burning and transfers; the ledger is its only minter.
"""


class DebtToken:
    """
    Simulates the debt token contract.
    """

    def __init__(self, initial_supply=0):
        # Total token supply
        self.total_supply = initial_supply

        # Mapping of addresses to token balances
        self.balances = {}

    def balance_of(self, account):
        """Returns the token balance of the given account."""
        return self.balances.get(account, 0)

    def get_total_supply(self):
        return self.total_supply

    def transfer(self, sender, recipient, amount):
        """
        Transfers tokens from sender to recipient.

        Args:
            sender: Address sending the tokens
            recipient: Address receiving the tokens
            amount: Amount of tokens to transfer

        Returns:
            True if successful
        """
        if amount <= 0:
            raise ValueError("Amount must be greater than zero")

        sender_balance = self.balances.get(sender, 0)

        if sender_balance < amount:
            raise ValueError("Insufficient balance")

        self.balances[sender] = sender_balance - amount
        self.balances[recipient] = self.balances.get(recipient, 0) + amount

        return True

    def mint(self, recipient, amount):
        """
        Mints new tokens to the recipient account.

        Args:
            recipient: Address receiving the minted tokens
            amount: Amount of tokens to mint

        Returns:
            True if successful
        """
        if amount <= 0:
            raise ValueError("Amount must be greater than zero")

        self.balances[recipient] = self.balances.get(recipient, 0) + amount
        self.total_supply += amount

        return True

    def burn(self, from_account, amount):
        """
        Burns tokens from the given account.

        Args:
            from_account: Address to burn tokens from
            amount: Amount of tokens to burn

        Returns:
            True if successful
        """
        if amount <= 0:
            raise ValueError("Amount must be greater than zero")

        from_balance = self.balances.get(from_account, 0)

        if from_balance < amount:
            raise ValueError("Insufficient balance")

        self.balances[from_account] = from_balance - amount
        self.total_supply -= amount

        return True
