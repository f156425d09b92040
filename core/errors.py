"""
Errors raised by the CDP ledger.

Every ledger error is a ValueError, so callers that only care about a failed
operation can keep catching ValueError. Each subclass carries a default message
matching the protocol's revert reason.
"""


class LedgerError(ValueError):
    """Base error class for ledger operations"""
    message = "Ledger operation failed"

    def __init__(self, message=None):
        super().__init__(message or self.message)


class DivisionByZero(LedgerError, ZeroDivisionError):
    message = "Division by zero"


# --- Sorted list preconditions ---

class ListFull(LedgerError):
    message = "List is full"


class DuplicateId(LedgerError):
    message = "List already contains the node"


class ZeroId(LedgerError):
    message = "Id cannot be zero"


class ZeroMetric(LedgerError):
    message = "NICR must be positive"


class NotFound(LedgerError):
    message = "List does not contain the id"


class InvalidSize(LedgerError):
    message = "Size cannot be zero"


# --- Position preconditions ---

class PositionNotActive(LedgerError):
    message = "Position does not exist or is closed"


class PositionAlreadyActive(LedgerError):
    message = "Position is active"


class ZeroAdjustment(LedgerError):
    message = "There must be either a collateral change or a debt change"


class EmptyPositionArray(LedgerError):
    message = "Calldata address array must not be empty"


# --- Economic invariants ---

class ICRBelowMCR(LedgerError):
    message = "An operation that would result in ICR < MCR is not permitted"


class NetDebtBelowMinimum(LedgerError):
    message = "Position's net debt must be greater than minimum"


class InsufficientBalance(LedgerError):
    message = "Insufficient debt token balance"


class InsufficientCollateralBalance(LedgerError):
    message = "Insufficient collateral balance"


class ZeroDebtChange(LedgerError):
    message = "Debt increase requires non-zero debtChange"


class WithdrawalExceedsCollateral(LedgerError):
    message = "Collateral withdrawal exceeds position collateral"


class RepaymentExceedsDebt(LedgerError):
    message = "Amount repaid must not be larger than the position's debt"


class OnlyOnePositionInSystem(LedgerError):
    message = "Only one position in the system"


class NoCollateralToClaim(LedgerError):
    message = "No collateral available to claim"


# --- Fee bounds ---

class MaxFeeOutOfRange(LedgerError):
    message = "Max fee percentage must be between borrowing spread and 100%"


class MaxFeeExceeded(LedgerError):
    message = "Fee exceeded provided maximum"


class FeeExceededMaximum(LedgerError):
    message = "Fee exceeded provided maximum"


class FeeEatsAllCollateral(LedgerError):
    message = "Fee would eat up all returned collateral"


# --- Nothing to do ---

class NothingToLiquidate(LedgerError):
    message = "Nothing to liquidate"


class AmountMustBePositive(LedgerError):
    message = "Amount must be greater than zero"


class UnableToRedeem(LedgerError):
    message = "Unable to redeem any amount"
