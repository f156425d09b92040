"""
Position records shared by the ledger and its engines.
"""

from dataclasses import dataclass
from enum import Enum


class Status(Enum):
    """
    Lifecycle of a position. Closed states are terminal: re-opening creates a
    fresh record.
    """
    NON_EXISTENT = 0
    ACTIVE = 1
    CLOSED_BY_OWNER = 2
    CLOSED_BY_LIQUIDATION = 3
    CLOSED_BY_REDEMPTION = 4


@dataclass
class Position:
    owner: str                # Position id, one position per owner
    debt: int = 0             # Recorded debt, including the gas compensation reserve
    coll: int = 0             # Recorded collateral
    stake: int = 0            # Share of future redistributions
    status: Status = Status.NON_EXISTENT
    array_index: int = 0      # Slot in the owner enumeration array


@dataclass
class RewardSnapshot:
    coll: int = 0  # L_coll at the last sync
    debt: int = 0  # L_debt at the last sync


@dataclass
class LatestPositionData:
    """Recorded amounts plus pending redistribution rewards."""
    entire_debt: int = 0
    entire_coll: int = 0
    pending_debt_reward: int = 0
    pending_coll_reward: int = 0
