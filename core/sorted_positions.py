"""
Sorted Positions Model for the CDP ledger.

A doubly linked list of active positions ordered by descending nominal ICR
(NICR). The head holds the safest position, the tail the riskiest one. Nodes
live in a dict keyed by position id and link to each other by id, with None as
the null id.

Callers pass (prev_id, next_id) hints computed with find_insert_position().
A correct hint makes insertion O(1). A stale hint is walked from, ascending or
descending, until the correct slot is found. Without any usable hint the walk
starts at the head.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from errors import DuplicateId, InvalidSize, ListFull, NotFound, ZeroId, ZeroMetric

logger = logging.getLogger(__name__)


@dataclass
class Node:
    next_id: Optional[str] = None  # Towards the tail (lower NICR)
    prev_id: Optional[str] = None  # Towards the head (higher NICR)
    nicr: int = 0                  # NICR at the time of the last insert


class SortedPositions:
    """
    Bounded, descending-NICR ordered index over active positions.

    Args:
        max_size: Capacity of the list, fixed for its lifetime
        nicr_lookup: Optional callable id -> current NICR. When given, it is used
            for every comparison against nodes already in the list, so that
            pending rewards are taken into account. Otherwise the NICR stored at
            insertion time is used.
    """

    def __init__(self, max_size, nicr_lookup=None):
        if max_size <= 0:
            raise InvalidSize()
        self.max_size = max_size
        self.nicr_lookup = nicr_lookup
        self.nodes = {}  # id -> Node
        self.head = None
        self.tail = None

    # --- Mutations ---

    def insert(self, id, nicr, prev_id=None, next_id=None):
        """
        Inserts a position at the slot matching its NICR.

        Args:
            id: Position id
            nicr: Nominal ICR of the position
            prev_id: Hint for the node that should precede the new one
            next_id: Hint for the node that should follow the new one

        Raises:
            ListFull, DuplicateId, ZeroId, ZeroMetric
        """
        if self.is_full():
            raise ListFull()
        if self.contains(id):
            raise DuplicateId()
        if not id:
            raise ZeroId()
        if nicr <= 0:
            raise ZeroMetric()

        self._insert(id, nicr, prev_id, next_id)

    def _insert(self, id, nicr, prev_id, next_id):
        if not self.valid_insert_position(nicr, prev_id, next_id):
            prev_id, next_id = self.find_insert_position(nicr, prev_id, next_id)

        node = Node(nicr=nicr)

        if prev_id is None and next_id is None:
            self.head = id
            self.tail = id
        elif prev_id is None:
            node.next_id = self.head
            self.nodes[self.head].prev_id = id
            self.head = id
        elif next_id is None:
            node.prev_id = self.tail
            self.nodes[self.tail].next_id = id
            self.tail = id
        else:
            node.next_id = next_id
            node.prev_id = prev_id
            self.nodes[prev_id].next_id = id
            self.nodes[next_id].prev_id = id

        self.nodes[id] = node
        logger.debug("Inserted %s with NICR %d between %s and %s", id, nicr, prev_id, next_id)

    def remove(self, id):
        """
        Removes a position from the list.

        Raises:
            NotFound: If the id is not in the list
        """
        if not self.contains(id):
            raise NotFound()

        node = self.nodes.pop(id)

        if len(self.nodes) == 0:
            self.head = None
            self.tail = None
            return

        if node.prev_id is not None and node.next_id is not None:
            self.nodes[node.prev_id].next_id = node.next_id
            self.nodes[node.next_id].prev_id = node.prev_id
        elif node.prev_id is None:
            # Removing the head
            self.head = node.next_id
            self.nodes[node.next_id].prev_id = None
        else:
            # Removing the tail
            self.tail = node.prev_id
            self.nodes[node.prev_id].next_id = None

    def re_insert(self, id, new_nicr, prev_id=None, next_id=None):
        """
        Moves a position to the slot matching its new NICR.

        Raises:
            NotFound: If the id is not in the list
            ZeroMetric: If new_nicr is not positive
        """
        if not self.contains(id):
            raise NotFound()
        if new_nicr <= 0:
            raise ZeroMetric()

        self.remove(id)
        self._insert(id, new_nicr, prev_id, next_id)

    # --- Queries ---

    def contains(self, id):
        return id in self.nodes

    def is_full(self):
        return len(self.nodes) == self.max_size

    def is_empty(self):
        return len(self.nodes) == 0

    def get_size(self):
        return len(self.nodes)

    def get_max_size(self):
        return self.max_size

    def get_first(self):
        """Returns the head of the list (highest NICR), or None."""
        return self.head

    def get_last(self):
        """Returns the tail of the list (lowest NICR), or None."""
        return self.tail

    def get_next(self, id):
        """Returns the node after id (lower NICR), or None."""
        node = self.nodes.get(id)
        return node.next_id if node else None

    def get_prev(self, id):
        """Returns the node before id (higher NICR), or None."""
        node = self.nodes.get(id)
        return node.prev_id if node else None

    def __iter__(self):
        id = self.head
        while id is not None:
            yield id
            id = self.nodes[id].next_id

    def __len__(self):
        return len(self.nodes)

    def _nicr(self, id):
        if self.nicr_lookup is not None:
            return self.nicr_lookup(id)
        return self.nodes[id].nicr

    # --- Insert position search ---

    def valid_insert_position(self, nicr, prev_id, next_id):
        """Checks whether (prev_id, next_id) brackets nicr exactly."""
        if prev_id is None and next_id is None:
            return self.is_empty()
        if prev_id is None:
            return self.head == next_id and nicr >= self._nicr(next_id)
        if next_id is None:
            return self.tail == prev_id and nicr <= self._nicr(prev_id)
        if not self.contains(prev_id) or self.nodes[prev_id].next_id != next_id:
            return False
        return self._nicr(prev_id) >= nicr >= self._nicr(next_id)

    def _descend_list(self, nicr, start_id):
        # Walk towards the tail from start_id
        if self.head == start_id and nicr >= self._nicr(start_id):
            return None, start_id

        prev_id = start_id
        next_id = self.nodes[prev_id].next_id

        while prev_id is not None and not self.valid_insert_position(nicr, prev_id, next_id):
            prev_id = self.nodes[prev_id].next_id
            next_id = self.nodes[prev_id].next_id if prev_id is not None else None

        return prev_id, next_id

    def _ascend_list(self, nicr, start_id):
        # Walk towards the head from start_id
        if self.tail == start_id and nicr <= self._nicr(start_id):
            return start_id, None

        next_id = start_id
        prev_id = self.nodes[next_id].prev_id

        while next_id is not None and not self.valid_insert_position(nicr, prev_id, next_id):
            next_id = self.nodes[next_id].prev_id
            prev_id = self.nodes[next_id].prev_id if next_id is not None else None

        return prev_id, next_id

    def find_insert_position(self, nicr, prev_id=None, next_id=None):
        """
        Finds the (prev_id, next_id) pair bracketing where nicr belongs.

        Hints that are absent from the list, or on the wrong side of nicr, are
        discarded. The search then descends from prev_id or ascends from next_id,
        falling back to a walk from the head. The list is not modified.

        Returns:
            Tuple (prev_id, next_id); either may be None at the list edges
        """
        if prev_id is not None and (not self.contains(prev_id) or nicr > self._nicr(prev_id)):
            # prev_id no longer exists or now has a smaller NICR than the new one
            prev_id = None

        if next_id is not None and (not self.contains(next_id) or nicr < self._nicr(next_id)):
            # next_id no longer exists or now has a larger NICR than the new one
            next_id = None

        if prev_id is None and next_id is None:
            if self.is_empty():
                return None, None
            return self._descend_list(nicr, self.head)
        if prev_id is None:
            return self._ascend_list(nicr, next_id)
        return self._descend_list(nicr, prev_id)
