"""
model/difference.py – Difference between two structure snapshots.

The difference lists sites that have to be removed from the old structure
(``pop0``, old indices) and sites that have to be added from the new one
(``add1``, new indices) to turn a pair sum of the old structure into the
pair sum of the new one.
"""

from __future__ import annotations

from collections import defaultdict, deque
from enum import Enum
from typing import List


class DiffMethod(Enum):
    """How the two snapshots were compared."""
    GENERAL = "general"            # no relation, everything changed
    SIDE_BY_SIDE = "sidebyside"    # same length, compared index by index
    SORTED = "sorted"              # compared as multisets of sites


class StructureDifference:
    """Sites removed from ``stru0`` and added in ``stru1``."""

    def __init__(self, stru0=None, stru1=None):
        self.stru0 = stru0
        self.stru1 = stru1
        self.pop0: List[int] = []
        self.add1: List[int] = []
        self.diffmethod = DiffMethod.GENERAL

    @classmethod
    def compare(cls, stru0, stru1) -> "StructureDifference":
        """
        Compute the difference between two structure adapters.

        Args:
            stru0: old structure adapter or None
            stru1: new structure adapter or None

        Returns:
            StructureDifference with sorted ``pop0`` and ``add1``
        """
        sd = cls(stru0, stru1)
        if stru0 is None or stru1 is None:
            sd._mark_all_changed()
            return sd
        # equal tickers mean one is an unmodified clone of the other
        if stru0 is stru1 or (type(stru0) is type(stru1) and stru0.ticker == stru1.ticker):
            sd.diffmethod = DiffMethod.SIDE_BY_SIDE
            return sd
        if type(stru0) is not type(stru1) or stru0.lattice_key() != stru1.lattice_key():
            sd._mark_all_changed()
            return sd
        sites0 = stru0.sites
        sites1 = stru1.sites
        if len(sites0) == len(sites1):
            sd.diffmethod = DiffMethod.SIDE_BY_SIDE
            for idx, (s0, s1) in enumerate(zip(sites0, sites1)):
                if s0 != s1:
                    sd.pop0.append(idx)
                    sd.add1.append(idx)
            return sd
        sd.diffmethod = DiffMethod.SORTED
        unmatched = defaultdict(deque)
        for idx, s0 in enumerate(sites0):
            unmatched[s0].append(idx)
        for idx, s1 in enumerate(sites1):
            if unmatched[s1]:
                unmatched[s1].popleft()
            else:
                sd.add1.append(idx)
        sd.pop0 = sorted(idx for indices in unmatched.values() for idx in indices)
        return sd

    def _mark_all_changed(self) -> None:
        self.diffmethod = DiffMethod.GENERAL
        self.pop0 = list(range(self.stru0.count_sites())) if self.stru0 is not None else []
        self.add1 = list(range(self.stru1.count_sites())) if self.stru1 is not None else []

    def allows_fast_update(self) -> bool:
        """True when updating the old pair sum is cheaper than a new one."""
        if self.stru0 is None or self.stru1 is None:
            return False
        if self.diffmethod is DiffMethod.GENERAL:
            return False
        if not self.pop0 and not self.add1:
            return True
        cnt0 = self.stru0.count_sites()
        cnt1 = self.stru1.count_sites()
        fastcost = len(self.pop0) * cnt0 + len(self.add1) * cnt1
        return fastcost < cnt1 * cnt1

    def __repr__(self) -> str:
        return (
            f"StructureDifference(method={self.diffmethod.name}, "
            f"pop0={self.pop0}, add1={self.add1})"
        )
