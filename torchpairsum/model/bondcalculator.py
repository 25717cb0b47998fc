"""
model/bondcalculator.py – Bond counting and bond listing quantities.
"""

from __future__ import annotations

from typing import List, NamedTuple, Tuple

import numpy as np
import torch

from torchpairsum.model.quantity import ComparableState, PairQuantity


class BondCounter(PairQuantity):
    """Number of ordered site pairs within ``[rmin, rmax]``."""

    def reset_value(self) -> None:
        self.resize_value(1)
        super().reset_value()

    def add_pair_contribution(self, bnds, summationscale: int) -> None:
        self._value[0] += summationscale

    def count(self) -> float:
        return float(self._value[0]) if self._value.numel() else 0.0

    def coordination(self) -> float:
        """Average number of neighbors per site."""
        cntsites = self._structure.count_sites()
        return self.count() / cntsites if cntsites else 0.0


class Bond(NamedTuple):
    distance: float
    site0: int
    site1: int
    type0: str
    type1: str
    direction: Tuple[float, float, float]

    def sort_key(self):
        return (round(self.distance, 10), self.site0, self.site1,
                tuple(round(x, 10) for x in self.direction))


class BondCalculator(PairQuantity, ComparableState):
    """
    List of bonds sorted by length.

    Bonds refer to site indices, therefore fast updates are only done
    for structures compared site by site.
    """

    def __init__(self, **kwargs):
        # evaluator validation in the base constructor stashes the bonds
        self._bonds: List[Bond] = []
        self._stashed_bonds: List[Bond] | None = None
        super().__init__(**kwargs)
        self.set_flags(fixedsiteindex=True)

    # results

    def bonds(self) -> List[Bond]:
        return sorted(self._bonds, key=Bond.sort_key)

    @property
    def value(self) -> torch.Tensor:
        return torch.tensor([b.distance for b in self.bonds()], dtype=self._value.dtype)

    def distances(self) -> torch.Tensor:
        return self.value

    def directions(self) -> np.ndarray:
        return np.array([b.direction for b in self.bonds()], dtype=float).reshape(-1, 3)

    def sites0(self) -> List[int]:
        return [b.site0 for b in self.bonds()]

    def sites1(self) -> List[int]:
        return [b.site1 for b in self.bonds()]

    def types0(self) -> List[str]:
        return [b.type0 for b in self.bonds()]

    def types1(self) -> List[str]:
        return [b.type1 for b in self.bonds()]

    # PairQuantity overloads

    def reset_value(self) -> None:
        self._bonds = []
        self.resize_value(0)

    def add_pair_contribution(self, bnds, summationscale: int) -> None:
        stru = bnds.structure
        i0, i1 = bnds.site0, bnds.site1
        r01 = bnds.r01
        bond = Bond(bnds.distance, i0, i1, stru.site_atom_type(i0),
                    stru.site_atom_type(i1), tuple(float(x) for x in r01))
        found = [bond]
        # half sum visits each pair once, record both directions
        if abs(summationscale) == 2:
            found.append(Bond(bond.distance, i1, i0, bond.type1, bond.type0,
                              tuple(-x for x in bond.direction)))
        for b in found:
            if summationscale > 0:
                self._bonds.append(b)
            else:
                self._remove_bond(b)

    def _remove_bond(self, bond: Bond) -> None:
        for idx, b in enumerate(self._bonds):
            if (b.site0 == bond.site0 and b.site1 == bond.site1
                    and np.allclose(b.direction, bond.direction)):
                del self._bonds[idx]
                return

    def stash_partial_value(self) -> None:
        super().stash_partial_value()
        self._stashed_bonds = list(self._bonds)

    def restore_partial_value(self) -> None:
        super().restore_partial_value()
        self._bonds = self._stashed_bonds
        self._stashed_bonds = None

    # ComparableState

    def comparable_state(self):
        return (self.sites0(), self.sites1(), self.types0(), self.types1(), self.directions())

    def compare_state(self, saved) -> bool:
        sites0, sites1, types0, types1, directions = saved
        if (sites0, sites1, types0, types1) != (self.sites0(), self.sites1(), self.types0(), self.types1()):
            return False
        current = self.directions()
        return directions.shape == current.shape and np.allclose(directions, current)
