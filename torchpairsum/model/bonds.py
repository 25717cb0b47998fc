"""
model/bonds.py – Bond generators enumerating site pairs of a structure.

A bond generator is anchored at one site and iterates over its partners
among the selected sites whose distance falls within ``[rmin, rmax]``::

    bnds = structure.create_bond_generator()
    bnds.set_rmax(3.0)
    bnds.select_anchor_site(0)
    bnds.select_site_range(0, structure.count_sites())
    for b in bnds:
        print(b.site0, b.site1, b.distance)
"""

from __future__ import annotations

import math
from typing import Iterable, Iterator, Optional, Tuple

import numpy as np


class BaseBondGenerator:
    """Bond generator for a finite structure without periodic images."""

    def __init__(self, stru):
        self._structure = stru
        self._positions = stru.positions
        self._rmin = 0.0
        self._rmax = math.inf
        self._anchor = 0
        self._selected = np.arange(stru.count_sites())
        self._site1 = np.zeros(0, dtype=int)
        self._r01 = np.zeros((0, 3))
        self._dist = np.zeros(0)
        self._index = 0

    @property
    def structure(self):
        return self._structure

    # -------------------------------------------------------------------------
    # configuration
    # -------------------------------------------------------------------------

    def select_anchor_site(self, anchor: int) -> None:
        if not 0 <= anchor < self._structure.count_sites():
            raise IndexError(f"Anchor site {anchor} out of range.")
        self._anchor = int(anchor)
        self._mark_finished()

    def select_site_range(self, first: int, last: int) -> None:
        first = max(0, first)
        last = min(self._structure.count_sites(), last)
        self._selected = np.arange(first, max(first, last))
        self._mark_finished()

    def select_sites(self, indices: Iterable[int]) -> None:
        self._selected = np.fromiter(indices, dtype=int)
        self._mark_finished()

    def set_rmin(self, rmin: float) -> None:
        self._rmin = float(rmin)
        self._mark_finished()

    def set_rmax(self, rmax: float) -> None:
        self._rmax = float(rmax)
        self._mark_finished()

    @property
    def rmin(self) -> float:
        return self._rmin

    @property
    def rmax(self) -> float:
        return self._rmax

    # -------------------------------------------------------------------------
    # iteration
    # -------------------------------------------------------------------------

    def rewind(self) -> None:
        self._site1, self._r01, self._dist = self._find_bonds()
        self._index = 0

    def finished(self) -> bool:
        return self._index >= len(self._site1)

    def next(self) -> None:
        self._index += 1

    def __iter__(self) -> Iterator["BaseBondGenerator"]:
        self.rewind()
        while not self.finished():
            yield self
            self.next()

    def _mark_finished(self) -> None:
        self._site1 = np.zeros(0, dtype=int)
        self._index = 0

    def _find_bonds(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        sel = self._selected[self._selected != self._anchor]
        r01 = self._positions[sel] - self._positions[self._anchor]
        dist = np.linalg.norm(r01, axis=-1)
        keep = (self._rmin <= dist) & (dist <= self._rmax)
        return sel[keep], r01[keep], dist[keep]

    # -------------------------------------------------------------------------
    # current bond
    # -------------------------------------------------------------------------

    @property
    def site0(self) -> int:
        return self._anchor

    @property
    def site1(self) -> int:
        return int(self._site1[self._index])

    @property
    def distance(self) -> float:
        return float(self._dist[self._index])

    @property
    def r01(self) -> np.ndarray:
        """Cartesian vector from site0 to site1."""
        return self._r01[self._index].copy()

    def msd(self) -> float:
        """Mean square displacement of the bond from isotropic site parameters."""
        return self._structure.site_uiso(self.site0) + self._structure.site_uiso(self.site1)

    def count_bonds(self) -> int:
        return sum(1 for _ in self)


class PeriodicBondGenerator(BaseBondGenerator):
    """Bond generator including periodic images of the unit cell."""

    def __init__(self, stru):
        super().__init__(stru)
        cell = stru.cell
        self._cell = cell.array.copy()
        frac = cell.scaled_positions(self._positions) if len(self._positions) else self._positions
        frac = frac - np.floor(frac)
        self._positions = frac @ self._cell
        # reciprocal vectors without the 2 pi factor, their lengths are
        # inverse spacings of lattice planes
        self._plane_density = np.linalg.norm(cell.reciprocal(), axis=1)
        self._translations: Optional[np.ndarray] = None
        self._translations_rmax: Optional[float] = None
        self._zero_translation = 0

    def _lattice_translations(self) -> np.ndarray:
        if self._translations is not None and self._translations_rmax == self._rmax:
            return self._translations
        if not math.isfinite(self._rmax):
            raise ValueError("rmax must be finite for a periodic structure.")
        # wrapped positions differ by less than one cell, hence the extra image
        nmax = [int(math.ceil(max(self._rmax, 0.0) * p)) + 1 for p in self._plane_density]
        grids = np.meshgrid(*[np.arange(-n, n + 1) for n in nmax], indexing="ij")
        ijk = np.stack([g.ravel() for g in grids], axis=1)
        self._zero_translation = int(np.flatnonzero(~ijk.any(axis=1))[0])
        self._translations = ijk @ self._cell
        self._translations_rmax = self._rmax
        return self._translations

    def _find_bonds(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        if self._rmax < 0 or len(self._selected) == 0:
            return np.zeros(0, dtype=int), np.zeros((0, 3)), np.zeros(0)
        shifts = self._lattice_translations()
        sel = self._selected
        r01 = (self._positions[sel] - self._positions[self._anchor])[:, None, :] + shifts[None, :, :]
        dist = np.linalg.norm(r01, axis=-1)
        keep = (self._rmin <= dist) & (dist <= self._rmax)
        # the anchor is not bonded to itself in the home cell
        keep[sel == self._anchor, self._zero_translation] = False
        isel, ishift = np.nonzero(keep)
        return sel[isel], r01[isel, ishift], dist[isel, ishift]
