"""
model/structure.py – Structure adapters consumed by pair quantities
====================================================================

A structure adapter is an ordered sequence of sites. Pair quantities never
look at atoms directly; they only ask the adapter for site properties and for
a bond generator that enumerates site pairs within a distance window.

Two adapters are provided:
    - StructureAdapter: finite, non-periodic collection of sites
    - PeriodicStructureAdapter: sites in a periodic unit cell

Both can be built from and converted back to ``ase.Atoms``.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np
from ase import Atoms
from ase.cell import Cell

from torchpairsum.common.ticker import EventTicker
from torchpairsum.model.difference import StructureDifference


# =============================================================================
# Site record
# =============================================================================

@dataclass(frozen=True)
class Site:
    """One site of a structure. Sites are hashable and compared by value."""
    atom_type: str
    xyz_cartn: Tuple[float, float, float]
    occupancy: float = 1.0
    uiso: float = 0.0

    def __post_init__(self):
        xyz = tuple(float(x) for x in self.xyz_cartn)
        if len(xyz) != 3:
            raise ValueError(f"Site position must have 3 components, got {len(xyz)}.")
        object.__setattr__(self, "xyz_cartn", xyz)
        object.__setattr__(self, "occupancy", float(self.occupancy))
        object.__setattr__(self, "uiso", float(self.uiso))

    def moved_to(self, xyz: Sequence[float]) -> "Site":
        return replace(self, xyz_cartn=tuple(xyz))


def _per_site(values, count: int, default: float) -> List[float]:
    if values is None:
        return [default] * count
    values = np.broadcast_to(np.asarray(values, dtype=float), (count,))
    return [float(v) for v in values]


# =============================================================================
# Non-periodic adapter
# =============================================================================

class StructureAdapter:
    """Finite structure of sites, every site pair is counted once."""

    def __init__(self, sites: Iterable[Site] = ()):
        self._sites: List[Site] = list(sites)
        self.ticker = EventTicker()
        self.ticker.click()

    @classmethod
    def from_atoms(
        cls,
        atoms: Atoms,
        *,
        occupancies: Optional[Sequence[float]] = None,
        uiso: Optional[Sequence[float] | float] = None,
    ) -> "StructureAdapter":
        """
        Build an adapter from ASE Atoms.

        Periodic atoms (any ``pbc`` set) produce a ``PeriodicStructureAdapter``
        unless called on a specific subclass.

        Args:
            atoms: ASE Atoms object
            occupancies: per-site occupancies, defaults to 1
            uiso: isotropic displacement parameters in Å², scalar or per site

        Returns:
            StructureAdapter instance
        """
        n = len(atoms)
        occ = _per_site(occupancies, n, 1.0)
        if occupancies is None and "occupancy" in atoms.arrays:
            occ = _per_site(atoms.arrays["occupancy"], n, 1.0)
        uis = _per_site(uiso, n, 0.0)
        sites = [
            Site(smbl, tuple(xyz), o, u)
            for smbl, xyz, o, u in zip(atoms.get_chemical_symbols(), atoms.get_positions(), occ, uis)
        ]
        target = cls
        if cls is StructureAdapter and any(atoms.pbc):
            target = PeriodicStructureAdapter
        if issubclass(target, PeriodicStructureAdapter):
            return target(atoms.get_cell().array, sites)
        return target(sites)

    def to_atoms(self) -> Atoms:
        atoms = Atoms(
            symbols=[s.atom_type for s in self._sites],
            positions=self.positions if self._sites else np.zeros((0, 3)),
        )
        atoms.set_array("occupancy", np.array([s.occupancy for s in self._sites], dtype=float))
        return atoms

    # -------------------------------------------------------------------------
    # site access
    # -------------------------------------------------------------------------

    def count_sites(self) -> int:
        return len(self._sites)

    def __len__(self) -> int:
        return len(self._sites)

    @property
    def sites(self) -> Tuple[Site, ...]:
        return tuple(self._sites)

    def site(self, idx: int) -> Site:
        return self._sites[idx]

    def site_atom_type(self, idx: int) -> str:
        return self._sites[idx].atom_type

    def site_cartesian_position(self, idx: int) -> np.ndarray:
        return np.array(self._sites[idx].xyz_cartn)

    def site_occupancy(self, idx: int) -> float:
        return self._sites[idx].occupancy

    def site_uiso(self, idx: int) -> float:
        return self._sites[idx].uiso

    @property
    def positions(self) -> np.ndarray:
        return np.array([s.xyz_cartn for s in self._sites], dtype=float).reshape(-1, 3)

    def total_occupancy(self) -> float:
        return float(sum(s.occupancy for s in self._sites))

    def number_density(self) -> float:
        """Number density is undefined for a finite structure."""
        return 0.0

    # -------------------------------------------------------------------------
    # modification, every change clicks the ticker
    # -------------------------------------------------------------------------

    def set_site(self, idx: int, site: Site) -> None:
        self._sites[idx] = site
        self.ticker.click()

    def insert(self, idx: int, site: Site) -> None:
        self._sites.insert(idx, site)
        self.ticker.click()

    def append(self, site: Site) -> None:
        self._sites.append(site)
        self.ticker.click()

    def erase(self, idx: int) -> Site:
        rv = self._sites.pop(idx)
        self.ticker.click()
        return rv

    # -------------------------------------------------------------------------
    # hooks used by pair quantities
    # -------------------------------------------------------------------------

    def create_bond_generator(self):
        from torchpairsum.model.bonds import BaseBondGenerator
        return BaseBondGenerator(self)

    def custom_pq_config(self, pq) -> None:
        """Adjust configuration of a pair quantity for this structure type."""
        return

    def lattice_key(self) -> Optional[Tuple[float, ...]]:
        return None

    def clone(self) -> "StructureAdapter":
        """Shallow copy with a private site list. The ticker is preserved."""
        rv = copy.copy(self)
        rv._sites = list(self._sites)
        rv.ticker = self.ticker.copy()
        return rv

    def diff(self, other: "StructureAdapter") -> StructureDifference:
        return StructureDifference.compare(self, other)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, StructureAdapter):
            return NotImplemented
        return (
            type(self) is type(other)
            and self.lattice_key() == other.lattice_key()
            and self._sites == other._sites
        )

    __hash__ = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(sites={len(self._sites)})"


# =============================================================================
# Periodic adapter
# =============================================================================

class PeriodicStructureAdapter(StructureAdapter):
    """Sites in a periodic unit cell given by three lattice vectors."""

    def __init__(self, cell, sites: Iterable[Site] = ()):
        super().__init__(sites)
        self._cell = Cell.new(cell)
        if self._cell.rank != 3:
            raise ValueError("Periodic structure requires three independent lattice vectors.")

    @property
    def cell(self) -> Cell:
        return self._cell

    def set_cell(self, cell, scale_sites: bool = False) -> None:
        """Replace lattice vectors, optionally keeping fractional positions."""
        newcell = Cell.new(cell)
        if scale_sites and self._sites:
            frac = self._cell.scaled_positions(self.positions)
            xyz = newcell.cartesian_positions(frac)
            self._sites = [s.moved_to(r) for s, r in zip(self._sites, xyz)]
        self._cell = newcell
        self.ticker.click()

    def volume(self) -> float:
        return float(abs(self._cell.volume))

    def number_density(self) -> float:
        return self.total_occupancy() / self.volume()

    def lattice_key(self) -> Tuple[float, ...]:
        return tuple(float(x) for x in self._cell.array.flat)

    def to_atoms(self) -> Atoms:
        atoms = super().to_atoms()
        atoms.set_cell(self._cell.array)
        atoms.set_pbc(True)
        return atoms

    def create_bond_generator(self):
        from torchpairsum.model.bonds import PeriodicBondGenerator
        return PeriodicBondGenerator(self)

    def clone(self) -> "PeriodicStructureAdapter":
        rv = super().clone()
        rv._cell = self._cell.copy()
        return rv

    def __repr__(self) -> str:
        return f"{type(self).__name__}(sites={len(self._sites)}, volume={self.volume():.4g})"
