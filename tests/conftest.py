from __future__ import annotations

import numpy as np
import pytest
from ase import Atoms
from ase.build import bulk

from torchpairsum.model.structure import PeriodicStructureAdapter, StructureAdapter

NI_LATTICE = 3.52


@pytest.fixture
def ni_atoms() -> Atoms:
    """Conventional fcc nickel cell with 4 sites."""
    return bulk("Ni", "fcc", a=NI_LATTICE, cubic=True)


@pytest.fixture
def ni_structure(ni_atoms) -> PeriodicStructureAdapter:
    return StructureAdapter.from_atoms(ni_atoms)


@pytest.fixture
def ni_supercell(ni_atoms) -> PeriodicStructureAdapter:
    """2x2x2 nickel supercell with 32 sites and small displacements."""
    atoms = ni_atoms.repeat((2, 2, 2))
    rng = np.random.default_rng(7)
    atoms.positions += rng.normal(scale=0.05, size=atoms.positions.shape)
    return StructureAdapter.from_atoms(atoms, uiso=0.005)


@pytest.fixture
def cluster() -> StructureAdapter:
    """Finite Ni-O cluster with 12 sites."""
    rng = np.random.default_rng(11)
    positions = rng.uniform(0.0, 6.0, size=(12, 3))
    symbols = ["Ni", "O"] * 6
    return StructureAdapter.from_atoms(Atoms(symbols, positions=positions), uiso=0.01)
