from __future__ import annotations

import numpy as np
import pytest
from ase import Atoms

from torchpairsum.model.bonds import BaseBondGenerator, PeriodicBondGenerator
from torchpairsum.model.difference import DiffMethod, StructureDifference
from torchpairsum.model.structure import PeriodicStructureAdapter, Site, StructureAdapter

from conftest import NI_LATTICE


# ---------------------------------------------------------------------------
# adapters
# ---------------------------------------------------------------------------

def test_from_atoms_periodic(ni_atoms, ni_structure):
    assert isinstance(ni_structure, PeriodicStructureAdapter)
    assert ni_structure.count_sites() == 4
    assert ni_structure.site_atom_type(2) == "Ni"
    assert ni_structure.total_occupancy() == pytest.approx(4.0)
    assert ni_structure.number_density() == pytest.approx(4 / NI_LATTICE ** 3)
    np.testing.assert_allclose(ni_structure.positions, ni_atoms.positions)


def test_from_atoms_finite_reads_occupancy():
    atoms = Atoms("NiO", positions=[[0, 0, 0], [0, 0, 2.0]])
    atoms.set_array("occupancy", np.array([0.5, 1.0]))
    stru = StructureAdapter.from_atoms(atoms)
    assert type(stru) is StructureAdapter
    assert stru.site_occupancy(0) == 0.5
    assert stru.number_density() == 0.0


def test_to_atoms_round_trip(ni_structure):
    atoms = ni_structure.to_atoms()
    assert atoms.get_chemical_symbols() == ["Ni"] * 4
    assert all(atoms.pbc)
    np.testing.assert_allclose(atoms.cell.array, ni_structure.cell.array)


def test_modification_clicks_ticker(ni_structure):
    t0 = ni_structure.ticker.copy()
    ni_structure.set_site(0, ni_structure.site(0).moved_to((0.1, 0.0, 0.0)))
    assert ni_structure.ticker > t0
    t1 = ni_structure.ticker.copy()
    ni_structure.erase(1)
    assert ni_structure.ticker > t1
    assert ni_structure.count_sites() == 3


def test_set_cell_scales_sites(ni_structure):
    ni_structure.set_cell(np.eye(3) * 2 * NI_LATTICE, scale_sites=True)
    np.testing.assert_allclose(ni_structure.site_cartesian_position(3), [NI_LATTICE, NI_LATTICE, 0.0])


def test_clone_keeps_ticker_and_is_independent(ni_structure):
    clone = ni_structure.clone()
    assert clone == ni_structure
    assert clone.ticker == ni_structure.ticker
    clone.erase(0)
    assert ni_structure.count_sites() == 4


def test_site_requires_three_coordinates():
    with pytest.raises(ValueError):
        Site("Ni", (0.0, 1.0))


def test_periodic_requires_full_rank_cell():
    with pytest.raises(ValueError):
        PeriodicStructureAdapter(np.diag([1.0, 1.0, 0.0]))


# ---------------------------------------------------------------------------
# bond generators
# ---------------------------------------------------------------------------

def test_bond_generator_type(ni_structure):
    assert isinstance(ni_structure.create_bond_generator(), PeriodicBondGenerator)
    assert type(StructureAdapter().create_bond_generator()) is BaseBondGenerator


@pytest.mark.parametrize("rmax, expected", [(3.0, 12), (3.6, 18)])
def test_periodic_neighbor_shells(ni_structure, rmax, expected):
    bnds = ni_structure.create_bond_generator()
    bnds.set_rmax(rmax)
    bnds.select_anchor_site(0)
    bnds.select_site_range(0, ni_structure.count_sites())
    assert bnds.count_bonds() == expected
    for b in bnds:
        assert b.distance <= rmax


@pytest.mark.parametrize("first, last, expected", [(0, 1, 0), (3, 4, 4)])
def test_select_site_range(ni_structure, first, last, expected):
    bnds = ni_structure.create_bond_generator()
    bnds.set_rmax(3.0)
    bnds.select_anchor_site(0)
    bnds.select_site_range(first, last)
    assert bnds.count_bonds() == expected


def test_periodic_rmin_excludes_first_shell(ni_structure):
    bnds = ni_structure.create_bond_generator()
    bnds.set_rmin(3.0)
    bnds.set_rmax(3.6)
    bnds.select_anchor_site(1)
    assert bnds.count_bonds() == 6


def test_periodic_bonds_need_finite_rmax(ni_structure):
    bnds = ni_structure.create_bond_generator()
    bnds.select_anchor_site(0)
    with pytest.raises(ValueError):
        bnds.rewind()


def test_anchor_out_of_range(ni_structure):
    bnds = ni_structure.create_bond_generator()
    with pytest.raises(IndexError):
        bnds.select_anchor_site(4)


def test_finite_bonds_exclude_anchor():
    stru = StructureAdapter.from_atoms(Atoms("Ni3", positions=[[0, 0, 0], [0, 0, 2.0], [0, 0, 5.0]]))
    bnds = stru.create_bond_generator()
    bnds.set_rmax(3.0)
    bnds.select_anchor_site(1)
    found = [(b.site1, b.distance) for b in bnds]
    assert found == [(0, pytest.approx(2.0)), (2, pytest.approx(3.0))]
    bnds.select_sites([0])
    bnds.rewind()
    np.testing.assert_allclose(bnds.r01, [0.0, 0.0, -2.0])


def test_msd_adds_site_uiso():
    stru = StructureAdapter.from_atoms(Atoms("Ni2", positions=[[0, 0, 0], [0, 0, 2.0]]), uiso=[0.01, 0.02])
    bnds = stru.create_bond_generator()
    bnds.select_anchor_site(0)
    bnds.rewind()
    assert bnds.msd() == pytest.approx(0.03)


# ---------------------------------------------------------------------------
# structure difference
# ---------------------------------------------------------------------------

def test_diff_identical(ni_structure):
    for other in (ni_structure, ni_structure.clone()):
        sd = ni_structure.diff(other)
        assert sd.diffmethod is DiffMethod.SIDE_BY_SIDE
        assert sd.pop0 == [] and sd.add1 == []
        assert sd.allows_fast_update()


def test_diff_side_by_side(ni_supercell):
    old = ni_supercell.clone()
    ni_supercell.set_site(5, ni_supercell.site(5).moved_to((0.2, 0.2, 0.2)))
    sd = old.diff(ni_supercell)
    assert sd.diffmethod is DiffMethod.SIDE_BY_SIDE
    assert sd.pop0 == [5]
    assert sd.add1 == [5]
    assert sd.allows_fast_update()


def test_diff_sorted_after_erase_and_insert(ni_supercell):
    old = ni_supercell.clone()
    ni_supercell.erase(2)
    sd = old.diff(ni_supercell)
    assert sd.diffmethod is DiffMethod.SORTED
    assert sd.pop0 == [2]
    assert sd.add1 == []
    ni_supercell.insert(0, Site("O", (1.0, 1.0, 1.0)))
    sd = old.diff(ni_supercell)
    assert sd.pop0 == [2]
    assert sd.add1 == [0]
    assert sd.allows_fast_update()


def test_diff_permutation_is_empty(cluster):
    old = cluster.clone()
    last = cluster.erase(cluster.count_sites() - 1)
    cluster.insert(0, last)
    cluster.append(Site("Ni", (9.0, 9.0, 9.0)))
    sd = old.diff(cluster)
    assert sd.diffmethod is DiffMethod.SORTED
    assert sd.pop0 == []
    assert sd.add1 == [cluster.count_sites() - 1]


def test_diff_lattice_change_is_general(ni_structure):
    old = ni_structure.clone()
    ni_structure.set_cell(np.eye(3) * 4.0)
    sd = old.diff(ni_structure)
    assert sd.diffmethod is DiffMethod.GENERAL
    assert sd.pop0 == [0, 1, 2, 3]
    assert sd.add1 == [0, 1, 2, 3]
    assert not sd.allows_fast_update()


def test_diff_against_nothing(ni_structure):
    sd = StructureDifference.compare(None, ni_structure)
    assert sd.diffmethod is DiffMethod.GENERAL
    assert sd.add1 == [0, 1, 2, 3]
    assert not sd.allows_fast_update()


def test_diff_all_sites_changed_is_not_fast(cluster):
    old = cluster.clone()
    for idx in range(cluster.count_sites()):
        xyz = cluster.site_cartesian_position(idx) + 0.1
        cluster.set_site(idx, cluster.site(idx).moved_to(xyz))
    sd = old.diff(cluster)
    assert len(sd.pop0) == cluster.count_sites()
    assert not sd.allows_fast_update()


def test_diff_different_adapter_types(cluster):
    periodic = PeriodicStructureAdapter(np.eye(3) * 10.0, cluster.sites)
    sd = cluster.diff(periodic)
    assert sd.diffmethod is DiffMethod.GENERAL
