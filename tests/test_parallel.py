from __future__ import annotations

import pytest
import torch

from torchpairsum.engine.chunker import ParallelChunker, check_worker_count
from torchpairsum.engine.parallel import ParallelCalculator
from torchpairsum.model.bondcalculator import BondCalculator, BondCounter
from torchpairsum.model.rdf import RDFCalculator
from torchpairsum.model.structure import Site


def test_chunker_round_robin():
    pattern = ParallelChunker(1, 3)
    assert [pattern.skip() for _ in range(6)] == [True, True, False, True, True, False]
    serial = ParallelChunker()
    assert not serial.is_parallel
    assert not any(serial.skip() for _ in range(5))


@pytest.mark.parametrize("ncpu", [2, 3, 4])
def test_chunker_partitions_iterations(ncpu):
    chunkers = [ParallelChunker(k, ncpu) for k in range(ncpu)]
    owners = []
    for _ in range(25):
        taken = [k for k, c in enumerate(chunkers) if not c.skip()]
        owners.append(taken)
    assert all(len(taken) == 1 for taken in owners)


def test_split_outer_threshold():
    assert not ParallelChunker(0, 2).split_outer(4)
    assert ParallelChunker(0, 2).split_outer(11)
    assert ParallelChunker(0, 4).split_outer(32)
    assert not ParallelChunker(0, 5).split_outer(32)


def test_worker_count():
    with pytest.raises(ValueError):
        check_worker_count(0)
    with pytest.raises(ValueError):
        ParallelChunker(0, 0)


@pytest.mark.parametrize("ncpu", [1, 3, 6])
def test_parallel_calculator_matches_serial(ni_supercell, ncpu):
    template = RDFCalculator(rmax=4.0, rstep=0.05)
    expected = RDFCalculator(rmax=4.0, rstep=0.05, evaluator="BASIC").eval(ni_supercell)
    calc = ParallelCalculator(template, ncpu)
    assert torch.allclose(calc.eval(ni_supercell), expected, rtol=0.0, atol=1e-9)
    assert template.evaluator.ncpu == 1
    assert [w.evaluator.cpuindex for w in calc.workers] == list(range(ncpu))


def test_parallel_calculator_incremental(ni_supercell):
    calc = ParallelCalculator(BondCounter(rmax=3.0, evaluator="CHECK"), 3, pmap=map)
    calc(ni_supercell)
    ni_supercell.erase(4)
    ni_supercell.append(Site("Ni", (0.9, 0.9, 0.1)))
    value = calc(ni_supercell)
    assert all(w.evaluator_type_used.name == "OPTIMIZED" for w in calc.workers)
    expected = BondCounter(rmax=3.0, evaluator="BASIC").eval(ni_supercell)
    assert torch.equal(value, expected)


def test_parallel_calculator_requires_eval():
    calc = ParallelCalculator(BondCounter(), 2)
    with pytest.raises(RuntimeError):
        calc.value
    with pytest.raises(ValueError):
        ParallelCalculator(BondCounter(), 0)


def test_parallel_calculator_rejects_bond_lists():
    with pytest.raises(ValueError):
        ParallelCalculator(BondCalculator(rmax=3.0), 2)
