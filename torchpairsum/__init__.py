"""
TorchPairSum – Incremental Evaluation of Pairwise Sums over Atomic Structures
=============================================================================

This package evaluates quantities that are sums over pairs of sites of a
structure (bond counts, bond lists, Debye scattering, radial distribution
functions). When a structure changes in a few sites only, the sum is
updated by removing and adding the affected pairs instead of being
recomputed.

Main Components:
    - common.ticker: Logical clock used for cache invalidation
    - model.structure: Structure adapters built from ase.Atoms
    - model.difference: Site difference between structure snapshots
    - model.quantity: Base class of pair quantities and pair masks
    - engine.evaluator: BASIC, OPTIMIZED and CHECK evaluation strategies
    - engine.chunker: Round-robin split of pair loops across workers
    - engine.parallel: Evaluation with several workers

Usage:
    >>> from ase.build import bulk
    >>> from torchpairsum import StructureAdapter, BondCounter
    >>>
    >>> stru = StructureAdapter.from_atoms(bulk("Ni", "fcc", a=3.52, cubic=True))
    >>> bc = BondCounter(rmax=3.0)
    >>> bc.eval(stru)
"""

__version__ = '0.1.0'

from torchpairsum.common.ticker import EventTicker
from torchpairsum.common.config import PairSumConfig
from torchpairsum.common.io import QuantityTable
from torchpairsum.model.structure import Site, StructureAdapter, PeriodicStructureAdapter
from torchpairsum.model.difference import DiffMethod, StructureDifference
from torchpairsum.model.quantity import PairQuantity
from torchpairsum.model.bondcalculator import BondCounter, BondCalculator
from torchpairsum.model.debye import DebyeSum
from torchpairsum.model.rdf import RDFCalculator
from torchpairsum.engine.evaluator import (
    EvaluatorConsistencyError,
    EvaluatorType,
    create_evaluator,
)
from torchpairsum.engine.parallel import ParallelCalculator

__all__ = [
    '__version__',

    # Core
    'EventTicker',
    'Site',
    'StructureAdapter',
    'PeriodicStructureAdapter',
    'DiffMethod',
    'StructureDifference',

    # Quantities
    'PairQuantity',
    'BondCounter',
    'BondCalculator',
    'DebyeSum',
    'RDFCalculator',

    # Evaluation
    'EvaluatorConsistencyError',
    'EvaluatorType',
    'create_evaluator',
    'ParallelCalculator',

    # Configuration and I/O
    'PairSumConfig',
    'QuantityTable',
]
