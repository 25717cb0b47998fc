"""
Model subpackage – Structures, bond generators and pair quantities.
"""

from torchpairsum.model.structure import (
    Site,
    StructureAdapter,
    PeriodicStructureAdapter,
)
from torchpairsum.model.difference import DiffMethod, StructureDifference
from torchpairsum.model.bonds import BaseBondGenerator, PeriodicBondGenerator
from torchpairsum.model.quantity import ComparableState, PairQuantity
from torchpairsum.model.scattering import SiteWeights
from torchpairsum.model.bondcalculator import Bond, BondCounter, BondCalculator
from torchpairsum.model.debye import DebyeSum
from torchpairsum.model.rdf import RDFCalculator

__all__ = [
    # Structures
    'Site',
    'StructureAdapter',
    'PeriodicStructureAdapter',
    'DiffMethod',
    'StructureDifference',
    'BaseBondGenerator',
    'PeriodicBondGenerator',

    # Quantities
    'ComparableState',
    'PairQuantity',
    'SiteWeights',
    'Bond',
    'BondCounter',
    'BondCalculator',
    'DebyeSum',
    'RDFCalculator',
]
