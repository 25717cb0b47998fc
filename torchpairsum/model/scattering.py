"""
model/scattering.py – Per-site scattering weights for pair sums.

Neutron scattering lengths are supplied by the caller, no tables are
bundled. Without lengths every site has unit scattering power and the pair
sums become purely geometric.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Optional

_ELEMENT = re.compile(r"[A-Z][a-z]?")


@dataclass
class SiteWeights:
    """Scattering length lookup by atom type, ``"Ni2+"`` falls back to ``"Ni"``."""
    scattering_lengths: Optional[Dict[str, float]] = None
    _cache: Dict[str, float] = field(default_factory=dict, repr=False)

    def lookup(self, atom_type: str) -> float:
        if self.scattering_lengths is None:
            return 1.0
        if atom_type not in self._cache:
            if atom_type in self.scattering_lengths:
                rv = self.scattering_lengths[atom_type]
            else:
                m = _ELEMENT.match(atom_type)
                if m is None or m.group(0) not in self.scattering_lengths:
                    raise ValueError(f"Unknown scattering length for atom type {atom_type!r}.")
                rv = self.scattering_lengths[m.group(0)]
            self._cache[atom_type] = float(rv)
        return self._cache[atom_type]

    def site_weight(self, stru, idx: int) -> float:
        return self.lookup(stru.site_atom_type(idx)) * stru.site_occupancy(idx)

    def average(self, stru) -> float:
        """Occupancy-weighted mean scattering length of a structure."""
        totocc = stru.total_occupancy()
        if totocc <= 0:
            return 0.0
        return sum(self.site_weight(stru, i) for i in range(stru.count_sites())) / totocc
