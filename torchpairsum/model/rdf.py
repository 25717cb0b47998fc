"""
model/rdf.py – Radial distribution function by Gaussian kernel summation
=========================================================================

Every bond contributes a Gaussian of width ``kernel_width`` centred at the
bond length, weighted by the scattering lengths of its two sites:

    R(r) = 1 / (N <b>²) Σ_ij b_i b_j exp(-½ ((r - r_ij) / w)²) / (w √2π)

The raw sum over pairs is the accumulated value. The normalization depends
on the whole structure and is applied only when reading results:

    - get_rdf(): R(r)
    - get_pdf(): G(r) = R(r) / r - 4πρr
    - get_g():   g(r) = R(r) / (4πρr²)
"""

import math
from typing import Dict, Optional

import torch

from torchpairsum.common.utils import VALUE_DTYPE, ensure_epsilon_positive
from torchpairsum.model.quantity import PairQuantity
from torchpairsum.model.scattering import SiteWeights

# bonds are collected this many kernel widths beyond the r grid
KERNEL_WINDOW = 3.0


class RDFCalculator(PairQuantity):
    """Radial distribution function on the grid ``rmin, rmin + rstep, ... < rmax``."""

    def __init__(
        self,
        *,
        rmin: float = 0.0,
        rmax: float = 10.0,
        rstep: float = 0.01,
        kernel_width: float = 0.05,
        scattering_lengths: Optional[Dict[str, float]] = None,
        **kwargs,
    ) -> None:
        ensure_epsilon_positive("rstep", rstep)
        ensure_epsilon_positive("kernel_width", kernel_width)
        self._rstep = float(rstep)
        self._kernel_width = float(kernel_width)
        self._rgrid = torch.zeros(0, dtype=VALUE_DTYPE)
        self._weights = SiteWeights(scattering_lengths)
        super().__init__(rmin=rmin, rmax=rmax, **kwargs)

    @property
    def rstep(self) -> float:
        return self._rstep

    @rstep.setter
    def rstep(self, value: float) -> None:
        ensure_epsilon_positive("rstep", value)
        if float(value) != self._rstep:
            self._rstep = float(value)
            self.ticker.click()

    @property
    def kernel_width(self) -> float:
        return self._kernel_width

    @kernel_width.setter
    def kernel_width(self, value: float) -> None:
        ensure_epsilon_positive("kernel_width", value)
        if float(value) != self._kernel_width:
            self._kernel_width = float(value)
            self.ticker.click()

    def _compute_rgrid(self) -> torch.Tensor:
        npts = max(0, int(math.ceil((self.rmax - self.rmin) / self._rstep)))
        return self.rmin + self._rstep * torch.arange(npts, dtype=self._value.dtype, device=self.device)

    def get_rgrid(self) -> torch.Tensor:
        """r values of the last evaluated result."""
        return self._rgrid.clone()

    # -------------------------------------------------------------------------
    # results
    # -------------------------------------------------------------------------

    def get_rdf(self) -> torch.Tensor:
        totocc = self._structure.total_occupancy()
        bavg = self._weights.average(self._structure)
        norm = totocc * bavg * bavg
        return self.value / norm if norm else torch.zeros_like(self._value)

    def get_pdf(self) -> torch.Tensor:
        r = self._rgrid
        rho = self._structure.number_density()
        rdf = self.get_rdf()
        safe_r = torch.where(r > 0, r, torch.ones_like(r))
        return torch.where(r > 0, rdf / safe_r - 4 * torch.pi * rho * r, torch.zeros_like(r))

    def get_g(self) -> torch.Tensor:
        r = self._rgrid
        rho = self._structure.number_density()
        if rho <= 0:
            raise ValueError("g(r) requires a structure with positive number density.")
        denom = 4 * torch.pi * rho * r ** 2
        return torch.where(r > 0, self.get_rdf() / torch.where(r > 0, denom, torch.ones_like(r)),
                           torch.zeros_like(r))

    # -------------------------------------------------------------------------
    # PairQuantity overloads
    # -------------------------------------------------------------------------

    def reset_value(self) -> None:
        self._rgrid = self._compute_rgrid()
        self.resize_value(len(self._rgrid))
        super().reset_value()

    def configure_bond_generator(self, bnds) -> None:
        extension = KERNEL_WINDOW * self._kernel_width
        bnds.set_rmin(max(0.0, self.rmin - extension))
        bnds.set_rmax(self.rmax + extension)

    def add_pair_contribution(self, bnds, summationscale: int) -> None:
        stru = bnds.structure
        sfprod = (self._weights.site_weight(stru, bnds.site0) *
                  self._weights.site_weight(stru, bnds.site1))
        w = self._kernel_width
        r = self._rgrid
        gauss = torch.exp(-0.5 * ((r - bnds.distance) / w) ** 2) / (w * (2 * torch.pi) ** 0.5)
        self._value += summationscale * sfprod * gauss
