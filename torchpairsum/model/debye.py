"""
model/debye.py – Debye scattering sum
======================================

The Debye formula for a finite collection of sites

    F(Q) ∝ Σ_i Σ_j f_i f_j exp(-½ σ_ij² Q²) sin(Q r_ij) / r_ij

is a plain pair sum, so it is accumulated pair by pair and supports fast
updates. Contributions along the Q grid are truncated once their amplitude
drops below ``debye_precision``.
"""

import math
from typing import Dict, Optional

import torch

from torchpairsum.common.utils import (
    VALUE_DTYPE,
    ensure_epsilon_positive,
    ensure_non_negative,
    eps_eq,
)
from torchpairsum.model.quantity import PairQuantity
from torchpairsum.model.scattering import SiteWeights

DEFAULT_DEBYE_PRECISION = 1e-6


class DebyeSum(PairQuantity):
    """Debye scattering sum of a finite structure on a regular Q grid."""

    def __init__(
        self,
        *,
        qmin: float = 0.0,
        qmax: float = 10.0,
        qstep: float = 0.05,
        debye_precision: float = DEFAULT_DEBYE_PRECISION,
        scattering_lengths: Optional[Dict[str, float]] = None,
        rmax: float = math.inf,
        **kwargs,
    ) -> None:
        ensure_non_negative("Qmin", qmin)
        ensure_non_negative("Qmax", qmax)
        ensure_epsilon_positive("Qstep", qstep)
        self._qmin = float(qmin)
        self._qmax = float(qmax)
        self._qstep = float(qstep)
        self._debye_precision = float(debye_precision)
        self._weights = SiteWeights(scattering_lengths)
        self._cache_qpoints()
        # grid of the last evaluated result
        self._qgrid = torch.zeros(0, dtype=VALUE_DTYPE)
        self._value_kq0 = 0
        super().__init__(rmax=rmax, **kwargs)

    # -------------------------------------------------------------------------
    # Q-range configuration
    # -------------------------------------------------------------------------

    def _set_and_click(self, name: str, value: float) -> None:
        if getattr(self, name) != value:
            setattr(self, name, float(value))
            self._cache_qpoints()
            self.ticker.click()

    @property
    def qmin(self) -> float:
        return self._qmin

    @qmin.setter
    def qmin(self, value: float) -> None:
        ensure_non_negative("Qmin", value)
        self._set_and_click("_qmin", value)

    @property
    def qmax(self) -> float:
        return self._qmax

    @qmax.setter
    def qmax(self, value: float) -> None:
        ensure_non_negative("Qmax", value)
        self._set_and_click("_qmax", value)

    @property
    def qstep(self) -> float:
        return self._qstep

    @qstep.setter
    def qstep(self, value: float) -> None:
        ensure_epsilon_positive("Qstep", value)
        self._set_and_click("_qstep", value)

    @property
    def debye_precision(self) -> float:
        return self._debye_precision

    @debye_precision.setter
    def debye_precision(self, value: float) -> None:
        self._set_and_click("_debye_precision", value)

    def _cache_qpoints(self) -> None:
        dq = self._qstep
        self._qmin_points = int(self._qmin / dq)
        self._total_points = int(math.ceil(self._qmax / dq))
        # include point for qmax when it is a close multiple of dq
        if eps_eq(self._qmax, self._total_points * dq):
            self._total_points += 1

    def qmin_points(self) -> int:
        return self._qmin_points

    def total_qpoints(self) -> int:
        return self._total_points

    # -------------------------------------------------------------------------
    # results
    # -------------------------------------------------------------------------

    def get_qgrid(self) -> torch.Tensor:
        """Q values of the last evaluated result."""
        return self._qgrid.clone()

    def get_f(self) -> torch.Tensor:
        """Debye sum normalized by the average scattering power."""
        rv = self.value
        totocc = self._structure.total_occupancy()
        sfavg = self._weights.average(self._structure)
        fscale = 0.0 if sfavg * totocc == 0 else 1.0 / (sfavg * sfavg * totocc)
        rv[self._value_kq0:] *= fscale
        return rv

    # -------------------------------------------------------------------------
    # PairQuantity overloads
    # -------------------------------------------------------------------------

    def reset_value(self) -> None:
        self._cache_qpoints()
        self.resize_value(self._total_points)
        self._qgrid = torch.arange(self._total_points, dtype=VALUE_DTYPE, device=self.device) * self._qstep
        self._value_kq0 = self._qmin_points
        super().reset_value()

    def add_pair_contribution(self, bnds, summationscale: int) -> None:
        dist = bnds.distance
        if eps_eq(0.0, dist):
            return
        stru = bnds.structure
        sfprod = (self._weights.site_weight(stru, bnds.site0) *
                  self._weights.site_weight(stru, bnds.site1))
        kq0 = self._qmin_points
        q = torch.arange(kq0, self._total_points, dtype=self._value.dtype,
                         device=self._value.device) * self._qstep
        # Debye-Waller damping from the mean square displacement along the bond
        dwscale = torch.exp(-0.5 * bnds.msd() * q ** 2)
        amplitude = abs(summationscale) * dwscale * sfprod / dist
        below = torch.nonzero(amplitude.abs() < self._debye_precision)
        npts = int(below[0]) if len(below) else len(q)
        sign = 1.0 if summationscale > 0 else -1.0
        self._value[kq0:kq0 + npts] += sign * amplitude[:npts] * torch.sin(q[:npts] * dist)
