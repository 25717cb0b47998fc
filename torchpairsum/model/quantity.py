"""
model/quantity.py – Base class for quantities summed over site pairs
=====================================================================

A ``PairQuantity`` owns the result vector of a pairwise sum together with the
structure it was computed for. Concrete quantities only implement how one
bond changes the result::

    class BondCounter(PairQuantity):
        def reset_value(self):
            self.resize_value(1)
            super().reset_value()

        def add_pair_contribution(self, bnds, summationscale):
            self._value[0] += summationscale

Everything else (which pairs to visit, when an incremental update is valid)
is decided by the evaluator, see ``torchpairsum.engine.evaluator``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Optional, Tuple, Union

import torch

from torchpairsum.common.ticker import EventTicker
from torchpairsum.common.utils import VALUE_DTYPE, ensure_non_negative
from torchpairsum.model.structure import StructureAdapter

logger = logging.getLogger(__name__)

ALL_SITES = "all"
DEFAULT_RMAX = 10.0

SiteSelection = Union[int, str, Iterable[int]]


class ComparableState(ABC):
    """
    Capability of quantities with outputs besides ``value``.

    The consistency check of evaluators saves this state before a second
    evaluation and compares it afterwards.
    """

    @abstractmethod
    def comparable_state(self) -> Any:
        ...

    @abstractmethod
    def compare_state(self, saved: Any) -> bool:
        ...


class PairQuantity:
    """Result of a sum over pairs of sites of a structure."""

    def __init__(
        self,
        *,
        rmin: float = 0.0,
        rmax: float = DEFAULT_RMAX,
        evaluator: str = "OPTIMIZED",
        device: str | torch.device = "cpu",
    ) -> None:
        # deferred to avoid a cycle, the engine imports model classes
        from torchpairsum.engine.evaluator import create_evaluator

        self.ticker = EventTicker()
        ensure_non_negative("rmin", rmin)
        ensure_non_negative("rmax", rmax)
        self._rmin = float(rmin)
        self._rmax = float(rmax)
        self.device = torch.device(device)
        self._value = torch.zeros(0, dtype=VALUE_DTYPE, device=self.device)
        self._stashed_value: Optional[torch.Tensor] = None
        self._structure: StructureAdapter = StructureAdapter()
        # mask data
        self._default_mask = True
        self._pair_mask: Dict[Tuple[int, int], bool] = {}
        # site index -> (serial, mask) for pairs of a site with any site
        self._site_wildcard: Dict[int, Tuple[int, bool]] = {}
        self._mask_serial = 0
        self._type_mask: Dict[Tuple[str, str], bool] = {}
        self._type_wildcard: Dict[str, bool] = {}
        self._evaluator = create_evaluator(evaluator)
        self._evaluator.validate(self)
        self.ticker.click()

    # -------------------------------------------------------------------------
    # evaluation
    # -------------------------------------------------------------------------

    def eval(self, stru: Optional[StructureAdapter] = None) -> torch.Tensor:
        """Bring the value up to date for ``stru`` and return it."""
        stru = self._structure if stru is None else stru
        self._evaluator.update_value(self, stru)
        self.finish_value()
        return self.value

    __call__ = eval

    @property
    def value(self) -> torch.Tensor:
        return self._value.detach().clone()

    @property
    def structure(self) -> StructureAdapter:
        return self._structure

    def set_structure(self, stru: Optional[StructureAdapter]) -> None:
        self._structure = StructureAdapter() if stru is None else stru
        self._structure.custom_pq_config(self)
        self.reset_value()

    # -------------------------------------------------------------------------
    # hooks for concrete quantities
    # -------------------------------------------------------------------------

    def reset_value(self) -> None:
        self._value.zero_()

    def resize_value(self, size: int) -> None:
        self._value = torch.zeros(size, dtype=VALUE_DTYPE, device=self.device)

    def add_pair_contribution(self, bnds, summationscale: int) -> None:
        raise NotImplementedError(f"{type(self).__name__} must implement add_pair_contribution.")

    def configure_bond_generator(self, bnds) -> None:
        bnds.set_rmin(self._rmin)
        bnds.set_rmax(self._rmax)

    def finish_value(self) -> None:
        return

    def stash_partial_value(self) -> None:
        self._stashed_value = self._value.clone()

    def restore_partial_value(self) -> None:
        if self._stashed_value is None:
            raise RuntimeError("There is no stashed partial value to restore.")
        self._value = self._stashed_value
        self._stashed_value = None

    # -------------------------------------------------------------------------
    # configuration, changes invalidate the value through the ticker
    # -------------------------------------------------------------------------

    @property
    def rmin(self) -> float:
        return self._rmin

    @rmin.setter
    def rmin(self, value: float) -> None:
        ensure_non_negative("rmin", value)
        if float(value) != self._rmin:
            self._rmin = float(value)
            self.ticker.click()

    @property
    def rmax(self) -> float:
        return self._rmax

    @rmax.setter
    def rmax(self, value: float) -> None:
        ensure_non_negative("rmax", value)
        if float(value) != self._rmax:
            self._rmax = float(value)
            self.ticker.click()

    # -------------------------------------------------------------------------
    # evaluator access
    # -------------------------------------------------------------------------

    @property
    def evaluator(self):
        return self._evaluator

    @property
    def evaluator_type(self):
        return self._evaluator.type

    @property
    def evaluator_type_used(self):
        return self._evaluator.type_used

    @property
    def value_ticker(self) -> EventTicker:
        """Version of ``value``, stamped by the evaluator after each update."""
        return self._evaluator.value_ticker

    def set_evaluator_type(self, evtype) -> None:
        from torchpairsum.engine.evaluator import create_evaluator, parse_evaluator_type

        if self._evaluator.type is parse_evaluator_type(evtype):
            return
        pqev = create_evaluator(evtype, self._evaluator)
        pqev.validate(self)
        self._evaluator = pqev
        logger.debug("%s uses %s evaluator", type(self).__name__, pqev.type.name)

    def setup_parallel_run(self, cpuindex: int, ncpu: int) -> None:
        self._evaluator.setup_parallel_run(cpuindex, ncpu)

    def set_flags(self, **flags: bool) -> None:
        self._evaluator.set_flags(**flags)

    # -------------------------------------------------------------------------
    # masking of site pairs
    # -------------------------------------------------------------------------

    @staticmethod
    def _site_indices(sel: SiteSelection) -> Tuple[int, ...]:
        if isinstance(sel, str):
            raise ValueError(f"Invalid site selection {sel!r}.")
        if isinstance(sel, int):
            return (sel,)
        return tuple(sel)

    def set_pair_mask(self, i: SiteSelection, j: SiteSelection, mask: bool) -> None:
        """
        Include (``mask=True``) or exclude site pairs from the sum.

        Sites are referred to by index. Passing ``"all"`` for both indices
        applies to every pair, for one index it applies to all pairs of the
        other sites, including sites added later. The latest setting wins.
        """
        mask = bool(mask)
        if i == ALL_SITES and j == ALL_SITES:
            self.mask_all_pairs(mask)
            return
        if self._type_mask or self._type_wildcard:
            self._type_mask.clear()
            self._type_wildcard.clear()
        if i == ALL_SITES or j == ALL_SITES:
            for k in self._site_indices(i if j == ALL_SITES else j):
                self._set_site_wildcard(k, mask)
        else:
            for i0 in self._site_indices(i):
                for j0 in self._site_indices(j):
                    key = (min(i0, j0), max(i0, j0))
                    if mask == self._default_mask and not any(k in self._site_wildcard for k in key):
                        self._pair_mask.pop(key, None)
                    else:
                        self._pair_mask[key] = mask
        self.ticker.click()

    def _set_site_wildcard(self, k: int, mask: bool) -> None:
        for key in [key for key in self._pair_mask if k in key]:
            del self._pair_mask[key]
        self._site_wildcard.pop(k, None)
        if mask != self._default_mask or self._site_wildcard:
            self._mask_serial += 1
            self._site_wildcard[k] = (self._mask_serial, mask)

    def set_type_mask(self, tp0: str, tp1: str, mask: bool) -> None:
        """Include or exclude pairs by atom types, ``"all"`` matches any type."""
        if tp0 == ALL_SITES and tp1 == ALL_SITES:
            self.mask_all_pairs(mask)
            return
        self._pair_mask.clear()
        self._site_wildcard.clear()
        if tp0 == ALL_SITES or tp1 == ALL_SITES:
            tp = tp1 if tp0 == ALL_SITES else tp0
            self._type_wildcard[tp] = bool(mask)
        else:
            self._type_mask[tuple(sorted((tp0, tp1)))] = bool(mask)
        self.ticker.click()

    def mask_all_pairs(self, mask: bool) -> None:
        self._pair_mask.clear()
        self._site_wildcard.clear()
        self._type_mask.clear()
        self._type_wildcard.clear()
        self._default_mask = bool(mask)
        self.ticker.click()

    def invert_mask(self) -> None:
        self._default_mask = not self._default_mask
        for store in (self._pair_mask, self._type_mask, self._type_wildcard):
            for key in store:
                store[key] = not store[key]
        for k, (serial, mask) in self._site_wildcard.items():
            self._site_wildcard[k] = (serial, not mask)
        self.ticker.click()

    def get_pair_mask(self, i: int, j: int, stru: Optional[StructureAdapter] = None) -> bool:
        """True when the pair of sites ``i``, ``j`` of ``stru`` is summed."""
        if self._type_mask or self._type_wildcard:
            stru = self._structure if stru is None else stru
            tp0 = stru.site_atom_type(i)
            tp1 = stru.site_atom_type(j)
            return self.get_type_mask(tp0, tp1)
        key = (min(i, j), max(i, j))
        if key in self._pair_mask:
            return self._pair_mask[key]
        wildcards = [self._site_wildcard[k] for k in key if k in self._site_wildcard]
        if wildcards:
            return max(wildcards)[1]
        return self._default_mask

    def get_type_mask(self, tp0: str, tp1: str) -> bool:
        key = tuple(sorted((tp0, tp1)))
        if key in self._type_mask:
            return self._type_mask[key]
        for tp in key:
            if tp in self._type_wildcard:
                return self._type_wildcard[tp]
        return self._default_mask

    def has_mask(self) -> bool:
        """True when some site pairs are excluded from the sum."""
        if not self._default_mask:
            return True
        if any(not m for _, m in self._site_wildcard.values()):
            return True
        return any(
            not m for store in (self._pair_mask, self._type_mask, self._type_wildcard)
            for m in store.values()
        )

    def has_pair_mask(self) -> bool:
        """True when the mask refers to site indices."""
        return bool(self._pair_mask or self._site_wildcard)
