"""
engine/evaluator.py – Evaluation strategies for pair quantities
================================================================

Three interchangeable evaluators bring a ``PairQuantity`` up to date for a
structure:

    - BasicEvaluator: sums all site pairs from scratch.
    - OptimizedEvaluator: remembers the last structure and, when the new one
      differs by a few sites, subtracts pairs of the removed sites and adds
      pairs of the added sites. Falls back to the full sum otherwise.
    - CheckEvaluator: runs the optimized update and verifies it against a
      full evaluation of a private copy, raising
      ``EvaluatorConsistencyError`` on mismatch.

Usage:
    >>> pq.set_evaluator_type("CHECK")
    >>> pq.eval(structure)

Evaluators share their settings (flags, parallel configuration, value
version) through one ``EvaluatorSettings`` object, so the composite
evaluators can delegate to the basic one.
"""

from __future__ import annotations

import copy
import enum
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

import torch

from torchpairsum.common.ticker import EventTicker
from torchpairsum.common.utils import SQRT_DOUBLE_EPS
from torchpairsum.engine.chunker import ParallelChunker, check_worker_count
from torchpairsum.model.difference import DiffMethod
from torchpairsum.model.quantity import ComparableState

logger = logging.getLogger(__name__)


class EvaluatorConsistencyError(RuntimeError):
    """Optimized and full evaluation gave different results."""


# =============================================================================
# Enumerations
# =============================================================================

class EvaluatorType(enum.Enum):
    NONE = "none"
    BASIC = "basic"
    OPTIMIZED = "optimized"
    CHECK = "check"


class EvaluatorFlag(enum.IntFlag):
    USEFULLSUM = 1          # sum all ordered pairs instead of the half sum
    FIXEDSITEINDEX = 2      # results refer to site indices


_TYPE_ALIASES = {
    "basic": EvaluatorType.BASIC,
    "fromscratch": EvaluatorType.BASIC,
    "from_scratch": EvaluatorType.BASIC,
    "optimized": EvaluatorType.OPTIMIZED,
    "incremental": EvaluatorType.OPTIMIZED,
    "check": EvaluatorType.CHECK,
    "verifying": EvaluatorType.CHECK,
}


def parse_evaluator_type(evtype) -> EvaluatorType:
    """Convert an evaluator type or its name to ``EvaluatorType``."""
    if isinstance(evtype, EvaluatorType):
        if evtype is EvaluatorType.NONE:
            raise ValueError(f"Invalid evaluator type {evtype!r}.")
        return evtype
    if isinstance(evtype, str) and evtype.lower() in _TYPE_ALIASES:
        return _TYPE_ALIASES[evtype.lower()]
    raise ValueError(f"Invalid evaluator type {evtype!r}.")


# =============================================================================
# Shared settings
# =============================================================================

@dataclass
class EvaluatorSettings:
    flags: EvaluatorFlag = EvaluatorFlag(0)
    cpuindex: int = 0
    ncpu: int = 1
    value_ticker: EventTicker = field(default_factory=EventTicker)
    type_used: EvaluatorType = EvaluatorType.NONE

    def copy(self) -> "EvaluatorSettings":
        return EvaluatorSettings(
            flags=self.flags,
            cpuindex=self.cpuindex,
            ncpu=self.ncpu,
            value_ticker=self.value_ticker.copy(),
            type_used=self.type_used,
        )


def _complementary_indices(count: int, indices: List[int]) -> List[int]:
    """Indices in ``range(count)`` missing in the sorted ``indices``."""
    skip = set(indices)
    return [k for k in range(count) if k not in skip]


# =============================================================================
# Evaluators
# =============================================================================

class BaseEvaluator(ABC):
    """Common configuration of pair-quantity evaluators."""

    def __init__(self, settings: Optional[EvaluatorSettings] = None):
        self._settings = settings if settings is not None else EvaluatorSettings()

    @property
    @abstractmethod
    def type(self) -> EvaluatorType:
        ...

    @abstractmethod
    def update_value(self, pq, stru) -> None:
        ...

    def validate(self, pq) -> None:
        """Raise when the evaluator cannot work with ``pq``."""
        return

    @property
    def type_used(self) -> EvaluatorType:
        return self._settings.type_used

    @property
    def value_ticker(self) -> EventTicker:
        return self._settings.value_ticker

    # flags

    def set_flag(self, flag: EvaluatorFlag, value: bool) -> None:
        if value:
            self._settings.flags |= flag
        else:
            self._settings.flags &= ~flag

    def get_flag(self, flag: EvaluatorFlag) -> bool:
        return bool(self._settings.flags & flag)

    def set_flags(self, *, usefullsum: Optional[bool] = None, fixedsiteindex: Optional[bool] = None) -> None:
        if usefullsum is not None:
            self.set_flag(EvaluatorFlag.USEFULLSUM, usefullsum)
        if fixedsiteindex is not None:
            self.set_flag(EvaluatorFlag.FIXEDSITEINDEX, fixedsiteindex)

    # parallel configuration

    def setup_parallel_run(self, cpuindex: int, ncpu: int) -> None:
        check_worker_count(ncpu)
        if not 0 <= cpuindex < ncpu:
            raise ValueError(f"CPU index {cpuindex} must be in range [0, {ncpu}).")
        self._settings.cpuindex = cpuindex
        self._settings.ncpu = ncpu

    @property
    def cpuindex(self) -> int:
        return self._settings.cpuindex

    @property
    def ncpu(self) -> int:
        return self._settings.ncpu

    def is_parallel(self) -> bool:
        return self._settings.ncpu > 1

    def _chunker(self) -> ParallelChunker:
        return ParallelChunker(self._settings.cpuindex, self._settings.ncpu)


class BasicEvaluator(BaseEvaluator):
    """Robust evaluator, the result is always calculated from scratch."""

    @property
    def type(self) -> EvaluatorType:
        return EvaluatorType.BASIC

    def update_value(self, pq, stru) -> None:
        self._settings.type_used = EvaluatorType.BASIC
        pq.set_structure(stru)
        stru = pq.structure
        bnds = stru.create_bond_generator()
        pq.configure_bond_generator(bnds)
        cntsites = stru.count_sites()
        chunker = self._chunker()
        # split outer loop for many atoms, the CPUs should have similar load
        chop_outer = chunker.is_parallel and chunker.split_outer(cntsites)
        chop_inner = chunker.is_parallel and not chop_outer
        hasmask = pq.has_mask()
        usefullsum = self.get_flag(EvaluatorFlag.USEFULLSUM)
        for i0 in range(cntsites):
            if chop_outer and chunker.skip():
                continue
            bnds.select_anchor_site(i0)
            bnds.select_site_range(0, cntsites if usefullsum else i0 + 1)
            for b in bnds:
                if chop_inner and chunker.skip():
                    continue
                i1 = b.site1
                if hasmask and not pq.get_pair_mask(i0, i1, stru):
                    continue
                summationscale = 1 if (usefullsum or i0 == i1) else 2
                pq.add_pair_contribution(b, summationscale)
        self._settings.value_ticker.click()


class OptimizedEvaluator(BaseEvaluator):
    """Evaluator with fast updates for structures that changed in a few sites."""

    def __init__(self, settings: Optional[EvaluatorSettings] = None):
        super().__init__(settings)
        self._basic = BasicEvaluator(self._settings)
        self._last_structure = None

    @property
    def type(self) -> EvaluatorType:
        return EvaluatorType.OPTIMIZED

    def validate(self, pq) -> None:
        # the quantity must support stash_partial_value
        pq.stash_partial_value()
        pq.restore_partial_value()

    def update_value(self, pq, stru) -> None:
        self._settings.type_used = EvaluatorType.OPTIMIZED
        value_ticker = self._settings.value_ticker
        # full evaluation after a configuration change or without a baseline
        if pq.ticker >= value_ticker or self._last_structure is None:
            return self._update_completely(pq, stru, "no valid baseline")
        # value is current when the structure was not modified since
        if stru is pq.structure and stru.ticker == self._last_structure.ticker:
            return
        sd = self._last_structure.diff(stru)
        # do not do fast updates if they take more work
        if not sd.allows_fast_update():
            return self._update_completely(pq, stru, f"{sd.diffmethod.name} difference")
        if ((self.get_flag(EvaluatorFlag.FIXEDSITEINDEX) or pq.has_pair_mask())
                and sd.diffmethod is not DiffMethod.SIDE_BY_SIDE):
            return self._update_completely(pq, stru, "site indices are not preserved")
        logger.debug(
            "fast update of %s, removing %d and adding %d sites",
            type(pq).__name__, len(sd.pop0), len(sd.add1),
        )
        usefullsum = self.get_flag(EvaluatorFlag.USEFULLSUM)
        hasmask = pq.has_mask()
        chunker = self._chunker()
        # Remove contributions from the popped sites of the old structure.
        # The anchor loop is split in case of parallel evaluation.
        stru0 = sd.stru0
        bnds0 = stru0.create_bond_generator()
        pq.configure_bond_generator(bnds0)
        npop = len(sd.pop0)
        anchors = list(sd.pop0)
        if anchors:
            anchors += _complementary_indices(stru0.count_sites(), sd.pop0)
        bnds0.select_sites(anchors)
        last_anchor = len(anchors) if usefullsum else npop
        needsreselection = usefullsum
        for k in range(last_anchor):
            if chunker.skip():
                continue
            i0 = anchors[k]
            bnds0.select_anchor_site(i0)
            # half sum, deselect the popped sites visited before
            if not usefullsum:
                bnds0.select_sites(anchors[k:])
            # full sum, pair unchanged anchors only with the popped sites
            elif needsreselection and k >= npop:
                bnds0.select_sites(sd.pop0)
                needsreselection = False
            for b in bnds0:
                i1 = b.site1
                if hasmask and not pq.get_pair_mask(i0, i1, stru0):
                    continue
                summationscale = -1 if (usefullsum or i0 == i1) else -2
                pq.add_pair_contribution(b, summationscale)
        # set_structure resets the value, keep the partial sum
        pq.stash_partial_value()
        # custom_pq_config of the new structure may change the configuration
        pq.set_structure(sd.stru1)
        if pq.ticker >= value_ticker:
            pq.restore_partial_value()
            return self._update_completely(pq, stru, "structure changed the configuration")
        pq.restore_partial_value()
        # Add contributions from the new sites of the updated structure.
        stru1 = pq.structure
        bnds1 = stru1.create_bond_generator()
        pq.configure_bond_generator(bnds1)
        nadd = len(sd.add1)
        anchors = list(sd.add1)
        if anchors:
            anchors = _complementary_indices(stru1.count_sites(), sd.add1) + anchors
        bnds1.select_sites(sd.add1)
        first_anchor = 0 if usefullsum else len(anchors) - nadd
        needsreselection = usefullsum
        for k in range(first_anchor, len(anchors)):
            if chunker.skip():
                continue
            i0 = anchors[k]
            bnds1.select_anchor_site(i0)
            # half sum, activate the added site
            if not usefullsum:
                bnds1.select_sites(anchors[:k + 1])
            # full sum, select all sites once anchored at an added site
            elif needsreselection and k >= len(anchors) - nadd:
                bnds1.select_sites(anchors)
                needsreselection = False
            for b in bnds1:
                i1 = b.site1
                if hasmask and not pq.get_pair_mask(i0, i1, stru1):
                    continue
                summationscale = 1 if (usefullsum or i0 == i1) else 2
                pq.add_pair_contribution(b, summationscale)
        self._last_structure = stru1.clone()
        value_ticker.click()

    def _update_completely(self, pq, stru, reason: str) -> None:
        logger.debug("full evaluation of %s, %s", type(pq).__name__, reason)
        self._basic.update_value(pq, stru)
        self._last_structure = pq.structure.clone()


class _SavedResults:
    """Snapshot of quantity results for the consistency check."""

    def __init__(self, pq):
        self.value = pq.value
        self.extra = pq.comparable_state() if isinstance(pq, ComparableState) else None

    def matches(self, pq) -> bool:
        saved = self.value
        current = pq.value
        if saved.shape != current.shape:
            return False
        scale = 1.0 if saved.numel() == 0 else max(saved.abs().max().item(), 1.0)
        eps = SQRT_DOUBLE_EPS * scale
        if not torch.allclose(saved, current, rtol=0.0, atol=eps):
            return False
        if isinstance(pq, ComparableState):
            return pq.compare_state(self.extra)
        return True


class CheckEvaluator(BaseEvaluator):
    """Optimized evaluator verified by a full evaluation after each fast update."""

    def __init__(self, settings: Optional[EvaluatorSettings] = None):
        super().__init__(settings)
        self._optimized = OptimizedEvaluator(self._settings)

    @property
    def type(self) -> EvaluatorType:
        return EvaluatorType.CHECK

    def validate(self, pq) -> None:
        self._optimized.validate(pq)

    def update_value(self, pq, stru) -> None:
        self._optimized.update_value(pq, stru)
        if self._settings.type_used is EvaluatorType.BASIC:
            return
        # worker partials of fast updates and full sums visit different pairs
        if self.is_parallel():
            logger.debug("skipped verification of worker %d of %d", self.cpuindex, self.ncpu)
            return
        reference = copy.deepcopy(pq)
        BasicEvaluator(self._settings.copy()).update_value(reference, pq.structure)
        self._settings.type_used = EvaluatorType.CHECK
        if not _SavedResults(reference).matches(pq):
            raise EvaluatorConsistencyError("Inconsistent results from OPTIMIZED evaluation.")


# =============================================================================
# Factory
# =============================================================================

_EVALUATOR_CLASSES = {
    EvaluatorType.BASIC: BasicEvaluator,
    EvaluatorType.OPTIMIZED: OptimizedEvaluator,
    EvaluatorType.CHECK: CheckEvaluator,
}


def create_evaluator(evtype, source: Optional[BaseEvaluator] = None) -> BaseEvaluator:
    """
    Create an evaluator of the given type.

    Args:
        evtype: EvaluatorType or its name, "fromscratch", "incremental" and
            "verifying" are accepted as aliases
        source: optional evaluator whose flags, parallel configuration and
            value version are copied

    Returns:
        New evaluator instance
    """
    cls = _EVALUATOR_CLASSES[parse_evaluator_type(evtype)]
    settings = source._settings.copy() if source is not None else None
    return cls(settings)
