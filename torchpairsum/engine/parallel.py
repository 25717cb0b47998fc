"""
engine/parallel.py – Evaluate a pair quantity on several workers.

Each worker owns a private copy of the quantity configured with its worker
index, so it keeps its own incremental baseline for the subset of pairs it
is responsible for. The partial values are summed after every evaluation.
"""

from __future__ import annotations

import copy
import logging
from concurrent.futures import ThreadPoolExecutor
from itertools import repeat
from typing import Callable, List, Optional

import torch

from torchpairsum.engine.chunker import check_worker_count
from torchpairsum.model.quantity import ComparableState

logger = logging.getLogger(__name__)


def _evaluate_worker(pq, stru):
    pq.eval(stru)
    return pq


class ParallelCalculator:
    """
    Sum of a pair quantity evaluated by ``ncpu`` workers.

    Args:
        pq: configured pair quantity used as a template, it is not modified
            and its value must be additive over subsets of pairs
        ncpu: number of workers
        pmap: optional ``map``-like callable, e.g. ``multiprocessing.Pool.map``.
            Workers are evaluated in a thread pool when not given.
    """

    def __init__(self, pq, ncpu: int, pmap: Optional[Callable] = None):
        check_worker_count(ncpu)
        if isinstance(pq, ComparableState):
            raise ValueError(
                f"{type(pq).__name__} results cannot be summed over workers."
            )
        self.ncpu = ncpu
        self._pmap = pmap
        self._workers: List = []
        for cpuindex in range(ncpu):
            worker = copy.deepcopy(pq)
            worker.setup_parallel_run(cpuindex, ncpu)
            self._workers.append(worker)
        self._value: Optional[torch.Tensor] = None

    @property
    def workers(self) -> List:
        return list(self._workers)

    def eval(self, stru) -> torch.Tensor:
        logger.info("parallel evaluation of %s on %d workers",
                    type(self._workers[0]).__name__, self.ncpu)
        if self._pmap is not None:
            # workers may come back as copies from other processes
            self._workers = list(self._pmap(_evaluate_worker, self._workers, repeat(stru, self.ncpu)))
        else:
            with ThreadPoolExecutor(max_workers=self.ncpu) as executor:
                self._workers = list(executor.map(_evaluate_worker, self._workers, repeat(stru)))
        self._value = torch.stack([w.value for w in self._workers]).sum(dim=0)
        return self._value.clone()

    __call__ = eval

    @property
    def value(self) -> torch.Tensor:
        if self._value is None:
            raise RuntimeError("ParallelCalculator has not been evaluated yet.")
        return self._value.clone()
