"""
engine/chunker.py – Round-robin split of pair loops across workers.

All workers run the identical loops over the same structure. A single
counter seeded at the worker index decides which iterations a worker
processes, so the union over workers covers every iteration exactly once
without any synchronization.
"""

# tolerated load variance for splitting the outer loop, see split_outer
CPU_LOAD_VARIANCE = 0.1


def check_worker_count(ncpu: int) -> None:
    if ncpu < 1:
        raise ValueError("Number of CPU ncpu must be at least 1.")


class ParallelChunker:
    """Iteration filter for one worker out of ``ncpu``."""

    def __init__(self, cpuindex: int = 0, ncpu: int = 1):
        check_worker_count(ncpu)
        self.cpuindex = cpuindex
        self.ncpu = ncpu
        self._counter = cpuindex

    @property
    def is_parallel(self) -> bool:
        return self.ncpu > 1

    def skip(self) -> bool:
        """Advance the counter, True when this iteration belongs to another worker."""
        rv = (self._counter % self.ncpu) != 0
        self._counter += 1
        return rv

    def split_outer(self, cntsites: int) -> bool:
        """
        Choose between chopping the anchor loop and the bond loop.

        The outer loop is split when there are enough anchor sites for the
        workers to get similar loads, otherwise the inner loop is split.
        """
        return self.ncpu <= (cntsites - 1) * CPU_LOAD_VARIANCE + 1
