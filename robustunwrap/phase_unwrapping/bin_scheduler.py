# robustunwrap/phase_unwrapping/bin_scheduler.py
"""Risk-ordered bin scheduling for region-growing phase unwrapping."""

import logging
from typing import Iterator, List, Optional

import numpy as np

from ..config import DEFAULT_CAPACITY_INCREMENT, DEFAULT_QUEUE_CAPACITY, DEFAULT_THRESHOLD_MARGIN, MIN_NUM_BINS
from .record_queue import PointRecord, RecordQueue

logger = logging.getLogger(__name__)


def compute_bin_thresholds(
    risk: np.ndarray,
    n_bins: int,
    margin: float = DEFAULT_THRESHOLD_MARGIN
) -> np.ndarray:
    """
    Computes ascending risk cutoffs, one per bin.

    The cutoffs are spaced linearly from min(risk) to min(risk) + margin * (max(risk) - min(risk)),
    so the largest risk value sits strictly under the last cutoff whenever the field is not uniform.

    Args:
        risk (np.ndarray): Risk field, any shape.
        n_bins (int): Requested bin count. Raised to 2 if smaller.
        margin (float): Inflation of the risk span. Defaults to 1.00001.

    Returns:
        np.ndarray: float64 array of shape (max(n_bins, 2),).
    """
    n_bins = max(int(n_bins), MIN_NUM_BINS)
    risk = np.asarray(risk, dtype=np.float64)
    if risk.size == 0:
        raise ValueError("Cannot compute bin thresholds of an empty risk field.")
    if not np.isfinite(risk).all():
        raise ValueError("Risk field must be finite to compute bin thresholds.")
    r_min = float(np.min(risk))
    r_max = float(np.max(risk))
    span = margin * (r_max - r_min)
    return r_min + span * np.arange(n_bins, dtype=np.float64) / (n_bins - 1)


class RiskBinScheduler:
    """
    Owns one point queue per risk bin and decides in which bin a voxel is expanded.

    Bins are drained in ascending order. A popped voxel whose risk exceeds the
    threshold of the bin being drained is moved, unmodified, to the first later
    bin whose threshold it does not exceed. Everything else is handed back to the
    caller for neighbour expansion. Records pushed while a bin is being drained
    are picked up by the same drain.

    Args:
        risk (np.ndarray): Flat risk field indexed by the record's `p`.
        n_bins (int): Requested bin count, raised to 2 if smaller.
        initial_capacity (int): Initial capacity of every bin queue.
        capacity_increment (int): Growth step of every bin queue.
        max_capacity (int, optional): Queue capacity ceiling.
        margin (float): Threshold span inflation, see `compute_bin_thresholds`.
    """

    def __init__(
        self,
        risk: np.ndarray,
        n_bins: int,
        initial_capacity: int = DEFAULT_QUEUE_CAPACITY,
        capacity_increment: int = DEFAULT_CAPACITY_INCREMENT,
        max_capacity: Optional[int] = None,
        margin: float = DEFAULT_THRESHOLD_MARGIN
    ):
        self.risk = np.asarray(risk, dtype=np.float64).ravel()
        self.thresholds = compute_bin_thresholds(self.risk, n_bins, margin)
        self.n_bins = len(self.thresholds)
        self.queues: List[RecordQueue] = [
            RecordQueue(initial_capacity, capacity_increment, max_capacity)
            for _ in range(self.n_bins)
        ]
        self.n_processed = [0] * self.n_bins
        self.n_deferred = [0] * self.n_bins
        self._clamp_warned = False
        logger.debug(
            "Bin thresholds: %d bins spanning [%g, %g]",
            self.n_bins, self.thresholds[0], self.thresholds[-1]
        )

    def push(self, bin_index: int, record: PointRecord) -> None:
        self.queues[bin_index].push(record)

    def is_too_risky(self, bin_index: int, risk_value: float) -> bool:
        # The last bin accepts everything; there is nowhere left to defer to.
        if bin_index == self.n_bins - 1:
            return False
        return risk_value > self.thresholds[bin_index]

    def deferral_bin(self, bin_index: int, risk_value: float) -> int:
        """Smallest bin after `bin_index` whose threshold is not exceeded by `risk_value`."""
        target = bin_index + 1
        while target < self.n_bins and risk_value > self.thresholds[target]:
            target += 1
        if target == self.n_bins:
            if not self._clamp_warned:
                logger.warning(
                    "Risk value %g exceeds the last bin threshold %g; clamping to the last bin.",
                    risk_value, self.thresholds[-1]
                )
                self._clamp_warned = True
            target = self.n_bins - 1
        return target

    def drain(self, bin_index: int) -> Iterator[PointRecord]:
        """
        Pops bin `bin_index` until it is empty, deferring risky voxels and yielding
        the rest. The caller may push onto the same bin while iterating.
        """
        queue = self.queues[bin_index]
        while queue:
            record = queue.pop()
            risk_value = self.risk[record.p]
            if self.is_too_risky(bin_index, risk_value):
                self.push(self.deferral_bin(bin_index, risk_value), record)
                self.n_deferred[bin_index] += 1
            else:
                self.n_processed[bin_index] += 1
                yield record

    def release(self, bin_index: int) -> None:
        self.queues[bin_index].release()

    def release_all(self) -> None:
        for queue in self.queues:
            queue.release()
