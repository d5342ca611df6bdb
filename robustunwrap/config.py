# robustunwrap/config.py
"""Run configuration for the robust region-growing unwrapper."""

from dataclasses import dataclass, fields, replace
from typing import Optional

DEFAULT_NUM_BINS = 500
DEFAULT_QUEUE_CAPACITY = 100
DEFAULT_CAPACITY_INCREMENT = 500
DEFAULT_THRESHOLD_MARGIN = 1.00001
MIN_NUM_BINS = 2


@dataclass(frozen=True)
class RobustUnwrapConfig:
    """
    Parameters of one unwrap call.

    Attributes:
        n_bins: Requested number of risk bins. Values below 2 are raised to 2
            when the bins are built.
        initial_capacity: Number of records a bin queue holds before its first growth.
        capacity_increment: Number of records added to a queue each time it fills.
        max_queue_capacity: Optional ceiling on queue capacity. Growth beyond it is
            handled as an allocation failure. None means unbounded.
        threshold_margin: Factor applied to the risk span (max - min) so that the
            largest risk value falls under the last bin threshold.
        negate_magnitude: If True the driver treats its input as magnitude and uses
            -magnitude as risk, so high-magnitude voxels are unwrapped first.
            If False the input is used as the risk field directly.
    """
    n_bins: int = DEFAULT_NUM_BINS
    initial_capacity: int = DEFAULT_QUEUE_CAPACITY
    capacity_increment: int = DEFAULT_CAPACITY_INCREMENT
    max_queue_capacity: Optional[int] = None
    threshold_margin: float = DEFAULT_THRESHOLD_MARGIN
    negate_magnitude: bool = True

    def __post_init__(self):
        if self.initial_capacity < 2:
            raise ValueError(f"initial_capacity must be at least 2, got {self.initial_capacity}")
        if self.capacity_increment < 1:
            raise ValueError(f"capacity_increment must be positive, got {self.capacity_increment}")
        if self.max_queue_capacity is not None and self.max_queue_capacity < self.initial_capacity:
            raise ValueError("max_queue_capacity cannot be smaller than initial_capacity.")
        if self.threshold_margin < 1.0:
            raise ValueError(f"threshold_margin must be >= 1.0, got {self.threshold_margin}")

    @property
    def effective_bins(self) -> int:
        return max(int(self.n_bins), MIN_NUM_BINS)

    def with_overrides(self, **overrides) -> "RobustUnwrapConfig":
        """Returns a copy with every non-None keyword replacing the matching field."""
        names = {f.name for f in fields(self)}
        unknown = set(overrides) - names
        if unknown:
            raise TypeError(f"Unknown configuration fields: {sorted(unknown)}")
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self
