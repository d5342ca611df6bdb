# robustunwrap/phase_unwrapping/region_growing.py
"""
Magnitude-ordered region growing (flood fill) over a 3D voxel grid.

Every voxel is unwrapped exactly once, relative to whichever already-unwrapped
6-neighbour reaches it first. Reach order is fixed by the bin scheduler:
bins in ascending risk order, FIFO within a bin. The result therefore depends
on that order and is reproduced exactly for identical inputs.

Based on the 3D unwrapping algorithm described in:
Cusack, R. & Papadakis, N. (2002). New robust 3-D phase unwrapping algorithms:
application to magnetic field mapping and undistorting echoplanar images.
NeuroImage, 16(3), 754-764.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np

from ..errors import QueueOverflowError
from .bin_scheduler import RiskBinScheduler
from .record_queue import PointRecord

logger = logging.getLogger(__name__)

PI = math.pi
TWO_PI = 2 * math.pi

# (dx, dy, dz) in the order neighbours are checked: +z, -z, +y, -y, +x, -x
NEIGHBOR_OFFSETS: Tuple[Tuple[int, int, int], ...] = (
    (0, 0, 1), (0, 0, -1),
    (0, 1, 0), (0, -1, 0),
    (1, 0, 0), (-1, 0, 0),
)


@dataclass(frozen=True)
class GridGeometry:
    """Dimensions (nx, ny, nz) of a grid stored x-fastest, and its flat strides."""
    nx: int
    ny: int
    nz: int

    def __post_init__(self):
        for name in ("nx", "ny", "nz"):
            if int(getattr(self, name)) < 1:
                raise ValueError(f"Grid dimension {name} must be positive, got {getattr(self, name)}")

    @classmethod
    def from_dims(cls, dims) -> "GridGeometry":
        if len(dims) != 3:
            raise ValueError(f"Expected three grid dimensions, got {tuple(dims)}")
        return cls(int(dims[0]), int(dims[1]), int(dims[2]))

    @property
    def dims(self) -> Tuple[int, int, int]:
        return (self.nx, self.ny, self.nz)

    @property
    def size(self) -> int:
        return self.nx * self.ny * self.nz

    @property
    def strides(self) -> Tuple[int, int, int]:
        return (1, self.nx, self.nx * self.ny)

    def contains(self, x: int, y: int, z: int) -> bool:
        return 0 <= x < self.nx and 0 <= y < self.ny and 0 <= z < self.nz

    def flat_index(self, x: int, y: int, z: int) -> int:
        return x + self.nx * (y + self.ny * z)


@dataclass
class UnwrapContext:
    """
    All state of one unwrap call. Nothing here outlives the call that created it.

    `unwrapped` is the caller's output buffer and is written in place.
    """
    geometry: GridGeometry
    wrapped_phase: np.ndarray
    unwrapped: np.ndarray
    scheduler: RiskBinScheduler
    visited: Optional[np.ndarray] = None
    n_written: int = 0
    aborted: bool = False
    offsets: Tuple[Tuple[int, int, int, int], ...] = field(init=False, default=())

    def __post_init__(self):
        size = self.geometry.size
        if self.wrapped_phase.size != size or self.unwrapped.size != size:
            raise ValueError(
                f"Field buffers must hold {size} voxels for grid {self.geometry.dims}, "
                f"got {self.wrapped_phase.size} (phase) and {self.unwrapped.size} (output)."
            )
        if self.visited is None:
            self.visited = np.zeros(size, dtype=bool)
        sx, sy, sz = self.geometry.strides
        self.offsets = tuple(
            (dx * sx + dy * sy + dz * sz, dx, dy, dz) for dx, dy, dz in NEIGHBOR_OFFSETS
        )


def unwrap_relative_to(wrapped_value: float, reference_value: float) -> float:
    """
    Shifts `wrapped_value` by whole cycles so it lies within about pi of `reference_value`.

    The number of half cycles separating the two is truncated toward zero; a
    difference of less than one half cycle is left uncorrected.
    """
    wholepis = int((wrapped_value - reference_value) / PI)
    if wholepis >= 1:
        return wrapped_value - TWO_PI * ((wholepis + 1) // 2)
    if wholepis <= -1:
        return wrapped_value + TWO_PI * ((1 - wholepis) // 2)
    return wrapped_value


def check_neighbor(ctx: UnwrapContext, bin_index: int, record: PointRecord,
                   offset_p: int, dx: int, dy: int, dz: int) -> None:
    """Unwraps one neighbour of `record` if it is inside the grid and not yet visited."""
    x, y, z = record.x + dx, record.y + dy, record.z + dz
    if not ctx.geometry.contains(x, y, z):
        return
    p = record.p + offset_p
    if ctx.visited[p]:
        return

    v = unwrap_relative_to(float(ctx.wrapped_phase[p]), record.v)
    ctx.unwrapped[p] = v
    ctx.visited[p] = True
    ctx.n_written += 1
    ctx.scheduler.push(bin_index, PointRecord(x, y, z, p, v))


def seed_region(ctx: UnwrapContext, seed: Tuple[int, int, int]) -> None:
    """Marks the seed as unwrapped with its own wrapped value and queues it in bin 0."""
    x, y, z = seed
    p = ctx.geometry.flat_index(x, y, z)
    v = float(ctx.wrapped_phase[p])
    ctx.unwrapped[p] = v
    ctx.visited[p] = True
    ctx.n_written += 1
    ctx.scheduler.push(0, PointRecord(x, y, z, p, v))


def grow_region(ctx: UnwrapContext) -> None:
    """
    Runs the bin loop until every bin is drained.

    A `QueueOverflowError` stops the loop at once: `ctx.aborted` is set, all
    queues are released and the error propagates. Voxels not reached by then
    keep whatever the output buffer held before the call.
    """
    scheduler = ctx.scheduler
    try:
        for bin_index in range(scheduler.n_bins):
            for record in scheduler.drain(bin_index):
                for offset_p, dx, dy, dz in ctx.offsets:
                    check_neighbor(ctx, bin_index, record, offset_p, dx, dy, dz)
            scheduler.release(bin_index)
            logger.debug(
                "Bin %d drained: %d processed, %d deferred",
                bin_index, scheduler.n_processed[bin_index], scheduler.n_deferred[bin_index]
            )
    except QueueOverflowError:
        ctx.aborted = True
        scheduler.release_all()
        logger.error("Out of memory while unwrapping; %d of %d voxels reached.",
                     ctx.n_written, ctx.geometry.size)
        raise
