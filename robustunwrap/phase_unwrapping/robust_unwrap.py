# robustunwrap/phase_unwrapping/robust_unwrap.py
"""
Robust 3D phase unwrapping by magnitude-ordered region growing.

Two entry points are provided:
- `robust_unwrap`: works on flat buffers ordered x fastest, then y, then z,
  and returns an `UnwrapResult` with the run statistics.
- `unwrap_phase_3d_robust`: works on (D, H, W) PyTorch tensors or NumPy arrays
  and returns the unwrapped volume in the same container type.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
import torch

from ..config import RobustUnwrapConfig
from ..errors import QueueOverflowError, SeedOutOfBoundsError
from .bin_scheduler import RiskBinScheduler
from .region_growing import GridGeometry, UnwrapContext, grow_region, seed_region
from .utils import default_seed, risk_from_magnitude, to_numpy

logger = logging.getLogger(__name__)


@dataclass
class UnwrapResult:
    """Output buffer and bookkeeping of one `robust_unwrap` call."""
    unwrapped: np.ndarray
    visited: np.ndarray
    thresholds: np.ndarray
    seed: Tuple[int, int, int]
    n_bins: int
    n_processed: List[int]
    n_deferred: List[int]

    @property
    def n_reached(self) -> int:
        return int(np.count_nonzero(self.visited))

    @property
    def complete(self) -> bool:
        return bool(self.visited.all())


def validate_seed(seed: Sequence[int], dims: Tuple[int, int, int]) -> Tuple[int, int, int]:
    """Returns the seed as a tuple of ints, raising `SeedOutOfBoundsError` if it is off the grid."""
    if len(seed) != 3:
        raise ValueError(f"Seed must have three coordinates, got {tuple(seed)}")
    seed = tuple(int(s) for s in seed)
    if any(s < 0 or s >= n for s, n in zip(seed, dims)):
        raise SeedOutOfBoundsError(seed, dims)
    return seed


def _check_finite(name: str, values: np.ndarray) -> None:
    bad = ~np.isfinite(values)
    if bad.any():
        raise ValueError(f"{name} must be finite; voxel {int(np.flatnonzero(bad)[0])} is {values[bad][0]}.")


def _flat_output_buffer(out: Optional[np.ndarray], size: int, dtype) -> np.ndarray:
    if out is None:
        return np.zeros(size, dtype=dtype)
    if not isinstance(out, np.ndarray):
        raise TypeError("out must be a NumPy array.")
    if out.size != size:
        raise ValueError(f"out must hold {size} voxels, got {out.size}.")
    if not out.flags.c_contiguous:
        raise ValueError("out must be C-contiguous so it can be filled in place.")
    if not np.issubdtype(out.dtype, np.floating):
        raise ValueError(f"out must have a floating dtype, got {out.dtype}.")
    return out.reshape(-1)


def robust_unwrap(
    dims: Sequence[int],
    wrapped_phase: np.ndarray,
    magnitude: np.ndarray,
    n_bins: Optional[int] = None,
    seed: Optional[Sequence[int]] = None,
    out: Optional[np.ndarray] = None,
    config: Optional[RobustUnwrapConfig] = None
) -> UnwrapResult:
    """
    Unwraps a 3D phase field stored as flat buffers.

    The seed voxel keeps its wrapped value. Every other voxel is unwrapped against
    the first already-unwrapped 6-neighbour that reaches it, with voxels expanded
    in order of increasing risk (decreasing magnitude by default).

    Args:
        dims (Sequence[int]): Grid size (nx, ny, nz).
        wrapped_phase (np.ndarray): nx*ny*nz phase values in radians, x fastest, then y, then z.
        magnitude (np.ndarray): Magnitude buffer of the same size and ordering. Treated as a
            risk field directly if `config.negate_magnitude` is False.
        n_bins (int, optional): Number of risk bins, overriding `config.n_bins`. At least 2 are used.
        seed (Sequence[int], optional): Seed voxel (x, y, z). Defaults to the grid centre.
        out (np.ndarray, optional): C-contiguous floating buffer of nx*ny*nz values, filled in
            place. Voxels that are never reached keep their previous contents.
        config (RobustUnwrapConfig, optional): Run parameters. Defaults to `RobustUnwrapConfig()`.

    Returns:
        UnwrapResult: `unwrapped` is a flat view of `out` (or a new zero-initialised
        buffer with the phase dtype when floating, float64 otherwise).

    Raises:
        ValueError: If a buffer has the wrong size or holds NaN or infinite values.
            Nothing is written.
        SeedOutOfBoundsError: If the seed is outside the grid. Nothing is written.
        QueueOverflowError: If a bin queue cannot grow. The partially filled
            `UnwrapResult` is attached as `partial_result`.
    """
    config = (config or RobustUnwrapConfig()).with_overrides(n_bins=n_bins)
    geometry = GridGeometry.from_dims(dims)
    size = geometry.size

    phase = np.asarray(wrapped_phase).reshape(-1)
    guide = np.asarray(magnitude).reshape(-1)
    if phase.size != size:
        raise ValueError(f"wrapped_phase must hold {size} voxels for grid {geometry.dims}, got {phase.size}.")
    if guide.size != size:
        raise ValueError(f"magnitude must hold {size} voxels for grid {geometry.dims}, got {guide.size}.")
    _check_finite("wrapped_phase", phase)
    _check_finite("magnitude", guide)

    seed = validate_seed(default_seed(geometry.dims) if seed is None else seed, geometry.dims)

    out_dtype = phase.dtype if np.issubdtype(phase.dtype, np.floating) else np.float64
    unwrapped = _flat_output_buffer(out, size, out_dtype)

    risk = risk_from_magnitude(guide, negate=config.negate_magnitude)
    scheduler = RiskBinScheduler(
        risk,
        config.effective_bins,
        initial_capacity=config.initial_capacity,
        capacity_increment=config.capacity_increment,
        max_capacity=config.max_queue_capacity,
        margin=config.threshold_margin
    )
    ctx = UnwrapContext(
        geometry=geometry,
        wrapped_phase=phase.astype(np.float64, copy=False),
        unwrapped=unwrapped,
        scheduler=scheduler
    )

    def _result() -> UnwrapResult:
        return UnwrapResult(
            unwrapped=unwrapped,
            visited=ctx.visited,
            thresholds=scheduler.thresholds,
            seed=seed,
            n_bins=scheduler.n_bins,
            n_processed=list(scheduler.n_processed),
            n_deferred=list(scheduler.n_deferred)
        )

    try:
        seed_region(ctx, seed)
        grow_region(ctx)
    except QueueOverflowError as e:
        e.partial_result = _result()
        raise

    result = _result()
    logger.info(
        "Unwrapped %d of %d voxels from seed %s using %d bins (%d deferrals).",
        result.n_reached, size, seed, scheduler.n_bins, sum(result.n_deferred)
    )
    return result


def unwrap_phase_3d_robust(
    wrapped_phase: Union[torch.Tensor, np.ndarray],
    magnitude: Optional[Union[torch.Tensor, np.ndarray]] = None,
    mask: Optional[Union[torch.Tensor, np.ndarray]] = None,
    n_bins: Optional[int] = None,
    seed: Optional[Sequence[int]] = None,
    config: Optional[RobustUnwrapConfig] = None
) -> Union[torch.Tensor, np.ndarray]:
    """
    Performs robust 3D phase unwrapping of a (D, H, W) volume.

    Regions of high magnitude are unwrapped first, so errors originating near
    phase singularities (where magnitude drops towards zero) are confined to
    the low-magnitude voxels processed last.

    Args:
        wrapped_phase (torch.Tensor or np.ndarray): Wrapped phase in radians, shape (D, H, W).
        magnitude (torch.Tensor or np.ndarray, optional): Magnitude of the same shape, used to
            order unwrapping. Defaults to a uniform magnitude, which reduces the algorithm
            to a breadth-first flood fill from the seed.
        mask (torch.Tensor or np.ndarray, optional): Boolean mask of the same shape. Voxels
            outside the mask are unwrapped last and set to 0 in the output.
        n_bins (int, optional): Number of risk bins, overriding `config.n_bins`.
        seed (Sequence[int], optional): Seed voxel in array index order (d, h, w). Defaults to
            the volume centre, or to the highest-magnitude voxel in the mask if the centre is
            masked out.
        config (RobustUnwrapConfig, optional): Run parameters.

    Returns:
        Unwrapped phase with the same container type, shape and (for tensors) device as
        `wrapped_phase`. Floating dtypes are preserved; other dtypes give float64.
    """
    is_tensor = isinstance(wrapped_phase, torch.Tensor)
    if not is_tensor and not isinstance(wrapped_phase, np.ndarray):
        raise TypeError("wrapped_phase must be a PyTorch tensor or a NumPy array.")
    if wrapped_phase.ndim != 3:
        raise ValueError(f"wrapped_phase must be a 3D volume, got shape {tuple(wrapped_phase.shape)}")
    config = (config or RobustUnwrapConfig()).with_overrides(n_bins=n_bins)

    phase_np = np.ascontiguousarray(to_numpy(wrapped_phase))
    shape = phase_np.shape

    if magnitude is None:
        guide = np.ones(shape, dtype=np.float64)
    else:
        guide = np.array(to_numpy(magnitude), dtype=np.float64)
        if guide.shape != shape:
            raise ValueError(f"magnitude shape {guide.shape} does not match phase shape {shape}.")

    mask_np = None
    if mask is not None:
        mask_np = np.asarray(to_numpy(mask)).astype(bool)
        if mask_np.shape != shape:
            raise ValueError(f"mask shape {mask_np.shape} does not match phase shape {shape}.")
        if not mask_np.any():
            logger.warning("Mask is empty; returning an all-zero phase map.")
        else:
            # masked-out voxels become the riskiest voxels of the field
            inside = guide[mask_np]
            gap = max(float(np.ptp(inside)), 1.0)
            guide[~mask_np] = inside.min() - gap if config.negate_magnitude else inside.max() + gap
            if seed is None and not mask_np[default_seed(shape)]:
                best = np.argmax(guide[mask_np]) if config.negate_magnitude else np.argmin(guide[mask_np])
                seed = tuple(int(c[best]) for c in np.nonzero(mask_np))
                logger.info("Volume centre is masked out; seeding at %s instead.", seed)

    out_dtype = phase_np.dtype if np.issubdtype(phase_np.dtype, np.floating) else np.float64
    unwrapped = np.zeros(shape, dtype=out_dtype)

    if mask_np is None or mask_np.any():
        d, h, w = shape
        xyz_seed = None if seed is None else (seed[2], seed[1], seed[0])
        robust_unwrap((w, h, d), phase_np, guide, seed=xyz_seed, out=unwrapped, config=config)
        if mask_np is not None:
            unwrapped[~mask_np] = 0

    if is_tensor:
        return torch.from_numpy(unwrapped).to(wrapped_phase.device)
    return unwrapped
