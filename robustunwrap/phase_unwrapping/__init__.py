# robustunwrap/phase_unwrapping/__init__.py
"""
Robust 3D phase unwrapping for MRI field maps.

The unwrapper grows a region outward from a seed voxel over the 6-connected
voxel grid. Voxels are expanded in order of increasing risk, where risk is the
negated magnitude by default, so regions near phase singularities are left
until everything safer has been resolved.

- `unwrap_phase_3d_robust`: unwraps a (D, H, W) tensor or array.
- `robust_unwrap`: unwraps flat x-fastest buffers and reports run statistics.
- `unwrap_multi_echo_masked_reference`: unwraps multi-echo data against the first echo.

The building blocks (`RecordQueue`, `RiskBinScheduler`, `grow_region`) are
exported for callers that drive the algorithm themselves.
"""

from .record_queue import PointRecord, RecordQueue
from .bin_scheduler import RiskBinScheduler, compute_bin_thresholds
from .region_growing import GridGeometry, UnwrapContext, grow_region, seed_region, unwrap_relative_to
from .robust_unwrap import UnwrapResult, robust_unwrap, unwrap_phase_3d_robust, validate_seed
from .reference_echo_unwrap import unwrap_multi_echo_masked_reference
from .utils import default_seed, generate_mask_for_unwrapping, risk_from_magnitude, wrap_phase


__all__ = [
    "PointRecord",
    "RecordQueue",
    "RiskBinScheduler",
    "compute_bin_thresholds",
    "GridGeometry",
    "UnwrapContext",
    "grow_region",
    "seed_region",
    "unwrap_relative_to",
    "UnwrapResult",
    "robust_unwrap",
    "unwrap_phase_3d_robust",
    "validate_seed",
    "unwrap_multi_echo_masked_reference",
    "default_seed",
    "generate_mask_for_unwrapping",
    "risk_from_magnitude",
    "wrap_phase",
]
