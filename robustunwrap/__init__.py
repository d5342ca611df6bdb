"""
robustunwrap: Robust 3D phase unwrapping for MRI field maps.
"""

__version__ = "0.1.0"

from .config import RobustUnwrapConfig
from .errors import RobustUnwrapError, SeedOutOfBoundsError, QueueOverflowError
from .phase_unwrapping import (
    robust_unwrap,
    unwrap_phase_3d_robust,
    unwrap_multi_echo_masked_reference,
    UnwrapResult,
    RecordQueue,
    RiskBinScheduler,
    generate_mask_for_unwrapping,
    wrap_phase,
)
from .b0_mapping import (
    calculate_b0_map_dual_echo,
    calculate_b0_map_multi_echo_linear_fit,
    create_mask_from_magnitude,
)

__all__ = [
    '__version__',
    'RobustUnwrapConfig',
    'RobustUnwrapError', 'SeedOutOfBoundsError', 'QueueOverflowError',
    'robust_unwrap',
    'unwrap_phase_3d_robust',
    'unwrap_multi_echo_masked_reference',
    'UnwrapResult',
    'RecordQueue',
    'RiskBinScheduler',
    'generate_mask_for_unwrapping',
    'wrap_phase',
    'calculate_b0_map_dual_echo',
    'calculate_b0_map_multi_echo_linear_fit',
    'create_mask_from_magnitude',
]
