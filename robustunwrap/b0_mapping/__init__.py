# robustunwrap/b0_mapping/__init__.py
"""B0 mapping algorithms and utilities."""

from .dual_echo_gre import calculate_b0_map_dual_echo, calculate_b0_map_multi_echo_linear_fit
from .utils import create_mask_from_magnitude

__all__ = [
    "calculate_b0_map_dual_echo",
    "calculate_b0_map_multi_echo_linear_fit",
    "create_mask_from_magnitude",
]
