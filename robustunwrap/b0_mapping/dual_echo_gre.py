# robustunwrap/b0_mapping/dual_echo_gre.py
"""Dual-echo and multi-echo gradient echo B0 mapping using PyTorch."""

import logging
from typing import Optional

import numpy as np
import torch

from ..phase_unwrapping.robust_unwrap import unwrap_phase_3d_robust
from ..phase_unwrapping.utils import wrap_phase

logger = logging.getLogger(__name__)


def _check_mask(mask: Optional[torch.Tensor], spatial_shape, device) -> Optional[torch.Tensor]:
    if mask is None:
        return None
    if not isinstance(mask, torch.Tensor):
        raise TypeError("mask must be a PyTorch tensor if provided.")
    if mask.shape != spatial_shape:
        raise ValueError("Mask dimensions must match spatial dimensions of phase images.")
    return mask.to(device=device, dtype=torch.bool)


def calculate_b0_map_dual_echo(
    phase_images: torch.Tensor,
    echo_times: torch.Tensor,
    magnitude: Optional[torch.Tensor] = None,
    mask: Optional[torch.Tensor] = None,
    unwrap: bool = True,
    n_bins: Optional[int] = None
) -> torch.Tensor:
    """
    Calculates a B0 map from the phase difference of the first two echoes.

    B0 = unwrap(wrap(phase_echo2 - phase_echo1)) / (2 * pi * (TE2 - TE1)).

    The wrapped phase difference is spatially unwrapped with the robust
    region-growing unwrapper, guided by `magnitude`, so field offsets larger
    than 1 / (2 * dTE) are recovered wherever they vary smoothly.

    Args:
        phase_images (torch.Tensor): Phase images in radians, shape (num_echoes, D, H, W)
            with num_echoes >= 2.
        echo_times (torch.Tensor): Echo times in seconds, shape (num_echoes,).
        magnitude (torch.Tensor, optional): Magnitude image of shape (D, H, W) used to order
            unwrapping. Defaults to uniform magnitude.
        mask (torch.Tensor, optional): Boolean tensor of shape (D, H, W). Voxels where the mask
            is False are set to 0 in the output B0 map.
        unwrap (bool): If False the wrapped phase difference is used directly, limiting
            the measurable range to +/- 1 / (2 * dTE). Defaults to True.
        n_bins (int, optional): Number of risk bins for the unwrapper.

    Returns:
        torch.Tensor: B0 map in Hz, shape (D, H, W), on the same device as `phase_images`.
    """
    if not isinstance(phase_images, torch.Tensor):
        raise TypeError("phase_images must be a PyTorch tensor.")
    if not isinstance(echo_times, torch.Tensor):
        raise TypeError("echo_times must be a PyTorch tensor.")
    if magnitude is not None and not isinstance(magnitude, torch.Tensor):
        raise TypeError("magnitude must be a PyTorch tensor if provided.")
    if phase_images.ndim != 4:
        raise ValueError("phase_images must have shape (num_echoes, D, H, W).")
    if phase_images.shape[0] < 2:
        raise ValueError("At least two echo images are required.")
    if echo_times.shape[0] != phase_images.shape[0]:
        raise ValueError("Number of echo times must match the number of phase images.")

    device = phase_images.device
    spatial_shape = phase_images.shape[1:]
    mask = _check_mask(mask, spatial_shape, device)

    delta_te = echo_times[1].item() - echo_times[0].item()
    if delta_te == 0:
        raise ValueError("Echo times for the first two echoes must be different.")

    phase_diff = wrap_phase(phase_images[1, ...] - phase_images[0, ...])
    if unwrap:
        phase_diff = unwrap_phase_3d_robust(phase_diff, magnitude=magnitude, mask=mask, n_bins=n_bins)

    pi_val = getattr(torch, 'pi', np.pi)
    b0_map = phase_diff / (2 * pi_val * delta_te)

    if mask is not None:
        b0_map[~mask] = 0
    return b0_map


def calculate_b0_map_multi_echo_linear_fit(
    phase_images: torch.Tensor,
    echo_times: torch.Tensor,
    mask: Optional[torch.Tensor] = None
) -> torch.Tensor:
    """
    Calculates a B0 map by voxel-wise linear fitting of phase against echo time.

    Fits phase = slope * TE + intercept with `torch.linalg.lstsq` and returns
    slope / (2 * pi). The phases must already be unwrapped along the echo
    dimension, e.g. by `unwrap_multi_echo_masked_reference`.

    Args:
        phase_images (torch.Tensor): Unwrapped phase images, shape (num_echoes, ...).
        echo_times (torch.Tensor): Echo times in seconds, shape (num_echoes,).
        mask (torch.Tensor, optional): Boolean tensor matching the spatial dimensions.
            Voxels where the mask is False are set to 0.

    Returns:
        torch.Tensor: B0 map in Hz with the spatial dimensions of `phase_images`.
    """
    if not isinstance(phase_images, torch.Tensor):
        raise TypeError("phase_images must be a PyTorch tensor.")
    if not isinstance(echo_times, torch.Tensor):
        raise TypeError("echo_times must be a PyTorch tensor.")

    device = phase_images.device
    dtype = phase_images.dtype
    echo_times = echo_times.to(device=device, dtype=dtype)

    num_echoes = phase_images.shape[0]
    if num_echoes < 2:
        raise ValueError("At least two echo images are required for linear fitting.")
    if echo_times.shape[0] != num_echoes:
        raise ValueError("Number of echo times must match the number of phase images.")

    spatial_shape = phase_images.shape[1:]
    mask = _check_mask(mask, spatial_shape, device)

    # Design matrix [TE, 1]; one right-hand side column per voxel
    A = torch.stack([echo_times, torch.ones_like(echo_times)], dim=1)
    y = phase_images.reshape(num_echoes, -1)
    try:
        solution = torch.linalg.lstsq(A, y).solution
    except RuntimeError as e:
        logger.error("torch.linalg.lstsq failed: %s", e)
        raise

    pi_val = getattr(torch, 'pi', np.pi)
    b0_map = (solution[0] / (2 * pi_val)).reshape(spatial_shape)

    if mask is not None:
        b0_map[~mask] = 0
    return b0_map
