# robustunwrap/phase_unwrapping/reference_echo_unwrap.py
"""Multi-echo phase unwrapping using a reference echo and robust spatial unwrapping."""

import typing

import torch

from .robust_unwrap import unwrap_phase_3d_robust
from .utils import wrap_phase


def unwrap_multi_echo_masked_reference(
    magnitude_images: torch.Tensor,
    wrapped_phase_images: torch.Tensor,
    snr_threshold: float,
    spatial_unwrap_fn: typing.Optional[typing.Callable[[torch.Tensor, torch.Tensor], torch.Tensor]] = None,
    n_bins: typing.Optional[int] = None
) -> typing.Tuple[torch.Tensor, torch.Tensor]:
    """
    Unwraps multi-echo, coil-combined 3D phase images using a reference echo strategy with masking.

    The method involves:
    1.  Creating a binary mask from the first echo magnitude (`magnitude_images[0]`)
        using `snr_threshold`.
    2.  Spatially unwrapping the first echo phase within the mask. This becomes the
        reference unwrapped phase.
    3.  For each subsequent echo `e > 0`: wrapping the difference
        `wrapped_phase_images[e] - wrapped_phase_images[0]` to [-pi, pi), spatially
        unwrapping it, and adding it to the unwrapped reference.

    Unless `spatial_unwrap_fn` is given, spatial unwrapping uses
    `unwrap_phase_3d_robust` guided by the first echo magnitude, so every echo
    is unwrapped along the same high-magnitude-first path.

    Args:
        magnitude_images (torch.Tensor): Coil-combined magnitudes, shape (num_echoes, D, H, W).
        wrapped_phase_images (torch.Tensor): Coil-combined wrapped phases in radians,
            shape (num_echoes, D, H, W).
        snr_threshold (float): Voxels of the first echo magnitude above this value are kept.
        spatial_unwrap_fn (Callable, optional): Called as `fn(phase_volume, mask_volume)` and
            returning an unwrapped volume of the same shape.
        n_bins (int, optional): Bin count for the default robust spatial unwrapper.

    Returns:
        tuple[torch.Tensor, torch.Tensor]:
            - Unwrapped phases for all echoes, same shape as `wrapped_phase_images`.
            - Boolean mask derived from the first echo magnitude, shape (D, H, W).
    """
    if not isinstance(magnitude_images, torch.Tensor) or not isinstance(wrapped_phase_images, torch.Tensor):
        raise TypeError("magnitude_images and wrapped_phase_images must be PyTorch tensors.")
    if magnitude_images.shape != wrapped_phase_images.shape:
        raise ValueError("magnitude_images and wrapped_phase_images must have the same shape.")
    if wrapped_phase_images.ndim != 4:
        raise ValueError("Input images must have shape (num_echoes, D, H, W).")
    if wrapped_phase_images.shape[0] < 2:
        raise ValueError("At least two echoes are required for multi-echo unwrapping.")
    if spatial_unwrap_fn is not None and not callable(spatial_unwrap_fn):
        raise TypeError("spatial_unwrap_fn must be a callable function.")

    first_echo_magnitude = magnitude_images[0, ...]
    generated_mask = first_echo_magnitude > snr_threshold

    if spatial_unwrap_fn is None:
        def spatial_unwrap_fn(phase_volume, mask_volume):
            return unwrap_phase_3d_robust(
                phase_volume, magnitude=first_echo_magnitude, mask=mask_volume, n_bins=n_bins
            )

    unwrapped_first_echo = spatial_unwrap_fn(wrapped_phase_images[0, ...], generated_mask)

    num_echoes = wrapped_phase_images.shape[0]
    unwrapped_phases_all_echoes = torch.zeros_like(wrapped_phase_images)
    unwrapped_phases_all_echoes[0, ...] = unwrapped_first_echo

    for e in range(1, num_echoes):
        wrapped_diff = wrap_phase(wrapped_phase_images[e, ...] - wrapped_phase_images[0, ...])
        unwrapped_diff = spatial_unwrap_fn(wrapped_diff, generated_mask)
        unwrapped_phases_all_echoes[e, ...] = unwrapped_first_echo + unwrapped_diff

    return unwrapped_phases_all_echoes, generated_mask
