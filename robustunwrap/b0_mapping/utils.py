# robustunwrap/b0_mapping/utils.py
"""Utility functions for B0 mapping."""

import torch

from ..phase_unwrapping.utils import generate_mask_for_unwrapping


def create_mask_from_magnitude(magnitude_image: torch.Tensor, threshold_factor: float = 0.1) -> torch.Tensor:
    """
    Creates a binary mask by thresholding a magnitude image at a fraction of its maximum.

    Args:
        magnitude_image (torch.Tensor): Input magnitude image.
        threshold_factor (float): Factor of the maximum intensity to use as threshold.
                                  Defaults to 0.1.

    Returns:
        torch.Tensor: Boolean mask on the same device as the input.
    """
    if not isinstance(magnitude_image, torch.Tensor):
        raise TypeError("Magnitude image must be a PyTorch tensor.")
    mask = generate_mask_for_unwrapping(magnitude_image, method='threshold', threshold_factor=threshold_factor)
    return torch.from_numpy(mask).to(magnitude_image.device)
