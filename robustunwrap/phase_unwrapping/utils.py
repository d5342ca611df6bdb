# robustunwrap/phase_unwrapping/utils.py
"""Utility functions for phase unwrapping: wrapping, risk fields and mask generation."""

import logging
from typing import Optional, Tuple, Union

import numpy as np
import torch

logger = logging.getLogger(__name__)

ArrayLike = Union[np.ndarray, torch.Tensor]


def wrap_phase(phase: ArrayLike) -> ArrayLike:
    """Wraps phase values to the interval [-pi, pi). Works on NumPy arrays and PyTorch tensors."""
    pi = getattr(torch, 'pi', np.pi)
    return (phase + pi) % (2 * pi) - pi


def to_numpy(data: ArrayLike) -> np.ndarray:
    """Returns a NumPy view or copy of a tensor or array, detached and on the CPU."""
    if isinstance(data, torch.Tensor):
        return data.detach().cpu().numpy()
    if isinstance(data, np.ndarray):
        return data
    raise TypeError(f"Expected a NumPy array or PyTorch tensor, got {type(data).__name__}.")


def risk_from_magnitude(magnitude: np.ndarray, negate: bool = True) -> np.ndarray:
    """
    Builds the risk field that orders unwrapping.

    Low risk is unwrapped first. Phase singularities sit where the magnitude is
    close to zero, so by default risk is the negated magnitude and voxels with
    strong signal are resolved before those near a pole.

    Args:
        magnitude (np.ndarray): Magnitude image (or an already computed risk field).
        negate (bool): If False the input is returned as float64 without negation.

    Returns:
        np.ndarray: float64 risk field, same shape as the input.
    """
    risk = np.array(magnitude, dtype=np.float64, copy=True)
    if negate:
        np.negative(risk, out=risk)
    return risk


def default_seed(dims: Tuple[int, int, int]) -> Tuple[int, int, int]:
    """
    Seed voxel at the centre of a grid: round(n / 2) - 1 on every axis, with halves
    rounded away from zero.
    """
    return tuple((int(n) + 1) // 2 - 1 for n in dims)


def generate_mask_for_unwrapping(
    magnitude_image: Optional[ArrayLike] = None,
    method: str = 'threshold',
    threshold_factor: float = 0.1
) -> Optional[np.ndarray]:
    """
    Generates a mask for phase unwrapping.

    Args:
        magnitude_image (np.ndarray or torch.Tensor, optional): Magnitude image,
            required if method is 'threshold'.
        method (str): 'threshold' keeps voxels above `threshold_factor` times the
            maximum magnitude. 'no_mask' returns None. Defaults to 'threshold'.
        threshold_factor (float): Factor for magnitude thresholding. Defaults to 0.1.

    Returns:
        np.ndarray or None: A boolean mask, or None if no mask is to be applied.
    """
    if method == 'no_mask':
        return None
    if method != 'threshold':
        raise ValueError(f"Unknown masking method: {method}")
    if magnitude_image is None:
        logger.warning("Magnitude image not provided for threshold-based mask. No mask will be applied.")
        return None

    magnitude = np.abs(to_numpy(magnitude_image))
    max_val = magnitude.max() if magnitude.size else 0
    if max_val == 0:
        logger.warning("Magnitude image is all zero; the generated mask is empty.")
        return np.zeros_like(magnitude, dtype=bool)
    return magnitude > threshold_factor * max_val
