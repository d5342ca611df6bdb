# robustunwrap/plotting.py
"""Visualization of wrapped phase, unwrapped phase and B0 field maps."""

from typing import Optional, Union

import numpy as np
import matplotlib.pyplot as plt
import torch

from .phase_unwrapping.utils import to_numpy


def central_slice(volume: Union[np.ndarray, torch.Tensor], axis: int = 0) -> np.ndarray:
    """Returns the middle 2D slice of a 3D volume along `axis`. 2D inputs are returned as is."""
    volume = to_numpy(volume)
    if volume.ndim == 2:
        return volume
    if volume.ndim != 3:
        raise ValueError(f"Expected a 2D image or 3D volume, got shape {volume.shape}")
    return np.take(volume, volume.shape[axis] // 2, axis=axis)


def _show_or_save(filename: Optional[str]):
    if filename:
        plt.savefig(filename)
        plt.close()
    else:
        plt.show()


def plot_phase_image(phase_image, title: str = "Phase Image", cmap: str = "twilight",
                     vmin: float = -np.pi, vmax: float = np.pi, filename: str = None):
    """
    Displays or saves a wrapped phase image.

    Args:
        phase_image (np.ndarray or torch.Tensor): 2D phase data (in radians), or a 3D volume
            of which the central slice along the first axis is shown.
        title (str, optional): Title of the plot. Defaults to "Phase Image".
        cmap (str, optional): Colormap for the plot. Defaults to "twilight".
        vmin (float, optional): Minimum value for the color scale. Defaults to -np.pi.
        vmax (float, optional): Maximum value for the color scale. Defaults to np.pi.
        filename (str, optional): If provided, saves the figure to this path instead of showing.
    """
    image = central_slice(phase_image)
    plt.figure()
    plt.imshow(image, cmap=cmap, vmin=vmin, vmax=vmax)
    plt.colorbar(label="Phase (radians)")
    plt.title(title)
    plt.axis('off')
    _show_or_save(filename)


def plot_unwrapped_phase_map(unwrapped_phase_map, title: str = "Unwrapped Phase Map",
                             cmap: str = "viridis", filename: str = None):
    """Displays or saves an unwrapped phase map (2D, or central slice of a 3D volume)."""
    image = central_slice(unwrapped_phase_map)
    plt.figure()
    plt.imshow(image, cmap=cmap)
    plt.colorbar(label="Unwrapped Phase (radians)")
    plt.title(title)
    plt.axis('off')
    _show_or_save(filename)


def plot_b0_field_map(b0_map, title: str = "B0 Field Map", cmap: str = "coolwarm",
                      center_zero: bool = True, filename: str = None):
    """
    Displays or saves a B0 field map.

    Args:
        b0_map (np.ndarray or torch.Tensor): B0 field map in Hz, 2D or 3D (central slice shown).
        title (str, optional): Title of the plot. Defaults to "B0 Field Map".
        cmap (str, optional): Colormap for the plot. Defaults to "coolwarm".
        center_zero (bool, optional): If True, centers the colormap around zero. Defaults to True.
        filename (str, optional): If provided, saves the figure to this path instead of showing.
    """
    image = central_slice(b0_map)
    vmin, vmax = None, None
    if center_zero:
        abs_max = float(np.max(np.abs(image))) if image.size else 0.0
        if abs_max > 1e-9:
            vmin, vmax = -abs_max, abs_max
        else:
            vmin, vmax = -1, 1

    plt.figure()
    im = plt.imshow(image, cmap=cmap, vmin=vmin, vmax=vmax)
    plt.colorbar(im, label="B0 offset (Hz)")
    plt.title(title)
    plt.axis('off')
    _show_or_save(filename)
