import logging

import numpy as np
import torch
import matplotlib.pyplot as plt

from robustunwrap.phase_unwrapping import unwrap_phase_3d_robust, generate_mask_for_unwrapping, wrap_phase
from robustunwrap.b0_mapping import calculate_b0_map_dual_echo
from robustunwrap.plotting import plot_phase_image, plot_unwrapped_phase_map, plot_b0_field_map


def run_robust_unwrap_example():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    print("--- Running Robust Region-Growing Phase Unwrapping Example ---")
    device = torch.device('cuda' if torch.cuda.is_available() else 'cpu')

    # 1. Create dummy data: a spherical object with a smooth field that wraps several times
    shape = (24, 48, 48)
    d, h, w = shape
    zz, yy, xx = np.meshgrid(np.arange(d), np.arange(h), np.arange(w), indexing='ij')
    radius_sq = ((zz - d / 2) / (d / 2)) ** 2 + ((yy - h / 2) / (h / 2)) ** 2 + ((xx - w / 2) / (w / 2)) ** 2
    magnitude_np = np.clip(1.2 - radius_sq, 0.0, None)

    true_phase_np = 6 * np.pi * (xx / w - 0.5) + 3 * np.pi * ((yy - h / 2) / h) ** 2
    # a phase singularity: a vortex with vanishing magnitude at its core
    vortex = np.arctan2(yy - h * 0.7, xx - w * 0.3)
    core = np.exp(-((yy - h * 0.7) ** 2 + (xx - w * 0.3) ** 2) / 8.0)
    wrapped_phase_np = wrap_phase(true_phase_np + core * vortex)
    magnitude_np = magnitude_np * (1.0 - 0.95 * core)

    wrapped_phase = torch.from_numpy(wrapped_phase_np).float().to(device)
    magnitude = torch.from_numpy(magnitude_np).float().to(device)
    mask = torch.from_numpy(generate_mask_for_unwrapping(magnitude_np, threshold_factor=0.05)).to(device)

    # 2. Unwrap, high-magnitude regions first
    unwrapped = unwrap_phase_3d_robust(wrapped_phase, magnitude=magnitude, mask=mask, n_bins=200)
    unwrapped_np = unwrapped.cpu().numpy()
    print(f"Unwrapped phase range: [{unwrapped_np.min():.2f}, {unwrapped_np.max():.2f}] rad")

    # 3. Dual-echo B0 map from the same field
    echo_times = torch.tensor([0.002, 0.0045], device=device)
    b0_true = true_phase_np / (2 * np.pi * 0.0025)
    phase_images = torch.stack(
        [wrap_phase(torch.from_numpy(2 * np.pi * b0_true * te).float().to(device)) for te in echo_times.cpu().numpy()]
    )
    b0_map = calculate_b0_map_dual_echo(phase_images, echo_times, magnitude=magnitude, mask=mask)

    # 4. Plotting
    plt.switch_backend('Agg')
    plot_phase_image(wrapped_phase_np, title="Wrapped Phase", filename="robust_wrapped_phase.png")
    plot_unwrapped_phase_map(unwrapped_np, title="Robust Unwrapped Phase", filename="robust_unwrapped_phase.png")
    plot_b0_field_map(b0_map.cpu().numpy(), title="Dual-echo B0 Map", filename="robust_b0_map.png")
    print("Plots saved: robust_wrapped_phase.png, robust_unwrapped_phase.png, robust_b0_map.png")

    print("\n--- Robust Region-Growing Phase Unwrapping Example Finished ---")


if __name__ == "__main__":
    run_robust_unwrap_example()
