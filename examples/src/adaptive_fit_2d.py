#!/usr/bin/env python3
"""
Example: Adaptive hierarchical fitting of a scattered 2D point cloud.

This example demonstrates:
1. Sampling a function with a sharp feature at random parameter values
2. Fitting it with cell-wise constants on a coarse hierarchical grid
3. Refining the grid where the point-wise error is large
4. Comparing the error and number of functions before and after refinement

The data:
    f(u, v) = tanh(40 * (r - 0.3)),  r = |(u, v) - (0.5, 0.5)|

The jump along the circle r = 0.3 is only resolved by local refinement.

Usage:
    python adaptive_fit_2d.py --iterations 6 --ref 0.1 --extension 1
    python adaptive_fit_2d.py --config fit.json --plot
"""

import sys
import os
import logging

# Add project root to path (two levels up from examples/src/)
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

import numpy as np

from hfitting.discretization.hierarchy import HierarchicalGrid
from hfitting.fitting.cellwise import CellwiseConstantFitting
from hfitting.fitting.hfitting import HierarchicalFitting
from hfitting.io.config import RefinementConfig, load_config


def sample_function(u, v):
    """Smoothed circular step."""
    r = np.sqrt((u - 0.5)**2 + (v - 0.5)**2)
    return np.tanh(40.0 * (r - 0.3))


def plot_grid(grid, fitter, filename):
    """Plot the active cells coloured by level, with the samples on top."""
    import matplotlib
    matplotlib.use('Agg')
    import matplotlib.pyplot as plt
    from matplotlib.patches import Rectangle

    fig, ax = plt.subplots(figsize=(6, 6))
    cmap = plt.get_cmap('viridis', grid.max_level + 1)
    for level, cell in grid.active_functions():
        bx = grid.breaks(level, 0)
        by = grid.breaks(level, 1)
        i, j = cell
        ax.add_patch(Rectangle((bx[i], by[j]), bx[i + 1] - bx[i], by[j + 1] - by[j],
                               facecolor=cmap(level), edgecolor='k', linewidth=0.3,
                               alpha=0.6))
    ax.scatter(fitter.param_values[:, 0], fitter.param_values[:, 1],
               c=fitter.point_errors, s=2, cmap='Reds')
    ax.set_aspect('equal')
    ax.set_title(f"Active cells (max level {grid.max_level})")
    fig.savefig(filename, dpi=150)
    print(f"Saved plot: {filename}")


def main():
    import argparse
    parser = argparse.ArgumentParser(description="Adaptive hierarchical fitting example")
    parser.add_argument("--config", help="JSON refinement configuration")
    parser.add_argument("--n-points", type=int, default=4000, help="number of samples")
    parser.add_argument("--n-elem", type=int, default=4, help="level-0 cells per direction")
    parser.add_argument("--iterations", type=int, default=6, help="maximum iterations")
    parser.add_argument("--ref", type=float, default=0.1, help="refinement percentage")
    parser.add_argument("--extension", type=int, default=1, help="cell extension")
    parser.add_argument("--tolerance", type=float, default=0.05, help="error tolerance")
    parser.add_argument("--smoothing", type=float, default=1e-8, help="smoothing parameter")
    parser.add_argument("--seed", type=int, default=0, help="random seed")
    parser.add_argument("--plot", action="store_true", help="save a plot of the grid")
    parser.add_argument("--debug", action="store_true", help="enable debug output")
    options = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if options.debug else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s"
    )

    if options.config:
        config = load_config(options.config)
    else:
        config = RefinementConfig(
            ref_percentage=options.ref,
            extension=[options.extension, options.extension],
            smoothing=options.smoothing,
            iterations=options.iterations,
            tolerance=options.tolerance,
        )

    rng = np.random.default_rng(options.seed)
    params = rng.random((options.n_points, 2))
    values = sample_function(params[:, 0], params[:, 1])

    print("=" * 70)
    print("Adaptive Hierarchical Fitting Example")
    print("=" * 70)
    print(f"\nSamples: {options.n_points}, base grid: {options.n_elem}x{options.n_elem}")
    print(f"Settings: {config.to_dict()}")

    grid = HierarchicalGrid.uniform((options.n_elem, options.n_elem))
    fitter = CellwiseConstantFitting(params, values, grid)
    hfit = HierarchicalFitting.from_config(fitter, config)

    print("\n" + "-" * 70)
    print(f"{'Iteration':<12} {'Max level':<12} {'Functions':<12} {'Max error':<15} {'RMS error':<15}")
    print("-" * 70)

    for it in range(config.iterations + 1):
        if not hfit.next_iteration(config.tolerance, config.err_threshold):
            break
        print(f"{it:<12} {grid.max_level:<12} {grid.n_active_functions:<12} "
              f"{fitter.max_error:<15.6e} {fitter.l2_error():<15.6e}")

    reason = hfit.stop_reason.value if hfit.stop_reason else "iteration budget exhausted"
    print(f"\nStopped: {reason}")

    if options.plot:
        plot_grid(grid, fitter, "adaptive_fit_2d.png")


if __name__ == "__main__":
    main()
