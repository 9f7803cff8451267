#!/usr/bin/env python3
"""Estimate the surface illumination of the flatland world.

This script runs the spatiotemporal resampling pipeline for a number of
frames, saves the accumulated surface colors as a PNG strip and reports how
far the estimate is from the brute-force reference integral.

Usage:
    python -m examples.render_restir [options]

Options:
    --frames FRAMES           Number of frames to run (default: 1000)
    --convergence MODE        precise, biased, lean or lean-retroactive
                              (default: from the config, else precise)
    --config PATH             JSON file with a configuration (see Config.to_dict)
    --dump-config             Print the effective configuration as JSON and exit
    --output OUTPUT           Output file path (default: restir.png)
    --batch-size SIZE         Frames per progress update (default: 100)
    --plot                    Show the estimate against the reference
    --quiet                   Suppress progress output

Example:
    python -m examples.render_restir --frames 2000 --convergence lean
"""

from __future__ import annotations

import argparse
import json
import sys
import time
from pathlib import Path

import numpy as np
import taichi as ti

# Convergence policies selectable from the command line
CONVERGENCE_CHOICES = ("precise", "biased", "lean", "lean-retroactive")


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Estimate the surface illumination with reservoir resampling.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--frames",
        type=int,
        default=1000,
        help="Number of frames to run (default: 1000)",
    )
    parser.add_argument(
        "--convergence",
        choices=CONVERGENCE_CHOICES,
        default=None,
        help="Convergence policy (default: from the config, else precise)",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="JSON configuration file",
    )
    parser.add_argument(
        "--dump-config",
        action="store_true",
        help="Print the effective configuration as JSON and exit",
    )
    parser.add_argument(
        "--output",
        type=str,
        default="restir.png",
        help="Output file path (default: restir.png)",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=100,
        help="Frames per progress update (default: 100)",
    )
    parser.add_argument(
        "--plot",
        action="store_true",
        help="Show the estimate against the reference",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress progress output",
    )
    return parser.parse_args()


def load_config(config_path: str | None, convergence: str | None):
    """Build the configuration from an optional JSON file and policy name.

    Args:
        config_path: Path to a JSON file, or None for the defaults.
        convergence: One of CONVERGENCE_CHOICES, or None to keep the
            policy of the configuration.

    Returns:
        The validated Config.

    Raises:
        ValueError: If the configuration is invalid.
    """
    from src.restir.core.config import Config, LeanAndMean, Precise

    if config_path is None:
        config = Config()
    else:
        with open(config_path, encoding="utf-8") as f:
            config = Config.from_dict(json.load(f))

    if convergence == "precise":
        config.restir.convergence = Precise(unbias=True)
    elif convergence == "biased":
        config.restir.convergence = Precise(unbias=False)
    elif convergence == "lean":
        config.restir.convergence = LeanAndMean()
    elif convergence == "lean-retroactive":
        config.restir.convergence = LeanAndMean(retroactive_rejection=True)

    config.validate()
    return config


def render_restir(
    config,
    num_frames: int = 1000,
    output_path: str = "restir.png",
    batch_size: int = 100,
    plot: bool = False,
    quiet: bool = False,
) -> Path:
    """Run the pipeline and save the accumulated surface colors.

    Args:
        config: The Config to run.
        num_frames: Number of frames to run.
        output_path: Output file path (PNG).
        batch_size: Number of frames between progress updates.
        plot: If True, show the estimate against the reference.
        quiet: If True, suppress progress output.

    Returns:
        Path to the saved image file.
    """
    # Lazy imports to allow Taichi initialization first
    from src.restir.core.progressive import RestirRenderer
    from src.restir.preview.export import compute_rmse, save_png
    from src.restir.scene.reference import incident_light_reference, relative_bias

    if not quiet:
        print(
            f"Surface of {config.world.surface_length} points, "
            f"convergence {config.restir.convergence}"
        )

    renderer = RestirRenderer(config)

    if not quiet:
        print(f"Running {num_frames} frames...")

    start_time = time.time()

    def progress_callback(current: int, target: int) -> None:
        if not quiet:
            elapsed = time.time() - start_time
            progress_pct = (current / target) * 100 if target > 0 else 0
            frames_per_sec = current / elapsed if elapsed > 0 else 0
            print(
                f"\r  Progress: {current}/{target} frames "
                f"({progress_pct:.1f}%) - {frames_per_sec:.1f} fps - "
                f"std deviation {renderer.smooth_avg_deviation:.5f}",
                end="",
                flush=True,
            )

    renderer.render(
        num_frames=num_frames,
        batch_size=batch_size,
        callback=progress_callback,
    )

    if not quiet:
        print()  # Newline after progress

    output_file = Path(output_path)
    save_png(renderer, str(output_file))

    estimate = renderer.get_accumulated_color_numpy()
    reference = incident_light_reference(config.world).astype(np.float32)

    total_time = time.time() - start_time
    if not quiet:
        print(f"Saved to: {output_file.absolute()}")
        print(f"RMSE against reference: {compute_rmse(estimate, reference):.6f}")
        print(f"Relative bias: {relative_bias(estimate, reference):+.4f}")
        print(f"Total time: {total_time:.2f}s")

    if plot:
        from src.restir.preview.display import show_comparison

        show_comparison(estimate, reference, labels=("ReSTIR", "Reference"))

    return output_file


def main() -> int:
    """Main entry point."""
    args = parse_args()

    try:
        config = load_config(args.config, args.convergence)
    except (OSError, ValueError, TypeError) as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return 2

    if args.dump_config:
        print(json.dumps(config.to_dict(), indent=2))
        return 0

    # Initialize Taichi
    # Use GPU if available, fall back to CPU
    try:
        ti.init(arch=ti.gpu)
        if not args.quiet:
            print("Using GPU backend")
    except Exception:
        ti.init(arch=ti.cpu)
        if not args.quiet:
            print("Using CPU backend")

    try:
        render_restir(
            config,
            num_frames=args.frames,
            output_path=args.output,
            batch_size=args.batch_size,
            plot=args.plot,
            quiet=args.quiet,
        )
        return 0
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
