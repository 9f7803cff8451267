#!/usr/bin/env python3
"""Interactive flatland ReSTIR viewer.

This script opens a preview window that runs the resampling pipeline
continuously and shows the lit surface as it converges.

Usage:
    python -m examples.interactive_restir [--config PATH] [--frames-per-draw N]

Controls:
    - Precise / Unbias / Initial visibility / Retroactive rejection:
      switch the convergence policy (restarts the estimate)
    - Reset: clear all reservoirs
    - Export PNG: save the current estimate with timestamp
    - Esc: close the window
"""

from __future__ import annotations

import argparse
import json
import platform
import sys
from pathlib import Path

# Ensure the project root is in the Python path for direct execution
_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import taichi as ti  # noqa: E402


def initialize_taichi() -> str:
    """Initialize Taichi with the best available backend.

    On macOS, prefers Metal. Falls back to CPU if GPU is unavailable.

    Returns:
        Name of the backend being used.
    """
    system = platform.system()

    if system == "Darwin":
        try:
            ti.init(arch=ti.metal)
            return "Metal (GPU)"
        except Exception:
            pass

    try:
        ti.init(arch=ti.gpu)
        return "GPU"
    except Exception:
        pass

    ti.init(arch=ti.cpu)
    return "CPU"


def main() -> int:
    """Main entry point for the interactive viewer.

    Returns:
        Exit code (0 for success, non-zero for error).
    """
    parser = argparse.ArgumentParser(description="Interactive flatland ReSTIR viewer.")
    parser.add_argument("--config", type=str, default=None, help="JSON configuration file")
    parser.add_argument(
        "--frames-per-draw",
        type=int,
        default=1,
        help="Pipeline frames per displayed frame (default: 1)",
    )
    args = parser.parse_args()

    # Initialize Taichi first (before importing modules that use ti.kernel)
    backend = initialize_taichi()
    print(f"Taichi backend: {backend}")

    # Import after Taichi initialization
    from src.restir.core.config import Config
    from src.restir.core.progressive import RestirRenderer
    from src.restir.preview.interactive import InteractivePreview

    if not InteractivePreview.is_display_available():
        print("Error: No display available. Cannot run interactive preview.")
        print("This script requires a graphical display environment.")
        return 1

    try:
        if args.config is None:
            config = Config()
        else:
            with open(args.config, encoding="utf-8") as f:
                config = Config.from_dict(json.load(f))
        renderer = RestirRenderer(config)
        preview = InteractivePreview(renderer, frames_per_draw=args.frames_per_draw)
    except (OSError, ValueError, TypeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    print("Starting interactive rendering...")
    print("  - Toggle the convergence policy in the panel")
    print("  - Click 'Export PNG' to save the current estimate")
    print("  - Press Esc or close the window to exit")
    print()

    try:
        preview.run()
    except KeyboardInterrupt:
        print("\nInterrupted by user.")
    finally:
        preview.close()
        print("Preview window closed.")

    return 0


if __name__ == "__main__":
    sys.exit(main())
