"""Flatland ReSTIR: spatiotemporal reservoir resampling on a 1-D surface.

This package estimates the light arriving at every point of a 1-D surface
in a 2-D world, using weighted reservoir resampling with temporal and
spatial reuse, built on Taichi kernels.

Subpackages:
    core: Reservoirs, sampling, configuration, the pipeline and frame loop
    scene: The world (sun, sky, occluder) and a brute-force reference
    preview: Plots, PNG export and an interactive window
"""

__version__ = "0.1.0"
