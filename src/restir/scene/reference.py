"""Brute-force reference solution for the incident light integral.

The resampling pipeline estimates, for every surface point, the integral

    I(x) = int_0^pi L(x, alpha) * V(x, alpha) d alpha

where L is the light arriving from direction alpha and V the visibility.
This module evaluates the same integral with a dense midpoint quadrature
over alpha, using a NumPy re-implementation of the world queries. It does
not share code with the Taichi pipeline, so it can be used to validate it.

Example:
    >>> from src.restir.core.config import WorldConfig
    >>> from src.restir.scene.reference import incident_light_reference
    >>> reference = incident_light_reference(WorldConfig(), num_angles=4096)
    >>> reference.shape
    (40, 3)
"""

import numpy as np
import numpy.typing as npt

from src.restir.core.config import SUN_RADIUS, WorldConfig


def surface_positions(world: WorldConfig) -> npt.NDArray[np.float64]:
    """Positions of all surface points, shape (surface_length, 2)."""
    xs = np.arange(world.surface_length, dtype=np.float64) + 0.5
    return np.stack([xs, np.zeros_like(xs)], axis=-1)


def incident_light_numpy(
    world: WorldConfig,
    origins: npt.NDArray[np.float64],
    directions: npt.NDArray[np.float64],
) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
    """Evaluate the incident light for a batch of rays.

    Args:
        world: The world description.
        origins: Ray origins, shape (..., 2).
        directions: Unit ray directions, shape (..., 2).

    Returns:
        Tuple of (colors, distances): colors has shape (..., 3), distances
        shape (...) with NaN for rays that escape to the sky.
    """
    sun_center = np.array(world.sun_position, dtype=np.float64) + 0.5
    diff = sun_center - origins
    sun_distance = np.sum(diff * directions, axis=-1)
    leftover = diff - sun_distance[..., None] * directions
    hits_sun = (sun_distance > 0.0) & (np.sum(leftover * leftover, axis=-1) < SUN_RADIUS**2)

    colors = np.where(
        hits_sun[..., None],
        np.asarray(world.sun_color, dtype=np.float64),
        np.asarray(world.sky_color, dtype=np.float64),
    )
    distances = np.where(hits_sun, sun_distance, np.nan)
    return colors, distances


def visibility_numpy(
    world: WorldConfig,
    origins: npt.NDArray[np.float64],
    directions: npt.NDArray[np.float64],
) -> npt.NDArray[np.bool_]:
    """Evaluate visibility for a batch of rays.

    Args:
        world: The world description.
        origins: Ray origins, shape (..., 2).
        directions: Unit ray directions, shape (..., 2).

    Returns:
        Boolean array of shape (...), True where the ray is unoccluded.
    """
    dir_y = directions[..., 1]
    visible = dir_y > 0.0
    if world.occluder_x is None:
        return visible

    occluder_y = world.occluder_y + 0.5
    below = origins[..., 1] <= occluder_y
    with np.errstate(divide="ignore", invalid="ignore"):
        t = (occluder_y - origins[..., 1]) / dir_y
        x = origins[..., 0] + directions[..., 0] * t
    blocked = below & (x >= world.occluder_x[0]) & (x <= world.occluder_x[1])
    return visible & ~blocked


def incident_light_reference(
    world: WorldConfig,
    num_angles: int = 20000,
) -> npt.NDArray[np.float64]:
    """Compute the incident light integral for every surface point.

    Args:
        world: The world description.
        num_angles: Number of quadrature nodes over [0, pi].

    Returns:
        Array of shape (surface_length, 3) with the integrated RGB light.

    Raises:
        ValueError: If num_angles is not positive.
    """
    if num_angles <= 0:
        raise ValueError(f"num_angles must be positive, got {num_angles}")

    d_alpha = np.pi / num_angles
    alphas = (np.arange(num_angles, dtype=np.float64) + 0.5) * d_alpha
    directions = np.stack([np.cos(alphas), np.sin(alphas)], axis=-1)

    # Broadcast to (points, angles, 2)
    origins = surface_positions(world)[:, None, :]
    directions = np.broadcast_to(directions[None, :, :], (world.surface_length, num_angles, 2))
    origins = np.broadcast_to(origins, directions.shape)

    colors, _ = incident_light_numpy(world, origins, directions)
    visible = visibility_numpy(world, origins, directions)
    return np.sum(colors * visible[..., None], axis=1) * d_alpha


def relative_bias(
    estimate: npt.NDArray[np.floating],
    reference: npt.NDArray[np.floating],
) -> float:
    """Relative difference of the summed estimate against the summed reference.

    Negative values mean the estimate is darker than the reference.

    Raises:
        ValueError: If the shapes don't match or the reference is all zero.
    """
    if estimate.shape != reference.shape:
        raise ValueError(f"Shapes must match: {estimate.shape} vs {reference.shape}")
    total = float(np.sum(reference))
    if total == 0.0:
        raise ValueError("Reference integral is zero")
    return (float(np.sum(estimate)) - total) / total
