"""Spatiotemporal reservoir resampling pipeline.

This module owns the persistent pixel store (one reservoir and selected
sample per surface point) and the kernel that updates it once per frame.

Per point, the update runs these phases in order:
    1. Initial candidates: a few directions drawn uniformly over the
       half-circle are streamed into a fresh builder, which is then clamped
       and collapsed into a single logical sample.
    2. Temporal reuse: the point's reservoir from the previous frame is
       re-evaluated at the current point and merged.
    3. Spatial reuse: the previous-frame reservoirs of the left and right
       neighbours are shift-mapped into the current point and merged.
       Shifts that change the kind of light seen (sun or sky) are rejected.
    4. Bias correction, according to the convergence policy.
    5. Finalization: the reservoir is stored and the output color
       (selected light times contribution weight) feeds running averages.

The pipeline reads the previous frame exclusively from snapshot fields that
are filled by a separate kernel before any point is updated, so the points
can be processed in parallel without observing each other's new state.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.restir.core.config import RestirConfig, WorldConfig
    >>> from src.restir.core.pipeline import setup_pipeline, update
    >>> from src.restir.scene.world import setup_world
    >>> world = WorldConfig()
    >>> setup_world(world)
    >>> setup_pipeline(world.surface_length, RestirConfig(), accumulation=0.01)
    >>> for _ in range(100):
    ...     update()
"""

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

from src.restir.core.config import (
    Convergence,
    ConvergenceMode,
    LeanAndMean,
    Precise,
    RestirConfig,
)
from src.restir.core.reservoir import Reservoir, empty_reservoir, new_builder
from src.restir.core.sampling import (
    HEMISPHERE_PDF,
    SampleInfo,
    make_sample,
    sample_hemisphere_direction,
    shift_map,
)
from src.restir.scene.world import (
    LightInfo,
    check_visibility,
    evaluate_incident_light,
    is_world_initialized,
    surface_position,
)

# Type aliases for 2D directions and RGB colors
vec2 = tm.vec2
vec3 = tm.vec3

# Maximum number of surface points (preallocated to avoid kernel recompilation)
MAX_POINTS = 4096

# Offsets of the neighbours visited by spatial reuse
SPATIAL_OFFSETS = (-1, 1)

# =============================================================================
# Pipeline Configuration
# =============================================================================

_pipeline_initialized = ti.field(dtype=ti.i32, shape=())
_num_points = ti.field(dtype=ti.i32, shape=())
_convergence_mode = ti.field(dtype=ti.i32, shape=())
_unbias = ti.field(dtype=ti.i32, shape=())
_initial_visibility = ti.field(dtype=ti.i32, shape=())
_retroactive_rejection = ti.field(dtype=ti.i32, shape=())
_initial_samples = ti.field(dtype=ti.i32, shape=())
_max_initial_history = ti.field(dtype=ti.i32, shape=())
_max_temporal_history = ti.field(dtype=ti.i32, shape=())
_max_spatial_history = ti.field(dtype=ti.i32, shape=())
_accumulation = ti.field(dtype=ti.f32, shape=())

# =============================================================================
# Pixel Store
# =============================================================================

# Live state, written by the resampling kernel
_reservoirs = Reservoir.field(shape=MAX_POINTS)
_samples = SampleInfo.field(shape=MAX_POINTS)

# Previous frame, read by the resampling kernel
_prev_reservoirs = Reservoir.field(shape=MAX_POINTS)
_prev_samples = SampleInfo.field(shape=MAX_POINTS)

# Output color of the last frame and its running averages
_colors = ti.Vector.field(3, dtype=ti.f32, shape=MAX_POINTS)
_colors_accumulated = ti.Vector.field(3, dtype=ti.f32, shape=MAX_POINTS)
_variance_accumulated = ti.field(dtype=ti.f32, shape=MAX_POINTS)

# Frame statistics
_frame_index = ti.field(dtype=ti.i32, shape=())
_smooth_avg_deviation = ti.field(dtype=ti.f32, shape=())


def setup_pipeline(num_points: int, restir: RestirConfig, accumulation: float) -> None:
    """Configure the pipeline and clear the pixel store.

    Args:
        num_points: Number of surface points (max MAX_POINTS).
        restir: The resampling parameters.
        accumulation: Smoothing factor of the running averages, in (0, 1).

    Raises:
        ValueError: If the number of points or a parameter is out of range.
    """
    if not 0 < num_points <= MAX_POINTS:
        raise ValueError(
            f"Number of points ({num_points}) must be in 1..{MAX_POINTS}"
        )
    if not 0.0 < accumulation < 1.0:
        raise ValueError(f"accumulation must be in (0, 1), got {accumulation}")
    restir.validate()

    _num_points[None] = num_points
    _initial_samples[None] = restir.initial_samples
    _max_initial_history[None] = restir.max_initial_history
    _max_temporal_history[None] = restir.max_temporal_history
    _max_spatial_history[None] = restir.max_spatial_history
    _accumulation[None] = accumulation
    set_convergence(restir.convergence)
    _pipeline_initialized[None] = 1

    clear_pixel_store()


def set_convergence(convergence: Convergence) -> None:
    """Switch the convergence policy without touching the pixel store."""
    if isinstance(convergence, Precise):
        _unbias[None] = int(convergence.unbias)
        _initial_visibility[None] = 0
        _retroactive_rejection[None] = 0
    elif isinstance(convergence, LeanAndMean):
        _unbias[None] = 0
        _initial_visibility[None] = int(convergence.initial_visibility)
        _retroactive_rejection[None] = int(convergence.retroactive_rejection)
    else:
        raise ValueError(f"Unknown convergence policy: {convergence!r}")
    _convergence_mode[None] = int(convergence.mode)


def get_convergence() -> Convergence:
    """Get the convergence policy currently in use."""
    if _convergence_mode[None] == int(ConvergenceMode.PRECISE):
        return Precise(unbias=bool(_unbias[None]))
    return LeanAndMean(
        initial_visibility=bool(_initial_visibility[None]),
        retroactive_rejection=bool(_retroactive_rejection[None]),
    )


def get_num_points() -> int:
    """Get the number of surface points.

    Raises:
        RuntimeError: If the pipeline has not been set up.
    """
    _check_pipeline_initialized()
    return int(_num_points[None])


def _check_pipeline_initialized() -> None:
    """Raise if the pipeline has not been set up."""
    if _pipeline_initialized[None] == 0:
        raise RuntimeError("Pipeline not set up. Call setup_pipeline() first.")


@ti.kernel
def _clear_pixels():
    """Reset every entry of the pixel store to its default state."""
    for cell in range(MAX_POINTS):
        _reservoirs[cell] = empty_reservoir()
        _samples[cell] = make_sample(vec2(0.0, 0.0), 0.0, 0)
        _prev_reservoirs[cell] = empty_reservoir()
        _prev_samples[cell] = make_sample(vec2(0.0, 0.0), 0.0, 0)
        _colors[cell] = vec3(0.0, 0.0, 0.0)
        _colors_accumulated[cell] = vec3(0.0, 0.0, 0.0)
        _variance_accumulated[cell] = 0.0


def clear_pixel_store() -> None:
    """Clear all reservoirs, samples, colors and frame statistics."""
    _clear_pixels()
    _frame_index[None] = 0
    _smooth_avg_deviation[None] = 0.0


def clear_pipeline() -> None:
    """Clear the pixel store and mark the pipeline as not set up."""
    clear_pixel_store()
    _pipeline_initialized[None] = 0


def set_pixel_state(
    cell: int,
    history: int,
    contribution_weight: float,
    direction: tuple[float, float],
    distance: float | None = None,
) -> None:
    """Overwrite the live reservoir and selected sample of a single point.

    Args:
        cell: Index of the surface point.
        history: History of the reservoir.
        contribution_weight: Contribution weight of the reservoir.
        direction: Unit direction of the selected sample.
        distance: Distance to the light, or None for a sky sample.

    Raises:
        RuntimeError: If the pipeline has not been set up.
        ValueError: If the cell is out of range or the history is negative.
    """
    _check_pipeline_initialized()
    if not 0 <= cell < _num_points[None]:
        raise ValueError(f"Cell {cell} out of range 0..{_num_points[None] - 1}")
    if history < 0:
        raise ValueError(f"history must be non-negative, got {history}")
    _set_pixel(
        cell,
        history,
        contribution_weight,
        direction[0],
        direction[1],
        0.0 if distance is None else distance,
        0 if distance is None else 1,
    )


@ti.kernel
def _set_pixel(
    cell: ti.i32,
    history: ti.i32,
    contribution_weight: ti.f32,
    dx: ti.f32,
    dy: ti.f32,
    distance: ti.f32,
    has_distance: ti.i32,
):
    _reservoirs[cell] = Reservoir(history=history, contribution_weight=contribution_weight)
    _samples[cell] = make_sample(vec2(dx, dy), distance, has_distance)


# =============================================================================
# Per-point Resampling
# =============================================================================


@ti.func
def _no_light() -> LightInfo:
    """LightInfo of a sample that contributes nothing."""
    return LightInfo(color=vec3(0.0, 0.0, 0.0), distance=0.0, has_distance=0)


@ti.func
def _covers_domain(origin: vec2, neighbor_origin: vec2, winner: SampleInfo) -> ti.i32:
    """Check if the neighbour's domain could have produced the winning sample.

    The winner, shifted into the neighbour's domain, must be visible there
    and still see the same kind of light (sun or sky).
    """
    direction = shift_map(winner, origin, neighbor_origin)
    covers = 0
    if check_visibility(neighbor_origin, direction) == 1:
        light = evaluate_incident_light(neighbor_origin, direction)
        if light.has_distance == winner.has_distance:
            covers = 1
    return covers


@ti.func
def _update_pixel(cell: ti.i32, num_points: ti.i32):
    """Run one frame of reservoir resampling for a single surface point.

    Reads the previous frame only through the snapshot fields and writes
    only the live entries of this point.

    Args:
        cell: Index of the surface point.
        num_points: Number of surface points.
    """
    origin = surface_position(cell)
    precise = _convergence_mode[None] == int(ConvergenceMode.PRECISE)
    lean = _convergence_mode[None] == int(ConvergenceMode.LEAN_AND_MEAN)
    max_temporal = _max_temporal_history[None]
    max_spatial = _max_spatial_history[None]

    builder = new_builder()
    selected_dir = vec2(0.0, 0.0)
    selected_light = _no_light()
    # Neighbour the selected sample was reused from, -1 for the point itself
    selected_source = -1

    # First, do RIS on the initial candidates
    for _ in range(_initial_samples[None]):
        direction = sample_hemisphere_direction()
        is_visible = 1
        if precise:
            is_visible = check_visibility(origin, direction)
        if is_visible == 1:
            light = evaluate_incident_light(origin, direction)
            if builder.stream(HEMISPHERE_PDF, light.target_value(), ti.random(ti.f32)) == 1:
                selected_dir = direction
                selected_light = light
        else:
            builder.add_empty_sample()

    if lean and _initial_visibility[None] == 1:
        if selected_light.target_value() > 0.0 and check_visibility(origin, selected_dir) == 0:
            builder.invalidate()
            selected_light = _no_light()

    builder.clamp_history(_max_initial_history[None])
    builder.collapse()

    # Second, reuse the previous frame reservoir of this point
    if max_temporal > 0:
        prev = _prev_reservoirs[cell].with_max_history(max_temporal)
        if prev.has_weight() == 1:
            # Reconstruct the target PDF at the current point
            prev_dir = _prev_samples[cell].direction
            light = evaluate_incident_light(origin, prev_dir)
            if builder.merge(prev.to_builder(light.target_value()), ti.random(ti.f32)) == 1:
                selected_dir = prev_dir
                selected_light = light
        else:
            builder.merge_history(prev)

    # Third, reuse the previous frame reservoirs of the neighbours
    unbiased_history = builder.history
    if max_spatial > 0:
        own_history = builder.history
        for offset in ti.static(SPATIAL_OFFSETS):
            neighbor = cell + offset
            if 0 <= neighbor < num_points:
                prev = _prev_reservoirs[neighbor].with_max_history(max_spatial)
                merged = 0
                if prev.has_weight() == 1:
                    neighbor_origin = surface_position(neighbor)
                    direction = shift_map(_prev_samples[neighbor], neighbor_origin, origin)
                    is_visible = 1
                    if precise:
                        is_visible = check_visibility(origin, direction)
                    if is_visible == 1:
                        light = evaluate_incident_light(origin, direction)
                        # A shift that changes the kind of light seen is invalid
                        if light.has_distance == _prev_samples[neighbor].has_distance:
                            if builder.merge(prev.to_builder(light.target_value()), ti.random(ti.f32)) == 1:
                                selected_dir = direction
                                selected_light = light
                                selected_source = neighbor
                            merged = 1
                if merged == 0:
                    builder.merge_history(prev)

        winner = make_sample(selected_dir, selected_light.distance, selected_light.has_distance)
        has_winner = selected_light.target_value() > 0.0

        if precise and _unbias[None] == 1:
            # Only count the neighbours that could have produced the winner
            unbiased_history = own_history
            for offset in ti.static(SPATIAL_OFFSETS):
                neighbor = cell + offset
                if 0 <= neighbor < num_points:
                    covers = 1
                    if neighbor != selected_source:
                        covers = _covers_domain(origin, surface_position(neighbor), winner)
                    if covers == 1:
                        unbiased_history += _prev_reservoirs[neighbor].with_max_history(max_spatial).history
        else:
            if lean and _retroactive_rejection[None] == 1 and has_winner:
                # Post-factum reject the neighbours that couldn't have produced the winner
                for offset in ti.static(SPATIAL_OFFSETS):
                    neighbor = cell + offset
                    if 0 <= neighbor < num_points and neighbor != selected_source:
                        neighbor_origin = surface_position(neighbor)
                        if _covers_domain(origin, neighbor_origin, winner) == 0:
                            prev = _prev_reservoirs[neighbor].with_max_history(max_spatial)
                            # Mirror what the spatial pass merged for this neighbour
                            merged = 0
                            light = _no_light()
                            if prev.has_weight() == 1:
                                direction = shift_map(_prev_samples[neighbor], neighbor_origin, origin)
                                light = evaluate_incident_light(origin, direction)
                                if light.has_distance == _prev_samples[neighbor].has_distance:
                                    merged = 1
                            if merged == 1:
                                builder.unmerge(prev.to_builder(light.target_value()))
                            else:
                                builder.unmerge_history(prev)
            unbiased_history = builder.history

    # The selected sample must be visible from this point to contribute
    if selected_light.target_value() > 0.0 and check_visibility(origin, selected_dir) == 0:
        builder.invalidate()
        selected_light = _no_light()

    # Finally write out the results
    reservoir = builder.finish_with_history(unbiased_history)
    _reservoirs[cell] = reservoir
    _samples[cell] = make_sample(selected_dir, selected_light.distance, selected_light.has_distance)

    color = selected_light.color * reservoir.contribution_weight
    alpha = _accumulation[None]
    deviation = color - _colors_accumulated[cell]
    _variance_accumulated[cell] = _variance_accumulated[cell] * (1.0 - alpha) + alpha * tm.dot(
        deviation, deviation
    )
    _colors_accumulated[cell] = _colors_accumulated[cell] * (1.0 - alpha) + alpha * color
    _colors[cell] = color


# =============================================================================
# Frame Kernels
# =============================================================================


@ti.kernel
def _snapshot_pixels(num_points: ti.i32):
    """Copy the live pixel store into the previous-frame snapshot."""
    for cell in range(num_points):
        _prev_reservoirs[cell] = _reservoirs[cell]
        _prev_samples[cell] = _samples[cell]


@ti.kernel
def _resample_pixels(num_points: ti.i32):
    """Update every surface point from the snapshot, in parallel."""
    for cell in range(num_points):
        _update_pixel(cell, num_points)


@ti.kernel
def _sum_variance(num_points: ti.i32) -> ti.f32:
    total = 0.0
    for cell in range(num_points):
        total += _variance_accumulated[cell]
    return total


def snapshot_pixels() -> None:
    """Freeze the current pixel store as the previous frame.

    Raises:
        RuntimeError: If the pipeline has not been set up.
    """
    _check_pipeline_initialized()
    _snapshot_pixels(_num_points[None])


def resample_pixels() -> None:
    """Update every point from the last snapshot.

    Must be preceded by snapshot_pixels(); update() does both.

    Raises:
        RuntimeError: If the pipeline or the world has not been set up.
    """
    _check_pipeline_initialized()
    if not is_world_initialized():
        raise RuntimeError("World not set up. Call setup_world() first.")
    _resample_pixels(_num_points[None])


def update() -> None:
    """Run one frame: snapshot, resample every point, update statistics.

    Raises:
        RuntimeError: If the pipeline or the world has not been set up.
    """
    snapshot_pixels()
    resample_pixels()

    num_points = _num_points[None]
    std_deviation = float(np.sqrt(_sum_variance(num_points) / num_points))
    alpha = float(_accumulation[None])
    _smooth_avg_deviation[None] = _smooth_avg_deviation[None] * (1.0 - alpha) + alpha * std_deviation
    _frame_index[None] += 1


# =============================================================================
# Read-back
# =============================================================================


def get_frame_index() -> int:
    """Get the number of frames run since the last clear."""
    return int(_frame_index[None])


def get_smooth_avg_deviation() -> float:
    """Get the smoothed average standard deviation of the output colors."""
    return float(_smooth_avg_deviation[None])


def get_colors_numpy() -> npt.NDArray[np.float32]:
    """Get the output color of the last frame, shape (num_points, 3).

    Raises:
        RuntimeError: If the pipeline has not been set up.
    """
    num_points = get_num_points()
    return _colors.to_numpy()[:num_points].astype(np.float32)


def get_accumulated_colors_numpy() -> npt.NDArray[np.float32]:
    """Get the running average of the output colors, shape (num_points, 3).

    Raises:
        RuntimeError: If the pipeline has not been set up.
    """
    num_points = get_num_points()
    return _colors_accumulated.to_numpy()[:num_points].astype(np.float32)


def get_variance_numpy() -> npt.NDArray[np.float32]:
    """Get the running average of the squared deviation, shape (num_points,).

    Raises:
        RuntimeError: If the pipeline has not been set up.
    """
    num_points = get_num_points()
    return _variance_accumulated.to_numpy()[:num_points].astype(np.float32)


def get_reservoirs_numpy(previous: bool = False) -> dict[str, npt.NDArray[np.generic]]:
    """Get the reservoirs as a dict of arrays.

    Args:
        previous: Return the previous-frame snapshot instead of the live store.

    Returns:
        Dict with "history" (int32) and "contribution_weight" (float32)
        arrays of shape (num_points,).

    Raises:
        RuntimeError: If the pipeline has not been set up.
    """
    num_points = get_num_points()
    field = _prev_reservoirs if previous else _reservoirs
    data = field.to_numpy()
    return {key: np.asarray(value)[:num_points] for key, value in data.items()}


def get_samples_numpy(previous: bool = False) -> dict[str, npt.NDArray[np.generic]]:
    """Get the selected samples as a dict of arrays.

    Args:
        previous: Return the previous-frame snapshot instead of the live store.

    Returns:
        Dict with "direction" (shape (num_points, 2)), "distance" and
        "has_distance" arrays.

    Raises:
        RuntimeError: If the pipeline has not been set up.
    """
    num_points = get_num_points()
    field = _prev_samples if previous else _samples
    data = field.to_numpy()
    return {key: np.asarray(value)[:num_points] for key, value in data.items()}
