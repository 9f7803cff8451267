"""Matplotlib-based preview display for the surface illumination.

This module provides functions for plotting the 2-D world and the estimated
brightness of every surface point, with support for tone mapping and gamma
correction of the per-point colors.

Features:
    - World view: sun, occluder and the lit surface
    - Brightness curve with frame count and noise level
    - Comparison of an estimate against the reference integral

Example:
    >>> from src.restir.preview.display import show_preview
    >>> from src.restir.core.config import Config
    >>> from src.restir.core.progressive import RestirRenderer
    >>>
    >>> renderer = RestirRenderer(Config())
    >>> renderer.render(1000)
    >>> show_preview(renderer)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Literal

import numpy as np
import numpy.typing as npt

from src.restir.core.config import SUN_RADIUS, WorldConfig

if TYPE_CHECKING:
    from src.restir.core.progressive import RestirRenderer


# Type alias for tone mapping options
ToneMapMethod = Literal["none", "reinhard", "exposure"]


def brightness(colors: npt.NDArray[np.floating]) -> npt.NDArray[np.float32]:
    """Per-point brightness: the length of each RGB color.

    Args:
        colors: Color array of shape (N, 3).

    Returns:
        Array of shape (N,).
    """
    return np.linalg.norm(np.asarray(colors, dtype=np.float32), axis=-1).astype(np.float32)


def tone_map_reinhard(
    colors: npt.NDArray[np.float32],
) -> npt.NDArray[np.float32]:
    """Apply Reinhard tone mapping: L / (1 + L).

    Args:
        colors: Linear HDR colors of any shape.

    Returns:
        Tone mapped colors in [0, 1] range.
    """
    colors = np.maximum(colors, 0.0)
    return (colors / (1.0 + colors)).astype(np.float32)


def tone_map_exposure(
    colors: npt.NDArray[np.float32],
    exposure: float = 1.0,
) -> npt.NDArray[np.float32]:
    """Apply exposure-based tone mapping: 1 - exp(-c * exposure).

    Args:
        colors: Linear HDR colors of any shape.
        exposure: Exposure value (default 1.0). Higher values brighten.

    Returns:
        Tone mapped colors in [0, 1] range.
    """
    colors = np.maximum(colors, 0.0)
    return (1.0 - np.exp(-colors * exposure)).astype(np.float32)


def apply_gamma(
    colors: npt.NDArray[np.float32],
    gamma: float = 2.2,
) -> npt.NDArray[np.float32]:
    """Apply gamma correction for display.

    Args:
        colors: Linear colors in [0, 1] range.
        gamma: Gamma value (default 2.2 for sRGB).

    Returns:
        Gamma corrected colors.
    """
    if gamma == 1.0:
        return colors

    # Clamp to [0, 1] before gamma to avoid NaN from negative values
    colors = np.clip(colors, 0.0, 1.0)
    return np.power(colors, 1.0 / gamma).astype(np.float32)


def process_colors_for_display(
    colors: npt.NDArray[np.float32],
    tone_map: ToneMapMethod = "reinhard",
    gamma: float = 2.2,
    exposure: float = 1.0,
) -> npt.NDArray[np.float32]:
    """Tone map, gamma correct and clamp colors for display.

    Args:
        colors: Linear HDR colors of any shape.
        tone_map: Tone mapping method ("none", "reinhard", or "exposure").
        gamma: Gamma correction value (default 2.2 for sRGB).
        exposure: Exposure value for exposure tone mapping (default 1.0).

    Returns:
        Processed colors in [0, 1] range.

    Raises:
        ValueError: If the tone mapping method is unknown.
    """
    result = np.asarray(colors, dtype=np.float32).copy()

    if tone_map == "reinhard":
        result = tone_map_reinhard(result)
    elif tone_map == "exposure":
        result = tone_map_exposure(result, exposure)
    elif tone_map != "none":
        raise ValueError(f"Unknown tone mapping method: {tone_map}")

    result = apply_gamma(result, gamma)
    return np.clip(result, 0.0, 1.0).astype(np.float32)


def plot_world(
    ax: Any,
    world: WorldConfig,
    colors: npt.NDArray[np.float32] | None = None,
    *,
    tone_map: ToneMapMethod = "reinhard",
    gamma: float = 2.2,
) -> None:
    """Draw the world (sun, occluder, surface) into a Matplotlib axes.

    Args:
        ax: The Matplotlib axes to draw into.
        world: The world description.
        colors: Optional per-point colors of shape (surface_length, 3).
            When given, every surface cell is filled with its display color.
        tone_map: Tone mapping method applied to the colors.
        gamma: Gamma correction value applied to the colors.
    """
    from matplotlib.patches import Circle, Rectangle

    length = world.surface_length
    sun_x, sun_y = world.sun_position

    sun_display = process_colors_for_display(
        np.asarray(world.sun_color, dtype=np.float32), tone_map=tone_map, gamma=gamma
    )
    sky_display = process_colors_for_display(
        np.asarray(world.sky_color, dtype=np.float32), tone_map=tone_map, gamma=gamma
    )
    ax.set_facecolor(tuple(sky_display))
    ax.add_patch(Circle((sun_x + 0.5, sun_y + 0.5), SUN_RADIUS, color=tuple(sun_display)))

    if world.occluder_x is not None:
        start, end = world.occluder_x
        ax.plot([start, end], [world.occluder_y + 0.5] * 2, color="gray", linewidth=3)

    if colors is None:
        ax.plot([0, length], [0, 0], color="white", linewidth=2)
    else:
        display = process_colors_for_display(colors, tone_map=tone_map, gamma=gamma)
        for cell in range(length):
            ax.add_patch(Rectangle((cell, -0.5), 1.0, 0.5, color=tuple(display[cell])))

    ax.set_xlim(0, length)
    ax.set_ylim(-0.5, max(sun_y + 1.5, world.occluder_y + 1.5))
    ax.set_aspect("equal")


def show_preview(
    renderer: RestirRenderer,
    *,
    tone_map: ToneMapMethod = "reinhard",
    gamma: float = 2.2,
    title: str | None = None,
    figsize: tuple[float, float] = (10, 8),
    block: bool = True,
) -> None:
    """Display the world and the current brightness estimate.

    The top panel shows the world with the lit surface, the bottom panel the
    brightness of every point. The frame index and the smoothed standard
    deviation are displayed in the title.

    Args:
        renderer: The RestirRenderer instance to display.
        tone_map: Tone mapping method ("none", "reinhard", or "exposure").
        gamma: Gamma correction value (default 2.2 for sRGB).
        title: Custom title (default shows frame index and deviation).
        figsize: Figure size in inches (width, height).
        block: Whether to block execution until figure is closed.
    """
    import matplotlib.pyplot as plt

    colors = renderer.get_accumulated_color_numpy()
    values = brightness(colors)

    fig, (ax_world, ax_curve) = plt.subplots(2, 1, figsize=figsize)

    plot_world(ax_world, renderer.config.world, colors, tone_map=tone_map, gamma=gamma)

    ax_curve.bar(np.arange(len(values)) + 0.5, values, width=1.0, color="orange")
    ax_curve.set_xlim(0, len(values))
    ax_curve.set_xlabel("surface position")
    ax_curve.set_ylabel("brightness")

    if title is None:
        title = (
            f"Frame {renderer.frame_index} - "
            f"std deviation {renderer.smooth_avg_deviation:.4f}"
        )
    fig.suptitle(title)

    plt.tight_layout()
    plt.show(block=block)


def show_comparison(
    estimate: npt.NDArray[np.float32],
    reference: npt.NDArray[np.float32],
    *,
    labels: tuple[str, str] = ("Estimate", "Reference"),
    figsize: tuple[float, float] = (12, 6),
    block: bool = True,
) -> float:
    """Plot the brightness of an estimate against a reference.

    Args:
        estimate: Estimated colors, shape (N, 3).
        reference: Reference colors, shape (N, 3).
        labels: Labels for the two curves.
        figsize: Figure size in inches.
        block: Whether to block execution until figure is closed.

    Returns:
        RMSE between the two color arrays.

    Raises:
        ValueError: If the shapes don't match.
    """
    import matplotlib.pyplot as plt

    from src.restir.preview.export import compute_rmse

    rmse = compute_rmse(estimate, reference)

    positions = np.arange(estimate.shape[0]) + 0.5
    estimate_values = brightness(estimate)
    reference_values = brightness(reference)

    fig, (ax_curve, ax_diff) = plt.subplots(2, 1, figsize=figsize, sharex=True)

    ax_curve.plot(positions, estimate_values, label=labels[0])
    ax_curve.plot(positions, reference_values, label=labels[1], linestyle="--")
    ax_curve.set_ylabel("brightness")
    ax_curve.legend()

    ax_diff.bar(positions, estimate_values - reference_values, width=1.0, color="gray")
    ax_diff.set_xlabel("surface position")
    ax_diff.set_title(f"Difference - RMSE: {rmse:.6f}")

    plt.tight_layout()
    plt.show(block=block)

    return rmse
