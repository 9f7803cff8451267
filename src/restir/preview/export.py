"""Image export utilities for the surface illumination.

The per-point colors are written as a strip image: one column block per
surface point, repeated vertically so the strip is easy to look at.

Supported formats:
    - PNG (8-bit sRGB via Pillow)

Example:
    >>> from src.restir.preview.export import save_png
    >>> from src.restir.core.config import Config
    >>> from src.restir.core.progressive import RestirRenderer
    >>>
    >>> renderer = RestirRenderer(Config())
    >>> renderer.render(1000)
    >>> save_png(renderer, "surface.png")
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
import numpy.typing as npt
from PIL import Image as PILImage

from src.restir.preview.display import ToneMapMethod, process_colors_for_display

if TYPE_CHECKING:
    from src.restir.core.progressive import RestirRenderer


def brightness_strip_to_uint8(
    colors: npt.NDArray[np.float32],
    *,
    height: int = 16,
    cell_width: int = 8,
    tone_map: ToneMapMethod = "reinhard",
    gamma: float = 2.2,
    exposure: float = 1.0,
) -> npt.NDArray[np.uint8]:
    """Convert per-point colors to an 8-bit strip image.

    Args:
        colors: Linear colors of shape (N, 3).
        height: Height of the strip in pixels.
        cell_width: Width of every surface point in pixels.
        tone_map: Tone mapping method ("none", "reinhard", or "exposure").
        gamma: Gamma correction value (default 2.2 for sRGB).
        exposure: Exposure value for exposure tone mapping (default 1.0).

    Returns:
        Image array of shape (height, N * cell_width, 3) with dtype uint8.

    Raises:
        ValueError: If colors is not of shape (N, 3) or a size is not positive.
    """
    if colors.ndim != 2 or colors.shape[1] != 3:
        raise ValueError(f"Colors must have shape (N, 3), got {colors.shape}")
    if height <= 0 or cell_width <= 0:
        raise ValueError(f"Strip size must be positive, got {height}x{cell_width}")

    processed = process_colors_for_display(
        colors,
        tone_map=tone_map,
        gamma=gamma,
        exposure=exposure,
    )
    row = np.repeat(processed, cell_width, axis=0)
    strip = np.broadcast_to(row[None, :, :], (height, row.shape[0], 3))
    return (strip * 255).astype(np.uint8)


def save_png_from_array(
    colors: npt.NDArray[np.float32],
    filepath: str,
    *,
    height: int = 16,
    cell_width: int = 8,
    tone_map: ToneMapMethod = "reinhard",
    gamma: float = 2.2,
    exposure: float = 1.0,
) -> None:
    """Save per-point colors as a PNG strip.

    Args:
        colors: Linear colors of shape (N, 3).
        filepath: Output file path (should end in .png).
        height: Height of the strip in pixels.
        cell_width: Width of every surface point in pixels.
        tone_map: Tone mapping method ("none", "reinhard", or "exposure").
        gamma: Gamma correction value (default 2.2 for sRGB).
        exposure: Exposure value for exposure tone mapping (default 1.0).
    """
    image_uint8 = brightness_strip_to_uint8(
        colors,
        height=height,
        cell_width=cell_width,
        tone_map=tone_map,
        gamma=gamma,
        exposure=exposure,
    )
    pil_image = PILImage.fromarray(np.ascontiguousarray(image_uint8), mode="RGB")
    pil_image.save(filepath)


def save_png(
    renderer: RestirRenderer,
    filepath: str,
    *,
    height: int = 16,
    cell_width: int = 8,
    tone_map: ToneMapMethod = "reinhard",
    gamma: float = 2.2,
    exposure: float = 1.0,
) -> None:
    """Save the accumulated surface colors of a renderer as a PNG strip.

    Args:
        renderer: The RestirRenderer instance to save.
        filepath: Output file path (should end in .png).
        height: Height of the strip in pixels.
        cell_width: Width of every surface point in pixels.
        tone_map: Tone mapping method ("none", "reinhard", or "exposure").
        gamma: Gamma correction value (default 2.2 for sRGB).
        exposure: Exposure value for exposure tone mapping (default 1.0).
    """
    save_png_from_array(
        renderer.get_accumulated_color_numpy(),
        filepath,
        height=height,
        cell_width=cell_width,
        tone_map=tone_map,
        gamma=gamma,
        exposure=exposure,
    )


def compute_rmse(
    colors_a: npt.NDArray[np.floating[npt.NBitBase]],
    colors_b: npt.NDArray[np.floating[npt.NBitBase]],
) -> float:
    """Compute root mean squared error between two color arrays.

    Args:
        colors_a: First color array.
        colors_b: Second color array (must have same shape as colors_a).

    Returns:
        RMSE value (lower is more similar).

    Raises:
        ValueError: If shapes don't match.
    """
    if colors_a.shape != colors_b.shape:
        raise ValueError(
            f"Color array shapes must match: {colors_a.shape} vs {colors_b.shape}"
        )

    diff = colors_a.astype(np.float64) - colors_b.astype(np.float64)
    return float(np.sqrt(np.mean(diff**2)))
