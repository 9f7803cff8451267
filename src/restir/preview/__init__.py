"""Preview module for plots, export and the interactive window.

Components:
    display: Matplotlib plots of the world and the brightness estimate
    export: PNG strip export utilities
    interactive: Taichi GGUI-based interactive window

Example:
    >>> from src.restir.preview import show_preview, save_png
    >>> from src.restir.core.config import Config
    >>> from src.restir.core.progressive import RestirRenderer
    >>>
    >>> renderer = RestirRenderer(Config())
    >>> renderer.render(1000)
    >>> show_preview(renderer)
    >>> save_png(renderer, "surface.png")
"""

from src.restir.preview.display import (
    ToneMapMethod,
    apply_gamma,
    brightness,
    plot_world,
    process_colors_for_display,
    show_comparison,
    show_preview,
    tone_map_exposure,
    tone_map_reinhard,
)
from src.restir.preview.export import (
    brightness_strip_to_uint8,
    compute_rmse,
    save_png,
    save_png_from_array,
)
from src.restir.preview.interactive import InteractivePreview, render_world_image

__all__ = [
    # Interactive preview
    "InteractivePreview",
    "render_world_image",
    # Display functions
    "show_preview",
    "show_comparison",
    "plot_world",
    "brightness",
    # Tone mapping
    "tone_map_reinhard",
    "tone_map_exposure",
    "apply_gamma",
    "process_colors_for_display",
    "ToneMapMethod",
    # Export functions
    "save_png",
    "save_png_from_array",
    "brightness_strip_to_uint8",
    "compute_rmse",
]
