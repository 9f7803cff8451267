"""Interactive preview window using Taichi GGUI.

The window runs the resampling pipeline continuously and shows the world
with the lit surface and a bar chart of the per-point brightness. A side
panel displays the frame index and the smoothed noise level and lets the
user switch the convergence policy or export the current estimate.

Keys:
    Esc: close the window

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.restir.core.config import Config
    >>> from src.restir.core.progressive import RestirRenderer
    >>> from src.restir.preview.interactive import InteractivePreview
    >>>
    >>> preview = InteractivePreview(RestirRenderer(Config()))
    >>> preview.run()  # Renders continuously until window closed
"""

from __future__ import annotations

import os
from datetime import datetime
from typing import TYPE_CHECKING

import numpy as np
import taichi as ti

from src.restir.core.config import SUN_RADIUS, LeanAndMean, Precise, WorldConfig
from src.restir.preview.display import (
    ToneMapMethod,
    brightness,
    process_colors_for_display,
)

if TYPE_CHECKING:
    import numpy.typing as npt

    from src.restir.core.progressive import RestirRenderer

# Fraction of the window height used by the brightness bar chart
BAR_CHART_FRACTION = 0.3

# Half thickness of the occluder line in world units
OCCLUDER_HALF_THICKNESS = 0.15


def render_world_image(
    world: WorldConfig,
    colors: npt.NDArray[np.float32],
    width: int,
    height: int,
    *,
    tone_map: ToneMapMethod = "reinhard",
    gamma: float = 2.2,
) -> npt.NDArray[np.float32]:
    """Rasterize the world and the per-point brightness into an image.

    The upper part shows the world (sky, sun, occluder, lit surface), the
    lower part a bar chart of the brightness normalized to its maximum.

    Args:
        world: The world description.
        colors: Per-point linear colors of shape (surface_length, 3).
        width: Image width in pixels.
        height: Image height in pixels.
        tone_map: Tone mapping method applied to all colors.
        gamma: Gamma correction value applied to all colors.

    Returns:
        Image array of shape (height, width, 3) with values in [0, 1].
    """
    length = world.surface_length
    chart_height = int(height * BAR_CHART_FRACTION)
    view_height = height - chart_height

    image = np.zeros((height, width, 3), dtype=np.float32)

    # World view, x in [0, length], y from -1 (surface strip) upwards
    scale = width / length
    columns = (np.arange(width) + 0.5) / scale
    rows = (view_height - np.arange(view_height) - 0.5) / scale - 1.0
    x, y = np.meshgrid(columns, rows)

    display_colors = process_colors_for_display(colors, tone_map=tone_map, gamma=gamma)
    view = np.empty((view_height, width, 3), dtype=np.float32)
    view[:] = process_colors_for_display(
        np.asarray(world.sky_color, dtype=np.float32), tone_map=tone_map, gamma=gamma
    )

    sun_x = world.sun_position[0] + 0.5
    sun_y = world.sun_position[1] + 0.5
    in_sun = (x - sun_x) ** 2 + (y - sun_y) ** 2 < SUN_RADIUS**2
    view[in_sun] = process_colors_for_display(
        np.asarray(world.sun_color, dtype=np.float32), tone_map=tone_map, gamma=gamma
    )

    if world.occluder_x is not None:
        start, end = world.occluder_x
        on_occluder = (
            (np.abs(y - (world.occluder_y + 0.5)) < OCCLUDER_HALF_THICKNESS)
            & (x >= start)
            & (x <= end)
        )
        view[on_occluder] = 0.5

    below = y < 0.0
    cells = np.clip(x.astype(np.int32), 0, length - 1)
    view[below] = display_colors[cells[below]]
    image[:view_height] = view

    # Bar chart
    if chart_height > 0:
        values = brightness(colors)
        peak = float(values.max()) if values.size else 0.0
        if peak > 0.0:
            bar_heights = (values / peak * chart_height).astype(np.int32)
            column_cells = np.clip(columns.astype(np.int32), 0, length - 1)
            chart_rows = chart_height - np.arange(chart_height)[:, None]
            filled = chart_rows <= bar_heights[column_cells][None, :]
            chart = np.zeros((chart_height, width, 3), dtype=np.float32)
            chart[filled] = (1.0, 0.6, 0.1)
            image[view_height:] = chart

    return image


class InteractivePreview:
    """Interactive preview window using Taichi GGUI.

    Attributes:
        width: Window width in pixels.
        height: Window height in pixels.
        display_image: Taichi field storing the display image (RGB float).
    """

    def __init__(
        self,
        renderer: RestirRenderer,
        width: int = 960,
        height: int = 480,
        *,
        title: str = "ReSTIR - Interactive Preview",
        frames_per_draw: int = 1,
    ) -> None:
        """Initialize the interactive preview.

        Args:
            renderer: The renderer to drive.
            width: Window width in pixels.
            height: Window height in pixels.
            title: Window title.
            frames_per_draw: Number of pipeline frames per displayed frame.

        Raises:
            ValueError: If frames_per_draw is not positive.

        Note:
            The window is created but not shown until run() is called.
        """
        if frames_per_draw <= 0:
            raise ValueError(f"frames_per_draw must be positive, got {frames_per_draw}")

        self.width = width
        self.height = height
        self._title = title
        self._renderer = renderer
        self._frames_per_draw = frames_per_draw
        self._is_initialized = False

        # Defer window creation until run() to support headless checks
        self._window: ti.ui.Window | None = None
        self._canvas: ti.ui.Canvas | None = None

        # Shape is (width, height) for Taichi field, RGB values stored as vec3
        self.display_image: ti.MatrixField = ti.Vector.field(
            3, dtype=ti.f32, shape=(width, height)
        )

    def _initialize_window(self) -> None:
        """Initialize the Taichi GGUI window and canvas."""
        if self._is_initialized:
            return

        self._window = ti.ui.Window(
            name=self._title,
            res=(self.width, self.height),
            vsync=True,
        )
        self._canvas = self._window.get_canvas()
        self._is_initialized = True

    @property
    def window(self) -> ti.ui.Window:
        """Get the Taichi GGUI window, initializing if needed."""
        if self._window is None:
            self._initialize_window()
        assert self._window is not None
        return self._window

    @property
    def canvas(self) -> ti.ui.Canvas:
        """Get the canvas for rendering."""
        if self._canvas is None:
            self._initialize_window()
        assert self._canvas is not None
        return self._canvas

    @property
    def renderer(self) -> RestirRenderer:
        """Get the driven renderer."""
        return self._renderer

    def update_image(self, image: npt.NDArray[np.float32]) -> None:
        """Update the display image from a numpy array.

        Args:
            image: NumPy array of shape (height, width, 3) in [0, 1].

        Raises:
            ValueError: If image shape doesn't match (height, width, 3).
        """
        expected_shape = (self.height, self.width, 3)
        if image.shape != expected_shape:
            raise ValueError(
                f"Image shape {image.shape} doesn't match expected {expected_shape}"
            )

        # NumPy images are (height, width, channels) with the origin at the
        # top-left, Taichi fields are (x, y) with the origin at the bottom-left
        image_transposed = np.ascontiguousarray(
            np.transpose(np.flipud(image), (1, 0, 2))
        )
        self.display_image.from_numpy(image_transposed)

    def refresh_image(self) -> None:
        """Rasterize the renderer's current estimate into the display image."""
        image = render_world_image(
            self._renderer.config.world,
            self._renderer.get_accumulated_color_numpy(),
            self.width,
            self.height,
        )
        self.update_image(image)

    def is_running(self) -> bool:
        """Check if the window is still open."""
        return self.window.running

    def show_frame(self) -> None:
        """Present the current display image."""
        self.canvas.set_image(self.display_image)
        self.window.show()

    def run(self) -> None:
        """Run the main loop until the window is closed.

        Each iteration runs frames_per_draw pipeline frames, redraws the
        world and the control panel, and handles the Esc key.
        """
        self._initialize_window()

        while self.is_running():
            self._handle_events()
            self._renderer.render(self._frames_per_draw)
            self.refresh_image()
            self._draw_gui_panel()
            self.show_frame()

    def close(self) -> None:
        """Close the preview window."""
        if self._window is not None:
            self._window.running = False

    def _handle_events(self) -> None:
        """Close the window on Esc."""
        if self.window.get_event(ti.ui.PRESS) and self.window.event.key == ti.ui.ESCAPE:
            self.close()

    def _draw_gui_panel(self) -> None:
        """Draw the statistics and convergence policy controls."""
        convergence = self._renderer.convergence

        with self.window.GUI.sub_window("ReSTIR", 0.72, 0.02, 0.26, 0.4) as gui:
            gui.text(f"Frame: {self._renderer.frame_index}")
            gui.text(f"Std deviation: {self._renderer.smooth_avg_deviation:.5f}")

            precise = gui.checkbox("Precise", isinstance(convergence, Precise))
            if isinstance(convergence, Precise):
                unbias = gui.checkbox("Unbias", convergence.unbias)
                if not precise:
                    new_convergence = LeanAndMean()
                else:
                    new_convergence = Precise(unbias=unbias)
            else:
                initial_visibility = gui.checkbox(
                    "Initial visibility", convergence.initial_visibility
                )
                retroactive_rejection = gui.checkbox(
                    "Retroactive rejection", convergence.retroactive_rejection
                )
                if precise:
                    new_convergence = Precise()
                else:
                    new_convergence = LeanAndMean(
                        initial_visibility=initial_visibility,
                        retroactive_rejection=retroactive_rejection,
                    )

            if gui.button("Reset"):
                self._renderer.reset()
            if gui.button("Export PNG"):
                self._export_png()

        if new_convergence != convergence:
            self._renderer.set_convergence(new_convergence)

    def _export_png(self) -> str:
        """Export the current estimate to a timestamped PNG strip.

        Returns:
            The name of the written file.
        """
        from src.restir.preview.export import save_png

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        filename = f"restir_{timestamp}.png"
        save_png(self._renderer, filename)
        print(f"Exported: {filename} (frame {self._renderer.frame_index})")
        return filename

    @staticmethod
    def is_display_available() -> bool:
        """Check if a display is available for GUI rendering.

        Returns:
            True if a display is available, False for headless environments.
        """
        display = os.environ.get("DISPLAY")
        wayland = os.environ.get("WAYLAND_DISPLAY")

        # On macOS, display is always available if not in SSH
        if os.uname().sysname == "Darwin":
            ssh_connection = os.environ.get("SSH_CONNECTION")
            if ssh_connection and not display:
                return False
            return True

        if display or wayland:
            return True

        # Windows generally always has display
        if os.name == "nt":
            return True

        return False
