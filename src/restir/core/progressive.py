"""Frame-loop wrapper around the resampling pipeline.

This module provides a convenient wrapper around the pipeline that supports:
- Running many frames in one call, in batches
- Progress callbacks and a generator interface for UI updates
- Reset and policy switching without reallocating buffers

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.restir.core.config import Config
    >>> from src.restir.core.progressive import RestirRenderer
    >>>
    >>> renderer = RestirRenderer(Config())
    >>> renderer.render(100)
    >>> brightness = renderer.get_brightness_numpy()
"""

from collections.abc import Callable, Generator

import numpy as np
import numpy.typing as npt

from src.restir.core.config import Config, Convergence
from src.restir.core.pipeline import (
    clear_pixel_store,
    get_accumulated_colors_numpy,
    get_colors_numpy,
    get_convergence,
    get_frame_index,
    get_reservoirs_numpy,
    get_smooth_avg_deviation,
    get_variance_numpy,
    set_convergence,
    setup_pipeline,
    update,
)
from src.restir.scene.world import setup_world

# Type alias for progress callback
# Callback receives (current_frame, target_frame)
ProgressCallback = Callable[[int, int], None]


class RestirRenderer:
    """Runs the resampling pipeline frame by frame.

    The renderer configures the world and the pipeline from a Config and
    delegates to the global pipeline buffers (which are Taichi fields), so
    only one renderer is active at a time.

    Attributes:
        config: The configuration the renderer was built from.
    """

    def __init__(self, config: Config) -> None:
        """Initialize the renderer.

        Args:
            config: The world and pipeline configuration.

        Raises:
            ValueError: If the configuration is invalid.
        """
        config.validate()
        self._config = config
        setup_world(config.world)
        setup_pipeline(config.world.surface_length, config.restir, config.accumulation)

    @property
    def config(self) -> Config:
        """Get the configuration."""
        return self._config

    @property
    def surface_length(self) -> int:
        """Get the number of surface points."""
        return self._config.world.surface_length

    @property
    def frame_index(self) -> int:
        """Get the number of frames run since the last reset."""
        return get_frame_index()

    @property
    def smooth_avg_deviation(self) -> float:
        """Get the smoothed average standard deviation of the output."""
        return get_smooth_avg_deviation()

    @property
    def convergence(self) -> Convergence:
        """Get the convergence policy in use."""
        return get_convergence()

    def reset(self) -> None:
        """Clear all reservoirs and running averages."""
        clear_pixel_store()

    def set_convergence(self, convergence: Convergence, reset: bool = True) -> None:
        """Switch the convergence policy.

        Args:
            convergence: The new policy.
            reset: Clear the pixel store, so the new policy starts from
                scratch instead of reusing reservoirs built by the old one.
        """
        set_convergence(convergence)
        self._config.restir.convergence = convergence
        if reset:
            self.reset()

    def update(self) -> None:
        """Run a single frame."""
        update()

    def render(
        self,
        num_frames: int = 1,
        batch_size: int = 1,
        callback: ProgressCallback | None = None,
    ) -> None:
        """Run frames with an optional progress callback.

        Args:
            num_frames: Number of frames to run.
            batch_size: Number of frames to run before each callback.
            callback: Optional callback function called after each batch.
                Receives (current_frame, target_frame).

        Example:
            >>> def progress(current, target):
            ...     print(f"Frame {current}/{target}")
            >>> renderer.render(1000, batch_size=100, callback=progress)
        """
        for current, target in self.render_progressive(num_frames, batch_size):
            if callback is not None:
                callback(current, target)

    def render_progressive(
        self,
        num_frames: int = 1,
        batch_size: int = 1,
    ) -> Generator[tuple[int, int], None, None]:
        """Run frames, yielding progress after each batch.

        Args:
            num_frames: Number of frames to run.
            batch_size: Number of frames to run before each yield.

        Yields:
            Tuple of (current_frame, target_frame).
        """
        if num_frames <= 0:
            return
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")

        target_frame = self.frame_index + num_frames
        remaining = num_frames
        while remaining > 0:
            batch = min(batch_size, remaining)
            for _ in range(batch):
                update()
            remaining -= batch
            yield (self.frame_index, target_frame)

    def get_color_numpy(self) -> npt.NDArray[np.float32]:
        """Get the output color of the last frame, shape (surface_length, 3)."""
        return get_colors_numpy()

    def get_accumulated_color_numpy(self) -> npt.NDArray[np.float32]:
        """Get the running average of the output color, shape (surface_length, 3)."""
        return get_accumulated_colors_numpy()

    def get_brightness_numpy(self) -> npt.NDArray[np.float32]:
        """Get the per-point brightness (length of the accumulated color)."""
        return np.linalg.norm(get_accumulated_colors_numpy(), axis=-1).astype(np.float32)

    def get_variance_numpy(self) -> npt.NDArray[np.float32]:
        """Get the running average of the squared deviation per point."""
        return get_variance_numpy()

    def get_histories_numpy(self) -> npt.NDArray[np.int32]:
        """Get the reservoir history of every point."""
        return get_reservoirs_numpy()["history"].astype(np.int32)

    def __repr__(self) -> str:
        """Return a string representation of the renderer state."""
        return (
            f"RestirRenderer(surface_length={self.surface_length}, "
            f"frames={self.frame_index}, convergence={self.convergence!r})"
        )
