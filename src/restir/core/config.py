"""Configuration for the resampling pipeline.

The convergence policy is a tagged variant with two members:

    Precise: candidates and reused samples are visibility-tested before they
        enter a reservoir. With unbias=True the normalization only counts
        neighbours that could have produced the selected sample.
    LeanAndMean: no per-candidate visibility. Optionally the initial winner
        is tested once, and neighbours that cannot see the final winner are
        retroactively unmerged.

Example:
    >>> from src.restir.core.config import Config, LeanAndMean, RestirConfig
    >>> config = Config(restir=RestirConfig(convergence=LeanAndMean()))
    >>> config.validate()
    >>> Config.from_dict(config.to_dict()) == config
    True
"""

from dataclasses import asdict, dataclass, field
from enum import IntEnum
from typing import Any

# Radius of the sun disk
SUN_RADIUS = 0.5


@dataclass
class WorldConfig:
    """Description of the 2-D world.

    The receiving surface spans cells 0..surface_length-1 on the line y = 0.
    Integer positions refer to grid cells, whose centres sit at +0.5.

    Attributes:
        surface_length: Number of points on the receiving surface.
        sun_position: Grid cell (x, y) of the sun, a disk of radius 0.5.
        sun_color: Radiance of the sun (RGB).
        sky_color: Radiance of the sky for rays that miss the sun (RGB).
        occluder_y: Grid row of the horizontal occluder.
        occluder_x: Horizontal extent (start, end) of the occluder, or None
            for a world without occluder.
    """

    surface_length: int = 40
    sun_position: tuple[int, int] = (5, 10)
    sun_color: tuple[float, float, float] = (10.0, 10.0, 1.0)
    sky_color: tuple[float, float, float] = (0.0, 0.0, 0.1)
    occluder_y: int = 5
    occluder_x: tuple[int, int] | None = (7, 15)

    def validate(self) -> None:
        """Check the world description.

        Raises:
            ValueError: If the surface is empty, the occluder range is
                reversed or a color is negative.
        """
        if self.surface_length <= 0:
            raise ValueError(f"surface_length must be positive, got {self.surface_length}")
        if self.occluder_x is not None and self.occluder_x[0] > self.occluder_x[1]:
            raise ValueError(f"occluder_x must be an increasing range, got {self.occluder_x}")
        if min(self.sun_color) < 0.0 or min(self.sky_color) < 0.0:
            raise ValueError("Light colors must be non-negative")


class ConvergenceMode(IntEnum):
    """Integer tags of the convergence policies, as stored in Taichi fields."""

    PRECISE = 0
    LEAN_AND_MEAN = 1


@dataclass(frozen=True)
class Precise:
    """Visibility-tested reuse.

    Attributes:
        unbias: Exclude neighbours that cannot produce the selected sample
            from the normalization.
    """

    unbias: bool = True

    @property
    def mode(self) -> ConvergenceMode:
        return ConvergenceMode.PRECISE


@dataclass(frozen=True)
class LeanAndMean:
    """Reuse without per-candidate visibility tests.

    Attributes:
        initial_visibility: Test the winner of the initial candidates once
            and discard it when occluded.
        retroactive_rejection: After spatial reuse, unmerge every neighbour
            that cannot see the final winner from its own position.
    """

    initial_visibility: bool = True
    retroactive_rejection: bool = False

    @property
    def mode(self) -> ConvergenceMode:
        return ConvergenceMode.LEAN_AND_MEAN


Convergence = Precise | LeanAndMean


@dataclass
class RestirConfig:
    """Parameters of the resampling pipeline.

    Attributes:
        convergence: The convergence policy (Precise or LeanAndMean).
        initial_samples: Number of fresh candidates per point and frame.
        max_initial_history: History bound applied to the initial candidates.
        max_temporal_history: History bound of the previous frame's
            reservoir. Zero disables temporal reuse.
        max_spatial_history: History bound of each neighbour's reservoir.
            Zero disables spatial reuse.
    """

    convergence: Convergence = field(default_factory=Precise)
    initial_samples: int = 4
    max_initial_history: int = 1
    max_temporal_history: int = 20
    max_spatial_history: int = 10

    def validate(self) -> None:
        """Check the parameters.

        Raises:
            ValueError: If a count or history bound is out of range.
        """
        if self.initial_samples <= 0:
            raise ValueError(f"initial_samples must be positive, got {self.initial_samples}")
        if self.max_initial_history <= 0:
            raise ValueError(
                f"max_initial_history must be positive, got {self.max_initial_history}"
            )
        if self.max_temporal_history < 0:
            raise ValueError(
                f"max_temporal_history must be non-negative, got {self.max_temporal_history}"
            )
        if self.max_spatial_history < 0:
            raise ValueError(
                f"max_spatial_history must be non-negative, got {self.max_spatial_history}"
            )
        if not isinstance(self.convergence, (Precise, LeanAndMean)):
            raise ValueError(f"Unknown convergence policy: {self.convergence!r}")


@dataclass
class Config:
    """Complete configuration: world, pipeline and display smoothing.

    Attributes:
        world: The scene description.
        restir: The resampling pipeline parameters.
        accumulation: Smoothing factor of the running color and variance
            averages, in (0, 1).
    """

    world: WorldConfig = field(default_factory=WorldConfig)
    restir: RestirConfig = field(default_factory=RestirConfig)
    accumulation: float = 0.01

    def validate(self) -> None:
        """Check the whole configuration.

        Raises:
            ValueError: If any part of the configuration is invalid.
        """
        self.world.validate()
        self.restir.validate()
        if not 0.0 < self.accumulation < 1.0:
            raise ValueError(f"accumulation must be in (0, 1), got {self.accumulation}")

    def to_dict(self) -> dict[str, Any]:
        """Serialize the configuration to plain Python types."""
        restir = asdict(self.restir)
        restir["convergence"] = {
            "mode": self.restir.convergence.mode.name.lower(),
            **asdict(self.restir.convergence),
        }
        return {
            "world": asdict(self.world),
            "restir": restir,
            "accumulation": self.accumulation,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Create a configuration from the output of to_dict().

        Missing keys fall back to their defaults.

        Raises:
            ValueError: If the convergence mode is unknown.
        """
        world_data = dict(data.get("world", {}))
        for key in ("sun_position", "sun_color", "sky_color", "occluder_x"):
            if world_data.get(key) is not None:
                world_data[key] = tuple(world_data[key])

        restir_data = dict(data.get("restir", {}))
        convergence_data = dict(restir_data.pop("convergence", {"mode": "precise"}))
        mode = convergence_data.pop("mode", "precise")
        if mode == "precise":
            convergence: Convergence = Precise(**convergence_data)
        elif mode == "lean_and_mean":
            convergence = LeanAndMean(**convergence_data)
        else:
            raise ValueError(f"Unknown convergence mode: {mode}")

        return cls(
            world=WorldConfig(**world_data),
            restir=RestirConfig(convergence=convergence, **restir_data),
            accumulation=data.get("accumulation", 0.01),
        )
