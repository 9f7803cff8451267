"""Core resampling module.

Components:
    reservoir: Reservoir and ReservoirBuilder (weighted reservoir sampling)
    sampling: Half-circle direction sampling and shift mapping
    config: World and pipeline configuration
    pipeline: Pixel store and the per-frame resampling kernel
    progressive: RestirRenderer frame loop wrapper
"""

from .config import (
    Config,
    Convergence,
    ConvergenceMode,
    LeanAndMean,
    Precise,
    RestirConfig,
    WorldConfig,
)
from .reservoir import (
    Reservoir,
    ReservoirBuilder,
    empty_reservoir,
    new_builder,
    reservoir_from_sample,
)
from .sampling import (
    HEMISPHERE_PDF,
    SampleInfo,
    direction_from_angle,
    make_sample,
    sample_hemisphere_direction,
    shift_map,
)

# Note: pipeline and progressive are NOT imported here, they allocate Taichi
# fields on import. Import directly from src.restir.core.pipeline or
# src.restir.core.progressive when needed.

__all__ = [
    "Config",
    "Convergence",
    "ConvergenceMode",
    "LeanAndMean",
    "Precise",
    "RestirConfig",
    "WorldConfig",
    "Reservoir",
    "ReservoirBuilder",
    "empty_reservoir",
    "new_builder",
    "reservoir_from_sample",
    "HEMISPHERE_PDF",
    "SampleInfo",
    "direction_from_angle",
    "make_sample",
    "sample_hemisphere_direction",
    "shift_map",
]
