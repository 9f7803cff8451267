"""Scene module: the 2-D world and its reference solution.

Components:
    world: Sun, sky and occluder, queried from Taichi kernels
    reference: NumPy re-implementation of the world and a brute-force
        quadrature of the incident light integral
"""

from .reference import (
    incident_light_numpy,
    incident_light_reference,
    relative_bias,
    surface_positions,
    visibility_numpy,
)
from .world import (
    LightInfo,
    LightSample,
    check_visibility,
    clear_world,
    evaluate_incident_light,
    get_surface_length,
    is_world_initialized,
    query_incident_light,
    query_visibility,
    setup_world,
    surface_position,
)

__all__ = [
    "LightInfo",
    "LightSample",
    "check_visibility",
    "clear_world",
    "evaluate_incident_light",
    "get_surface_length",
    "is_world_initialized",
    "query_incident_light",
    "query_visibility",
    "setup_world",
    "surface_position",
    "incident_light_numpy",
    "incident_light_reference",
    "relative_bias",
    "surface_positions",
    "visibility_numpy",
]
