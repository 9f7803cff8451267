"""The 2-D world queried by the resampling pipeline.

The world consists of:
    - the receiving surface (y = 0), whose points gather incoming light
    - a sun, a disk of radius 0.5 with a finite position
    - the sky, seen by every ray that misses the sun
    - an optional occluder, a horizontal segment blocking rays

Two queries are exposed to Taichi kernels:
    evaluate_incident_light: light arriving along a ray (sun or sky)
    check_visibility: whether a ray leaves the surface unoccluded

The world parameters live in Taichi scalar fields configured by
setup_world(), so changing the world never recompiles kernels.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.restir.core.config import WorldConfig
    >>> from src.restir.scene.world import setup_world, query_incident_light
    >>> setup_world(WorldConfig())
    >>> light = query_incident_light((5.5, 0.0), (0.0, 1.0))
    >>> light.distance
    10.5
"""

from dataclasses import dataclass

import taichi as ti
import taichi.math as tm

from src.restir.core.config import SUN_RADIUS, WorldConfig

# Type aliases for 2D positions/directions and RGB colors
vec2 = tm.vec2
vec3 = tm.vec3
vec4 = tm.vec4

# =============================================================================
# World Fields
# =============================================================================

_world_initialized = ti.field(dtype=ti.i32, shape=())
_surface_length = ti.field(dtype=ti.i32, shape=())
_sun_center = ti.Vector.field(2, dtype=ti.f32, shape=())
_sun_color = ti.Vector.field(3, dtype=ti.f32, shape=())
_sky_color = ti.Vector.field(3, dtype=ti.f32, shape=())
_occluder_enabled = ti.field(dtype=ti.i32, shape=())
_occluder_y = ti.field(dtype=ti.f32, shape=())
_occluder_x_start = ti.field(dtype=ti.f32, shape=())
_occluder_x_end = ti.field(dtype=ti.f32, shape=())


@ti.dataclass
class LightInfo:
    """Light arriving along a ray.

    Attributes:
        color: The incoming radiance (RGB).
        distance: Distance to the light surface. Only valid if has_distance == 1.
        has_distance: 1 if the ray hit the sun, 0 if it escaped to the sky.
    """

    color: vec3
    distance: ti.f32
    has_distance: ti.i32

    @ti.func
    def target_value(self) -> ti.f32:
        """Value assigned to this light, the unnormalized target PDF."""
        return tm.length(self.color)


@dataclass
class LightSample:
    """Python-side result of query_incident_light().

    Attributes:
        color: The incoming radiance (RGB).
        distance: Distance to the sun, or None for sky samples.
    """

    color: tuple[float, float, float]
    distance: float | None

    @property
    def target_value(self) -> float:
        return float(sum(c * c for c in self.color) ** 0.5)


def setup_world(config: WorldConfig) -> None:
    """Configure the world queried by the pipeline.

    Args:
        config: The world description.

    Raises:
        ValueError: If the world description is invalid.
    """
    config.validate()

    _surface_length[None] = config.surface_length
    _sun_center[None] = [config.sun_position[0] + 0.5, config.sun_position[1] + 0.5]
    _sun_color[None] = list(config.sun_color)
    _sky_color[None] = list(config.sky_color)
    _occluder_y[None] = config.occluder_y + 0.5
    if config.occluder_x is None:
        _occluder_enabled[None] = 0
    else:
        _occluder_enabled[None] = 1
        _occluder_x_start[None] = config.occluder_x[0]
        _occluder_x_end[None] = config.occluder_x[1]
    _world_initialized[None] = 1


def clear_world() -> None:
    """Mark the world as unconfigured."""
    _world_initialized[None] = 0


def is_world_initialized() -> bool:
    """Check if setup_world() has been called."""
    return bool(_world_initialized[None])


def get_surface_length() -> int:
    """Get the number of points on the receiving surface.

    Raises:
        RuntimeError: If the world has not been set up.
    """
    _check_world_initialized()
    return int(_surface_length[None])


def _check_world_initialized() -> None:
    """Raise if the world has not been set up."""
    if _world_initialized[None] == 0:
        raise RuntimeError("World not set up. Call setup_world() first.")


# =============================================================================
# Scene Queries (Taichi scope)
# =============================================================================


@ti.func
def surface_position(cell: ti.i32) -> vec2:
    """Position of a surface point given its cell index."""
    return vec2(ti.cast(cell, ti.f32) + 0.5, 0.0)


@ti.func
def evaluate_incident_light(origin: vec2, direction: vec2) -> LightInfo:
    """Get the light arriving at origin from the given direction.

    Visibility is not taken into account, use check_visibility() for that.

    Args:
        origin: The point receiving the light.
        direction: Unit direction of the incoming ray (pointing away from origin).

    Returns:
        LightInfo with the sun color and distance if the ray hits the sun,
        or the sky color without distance otherwise.
    """
    diff = _sun_center[None] - origin
    sun_distance = tm.dot(diff, direction)
    leftover = diff - sun_distance * direction

    result = LightInfo(color=_sky_color[None], distance=0.0, has_distance=0)
    if sun_distance > 0.0 and tm.dot(leftover, leftover) < SUN_RADIUS * SUN_RADIUS:
        result = LightInfo(color=_sun_color[None], distance=sun_distance, has_distance=1)
    return result


@ti.func
def check_visibility(origin: vec2, direction: vec2) -> ti.i32:
    """Check whether a ray leaves origin without hitting the occluder.

    Args:
        origin: The ray origin.
        direction: Unit direction of the ray.

    Returns:
        1 if the ray is unoccluded, 0 otherwise. Rays pointing into the
        surface (direction.y <= 0) are never visible.
    """
    visible = 1
    if direction.y <= 0.0:
        visible = 0
    elif _occluder_enabled[None] == 1 and origin.y <= _occluder_y[None]:
        t = (_occluder_y[None] - origin.y) / direction.y
        x = origin.x + direction.x * t
        if _occluder_x_start[None] <= x <= _occluder_x_end[None]:
            visible = 0
    return visible


# =============================================================================
# Python-callable Queries
# =============================================================================


@ti.kernel
def _query_incident_light(ox: ti.f32, oy: ti.f32, dx: ti.f32, dy: ti.f32) -> vec4:
    """Evaluate a single light query, packing the distance (-1 for sky) in w."""
    light = evaluate_incident_light(vec2(ox, oy), vec2(dx, dy))
    distance = -1.0
    if light.has_distance == 1:
        distance = light.distance
    return vec4(light.color.x, light.color.y, light.color.z, distance)


@ti.kernel
def _query_visibility(ox: ti.f32, oy: ti.f32, dx: ti.f32, dy: ti.f32) -> ti.i32:
    """Evaluate a single visibility query."""
    return check_visibility(vec2(ox, oy), vec2(dx, dy))


def query_incident_light(
    origin: tuple[float, float], direction: tuple[float, float]
) -> LightSample:
    """Evaluate the incident light for a single ray from Python.

    This is intended for testing and debugging. Kernels should call
    evaluate_incident_light() directly.

    Args:
        origin: The point receiving the light.
        direction: Unit direction of the incoming ray.

    Returns:
        The LightSample seen along the ray.

    Raises:
        RuntimeError: If the world has not been set up.
    """
    _check_world_initialized()
    packed = _query_incident_light(origin[0], origin[1], direction[0], direction[1])
    distance = float(packed[3])
    return LightSample(
        color=(float(packed[0]), float(packed[1]), float(packed[2])),
        distance=distance if distance >= 0.0 else None,
    )


def query_visibility(origin: tuple[float, float], direction: tuple[float, float]) -> bool:
    """Check visibility of a single ray from Python.

    Raises:
        RuntimeError: If the world has not been set up.
    """
    _check_world_initialized()
    return bool(_query_visibility(origin[0], origin[1], direction[0], direction[1]))
