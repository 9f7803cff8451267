"""Direction sampling and shift mapping for the 2-D world.

The receiving surface is the line y = 0 and every point on it gathers light
from the upper half-circle of directions. Directions are parameterized by
the angle alpha in [0, pi] measured from the +x axis.

This module provides:
    - SampleInfo: the selected sample stored per surface point
    - Uniform half-circle direction sampling and its PDF
    - Shift mapping of a sample from one surface point to another

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.restir.core.sampling import sample_hemisphere_direction
    >>> # Use sample_hemisphere_direction() within a Taichi kernel
"""

import taichi as ti
import taichi.math as tm

# Type alias for 2D vectors
vec2 = tm.vec2

# PDF of a direction drawn uniformly over the half-circle (in angle measure)
HEMISPHERE_PDF = 1.0 / tm.pi


@ti.dataclass
class SampleInfo:
    """A sample selected by a reservoir.

    Attributes:
        direction: Unit direction from the surface point towards the light.
        distance: Distance to the light surface hit by the sample.
            Only valid if has_distance == 1.
        has_distance: 1 if the sample hit a finite light, 0 for sky samples.
            Sky samples keep their direction under shift mapping.
    """

    direction: vec2
    distance: ti.f32
    has_distance: ti.i32


@ti.func
def direction_from_angle(alpha: ti.f32) -> vec2:
    """Convert an angle on the half-circle to a unit direction."""
    return vec2(ti.cos(alpha), ti.sin(alpha))


@ti.func
def sample_hemisphere_direction() -> vec2:
    """Draw a direction uniformly over the upper half-circle.

    Returns:
        A unit direction with y >= 0. Its PDF is HEMISPHERE_PDF.
    """
    alpha = ti.random(ti.f32) * tm.pi
    return direction_from_angle(alpha)


@ti.func
def shift_map(sample: SampleInfo, src_origin: vec2, dst_origin: vec2) -> vec2:
    """Map a sample from the domain of src_origin into the domain of dst_origin.

    Samples that hit a light are re-aimed at the same physical point, sky
    samples keep their direction.

    Args:
        sample: The sample as recorded at src_origin.
        src_origin: Surface point the sample was recorded at.
        dst_origin: Surface point the sample is reused at.

    Returns:
        The unit direction of the shifted sample at dst_origin.
    """
    result = sample.direction
    if sample.has_distance == 1:
        result = tm.normalize(src_origin + sample.distance * sample.direction - dst_origin)
    return result


@ti.func
def make_sample(direction: vec2, distance: ti.f32, has_distance: ti.i32) -> SampleInfo:
    """Create a SampleInfo from its components."""
    return SampleInfo(direction=direction, distance=distance, has_distance=has_distance)
