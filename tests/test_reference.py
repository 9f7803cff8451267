"""Tests for the brute-force reference integrator."""

import math

import numpy as np
import pytest


class TestReference:
    """Tests for incident_light_reference."""

    def test_shape(self):
        """Test that the reference has one RGB value per point."""
        from src.restir.core.config import WorldConfig
        from src.restir.scene.reference import incident_light_reference

        reference = incident_light_reference(WorldConfig(surface_length=12), num_angles=256)
        assert reference.shape == (12, 3)

    def test_sky_only_world(self):
        """Test that a uniform sky integrates to sky * pi."""
        from src.restir.core.config import WorldConfig
        from src.restir.scene.reference import incident_light_reference

        color = (0.2, 0.3, 0.4)
        world = WorldConfig(surface_length=8, sun_color=color, sky_color=color, occluder_x=None)
        reference = incident_light_reference(world, num_angles=1000)
        assert np.allclose(reference, np.array(color) * math.pi, rtol=1e-6)

    def test_sun_contributes_its_angular_size(self):
        """Test the sun contribution of the point right below the sun."""
        from src.restir.core.config import WorldConfig
        from src.restir.scene.reference import incident_light_reference

        world = WorldConfig(surface_length=8, sky_color=(0.0, 0.0, 0.0), occluder_x=None)
        reference = incident_light_reference(world, num_angles=200000)

        # The sun of radius 0.5 at distance 10.5 spans 2 * asin(0.5 / 10.5)
        expected = np.array(world.sun_color) * 2.0 * math.asin(0.5 / 10.5)
        assert np.allclose(reference[5], expected, rtol=1e-3)

    def test_occluder_casts_shadow(self):
        """Test that points in the sun shadow are darker than lit points."""
        from src.restir.core.config import WorldConfig
        from src.restir.scene.reference import incident_light_reference

        reference = incident_light_reference(WorldConfig(), num_angles=20000)
        brightness = np.linalg.norm(reference, axis=-1)
        assert brightness[2] > 2.0 * brightness[17]

    def test_invalid_num_angles(self):
        """Test that num_angles must be positive."""
        from src.restir.core.config import WorldConfig
        from src.restir.scene.reference import incident_light_reference

        with pytest.raises(ValueError, match="num_angles"):
            incident_light_reference(WorldConfig(), num_angles=0)


class TestNumpyOracle:
    """Tests for the NumPy world queries."""

    def test_surface_positions(self):
        """Test the surface point positions."""
        from src.restir.core.config import WorldConfig
        from src.restir.scene.reference import surface_positions

        positions = surface_positions(WorldConfig(surface_length=3))
        assert np.allclose(positions, [[0.5, 0.0], [1.5, 0.0], [2.5, 0.0]])

    def test_visibility_batch(self):
        """Test batched visibility against hand-computed cases."""
        from src.restir.core.config import WorldConfig
        from src.restir.scene.reference import visibility_numpy

        world = WorldConfig()
        origins = np.array([[10.5, 0.0], [2.5, 0.0], [2.5, 0.0]])
        directions = np.array([[0.0, 1.0], [0.0, 1.0], [0.0, -1.0]])
        assert visibility_numpy(world, origins, directions).tolist() == [False, True, False]


class TestRelativeBias:
    """Tests for relative_bias."""

    def test_zero_for_identical(self):
        """Test that identical arrays have no bias."""
        from src.restir.scene.reference import relative_bias

        values = np.ones((4, 3))
        assert relative_bias(values, values) == 0.0

    def test_sign(self):
        """Test that darker estimates have negative bias."""
        from src.restir.scene.reference import relative_bias

        reference = np.ones((4, 3))
        assert relative_bias(reference * 0.9, reference) == pytest.approx(-0.1)

    def test_shape_mismatch(self):
        """Test that mismatched shapes are rejected."""
        from src.restir.scene.reference import relative_bias

        with pytest.raises(ValueError, match="Shapes must match"):
            relative_bias(np.ones((4, 3)), np.ones((5, 3)))

    def test_zero_reference(self):
        """Test that an all-zero reference is rejected."""
        from src.restir.scene.reference import relative_bias

        with pytest.raises(ValueError, match="zero"):
            relative_bias(np.ones((4, 3)), np.zeros((4, 3)))
