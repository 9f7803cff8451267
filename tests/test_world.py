"""Tests for the world queries (sun, sky, occluder)."""

import math

import numpy as np
import pytest
import taichi as ti


class TestSetup:
    """Tests for world setup."""

    def test_setup_world_marks_initialized(self):
        """Test that setup_world configures the world."""
        from src.restir.core.config import WorldConfig
        from src.restir.scene.world import get_surface_length, is_world_initialized, setup_world

        assert not is_world_initialized()
        setup_world(WorldConfig(surface_length=24))
        assert is_world_initialized()
        assert get_surface_length() == 24

    def test_query_before_setup_raises(self):
        """Test that queries fail before setup_world."""
        from src.restir.scene.world import get_surface_length, query_incident_light

        with pytest.raises(RuntimeError, match="World not set up"):
            query_incident_light((0.5, 0.0), (0.0, 1.0))
        with pytest.raises(RuntimeError, match="World not set up"):
            get_surface_length()

    def test_setup_world_validates(self):
        """Test that an invalid world is rejected."""
        from src.restir.core.config import WorldConfig
        from src.restir.scene.world import setup_world

        with pytest.raises(ValueError):
            setup_world(WorldConfig(surface_length=0))

    def test_surface_position(self):
        """Test that cell i sits at (i + 0.5, 0)."""
        from src.restir.scene.world import surface_position

        result = ti.Vector.field(2, dtype=ti.f32, shape=2)

        @ti.kernel
        def test_kernel():
            result[0] = surface_position(0)
            result[1] = surface_position(7)

        test_kernel()
        assert np.allclose(result.to_numpy(), [[0.5, 0.0], [7.5, 0.0]])


class TestIncidentLight:
    """Tests for evaluate_incident_light."""

    def test_ray_hits_sun(self):
        """Test a ray straight at the sun centre."""
        from src.restir.core.config import WorldConfig
        from src.restir.scene.world import query_incident_light, setup_world

        setup_world(WorldConfig())
        light = query_incident_light((5.5, 0.0), (0.0, 1.0))

        assert light.color == pytest.approx((10.0, 10.0, 1.0))
        assert light.distance == pytest.approx(10.5)
        assert light.target_value == pytest.approx(math.sqrt(201.0))

    def test_ray_grazing_sun_edge(self):
        """Test rays just inside and just outside the sun disk."""
        from src.restir.core.config import WorldConfig
        from src.restir.scene.world import query_incident_light, setup_world

        setup_world(WorldConfig())
        inside = query_incident_light((5.1, 0.0), (0.0, 1.0))
        outside = query_incident_light((4.9, 0.0), (0.0, 1.0))

        assert inside.distance is not None
        assert outside.distance is None

    def test_ray_misses_sun_sees_sky(self):
        """Test that a ray missing the sun sees the sky without distance."""
        from src.restir.core.config import WorldConfig
        from src.restir.scene.world import query_incident_light, setup_world

        setup_world(WorldConfig())
        light = query_incident_light((20.5, 0.0), (0.0, 1.0))

        assert light.color == pytest.approx((0.0, 0.0, 0.1))
        assert light.distance is None

    def test_sun_behind_ray_sees_sky(self):
        """Test that the sun is only hit when it lies ahead of the ray."""
        from src.restir.core.config import WorldConfig
        from src.restir.scene.world import query_incident_light, setup_world

        setup_world(WorldConfig())
        light = query_incident_light((5.5, 0.0), (0.0, -1.0))

        assert light.distance is None

    def test_matches_numpy_oracle(self):
        """Test that the Taichi and NumPy oracles agree on random rays."""
        from src.restir.core.config import WorldConfig
        from src.restir.scene.reference import incident_light_numpy, visibility_numpy
        from src.restir.scene.world import query_incident_light, query_visibility, setup_world

        world = WorldConfig()
        setup_world(world)

        rng = np.random.default_rng(7)
        origins = np.stack([rng.uniform(0.0, 40.0, 64), np.zeros(64)], axis=-1)
        angles = rng.uniform(0.0, math.pi, 64)
        directions = np.stack([np.cos(angles), np.sin(angles)], axis=-1)

        colors, distances = incident_light_numpy(world, origins, directions)
        visible = visibility_numpy(world, origins, directions)

        for i in range(64):
            light = query_incident_light(tuple(origins[i]), tuple(directions[i]))
            assert light.color == pytest.approx(tuple(colors[i]))
            if np.isnan(distances[i]):
                assert light.distance is None
            else:
                assert light.distance == pytest.approx(distances[i], rel=1e-5)
            assert query_visibility(tuple(origins[i]), tuple(directions[i])) == visible[i]


class TestVisibility:
    """Tests for check_visibility."""

    def test_occluder_blocks_vertical_ray(self):
        """Test that a ray through the occluder is blocked."""
        from src.restir.core.config import WorldConfig
        from src.restir.scene.world import query_visibility, setup_world

        setup_world(WorldConfig())
        assert not query_visibility((10.5, 0.0), (0.0, 1.0))

    def test_ray_beside_occluder_is_visible(self):
        """Test that a ray passing beside the occluder is visible."""
        from src.restir.core.config import WorldConfig
        from src.restir.scene.world import query_visibility, setup_world

        setup_world(WorldConfig())
        assert query_visibility((2.5, 0.0), (0.0, 1.0))
        assert query_visibility((20.5, 0.0), (0.0, 1.0))

    def test_sun_shadow(self):
        """Test that the occluder casts a shadow of the sun."""
        from src.restir.core.config import WorldConfig
        from src.restir.scene.world import query_visibility, setup_world

        setup_world(WorldConfig())
        lit = np.array([5.5 - 2.5, 10.5])
        shadowed = np.array([5.5 - 17.5, 10.5])
        assert query_visibility((2.5, 0.0), tuple(lit / np.linalg.norm(lit)))
        assert not query_visibility((17.5, 0.0), tuple(shadowed / np.linalg.norm(shadowed)))

    def test_downward_ray_is_never_visible(self):
        """Test that rays into the surface are never visible."""
        from src.restir.core.config import WorldConfig
        from src.restir.scene.world import query_visibility, setup_world

        setup_world(WorldConfig(occluder_x=None))
        assert not query_visibility((2.5, 0.0), (0.0, -1.0))
        assert not query_visibility((2.5, 0.0), (1.0, 0.0))

    def test_no_occluder(self):
        """Test that every upward ray is visible without occluder."""
        from src.restir.core.config import WorldConfig
        from src.restir.scene.world import query_visibility, setup_world

        setup_world(WorldConfig(occluder_x=None))
        assert query_visibility((10.5, 0.0), (0.0, 1.0))

    def test_origin_above_occluder_is_visible(self):
        """Test that points above the occluder line always see."""
        from src.restir.core.config import WorldConfig
        from src.restir.scene.world import query_visibility, setup_world

        setup_world(WorldConfig())
        assert query_visibility((10.5, 6.0), (0.0, 1.0))
