"""Tests for the configuration dataclasses."""

import json

import pytest


class TestDefaults:
    """Test default values."""

    def test_world_defaults(self):
        """Test the default world."""
        from src.restir.core.config import WorldConfig

        world = WorldConfig()
        assert world.surface_length == 40
        assert world.sun_position == (5, 10)
        assert world.occluder_x == (7, 15)

    def test_restir_defaults(self):
        """Test the default pipeline parameters."""
        from src.restir.core.config import Precise, RestirConfig

        restir = RestirConfig()
        assert restir.convergence == Precise(unbias=True)
        assert restir.initial_samples == 4
        assert restir.max_initial_history == 1
        assert restir.max_temporal_history == 20
        assert restir.max_spatial_history == 10

    def test_convergence_modes(self):
        """Test that policies report their integer mode."""
        from src.restir.core.config import ConvergenceMode, LeanAndMean, Precise

        assert Precise().mode == ConvergenceMode.PRECISE
        assert LeanAndMean().mode == ConvergenceMode.LEAN_AND_MEAN
        assert LeanAndMean().initial_visibility is True
        assert LeanAndMean().retroactive_rejection is False


class TestValidation:
    """Test configuration validation."""

    def test_default_config_is_valid(self):
        """Test that the defaults validate."""
        from src.restir.core.config import Config

        Config().validate()

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"initial_samples": 0},
            {"max_initial_history": 0},
            {"max_temporal_history": -1},
            {"max_spatial_history": -1},
        ],
    )
    def test_invalid_restir_parameters(self, kwargs):
        """Test that out of range counts are rejected."""
        from src.restir.core.config import RestirConfig

        with pytest.raises(ValueError):
            RestirConfig(**kwargs).validate()

    def test_zero_reuse_bounds_are_valid(self):
        """Test that zero temporal and spatial bounds are allowed."""
        from src.restir.core.config import RestirConfig

        RestirConfig(max_temporal_history=0, max_spatial_history=0).validate()

    def test_unknown_convergence_rejected(self):
        """Test that an unknown convergence policy is rejected."""
        from src.restir.core.config import RestirConfig

        with pytest.raises(ValueError, match="Unknown convergence"):
            RestirConfig(convergence="precise").validate()

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"surface_length": 0},
            {"occluder_x": (15, 7)},
            {"sun_color": (-1.0, 0.0, 0.0)},
        ],
    )
    def test_invalid_world(self, kwargs):
        """Test that invalid worlds are rejected."""
        from src.restir.core.config import WorldConfig

        with pytest.raises(ValueError):
            WorldConfig(**kwargs).validate()

    @pytest.mark.parametrize("accumulation", [0.0, 1.0, -0.5])
    def test_invalid_accumulation(self, accumulation):
        """Test that the accumulation factor must be in (0, 1)."""
        from src.restir.core.config import Config

        with pytest.raises(ValueError, match="accumulation"):
            Config(accumulation=accumulation).validate()


class TestSerialization:
    """Test to_dict / from_dict."""

    def test_to_dict_names_mode(self):
        """Test that the convergence policy is tagged by name."""
        from src.restir.core.config import Config, LeanAndMean, RestirConfig

        data = Config(restir=RestirConfig(convergence=LeanAndMean())).to_dict()
        assert data["restir"]["convergence"] == {
            "mode": "lean_and_mean",
            "initial_visibility": True,
            "retroactive_rejection": False,
        }

    @pytest.mark.parametrize(
        ("lean", "kwargs"),
        [(False, {}), (False, {"unbias": False}), (True, {"retroactive_rejection": True})],
    )
    def test_json_round_trip(self, lean, kwargs):
        """Test that a config survives a trip through JSON."""
        from src.restir.core.config import Config, LeanAndMean, Precise, RestirConfig, WorldConfig

        convergence = LeanAndMean(**kwargs) if lean else Precise(**kwargs)

        config = Config(
            world=WorldConfig(surface_length=24, occluder_x=None),
            restir=RestirConfig(convergence=convergence, initial_samples=8),
            accumulation=0.05,
        )
        restored = Config.from_dict(json.loads(json.dumps(config.to_dict())))
        assert restored == config

    def test_from_dict_uses_defaults(self):
        """Test that missing keys fall back to defaults."""
        from src.restir.core.config import Config

        assert Config.from_dict({}) == Config()

    def test_from_dict_unknown_mode(self):
        """Test that an unknown mode name is rejected."""
        from src.restir.core.config import Config

        with pytest.raises(ValueError, match="Unknown convergence mode"):
            Config.from_dict({"restir": {"convergence": {"mode": "fast"}}})
