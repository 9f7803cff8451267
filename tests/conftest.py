"""Pytest configuration for the resampling tests.

This module provides shared fixtures for all test modules, including
Taichi initialization which must happen once per session.
"""

import pytest
import taichi as ti


@pytest.fixture(scope="session", autouse=True)
def init_taichi_session():
    """Initialize Taichi once for the entire test session.

    Using session scope prevents multiple ti.init() calls which can cause
    segmentation faults due to Taichi runtime conflicts.
    """
    ti.init(arch=ti.cpu, random_seed=42)
    yield


@pytest.fixture(autouse=True)
def clear_world_and_pipeline():
    """Clear the world and the pixel store before and after each test.

    This ensures tests are isolated from each other.
    """
    # Import here so Taichi is initialized before fields are allocated
    from src.restir.core.pipeline import clear_pipeline
    from src.restir.scene.world import clear_world

    def _clear_all():
        clear_world()
        clear_pipeline()

    _clear_all()

    yield

    _clear_all()
