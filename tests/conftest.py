"""Shared fixtures for the EMMA tests."""

import pytest

from EMMA.cone_mosaic import ConeMosaic
from EMMA.fixation_simulation import FixationalEM


@pytest.fixture
def fixational_em() -> FixationalEM:
    """Oculomotor model with the default parameter file."""
    return FixationalEM()


@pytest.fixture
def small_mosaic() -> ConeMosaic:
    """A small rectangular mosaic with a 5 ms integration time."""
    return ConeMosaic(8, 10, 0.005, microns_per_degree=300.0, pattern_sample_size_microns=2.0)
