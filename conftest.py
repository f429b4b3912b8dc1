"""
Shared fixtures for the combat math test suite.

Provides the standard datasheet profiles and a small simulation config so the
Monte Carlo tests stay quick.
"""

import pytest

from combat_profiles import UnitProfile, WeaponProfile
from sim_config import SimulationConfig


@pytest.fixture
def bolt_rifle():
    """A2 BS3+ S4 AP-1 D1, no abilities."""
    return WeaponProfile.bolt_rifle()


@pytest.fixture
def bolter():
    """Bolter with Rapid Fire 1 and a 24" range."""
    return WeaponProfile.bolter()


@pytest.fixture
def space_marine():
    """T4 Sv3+ W2, ten models."""
    return UnitProfile.space_marine()


@pytest.fixture
def guardsman():
    """T3 Sv5+ W1, ten models."""
    return UnitProfile.guardsman()


@pytest.fixture
def plague_marine():
    """T5 Sv3+ W2 with a 5+ Feel No Pain."""
    return UnitProfile.plague_marine()


@pytest.fixture
def meltagun():
    return WeaponProfile("Meltagun", attacks=1, skill=3, strength=9, ap=-4, damage="D6",
                         abilities="Melta 2", range=12)


@pytest.fixture
def fast_config():
    """Small chunks on two workers so chunking is exercised on short runs."""
    return SimulationConfig(max_workers=2, chunk_cells=4096)
