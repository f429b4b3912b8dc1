"""
Tests for simulation configuration and logging setup
"""

import dataclasses
import logging

import pytest
from rich.logging import RichHandler

from combat_logging import get_logger, setup_logging
from sim_config import DEFAULT_CONFIG, SimulationConfig, load_config_from_env


def test_defaults():
    config = SimulationConfig()

    assert config.max_workers >= 1
    assert config.damage_histogram_bins == 20
    assert config.kill_histogram_bins(1) == 6
    assert config.kill_histogram_bins(10) == 15
    assert config.kill_histogram_bins(30) == 20


def test_config_is_frozen():
    with pytest.raises(dataclasses.FrozenInstanceError):
        DEFAULT_CONFIG.chunk_cells = 10


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("WH40K_SIM_WORKERS", "3")
    monkeypatch.setenv("WH40K_SIM_CHUNK_CELLS", "65536")
    monkeypatch.setenv("WH40K_SIM_DAMAGE_BINS", "40")

    config = load_config_from_env()

    assert config.max_workers == 3
    assert config.chunk_cells == 65536
    assert config.damage_histogram_bins == 40
    assert config.kill_histogram_bins_cap == DEFAULT_CONFIG.kill_histogram_bins_cap


def test_environment_values_are_clamped(monkeypatch):
    monkeypatch.setenv("WH40K_SIM_WORKERS", "0")
    monkeypatch.setenv("WH40K_SIM_CHUNK_CELLS", "10")

    config = load_config_from_env()

    assert config.max_workers == 1
    assert config.chunk_cells == 1024


def test_bad_environment_values_fall_back(monkeypatch, caplog):
    base = SimulationConfig(max_workers=5)
    monkeypatch.setenv("WH40K_SIM_WORKERS", "many")
    monkeypatch.setenv("WH40K_SIM_DAMAGE_BINS", "")

    config = load_config_from_env(base)

    assert config.max_workers == 5
    assert config.damage_histogram_bins == base.damage_histogram_bins
    assert any("WH40K_SIM_WORKERS" in r.getMessage() for r in caplog.records)


def test_get_logger_is_named():
    logger = get_logger("combat_simulator")
    assert logger is logging.getLogger("combat_simulator")


def test_setup_logging_installs_rich_handler(monkeypatch):
    root = logging.getLogger()
    monkeypatch.setattr(root, "handlers", [])
    previous_level = root.level

    setup_logging(logging.DEBUG)
    try:
        assert any(isinstance(h, RichHandler) for h in root.handlers)
        assert root.level == logging.DEBUG
    finally:
        root.setLevel(previous_level)
