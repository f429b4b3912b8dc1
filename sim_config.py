"""
Simulation runtime configuration
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from combat_logging import get_logger

logger = get_logger(__name__)

# Iteration bounds are part of the simulator contract, not tunables
MIN_ITERATIONS = 1
MAX_ITERATIONS = 1_000_000


def _default_workers() -> int:
    return os.cpu_count() or 1


@dataclass(frozen=True)
class SimulationConfig:
    """Tunables for the Monte Carlo simulator.

    chunk_cells bounds the trials x attacks grid a single worker rolls at once,
    which caps the memory held by one chunk of dice arrays.
    """

    max_workers: int = field(default_factory=_default_workers)
    chunk_cells: int = 1 << 20
    damage_histogram_bins: int = 20
    kill_histogram_bins_cap: int = 20
    kill_histogram_padding: int = 5

    def kill_histogram_bins(self, model_count: int) -> int:
        return min(model_count + self.kill_histogram_padding, self.kill_histogram_bins_cap)


DEFAULT_CONFIG = SimulationConfig()


def _env_int(name: str, default: int, minimum: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r", name, raw)
        return default
    return max(minimum, value)


def load_config_from_env(base: Optional[SimulationConfig] = None) -> SimulationConfig:
    """Build a config from WH40K_SIM_* environment variables on top of base"""
    base = base or DEFAULT_CONFIG
    config = SimulationConfig(
        max_workers=_env_int('WH40K_SIM_WORKERS', base.max_workers, 1),
        chunk_cells=_env_int('WH40K_SIM_CHUNK_CELLS', base.chunk_cells, 1024),
        damage_histogram_bins=_env_int('WH40K_SIM_DAMAGE_BINS', base.damage_histogram_bins, 1),
        kill_histogram_bins_cap=base.kill_histogram_bins_cap,
        kill_histogram_padding=base.kill_histogram_padding,
    )
    logger.debug("Simulation config: %s", config)
    return config
