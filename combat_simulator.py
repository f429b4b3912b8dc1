"""
Warhammer 40k Combat Simulator
Monte Carlo simulation of one weapon firing at one unit, with statistical analysis
"""

import concurrent.futures
import time
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from ability_processor import calculate_combat_result_with_abilities, resolve_attack_count
from combat_calculator import combat_result
from combat_logging import get_logger
from combat_profiles import CombatResult, UnitProfile, WeaponProfile
from dice_math import DamageSpec, mitigation_pass_probability, roll_damage
from secure_dice import SecureDiceRoller
from sim_config import DEFAULT_CONFIG, MAX_ITERATIONS, MIN_ITERATIONS, SimulationConfig
from statistical_analyzer import Histogram, SimulationStatistics, analyze, create_histogram

logger = get_logger(__name__)


@dataclass(frozen=True, eq=False)
class SimulationResult:
    """Raw per-trial samples and their analysis"""
    iterations: int
    damage_results: np.ndarray  # read-only, one entry per trial
    kill_results: np.ndarray  # read-only, fractional models removed per trial
    damage_statistics: SimulationStatistics
    kill_statistics: SimulationStatistics
    probability_of_any_damage: float
    probability_of_any_kills: float
    probability_of_wipe: float
    damage_histogram: Histogram
    kill_histogram: Histogram

    @property
    def probabilities(self) -> Dict[str, float]:
        return {
            'any_damage': self.probability_of_any_damage,
            'any_kills': self.probability_of_any_kills,
            'wipe': self.probability_of_wipe,
        }

    def summary_frame(self) -> pd.DataFrame:
        """Statistics for damage and models killed side by side, one row per statistic"""
        return pd.DataFrame({
            'damage': self.damage_statistics.to_dict(),
            'models_killed': self.kill_statistics.to_dict(),
        })


@dataclass(frozen=True)
class TrialProfile:
    """Per-attack probabilities every trial of one simulation rolls against"""
    attacks: int
    hit_probability: float
    wound_probability: float
    save_fail_probability: float
    damage: DamageSpec
    fnp_pass_probability: float
    wounds_per_model: int

    @classmethod
    def from_result(cls, result: CombatResult, attacks: int, weapon: WeaponProfile,
                    defender: UnitProfile) -> 'TrialProfile':
        return cls(
            attacks=max(attacks, 0),
            hit_probability=result.hit_probability,
            wound_probability=result.wound_probability,
            save_fail_probability=result.save_fail_probability,
            damage=weapon.damage,
            fnp_pass_probability=mitigation_pass_probability(defender.feel_no_pain),
            wounds_per_model=defender.wounds,
        )


def clamp_iterations(iterations: int) -> int:
    """Limit a requested iteration count to the supported range"""
    return min(max(int(iterations), MIN_ITERATIONS), MAX_ITERATIONS)


def plan_chunks(iterations: int, attacks: int, chunk_cells: int) -> List[Tuple[int, int]]:
    """Split trials into contiguous (start, size) chunks of at most chunk_cells dice each"""
    trials_per_chunk = max(1, chunk_cells // max(attacks, 1))
    return [
        (start, min(trials_per_chunk, iterations - start))
        for start in range(0, iterations, trials_per_chunk)
    ]


def simulate_chunk(
    profile: TrialProfile,
    start: int,
    size: int,
    damage_out: np.ndarray,
    kills_out: np.ndarray,
    roller: SecureDiceRoller,
) -> int:
    """
    Roll size trials and write them to damage_out/kills_out[start:start + size].

    Each trial rolls hit, wound and save for every attack, then damage for each
    unsaved wound; Feel No Pain is rolled per point of damage.
    """
    if profile.attacks == 0:
        return size

    shape = (size, profile.attacks)
    hits = roller.uniform(shape) < profile.hit_probability
    wounds = hits & (roller.uniform(shape) < profile.wound_probability)
    unsaved = wounds & (roller.uniform(shape) < profile.save_fail_probability)

    # Row-major order of nonzero matches boolean indexing order
    trial_of_wound = np.nonzero(unsaved)[0]
    rolls = np.maximum(roll_damage(profile.damage, roller, trial_of_wound.size), 0)
    damage = np.bincount(trial_of_wound, weights=rolls, minlength=size)

    if profile.fnp_pass_probability > 0 and rolls.size:
        trial_of_point = np.repeat(trial_of_wound, rolls)
        ignored = roller.uniform(trial_of_point.size) < profile.fnp_pass_probability
        damage = damage - np.bincount(trial_of_point[ignored], minlength=size)

    damage_out[start:start + size] = damage
    if profile.wounds_per_model > 0:
        kills_out[start:start + size] = damage / profile.wounds_per_model
    return size


def run_trials(profile: TrialProfile, iterations: int,
               config: Optional[SimulationConfig] = None) -> Tuple[np.ndarray, np.ndarray]:
    """Run every trial on a thread pool; each chunk owns its dice and its slice of the output"""
    config = config or DEFAULT_CONFIG
    damage_results = np.zeros(iterations, dtype=np.float64)
    kill_results = np.zeros(iterations, dtype=np.float64)

    chunks = plan_chunks(iterations, profile.attacks, config.chunk_cells)
    workers = max(1, min(config.max_workers, len(chunks)))
    logger.debug("%d trials in %d chunks on %d workers", iterations, len(chunks), workers)

    completed = 0
    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [
            executor.submit(simulate_chunk, profile, start, size, damage_results, kill_results,
                            SecureDiceRoller(f"chunk-{index}"))
            for index, (start, size) in enumerate(chunks)
        ]
        for future in concurrent.futures.as_completed(futures):
            completed += future.result()
    logger.debug("%d/%d trials written", completed, iterations)

    damage_results.setflags(write=False)
    kill_results.setflags(write=False)
    return damage_results, kill_results


def analyze_results(
    iterations: int,
    damage_results: np.ndarray,
    kill_results: np.ndarray,
    defender: UnitProfile,
    config: Optional[SimulationConfig] = None,
) -> SimulationResult:
    """Reduce raw samples to statistics, outcome probabilities and histograms"""
    config = config or DEFAULT_CONFIG

    any_damage = np.count_nonzero(damage_results > 0)
    any_kills = np.count_nonzero(kill_results >= 1.0)
    wipes = np.count_nonzero(kill_results >= defender.model_count)

    return SimulationResult(
        iterations=iterations,
        damage_results=damage_results,
        kill_results=kill_results,
        damage_statistics=analyze(damage_results),
        kill_statistics=analyze(kill_results),
        probability_of_any_damage=any_damage / iterations,
        probability_of_any_kills=any_kills / iterations,
        probability_of_wipe=wipes / iterations,
        damage_histogram=create_histogram(damage_results, config.damage_histogram_bins),
        kill_histogram=create_histogram(kill_results, config.kill_histogram_bins(defender.model_count)),
    )


def _simulate(profile: TrialProfile, defender: UnitProfile, iterations: int,
              config: Optional[SimulationConfig]) -> SimulationResult:
    iterations = clamp_iterations(iterations)
    logger.info("Simulating %d iterations: %d attacks at %s", iterations, profile.attacks, defender.name)

    started = time.perf_counter()
    damage_results, kill_results = run_trials(profile, iterations, config)
    result = analyze_results(iterations, damage_results, kill_results, defender, config)

    logger.info("Simulation finished in %.2fs: mean damage %.2f, mean kills %.2f",
                time.perf_counter() - started, result.damage_statistics.mean, result.kill_statistics.mean)
    return result


def run_simulation(
    weapon: WeaponProfile,
    defender: UnitProfile,
    iterations: int,
    range_inches: Optional[int] = None,
    defender_keywords: Iterable[str] = (),
    defender_has_cover: bool = False,
    config: Optional[SimulationConfig] = None,
) -> SimulationResult:
    """
    Simulate the weapon's attacks against the defender iterations times.

    Per-attack probabilities come from the closed-form result with abilities
    applied; abilities are not re-resolved die by die.
    """
    defender_keywords = tuple(defender_keywords)
    base = calculate_combat_result_with_abilities(
        weapon, defender, range_inches, defender_keywords, defender_has_cover
    )
    attacks = int(round(resolve_attack_count(weapon, defender, range_inches)))
    profile = TrialProfile.from_result(base, attacks, weapon, defender)
    return _simulate(profile, defender, iterations, config)


def run_simplified_simulation(
    weapon: WeaponProfile,
    defender: UnitProfile,
    iterations: int,
    config: Optional[SimulationConfig] = None,
) -> SimulationResult:
    """Simulate from the plain closed-form result, ignoring weapon abilities"""
    base = combat_result(weapon, defender)
    profile = TrialProfile.from_result(base, weapon.attacks, weapon, defender)
    return _simulate(profile, defender, iterations, config)
