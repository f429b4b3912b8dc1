#!/usr/bin/env python3
"""
Tests for the Monte Carlo combat simulator and its dice
"""

import logging

import numpy as np
import pytest

import secure_dice
from ability_processor import calculate_combat_result_with_abilities
from combat_calculator import combat_result
from combat_errors import CombatMathError, RandomSourceUnavailable
from combat_profiles import TORRENT, UnitProfile, WeaponProfile
from combat_simulator import (
    SimulationResult,
    TrialProfile,
    clamp_iterations,
    plan_chunks,
    run_simplified_simulation,
    run_simulation,
    simulate_chunk,
)
from secure_dice import SecureDiceRoller


# ============================================================================
# DICE
# ============================================================================

def test_uniform_draws_are_in_unit_interval():
    roller = SecureDiceRoller("test")
    values = roller.uniform((200, 5))

    assert values.shape == (200, 5)
    assert values.min() >= 0.0
    assert values.max() < 1.0
    assert roller.draws == 1000


def test_d6_rolls_cover_every_face():
    rolls = SecureDiceRoller("test").roll_d6(6000)

    assert set(np.unique(rolls)) == {1, 2, 3, 4, 5, 6}
    assert rolls.mean() == pytest.approx(3.5, abs=0.15)


def test_d3_and_integer_bounds():
    roller = SecureDiceRoller("test")
    assert set(np.unique(roller.roll_d3(600))) == {1, 2, 3}
    assert np.all(roller.integers(5, 6, 20) == 5)
    with pytest.raises(ValueError):
        roller.integers(3, 3, 1)


def test_missing_entropy_is_fatal(monkeypatch, caplog):
    def no_entropy(n):
        raise OSError("no entropy")

    monkeypatch.setattr(secure_dice.os, "urandom", no_entropy)

    with pytest.raises(RandomSourceUnavailable):
        SecureDiceRoller("test").uniform(4)
    assert issubclass(RandomSourceUnavailable, CombatMathError)
    assert any(r.levelno == logging.CRITICAL for r in caplog.records)


# ============================================================================
# ITERATIONS AND CHUNKING
# ============================================================================

@pytest.mark.parametrize("requested, clamped", [
    (-5, 1), (0, 1), (1, 1), (500, 500), (1_000_000, 1_000_000), (2_000_000, 1_000_000),
])
def test_clamp_iterations(requested, clamped):
    assert clamp_iterations(requested) == clamped


def test_zero_iterations_runs_one_trial(bolt_rifle, space_marine, fast_config):
    result = run_simulation(bolt_rifle, space_marine, 0, config=fast_config)

    assert result.iterations == 1
    assert result.damage_results.shape == (1,)
    assert result.kill_results.shape == (1,)


def test_plan_chunks_cover_every_trial_once():
    assert plan_chunks(10, 3, 12) == [(0, 4), (4, 4), (8, 2)]
    assert plan_chunks(5, 0, 100) == [(0, 5)]

    chunks = plan_chunks(10_007, 7, 4096)
    covered = np.zeros(10_007, dtype=int)
    for start, size in chunks:
        covered[start:start + size] += 1
    assert np.all(covered == 1)


def test_chunk_writes_only_its_own_slice():
    profile = TrialProfile(attacks=4, hit_probability=1.0, wound_probability=1.0,
                           save_fail_probability=1.0, damage="1", fnp_pass_probability=0.0,
                           wounds_per_model=2)
    damage = np.full(30, -1.0)
    kills = np.full(30, -1.0)

    simulate_chunk(profile, 10, 5, damage, kills, SecureDiceRoller("test"))

    assert np.all(damage[10:15] == 4.0)
    assert np.all(kills[10:15] == 2.0)
    assert np.all(damage[:10] == -1.0) and np.all(damage[15:] == -1.0)
    assert np.all(kills[:10] == -1.0) and np.all(kills[15:] == -1.0)


# ============================================================================
# SIMULATION
# ============================================================================

@pytest.mark.parametrize("weapon, defender", [
    (WeaponProfile.bolt_rifle().with_attacks(10), UnitProfile.guardsman()),
    (WeaponProfile("Lascannon", attacks=2, skill=3, strength=12, ap=-3, damage="D6+1", range=48),
     UnitProfile.terminator()),
    (WeaponProfile.plasma_gun_supercharge(), UnitProfile.plague_marine()),
])
def test_simulation_converges_to_expected_damage(weapon, defender, fast_config):
    expected = combat_result(weapon, defender)
    result = run_simulation(weapon, defender, 20_000, config=fast_config)

    assert result.damage_statistics.mean == pytest.approx(expected.expected_damage, rel=0.2)
    assert result.kill_statistics.mean == pytest.approx(expected.expected_models_killed, rel=0.2)


def test_simulation_uses_ability_adjusted_probabilities(guardsman, fast_config):
    flamer = WeaponProfile("Flamer", attacks=6, skill=6, strength=4, ap=0, damage="1",
                           abilities=[TORRENT], range=12)
    expected = calculate_combat_result_with_abilities(flamer, guardsman)

    full = run_simulation(flamer, guardsman, 10_000, config=fast_config)
    simplified = run_simplified_simulation(flamer, guardsman, 10_000, config=fast_config)

    assert full.damage_statistics.mean == pytest.approx(expected.expected_damage, rel=0.2)
    assert simplified.damage_statistics.mean < full.damage_statistics.mean


def test_rapid_fire_adds_attacks_per_trial(bolter, guardsman, fast_config):
    close = run_simulation(bolter, guardsman, 3000, range_inches=12, config=fast_config)
    far = run_simulation(bolter, guardsman, 3000, range_inches=13, config=fast_config)

    assert close.damage_statistics.maximum == 3.0
    assert far.damage_statistics.maximum <= 2.0


def test_outcome_probabilities(bolt_rifle, guardsman, fast_config):
    result = run_simulation(bolt_rifle.with_attacks(6), guardsman, 5000, config=fast_config)

    assert 0.0 <= result.probability_of_wipe <= result.probability_of_any_kills
    assert result.probability_of_any_kills <= result.probability_of_any_damage <= 1.0
    assert result.probability_of_any_damage > 0.5
    assert result.probability_of_wipe == 0.0  # six attacks can't remove ten models
    assert result.probabilities['any_damage'] == result.probability_of_any_damage


def test_wipe_probability(fast_config):
    # Auto-hits, wounds on 2+, no save: the unit dies when all three attacks wound
    weapon = WeaponProfile("Burna", attacks=3, skill=5, strength=10, ap=-6, damage="1",
                           abilities=[TORRENT], range=12)
    target = UnitProfile("Grots", toughness=2, save=7, wounds=1, model_count=3)

    result = run_simulation(weapon, target, 5000, config=fast_config)

    assert result.probability_of_wipe == pytest.approx((5 / 6) ** 3, abs=0.04)
    assert result.probability_of_any_damage == pytest.approx(1 - (1 / 6) ** 3, abs=0.02)
    assert result.probability_of_any_kills == result.probability_of_any_damage


def test_no_attacks_never_damage(space_marine, fast_config):
    weapon = WeaponProfile("Empty", attacks=0, skill=3, strength=4)
    result = run_simulation(weapon, space_marine, 200, config=fast_config)

    assert result.probability_of_any_damage == 0.0
    assert result.damage_statistics.mean == 0.0
    assert np.all(result.damage_results == 0.0)
    assert len(result.damage_histogram.bins) == 1
    assert result.damage_histogram.total_count == 200


def test_results_are_read_only(bolt_rifle, space_marine, fast_config):
    result = run_simulation(bolt_rifle, space_marine, 100, config=fast_config)

    with pytest.raises(ValueError):
        result.damage_results[0] = 99.0
    with pytest.raises(ValueError):
        result.kill_results[0] = 99.0


def test_histograms_hold_every_trial(bolt_rifle, guardsman, fast_config):
    result = run_simulation(bolt_rifle.with_attacks(10), guardsman, 4000, config=fast_config)

    assert result.damage_histogram.total_count == 4000
    assert result.kill_histogram.total_count == 4000
    assert len(result.damage_histogram.bins) == 20
    assert len(result.kill_histogram.bins) == 15  # ten models + 5


def test_statistics_are_ordered(bolt_rifle, guardsman, fast_config):
    stats = run_simulation(bolt_rifle.with_attacks(10), guardsman, 5000, config=fast_config).damage_statistics

    assert stats.minimum <= stats.percentile_25 <= stats.median <= stats.percentile_75
    assert stats.percentile_75 <= stats.percentile_90 <= stats.percentile_95 <= stats.percentile_99
    assert stats.percentile_99 <= stats.maximum
    assert stats.standard_deviation > 0


def test_summary_frame(bolt_rifle, space_marine, fast_config):
    result = run_simulation(bolt_rifle, space_marine, 500, config=fast_config)
    frame = result.summary_frame()

    assert isinstance(result, SimulationResult)
    assert list(frame.columns) == ['damage', 'models_killed']
    assert frame.loc['mean', 'damage'] == pytest.approx(result.damage_statistics.mean)
    assert 'p95' in frame.index


def test_simulation_logs_progress(bolt_rifle, space_marine, fast_config, caplog):
    caplog.set_level(logging.INFO, logger="combat_simulator")
    run_simulation(bolt_rifle, space_marine, 100, config=fast_config)

    messages = [r.getMessage() for r in caplog.records if r.name == "combat_simulator"]
    assert any(m.startswith("Simulating 100 iterations") for m in messages)
    assert any("Simulation finished" in m for m in messages)
