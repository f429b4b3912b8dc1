"""
Closed-form combat calculator
Expected hits, wounds, unsaved wounds, damage and casualties for one weapon vs one unit
"""

from combat_logging import get_logger
from combat_profiles import CombatResult, UnitProfile, WeaponProfile
from dice_math import (
    average_damage,
    hit_probability,
    mitigation_pass_probability,
    save_fail_probability,
    wound_probability,
)

logger = get_logger(__name__)


def calculate_kill_probability(expected_models_killed: float) -> float:
    """
    Chance of killing at least one model.

    Linear clamp of the expected casualties; the Monte Carlo simulator gives
    the exact figure.
    """
    if expected_models_killed >= 1.0:
        return 1.0
    if expected_models_killed <= 0.0:
        return 0.0
    return expected_models_killed


def expected_chain(
    attacks: float,
    hit_prob: float,
    wound_prob: float,
    save_fail_prob: float,
    avg_damage: float,
    fnp_pass_prob: float,
    wounds_per_model: int,
) -> CombatResult:
    """Chain the stage probabilities into expected values"""
    expected_hits = attacks * hit_prob
    expected_wounds = expected_hits * wound_prob
    expected_unsaved_wounds = expected_wounds * save_fail_prob

    # Feel No Pain removes a share of the damage after saves
    expected_damage = expected_unsaved_wounds * avg_damage * (1.0 - fnp_pass_prob)

    expected_models_killed = expected_damage / wounds_per_model if wounds_per_model > 0 else 0.0

    return CombatResult(
        expected_hits=expected_hits,
        expected_wounds=expected_wounds,
        expected_unsaved_wounds=expected_unsaved_wounds,
        expected_damage=expected_damage,
        expected_models_killed=expected_models_killed,
        hit_probability=hit_prob,
        wound_probability=wound_prob,
        save_fail_probability=save_fail_prob,
        kill_probability=calculate_kill_probability(expected_models_killed),
    )


def combat_result(weapon: WeaponProfile, defender: UnitProfile) -> CombatResult:
    """
    Calculate the unmodified attack sequence:
    Hit -> Wound -> Save -> Feel No Pain -> Damage -> Models Destroyed

    Weapon abilities are not applied here; see ability_processor.
    """
    hit_prob = hit_probability(weapon.skill)
    wound_prob = wound_probability(weapon.strength, defender.toughness)
    save_fail_prob = save_fail_probability(defender.save, weapon.ap, defender.invuln_save)
    fnp_pass_prob = mitigation_pass_probability(defender.feel_no_pain)

    result = expected_chain(
        attacks=float(max(weapon.attacks, 0)),
        hit_prob=hit_prob,
        wound_prob=wound_prob,
        save_fail_prob=save_fail_prob,
        avg_damage=max(average_damage(weapon.damage), 0.0),
        fnp_pass_prob=fnp_pass_prob,
        wounds_per_model=defender.wounds,
    )
    logger.debug("%s vs %s: %.3f damage, %.3f models", weapon.name, defender.name,
                 result.expected_damage, result.expected_models_killed)
    return result
