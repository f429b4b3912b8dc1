"""
Weapon ability processor for Warhammer 40k 10th Edition

Adjusts a closed-form CombatResult for the abilities on a weapon. Abilities are
applied stage by stage in a fixed order, never in the order they were declared:

1. Attacks  - Rapid Fire, Blast (full recalculation when the attack count changes)
2. Hit      - Torrent, re-roll hits, Sustained Hits, Lethal Hits
3. Wound    - Twin-Linked / re-roll wounds, Devastating Wounds / Anti-X
4. Damage   - Melta
5. Save     - Ignores Cover

Each stage rescales the fields downstream of the value it changes by the
ratio new/old instead of recomputing them from scratch, so stacked abilities
can drift from an exact calculation.
"""

from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional

from combat_calculator import combat_result, expected_chain
from combat_logging import get_logger
from combat_profiles import AbilityKind, CombatResult, UnitProfile, WeaponAbility, WeaponProfile
from dice_math import (
    CRITICAL_PROBABILITY,
    average_damage,
    hit_probability,
    mitigation_pass_probability,
    save_fail_probability,
    wound_probability,
)

logger = get_logger(__name__)

# Floor for every denominator in a rescale ratio
EPSILON = 0.001

# Cover worsens the save target by one during the attack-count recalculation
COVER_SAVE_MODIFIER = 1


class AbilityStage(Enum):
    """Pipeline stage an ability acts on"""
    ATTACKS = "Attacks"
    HIT = "Hit"
    WOUND = "Wound"
    DAMAGE = "Damage"
    SAVE = "Save"
    NONE = "None"  # no effect on the target's expected values


ABILITY_STAGES: Dict[AbilityKind, AbilityStage] = {
    AbilityKind.RAPID_FIRE: AbilityStage.ATTACKS,
    AbilityKind.BLAST: AbilityStage.ATTACKS,
    AbilityKind.TORRENT: AbilityStage.HIT,
    AbilityKind.REROLL_ONES: AbilityStage.HIT,
    AbilityKind.REROLL_HITS: AbilityStage.HIT,
    AbilityKind.SUSTAINED_HITS: AbilityStage.HIT,
    AbilityKind.LETHAL_HITS: AbilityStage.HIT,
    AbilityKind.TWIN_LINKED: AbilityStage.WOUND,
    AbilityKind.REROLL_WOUNDS: AbilityStage.WOUND,
    AbilityKind.DEVASTATING_WOUNDS: AbilityStage.WOUND,
    AbilityKind.ANTI: AbilityStage.WOUND,
    AbilityKind.MELTA: AbilityStage.DAMAGE,
    AbilityKind.IGNORES_COVER: AbilityStage.SAVE,
    AbilityKind.PRECISION: AbilityStage.NONE,
    AbilityKind.HAZARDOUS: AbilityStage.NONE,
}


def _ratio(new: float, old: float) -> float:
    return new / max(old, EPSILON)


def _probability(value: float) -> float:
    return min(max(value, 0.0), 1.0)


def stage_abilities(abilities: Iterable[WeaponAbility], stage: AbilityStage) -> FrozenSet[WeaponAbility]:
    """The abilities acting on one stage"""
    return frozenset(a for a in abilities if ABILITY_STAGES[a.kind] == stage)


def _kinds(abilities: Iterable[WeaponAbility]) -> FrozenSet[AbilityKind]:
    return frozenset(a.kind for a in abilities)


def _strongest(abilities: Iterable[WeaponAbility], kind: AbilityKind) -> int:
    """Largest parameter among abilities of one kind; the same ability never stacks"""
    return max((a.amount for a in abilities if a.kind == kind), default=0)


def is_at_half_range(weapon_range: Optional[int], current_range: Optional[int]) -> bool:
    """True when the target is within half the weapon's range"""
    if weapon_range is None or current_range is None:
        return False
    return current_range <= weapon_range // 2


def calculate_blast_bonus(defender_model_count: int) -> float:
    """Bonus attacks from Blast against the size of the target unit"""
    if defender_model_count <= 5:
        return 0.0
    elif defender_model_count <= 10:
        return float(defender_model_count - 6)
    else:
        return 3.0


def resolve_attack_count(
    weapon: WeaponProfile,
    defender: UnitProfile,
    range_inches: Optional[int] = None,
) -> float:
    """Attacks after Rapid Fire and Blast"""
    attacks = float(max(weapon.attacks, 0))
    abilities = stage_abilities(weapon.abilities, AbilityStage.ATTACKS)
    kinds = _kinds(abilities)

    if AbilityKind.RAPID_FIRE in kinds and is_at_half_range(weapon.range, range_inches):
        attacks += _strongest(abilities, AbilityKind.RAPID_FIRE)

    if AbilityKind.BLAST in kinds:
        attacks += calculate_blast_bonus(defender.model_count)

    return attacks


# ============================================================================
# STAGE TRANSFORMS
# ============================================================================

def recalculate_with_attacks(
    attacks: float,
    weapon: WeaponProfile,
    defender: UnitProfile,
    defender_has_cover: bool = False,
) -> CombatResult:
    """Recompute the whole chain for a new attack count, folding in cover"""
    save = defender.save + COVER_SAVE_MODIFIER if defender_has_cover else defender.save
    return expected_chain(
        attacks=attacks,
        hit_prob=hit_probability(weapon.skill),
        wound_prob=wound_probability(weapon.strength, defender.toughness),
        save_fail_prob=save_fail_probability(save, weapon.ap, defender.invuln_save),
        avg_damage=max(average_damage(weapon.damage), 0.0),
        fnp_pass_prob=mitigation_pass_probability(defender.feel_no_pain),
        wounds_per_model=defender.wounds,
    )


def apply_hit_probability(result: CombatResult, attacks: float, new_hit_prob: float) -> CombatResult:
    """Replace the hit chance and carry the change down the chain"""
    hits = attacks * new_hit_prob
    wounds = hits * result.wound_probability
    unsaved = wounds * result.save_fail_probability
    damage_per_unsaved = _ratio(result.expected_damage, result.expected_unsaved_wounds)

    return CombatResult(
        expected_hits=hits,
        expected_wounds=wounds,
        expected_unsaved_wounds=unsaved,
        expected_damage=unsaved * damage_per_unsaved,
        expected_models_killed=result.expected_models_killed * _ratio(hits, result.expected_hits),
        hit_probability=new_hit_prob,
        wound_probability=result.wound_probability,
        save_fail_probability=result.save_fail_probability,
        kill_probability=result.kill_probability,
    )


def apply_torrent(result: CombatResult, attacks: float) -> CombatResult:
    """Every attack hits automatically"""
    return apply_hit_probability(result, attacks, 1.0)


def apply_hit_reroll(result: CombatResult, attacks: float, ones_only: bool) -> CombatResult:
    """Re-roll failed hit rolls, or only hit rolls of 1"""
    p = result.hit_probability
    if ones_only:
        new_p = p + CRITICAL_PROBABILITY * p
    else:
        new_p = p * (2.0 - p)
    return apply_hit_probability(result, attacks, _probability(new_p))


def apply_sustained_hits(result: CombatResult, count: int, attacks: float) -> CombatResult:
    """Each critical hit scores count extra hits"""
    bonus_hits = attacks * CRITICAL_PROBABILITY * count
    total_hits = result.expected_hits + bonus_hits
    unsaved = total_hits * result.wound_probability * result.save_fail_probability

    return CombatResult(
        expected_hits=total_hits,
        expected_wounds=total_hits * result.wound_probability,
        expected_unsaved_wounds=unsaved,
        expected_damage=unsaved * _ratio(result.expected_damage, result.expected_unsaved_wounds),
        expected_models_killed=result.expected_models_killed * _ratio(total_hits, result.expected_hits),
        hit_probability=result.hit_probability,
        wound_probability=result.wound_probability,
        save_fail_probability=result.save_fail_probability,
        kill_probability=result.kill_probability,
    )


def apply_lethal_hits(result: CombatResult, attacks: float) -> CombatResult:
    """Critical hits wound automatically"""
    normal_hit_prob = max(result.hit_probability - CRITICAL_PROBABILITY, 0.0)
    normal_wounds = attacks * normal_hit_prob * result.wound_probability
    critical_wounds = attacks * CRITICAL_PROBABILITY
    total_wounds = normal_wounds + critical_wounds
    unsaved = total_wounds * result.save_fail_probability

    return CombatResult(
        expected_hits=result.expected_hits,
        expected_wounds=total_wounds,
        expected_unsaved_wounds=unsaved,
        expected_damage=unsaved * _ratio(result.expected_damage, result.expected_unsaved_wounds),
        expected_models_killed=result.expected_models_killed * _ratio(total_wounds, result.expected_wounds),
        hit_probability=result.hit_probability,
        wound_probability=_probability(_ratio(total_wounds, result.expected_hits)),
        save_fail_probability=result.save_fail_probability,
        kill_probability=result.kill_probability,
    )


def apply_wound_reroll(result: CombatResult) -> CombatResult:
    """Re-roll wound rolls: p' = p + (1 - p) * p"""
    p = result.wound_probability
    new_p = p * (2.0 - p)
    wounds = result.expected_hits * new_p
    unsaved = wounds * result.save_fail_probability

    return CombatResult(
        expected_hits=result.expected_hits,
        expected_wounds=wounds,
        expected_unsaved_wounds=unsaved,
        expected_damage=unsaved * _ratio(result.expected_damage, result.expected_unsaved_wounds),
        expected_models_killed=result.expected_models_killed * _ratio(new_p, p),
        hit_probability=result.hit_probability,
        wound_probability=new_p,
        save_fail_probability=result.save_fail_probability,
        kill_probability=result.kill_probability,
    )


def apply_devastating_wounds(result: CombatResult) -> CombatResult:
    """Critical wounds skip the saving throw"""
    normal_wound_prob = max(result.wound_probability - CRITICAL_PROBABILITY, 0.0)
    normal_unsaved = result.expected_hits * normal_wound_prob * result.save_fail_probability
    critical_unsaved = result.expected_hits * CRITICAL_PROBABILITY
    total_unsaved = normal_unsaved + critical_unsaved

    return CombatResult(
        expected_hits=result.expected_hits,
        expected_wounds=result.expected_wounds,
        expected_unsaved_wounds=total_unsaved,
        expected_damage=total_unsaved * _ratio(result.expected_damage, result.expected_unsaved_wounds),
        expected_models_killed=result.expected_models_killed * _ratio(total_unsaved, result.expected_unsaved_wounds),
        hit_probability=result.hit_probability,
        wound_probability=result.wound_probability,
        save_fail_probability=_probability(_ratio(total_unsaved, result.expected_wounds)),
        kill_probability=result.kill_probability,
    )


def apply_melta(result: CombatResult, bonus: int) -> CombatResult:
    """Add bonus to the damage of every unsaved wound"""
    base_damage = _ratio(result.expected_damage, result.expected_unsaved_wounds)
    enhanced_damage = base_damage + bonus

    return CombatResult(
        expected_hits=result.expected_hits,
        expected_wounds=result.expected_wounds,
        expected_unsaved_wounds=result.expected_unsaved_wounds,
        expected_damage=result.expected_unsaved_wounds * enhanced_damage,
        expected_models_killed=result.expected_models_killed * _ratio(enhanced_damage, base_damage),
        hit_probability=result.hit_probability,
        wound_probability=result.wound_probability,
        save_fail_probability=result.save_fail_probability,
        kill_probability=result.kill_probability,
    )


def apply_ignores_cover(result: CombatResult, weapon: WeaponProfile, defender: UnitProfile) -> CombatResult:
    """Resolve saves against the defender's save without cover"""
    new_save_fail = save_fail_probability(defender.save, weapon.ap, defender.invuln_save)
    unsaved = result.expected_wounds * new_save_fail

    return CombatResult(
        expected_hits=result.expected_hits,
        expected_wounds=result.expected_wounds,
        expected_unsaved_wounds=unsaved,
        expected_damage=unsaved * _ratio(result.expected_damage, result.expected_unsaved_wounds),
        expected_models_killed=result.expected_models_killed * _ratio(new_save_fail, result.save_fail_probability),
        hit_probability=result.hit_probability,
        wound_probability=result.wound_probability,
        save_fail_probability=new_save_fail,
        kill_probability=result.kill_probability,
    )


# ============================================================================
# PROCESSOR
# ============================================================================

def apply_modifiers(
    base: CombatResult,
    weapon: WeaponProfile,
    defender: UnitProfile,
    range_inches: Optional[int] = None,
    defender_keywords: Iterable[str] = (),
    defender_has_cover: bool = False,
) -> CombatResult:
    """
    Apply the weapon's abilities to a closed-form result.

    A weapon without abilities gets base back unchanged.
    """
    if not weapon.abilities:
        return base

    defender_keywords = tuple(defender_keywords)
    result = base

    # 1. Attacks
    attacks = resolve_attack_count(weapon, defender, range_inches)
    if attacks != float(max(weapon.attacks, 0)):
        logger.debug("%s: attacks %d -> %.1f", weapon.name, weapon.attacks, attacks)
        result = recalculate_with_attacks(attacks, weapon, defender, defender_has_cover)

    # 2. Hit
    hit_abilities = stage_abilities(weapon.abilities, AbilityStage.HIT)
    hit_kinds = _kinds(hit_abilities)
    if AbilityKind.TORRENT in hit_kinds:
        result = apply_torrent(result, attacks)
    elif AbilityKind.REROLL_HITS in hit_kinds:
        result = apply_hit_reroll(result, attacks, ones_only=False)
    elif AbilityKind.REROLL_ONES in hit_kinds:
        result = apply_hit_reroll(result, attacks, ones_only=True)

    if AbilityKind.SUSTAINED_HITS in hit_kinds:
        count = _strongest(hit_abilities, AbilityKind.SUSTAINED_HITS)
        result = apply_sustained_hits(result, count, attacks)

    if AbilityKind.LETHAL_HITS in hit_kinds:
        result = apply_lethal_hits(result, attacks)

    # 3. Wound
    wound_abilities = stage_abilities(weapon.abilities, AbilityStage.WOUND)
    wound_kinds = _kinds(wound_abilities)
    if AbilityKind.TWIN_LINKED in wound_kinds or AbilityKind.REROLL_WOUNDS in wound_kinds:
        result = apply_wound_reroll(result)

    anti_matches = [a for a in wound_abilities if a.matches_keyword(defender_keywords)]
    if AbilityKind.DEVASTATING_WOUNDS in wound_kinds or anti_matches:
        if anti_matches:
            logger.debug("%s: %s active against %s", weapon.name,
                         ', '.join(sorted(a.display_name for a in anti_matches)), defender.name)
        result = apply_devastating_wounds(result)

    # 4. Damage
    damage_abilities = stage_abilities(weapon.abilities, AbilityStage.DAMAGE)
    if damage_abilities and is_at_half_range(weapon.range, range_inches):
        result = apply_melta(result, _strongest(damage_abilities, AbilityKind.MELTA))

    # 5. Save
    save_kinds = _kinds(stage_abilities(weapon.abilities, AbilityStage.SAVE))
    if AbilityKind.IGNORES_COVER in save_kinds and defender_has_cover:
        result = apply_ignores_cover(result, weapon, defender)

    return result


def calculate_combat_result_with_abilities(
    weapon: WeaponProfile,
    defender: UnitProfile,
    range_inches: Optional[int] = None,
    defender_keywords: Iterable[str] = (),
    defender_has_cover: bool = False,
) -> CombatResult:
    """Closed-form result with the weapon's abilities applied"""
    base = combat_result(weapon, defender)
    return apply_modifiers(base, weapon, defender, range_inches, defender_keywords, defender_has_cover)
