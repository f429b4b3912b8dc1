"""
Dice probability primitives for Warhammer 40k 10th Edition
Single-roll success chances for the hit -> wound -> save -> Feel No Pain chain
"""

import re
from typing import Optional, Tuple, Union

import numpy as np

DamageSpec = Union[int, str]

# Unmodified 6 is always a critical roll
CRITICAL_ROLL = 6
CRITICAL_PROBABILITY = 1.0 / 6.0

# Save targets above 6 can never be passed
NO_SAVE = 7

_DICE_PATTERN = re.compile(r'^(\d*)D(\d+)(?:\+(\d+))?$')


def d6_success_probability(target: int) -> float:
    """Chance that a D6 rolls target or higher"""
    if target < 2:
        return 1.0
    if target > 6:
        return 0.0
    return (7 - target) / 6.0


def wound_roll_needed(strength: int, toughness: int) -> int:
    """Calculate the dice roll required to wound based on S vs T"""
    if strength >= toughness * 2:
        return 2
    elif strength > toughness:
        return 3
    elif strength == toughness:
        return 4
    elif strength < toughness and strength * 2 > toughness:
        return 5
    else:  # strength * 2 <= toughness
        return 6


def hit_probability(skill: int) -> float:
    """
    Chance for one attack to hit with a BS/WS of skill+.

    Skills outside 2-6 are illegal on a datasheet and never hit.
    """
    if skill < 2 or skill > 6:
        return 0.0
    return (7 - skill) / 6.0


def wound_probability(strength: int, toughness: int) -> float:
    """Chance for one hit to wound"""
    return d6_success_probability(wound_roll_needed(strength, toughness))


def save_fail_probability(save: int, ap: int, invuln_save: Optional[int] = None) -> float:
    """
    Chance that the defender fails a saving throw.

    AP is zero or negative and worsens the armour save; an invulnerable save
    ignores AP and is used when it is better than the modified armour save.
    """
    modified_save = save - ap
    best_save = min(modified_save, invuln_save if invuln_save is not None else NO_SAVE)

    if best_save > 6:
        return 1.0
    if best_save < 2:
        return 0.0
    return (best_save - 1) / 6.0


def mitigation_pass_probability(feel_no_pain: Optional[int]) -> float:
    """Chance that a Feel No Pain roll ignores one point of damage"""
    if feel_no_pain is None:
        return 0.0
    return d6_success_probability(feel_no_pain)


def parse_damage_dice(damage: DamageSpec) -> Optional[Tuple[int, int, int]]:
    """
    Parse dice notation like 'D6', '2D6', 'D3+1' into (dice, sides, bonus).

    Returns None for fixed values and anything unparseable.
    """
    if isinstance(damage, int):
        return None
    value = str(damage).strip().upper().replace(' ', '')
    match = _DICE_PATTERN.match(value)
    if not match:
        return None
    num_dice = int(match.group(1)) if match.group(1) else 1
    sides = int(match.group(2))
    bonus = int(match.group(3)) if match.group(3) else 0
    if num_dice < 1 or sides < 1:
        return None
    return num_dice, sides, bonus


def fixed_damage(damage: DamageSpec) -> Optional[int]:
    """Return the flat damage value, or None when damage is rolled"""
    if isinstance(damage, int):
        return damage
    try:
        return int(str(damage).strip())
    except ValueError:
        return None


def average_damage(damage: DamageSpec) -> float:
    """Mean damage per unsaved wound; unparseable damage counts as 1"""
    fixed = fixed_damage(damage)
    if fixed is not None:
        return float(fixed)

    dice = parse_damage_dice(damage)
    if dice is None:
        return 1.0

    num_dice, sides, bonus = dice
    return num_dice * (sides + 1) / 2.0 + bonus


def max_damage(damage: DamageSpec) -> int:
    """Largest value a damage characteristic can roll"""
    fixed = fixed_damage(damage)
    if fixed is not None:
        return fixed
    dice = parse_damage_dice(damage)
    if dice is None:
        return 1
    num_dice, sides, bonus = dice
    return num_dice * sides + bonus


def roll_damage(damage: DamageSpec, roller, size) -> np.ndarray:
    """Roll the damage characteristic once per cell of an array of the given shape"""
    fixed = fixed_damage(damage)
    if fixed is not None:
        return np.full(size, fixed, dtype=np.int64)

    dice = parse_damage_dice(damage)
    if dice is None:
        return np.ones(size, dtype=np.int64)

    num_dice, sides, bonus = dice
    total = np.full(size, bonus, dtype=np.int64)
    for _ in range(num_dice):
        total += roller.integers(1, sides + 1, size)
    return total
