"""
Warhammer 40k combat profiles
Weapon abilities, attacking weapon and defending unit statistics, and combat results
"""

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import FrozenSet, Iterable, Optional

import pandas as pd

from dice_math import DamageSpec


class AbilityKind(Enum):
    """Weapon abilities understood by the ability processor"""
    LETHAL_HITS = "Lethal Hits"
    SUSTAINED_HITS = "Sustained Hits"
    DEVASTATING_WOUNDS = "Devastating Wounds"
    ANTI = "Anti"
    TORRENT = "Torrent"
    TWIN_LINKED = "Twin-Linked"
    MELTA = "Melta"
    RAPID_FIRE = "Rapid Fire"
    BLAST = "Blast"
    IGNORES_COVER = "Ignores Cover"
    PRECISION = "Precision"
    HAZARDOUS = "Hazardous"
    REROLL_ONES = "Re-roll 1s to Hit"
    REROLL_HITS = "Re-roll Failed Hits"
    REROLL_WOUNDS = "Re-roll Failed Wounds"


# Used when a parameterized ability is declared without its number
DEFAULT_ABILITY_VALUES = {
    AbilityKind.SUSTAINED_HITS: 1,
    AbilityKind.MELTA: 2,
    AbilityKind.RAPID_FIRE: 1,
}

HIT_ROLL_KINDS = frozenset({
    AbilityKind.LETHAL_HITS, AbilityKind.SUSTAINED_HITS, AbilityKind.TORRENT,
    AbilityKind.REROLL_ONES, AbilityKind.REROLL_HITS, AbilityKind.HAZARDOUS,
})
WOUND_ROLL_KINDS = frozenset({
    AbilityKind.DEVASTATING_WOUNDS, AbilityKind.ANTI,
    AbilityKind.TWIN_LINKED, AbilityKind.REROLL_WOUNDS,
})
RANGE_DEPENDENT_KINDS = frozenset({AbilityKind.MELTA, AbilityKind.RAPID_FIRE})


@dataclass(frozen=True)
class WeaponAbility:
    """
    One weapon ability, optionally parameterized.

    value carries the number for Sustained Hits, Melta and Rapid Fire;
    keyword carries the target keyword for Anti-X.
    """
    kind: AbilityKind
    value: Optional[int] = None
    keyword: Optional[str] = None

    @property
    def amount(self) -> int:
        """The ability's number, falling back to its documented default"""
        if self.value is not None:
            return self.value
        return DEFAULT_ABILITY_VALUES.get(self.kind, 0)

    @property
    def affects_hit_rolls(self) -> bool:
        return self.kind in HIT_ROLL_KINDS

    @property
    def affects_wound_rolls(self) -> bool:
        return self.kind in WOUND_ROLL_KINDS

    @property
    def is_range_dependent(self) -> bool:
        return self.kind in RANGE_DEPENDENT_KINDS

    @property
    def display_name(self) -> str:
        if self.kind == AbilityKind.ANTI:
            return f"Anti-{self.keyword or ''}"
        if self.kind in DEFAULT_ABILITY_VALUES:
            return f"{self.kind.value} {self.amount}"
        return self.kind.value

    def matches_keyword(self, keywords: Iterable[str]) -> bool:
        """True for an Anti-X ability whose keyword the target carries"""
        if self.kind != AbilityKind.ANTI or not self.keyword:
            return False
        wanted = self.keyword.strip().lower()
        return any(kw.strip().lower() == wanted for kw in keywords)

    def __str__(self) -> str:
        return self.display_name

    # Factories for the common datasheet forms

    @classmethod
    def sustained_hits(cls, count: Optional[int] = None) -> 'WeaponAbility':
        return cls(AbilityKind.SUSTAINED_HITS, value=count)

    @classmethod
    def melta(cls, bonus: Optional[int] = None) -> 'WeaponAbility':
        return cls(AbilityKind.MELTA, value=bonus)

    @classmethod
    def rapid_fire(cls, bonus: Optional[int] = None) -> 'WeaponAbility':
        return cls(AbilityKind.RAPID_FIRE, value=bonus)

    @classmethod
    def anti(cls, keyword: str) -> 'WeaponAbility':
        return cls(AbilityKind.ANTI, keyword=keyword)


LETHAL_HITS = WeaponAbility(AbilityKind.LETHAL_HITS)
DEVASTATING_WOUNDS = WeaponAbility(AbilityKind.DEVASTATING_WOUNDS)
TORRENT = WeaponAbility(AbilityKind.TORRENT)
TWIN_LINKED = WeaponAbility(AbilityKind.TWIN_LINKED)
BLAST = WeaponAbility(AbilityKind.BLAST)
IGNORES_COVER = WeaponAbility(AbilityKind.IGNORES_COVER)
PRECISION = WeaponAbility(AbilityKind.PRECISION)
HAZARDOUS = WeaponAbility(AbilityKind.HAZARDOUS)
REROLL_ONES = WeaponAbility(AbilityKind.REROLL_ONES)
REROLL_HITS = WeaponAbility(AbilityKind.REROLL_HITS)
REROLL_WOUNDS = WeaponAbility(AbilityKind.REROLL_WOUNDS)


def parse_weapon_abilities(abilities_text: str) -> FrozenSet[WeaponAbility]:
    """Parse a weapon abilities string and extract special rules"""
    abilities = set()

    if not abilities_text:
        return frozenset()

    lower_text = abilities_text.lower()

    if 'lethal hits' in lower_text:
        abilities.add(LETHAL_HITS)

    if 'devastating wounds' in lower_text:
        abilities.add(DEVASTATING_WOUNDS)

    # Sustained Hits (with number)
    if 'sustained hits' in lower_text:
        match = re.search(r'sustained hits\s+(\d+)', lower_text)
        abilities.add(WeaponAbility.sustained_hits(int(match.group(1)) if match else None))

    # Anti-X keeps the keyword as printed
    for match in re.finditer(r'anti-([\w-]+)(?:\s+\d+\+)?', abilities_text, re.IGNORECASE):
        abilities.add(WeaponAbility.anti(match.group(1)))

    if 'melta' in lower_text:
        match = re.search(r'melta\s+(\d+)', lower_text)
        abilities.add(WeaponAbility.melta(int(match.group(1)) if match else None))

    if 'rapid fire' in lower_text:
        match = re.search(r'rapid fire\s+(\d+)', lower_text)
        abilities.add(WeaponAbility.rapid_fire(int(match.group(1)) if match else None))

    if 'twin-linked' in lower_text or 'twin linked' in lower_text:
        abilities.add(TWIN_LINKED)

    # Re-rolls
    if 're-roll hit' in lower_text or 'reroll hit' in lower_text:
        if 'hit rolls of 1' in lower_text or 'hit roll of 1' in lower_text:
            abilities.add(REROLL_ONES)
        else:
            abilities.add(REROLL_HITS)
    if 're-roll wound' in lower_text or 'reroll wound' in lower_text:
        abilities.add(REROLL_WOUNDS)

    # Simple boolean abilities
    if 'torrent' in lower_text:
        abilities.add(TORRENT)
    if 'blast' in lower_text:
        abilities.add(BLAST)
    if 'ignores cover' in lower_text:
        abilities.add(IGNORES_COVER)
    if 'precision' in lower_text:
        abilities.add(PRECISION)
    if 'hazardous' in lower_text:
        abilities.add(HAZARDOUS)

    return frozenset(abilities)


def _freeze_abilities(abilities) -> FrozenSet[WeaponAbility]:
    if isinstance(abilities, str):
        return parse_weapon_abilities(abilities)
    return frozenset(abilities or ())


@dataclass(frozen=True)
class WeaponProfile:
    """Weapon statistics"""
    name: str
    attacks: int
    skill: int  # BS or WS
    strength: int
    ap: int = 0
    damage: DamageSpec = "1"
    abilities: FrozenSet[WeaponAbility] = field(default_factory=frozenset)
    range: Optional[int] = None  # None for melee weapons

    def __post_init__(self):
        object.__setattr__(self, 'abilities', _freeze_abilities(self.abilities))

    @property
    def is_ranged(self) -> bool:
        return self.range is not None

    @property
    def is_valid_for_combat(self) -> bool:
        """At least one attack and a BS/WS between 2+ and 6+"""
        return self.attacks > 0 and 2 <= self.skill <= 6

    def has_ability(self, kind: AbilityKind) -> bool:
        return any(ability.kind == kind for ability in self.abilities)

    def with_abilities(self, *abilities: WeaponAbility) -> 'WeaponProfile':
        return replace(self, abilities=frozenset(abilities))

    def with_attacks(self, attacks: int) -> 'WeaponProfile':
        return replace(self, attacks=attacks)

    def __str__(self) -> str:
        desc = f"{self.name}: A{self.attacks} BS/WS{self.skill}+ S{self.strength} AP{self.ap} D{self.damage}"
        desc += f' Range: {self.range}"' if self.is_ranged else " (Melee)"
        if self.abilities:
            names = sorted(ability.display_name for ability in self.abilities)
            desc += f" [{', '.join(names)}]"
        return desc

    @classmethod
    def bolt_rifle(cls) -> 'WeaponProfile':
        return cls("Bolt Rifle", attacks=2, skill=3, strength=4, ap=-1, damage="1", range=24)

    @classmethod
    def bolter(cls) -> 'WeaponProfile':
        return cls("Bolter", attacks=2, skill=3, strength=4, ap=0, damage="1",
                   abilities=[WeaponAbility.rapid_fire(1)], range=24)

    @classmethod
    def plasma_gun(cls) -> 'WeaponProfile':
        return cls("Plasma Gun", attacks=1, skill=3, strength=7, ap=-2, damage="1",
                   abilities=[WeaponAbility.rapid_fire(1)], range=24)

    @classmethod
    def plasma_gun_supercharge(cls) -> 'WeaponProfile':
        return cls("Plasma Gun (Supercharge)", attacks=1, skill=3, strength=8, ap=-3, damage="2",
                   abilities=[WeaponAbility.rapid_fire(1), HAZARDOUS], range=24)

    @classmethod
    def chainsword(cls) -> 'WeaponProfile':
        return cls("Chainsword", attacks=3, skill=3, strength=4, ap=-1, damage="1")


@dataclass(frozen=True)
class UnitProfile:
    """Defending unit statistics"""
    name: str
    toughness: int
    save: int
    wounds: int  # per model
    model_count: int = 1
    invuln_save: Optional[int] = None
    feel_no_pain: Optional[int] = None

    @property
    def has_invulnerable_save(self) -> bool:
        return self.invuln_save is not None

    @property
    def has_feel_no_pain(self) -> bool:
        return self.feel_no_pain is not None

    @property
    def total_wounds(self) -> int:
        return self.wounds * self.model_count

    @property
    def is_valid(self) -> bool:
        """At least one wound and one model, and an armour save between 2+ and 6+"""
        return self.wounds > 0 and self.model_count > 0 and 2 <= self.save <= 6

    def with_model_count(self, model_count: int) -> 'UnitProfile':
        return replace(self, model_count=model_count)

    def __str__(self) -> str:
        desc = f"{self.name}: T{self.toughness} Sv{self.save}+"
        if self.invuln_save is not None:
            desc += f" Inv{self.invuln_save}+"
        if self.feel_no_pain is not None:
            desc += f" FNP{self.feel_no_pain}+"
        desc += f" W{self.wounds}"
        if self.model_count > 1:
            desc += f" x{self.model_count} models ({self.total_wounds} total wounds)"
        return desc

    @classmethod
    def space_marine(cls) -> 'UnitProfile':
        return cls("Space Marine", toughness=4, save=3, wounds=2, model_count=10)

    @classmethod
    def terminator(cls) -> 'UnitProfile':
        return cls("Terminator", toughness=5, save=2, wounds=3, model_count=5, invuln_save=4)

    @classmethod
    def guardsman(cls) -> 'UnitProfile':
        return cls("Imperial Guardsman", toughness=3, save=5, wounds=1, model_count=10)

    @classmethod
    def plague_marine(cls) -> 'UnitProfile':
        return cls("Plague Marine", toughness=5, save=3, wounds=2, model_count=7, feel_no_pain=5)


@dataclass(frozen=True)
class CombatResult:
    """Expected values and stage probabilities for one weapon against one unit"""
    expected_hits: float
    expected_wounds: float
    expected_unsaved_wounds: float
    expected_damage: float
    expected_models_killed: float
    hit_probability: float
    wound_probability: float
    save_fail_probability: float
    kill_probability: float

    @property
    def overall_kill_efficiency(self) -> float:
        """Models killed per hit, 0 when nothing hits"""
        if self.expected_hits <= 0:
            return 0.0
        return self.expected_models_killed / self.expected_hits

    @property
    def average_wounds_per_hit(self) -> float:
        if self.expected_hits <= 0:
            return 0.0
        return self.expected_wounds / self.expected_hits

    @property
    def overall_success_probability(self) -> float:
        """Chance for one attack to hit, wound and get through the save"""
        return self.hit_probability * self.wound_probability * self.save_fail_probability

    @classmethod
    def no_damage(cls) -> 'CombatResult':
        return cls(0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0)

    @classmethod
    def auto_hit(cls, attacks: int, wound_prob: float, save_fail_prob: float,
                 damage: float, wounds_per_model: int) -> 'CombatResult':
        hits = float(attacks)
        wounds = hits * wound_prob
        unsaved = wounds * save_fail_prob
        total_damage = unsaved * damage
        models_killed = total_damage / wounds_per_model if wounds_per_model > 0 else 0.0
        return cls(
            expected_hits=hits,
            expected_wounds=wounds,
            expected_unsaved_wounds=unsaved,
            expected_damage=total_damage,
            expected_models_killed=models_killed,
            hit_probability=1.0,
            wound_probability=wound_prob,
            save_fail_probability=save_fail_prob,
            kill_probability=min(models_killed, 1.0),
        )

    def to_series(self) -> pd.Series:
        """Flatten the result, derived ratios included, for tabular display"""
        return pd.Series({
            'expected_hits': self.expected_hits,
            'expected_wounds': self.expected_wounds,
            'expected_unsaved_wounds': self.expected_unsaved_wounds,
            'expected_damage': self.expected_damage,
            'expected_models_killed': self.expected_models_killed,
            'hit_probability': self.hit_probability,
            'wound_probability': self.wound_probability,
            'save_fail_probability': self.save_fail_probability,
            'kill_probability': self.kill_probability,
            'overall_success_probability': self.overall_success_probability,
            'overall_kill_efficiency': self.overall_kill_efficiency,
        })

    def summary(self) -> str:
        return '\n'.join([
            "Combat Result:",
            f"  Expected Hits: {self.expected_hits:.2f}",
            f"  Expected Wounds: {self.expected_wounds:.2f}",
            f"  Expected Unsaved Wounds: {self.expected_unsaved_wounds:.2f}",
            f"  Expected Damage: {self.expected_damage:.2f}",
            f"  Expected Models Killed: {self.expected_models_killed:.2f}",
            "",
            f"  Hit Probability: {self.hit_probability * 100:.1f}%",
            f"  Wound Probability: {self.wound_probability * 100:.1f}%",
            f"  Save Fail Probability: {self.save_fail_probability * 100:.1f}%",
            f"  Kill Probability: {self.kill_probability * 100:.1f}%",
            "",
            f"  Overall Success Rate: {self.overall_success_probability * 100:.1f}%",
            f"  Kill Efficiency: {self.overall_kill_efficiency:.3f} models/hit",
        ])

    def __str__(self) -> str:
        return self.summary()


# Names used by the presentation and persistence layers
AttackProfile = WeaponProfile
DefenseProfile = UnitProfile
ModifierTag = WeaponAbility
