"""
JSON-compatible serialization for profiles and results
Records convert field by field to plain dicts; abilities use {"type": ..., "value": ...}
"""

import json
from dataclasses import fields
from typing import Any, Dict, List, Optional

from combat_errors import ProfileDecodeError
from combat_profiles import AbilityKind, CombatResult, UnitProfile, WeaponAbility, WeaponProfile

ABILITY_TYPE_NAMES: Dict[AbilityKind, str] = {
    AbilityKind.LETHAL_HITS: 'lethalHits',
    AbilityKind.SUSTAINED_HITS: 'sustainedHits',
    AbilityKind.DEVASTATING_WOUNDS: 'devastatingWounds',
    AbilityKind.ANTI: 'anti',
    AbilityKind.TORRENT: 'torrent',
    AbilityKind.TWIN_LINKED: 'twinLinked',
    AbilityKind.MELTA: 'melta',
    AbilityKind.RAPID_FIRE: 'rapidFire',
    AbilityKind.BLAST: 'blast',
    AbilityKind.IGNORES_COVER: 'ignoresCover',
    AbilityKind.PRECISION: 'precision',
    AbilityKind.HAZARDOUS: 'hazardous',
    AbilityKind.REROLL_ONES: 'reRollOnes',
    AbilityKind.REROLL_HITS: 'reRollHits',
    AbilityKind.REROLL_WOUNDS: 'reRollWounds',
}
ABILITY_KINDS_BY_NAME = {name: kind for kind, name in ABILITY_TYPE_NAMES.items()}

# Kinds whose "value" is a number
_NUMERIC_KINDS = frozenset({AbilityKind.SUSTAINED_HITS, AbilityKind.MELTA, AbilityKind.RAPID_FIRE})


# ============================================================================
# ABILITIES
# ============================================================================

def ability_to_dict(ability: WeaponAbility) -> Dict[str, Any]:
    record: Dict[str, Any] = {'type': ABILITY_TYPE_NAMES[ability.kind]}
    if ability.kind in _NUMERIC_KINDS:
        record['value'] = ability.amount
    elif ability.kind == AbilityKind.ANTI:
        record['value'] = ability.keyword or ''
    return record

def ability_from_dict(record: Dict[str, Any]) -> WeaponAbility:
    if not isinstance(record, dict) or 'type' not in record:
        raise ProfileDecodeError("Ability record needs a 'type'", record)

    kind = ABILITY_KINDS_BY_NAME.get(record['type'])
    if kind is None:
        raise ProfileDecodeError(f"Unknown weapon ability type: {record['type']}", record)

    value = record.get('value')
    if kind in _NUMERIC_KINDS:
        if value is None:
            return WeaponAbility(kind)
        if isinstance(value, bool) or not isinstance(value, int):
            raise ProfileDecodeError(f"{record['type']} value must be an integer", record)
        return WeaponAbility(kind, value=value)

    if kind == AbilityKind.ANTI:
        if not isinstance(value, str):
            raise ProfileDecodeError("anti value must be a keyword string", record)
        return WeaponAbility.anti(value)

    return WeaponAbility(kind)

def _ability_sort_key(record: Dict[str, Any]):
    return record['type'], str(record.get('value', ''))


# ============================================================================
# PROFILES
# ============================================================================

def _require(record: Dict[str, Any], key: str, kind: str) -> Any:
    if key not in record:
        raise ProfileDecodeError(f"{kind} record is missing '{key}'", record)
    return record[key]

def _int_field(record: Dict[str, Any], key: str, kind: str, default: Optional[int] = None,
               required: bool = True) -> Optional[int]:
    if key not in record or record[key] is None:
        if required:
            raise ProfileDecodeError(f"{kind} record is missing '{key}'", record)
        return default
    value = record[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ProfileDecodeError(f"{kind} field '{key}' must be an integer, got {value!r}", record)
    return value

def weapon_to_dict(weapon: WeaponProfile) -> Dict[str, Any]:
    return {
        'name': weapon.name,
        'attacks': weapon.attacks,
        'skill': weapon.skill,
        'strength': weapon.strength,
        'ap': weapon.ap,
        'damage': str(weapon.damage),
        'abilities': sorted((ability_to_dict(a) for a in weapon.abilities), key=_ability_sort_key),
        'range': weapon.range,
    }

def weapon_from_dict(record: Dict[str, Any]) -> WeaponProfile:
    if not isinstance(record, dict):
        raise ProfileDecodeError("Weapon record must be an object", record)
    abilities = record.get('abilities') or []
    if not isinstance(abilities, list):
        raise ProfileDecodeError("Weapon 'abilities' must be a list", record)

    return WeaponProfile(
        name=str(_require(record, 'name', 'Weapon')),
        attacks=_int_field(record, 'attacks', 'Weapon'),
        skill=_int_field(record, 'skill', 'Weapon'),
        strength=_int_field(record, 'strength', 'Weapon'),
        ap=_int_field(record, 'ap', 'Weapon', default=0, required=False),
        damage=str(record.get('damage', '1')),
        abilities=frozenset(ability_from_dict(a) for a in abilities),
        range=_int_field(record, 'range', 'Weapon', required=False),
    )

def unit_to_dict(unit: UnitProfile) -> Dict[str, Any]:
    return {
        'name': unit.name,
        'toughness': unit.toughness,
        'save': unit.save,
        'invuln_save': unit.invuln_save,
        'feel_no_pain': unit.feel_no_pain,
        'wounds': unit.wounds,
        'model_count': unit.model_count,
    }

def unit_from_dict(record: Dict[str, Any]) -> UnitProfile:
    if not isinstance(record, dict):
        raise ProfileDecodeError("Unit record must be an object", record)

    return UnitProfile(
        name=str(_require(record, 'name', 'Unit')),
        toughness=_int_field(record, 'toughness', 'Unit'),
        save=_int_field(record, 'save', 'Unit'),
        wounds=_int_field(record, 'wounds', 'Unit'),
        model_count=_int_field(record, 'model_count', 'Unit', default=1, required=False),
        invuln_save=_int_field(record, 'invuln_save', 'Unit', required=False),
        feel_no_pain=_int_field(record, 'feel_no_pain', 'Unit', required=False),
    )


# ============================================================================
# RESULTS
# ============================================================================

def combat_result_to_dict(result: CombatResult) -> Dict[str, float]:
    return {
        'expected_hits': result.expected_hits,
        'expected_wounds': result.expected_wounds,
        'expected_unsaved_wounds': result.expected_unsaved_wounds,
        'expected_damage': result.expected_damage,
        'expected_models_killed': result.expected_models_killed,
        'hit_probability': result.hit_probability,
        'wound_probability': result.wound_probability,
        'save_fail_probability': result.save_fail_probability,
        'kill_probability': result.kill_probability,
    }

def combat_result_from_dict(record: Dict[str, Any]) -> CombatResult:
    try:
        return CombatResult(**{f.name: float(record[f.name]) for f in fields(CombatResult)})
    except (KeyError, TypeError, ValueError) as e:
        raise ProfileDecodeError(f"Malformed combat result: {e}", record) from e

def _histogram_to_list(histogram) -> List[Dict[str, Any]]:
    return [
        {'lower_bound': b.lower_bound, 'upper_bound': b.upper_bound, 'count': b.count}
        for b in histogram.bins
    ]

def simulation_result_to_dict(result, include_samples: bool = False) -> Dict[str, Any]:
    """
    Convert a SimulationResult to plain types.

    Raw samples are left out unless include_samples is set; a million-trial
    run would otherwise dominate the payload.
    """
    record = {
        'iterations': result.iterations,
        'damage_statistics': result.damage_statistics.to_dict(),
        'kill_statistics': result.kill_statistics.to_dict(),
        'probability_of_any_damage': result.probability_of_any_damage,
        'probability_of_any_kills': result.probability_of_any_kills,
        'probability_of_wipe': result.probability_of_wipe,
        'damage_histogram': _histogram_to_list(result.damage_histogram),
        'kill_histogram': _histogram_to_list(result.kill_histogram),
    }
    if include_samples:
        record['damage_results'] = result.damage_results.tolist()
        record['kill_results'] = result.kill_results.tolist()
    return record


# ============================================================================
# JSON HELPERS
# ============================================================================

def dumps_weapon(weapon: WeaponProfile, **kwargs) -> str:
    return json.dumps(weapon_to_dict(weapon), **kwargs)

def loads_weapon(text: str) -> WeaponProfile:
    try:
        record = json.loads(text)
    except json.JSONDecodeError as e:
        raise ProfileDecodeError(f"Invalid weapon JSON: {e}") from e
    return weapon_from_dict(record)

def dumps_unit(unit: UnitProfile, **kwargs) -> str:
    return json.dumps(unit_to_dict(unit), **kwargs)

def loads_unit(text: str) -> UnitProfile:
    try:
        record = json.loads(text)
    except json.JSONDecodeError as e:
        raise ProfileDecodeError(f"Invalid unit JSON: {e}") from e
    return unit_from_dict(record)
