"""
Tests for JSON-compatible serialization of profiles and results
"""

import json

import pytest

from combat_calculator import combat_result
from combat_errors import ProfileDecodeError
from combat_profiles import LETHAL_HITS, TORRENT, UnitProfile, WeaponAbility, WeaponProfile
from combat_simulator import run_simulation
from profile_serializer import (
    ABILITY_TYPE_NAMES,
    ability_from_dict,
    ability_to_dict,
    combat_result_from_dict,
    combat_result_to_dict,
    dumps_unit,
    dumps_weapon,
    loads_unit,
    loads_weapon,
    simulation_result_to_dict,
    unit_from_dict,
    unit_to_dict,
    weapon_from_dict,
    weapon_to_dict,
)


def test_ability_records():
    assert ability_to_dict(LETHAL_HITS) == {'type': 'lethalHits'}
    assert ability_to_dict(WeaponAbility.sustained_hits(2)) == {'type': 'sustainedHits', 'value': 2}
    assert ability_to_dict(WeaponAbility.melta()) == {'type': 'melta', 'value': 2}
    assert ability_to_dict(WeaponAbility.anti("Infantry")) == {'type': 'anti', 'value': 'Infantry'}

    assert ability_from_dict({'type': 'rapidFire', 'value': 2}) == WeaponAbility.rapid_fire(2)
    assert ability_from_dict({'type': 'sustainedHits'}).amount == 1
    assert ability_from_dict({'type': 'reRollWounds'}).kind.name == 'REROLL_WOUNDS'


def test_every_ability_kind_has_a_type_name():
    names = list(ABILITY_TYPE_NAMES.values())
    assert len(names) == len(set(names)) == 15


@pytest.mark.parametrize("record", [
    {'type': 'exploding6s'},
    {'value': 2},
    {'type': 'sustainedHits', 'value': 'two'},
    {'type': 'melta', 'value': True},
    {'type': 'anti', 'value': 4},
    "lethalHits",
])
def test_bad_ability_records(record):
    with pytest.raises(ProfileDecodeError):
        ability_from_dict(record)


def test_weapon_record():
    weapon = WeaponProfile("Combi-weapon", attacks=1, skill=4, strength=4, ap=0, damage="1",
                           abilities=[WeaponAbility.anti("Infantry"), WeaponAbility.rapid_fire(1), LETHAL_HITS],
                           range=24)
    record = weapon_to_dict(weapon)

    assert record['range'] == 24
    assert [a['type'] for a in record['abilities']] == ['anti', 'lethalHits', 'rapidFire']
    assert {'type': 'rapidFire', 'value': 1} in record['abilities']
    assert weapon_from_dict(record) == weapon


def test_weapon_json():
    weapon = WeaponProfile("Flamer", attacks=6, skill=4, strength=4, damage="1",
                           abilities=[TORRENT], range=12)
    text = dumps_weapon(weapon, indent=2)

    assert json.loads(text)['abilities'] == [{'type': 'torrent'}]
    assert loads_weapon(text) == weapon


def test_melee_weapon_has_no_range():
    record = weapon_to_dict(WeaponProfile.chainsword())
    assert record['range'] is None
    assert weapon_from_dict(record).range is None


def test_unit_record():
    unit = UnitProfile.terminator()
    record = unit_to_dict(unit)

    assert record['invuln_save'] == 4
    assert record['feel_no_pain'] is None
    assert unit_from_dict(record) == unit
    assert loads_unit(dumps_unit(unit)) == unit
    assert unit_from_dict({'name': 'Grot', 'toughness': 2, 'save': 7, 'wounds': 1}).model_count == 1


@pytest.mark.parametrize("text", ["{not json", "[]", '{"name": "Bolter"}',
                                  '{"name": "X", "attacks": "2", "skill": 3, "strength": 4}'])
def test_bad_weapon_json(text):
    with pytest.raises(ProfileDecodeError):
        loads_weapon(text)


def test_decode_error_is_a_value_error():
    with pytest.raises(ValueError) as info:
        unit_from_dict({'name': 'Nobody'})
    assert info.value.record == {'name': 'Nobody'}


def test_combat_result_record(bolt_rifle, space_marine):
    result = combat_result(bolt_rifle, space_marine)
    record = combat_result_to_dict(result)

    assert record['expected_hits'] == pytest.approx(4 / 3)
    assert combat_result_from_dict(json.loads(json.dumps(record))) == result
    with pytest.raises(ProfileDecodeError):
        combat_result_from_dict({'expected_hits': 1.0})


def test_simulation_result_record(bolt_rifle, space_marine, fast_config):
    result = run_simulation(bolt_rifle, space_marine, 300, config=fast_config)

    record = simulation_result_to_dict(result)
    assert record['iterations'] == 300
    assert 'damage_results' not in record
    assert sum(b['count'] for b in record['damage_histogram']) == 300
    json.dumps(record)

    with_samples = simulation_result_to_dict(result, include_samples=True)
    assert len(with_samples['damage_results']) == 300
    json.dumps(with_samples)
