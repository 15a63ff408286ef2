from __future__ import annotations

import logging

import pytest

from vte.engine import models
from vte.engine.errors import ConfigurationError
from vte.engine.errors import EvaluationError
from vte.engine.rules.character import Character
from vte.engine.rules.engine import Engine

TemplateKey = models.TemplateKey


def _ids(character: Character) -> set[int]:
    return {t.trait_id for t in character.traits}


def test_new_character_is_mortal(character: Character, engine: Engine):
    assert character.template_keys == {TemplateKey.MORTAL}
    assert _ids(character) == set(engine.templates[TemplateKey.MORTAL].trait_ids)
    assert character.get_trait(6) is None  # Clan


def test_add_template_replaces_mortal(character: Character):
    character.add_template(TemplateKey.KINDRED)
    assert character.template_keys == {TemplateKey.KINDRED}
    assert character.get_trait(6) is not None
    assert character.get_trait(20) is not None
    assert character.get_trait(104) is None  # True Faith
    # Mortal is the baseline, so asking for it again changes nothing.
    character.add_template(TemplateKey.MORTAL)
    assert character.template_keys == {TemplateKey.KINDRED}


def test_mortal_then_kindred(engine: Engine):
    character = engine.new_character(templates=[TemplateKey.MORTAL])
    character.add_template(TemplateKey.KINDRED)
    assert TemplateKey.MORTAL not in character.template_keys
    # Mortal-only traits go along with the Mortal template.
    assert _ids(character) == set(engine.templates[TemplateKey.KINDRED].trait_ids)
    assert character.get_trait(104) is None


def test_new_kindred_matches_mortal_then_kindred(engine: Engine):
    direct = engine.new_character(templates=[TemplateKey.KINDRED])
    converted = engine.new_character()
    converted.add_template(TemplateKey.KINDRED)
    assert _ids(direct) == _ids(converted)


def test_remove_template(character: Character, engine: Engine):
    character.add_template(TemplateKey.KINDRED)
    character.get_trait(20).try_assign(4)
    character.remove_template(TemplateKey.KINDRED)

    assert character.template_keys == {TemplateKey.MORTAL}
    assert _ids(character) == set(engine.templates[TemplateKey.MORTAL].trait_ids)
    # Mortal traits keep their values, and Mortal-only ones come back.
    assert character.get_trait(20).expanded_value == 4
    assert character.get_trait(104) is not None


def test_remove_one_of_two_templates(character: Character):
    character.add_template(TemplateKey.KINDRED)
    character.add_template(TemplateKey.KALEBITE)
    character.remove_template(TemplateKey.KINDRED)
    assert character.template_keys == {TemplateKey.KALEBITE}
    assert character.get_trait(9) is not None  # Brood
    assert character.get_trait(6) is None  # Clan
    assert character.get_trait(40) is None  # Animalism
    assert character.get_trait(20) is not None  # Mortal floor
    assert character.get_subtrait_group(40) == []


def test_remove_template_keeps_mortal_floor(make_engine):
    engine = make_engine(
        [
            {"id": 1, "name": "True Faith"},
            {"id": 2, "name": "Strength"},
            {"id": 3, "name": "Clan"},
            {"id": 4, "name": "Seeming"},
        ],
        templates=[
            {"key": "mortal", "name": "Mortal", "traits": [1, 2]},
            {"key": "kindred", "name": "Kindred", "traits": [2, 3]},
            {"key": "fae", "name": "Fae", "traits": [2, 4]},
        ],
    )
    character = engine.new_character()
    character.add_template(TemplateKey.KINDRED)
    assert _ids(character) == {2, 3}

    character.add_template(TemplateKey.FAE)
    character.add_trait(1)
    character.remove_template(TemplateKey.FAE)
    assert _ids(character) == {1, 2, 3}

    character.remove_template(TemplateKey.KINDRED)
    assert character.template_keys == {TemplateKey.MORTAL}
    assert _ids(character) == {1, 2}


def test_remove_mortal_is_ignored(character: Character):
    before = _ids(character)
    character.remove_template(TemplateKey.MORTAL)
    character.remove_template(TemplateKey.FAE)
    assert character.template_keys == {TemplateKey.MORTAL}
    assert _ids(character) == before


def test_unknown_template(make_engine):
    character = make_engine([{"id": 1, "name": "Name"}]).new_character()
    with pytest.raises(ValueError):
        character.add_template(TemplateKey.KINDRED)


def test_add_unknown_trait(character: Character):
    with pytest.raises(ValueError):
        character.add_trait(9999)


def test_count_subtraits(make_engine):
    """True, positive integers and non-empty strings count."""
    values = ["0", "2", "", "x", "True", "False"]
    engine = make_engine(
        [{"id": 1, "name": "Gift", "rule": "MAINTRAIT_COUNT"}]
        + [
            {"id": 10 + i, "name": f"Rite {i}", "rule": "SUBTRAIT|Gift", "default": v}
            for i, v in enumerate(values)
        ]
    )
    character = engine.new_character()
    assert character.get_trait(1).expanded_value == 3
    assert character.count_subtraits([10, 11, 12, 13, 14, 15]) == 3
    assert character.count_subtraits([11, 999]) == 1


def test_max_subtrait(make_engine):
    engine = make_engine(
        [{"id": 1, "name": "Magic", "rule": "MAINTRAIT_MAX"}]
        + [
            {"id": 10 + i, "name": f"Path {i}", "rule": "SUBTRAIT|Magic", "default": n}
            for i, n in enumerate([1, 5, 3])
        ]
    )
    character = engine.new_character()
    assert character.get_trait(1).expanded_value == 5
    assert character.get_max_subtrait([10, 12]) == 3
    assert character.get_max_subtrait([]) == 0

    character.get_trait(11).try_assign("many")
    with pytest.raises(EvaluationError):
        character.get_trait(1).expanded_value


def test_get_variable(character: Character):
    character.get_trait(22).try_assign(3)
    assert character.get_variable("STAMINA") == 3
    assert character.get_variable("-STAMINA") == -3
    assert character.get_variable("12") == 12
    assert character.get_variable("-4") == -4
    assert character.get_variable(7) == 7
    assert character.get_variable("TRUE") is True
    assert character.get_variable("") == ""
    assert character.get_variable("TRAITMAX") == 5
    assert character.get_variable("-TRAITMAX") == -5
    # Not a variable; plain text is a value in its own right.
    assert character.get_variable("Brujah") == "Brujah"
    assert character.get_int_variable("Brujah") is None
    assert character.get_int_variable(None) is None


def test_string_variables(character: Character):
    assert character.get_variable("PATHNAME") == "Humanity"
    assert character.get_variable("-PATHNAME") == "-Humanity"


def test_duplicate_variable(make_engine):
    engine = make_engine(
        [
            {"id": 1, "name": "Stamina", "rule": "IS_VARIABLE|STAMINA"},
            {"id": 2, "name": "Fortitude", "rule": "IS_VARIABLE|STAMINA"},
        ]
    )
    with pytest.raises(ConfigurationError):
        engine.new_character()


def test_reserved_and_numeric_variables_are_refused(make_engine):
    engine = make_engine(
        [
            {"id": 1, "name": "Max", "rule": "IS_VARIABLE|TRAITMAX", "default": 9},
            {"id": 2, "name": "Twelve", "rule": "IS_VARIABLE|12", "default": 9},
        ]
    )
    character = engine.new_character()
    assert character.variables == {}
    assert character.get_variable("TRAITMAX") == 5
    assert character.get_variable("12") == 12


def test_remove_trait_purges_registrations(character: Character):
    character.add_template(TemplateKey.KINDRED)
    assert character.variables["STAMINA"] == 22
    assert character.get_subtrait_group(40) == [50, 51, 52, 53]

    character.remove_trait(22)
    assert "STAMINA" not in character.variables
    with pytest.raises(EvaluationError):
        character.get_trait(81).expanded_value  # Health needs Stamina

    character.remove_trait(50)
    assert character.get_subtrait_group(40) == [51, 52, 53]
    character.remove_trait(50)  # No-op.


def test_circular_variables(make_engine):
    engine = make_engine(
        [
            {"id": 1, "name": "Head", "rule": "IS_VARIABLE|HEAD", "default": "TAIL"},
            {"id": 2, "name": "Tail", "rule": "IS_VARIABLE|TAIL", "default": "HEAD"},
        ]
    )
    character = engine.new_character()
    with pytest.raises(EvaluationError):
        character.get_variable("HEAD")
    # The guard resets, so the next lookup fails the same way.
    with pytest.raises(EvaluationError):
        character.get_variable("TAIL")


def test_values_at_construction(engine: Engine, caplog):
    with caplog.at_level(logging.WARNING):
        character = engine.new_character(
            id=7, values={0: "Jessamine", 20: "3", 22: "9", 6: "Brujah"}
        )
    assert character.id == 7
    assert character.name == "Jessamine"
    assert character.get_trait(20).expanded_value == 3
    # Out of range, so the default stands.
    assert character.get_trait(22).expanded_value == 1
    # Clan is a Kindred trait.
    assert "trait 6" in caplog.text


def test_find_trait(character: Character):
    assert character.find_trait("Generation") is None
    character.add_template(TemplateKey.KINDRED)
    assert character.find_trait("Generation").trait_id == 7
    assert character.find_trait("Lasombra") is None


def test_get_trait_value(character: Character):
    assert character.get_trait_value(20) == 1
    assert character.get_trait_value(6) is None
    assert character.get_trait_value(6, "n/a") == "n/a"
    assert character.get_trait_value(None, 0) == 0


def test_get_traits(character: Character):
    attributes = list(character.get_traits(category=models.TraitCategory.ATTRIBUTE))
    assert [t.trait_id for t in attributes] == list(range(20, 29))

    physical = character.get_traits(
        category=models.TraitCategory.SKILL,
        subcategory=models.TraitSubCategory.PHYSICAL,
    )
    assert [t.name for t in physical] == ["Athletics", "Brawl", "Firearms", "Stealth"]

    character.get_trait(71).try_assign(1)
    visible_backgrounds = character.get_traits(
        category=models.TraitCategory.BACKGROUND, visible=models.Visibility.VISIBLE
    )
    assert [t.name for t in visible_backgrounds] == ["Contacts"]


def test_name(character: Character):
    assert character.name == ""
    character.find_trait("Name").try_assign("Jessamine")
    assert character.name == "Jessamine"


@pytest.mark.parametrize(
    "templates,title",
    [
        ([], "Vampire: The Everything"),
        ([TemplateKey.KINDRED], "Vampire: The Masquerade"),
        ([TemplateKey.KALEBITE], "Werewolf: The Hunt"),
        ([TemplateKey.FAE], "Changeling: The Journey"),
        ([TemplateKey.MAGE], "Mage: The Illumination"),
        ([TemplateKey.KINDRED, TemplateKey.FAE], "Vampire: The Everything"),
    ],
)
def test_game_title(engine: Engine, templates, title):
    assert engine.new_character(templates=templates).game_title == title


def test_moral_path(character: Character, engine: Engine):
    assert character.moral_path == engine.paths["Humanity"]
    character.find_trait("Path Name").try_assign("Assamia")
    assert character.moral_path.bearing == "Resolve"
    assert character.moral_path.resolve_penalty == -1


def test_repr(character: Character):
    assert repr(character).startswith("Character(0, templates=[MORTAL], traits=")


def test_added_traits_survive_superseding_mortal(make_engine):
    engine = make_engine(
        [
            {"id": 1, "name": "Strength"},
            {"id": 2, "name": "Allies", "type": "integer"},
            {"id": 3, "name": "Clan"},
            {"id": 4, "name": "True Faith"},
        ],
        templates=[
            {"key": "mortal", "name": "Mortal", "traits": [1, 4]},
            {"key": "kindred", "name": "Kindred", "traits": [1, 3]},
        ],
    )
    character = engine.new_character()
    character.add_trait(2)
    assert character.get_trait(2).try_assign(3)

    character.add_template(TemplateKey.KINDRED)
    assert _ids(character) == {1, 2, 3}
    assert character.get_trait(2).expanded_value == 3


def test_main_trait_follows_subtrait_group(character: Character):
    character.add_template(TemplateKey.KINDRED)
    animalism = character.get_trait(40)
    character.get_trait(50).try_assign(True)
    character.get_trait(51).try_assign(True)
    assert animalism.expanded_value == 2

    character.remove_trait(51)
    assert character.get_subtrait_group(40) == [50, 52, 53]
    assert animalism.expanded_value == 1
