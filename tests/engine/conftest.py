"""Shared fixtures for engine tests."""

from __future__ import annotations

import pytest

from vte.engine import loader
from vte.engine import models
from vte.engine.rules.character import Character
from vte.engine.rules.engine import Engine

CORE_RESOURCE = "$vte.rulesets.core"


@pytest.fixture
def engine() -> Engine:
    engine = loader.load_ruleset(CORE_RESOURCE).engine
    assert engine.ruleset.bad_defs == []
    return engine


@pytest.fixture
def character(engine: Engine) -> Character:
    return engine.new_character()


@pytest.fixture
def make_engine():
    """Builds an engine from a handful of trait rows.

    Every trait goes into the Mortal template unless templates are given.
    """

    def _make_engine(traits, templates=None, **ruleset_fields) -> Engine:
        definitions = [models.TraitDefinition.model_validate(t) for t in traits]
        if templates is None:
            templates = [
                models.TemplateDefinition(
                    key=models.TemplateKey.MORTAL,
                    name="Mortal",
                    traits=[d.id for d in definitions],
                )
            ]
        ruleset = models.Ruleset(
            id="test",
            name="Test Ruleset",
            version="1.0",
            traits=definitions,
            templates=templates,
            **ruleset_fields,
        )
        return Engine(ruleset)

    return _make_engine
