from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING
from typing import Any
from typing import Iterable
from typing import Iterator
from typing import Mapping

from .. import models
from .. import utils
from ..errors import ConfigurationError
from ..errors import EvaluationError
from .trait import Trait

if TYPE_CHECKING:
    from .engine import Engine

logger = logging.getLogger(__name__)

TemplateKey = models.TemplateKey


class Character:
    """The traits of one character, and the registries they consult.

    Mortal is the baseline template. A character with no other template is
    Mortal. Adding any other template supersedes Mortal, dropping the Mortal
    traits the new template doesn't carry; traits added directly stay.
    Removing a template never takes away Mortal's traits, and removing the
    last one makes the character Mortal again.

    The character is not thread safe. Callers sharing one between threads
    must serialize access themselves.
    """

    engine: Engine
    id: int

    def __init__(
        self,
        engine: Engine,
        id: int = 0,
        templates: Iterable[TemplateKey] | None = None,
        values: Mapping[int, Any] | None = None,
        added_traits: Iterable[int] | None = None,
    ):
        self.engine = engine
        self.id = id
        self._template_keys: set[TemplateKey] = set()
        self._traits: dict[int, Trait] = {}
        self._variables: dict[str, int] = {}
        self._subtrait_groups: dict[int, set[int]] = {}
        self._resolving: set[str] = set()

        for key in list(templates or ()) or [TemplateKey.MORTAL]:
            self.add_template(key)
        for trait_id in added_traits or ():
            if trait_id in self.engine.traits:
                self.add_trait(trait_id)
            else:
                logger.warning(
                    f"Character {id} has unknown trait {trait_id}; ignoring it"
                )

        for trait_id, value in (values or {}).items():
            if trait := self._traits.get(trait_id):
                trait.try_assign(value)
            else:
                logger.warning(
                    f"Character {id} has a value for trait {trait_id}, "
                    "which it doesn't have; ignoring it"
                )

    @property
    def ruleset(self) -> models.Ruleset:
        return self.engine.ruleset

    @property
    def template_keys(self) -> frozenset[TemplateKey]:
        return frozenset(self._template_keys)

    @property
    def traits(self) -> list[Trait]:
        """All traits, ordered by trait ID."""
        return [self._traits[trait_id] for trait_id in sorted(self._traits)]

    @property
    def variables(self) -> Mapping[str, int]:
        """Registered variable names and the IDs of the traits they point to."""
        return dict(self._variables)

    def get_subtrait_group(self, main_trait_id: int) -> list[int]:
        return sorted(self._subtrait_groups.get(main_trait_id, ()))

    # Templates

    def add_template(self, key: TemplateKey) -> None:
        if key not in self.engine.templates:
            raise ValueError(f"Unrecognized template {key!r}")
        if key in self._template_keys:
            return
        if key == TemplateKey.MORTAL and self._template_keys:
            return
        self._template_keys.add(key)
        for trait_id in self.engine.templates[key].trait_ids:
            self.add_trait(trait_id)
        if key != TemplateKey.MORTAL and TemplateKey.MORTAL in self._template_keys:
            self._template_keys.remove(TemplateKey.MORTAL)
            granted = self._granted_trait_ids(self._template_keys)
            for trait_id in self._granted_trait_ids([TemplateKey.MORTAL]) - granted:
                self.remove_trait(trait_id)
        logger.debug(f"Character {self.id}: added template {key.name}")

    def remove_template(self, key: TemplateKey) -> None:
        if key == TemplateKey.MORTAL or key not in self._template_keys:
            return
        self._template_keys.remove(key)
        keep = self._granted_trait_ids(self._template_keys | {TemplateKey.MORTAL})
        for trait_id in [t for t in self._traits if t not in keep]:
            self.remove_trait(trait_id)
        if not self._template_keys and TemplateKey.MORTAL in self.engine.templates:
            self.add_template(TemplateKey.MORTAL)
        logger.debug(f"Character {self.id}: removed template {key.name}")

    def _granted_trait_ids(self, keys: Iterable[TemplateKey]) -> set[int]:
        granted: set[int] = set()
        for key in keys:
            if template := self.engine.templates.get(key):
                granted.update(template.trait_ids)
        return granted

    # Traits

    def add_trait(self, trait_id: int) -> None:
        if trait_id in self._traits:
            return
        if trait_id not in self.engine.traits:
            raise ValueError(f"Unrecognized trait ID {trait_id}")
        try:
            self._traits[trait_id] = Trait(self, self.engine.traits[trait_id])
        except Exception:
            # Don't leave half-registered variables or subtraits behind.
            self._purge(trait_id)
            raise

    def remove_trait(self, trait_id: int) -> None:
        if trait_id not in self._traits:
            return
        del self._traits[trait_id]
        self._purge(trait_id)

    def _purge(self, trait_id: int) -> None:
        for name in [n for n, t in self._variables.items() if t == trait_id]:
            del self._variables[name]
        for main_trait_id in list(self._subtrait_groups):
            group = self._subtrait_groups[main_trait_id]
            group.discard(trait_id)
            if not group:
                del self._subtrait_groups[main_trait_id]

    def get_trait(self, trait_id: int | None) -> Trait | None:
        if trait_id is None:
            return None
        return self._traits.get(trait_id)

    def get_trait_value(self, trait_id: int | None, default: Any = None) -> Any:
        if trait := self.get_trait(trait_id):
            return trait.expanded_value
        return default

    def get_traits(
        self,
        category: models.TraitCategory | None = None,
        subcategory: models.TraitSubCategory | None = None,
        visible: models.Visibility | None = None,
    ) -> Iterator[Trait]:
        """Traits matching all of the given filters, in trait ID order."""
        for trait in self.traits:
            if category is not None and trait.category != category:
                continue
            if subcategory is not None and trait.subcategory != subcategory:
                continue
            if visible is not None and trait.visible != visible:
                continue
            yield trait

    def find_trait(self, name: str) -> Trait | None:
        """The lowest-numbered trait on this character with the given name."""
        for trait_id in self.engine.traits.ids_for_name(name):
            if trait := self._traits.get(trait_id):
                return trait
        return None

    # Registries

    def register_variable(self, name: str, trait: Trait) -> bool:
        """Makes `name` refer to the given trait's value.

        Empty, numeric and reserved names are refused (returns False).

        Raises:
            ConfigurationError: if the name is already registered.
        """
        if (
            not name
            or utils.try_int(name) is not None
            or name in models.RESERVED_VARIABLES
        ):
            logger.debug(f"Refusing to register variable {name!r} for {trait.name}")
            return False
        if name in self._variables:
            raise ConfigurationError(
                f"Variable {name!r} is already registered to trait "
                f"{self._variables[name]}; {trait.name} can't use it too"
            )
        self._variables[name] = trait.trait_id
        return True

    def register_subtrait(self, main_trait_id: int, subtrait: Trait) -> None:
        self._subtrait_groups.setdefault(main_trait_id, set()).add(subtrait.trait_id)

    # Variables

    def get_variable(self, value: Any) -> Any:
        """Expands a variable reference into a value.

        Integers, booleans and empty strings are returned as-is. Numeric
        strings become ints and "true"/"false" become bools. A leading "-"
        negates the result. Reserved names are computed; registered names
        expand to their trait's value, recursively. Anything else is
        returned unchanged, since plain strings are valid trait values too.

        Raises:
            EvaluationError: if variables refer to each other in a loop.
        """
        if utils.is_int(value) or isinstance(value, bool):
            return value
        if (name := utils.try_str(value)) is None or name == "":
            return value
        if (int_value := utils.try_int(name)) is not None:
            return int_value
        if (bool_value := utils.parse_bool(name)) is not None:
            return bool_value

        multiplier = 1
        if name.startswith("-"):
            multiplier = -1
            name = name[1:]

        if name in models.RESERVED_VARIABLES:
            expanded = self._get_reserved_variable(name)
        elif name in self._variables:
            if name in self._resolving:
                raise EvaluationError(f"Variable {name!r} refers to itself")
            self._resolving.add(name)
            try:
                expanded = self.get_variable(
                    self._traits[self._variables[name]].expanded_value
                )
            finally:
                self._resolving.discard(name)
        else:
            return value

        if (int_value := utils.try_int(expanded)) is not None:
            return multiplier * int_value
        if isinstance(expanded, str) and multiplier == -1:
            return "-" + expanded
        return expanded

    def get_int_variable(self, value: Any) -> int | None:
        """Like get_variable, but returns None unless the result is an int."""
        if value is None:
            return None
        result = self.get_variable(value)
        return result if utils.is_int(result) else None

    def _get_reserved_variable(self, name: str) -> int:
        match name:
            case "RESOLVEPENALTY":
                virtues = self.find_trait(self.ruleset.virtues_trait)
                text = utils.try_str(virtues.expanded_value, "") if virtues else ""
                return models.resolve_penalty(text)
            case "EFFECTIVEHUMANITY":
                score_trait = self.find_trait(self.ruleset.path_score_trait)
                score = score_trait.expanded_value if score_trait else 0
                if not utils.is_int(score):
                    score = 0
                match self._get_reserved_variable("RESOLVEPENALTY"):
                    case 0:
                        return score
                    case -1:
                        return math.ceil(score / 2)
                    case _:
                        return 1 if score > 0 else 0
        return self.ruleset.reserved_values[name]

    def count_subtraits(self, subtrait_ids: Iterable[int]) -> int:
        """How many of the given subtraits are selected.

        True, positive integers and non-empty strings count. IDs the
        character doesn't have are skipped.
        """
        count = 0
        for trait_id in subtrait_ids:
            if not (trait := self._traits.get(trait_id)):
                continue
            value = trait.expanded_value
            truthy = utils.is_truthy(value)
            if truthy is None:
                raise EvaluationError(
                    f"Can't count {trait.name}: unrecognized value {value!r}"
                )
            if truthy:
                count += 1
        return count

    def get_max_subtrait(self, subtrait_ids: Iterable[int]) -> int:
        """The highest value among the given subtraits, or 0 if there are none.

        Raises:
            EvaluationError: if a subtrait's value isn't an integer.
        """
        values: list[int] = []
        for trait_id in subtrait_ids:
            if not (trait := self._traits.get(trait_id)):
                continue
            value = utils.try_int(trait.expanded_value)
            if value is None:
                raise EvaluationError(
                    f"{trait.name} has non-numeric value {trait.expanded_value!r}"
                )
            values.append(value)
        return max(values, default=0)

    # Summary properties

    @property
    def name(self) -> str:
        trait = self.find_trait(self.ruleset.name_trait)
        return utils.try_str(trait.expanded_value, "") if trait else ""

    @property
    def game_title(self) -> str:
        if len(self._template_keys) == 1:
            (key,) = self._template_keys
            return self.ruleset.game_titles.get(key, self.ruleset.default_title)
        return self.ruleset.default_title

    @property
    def moral_path(self) -> models.MoralPath | None:
        trait = self.find_trait(self.ruleset.path_name_trait)
        if not trait:
            return None
        return self.engine.paths.get(utils.try_str(trait.expanded_value, ""))

    def dump_model(self) -> models.CharacterModel:
        return models.CharacterModel(
            id=self.id,
            ruleset_id=self.ruleset.id,
            ruleset_version=self.ruleset.version,
            templates=sorted(self._template_keys),
            added_traits=sorted(
                set(self._traits) - self._granted_trait_ids(self._template_keys)
            ),
            values={
                t.trait_id: t.raw_value
                for t in self.traits
                if t.derivation.assignable
            },
        )

    def dump_dict(self) -> dict:
        return self.dump_model().dump(as_json=False)

    def __repr__(self) -> str:
        keys = ", ".join(k.name for k in sorted(self._template_keys))
        return f"Character({self.id}, templates=[{keys}], traits={len(self._traits)})"
