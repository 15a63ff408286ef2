"""Read-only catalogs of trait, template and moral path definitions.

These are built once from row sets (usually by the loader) and shared by
every character. Building them is where static data is checked: any
inconsistency raises ConfigurationError.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Iterable
from typing import Iterator
from typing import Mapping

from .. import models
from .. import utils
from ..errors import ConfigurationError
from . import directives

logger = logging.getLogger(__name__)


class TraitRegistry(Mapping[int, models.TraitDefinition]):
    """Trait definitions by ID, with their rules parsed and cross-referenced.

    While building, the registry:

    * parses each definition's rule into directives;
    * records every main trait (MAINTRAIT_MAX or MAINTRAIT_COUNT) under its
      annotated group name, or its own name if it has none;
    * resolves each SUBTRAIT parent to an ID;
    * computes each main trait's `subtraits` from those back-references;
    * fills in power levels that are implied by the trait's name.
    """

    def __init__(
        self,
        definitions: Iterable[models.TraitDefinition],
        chunk_delimiter: str = "\n",
        mini_chunk_delimiter: str = "|",
        power_level_glyph: str = "•",
    ):
        raw: dict[int, models.TraitDefinition] = {}
        for definition in definitions:
            if definition.id in raw:
                raise ConfigurationError(
                    f"Trait ID {definition.id} is used by both "
                    f"{raw[definition.id].name!r} and {definition.name!r}"
                )
            raw[definition.id] = definition

        parsed: dict[int, list[directives.Directive]] = {}
        for trait_id, definition in raw.items():
            try:
                parsed[trait_id] = directives.parse_rule(
                    definition.rule, chunk_delimiter, mini_chunk_delimiter
                )
            except ConfigurationError as exc:
                raise ConfigurationError(
                    f"Bad rule on trait {trait_id} ({definition.name}): {exc}"
                ) from exc

        self._main_traits = self._map_main_traits(raw, parsed)

        children: defaultdict[int, set[int]] = defaultdict(set)
        for trait_id, directive_list in parsed.items():
            for index, directive in enumerate(directive_list):
                match directive:
                    case directives.SubTrait(parent=parent):
                        parent_id = self._resolve_parent(raw, trait_id, parent)
                        directive_list[index] = directive.model_copy(
                            update={"parent": parent_id}
                        )
                        children[parent_id].add(trait_id)
                    case directives.PowerLevel(level=None):
                        directive_list[index] = directive.model_copy(
                            update={
                                "level": raw[trait_id].name.count(power_level_glyph)
                            }
                        )

        for trait_id, definition in raw.items():
            undeclared = set(definition.subtraits) - children[trait_id]
            if undeclared:
                raise ConfigurationError(
                    f"Trait {trait_id} ({definition.name}) lists subtraits "
                    f"{sorted(undeclared)} that don't name it as their main trait"
                )

        self._definitions: dict[int, models.TraitDefinition] = {
            trait_id: raw[trait_id].model_copy(
                update={
                    "directives": tuple(parsed[trait_id]),
                    "subtraits": tuple(sorted(children[trait_id])),
                }
            )
            for trait_id in sorted(raw)
        }

        self._ids_by_name: defaultdict[str, list[int]] = defaultdict(list)
        for trait_id, definition in self._definitions.items():
            self._ids_by_name[definition.name].append(trait_id)
        logger.debug(
            f"Registered {len(self._definitions)} traits, "
            f"{len(self._main_traits)} of them main traits"
        )

    @staticmethod
    def _map_main_traits(
        raw: Mapping[int, models.TraitDefinition],
        parsed: Mapping[int, list[directives.Directive]],
    ) -> dict[str, int]:
        main_traits: dict[str, int] = {}
        for trait_id, directive_list in parsed.items():
            for directive in directive_list:
                match directive:
                    case (
                        directives.MainTraitMax(group=group)
                        | directives.MainTraitCount(group=group)
                    ):
                        key = group or raw[trait_id].name
                        existing = main_traits.setdefault(key, trait_id)
                        if existing != trait_id:
                            raise ConfigurationError(
                                f"Main trait name {key!r} is claimed by both "
                                f"trait {existing} and trait {trait_id}"
                            )
        return main_traits

    def _resolve_parent(
        self,
        raw: Mapping[int, models.TraitDefinition],
        trait_id: int,
        parent: int | str,
    ) -> int:
        if isinstance(parent, str):
            if parent in self._main_traits:
                return self._main_traits[parent]
            parent = utils.try_int(parent, parent)
        if isinstance(parent, int) and parent in raw:
            return parent
        # Usually the parent is missing its MAINTRAIT_* directive.
        raise ConfigurationError(
            f"Trait {trait_id} ({raw[trait_id].name}) names unknown "
            f"main trait {parent!r}"
        )

    def __getitem__(self, trait_id: int) -> models.TraitDefinition:
        return self._definitions[trait_id]

    def __iter__(self) -> Iterator[int]:
        return iter(self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)

    @property
    def main_traits(self) -> Mapping[str, int]:
        """Main trait IDs by the name subtraits use to refer to them."""
        return dict(self._main_traits)

    def ids_for_name(self, name: str) -> list[int]:
        return list(self._ids_by_name.get(name, ()))

    def subtrait_closure(self, trait_ids: Iterable[int]) -> list[int]:
        """The given traits plus all of their subtraits, transitively, sorted."""
        found = set(trait_ids)
        frontier = set(found)
        while frontier:
            discovered: set[int] = set()
            for trait_id in frontier:
                if definition := self._definitions.get(trait_id):
                    discovered.update(definition.subtraits)
            frontier = discovered - found
            found |= frontier
        return sorted(found)


class TemplateRegistry(Mapping[models.TemplateKey, models.TemplateDefinition]):
    """Template definitions by key, with every trait ID resolved.

    Trait entries in a template may be IDs or names; a name expands to every
    trait with that name. Pair rows from a template-to-trait join table are
    merged in. Each template's final trait list includes the subtraits of its
    traits, all the way down.
    """

    def __init__(
        self,
        definitions: Iterable[models.TemplateDefinition],
        traits: TraitRegistry,
        pairs: Iterable[models.TemplateTraitRow] = (),
    ):
        by_key: dict[models.TemplateKey, models.TemplateDefinition] = {}
        for definition in definitions:
            if definition.key in by_key:
                raise ConfigurationError(
                    f"Template {definition.key.name} defined twice"
                )
            by_key[definition.key] = definition

        extra: defaultdict[models.TemplateKey, list[int | str]] = defaultdict(list)
        for pair in pairs:
            extra[pair.template].append(pair.trait)
            if pair.template not in by_key:
                by_key[pair.template] = models.TemplateDefinition(
                    key=pair.template, name=pair.template.name.title()
                )

        self._definitions: dict[models.TemplateKey, models.TemplateDefinition] = {}
        for key in sorted(by_key):
            definition = by_key[key]
            declared: set[int] = set()
            for entry in list(definition.traits) + extra[key]:
                declared.update(self._resolve_entry(traits, definition, entry))
            self._definitions[key] = definition.model_copy(
                update={"trait_ids": tuple(traits.subtrait_closure(declared))}
            )

    @staticmethod
    def _resolve_entry(
        traits: TraitRegistry, definition: models.TemplateDefinition, entry: int | str
    ) -> list[int]:
        if isinstance(entry, int):
            if entry in traits:
                return [entry]
        elif ids := traits.ids_for_name(entry):
            return ids
        elif (trait_id := utils.try_int(entry)) is not None and trait_id in traits:
            return [trait_id]
        raise ConfigurationError(
            f"Template {definition.name} references unknown trait {entry!r}"
        )

    def __getitem__(self, key: models.TemplateKey) -> models.TemplateDefinition:
        return self._definitions[key]

    def __iter__(self) -> Iterator[models.TemplateKey]:
        return iter(self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)


def build_path_registry(
    paths: Iterable[models.MoralPath],
) -> dict[str, models.MoralPath]:
    """Moral paths by name. Names must be unique."""
    registry: dict[str, models.MoralPath] = {}
    for path in paths:
        if path.name in registry:
            raise ConfigurationError(f"Moral path {path.name!r} defined twice")
        registry[path.name] = path
    return registry
