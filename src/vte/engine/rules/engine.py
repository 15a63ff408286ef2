from __future__ import annotations

import logging
from typing import Any
from typing import Iterable
from typing import Mapping

import pydantic
from packaging import version

from .. import models
from .character import Character
from .registry import TemplateRegistry
from .registry import TraitRegistry
from .registry import build_path_registry

logger = logging.getLogger(__name__)


class Engine:
    """Owns a ruleset's registries and creates characters against them.

    The registries are built eagerly, so a ruleset with inconsistent data
    fails here rather than when some character first touches the bad trait.
    """

    def __init__(self, ruleset: models.Ruleset):
        self._ruleset = ruleset
        self.traits = TraitRegistry(
            ruleset.traits,
            chunk_delimiter=ruleset.chunk_delimiter,
            mini_chunk_delimiter=ruleset.mini_chunk_delimiter,
            power_level_glyph=ruleset.power_level_glyph,
        )
        self.templates = TemplateRegistry(
            ruleset.templates, self.traits, ruleset.template_traits
        )
        self.paths: dict[str, models.MoralPath] = build_path_registry(ruleset.paths)
        logger.info(
            f"Ruleset {ruleset.id} v{ruleset.version}: {len(self.traits)} traits, "
            f"{len(self.templates)} templates, {len(self.paths)} moral paths"
        )

    @property
    def ruleset(self) -> models.Ruleset:
        return self._ruleset

    def new_character(
        self,
        id: int = 0,
        templates: Iterable[models.TemplateKey] | None = None,
        values: Mapping[int, Any] | None = None,
        added_traits: Iterable[int] | None = None,
    ) -> Character:
        return Character(
            self,
            id=id,
            templates=templates,
            values=values,
            added_traits=added_traits,
        )

    def load_character(self, data: dict | models.CharacterModel) -> Character:
        """Load the given character data with this ruleset.

        Raises:
            ValueError: if the character is not compatible with this ruleset.
                By default, characters are only compatible with the ruleset they
                were originally written with.
        """
        if isinstance(data, models.CharacterModel):
            data = data.model_dump()
        updated_data = self.update_data(data)
        model = pydantic.TypeAdapter(models.CharacterModel).validate_python(
            updated_data
        )
        return self.new_character(
            id=model.id,
            templates=model.templates,
            values=model.values,
            added_traits=model.added_traits,
        )

    def update_data(self, data: dict) -> dict:
        """If the data is from a different but compatible rules version, update it.

        The default behavior is to reject any character data made with a different
        ruleset ID, and assume newer versions are backward (but not forward).

        Raises:
            ValueError: if the character is not compatible with this ruleset.
        """
        if data["ruleset_id"] != self.ruleset.id:
            raise ValueError(
                f'Can not load character id={data.get("id")}, '
                f'ruleset={data["ruleset_id"]} with ruleset {self.ruleset.id}'
            )
        if version.parse(self.ruleset.version) < version.parse(data["ruleset_version"]):
            raise ValueError(
                f'Can not load character id={data.get("id")}, '
                f'ruleset={data["ruleset_id"]} v{data["ruleset_version"]} '
                f"with ruleset {self.ruleset.id} v{self.ruleset.version}"
            )
        return data
