from __future__ import annotations

import enum
import re
from functools import cached_property
from typing import TYPE_CHECKING
from typing import Any
from typing import TypeAlias

from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_validator

from . import utils
from .base import BaseModel
from .rules.directives import Directive

if TYPE_CHECKING:
    from .rules.engine import Engine

_NAME_NOISE = re.compile(r"[\s_-]+")


class LenientIntEnum(enum.IntEnum):
    """An IntEnum that can be parsed from its code or (almost) its name.

    Data files may say `5`, `"5"`, `SPECIFIC_POWER`, `specific-power` or
    `SpecificPower` and all of them mean the same member.
    """

    @classmethod
    def parse(cls, value: Any):
        if isinstance(value, cls):
            return value
        if (code := utils.try_int(value)) is not None:
            return cls(code)
        if isinstance(value, str):
            wanted = _NAME_NOISE.sub("", value).lower()
            for member in cls:
                if member.name.replace("_", "").lower() == wanted:
                    return member
        raise ValueError(f"{value!r} is not a valid {cls.__name__}")


class TemplateKey(LenientIntEnum):
    MORTAL = 0
    KINDRED = 1
    KALEBITE = 2
    FAE = 3
    MAGE = 4


class TraitType(LenientIntEnum):
    """Governs how a trait is validated and rendered, not how it is evaluated."""

    FREE_TEXT = 0
    DROPDOWN = 1
    INTEGER = 2
    PATH = 3
    WEAPON = 4
    DERIVED = 5
    MERIT_FLAW = 6
    SELECTABLE = 7


class TraitCategory(LenientIntEnum):
    TOP_TEXT = 0
    ATTRIBUTE = 1
    SKILL = 2
    PROGRESSION = 3
    POWER = 4
    SPECIFIC_POWER = 5
    BACKGROUND = 6
    VITAL_STATISTIC = 7
    MERIT_FLAW = 8
    MORAL_PATH = 9
    WEAPON = 10
    PHYSICAL_DESCRIPTION = 11
    HIDDEN = 12


class TraitSubCategory(LenientIntEnum):
    NONE = -1
    PHYSICAL = 0
    SOCIAL = 1
    MENTAL = 2
    FAITH = 3
    DISCIPLINE = 4
    LORE = 5
    TAPESTRY = 6
    KNIT = 7
    ARCANUM = 8
    NATURAL_WEAPON = 9
    SELECTABLE_WEAPON = 10


class Visibility(LenientIntEnum):
    VISIBLE = 0
    SELECTABLE = 1
    HIDDEN = 2


class Derivation(enum.Enum):
    """How a trait instance turns its raw value into an expanded value."""

    STANDARD = "standard"
    DERIVED_ARITHMETIC = "derived-arithmetic"
    DERIVED_SWITCH = "derived-switch"
    DERIVED_OPTIONS = "derived-options"
    MAIN_TRAIT_MAX = "main-trait-max"
    MAIN_TRAIT_COUNT = "main-trait-count"

    @property
    def assignable(self) -> bool:
        return self in (Derivation.STANDARD, Derivation.DERIVED_OPTIONS)


# Constant reserved variables and their stock values. House rules may override
# these in the ruleset file.
DEFAULT_RESERVED_VALUES: dict[str, int] = {
    "TRAITMAX": 5,
    "MAGICMAX": 5,
    "BACKGROUNDMAX": 5,
    "PATHMAX": 10,
    "GENERATIONMAX": 5,
}
COMPUTED_RESERVED_VARIABLES = frozenset({"RESOLVEPENALTY", "EFFECTIVEHUMANITY"})
RESERVED_VARIABLES = frozenset(DEFAULT_RESERVED_VALUES) | COMPUTED_RESERVED_VARIABLES

DEFAULT_GAME_TITLE = "Vampire: The Everything"
DEFAULT_GAME_TITLES: dict[TemplateKey, str] = {
    TemplateKey.KINDRED: "Vampire: The Masquerade",
    TemplateKey.KALEBITE: "Werewolf: The Hunt",
    TemplateKey.FAE: "Changeling: The Journey",
    TemplateKey.MAGE: "Mage: The Illumination",
}

Rule: TypeAlias = str | list[str]


class BadDefinition(BaseModel):
    path: str
    data: Any
    raw_data: Any
    exception_type: str
    exception_message: str


class BaseDefinition(BaseModel):
    def_path: str | None = None


class TraitDefinition(BaseDefinition):
    """One kind of trait, shared by every character that has it.

    Attributes:
        id: Stable numeric ID. Unique within a ruleset.
        name: Display name. Not unique; a Background and the top trait it
            feeds may share a name, as may magic paths under different
            main disciplines.
        rule: The directive source, either a single string with one directive
            per line or a list with one directive per entry.
        default: Raw value a new trait instance starts with.
        subtraits: IDs of traits that name this one as their parent. May be
            supplied by the data, but is always recomputed from the SUBTRAIT
            directives when the registry is built.
        directives: Parsed form of `rule`, filled in by the registry.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: int
    name: str
    type: TraitType = TraitType.FREE_TEXT
    category: TraitCategory = TraitCategory.TOP_TEXT
    subcategory: TraitSubCategory = TraitSubCategory.NONE
    rule: Rule = ""
    default: str = ""
    subtraits: tuple[int, ...] = ()
    directives: tuple[Directive, ...] = ()

    @field_validator("type", mode="before")
    @classmethod
    def _parse_type(cls, value):
        return TraitType.parse(value)

    @field_validator("category", mode="before")
    @classmethod
    def _parse_category(cls, value):
        return TraitCategory.parse(value)

    @field_validator("subcategory", mode="before")
    @classmethod
    def _parse_subcategory(cls, value):
        if value is None:
            return TraitSubCategory.NONE
        return TraitSubCategory.parse(value)

    @field_validator("default", mode="before")
    @classmethod
    def _stringify_default(cls, value):
        return utils.try_str(value, "")

    @field_validator("subtraits", mode="before")
    @classmethod
    def _split_subtraits(cls, value):
        # Row sets may carry these as a delimited string, e.g. "12|13|14". The
        # delimiter varies with the ruleset, so split on anything but IDs.
        if isinstance(value, str):
            return [v for v in re.split(r"[^\w-]+", value) if v]
        return value


class TemplateDefinition(BaseDefinition):
    """A bundle of traits granted together.

    `traits` is what the data says: trait IDs or trait names, where a name
    stands for every trait with that name. `trait_ids` is the resolved,
    sorted set including every transitive subtrait.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    key: TemplateKey
    name: str
    traits: list[int | str] = Field(default_factory=list)
    trait_ids: tuple[int, ...] = ()

    @field_validator("key", mode="before")
    @classmethod
    def _parse_key(cls, value):
        return TemplateKey.parse(value)


class TemplateTraitRow(BaseDefinition):
    """A single template-to-trait pairing, as found in a join table."""

    template: TemplateKey
    trait: int

    @field_validator("template", mode="before")
    @classmethod
    def _parse_template(cls, value):
        return TemplateKey.parse(value)


class MoralPath(BaseDefinition):
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    virtues: str = ""
    bearing: str = ""
    hierarchy_of_sins: tuple[str, ...] = ()

    @field_validator("hierarchy_of_sins", mode="before")
    @classmethod
    def _split_sins(cls, value):
        if isinstance(value, str):
            return value.split("\n")
        return value

    @property
    def resolve_penalty(self) -> int:
        return resolve_penalty(self.virtues)


def resolve_penalty(virtues: str) -> int:
    """-1 for each of Conscience and Self-Control the virtues don't mention."""
    virtues = virtues.lower()
    penalty = 0
    if "conscience" not in virtues:
        penalty -= 1
    if "self-control" not in virtues:
        penalty -= 1
    return penalty


class Ruleset(BaseModel):
    """Top-level configuration and data for the engine.

    Attributes:
        reserved_values: Overrides for the constant reserved variables
            (TRAITMAX and friends). Unmentioned constants keep their stock
            value.
        name_trait: Trait consulted for the character's name.
        virtues_trait: Trait consulted for RESOLVEPENALTY.
        path_score_trait: Trait consulted for EFFECTIVEHUMANITY.
        path_name_trait: Trait holding the name of the character's moral path.
    """

    id: str
    name: str
    version: str = "0.0"
    chunk_delimiter: str = "\n"
    mini_chunk_delimiter: str = "|"
    power_level_glyph: str = "•"
    reserved_values: dict[str, int] = Field(
        default_factory=lambda: dict(DEFAULT_RESERVED_VALUES)
    )
    name_trait: str = "Name"
    virtues_trait: str = "Virtues"
    path_score_trait: str = "Path Score"
    path_name_trait: str = "Path Name"
    game_titles: dict[TemplateKey, str] = Field(
        default_factory=lambda: dict(DEFAULT_GAME_TITLES)
    )
    default_title: str = DEFAULT_GAME_TITLE
    traits: list[TraitDefinition] = Field(default_factory=list)
    templates: list[TemplateDefinition] = Field(default_factory=list)
    template_traits: list[TemplateTraitRow] = Field(default_factory=list)
    paths: list[MoralPath] = Field(default_factory=list)
    bad_defs: list[BadDefinition] = Field(default_factory=list)

    @field_validator("reserved_values")
    @classmethod
    def _merge_reserved_values(cls, value: dict[str, int]) -> dict[str, int]:
        unknown = set(value) - set(DEFAULT_RESERVED_VALUES)
        if unknown:
            raise ValueError(
                f"Unrecognized reserved variable(s): {', '.join(sorted(unknown))}"
            )
        return DEFAULT_RESERVED_VALUES | value

    @field_validator("game_titles", mode="before")
    @classmethod
    def _parse_title_keys(cls, value):
        if isinstance(value, dict):
            return {TemplateKey.parse(k): v for k, v in value.items()}
        return value

    @cached_property
    def engine(self) -> Engine:
        from .rules.engine import Engine

        return Engine(self)


class CharacterModel(BaseModel):
    """Plain snapshot of a character: which templates it has and its raw values.

    `added_traits` lists traits the character has that none of its templates
    grants, i.e. ones added one at a time. Trait values round-trip as
    strings. Everything else about a character is recomputed from the
    ruleset when it is loaded.
    """

    id: int = 0
    ruleset_id: str
    ruleset_version: str
    templates: list[TemplateKey] = Field(default_factory=list)
    added_traits: list[int] = Field(default_factory=list)
    values: dict[int, str] = Field(default_factory=dict)

    @field_validator("templates", mode="before")
    @classmethod
    def _parse_templates(cls, value):
        return [TemplateKey.parse(v) for v in utils.maybe_iter(value)]
