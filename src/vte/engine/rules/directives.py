"""The trait rule mini-language.

A trait's rule is a sequence of directives, one per chunk. Each chunk is a
list of mini-chunk delimited tokens, the first of which names the directive:

    AUTOHIDE
    MINMAX|0|TRAITMAX
    SUBTRAIT|Animalism
    POWER_LEVEL

Rules are parsed once, when the trait registry is built. Keywords this
module doesn't know are skipped so that newer data can still be loaded.
"""

from __future__ import annotations

import logging
from typing import Annotated
from typing import ClassVar
from typing import Iterator
from typing import Literal
from typing import Sequence
from typing import TypeAlias

from pydantic import Field

from ..base import FrozenModel
from ..errors import ConfigurationError
from . import expressions

logger = logging.getLogger(__name__)

MINMAX = "MINMAX"
VALUES = "VALUES"
AUTOHIDE = "AUTOHIDE"
IS_VARIABLE = "IS_VARIABLE"
DERIVED_INTEGER = "DERIVED_INTEGER"
DERIVED_OPTION = "DERIVED_OPTION"
DERIVED_SWITCH = "DERIVED_SWITCH"
MAINTRAIT_MAX = "MAINTRAIT_MAX"
MAINTRAIT_COUNT = "MAINTRAIT_COUNT"
SUBTRAIT = "SUBTRAIT"
POWER_LEVEL = "POWER_LEVEL"


class BaseDirective(FrozenModel):
    keyword: str

    # Minimum number of arguments after the keyword.
    min_args: ClassVar[int] = 0

    @classmethod
    def from_args(cls, args: list[str], delimiter: str):
        return cls()

    @classmethod
    def parse(cls, args: list[str], delimiter: str):
        if len(args) < cls.min_args:
            raise ConfigurationError(
                f"{cls.model_fields['keyword'].default} needs at least "
                f"{cls.min_args} argument(s), got {args}"
            )
        return cls.from_args(args, delimiter)


class MinMax(BaseDirective):
    """Lower and upper bounds. Either may be a literal or a variable name."""

    keyword: Literal["MINMAX"] = MINMAX
    minimum: str
    maximum: str

    min_args: ClassVar[int] = 2

    @classmethod
    def from_args(cls, args: list[str], delimiter: str) -> MinMax:
        if not args[0] or not args[1]:
            raise ConfigurationError(f"MINMAX bounds can't be blank: {args}")
        return cls(minimum=args[0], maximum=args[1])


class Values(BaseDirective):
    keyword: Literal["VALUES"] = VALUES
    values: tuple[str, ...]

    min_args: ClassVar[int] = 1

    @classmethod
    def from_args(cls, args: list[str], delimiter: str) -> Values:
        return cls(values=tuple(args))


class AutoHide(BaseDirective):
    keyword: Literal["AUTOHIDE"] = AUTOHIDE


class IsVariable(BaseDirective):
    keyword: Literal["IS_VARIABLE"] = IS_VARIABLE
    name: str

    min_args: ClassVar[int] = 1

    @classmethod
    def from_args(cls, args: list[str], delimiter: str) -> IsVariable:
        if not args[0]:
            raise ConfigurationError("IS_VARIABLE needs a variable name")
        return cls(name=args[0])


class DerivedInteger(BaseDirective):
    """An arithmetic formula; see `expressions` for the notation."""

    keyword: Literal["DERIVED_INTEGER"] = DERIVED_INTEGER
    source: str
    expression: expressions.Expression

    min_args: ClassVar[int] = 1

    @classmethod
    def from_args(cls, args: list[str], delimiter: str) -> DerivedInteger:
        return cls(source=delimiter.join(args), expression=expressions.parse(args))


class DerivedOption(BaseDirective):
    """A dropdown option whose label depends on another variable.

    For example, the `[animal]` breed is labelled differently depending on
    the BROOD variable; `switch` maps each brood to the label.
    """

    keyword: Literal["DERIVED_OPTION"] = DERIVED_OPTION
    dummy: str
    variable: str
    switch: dict[str, str] = Field(default_factory=dict)

    min_args: ClassVar[int] = 2

    @classmethod
    def from_args(cls, args: list[str], delimiter: str) -> DerivedOption:
        return cls(dummy=args[0], variable=args[1], switch=_pairs(args[2:]))


class DerivedSwitch(BaseDirective):
    """The value is another variable's value, mapped through `switch`."""

    keyword: Literal["DERIVED_SWITCH"] = DERIVED_SWITCH
    variable: str
    switch: dict[str, str] = Field(default_factory=dict)

    min_args: ClassVar[int] = 1

    @classmethod
    def from_args(cls, args: list[str], delimiter: str) -> DerivedSwitch:
        return cls(variable=args[0], switch=_pairs(args[1:]))


class MainTraitMax(BaseDirective):
    """The value is the highest of the subtraits' values.

    `group` is an optional annotated name that subtraits can use to refer
    to this trait when its own name is ambiguous.
    """

    keyword: Literal["MAINTRAIT_MAX"] = MAINTRAIT_MAX
    group: str | None = None

    @classmethod
    def from_args(cls, args: list[str], delimiter: str) -> MainTraitMax:
        return cls(group=args[0] if args and args[0] else None)


class MainTraitCount(BaseDirective):
    """The value is the number of selected subtraits."""

    keyword: Literal["MAINTRAIT_COUNT"] = MAINTRAIT_COUNT
    group: str | None = None

    @classmethod
    def from_args(cls, args: list[str], delimiter: str) -> MainTraitCount:
        return cls(group=args[0] if args and args[0] else None)


class SubTrait(BaseDirective):
    """Declares the parent (main) trait.

    In data this is usually the parent's name or annotated group name. The
    registry replaces it with the parent's ID.
    """

    keyword: Literal["SUBTRAIT"] = SUBTRAIT
    parent: int | str

    min_args: ClassVar[int] = 1

    @classmethod
    def from_args(cls, args: list[str], delimiter: str) -> SubTrait:
        if not args[0]:
            raise ConfigurationError("SUBTRAIT needs a main trait")
        return cls(parent=args[0])


class PowerLevel(BaseDirective):
    """The level of a specific power.

    Without an argument the level is taken from the dots in the trait's
    name, e.g. "Feral Claws (••)" is level 2. The registry fills that in.
    """

    keyword: Literal["POWER_LEVEL"] = POWER_LEVEL
    level: int | None = None

    @classmethod
    def from_args(cls, args: list[str], delimiter: str) -> PowerLevel:
        if not args or not args[0]:
            return cls()
        try:
            return cls(level=int(args[0]))
        except ValueError as exc:
            raise ConfigurationError(
                f"POWER_LEVEL must be an integer, got {args[0]!r}"
            ) from exc


Directive: TypeAlias = Annotated[
    MinMax
    | Values
    | AutoHide
    | IsVariable
    | DerivedInteger
    | DerivedOption
    | DerivedSwitch
    | MainTraitMax
    | MainTraitCount
    | SubTrait
    | PowerLevel,
    Field(discriminator="keyword"),
]

DIRECTIVE_TYPES: dict[str, type[BaseDirective]] = {
    cls.model_fields["keyword"].default: cls
    for cls in (
        MinMax,
        Values,
        AutoHide,
        IsVariable,
        DerivedInteger,
        DerivedOption,
        DerivedSwitch,
        MainTraitMax,
        MainTraitCount,
        SubTrait,
        PowerLevel,
    )
}


def _pairs(tokens: Sequence[str]) -> dict[str, str]:
    """Pairs up alternating key/value tokens. A trailing odd token is dropped."""
    return {tokens[i]: tokens[i + 1] for i in range(0, len(tokens) - 1, 2)}


def tokenize(
    rule: str | Sequence[str],
    chunk_delimiter: str = "\n",
    mini_chunk_delimiter: str = "|",
) -> Iterator[list[str]]:
    """Splits a rule into chunks, and each chunk into tokens.

    A rule may also be given pre-chunked, as a list of chunk strings.
    Blank chunks are skipped.
    """
    if not rule:
        return
    chunks = rule.split(chunk_delimiter) if isinstance(rule, str) else rule
    for chunk in chunks:
        if not chunk.strip():
            continue
        yield [token.strip() for token in chunk.split(mini_chunk_delimiter)]


def parse_rule(
    rule: str | Sequence[str],
    chunk_delimiter: str = "\n",
    mini_chunk_delimiter: str = "|",
) -> list[Directive]:
    """Parses a rule into directives.

    Raises:
        ConfigurationError: if a recognized directive has bad arguments.
    """
    directives: list[Directive] = []
    for tokens in tokenize(rule, chunk_delimiter, mini_chunk_delimiter):
        keyword, args = tokens[0], tokens[1:]
        directive_type = DIRECTIVE_TYPES.get(keyword)
        if directive_type is None:
            logger.debug(f"Skipping unrecognized directive {keyword!r}")
            continue
        directives.append(directive_type.parse(args, mini_chunk_delimiter))
    return directives
