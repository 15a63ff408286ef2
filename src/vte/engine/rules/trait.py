from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from typing import Any

from .. import models
from .. import utils
from . import directives
from . import expressions
from .decision import Decision

if TYPE_CHECKING:
    from .character import Character

logger = logging.getLogger(__name__)

# Switch table key used by DERIVED_SWITCH.
VALUE_SWITCH = "Value"

Derivation = models.Derivation


class Trait:
    """One character's instance of a trait definition.

    The trait stores only a raw string value. Everything else (the expanded
    value, bounds, visibility) is worked out on every read, because it can
    depend on other traits of the same character.

    Building a trait applies its definition's directives, which registers
    variables and subtraits with the owning character as a side effect.
    """

    character: Character
    definition: models.TraitDefinition

    def __init__(self, character: Character, definition: models.TraitDefinition):
        self.character = character
        self.definition = definition
        self._raw_value: str = definition.default
        self.derivation: Derivation = Derivation.STANDARD
        self.min_ref: str | None = None
        self.max_ref: str | None = None
        self.possible_values: tuple[str, ...] = ()
        self.power_level: int | None = None
        self.main_trait_id: int | None = None
        self.auto_hide: bool = False
        self._expression: expressions.Expression | None = None
        # Dummy option name -> variable that decides its label.
        self._option_lookup: dict[str, str] = {}
        # Dummy option name (or VALUE_SWITCH) -> variable value -> label.
        self._switches: dict[str, dict[str, str]] = {}
        for directive in definition.directives:
            self._apply(directive)

    def _apply(self, directive: directives.Directive) -> None:
        match directive:
            case directives.MinMax(minimum=minimum, maximum=maximum):
                self.min_ref = minimum
                self.max_ref = maximum
            case directives.Values(values=values):
                self.possible_values = values
                if not self._raw_value:
                    self._raw_value = values[0]
            case directives.AutoHide():
                self.auto_hide = True
            case directives.IsVariable(name=name):
                self.character.register_variable(name, self)
            case directives.DerivedInteger(source=source, expression=expression):
                self.derivation = Derivation.DERIVED_ARITHMETIC
                self._raw_value = source
                self._expression = expression
            case directives.DerivedOption(
                dummy=dummy, variable=variable, switch=switch
            ):
                self.derivation = Derivation.DERIVED_OPTIONS
                self._option_lookup[dummy] = variable
                self._switches[dummy] = dict(switch)
            case directives.DerivedSwitch(variable=variable, switch=switch):
                self.derivation = Derivation.DERIVED_SWITCH
                self._raw_value = variable
                self._switches[VALUE_SWITCH] = dict(switch)
            case directives.MainTraitMax(group=group):
                self.derivation = Derivation.MAIN_TRAIT_MAX
                self._raw_value = group or self.name
            case directives.MainTraitCount(group=group):
                self.derivation = Derivation.MAIN_TRAIT_COUNT
                self._raw_value = group or self.name
            case directives.SubTrait(parent=parent):
                self.main_trait_id = utils.try_int(parent)
                if self.main_trait_id is not None:
                    self.character.register_subtrait(self.main_trait_id, self)
            case directives.PowerLevel(level=level):
                self.power_level = level

    @property
    def trait_id(self) -> int:
        return self.definition.id

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def type(self) -> models.TraitType:
        return self.definition.type

    @property
    def category(self) -> models.TraitCategory:
        return self.definition.category

    @property
    def subcategory(self) -> models.TraitSubCategory:
        return self.definition.subcategory

    @property
    def subtrait_ids(self) -> tuple[int, ...]:
        return self.definition.subtraits

    @property
    def raw_value(self) -> str:
        return self._raw_value

    @property
    def min_value(self) -> int | None:
        return self.character.get_int_variable(self.min_ref)

    @property
    def max_value(self) -> int | None:
        return self.character.get_int_variable(self.max_ref)

    def _bounds(self) -> tuple[int, int] | None:
        minimum, maximum = self.min_value, self.max_value
        if minimum is None or maximum is None:
            return None
        return minimum, maximum

    @property
    def expanded_value(self) -> Any:
        """The fully resolved value, clamped to the bounds if it's an int."""
        match self.derivation:
            case Derivation.STANDARD | Derivation.DERIVED_OPTIONS:
                value = self.character.get_variable(self._raw_value)
            case Derivation.DERIVED_SWITCH:
                resolved = utils.try_str(
                    self.character.get_variable(self._raw_value), ""
                )
                value = self._switches[VALUE_SWITCH].get(resolved, resolved)
            case Derivation.DERIVED_ARITHMETIC:
                value = expressions.evaluate(
                    self._expression, self.character.get_int_variable
                )
            case Derivation.MAIN_TRAIT_MAX:
                value = self.character.get_max_subtrait(
                    self.character.get_subtrait_group(self.trait_id)
                )
            case Derivation.MAIN_TRAIT_COUNT:
                value = self.character.count_subtraits(
                    self.character.get_subtrait_group(self.trait_id)
                )
        if utils.is_int(value) and (bounds := self._bounds()):
            value = max(bounds[0], min(bounds[1], value))
        return value

    @property
    def display_value(self) -> str:
        """The value as it should be shown.

        Usually just the expanded value as a string. A derived option shows
        the label its switch table picks for the current value of the
        associated variable.
        """
        value = utils.try_str(self.expanded_value, "")
        if (
            self.derivation is Derivation.DERIVED_OPTIONS
            and value in self._option_lookup
        ):
            variable = self._option_lookup[value]
            variable_value = utils.try_str(self.character.get_variable(variable), "")
            if (label := self._switches[value].get(variable_value)) is not None:
                return label
            logger.debug(
                f"{self.name}: no label for option {value!r} when "
                f"{variable}={variable_value!r}"
            )
        return value

    @property
    def visible(self) -> models.Visibility:
        value = self.expanded_value
        match self.category:
            case models.TraitCategory.POWER:
                if utils.is_int(value) and value > 0:
                    return models.Visibility.VISIBLE
                return models.Visibility.HIDDEN
            case models.TraitCategory.SPECIFIC_POWER:
                if value is True:
                    return models.Visibility.VISIBLE
                if self.power_level is None:
                    return models.Visibility.SELECTABLE
                main_value = self.character.get_trait_value(self.main_trait_id)
                if utils.is_int(main_value) and main_value >= self.power_level - 1:
                    return models.Visibility.SELECTABLE
                return models.Visibility.HIDDEN
            case models.TraitCategory.BACKGROUND:
                if utils.is_int(value) and value > 0:
                    return models.Visibility.VISIBLE
                return models.Visibility.SELECTABLE
            case models.TraitCategory.MERIT_FLAW | models.TraitCategory.WEAPON:
                if value is True:
                    return models.Visibility.VISIBLE
                return models.Visibility.SELECTABLE
        return models.Visibility.VISIBLE

    @property
    def is_hidden_by_autohide(self) -> bool:
        """True if the trait auto-hides and currently has nothing to show."""
        if not self.auto_hide:
            return False
        value = self.expanded_value
        return value is False or value == "" or (utils.is_int(value) and value == 0)

    def can_assign(self, value: Any) -> Decision:
        """Checks whether `value` would be accepted, without assigning it."""
        if not self.derivation.assignable:
            return Decision.COMPUTED
        int_value = utils.try_int(value)
        if int_value is not None and (bounds := self._bounds()):
            minimum, maximum = bounds
            if not minimum <= int_value <= maximum:
                return Decision(
                    reason=f"{self.name} must be between {minimum} and {maximum}."
                )
        str_value = utils.try_str(value)
        if str_value is None:
            return Decision(reason=f"{self.name} needs a value.")
        if self.possible_values and str_value not in self.possible_values:
            return Decision(
                reason=f"{str_value!r} is not an option for {self.name}."
            )
        return Decision.SUCCESS

    def try_assign(self, value: Any) -> bool:
        """Assigns a new raw value if it passes validation.

        Returns:
            True if the value was stored. On False, nothing changed.
        """
        if not (decision := self.can_assign(value)):
            logger.debug(f"Rejected {value!r} for {self.name}: {decision.reason}")
            return False
        self._raw_value = utils.try_str(value)
        return True

    def __repr__(self) -> str:
        return f"Trait({self.trait_id}, {self.name!r}, raw={self._raw_value!r})"
