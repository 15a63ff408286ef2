"""Arithmetic over character variables, written in Reverse Polish Notation.

A derived integer trait carries its formula as mini-chunk delimited tokens,
for example `Stamina|Size|+` for Health. Operands are variable names or
integer literals; operators are `+ - * / ^`. Operands are read in source
order, so `A|B|-` is `A - B` and `A|B|/` is `A / B`. The result is rounded
to the nearest integer (halves go to the even neighbor).
"""

from __future__ import annotations

import math
from abc import ABC
from abc import abstractmethod
from typing import Callable
from typing import Literal
from typing import Sequence
from typing import TypeAlias

from ..base import FrozenModel
from ..errors import ConfigurationError
from ..errors import EvaluationError

# Looks up a variable by name and returns its integer value, or None if it
# doesn't have one.
Resolver: TypeAlias = Callable[[str], "int | None"]

Operator: TypeAlias = Literal["+", "-", "*", "/", "^"]
OPERATORS: frozenset[str] = frozenset({"+", "-", "*", "/", "^"})


class Node(FrozenModel, ABC):
    @abstractmethod
    def evaluate(self, resolve: Resolver) -> float:
        ...


class Operand(Node):
    name: str

    def evaluate(self, resolve: Resolver) -> float:
        value = resolve(self.name)
        if value is None:
            raise EvaluationError(f"Could not evaluate variable '{self.name}'")
        return value

    def __str__(self) -> str:
        return self.name


class Operation(Node):
    operator: Operator
    left: Expression
    right: Expression

    def evaluate(self, resolve: Resolver) -> float:
        left = self.left.evaluate(resolve)
        right = self.right.evaluate(resolve)
        match self.operator:
            case "+":
                return left + right
            case "-":
                return left - right
            case "*":
                return left * right
            case "/":
                if right == 0:
                    raise EvaluationError(f"Division by zero in '{self}'")
                return left / right
            case "^":
                try:
                    return math.pow(left, right)
                except (OverflowError, ValueError) as exc:
                    raise EvaluationError(
                        f"Could not evaluate '{self}': {exc}"
                    ) from exc
        raise EvaluationError(f"Unknown operator {self.operator}")

    def __str__(self) -> str:
        return f"{self.left}|{self.right}|{self.operator}"


Expression: TypeAlias = Operand | Operation
Operation.model_rebuild()


def parse(tokens: Sequence[str]) -> Expression:
    """Builds an expression tree from RPN tokens.

    Raises:
        ConfigurationError: if the tokens don't form exactly one expression.
    """
    tokens = [t.strip() for t in tokens]
    if not tokens or not any(tokens):
        raise ConfigurationError("Empty derived expression")
    stack: list[Expression] = []
    for token in tokens:
        if token in OPERATORS:
            if len(stack) < 2:
                raise ConfigurationError(
                    f"Operator '{token}' is missing operands in '{'|'.join(tokens)}'"
                )
            right = stack.pop()
            left = stack.pop()
            stack.append(Operation(operator=token, left=left, right=right))
        elif token:
            stack.append(Operand(name=token))
        else:
            raise ConfigurationError(f"Blank operand in '{'|'.join(tokens)}'")
    if len(stack) != 1:
        raise ConfigurationError(
            f"Expression '{'|'.join(tokens)}' leaves {len(stack)} values on the stack"
        )
    return stack[0]


def evaluate(expression: Expression, resolve: Resolver) -> int:
    """Evaluates an expression and rounds the result to an int.

    A lone operand is a plain variable lookup and must resolve to an int.
    """
    if isinstance(expression, Operand):
        return int(expression.evaluate(resolve))
    return round(expression.evaluate(resolve))
