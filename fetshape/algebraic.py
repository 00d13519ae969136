"""Small algebraic expression trees over global solver variables.

Expressions are immutable and built through the module level helpers
(:func:`add`, :func:`multiply`, :func:`sin`, ...), which fold constants as
they go so that locked degrees of freedom collapse to plain numbers.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Optional, Sequence, Union

import numpy as np

Operand = Union["Expression", float, int]


class Expression:
    """Base class of all expression nodes."""

    def evaluate(self, x: Sequence[float]) -> float:
        raise NotImplementedError

    def derivative(self, index: int) -> "Expression":
        raise NotImplementedError

    def variables(self) -> FrozenSet[int]:
        raise NotImplementedError

    def is_constant(self) -> bool:
        return not self.variables()

    def __add__(self, other: Operand) -> "Expression":
        return add(self, other)

    def __radd__(self, other: Operand) -> "Expression":
        return add(other, self)

    def __sub__(self, other: Operand) -> "Expression":
        return add(self, negate(other))

    def __rsub__(self, other: Operand) -> "Expression":
        return add(other, negate(self))

    def __mul__(self, other: Operand) -> "Expression":
        return multiply(self, other)

    def __rmul__(self, other: Operand) -> "Expression":
        return multiply(other, self)

    def __neg__(self) -> "Expression":
        return negate(self)


@dataclass(frozen=True)
class Constant(Expression):
    value: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", float(self.value))

    def evaluate(self, x: Sequence[float]) -> float:
        return self.value

    def derivative(self, index: int) -> Expression:
        return ZERO

    def variables(self) -> FrozenSet[int]:
        return frozenset()

    def __float__(self) -> float:
        return self.value

    def __str__(self) -> str:
        return repr(self.value)


@dataclass(frozen=True)
class Variable(Expression):
    index: int
    name: Optional[str] = None

    def evaluate(self, x: Sequence[float]) -> float:
        return float(x[self.index])

    def derivative(self, index: int) -> Expression:
        return ONE if index == self.index else ZERO

    def variables(self) -> FrozenSet[int]:
        return frozenset((self.index,))

    def __str__(self) -> str:
        return self.name or f"x[{self.index}]"


@dataclass(frozen=True)
class Sum(Expression):
    left: Expression
    right: Expression

    def evaluate(self, x: Sequence[float]) -> float:
        return self.left.evaluate(x) + self.right.evaluate(x)

    def derivative(self, index: int) -> Expression:
        return add(self.left.derivative(index), self.right.derivative(index))

    def variables(self) -> FrozenSet[int]:
        return self.left.variables() | self.right.variables()

    def __str__(self) -> str:
        return f"({self.left} + {self.right})"


@dataclass(frozen=True)
class Product(Expression):
    left: Expression
    right: Expression

    def evaluate(self, x: Sequence[float]) -> float:
        return self.left.evaluate(x) * self.right.evaluate(x)

    def derivative(self, index: int) -> Expression:
        return add(
            multiply(self.left.derivative(index), self.right),
            multiply(self.left, self.right.derivative(index)),
        )

    def variables(self) -> FrozenSet[int]:
        return self.left.variables() | self.right.variables()

    def __str__(self) -> str:
        return f"{self.left} * {self.right}"


@dataclass(frozen=True)
class Negation(Expression):
    operand: Expression

    def evaluate(self, x: Sequence[float]) -> float:
        return -self.operand.evaluate(x)

    def derivative(self, index: int) -> Expression:
        return negate(self.operand.derivative(index))

    def variables(self) -> FrozenSet[int]:
        return self.operand.variables()

    def __str__(self) -> str:
        return f"-{self.operand}"


@dataclass(frozen=True)
class Sine(Expression):
    operand: Expression

    def evaluate(self, x: Sequence[float]) -> float:
        return math.sin(self.operand.evaluate(x))

    def derivative(self, index: int) -> Expression:
        return multiply(cos(self.operand), self.operand.derivative(index))

    def variables(self) -> FrozenSet[int]:
        return self.operand.variables()

    def __str__(self) -> str:
        return f"sin({self.operand})"


@dataclass(frozen=True)
class Cosine(Expression):
    operand: Expression

    def evaluate(self, x: Sequence[float]) -> float:
        return math.cos(self.operand.evaluate(x))

    def derivative(self, index: int) -> Expression:
        return negate(multiply(sin(self.operand), self.operand.derivative(index)))

    def variables(self) -> FrozenSet[int]:
        return self.operand.variables()

    def __str__(self) -> str:
        return f"cos({self.operand})"


ZERO = Constant(0.0)
ONE = Constant(1.0)


def as_expression(value: Operand) -> Expression:
    if isinstance(value, Expression):
        return value
    return Constant(float(value))


def _constant_value(expr: Expression) -> Optional[float]:
    return expr.value if isinstance(expr, Constant) else None


def add(a: Operand, b: Operand) -> Expression:
    a, b = as_expression(a), as_expression(b)
    va, vb = _constant_value(a), _constant_value(b)
    if va is not None and vb is not None:
        return Constant(va + vb)
    if va == 0.0:
        return b
    if vb == 0.0:
        return a
    return Sum(a, b)


def multiply(a: Operand, b: Operand) -> Expression:
    a, b = as_expression(a), as_expression(b)
    va, vb = _constant_value(a), _constant_value(b)
    if va is not None and vb is not None:
        return Constant(va * vb)
    if va == 0.0 or vb == 0.0:
        return ZERO
    if va == 1.0:
        return b
    if vb == 1.0:
        return a
    if va == -1.0:
        return negate(b)
    if vb == -1.0:
        return negate(a)
    return Product(a, b)


def negate(a: Operand) -> Expression:
    a = as_expression(a)
    if isinstance(a, Constant):
        return Constant(-a.value)
    if isinstance(a, Negation):
        return a.operand
    return Negation(a)


def sin(a: Operand) -> Expression:
    a = as_expression(a)
    if isinstance(a, Constant):
        return Constant(math.sin(a.value))
    return Sine(a)


def cos(a: Operand) -> Expression:
    a = as_expression(a)
    if isinstance(a, Constant):
        return Constant(math.cos(a.value))
    return Cosine(a)


def dot(row: Iterable[Operand], column: Iterable[Operand]) -> Expression:
    total: Expression = ZERO
    for a, b in zip(row, column):
        total = add(total, multiply(a, b))
    return total


def gradient(expr: Expression, indices: Optional[Iterable[int]] = None) -> Dict[int, Expression]:
    """Partial derivatives of ``expr`` keyed by variable index."""

    if indices is None:
        indices = sorted(expr.variables())
    return {index: expr.derivative(index) for index in indices}


def evaluate_all(exprs: Iterable[Expression], x: Sequence[float]) -> np.ndarray:
    return np.array([expr.evaluate(x) for expr in exprs], dtype=float)


__all__ = [
    "Expression",
    "Constant",
    "Variable",
    "Sum",
    "Product",
    "Negation",
    "Sine",
    "Cosine",
    "ZERO",
    "ONE",
    "as_expression",
    "add",
    "multiply",
    "negate",
    "sin",
    "cos",
    "dot",
    "gradient",
    "evaluate_all",
]
