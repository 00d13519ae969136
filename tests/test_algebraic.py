import math

import numpy as np

from fetshape import algebraic
from fetshape.algebraic import Constant, Variable, gradient


def test_constants_fold():
    expr = algebraic.add(2.0, 3.0)
    assert isinstance(expr, Constant)
    assert float(expr) == 5.0
    assert algebraic.multiply(Variable(0), 0.0) == algebraic.ZERO
    assert algebraic.multiply(Variable(0), 1.0) == Variable(0)
    assert algebraic.add(Variable(1), 0.0) == Variable(1)
    assert algebraic.sin(Constant(0.0)) == algebraic.ZERO
    assert algebraic.cos(Constant(0.0)) == algebraic.ONE


def test_double_negation_cancels():
    x = Variable(0)
    assert -(-x) == x
    assert algebraic.multiply(-1.0, x) == algebraic.negate(x)


def test_operators_build_expected_value():
    x, y = Variable(0), Variable(1)
    expr = 3.0 * x * y - x + 2.0
    assert expr.variables() == frozenset({0, 1})
    assert math.isclose(expr.evaluate([2.0, 5.0]), 3.0 * 2.0 * 5.0 - 2.0 + 2.0)
    assert not expr.is_constant()


def test_derivatives_match_finite_differences():
    x, y = Variable(0), Variable(1)
    expr = algebraic.sin(x) * y + algebraic.cos(x * y) - 4.0 * y
    point = np.array([0.4, -1.3])
    step = 1e-6
    for index, derivative in gradient(expr).items():
        bumped = point.copy()
        bumped[index] += step
        lowered = point.copy()
        lowered[index] -= step
        numeric = (expr.evaluate(bumped) - expr.evaluate(lowered)) / (2 * step)
        assert math.isclose(derivative.evaluate(point), numeric, rel_tol=1e-6, abs_tol=1e-8)


def test_gradient_of_constant_is_empty():
    assert gradient(Constant(2.0)) == {}
    assert gradient(Constant(2.0), [0, 1]) == {0: algebraic.ZERO, 1: algebraic.ZERO}


def test_dot_and_evaluate_all():
    x = Variable(0)
    expr = algebraic.dot([1.0, x, 2.0], [x, 3.0, 0.0])
    assert math.isclose(expr.evaluate([2.0]), 2.0 + 6.0)
    values = algebraic.evaluate_all([x, expr, Constant(1.5)], [2.0])
    np.testing.assert_allclose(values, [2.0, 8.0, 1.5])


def test_text_rendering():
    expr = algebraic.add(Variable(0, name="tx"), 1.0)
    assert str(expr) == "(tx + 1.0)"
    assert str(Variable(3)) == "x[3]"
