import logging
import math

import numpy as np
import pytest

from fetshape import Affine, Dof, Feature, Reconstruction, Shape, UNASSIGNED, gradient


def _scan(reconstruction, name, points, transformation=None):
    shape = Shape(reconstruction, name=name)
    for point in points:
        reconstruction.insert_feature(Feature(point, (0.0, 0.0, 1.0)), shape)
    if transformation is not None:
        shape.set_transformation(transformation)
    return shape


def _posed():
    return Affine.from_translation((1.0, 2.0, 3.0)) @ Affine.from_euler((0.1, 0.2, 0.3))


def test_every_shape_exposes_nine_variables():
    shape = Shape()
    assert shape.n_variables() == 9
    assert shape.variable_index == [UNASSIGNED] * 9


def test_default_inertias_free_rigid_motion_only():
    shape = Shape()
    assert not any(shape.is_locked(dof) for dof in (Dof.TX, Dof.TY, Dof.TZ, Dof.RX, Dof.RY, Dof.RZ))
    assert all(shape.is_locked(dof) for dof in (Dof.SX, Dof.SY, Dof.SZ))


def test_set_inertia_none_locks_everything():
    shape = Shape()
    shape.set_inertia(None)
    assert shape.update_variable_index(0) == 0
    assert shape.variable_index == [UNASSIGNED] * 9


def test_set_inertia_copies_a_prefix():
    shape = Shape()
    shape.set_inertia(None)
    shape.set_inertia([0.0, 0.0, 0.0, 5.0], nvariables=3)
    assert [shape.is_locked(dof) for dof in range(9)] == [False] * 3 + [True] * 6


def test_slots_are_assigned_in_dof_order_from_offset():
    shape = Shape()
    shape.set_inertia([0.0, math.inf, 0.0, math.inf, 0.0, math.inf, math.inf, math.inf, 0.0])
    assert shape.update_variable_index(4) == 8
    assert shape.variable_index == [4, UNASSIGNED, 5, UNASSIGNED, 6, UNASSIGNED, UNASSIGNED, UNASSIGNED, 7]


def test_locking_and_unlocking_across_reconstruction():
    reconstruction = Reconstruction()
    shapes = [Shape(reconstruction) for _ in range(3)]
    for shape in shapes:
        shape.set_inertia(None)
    assert reconstruction.update_variable_index() == 0

    shapes[1].set_inertia([0.0] * 9)
    assert reconstruction.update_variable_index() == 9
    assert shapes[1].variable_index == list(range(9))
    assert shapes[0].variable_index == [UNASSIGNED] * 9


def test_slot_assignment_is_deterministic():
    reconstruction = Reconstruction()
    shapes = [Shape(reconstruction) for _ in range(3)]
    shapes[0].set_inertia(None)
    first = reconstruction.update_variable_index()
    snapshot = [list(shape.variable_index) for shape in shapes]
    assert reconstruction.update_variable_index() == first == 12
    assert [list(shape.variable_index) for shape in shapes] == snapshot
    assert shapes[2].variable_index[:6] == list(range(6, 12))


def test_variable_names_and_inertia_weights():
    reconstruction = Reconstruction()
    shape = Shape(reconstruction, name="scan")
    shape.set_inertia([2.0, 0.0, 0.0, 0.0, 0.0, 0.0])
    reconstruction.update_variable_index()
    names = reconstruction.variable_names()
    assert names[0] == "scan.tx"
    assert names[5] == "scan.rz"
    assert shape.inertia_weights() == [(0, 2.0)]


def test_zero_update_changes_nothing():
    reconstruction = Reconstruction()
    shape = _scan(reconstruction, "a", [(0.0, 0.0, 0.0), (1.0, 1.0, 1.0)], _posed())
    before = shape.transformation()
    n = reconstruction.update_variable_index()
    reconstruction.update_variable_values(np.zeros(n))
    assert shape.transformation() == before


def test_translation_update_moves_points():
    reconstruction = Reconstruction()
    shape = _scan(reconstruction, "a", [(0.0, 0.0, 0.0)])
    n = reconstruction.update_variable_index()
    x = np.zeros(n)
    x[shape.variable_index[Dof.TY]] = 2.5
    reconstruction.update_variable_values(x)
    np.testing.assert_allclose(shape.transform_point((1.0, 1.0, 1.0)), [1.0, 3.5, 1.0])


def test_rotation_update_pivots_about_origin():
    reconstruction = Reconstruction()
    shape = _scan(reconstruction, "a", [(1.0, 0.0, 0.0), (3.0, 0.0, 0.0)])
    n = reconstruction.update_variable_index()
    x = np.zeros(n)
    x[shape.variable_index[Dof.RZ]] = math.pi / 2
    reconstruction.update_variable_values(x)
    np.testing.assert_allclose(shape.transform_point((2.0, 0.0, 0.0)), [2.0, 0.0, 0.0], atol=1e-12)
    np.testing.assert_allclose(shape.transform_point((3.0, 0.0, 0.0)), [2.0, 1.0, 0.0], atol=1e-12)


def test_short_solution_vector_is_rejected():
    reconstruction = Reconstruction()
    Shape(reconstruction)
    n = reconstruction.update_variable_index()
    with pytest.raises(ValueError):
        reconstruction.update_variable_values(np.zeros(n - 1))


def test_symbolic_point_agrees_with_numeric_update():
    reconstruction = Reconstruction()
    shape = _scan(reconstruction, "a", [(1.0, 0.0, 0.0)], _posed())
    shape.set_inertia([0.0] * 9)
    shape.set_origin((0.5, -0.5, 0.25))
    reconstruction.update_variable_index()

    point = np.array([0.3, -1.2, 2.0])
    vector = np.array([0.0, 1.0, -1.0])
    point_exprs = shape.compute_transformed_point_coordinates(point)
    vector_exprs = shape.compute_transformed_vector_coordinates(vector)
    x = np.array([0.1, -0.2, 0.05, 0.03, -0.02, 0.04, 0.1, -0.05, 0.02])
    expected_point = [expr.evaluate(x) for expr in point_exprs]
    expected_vector = [expr.evaluate(x) for expr in vector_exprs]

    reconstruction.update_variable_values(x)

    np.testing.assert_allclose(shape.transform_point(point), expected_point, atol=1e-12)
    np.testing.assert_allclose(shape.transform_vector(vector), expected_vector, atol=1e-12)


def test_symbolic_coordinates_at_zero_are_current_world_coordinates():
    reconstruction = Reconstruction()
    shape = _scan(reconstruction, "a", [(0.0, 0.0, 0.0), (2.0, 0.0, 0.0)], _posed())
    n = reconstruction.update_variable_index()
    exprs = shape.compute_transformed_point_coordinates((1.0, 1.0, 1.0))
    np.testing.assert_allclose([e.evaluate(np.zeros(n)) for e in exprs], shape.transform_point((1.0, 1.0, 1.0)))


def test_locked_shape_coordinates_are_constant():
    reconstruction = Reconstruction()
    shape = _scan(reconstruction, "a", [(0.0, 0.0, 0.0)], _posed())
    shape.set_inertia(None)
    reconstruction.update_variable_index()
    exprs = shape.compute_transformed_point_coordinates((1.0, 2.0, 3.0))
    assert all(expr.is_constant() for expr in exprs)
    np.testing.assert_allclose([float(e) for e in exprs], shape.transform_point((1.0, 2.0, 3.0)))


def test_symbolic_coordinates_follow_primary_parent():
    reconstruction = Reconstruction()
    parent = _scan(reconstruction, "parent", [(0.0, 0.0, 0.0), (4.0, 0.0, 0.0)])
    child = _scan(
        reconstruction, "child", [(1.0, 1.0, 0.0), (1.0, 3.0, 0.0)], Affine.from_translation((0.0, 0.0, 1.0))
    )
    parent.insert_child(child)
    n = reconstruction.update_variable_index()
    assert n == 12

    point = np.array([1.0, 2.0, 0.5])
    exprs = child.compute_transformed_point_coordinates(point)
    assert {child.variable_index[0], parent.variable_index[0]} <= set().union(*(e.variables() for e in exprs))

    x = np.linspace(-0.1, 0.1, n)
    expected = [expr.evaluate(x) for expr in exprs]
    reconstruction.update_variable_values(x)
    np.testing.assert_allclose(child.transform_point(point), expected, atol=1e-12)


def test_parent_update_carries_children_along():
    reconstruction = Reconstruction()
    parent = _scan(reconstruction, "parent", [(0.0, 0.0, 0.0)])
    child = _scan(reconstruction, "child", [(1.0, 0.0, 0.0)])
    parent.insert_child(child)
    child.set_inertia(None)
    n = reconstruction.update_variable_index()
    x = np.zeros(n)
    x[parent.variable_index[Dof.TX]] = 1.0
    reconstruction.update_variable_values(x)
    np.testing.assert_allclose(child.transform_point((1.0, 0.0, 0.0)), [2.0, 0.0, 0.0])


def test_gradient_matches_finite_differences():
    reconstruction = Reconstruction()
    shape = _scan(reconstruction, "a", [(0.0, 0.0, 0.0), (1.0, 2.0, 3.0)], _posed())
    n = reconstruction.update_variable_index()
    exprs = shape.compute_transformed_point_coordinates((0.5, 0.5, 0.5))
    x = np.full(n, 0.05)
    step = 1e-6
    for expr in exprs:
        for index, derivative in gradient(expr, range(n)).items():
            up, down = x.copy(), x.copy()
            up[index] += step
            down[index] -= step
            numeric = (expr.evaluate(up) - expr.evaluate(down)) / (2 * step)
            assert math.isclose(derivative.evaluate(x), numeric, rel_tol=1e-5, abs_tol=1e-7)


def test_missing_slot_yields_none(caplog):
    shape = Shape()
    with caplog.at_level(logging.WARNING):
        assert shape.compute_transformed_point_coordinates((0.0, 0.0, 0.0)) is None
    assert "without a variable slot" in caplog.text


def test_missing_ancestor_slot_yields_none():
    parent, child = Shape(), Shape()
    parent.insert_child(child)
    child.update_variable_index(0)
    assert child.compute_transformed_vector_coordinates((1.0, 0.0, 0.0)) is None
    parent.update_variable_index(6)
    assert child.compute_transformed_vector_coordinates((1.0, 0.0, 0.0)) is not None
