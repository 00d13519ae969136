"""Example pipeline: align a perturbed scan to a fixed one with least squares.

The shape core only exposes variables and symbolic coordinates; the solve
step below is an orchestrator-side use of ``scipy.optimize.least_squares``.
"""

import math

import numpy as np
from scipy.optimize import least_squares

from fetshape import Feature, Match, Reconstruction, SearchOptions, Shape, gradient


def _build() -> Reconstruction:
    rng = np.random.default_rng(7)
    points = rng.uniform(-1.0, 1.0, size=(40, 3))

    reconstruction = Reconstruction()
    fixed = Shape(reconstruction, name="fixed")
    moving = Shape(reconstruction, name="moving")
    fixed.set_inertia(None)
    for shape in (fixed, moving):
        for point in points:
            reconstruction.insert_feature(Feature(point, point, radius=0.05, descriptor=point), shape)
    moving.perturb_transformation(0.1, math.radians(5.0), rng=rng)
    return reconstruction


def _refresh_matches(reconstruction: Reconstruction) -> None:
    for match in list(reconstruction.matches):
        reconstruction.remove_match(match)
    fixed, moving = reconstruction.shapes
    options = SearchOptions(max_distance=0.5, max_normal_angle=math.radians(45.0))
    for feature in moving.features:
        target = fixed.find_closest_compatible_feature(feature, options=options)
        if target is not None:
            reconstruction.insert_match(Match(feature, target))


def _residuals(reconstruction: Reconstruction):
    exprs = []
    for match in reconstruction.matches:
        a, b = match.features
        pa = a.shape.compute_transformed_point_coordinates(a.position)
        pb = b.shape.compute_transformed_point_coordinates(b.position)
        exprs.extend(pa[i] - pb[i] for i in range(3))
    return exprs


def main() -> None:
    reconstruction = _build()
    for iteration in range(5):
        _refresh_matches(reconstruction)
        n = reconstruction.update_variable_index()
        exprs = _residuals(reconstruction)
        grads = [gradient(expr, range(n)) for expr in exprs]

        def fun(x):
            return np.array([expr.evaluate(x) for expr in exprs])

        def jac(x):
            return np.array([[g[j].evaluate(x) for j in range(n)] for g in grads])

        result = least_squares(fun, reconstruction.initial_variable_values(), jac=jac)
        reconstruction.update_variable_values(result.x)
        print(f"iteration {iteration}: matches={len(reconstruction.matches)} cost={result.cost:.3e}")

    moving = reconstruction.shapes[1]
    print("Final transformation:")
    print(moving.current_transformation.matrix)


if __name__ == "__main__":
    main()
