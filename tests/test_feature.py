import io
import math

import numpy as np
import pytest

from fetshape import Affine, Feature, Shape, ShapeFormatError
from fetshape.feature import normal_angle


def test_world_frame_follows_owning_shape():
    shape = Shape()
    feature = Feature((1.0, 0.0, 0.0), (0.0, 0.0, 2.0))
    shape.insert_feature(feature)
    shape.set_transformation(Affine.from_translation((0.0, 1.0, 0.0)) @ Affine.from_euler((math.pi / 2, 0.0, 0.0)))
    np.testing.assert_allclose(feature.world_position(), [1.0, 1.0, 0.0], atol=1e-12)
    np.testing.assert_allclose(feature.world_normal(), [0.0, -1.0, 0.0], atol=1e-12)


def test_detached_feature_uses_stored_frame():
    feature = Feature((1.0, 2.0, 3.0), (0.0, 3.0, 4.0))
    np.testing.assert_array_equal(feature.world_position(), [1.0, 2.0, 3.0])
    np.testing.assert_allclose(feature.world_normal(), [0.0, 0.6, 0.8])
    np.testing.assert_array_equal(Feature().world_normal(), np.zeros(3))


def test_descriptor_distances():
    a = Feature(descriptor=[1.0, 2.0, 3.0])
    b = Feature(descriptor=[1.5, 2.0, 1.0])
    np.testing.assert_allclose(a.descriptor_distances(b), [0.5, 0.0, 2.0])
    with pytest.raises(ValueError):
        a.descriptor_distances(Feature(descriptor=[1.0]))


def test_normal_angle():
    assert math.isclose(normal_angle(np.array([1.0, 0.0, 0.0]), np.array([0.0, 2.0, 0.0])), math.pi / 2)
    assert math.isnan(normal_angle(np.zeros(3), np.array([1.0, 0.0, 0.0])))


def test_ascii_and_binary_records_agree():
    feature = Feature(
        (0.1, -0.2, 1.0 / 3.0),
        (0.0, 0.0, 1.0),
        radius=0.25,
        descriptor=[0.5, math.inf, -1.0],
        boundary=True,
        distinction=0.4,
        salience=0.9,
    )
    text = io.StringIO()
    feature.write_ascii(text)
    data = io.BytesIO()
    feature.write_binary(data)

    from_text = Feature.read_ascii(io.StringIO(text.getvalue()))
    from_data = Feature.read_binary(io.BytesIO(data.getvalue()))
    for restored in (from_text, from_data):
        np.testing.assert_array_equal(restored.position, feature.position)
        np.testing.assert_array_equal(restored.descriptor, feature.descriptor)
        assert restored.boundary
        assert restored.radius == 0.25
        assert restored.salience == 0.9


def test_truncated_feature_records():
    with pytest.raises(ShapeFormatError):
        Feature.read_ascii(io.StringIO("feature 0.0 1.0\n"))
    with pytest.raises(ShapeFormatError):
        Feature.read_ascii(io.StringIO("feature 0 0 0 0 0 1 0.1 0 0 0 2 1.0\n"))
    with pytest.raises(ShapeFormatError):
        Feature.read_binary(io.BytesIO(b"\x00" * 10))
