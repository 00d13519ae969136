import pytest

from fetshape import Feature, Match, Reconstruction, Shape, ShapeStructureError


def _two_scans():
    reconstruction = Reconstruction()
    a = Shape(reconstruction, name="a")
    b = Shape(reconstruction, name="b")
    for shape, offset in ((a, 0.0), (b, 0.1)):
        for k in range(3):
            reconstruction.insert_feature(Feature((k + offset, 0.0, 0.0)), shape)
    return reconstruction, a, b


def test_reconstruction_insert_match_reaches_both_shapes():
    reconstruction, a, b = _two_scans()
    match = Match(a.feature(0), b.feature(0), affinity=0.5)
    reconstruction.insert_match(match)
    assert match.reconstruction_index == 0
    assert a.matches == [match]
    assert b.matches == [match]
    assert match.shapes() == (a, b)
    assert match.other_feature(a.feature(0)) is b.feature(0)


def test_self_match_is_stored_once_per_shape():
    reconstruction, a, _ = _two_scans()
    match = Match(a.feature(0), a.feature(1))
    reconstruction.insert_match(match)
    assert a.n_matches() == 1


def test_insert_at_position_preserves_order():
    reconstruction, a, b = _two_scans()
    first = Match(a.feature(0), b.feature(0))
    second = Match(a.feature(1), b.feature(1))
    third = Match(a.feature(2), b.feature(2))
    a.insert_match(first, 0)
    a.insert_match(third, 1)
    a.insert_match(second, 1)
    assert a.matches == [first, second, third]
    assert a.match(1) is second


def test_insert_match_rejects_bad_position_and_foreign_match():
    reconstruction, a, b = _two_scans()
    other = Shape(reconstruction)
    match = Match(a.feature(0), b.feature(0))
    with pytest.raises(ShapeStructureError):
        a.insert_match(match, 1)
    with pytest.raises(ShapeStructureError):
        other.insert_match(match, 0)
    assert a.n_matches() == 0
    assert other.n_matches() == 0


def test_remove_match_requires_matching_position():
    reconstruction, a, b = _two_scans()
    first = Match(a.feature(0), b.feature(0))
    second = Match(a.feature(1), b.feature(1))
    a.insert_match(first, 0)
    a.insert_match(second, 1)
    with pytest.raises(ShapeStructureError):
        a.remove_match(first, 1)
    with pytest.raises(ShapeStructureError):
        a.remove_match(first, 2)
    a.remove_match(first, 0)
    assert a.matches == [second]


def test_removing_feature_drops_its_matches():
    reconstruction, a, b = _two_scans()
    kept = Match(a.feature(1), b.feature(1))
    dropped = Match(a.feature(0), b.feature(0))
    reconstruction.insert_match(dropped)
    reconstruction.insert_match(kept)
    feature = a.feature(0)

    reconstruction.remove_feature(feature)

    assert reconstruction.matches == [kept]
    assert kept.reconstruction_index == 0
    assert a.matches == [kept]
    assert b.matches == [kept]
    assert feature.shape is None
    assert [f.reconstruction_index for f in reconstruction.features] == list(range(5))


def test_removing_shape_drops_matches_on_both_sides():
    reconstruction, a, b = _two_scans()
    reconstruction.insert_match(Match(a.feature(0), b.feature(0)))
    reconstruction.remove_shape(a)
    assert reconstruction.matches == []
    assert b.matches == []
    assert a.n_features() == 0
    assert b.reconstruction_index == 0
