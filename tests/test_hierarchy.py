import pytest

from fetshape import Reconstruction, Shape, ShapeStructureError


def _shapes(n):
    reconstruction = Reconstruction()
    shapes = [Shape(reconstruction, name=f"s{i}") for i in range(n)]
    return reconstruction, shapes


def test_insert_child_links_both_sides():
    _, (parent, child) = _shapes(2)
    parent.insert_child(child)
    assert parent.n_children() == 1
    assert parent.child(0) is child
    assert child.n_parents() == 1
    assert child.parent(0) is parent
    assert child.primary_parent() is parent
    assert parent.primary_parent() is None


def test_remove_child_unlinks_both_sides():
    _, (parent, child) = _shapes(2)
    parent.insert_child(child)
    parent.remove_child(child)
    assert parent.children == []
    assert child.parents == []


def test_remove_non_member_child_is_a_noop():
    _, (a, b, c) = _shapes(3)
    a.insert_child(b)
    a.remove_child(c)
    assert a.children == [b]
    assert c.parents == []


def test_duplicate_and_self_links_are_rejected():
    _, (parent, child) = _shapes(2)
    parent.insert_child(child)
    with pytest.raises(ShapeStructureError):
        parent.insert_child(child)
    with pytest.raises(ShapeStructureError):
        parent.insert_child(parent)
    assert parent.n_children() == 1
    assert child.n_parents() == 1


def test_first_parent_is_primary():
    _, (p0, p1, child) = _shapes(3)
    p1.insert_child(child)
    p0.insert_child(child)
    assert child.parents == [p1, p0]
    assert child.primary_parent() is p1
    p1.remove_child(child)
    assert child.primary_parent() is p0


def test_diamond_descendants_listed_once():
    _, (root, left, right, leaf) = _shapes(4)
    root.insert_child(left)
    root.insert_child(right)
    left.insert_child(leaf)
    right.insert_child(leaf)

    descendants = root.descendants()
    assert len(descendants) == 3
    assert set(map(id, descendants)) == {id(left), id(right), id(leaf)}

    assert right.descendants() == [leaf]
    assert left.primary_descendants() == [leaf]
    assert right.primary_descendants() == []


def test_ancestors_follow_primary_chain():
    _, (a, b, c, other) = _shapes(4)
    a.insert_child(b)
    b.insert_child(c)
    other.insert_child(c)
    assert c.ancestors() == [b, a]
    assert c.hierarchy_depth() == 2
    assert a.hierarchy_depth() == 0


def test_ancestors_tolerate_cycles():
    _, (a, b) = _shapes(2)
    a.insert_child(b)
    b.insert_child(a)
    assert b.ancestors() == [a]
    assert a.descendants() == [b]


def test_removing_shape_from_reconstruction_unlinks_hierarchy():
    reconstruction, (parent, middle, child) = _shapes(3)
    parent.insert_child(middle)
    middle.insert_child(child)

    reconstruction.remove_shape(middle)

    assert parent.children == []
    assert child.parents == []
    assert middle.reconstruction is None
    assert [s.reconstruction_index for s in reconstruction.shapes] == [0, 1]
    assert reconstruction.shapes == [parent, child]
