import numpy as np
import pytest
from numpy.testing import assert_array_equal

from cubeset.axis import (Axis, LookupKind, infer_lookup_kind, is_continuous,
                          is_sorted, prepend_values, values_equal)


def test_infer_lookup_kind():
    assert LookupKind.REGULAR == infer_lookup_kind([1, 2, 3])
    assert LookupKind.REGULAR == infer_lookup_kind([0.5, 0.25, 0.0])
    assert LookupKind.IRREGULAR == infer_lookup_kind([1, 2, 4])
    assert LookupKind.IRREGULAR == infer_lookup_kind([7])
    assert LookupKind.IRREGULAR == infer_lookup_kind(
        np.array(['2000-01-01', '2000-01-02'], dtype='M8[D]'))
    assert LookupKind.CATEGORICAL == infer_lookup_kind(['a', 'b'])


def test_is_continuous():
    assert is_continuous([1, 2, 3])
    assert is_continuous([3.0, 2.0, 1.0])
    assert is_continuous(np.array(['2000', '2001'], dtype='M8[Y]'))
    # unsorted numbers are labels
    assert not is_continuous([1, 3, 2])
    assert not is_continuous(['a', 'b'])


def test_is_sorted():
    assert is_sorted([1, 2, 2, 3])
    assert not is_sorted([3, 2, 1])
    assert is_sorted([3, 2, 1], reverse=True)
    assert is_sorted([5])
    assert is_sorted([5], reverse=True)


def test_values_equal():
    assert values_equal([1, 2], np.array([1.0, 2.0]))
    assert not values_equal([1, 2], [1, 2, 3])
    assert not values_equal([1, 2], [1, 3])
    assert not values_equal(['1', '2'], [1, 2])


def test_prepend_values():
    assert_array_equal([-1, 0, 1, 2], prepend_values([1, 2], 2))
    assert_array_equal([-0.5, 0.5, 1.5], prepend_values([1.5], 2))
    assert_array_equal([1, 2], prepend_values([1, 2], 0))
    assert_array_equal(['', '', 'a'], prepend_values(['a'], 2))
    days = np.array(['2000-01-03'], dtype='M8[D]')
    assert_array_equal(np.array(['2000-01-01', '2000-01-02', '2000-01-03'],
                                dtype='M8[D]'), prepend_values(days, 2))
    with pytest.raises(ValueError):
        prepend_values([1, 2], -1)
    with pytest.raises(ValueError):
        prepend_values([], 1)


class TestAxis:

    def test_construction(self):
        ax = Axis('lon', [0.0, 1.0, 2.0])
        assert 'lon' == ax.name
        assert 3 == len(ax)
        assert LookupKind.REGULAR == ax.kind
        assert 1.0 == ax.step
        assert ax.is_continuous
        assert [0.0, 1.0, 2.0] == list(ax)

        with pytest.raises(ValueError):
            Axis('', [1])
        with pytest.raises(ValueError):
            Axis('x', [[1, 2]])

    def test_values_are_immutable(self):
        values = np.arange(3)
        ax = Axis('x', values)
        values[0] = 10
        assert 0 == ax.values[0]
        with pytest.raises(ValueError):
            ax.values[0] = 5

    def test_default(self):
        ax = Axis.default('x', 4)
        assert LookupKind.NONE == ax.kind
        assert_array_equal(np.arange(4), ax.values)
        with pytest.raises(TypeError):
            ax.step

    def test_labels(self):
        ax = Axis('var', np.array(['tas', 'pr'], dtype=object))
        assert LookupKind.CATEGORICAL == ax.kind
        assert 'U' == ax.dtype.kind
        assert not ax.is_continuous

    def test_equality(self):
        assert Axis('x', [1, 2]) == Axis('x', [1, 2])
        assert Axis('x', [1, 2]) != Axis('y', [1, 2])
        assert Axis('x', [1, 2]) != Axis('x', [1, 3])
        assert Axis('x', [0, 1]) != Axis.default('x', 2)
        assert Axis('x', [1, 2]) != 'x'

    def test_isel(self):
        ax = Axis('x', [10, 20, 30, 40])
        assert 20 == ax.isel(1)
        sub = ax.isel(slice(1, 3))
        assert Axis('x', [20, 30]) == sub
        assert LookupKind.CATEGORICAL == Axis('c', ['a', 'b', 'c']).isel(
            slice(0, 2)).kind

    def test_rename(self):
        ax = Axis('x', [1, 2]).rename('y')
        assert 'y' == ax.name
        assert_array_equal([1, 2], ax.values)

    def test_locate(self):
        ax = Axis('x', [0.0, 0.1, 0.2, 0.3])
        assert 1 == ax.locate(0.1)
        assert 2 == ax.locate(0.1 + 0.1)
        assert slice(1, 3) == ax.locate(slice(0.1, 0.2))
        assert slice(1, 3) == ax.locate(slice(0.2, 0.1))
        assert slice(0, 2) == ax.locate(slice(None, 0.15))
        assert [3, 0] == ax.locate([0.3, 0.0])
        with pytest.raises(KeyError):
            ax.locate(5.0)
        with pytest.raises(ValueError):
            ax.locate(slice(0.0, 0.2, 2))

    def test_locate_descending(self):
        ax = Axis('lat', [30.0, 20.0, 10.0, 0.0])
        assert slice(1, 3) == ax.locate(slice(10.0, 20.0))
        assert slice(0, 2) == ax.locate(slice(20.0, None))

    def test_locate_labels(self):
        ax = Axis('c', ['a', 'b', 'c', 'd'])
        assert 2 == ax.locate('c')
        assert slice(1, 3) == ax.locate(slice('b', 'c'))
        assert slice(1, 3) == ax.locate(slice('c', 'b'))

    def test_repr(self):
        assert "Axis('x', 3 values: 1 .. 3, regular)" == repr(Axis('x', [1, 2, 3]))
        assert "Axis('x', 0 values: empty, irregular)" == repr(Axis('x', []))
