import numpy as np
import pytest
from numpy.testing import assert_array_equal

from cubeset.axis import Axis
from cubeset.chunkoffset import (ARRAY_OFFSET_KEY, ARRAY_VALUES_KEY, axis_attrs,
                                 chunk_offsets, padded_values, read_array_offset,
                                 read_axis_values, reconcile_chunk_offsets)
from cubeset.dataset import Cube
from cubeset.errors import ChunkOffsetConflictError
from cubeset.hierarchy import group


def _cube(start, n=10, chunks=4):
    time = Axis('time', np.arange(n))
    lon = Axis('lon', [0.0, 1.0])
    cube = Cube([time, lon], np.zeros((n, 2))).setchunks({'time': chunks})
    return cube.isel(time=slice(start, None))


def test_chunk_offsets():
    assert {'time': 0, 'lon': 0} == chunk_offsets(_cube(0))
    assert {'time': 1, 'lon': 0} == chunk_offsets(_cube(5))


def test_reconcile():
    offsets = reconcile_chunk_offsets([_cube(1), _cube(5)])
    assert {'time': 1, 'lon': 0} == offsets
    offsets = reconcile_chunk_offsets({'a': _cube(2)}, offsets={'lon': 0})
    assert {'time': 2, 'lon': 0} == offsets


def test_reconcile_conflict():
    with pytest.raises(ChunkOffsetConflictError) as e:
        reconcile_chunk_offsets([_cube(1), _cube(2)])
    assert 'time' == e.value.name
    with pytest.raises(ChunkOffsetConflictError):
        reconcile_chunk_offsets([_cube(0)], offsets={'time': 3})


def test_padded_values():
    ax = Axis('time', [10, 11, 12])
    assert_array_equal([8, 9, 10, 11, 12], padded_values(ax, 2))
    assert_array_equal([10, 11, 12], padded_values(ax, 0))


def test_axis_attrs():
    assert {ARRAY_OFFSET_KEY: 2} == axis_attrs(2, np.arange(3))
    values = np.array([None, 'a', 3], dtype=object)
    attrs = axis_attrs(1, values)
    assert [None, 'a', 3] == attrs[ARRAY_VALUES_KEY]
    assert 0 == read_array_offset({})
    assert 1 == read_array_offset(attrs)


def test_read_axis_values():
    g = group()
    a = g.create_array('time', shape=5, chunks=False, dtype='i8',
                       attrs={ARRAY_OFFSET_KEY: 2})
    a[...] = np.arange(5)
    assert_array_equal([2, 3, 4], read_axis_values(a))

    b = g.create_array('var', shape=3, chunks=False, dtype='i8',
                       attrs={ARRAY_OFFSET_KEY: 1, ARRAY_VALUES_KEY: ['', 'x', 'y']})
    b[...] = np.arange(3)
    assert_array_equal(['x', 'y'], read_axis_values(b))
