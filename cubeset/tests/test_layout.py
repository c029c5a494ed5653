import numpy as np
import pytest
from numpy.testing import assert_array_equal

from cubeset.axis import Axis
from cubeset.chunkoffset import ARRAY_OFFSET_KEY, ARRAY_VALUES_KEY, read_axis_values
from cubeset.errors import (ChunkOffsetConflictError, ContainsGroupError,
                            ShapeMismatchError, SizeMismatchError, VariableExistsError)
from cubeset.hierarchy import DIMENSIONS_KEY
from cubeset.layout import AxisInfo, VariableInfo, append_layout, create_layout
from cubeset.storage import MemoryStore


def _infos(offset=0):
    time = Axis('time', [1, 2, 3, 4, 5])
    lon = Axis('lon', [0.0, 1.0])
    axis_infos = [AxisInfo(time, offset), AxisInfo(lon, 0)]
    var_infos = [VariableInfo('tas', ['time', 'lon'], 'f4', (2, 2), {'units': 'K'}, None)]
    return axis_infos, var_infos


class TestCreateLayout:

    def test_layout(self):
        store = MemoryStore()
        axis_infos, var_infos = _infos(offset=1)
        g = create_layout(store, {'title': 'test'}, axis_infos, var_infos)
        assert ['lon', 'tas', 'time'] == list(g)
        assert {'title': 'test'} == g.attrs.asdict()

        time = g['time']
        assert (6,) == time.shape
        assert_array_equal([0, 1, 2, 3, 4, 5], time[...])
        assert 1 == time.attrs[ARRAY_OFFSET_KEY]
        assert ['time'] == time.attrs[DIMENSIONS_KEY]

        tas = g['tas']
        assert (6, 2) == tas.shape
        assert (2, 2) == tas.chunks
        assert np.dtype('f4') == tas.dtype
        assert np.isnan(tas.fill_value)
        assert ['time', 'lon'] == g.dimensions('tas')
        assert 'K' == tas.attrs['units']
        # no data is written
        assert 0 == tas.nchunks_initialized

    def test_labels(self):
        store = MemoryStore()
        var = Axis('var', ['a', 'bb'])
        g = create_layout(store, None, [AxisInfo(var, 1)], [])
        assert np.dtype('U2') == g['var'].dtype
        assert_array_equal(['', 'a', 'bb'], g['var'][...])
        assert_array_equal(['a', 'bb'], read_axis_values(g['var']))

    def test_mixed_labels(self):
        store = MemoryStore()
        var = Axis('var', np.array([1, 'a'], dtype=object))
        g = create_layout(store, None, [AxisInfo(var, 1)], [])
        assert_array_equal([0, 1, 2], g['var'][...])
        assert [None, 1, 'a'] == g['var'].attrs[ARRAY_VALUES_KEY]

    def test_exists(self):
        store = MemoryStore()
        axis_infos, var_infos = _infos()
        create_layout(store, None, axis_infos, var_infos)
        with pytest.raises(ContainsGroupError):
            create_layout(store, None, axis_infos, var_infos)
        g = create_layout(store, None, axis_infos[:1], [], overwrite=True)
        assert ['time'] == list(g)

    def test_invalid(self):
        axis_infos, var_infos = _infos()
        bad = [VariableInfo('tas', ['time', 'level'], 'f4', (2, 2), {}, None)]
        with pytest.raises(ShapeMismatchError):
            create_layout(MemoryStore(), None, axis_infos, bad)
        bad = [VariableInfo('tas', ['time', 'lon'], 'f4', (2,), {}, None)]
        with pytest.raises(ShapeMismatchError):
            create_layout(MemoryStore(), None, axis_infos, bad)
        with pytest.raises(VariableExistsError):
            create_layout(MemoryStore(), None, axis_infos, var_infos * 2)
        with pytest.raises(ValueError):
            create_layout(MemoryStore(), None, axis_infos * 2, var_infos)


class TestAppendLayout:

    def test_append(self):
        store = MemoryStore()
        axis_infos, var_infos = _infos(offset=1)
        g = create_layout(store, None, axis_infos, var_infos)
        level = Axis('level', [1000, 850])
        new = [VariableInfo('ta', ['time', 'level'], 'f8', (3, 2), {}, None)]
        append_layout(g, [axis_infos[0], AxisInfo(level, 0)], new)
        assert ['level', 'lon', 'ta', 'tas', 'time'] == list(g)
        assert (6, 2) == g['ta'].shape

    def test_append_uses_stored_axes(self):
        store = MemoryStore()
        axis_infos, var_infos = _infos()
        g = create_layout(store, None, axis_infos, var_infos)
        new = [VariableInfo('pr', ['time'], 'f4', (5,), {}, None)]
        append_layout(g, [], new)
        assert (5,) == g['pr'].shape

    def test_conflicts(self):
        store = MemoryStore()
        axis_infos, var_infos = _infos(offset=1)
        g = create_layout(store, None, axis_infos, var_infos)

        with pytest.raises(VariableExistsError):
            append_layout(g, axis_infos, var_infos)

        new = [VariableInfo('pr', ['time'], 'f4', (2,), {}, None)]
        longer = AxisInfo(Axis('time', np.arange(7)), 1)
        with pytest.raises(SizeMismatchError) as e:
            append_layout(g, [longer], new)
        assert 'time' == e.value.name

        shifted = AxisInfo(axis_infos[0].axis, 0)
        with pytest.raises(ChunkOffsetConflictError):
            append_layout(g, [shifted], new)

        # nothing was written by the failed calls
        assert ['lon', 'tas', 'time'] == list(g)
