import numpy as np
import pytest
from numpy.testing import assert_array_equal

from cubeset.chunks import GridChunks, RegularChunks
from cubeset.concat import ConcatHandle, block_grid, concat_handles
from cubeset.errors import ShapeMismatchError
from cubeset.handles import FillHandle, NumpyHandle


def test_block_grid():
    a, b = NumpyHandle(np.zeros(2)), NumpyHandle(np.ones(3))
    grid = block_grid([a, b])
    assert (2,) == grid.shape
    assert grid[1] is b

    grid = block_grid([[1, None], [2, 3]])
    assert (2, 2) == grid.shape
    assert grid[0, 1] is None

    assert grid is block_grid(grid)

    with pytest.raises(ValueError):
        block_grid([[1, 2], 3])


class TestConcatHandle:

    def test_1d(self):
        h = ConcatHandle([np.arange(3), np.arange(10, 12)])
        assert (5,) == h.shape
        assert (2,) == h.grid_shape
        assert ((3, 2),) == h.block_lengths
        assert_array_equal([0, 1, 2, 10, 11], h[...])
        assert_array_equal([2, 10], h[2:4])
        assert_array_equal([0, 2, 11], h[::2])
        assert 10 == h[3]
        assert (0,) == h[5:].shape

    def test_2d_grid(self):
        a = np.arange(6).reshape(2, 3)
        blocks = [[a, a + 100], [a + 200, a + 300]]
        h = ConcatHandle(blocks)
        expect = np.block(blocks)
        assert (4, 6) == h.shape
        assert_array_equal(expect, h[...])
        assert_array_equal(expect[1:3, 2:5], h[1:3, 2:5])
        assert_array_equal(expect[3], h[3])
        assert_array_equal(expect[:, 4], h[:, 4])

    def test_dtype_promotion(self):
        h = ConcatHandle([np.arange(2, dtype='i2'), np.arange(2, dtype='f4')])
        assert np.dtype('f4') == h.dtype
        assert np.dtype('f4') == h[...].dtype
        h = ConcatHandle([np.arange(2)], dtype='f8')
        assert np.dtype('f8') == h[...].dtype

    def test_missing_block(self):
        a = np.arange(4.0).reshape(2, 2)
        h = ConcatHandle([[a, None], [a, a]])
        assert (4, 4) == h.shape
        assert isinstance(h.block(0, 1), FillHandle)
        out = h[...]
        assert np.all(np.isnan(out[:2, 2:]))
        assert_array_equal(a, out[:2, :2])
        assert_array_equal(a, out[2:, 2:])

    def test_missing_block_fill_value(self):
        h = ConcatHandle([np.arange(2), None], fill_value=-1, block_lengths=[(2, 3)])
        assert_array_equal([0, 1, -1, -1, -1], h[...])

    def test_missing_slab_needs_lengths(self):
        with pytest.raises(ShapeMismatchError):
            ConcatHandle([np.arange(2), None])
        with pytest.raises(ValueError):
            ConcatHandle([None, None])
        h = ConcatHandle([None, None], dtype='i4', block_lengths=[(1, 2)])
        assert (3,) == h.shape
        assert_array_equal([np.iinfo('i4').max] * 3, h[...])

    def test_length_mismatch(self):
        a = np.zeros((2, 2))
        b = np.zeros((3, 2))
        with pytest.raises(ShapeMismatchError) as e:
            ConcatHandle([[a, b]], name='tas')
        assert 'tas' == e.value.name
        with pytest.raises(ShapeMismatchError):
            ConcatHandle([np.zeros(2)], block_lengths=[(3,)])

    def test_ndim_mismatch(self):
        with pytest.raises(ShapeMismatchError):
            ConcatHandle([np.zeros((2, 2)), np.zeros((2, 2))])

    def test_chunks(self):
        a = NumpyHandle(np.zeros(8), chunks=4)
        h = ConcatHandle([a, a])
        assert RegularChunks(4, 0, 16) == h.chunks[0]
        h = ConcatHandle([np.zeros(3), np.zeros(5)])
        assert (3, 5) == h.chunks[0].lengths

    def test_chunks_keep_offset(self):
        chunks = GridChunks([RegularChunks(8, 3, 5), RegularChunks(2, 0, 2)])
        a = NumpyHandle(np.zeros((5, 2)), chunks=chunks)
        h = ConcatHandle([[a, a]])
        assert (3, 0) == h.chunks.grid_offset
        assert (5,) == h.chunks[0].lengths

    def test_read_only(self):
        h = ConcatHandle([np.arange(2)])
        assert h.read_only
        with pytest.raises(PermissionError):
            h[0] = 1


def test_concat_handles():
    a = np.arange(6).reshape(2, 3)
    h = concat_handles([a, a + 10], axis=1)
    assert_array_equal(np.concatenate([a, a + 10], axis=1), h[...])
    h = concat_handles([a, None, a], axis=-2, fill_value=0,
                       block_lengths=[(2, 2, 2), None])
    assert (6, 3) == h.shape
    assert_array_equal(np.zeros((2, 3)), h[2:4])
    with pytest.raises(ValueError):
        concat_handles([None])
