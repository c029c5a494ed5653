"""Lazy concatenation of a grid of array handles.

A :class:`ConcatHandle` stitches an n-dimensional grid of handles into one
array, the same way ``numpy.block`` would but without reading anything until
the result is indexed. Block ``(i, j, ...)`` of the grid lands at the
position given by the extents of the blocks before it along every
dimension, so all blocks of a slab along one dimension must have the same
length in that dimension.

Grid cells may be ``None``: the source is missing and its block reads as
the missing value of the result dtype.
"""
import numpy as np

from cubeset.chunks import GridChunks, RegularChunks, concat_chunks
from cubeset.errors import ShapeMismatchError
from cubeset.handles import ArrayHandle, FillHandle, as_handle, selection_shape
from cubeset.indexing import BlockIndexer
from cubeset.util import default_fill_value


def block_grid(blocks):
    """Build an object array of handles from a nested list of blocks, where
    the nesting depth gives the grid dimensions. An object array is returned
    as it is."""
    if isinstance(blocks, np.ndarray) and blocks.dtype == object:
        return blocks
    shape = []
    level = blocks
    while isinstance(level, (list, tuple)):
        shape.append(len(level))
        if not level:
            break
        level = level[0]
    grid = np.empty(tuple(shape), dtype=object)
    for idx in np.ndindex(*grid.shape):
        cell = blocks
        for i in idx:
            if not isinstance(cell, (list, tuple)) or i >= len(cell):
                raise ValueError('ragged block grid')
            cell = cell[i]
        if isinstance(cell, (list, tuple)):
            raise ValueError('ragged block grid')
        # element assignment keeps sequences such as handles intact
        grid[idx] = cell
    return grid


def _slab_cells(grid, dim, i):
    return [c for c in np.take(grid, [i], axis=dim).flat if c is not None]


class ConcatHandle(ArrayHandle):
    """A read-only array made of a grid of blocks.

    Parameters
    ----------
    blocks : nested list or object ndarray
        Grid of handles (or anything :func:`cubeset.handles.as_handle`
        accepts); ``None`` marks a missing block.
    fill_value : scalar, optional
        Value of missing blocks, the missing value of the result dtype by
        default.
    dtype : dtype, optional
        Result dtype. Defaults to the promotion of all block dtypes and is
        required when no block is present.
    block_lengths : sequence, optional
        Per dimension, the block lengths, or None to infer them from the
        blocks. Needed for slabs made entirely of missing blocks.
    name : str, optional
        Name reported in errors.

    """

    def __init__(self, blocks, fill_value=None, dtype=None, block_lengths=None,
                 name=None):
        grid = block_grid(blocks)
        name = name or 'concatenation'
        present = [c for c in grid.flat if c is not None]
        cells = np.empty(grid.shape, dtype=object)
        for idx in np.ndindex(*grid.shape):
            if grid[idx] is not None:
                cells[idx] = as_handle(grid[idx])
        handles = [c for c in cells.flat if c is not None]

        for h in handles:
            if h.ndim != grid.ndim:
                raise ShapeMismatchError(name, 'a block with {} dimensions in a '
                                         '{}-dimensional grid'.format(h.ndim, grid.ndim))

        if dtype is None:
            if not present:
                raise ValueError('dtype is required when no block is present')
            dtype = np.result_type(*[h.dtype for h in handles])
        self._dtype = np.dtype(dtype)
        if fill_value is None:
            fill_value = default_fill_value(self._dtype)
        self.fill_value = fill_value

        if block_lengths is None:
            block_lengths = (None,) * grid.ndim
        self._block_lengths = tuple(
            self._infer_lengths(cells, dim, given, name)
            for dim, given in enumerate(block_lengths)
        )

        # missing cells read as constant blocks of the right shape
        for idx in np.ndindex(*grid.shape):
            if cells[idx] is None:
                shape = tuple(lengths[i] for lengths, i in zip(self._block_lengths, idx))
                cells[idx] = FillHandle(shape, self._dtype, self.fill_value)

        self._cells = cells
        self._offsets = [np.concatenate([[0], np.cumsum(lengths, dtype='i8')])
                         for lengths in self._block_lengths]
        self._shape = tuple(int(o[-1]) for o in self._offsets)
        self._chunks = self._concat_chunks(grid)

    @staticmethod
    def _infer_lengths(cells, dim, given, name):
        lengths = []
        for i in range(cells.shape[dim]):
            found = {h.shape[dim] for h in _slab_cells(cells, dim, i)}
            if given is not None:
                found.add(int(given[i]))
            if len(found) > 1:
                raise ShapeMismatchError(name, 'blocks {} along dimension {} have '
                                         'lengths {}'.format(i, dim, sorted(found)))
            if not found:
                raise ShapeMismatchError(name, 'no block {} along dimension {} to '
                                         'take its length from'.format(i, dim))
            lengths.append(found.pop())
        return tuple(lengths)

    def _concat_chunks(self, grid):
        dims = []
        for dim, lengths in enumerate(self._block_lengths):
            pieces = []
            for i, n in enumerate(lengths):
                # chunks of the first present block of each slab
                present = [self._cells[idx] for idx in np.ndindex(*grid.shape)
                           if idx[dim] == i and grid[idx] is not None]
                if present:
                    pieces.append(present[0].chunks[dim])
                else:
                    pieces.append(RegularChunks(max(n, 1), 0, n))
            dims.append(concat_chunks(pieces))
        return GridChunks(dims)

    @property
    def shape(self):
        return self._shape

    @property
    def dtype(self):
        return self._dtype

    @property
    def chunks(self):
        return self._chunks

    @property
    def grid_shape(self):
        return self._cells.shape

    @property
    def block_lengths(self):
        return self._block_lengths

    def block(self, *idx):
        """The handle at grid position `idx`."""
        return self._cells[idx]

    def _read(self, selection):
        out = np.empty(selection_shape(selection), dtype=self._dtype)
        if out.size == 0:
            return out
        indexer = BlockIndexer(selection, self._offsets)
        for block_coords, block_selection, out_selection in indexer:
            out[out_selection] = self._cells[block_coords][block_selection]
        return out

    def __repr__(self):
        return '<ConcatHandle {} {} grid {}>'.format(self.shape, self.dtype,
                                                     self.grid_shape)


def concat_handles(handles, axis=0, **kwargs):
    """Concatenate handles along one existing dimension."""
    handles = list(handles)
    ndim = next((as_handle(h).ndim for h in handles if h is not None), None)
    if ndim is None:
        raise ValueError('cannot concatenate without any block present')
    if axis < 0:
        axis += ndim
    shape = tuple(len(handles) if d == axis else 1 for d in range(ndim))
    grid = np.empty(shape, dtype=object)
    for i, h in enumerate(handles):
        idx = tuple(i if d == axis else 0 for d in range(ndim))
        grid[idx] = h
    return ConcatHandle(grid, **kwargs)
