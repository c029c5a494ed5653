"""Decomposition of basic selections into per-chunk reads and writes.

A basic selection holds, for every dimension, an integer or a slice with a
positive step, and at most one Ellipsis. On a chunked array, each item is
projected onto the chunks of its dimension; the product of these
projections names every chunk the selection touches, the elements selected
within it and where they land in the result.

Chunks along a dimension are either regular, all of one length except
possibly the last, or blocks of varying length as in a concatenation.
"""
import collections
import itertools
import numbers

import numpy as np

from cubeset.errors import BoundsCheckError, NegativeStepError, err_too_many_indices


def is_integer(x):
    return isinstance(x, numbers.Integral)


def is_scalar(value, dtype):
    """Whether `value` is a single element of `dtype` rather than an array."""
    if np.isscalar(value):
        return True
    # a tuple can be one record of a structured dtype
    return (isinstance(value, tuple) and dtype.names is not None and
            len(value) == len(dtype.names))


def ceildiv(a, b):
    return -(-a // b)


def ensure_tuple(v):
    return v if isinstance(v, tuple) else (v,)


def normalize_integer_selection(dim_sel, dim_len):
    """`dim_sel` as an index in ``range(dim_len)``, counting from the end
    when negative."""
    index = int(dim_sel)
    if index < 0:
        index += dim_len
    if not 0 <= index < dim_len:
        raise BoundsCheckError(dim_len)
    return index


def _slice_indices(dim_sel, dim_len):
    start, stop, step = dim_sel.indices(dim_len)
    if step < 1:
        raise NegativeStepError()
    return start, stop, step, max(0, ceildiv(stop - start, step))


def _unsupported(dim_sel):
    raise IndexError('unsupported selection item for basic indexing; expected '
                     'integer or slice, got {!r}'.format(type(dim_sel)))


def replace_ellipsis(selection, shape):
    """Expand `selection` to one item per dimension of `shape`; the Ellipsis
    and any missing trailing items become full slices."""
    selection = ensure_tuple(selection)
    where = [i for i, s in enumerate(selection) if s is Ellipsis]
    if len(where) > 1:
        raise IndexError("an index can only have a single ellipsis ('...')")
    if where:
        i = where[0]
        fill = max(len(shape) - (len(selection) - 1), 0)
        selection = selection[:i] + (slice(None),) * fill + selection[i + 1:]
    if len(selection) > len(shape):
        err_too_many_indices(selection, shape)
    return selection + (slice(None),) * (len(shape) - len(selection))


def normalize_basic_selection(selection, shape):
    """Turn a basic selection into a tuple holding one non-negative int or
    one ``slice(start, stop, step)`` with explicit, in-bounds values per
    dimension. Returns the normalized selection and the shape of the result
    (dimensions selected by an int are dropped)."""
    normalized = []
    out_shape = []
    for dim_sel, dim_len in zip(replace_ellipsis(selection, shape), shape):
        if is_integer(dim_sel):
            normalized.append(normalize_integer_selection(dim_sel, dim_len))
        elif isinstance(dim_sel, slice):
            start, stop, step, nitems = _slice_indices(dim_sel, dim_len)
            if nitems == 0:
                # an empty slice has no in-bounds stop, keep it well formed
                start = stop = min(start, dim_len)
            normalized.append(slice(start, stop, step))
            out_shape.append(nitems)
        else:
            _unsupported(dim_sel)
    return tuple(normalized), tuple(out_shape)


class _RegularDim(object):
    """Chunks of `chunk_len` along a dimension of `dim_len`."""

    def __init__(self, dim_len, chunk_len):
        self.dim_len = dim_len
        self.chunk_len = chunk_len

    def locate(self, index):
        return index // self.chunk_len

    def bounds(self, ix):
        lo = ix * self.chunk_len
        return lo, min(self.dim_len, lo + self.chunk_len)

    def span(self, start, stop):
        return range(start // self.chunk_len, ceildiv(stop, self.chunk_len))


class _BlockDim(object):
    """Blocks of varying length; `offsets` holds the start of every block
    followed by the dimension length. Empty blocks are never located."""

    def __init__(self, offsets):
        self.offsets = offsets
        self.dim_len = int(offsets[-1])

    def locate(self, index):
        return int(np.searchsorted(self.offsets, index, side='right')) - 1

    def bounds(self, ix):
        return int(self.offsets[ix]), int(self.offsets[ix + 1])

    def span(self, start, stop):
        return range(self.locate(start),
                     int(np.searchsorted(self.offsets, stop, side='left')))


ChunkDimProjection = collections.namedtuple(
    'ChunkDimProjection',
    ('dim_chunk_ix', 'dim_chunk_sel', 'dim_out_sel')
)
"""Where a chunk's elements selected along one dimension go: the chunk's
index, the selection within the chunk, and the selection within the result
(None for a dimension picked by an integer)."""


class DimIndexer(object):
    """Projects the selection item of one dimension onto its chunks."""

    def __init__(self, dim_sel, dim):
        self.dim = dim
        self.drops = is_integer(dim_sel)
        if self.drops:
            self.index = normalize_integer_selection(dim_sel, dim.dim_len)
            self.nitems = 1
        elif isinstance(dim_sel, slice):
            self.start, self.stop, self.step, self.nitems = \
                _slice_indices(dim_sel, dim.dim_len)
        else:
            _unsupported(dim_sel)

    def __iter__(self):
        if self.drops:
            ix = self.dim.locate(self.index)
            yield ChunkDimProjection(ix, self.index - self.dim.bounds(ix)[0], None)
        elif self.nitems:
            yield from self._slice_projections()

    def _slice_projections(self):
        start, stop, step = self.start, self.stop, self.step
        for ix in self.dim.span(start, stop):
            lo, hi = self.dim.bounds(ix)
            if start < lo:
                # first selected element at or after the chunk start
                first = lo + (start - lo) % step
                out_start = ceildiv(lo - start, step)
            else:
                first = start
                out_start = 0
            last = min(stop, hi)
            if last <= first:
                continue
            n = ceildiv(last - first, step)
            yield ChunkDimProjection(ix, slice(first - lo, last - lo, step),
                                     slice(out_start, out_start + n))


ChunkProjection = collections.namedtuple(
    'ChunkProjection',
    ('chunk_coords', 'chunk_selection', 'out_selection')
)
"""The elements of one chunk a selection touches: the chunk's grid
coordinates, the selection within the chunk and the matching selection
within the result, or within the value being written."""


class _GridIndexer(object):

    def __init__(self, selection, dims):
        selection = replace_ellipsis(selection, tuple(d.dim_len for d in dims))
        self.dim_indexers = [DimIndexer(s, d) for s, d in zip(selection, dims)]
        self.shape = tuple(d.nitems for d in self.dim_indexers if not d.drops)

    def __iter__(self):
        for projections in itertools.product(*self.dim_indexers):
            yield ChunkProjection(
                tuple(p.dim_chunk_ix for p in projections),
                tuple(p.dim_chunk_sel for p in projections),
                tuple(p.dim_out_sel for p in projections if p.dim_out_sel is not None),
            )


class BasicIndexer(_GridIndexer):
    """Decompose a basic selection of an array with regular chunks of shape
    ``chunks`` into per-chunk projections."""

    def __init__(self, selection, shape, chunks):
        super().__init__(selection, [_RegularDim(n, c) for n, c in zip(shape, chunks)])


class BlockIndexer(_GridIndexer):
    """Decompose a basic selection into reads from the cells of a block grid.

    ``block_offsets`` holds, for every dimension, the cumulative start of each
    block followed by the dimension length, so block ``i`` along a dimension
    covers ``[offsets[i], offsets[i + 1])``.
    """

    def __init__(self, selection, block_offsets):
        super().__init__(selection, [_BlockDim(o) for o in block_offsets])
