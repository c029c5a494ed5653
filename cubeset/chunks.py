"""Chunk geometry of lazy arrays.

A chunk geometry is described per dimension, either as regular chunks with
a fixed length and a grid offset or as an explicit list of chunk lengths.
Regular chunks with offset ``o`` and chunk length ``c`` start with a partial
chunk of length ``c - o``; ``o`` is the number of positions that precede
index 0 inside the first physical chunk.
"""
import itertools
import numbers

import numpy as np

from cubeset.util import normalize_chunks, normalize_shape


class _DimChunks(object):

    @property
    def boundaries(self):
        return _boundaries(self.lengths)

    def __len__(self):
        return len(self.lengths)

    def __eq__(self, other):
        return (isinstance(other, _DimChunks) and
                self.lengths == other.lengths and
                self.grid_offset == other.grid_offset)


class RegularChunks(_DimChunks):

    def __init__(self, chunksize, offset, size):
        chunksize = int(chunksize)
        offset = int(offset)
        size = int(size)
        if chunksize < 1:
            raise ValueError('chunk size must be positive, got {}'.format(chunksize))
        if not 0 <= offset < chunksize:
            raise ValueError('chunk offset must be in [0, {}), got {}'
                             .format(chunksize, offset))
        if size < 0:
            raise ValueError('negative dimension length {}'.format(size))
        self.chunksize = chunksize
        self.offset = offset
        self.size = size

    @property
    def lengths(self):
        if self.size == 0:
            return ()
        first = min(self.chunksize - self.offset, self.size)
        rest = self.size - first
        n_full, last = divmod(rest, self.chunksize)
        lengths = (first,) + (self.chunksize,) * n_full
        if last:
            lengths += (last,)
        return lengths

    @property
    def approx_chunksize(self):
        return self.chunksize

    @property
    def grid_offset(self):
        return self.offset

    def subset(self, start, stop):
        return RegularChunks(self.chunksize, (self.offset + start) % self.chunksize,
                             stop - start)

    def __repr__(self):
        return 'RegularChunks({}, {}, {})'.format(self.chunksize, self.offset,
                                                  self.size)


class IrregularChunks(_DimChunks):

    def __init__(self, lengths):
        lengths = tuple(int(n) for n in lengths)
        if any(n < 0 for n in lengths):
            raise ValueError('negative chunk length in {}'.format(lengths))
        self._lengths = lengths
        self.size = sum(lengths)

    @property
    def lengths(self):
        return self._lengths

    @property
    def approx_chunksize(self):
        return max(self._lengths, default=1) or 1

    @property
    def grid_offset(self):
        # a short leading chunk is read as padding of a grid of the largest
        # chunk length
        if self._lengths and self._lengths[0] < self.approx_chunksize:
            return self.approx_chunksize - self._lengths[0]
        return 0

    def subset(self, start, stop):
        lengths = []
        for chunk_start, chunk_stop in _boundaries(self._lengths):
            lo = max(chunk_start, start)
            hi = min(chunk_stop, stop)
            if hi > lo:
                lengths.append(hi - lo)
        return chunks_from_lengths(lengths)

    def __repr__(self):
        return 'IrregularChunks({})'.format(list(self._lengths))


def _boundaries(lengths):
    stops = np.cumsum(lengths, dtype='i8')
    return [(int(stop - n), int(stop)) for n, stop in zip(lengths, stops)]


def chunks_from_lengths(lengths):
    """Describe a list of chunk lengths, as :class:`RegularChunks` where the
    pattern allows it."""
    lengths = tuple(int(n) for n in lengths if n)
    size = sum(lengths)
    if not lengths:
        return RegularChunks(1, 0, 0)
    if len(lengths) == 1:
        return RegularChunks(lengths[0], 0, size)
    chunksize = lengths[1] if len(lengths) > 2 else max(lengths)
    interior_ok = all(n == chunksize for n in lengths[1:-1])
    if interior_ok and lengths[0] <= chunksize and lengths[-1] <= chunksize:
        return RegularChunks(chunksize, chunksize - lengths[0], size)
    return IrregularChunks(lengths)


def concat_chunks(dims):
    """Concatenate the chunks of consecutive pieces of one dimension."""
    dims = [d for d in dims if d.size]
    if len(dims) == 1 and isinstance(dims[0], RegularChunks):
        # a lone piece keeps its place in the chunk grid
        d = dims[0]
        return RegularChunks(d.chunksize, d.offset, d.size)
    lengths = []
    for d in dims:
        lengths.extend(d.lengths)
    return chunks_from_lengths(lengths)


class GridChunks(object):
    """The chunk geometry of an n-dimensional array, one chunk description
    per dimension."""

    def __init__(self, dims):
        self.dims = tuple(dims)

    @property
    def shape(self):
        return tuple(d.size for d in self.dims)

    @property
    def ndim(self):
        return len(self.dims)

    @property
    def approx_chunksize(self):
        return tuple(d.approx_chunksize for d in self.dims)

    @property
    def grid_offset(self):
        return tuple(d.grid_offset for d in self.dims)

    @property
    def nchunks(self):
        return int(np.prod([len(d) for d in self.dims], dtype='i8'))

    def __getitem__(self, item):
        return self.dims[item]

    def __len__(self):
        return len(self.dims)

    def __iter__(self):
        """Iterate over chunks, yielding one tuple of slices per chunk."""
        per_dim = [[slice(start, stop) for start, stop in d.boundaries]
                   for d in self.dims]
        return itertools.product(*per_dim)

    def subset(self, selection):
        """Chunk geometry of a basic selection made of non-negative ints and
        unit-step slices. Dimensions selected with an int are dropped."""
        dims = []
        for d, dim_sel in zip(self.dims, selection):
            if isinstance(dim_sel, numbers.Integral):
                continue
            dims.append(d.subset(dim_sel.start, dim_sel.stop))
        return GridChunks(dims)

    def __eq__(self, other):
        return isinstance(other, GridChunks) and self.dims == other.dims

    def __repr__(self):
        return 'GridChunks({})'.format(', '.join(repr(d) for d in self.dims))


def regular_grid(shape, chunks, offsets=None):
    shape = normalize_shape(shape)
    if offsets is None:
        offsets = (0,) * len(shape)
    return GridChunks(RegularChunks(c, o, s)
                      for c, o, s in zip(chunks, offsets, shape))


def normalize_grid(chunks, shape, typesize=8):
    """Convenience function to normalize a chunk description for an array
    of the given shape. Accepts a :class:`GridChunks`, an int or a tuple of
    ints (None or -1 meaning the full dimension), or True/None to guess."""
    shape = normalize_shape(shape)
    if isinstance(chunks, GridChunks):
        if chunks.shape != shape:
            raise ValueError('chunk geometry covers shape {}, expected {}'
                             .format(chunks.shape, shape))
        return chunks
    chunks = normalize_chunks(chunks, shape, typesize)
    return regular_grid(shape, chunks)
