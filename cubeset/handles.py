"""Lazy array handles.

A handle exposes the shape, dtype and chunk geometry of an n-dimensional
array and reads blocks of it on demand through numpy-style basic indexing
(ints, slices with a positive step and Ellipsis). Handles never read data
when they are created, and reading never changes a handle, so the same
handle can be shared by any number of cubes and read concurrently as far as
the underlying storage allows it.
"""
import numpy as np

from cubeset.chunks import GridChunks, RegularChunks, normalize_grid, regular_grid
from cubeset.core import Array
from cubeset.errors import ReadOnlyError
from cubeset.indexing import ceildiv, is_integer, normalize_basic_selection


def selection_shape(selection):
    """Shape of the result of a normalized basic selection."""
    return tuple(max(0, ceildiv(s.stop - s.start, s.step))
                 for s in selection if not is_integer(s))


class ArrayHandle(object):
    """Base class of lazy array handles.

    Subclasses provide ``shape``, ``dtype`` and ``chunks`` and implement
    ``_read`` (and ``_write`` when writable), which receive a normalized
    selection holding one non-negative int or one explicit slice per
    dimension.
    """

    fill_value = None
    read_only = True

    @property
    def ndim(self):
        return len(self.shape)

    @property
    def size(self):
        return int(np.prod(self.shape, dtype='i8'))

    @property
    def itemsize(self):
        return self.dtype.itemsize

    @property
    def nbytes(self):
        return self.size * self.itemsize

    def __len__(self):
        if self.shape:
            return self.shape[0]
        raise TypeError('len() of unsized object')

    def __getitem__(self, selection):
        selection, out_shape = normalize_basic_selection(selection, self.shape)
        out = self._read(selection)
        if out_shape == ():
            return out[()]
        return out

    def __setitem__(self, selection, value):
        if self.read_only:
            raise ReadOnlyError()
        selection, out_shape = normalize_basic_selection(selection, self.shape)
        value = np.asarray(value)
        if value.shape != out_shape:
            value = np.broadcast_to(value, out_shape)
        self._write(selection, value)

    def __array__(self, dtype=None, copy=None):
        a = self[...]
        if dtype is not None:
            a = a.astype(dtype)
        return a

    def _write(self, selection, value):
        raise ReadOnlyError()

    def __repr__(self):
        return '<{} {} {}>'.format(type(self).__name__, self.shape, self.dtype)


class NumpyHandle(ArrayHandle):
    """Handle over an in-memory array. The whole array is one chunk unless
    `chunks` says otherwise."""

    def __init__(self, array, chunks=None):
        array = np.asarray(array)
        if array.dtype.kind == 'O' and array.size and \
                all(isinstance(v, str) for v in array.flat):
            array = array.astype(str)
        self._array = array
        if chunks is None:
            chunks = False
        self._chunks = normalize_grid(chunks, array.shape, array.dtype.itemsize)

    @property
    def shape(self):
        return self._array.shape

    @property
    def dtype(self):
        return self._array.dtype

    @property
    def chunks(self):
        return self._chunks

    def _read(self, selection):
        return np.array(self._array[selection])


class StoredHandle(ArrayHandle):
    """Handle over a persisted :class:`cubeset.core.Array`."""

    def __init__(self, array):
        self.array = array

    @property
    def shape(self):
        return self.array.shape

    @property
    def dtype(self):
        return self.array.dtype

    @property
    def chunks(self):
        return regular_grid(self.array.shape, self.array.chunks)

    @property
    def fill_value(self):
        return self.array.fill_value

    @property
    def read_only(self):
        return self.array.read_only

    def _read(self, selection):
        return np.asarray(self.array.get_basic_selection(selection))

    def _write(self, selection, value):
        self.array.set_basic_selection(selection, value)


class SubsetHandle(ArrayHandle):
    """A window of a parent handle. `region` is a basic selection with
    unit-step slices; dimensions selected by an int are dropped. The chunk
    geometry of the window keeps the position of the parent's chunk
    boundaries, so a window starting inside a chunk has a grid offset."""

    def __init__(self, parent, region):
        region, shape = normalize_basic_selection(region, parent.shape)
        if any(not is_integer(s) and s.step != 1 for s in region):
            raise ValueError('subset regions must use slices with step 1')
        self.parent = parent
        self.region = region
        self._shape = shape

    @property
    def shape(self):
        return self._shape

    @property
    def dtype(self):
        return self.parent.dtype

    @property
    def chunks(self):
        return self.parent.chunks.subset(self.region)

    @property
    def fill_value(self):
        return self.parent.fill_value

    @property
    def read_only(self):
        return self.parent.read_only

    def _compose(self, selection):
        items = iter(selection)
        composed = []
        for r in self.region:
            if is_integer(r):
                composed.append(r)
                continue
            s = next(items)
            if is_integer(s):
                composed.append(r.start + s)
            else:
                composed.append(slice(r.start + s.start, r.start + s.stop, s.step))
        return tuple(composed)

    def _read(self, selection):
        return np.asarray(self.parent[self._compose(selection)])

    def _write(self, selection, value):
        self.parent[self._compose(selection)] = value


class FillHandle(ArrayHandle):
    """A block of constant value, standing in for a missing source."""

    def __init__(self, shape, dtype, fill_value, chunks=None):
        self._shape = tuple(int(s) for s in shape)
        self._dtype = np.dtype(dtype)
        self.fill_value = fill_value
        self._chunks = normalize_grid(False if chunks is None else chunks,
                                      self._shape)

    @property
    def shape(self):
        return self._shape

    @property
    def dtype(self):
        return self._dtype

    @property
    def chunks(self):
        return self._chunks

    def _read(self, selection):
        return np.full(selection_shape(selection), self.fill_value, dtype=self._dtype)


class RechunkedHandle(ArrayHandle):
    """The data of `parent` described with a different chunk geometry.
    Nothing is copied, only the geometry reported to consumers changes."""

    def __init__(self, parent, chunks):
        self.parent = parent
        self._chunks = normalize_grid(chunks, parent.shape, parent.dtype.itemsize)

    @property
    def shape(self):
        return self.parent.shape

    @property
    def dtype(self):
        return self.parent.dtype

    @property
    def chunks(self):
        return self._chunks

    @property
    def fill_value(self):
        return self.parent.fill_value

    @property
    def read_only(self):
        return self.parent.read_only

    def _read(self, selection):
        return np.asarray(self.parent[selection])

    def _write(self, selection, value):
        self.parent[selection] = value


class NewAxisHandle(ArrayHandle):
    """`parent` with a length-1 dimension inserted at position `axis`."""

    def __init__(self, parent, axis=-1):
        ndim = parent.ndim + 1
        if axis < 0:
            axis += ndim
        if not 0 <= axis < ndim:
            raise ValueError('axis {} out of range for {} dimensions'.format(axis, ndim))
        self.parent = parent
        self.axis = axis

    @property
    def shape(self):
        shape = list(self.parent.shape)
        shape.insert(self.axis, 1)
        return tuple(shape)

    @property
    def dtype(self):
        return self.parent.dtype

    @property
    def chunks(self):
        dims = list(self.parent.chunks.dims)
        dims.insert(self.axis, RegularChunks(1, 0, 1))
        return GridChunks(dims)

    @property
    def fill_value(self):
        return self.parent.fill_value

    def _read(self, selection):
        new_sel = selection[self.axis]
        rest = selection[:self.axis] + selection[self.axis + 1:]
        out = np.asarray(self.parent[rest])
        if is_integer(new_sel):
            return out
        out_axis = sum(1 for s in selection[:self.axis] if not is_integer(s))
        out = np.expand_dims(out, out_axis)
        n = selection_shape((new_sel,))[0]
        return out[(slice(None),) * out_axis + (slice(0, n),)]


class CFHandle(ArrayHandle):
    """Decodes packed values on read: elements equal to ``missing_value``
    (or ``_FillValue``) become NaN, then ``scale_factor`` and ``add_offset``
    are applied."""

    def __init__(self, parent, attrs):
        self.parent = parent
        missing = attrs.get('missing_value', attrs.get('_FillValue'))
        self.missing_value = missing
        self.scale_factor = attrs.get('scale_factor')
        self.add_offset = attrs.get('add_offset')
        if parent.dtype.kind == 'f':
            self._dtype = parent.dtype
        else:
            self._dtype = np.dtype('f8')

    @property
    def shape(self):
        return self.parent.shape

    @property
    def dtype(self):
        return self._dtype

    @property
    def chunks(self):
        return self.parent.chunks

    @property
    def fill_value(self):
        return self._dtype.type(np.nan)

    def _read(self, selection):
        raw = np.asarray(self.parent[selection])
        out = raw.astype(self._dtype)
        if self.missing_value is not None:
            out[raw == self.missing_value] = np.nan
        if self.scale_factor is not None:
            out *= self.scale_factor
        if self.add_offset is not None:
            out += self.add_offset
        return out


def needs_cf_decoding(attrs, dtype):
    if np.dtype(dtype).kind not in 'iuf':
        return False
    return any(k in attrs for k in ('missing_value', '_FillValue',
                                    'scale_factor', 'add_offset'))


def as_handle(data, chunks=None):
    """Wrap `data` in a handle: handles are returned as they are, persisted
    arrays get a :class:`StoredHandle`, anything else is read into memory."""
    if isinstance(data, ArrayHandle):
        handle = data
    elif isinstance(data, Array):
        handle = StoredHandle(data)
    else:
        return NumpyHandle(data, chunks=chunks)
    if chunks is not None:
        handle = RechunkedHandle(handle, chunks)
    return handle
