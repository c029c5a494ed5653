import math
import re

import numpy as np
from numcodecs import get_codec
from numcodecs.compat import ensure_bytes, ensure_ndarray

from cubeset.attrs import Attributes
from cubeset.errors import ArrayNotFoundError, ReadOnlyError
from cubeset.indexing import BasicIndexer, is_scalar
from cubeset.meta import decode_array_metadata
from cubeset.storage import (
    KVStore,
    _path_to_prefix,
    array_meta_key,
    attrs_key,
    getsize,
    listdir,
    normalize_store_arg,
)
from cubeset.util import (
    InfoReporter,
    check_array_shape,
    human_readable_size,
    is_total_slice,
    nolock,
    normalize_storage_path,
)

# chunk keys are the chunk's grid coordinates joined by dots
_CHUNK_KEY = re.compile(r'^\d+(\.\d+)*$')


class Array(object):
    """A chunked, compressed N-dimensional array persisted in a store.

    This is the storage for one variable of a saved dataset. Reads and
    writes address elements with basic selections and touch only the chunks
    the selection overlaps.

    Parameters
    ----------
    store : MutableMapping
        Store holding the array's metadata, written by
        :func:`cubeset.storage.init_array`.
    path : string, optional
        Path of the array within the store.
    read_only : bool, optional
        Refuse modifications.
    synchronizer : object, optional
        Gives the lock to hold while a chunk is rewritten, e.g. a
        :class:`cubeset.sync.ThreadSynchronizer`.
    cache_attrs : bool, optional
        Keep attributes in memory between reads (the default).

    """

    def __init__(self, store, path=None, read_only=False, synchronizer=None,
                 cache_attrs=True):
        self._store = normalize_store_arg(store)
        self._path = normalize_storage_path(path)
        self._key_prefix = _path_to_prefix(self._path)
        self._read_only = bool(read_only)
        self._synchronizer = synchronizer

        with self._lock(self._key_prefix + array_meta_key):
            self._load_metadata()

        self._attrs = Attributes(self._store, key=self._key_prefix + attrs_key,
                                 read_only=read_only, synchronizer=synchronizer,
                                 cache=cache_attrs)

    def _lock(self, key):
        if self._synchronizer is None:
            return nolock
        return self._synchronizer[key]

    def _load_metadata(self):
        try:
            encoded = self._store[self._key_prefix + array_meta_key]
        except KeyError as e:
            raise ArrayNotFoundError(self._path) from e
        meta = decode_array_metadata(encoded)
        self._shape = meta['shape']
        self._chunks = meta['chunks']
        self._dtype = meta['dtype']
        self._fill_value = meta['fill_value']
        self._order = meta['order']
        if meta['compressor'] is None:
            self._compressor = None
        else:
            self._compressor = get_codec(meta['compressor'])

    @property
    def store(self):
        return self._store

    @property
    def path(self):
        """Path of the array within the store."""
        return self._path

    @property
    def name(self):
        """Absolute name in the hierarchy, like '/tas', or None for an array
        at the root of its store."""
        if not self._path:
            return None
        return '/' + self._path

    @property
    def basename(self):
        if self._path:
            return self._path.split('/')[-1]
        return None

    @property
    def read_only(self):
        return self._read_only

    @property
    def shape(self):
        return self._shape

    @property
    def chunks(self):
        """Shape of one chunk."""
        return self._chunks

    @property
    def dtype(self):
        return self._dtype

    @property
    def compressor(self):
        """The numcodecs codec chunks are compressed with, or None."""
        return self._compressor

    @property
    def fill_value(self):
        """Value read back for elements of chunks never written."""
        return self._fill_value

    @property
    def order(self):
        """Memory layout of the elements within a chunk, 'C' or 'F'."""
        return self._order

    @property
    def synchronizer(self):
        return self._synchronizer

    @property
    def attrs(self):
        """The array's attributes, see :class:`cubeset.attrs.Attributes`."""
        return self._attrs

    @property
    def ndim(self):
        return len(self._shape)

    @property
    def size(self):
        return math.prod(self._shape)

    @property
    def itemsize(self):
        return self._dtype.itemsize

    @property
    def nbytes(self):
        """Bytes the elements take uncompressed."""
        return self.size * self.itemsize

    @property
    def nbytes_stored(self):
        """Bytes stored for the array: chunks, metadata and attributes."""
        return getsize(self._store, self._path)

    @property
    def cdata_shape(self):
        """Number of chunks along every dimension."""
        return tuple(-(-s // c) for s, c in zip(self._shape, self._chunks))

    @property
    def nchunks(self):
        return math.prod(self.cdata_shape)

    @property
    def nchunks_initialized(self):
        """Number of chunks written so far."""
        return sum(1 for name in listdir(self._store, self._path)
                   if _CHUNK_KEY.match(name))

    def __eq__(self, other):
        if not isinstance(other, Array):
            return False
        return ((self._store, self._path, self._read_only) ==
                (other._store, other._path, other._read_only))

    def __array__(self, *args, **kwargs):
        a = np.asarray(self[...])
        if args:
            a = a.astype(args[0])
        return a

    def __len__(self):
        if not self._shape:
            raise TypeError('len() of unsized object')
        return self._shape[0]

    def __getitem__(self, selection):
        """Read elements; `selection` may hold integers, slices with a
        positive step and one Ellipsis."""
        return self.get_basic_selection(selection)

    def __setitem__(self, selection, value):
        self.set_basic_selection(selection, value)

    def get_basic_selection(self, selection=Ellipsis):
        """Read the elements `selection` picks.

        Returns
        -------
        out : ndarray or scalar
            A scalar when every dimension is picked by an integer.

        """
        indexer = BasicIndexer(selection, self._shape, self._chunks)
        out = np.empty(indexer.shape, dtype=self._dtype, order=self._order)
        if out.size:
            for coords, chunk_sel, out_sel in indexer:
                chunk = self._read_chunk(coords)
                if chunk is not None:
                    out[out_sel] = chunk[chunk_sel]
                elif self._fill_value is not None:
                    out[out_sel] = self._fill_value
        return out if out.shape else out[()]

    def set_basic_selection(self, selection, value):
        """Write `value`, a scalar or an array of the selection's shape, to
        the elements `selection` picks.

        Every chunk touched is rewritten while holding the lock the
        synchronizer gives for its key.
        """
        if self._read_only:
            raise ReadOnlyError()
        indexer = BasicIndexer(selection, self._shape, self._chunks)
        whole = is_scalar(value, self._dtype) or not indexer.shape
        if not whole:
            if not hasattr(value, 'shape'):
                value = np.asanyarray(value)
            check_array_shape('value', value, indexer.shape)
        for coords, chunk_sel, out_sel in indexer:
            part = value if whole else value[out_sel]
            with self._lock(self._chunk_key(coords)):
                self._update_chunk(coords, chunk_sel, part)

    def _chunk_key(self, coords):
        # a zero-dimensional array has a single chunk '0'
        return self._key_prefix + ('.'.join(map(str, coords)) or '0')

    def _new_chunk(self, value):
        return np.full(self._chunks, value, dtype=self._dtype, order=self._order)

    def _read_chunk(self, coords):
        # None for a chunk never written
        try:
            cdata = self._store[self._chunk_key(coords)]
        except KeyError:
            return None
        return self._decode_chunk(cdata)

    def _update_chunk(self, coords, chunk_sel, value):
        if is_total_slice(chunk_sel, self._chunks):
            # the old contents are overwritten entirely, no need to read them
            if is_scalar(value, self._dtype):
                chunk = self._new_chunk(value)
            else:
                chunk = np.asarray(value).astype(self._dtype, order=self._order,
                                                 copy=False)
        else:
            chunk = self._read_chunk(coords)
            if chunk is None:
                # elements past the end of the array stay zero
                fill = 0 if self._fill_value is None else self._fill_value
                chunk = self._new_chunk(fill)
            elif not chunk.flags.writeable:
                chunk = chunk.copy()
            chunk[chunk_sel] = value
        self._store[self._chunk_key(coords)] = self._encode_chunk(chunk)

    def _decode_chunk(self, cdata):
        if self._compressor is not None:
            cdata = self._compressor.decode(cdata)
        flat = ensure_ndarray(cdata).view(self._dtype).reshape(-1, order='A')
        return flat.reshape(self._chunks, order=self._order)

    def _encode_chunk(self, chunk):
        if self._compressor is not None:
            cdata = self._compressor.encode(chunk)
        else:
            cdata = np.ascontiguousarray(chunk)
        if isinstance(self._store, KVStore):
            # plain mappings hold immutable bytes
            cdata = ensure_bytes(cdata)
        return cdata

    def __repr__(self):
        parts = ['{}.{}'.format(type(self).__module__, type(self).__name__)]
        if self.name:
            parts.append(repr(self.name))
        parts += [str(self._shape), str(self._dtype)]
        if self._read_only:
            parts.append('read-only')
        return '<{}>'.format(' '.join(parts))

    @property
    def info(self):
        """A text report on the array's layout and storage."""
        return InfoReporter(self)

    def info_items(self):

        def typename(o):
            return '{}.{}'.format(type(o).__module__, type(o).__name__)

        def size(n):
            if n <= 2**10:
                return str(n)
            return '{} ({})'.format(n, human_readable_size(n))

        items = [('Name', self.name)] if self.name is not None else []
        items += [('Type', typename(self)),
                  ('Data type', str(self._dtype)),
                  ('Shape', str(self._shape)),
                  ('Chunk shape', str(self._chunks)),
                  ('Order', self._order),
                  ('Read-only', str(self._read_only)),
                  ('Compressor', repr(self._compressor))]
        if self._synchronizer is not None:
            items.append(('Synchronizer type', typename(self._synchronizer)))
        items.append(('Store type', typename(self._store)))

        stored = self.nbytes_stored
        items.append(('No. bytes', size(self.nbytes)))
        if stored:
            items += [('No. bytes stored', size(stored)),
                      ('Storage ratio', '{:.1f}'.format(self.nbytes / stored))]
        items.append(('Chunks initialized',
                      '{}/{}'.format(self.nchunks_initialized, self.nchunks)))
        return items
