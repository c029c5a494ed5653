"""Stores holding persisted datasets, and the layout of arrays and groups
within them.

A store maps '/'-separated str keys to bytes. The metadata of the array at
path ``tas`` lives under ``tas/.zarray``, its attributes under
``tas/.zattrs`` and its chunks under ``tas/0.0``, ``tas/0.1`` and so on. A
group is a path holding a ``.zgroup`` document.

Any ``MutableMapping`` accepting str keys and bytes values can serve as a
store once wrapped in a :class:`KVStore`. Besides the mapping interface,
stores answer `listdir`, `rmdir` and `getsize` for a path;
:class:`MemoryStore` and :class:`DirectoryStore` do so without scanning
every key where they can.
"""
import os
import shutil
import uuid
from collections.abc import MutableMapping
from threading import Lock
from typing import Any, List, Optional

from numcodecs import get_codec
from numcodecs.compat import ensure_bytes, ensure_contiguous_ndarray

from cubeset.config import config
from cubeset.errors import (
    BadCompressorError,
    ContainsArrayError,
    ContainsGroupError,
    FSPathExistNotDir,
)
from cubeset.meta import encode_array_metadata, encode_group_metadata
from cubeset.util import (
    buffer_size,
    normalize_chunks,
    normalize_dtype,
    normalize_fill_value,
    normalize_shape,
    normalize_storage_path,
    retry_call,
)

array_meta_key = '.zarray'
group_meta_key = '.zgroup'
attrs_key = '.zattrs'


def _path_to_prefix(path: Optional[str]) -> str:
    # expects a normalized path
    return path + '/' if path else ''


def _meta_key(path, name):
    return _path_to_prefix(normalize_storage_path(path)) + name


def resolve_compressor(compressor):
    """The codec chunks get compressed with.

    The string 'default' stands for the ``compressor`` configuration entry,
    itself 'default' for Blosc (Zlib where numcodecs lacks Blosc) or the id
    of a numcodecs codec. None and 'none' mean no compression.
    """
    if not isinstance(compressor, str):
        return compressor
    if compressor == 'default':
        compressor = config.get('compressor')
    if compressor is None or compressor == 'none':
        return None
    if compressor == 'default':
        try:
            from numcodecs import Blosc
        except ImportError:  # pragma: no cover
            from numcodecs import Zlib
            return Zlib()
        return Blosc()
    return get_codec({'id': compressor})


class Store(MutableMapping):
    """Base class of the stores. Directory operations work on the keys;
    subclasses replace them where the backing storage knows its directories."""

    def listdir(self, path: str = '') -> List[str]:
        prefix = _path_to_prefix(normalize_storage_path(path))
        children = set()
        for key in list(self.keys()):
            if key.startswith(prefix) and len(key) > len(prefix):
                children.add(key[len(prefix):].split('/', 1)[0])
        return sorted(children)

    def rmdir(self, path: str = '') -> None:
        prefix = _path_to_prefix(normalize_storage_path(path))
        for key in [k for k in self.keys() if k.startswith(prefix)]:
            del self[key]

    def getsize(self, path: str = '') -> int:
        """Bytes held by the value at `path`, or by the values directly
        below it if `path` is a directory."""
        path = normalize_storage_path(path)
        if path and path in self:
            return buffer_size(self[path])
        prefix = _path_to_prefix(path)
        return sum(buffer_size(self[prefix + name]) for name in self.listdir(path)
                   if prefix + name in self)

    @staticmethod
    def _ensure_store(store: Any):
        if store is None or isinstance(store, Store):
            return store
        if isinstance(store, MutableMapping):
            return KVStore(store)
        raise ValueError('expected a store or a MutableMapping with str keys and '
                         'bytes values, got {!r}'.format(store))


def normalize_store_arg(store: Any) -> Store:
    """A store from None (in memory), a file system path or a mapping."""
    if store is None:
        return MemoryStore()
    if isinstance(store, (str, os.PathLike)):
        return DirectoryStore(store)
    return Store._ensure_store(store)


def contains_array(store, path=None) -> bool:
    """Whether an array is stored at `path`."""
    return _meta_key(path, array_meta_key) in store


def contains_group(store, path=None) -> bool:
    """Whether a group is stored at `path`."""
    return _meta_key(path, group_meta_key) in store


def listdir(store, path=None) -> List[str]:
    """Sorted names of the keys and directories directly below `path`."""
    return Store._ensure_store(store).listdir(path)


def rmdir(store, path=None) -> None:
    """Remove everything stored below `path`."""
    Store._ensure_store(store).rmdir(path)


def getsize(store, path=None) -> int:
    return Store._ensure_store(store).getsize(path)


def _clear_path(store, path, overwrite):
    # make room for new metadata at path
    if overwrite:
        rmdir(store, path)
    elif contains_array(store, path):
        raise ContainsArrayError(path)
    elif contains_group(store, path):
        raise ContainsGroupError(path)


def _require_parent_groups(store, path, overwrite):
    segments = path.split('/') if path else []
    for i in range(len(segments)):
        parent = '/'.join(segments[:i])
        if contains_array(store, parent):
            # an array cannot hold members; it is replaced when overwriting
            _clear_path(store, parent, overwrite)
            store[_meta_key(parent, group_meta_key)] = encode_group_metadata()
        elif not contains_group(store, parent):
            store[_meta_key(parent, group_meta_key)] = encode_group_metadata()


def init_array(store, shape, chunks=True, dtype=None, compressor='default',
               fill_value=None, order='C', overwrite=False, path=None):
    """Write the metadata of a new array at `path`, creating the groups
    above it.

    Parameters
    ----------
    store : MutableMapping
    shape : int or tuple of ints
    chunks : int or tuple of ints or bool, optional
        Chunk shape, see :func:`cubeset.util.normalize_chunks`. True guesses
        one from the shape and dtype.
    dtype : str or dtype, optional
    compressor : Codec or str, optional
        A numcodecs codec, 'default' or 'none', see :func:`resolve_compressor`.
    fill_value : object, optional
        Value of elements in chunks that were never written.
    order : {'C', 'F'}, optional
        Memory layout of the elements within a chunk.
    overwrite : bool, optional
        Remove whatever is stored at `path` first, instead of raising.
    path : str, optional

    """
    store = Store._ensure_store(store)
    path = normalize_storage_path(path)
    _require_parent_groups(store, path, overwrite)
    _clear_path(store, path, overwrite)

    shape = normalize_shape(shape)
    dtype = normalize_dtype(dtype)
    chunks = normalize_chunks(chunks, shape, dtype.itemsize)
    fill_value = normalize_fill_value(fill_value, dtype)
    # scalars fit in one tiny chunk
    codec = resolve_compressor(compressor) if shape else None
    if codec is None:
        compressor_config = None
    else:
        try:
            compressor_config = codec.get_config()
        except AttributeError as e:
            raise BadCompressorError(codec) from e

    meta = dict(shape=shape, chunks=chunks, dtype=dtype,
                compressor=compressor_config, fill_value=fill_value, order=order)
    store[_meta_key(path, array_meta_key)] = encode_array_metadata(meta)


def init_group(store, overwrite=False, path=None):
    """Write the metadata of a new group at `path`, creating the groups
    above it."""
    store = Store._ensure_store(store)
    path = normalize_storage_path(path)
    _require_parent_groups(store, path, overwrite)
    _clear_path(store, path, overwrite)
    store[_meta_key(path, group_meta_key)] = encode_group_metadata()


class KVStore(Store):
    """Wraps a mapping, turning the values written into bytes."""

    def __init__(self, mutablemapping):
        self._mutable_mapping = mutablemapping

    def __getitem__(self, key):
        return self._mutable_mapping[key]

    def __setitem__(self, key, value):
        self._mutable_mapping[key] = ensure_bytes(value)

    def __delitem__(self, key):
        del self._mutable_mapping[key]

    def __contains__(self, key):
        return key in self._mutable_mapping

    def __iter__(self):
        # a snapshot, other threads may be writing
        return iter(list(self._mutable_mapping))

    def __len__(self):
        return len(self._mutable_mapping)

    def __repr__(self):
        return '<{}: \n{}\n at {}>'.format(type(self).__name__,
                                           repr(self._mutable_mapping),
                                           hex(id(self)))

    def __eq__(self, other):
        if isinstance(other, KVStore):
            return self._mutable_mapping == other._mutable_mapping
        return NotImplemented


class MemoryStore(Store):
    """Store keeping values in main memory, safe to write from several
    threads.

    A key cannot also be a directory: once ``a/b`` holds a value, setting
    ``a/b/c`` raises KeyError, as does reading ``a``.
    """

    def __init__(self):
        self._values = dict()
        self._mutex = Lock()

    def __getstate__(self):
        return {'values': self._values}

    def __setstate__(self, state):
        self.__init__()
        self._values.update(state['values'])

    def _check_parents(self, key):
        segments = key.split('/')
        for i in range(1, len(segments)):
            if '/'.join(segments[:i]) in self._values:
                raise KeyError(key)

    def __getitem__(self, key):
        return self._values[key]

    def __setitem__(self, key, value):
        value = ensure_bytes(value)
        with self._mutex:
            self._check_parents(key)
            self._values[key] = value

    def __delitem__(self, key):
        with self._mutex:
            del self._values[key]

    def __contains__(self, key):
        return key in self._values

    def __iter__(self):
        return iter(list(self._values))

    def __len__(self):
        return len(self._values)

    def __eq__(self, other):
        return isinstance(other, MemoryStore) and self._values == other._values

    def rmdir(self, path: str = '') -> None:
        prefix = _path_to_prefix(normalize_storage_path(path))
        with self._mutex:
            if not prefix:
                self._values.clear()
            for key in [k for k in self._values if k.startswith(prefix)]:
                del self._values[key]

    def clear(self):
        with self._mutex:
            self._values.clear()


_PARTIAL_SUFFIX = '.partial'


class DirectoryStore(Store):
    """Store keeping every value in a file below a directory, a key being
    the file's path relative to the directory.

    Values are written to a temporary file next to their destination and
    moved into place once complete, so readers never see half a chunk. Safe
    to write from several threads or processes.

    Parameters
    ----------
    path : string
        Directory of the store, created on the first write.

    """

    def __init__(self, path):
        path = os.path.abspath(os.fspath(path))
        if os.path.exists(path) and not os.path.isdir(path):
            raise FSPathExistNotDir(path)
        self.path = path

    def dir_path(self, path=None):
        """File system path of a store path."""
        path = normalize_storage_path(path)
        if not path:
            return self.path
        return os.path.join(self.path, *path.split('/'))

    def __getitem__(self, key):
        try:
            with open(self.dir_path(key), 'rb') as f:
                return f.read()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError) as e:
            raise KeyError(key) from e

    def __setitem__(self, key, value):
        value = ensure_contiguous_ndarray(value)
        fn = self.dir_path(key)
        if os.path.isdir(fn):
            shutil.rmtree(fn)
        parent = os.path.dirname(fn)
        if os.path.isfile(parent):
            raise KeyError(key)
        os.makedirs(parent, exist_ok=True)

        partial = '{}.{}{}'.format(fn, uuid.uuid4().hex, _PARTIAL_SUFFIX)
        try:
            with open(partial, 'wb') as f:
                f.write(value)
            # the destination may be held open briefly by another reader
            retry_call(os.replace, (partial, fn), exceptions=(PermissionError,))
        finally:
            if os.path.exists(partial):  # pragma: no cover
                os.remove(partial)

    def __delitem__(self, key):
        fn = self.dir_path(key)
        if os.path.isfile(fn):
            os.remove(fn)
        elif os.path.isdir(fn):
            shutil.rmtree(fn)
        else:
            raise KeyError(key)

    def __contains__(self, key):
        return os.path.isfile(self.dir_path(key))

    def __eq__(self, other):
        return isinstance(other, DirectoryStore) and self.path == other.path

    def keys(self):
        for dirpath, _, filenames in os.walk(self.path):
            rel = os.path.relpath(dirpath, self.path)
            prefix = '' if rel == '.' else rel.replace(os.sep, '/') + '/'
            for name in filenames:
                if not name.endswith(_PARTIAL_SUFFIX):
                    yield prefix + name

    def __iter__(self):
        return self.keys()

    def __len__(self):
        return sum(1 for _ in self.keys())

    def listdir(self, path=None):
        dirpath = self.dir_path(path)
        if not os.path.isdir(dirpath):
            return []
        return sorted(name for name in os.listdir(dirpath)
                      if not name.endswith(_PARTIAL_SUFFIX))

    def rmdir(self, path=None):
        dirpath = self.dir_path(path)
        if os.path.isdir(dirpath):
            shutil.rmtree(dirpath)

    def getsize(self, path=None):
        fn = self.dir_path(path)
        if os.path.isfile(fn):
            return os.path.getsize(fn)
        if not os.path.isdir(fn):
            return 0
        return sum(entry.stat().st_size for entry in os.scandir(fn)
                   if entry.is_file())

    def clear(self):
        if os.path.isdir(self.path):
            shutil.rmtree(self.path)


def atexit_rmtree(path, isdir=os.path.isdir, rmtree=shutil.rmtree):  # pragma: no cover
    """Remove a directory, if still there, at interpreter exit."""
    if isdir(path):
        rmtree(path)
