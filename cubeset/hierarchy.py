"""Groups: the stored form of a dataset, one array per variable and axis.

Member arrays record the names of their axes in the ``_ARRAY_DIMENSIONS``
attribute; arrays sharing an axis name share that axis.
"""
from collections.abc import MutableMapping

from cubeset.attrs import DIMENSIONS_KEY, Attributes
from cubeset.core import Array
from cubeset.errors import ContainsArrayError, GroupNotFoundError, ReadOnlyError
from cubeset.meta import decode_group_metadata
from cubeset.storage import (
    _path_to_prefix,
    attrs_key,
    contains_array,
    contains_group,
    group_meta_key,
    init_array,
    init_group,
    listdir,
    normalize_store_arg,
    rmdir,
)
from cubeset.util import (
    InfoReporter,
    TreeNode,
    TreeViewer,
    default_fill_value,
    nolock,
    normalize_dtype,
    normalize_shape,
    normalize_storage_path,
)


class Group(MutableMapping):
    """A group of arrays in an initialized store, mapping member names to
    :class:`cubeset.core.Array`.

    Parameters
    ----------
    store : MutableMapping
        Store holding the group, written by :func:`cubeset.storage.init_group`.
    path : string, optional
        Path of the group within the store.
    read_only : bool, optional
        Refuse modifications, of the group and of its members.
    cache_attrs : bool, optional
        Keep attributes in memory between reads (the default).
    synchronizer : object, optional
        Passed on to member arrays; the group holds the lock of its own
        metadata key while adding or removing members.

    """

    def __init__(self, store, path=None, read_only=False, cache_attrs=True,
                 synchronizer=None):
        store = normalize_store_arg(store)
        self._store = store
        self._path = normalize_storage_path(path)
        self._key_prefix = _path_to_prefix(self._path)
        self._read_only = read_only
        self._synchronizer = synchronizer

        if contains_array(store, self._path):
            raise ContainsArrayError(path)
        try:
            decode_group_metadata(store[self._key_prefix + group_meta_key])
        except KeyError as e:
            raise GroupNotFoundError(path) from e

        self._attrs = Attributes(store, key=self._key_prefix + attrs_key,
                                 read_only=read_only, cache=cache_attrs,
                                 synchronizer=synchronizer)

    @property
    def store(self):
        return self._store

    @property
    def path(self):
        return self._path

    @property
    def name(self):
        """Absolute name in the hierarchy, '/' for the root group."""
        return '/' + self._path

    @property
    def read_only(self):
        return self._read_only

    @property
    def synchronizer(self):
        return self._synchronizer

    @property
    def attrs(self):
        """The group's attributes, see :class:`cubeset.attrs.Attributes`."""
        return self._attrs

    @property
    def info(self):
        return InfoReporter(self)

    def __eq__(self, other):
        if not isinstance(other, Group):
            return False
        return ((self._store, self._path, self._read_only) ==
                (other._store, other._path, other._read_only))

    def _member_path(self, name):
        return self._key_prefix + normalize_storage_path(name)

    def __iter__(self):
        """Member array names, sorted."""
        for name in listdir(self._store, self._path):
            if contains_array(self._store, self._key_prefix + name):
                yield name

    def __len__(self):
        return sum(1 for _ in self)

    def __contains__(self, name):
        return contains_array(self._store, self._member_path(name))

    def __getitem__(self, name):
        path = self._member_path(name)
        if not contains_array(self._store, path):
            raise KeyError(name)
        return Array(self._store, path=path, read_only=self._read_only,
                     synchronizer=self._synchronizer, cache_attrs=self._attrs.cache)

    def __setitem__(self, name, value):
        raise TypeError('use create_array to add members to a group')

    def __delitem__(self, name):
        with self._lock():
            path = self._member_path(name)
            if not contains_array(self._store, path):
                raise KeyError(name)
            rmdir(self._store, path)

    def _lock(self):
        # guards changes to the membership of the group
        if self._read_only:
            raise ReadOnlyError()
        if self._synchronizer is None:
            return nolock
        return self._synchronizer[self._key_prefix + group_meta_key]

    def array_keys(self):
        return iter(self)

    def arrays(self):
        """(name, array) pairs of the members, sorted by name."""
        for name in self:
            yield name, self[name]

    def dimensions(self, name):
        """Axis names of the member array `name`, empty if it has none
        recorded."""
        return self[name].attrs.dimensions or []

    def create_array(self, name, shape, chunks=True, dtype='f8', fill_value=None,
                     compressor='default', dimensions=None, attrs=None,
                     overwrite=False):
        """Add a member array.

        Parameters
        ----------
        name : string
        shape : int or tuple of ints
        chunks : bool, int or tuple of ints, optional
            Chunk shape, guessed when True.
        dtype : string or dtype, optional
        fill_value : object, optional
            Value read for chunks never written; the missing value of
            `dtype` by default, see :func:`cubeset.util.default_fill_value`.
        compressor : Codec or str, optional
            See :func:`cubeset.storage.resolve_compressor`.
        dimensions : sequence of strings, optional
            Axis names, one per dimension.
        attrs : dict, optional
            Further attributes.
        overwrite : bool, optional
            Replace a member of the same name instead of raising
            :class:`cubeset.errors.ContainsArrayError`.

        Returns
        -------
        a : cubeset.core.Array

        """
        dtype = normalize_dtype(dtype)
        shape = normalize_shape(shape)
        new_attrs = dict(attrs or {})
        if dimensions is not None:
            dimensions = list(dimensions)
            if len(dimensions) != len(shape):
                # checked up front, nothing is written
                raise ValueError('{} dimension names given for an array with {} '
                                 'dimensions'.format(len(dimensions), len(shape)))
            new_attrs[DIMENSIONS_KEY] = dimensions
        if fill_value is None:
            fill_value = default_fill_value(dtype)

        with self._lock():
            path = self._member_path(name)
            init_array(self._store, shape=shape, chunks=chunks, dtype=dtype,
                       compressor=compressor, fill_value=fill_value,
                       overwrite=overwrite, path=path)
            a = Array(self._store, path=path, synchronizer=self._synchronizer)
            if new_attrs:
                a.attrs.put(new_attrs)
        return a

    def tree(self):
        """The members with their shape, dtype and axes, drawn as a tree."""
        nodes = []
        for name, array in self.arrays():
            text = '{} {} {}'.format(name, array.shape, array.dtype)
            dims = array.attrs.dimensions
            if dims:
                text += ' ({})'.format(', '.join(dims))
            nodes.append(TreeNode(text))
        return TreeViewer(TreeNode(self.name, nodes))

    def __repr__(self):
        text = '<{}.{} {!r}'.format(type(self).__module__, type(self).__name__,
                                    self.name)
        if self._read_only:
            text += ' read-only'
        return text + '>'

    def info_items(self):

        def typename(o):
            return '{}.{}'.format(type(o).__module__, type(o).__name__)

        names = list(self)
        items = [('Name', self.name),
                 ('Type', typename(self)),
                 ('Read-only', str(self._read_only))]
        if self._synchronizer is not None:
            items.append(('Synchronizer type', typename(self._synchronizer)))
        items += [('Store type', typename(self._store)),
                  ('No. arrays', len(names))]
        if names:
            items.append(('Arrays', ', '.join(names)))
        return items


_MODES = ('r', 'r+', 'a', 'w', 'w-', 'x')


def open_group(store, mode='a', cache_attrs=True, synchronizer=None, path=None):
    """Open a group using file-mode-like semantics.

    Parameters
    ----------
    store : MutableMapping or string
        Store, or path of a directory in the file system.
    mode : {'r', 'r+', 'a', 'w', 'w-', 'x'}, optional
        'r' opens an existing group read only and 'r+' for writing. 'a'
        opens for writing, creating the group if needed, 'w' creates it
        afresh removing whatever is at `path`, and 'w-' (or 'x') creates it
        only if nothing is stored at `path` yet.
    cache_attrs : bool, optional
    synchronizer : object, optional
    path : string, optional
        Path of the group within the store.

    Returns
    -------
    g : cubeset.hierarchy.Group

    """
    if mode not in _MODES:
        raise ValueError('invalid mode: {!r}'.format(mode))
    store = normalize_store_arg(store)
    path = normalize_storage_path(path)

    if mode == 'w':
        init_group(store, overwrite=True, path=path)
    elif mode in ('w-', 'x') or (mode == 'a' and not contains_group(store, path)):
        # raises if an array or group is stored at path
        init_group(store, path=path)

    return Group(store, path=path, read_only=mode == 'r', cache_attrs=cache_attrs,
                 synchronizer=synchronizer)


def group(store=None, overwrite=False, cache_attrs=True, synchronizer=None,
          path=None):
    """Create a group, in memory if `store` is None, or open the one already
    stored at `path` unless `overwrite` is set."""
    return open_group(store, mode='w' if overwrite else 'a', cache_attrs=cache_attrs,
                      synchronizer=synchronizer, path=path)
