"""Attributes of persisted arrays and groups, kept as one JSON document
under the ``.zattrs`` key.

A few attribute names belong to the layout rather than to the user: the
axis names of an array, the padding in front of an axis array and the
values of an axis that cannot be stored as an array.
:meth:`Attributes.user_attrs` leaves them out.
"""
from collections.abc import MutableMapping

from cubeset.errors import ReadOnlyError
from cubeset.storage import Store, attrs_key
from cubeset.util import json_dumps, json_loads, nolock

#: attribute listing the axis names of an array, the name xarray reads
DIMENSIONS_KEY = '_ARRAY_DIMENSIONS'
#: attribute holding the number of padding positions in front of an axis
ARRAY_OFFSET_KEY = '_ARRAY_OFFSET'
#: attribute holding axis values that cannot be stored as an array
ARRAY_VALUES_KEY = '_ARRAYVALUES'

LAYOUT_KEYS = frozenset([DIMENSIONS_KEY, ARRAY_OFFSET_KEY, ARRAY_VALUES_KEY])


class Attributes(MutableMapping):
    """User attributes of an array or group, available as the ``attrs``
    property of :class:`cubeset.core.Array` and
    :class:`cubeset.hierarchy.Group`.

    Every change rewrites the whole document, holding the lock
    `synchronizer` gives for `key` if there is one.

    Parameters
    ----------
    store : MutableMapping
    key : str, optional
        Store key of the document.
    read_only : bool, optional
    cache : bool, optional
        Keep the decoded document between reads (the default).
    synchronizer : object, optional

    """

    def __init__(self, store, key=attrs_key, read_only=False, cache=True,
                 synchronizer=None):
        if not key:
            raise ValueError('attributes need a store key')
        self.store = Store._ensure_store(store)
        self.key = key
        self.read_only = read_only
        self.cache = cache
        self.synchronizer = synchronizer
        self._cached = None

    def _load(self):
        try:
            encoded = self.store[self.key]
        except KeyError:
            return dict()
        return json_loads(encoded)

    def asdict(self):
        """All attributes, layout keys included."""
        if not self.cache:
            return self._load()
        if self._cached is None:
            self._cached = self._load()
        return self._cached

    def user_attrs(self):
        """The attributes without the layout keys."""
        return {k: v for k, v in self.asdict().items() if k not in LAYOUT_KEYS}

    @property
    def dimensions(self):
        """Axis names recorded for an array, or None."""
        dims = self.asdict().get(DIMENSIONS_KEY)
        if dims is None:
            return None
        return list(dims)

    def refresh(self):
        """Drop the cached document, reading it again from the store."""
        if self.cache:
            self._cached = self._load()

    def __getitem__(self, item):
        return self.asdict()[item]

    def __contains__(self, item):
        return item in self.asdict()

    def __iter__(self):
        return iter(self.asdict())

    def __len__(self):
        return len(self.asdict())

    def keys(self):
        return self.asdict().keys()

    def _commit(self, edit, start_empty=False):
        if self.read_only:
            raise ReadOnlyError()
        lock = nolock if self.synchronizer is None else self.synchronizer[self.key]
        with lock:
            d = dict() if start_empty else self._load()
            edit(d)
            encoded = json_dumps(d)
            self.store[self.key] = encoded
            if self.cache:
                # cache the document as a reader would decode it
                self._cached = json_loads(encoded)

    def __setitem__(self, item, value):
        def edit(d):
            d[item] = value
        self._commit(edit)

    def __delitem__(self, item):
        def edit(d):
            del d[item]
        self._commit(edit)

    # noinspection PyMethodOverriding
    def update(self, *args, **kwargs):
        """Set several attributes in one write."""
        def edit(d):
            d.update(*args, **kwargs)
        self._commit(edit)

    def put(self, d):
        """Replace all attributes by the items of `d` in one write."""
        def edit(new):
            new.update(d)
        self._commit(edit, start_empty=True)

    def _ipython_key_completions_(self):
        return sorted(self)
