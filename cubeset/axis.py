"""Named axes of cubes and collections.

An axis pairs a name with an ordered, immutable sequence of values and a
lookup kind telling how the values are laid out:

* ``REGULAR``: numbers with a constant non-zero step,
* ``IRREGULAR``: any other numeric or datetime64 sequence,
* ``CATEGORICAL``: labels,
* ``NONE``: plain positions ``0 .. n-1`` used when a dimension has no
  coordinate values.
"""
import enum
import numbers

import numpy as np


class LookupKind(enum.Enum):
    REGULAR = 'regular'
    IRREGULAR = 'irregular'
    CATEGORICAL = 'categorical'
    NONE = 'none'


def _as_values(values):
    values = np.asarray(values)
    if values.ndim != 1:
        raise ValueError('axis values must be one-dimensional, got shape {}'
                         .format(values.shape))
    if values.dtype.kind == 'O' and len(values) and \
            all(isinstance(v, str) for v in values):
        values = values.astype(str)
    return values


_KIND_GROUPS = {
    "b": "number", "i": "number", "u": "number", "f": "number", "c": "number",
    "U": "text", "S": "text", "M": "datetime", "m": "timedelta", "O": "object",
}


def values_equal(a, b):
    """Element-wise equality of two value sequences of possibly different
    dtypes; sequences of unrelated kinds (e.g. labels and numbers) are never
    equal. Missing values equal each other."""
    a = np.asarray(a)
    b = np.asarray(b)
    if a.shape != b.shape:
        return False
    if _KIND_GROUPS.get(a.dtype.kind) != _KIND_GROUPS.get(b.dtype.kind):
        return False
    # missing values (NaN, NaT) at the same positions compare equal
    equal_nan = a.dtype.kind in 'fcmM' or b.dtype.kind in 'fcmM'
    return bool(np.array_equal(a, b, equal_nan=equal_nan))


def is_sorted(values, reverse=False):
    values = np.asarray(values)
    if len(values) < 2:
        return True
    if reverse:
        return bool(np.all(values[1:] <= values[:-1]))
    return bool(np.all(values[1:] >= values[:-1]))


def is_continuous(values):
    """Return True for numeric or datetime64 values sorted in either
    direction, i.e. values describing a range that can be joined with other
    ranges by ordering them."""
    values = np.asarray(values)
    if values.dtype.kind not in 'iufmM':
        return False
    return is_sorted(values) or is_sorted(values, reverse=True)


def infer_lookup_kind(values):
    values = _as_values(values)
    kind = values.dtype.kind
    if kind not in 'iufmM':
        return LookupKind.CATEGORICAL
    if kind in 'mM' or len(values) < 2:
        # times are never treated as ranges
        return LookupKind.IRREGULAR
    if kind in 'iu':
        steps = np.diff(values.astype('i8'))
        if steps[0] != 0 and np.all(steps == steps[0]):
            return LookupKind.REGULAR
        return LookupKind.IRREGULAR
    first, last = values[0], values[-1]
    if first != last and np.allclose(values, np.linspace(first, last, len(values))):
        return LookupKind.REGULAR
    return LookupKind.IRREGULAR


def _pad_values(values, n):
    if values.dtype.kind in 'US':
        return np.full(n, '', dtype=values.dtype)
    if values.dtype.kind == 'O':
        return np.full(n, None, dtype=object)
    if len(values) >= 2:
        step = values[1] - values[0]
    elif values.dtype.kind in 'mM':
        step = np.timedelta64(1, np.datetime_data(values.dtype)[0])
    else:
        step = 1
    steps = np.arange(n, 0, -1)
    return (values[0] - steps * step).astype(values.dtype)


def prepend_values(values, n):
    """Extend a stepped sequence of values backwards by `n` steps.

    Categorical values are padded with empty labels instead. The padded
    positions never become visible, readers drop them again.
    """
    values = _as_values(values)
    if n < 0:
        raise ValueError('cannot prepend a negative number of values')
    if n == 0:
        return values
    if len(values) == 0:
        raise ValueError('cannot extend an empty sequence of values')
    return np.concatenate([_pad_values(values, n), values])


class Axis(object):
    """A named dimension.

    Parameters
    ----------
    name : str
        Axis name, unique within a collection.
    values : array_like
        One-dimensional sequence of axis values. A private read-only copy is
        kept.
    kind : LookupKind or str, optional
        Lookup kind, inferred from the values when not given.

    """

    def __init__(self, name, values, kind=None):
        if not isinstance(name, str) or not name:
            raise ValueError('axis name must be a non-empty string, got {!r}'
                             .format(name))
        values = np.array(_as_values(values))
        values.flags.writeable = False
        if kind is None:
            kind = infer_lookup_kind(values)
        else:
            kind = LookupKind(kind)
        self._name = name
        self._values = values
        self._kind = kind

    @classmethod
    def default(cls, name, n):
        """An axis of plain positions, for dimensions without coordinates."""
        return cls(name, np.arange(n), kind=LookupKind.NONE)

    @property
    def name(self):
        return self._name

    @property
    def values(self):
        return self._values

    @property
    def kind(self):
        return self._kind

    @property
    def dtype(self):
        return self._values.dtype

    @property
    def is_continuous(self):
        return is_continuous(self._values)

    @property
    def step(self):
        """The constant step of a regular axis."""
        if self._kind is not LookupKind.REGULAR:
            raise TypeError('axis {!r} is not regular'.format(self._name))
        return self._values[1] - self._values[0]

    def __len__(self):
        return len(self._values)

    def __iter__(self):
        return iter(self._values)

    def isel(self, selection):
        """Positional selection; an int returns the value, a slice returns a
        new axis."""
        if isinstance(selection, numbers.Integral):
            return self._values[selection]
        values = self._values[selection]
        kind = self._kind if self._kind is not LookupKind.REGULAR else None
        return Axis(self._name, values, kind=kind)

    def rename(self, name):
        return Axis(name, self._values, kind=self._kind)

    def locate(self, selector):
        """Translate a value selector into a position or a slice of positions.

        A slice selects the closed interval between its bounds (in either
        order, a missing bound is open). Any other selector must match one
        axis value; floating point values match within tolerance. A list or
        array of values gives a list of positions.
        """
        values = self._values
        if isinstance(selector, (list, np.ndarray)):
            return [self.locate(v) for v in selector]
        if isinstance(selector, slice):
            if selector.step is not None:
                raise ValueError('value slices do not support a step')
            return self._locate_interval(selector.start, selector.stop)
        if values.dtype.kind in 'fc':
            matches = np.nonzero(np.isclose(values, selector))[0]
        else:
            matches = np.nonzero(values == selector)[0]
        if len(matches) == 0:
            raise KeyError('{!r} not found in axis {!r}'.format(selector, self._name))
        return int(matches[0])

    def _locate_interval(self, lo, hi):
        values = self._values
        if not self.is_continuous:
            # labels: positions of the bounds, inclusive
            start = 0 if lo is None else self.locate(lo)
            stop = len(values) if hi is None else self.locate(hi) + 1
            if stop <= start:
                start, stop = stop - 1, start + 1
            return slice(start, stop)
        if lo is not None and hi is not None and hi < lo:
            lo, hi = hi, lo
        descending = len(values) > 1 and values[0] > values[-1]
        search = values[::-1] if descending else values
        start = 0 if lo is None else int(np.searchsorted(search, lo, side='left'))
        stop = len(values) if hi is None else int(np.searchsorted(search, hi, side='right'))
        if descending:
            start, stop = len(values) - stop, len(values) - start
        return slice(start, max(start, stop))

    def __eq__(self, other):
        if not isinstance(other, Axis):
            return NotImplemented
        return (self._name == other._name and
                self._kind is other._kind and
                values_equal(self._values, other._values))

    __hash__ = None

    def __repr__(self):
        n = len(self._values)
        if n == 0:
            desc = 'empty'
        elif n == 1:
            desc = '{}'.format(self._values[0])
        else:
            desc = '{} .. {}'.format(self._values[0], self._values[-1])
        return 'Axis({!r}, {} values: {}, {})'.format(self._name, n, desc,
                                                      self._kind.value)
