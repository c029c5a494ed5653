"""How same-named axes of several collections are joined.

For every axis name, :func:`analyse_axis_join` looks at the value sequences
the sources hold for it and picks one of three strategies:

``AllEqual``
    every source holds the same values, the axis is shared as it is;
``SortedRanges``
    the sources hold disjoint sorted ranges, which are concatenated in value
    order;
``NewDim``
    the sources are stacked along a new axis (only built by
    :func:`cubeset.merge.merge_along_axis`).

The strategies are plain namedtuples; :func:`blocksize`, :func:`perm_indices`,
:func:`block_index` and :func:`whole_axis` dispatch on them exhaustively.
"""
import collections

import numpy as np

from cubeset.axis import is_continuous, is_sorted, values_equal
from cubeset.errors import (
    CategoricalJoinError,
    InconsistentAxisKindError,
    InconsistentOrderingError,
    OverlappingRangesError,
    ShapeMismatchError,
)


AllEqual = collections.namedtuple('AllEqual', ('values',))

SortedRanges = collections.namedtuple('SortedRanges', ('sequences', 'perm', 'members'))
SortedRanges.__doc__ = """Disjoint sorted ranges.

Parameters
----------
sequences
    The value sequences joined, one per block.
perm
    Indices into `sequences` giving their order in the joined axis.
members
    For every source, the index into `sequences` of the values it holds;
    one block per source unless the sources tile a grid.

"""

NewDim = collections.namedtuple('NewDim', ('axis',))


def _extrema(values):
    return values.min(), values.max()


def _sort_ranges(name, sequences, descending):
    perm = sorted(range(len(sequences)), key=lambda i: _extrema(sequences[i]))
    # in value order every range must end before the next one starts
    for a, b in zip(perm[:-1], perm[1:]):
        if not _extrema(sequences[a])[1] < _extrema(sequences[b])[0]:
            raise OverlappingRangesError(name)
    if descending:
        perm.reverse()
    return perm


def analyse_axis_join(name, sequences):
    """Decide how the value sequences of axis `name` held by the sources
    are joined.

    Parameters
    ----------
    name : str
        Axis name, reported in errors.
    sequences : list of array_like
        One value sequence per source.

    Returns
    -------
    strategy : AllEqual or SortedRanges

    """
    sequences = [np.asarray(s) for s in sequences]
    if not sequences:
        raise ValueError('no sequences to join for axis {!r}'.format(name))

    continuous = [is_continuous(s) for s in sequences]
    if any(c != continuous[0] for c in continuous[1:]):
        raise InconsistentAxisKindError(name)

    first = sequences[0]
    if all(values_equal(first, s) for s in sequences[1:]):
        return AllEqual(first)

    if not continuous[0]:
        raise CategoricalJoinError(name)

    if any(len(s) == 0 for s in sequences):
        raise ShapeMismatchError(name, 'an empty axis cannot be joined with '
                                 'non-empty ones')

    if all(is_sorted(s) for s in sequences):
        descending = False
    elif all(is_sorted(s, reverse=True) for s in sequences):
        descending = True
    else:
        raise InconsistentOrderingError(name)

    perm = _sort_ranges(name, sequences, descending)
    return SortedRanges(tuple(sequences), tuple(perm), tuple(range(len(sequences))))


def group_sequences(sequences):
    """The distinct sequences among `sequences`, in the order they were
    first seen, and for every sequence the index of its distinct one."""
    distinct = []
    members = []
    for s in sequences:
        s = np.asarray(s)
        for i, d in enumerate(distinct):
            if values_equal(d, s):
                members.append(i)
                break
        else:
            members.append(len(distinct))
            distinct.append(s)
    return distinct, members


def analyse_grid_axis_join(name, sequences):
    """Like :func:`analyse_axis_join`, for sources tiling a grid along
    several axes: sources holding the same values share one block."""
    distinct, members = group_sequences(sequences)
    strategy = analyse_axis_join(name, distinct)
    if isinstance(strategy, SortedRanges):
        strategy = strategy._replace(members=tuple(members))
    return strategy


def _common_axes(datasets):
    counts = collections.Counter()
    for ds in datasets:
        counts.update(ds.axes.keys())
    return [name for name, count in counts.items() if count == len(datasets)]


def varying_axes(datasets):
    """Names of the axes held by every one of `datasets` whose values differ
    between them."""
    names = []
    for name in _common_axes(datasets):
        first = datasets[0].axes[name].values
        if not all(values_equal(first, ds.axes[name].values) for ds in datasets[1:]):
            names.append(name)
    return names


def create_merge_dict(datasets, grid=False):
    """Join strategies of all axes held by every one of `datasets`, keyed by
    axis name. With `grid`, sources holding the same values of an axis
    share a block along it, see :func:`analyse_grid_axis_join`."""
    analyse = analyse_grid_axis_join if grid else analyse_axis_join
    return {name: analyse(name, [ds.axes[name].values for ds in datasets])
            for name in _common_axes(datasets)}


def blocksize(strategy):
    """Number of blocks the sources form along the joined axis."""
    if isinstance(strategy, AllEqual):
        return 1
    elif isinstance(strategy, SortedRanges):
        return len(strategy.sequences)
    elif isinstance(strategy, NewDim):
        return len(strategy.axis)
    raise TypeError('unknown join strategy {!r}'.format(strategy))


def perm_indices(strategy):
    """Order in which the blocks are laid out along the joined axis."""
    if isinstance(strategy, AllEqual):
        return (0,)
    elif isinstance(strategy, SortedRanges):
        return strategy.perm
    elif isinstance(strategy, NewDim):
        return tuple(range(len(strategy.axis)))
    raise TypeError('unknown join strategy {!r}'.format(strategy))


def block_index(strategy, source):
    """Position along the joined axis of the block of source number
    `source`."""
    if isinstance(strategy, AllEqual):
        return 0
    elif isinstance(strategy, SortedRanges):
        return list(perm_indices(strategy)).index(strategy.members[source])
    elif isinstance(strategy, NewDim):
        return source
    raise TypeError('unknown join strategy {!r}'.format(strategy))


def whole_axis(strategy):
    """Values of the joined axis."""
    if isinstance(strategy, AllEqual):
        return strategy.values
    elif isinstance(strategy, SortedRanges):
        return np.concatenate([strategy.sequences[i] for i in perm_indices(strategy)])
    elif isinstance(strategy, NewDim):
        return strategy.axis.values
    raise TypeError('unknown join strategy {!r}'.format(strategy))
