"""Merging of datasets opened from several sources into one dataset.

Nothing is read while merging: merged variables are
:class:`cubeset.concat.ConcatHandle` views on the sources' data.
"""
import collections
import math
import warnings

import numpy as np

from cubeset.axis import Axis
from cubeset.concat import ConcatHandle, concat_handles
from cubeset.dataset import Cube, Dataset
from cubeset.errors import ShapeMismatchError
from cubeset.handles import NewAxisHandle
from cubeset.join import (
    AllEqual,
    NewDim,
    SortedRanges,
    block_index,
    blocksize,
    create_merge_dict,
    varying_axes,
    whole_axis,
)


def _merged_attrs(cubes):
    attrs = {}
    for c in cubes:
        attrs.update(c.attrs)
    return attrs


def _merge_variable(name, cubes, axes, merges):
    first = cubes[0]
    names = first.axis_names
    for c in cubes[1:]:
        if c.axis_names != names:
            raise ShapeMismatchError(name, 'axes {} and {} differ between sources'
                                     .format(names, c.axis_names))
    strategies = [merges[a] for a in names]
    grid_shape = tuple(blocksize(s) for s in strategies)
    if math.prod(grid_shape) != len(cubes):
        raise ShapeMismatchError(name, '{} sources do not form a block grid of '
                                 'shape {}'.format(len(cubes), grid_shape))
    grid = np.empty(grid_shape, dtype=object)
    for i, c in enumerate(cubes):
        idx = tuple(block_index(s, i) for s in strategies)
        if grid[idx] is not None:
            raise ShapeMismatchError(name, 'two sources fall on block {}'.format(idx))
        grid[idx] = c.data
    data = ConcatHandle(grid, name=name)
    return Cube([axes[a] for a in names], data, _merged_attrs(cubes))


def merge_datasets(datasets):
    """Merge datasets holding different parts of the same variables.

    Every axis held by all datasets is joined with
    :func:`cubeset.join.analyse_axis_join`, so the datasets hold disjoint
    ranges of it. When the values of more than one axis differ between the
    datasets, they are taken to tile a grid and datasets holding the same
    range of an axis share a block along it. Every variable held by all
    datasets becomes a lazy concatenation of its parts. Variables missing
    from some datasets are dropped with a warning. Properties are those of
    the first dataset.

    Parameters
    ----------
    datasets : sequence of Dataset

    Returns
    -------
    merged : Dataset

    """
    datasets = list(datasets)
    if not datasets:
        raise ValueError('no datasets to merge')
    if len(datasets) == 1:
        return datasets[0]

    merges = create_merge_dict(datasets, grid=len(varying_axes(datasets)) > 1)
    first = datasets[0]
    axes = {}
    for name, strategy in merges.items():
        if isinstance(strategy, AllEqual):
            axes[name] = first.axes[name]
        else:
            axes[name] = Axis(name, whole_axis(strategy))

    counts = collections.Counter(name for ds in datasets for name in ds)
    dropped = sorted(name for name, count in counts.items() if count != len(datasets))
    if dropped:
        warnings.warn('variables {} are not present in every dataset and are '
                      'dropped from the merge'.format(dropped), stacklevel=2)

    cubes = {}
    for name in first:
        if counts[name] == len(datasets):
            cubes[name] = _merge_variable(name, [ds[name] for ds in datasets],
                                          axes, merges)
    return Dataset(cubes, axes=list(axes.values()), properties=first.properties)


def _merge_existing_axis(name, datasets, axis_name):
    for i, ds in enumerate(datasets):
        if name not in ds:
            raise ShapeMismatchError(name, 'variable missing from source {}'.format(i))
    cubes = [ds[name] for ds in datasets]
    first = cubes[0]
    sequences = tuple(c.axis(axis_name).values for c in cubes)
    n = len(cubes)
    strategy = SortedRanges(sequences, tuple(range(n)), tuple(range(n)))
    istack = first.axis_index(axis_name)
    data = concat_handles([c.data for c in cubes], axis=istack, name=name)
    axes = first.axes
    axes[istack] = Axis(axis_name, whole_axis(strategy))
    return Cube(axes, data, first.attrs)


def _merge_new_axis(name, datasets, axis):
    cubes = [None if ds is None or name not in ds else ds[name] for ds in datasets]
    first = next(c for c in cubes if c is not None)
    strategy = NewDim(axis)
    ndim = first.ndim
    handles = [None if c is None else NewAxisHandle(c.data, axis=ndim) for c in cubes]
    block_lengths = (None,) * ndim + ((1,) * blocksize(strategy),)
    data = concat_handles(handles, axis=ndim, block_lengths=block_lengths, name=name)
    return Cube(first.axes + [axis], data, first.attrs)


def merge_along_axis(datasets, axis):
    """Merge datasets along one given axis.

    Variables holding the axis are concatenated along it in the order of
    `datasets`. Variables without it are stacked along it as a new last
    dimension; then `datasets` may contain None for missing sources, whose
    blocks read as missing values.

    Parameters
    ----------
    datasets : sequence of Dataset or None
    axis : Axis or str
        The axis to merge along. A name, or an axis of plain positions,
        gives the new dimension the positions ``0 .. n-1``.

    Returns
    -------
    merged : Dataset

    """
    datasets = list(datasets)
    present = [ds for ds in datasets if ds is not None]
    if not present:
        raise ValueError('no datasets to merge')
    if isinstance(axis, str):
        axis = Axis.default(axis, len(datasets))
    if len(axis) != len(datasets):
        raise ValueError('axis {!r} has {} values for {} datasets'
                         .format(axis.name, len(axis), len(datasets)))
    first = present[0]
    cubes = {}
    for name, cube in first.items():
        if axis.name in cube.axis_names:
            if len(present) != len(datasets):
                raise ValueError('missing datasets can only be stacked along a '
                                 'new axis, {!r} already exists'.format(axis.name))
            cubes[name] = _merge_existing_axis(name, datasets, axis.name)
        else:
            cubes[name] = _merge_new_axis(name, datasets, axis)
    return Dataset(cubes, properties=first.properties)
