"""Creation of the on-disk layout of a dataset.

:func:`create_layout` and :func:`append_layout` write the metadata of a
dataset: one group, one array per axis holding its values and one empty
array per variable. Data is copied in afterwards. Both validate everything
before writing anything.
"""
import collections

import numpy as np

from cubeset.chunkoffset import (
    axis_attrs,
    padded_values,
    read_array_offset,
)
from cubeset.errors import (
    ChunkOffsetConflictError,
    ShapeMismatchError,
    SizeMismatchError,
    VariableExistsError,
)
from cubeset.hierarchy import open_group

AxisInfo = collections.namedtuple('AxisInfo', ('axis', 'offset'))
"""An axis to write, with the number of padding positions in front of it."""

VariableInfo = collections.namedtuple(
    'VariableInfo', ('name', 'dims', 'dtype', 'chunks', 'attrs', 'fill_value')
)
"""A variable to write.

Parameters
----------
name
    Variable name.
dims
    Axis names, in dimension order.
dtype
    NumPy dtype.
chunks
    Chunk length per dimension, on disk.
attrs
    User attributes.
fill_value
    Value of unwritten elements, None for the missing value of `dtype`.

"""


def _check_variables(var_infos, lengths, taken):
    seen = set()
    for v in var_infos:
        if v.name in taken or v.name in seen:
            raise VariableExistsError(v.name)
        seen.add(v.name)
        missing = [d for d in v.dims if d not in lengths]
        if missing:
            raise ShapeMismatchError(v.name, 'unknown axes {}'.format(missing))
        if len(v.chunks) != len(v.dims):
            raise ShapeMismatchError(v.name, '{} chunk lengths for {} axes'
                                     .format(len(v.chunks), len(v.dims)))


def _write_axis(group, info, compressor):
    name = info.axis.name
    values = padded_values(info.axis, info.offset)
    attrs = axis_attrs(info.offset, values)
    if values.dtype.kind == 'O':
        data = np.arange(len(values))
    else:
        data = values
    a = group.create_array(name, shape=data.shape, chunks=False, dtype=data.dtype,
                           compressor=compressor, dimensions=[name], attrs=attrs)
    a[...] = data
    return a


def _write_variable(group, info, lengths, compressor):
    shape = tuple(lengths[d] for d in info.dims)
    return group.create_array(info.name, shape=shape, chunks=tuple(info.chunks),
                              dtype=info.dtype, fill_value=info.fill_value,
                              compressor=compressor, dimensions=info.dims,
                              attrs=info.attrs)


def create_layout(store, properties, axis_infos, var_infos, overwrite=False,
                  compressor='default'):
    """Write the layout of a new dataset.

    Parameters
    ----------
    store : MutableMapping or string
        Store or path to directory in file system.
    properties : dict
        Global properties, stored as group attributes.
    axis_infos : list of AxisInfo
    var_infos : list of VariableInfo
    overwrite : bool, optional
        If True, replace anything stored at `store`.
    compressor : Codec, optional

    Returns
    -------
    g : cubeset.hierarchy.Group

    """
    lengths = {a.axis.name: len(a.axis) + a.offset for a in axis_infos}
    if len(lengths) != len(axis_infos):
        raise ValueError('duplicate axis names')
    _check_variables(var_infos, lengths, set(lengths))

    group = open_group(store, mode='w' if overwrite else 'w-')
    group.attrs.put(dict(properties or {}))
    for info in axis_infos:
        _write_axis(group, info, compressor)
    for info in var_infos:
        _write_variable(group, info, lengths, compressor)
    return group


def append_layout(group, axis_infos, var_infos, compressor='default'):
    """Add variables, and the axes they need, to an existing layout.

    Axes already stored must have the same length and the same offset as
    before; variables must be new.

    Raises
    ------
    VariableExistsError
        If a variable is already stored.
    SizeMismatchError
        If an axis already stored has a different length.
    ChunkOffsetConflictError
        If an axis already stored has a different offset.

    """
    existing = set(group)
    lengths = {}
    new_axes = []
    for info in axis_infos:
        name = info.axis.name
        if name in existing:
            stored = group[name]
            stored_offset = read_array_offset(stored.attrs)
            stored_len = stored.shape[0] - stored_offset
            if stored_len != len(info.axis):
                raise SizeMismatchError(name, stored_len, len(info.axis))
            if stored_offset != info.offset:
                raise ChunkOffsetConflictError(name, stored_offset, info.offset)
        else:
            new_axes.append(info)
        lengths[name] = len(info.axis) + info.offset

    for name in existing:
        if name not in lengths and group.dimensions(name) == [name]:
            lengths[name] = group[name].shape[0]
    _check_variables(var_infos, lengths, existing)

    for info in new_axes:
        _write_axis(group, info, compressor)
    for info in var_infos:
        _write_variable(group, info, lengths, compressor)
    return group
