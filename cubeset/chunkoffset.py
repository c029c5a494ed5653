"""Chunk offsets of persisted axes.

A variable whose first element sits inside a physical chunk, rather than at
its start, is written with that many padding positions in front of it. The
padding is recorded on the axis array in the ``_ARRAY_OFFSET`` attribute and
dropped again when the dataset is opened, so it never shows. All variables
sharing an axis must agree on its offset since they share its padding.
"""
import numpy as np

from cubeset.attrs import ARRAY_OFFSET_KEY, ARRAY_VALUES_KEY
from cubeset.axis import prepend_values
from cubeset.errors import ChunkOffsetConflictError


def chunk_offsets(cube):
    """Offset of the chunk grid along every axis of `cube`, by axis name."""
    return {name: int(dim.grid_offset)
            for name, dim in zip(cube.axis_names, cube.chunks.dims)}


def reconcile_chunk_offsets(cubes, offsets=None):
    """Combine the chunk offsets of `cubes` into one offset per axis name.

    Parameters
    ----------
    cubes : iterable of Cube or dict of Cube
    offsets : dict, optional
        Offsets already fixed, e.g. by an existing layout; cubes must agree
        with them too.

    Returns
    -------
    offsets : dict
        Axis name to offset.

    Raises
    ------
    ChunkOffsetConflictError
        If two cubes, or a cube and `offsets`, disagree about an axis.

    """
    if isinstance(cubes, dict):
        cubes = cubes.values()
    result = dict(offsets or {})
    for cube in cubes:
        for name, offset in chunk_offsets(cube).items():
            existing = result.setdefault(name, offset)
            if existing != offset:
                raise ChunkOffsetConflictError(name, existing, offset)
    return result


def padded_values(axis, offset):
    """The values of `axis` as stored: extended backwards by `offset`
    positions."""
    return prepend_values(axis.values, offset)


def axis_attrs(offset, values):
    """Attributes of the array storing an axis."""
    attrs = {ARRAY_OFFSET_KEY: int(offset)}
    if values.dtype.kind == 'O':
        attrs[ARRAY_VALUES_KEY] = [v if isinstance(v, (str, int, float)) or v is None
                                   else str(v) for v in values.tolist()]
    return attrs


def read_array_offset(attrs):
    return int(attrs.get(ARRAY_OFFSET_KEY, 0))


def read_axis_values(array):
    """The stored values of an axis array, without padding."""
    attrs = array.attrs
    offset = read_array_offset(attrs)
    if ARRAY_VALUES_KEY in attrs:
        values = np.asarray(attrs[ARRAY_VALUES_KEY])
    else:
        values = np.asarray(array[...])
    return values[offset:]
