"""Convenience functions for opening, merging and saving datasets."""
import atexit
import glob
import io
import itertools
import math
import os
import uuid
from collections.abc import MutableMapping

import numpy as np

from cubeset.axis import Axis
from cubeset.chunkoffset import (
    read_array_offset,
    read_axis_values,
    reconcile_chunk_offsets,
)
from cubeset.config import config
from cubeset.dataset import Cube, Dataset, to_dataset
from cubeset.errors import PathExistsError, PathNotFoundError, ShapeMismatchError, \
    SizeMismatchError
from cubeset.handles import CFHandle, StoredHandle, SubsetHandle, needs_cf_decoding
from cubeset.hierarchy import open_group
from cubeset.layout import AxisInfo, VariableInfo, append_layout, create_layout
from cubeset.merge import merge_along_axis, merge_datasets
from cubeset.storage import atexit_rmtree, contains_group, normalize_store_arg
from cubeset.util import normalize_chunks

_CF_KEYS = ('missing_value', '_FillValue', 'scale_factor', 'add_offset')


def _resolve_path(path):
    if isinstance(path, os.PathLike):
        path = os.fspath(path)
    if isinstance(path, str) and not os.path.isabs(path):
        path = os.path.join(config.get('workdir'), path)
    return path


def _is_bounds(name):
    return 'bnds' in name or 'bounds' in name


def open_dataset(store, mode='r', skip_keys=(), synchronizer=None):
    """Open a dataset stored in a group.

    Every 1-dimensional array named like its single axis provides the
    values of that axis; axes without such an array get the positions
    ``0 .. n-1``. All other arrays are variables, except those whose name
    contains ``bnds`` or ``bounds``. Variables with packed values (a
    ``scale_factor``, ``add_offset``, ``missing_value`` or ``_FillValue``
    attribute) are decoded on read.

    Parameters
    ----------
    store : MutableMapping or string
        Store or path to directory in file system.
    mode : {'r', 'r+'}, optional
        'r' opens read only, 'r+' lets variables be written to.
    skip_keys : sequence of str, optional
        Names of variables not to open.
    synchronizer : object, optional
        Array synchronizer.

    Returns
    -------
    ds : cubeset.dataset.Dataset

    """
    store = _resolve_path(store)
    if isinstance(store, str) and not os.path.exists(store):
        raise PathNotFoundError(store)
    group = open_group(store, mode=mode, synchronizer=synchronizer)
    arrays = dict(group.arrays())

    dims_by_name = {}
    for name, array in arrays.items():
        dims = array.attrs.dimensions or []
        if len(dims) != array.ndim:
            dims = ['{}_dim_{}'.format(name, i) for i in range(array.ndim)]
        dims_by_name[name] = dims

    axes = {}
    offsets = {}
    lengths = {}
    for name, array in arrays.items():
        if dims_by_name[name] == [name]:
            offsets[name] = read_array_offset(array.attrs)
            lengths[name] = array.shape[0]
            axes[name] = Axis(name, read_axis_values(array))

    cubes = {}
    for name, array in arrays.items():
        dims = dims_by_name[name]
        if name in axes or name in skip_keys or _is_bounds(name):
            continue
        for d, n in zip(dims, array.shape):
            if d not in lengths:
                lengths[d] = n
                offsets[d] = 0
                axes[d] = Axis.default(d, n)
            elif lengths[d] != n:
                raise SizeMismatchError(d, lengths[d] - offsets[d], n - offsets[d])

        data = StoredHandle(array)
        if any(offsets[d] for d in dims):
            data = SubsetHandle(data, tuple(slice(offsets[d], None) for d in dims))
        attrs = array.attrs.user_attrs()
        if needs_cf_decoding(attrs, array.dtype):
            data = CFHandle(data, attrs)
            attrs = {k: v for k, v in attrs.items() if k not in _CF_KEYS}
        attrs.setdefault('name', name)
        cubes[name] = Cube([axes[d] for d in dims], data, attrs)

    return Dataset(cubes, axes=list(axes.values()), properties=group.attrs.asdict())


def _expand_paths(paths):
    if isinstance(paths, (str, os.PathLike)):
        pattern = _resolve_path(paths)
        found = sorted(glob.glob(pattern))
        if not found:
            raise PathNotFoundError(pattern)
        return found
    return list(paths)


def open_mfdataset(paths, dim=None, **kwargs):
    """Open several datasets and merge them into one.

    Parameters
    ----------
    paths : string or sequence
        A glob pattern, or a sequence of paths or stores.
    dim : Axis or str, optional
        Merge along this axis, in the order of `paths`, see
        :func:`cubeset.merge.merge_along_axis`; entries of `paths` may then
        be None for missing sources. Without it the datasets are merged by
        :func:`cubeset.merge.merge_datasets`.
    **kwargs
        Passed to :func:`open_dataset`.

    Returns
    -------
    ds : cubeset.dataset.Dataset

    """
    paths = _expand_paths(paths)
    if dim is None:
        return merge_datasets([open_dataset(p, **kwargs) for p in paths])
    datasets = [None if p is None else open_dataset(p, **kwargs) for p in paths]
    return merge_along_axis(datasets, dim)


def get_save_folder(workdir=None):
    """A fresh path below `workdir` to save a dataset to."""
    if workdir is None:
        workdir = config.get('workdir')
    return os.path.join(workdir, 'cubeset_{}'.format(uuid.uuid4().hex))


class _LogWriter:

    def __init__(self, log):
        self.log_func = None
        self.log_file = None
        self.needs_closing = False
        if log is None:
            # don't do any logging
            pass
        elif callable(log):
            self.log_func = log
        elif isinstance(log, str):
            self.log_file = io.open(log, mode='w')
            self.needs_closing = True
        else:
            if not hasattr(log, 'write'):
                raise TypeError('log must be a callable function, file path or '
                                'file-like object, found %r' % log)
            self.log_file = log
            self.needs_closing = False

    def __enter__(self):
        return self

    def __exit__(self, *args):
        if self.log_file is not None and self.needs_closing:
            self.log_file.close()

    def __call__(self, *args, **kwargs):
        if self.log_file is not None:
            kwargs['file'] = self.log_file
            print(*args, **kwargs)
            if hasattr(self.log_file, 'flush'):
                # get immediate feedback
                self.log_file.flush()
        elif self.log_func is not None:
            self.log_func(*args, **kwargs)


def _log_copy_summary(log, n_copied, n_bytes_copied):
    # log a final message with a summary of what happened
    log('all done: copied {:,} chunks ({:,} bytes)'.format(n_copied, n_bytes_copied))


def _window_factors(chunks, shape, itemsize, max_cache, writefac):
    """Number of chunks per copy window along every dimension, growing the
    innermost dimensions first while at most `writefac` chunks and
    `max_cache` bytes are buffered."""
    approx = chunks.approx_chunksize
    counts = [len(d) for d in chunks.dims]
    factors = [1] * len(shape)

    def window_bytes(fs):
        return math.prod(min(f * c, s) for f, c, s in zip(fs, approx, shape)) * itemsize

    for d in reversed(range(len(shape))):
        while factors[d] < counts[d]:
            grown = list(factors)
            grown[d] += 1
            if math.prod(grown) > writefac or window_bytes(grown) > max_cache:
                break
            factors = grown
        if factors[d] < counts[d]:
            # a window never spans part of an outer dimension
            break
    return factors


def _window_slices(dim, factor):
    # windows of `factor` chunks, with the number of chunks they hold
    bounds = dim.boundaries
    for i in range(0, len(bounds), factor):
        group = bounds[i:i + factor]
        yield slice(group[0][0], group[-1][1]), len(group)


def copy_to(source, dest, max_cache=None, writefac=None, log=None):
    """Copy all data of `source` to `dest` in windows aligned with the
    chunks of `dest`.

    Parameters
    ----------
    source, dest : Cube or ArrayHandle
        Arrays of the same shape; `dest` must be writable.
    max_cache : int, optional
        Most bytes buffered by one window.
    writefac : float, optional
        Most chunks of `dest` written per window.
    log : callable, file path or file-like object, optional
        If provided, will be used to log progress information.

    Returns
    -------
    n_copied : int
        Number of chunks copied.
    n_bytes_copied : int
        Number of bytes copied.

    """
    if max_cache is None:
        max_cache = config.get('max_cache')
    if writefac is None:
        writefac = config.get('writefac')
    src = source.data if isinstance(source, Cube) else source
    dst = dest.data if isinstance(dest, Cube) else dest
    if src.shape != dst.shape:
        raise ShapeMismatchError(getattr(dest, 'name', None) or 'copy',
                                 'source shape {} differs from destination shape {}'
                                 .format(src.shape, dst.shape))
    chunks = dst.chunks
    factors = _window_factors(chunks, dst.shape, dst.dtype.itemsize,
                              max_cache, max(writefac, 1))

    n_copied = n_bytes_copied = 0
    with _LogWriter(log) as log:
        per_dim = [list(_window_slices(d, f)) for d, f in zip(chunks.dims, factors)]
        for pieces in itertools.product(*per_dim):
            window = tuple(s for s, _ in pieces)
            values = src[window]
            dst[window] = values
            n_copied += math.prod(n for _, n in pieces)
            n_bytes_copied += values.nbytes
            log('copy {}'.format(window))
        _log_copy_summary(log, n_copied, n_bytes_copied)

    return n_copied, n_bytes_copied


def save_dataset(ds, path='', persist=None, overwrite=False, append=False,
                 skeleton=False, chunks=None, max_cache=None, writefac=None,
                 compressor='default', log=None):
    """Write a dataset and open it again from where it was written.

    Parameters
    ----------
    ds : Dataset
    path : string or MutableMapping, optional
        Where to write, relative paths being relative to the configured
        ``workdir``. Empty picks a fresh directory below ``workdir``.
    persist : bool, optional
        If False the directory is removed when the process exits. Defaults
        to False for a generated path and True otherwise.
    overwrite : bool, optional
        Replace whatever exists at `path`.
    append : bool, optional
        Add the variables of `ds` to the dataset at `path`.
    skeleton : bool, optional
        Only write the layout, without copying data.
    chunks : dict, optional
        Passed to :meth:`Dataset.setchunks` first.
    max_cache, writefac : optional
        See :func:`copy_to`.
    compressor : Codec, optional
    log : callable, file path or file-like object, optional

    Returns
    -------
    ds : Dataset
        The dataset as stored.

    """
    if chunks:
        ds = ds.setchunks(chunks)
    generated = path is None or path == ''
    if generated:
        path = get_save_folder()
    if persist is None:
        persist = not generated
    path = _resolve_path(path)

    if isinstance(path, MutableMapping):
        store = normalize_store_arg(path)
        exists = contains_group(store)
    else:
        exists = os.path.exists(path)
        store = path
    if exists and not (overwrite or append):
        raise PathExistsError(path)
    if append and not exists:
        append = False

    # validate before anything is written
    offsets = reconcile_chunk_offsets(ds.cubes)
    axis_infos = [AxisInfo(ax, offsets.get(name, 0)) for name, ax in ds.axes.items()]
    var_infos = []
    for name, cube in ds.items():
        attrs = dict(cube.attrs)
        attrs.setdefault('name', name)
        var_infos.append(VariableInfo(name, cube.axis_names, cube.dtype,
                                      cube.chunks.approx_chunksize, attrs, None))

    if not persist and isinstance(path, str):
        atexit.register(atexit_rmtree, path)

    if append:
        group = open_group(store, mode='r+')
        append_layout(group, axis_infos, var_infos, compressor=compressor)
    else:
        create_layout(store, ds.properties, axis_infos, var_infos,
                      overwrite=overwrite, compressor=compressor)

    if not skeleton:
        target = open_dataset(store, mode='r+')
        for name, cube in ds.items():
            copy_to(cube, target[name], max_cache=max_cache, writefac=writefac,
                    log=log)

    return open_dataset(store)


def save_cube(cube, path='', layername='layer', datasetaxis='Variables', **kwargs):
    """Write a cube, split into variables along `datasetaxis` when it has
    that axis, and open it again.

    Keyword arguments are passed to :func:`save_dataset`.

    Returns
    -------
    cube : Cube
        The stored cube, with `datasetaxis` last.

    """
    ds = to_dataset(cube, datasetaxis=datasetaxis, layername=layername)
    saved = save_dataset(ds, path=path, **kwargs)
    if datasetaxis in cube.axis_names:
        return saved[list(ds.keys())].to_cube(joinname=datasetaxis)
    return saved[layername]


def create_cube(axes, path='', dtype='f4', chunksize=None, chunkoffset=None,
                fill_value=None, layername='layer', properties=None,
                persist=None, overwrite=False, compressor='default'):
    """Create an empty stored cube, open for writing.

    Parameters
    ----------
    axes : sequence of Axis
    path : string or MutableMapping, optional
        See :func:`save_dataset`.
    dtype : string or dtype, optional
    chunksize : dict or tuple, optional
        Chunk length per axis name, or per dimension. Guessed by default.
    chunkoffset : dict, optional
        Chunk offset per axis name, 0 by default.
    fill_value : scalar, optional
        Value of elements not written yet, the missing value of `dtype` by
        default.

    Returns
    -------
    cube : Cube

    """
    axes = list(axes)
    names = [ax.name for ax in axes]
    shape = tuple(len(ax) for ax in axes)
    chunkoffset = dict(chunkoffset or {})
    if isinstance(chunksize, dict):
        chunks = tuple(chunksize.get(n) for n in names)
    else:
        chunks = chunksize
    chunks = normalize_chunks(chunks, shape, np.dtype(dtype).itemsize)
    for n, c in zip(names, chunks):
        o = chunkoffset.get(n, 0)
        if not 0 <= o < c:
            raise ValueError('chunk offset {} of axis {!r} must be in [0, {})'
                             .format(o, n, c))

    generated = path is None or path == ''
    if generated:
        path = get_save_folder()
    if persist is None:
        persist = not generated
    path = _resolve_path(path)
    if isinstance(path, str) and os.path.exists(path) and not overwrite:
        raise PathExistsError(path)
    if not persist and isinstance(path, str):
        atexit.register(atexit_rmtree, path)

    axis_infos = [AxisInfo(ax, chunkoffset.get(ax.name, 0)) for ax in axes]
    var_infos = [VariableInfo(layername, names, dtype, chunks,
                              {'name': layername}, fill_value)]
    create_layout(path, properties, axis_infos, var_infos, overwrite=overwrite,
                  compressor=compressor)
    return open_dataset(path, mode='r+')[layername]
