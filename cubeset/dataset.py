"""Cubes and collections of cubes.

A :class:`Cube` is a lazy array with one named :class:`cubeset.axis.Axis`
per dimension and a dictionary of attributes. A :class:`Dataset` holds
cubes by name together with the axes they share and a dictionary of global
properties. Both are values: every operation returns a new object sharing
the data handles of its input, and only ``load`` reads data.
"""
import warnings

import numpy as np

from cubeset.axis import Axis, LookupKind
from cubeset.chunks import GridChunks, RegularChunks, normalize_grid
from cubeset.concat import concat_handles
from cubeset.config import config
from cubeset.handles import NewAxisHandle, NumpyHandle, RechunkedHandle, \
    SubsetHandle, as_handle
from cubeset.indexing import is_integer, normalize_integer_selection
from cubeset.util import InfoReporter, TreeNode, TreeViewer, human_readable_size


def _is_list_selection(sel):
    return isinstance(sel, (list, tuple, np.ndarray))


class Cube(object):
    """A lazy n-dimensional array with named axes.

    Parameters
    ----------
    axes : sequence of Axis
        One axis per dimension of `data`, in dimension order.
    data : array_like or ArrayHandle
        The values; anything but a handle is wrapped with
        :func:`cubeset.handles.as_handle`.
    attrs : dict, optional
        Attributes; ``name`` is the name of the variable.

    """

    def __init__(self, axes, data, attrs=None):
        axes = list(axes)
        data = as_handle(data)
        names = [ax.name for ax in axes]
        if len(set(names)) != len(names):
            raise ValueError('duplicate axis names {}'.format(names))
        shape = tuple(len(ax) for ax in axes)
        if data.shape != shape:
            raise ValueError('data of shape {} does not match axes {} of lengths {}'
                             .format(data.shape, names, shape))
        self._axes = axes
        self._data = data
        self._attrs = dict(attrs or {})

    @property
    def axes(self):
        return list(self._axes)

    @property
    def data(self):
        """The lazy data handle."""
        return self._data

    @property
    def attrs(self):
        return self._attrs

    @property
    def name(self):
        return self._attrs.get('name')

    @property
    def axis_names(self):
        return [ax.name for ax in self._axes]

    @property
    def shape(self):
        return self._data.shape

    @property
    def ndim(self):
        return len(self._axes)

    @property
    def dtype(self):
        return self._data.dtype

    @property
    def chunks(self):
        return self._data.chunks

    @property
    def nbytes(self):
        return self._data.nbytes

    def axis(self, name):
        """The axis called `name`."""
        for ax in self._axes:
            if ax.name == name:
                return ax
        raise KeyError('cube has no axis {!r}; axes are {}'
                       .format(name, self.axis_names))

    def axis_index(self, name):
        return self.axis_names.index(self.axis(name).name)

    def __getitem__(self, selection):
        """Read data by position."""
        return self._data[selection]

    def __setitem__(self, selection, value):
        """Write data by position, for cubes backed by writable storage."""
        self._data[selection] = value

    def __array__(self, dtype=None, copy=None):
        return self._data.__array__(dtype)

    def __len__(self):
        return len(self._data)

    def isel(self, **positions):
        """Select by position along named axes.

        An int drops the axis, a slice keeps a window of it and a list of
        positions picks those positions in the given order.
        """
        unknown = set(positions) - set(self.axis_names)
        if unknown:
            raise KeyError('cube has no axes {}'.format(sorted(unknown)))
        region = []
        picks = []
        axes = []
        for ax in self._axes:
            sel = positions.get(ax.name, slice(None))
            if isinstance(sel, slice) and sel.step not in (None, 1):
                sel = list(range(*sel.indices(len(ax))))
            if _is_list_selection(sel):
                sel = [normalize_integer_selection(p, len(ax)) for p in sel]
                picks.append((len(axes), sel))
                axes.append(ax.isel(np.asarray(sel, dtype=int)))
                region.append(slice(None))
            elif is_integer(sel):
                region.append(sel)
            else:
                axes.append(ax.isel(sel))
                region.append(sel)
        data = SubsetHandle(self._data, tuple(region))
        for dim, sel in picks:
            pieces = []
            for p in sel:
                piece = [slice(None)] * len(axes)
                piece[dim] = slice(p, p + 1)
                pieces.append(SubsetHandle(data, tuple(piece)))
            if pieces:
                data = concat_handles(pieces, axis=dim)
            else:
                empty = [slice(None)] * len(axes)
                empty[dim] = slice(0, 0)
                data = SubsetHandle(data, tuple(empty))
        return Cube(axes, data, self._attrs)

    def sel(self, **selectors):
        """Select by axis value, see :meth:`cubeset.axis.Axis.locate`."""
        positions = {name: self.axis(name).locate(selector)
                     for name, selector in selectors.items()}
        return self.isel(**positions)

    def setchunks(self, chunks):
        """Describe the data with a different chunk geometry.

        `chunks` is a mapping from axis name to chunk length (axes left out
        keep their chunks) or anything :func:`cubeset.chunks.normalize_grid`
        accepts.
        """
        if isinstance(chunks, dict):
            dims = list(self.chunks.dims)
            for name, size in chunks.items():
                i = self.axis_index(name)
                n = self.shape[i]
                if size is None or size == -1:
                    size = n
                dims[i] = RegularChunks(max(int(size), 1), 0, n)
            grid = GridChunks(dims)
        else:
            grid = normalize_grid(chunks, self.shape, self.dtype.itemsize)
        return Cube(self._axes, RechunkedHandle(self._data, grid), self._attrs)

    def load(self, max_cache=None):
        """Read all data into memory."""
        if max_cache is None:
            max_cache = config.get('max_cache')
        if self.nbytes > max_cache:
            warnings.warn('loading {} of data, more than the cache size of {}'
                          .format(human_readable_size(self.nbytes),
                                  human_readable_size(max_cache)),
                          stacklevel=2)
        data = NumpyHandle(np.asarray(self._data[...]), chunks=self.chunks)
        return Cube(self._axes, data, self._attrs)

    def rename(self, name):
        attrs = dict(self._attrs)
        attrs['name'] = name
        return Cube(self._axes, self._data, attrs)

    def __repr__(self):
        dims = ', '.join('{}: {}'.format(ax.name, len(ax)) for ax in self._axes)
        r = '<{}'.format(type(self).__name__)
        if self.name is not None:
            r += ' {!r}'.format(self.name)
        return r + ' ({}) {}>'.format(dims, self.dtype)

    @property
    def info(self):
        return InfoReporter(self)

    def info_items(self):
        items = []
        if self.name is not None:
            items += [('Name', self.name)]
        items += [
            ('Type', type(self).__name__),
            ('Data type', str(self.dtype)),
            ('Shape', str(self.shape)),
            ('Chunk shape', str(self.chunks.approx_chunksize)),
            ('No. bytes', human_readable_size(self.nbytes)),
        ]
        for ax in self._axes:
            items += [('Axis ' + ax.name, repr(ax))]
        return items


class Dataset(object):
    """A collection of cubes sharing axes.

    Parameters
    ----------
    cubes : dict
        Cubes by variable name, in order.
    axes : list or dict of Axis, optional
        Further axes not held by any cube.
    properties : dict, optional
        Global properties.

    """

    def __init__(self, cubes=None, axes=None, properties=None):
        cubes = dict(cubes or {})
        if isinstance(axes, dict):
            axes = list(axes.values())
        all_axes = {}
        for ax in list(axes or []) + [ax for c in cubes.values() for ax in c.axes]:
            existing = all_axes.get(ax.name)
            if existing is None:
                all_axes[ax.name] = ax
            elif existing != ax:
                raise ValueError('axis {!r} differs between variables'.format(ax.name))
        self._cubes = cubes
        self._axes = all_axes
        self._properties = dict(properties or {})

    @property
    def cubes(self):
        return dict(self._cubes)

    @property
    def axes(self):
        return dict(self._axes)

    @property
    def properties(self):
        return self._properties

    def __iter__(self):
        return iter(self._cubes)

    def __len__(self):
        return len(self._cubes)

    def __contains__(self, name):
        return name in self._cubes

    def keys(self):
        return self._cubes.keys()

    def items(self):
        return self._cubes.items()

    def _match_name(self, name):
        if name in self._cubes:
            return name
        candidates = [k for k in self._cubes if k.startswith(name)]
        if len(candidates) == 1:
            return candidates[0]
        if candidates:
            raise KeyError('{!r} is ambiguous, matching {}'.format(name, candidates))
        raise KeyError(name)

    def __getitem__(self, key):
        """A variable or an axis by name; a list of names gives a new
        dataset of the matching variables."""
        if isinstance(key, (list, tuple)):
            names = [self._match_name(k) for k in key]
            return Dataset({n: self._cubes[n] for n in names},
                           properties=self._properties)
        if key in self._cubes:
            return self._cubes[key]
        if key in self._axes:
            return self._axes[key]
        raise KeyError(key)

    def __getattr__(self, item):
        # allow access to variables via dot notation
        cubes = self.__dict__.get('_cubes', {})
        if item in cubes:
            return cubes[item]
        raise AttributeError(item)

    def __dir__(self):
        base = super().__dir__()
        return sorted(set(base) | {k for k in self._cubes if k.isidentifier()})

    def subset(self, **selectors):
        """Select by axis value; each selector applies to the variables
        having that axis."""
        unknown = set(selectors) - set(self._axes)
        if unknown:
            raise KeyError('dataset has no axes {}'.format(sorted(unknown)))
        positions = {name: self._axes[name].locate(s) for name, s in selectors.items()}
        cubes = {}
        for name, cube in self._cubes.items():
            own = {k: v for k, v in positions.items() if k in cube.axis_names}
            cubes[name] = cube.isel(**own)
        axes = []
        for name, ax in self._axes.items():
            if name not in positions:
                axes.append(ax)
            elif not is_integer(positions[name]):
                sel = positions[name]
                if _is_list_selection(sel):
                    sel = np.asarray(sel, dtype=int)
                axes.append(ax.isel(sel))
        return Dataset(cubes, axes=axes, properties=self._properties)

    def setchunks(self, chunks):
        """Change chunk descriptions. Keys of `chunks` are variable names,
        mapped to anything :meth:`Cube.setchunks` accepts, or axis names,
        mapped to a chunk length applied to every variable with that axis."""
        by_axis = {k: v for k, v in chunks.items() if k in self._axes and
                   k not in self._cubes}
        unknown = set(chunks) - set(self._axes) - set(self._cubes)
        if unknown:
            raise KeyError('no variables or axes named {}'.format(sorted(unknown)))
        cubes = {}
        for name, cube in self._cubes.items():
            own = {k: v for k, v in by_axis.items() if k in cube.axis_names}
            if own:
                cube = cube.setchunks(own)
            if name in chunks:
                cube = cube.setchunks(chunks[name])
            cubes[name] = cube
        return Dataset(cubes, axes=list(self._axes.values()),
                       properties=self._properties)

    @property
    def nbytes(self):
        return sum(c.nbytes for c in self._cubes.values())

    def load(self, max_cache=None):
        """Read all variables into memory."""
        if max_cache is None:
            max_cache = config.get('max_cache')
        if self.nbytes > max_cache:
            warnings.warn('loading {} of data, more than the cache size of {}'
                          .format(human_readable_size(self.nbytes),
                                  human_readable_size(max_cache)),
                          stacklevel=2)
        cubes = {name: c.load(max_cache=np.inf) for name, c in self._cubes.items()}
        return Dataset(cubes, axes=list(self._axes.values()),
                       properties=self._properties)

    def to_cube(self, joinname='Variables'):
        """Stack all variables along a new categorical axis `joinname`,
        placed last. All variables must have the same axes."""
        if not self._cubes:
            raise ValueError('no variables to join')
        names = list(self._cubes)
        first = self._cubes[names[0]]
        for name in names[1:]:
            if self._cubes[name].axes != first.axes:
                raise ValueError('variables {!r} and {!r} have different axes'
                                 .format(names[0], name))
        if joinname in first.axis_names:
            raise ValueError('axis {!r} already exists'.format(joinname))
        dtype = np.result_type(*[c.dtype for c in self._cubes.values()])
        stacked = [NewAxisHandle(self._cubes[n].data, axis=first.ndim) for n in names]
        data = concat_handles(stacked, axis=first.ndim, dtype=dtype)
        varaxis = Axis(joinname, np.array(names), kind=LookupKind.CATEGORICAL)
        return Cube(first.axes + [varaxis], data, self._properties)

    def tree(self):
        """Render the axes, variables and properties of the dataset."""
        cubes = list(self._cubes.values())
        shared = [n for n in self._axes if all(n in c.axis_names for c in cubes)]
        groups = {}
        for name, cube in self._cubes.items():
            extra = tuple(n for n in cube.axis_names if n not in shared)
            groups.setdefault(extra, []).append(name)

        axis_nodes = [TreeNode(repr(self._axes[n])) for n in shared]
        var_nodes = []
        for extra, names in groups.items():
            if extra:
                label = 'with additional axes: ' + ', '.join(extra)
                var_nodes.append(TreeNode(label, [TreeNode(n) for n in names]))
            else:
                var_nodes.extend(TreeNode(n) for n in names)
        prop_nodes = [TreeNode('{} = {}'.format(k, v))
                      for k, v in self._properties.items()]

        children = [TreeNode('Shared axes', axis_nodes),
                    TreeNode('Variables', var_nodes)]
        if prop_nodes:
            children.append(TreeNode('Properties', prop_nodes))
        return TreeViewer(TreeNode(type(self).__name__, children))

    def __repr__(self):
        return str(self.tree())

    @property
    def info(self):
        return InfoReporter(self)

    def info_items(self):
        items = [
            ('Type', type(self).__name__),
            ('No. variables', len(self._cubes)),
            ('No. axes', len(self._axes)),
        ]
        if self._cubes:
            items += [('Variables', ', '.join(self._cubes))]
        if self._axes:
            items += [('Axes', ', '.join(self._axes))]
        items += [('No. bytes', human_readable_size(self.nbytes))]
        return items


def to_dataset(cube, datasetaxis='Variables', layername='layer'):
    """Split `cube` along its axis `datasetaxis` into one variable per axis
    value. A cube without that axis becomes the single variable
    `layername`."""
    if datasetaxis not in cube.axis_names:
        return Dataset({layername: cube.rename(layername)}, properties=cube.attrs)
    ax = cube.axis(datasetaxis)
    cubes = {}
    for i, value in enumerate(ax.values):
        name = str(value)
        cubes[name] = cube.isel(**{datasetaxis: i}).rename(name)
    return Dataset(cubes, properties=cube.attrs)

