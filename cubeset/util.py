import json
import math
import numbers
import time
from textwrap import TextWrapper
from typing import Any, Callable, Dict, Tuple, Union

import numpy as np
from asciitree import BoxStyle, LeftAligned
from asciitree.traversal import Traversal
from numcodecs.compat import ensure_ndarray, ensure_text


def _json_default(o):
    # numpy scalars and arrays end up in attributes copied from source data
    if isinstance(o, np.generic):
        return o.item()
    if isinstance(o, np.ndarray):
        return o.tolist()
    raise TypeError('object of type {} is not JSON serializable'
                    .format(type(o).__name__))


def json_dumps(o: Any) -> bytes:
    """Encode a metadata or attribute document as indented, key-sorted
    ASCII JSON."""
    text = json.dumps(o, indent=4, sort_keys=True, ensure_ascii=True,
                      separators=(',', ': '), default=_json_default)
    return text.encode('ascii')


def json_loads(s: Union[str, bytes]) -> Dict[str, Any]:
    return json.loads(ensure_text(s, 'ascii'))


def normalize_shape(shape) -> Tuple[int, ...]:
    if shape is None:
        raise TypeError('shape is None')
    if isinstance(shape, numbers.Integral):
        return (int(shape),)
    return tuple(int(s) for s in shape)


#: bounds in bytes of the chunks guessed by guess_chunks
CHUNK_TARGET_MIN = 128 * 1024
CHUNK_TARGET_MAX = 64 * 1024 * 1024


def _chunk_target(nbytes):
    # 256K for 1M of data, doubling with every tenfold growth of the data
    target = 256 * 1024 * 2 ** math.log10(max(nbytes, 1) / 2 ** 20)
    return min(max(target, CHUNK_TARGET_MIN), CHUNK_TARGET_MAX)


def guess_chunks(shape: Tuple[int, ...], typesize: int) -> Tuple[int, ...]:
    """Guess a chunk shape for an array of `shape` holding elements of
    `typesize` bytes.

    Dimensions are halved in turn, starting with the first, until a chunk is
    close to a target size that grows slowly with the size of the array.
    Trailing dimensions, usually the spatial ones of a data cube, are
    therefore split last.
    """
    if not shape:
        return ()
    chunks = [max(int(s), 1) for s in shape]
    target = _chunk_target(math.prod(chunks) * typesize)
    i = 0
    while math.prod(chunks) > 1:
        nbytes = math.prod(chunks) * typesize
        near = nbytes < target or abs(nbytes - target) / target < 0.5
        if near and nbytes < CHUNK_TARGET_MAX:
            break
        d = i % len(chunks)
        chunks[d] = -(-chunks[d] // 2)
        i += 1
    return tuple(chunks)


def normalize_chunks(
    chunks: Any, shape: Tuple[int, ...], typesize: int
) -> Tuple[int, ...]:
    """Chunk shape for an array of `shape` from any of: None or True to
    guess, False for a single chunk, an int used for every dimension, or a
    sequence in which None, -1 and missing trailing entries mean the whole
    dimension."""
    if chunks is None or chunks is True:
        return guess_chunks(shape, typesize)
    if chunks is False:
        chunks = shape
    elif isinstance(chunks, numbers.Integral):
        chunks = (int(chunks),) * len(shape)
    chunks = tuple(chunks)
    if len(chunks) > len(shape):
        raise ValueError('{} chunk lengths given for {} dimensions'
                         .format(len(chunks), len(shape)))
    chunks += (None,) * (len(shape) - len(chunks))
    # zero-length dimensions still need a positive chunk length
    return tuple(max(n if c is None or c == -1 else int(c), 1)
                 for c, n in zip(chunks, shape))


def normalize_dtype(dtype: Union[str, np.dtype]) -> np.dtype:
    dtype = np.dtype(dtype)
    if dtype.hasobject:
        raise ValueError('object arrays cannot be stored; convert values to a '
                         'fixed-width string dtype first')
    if dtype in (np.dtype('M8'), np.dtype('m8')):
        raise ValueError('{} has no time unit; give one, as in "M8[ns]" or "m8[s]"'
                         .format(dtype))
    return dtype


def is_total_slice(item, shape: Tuple[int, ...]) -> bool:
    """Whether `item` selects all of an array of `shape`, in which case a
    chunk is overwritten without being read first."""
    if item is Ellipsis:
        return True
    if isinstance(item, slice):
        item = (item,)
    if not isinstance(item, tuple):
        raise TypeError('expected slice or tuple of slices, found {!r}'.format(item))

    def whole(s, n):
        if not isinstance(s, slice) or s.step not in (None, 1):
            return False
        start = 0 if s.start is None else s.start
        stop = n if s.stop is None else s.stop
        return stop - start == n

    return all(whole(s, n) for s, n in zip(item, shape))


def human_readable_size(size) -> str:
    if size < 2**10:
        return str(size)
    for exponent, unit in enumerate('KMGT', start=1):
        if size < 2 ** (10 * (exponent + 1)):
            return '{:.1f}{}'.format(size / 2 ** (10 * exponent), unit)
    return '{:.1f}P'.format(size / 2**50)


def default_fill_value(dtype: np.dtype):
    """Return the sentinel used for missing elements of the given dtype.

    Floats and complex numbers use NaN, datetimes and timedeltas NaT,
    strings the empty string, booleans False and integers the largest value
    the dtype can hold.
    """
    dtype = np.dtype(dtype)
    if dtype.kind in 'fc':
        return dtype.type(np.nan)
    elif dtype.kind in 'mM':
        return dtype.type('NaT')
    elif dtype.kind in 'US':
        return dtype.type('')
    elif dtype.kind == 'b':
        return np.False_
    elif dtype.kind in 'iu':
        return np.iinfo(dtype).max
    raise TypeError('no missing value sentinel for dtype {}'.format(dtype))


def normalize_fill_value(fill_value, dtype: np.dtype):
    """`fill_value` as a scalar of `dtype`, None meaning no fill value."""
    if fill_value is None:
        return None
    if dtype.kind == 'U':
        if not isinstance(fill_value, str):
            raise ValueError('fill value {!r} of a {} array must be a str'
                             .format(fill_value, dtype))
        return fill_value
    try:
        return np.array(fill_value, dtype=dtype)[()]
    except (TypeError, ValueError, OverflowError) as e:
        raise ValueError('fill_value {!r} is not valid for dtype {}: {}'
                         .format(fill_value, dtype, e)) from e


def normalize_storage_path(path: Union[str, bytes, None]) -> str:
    """A store path with forward slashes only and without empty segments.
    Segments '.' and '..' are refused."""
    if path is None:
        return ''
    if isinstance(path, bytes):
        path = str(path, 'ascii')
    segments = [s for s in str(path).replace('\\', '/').split('/') if s]
    if any(s in ('.', '..') for s in segments):
        raise ValueError('store paths cannot hold "." or ".." segments: {!r}'.format(path))
    return '/'.join(segments)


def buffer_size(v) -> int:
    return ensure_ndarray(v).nbytes


def info_text_report(items) -> str:
    """Aligned ``key : value`` lines, values wrapped at 80 characters."""
    width = max(len(k) for k, _ in items)
    lines = []
    for key, value in items:
        wrapper = TextWrapper(width=80,
                              initial_indent=key.ljust(width) + ' : ',
                              subsequent_indent=' ' * width + ' : ')
        lines.append(wrapper.fill(str(value)))
    return '\n'.join(lines) + '\n'


class InfoReporter(object):
    """Shows the ``info_items()`` of an object as a text report."""

    def __init__(self, obj):
        self.obj = obj

    def __repr__(self):
        return info_text_report(self.obj.info_items())


class TreeNode(object):
    """A labelled node of a display tree."""

    def __init__(self, text, children=()):
        self.text = text
        self.children = list(children)


class _NodeTraversal(Traversal):

    def get_children(self, node):
        return node.children

    def get_root(self, tree):
        return tree

    def get_text(self, node):
        return node.text


_TREE_LAYOUT = dict(horiz_len=2, label_space=1, indent=1)
_ASCII_LINES = dict(UP_AND_RIGHT='+', HORIZONTAL='-', VERTICAL='|',
                    VERTICAL_AND_RIGHT='+')
_BOX_LINES = dict(UP_AND_RIGHT='└', HORIZONTAL='─', VERTICAL='│',
                  VERTICAL_AND_RIGHT='├')


class TreeViewer(object):
    """Text rendering of a tree of :class:`TreeNode`, drawn with box
    characters, or plain ASCII through ``bytes()``."""

    def __init__(self, root):
        self.root = root

    def _render(self, lines):
        drawer = LeftAligned(traverse=_NodeTraversal(),
                             draw=BoxStyle(gfx=lines, **_TREE_LAYOUT))
        return drawer(self.root)

    def __bytes__(self):
        return self._render(_ASCII_LINES).encode()

    def __str__(self):
        return self._render(_BOX_LINES)

    def __repr__(self):
        return self.__str__()


def check_array_shape(param, array, shape):
    """Raise unless `array` is array-like with exactly `shape`."""
    actual = getattr(array, 'shape', None)
    if actual is None:
        raise TypeError('parameter {!r}: expected an array-like object, got {!r}'
                        .format(param, type(array)))
    if actual != shape:
        raise ValueError('parameter {!r}: expected array with shape {!r}, got {!r}'
                         .format(param, shape, actual))


class NoLock(object):
    """A lock that doesn't lock."""

    def __enter__(self):
        pass

    def __exit__(self, *args):
        pass


nolock = NoLock()


def retry_call(func: Callable, args=(), kwargs=None,
               exceptions: Tuple[Any, ...] = (), retries: int = 10,
               wait: float = 0.1) -> Any:
    """Call `func`, waiting `wait` seconds and trying again while it raises
    one of `exceptions`, at most `retries` times in all."""
    for attempt in range(1, retries + 1):
        try:
            return func(*args, **(kwargs or {}))
        except exceptions:
            if attempt == retries:
                raise
            time.sleep(wait)
