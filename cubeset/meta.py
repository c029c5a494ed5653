"""Encoding and decoding of array and group metadata.

Documents follow version 2 of the zarr storage format, so persisted
datasets also open with zarr and xarray. Only what cubeset writes is
understood: no filters and no structured dtypes.
"""
import base64
from collections.abc import Mapping

import numpy as np

from cubeset.errors import MetadataError
from cubeset.util import json_dumps, json_loads

ZARR_FORMAT = 2

# JSON has no literals for these floats
_SPECIAL_FLOATS = {'NaN': np.nan, 'Infinity': np.inf, '-Infinity': -np.inf}


def _parse(s):
    meta = s if isinstance(s, Mapping) else json_loads(s)
    fmt = meta.get('zarr_format')
    if fmt != ZARR_FORMAT:
        raise MetadataError('unsupported zarr format: {}'.format(fmt))
    return meta


def encode_dtype(dtype: np.dtype) -> str:
    if dtype.fields is not None:
        raise MetadataError('structured dtypes are not supported')
    return dtype.str


def encode_fill_value(v, dtype: np.dtype):
    """`v` as a JSON value: special floats by name, bytes in base64 and
    datetimes as their integer count."""
    if v is None:
        return None
    kind = dtype.kind
    if kind == 'f':
        if np.isnan(v):
            return 'NaN'
        if np.isinf(v):
            return 'Infinity' if v > 0 else '-Infinity'
        return float(v)
    if kind == 'c':
        return [encode_fill_value(v.real, np.dtype('f8')),
                encode_fill_value(v.imag, np.dtype('f8'))]
    if kind in 'iu':
        return int(v)
    if kind == 'b':
        return bool(v)
    if kind == 'S':
        return base64.standard_b64encode(v).decode('ascii')
    if kind == 'U':
        return str(v)
    if kind in 'mM':
        return int(np.asarray(v, dtype=dtype).view('i8'))
    return v


def decode_fill_value(v, dtype: np.dtype):
    if v is None:
        return None
    kind = dtype.kind
    if kind == 'f' and isinstance(v, str):
        return dtype.type(_SPECIAL_FLOATS[v])
    if kind == 'c':
        real = decode_fill_value(v[0], np.dtype('f8'))
        imag = decode_fill_value(v[1], np.dtype('f8'))
        return np.array(complex(real, imag), dtype=dtype)[()]
    if kind == 'S':
        try:
            v = base64.standard_b64decode(v)
        except (TypeError, ValueError):
            # older writers stored plain values such as 0
            pass
    elif kind == 'U':
        return v
    elif kind in 'mM':
        return np.array(int(v), dtype='i8').view(dtype)[()]
    return np.array(v, dtype=dtype)[()]


def encode_array_metadata(meta) -> bytes:
    """Encode the ``.zarray`` document from a dict with the keys shape,
    chunks, dtype, compressor (a codec config or None), fill_value and
    order."""
    dtype = meta['dtype']
    return json_dumps(dict(
        zarr_format=ZARR_FORMAT,
        shape=meta['shape'],
        chunks=meta['chunks'],
        dtype=encode_dtype(dtype),
        compressor=meta['compressor'],
        fill_value=encode_fill_value(meta['fill_value'], dtype),
        order=meta['order'],
        filters=None,
    ))


def decode_array_metadata(s):
    """Decode a ``.zarray`` document, given as JSON or already parsed."""
    meta = _parse(s)
    if meta.get('filters'):
        raise MetadataError('filters are not supported')
    try:
        dtype = np.dtype(meta['dtype'])
        return dict(
            zarr_format=ZARR_FORMAT,
            shape=tuple(meta['shape']),
            chunks=tuple(meta['chunks']),
            dtype=dtype,
            compressor=meta['compressor'],
            fill_value=decode_fill_value(meta['fill_value'], dtype),
            order=meta['order'],
            filters=None,
        )
    except (KeyError, TypeError, ValueError) as e:
        raise MetadataError('error decoding metadata') from e


def encode_group_metadata(meta=None) -> bytes:
    return json_dumps(dict(zarr_format=ZARR_FORMAT))


def decode_group_metadata(s):
    _parse(s)
    return dict(zarr_format=ZARR_FORMAT)
