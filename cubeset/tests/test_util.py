import math

import numpy as np
import pytest

from cubeset.util import (CHUNK_TARGET_MAX, TreeNode, TreeViewer, default_fill_value,
                          guess_chunks, human_readable_size, info_text_report,
                          is_total_slice, json_dumps, json_loads, normalize_chunks,
                          normalize_dtype, normalize_fill_value, normalize_shape,
                          normalize_storage_path, retry_call)


def test_normalize_shape():
    assert (365, 90, 180) == normalize_shape([365, 90, 180])
    assert (365,) == normalize_shape(365)
    assert (12,) == normalize_shape(np.int64(12))
    assert () == normalize_shape(())
    with pytest.raises(TypeError):
        normalize_shape(None)
    with pytest.raises(ValueError):
        normalize_shape('time')


@pytest.mark.parametrize('chunks, shape, expect', [
    ((73,), (365,), (73,)),
    (10, (365, 20), (10, 10)),
    ((100, None), (365, 20), (100, 20)),
    ((100,), (365, 90, 180), (100, 90, 180)),
    ((100, -1, 30), (365, 90, 180), (100, 90, 30)),
    (False, (365, 90), (365, 90)),
    # zero-length dimensions still get one element per chunk
    (False, (0, 4), (1, 4)),
    ((0,), (10,), (1,)),
])
def test_normalize_chunks(chunks, shape, expect):
    assert expect == normalize_chunks(chunks, shape, 4)


def test_normalize_chunks_errors_and_guess():
    with pytest.raises(ValueError):
        normalize_chunks((10, 10), (100,), 8)
    assert guess_chunks((365,), 8) == normalize_chunks(None, (365,), 8)
    assert guess_chunks((365,), 8) == normalize_chunks(True, (365,), 8)


@pytest.mark.parametrize('shape, typesize', [
    ((100,), 1),
    ((365, 90, 180), 4),
    ((10000, 10000), 8),
    ((24 * 365 * 10, 721, 1440), 4),
    ((0, 5), 8),
])
def test_guess_chunks(shape, typesize):
    chunks = guess_chunks(shape, typesize)
    assert len(shape) == len(chunks)
    assert all(0 < c <= max(s, 1) for c, s in zip(chunks, shape))
    assert math.prod(chunks) * typesize <= CHUNK_TARGET_MAX


def test_guess_chunks_halves_in_turn():
    # 292M of data, about 1.4M per chunk; the first dimension is halved first
    assert (457, 13, 25) == guess_chunks((3650, 100, 100), 8)
    assert (1,) == guess_chunks((10 ** 6,), 4 * 10 ** 10)
    assert (100,) == guess_chunks((100,), 1)
    assert () == guess_chunks((), 8)


def test_is_total_slice():
    assert is_total_slice(Ellipsis, (365,))
    assert is_total_slice(slice(None), (365,))
    assert is_total_slice(slice(0, 365, 1), (365,))
    assert not is_total_slice(slice(0, 100), (365,))
    assert not is_total_slice(slice(0, 365, 2), (365,))
    assert is_total_slice((slice(0, 365), slice(None)), (365, 90))
    assert not is_total_slice((slice(None), 3), (365, 90))
    with pytest.raises(TypeError):
        is_total_slice([0, 1], (365,))


def test_human_readable_size():
    assert '1000' == human_readable_size(1000)
    assert '1.5K' == human_readable_size(1536)
    assert '2.0M' == human_readable_size(2 * 2**20)
    assert '1.0G' == human_readable_size(2**30)
    assert '1.0T' == human_readable_size(2**40)
    assert '4.0P' == human_readable_size(2**52)


def test_default_fill_value():
    assert np.isnan(default_fill_value('f4'))
    assert np.dtype('f4') == default_fill_value('f4').dtype
    assert np.isnan(default_fill_value(np.dtype('c8')))
    assert np.isnat(default_fill_value('M8[s]'))
    assert b'' == default_fill_value('S3')
    assert default_fill_value('b1') is np.False_
    assert 32767 == default_fill_value('i2')
    assert 255 == default_fill_value('u1')
    with pytest.raises(TypeError):
        default_fill_value('O')


def test_normalize_dtype():
    assert np.dtype('<f4') == normalize_dtype('float32')
    assert np.dtype('M8[D]') == normalize_dtype(np.dtype('M8[D]'))
    for bad in object, 'M8', 'm8':
        with pytest.raises(ValueError):
            normalize_dtype(bad)


def test_normalize_fill_value():
    assert normalize_fill_value(None, np.dtype('f4')) is None
    assert np.float32(-999.0) == normalize_fill_value('-999', np.dtype('f4'))
    assert np.dtype('f4') == normalize_fill_value(-999, np.dtype('f4')).dtype
    assert 'n/a' == normalize_fill_value('n/a', np.dtype('U3'))
    for value, dtype in ((0, 'U3'), ('missing', 'i4')):
        with pytest.raises(ValueError):
            normalize_fill_value(value, np.dtype(dtype))


def test_normalize_storage_path():
    assert '' == normalize_storage_path(None)
    assert '' == normalize_storage_path('//')
    assert 'model/tas' == normalize_storage_path('/model//tas/')
    assert 'model/tas' == normalize_storage_path('model\\tas')
    assert 'tas' == normalize_storage_path(b'tas')
    for bad in 'model/../tas', './tas':
        with pytest.raises(ValueError):
            normalize_storage_path(bad)


def test_json():
    encoded = json_dumps({'scale_factor': np.float32(0.5), 'valid_range': np.arange(2),
                          'units': 'K'})
    assert isinstance(encoded, bytes)
    # keys sorted, for stable documents
    assert encoded.index(b'scale_factor') < encoded.index(b'units')
    assert {'scale_factor': 0.5, 'valid_range': [0, 1], 'units': 'K'} == \
        json_loads(encoded)
    assert {'units': 'K'} == json_loads('{"units": "K"}')
    with pytest.raises(TypeError):
        json_dumps({'bad': object()})


def test_info_text_report():
    items = [('Name', '/tas'), ('Shape', '(365, 90)')]
    assert 'Name  : /tas\nShape : (365, 90)\n' == info_text_report(items)
    # long values wrap, continuing under the value column
    text = info_text_report([('Arrays', ', '.join(['variable'] * 20))])
    lines = text.splitlines()
    assert len(lines) > 1
    assert all(line.startswith('       : ') for line in lines[1:])


def test_tree_viewer():
    tree = TreeViewer(TreeNode('/', [TreeNode('pr'), TreeNode('tas')]))
    assert '/\n ├── pr\n └── tas' == str(tree)
    assert b'/\n +-- pr\n +-- tas' == bytes(tree)


class TransientError(Exception):
    pass


class FailingCall(object):
    """Raises until called `succeed_on` times."""

    def __init__(self, succeed_on):
        self.calls = 0
        self.succeed_on = succeed_on

    def __call__(self, value=None):
        self.calls += 1
        if self.calls < self.succeed_on:
            raise TransientError()
        return value


@pytest.mark.parametrize('succeed_on', [1, 2, 10])
def test_retry_call(succeed_on):
    call = FailingCall(succeed_on)
    assert 'ok' == retry_call(call, args=('ok',), exceptions=(TransientError,),
                              wait=0)
    assert succeed_on == call.calls


def test_retry_call_gives_up():
    call = FailingCall(11)
    with pytest.raises(TransientError):
        retry_call(call, exceptions=(TransientError,), wait=0)
    assert 10 == call.calls

    # other errors are not retried
    call = FailingCall(2)
    with pytest.raises(TransientError):
        retry_call(call, exceptions=(KeyError,), wait=0)
    assert 1 == call.calls
