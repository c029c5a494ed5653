import atexit
import os
import pickle
import shutil
import tempfile

import numpy as np
import pytest
from numcodecs import Blosc, Zlib

from cubeset.config import config
from cubeset.errors import ContainsArrayError, ContainsGroupError, FSPathExistNotDir
from cubeset.meta import decode_array_metadata
from cubeset.storage import (DirectoryStore, KVStore, MemoryStore, array_meta_key,
                             attrs_key, contains_array, contains_group, getsize,
                             group_meta_key, init_array, init_group, listdir,
                             normalize_store_arg, resolve_compressor, rmdir)


class StoreTests:
    """Behaviour shared by all stores."""

    def create_store(self):  # pragma: no cover
        raise NotImplementedError

    def test_mapping(self):
        store = self.create_store()
        assert 'tas/.zarray' not in store
        with pytest.raises(KeyError):
            # noinspection PyStatementEffect
            store['tas/.zarray']

        store['tas/.zarray'] = b'{}'
        assert 'tas/.zarray' in store
        assert b'{}' == bytes(store['tas/.zarray'])
        store['tas/.zarray'] = np.frombuffer(b'[]', dtype='u1')
        assert b'[]' == bytes(store['tas/.zarray'])

        del store['tas/.zarray']
        assert 'tas/.zarray' not in store
        with pytest.raises(KeyError):
            del store['tas/.zarray']

    def test_directories(self):
        store = self.create_store()
        store['.zgroup'] = b'aaa'
        store['.zattrs'] = b'bb'
        store['tas/0.0'] = b'cccc'
        store['tas/spatial/lon'] = b'ddddd'

        # directories are not keys
        assert 'tas' not in store
        assert 'tas/spatial' not in store
        assert {'.zgroup', '.zattrs', 'tas/0.0', 'tas/spatial/lon'} == set(store.keys())
        assert 4 == len(store)

        assert ['.zattrs', '.zgroup', 'tas'] == listdir(store)
        assert ['0.0', 'spatial'] == listdir(store, 'tas')
        assert ['lon'] == listdir(store, 'tas/spatial')
        assert [] == listdir(store, 'pr')

        # values directly below a directory only
        assert 5 == getsize(store)
        assert 4 == getsize(store, 'tas')
        assert 5 == getsize(store, 'tas/spatial')
        assert 4 == getsize(store, 'tas/0.0')

        rmdir(store, 'tas/spatial')
        assert 'tas/0.0' in store
        assert 'tas/spatial/lon' not in store
        rmdir(store, 'tas')
        assert ['.zattrs', '.zgroup'] == listdir(store)
        rmdir(store)
        assert 0 == len(store)

    def test_init_array(self):
        store = self.create_store()
        init_array(store, shape=(365, 10), chunks=(100, 10), dtype='f4')

        meta = decode_array_metadata(store[array_meta_key])
        assert (365, 10) == meta['shape']
        assert (100, 10) == meta['chunks']
        assert np.dtype('f4') == meta['dtype']
        assert Blosc().get_config() == meta['compressor']
        assert meta['fill_value'] is None
        assert 'C' == meta['order']

        with pytest.raises(ContainsArrayError):
            init_array(store, shape=10, dtype='f4')
        with pytest.raises(ContainsArrayError):
            init_group(store)

        store['0.0'] = b'chunk'
        init_array(store, shape=10, chunks=5, dtype='i2', fill_value=-1,
                   overwrite=True)
        meta = decode_array_metadata(store[array_meta_key])
        assert (10,) == meta['shape']
        assert -1 == meta['fill_value']
        assert '0.0' not in store

    def test_init_array_compressor(self):
        store = self.create_store()
        init_array(store, shape=10, dtype='f8', compressor=Zlib(1), path='tas')
        assert Zlib(1).get_config() == \
            decode_array_metadata(store['tas/' + array_meta_key])['compressor']

        init_array(store, shape=10, dtype='f8', compressor=None, path='pr')
        assert decode_array_metadata(store['pr/' + array_meta_key])['compressor'] is None

        init_array(store, shape=(), dtype='f8', path='scalar')
        assert decode_array_metadata(store['scalar/' + array_meta_key])['compressor'] \
            is None

        with config.set({'compressor': 'zlib'}):
            init_array(store, shape=10, dtype='f8', path='rsds')
        meta = decode_array_metadata(store['rsds/' + array_meta_key])
        assert 'zlib' == meta['compressor']['id']

    def test_init_array_parents(self):
        store = self.create_store()
        init_array(store, shape=10, dtype='f8', path='model/tas')
        assert contains_array(store, 'model/tas')
        assert contains_group(store, 'model')
        assert contains_group(store)
        assert not contains_array(store, 'model')

        # an array cannot hold members
        with pytest.raises(ContainsArrayError):
            init_array(store, shape=10, dtype='f8', path='model/tas/x')

    def test_init_group(self):
        store = self.create_store()
        init_group(store, path='model')
        assert contains_group(store, 'model')
        assert contains_group(store)
        with pytest.raises(ContainsGroupError):
            init_group(store, path='model')

        store['model/' + attrs_key] = b'{}'
        init_group(store, overwrite=True, path='model')
        assert 'model/' + attrs_key not in store
        assert 'model/' + group_meta_key in store

    def test_pickle(self):
        store = self.create_store()
        store['tas/0'] = b'chunk'
        copy = pickle.loads(pickle.dumps(store))
        assert b'chunk' == bytes(copy['tas/0'])

    def test_pickle_empty(self):
        store = self.create_store()
        copy = pickle.loads(pickle.dumps(store))
        copy['tas/0'] = b'chunk'
        assert 'tas/0' in copy


class TestKVStore(StoreTests):

    def create_store(self):
        return KVStore(dict())

    def test_values_become_bytes(self):
        d = dict()
        store = KVStore(d)
        store['a'] = np.arange(3, dtype='u1')
        assert isinstance(d['a'], bytes)
        assert KVStore(dict(d)) == store


class TestMemoryStore(StoreTests):

    def create_store(self):
        return MemoryStore()

    def test_value_is_not_directory(self):
        store = self.create_store()
        store['tas/0'] = b'x'
        with pytest.raises(KeyError):
            # noinspection PyStatementEffect
            store['tas']
        with pytest.raises(KeyError):
            store['tas/0/1'] = b'y'
        assert ['tas/0'] == list(store)

    def test_eq(self):
        a = self.create_store()
        b = self.create_store()
        assert a == b
        a['x'] = b'1'
        assert a != b


class TestDirectoryStore(StoreTests):

    def create_store(self):
        path = tempfile.mkdtemp()
        atexit.register(shutil.rmtree, path, ignore_errors=True)
        return DirectoryStore(path)

    def test_files(self, tmpdir):
        path = str(tmpdir.join('cube.zarr'))
        store = DirectoryStore(path)
        # nothing is created before the first write
        assert not os.path.exists(path)
        store['tas/0.0'] = b'chunk'
        assert os.path.isfile(os.path.join(path, 'tas', '0.0'))
        assert os.path.join(path, 'tas') == store.dir_path('tas')
        assert DirectoryStore(path) == store
        assert DirectoryStore(str(tmpdir)) != store

    def test_not_a_directory(self, tmpdir):
        fn = str(tmpdir.join('cube.zarr'))
        with open(fn, mode='w') as f:
            f.write('x')
        with pytest.raises(FSPathExistNotDir):
            DirectoryStore(fn)

    def test_value_replaces_directory(self, tmpdir):
        store = DirectoryStore(str(tmpdir))
        store['tas/0'] = b'x'
        store['tas'] = b'y'
        assert b'y' == store['tas']
        assert 'tas/0' not in store

    def test_no_partial_files(self, tmpdir):
        store = DirectoryStore(str(tmpdir))
        store['tas'] = b'x' * 1000
        store['tas'] = b'y' * 10
        assert ['tas'] == os.listdir(str(tmpdir))
        assert b'y' * 10 == store['tas']


def test_resolve_compressor():
    assert Blosc().get_config() == resolve_compressor('default').get_config()
    assert resolve_compressor(None) is None
    assert resolve_compressor('none') is None
    codec = Zlib(3)
    assert codec is resolve_compressor(codec)
    assert 'zlib' == resolve_compressor('zlib').codec_id
    with config.set({'compressor': 'none'}):
        assert resolve_compressor('default') is None
    with config.set({'compressor': 'zlib'}):
        assert isinstance(resolve_compressor('default'), Zlib)


def test_normalize_store_arg(tmpdir):
    assert isinstance(normalize_store_arg(None), MemoryStore)
    assert isinstance(normalize_store_arg(dict()), KVStore)
    assert isinstance(normalize_store_arg(str(tmpdir)), DirectoryStore)
    assert isinstance(normalize_store_arg(tmpdir), DirectoryStore)
    store = MemoryStore()
    assert store is normalize_store_arg(store)
    with pytest.raises(ValueError):
        normalize_store_arg(42)
