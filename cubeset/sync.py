"""Locks for writing one stored dataset from several threads or processes.

A synchronizer maps a store key, a chunk or a metadata document, to a lock.
Arrays, groups and attributes hold the lock of a key while they rewrite it,
so concurrent writers of windows sharing a chunk do not lose each other's
elements.
"""
import os
from collections import defaultdict
from threading import Lock

import fasteners


class ThreadSynchronizer(object):
    """One lock per store key, shared by the threads of a process."""

    def __init__(self):
        self._guard = Lock()
        self._locks = defaultdict(Lock)

    def __getitem__(self, key):
        with self._guard:
            return self._locks[key]

    def __len__(self):
        return len(self._locks)

    def __getstate__(self):
        # locks don't pickle, an unpickled copy starts with fresh ones
        return True

    def __setstate__(self, state):
        self.__init__()


class _KeyLock(object):
    """The thread lock of a key, then its lock file."""

    def __init__(self, thread_lock, file_lock):
        self.thread_lock = thread_lock
        self.file_lock = file_lock

    def __enter__(self):
        self.thread_lock.acquire()
        try:
            self.file_lock.acquire()
        except BaseException:
            self.thread_lock.release()
            raise
        return self

    def __exit__(self, *args):
        try:
            self.file_lock.release()
        finally:
            self.thread_lock.release()


class ProcessSynchronizer(object):
    """Provides synchronization using file locks via the
    `fasteners <https://fasteners.readthedocs.io/en/latest/api/inter_process/>`_
    package, for several processes writing different variables or windows
    of one saved dataset. Threads within a process are serialised as well,
    since file locks are held per process.

    Parameters
    ----------
    path : string
        Path to a directory on a file system that is shared by all processes.
        N.B., this should be a *different* path to where you store the dataset.

    """

    def __init__(self, path):
        self.path = os.fspath(path)
        self._threads = ThreadSynchronizer()

    def lock_path(self, key):
        """The lock file of a store key; keys of array members get a lock
        file in a directory of the array's name."""
        return os.path.join(self.path, *key.split('/'))

    def __getitem__(self, key):
        return _KeyLock(self._threads[key],
                        fasteners.InterProcessLock(self.lock_path(key)))

    def __getstate__(self):
        return {'path': self.path}

    def __setstate__(self, state):
        self.__init__(state['path'])
