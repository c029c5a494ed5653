import numpy as np

from cubeset.axis import Axis
from cubeset.dataset import Cube, Dataset


def make_source(times, seed=0, extra=None):
    """A small dataset with a shared `lon` axis and the given `time` values."""
    rng = np.random.default_rng(seed)
    lon = Axis('lon', np.arange(4) * 0.5)
    time = Axis('time', np.asarray(times))
    cubes = {
        'tas': Cube([lon, time], rng.random((4, len(time))), {'units': 'K'}),
        'pr': Cube([lon, time], rng.random((4, len(time))).astype('f4')),
    }
    if extra:
        cubes.update(extra)
    return Dataset(cubes, properties={'source': 'seed{}'.format(seed)})
