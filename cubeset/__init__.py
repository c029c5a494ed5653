# flake8: noqa
from cubeset.axis import Axis, LookupKind
from cubeset.chunks import GridChunks, IrregularChunks, RegularChunks
from cubeset.chunkoffset import chunk_offsets, reconcile_chunk_offsets
from cubeset.concat import ConcatHandle
from cubeset.config import config, init_config
from cubeset.convenience import (copy_to, create_cube, open_dataset, open_mfdataset,
                                 save_cube, save_dataset)
from cubeset.core import Array
from cubeset.dataset import Cube, Dataset, to_dataset
from cubeset.errors import (CategoricalJoinError, ChunkOffsetConflictError,
                            InconsistentAxisKindError, InconsistentOrderingError,
                            MetadataError, OverlappingRangesError, PathExistsError,
                            ShapeMismatchError, SizeMismatchError, VariableExistsError)
from cubeset.handles import NumpyHandle
from cubeset.hierarchy import Group, group, open_group
from cubeset.join import AllEqual, NewDim, SortedRanges, analyse_axis_join
from cubeset.merge import merge_along_axis, merge_datasets
from cubeset.storage import DirectoryStore, KVStore, MemoryStore
from cubeset.sync import ProcessSynchronizer, ThreadSynchronizer
from cubeset.version import version as __version__
