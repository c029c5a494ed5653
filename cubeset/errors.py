class MetadataError(Exception):
    pass


class _BaseCubesetError(ValueError):
    _msg = ""

    def __init__(self, *args):
        super().__init__(self._msg.format(*args))


class _BaseCubesetIndexError(IndexError):
    _msg = ""

    def __init__(self, *args):
        super().__init__(self._msg.format(*args))


class ContainsGroupError(_BaseCubesetError):
    _msg = "path {0!r} contains a group"


class ContainsArrayError(_BaseCubesetError):
    _msg = "path {0!r} contains an array"


class ArrayNotFoundError(_BaseCubesetError):
    _msg = "array not found at path {0!r}"


class GroupNotFoundError(_BaseCubesetError):
    _msg = "group not found at path {0!r}"


class PathNotFoundError(_BaseCubesetError):
    _msg = "nothing found at path {0!r}"


class PathExistsError(_BaseCubesetError):
    _msg = ("path {0!r} already exists; pass overwrite=True to replace it "
            "or append=True to add variables to it")


class BadCompressorError(_BaseCubesetError):
    _msg = "bad compressor; expected Codec object, found {0!r}"


class FSPathExistNotDir(GroupNotFoundError):
    _msg = "path exists but is not a directory: {0!r}"


class ReadOnlyError(PermissionError):
    def __init__(self):
        super().__init__("object is read-only")


class BoundsCheckError(_BaseCubesetIndexError):
    _msg = "index out of bounds for dimension with length {0}"


class NegativeStepError(IndexError):
    def __init__(self):
        super().__init__("only slices with step >= 1 are supported")


def err_too_many_indices(selection, shape):
    raise IndexError("too many indices for array; expected {}, got {}"
                     .format(len(shape), len(selection)))


class _NamedError(_BaseCubesetError):
    """Error raised about one named axis or variable. The name is kept on
    the instance so callers can report it without parsing the message."""

    def __init__(self, name, *args):
        self.name = name
        super().__init__(name, *args)


class InconsistentAxisKindError(_NamedError):
    _msg = ("axis {0!r} mixes continuous and categorical values across "
            "sources")


class InconsistentOrderingError(_NamedError):
    _msg = ("values of axis {0!r} are not sorted in the same direction in "
            "every source")


class OverlappingRangesError(_NamedError):
    _msg = "value ranges of axis {0!r} overlap between sources"


class CategoricalJoinError(_NamedError):
    _msg = ("categorical axis {0!r} has different labels in different "
            "sources; only identical labels can be joined")


class ShapeMismatchError(_NamedError):
    _msg = "shape mismatch for {0!r}: {1}"


class ChunkOffsetConflictError(_NamedError):
    _msg = ("variables disagree on the chunk offset of axis {0!r}: "
            "{1} != {2}")


class SizeMismatchError(_NamedError):
    _msg = ("size mismatch for axis {0!r}: existing length {1}, "
            "new length {2}")


class VariableExistsError(_NamedError):
    _msg = "variable {0!r} already exists in the target"
