"""
Process-wide defaults for cubeset, based on the Donfig python library.

The values are read by the persistence entry points (``save_dataset``,
``save_cube``, ``create_cube``) and by ``Dataset.load`` whenever the caller
does not pass an explicit value. They can be set programmatically::

    from cubeset.config import config
    config.set({"max_cache": 1e9})

temporarily, with ``config.set`` as a context manager, or through
environment variables such as ``CUBESET_WORKDIR=/scratch/cubes``.

``config.reset()`` restores the defaults.
"""

from typing import Any

from donfig import Config as DConfig


class Config(DConfig):  # type: ignore[misc]
    """The Config will collect configuration from config files and environment variables

    Example environment variables:
    Grabs environment variables of the form "CUBESET_FOO__BAR_BAZ=123" and
    turns these into config variables of the form ``{"foo": {"bar-baz": 123}}``
    """

    def reset(self) -> None:
        self.clear()
        self.refresh()


# The default configuration for cubeset
config = Config(
    "cubeset",
    defaults=[
        {
            # directory that relative and generated save paths live in
            "workdir": ".",
            # bytes that may be loaded or buffered by a single operation
            "max_cache": 5e8,
            # chunks buffered per write window during a copy
            "writefac": 4.0,
            "compressor": "default",
        }
    ],
)


def init_config(**kwargs: Any) -> None:
    """Apply configuration overrides for the rest of the process.

    Keyword names are configuration keys, e.g.
    ``init_config(workdir="/tmp/cubes", max_cache=1e8)``.
    """
    unknown = set(kwargs) - {"workdir", "max_cache", "writefac", "compressor"}
    if unknown:
        raise ValueError("unknown configuration keys: {}".format(sorted(unknown)))
    config.set(kwargs)
