"""hostbind - Schema-driven binding generator for host runtime ABIs."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("hostbind")
except PackageNotFoundError:
    __version__ = "(local)"
