"""deadcode: report Python functions that are unreachable from the program's entry points."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("deadcode-cli")
except PackageNotFoundError:
    __version__ = "unknown"

__all__ = ["__version__"]
