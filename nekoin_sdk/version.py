"""
Version information for the Nekoin SDK.
"""
import importlib.metadata
import pathlib

import tomli

_DEFAULT_VERSION = "0.1.0"
_PYPROJECT = pathlib.Path(__file__).parent.parent / "pyproject.toml"


def _source_tree_version() -> str:
    """Version declared in pyproject.toml when running from a checkout."""
    try:
        with _PYPROJECT.open("rb") as f:
            return tomli.load(f)["project"]["version"]
    except (OSError, KeyError, tomli.TOMLDecodeError):
        return _DEFAULT_VERSION


try:
    __version__ = importlib.metadata.version("nekoin-sdk")
except importlib.metadata.PackageNotFoundError:
    __version__ = _source_tree_version()
