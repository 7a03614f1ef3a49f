"""Locate the sys.path root a class or module was imported from.

The child interpreter only sees what is on its PYTHONPATH, so every class a
child needs must be traced back to the directory or archive that provides it.

Two kinds of root exist:
- A directory on sys.path (source checkout, site-packages)
- An archive imported through zipimport (.zip, .whl, .egg, .pyz)
"""

from __future__ import annotations

import importlib.machinery
import importlib.util
import os
import sys
import types
from pathlib import Path
from typing import Any

from ..errors import HarnessEnvironmentError

__all__ = [
    "ARCHIVE_SUFFIXES",
    "get_module_source",
    "get_object_source",
    "resolve_root",
]

ARCHIVE_SUFFIXES = (".zip", ".whl", ".egg", ".pyz")


def get_object_source(obj: Any) -> Path | None:
    """Get the directory or archive that contains the given class or module.

    Args:
        obj: A class, function or module object, may be None

    Returns:
        Absolute path of the import root, or None if unknown
    """
    if obj is None:
        return None
    if isinstance(obj, types.ModuleType):
        spec = getattr(obj, "__spec__", None)
        if spec is not None:
            return _source_from_spec(spec)
        module_name = obj.__name__
    else:
        module_name = getattr(obj, "__module__", None)
    if not module_name:
        return None
    return get_module_source(module_name)


def get_module_source(module_name: str) -> Path | None:
    """Get the directory or archive that contains the named module.

    Already imported modules are looked up in sys.modules first so that a
    module run with ``-m`` (registered as ``__main__``) still resolves.
    """
    module = sys.modules.get(module_name)
    spec = getattr(module, "__spec__", None) if module is not None else None
    if spec is None:
        try:
            spec = importlib.util.find_spec(module_name)
        except (ImportError, ValueError):
            return None
    if spec is None:
        return None
    return _source_from_spec(spec)


def _source_from_spec(spec: importlib.machinery.ModuleSpec) -> Path | None:
    # built-in, frozen and namespace packages have no file to trace back
    if not spec.has_location or not spec.origin:
        return None
    is_package = spec.submodule_search_locations is not None
    return resolve_root(spec.origin, spec.name, is_package)


def resolve_root(origin: str | os.PathLike[str], module_name: str, is_package: bool) -> Path:
    """Strip a module's own path components off its origin.

    ``/src/pkg/mod.py`` for ``pkg.mod`` resolves to ``/src``;
    ``/lib/bundle.zip/pkg/mod.py`` resolves to ``/lib/bundle.zip``.

    Args:
        origin: File the module was loaded from
        module_name: Dotted module name
        is_package: Whether origin is the package's ``__init__`` file

    Returns:
        Absolute path of the import root

    Raises:
        HarnessEnvironmentError: The origin does not end with the module's
            own path, i.e. the import system reported an impossible location
    """
    origin_path = Path(os.path.abspath(origin))

    for parent in origin_path.parents:
        if parent.suffix.lower() in ARCHIVE_SUFFIXES and parent.is_file():
            return parent

    names = module_name.split(".")
    if is_package:
        names.append("__init__")

    # extension modules carry an ABI tag: mod.cpython-312-x86_64-linux-gnu.so
    if origin_path.name.split(".", 1)[0] != names[-1]:
        raise HarnessEnvironmentError(
            f"Module {module_name!r} reports origin {origin_path} which is not its own file"
        )

    root = origin_path.parent
    for name in reversed(names[:-1]):
        if root.name != name:
            raise HarnessEnvironmentError(
                f"Module {module_name!r} reports origin {origin_path} outside a {name!r} directory"
            )
        root = root.parent
    return root
