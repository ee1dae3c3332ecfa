"""Access to modules.builtin.modinfo: modinfo of modules built into the kernel.

The file is a sequence of nul-terminated strings of the form
``modname.key=value``; the strings of one module are consecutive.
"""

from __future__ import annotations

import errno
import logging
import os
from dataclasses import dataclass
from typing import Iterator, Union

MODULES_BUILTIN_MODINFO = "modules.builtin.modinfo"
PATH_MAX = 4096

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuiltinModule:
    """A built-in module and its modinfo strings ("key=value")."""

    name: str
    modinfo: tuple[str, ...]


def _name_too_long(name: str) -> OSError:
    return OSError(errno.ENAMETOOLONG, os.strerror(errno.ENAMETOOLONG), name)


def _modinfo_path(dirname: Union[str, os.PathLike]) -> str:
    dirname = os.fspath(dirname)
    if len(dirname) + 1 + len(MODULES_BUILTIN_MODINFO) + 1 >= PATH_MAX:
        raise _name_too_long(dirname)
    return f"{dirname}/{MODULES_BUILTIN_MODINFO}"


def _strings(data: bytes) -> Iterator[str]:
    """Yield the nul-terminated strings; an unterminated tail ends the data."""
    pos = 0
    while pos < len(data):
        end = data.find(b"\0", pos)
        if end < 0:
            return
        yield data[pos:end].decode("utf-8", errors="surrogateescape")
        pos = end + 1


def _module(name: str, entries: list[str]) -> BuiltinModule:
    if len(name) >= PATH_MAX:
        raise _name_too_long(name)
    return BuiltinModule(name, tuple(entries))


def iter_builtin_modules(dirname: Union[str, os.PathLike]) -> Iterator[BuiltinModule]:
    """Yield the built-in modules listed under dirname, in file order."""
    path = _modinfo_path(dirname)
    with open(path, "rb") as fh:
        data = fh.read()

    current = None
    entries: list[str] = []
    for line in _strings(data):
        name, dot, rest = line.partition(".")
        if not dot:
            logger.error("%s: unexpected string without modname prefix", path)
            break
        if current is not None and name != current:
            yield _module(current, entries)
            entries = []
        current = name
        entries.append(rest)
    if current is not None:
        yield _module(current, entries)


def get_modinfo(dirname: Union[str, os.PathLike], modname: str) -> list[str]:
    """Return the modinfo strings of the first block for modname.

    Raises KeyError when no such built-in module is listed.
    """
    for module in iter_builtin_modules(dirname):
        if module.name == modname:
            return list(module.modinfo)
    raise KeyError(modname)