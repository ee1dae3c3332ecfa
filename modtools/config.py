"""Locating and loading the modprobe configuration of a system."""

from __future__ import annotations

import logging
import os
import stat
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, Optional, Union

from modtools.confparse import Config
from modtools.kcmdline import KCMD_LINE_SIZE

logger = logging.getLogger(__name__)

PATH_MAX = 4096
MODULES_SOFTDEP = "modules.softdep"

_PathLike = Union[str, os.PathLike]


@dataclass(frozen=True)
class ConfigPath:
    """A configuration path that was found, with its modification stamp (usec)."""

    path: str
    stamp: int


class ConfigKind(Enum):
    """The kinds of configuration entries that can be iterated."""

    BLACKLIST = 0
    INSTALL = 1
    REMOVE = 2
    ALIAS = 3
    OPTION = 4
    SOFTDEP = 5


def _filtered_out(dirpath: str, name: str) -> bool:
    if name.startswith("."):
        return True
    if len(name) < 6 or not name.endswith((".conf", ".alias")):
        return True
    if os.path.isdir(os.path.join(dirpath, name)):
        logger.error("Directories inside directories are not supported: %s/%s",
                     dirpath, name)
        return True
    return False


def _insert(found: dict, name: str, path: str, is_single: bool) -> None:
    if name in found:
        logger.debug("Ignoring duplicate config file: %s", path)
        return
    found[name] = (path, is_single)


def list_config_files(dirname: _PathLike,
                      config_paths: Iterable[_PathLike]
                      ) -> tuple[list[str], list[ConfigPath]]:
    """Return the files to parse, ordered by name, and the paths found.

    A file name seen in an earlier path hides files of the same name in
    later ones. modules.softdep of dirname is always listed.
    """
    dirname = os.fspath(dirname)
    found: dict[str, tuple[str, bool]] = {}
    _insert(found, MODULES_SOFTDEP, f"{dirname}/{MODULES_SOFTDEP}", False)

    paths: list[ConfigPath] = []
    for path in config_paths:
        path = os.fspath(path)
        try:
            st = os.stat(path)
        except OSError as exc:
            logger.debug("could not stat '%s': %s", path, exc)
            continue
        if stat.S_ISDIR(st.st_mode):
            try:
                names = os.listdir(path)
            except OSError as exc:
                logger.error("opendir(%s): %s", path, exc)
                continue
            for name in names:
                if not _filtered_out(path, name):
                    _insert(found, name, f"{path}/{name}", False)
        else:
            _insert(found, os.path.basename(path), path, True)
        paths.append(ConfigPath(path, st.st_mtime_ns // 1000))

    files = []
    for name in sorted(found):
        path, is_single = found[name]
        if not is_single and len(path) >= PATH_MAX:
            logger.error("Error parsing %s: path too long", path)
            continue
        files.append(path)
    return files, paths


def load_config(dirname: _PathLike, config_paths: Iterable[_PathLike],
                cmdline_path: Optional[_PathLike] = "/proc/cmdline") -> Config:
    """Load every configuration file, then the kernel command line options."""
    files, paths = list_config_files(dirname, config_paths)
    config = Config(paths=paths)
    for path in files:
        logger.debug("parsing file '%s'", path)
        try:
            config.parse_file(path)
        except OSError as exc:
            logger.debug("could not read '%s': %s", path, exc)

    if cmdline_path is not None:
        try:
            with open(cmdline_path, "rb") as fh:
                raw = fh.read(KCMD_LINE_SIZE - 1)
        except OSError as exc:
            logger.debug("could not open '%s' for reading: %s", cmdline_path, exc)
        else:
            config.apply_kcmdline(raw.decode("utf-8", errors="surrogateescape"))
    return config


def iter_config(config: Config, kind: ConfigKind
                ) -> Iterator[tuple[str, Optional[str]]]:
    """Yield (key, value) for each entry of one kind; blacklists have no value."""
    if kind is ConfigKind.BLACKLIST:
        for name in config.blacklists:
            yield name, None
    elif kind is ConfigKind.INSTALL:
        yield from config.install_commands
    elif kind is ConfigKind.REMOVE:
        yield from config.remove_commands
    elif kind is ConfigKind.ALIAS:
        yield from config.aliases
    elif kind is ConfigKind.OPTION:
        yield from config.options
    elif kind is ConfigKind.SOFTDEP:
        for dep in config.softdeps:
            yield dep.name, str(dep)
    else:
        raise ValueError(f"unknown configuration kind {kind!r}")