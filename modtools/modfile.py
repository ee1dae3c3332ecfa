"""Opening kernel module files, plain or compressed with zstd, xz or gzip."""

from __future__ import annotations

import errno
import gzip
import logging
import lzma
import os
import zlib
from enum import Enum
from typing import BinaryIO, Optional, Union

import zstandard

from modtools.elf import Elf

logger = logging.getLogger(__name__)


class Compression(Enum):
    """Compression of a module file, detected from its leading bytes."""

    NONE = 0
    ZSTD = 1
    XZ = 2
    ZLIB = 3


# Checked in this order; the first matching magic wins.
_MAGICS: tuple[tuple[Compression, bytes], ...] = (
    (Compression.ZSTD, b"\x28\xb5\x2f\xfd"),
    (Compression.XZ, b"\xfd7zXZ\x00"),
    (Compression.ZLIB, b"\x1f\x8b"),
)
_MAGIC_SIZE_MAX = max(len(magic) for _, magic in _MAGICS)


def _invalid(message: str, filename: Optional[str] = None) -> OSError:
    return OSError(errno.EINVAL, message, filename)


def _load_zstd(data: bytes) -> bytes:
    dctx = zstandard.ZstdDecompressor()
    chunks = []
    try:
        while data:
            dobj = dctx.decompressobj()
            chunks.append(dobj.decompress(data))
            data = dobj.unused_data
    except zstandard.ZstdError as exc:
        logger.error("zstd: %s", exc)
        raise _invalid(f"zstd: {exc}") from exc
    return b"".join(chunks)


def _load_xz(data: bytes) -> bytes:
    try:
        return lzma.decompress(data, format=lzma.FORMAT_XZ)
    except lzma.LZMAError as exc:
        logger.error("xz: %s", exc)
        raise _invalid(f"xz: {exc}") from exc


def _load_zlib(data: bytes) -> bytes:
    try:
        return gzip.decompress(data)
    except (OSError, EOFError, zlib.error) as exc:
        logger.error("gzip: %s", exc)
        raise _invalid(f"gzip: {exc}") from exc


_LOADERS = {
    Compression.NONE: lambda data: data,
    Compression.ZSTD: _load_zstd,
    Compression.XZ: _load_xz,
    Compression.ZLIB: _load_zlib,
}


class ModuleFile:
    """A module file whose contents are read and decompressed on demand."""

    def __init__(self, path: Union[str, os.PathLike]) -> None:
        self.path = os.fspath(path)
        fh: BinaryIO = open(self.path, "rb")
        try:
            head = fh.read(_MAGIC_SIZE_MAX)
            fh.seek(0)
            if len(head) != _MAGIC_SIZE_MAX:
                raise _invalid("file too short to detect compression", self.path)
        except BaseException:
            fh.close()
            raise
        self._fh: Optional[BinaryIO] = fh
        self.compression = next(
            (kind for kind, magic in _MAGICS if head.startswith(magic)),
            Compression.NONE,
        )
        self._memory: Optional[bytes] = None
        self._elf: Optional[Elf] = None

    @property
    def closed(self) -> bool:
        return self._fh is None

    @property
    def contents(self) -> Optional[bytes]:
        """The loaded (decompressed) contents, or None before loading."""
        return self._memory

    @property
    def size(self) -> int:
        """Size of the loaded contents; 0 before loading."""
        return len(self._memory) if self._memory is not None else 0

    def load(self) -> bytes:
        """Read and decompress the whole file, once; return its contents."""
        if self._memory is not None:
            return self._memory
        if self._fh is None:
            raise ValueError("I/O operation on closed module file")
        self._fh.seek(0)
        raw = self._fh.read()
        self._memory = _LOADERS[self.compression](raw)
        return self._memory

    def get_elf(self) -> Elf:
        """Return the ELF image of the contents, parsed once."""
        if self._elf is None:
            self._elf = Elf(self.load())
        return self._elf

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None
        self._memory = None
        self._elf = None

    def __enter__(self) -> "ModuleFile":
        return self

    def __exit__(self, *args) -> None:
        self.close()