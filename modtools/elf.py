"""Read-mostly access to the ELF image of a kernel module.

The image is held in memory. The first modification (stripping a section or
the vermagic string) makes a private writable copy, so the caller's data is
never changed.
"""

from __future__ import annotations

import errno
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

ELFMAG = b"\x7fELF"
EI_NIDENT = 16
EI_CLASS = 4
EI_DATA = 5
ELFCLASS32 = 1
ELFCLASS64 = 2
ELFDATA2LSB = 1
ELFDATA2MSB = 2

SHN_UNDEF = 0
SHN_ABS = 0xFFF1
SHF_ALLOC = 0x2

EM_SPARC = 2
EM_SPARCV9 = 43

STB_LOCAL = 0
STB_GLOBAL = 1
STB_WEAK = 2

# Size of one __versions entry: crc followed by the symbol name.
MODVERSION_ENTRY_SIZE = 64

_EHDR_SIZE = {32: 52, 64: 64}
_SHDR_SIZE = {32: 40, 64: 64}

# (offset, size) of the header fields that are read.
_EHDR_FIELDS = {
    32: {"machine": (18, 2), "shoff": (32, 4), "shentsize": (46, 2),
         "shnum": (48, 2), "shstrndx": (50, 2)},
    64: {"machine": (18, 2), "shoff": (40, 8), "shentsize": (58, 2),
         "shnum": (60, 2), "shstrndx": (62, 2)},
}
_SHDR_FIELDS = {
    32: {"name": (0, 4), "flags": (8, 4), "offset": (16, 4), "size": (20, 4)},
    64: {"name": (0, 4), "flags": (8, 8), "offset": (24, 8), "size": (32, 8)},
}

_VERMAGIC = b"vermagic="


class ElfError(ValueError):
    """The image is not a usable ELF file, or a lookup in it failed."""

    def __init__(self, message: str, code: int = errno.EINVAL) -> None:
        super().__init__(message)
        self.errno = code


class SymbolBind(str, Enum):
    """How a module symbol is bound."""

    NONE = "\0"
    LOCAL = "L"
    GLOBAL = "G"
    WEAK = "W"
    UNDEF = "U"


@dataclass(frozen=True)
class ModVersion:
    """A symbol with its CRC and binding."""

    crc: int
    bind: SymbolBind
    symbol: str


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", errors="surrogateescape")


class Elf:
    """An ELF image held in memory."""

    def __init__(self, data: Union[bytes, bytearray, memoryview]) -> None:
        if data is None:
            raise ElfError("no ELF data given")
        self._data = bytes(data)
        self._changed: Optional[bytearray] = None
        self.size = len(self._data)
        self.bits, self.is_msb = self._identify()
        self.is_32 = self.bits == 32
        self._byteorder = "big" if self.is_msb else "little"

        fields = _EHDR_FIELDS[self.bits]
        self.section_offset = self.read_uint(*fields["shoff"])
        self.section_count = self.read_uint(*fields["shnum"])
        self.section_entry_size = self.read_uint(*fields["shentsize"])
        self.strings_index = self.read_uint(*fields["shstrndx"])
        self.machine = self.read_uint(*fields["machine"])

        shdr_size = _SHDR_SIZE[self.bits]
        if self.section_entry_size != shdr_size:
            raise ElfError(
                f"unexpected section entry size: {self.section_entry_size}, "
                f"expected {shdr_size}"
            )
        if shdr_size * self.section_count + self.section_offset > self.size:
            raise ElfError("file is too short to hold sections")

        try:
            offset, size, _ = self.section_info(self.strings_index)
        except ElfError as exc:
            raise ElfError("could not get strings section") from exc
        if size == 0 or self._buf[offset + size - 1] != 0:
            raise ElfError("strings section does not end with a nul byte")
        self.strings_offset = offset
        self.strings_size = size

    def _identify(self) -> tuple[int, bool]:
        data = self._data
        if self.size <= EI_NIDENT or not data.startswith(ELFMAG):
            raise ElfError("not an ELF file", errno.ENOEXEC)
        elf_class = data[EI_CLASS]
        if elf_class == ELFCLASS32:
            bits = 32
        elif elf_class == ELFCLASS64:
            bits = 64
        else:
            raise ElfError(f"unknown ELF class {elf_class}")
        if self.size <= _EHDR_SIZE[bits]:
            raise ElfError("file is too short for the ELF header")
        encoding = data[EI_DATA]
        if encoding == ELFDATA2LSB:
            return bits, False
        if encoding == ELFDATA2MSB:
            return bits, True
        raise ElfError(f"unknown ELF data encoding {encoding}")

    @property
    def _buf(self) -> Union[bytes, bytearray]:
        return self._changed if self._changed is not None else self._data

    @property
    def memory(self) -> bytes:
        """The current image, including any modification."""
        return bytes(self._buf)

    def _writable(self) -> bytearray:
        if self._changed is None:
            self._changed = bytearray(self._data)
        return self._changed

    def read_uint(self, offset: int, size: int) -> int:
        """Read an unsigned integer of size bytes in the image's byte order."""
        if size > 8:
            raise ElfError(f"integer of {size} bytes is too wide")
        if offset < 0 or offset + size > self.size:
            raise ElfError(
                f"out of bounds: {offset} + {size} > {self.size} (ELF size)"
            )
        return int.from_bytes(self._buf[offset:offset + size], self._byteorder)

    def _write_uint(self, offset: int, size: int, value: int) -> None:
        if size > 8:
            raise ElfError(f"integer of {size} bytes is too wide")
        if offset < 0 or offset + size > self.size:
            raise ElfError(
                f"out of bounds: {offset} + {size} > {self.size} (ELF size)"
            )
        mask = (1 << (8 * size)) - 1
        self._writable()[offset:offset + size] = (value & mask).to_bytes(
            size, self._byteorder
        )

    def _strlen(self, offset: int) -> int:
        if offset < 0 or offset >= self.size:
            raise ElfError(f"out-of-bounds: {offset} >= {self.size} (ELF size)")
        end = self._buf.find(b"\0", offset)
        return (self.size if end < 0 else end) - offset

    def c_string(self, offset: int) -> str:
        """Read the nul-terminated string starting at offset."""
        length = self._strlen(offset)
        return _decode(bytes(self._buf[offset:offset + length]))

    def _section_header(self, index: int) -> int:
        if index == SHN_UNDEF or index >= self.section_count:
            raise ElfError(
                f"invalid section number: {index}, last={self.section_count}"
            )
        offset = self.section_offset + index * self.section_entry_size
        if offset >= self.size:
            raise ElfError(f"out-of-bounds: {offset} >= {self.size} (ELF size)")
        return offset

    def section_info(self, index: int) -> tuple[int, int, int]:
        """Return (offset, size, name offset) of the section at index."""
        header = self._section_header(index)
        fields = _SHDR_FIELDS[self.bits]

        def field(name: str) -> int:
            off, size = fields[name]
            return self.read_uint(header + off, size)

        size = field("size")
        offset = field("offset")
        nameoff = field("name")
        if offset + size > self.size:
            raise ElfError(
                f"out-of-bounds: {offset + size} > {self.size} (ELF size)"
            )
        return offset, size, nameoff

    def find_section(self, name: str) -> Optional[int]:
        """Return the index of the first section called name, or None."""
        for index in range(1, self.section_count):
            try:
                _, _, nameoff = self.section_info(index)
            except ElfError:
                continue
            if nameoff >= self.strings_size:
                continue
            if self.c_string(self.strings_offset + nameoff) == name:
                return index
        return None

    def get_section(self, name: str) -> Optional[tuple[int, int]]:
        """Return (offset, size) of the section called name, or None."""
        index = self.find_section(name)
        if index is None:
            return None
        offset, size, _ = self.section_info(index)
        return offset, size

    def _require_section(self, name: str) -> tuple[int, int]:
        found = self.get_section(name)
        if found is None:
            raise ElfError(f"section {name} not found", errno.ENODATA)
        return found

    def get_strings(self, section: str) -> list[str]:
        """Return the non-empty nul-separated strings of a section."""
        offset, size = self._require_section(section)
        data = bytes(self._buf[offset:offset + size])
        if not data:
            return []
        stripped = data.lstrip(b"\0")
        if not stripped:
            stripped = b"\0"
        if len(stripped) <= 1:
            return []
        return [_decode(part) for part in stripped.split(b"\0") if part]

    def get_modversions(self) -> list[ModVersion]:
        """Return the entries of the __versions section."""
        offset, size = self._require_section("__versions")
        if size == 0:
            return []
        if size % MODVERSION_ENTRY_SIZE:
            raise ElfError(
                f"__versions size {size} is not a multiple of "
                f"{MODVERSION_ENTRY_SIZE}"
            )
        crc_size = 4 if self.is_32 else 8
        result = []
        for entry in range(offset, offset + size, MODVERSION_ENTRY_SIZE):
            crc = self.read_uint(entry, crc_size)
            symbol = self.c_string(entry + crc_size)
            if symbol.startswith("."):
                symbol = symbol[1:]
            result.append(ModVersion(crc, SymbolBind.UNDEF, symbol))
        return result

    def strip_section(self, name: str) -> None:
        """Clear the SHF_ALLOC flag of the section called name."""
        index = self.find_section(name)
        if index is None:
            raise ElfError(f"section {name} not found", errno.ENODATA)
        off, size = _SHDR_FIELDS[self.bits]["flags"]
        offset = self._section_header(index) + off
        flags = self.read_uint(offset, size)
        self._write_uint(offset, size, flags & ~SHF_ALLOC)

    def strip_vermagic(self) -> None:
        """Blank out the vermagic= string of the .modinfo section."""
        start, size = self._require_section(".modinfo")
        if size == 0:
            return
        buf = self._buf
        while buf[start] == 0 and size > 1:
            start += 1
            size -= 1
        if size <= 1:
            return

        i = 0
        while i < size:
            pos = start + i
            if buf[pos] == 0 or i + 1 >= size or i + len(_VERMAGIC) >= size:
                i += 1
                continue
            if not buf.startswith(_VERMAGIC, pos):
                i += self._strlen(pos) + 1
                continue
            length = self._strlen(pos)
            self._writable()[pos:pos + length] = bytes(length)
            return
        raise ElfError("no vermagic found in .modinfo", errno.ENODATA)