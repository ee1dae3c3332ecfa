"""Symbol tables of kernel module images: exported CRCs and dependencies."""

from __future__ import annotations

import errno
import logging
from dataclasses import dataclass
from typing import Iterator

from modtools.elf import (
    EM_SPARC,
    EM_SPARCV9,
    MODVERSION_ENTRY_SIZE,
    SHN_ABS,
    SHN_UNDEF,
    STB_GLOBAL,
    STB_LOCAL,
    STB_WEAK,
    Elf,
    ElfError,
    ModVersion,
    SymbolBind,
)

logger = logging.getLogger(__name__)

CRC_PREFIX = "__crc_"

# Global register reserved to the application (sparc).
STT_REGISTER = 13

# The value an unresolvable CRC takes: an all-ones 64 bit integer.
CRC_INVALID = (1 << 64) - 1

_SYM_SIZE = {32: 16, 64: 24}

# (offset, size) of the symbol table entry fields.
_SYM_FIELDS = {
    32: {"name": (0, 4), "value": (4, 4), "info": (12, 1), "shndx": (14, 2)},
    64: {"name": (0, 4), "info": (4, 1), "shndx": (6, 2), "value": (8, 8)},
}

_BIND_FROM_ELF = {
    STB_LOCAL: SymbolBind.LOCAL,
    STB_GLOBAL: SymbolBind.GLOBAL,
    STB_WEAK: SymbolBind.WEAK,
}


@dataclass(frozen=True)
class _Symbol:
    name_off: int
    value: int
    info: int
    shndx: int

    @property
    def bind(self) -> int:
        return self.info >> 4

    @property
    def type(self) -> int:
        return self.info & 0xF


class _SymtabUnusable(Exception):
    """.strtab or .symtab is missing or malformed."""


def _symbol_table(elf: Elf) -> tuple[int, int, list[_Symbol]]:
    """Return (strtab offset, strtab size, symbols after the null entry)."""
    strtab = elf.get_section(".strtab")
    if strtab is None:
        raise _SymtabUnusable("no .strtab found")
    symtab = elf.get_section(".symtab")
    if symtab is None:
        raise _SymtabUnusable("no .symtab found")

    symlen = _SYM_SIZE[elf.bits]
    sym_off, symtab_len = symtab
    if symtab_len % symlen:
        raise _SymtabUnusable(
            f"unexpected .symtab of length {symtab_len}, not multiple of {symlen}"
        )
    fields = _SYM_FIELDS[elf.bits]

    def read(entry: int, name: str) -> int:
        off, size = fields[name]
        return elf.read_uint(entry + off, size)

    symbols = [
        _Symbol(read(entry, "name"), read(entry, "value"),
                read(entry, "info"), read(entry, "shndx"))
        for entry in range(sym_off + symlen, sym_off + symtab_len, symlen)
    ]
    return strtab[0], strtab[1], symbols


def _resolve_crc(elf: Elf, crc: int, shndx: int) -> int:
    if shndx in (SHN_ABS, SHN_UNDEF):
        return crc
    try:
        offset, size, _ = elf.section_info(shndx)
    except ElfError:
        logger.debug("could not find section index %d for crc", shndx)
        return CRC_INVALID
    if size < 4 or crc > size - 4:
        logger.debug("CRC offset %d is too big, section %d size is %d",
                     crc, shndx, size)
        return CRC_INVALID
    return elf.read_uint(offset + crc, 4)


def _ksymtab_strings(elf: Elf) -> list[ModVersion]:
    return [ModVersion(0, SymbolBind.GLOBAL, name)
            for name in elf.get_strings("__ksymtab_strings")]


def get_symbols(elf: Elf) -> list[ModVersion]:
    """Return the symbols the module exports, with their CRCs.

    Uses the __crc_ entries of the symbol table; when there are none, or
    the table is unusable, falls back to the names in __ksymtab_strings.
    """
    try:
        str_off, strtab_len, symbols = _symbol_table(elf)
        if any(sym.name_off >= strtab_len for sym in symbols):
            raise _SymtabUnusable(".symtab entry refers beyond .strtab")
    except _SymtabUnusable as exc:
        logger.debug("%s; falling back to __ksymtab_strings", exc)
        return _ksymtab_strings(elf)

    result = []
    for sym in symbols:
        name = elf.c_string(str_off + sym.name_off)
        if not name.startswith(CRC_PREFIX):
            continue
        result.append(ModVersion(
            _resolve_crc(elf, sym.value, sym.shndx),
            _BIND_FROM_ELF.get(sym.bind, SymbolBind.NONE),
            name[len(CRC_PREFIX):],
        ))
    if not result:
        logger.debug("no crc symbols; falling back to __ksymtab_strings")
        return _ksymtab_strings(elf)
    return result


def _versions(elf: Elf) -> Iterator[tuple[str, int]]:
    """Yield (symbol, crc) for each __versions entry, if the section is sane."""
    found = elf.get_section("__versions")
    if found is None:
        return
    offset, size = found
    if size % MODVERSION_ENTRY_SIZE:
        logger.debug("unexpected __versions of length %d, not multiple of %d",
                     size, MODVERSION_ENTRY_SIZE)
        return
    crclen = 4 if elf.is_32 else 8
    for entry in range(offset, offset + size, MODVERSION_ENTRY_SIZE):
        yield elf.c_string(entry + crclen), elf.read_uint(entry, crclen)


def get_dependency_symbols(elf: Elf) -> list[ModVersion]:
    """Return the undefined symbols the module needs, with their CRCs.

    Versions listed in __versions that no undefined symbol refers to
    (such as module_layout) are appended at the end.
    """
    versions = list(_versions(elf))
    try:
        str_off, strtab_len, symbols = _symbol_table(elf)
    except _SymtabUnusable as exc:
        raise ElfError(str(exc), errno.EINVAL) from exc

    first_index: dict[str, int] = {}
    for index, (name, _) in enumerate(versions):
        first_index.setdefault(name, index)
    visited = [False] * len(versions)
    handle_register = elf.machine in (EM_SPARC, EM_SPARCV9)

    result = []
    for position, sym in enumerate(symbols, start=1):
        if sym.shndx != SHN_UNDEF:
            continue
        # sparc gcc creates undefined references for global asm registers.
        if handle_register and sym.type == STT_REGISTER:
            continue
        if sym.name_off >= strtab_len:
            raise ElfError(
                f".strtab is {strtab_len} bytes, but .symtab entry {position} "
                f"wants to access offset {sym.name_off}"
            )
        name = elf.c_string(str_off + sym.name_off)
        if not name:
            continue
        crc = 0
        index = first_index.get(name)
        if index is not None:
            visited[index] = True
            crc = versions[index][1]
        bind = SymbolBind.WEAK if sym.bind == STB_WEAK else SymbolBind.UNDEF
        result.append(ModVersion(crc, bind, name))

    result.extend(
        ModVersion(crc, SymbolBind.UNDEF, name)
        for (name, crc), seen in zip(versions, visited)
        if not seen
    )
    return result