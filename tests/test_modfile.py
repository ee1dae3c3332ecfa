import errno
import gzip
import lzma
import struct

import pytest
import zstandard

from modtools.elf import ElfError
from modtools.modfile import Compression, ModuleFile


def _minimal_elf() -> bytes:
    names = b"\0.shstrtab\0"
    ehdr = struct.pack(
        "<16sHHIQQQIHHHHHH",
        b"\x7fELF" + bytes([2, 1, 1]) + bytes(9),
        1, 62, 1, 0, 0, 80, 0, 64, 0, 0, 64, 2, 1,
    )
    strtab = names.ljust(16, b"\0")
    null_shdr = bytes(64)
    str_shdr = struct.pack("<IIQQQQIIQQ", 1, 3, 0, 0, 64, len(names), 0, 0, 1, 0)
    return ehdr + strtab + null_shdr + str_shdr


PAYLOAD = b"module contents " * 64


@pytest.fixture
def write(tmp_path):
    def _write(name, data):
        path = tmp_path / name
        path.write_bytes(data)
        return path
    return _write


def test_plain_file(write):
    path = write("plain.ko", PAYLOAD)
    with ModuleFile(path) as mf:
        assert mf.compression is Compression.NONE
        assert mf.contents is None
        assert mf.size == 0
        assert mf.load() == PAYLOAD
        assert mf.size == len(PAYLOAD)


@pytest.mark.parametrize(
    "compress, kind",
    [
        (gzip.compress, Compression.ZLIB),
        (lambda d: lzma.compress(d, format=lzma.FORMAT_XZ), Compression.XZ),
        (lambda d: zstandard.ZstdCompressor().compress(d), Compression.ZSTD),
    ],
)
def test_compressed_round_trip(write, compress, kind):
    path = write("mod.ko.z", compress(PAYLOAD))
    with ModuleFile(path) as mf:
        assert mf.compression is kind
        assert mf.load() == PAYLOAD


def test_zstd_concatenated_frames(write):
    cctx = zstandard.ZstdCompressor()
    path = write("mod.ko.zst", cctx.compress(b"first ") + cctx.compress(b"second"))
    with ModuleFile(path) as mf:
        assert mf.load() == b"first second"


def test_gzip_multiple_members(write):
    path = write("mod.ko.gz", gzip.compress(b"abc") + gzip.compress(b"def"))
    with ModuleFile(path) as mf:
        assert mf.load() == b"abcdef"


def test_xz_concatenated_streams(write):
    data = lzma.compress(b"one", format=lzma.FORMAT_XZ) + lzma.compress(
        b"two", format=lzma.FORMAT_XZ)
    path = write("mod.ko.xz", data)
    with ModuleFile(path) as mf:
        assert mf.load() == b"onetwo"


def test_short_file_rejected(write):
    path = write("short.ko", b"\x1f\x8b\x00")
    with pytest.raises(OSError) as info:
        ModuleFile(path)
    assert info.value.errno == errno.EINVAL


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        ModuleFile(tmp_path / "absent.ko")


def test_corrupt_xz_raises_on_load(write):
    path = write("bad.ko.xz", b"\xfd7zXZ\x00" + b"garbage data here")
    with ModuleFile(path) as mf:
        assert mf.compression is Compression.XZ
        with pytest.raises(OSError) as info:
            mf.load()
        assert info.value.errno == errno.EINVAL


def test_truncated_gzip_raises_on_load(write):
    path = write("bad.ko.gz", gzip.compress(PAYLOAD)[:20])
    with ModuleFile(path) as mf:
        with pytest.raises(OSError):
            mf.load()


def test_get_elf_from_compressed(write):
    path = write("elf.ko.gz", gzip.compress(_minimal_elf()))
    with ModuleFile(path) as mf:
        elf = mf.get_elf()
        assert elf.find_section(".shstrtab") == 1
        assert mf.get_elf() is elf
        assert mf.size == len(_minimal_elf())


def test_get_elf_rejects_non_elf(write):
    path = write("notelf.ko", PAYLOAD)
    with ModuleFile(path) as mf:
        with pytest.raises(ElfError):
            mf.get_elf()


def test_close_releases_contents(write):
    path = write("plain.ko", PAYLOAD)
    mf = ModuleFile(path)
    mf.load()
    mf.close()
    assert mf.closed
    assert mf.contents is None
    with pytest.raises(ValueError):
        mf.load()