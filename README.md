# modtools

A library for reading the files that describe Linux kernel modules:

- `modules.builtin.modinfo`, the modinfo strings of modules built into the kernel;
- module object files, plain or compressed with zstd, xz or gzip, with ELF parsing of their
  sections, strings, modversions and symbols;
- modprobe configuration files and directories, and module options on the kernel command line.

## Installation

```
pip install .
```

Use `pip install .[test]` to install the test dependencies as well.

## Usage

### Built-in modules

```python
from modtools.builtin import iter_builtin_modules, get_modinfo

for module in iter_builtin_modules("/lib/modules/6.1.0"):
    print(module.name, module.modinfo)

print(get_modinfo("/lib/modules/6.1.0", "ext4"))
```

`iter_builtin_modules` yields a `BuiltinModule` (a name and a tuple of `key=value` strings) for each
block of consecutive entries in the file. `get_modinfo` returns the strings of the first block for
a module and raises `KeyError` if the module is not listed.

### Module files and ELF data

```python
from modtools.modfile import ModuleFile
from modtools.symbols import get_symbols, get_dependency_symbols

with ModuleFile("/lib/modules/6.1.0/kernel/fs/ext4/ext4.ko.zst") as module:
    print(module.compression)          # Compression.ZSTD
    elf = module.get_elf()
    print(elf.get_strings(".modinfo"))
    for version in elf.get_modversions():
        print(version.symbol, hex(version.crc))
    for symbol in get_symbols(elf):
        print(symbol.symbol, hex(symbol.crc))
    for symbol in get_dependency_symbols(elf):
        print(symbol.bind, symbol.symbol)
```

`ModuleFile` detects the compression from the file's first bytes, and `load()` reads and
decompresses the whole file once. `modtools.elf.Elf` can also be built directly from bytes; it
raises `ElfError` for data that is not a usable ELF image or when a required section is missing.

`Elf.strip_section` clears a section's allocation flag and `Elf.strip_vermagic` blanks the
`vermagic=` string in `.modinfo`. Both change a private copy of the image, available as
`Elf.memory`, leaving the original data untouched.

### Configuration

```python
from modtools.config import ConfigKind, load_config, iter_config

config = load_config("/lib/modules/6.1.0", ["/etc/modprobe.d", "/lib/modprobe.d"])
for key, value in iter_config(config, ConfigKind.SOFTDEP):
    print(key, value)
```

`modules.softdep` from the given module directory is always read. Configuration files (`*.conf`
and `*.alias` inside directories, or single files named directly) are read in name order, and a
file name found in an earlier path takes precedence over the same name in a later one. Options
and blacklist entries from the kernel command line (`module.param=value`,
`modprobe.blacklist=a,b`) are added after the files; pass `cmdline_path=None` to skip it. Lines
that cannot be parsed are skipped and logged.

`modtools.kcmdline.parse_kcmdline` and `modtools.confparse.Config` (`parse_text`, `parse_file`,
`apply_kcmdline`) can also be used on text on their own.

## What it does not do

The package does not read the binary index files written by depmod (`modules.dep.bin`,
`modules.alias.bin` and the like), so it cannot resolve aliases or dependencies through them. It
does not load or unload modules, and it has no command-line tool.