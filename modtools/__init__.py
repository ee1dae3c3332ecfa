"""Readers for kernel module files, builtin modinfo and modprobe configuration."""

__version__ = "0.1.0"
__all__ = [
    "builtin",
    "config",
    "confparse",
    "elf",
    "kcmdline",
    "modfile",
    "symbols",
]