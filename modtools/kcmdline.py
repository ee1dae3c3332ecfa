"""Module options given on the kernel command line.

Options take the form ``modname.param[=value]``. A value may be quoted to
hold spaces; an option quoted as a whole, as some bootloaders pass it
(``"mod.param=a b"``), is re-quoted to ``mod.param="a b"``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional

# Size of the buffer the command line is read into, terminator included.
KCMD_LINE_SIZE = 4096

_SPACES = "\0 \n\t\v\f\r"


class _State(Enum):
    IGNORE = auto()
    MODNAME = auto()
    PARAM = auto()
    VALUE = auto()
    COMPLETE = auto()


@dataclass(frozen=True)
class CmdlineOption:
    """One module option: its module, 'param[=value]' text and value."""

    modname: str
    param: str
    value: Optional[str] = None

    @property
    def is_blacklist(self) -> bool:
        """Whether this is a modprobe.blacklist= option."""
        return self.modname == "modprobe" and self.param.startswith("blacklist=")

    @property
    def blacklisted(self) -> list[str]:
        """The comma separated module names of a blacklist option."""
        if not self.is_blacklist:
            return []
        return (self.value or "").split(",")


def parse_kcmdline(text: str) -> list[CmdlineOption]:
    """Return the module options found in a kernel command line, in order."""
    text = text[:KCMD_LINE_SIZE - 1]
    nul = text.find("\0")
    if nul >= 0:
        text = text[:nul]

    result: list[CmdlineOption] = []
    state = _State.MODNAME
    is_quoted = False
    quote_start: Optional[int] = None
    modname = 0
    modname_end = 0
    param = 0
    value: Optional[int] = None

    for p in range(len(text) + 1):
        ch = text[p] if p < len(text) else "\0"
        if ch == '"':
            is_quoted = not is_quoted
            # A quote may only open an option as its very first character.
            if is_quoted and state is _State.MODNAME and p == modname:
                quote_start = p
                modname = p + 1
            elif state is not _State.VALUE:
                state = _State.IGNORE
        elif ch in _SPACES:
            if is_quoted and state is _State.VALUE:
                pass
            elif is_quoted:
                state = _State.IGNORE
            elif state in (_State.VALUE, _State.PARAM):
                state = _State.COMPLETE
            else:
                modname = p + 1
                state = _State.MODNAME
                quote_start = None
        elif ch == ".":
            if state is _State.MODNAME:
                modname_end = p
                param = p + 1
                state = _State.PARAM
            elif state is _State.PARAM:
                state = _State.IGNORE
        elif ch == "=":
            if state is _State.PARAM:
                value = p + 1
                state = _State.VALUE
            elif state is _State.MODNAME:
                state = _State.IGNORE

        if state is _State.COMPLETE:
            name = text[modname:modname_end]
            if quote_start is not None and value is not None:
                val: Optional[str] = '"' + text[value:p]
                par = text[param:value] + val
            else:
                par = text[param:p]
                val = text[value:p] if value is not None else None
            result.append(CmdlineOption(name, par, val))
            modname = p + 1
            state = _State.MODNAME
            quote_start = None
            value = None

    return result