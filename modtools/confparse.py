"""Parsing of modprobe configuration text into a Config."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Iterator, Optional, Union

from modtools.kcmdline import parse_kcmdline

logger = logging.getLogger(__name__)

# Characters C's isspace() accepts in the "C" locale.
_C_SPACES = " \t\n\v\f\r"
_TOKEN_DELIMS = "\t "


def _underscores(name: Optional[str]) -> Optional[str]:
    """Turn '-' into '_' outside brackets; None for a missing or bad name."""
    if name is None:
        return None
    out = []
    i = 0
    while i < len(name):
        c = name[i]
        if c == "-":
            out.append("_")
        elif c == "]":
            return None
        elif c == "[":
            end = name.find("]", i)
            if end < 0:
                return None
            out.append(name[i:end + 1])
            i = end + 1
            continue
        else:
            out.append(c)
        i += 1
    return "".join(out)


class _Tokens:
    """Successive tokens of one line, split the way strtok_r splits."""

    def __init__(self, text: str) -> None:
        self._text = text
        self._pos = 0

    def next(self, delims: str) -> Optional[str]:
        text, pos, n = self._text, self._pos, len(self._text)
        while pos < n and text[pos] in delims:
            pos += 1
        if pos >= n:
            self._pos = n
            return None
        end = pos
        while end < n and text[end] not in delims:
            end += 1
        self._pos = min(end + 1, n)
        return text[pos:end]


def _logical_lines(text: str) -> Iterator[tuple[int, str]]:
    """Yield (line number, line); a backslash joins a line with the next."""
    buf: list[str] = []
    pending = 0
    linenum = 0
    i, n = 0, len(text)
    while i < n:
        c = text[i]
        i += 1
        if c == "\n":
            linenum += pending + 1
            pending = 0
            yield linenum, "".join(buf)
            buf = []
        elif c == "\\":
            if i < n:
                nxt = text[i]
                i += 1
                if nxt == "\n":
                    pending += 1
                else:
                    buf.append(nxt)
        else:
            buf.append(c)
    if buf:
        linenum += pending + 1
        yield linenum, "".join(buf)


@dataclass(frozen=True)
class SoftDep:
    """Soft dependencies of a module: modules to load before and after it."""

    name: str
    pre: tuple[str, ...] = ()
    post: tuple[str, ...] = ()

    def __str__(self) -> str:
        # The two parts follow each other with no separator between them.
        text = ""
        if self.pre:
            text += "pre: " + " ".join(self.pre)
        if self.post:
            text += "post: " + " ".join(self.post)
        return text


def parse_softdep(modname: str, line: str) -> SoftDep:
    """Parse the 'pre: ... post: ...' part of a softdep line."""
    pre: list[str] = []
    post: list[str] = []
    target: Optional[list[str]] = None
    p = 0
    was_space = False
    n = len(line)
    for s in range(n + 1):
        at_end = s == n
        if not at_end:
            if line[s] not in _C_SPACES:
                was_space = False
                continue
            if was_space:
                p = s + 1
                continue
            was_space = True
            if p >= s:
                continue
        token = line[p:s]
        if token == "pre:":
            target = pre
        elif token == "post:":
            target = post
        elif (not at_end or not was_space) and target is not None:
            target.append(token)
        p = s + 1
    return SoftDep(modname, tuple(pre), tuple(post))


@dataclass
class Config:
    """Aliases, blacklists, options, commands and softdeps from configuration."""

    aliases: list[tuple[str, str]] = field(default_factory=list)
    blacklists: list[str] = field(default_factory=list)
    options: list[tuple[str, str]] = field(default_factory=list)
    install_commands: list[tuple[str, str]] = field(default_factory=list)
    remove_commands: list[tuple[str, str]] = field(default_factory=list)
    softdeps: list[SoftDep] = field(default_factory=list)
    paths: list = field(default_factory=list)

    def parse_text(self, text: str, filename: str = "<string>") -> None:
        """Add the settings of configuration text; bad lines are logged."""
        for linenum, line in _logical_lines(text):
            if not line or line[0] in "\0#":
                continue
            tokens = _Tokens(line)
            cmd = tokens.next(_TOKEN_DELIMS)
            if cmd is None:
                continue
            if not self._apply_command(cmd, tokens, filename):
                logger.error("%s line %d: ignoring bad line starting with '%s'",
                             filename, linenum, cmd)

    def _apply_command(self, cmd: str, tokens: _Tokens, filename: str) -> bool:
        if cmd == "alias":
            alias = _underscores(tokens.next(_TOKEN_DELIMS))
            modname = _underscores(tokens.next(_TOKEN_DELIMS))
            if alias is None or modname is None:
                return False
            self.aliases.append((alias, modname))
        elif cmd == "blacklist":
            modname = _underscores(tokens.next(_TOKEN_DELIMS))
            if modname is None:
                return False
            self.blacklists.append(modname)
        elif cmd in ("options", "install", "remove", "softdep"):
            modname = _underscores(tokens.next(_TOKEN_DELIMS))
            rest = tokens.next("")
            if modname is None or rest is None:
                return False
            if cmd == "options":
                self.options.append((modname, rest.replace("\t", " ")))
            elif cmd == "install":
                self.install_commands.append((modname, rest))
            elif cmd == "remove":
                self.remove_commands.append((modname, rest))
            else:
                self.softdeps.append(parse_softdep(modname, rest))
        elif cmd in ("include", "config"):
            logger.error("%s: command %s is deprecated and not parsed anymore",
                         filename, cmd)
        else:
            return False
        return True

    def parse_file(self, path: Union[str, os.PathLike]) -> None:
        """Add the settings of a configuration file."""
        path = os.fspath(path)
        with open(path, "rb") as fh:
            text = fh.read().decode("utf-8", errors="surrogateescape")
        self.parse_text(text, path)

    def apply_kcmdline(self, text: str) -> None:
        """Add the module options and blacklists of a kernel command line."""
        for opt in parse_kcmdline(text):
            if opt.is_blacklist:
                self.blacklists.extend(opt.blacklisted)
                continue
            modname = _underscores(opt.modname)
            if modname is None:
                logger.error("Ignoring bad option on kernel command line while "
                             "parsing module name: '%s'", opt.modname)
                continue
            self.options.append((modname, opt.param.replace("\t", " ")))