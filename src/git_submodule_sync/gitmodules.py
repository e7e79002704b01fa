"""Typed, order-preserving reader and writer for `.gitmodules`.

The file is parsed into stanzas whose lines are kept verbatim. Only lines
that are explicitly modified are re-rendered, so serializing an unmodified
document reproduces the input exactly.

Example:
    doc = GitmodulesFile.read(repo / ".gitmodules")
    doc.set_all_branches("develop")
    doc.write(repo / ".gitmodules")
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

from .errors import GitmodulesError
from .models import SubmoduleEntry

GITMODULES = ".gitmodules"

_HEADER_RE = re.compile(
    r'^\s*\[\s*(?P<section>[A-Za-z0-9.-]+)'
    r'(?:\s+"(?P<name>(?:[^"\\]|\\.)*)")?'
    r'\s*\]\s*(?:[#;].*)?$'
)
_FIELD_RE = re.compile(
    r'^(?P<indent>\s*)(?P<key>[A-Za-z][A-Za-z0-9-]*)\s*(?:=\s*(?P<value>.*?))?\s*$'
)
_IGNORABLE_RE = re.compile(r"^\s*(?:[#;].*)?$")


@dataclass
class _Line:
    text: str
    eol: str
    key: str | None = None
    value: str | None = None
    indent: str = ""

    def render(self) -> str:
        return self.text + self.eol


def _unquote(value: str) -> str:
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return value[1:-1].replace('\\"', '"').replace("\\\\", "\\")
    return value


@dataclass
class Stanza:
    """One section of the file, e.g. `[submodule "libs/core"]`."""

    section: str
    name: str | None
    header: _Line
    body: list[_Line] = field(default_factory=list)

    @property
    def is_submodule(self) -> bool:
        return self.section.lower() == "submodule" and self.name is not None

    def get(self, key: str) -> str | None:
        """Value of `key`, the last one winning as in git. Keys are case-insensitive."""
        key = key.lower()
        value = None
        for line in self.body:
            if line.key is not None and line.key.lower() == key:
                value = _unquote(line.value or "")
        return value

    def set(self, key: str, value: str) -> bool:
        """
        Set `key` to `value`.

        An existing field is rewritten in place, keeping its indentation and
        spelling. A missing field is appended after the stanza's last field.

        Returns:
            True if the stanza changed.

        """
        matches = [
            line for line in self.body
            if line.key is not None and line.key.lower() == key.lower()
        ]
        if matches:
            line = matches[-1]
            if _unquote(line.value or "") == value:
                return False
            line.value = value
            line.text = f"{line.indent}{line.key} = {value}"
            return True

        field_positions = [i for i, line in enumerate(self.body) if line.key is not None]
        if field_positions:
            anchor = self.body[field_positions[-1]]
            position = field_positions[-1] + 1
            indent = anchor.indent
        else:
            anchor = self.header
            position = 0
            indent = "\t"

        # The anchor may be the last line of a file without a trailing newline
        eol = anchor.eol
        if not anchor.eol:
            anchor.eol = "\n"

        new_line = _Line(
            text=f"{indent}{key} = {value}",
            eol=eol,
            key=key,
            value=value,
            indent=indent,
        )
        self.body.insert(position, new_line)
        return True

    def render(self) -> str:
        return self.header.render() + "".join(line.render() for line in self.body)


@dataclass
class GitmodulesFile:
    """Parsed `.gitmodules` contents."""

    preamble: list[_Line] = field(default_factory=list)
    stanzas: list[Stanza] = field(default_factory=list)

    @classmethod
    def parse(cls, text: str) -> GitmodulesFile:
        """
        Parse `.gitmodules` text.

        Raises:
            GitmodulesError: On a line that is neither a section header, a
                             field, a comment nor blank, or on a field that
                             appears before any section.

        """
        doc = cls()
        current: Stanza | None = None

        for number, raw in enumerate(text.splitlines(keepends=True), start=1):
            content = raw.rstrip("\r\n")
            line = _Line(text=content, eol=raw[len(content):])

            if _IGNORABLE_RE.match(content):
                (current.body if current else doc.preamble).append(line)
                continue

            if match := _HEADER_RE.match(content):
                current = Stanza(
                    section=match.group("section"),
                    name=match.group("name"),
                    header=line,
                )
                doc.stanzas.append(current)
                continue

            if (match := _FIELD_RE.match(content)) and current is not None:
                line.key = match.group("key")
                # A bare key means boolean true in git config syntax
                line.value = match.group("value") if match.group("value") is not None else "true"
                line.indent = match.group("indent")
                current.body.append(line)
                continue

            raise GitmodulesError(f"Cannot parse .gitmodules line {number}: {content!r}")

        return doc

    @classmethod
    def read(cls, path: str | Path) -> GitmodulesFile:
        """
        Read and parse a `.gitmodules` file.

        A missing file yields an empty document (a repository without
        submodules).

        Raises:
            GitmodulesError: If the file exists but cannot be read or parsed.

        """
        path = Path(path)
        if not path.exists():
            return cls()
        try:
            with open(path, encoding="utf-8", newline="") as f:
                text = f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise GitmodulesError(f"Cannot read {path}: {e}") from e
        return cls.parse(text)

    def write(self, path: str | Path) -> None:
        with open(path, "w", encoding="utf-8", newline="") as f:
            f.write(self.serialize())

    def serialize(self) -> str:
        return "".join(line.render() for line in self.preamble) + "".join(
            stanza.render() for stanza in self.stanzas
        )

    def submodules(self) -> list[Stanza]:
        return [stanza for stanza in self.stanzas if stanza.is_submodule]

    def stanza(self, name: str) -> Stanza:
        for stanza in self.submodules():
            if stanza.name == name:
                return stanza
        raise GitmodulesError(f"No submodule named {name!r} in .gitmodules")

    def entries(self) -> list[SubmoduleEntry]:
        """Submodule entries in file order. `path` defaults to the stanza name."""
        return [
            SubmoduleEntry(
                name=stanza.name,
                path=stanza.get("path") or stanza.name,
                branch=stanza.get("branch"),
                url=stanza.get("url"),
            )
            for stanza in self.submodules()
        ]

    def set_branch(self, name: str, branch: str) -> bool:
        return self.stanza(name).set("branch", branch)

    def set_all_branches(self, branch: str) -> list[str]:
        """
        Point every submodule's `branch` field at `branch`.

        Returns:
            Names of the submodules whose stanza changed.

        """
        return [
            stanza.name
            for stanza in self.submodules()
            if stanza.set("branch", branch)
        ]


def read_submodule_entries(repo: Path) -> list[SubmoduleEntry]:
    return GitmodulesFile.read(repo / GITMODULES).entries()
