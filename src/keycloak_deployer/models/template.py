"""
Line-oriented template model.

Templates and payloads are handled as ordered text lines. Lines are split on
``\\n`` only, so carriage returns and every other byte of a line survive a
read/write cycle unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from keycloak_deployer.constants import ANCHOR_PREFIX, ANCHOR_SUFFIX


def split_lines(text: str) -> list[str]:
    """Split text into lines, dropping the empty tail left by a final newline."""
    if not text:
        return []
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return lines


def join_lines(lines: list[str]) -> str:
    """Join lines into text terminated by a single newline."""
    if not lines:
        return ""
    return "\n".join(lines) + "\n"


def anchor_line_for(anchor_key: str) -> str:
    """Return the exact anchor line for a block-scalar key."""
    return f"{ANCHOR_PREFIX}{anchor_key}{ANCHOR_SUFFIX}"


@dataclass(frozen=True)
class TemplateLine:
    """A single template line, typed as anchor or plain text."""

    number: int
    text: str
    is_anchor: bool = False


@dataclass
class Template:
    """A YAML template held as typed lines."""

    lines: list[str]
    source: str | None = None

    @classmethod
    def from_text(cls, text: str, source: str | None = None) -> Template:
        return cls(lines=split_lines(text), source=source)

    @classmethod
    def from_path(cls, path: str | Path) -> Template:
        # newline="" keeps \r intact
        with open(path, encoding="utf-8", newline="") as fh:
            return cls.from_text(fh.read(), source=str(path))

    def typed_lines(self, anchor_key: str) -> list[TemplateLine]:
        """Classify every line against the anchor for ``anchor_key``."""
        marker = anchor_line_for(anchor_key)
        return [
            TemplateLine(number=index + 1, text=text, is_anchor=text == marker)
            for index, text in enumerate(self.lines)
        ]

    def anchor_positions(self, anchor_key: str) -> list[int]:
        """Zero-based indices of every anchor line."""
        return [
            line.number - 1
            for line in self.typed_lines(anchor_key)
            if line.is_anchor
        ]


@dataclass
class Payload:
    """Opaque payload lines, spliced verbatim."""

    lines: list[str] = field(default_factory=list)
    source: str | None = None

    @classmethod
    def from_text(cls, text: str, source: str | None = None) -> Payload:
        return cls(lines=split_lines(text), source=source)

    @classmethod
    def from_path(cls, path: str | Path) -> Payload:
        with open(path, encoding="utf-8", newline="") as fh:
            return cls.from_text(fh.read(), source=str(path))
