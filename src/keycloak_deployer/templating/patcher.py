"""
Block-scoped parameter patching of YAML documents.

A field patch names a key path from the document root, for example
``("serviceAccount", "name")``. Each path segment is matched only among the
direct children of the block selected by the previous segment, so a key is
never confused with a same-named key under a different parent. Only the
value portion of a matched line is rewritten; indentation, key text, list
markers, quoting style and trailing comments are preserved.

The document is treated as text. Block scalar contents (``key: |``) are
opaque and never searched for keys.
"""

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from keycloak_deployer.constants import (
    STATIC_IP_ANNOTATION,
    WORKLOAD_IDENTITY_ANNOTATION,
)
from keycloak_deployer.errors import PatchFieldUnmatched, PreconditionFailure
from keycloak_deployer.models.template import Template, join_lines

if TYPE_CHECKING:
    from keycloak_deployer.models.parameters import DeploymentParameters

logger = logging.getLogger(__name__)

# indent, optional list marker, key (plain or quoted), colon, rest of line
_KEY_LINE = re.compile(
    r"""^(?P<indent>[ ]*)(?P<dash>-[ ]+)?"""
    r"""(?P<key>"(?:[^"\\]|\\.)*"|'(?:[^']|'')*'|[^\s#'"\-][^:#]*?|-[^\s:#][^:#]*?)"""
    r"""[ ]*:(?=[ ]|$)(?P<rest>.*)$"""
)
_SEQUENCE_ITEM = re.compile(r"^(?P<indent>[ ]*)(?P<dash>-)(?P<rest>(?:[ ].*)?)$")
_BLOCK_SCALAR = re.compile(r"^[|>][0-9+-]*$")
_PLAIN_UNSAFE_START = set("-?:,[]{}#&*!|>'\"%@`")


@dataclass(frozen=True)
class FieldPatch:
    """Maps a logical parameter onto a key path in a document."""

    field: str
    path: tuple[str, ...]
    sequence: bool = False

    @property
    def dotted_path(self) -> str:
        suffix = "[0]" if self.sequence else ""
        return ".".join(self.path) + suffix


@dataclass
class PatchResult:
    """Outcome of patching one document."""

    lines: list[str]
    applied: list[str] = field(default_factory=list)
    warnings: list[PatchFieldUnmatched] = field(default_factory=list)

    @property
    def text(self) -> str:
        return join_lines(self.lines)


VALUES_FIELDS: tuple[FieldPatch, ...] = (
    FieldPatch("project", ("cloudsql", "project")),
    FieldPatch("region", ("cloudsql", "region")),
    FieldPatch("instance", ("cloudsql", "instance")),
    FieldPatch("gsaEmail", ("cloudsql", "gsaEmail")),
    FieldPatch("serviceAccountName", ("serviceAccount", "name")),
    FieldPatch(
        "gsaEmail", ("serviceAccount", "annotations", WORKLOAD_IDENTITY_ANNOTATION)
    ),
    FieldPatch("domain", ("ingress", "rules", "host")),
    FieldPatch("staticIpName", ("ingress", "annotations", STATIC_IP_ANNOTATION)),
)

CERTIFICATE_FIELDS: tuple[FieldPatch, ...] = (
    FieldPatch("domain", ("spec", "domains"), sequence=True),
)


@dataclass
class _Line:
    indent: int
    dash: bool
    key: str | None
    key_col: int
    rest: str

    @property
    def value_is_empty(self) -> bool:
        return _strip_comment(self.rest).strip() == ""

    @property
    def is_block_scalar(self) -> bool:
        return bool(_BLOCK_SCALAR.match(_strip_comment(self.rest).strip()))


def _strip_comment(text: str) -> str:
    """Drop a trailing comment from text that holds no quoted value."""
    stripped = text.lstrip()
    if stripped.startswith("#"):
        return ""
    match = re.search(r"\s#", text)
    return text[: match.start()] if match else text


def _unquote_key(key: str) -> str:
    if len(key) >= 2 and key[0] == key[-1] and key[0] in "\"'":
        return key[1:-1]
    return key


def _scan(lines: list[str]) -> list[_Line | None]:
    """Classify lines; blank and comment lines map to None."""
    infos: list[_Line | None] = []
    for text in lines:
        stripped = text.strip()
        if not stripped or stripped.startswith("#"):
            infos.append(None)
            continue
        indent = len(text) - len(text.lstrip(" "))
        match = _KEY_LINE.match(text)
        if match:
            dash = match.group("dash") or ""
            infos.append(
                _Line(
                    indent=indent,
                    dash=bool(dash),
                    key=_unquote_key(match.group("key")),
                    key_col=indent + len(dash),
                    rest=match.group("rest"),
                )
            )
        else:
            infos.append(
                _Line(
                    indent=indent,
                    dash=stripped.startswith("-"),
                    key=None,
                    key_col=indent,
                    rest="",
                )
            )
    return infos


def _block_end(infos: list[_Line | None], index: int) -> int:
    """Exclusive end of the block owned by the key line at ``index``."""
    owner = infos[index]
    assert owner is not None
    nested = owner.value_is_empty
    for j in range(index + 1, len(infos)):
        info = infos[j]
        if info is None:
            continue
        if info.indent > owner.key_col:
            continue
        # A sequence may sit at the same indentation as its parent key
        if nested and info.indent == owner.key_col and info.dash:
            continue
        return j
    return len(infos)


def _has_block(infos: list[_Line | None], index: int) -> bool:
    """Whether the empty-valued key at ``index`` owns nested lines."""
    owner = infos[index]
    if owner is None or not owner.value_is_empty:
        return False
    end = _block_end(infos, index)
    return any(infos[k] is not None for k in range(index + 1, end))


def _children(
    infos: list[_Line | None], start: int, end: int
) -> list[int]:
    """Indices of the direct-child key lines in ``[start, end)``."""
    keyed: list[int] = []
    j = start
    while j < end:
        info = infos[j]
        if info is None or info.key is None:
            j += 1
            continue
        keyed.append(j)
        if info.is_block_scalar:
            j = _block_end(infos, j)
            continue
        j += 1
    if not keyed:
        return []
    column = min(infos[j].key_col for j in keyed)  # type: ignore[union-attr]
    return [j for j in keyed if infos[j].key_col == column]  # type: ignore[union-attr]


def _first_sequence_item(
    lines: list[str], infos: list[_Line | None], start: int, end: int
) -> int | None:
    """Index of the first scalar list item at the top level of a block."""
    items = [
        j
        for j in range(start, end)
        if infos[j] is not None
        and infos[j].dash  # type: ignore[union-attr]
        and infos[j].key is None  # type: ignore[union-attr]
        and _SEQUENCE_ITEM.match(lines[j])
    ]
    if not items:
        return None
    column = min(infos[j].indent for j in items)  # type: ignore[union-attr]
    top_level = [j for j in items if infos[j].indent == column]  # type: ignore[union-attr]
    return top_level[0]


def _split_value(rest: str) -> tuple[str, str, str, str] | None:
    """
    Split the text after a key colon or list marker.

    Returns:
        (leading whitespace, quote character or "", raw value, suffix), or
        None when the value is empty or a block scalar indicator
    """
    ws = rest[: len(rest) - len(rest.lstrip(" "))]
    body = rest[len(ws) :]
    if not body or body.startswith("#"):
        return None

    quote = body[0]
    if quote == '"':
        k = 1
        while k < len(body):
            if body[k] == "\\":
                k += 2
                continue
            if body[k] == '"':
                return ws, '"', body[1:k], body[k + 1 :]
            k += 1
        return None
    if quote == "'":
        k = 1
        while k < len(body):
            if body[k] == "'":
                if k + 1 < len(body) and body[k + 1] == "'":
                    k += 2
                    continue
                return ws, "'", body[1:k], body[k + 1 :]
            k += 1
        return None

    value = _strip_comment(body)
    suffix = body[len(value) :]
    stripped = value.rstrip()
    suffix = value[len(stripped) :] + suffix
    if _BLOCK_SCALAR.match(stripped) or stripped in ("{}", "[]"):
        return None
    return ws, "", stripped, suffix


def _needs_quotes(value: str) -> bool:
    if not value or value != value.strip():
        return True
    if value[0] in _PLAIN_UNSAFE_START:
        return True
    return ": " in value or " #" in value or value.endswith(":")


def _render(value: str, quote: str) -> str:
    if quote == "'":
        return "'" + value.replace("'", "''") + "'"
    if quote == '"' or _needs_quotes(value):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return value


def _replace_value(line: str, rest: str, value: str) -> str | None:
    """Rewrite the value portion of ``line``, whose tail after the key is ``rest``."""
    split = _split_value(rest)
    prefix = line[: len(line) - len(rest)]
    if split is None:
        if rest.strip():
            return None
        # null value: "key:" becomes "key: value"
        return f"{prefix} {_render(value, '')}"
    ws, quote, _old, suffix = split
    return f"{prefix}{ws or ' '}{_render(value, quote)}{suffix}"


def _locate(
    infos: list[_Line | None], path: tuple[str, ...]
) -> list[int]:
    """Indices of lines matching ``path`` with block scoping at each segment."""
    blocks = [(0, len(infos))]
    matches: list[int] = []
    for depth, segment in enumerate(path):
        matches = [
            j
            for start, end in blocks
            for j in _children(infos, start, end)
            if infos[j].key == segment  # type: ignore[union-attr]
        ]
        if depth < len(path) - 1:
            blocks = [(j + 1, _block_end(infos, j)) for j in matches]
    return matches


def _resolve_params(
    params: "Mapping[str, str | None] | DeploymentParameters",
) -> Mapping[str, str | None]:
    if isinstance(params, Mapping):
        return params
    return params.as_field_map()


def patch(
    document: Template | list[str],
    params: "Mapping[str, str | None] | DeploymentParameters",
    fields: Iterable[FieldPatch] = VALUES_FIELDS,
) -> PatchResult:
    """
    Replace field values in a copy of ``document``.

    Args:
        document: Template, or its lines; never modified
        params: Logical field name to value mapping, or a parameter set
        fields: Field patch table to apply

    Returns:
        PatchResult with the patched lines, the applied paths and one
        PatchFieldUnmatched warning per field whose path was not found
    """
    source = document.source if isinstance(document, Template) else None
    lines = list(document.lines if isinstance(document, Template) else document)
    values = _resolve_params(params)
    result = PatchResult(lines=lines)

    infos = _scan(lines)
    for field_patch in fields:
        value = values.get(field_patch.field)
        if value is None:
            logger.debug(f"No value for field '{field_patch.field}', skipping")
            continue
        value = str(value)

        replaced = 0
        for j in _locate(infos, field_patch.path):
            target = j
            rest = infos[j].rest  # type: ignore[union-attr]
            if field_patch.sequence:
                item = _first_sequence_item(lines, infos, j + 1, _block_end(infos, j))
                if item is None:
                    continue
                target = item
                rest = _SEQUENCE_ITEM.match(lines[item]).group("rest")  # type: ignore[union-attr]
            elif _has_block(infos, j):
                # Parent of a nested block, not a scalar
                continue
            new_line = _replace_value(lines[target], rest, value)
            if new_line is None:
                continue
            lines[target] = new_line
            replaced += 1

        if replaced:
            result.applied.append(field_patch.dotted_path)
            logger.debug(
                f"Patched {field_patch.dotted_path} ({replaced} line(s))",
                extra={"field": field_patch.field},
            )
            # Rewritten lines keep their structure; rescan for later fields
            infos = _scan(lines)
        else:
            warning = PatchFieldUnmatched(field_patch.field, field_patch.dotted_path, source=source)
            result.warnings.append(warning)
            logger.warning(warning.message, extra={"field": field_patch.field})

    return result


def patch_file(
    source_path: str | Path,
    params: "Mapping[str, str | None] | DeploymentParameters",
    fields: Iterable[FieldPatch] = VALUES_FIELDS,
) -> PatchResult:
    """
    Patch a document read from disk. The source file is never written.

    Raises:
        PreconditionFailure: If the source file does not exist or cannot be read
    """
    source_path = Path(source_path)
    if not source_path.is_file():
        raise PreconditionFailure(f"document not found: {source_path}", field="document")
    try:
        document = Template.from_path(source_path)
    except (OSError, UnicodeDecodeError) as e:
        raise PreconditionFailure(
            f"document cannot be read: {source_path}: {e}",
            field="document",
            cause=e,
        ) from e
    return patch(document, params, fields)
