"""
Template injection: embed a payload under a block-scalar anchor line.

The anchor is the exact line ``"  <key>: |"``. Payload lines are spliced
immediately after it, each prefixed with the indentation string, and the
template lines following the anchor are emitted after the payload. Payload
content is never parsed or re-serialized.
"""

import logging
from pathlib import Path

from keycloak_deployer.errors import (
    AmbiguousAnchor,
    MissingAnchor,
    PayloadUnavailable,
    PreconditionFailure,
)
from keycloak_deployer.models.template import (
    Payload,
    Template,
    anchor_line_for,
    join_lines,
)
from keycloak_deployer.utils.scratch import write_text_atomic

logger = logging.getLogger(__name__)


def inject(
    template: Template | list[str],
    anchor_key: str,
    payload: Payload | list[str],
    indent: str,
) -> list[str]:
    """
    Splice payload lines under the anchor line of a template.

    Args:
        template: Template, or its lines
        anchor_key: Key whose ``"  <key>: |"`` line marks the splice point
        payload: Payload, or its lines
        indent: Prefix applied to every payload line

    Returns:
        Derived manifest lines

    Raises:
        MissingAnchor: If the template has no anchor line
        AmbiguousAnchor: If the anchor line appears more than once
    """
    if not isinstance(template, Template):
        template = Template(lines=list(template))
    payload_lines = payload.lines if isinstance(payload, Payload) else list(payload)

    positions = template.anchor_positions(anchor_key)
    marker = anchor_line_for(anchor_key)
    if not positions:
        raise MissingAnchor(marker, source=template.source)
    if len(positions) > 1:
        raise AmbiguousAnchor(marker, [p + 1 for p in positions])

    anchor = positions[0]
    derived = list(template.lines[: anchor + 1])
    derived.extend(indent + line for line in payload_lines)
    derived.extend(template.lines[anchor + 1 :])
    return derived


def inject_file(
    template_path: str | Path,
    payload_path: str | Path,
    output_path: str | Path,
    anchor_key: str,
    indent: str,
) -> list[str]:
    """
    Inject a payload file into a template file and write the derived manifest.

    The output file is written only after injection succeeded; on any error
    it is neither created nor modified.

    Raises:
        PreconditionFailure: If the template file does not exist or cannot be read
        PayloadUnavailable: If the payload file cannot be read
        MissingAnchor: If the template has no anchor line
        AmbiguousAnchor: If the anchor line appears more than once
    """
    template_path = Path(template_path)
    payload_path = Path(payload_path)

    logger.info(
        f"Injecting '{payload_path}' into '{template_path}' to create '{output_path}'",
        extra={"source_path": str(template_path), "target_path": str(output_path)},
    )

    if not template_path.is_file():
        raise PreconditionFailure(
            f"template file not found: {template_path}", field="template"
        )
    try:
        template = Template.from_path(template_path)
    except (OSError, UnicodeDecodeError) as e:
        raise PreconditionFailure(
            f"template file cannot be read: {template_path}: {e}",
            field="template",
            cause=e,
        ) from e

    try:
        payload = Payload.from_path(payload_path)
    except (OSError, UnicodeDecodeError) as e:
        raise PayloadUnavailable(str(payload_path), cause=e) from e

    derived = inject(template, anchor_key, payload, indent)
    write_text_atomic(output_path, join_lines(derived))

    logger.info(
        f"Injected {len(payload.lines)} payload lines under '{anchor_line_for(anchor_key)}'",
        extra={"target_path": str(output_path)},
    )
    return derived
