"""Unit tests for block-scalar anchor injection."""

from unittest.mock import patch

import pytest

from keycloak_deployer.errors import (
    AmbiguousAnchor,
    MissingAnchor,
    PayloadUnavailable,
    PreconditionFailure,
)
from keycloak_deployer.models.template import Payload, Template
from keycloak_deployer.templating.injector import inject, inject_file
from tests.fixtures.manifests import (
    REALM_PAYLOAD,
    REALM_TEMPLATE,
    REALM_TEMPLATE_WITHOUT_ANCHOR,
)


class TestInject:
    """Test in-memory injection."""

    def test_payload_follows_anchor_and_precedes_rest(self):
        """Payload lines are emitted after the anchor and before the next template line."""
        result = inject(["a:", "  b: |", "c: d"], "b", ['{"x":1}'], "  ")

        assert result == ["a:", "  b: |", '  {"x":1}', "c: d"]

    def test_each_payload_line_prefixed_once(self):
        """N payload lines yield N new lines, each prefixed by exactly the indent."""
        template = Template.from_text(REALM_TEMPLATE)
        payload = Payload.from_text(REALM_PAYLOAD)
        indent = "      "

        result = inject(template, "app-realm.json", payload, indent)

        inserted = result[len(template.lines) :]
        assert len(result) == len(template.lines) + len(payload.lines)
        assert all(line.startswith(indent) for line in inserted)
        assert [line[len(indent) :] for line in inserted] == payload.lines

    def test_payload_passes_through_verbatim(self):
        """Whitespace and escapes inside the payload are not re-serialized."""
        payload = ['{ "a" :  1,   "b": "\\"q\\"" }', "", "  // trailing"]

        result = inject(["x:", "  k: |"], "k", payload, "    ")

        assert result[2:] == ['    { "a" :  1,   "b": "\\"q\\"" }', "    ", "      // trailing"]

    def test_repeated_injection_is_identical(self):
        """Injecting the same template and payload twice gives identical output."""
        template = Template.from_text(REALM_TEMPLATE)
        payload = Payload.from_text(REALM_PAYLOAD)

        first = inject(template, "app-realm.json", payload, "      ")
        second = inject(template, "app-realm.json", payload, "      ")

        assert first == second

    def test_template_not_modified(self):
        """The template object keeps its original lines."""
        lines = ["a:", "  b: |", "c: d"]
        template = Template(lines=list(lines))

        inject(template, "b", ["payload"], "  ")

        assert template.lines == lines

    def test_missing_anchor(self):
        """A template without the anchor line fails with MissingAnchor."""
        with pytest.raises(MissingAnchor) as exc_info:
            inject(Template.from_text(REALM_TEMPLATE_WITHOUT_ANCHOR), "app-realm.json", ["{}"], "  ")

        assert exc_info.value.anchor_line == "  app-realm.json: |"
        assert exc_info.value.category == "injection"

    def test_anchor_match_is_exact(self):
        """Similar keys and different indentation are not anchors."""
        template = ["data:", "    b: |", "  bb: |", "  b: |  ", "  b: >"]

        with pytest.raises(MissingAnchor):
            inject(template, "b", ["x"], "  ")

    def test_duplicate_anchor(self):
        """More than one anchor line fails with AmbiguousAnchor."""
        with pytest.raises(AmbiguousAnchor) as exc_info:
            inject(["  b: |", "x: y", "  b: |"], "b", ["x"], "  ")

        assert exc_info.value.line_numbers == [1, 3]

    def test_empty_payload(self):
        """An empty payload leaves the template unchanged."""
        assert inject(["  b: |", "c: d"], "b", [], "  ") == ["  b: |", "c: d"]


class TestInjectFile:
    """Test file based injection."""

    def _write(self, tmp_path, template=REALM_TEMPLATE, payload=REALM_PAYLOAD):
        template_path = tmp_path / "realm.yaml.template"
        payload_path = tmp_path / "app-realm.json"
        template_path.write_text(template)
        if payload is not None:
            payload_path.write_text(payload)
        return template_path, payload_path, tmp_path / "out" / "realm.yaml"

    def test_writes_derived_manifest(self, tmp_path):
        """Should write template, anchor and indented payload to the output path."""
        template_path, payload_path, output_path = self._write(tmp_path)

        inject_file(template_path, payload_path, output_path, "app-realm.json", "      ")

        text = output_path.read_text()
        assert text.startswith(REALM_TEMPLATE)
        assert '      "realm": "app",\n' in text
        assert text.endswith("      }\n")

    def test_rerun_is_byte_identical(self, tmp_path):
        """Running twice writes byte-identical files."""
        template_path, payload_path, output_path = self._write(tmp_path)

        inject_file(template_path, payload_path, output_path, "app-realm.json", "      ")
        first = output_path.read_bytes()
        inject_file(template_path, payload_path, output_path, "app-realm.json", "      ")

        assert output_path.read_bytes() == first

    def test_carriage_returns_survive(self, tmp_path):
        """Payload bytes, including CR, are kept."""
        template_path, payload_path, output_path = self._write(tmp_path)
        payload_path.write_bytes(b'{\r\n  "a": 1\r\n}\r\n')

        inject_file(template_path, payload_path, output_path, "app-realm.json", "  ")

        assert output_path.read_bytes().endswith(b'  {\r\n    "a": 1\r\n  }\r\n')

    def test_missing_anchor_writes_nothing(self, tmp_path):
        """No output file is produced when the anchor is missing."""
        template_path, payload_path, output_path = self._write(
            tmp_path, template=REALM_TEMPLATE_WITHOUT_ANCHOR
        )

        with pytest.raises(MissingAnchor):
            inject_file(template_path, payload_path, output_path, "app-realm.json", "  ")

        assert not output_path.exists()

    def test_missing_anchor_keeps_previous_output(self, tmp_path):
        """An earlier output file is left untouched on failure."""
        template_path, payload_path, output_path = self._write(
            tmp_path, template=REALM_TEMPLATE_WITHOUT_ANCHOR
        )
        output_path.parent.mkdir()
        output_path.write_text("previous\n")

        with pytest.raises(MissingAnchor):
            inject_file(template_path, payload_path, output_path, "app-realm.json", "  ")

        assert output_path.read_text() == "previous\n"

    def test_missing_payload_is_not_missing_anchor(self, tmp_path):
        """An unreadable payload fails with PayloadUnavailable."""
        template_path, payload_path, output_path = self._write(tmp_path, payload=None)

        with pytest.raises(PayloadUnavailable) as exc_info:
            inject_file(template_path, payload_path, output_path, "app-realm.json", "  ")

        assert not isinstance(exc_info.value, MissingAnchor)
        assert exc_info.value.path == str(payload_path)
        assert not output_path.exists()

    def test_missing_template(self, tmp_path):
        """A missing template file is a precondition failure."""
        with pytest.raises(PreconditionFailure):
            inject_file(
                tmp_path / "absent.template",
                tmp_path / "payload.json",
                tmp_path / "out.yaml",
                "app-realm.json",
                "  ",
            )

    def test_undecodable_template(self, tmp_path):
        """A template that is not UTF-8 is a precondition failure, not a decode error."""
        template_path, payload_path, output_path = self._write(tmp_path)
        template_path.write_bytes(b"data:\n  caf\xe9: x\n  app-realm.json: |\n")

        with pytest.raises(PreconditionFailure) as exc_info:
            inject_file(template_path, payload_path, output_path, "app-realm.json", "  ")

        assert isinstance(exc_info.value.__cause__, UnicodeDecodeError)
        assert not output_path.exists()

    def test_unreadable_template(self, tmp_path):
        """An OS error while reading the template is a precondition failure."""
        template_path, payload_path, output_path = self._write(tmp_path)

        with patch.object(Template, "from_path", side_effect=PermissionError("denied")):
            with pytest.raises(PreconditionFailure, match="cannot be read"):
                inject_file(template_path, payload_path, output_path, "app-realm.json", "  ")

        assert not output_path.exists()
