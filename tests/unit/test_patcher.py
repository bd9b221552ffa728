"""Unit tests for block-scoped manifest patching."""

from unittest import mock

import pytest

from keycloak_deployer.errors import PatchFieldUnmatched, PreconditionFailure
from keycloak_deployer.models.parameters import DeploymentParameters
from keycloak_deployer.models.template import Template, split_lines
from keycloak_deployer.templating.patcher import (
    CERTIFICATE_FIELDS,
    VALUES_FIELDS,
    FieldPatch,
    patch,
    patch_file,
)
from tests.fixtures.manifests import (
    CERTIFICATE_DOCUMENT,
    SCOPED_REGION_DOCUMENT,
    VALUES_DOCUMENT,
)

PARAMS = {
    "project": "my-proj",
    "region": "us-west1",
    "instance": "kc-sql",
    "gsaEmail": "gsa@my-proj.iam.gserviceaccount.com",
    "serviceAccountName": "keycloak-ksa",
    "domain": "auth.example.org",
    "staticIpName": "kc-ip",
}


def _changed(before: list[str], after: list[str]) -> dict[int, tuple[str, str]]:
    assert len(before) == len(after)
    return {i: (b, a) for i, (b, a) in enumerate(zip(before, after, strict=True)) if b != a}


class TestScoping:
    """Test that keys are matched only inside their parent block."""

    def test_top_level_key_only(self):
        """Only the top-level region is replaced, not the nested one."""
        result = patch(
            split_lines(SCOPED_REGION_DOCUMENT),
            {"region": "us-west1"},
            [FieldPatch("region", ("region",))],
        )

        assert result.lines == [
            'region: "us-west1"',
            "backup:",
            '  region: "ignore-me"',
            "  schedule: daily",
        ]
        assert result.warnings == []

    def test_nested_name_leaves_other_names(self):
        """serviceAccount.name does not touch name keys under other parents."""
        document = [
            "serviceAccount:",
            "  name: keycloak",
            "other:",
            "  name: keycloak",
            "  serviceAccount:",
            "    name: nested",
            "name: root",
        ]

        result = patch(document, {"serviceAccountName": "ksa"})

        assert _changed(document, result.lines) == {1: ("  name: keycloak", "  name: ksa")}

    def test_block_scalar_content_is_opaque(self):
        """Keys inside a block scalar are never patched."""
        document = split_lines(VALUES_DOCUMENT)

        result = patch(document, PARAMS)

        assert '    region: "inside-block-scalar"' in result.lines
        assert "      name: custom-realm-config" in result.lines
        assert "  - name: cloudsql-proxy" in result.lines

    def test_parent_of_nested_block_not_overwritten(self):
        """A key owning a nested block is not replaced by a scalar."""
        document = ["serviceAccount:", "  name: x"]

        result = patch(document, {"sa": "value"}, [FieldPatch("sa", ("serviceAccount",))])

        assert result.lines == document
        assert len(result.warnings) == 1


class TestValuesDocument:
    """Test the shipped values field table."""

    def test_all_fields_applied(self):
        """Every values field is found and replaced in the sample document."""
        before = split_lines(VALUES_DOCUMENT)

        result = patch(before, PARAMS)

        assert result.warnings == []
        assert len(result.applied) == len(VALUES_FIELDS)
        assert set(_changed(before, result.lines).values()) == {
            ('  name: "keycloak"', '  name: "keycloak-ksa"'),
            (
                '    iam.gke.io/gcp-service-account: "{{ .Values.cloudsql.gsaEmail }}"',
                '    iam.gke.io/gcp-service-account: "gsa@my-proj.iam.gserviceaccount.com"',
            ),
            (
                '  project: "spheregcp-test"        # Default, overridden by deploy script',
                '  project: "my-proj"        # Default, overridden by deploy script',
            ),
            (
                '  region: "asia-southeast2"        # Default, overridden by deploy script',
                '  region: "us-west1"        # Default, overridden by deploy script',
            ),
            ("  instance: 'spheres-sql-instance'", "  instance: 'kc-sql'"),
            (
                "  gsaEmail: keycloak-sql-proxy-gsa@spheregcp-test.iam.gserviceaccount.com",
                "  gsaEmail: gsa@my-proj.iam.gserviceaccount.com",
            ),
            (
                '    kubernetes.io/ingress.global-static-ip-name: "your-static-ip-name"',
                '    kubernetes.io/ingress.global-static-ip-name: "kc-ip"',
            ),
            ('    - host: "keycloak.example.com"', '    - host: "auth.example.org"'),
        }

    def test_accepts_parameter_set(self):
        """A DeploymentParameters instance is accepted as the parameter source."""
        params = DeploymentParameters.build(project="p1", region="r1", instance="i1")

        result = patch(split_lines(VALUES_DOCUMENT), params)

        assert '  project: "p1"        # Default, overridden by deploy script' in result.lines
        assert (
            "  gsaEmail: keycloak-sql-proxy-gsa@p1.iam.gserviceaccount.com"
            in result.lines
        )

    def test_none_values_skipped(self):
        """Fields without a value are neither patched nor reported."""
        before = split_lines(VALUES_DOCUMENT)

        result = patch(before, {"project": "p", "domain": None, "staticIpName": None})

        assert result.applied == ["cloudsql.project"]
        assert result.warnings == []

    def test_input_not_mutated(self):
        """The caller's lines and template are left untouched."""
        lines = split_lines(VALUES_DOCUMENT)
        snapshot = list(lines)
        template = Template(lines=lines)

        result = patch(template, PARAMS)

        assert template.lines == snapshot
        assert result.lines is not template.lines
        assert result.lines != snapshot


class TestUnmatched:
    """Test recoverable unmatched fields."""

    def test_unmatched_field_warns(self):
        """A field whose key path is absent yields a warning and no change."""
        before = split_lines(SCOPED_REGION_DOCUMENT)

        result = patch(before, {"project": "p"})

        assert result.lines == before
        assert len(result.warnings) == 1
        warning = result.warnings[0]
        assert isinstance(warning, PatchFieldUnmatched)
        assert warning.field == "project"
        assert warning.path == "cloudsql.project"
        assert warning.fatal is False


class TestValueRendering:
    """Test quoting and comment preservation."""

    def test_plain_value_needing_quotes(self):
        """A value that is not safe as a plain scalar is double-quoted."""
        result = patch(["key: plain"], {"v": "a: b"}, [FieldPatch("v", ("key",))])

        assert result.lines == ['key: "a: b"']

    def test_single_quote_escaping(self):
        """Single-quoted values escape embedded quotes by doubling."""
        result = patch(["key: 'x'"], {"v": "it's"}, [FieldPatch("v", ("key",))])

        assert result.lines == ["key: 'it''s'"]

    def test_double_quote_escaping(self):
        result = patch(['key: "x"'], {"v": 'say "hi"'}, [FieldPatch("v", ("key",))])

        assert result.lines == ['key: "say \\"hi\\""']

    def test_null_value_filled(self):
        """An empty scalar value is filled in."""
        result = patch(["key:", "next: 1"], {"v": "filled"}, [FieldPatch("v", ("key",))])

        assert result.lines == ["key: filled", "next: 1"]

    def test_whole_value_replaced(self):
        """The entire old value is replaced, never partially edited."""
        result = patch(
            ["key: spheregcp-test-extra # note"],
            {"v": "new"},
            [FieldPatch("v", ("key",))],
        )

        assert result.lines == ["key: new # note"]


class TestCertificate:
    """Test the ManagedCertificate field table."""

    def test_first_domain_replaced(self):
        """The first domains entry is replaced and its comment kept."""
        result = patch(
            split_lines(CERTIFICATE_DOCUMENT), {"domain": "auth.example.org"}, CERTIFICATE_FIELDS
        )

        assert "    - auth.example.org # replaced per deployment" in result.lines
        assert result.applied == ["spec.domains[0]"]


class TestPatchFile:
    """Test patching documents read from disk."""

    def test_source_file_untouched(self, tmp_path):
        """patch_file never writes the source document."""
        source = tmp_path / "values.yaml"
        source.write_text(VALUES_DOCUMENT)

        result = patch_file(source, PARAMS)

        assert source.read_text() == VALUES_DOCUMENT
        assert result.text != VALUES_DOCUMENT
        assert result.text.endswith("\n")

    def test_missing_source(self, tmp_path):
        with pytest.raises(PreconditionFailure):
            patch_file(tmp_path / "absent.yaml", PARAMS)

    def test_undecodable_source(self, tmp_path):
        """A values file that is not UTF-8 is a precondition failure."""
        source = tmp_path / "values.yaml"
        source.write_bytes(b"cloudsql:\n  project: \"caf\xe9\"\n")

        with pytest.raises(PreconditionFailure) as exc_info:
            patch_file(source, PARAMS)

        assert exc_info.value.category == "precondition"
        assert isinstance(exc_info.value.__cause__, UnicodeDecodeError)

    def test_unreadable_source(self, tmp_path):
        """An OS error while reading the source is a precondition failure."""
        source = tmp_path / "values.yaml"
        source.write_text(VALUES_DOCUMENT)

        with mock.patch.object(Template, "from_path", side_effect=PermissionError("denied")):
            with pytest.raises(PreconditionFailure, match="cannot be read"):
                patch_file(source, PARAMS)
