"""Shared pytest fixtures for deployer unit tests."""

from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from keycloak_deployer.models.parameters import DeploymentConfig
from keycloak_deployer.services.resource_reconciler import ResourceReconciler
from tests.fixtures.manifests import (
    CERTIFICATE_DOCUMENT,
    DB_SECRET_MANIFEST,
    REALM_PAYLOAD,
    REALM_TEMPLATE,
    VALUES_DOCUMENT,
)


@pytest.fixture
def mock_apis():
    """Mocked API groups, one MagicMock per kubernetes API class."""
    return SimpleNamespace(
        core=MagicMock(),
        apps=MagicMock(),
        networking=MagicMock(),
        custom=MagicMock(),
    )


@pytest.fixture
def reconciler(mock_apis):
    """ResourceReconciler wired to mocked APIs, with a no-op sleep."""
    rec = ResourceReconciler(k8s_client=MagicMock(), sleep=lambda _seconds: None)
    rec._core_v1 = mock_apis.core
    rec._apps_v1 = mock_apis.apps
    rec._networking_v1 = mock_apis.networking
    rec._custom_objects = mock_apis.custom
    return rec


@pytest.fixture
def manifest_dir(tmp_path) -> Path:
    """A working directory laid out like the shipped manifests."""
    helm = tmp_path / "manifests" / "helm"
    k8s = tmp_path / "manifests" / "k8s"
    helm.mkdir(parents=True)
    k8s.mkdir(parents=True)
    (helm / "values.yaml").write_text(VALUES_DOCUMENT)
    (k8s / "keycloak-db-credentials.yaml").write_text(DB_SECRET_MANIFEST)
    (k8s / "keycloak-certificate.yaml").write_text(CERTIFICATE_DOCUMENT)
    (k8s / "custom-realm-config.yaml.template").write_text(REALM_TEMPLATE)
    (k8s / "app-realm.json").write_text(REALM_PAYLOAD)
    return tmp_path


@pytest.fixture
def deployment_config(manifest_dir) -> DeploymentConfig:
    """Run configuration pointing at ``manifest_dir``."""
    k8s = manifest_dir / "manifests" / "k8s"
    return DeploymentConfig(
        namespace="keycloak",
        release_name="keycloak",
        values_file=manifest_dir / "manifests" / "helm" / "values.yaml",
        db_secret_file=k8s / "keycloak-db-credentials.yaml",
        certificate_file=k8s / "keycloak-certificate.yaml",
        realm_template_file=k8s / "custom-realm-config.yaml.template",
        realm_payload_file=k8s / "app-realm.json",
        realm_output_file=k8s / "custom-realm-config.yaml",
        rollout_timeout_seconds=1,
        rollout_poll_interval_seconds=0.1,
    )
