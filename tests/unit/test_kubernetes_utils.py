"""Unit tests for Kubernetes utility functions."""

from unittest.mock import MagicMock, patch

import pytest
from kubernetes import config

from keycloak_deployer.errors import PreconditionFailure
from keycloak_deployer.utils.kubernetes import (
    check_cluster_connection,
    get_kubernetes_client,
)
from tests.fixtures.kubernetes import api_exception


@patch("keycloak_deployer.utils.kubernetes.config")
def test_falls_back_to_kubeconfig(mock_config):
    mock_config.ConfigException = config.ConfigException
    mock_config.load_incluster_config.side_effect = config.ConfigException("not in cluster")

    get_kubernetes_client()

    mock_config.load_kube_config.assert_called_once()


@patch("keycloak_deployer.utils.kubernetes.config")
def test_no_configuration(mock_config):
    mock_config.ConfigException = config.ConfigException
    mock_config.load_incluster_config.side_effect = config.ConfigException("not in cluster")
    mock_config.load_kube_config.side_effect = config.ConfigException("no kubeconfig")

    with pytest.raises(PreconditionFailure):
        get_kubernetes_client()


def test_cluster_connection_returns_version():
    with patch("keycloak_deployer.utils.kubernetes.client.VersionApi") as version_api:
        version_api.return_value.get_code.return_value = MagicMock(git_version="v1.30.2")

        assert check_cluster_connection(MagicMock()) == "v1.30.2"


def test_cluster_unreachable():
    with patch("keycloak_deployer.utils.kubernetes.client.VersionApi") as version_api:
        version_api.return_value.get_code.side_effect = api_exception(401, "Unauthorized")

        with pytest.raises(PreconditionFailure, match="not connected"):
            check_cluster_connection(MagicMock())
