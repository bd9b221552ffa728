"""
Kubernetes utilities for the Keycloak deployer.

This module provides helper functions for interacting with the Kubernetes API:
- Kubernetes client management and configuration
- Cluster connectivity checks performed before any mutation
"""

import logging

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from keycloak_deployer.errors import PreconditionFailure

logger = logging.getLogger(__name__)


def get_kubernetes_client() -> client.ApiClient:
    """
    Get configured Kubernetes API client.

    Tries in-cluster configuration first (when running in a pod) and falls
    back to the local kubeconfig.

    Returns:
        Configured Kubernetes API client

    Raises:
        PreconditionFailure: If neither configuration can be loaded
    """
    try:
        config.load_incluster_config()
        logger.debug("Loaded in-cluster Kubernetes configuration")
    except config.ConfigException:
        try:
            config.load_kube_config()
            logger.debug("Loaded kubeconfig from local environment")
        except config.ConfigException as e:
            logger.error(f"Failed to load Kubernetes configuration: {e}")
            raise PreconditionFailure(
                f"no Kubernetes configuration available: {e}",
                field="kubeconfig",
                user_action="Point KUBECONFIG at the target cluster or run in-cluster",
            ) from e

    return client.ApiClient()


def check_cluster_connection(k8s_client: client.ApiClient) -> str:
    """
    Verify that the cluster API server answers.

    Args:
        k8s_client: Kubernetes API client

    Returns:
        The server's git version string

    Raises:
        PreconditionFailure: If the API server cannot be reached
    """
    try:
        version = client.VersionApi(k8s_client).get_code()
    except (ApiException, HTTPError, OSError) as e:
        raise PreconditionFailure(
            f"not connected to a Kubernetes cluster: {e}",
            field="cluster",
            user_action="Check the current kubectl context and cluster credentials",
        ) from e

    logger.debug(f"Connected to Kubernetes {version.git_version}")
    return version.git_version
