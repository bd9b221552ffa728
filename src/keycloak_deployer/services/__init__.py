"""
Service layer for the Keycloak deployer.

This module provides the resource reconciler and the workflows built on it:
the deploy pipeline, teardown and the HTTPS toggle.
"""

from .deployment import DeploymentPipeline, DeploymentSummary
from .https import HttpsToggle
from .resource_reconciler import ResourceReconciler
from .teardown import Teardown, TeardownReport

__all__ = [
    "ResourceReconciler",
    "DeploymentPipeline",
    "DeploymentSummary",
    "HttpsToggle",
    "Teardown",
    "TeardownReport",
]
