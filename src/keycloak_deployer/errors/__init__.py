"""
Error handling module for the Keycloak deployer.

This module provides the error hierarchy used by the injection, patching and
reconciliation stages, with a clear split between fatal and recoverable
conditions.
"""

from .deployer_errors import (
    AmbiguousAnchor,
    CommandError,
    ConfigurationError,
    ConvergenceTimeout,
    DeployerError,
    InjectionError,
    KubernetesAPIError,
    MissingAnchor,
    PatchFieldUnmatched,
    PayloadUnavailable,
    PreconditionFailure,
    ReconcileFailure,
)

__all__ = [
    "DeployerError",
    "PreconditionFailure",
    "InjectionError",
    "MissingAnchor",
    "AmbiguousAnchor",
    "PayloadUnavailable",
    "PatchFieldUnmatched",
    "ReconcileFailure",
    "KubernetesAPIError",
    "CommandError",
    "ConvergenceTimeout",
    "ConfigurationError",
]
