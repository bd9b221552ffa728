"""
Observability utilities for the Keycloak deployer.

This module provides structured logging with correlation IDs so that every
step of a deployment run can be traced in aggregated logs.
"""

from .logging import DeployerLogger, setup_structured_logging

__all__ = [
    "DeployerLogger",
    "setup_structured_logging",
]
